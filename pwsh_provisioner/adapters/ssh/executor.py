"""
SSH executor — provision a remote host over SSH with Paramiko.

Commands go through ``exec_command``; uploads go through SFTP. The
connection is opened lazily and reopened after it drops, which is what
a reboot in the middle of a run looks like from this side: commands
fail with ``TransportError`` until the host answers again, then the
next call reconnects transparently.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import BinaryIO

import paramiko

from pwsh_provisioner.adapters.base import FileMetadata, RemoteExecutor
from pwsh_provisioner.core.errors import TransportError, UploadError
from pwsh_provisioner.core.models.script import CommandResult

logger = logging.getLogger(__name__)

# Everything Paramiko raises when the peer is gone or refuses us
_TRANSPORT_ERRORS = (paramiko.SSHException, OSError, EOFError)

_CHUNK = 32768
_DRAIN_POLL = 0.05


@dataclass
class SSHExecutor(RemoteExecutor):
    """Remote executor backed by one Paramiko SSH connection.

    Args:
        host: Target host name or address.
        user: Login user.
        port: SSH port.
        password: Password (also used to unlock ``key_path`` if encrypted).
        key_path: Private key file.
        timeout: Connect/banner/auth timeout in seconds.
        command_timeout: Per-command channel timeout (None = wait forever).
    """

    host: str
    user: str
    port: int = 22
    password: str | None = None
    key_path: str | None = None
    timeout: float = 30.0
    command_timeout: float | None = None

    _client: paramiko.SSHClient | None = field(default=None, init=False, repr=False)

    @property
    def name(self) -> str:
        return "ssh"

    # ── Connection ───────────────────────────────────────────────

    def connect(self) -> paramiko.SSHClient:
        """Return a live client, (re)connecting if needed.

        Raises:
            TransportError: If the host cannot be reached or authentication fails.
        """
        if self._client is not None:
            transport = self._client.get_transport()
            if transport is not None and transport.is_active():
                return self._client
            logger.debug("SSH connection to %s dropped; reconnecting", self.host)
            self.close()

        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        kwargs = {
            "hostname": self.host,
            "port": self.port,
            "username": self.user,
            "timeout": self.timeout,
            "banner_timeout": self.timeout,
            "auth_timeout": self.timeout,
            "allow_agent": self.key_path is None and self.password is None,
            "look_for_keys": self.key_path is None and self.password is None,
        }
        if self.password:
            kwargs["password"] = self.password
        if self.key_path:
            kwargs["key_filename"] = self.key_path

        try:
            client.connect(**kwargs)
        except _TRANSPORT_ERRORS as e:
            client.close()
            raise TransportError(f"Cannot connect to {self.user}@{self.host}:{self.port}: {e}") from e

        logger.info("Connected to %s@%s:%d", self.user, self.host, self.port)
        self._client = client
        return client

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            finally:
                self._client = None

    # ── RemoteExecutor ───────────────────────────────────────────

    def upload(self, remote_path: str, content: BinaryIO, metadata: FileMetadata) -> None:
        try:
            client = self.connect()
        except TransportError as e:
            raise UploadError(remote_path, e) from e

        logger.debug("Uploading %s (%d bytes) to %s:%s", metadata.name, metadata.size, self.host, remote_path)
        try:
            sftp = client.open_sftp()
            try:
                sftp.putfo(content, remote_path, file_size=metadata.size or 0, confirm=True)
                sftp.chmod(remote_path, metadata.mode | 0o600)
            finally:
                sftp.close()
        except _TRANSPORT_ERRORS as e:
            self.close()
            raise UploadError(remote_path, e) from e

    def run(self, command: str) -> CommandResult:
        client = self.connect()
        logger.debug("Executing on %s: %s", self.host, command)
        try:
            _stdin, stdout, stderr = client.exec_command(command, timeout=self.command_timeout)
            out, err = _drain(stdout.channel)
            rc = stdout.channel.recv_exit_status()
        except _TRANSPORT_ERRORS as e:
            self.close()
            raise TransportError(f"Command failed on {self.host}: {e}") from e

        # -1 means the channel closed without an exit status (host went away)
        if rc == -1:
            self.close()
            raise TransportError(f"No exit status received from {self.host} for: {command}")

        return CommandResult(command=command, exit_status=rc, stdout=out, stderr=err)


def _drain(channel: paramiko.Channel) -> tuple[str, str]:
    """Read stdout and stderr of a running command until it exits.

    Both streams are consumed as data arrives. Paramiko only reopens the
    channel window as buffered data is read, so draining one stream to EOF
    first can stall the remote writer on the other.
    """
    out, err = bytearray(), bytearray()
    while True:
        idle = True
        while channel.recv_ready():
            out += channel.recv(_CHUNK)
            idle = False
        while channel.recv_stderr_ready():
            err += channel.recv_stderr(_CHUNK)
            idle = False
        if channel.exit_status_ready():
            break
        if idle:
            time.sleep(_DRAIN_POLL)

    # The command has exited; collect whatever is still in flight up to EOF
    while chunk := channel.recv(_CHUNK):
        out += chunk
    while chunk := channel.recv_stderr(_CHUNK):
        err += chunk
    return out.decode("utf-8", "replace"), err.decode("utf-8", "replace")
