"""
Local executor — provision the machine the provisioner itself runs on.

Uploads become file copies and commands run through the local shell.
Useful for image builds that execute inside the target (chroot,
container build step) and for exercising scripts before shipping them
to a remote host.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from pathlib import Path
from typing import BinaryIO

from pwsh_provisioner.adapters.base import FileMetadata, RemoteExecutor
from pwsh_provisioner.core.errors import TransportError, UploadError
from pwsh_provisioner.core.models.script import CommandResult

logger = logging.getLogger(__name__)


class LocalExecutor(RemoteExecutor):
    """Execute commands on the local machine and capture their output.

    Args:
        timeout: Seconds a single command may run (None = no limit).
        shell: Shell executable; defaults to the platform's ``sh``.
    """

    def __init__(self, timeout: float | None = None, shell: str | None = None):
        self._timeout = timeout
        self._shell = shell or shutil.which("sh")

    @property
    def name(self) -> str:
        return "local"

    def upload(self, remote_path: str, content: BinaryIO, metadata: FileMetadata) -> None:
        target = Path(remote_path)
        logger.debug("Copying %s (%d bytes) to %s", metadata.name, metadata.size, target)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as fh:
                shutil.copyfileobj(content, fh)
            target.chmod(metadata.mode | 0o600)
        except OSError as e:
            raise UploadError(remote_path, e) from e

    def run(self, command: str) -> CommandResult:
        logger.debug("Executing: %s", command)
        start = time.monotonic()

        try:
            result = subprocess.run(
                command,
                shell=True,
                executable=self._shell,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise TransportError(f"Command timed out after {self._timeout}s: {command}") from e
        except OSError as e:
            raise TransportError(f"Command execution error: {e}") from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug("Command exited %d after %dms", result.returncode, elapsed_ms)
        return CommandResult(
            command=command,
            exit_status=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )
