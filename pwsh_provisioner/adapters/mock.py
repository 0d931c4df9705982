"""
Mock executor — in-memory test double for a remote target.

Records every upload and command in order, keeps the last bytes written
to each remote path, and answers commands with scripted exit codes or
transport failures. Nothing leaves the process.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import BinaryIO, Literal

from pwsh_provisioner.adapters.base import FileMetadata, RemoteExecutor
from pwsh_provisioner.core.errors import TransportError, UploadError
from pwsh_provisioner.core.models.script import CommandResult


@dataclass
class MockCall:
    """One interaction with the mock target."""

    kind: Literal["upload", "run"]
    target: str                  # remote path or command line
    content: bytes = b""


class MockExecutor(RemoteExecutor):
    """Universal mock executor for testing.

    By default every upload succeeds and every command exits 0. Exit codes
    and failures are scripted per command fragment: the first configured
    fragment contained in a command decides its outcome. Scripted exit codes
    are consumed in order and the last one repeats.
    """

    def __init__(self, executor_name: str = "mock", default_exit_code: int = 0):
        self._name = executor_name
        self._default_exit_code = default_exit_code
        self._exit_codes: dict[str, deque[int]] = {}
        self._run_failures: dict[str, int] = {}
        self._upload_failures = 0
        self._stdout: dict[str, str] = {}
        self._call_log: list[MockCall] = []
        self.files: dict[str, bytes] = {}
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    # ── Scripting ────────────────────────────────────────────────

    def set_exit_code(self, fragment: str, *codes: int) -> None:
        """Answer commands containing ``fragment`` with ``codes`` in order."""
        self._exit_codes[fragment] = deque(codes or (0,))

    def set_output(self, fragment: str, stdout: str) -> None:
        """Return ``stdout`` for commands containing ``fragment``."""
        self._stdout[fragment] = stdout

    def fail_uploads(self, times: int = 1) -> None:
        """Make the next ``times`` uploads raise UploadError."""
        self._upload_failures = times

    def fail_runs(self, fragment: str, times: int = 1) -> None:
        """Make the next ``times`` commands containing ``fragment`` raise TransportError.

        A negative count fails forever.
        """
        self._run_failures[fragment] = times

    # ── Inspection ───────────────────────────────────────────────

    @property
    def call_log(self) -> list[MockCall]:
        """All interactions in the order they happened."""
        return self._call_log

    @property
    def uploads(self) -> list[MockCall]:
        return [c for c in self._call_log if c.kind == "upload"]

    @property
    def commands(self) -> list[str]:
        return [c.target for c in self._call_log if c.kind == "run"]

    def commands_containing(self, fragment: str) -> list[str]:
        return [c for c in self.commands if fragment in c]

    # ── RemoteExecutor ───────────────────────────────────────────

    def upload(self, remote_path: str, content: BinaryIO, metadata: FileMetadata) -> None:
        data = content.read()
        self._call_log.append(MockCall(kind="upload", target=remote_path, content=data))
        if self._upload_failures:
            self._upload_failures -= 1
            raise UploadError(remote_path, "mock upload failure")
        self.files[remote_path] = data

    def run(self, command: str) -> CommandResult:
        self._call_log.append(MockCall(kind="run", target=command))

        for fragment, remaining in self._run_failures.items():
            if fragment in command and remaining != 0:
                self._run_failures[fragment] = remaining - 1 if remaining > 0 else remaining
                raise TransportError(f"mock transport failure running: {command}")

        exit_code = self._default_exit_code
        for fragment, codes in self._exit_codes.items():
            if fragment in command:
                exit_code = codes.popleft() if len(codes) > 1 else codes[0]
                break

        stdout = next((out for frag, out in self._stdout.items() if frag in command), "")
        return CommandResult(command=command, exit_status=exit_code, stdout=stdout)

    def close(self) -> None:
        self.closed = True

    def reset(self) -> None:
        """Clear the call log, stored files and all scripted responses."""
        self._call_log.clear()
        self._exit_codes.clear()
        self._run_failures.clear()
        self._stdout.clear()
        self._upload_failures = 0
        self.files.clear()
