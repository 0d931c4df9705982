"""
Script executor — upload one script, run it, and check how it exited.

Flow for one script:
    stat → open → [retry: rewind → upload → run → report] → close → validate → remove

The upload and the run form one attempt; a transport failure anywhere in
it repeats the whole attempt (re-reading the script from its first byte)
within the retry budget. An exit code outside the accepted set is never
retried. Transient scripts are removed once they ran successfully.
"""

from __future__ import annotations

import contextlib
import logging
import stat
import threading
from collections.abc import Collection
from typing import BinaryIO

from pwsh_provisioner.adapters.base import FileMetadata, RemoteExecutor
from pwsh_provisioner.core.engine.render import RenderedCommand
from pwsh_provisioner.core.errors import (
    CloseError,
    ExitCodeError,
    OpenError,
    RemovalError,
    StatError,
    TransportError,
    UploadError,
)
from pwsh_provisioner.core.models.script import (
    ExecutionResult,
    ScriptSource,
    resolve_remote_path,
)
from pwsh_provisioner.core.observability.reporter import LoggingReporter, Reporter
from pwsh_provisioner.core.reliability.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_ACCEPTED = frozenset({0})
DEFAULT_LABEL = "Provisioning with pwsh"


class ScriptExecutor:
    """Upload-execute-retry engine bound to one remote target.

    Args:
        remote: Executor that reaches the target.
        reporter: Progress sink.
        retry: Attempt/time budget for one script.
        cancel: External cancellation signal, checked between attempts.
    """

    def __init__(
        self,
        remote: RemoteExecutor,
        reporter: Reporter | None = None,
        retry: RetryPolicy | None = None,
        cancel: threading.Event | None = None,
    ):
        self.remote = remote
        self.reporter = reporter or LoggingReporter()
        self.retry = retry or RetryPolicy()
        self.cancel = cancel or threading.Event()

    def upload_and_execute(
        self,
        command: RenderedCommand,
        remote_path: str,
        source: ScriptSource,
        accepted: Collection[int] | None = DEFAULT_ACCEPTED,
        label: str = DEFAULT_LABEL,
    ) -> ExecutionResult:
        """Upload ``source`` to ``remote_path`` and run ``command`` there.

        Args:
            command: Rendered command (rewritten per attempt when elevation
                requires it).
            remote_path: Destination; a trailing separator means a directory
                and the script's base name is appended.
            source: Local script.
            accepted: Exit codes that count as success. ``None`` skips the
                check and leaves interpretation to the caller.
            label: Prefix of the exit-code progress report.

        Returns:
            ExecutionResult with the final exit code and the attempt count.

        Raises:
            StatError, OpenError, CloseError, RemovalError: Local file failures.
            UploadError, TransportError: Once the retry budget is exhausted.
            ExitCodeError: If the exit code is not accepted.
            ProvisioningCancelled: If cancellation is observed between attempts.
        """
        target = resolve_remote_path(remote_path, source.path)
        attempts = 0

        def attempt(number: int, handle: BinaryIO, metadata: FileMetadata) -> int:
            nonlocal attempts
            attempts = number
            self._upload(handle, metadata, target, source)

            line = command.finalize()
            logger.debug("Attempt %d: executing %s", number, line)
            result = self.remote.run(line)
            self.reporter.output(result.stdout)
            self.reporter.output(result.stderr)
            return result.exit_status

        exit_code = self._with_script(source, attempt)
        self.reporter.say(f"{label}; exit code: {exit_code}")

        if accepted is not None and exit_code not in accepted:
            raise ExitCodeError(exit_code, frozenset(accepted))

        self._remove(source)
        return ExecutionResult(
            script=str(source.path),
            remote_path=target,
            exit_code=exit_code,
            attempts=attempts,
        )

    def upload(self, remote_path: str, source: ScriptSource) -> str:
        """Upload ``source`` without running anything.

        Retries and local-file error handling match ``upload_and_execute``.

        Returns:
            The remote path the file was written to.
        """
        target = resolve_remote_path(remote_path, source.path)

        def attempt(number: int, handle: BinaryIO, metadata: FileMetadata) -> None:
            self._upload(handle, metadata, target, source)

        self._with_script(source, attempt)
        self._remove(source)
        return target

    # ── Internals ────────────────────────────────────────────────

    def _with_script(self, source: ScriptSource, attempt):
        """Open the script and run ``attempt`` under the retry policy."""
        try:
            st = source.path.stat()
        except OSError as e:
            raise StatError(str(source.path), e) from e
        if not stat.S_ISREG(st.st_mode):
            raise StatError(str(source.path), "not a regular file")
        metadata = FileMetadata.from_stat(source.name, st)

        try:
            handle = open(source.path, "rb")
        except OSError as e:
            raise OpenError(str(source.path), e) from e

        try:
            outcome = self.retry.run(
                lambda number: attempt(number, handle, metadata), self.cancel
            )
        except BaseException:
            # The attempt's own error is the one worth reporting
            with contextlib.suppress(OSError):
                handle.close()
            raise

        try:
            handle.close()
        except OSError as e:
            raise CloseError(str(source.path), e) from e
        return outcome

    def _upload(
        self,
        handle: BinaryIO,
        metadata: FileMetadata,
        target: str,
        source: ScriptSource,
    ) -> None:
        try:
            handle.seek(0)
        except OSError as e:
            raise OpenError(str(source.path), e) from e

        try:
            self.remote.upload(target, handle, metadata)
        except UploadError:
            raise
        except TransportError as e:
            raise UploadError(target, e) from e
        logger.debug("Uploaded %s to %s", source.path, target)

    def _remove(self, source: ScriptSource) -> None:
        if not source.transient:
            return
        try:
            source.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise RemovalError(str(source.path), e) from e
