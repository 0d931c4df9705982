"""
Provisioning errors — one hierarchy for every failure a run can surface.

Everything raised by the core derives from ``ProvisioningError`` so callers
can stop a run with a single ``except`` clause. Only ``TransportError``
(and its ``UploadError`` subclass) is ever retried; the reboot loops treat
it as the expected symptom of a machine that is still restarting.
"""

from __future__ import annotations


class ProvisioningError(Exception):
    """Base class for all provisioning failures."""


class ConfigurationError(ProvisioningError):
    """Raised when the provisioner configuration is invalid."""


class PreparationError(ProvisioningError):
    """Raised when a transient script file cannot be created or written."""


class TemplateError(ProvisioningError):
    """Raised on a malformed template or an undefined placeholder."""


# ── Local script file errors ─────────────────────────────────────────


class ScriptFileError(ProvisioningError):
    """A local I/O failure around one script file."""

    action = "accessing"

    def __init__(self, path: str, reason: object):
        self.path = path
        self.reason = reason
        super().__init__(f"Error {self.action} PowerShell script {path}: {reason}.")


class StatError(ScriptFileError):
    action = "stating"


class OpenError(ScriptFileError):
    action = "opening"


class CloseError(ScriptFileError):
    action = "closing"


class RemovalError(ScriptFileError):
    action = "removing"


# ── Remote errors ────────────────────────────────────────────────────


class TransportError(ProvisioningError):
    """The remote executor could not reach the target or run a command."""


class UploadError(TransportError):
    """A file transfer to the target failed."""

    def __init__(self, remote_path: str, reason: object):
        self.remote_path = remote_path
        self.reason = reason
        super().__init__(f"Error uploading PowerShell script to {remote_path}: {reason}.")


class ExitCodeError(ProvisioningError):
    """A remote command returned a code outside the accepted set."""

    def __init__(self, exit_code: int, accepted: frozenset[int] | set[int]):
        self.exit_code = exit_code
        self.accepted = frozenset(accepted)
        allowed = ", ".join(str(c) for c in sorted(self.accepted))
        super().__init__(
            f"Script exited with non-zero exit status: {exit_code}. "
            f"Allowed exit codes are: [{allowed}]"
        )


class RebootInitiationError(ProvisioningError):
    """The target refused or failed to begin rebooting."""

    def __init__(self, exit_code: int, reason: str = ""):
        self.exit_code = exit_code
        message = f"Failed to reboot machine; exit code: {exit_code}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ProvisioningCancelled(ProvisioningError):
    """The run observed the external cancellation signal."""
