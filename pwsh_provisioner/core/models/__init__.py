"""
Domain models — configuration, scripts, and execution records.

All models are re-exported here for convenient access:

    from pwsh_provisioner.core.models import ProvisioningConfig, ScriptSource, RebootState
"""

from pwsh_provisioner.core.models.config import ProvisionerSettings, ProvisioningConfig
from pwsh_provisioner.core.models.script import (
    NOT_EXECUTED,
    CommandResult,
    ExecutionResult,
    RebootState,
    ScriptSource,
    is_remote_directory,
    resolve_remote_path,
)

__all__ = [
    "NOT_EXECUTED",
    # script.py
    "CommandResult",
    "ExecutionResult",
    # config.py
    "ProvisionerSettings",
    "ProvisioningConfig",
    "RebootState",
    "ScriptSource",
    "is_remote_directory",
    "resolve_remote_path",
]
