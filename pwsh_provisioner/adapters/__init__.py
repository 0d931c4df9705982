"""Adapters — ways of reaching the machine being provisioned.

Public re-exports for convenient access.
"""

from pwsh_provisioner.adapters.base import FileMetadata, RemoteExecutor
from pwsh_provisioner.adapters.mock import MockExecutor

__all__ = [
    "FileMetadata",
    "MockExecutor",
    "RemoteExecutor",
]
