"""
Remote executor base — the contract between the provisioner and a target.

The engine only talks to the machine being provisioned through this
interface: push a file, run a command. How the bytes travel (SSH,
local copy, a test double) is the executor's business.

Executors report transport problems by raising ``TransportError``. A
command that ran and exited non-zero is not a transport problem: it
comes back as a ``CommandResult`` with its exit status.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import BinaryIO

from pydantic import BaseModel

from pwsh_provisioner.core.models.script import CommandResult


class FileMetadata(BaseModel):
    """What an executor may need to know about a file it uploads."""

    name: str
    size: int = 0
    mode: int = 0o644

    @classmethod
    def from_stat(cls, name: str, st: os.stat_result) -> FileMetadata:
        return cls(name=name, size=st.st_size, mode=st.st_mode & 0o777)


class RemoteExecutor(ABC):
    """Abstract base class for all remote executors.

    To create a new executor:
        1. Subclass RemoteExecutor
        2. Implement name, upload, run
        3. Raise TransportError (or UploadError) when the target is unreachable
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The executor identifier (e.g., 'ssh', 'local')."""

    @abstractmethod
    def upload(self, remote_path: str, content: BinaryIO, metadata: FileMetadata) -> None:
        """Write ``content`` to ``remote_path`` on the target, replacing any existing file.

        Raises:
            UploadError: If the transfer fails.
        """

    @abstractmethod
    def run(self, command: str) -> CommandResult:
        """Run a command on the target and wait for it to exit.

        Raises:
            TransportError: If the command could not be started or its
                exit status could not be collected.
        """

    def close(self) -> None:
        """Release any connection held to the target."""

    def __enter__(self) -> RemoteExecutor:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
