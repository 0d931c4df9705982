"""
Script and execution models — what runs, where it lands, and how it ended.

A ``ScriptSource`` is one local file queued for the target. A
``CommandResult`` is what the remote executor hands back for a single
command; an ``ExecutionResult`` is the engine's record of one full
upload-and-execute cycle.
"""

from __future__ import annotations

import ntpath
import posixpath
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel

# Exit code before a script has produced one
NOT_EXECUTED = -1

_REMOTE_SEPARATORS = ("/", "\\")


@dataclass(frozen=True)
class ScriptSource:
    """One resolved script to run on the target.

    Transient sources were materialized from inline lines and are owned
    (and deleted) by the provisioner.
    """

    path: Path
    transient: bool = False
    position: int = 0

    @property
    def name(self) -> str:
        return self.path.name


def is_remote_directory(remote_path: str) -> bool:
    """Whether a remote path denotes a directory (trailing separator)."""
    return remote_path.endswith(_REMOTE_SEPARATORS)


def resolve_remote_path(remote_path: str, local_path: Path | str) -> str:
    """Expand a directory remote path with the local script's base name.

    ``/tmp/`` + ``install.ps1`` → ``/tmp/install.ps1``. File paths are
    returned unchanged.
    """
    if not is_remote_directory(remote_path):
        return remote_path
    return remote_path + Path(local_path).name


def remote_join(directory: str, name: str) -> str:
    """Join a remote directory and file name using the directory's own separator style."""
    if "\\" in directory and "/" not in directory:
        return ntpath.join(directory, name)
    return posixpath.join(directory, name)


class CommandResult(BaseModel):
    """Outcome of one remote command, as reported by an executor."""

    command: str
    exit_status: int = NOT_EXECUTED
    stdout: str = ""
    stderr: str = ""


class ExecutionResult(BaseModel):
    """Record of one upload-and-execute cycle."""

    script: str
    remote_path: str = ""
    exit_code: int = NOT_EXECUTED
    attempts: int = 0


class RebootState(StrEnum):
    """Reboot coordinator states."""

    IDLE = "idle"
    INITIATING = "initiating"
    AWAITING_COMPLETION = "awaiting_completion"
    VALIDATING = "validating"
    COMPLETE = "complete"
