"""
Script source resolver — turn configuration into an ordered list of scripts.

Inline command lines are materialized into one temporary script file
(transient: the provisioner deletes it). Configured script paths are
passed through untouched and never deleted.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterable, Sequence
from pathlib import Path

from pwsh_provisioner.core.errors import ConfigurationError, PreparationError
from pwsh_provisioner.core.models.script import ScriptSource

logger = logging.getLogger(__name__)

TEMP_PREFIX = "pwsh-provisioner-"


def write_transient_script(lines: Iterable[str], suffix: str = ".ps1") -> Path:
    """Write lines (each newline-terminated) into a new temporary file.

    Line endings are written as ``\\n`` on every platform.

    Raises:
        PreparationError: If the file cannot be created or written.
    """
    try:
        fd, name = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=suffix)
    except OSError as e:
        raise PreparationError(f"Error preparing PowerShell script: {e}.") from e

    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
            for line in lines:
                fh.write(line + "\n")
    except OSError as e:
        path.unlink(missing_ok=True)
        raise PreparationError(f"Error preparing PowerShell script: {e}.") from e

    logger.debug("Materialized transient script %s", path)
    return path


def resolve_script_sources(
    inline: Sequence[str] | None,
    scripts: Sequence[str | os.PathLike[str]] | None,
) -> list[ScriptSource]:
    """Resolve configured inline lines or script paths into script sources.

    Exactly one of ``inline`` and ``scripts`` must be non-empty. Inline
    lines become a single transient script at position 0; script paths
    keep their configured order.

    Raises:
        ConfigurationError: If both or neither are given.
        PreparationError: If the inline script cannot be written.
    """
    inline = list(inline or [])
    scripts = list(scripts or [])

    if not inline and not scripts:
        raise ConfigurationError("Either a script file or an inline script must be specified.")
    if inline and scripts:
        raise ConfigurationError("Only a script file or an inline script can be specified, not both.")

    if inline:
        path = write_transient_script(inline)
        return [ScriptSource(path=path, transient=True, position=0)]

    return [
        ScriptSource(path=Path(script), transient=False, position=i)
        for i, script in enumerate(scripts)
    ]


def discard_transient(sources: Iterable[ScriptSource]) -> None:
    """Delete any transient script files that still exist.

    Called on the way out of a run, whatever its outcome; user scripts
    are left alone.
    """
    for source in sources:
        if not source.transient:
            continue
        try:
            source.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove transient script %s: %s", source.path, e)
