"""
Built-in script templates shipped with the provisioner.

The per-OS interpreter installers and the Windows reboot-pending check
live here as real ``.sh``/``.ps1`` files so editors can highlight them.
They still go through the interpolation engine before upload, so they
may reference placeholders such as ``{{.InstallerUri}}``.

Usage::

    from pwsh_provisioner.core.data import load_template

    body = load_template("windows.rebootpending.ps1")
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).parent


@lru_cache(maxsize=None)
def load_template(name: str) -> str:
    """Load a built-in template with line endings normalized to ``\\n``.

    Raises:
        FileNotFoundError: If no template with that name ships with the package.
    """
    path = _DATA_DIR / name
    if not path.is_file():
        raise FileNotFoundError(f"Built-in template not found: {name}")
    raw = path.read_text(encoding="utf-8")
    logger.debug("Loaded built-in template %s (%d bytes)", name, len(raw))
    return raw.replace("\r\n", "\n").replace("\r", "\n")
