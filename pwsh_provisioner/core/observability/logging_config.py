"""
Logging configuration — one-time setup for the provisioner process.

The CLI calls ``setup_logging`` once before a run. Every module logs
through ``logging.getLogger(__name__)`` and inherits this config.

Level precedence:
    --debug / --verbose / --quiet  >  PWSH_PROVISIONER_LOG_LEVEL  >  WARNING

A log file can be added with PWSH_PROVISIONER_LOG_FILE (and its own
level with PWSH_PROVISIONER_LOG_FILE_LEVEL). Secrets registered through
``register_secret`` are masked in every record before any handler sees it.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable

LOG_LEVEL_ENV = "PWSH_PROVISIONER_LOG_LEVEL"
LOG_FILE_ENV = "PWSH_PROVISIONER_LOG_FILE"
LOG_FILE_LEVEL_ENV = "PWSH_PROVISIONER_LOG_FILE_LEVEL"

# ── Format strings ──────────────────────────────────────────────

_FMT_CONSOLE = "%(message)s"
_FMT_INFO = "%(asctime)s [%(name)s] %(message)s"
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_SHORT = "%H:%M:%S"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# SSH transport chatter drowns out provisioning output below DEBUG
_NOISY_LOGGERS = ("paramiko", "paramiko.transport", "urllib3")

_MASK = "********"


class SecretFilter(logging.Filter):
    """Replace registered secret values in log messages with a mask."""

    def __init__(self, secrets: Iterable[str] = ()):
        super().__init__()
        self._secrets: set[str] = {s for s in secrets if s}

    def add(self, secret: str) -> None:
        if secret:
            self._secrets.add(secret)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        masked = message
        for secret in self._secrets:
            masked = masked.replace(secret, _MASK)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> SecretFilter:
    """Configure the root logger for the provisioner.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to an additional log file.
        log_file_level: Level for the log file; defaults to ``level``.
        quiet_third_party: Keep paramiko/urllib3 at WARNING unless debugging.

    Returns:
        The secret filter installed on every handler.
    """
    console_level = parse_level(level)
    secrets = SecretFilter()

    if console_level <= logging.DEBUG:
        console_fmt = logging.Formatter(_FMT_DEBUG, datefmt=_DATEFMT_SHORT)
    elif console_level <= logging.INFO:
        console_fmt = logging.Formatter(_FMT_INFO, datefmt=_DATEFMT_SHORT)
    else:
        console_fmt = logging.Formatter(_FMT_CONSOLE)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(console_fmt)
    console.addFilter(secrets)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = parse_level(log_file_level) if log_file_level else console_level
        root_level = min(root_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_DEBUG, datefmt=_DATEFMT_FILE))
        fh.addFilter(secrets)
        root.addHandler(fh)

    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False
    return secrets


def register_secret(secret: str) -> None:
    """Mask a value in all output from handlers configured by ``setup_logging``."""
    for handler in logging.getLogger().handlers:
        for f in handler.filters:
            if isinstance(f, SecretFilter):
                f.add(secret)


def parse_level(level: str | None) -> int:
    """Convert a level name to its numeric value, defaulting to WARNING."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
