"""
Reporters — user-facing progress output for a provisioning run.

The core never prints. It hands every progress message to a ``Reporter``
and moves on; nothing a reporter returns is consumed. The CLI uses
``ConsoleReporter``; library callers get ``LoggingReporter`` by default.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import click


class Reporter(ABC):
    """Fire-and-forget sink for progress messages."""

    @abstractmethod
    def say(self, message: str) -> None:
        """Emit one progress message."""

    def output(self, text: str) -> None:
        """Relay remote command output, one message per line."""
        for line in text.splitlines():
            if line.strip():
                self.say(f"    {line}")


class LoggingReporter(Reporter):
    """Report through the standard logging system at INFO."""

    def __init__(self, logger_name: str = "pwsh_provisioner.progress"):
        self._logger = logging.getLogger(logger_name)

    def say(self, message: str) -> None:
        self._logger.info("%s", message)


class ConsoleReporter(Reporter):
    """Report to the terminal via click."""

    def __init__(self, prefix: str = "==> ", color: str | None = "cyan"):
        self._prefix = prefix
        self._color = color

    def say(self, message: str) -> None:
        if message.startswith("    "):
            click.echo(message)
        else:
            click.secho(f"{self._prefix}{message}", fg=self._color)


class RecordingReporter(Reporter):
    """Collect messages in memory (used by tests and --json output)."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    def say(self, message: str) -> None:
        self.messages.append(message)

    def contains(self, fragment: str) -> bool:
        return any(fragment in m for m in self.messages)
