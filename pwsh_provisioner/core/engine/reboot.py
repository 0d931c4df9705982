"""
Reboot coordinator — restart the target and wait until it is usable again.

States:
    IDLE                → Nothing in flight.
    INITIATING          → Initiate command issued.
    AWAITING_COMPLETION → Polling the progress command until the machine
                          is observed to be restarting.
    VALIDATING          → Polling the validate command until it exits 0.
    COMPLETE            → Machine back and usable.

Transitions:
    IDLE → INITIATING:                   reboot() called
    INITIATING → AWAITING_COMPLETION:    initiate command exited 0
    AWAITING_COMPLETION → VALIDATING:    progress probe says the reboot happened
    VALIDATING → COMPLETE:               validate command exited 0

Progress probe (one poll):
    exit 0          → no reboot scheduled any more: the first one already
                      took effect. Cancel the probe's own test reboot with
                      the complete command (best effort) and validate.
    exit 1          → a shutdown is still in progress; stop waiting and
                      let validation absorb the remaining downtime.
    other / failure → machine unreachable or not ready; keep polling.

There is no overall deadline: only the cancellation signal ends the
waits early.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any

from pwsh_provisioner.adapters.base import RemoteExecutor
from pwsh_provisioner.core.errors import (
    ProvisioningCancelled,
    RebootInitiationError,
    TransportError,
)
from pwsh_provisioner.core.models.config import ProvisioningConfig
from pwsh_provisioner.core.models.script import NOT_EXECUTED, RebootState
from pwsh_provisioner.core.observability.reporter import LoggingReporter, Reporter

logger = logging.getLogger(__name__)

# Progress probe exit code meaning "a shutdown is already in progress"
SHUTDOWN_IN_PROGRESS = 1


@dataclass(frozen=True)
class RebootCommands:
    """Commands and pacing for one reboot."""

    initiate: str
    validate: str
    progress: str = ""
    complete: str = ""
    poll_interval: float = 13.0

    @classmethod
    def from_config(cls, config: ProvisioningConfig) -> RebootCommands:
        return cls(
            initiate=config.reboot_initiate_command,
            validate=config.reboot_validate_command,
            progress=config.reboot_progress_command,
            complete=config.reboot_complete_command,
            poll_interval=config.reboot_poll_interval,
        )


@dataclass
class RebootCoordinator:
    """Drive one target through a reboot cycle.

    Args:
        remote: Executor that reaches the target.
        commands: Reboot commands and poll interval.
        reporter: Progress sink.
        cancel: External cancellation signal.
    """

    remote: RemoteExecutor
    commands: RebootCommands
    reporter: Reporter = field(default_factory=LoggingReporter)
    cancel: threading.Event = field(default_factory=threading.Event)

    # ── Internal state ───────────────────────────────────────────
    state: RebootState = RebootState.IDLE
    history: list[RebootState] = field(default_factory=list)
    reboots: int = 0
    polls: int = 0

    def reboot(self) -> int:
        """Reboot the target and block until it validates.

        Returns:
            Exit code of the successful validate command (always 0).

        Raises:
            RebootInitiationError: If the initiate command fails or exits non-zero.
            ProvisioningCancelled: If cancellation is observed while waiting.
        """
        self.history.clear()
        self.polls = 0
        self.state = RebootState.IDLE

        self._initiate()
        self._transition(RebootState.AWAITING_COMPLETION)
        self._await_completion()
        self._transition(RebootState.VALIDATING)
        exit_code = self._validate()
        self._transition(RebootState.COMPLETE)

        self.reboots += 1
        self.reporter.say(f"Completed machine reboot; exit code: {exit_code}")
        return exit_code

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "history": [s.value for s in self.history],
            "reboots": self.reboots,
            "polls": self.polls,
        }

    # ── Phases ───────────────────────────────────────────────────

    def _initiate(self) -> None:
        self._transition(RebootState.INITIATING)
        self.reporter.say(f"Initiating machine reboot; command: {self.commands.initiate}")
        try:
            result = self.remote.run(self.commands.initiate)
        except TransportError as e:
            raise RebootInitiationError(NOT_EXECUTED, str(e)) from e

        self.reporter.output(result.stdout)
        self.reporter.output(result.stderr)
        if result.exit_status != 0:
            raise RebootInitiationError(result.exit_status)

    def _await_completion(self) -> None:
        progress = self.commands.progress
        if not progress:
            logger.debug("No reboot progress command; waiting one poll interval")
            self._sleep()
            return

        self.reporter.say(f"Waiting for machine reboot; command: {progress}")
        while True:
            self._sleep()
            self.polls += 1
            try:
                result = self.remote.run(progress)
            except TransportError as e:
                logger.debug("Reboot progress poll %d: target unreachable (%s)", self.polls, e)
                continue

            if result.exit_status == 0:
                self._complete()
                return
            if result.exit_status == SHUTDOWN_IN_PROGRESS:
                logger.debug("Reboot progress poll %d: shutdown in progress", self.polls)
                return
            logger.debug(
                "Reboot progress poll %d: exit code %d, still waiting",
                self.polls,
                result.exit_status,
            )

    def _complete(self) -> None:
        """Cancel the probe's own test reboot. Failures are ignored."""
        if not self.commands.complete:
            return
        try:
            result = self.remote.run(self.commands.complete)
        except TransportError as e:
            logger.debug("Reboot complete command failed (ignored): %s", e)
            return
        logger.debug("Reboot complete command exited %d", result.exit_status)

    def _validate(self) -> int:
        validate = self.commands.validate
        self.reporter.say(f"Validating machine reboot; command: {validate}")
        while True:
            try:
                result = self.remote.run(validate)
            except TransportError as e:
                logger.debug("Reboot validation: target unreachable (%s)", e)
            else:
                if result.exit_status == 0:
                    return result.exit_status
                logger.debug("Reboot validation exited %d, retrying", result.exit_status)
            self._sleep()

    # ── Helpers ──────────────────────────────────────────────────

    def _sleep(self) -> None:
        if self.cancel.wait(self.commands.poll_interval):
            raise ProvisioningCancelled(f"Reboot cancelled while {self.state.value}.")

    def _transition(self, new_state: RebootState) -> None:
        old = self.state
        self.state = new_state
        self.history.append(new_state)
        logger.info("Reboot: %s → %s", old.value, new_state.value)
