"""
Provision use case — run every configured script on one target.

This is the top-level orchestrator. One run goes:

    auto-update → stage env vars → resolve scripts →
        for each script: render → upload+execute → [pending? reboot] →
    [post-provision reboot]

The first error aborts the run; scripts after it never start. Transient
files the run created are removed on the way out, whatever happened.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pwsh_provisioner.adapters.base import RemoteExecutor
from pwsh_provisioner.core.config.loader import load_config
from pwsh_provisioner.core.config.resolver import time_ordered_id
from pwsh_provisioner.core.engine.autoupdate import AutoUpdateController
from pwsh_provisioner.core.engine.executor import ScriptExecutor
from pwsh_provisioner.core.engine.reboot import RebootCommands, RebootCoordinator
from pwsh_provisioner.core.engine.render import CommandRenderer
from pwsh_provisioner.core.engine.scripts import (
    discard_transient,
    resolve_script_sources,
    write_transient_script,
)
from pwsh_provisioner.core.errors import ProvisioningCancelled, ProvisioningError
from pwsh_provisioner.core.models.config import ProvisioningConfig
from pwsh_provisioner.core.models.script import (
    ExecutionResult,
    ScriptSource,
    is_remote_directory,
    resolve_remote_path,
)
from pwsh_provisioner.core.observability.reporter import LoggingReporter, Reporter
from pwsh_provisioner.core.reliability.retry import RetryPolicy

logger = logging.getLogger(__name__)

# Reboot-pending check exit code meaning "a reboot is required"
REBOOT_PENDING = 1


@dataclass
class ProvisionResult:
    """Result of one provisioning run."""

    run_id: str = ""
    os_type: str = ""
    autoupdate: ExecutionResult | None = None
    scripts: list[ExecutionResult] = field(default_factory=list)
    reboots: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        result: dict[str, Any] = {
            "run_id": self.run_id,
            "os_type": self.os_type,
            "status": "ok" if self.ok else "failed",
            "scripts": [s.model_dump(mode="json") for s in self.scripts],
            "reboots": self.reboots,
        }
        if self.autoupdate is not None:
            result["autoupdate"] = self.autoupdate.model_dump(mode="json")
        if self.error:
            result["error"] = self.error
        return result


class Provisioner:
    """Provision one target according to a resolved configuration.

    Args:
        config: Resolved configuration.
        remote: Executor that reaches the target.
        reporter: Progress sink (defaults to logging).
        generated_data: Values supplied by the surrounding build, available
            as ``{{.Name}}`` placeholders.
        cancel: External cancellation signal.
    """

    def __init__(
        self,
        config: ProvisioningConfig,
        remote: RemoteExecutor,
        reporter: Reporter | None = None,
        generated_data: Mapping[str, Any] | None = None,
        cancel: threading.Event | None = None,
    ):
        self.config = config
        self.remote = remote
        self.reporter = reporter or LoggingReporter()
        self.cancel = cancel or threading.Event()

        self.vars_path = self._vars_path()
        self.renderer = CommandRenderer(config, generated_data, vars_path=self.vars_path)
        self.engine = ScriptExecutor(
            remote,
            self.reporter,
            RetryPolicy(tries=config.max_retries, start_timeout=config.start_retry_timeout),
            self.cancel,
        )
        self.coordinator = RebootCoordinator(
            remote,
            RebootCommands.from_config(config),
            self.reporter,
            self.cancel,
        )
        self.autoupdate = AutoUpdateController(config, self.renderer, self.engine)

    def run(self, result: ProvisionResult | None = None) -> ProvisionResult:
        """Run the full provisioning sequence.

        Args:
            result: Record to fill in as the run progresses (a fresh one
                by default). Whatever completed before a failure stays in it.

        Raises:
            ProvisioningError: The first failure; the run stops there.
        """
        result = result if result is not None else ProvisionResult()
        result.os_type = self.config.os_type.value

        result.autoupdate = self.autoupdate.run()
        self._stage_environment()

        sources = resolve_script_sources(self.config.inline, self.config.scripts)
        try:
            for source in sources:
                self._check_cancelled()
                result.scripts.append(self._provision_script(source))

                if self.config.post_script_execution_reboot_is_enabled and self._reboot_pending():
                    self._reboot(result)

            if self.config.post_provision_reboot_is_enabled:
                self._check_cancelled()
                self._reboot(result)
        finally:
            discard_transient(sources)

        return result

    # ── Steps ────────────────────────────────────────────────────

    def _provision_script(self, source: ScriptSource) -> ExecutionResult:
        remote_path = resolve_remote_path(self.config.remote_path, source.path)
        command = self.renderer.execute_command(remote_path)

        self.reporter.say(f"Provisioning with pwsh; script path: {source.path}")
        self.reporter.say(f"Provisioning with pwsh; command: {command.template}")
        return self.engine.upload_and_execute(
            command,
            remote_path,
            source,
            accepted=self.config.valid_exit_codes,
        )

    def _stage_environment(self) -> None:
        """Upload the environment variable file, if there is anything to put in it."""
        if not self.config.environment:
            logger.debug("No environment variables to stage")
            return

        path = write_transient_script(self.renderer.environment_lines())
        source = ScriptSource(path=path, transient=True)
        try:
            self.engine.upload(self.vars_path, source)
        finally:
            discard_transient([source])
        logger.info(
            "Staged %d environment variable(s) at %s",
            len(self.config.environment),
            self.vars_path,
        )

    def _reboot_pending(self) -> bool:
        self.reporter.say("Checking for pending reboot...")
        path = write_transient_script([self.config.reboot_pending_command])
        source = ScriptSource(path=path, transient=True)
        try:
            remote_path = resolve_remote_path(self.config.remote_path, path)
            command = self.renderer.execute_command(remote_path)
            check = self.engine.upload_and_execute(
                command, remote_path, source, accepted=None, label="Checked for pending reboot"
            )
        finally:
            discard_transient([source])

        pending = check.exit_code == REBOOT_PENDING
        logger.info("Reboot %s", "pending" if pending else "not pending")
        return pending

    def _reboot(self, result: ProvisionResult) -> None:
        self.coordinator.reboot()
        result.reboots += 1

    # ── Helpers ──────────────────────────────────────────────────

    def _vars_path(self) -> str:
        path = self.config.remote_env_var_path
        if is_remote_directory(path):
            return f"{path}pwsh-provisioner-variables-{time_ordered_id()}.ps1"
        return path

    def _check_cancelled(self) -> None:
        if self.cancel.is_set():
            raise ProvisioningCancelled("Provisioning cancelled.")


def provision(
    config: ProvisioningConfig,
    remote: RemoteExecutor,
    reporter: Reporter | None = None,
    generated_data: Mapping[str, Any] | None = None,
    cancel: threading.Event | None = None,
) -> ProvisionResult:
    """Provision a target and report the outcome instead of raising.

    Returns:
        ProvisionResult; ``error`` is set when the run stopped early.
    """
    result = ProvisionResult(run_id=f"run-{time_ordered_id()}")
    provisioner = Provisioner(config, remote, reporter, generated_data, cancel)

    logger.info("Provisioning run %s started on %s", result.run_id, remote.name)
    try:
        provisioner.run(result)
    except ProvisioningError as e:
        logger.error("Provisioning run %s failed: %s", result.run_id, e)
        result.error = str(e)
    else:
        logger.info(
            "Provisioning run %s finished: %d script(s), %d reboot(s)",
            result.run_id,
            len(result.scripts),
            result.reboots,
        )
    return result


def provision_from_file(
    remote: RemoteExecutor,
    config_path: Path | None = None,
    reporter: Reporter | None = None,
    generated_data: Mapping[str, Any] | None = None,
    cancel: threading.Event | None = None,
) -> ProvisionResult:
    """Load provision.yml and provision a target with it.

    Args:
        remote: Executor that reaches the target.
        config_path: Optional explicit path to provision.yml.
        reporter: Progress sink.
        generated_data: Build data for placeholders.
        cancel: External cancellation signal.

    Returns:
        ProvisionResult; configuration problems come back in ``error``.
    """
    try:
        config = load_config(config_path)
    except ProvisioningError as e:
        return ProvisionResult(error=str(e))

    return provision(config, remote, reporter, generated_data, cancel)
