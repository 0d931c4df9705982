"""
Interpreter auto-update — install or upgrade PowerShell before any user script.

The update script is the configured ``pwsh_autoupdate_command`` (or the
operating system's built-in one) rendered with ``{{.InstallerUri}}``. It
is written to a transient file and goes through the regular
upload-execute-retry engine, elevation included.
"""

from __future__ import annotations

import logging

from pwsh_provisioner.core import templating
from pwsh_provisioner.core.config.platforms import platform_defaults
from pwsh_provisioner.core.engine.executor import ScriptExecutor
from pwsh_provisioner.core.engine.render import CommandRenderer
from pwsh_provisioner.core.engine.scripts import discard_transient, write_transient_script
from pwsh_provisioner.core.models.config import ProvisioningConfig
from pwsh_provisioner.core.models.script import (
    ExecutionResult,
    ScriptSource,
    resolve_remote_path,
)

logger = logging.getLogger(__name__)


class AutoUpdateController:
    """Run the interpreter update step when it is enabled."""

    def __init__(
        self,
        config: ProvisioningConfig,
        renderer: CommandRenderer,
        engine: ScriptExecutor,
    ):
        self.config = config
        self.renderer = renderer
        self.engine = engine

    @property
    def enabled(self) -> bool:
        return self.config.pwsh_autoupdate_is_enabled

    def script_content(self) -> str:
        """The update script with the installer URI substituted."""
        context = self.renderer.context(
            self.config.remote_pwsh_autoupdate_path,
            InstallerUri=self.config.pwsh_installer_uri,
        )
        return templating.render(self.config.pwsh_autoupdate_command, context)

    def run(self) -> ExecutionResult | None:
        """Update the interpreter on the target.

        Returns:
            The execution record, or None when the step was skipped.

        Raises:
            ProvisioningError: Any failure from rendering, upload or execution.
        """
        if not self.enabled:
            logger.debug("Interpreter auto-update disabled")
            return None
        if not self.config.pwsh_autoupdate_command:
            logger.info(
                "No interpreter update script available for os_type '%s'; skipping",
                self.config.os_type.value,
            )
            return None

        extension = platform_defaults(self.config.os_type).autoupdate_script_extension
        path = write_transient_script([self.script_content()], suffix=f".{extension}")
        source = ScriptSource(path=path, transient=True)
        try:
            remote_path = resolve_remote_path(self.config.remote_pwsh_autoupdate_path, path)
            command = self.renderer.autoupdate_command(remote_path)
            self.engine.reporter.say(
                f"Updating pwsh installation; installer: {self.config.pwsh_installer_uri}"
            )
            return self.engine.upload_and_execute(
                command,
                remote_path,
                source,
                accepted=self.config.valid_exit_codes,
                label="Updated pwsh installation",
            )
        finally:
            discard_transient([source])
