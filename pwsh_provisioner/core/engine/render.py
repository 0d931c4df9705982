"""
Command renderer — produce the exact remote command line for a script.

Rendering data is the caller's generated build data plus two values the
provisioner owns:

    Path   remote location of the uploaded script
    Vars   remote location of the environment variable file

When an elevated user is configured the elevated template is chosen
(or the command is rewritten, depending on the elevation strategy).
Plain and elevated forms are never mixed within one command.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pwsh_provisioner.core import templating
from pwsh_provisioner.core.engine.elevation import (
    Credentials,
    ElevationStrategy,
    elevation_for,
)
from pwsh_provisioner.core.errors import ConfigurationError
from pwsh_provisioner.core.models.config import ProvisioningConfig
from pwsh_provisioner.core.observability.logging_config import register_secret

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedCommand:
    """A rendered command, possibly awaiting a per-attempt rewrite."""

    command: str
    template: str
    rewrite: ElevationStrategy | None = None
    credentials: Credentials | None = None

    @property
    def elevated(self) -> bool:
        return self.credentials is not None

    def finalize(self) -> str:
        """The command line to run for one attempt."""
        if self.rewrite is None or self.credentials is None:
            return self.command
        return self.rewrite.elevate(self.command, self.credentials)


def _ps_escape(value: str) -> str:
    return value.replace("'", "''")


class CommandRenderer:
    """Render execute commands against generated data and remote paths.

    Args:
        config: Resolved provisioner configuration.
        generated_data: Values supplied by the surrounding build (may be empty).
        vars_path: Remote path of the environment variable file.
    """

    def __init__(
        self,
        config: ProvisioningConfig,
        generated_data: Mapping[str, Any] | None = None,
        vars_path: str | None = None,
    ):
        self._config = config
        self._data = dict(generated_data or {})
        self.vars_path = vars_path if vars_path is not None else config.remote_env_var_path
        self._strategy = elevation_for(config.elevation_strategy, config.elevated_execute_command)
        self._credentials: Credentials | None = None

    # ── Data ─────────────────────────────────────────────────────

    def context(self, remote_path: str, **extra: Any) -> dict[str, Any]:
        """Placeholder values for a command that operates on ``remote_path``."""
        data = dict(self._data)
        data.update(extra)
        data["Path"] = remote_path
        data["Vars"] = self.vars_path
        return data

    def credentials(self) -> Credentials | None:
        """Elevated account, with the password interpolated against generated data."""
        if not self._config.is_elevated:
            return None
        if self._credentials is None:
            password = templating.render(self._config.elevated_password, self._data)
            if password:
                register_secret(password)
                register_secret(shlex.quote(password))
            self._credentials = Credentials(user=self._config.elevated_user, password=password)
        return self._credentials

    # ── Commands ─────────────────────────────────────────────────

    def render(self, template: str, remote_path: str, **extra: Any) -> RenderedCommand:
        """Render ``template`` for ``remote_path``, elevating when configured.

        Raises:
            TemplateError: If the template (or the elevation template) is malformed
                or references an undefined placeholder.
        """
        context = self.context(remote_path, **extra)
        command = templating.render(template, context)
        credentials = self.credentials()

        if credentials is None:
            return RenderedCommand(command=command, template=template)

        if self._strategy.at_render:
            elevated = self._strategy.elevate(command, credentials, context)
            logger.debug("Rendered elevated command for %s", remote_path)
            return RenderedCommand(
                command=elevated,
                template=self._config.elevated_execute_command,
                credentials=credentials,
            )

        return RenderedCommand(
            command=command,
            template=template,
            rewrite=self._strategy,
            credentials=credentials,
        )

    def execute_command(self, remote_path: str) -> RenderedCommand:
        """The command that runs an uploaded user script."""
        return self.render(self._config.execute_command, remote_path)

    def autoupdate_command(self, remote_path: str) -> RenderedCommand:
        """The command that runs the uploaded interpreter update script."""
        return self.render(self._config.pwsh_autoupdate_execute_command, remote_path)

    # ── Environment file ─────────────────────────────────────────

    def environment_lines(self) -> list[str]:
        """Environment assignments, one per line, in the configured format.

        The elevated format is used when an elevated user is configured.
        Values are escaped for single-quoted PowerShell strings.

        Raises:
            ConfigurationError: If the format has placeholders other than
                ``{name}`` and ``{value}``.
        """
        fmt = (
            self._config.elevated_env_var_format
            if self._config.is_elevated
            else self._config.env_var_format
        )
        lines = []
        for name in sorted(self._config.environment):
            value = _ps_escape(self._config.environment[name])
            try:
                lines.append(fmt.format(name=name, value=value))
            except (KeyError, IndexError, ValueError) as e:
                raise ConfigurationError(f"Invalid environment variable format {fmt!r}: {e}") from e
        return lines
