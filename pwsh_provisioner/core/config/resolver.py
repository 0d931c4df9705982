"""
Config resolver — merge platform defaults into user settings and enforce invariants.

Resolution happens once per run, before any remote interaction, so every
configuration mistake surfaces as a ``ConfigurationError`` while nothing
has been touched on the target yet.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import UTC, datetime

from pwsh_provisioner.core import templating
from pwsh_provisioner.core.config.platforms import PlatformDefaults, platform_defaults
from pwsh_provisioner.core.data import load_template
from pwsh_provisioner.core.errors import ConfigurationError, TemplateError
from pwsh_provisioner.core.models.config import ProvisionerSettings, ProvisioningConfig
from pwsh_provisioner.core.models.script import remote_join

logger = logging.getLogger(__name__)

# User-supplied settings that are interpolated before use
_TEMPLATED_SETTINGS = (
    "execute_command",
    "elevated_execute_command",
    "elevated_password",
    "pwsh_autoupdate_command",
    "pwsh_autoupdate_execute_command",
)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def time_ordered_id() -> str:
    """Unique id that sorts by creation time (UTC timestamp + random suffix)."""
    now = datetime.now(UTC).strftime("%Y%m%d%H%M%S%f")
    return f"{now}-{uuid.uuid4().hex[:8]}"


def default_remote_path(platform: PlatformDefaults, role: str, extension: str) -> str:
    """Collision-free remote file path for one path role (script, variables, installer)."""
    name = f"pwsh-provisioner-{role}-{time_ordered_id()}.{extension}"
    return remote_join(platform.remote_directory, name)


def parse_duration(value: float | int | str) -> float:
    """Convert a duration to seconds.

    Accepts plain numbers (seconds) or strings such as ``"7m"``, ``"90s"``,
    ``"1h30m"`` and ``"250ms"``.

    Raises:
        ConfigurationError: If the value cannot be parsed or is negative.
    """
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            parts = _DURATION_PART.findall(text)
            if not parts or "".join(n + u for n, u in parts) != text:
                raise ConfigurationError(f"Invalid duration: {value!r}") from None
            seconds = sum(float(n) * _DURATION_UNITS[u] for n, u in parts)
    if seconds < 0:
        raise ConfigurationError(f"Duration must not be negative: {value!r}")
    return seconds


def parse_environment(assignments: list[str], env: dict[str, str]) -> dict[str, str]:
    """Merge ``KEY=VALUE`` assignments and an env mapping (mapping wins).

    Raises:
        ConfigurationError: On an assignment without ``=`` or with an empty key.
    """
    merged: dict[str, str] = {}
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(
                f"Environment variable '{assignment}' is not in KEY=VALUE format."
            )
        merged[key.strip()] = value
    for key, value in env.items():
        if not key.strip():
            raise ConfigurationError("Environment variable names must not be empty.")
        merged[key.strip()] = value
    return merged


def _builtin(name: str | None) -> str:
    return load_template(name) if name else ""


def resolve_config(settings: ProvisionerSettings) -> ProvisioningConfig:
    """Apply per-OS defaults and validate cross-field invariants.

    Returns:
        Immutable ProvisioningConfig.

    Raises:
        ConfigurationError: If the settings violate an invariant.
    """
    platform = platform_defaults(settings.os_type)
    errors: list[str] = []

    # ── Script sources ──────────────────────────────────────────
    inline = list(settings.inline) if settings.inline else []
    scripts = list(settings.scripts)
    if settings.script:
        scripts.insert(0, settings.script)

    if not inline and not scripts:
        errors.append("Either a script file or an inline script must be specified.")
    elif inline and scripts:
        errors.append("Only a script file or an inline script can be specified, not both.")

    # ── Elevation ───────────────────────────────────────────────
    if settings.elevated_password and not settings.elevated_user:
        errors.append(
            "Must supply the 'elevated_user' parameter if 'elevated_password' is provided."
        )

    # ── Environment ─────────────────────────────────────────────
    try:
        environment = parse_environment(settings.environment_vars, settings.env)
    except ConfigurationError as e:
        errors.append(str(e))
        environment = {}

    for key in ("env_var_format", "elevated_env_var_format"):
        fmt = getattr(settings, key)
        if not fmt:
            continue
        try:
            fmt.format(name="NAME", value="VALUE")
        except (KeyError, IndexError, ValueError):
            errors.append(f"'{key}' may only use the {{name}} and {{value}} placeholders.")

    # ── Templates ───────────────────────────────────────────────
    for key in _TEMPLATED_SETTINGS:
        template = getattr(settings, key)
        if not template:
            continue
        try:
            templating.placeholders(template)
        except TemplateError as e:
            # The error text quotes the template, which must not echo a password
            detail = "contains a malformed placeholder" if key == "elevated_password" else str(e)
            errors.append(f"'{key}' is not a valid template: {detail}")

    if not settings.valid_exit_codes:
        errors.append("At least one valid exit code must be specified.")

    # ── Reboot ──────────────────────────────────────────────────
    post_script_reboot = (
        settings.post_script_execution_reboot_is_enabled or settings.reboot_is_enabled
    )
    initiate = settings.reboot_initiate_command or platform.reboot_initiate_command
    pending = settings.reboot_pending_command or _builtin(platform.reboot_pending_template)

    if (post_script_reboot or settings.post_provision_reboot_is_enabled) and not initiate:
        errors.append(
            f"Reboot is enabled but no 'reboot_initiate_command' is available for os_type "
            f"'{platform.os_type.value}'."
        )
    if post_script_reboot and not pending:
        errors.append(
            f"Post-script reboot checks are enabled but no 'reboot_pending_command' is "
            f"available for os_type '{platform.os_type.value}'."
        )

    try:
        start_retry_timeout = parse_duration(settings.start_retry_timeout)
    except ConfigurationError as e:
        errors.append(str(e))
        start_retry_timeout = 0.0

    if errors:
        raise ConfigurationError("\n".join(errors))

    config = ProvisioningConfig(
        os_type=platform.os_type,
        inline=tuple(inline),
        scripts=tuple(scripts),
        valid_exit_codes=frozenset(settings.valid_exit_codes),
        environment=environment,
        env_var_format=settings.env_var_format or platform.env_var_format,
        elevated_env_var_format=(
            settings.elevated_env_var_format or platform.elevated_env_var_format
        ),
        remote_path=settings.remote_path or default_remote_path(platform, "script", "ps1"),
        remote_env_var_path=(
            settings.remote_env_var_path or default_remote_path(platform, "variables", "ps1")
        ),
        remote_pwsh_autoupdate_path=(
            settings.remote_pwsh_autoupdate_path
            or default_remote_path(platform, "installer", platform.autoupdate_script_extension)
        ),
        execute_command=settings.execute_command or platform.execute_command,
        elevated_execute_command=(
            settings.elevated_execute_command or platform.elevated_execute_command
        ),
        elevated_user=settings.elevated_user,
        elevated_password=settings.elevated_password,
        elevation_strategy=settings.elevation_strategy or platform.elevation_strategy,
        pwsh_autoupdate_is_enabled=(
            settings.pwsh_autoupdate_is_enabled or bool(settings.pwsh_installer_uri)
        ),
        pwsh_autoupdate_command=(
            settings.pwsh_autoupdate_command or _builtin(platform.autoupdate_template)
        ),
        pwsh_autoupdate_execute_command=(
            settings.pwsh_autoupdate_execute_command or platform.autoupdate_execute_command
        ),
        pwsh_installer_uri=settings.pwsh_installer_uri or platform.installer_uri,
        post_script_execution_reboot_is_enabled=post_script_reboot,
        post_provision_reboot_is_enabled=settings.post_provision_reboot_is_enabled,
        reboot_initiate_command=initiate,
        reboot_progress_command=(
            settings.reboot_progress_command or platform.reboot_progress_command
        ),
        reboot_complete_command=(
            settings.reboot_complete_command or platform.reboot_complete_command
        ),
        reboot_pending_command=pending,
        reboot_validate_command=(
            settings.reboot_validate_command or platform.reboot_validate_command
        ),
        reboot_poll_interval=settings.reboot_poll_interval,
        start_retry_timeout=start_retry_timeout,
        max_retries=settings.max_retries,
    )
    logger.debug("Resolved provisioner config for os_type=%s", config.os_type.value)
    return config
