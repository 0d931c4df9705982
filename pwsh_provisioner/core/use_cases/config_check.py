"""
Config check use case — validate provision.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from pwsh_provisioner.core.config.loader import PROVISION_CONFIG_FILE, find_config_file, load_config
from pwsh_provisioner.core.errors import ConfigurationError
from pwsh_provisioner.core.models.config import ProvisioningConfig


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: ProvisioningConfig | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "config": self.config.redacted() if self.config else None,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate provisioner configuration and report issues.

    Args:
        config_path: Optional explicit path to provision.yml.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
    if config_path is None:
        result.errors.append(f"No {PROVISION_CONFIG_FILE} found.")
        return result
    result.config_path = config_path

    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        result.errors.extend(line for line in str(e).splitlines() if line.strip())
        return result
    result.config = config

    # Semantic checks
    for script in config.scripts:
        if not Path(script).is_file():
            result.errors.append(f"Script not found: {script}")

    if config.elevated_user and not config.elevated_password:
        result.warnings.append(
            f"No 'elevated_password' set for elevated user '{config.elevated_user}'."
        )

    if config.pwsh_autoupdate_is_enabled and not config.pwsh_autoupdate_command:
        result.warnings.append(
            f"Auto-update is enabled but there is no update script for os_type "
            f"'{config.os_type.value}'; the step will be skipped."
        )

    if config.reboot_is_enabled and config.reboot_poll_interval == 0:
        result.warnings.append("reboot_poll_interval is 0; reboot probes will poll without pause.")

    result.valid = len(result.errors) == 0
    return result
