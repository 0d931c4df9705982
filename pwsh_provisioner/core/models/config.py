"""
Provisioner configuration models.

``ProvisionerSettings`` is the user's input exactly as decoded from
``provision.yml``: every field optional, nothing defaulted per OS yet.
``ProvisioningConfig`` is the resolved, immutable record a run works
from. The config resolver turns one into the other.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from pwsh_provisioner.core.config.platforms import ElevationKind, OsType


class ProvisionerSettings(BaseModel):
    """Raw provisioner settings, as declared in provision.yml."""

    model_config = ConfigDict(extra="forbid")

    # What to run
    inline: list[str] | None = None
    script: str = ""
    scripts: list[str] = Field(default_factory=list)
    valid_exit_codes: list[int] = Field(default_factory=lambda: [0])

    # Environment
    environment_vars: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    env_var_format: str = ""
    elevated_env_var_format: str = ""

    # Remote locations
    remote_path: str = ""
    remote_env_var_path: str = ""
    remote_pwsh_autoupdate_path: str = ""

    # Commands
    execute_command: str = ""
    elevated_execute_command: str = ""
    elevated_user: str = ""
    elevated_password: str = ""
    elevation_strategy: ElevationKind | None = None
    os_type: str = ""

    # Interpreter auto-update
    pwsh_autoupdate_is_enabled: bool = False
    pwsh_autoupdate_command: str = ""
    pwsh_autoupdate_execute_command: str = ""
    pwsh_installer_uri: str = ""

    # Reboot
    reboot_is_enabled: bool = False                  # legacy alias for post-script checks
    post_script_execution_reboot_is_enabled: bool = False
    post_provision_reboot_is_enabled: bool = False
    reboot_initiate_command: str = ""
    reboot_progress_command: str = ""
    reboot_complete_command: str = ""
    reboot_pending_command: str = ""
    reboot_validate_command: str = ""
    reboot_poll_interval: float = Field(default=13.0, ge=0)

    # Retry
    start_retry_timeout: float | str = "7m"
    max_retries: int = Field(default=1, ge=0)        # attempts per script; 0 = until timeout


class ProvisioningConfig(BaseModel):
    """Fully resolved provisioner configuration. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    os_type: OsType

    inline: tuple[str, ...] = ()
    scripts: tuple[str, ...] = ()
    valid_exit_codes: frozenset[int] = frozenset({0})

    environment: dict[str, str] = Field(default_factory=dict)
    env_var_format: str
    elevated_env_var_format: str

    remote_path: str
    remote_env_var_path: str
    remote_pwsh_autoupdate_path: str

    execute_command: str
    elevated_execute_command: str
    elevated_user: str = ""
    elevated_password: str = ""
    elevation_strategy: ElevationKind

    pwsh_autoupdate_is_enabled: bool = False
    pwsh_autoupdate_command: str = ""
    pwsh_autoupdate_execute_command: str
    pwsh_installer_uri: str = ""

    post_script_execution_reboot_is_enabled: bool = False
    post_provision_reboot_is_enabled: bool = False
    reboot_initiate_command: str = ""
    reboot_progress_command: str = ""
    reboot_complete_command: str = ""
    reboot_pending_command: str = ""
    reboot_validate_command: str = ""
    reboot_poll_interval: float = 13.0

    start_retry_timeout: float = 420.0
    max_retries: int = 1

    @property
    def is_elevated(self) -> bool:
        """Whether commands run with escalated privileges."""
        return self.elevated_user != ""

    @property
    def reboot_is_enabled(self) -> bool:
        return self.post_script_execution_reboot_is_enabled or self.post_provision_reboot_is_enabled

    def redacted(self) -> dict:
        """Serialize for display with the elevated password masked."""
        data = self.model_dump(mode="json")
        if data.get("elevated_password"):
            data["elevated_password"] = "********"
        data["valid_exit_codes"] = sorted(self.valid_exit_codes)
        return data
