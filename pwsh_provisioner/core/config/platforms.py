"""
Platform defaults — per-OS command templates and remote locations.

Every operating system the provisioner knows about maps to one
``PlatformDefaults`` record. The table is built once at import time and
is read-only afterwards; config resolution copies values out of it for
any setting the user left empty.

Command templates use the ``{{.Name}}`` placeholders of
``pwsh_provisioner.core.templating``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any, Literal

from pwsh_provisioner.core.errors import ConfigurationError

ElevationKind = Literal["template", "rewrite"]


class OsType(StrEnum):
    """Target operating systems."""

    LINUX = "linux"
    DEBIAN = "debian"
    UBUNTU = "ubuntu"
    WINDOWS = "windows"


@dataclass(frozen=True)
class PlatformDefaults:
    """Default policy for one operating system."""

    os_type: OsType
    execute_command: str
    elevated_execute_command: str
    elevation_strategy: ElevationKind
    autoupdate_execute_command: str
    autoupdate_script_extension: str
    remote_directory: str
    reboot_validate_command: str
    env_var_format: str = "$env:{name}='{value}'"
    elevated_env_var_format: str = "$env:{name}='{value}'"
    autoupdate_template: str | None = None
    installer_uri: str = ""
    reboot_initiate_command: str = ""
    reboot_progress_command: str = ""
    reboot_complete_command: str = ""
    reboot_pending_template: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["os_type"] = self.os_type.value
        return data


# ── Shared command fragments ─────────────────────────────────────────

_PWSH_FLAGS = '-ExecutionPolicy "Bypass" -NoLogo -NonInteractive -NoProfile'

_PWSH_PRELUDE = (
    "if (Test-Path variable:global:ErrorActionPreference) { "
    "Set-Variable -Name variable:global:ErrorActionPreference "
    "-Value ([Management.Automation.ActionPreference]::Stop); } "
    "if (Test-Path variable:global:ProgressPreference) { "
    "Set-Variable -Name variable:global:ProgressPreference "
    "-Value ([Management.Automation.ActionPreference]::SilentlyContinue); } "
    "if (Test-Path '{{.Vars}}') { . '{{.Vars}}'; } "
)

# sh expands "$" inside double quotes, so the exit code variable is escaped
_POSIX_EXECUTE = (
    f'chmod +x {{{{.Path}}}} && pwsh {_PWSH_FLAGS} -Command "'
    f"{_PWSH_PRELUDE}&'{{{{.Path}}}}'; exit \\$LastExitCode;\""
)

_POSIX_ELEVATED = (
    "echo {{.ElevatedPassword}} | sudo -S -p '' -u {{.ElevatedUser}} sh -e -c {{.Command}}"
)

_WINDOWS_EXECUTE = (
    'FOR /F "tokens=* USEBACKQ" %F IN '
    '(`where pwsh /R "%PROGRAMFILES%\\PowerShell" ^2^>nul ^|^| where powershell`) '
    f'DO ("%F" {_PWSH_FLAGS} -Command "'
    f"{_PWSH_PRELUDE}&'{{{{.Path}}}}'; exit $LastExitCode;\")"
)

_VALIDATE = f'pwsh {_PWSH_FLAGS} -Command "exit 0;"'

_DEBIAN_INSTALLER = "https://packages.microsoft.com/config/$ID/$VERSION_ID/packages-microsoft-prod.deb"


def _posix(os_type: OsType, **overrides: Any) -> PlatformDefaults:
    return PlatformDefaults(
        os_type=os_type,
        execute_command=_POSIX_EXECUTE,
        elevated_execute_command=_POSIX_ELEVATED,
        elevation_strategy="template",
        autoupdate_execute_command="chmod +x {{.Path}} && {{.Path}}",
        autoupdate_script_extension="sh",
        remote_directory="/tmp",
        reboot_validate_command=_VALIDATE,
        **overrides,
    )


PLATFORMS: dict[OsType, PlatformDefaults] = {
    OsType.LINUX: _posix(OsType.LINUX),
    OsType.DEBIAN: _posix(
        OsType.DEBIAN,
        autoupdate_template="debian.pwshautoupdate.sh",
        installer_uri=_DEBIAN_INSTALLER,
    ),
    OsType.UBUNTU: _posix(
        OsType.UBUNTU,
        autoupdate_template="ubuntu.pwshautoupdate.sh",
        installer_uri=_DEBIAN_INSTALLER,
    ),
    OsType.WINDOWS: PlatformDefaults(
        os_type=OsType.WINDOWS,
        execute_command=_WINDOWS_EXECUTE,
        elevated_execute_command="{{.Command}}",
        elevation_strategy="rewrite",
        autoupdate_execute_command=_WINDOWS_EXECUTE,
        autoupdate_script_extension="ps1",
        remote_directory="C:/Windows/Temp",
        reboot_validate_command=_VALIDATE,
        autoupdate_template="windows.pwshautoupdate.ps1",
        installer_uri="https://aka.ms/install-powershell.ps1",
        reboot_initiate_command='shutdown /r /f /t 0 /c "pwsh-provisioner reboot"',
        reboot_progress_command='shutdown /r /f /t 60 /c "pwsh-provisioner reboot test"',
        reboot_complete_command="shutdown /a",
        reboot_pending_template="windows.rebootpending.ps1",
    ),
}


def parse_os_type(value: str | OsType | None) -> OsType:
    """Normalize a user-supplied OS tag. Empty means generic Linux.

    Raises:
        ConfigurationError: If the tag names an unknown operating system.
    """
    if value is None or value == "":
        return OsType.LINUX
    try:
        return OsType(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(t.value for t in OsType)
        raise ConfigurationError(f"Unknown os_type '{value}'. Valid: {valid}") from None


def platform_defaults(os_type: str | OsType | None) -> PlatformDefaults:
    """Look up the default policy for an operating system."""
    return PLATFORMS[parse_os_type(os_type)]
