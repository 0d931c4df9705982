"""
Elevation strategies — run a command with escalated privileges.

Two ways to elevate, chosen per operating system (or by the
``elevation_strategy`` setting):

    template  The elevated execute command wraps the plain one, e.g.
              ``sudo -u {{.ElevatedUser}} sh -c {{.Command}}``. Applied
              once, when the command is rendered.
    rewrite   The command is rewritten into a different invocation that
              runs it under another account (a Windows scheduled task).
              Applied on every upload attempt, right before execution.
"""

from __future__ import annotations

import base64
import shlex
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pwsh_provisioner.core import templating


@dataclass(frozen=True)
class Credentials:
    """Account a command is elevated to."""

    user: str
    password: str = ""

    def __repr__(self) -> str:
        return f"Credentials(user={self.user!r}, password={'***' if self.password else ''!r})"


class ElevationStrategy(ABC):
    """How a plain command becomes an elevated one."""

    #: Whether the strategy runs once at render time (True) or per attempt (False).
    at_render: bool = True

    @property
    @abstractmethod
    def name(self) -> str:
        """Strategy identifier as used in configuration."""

    @abstractmethod
    def elevate(
        self,
        command: str,
        credentials: Credentials,
        context: Mapping[str, Any] | None = None,
    ) -> str:
        """Return the elevated form of ``command``.

        Raises:
            TemplateError: If an elevation template cannot be rendered.
        """


class TemplateElevation(ElevationStrategy):
    """Substitute the command and credentials into an elevated command template.

    ``{{.Command}}``, ``{{.ElevatedUser}}`` and ``{{.ElevatedPassword}}`` are
    POSIX shell-quoted before substitution; any other placeholder comes from
    the render context unchanged.
    """

    at_render = True

    def __init__(self, template: str):
        self.template = template

    @property
    def name(self) -> str:
        return "template"

    def elevate(
        self,
        command: str,
        credentials: Credentials,
        context: Mapping[str, Any] | None = None,
    ) -> str:
        data = dict(context or {})
        data.update(
            Command=shlex.quote(command),
            ElevatedUser=shlex.quote(credentials.user),
            ElevatedPassword=shlex.quote(credentials.password),
        )
        return templating.render(self.template, data)


_TASK_SCRIPT = """\
$ErrorActionPreference = 'Stop'
$name = '{task_name}'
$log = Join-Path -Path $env:TEMP -ChildPath "$name.out"
$argument = '/c ' + '{command}' + ' > "' + $log + '" 2>&1'
$action = New-ScheduledTaskAction -Execute 'cmd.exe' -Argument $argument
$settings = New-ScheduledTaskSettingsSet -AllowStartIfOnBatteries -DontStopIfGoingOnBatteries -ExecutionTimeLimit ([TimeSpan]::Zero)
Register-ScheduledTask -TaskName $name -Action $action -Settings $settings -User '{user}'{password} -RunLevel Highest -Force | Out-Null
$code = 1
try {{
    Start-ScheduledTask -TaskName $name
    do {{
        Start-Sleep -Seconds 1
        $state = (Get-ScheduledTask -TaskName $name).State
        $info = Get-ScheduledTaskInfo -TaskName $name
    }} while (($state -eq 'Running') -or ($info.LastTaskResult -eq 267011))
    if (Test-Path -Path $log) {{ Get-Content -Path $log }}
    $code = $info.LastTaskResult
}}
finally {{
    Unregister-ScheduledTask -TaskName $name -Confirm:$false
    Remove-Item -Path $log -Force -ErrorAction SilentlyContinue
}}
exit $code
"""


def _ps_quote(value: str) -> str:
    """Escape a value for a single-quoted PowerShell string."""
    return value.replace("'", "''")


class ScheduledTaskElevation(ElevationStrategy):
    """Rewrite a command into a scheduled task that runs as the elevated user.

    The task's output is relayed and its result becomes the exit code of
    the rewritten command. Each call gets a fresh task name, so retried
    attempts never collide with a task left behind by an earlier one.
    """

    at_render = False

    def __init__(self, shell: str = "powershell"):
        self.shell = shell

    @property
    def name(self) -> str:
        return "rewrite"

    def script(self, command: str, credentials: Credentials, task_name: str) -> str:
        """The PowerShell script that registers, runs and removes the task."""
        password = f" -Password '{_ps_quote(credentials.password)}'" if credentials.password else ""
        return _TASK_SCRIPT.format(
            task_name=_ps_quote(task_name),
            command=_ps_quote(command),
            user=_ps_quote(credentials.user),
            password=password,
        )

    def elevate(
        self,
        command: str,
        credentials: Credentials,
        context: Mapping[str, Any] | None = None,
    ) -> str:
        task_name = f"pwsh-provisioner-{uuid.uuid4().hex[:12]}"
        encoded = base64.b64encode(
            self.script(command, credentials, task_name).encode("utf-16-le")
        ).decode("ascii")
        return (
            f"{self.shell} -NoLogo -NonInteractive -NoProfile "
            f"-ExecutionPolicy Bypass -EncodedCommand {encoded}"
        )


def elevation_for(kind: str, elevated_execute_command: str) -> ElevationStrategy:
    """Build the strategy named by configuration."""
    if kind == "rewrite":
        return ScheduledTaskElevation()
    return TemplateElevation(elevated_execute_command)
