"""
Shared test fixtures and configuration.
"""

from collections.abc import Callable
from pathlib import Path

import pytest

from pwsh_provisioner.adapters.mock import MockExecutor
from pwsh_provisioner.core.config.loader import settings_from_mapping
from pwsh_provisioner.core.config.resolver import resolve_config
from pwsh_provisioner.core.models.config import ProvisioningConfig
from pwsh_provisioner.core.observability.reporter import RecordingReporter

# Deterministic remote locations and a command that is easy to assert on
BASE_SETTINGS = {
    "remote_path": "/tmp/script.ps1",
    "remote_env_var_path": "/tmp/vars.ps1",
    "remote_pwsh_autoupdate_path": "/tmp/update.sh",
    "execute_command": "pwsh -File {{.Path}}",
    "reboot_poll_interval": 0,
}


@pytest.fixture
def mock_remote() -> MockExecutor:
    """A fresh in-memory target."""
    return MockExecutor()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def make_config() -> Callable[..., ProvisioningConfig]:
    """Build a resolved config from BASE_SETTINGS plus overrides.

    Falls back to a single inline command when no script source is given.
    """

    def _make(**overrides) -> ProvisioningConfig:
        data = dict(BASE_SETTINGS)
        data.update(overrides)
        if not any(k in data for k in ("inline", "script", "scripts")):
            data["inline"] = ["Write-Host hello"]
        return resolve_config(settings_from_mapping(data))

    return _make


@pytest.fixture
def write_script(tmp_path: Path) -> Callable[[str, str], Path]:
    """Create a local script file under tmp_path."""

    def _write(name: str, content: str = "Write-Host hi\n") -> Path:
        path = tmp_path / "scripts" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def config_file(tmp_path: Path) -> Callable[[str], Path]:
    """Write a provision.yml with the given body and return its path."""

    def _write(body: str) -> Path:
        path = tmp_path / "provision.yml"
        path.write_text(body, encoding="utf-8")
        return path

    return _write
