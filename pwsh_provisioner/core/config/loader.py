"""
Configuration loader — reads provision.yml into provisioner settings.

This is the primary entry point for loading provisioner configuration.
It reads YAML, validates against the Pydantic schema, and hands back
``ProvisionerSettings``. Per-OS defaults and cross-field invariants are
applied afterwards by ``resolver.resolve_config``.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from pwsh_provisioner.core.config.resolver import resolve_config
from pwsh_provisioner.core.errors import ConfigurationError
from pwsh_provisioner.core.models.config import ProvisionerSettings, ProvisioningConfig

logger = logging.getLogger(__name__)

# Default config filename
PROVISION_CONFIG_FILE = "provision.yml"


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for provision.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to provision.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / PROVISION_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_settings(path: Path | None = None) -> ProvisionerSettings:
    """Load and validate raw provisioner settings.

    Args:
        path: Explicit path to provision.yml. If None, searches upward.

    Returns:
        Validated ProvisionerSettings model.

    Raises:
        ConfigurationError: If the file is missing or invalid.
    """
    if path is None:
        path = find_config_file()

    if path is None:
        raise ConfigurationError(
            f"No {PROVISION_CONFIG_FILE} found. Specify one with --config."
        )

    if not path.is_file():
        raise ConfigurationError(f"Config file not found: {path}")

    logger.debug("Loading provisioner config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "provisioner" key or be flat
    if "provisioner" in data:
        data = data["provisioner"] or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Expected 'provisioner' to be a mapping in {path}")

    settings = settings_from_mapping(data)
    return _anchor_script_paths(settings, path.parent)


def _anchor_script_paths(settings: ProvisionerSettings, base_dir: Path) -> ProvisionerSettings:
    """Make relative script paths relative to the config file's directory."""

    def anchor(script: str) -> str:
        p = Path(script).expanduser()
        return str(p if p.is_absolute() else base_dir / p)

    return settings.model_copy(
        update={
            "script": anchor(settings.script) if settings.script else "",
            "scripts": [anchor(s) for s in settings.scripts],
        }
    )


def settings_from_mapping(data: dict) -> ProvisionerSettings:
    """Validate an already-decoded mapping into settings.

    Raises:
        ConfigurationError: If the mapping does not match the schema.
    """
    try:
        return ProvisionerSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid provisioner configuration: {e}") from e


def load_config(path: Path | None = None) -> ProvisioningConfig:
    """Load provision.yml and resolve it into an immutable config."""
    settings = load_settings(path)
    config = resolve_config(settings)
    logger.info(
        "Loaded provisioner config for %s with %d script(s)%s",
        config.os_type.value,
        len(config.scripts),
        " and inline commands" if config.inline else "",
    )
    return config
