"""
Tests for configuration — loader, resolver, platform defaults.
"""

from pathlib import Path

import pytest

from pwsh_provisioner.core.config.loader import (
    find_config_file,
    load_config,
    load_settings,
    settings_from_mapping,
)
from pwsh_provisioner.core.config.platforms import (
    PLATFORMS,
    OsType,
    parse_os_type,
    platform_defaults,
)
from pwsh_provisioner.core.config.resolver import (
    parse_duration,
    parse_environment,
    resolve_config,
    time_ordered_id,
)
from pwsh_provisioner.core.data import load_template
from pwsh_provisioner.core.errors import ConfigurationError


def _resolve(**data):
    return resolve_config(settings_from_mapping(data))


# ── Loader ───────────────────────────────────────────────────────────


class TestLoader:
    def test_find_config_walks_upward(self, tmp_path: Path):
        (tmp_path / "provision.yml").write_text("inline: [x]\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == (tmp_path / "provision.yml").resolve()

    def test_find_config_none(self, tmp_path: Path):
        assert find_config_file(tmp_path) is None

    def test_nested_provisioner_key(self, config_file):
        path = config_file("provisioner:\n  inline:\n    - Write-Host hi\n  max_retries: 3\n")
        settings = load_settings(path)
        assert settings.inline == ["Write-Host hi"]
        assert settings.max_retries == 3

    def test_flat_document(self, config_file):
        path = config_file("inline: [a, b]\nos_type: windows\n")
        config = load_config(path)
        assert config.inline == ("a", "b")
        assert config.os_type == OsType.WINDOWS

    def test_relative_scripts_anchor_to_config_dir(self, config_file, tmp_path: Path):
        path = config_file("scripts:\n  - setup.ps1\n  - /abs/other.ps1\n")
        settings = load_settings(path)
        assert settings.scripts == [str(tmp_path / "setup.ps1"), "/abs/other.ps1"]

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_settings(tmp_path / "nope.yml")

    def test_invalid_yaml(self, config_file):
        path = config_file("inline: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_settings(path)

    def test_non_mapping(self, config_file):
        path = config_file("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_settings(path)

    def test_unknown_key_rejected(self, config_file):
        path = config_file("inline: [x]\nbogus_option: 1\n")
        with pytest.raises(ConfigurationError, match="Invalid provisioner configuration"):
            load_settings(path)

    def test_empty_file_fails_resolution(self, config_file):
        path = config_file("")
        with pytest.raises(ConfigurationError, match="Either a script file or an inline script"):
            load_config(path)


# ── Resolver ─────────────────────────────────────────────────────────


class TestResolver:
    def test_inline_and_scripts_conflict(self):
        with pytest.raises(ConfigurationError, match="not both"):
            _resolve(inline=["a"], scripts=["b.ps1"])

    def test_script_folded_first(self):
        config = _resolve(script="first.ps1", scripts=["second.ps1"])
        assert config.scripts == ("first.ps1", "second.ps1")

    def test_password_requires_user(self):
        with pytest.raises(ConfigurationError, match="elevated_user"):
            _resolve(inline=["a"], elevated_password="pw")

    def test_errors_are_collected(self):
        with pytest.raises(ConfigurationError) as exc:
            _resolve(elevated_password="pw", valid_exit_codes=[])
        message = str(exc.value)
        assert "Either a script file" in message
        assert "elevated_user" in message
        assert "valid exit code" in message

    def test_linux_reboot_needs_initiate_command(self):
        with pytest.raises(ConfigurationError, match="reboot_initiate_command"):
            _resolve(inline=["a"], post_provision_reboot_is_enabled=True)

    def test_linux_post_script_reboot_needs_pending_command(self):
        with pytest.raises(ConfigurationError, match="reboot_pending_command"):
            _resolve(
                inline=["a"],
                post_script_execution_reboot_is_enabled=True,
                reboot_initiate_command="reboot",
            )

    def test_windows_reboot_defaults(self):
        config = _resolve(inline=["a"], os_type="windows", reboot_is_enabled=True)
        assert config.post_script_execution_reboot_is_enabled
        assert config.reboot_initiate_command.startswith("shutdown /r")
        assert "RebootPending" in config.reboot_pending_command
        assert config.reboot_complete_command == "shutdown /a"

    def test_windows_defaults(self):
        config = _resolve(inline=["a"], os_type="windows")
        assert config.elevation_strategy == "rewrite"
        assert config.remote_path.startswith("C:/Windows/Temp/pwsh-provisioner-script-")
        assert config.remote_path.endswith(".ps1")
        assert config.remote_pwsh_autoupdate_path.endswith(".ps1")
        assert "FOR /F" in config.execute_command

    def test_linux_defaults(self):
        config = _resolve(inline=["a"])
        assert config.os_type == OsType.LINUX
        assert config.elevation_strategy == "template"
        assert config.remote_path.startswith("/tmp/pwsh-provisioner-script-")
        assert config.valid_exit_codes == frozenset({0})
        assert config.start_retry_timeout == 420.0
        assert config.max_retries == 1

    def test_default_remote_paths_are_unique(self):
        a = _resolve(inline=["a"])
        b = _resolve(inline=["a"])
        assert a.remote_path != b.remote_path
        assert a.remote_env_var_path != b.remote_env_var_path

    def test_user_values_win(self):
        config = _resolve(
            inline=["a"],
            remote_path="/opt/run.ps1",
            execute_command="pwsh {{.Path}}",
            valid_exit_codes=[0, 3010],
        )
        assert config.remote_path == "/opt/run.ps1"
        assert config.execute_command == "pwsh {{.Path}}"
        assert config.valid_exit_codes == {0, 3010}

    def test_installer_uri_enables_autoupdate(self):
        config = _resolve(inline=["a"], os_type="debian", pwsh_installer_uri="https://example/pkg.deb")
        assert config.pwsh_autoupdate_is_enabled
        assert config.pwsh_installer_uri == "https://example/pkg.deb"
        assert "{{.InstallerUri}}" in config.pwsh_autoupdate_command

    def test_autoupdate_disabled_by_default(self):
        config = _resolve(inline=["a"], os_type="ubuntu")
        assert not config.pwsh_autoupdate_is_enabled
        assert "packages.microsoft.com" in config.pwsh_installer_uri

    def test_bad_env_var_format(self):
        with pytest.raises(ConfigurationError, match="env_var_format"):
            _resolve(inline=["a"], env_var_format="$env:{key}='{value}'")

    def test_malformed_execute_command(self):
        with pytest.raises(ConfigurationError, match="'execute_command' is not a valid template"):
            _resolve(inline=["a"], execute_command="pwsh -File {{ Path }}")

    def test_unclosed_autoupdate_command(self):
        with pytest.raises(ConfigurationError, match="pwsh_autoupdate_execute_command"):
            _resolve(inline=["a"], pwsh_autoupdate_execute_command="sh {{.Path")

    def test_malformed_password_not_echoed(self):
        with pytest.raises(ConfigurationError) as exc:
            _resolve(inline=["a"], elevated_user="admin", elevated_password="s3cret{{oops}}")
        assert "elevated_password" in str(exc.value)
        assert "s3cret" not in str(exc.value)

    def test_environment_merged(self):
        config = _resolve(inline=["a"], environment_vars=["A=1", "B=2"], env={"B": "3"})
        assert config.environment == {"A": "1", "B": "3"}

    def test_bad_duration(self):
        with pytest.raises(ConfigurationError, match="Invalid duration"):
            _resolve(inline=["a"], start_retry_timeout="soon")

    def test_unknown_os_type(self):
        with pytest.raises(ConfigurationError, match="Unknown os_type"):
            _resolve(inline=["a"], os_type="plan9")

    def test_redacted_masks_password(self):
        config = _resolve(inline=["a"], elevated_user="admin", elevated_password="s3cret")
        data = config.redacted()
        assert data["elevated_password"] == "********"
        assert data["valid_exit_codes"] == [0]
        assert config.is_elevated

    def test_config_is_immutable(self):
        config = _resolve(inline=["a"])
        with pytest.raises(Exception):
            config.remote_path = "/elsewhere"


class TestParsers:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (30, 30.0),
            (1.5, 1.5),
            ("45", 45.0),
            ("7m", 420.0),
            ("90s", 90.0),
            ("1h30m", 5400.0),
            ("250ms", 0.25),
        ],
    )
    def test_parse_duration(self, value, expected):
        assert parse_duration(value) == pytest.approx(expected)

    def test_parse_duration_negative(self):
        with pytest.raises(ConfigurationError):
            parse_duration(-1)

    def test_parse_duration_garbage_suffix(self):
        with pytest.raises(ConfigurationError):
            parse_duration("5mx")

    def test_parse_environment_value_with_equals(self):
        assert parse_environment(["URL=a=b"], {}) == {"URL": "a=b"}

    def test_parse_environment_missing_equals(self):
        with pytest.raises(ConfigurationError, match="KEY=VALUE"):
            parse_environment(["NOPE"], {})

    def test_time_ordered_ids_sort(self):
        first = time_ordered_id()
        second = time_ordered_id()
        assert first[:20] <= second[:20]
        assert first != second


# ── Platforms ────────────────────────────────────────────────────────


class TestPlatforms:
    def test_every_os_type_has_defaults(self):
        assert set(PLATFORMS) == set(OsType)

    def test_parse_os_type(self):
        assert parse_os_type("") == OsType.LINUX
        assert parse_os_type(None) == OsType.LINUX
        assert parse_os_type(" Windows ") == OsType.WINDOWS

    def test_posix_execute_dot_sources_vars(self):
        command = platform_defaults("linux").execute_command
        assert "{{.Vars}}" in command
        assert "chmod +x {{.Path}}" in command
        assert "\\$LastExitCode" in command

    def test_to_dict(self):
        data = platform_defaults("windows").to_dict()
        assert data["os_type"] == "windows"
        assert data["elevation_strategy"] == "rewrite"

    def test_builtin_templates_ship(self):
        for platform in PLATFORMS.values():
            for name in (platform.autoupdate_template, platform.reboot_pending_template):
                if name:
                    assert load_template(name).strip()

    def test_missing_template(self):
        with pytest.raises(FileNotFoundError):
            load_template("nope.ps1")
