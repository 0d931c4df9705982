"""
Tests for observability — progress reporters and logging setup.
"""

import logging
import shlex

import pytest

from pwsh_provisioner.core.observability.logging_config import (
    SecretFilter,
    parse_level,
    register_secret,
    setup_logging,
)
from pwsh_provisioner.core.observability.reporter import (
    ConsoleReporter,
    LoggingReporter,
    RecordingReporter,
)
from pwsh_provisioner.core.use_cases.provision import provision


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


# ── Reporters ────────────────────────────────────────────────────────


class TestReporters:
    def test_recording(self):
        reporter = RecordingReporter()
        reporter.say("Provisioning with pwsh; exit code: 0")
        assert reporter.messages == ["Provisioning with pwsh; exit code: 0"]
        assert reporter.contains("exit code")
        assert not reporter.contains("reboot")

    def test_output_indents_and_skips_blank_lines(self):
        reporter = RecordingReporter()
        reporter.output("first\r\n\n   \nsecond\n")
        assert reporter.messages == ["    first", "    second"]

    def test_output_empty(self):
        reporter = RecordingReporter()
        reporter.output("")
        assert reporter.messages == []

    def test_logging_reporter(self, caplog):
        with caplog.at_level(logging.INFO, logger="pwsh_provisioner.progress"):
            LoggingReporter().say("Checking for pending reboot...")
        assert "Checking for pending reboot..." in caplog.text

    def test_console_reporter(self, capsys):
        reporter = ConsoleReporter(color=None)
        reporter.say("Initiating machine reboot")
        reporter.output("remote line")
        out = capsys.readouterr().out
        assert "==> Initiating machine reboot" in out
        assert "    remote line" in out
        assert "==>     remote line" not in out


# ── Logging ──────────────────────────────────────────────────────────


class TestSecretFilter:
    def _record(self, msg, *args):
        return logging.LogRecord("t", logging.INFO, __file__, 1, msg, args, None)

    def test_masks_registered_secret(self):
        record = self._record("echo %s | sudo -S", "hunter2")
        SecretFilter(["hunter2"]).filter(record)
        assert record.getMessage() == "echo ******** | sudo -S"

    def test_untouched_without_secret(self):
        record = self._record("plain %d", 5)
        assert SecretFilter(["hunter2"]).filter(record)
        assert record.getMessage() == "plain 5"

    def test_empty_secret_ignored(self):
        f = SecretFilter()
        f.add("")
        record = self._record("nothing to hide")
        f.filter(record)
        assert record.getMessage() == "nothing to hide"


class TestSetupLogging:
    def test_level_and_secret_registration(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "run.log"
        secrets = setup_logging(level="INFO", log_file=str(log_file), log_file_level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2

        register_secret("s3cret")
        logging.getLogger("pwsh_provisioner.test").debug("password is s3cret")
        for handler in root.handlers:
            handler.flush()
        assert "password is ********" in log_file.read_text()
        assert isinstance(secrets, SecretFilter)

    def test_quiet_third_party(self, restore_root_logger):
        setup_logging(level="INFO")
        assert logging.getLogger("paramiko").level == logging.WARNING

    @pytest.mark.parametrize(
        "name,expected",
        [("debug", logging.DEBUG), ("ERROR", logging.ERROR), (None, logging.WARNING), ("loud", logging.WARNING)],
    )
    def test_parse_level(self, name, expected):
        assert parse_level(name) == expected


class TestRenderedSecrets:
    def test_templated_password_masked_in_debug_log(
        self, restore_root_logger, tmp_path, mock_remote, reporter, make_config
    ):
        log_file = tmp_path / "run.log"
        setup_logging(level="WARNING", log_file=str(log_file), log_file_level="DEBUG")
        register_secret("{{.BuildPassword}}")

        config = make_config(elevated_user="admin", elevated_password="{{.BuildPassword}}")
        result = provision(config, mock_remote, reporter, generated_data={"BuildPassword": "hunter2xyz"})
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert result.ok, result.error
        assert any("hunter2xyz" in c for c in mock_remote.commands)
        text = log_file.read_text()
        assert "executing" in text
        assert "hunter2xyz" not in text
        assert "********" in text

    def test_quoted_password_masked(self, restore_root_logger, tmp_path, mock_remote, reporter, make_config):
        log_file = tmp_path / "run.log"
        setup_logging(level="WARNING", log_file=str(log_file), log_file_level="DEBUG")

        config = make_config(elevated_user="admin", elevated_password="{{.BuildPassword}}")
        provision(config, mock_remote, reporter, generated_data={"BuildPassword": "it's secret"})
        for handler in logging.getLogger().handlers:
            handler.flush()

        text = log_file.read_text()
        assert "executing" in text
        assert "it's secret" not in text
        assert shlex.quote("it's secret") not in text
