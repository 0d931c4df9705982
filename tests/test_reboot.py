"""
Tests for the reboot coordinator state machine.
"""

import threading

import pytest

from pwsh_provisioner.core.engine.reboot import RebootCommands, RebootCoordinator
from pwsh_provisioner.core.errors import ProvisioningCancelled, RebootInitiationError
from pwsh_provisioner.core.models.script import RebootState

COMMANDS = RebootCommands(
    initiate="reboot-now",
    progress="reboot-probe",
    complete="reboot-abort",
    validate="reboot-check",
    poll_interval=0,
)


def _coordinator(remote, reporter, commands=COMMANDS, cancel=None):
    return RebootCoordinator(
        remote=remote,
        commands=commands,
        reporter=reporter,
        cancel=cancel or threading.Event(),
    )


# ── State machine ────────────────────────────────────────────────────


class TestRebootCycle:
    def test_happy_path(self, mock_remote, reporter):
        coordinator = _coordinator(mock_remote, reporter)
        assert coordinator.state == RebootState.IDLE

        assert coordinator.reboot() == 0

        assert mock_remote.commands == ["reboot-now", "reboot-probe", "reboot-abort", "reboot-check"]
        assert coordinator.history == [
            RebootState.INITIATING,
            RebootState.AWAITING_COMPLETION,
            RebootState.VALIDATING,
            RebootState.COMPLETE,
        ]
        assert coordinator.state == RebootState.COMPLETE
        assert coordinator.reboots == 1

    def test_progress_messages(self, mock_remote, reporter):
        _coordinator(mock_remote, reporter).reboot()
        assert reporter.contains("Initiating machine reboot; command: reboot-now")
        assert reporter.contains("Waiting for machine reboot; command: reboot-probe")
        assert reporter.contains("Validating machine reboot; command: reboot-check")
        assert reporter.contains("Completed machine reboot; exit code: 0")

    def test_initiate_rejected(self, mock_remote, reporter):
        mock_remote.set_exit_code("reboot-now", 5)
        coordinator = _coordinator(mock_remote, reporter)
        with pytest.raises(RebootInitiationError) as exc:
            coordinator.reboot()
        assert exc.value.exit_code == 5
        assert mock_remote.commands == ["reboot-now"]
        assert coordinator.state == RebootState.INITIATING
        assert coordinator.reboots == 0

    def test_initiate_transport_failure(self, mock_remote, reporter):
        mock_remote.fail_runs("reboot-now", 1)
        with pytest.raises(RebootInitiationError, match="Failed to reboot machine"):
            _coordinator(mock_remote, reporter).reboot()
        assert mock_remote.commands == ["reboot-now"]

    def test_coordinator_is_reusable(self, mock_remote, reporter):
        coordinator = _coordinator(mock_remote, reporter)
        coordinator.reboot()
        coordinator.reboot()
        assert coordinator.reboots == 2
        assert coordinator.history[0] == RebootState.INITIATING
        assert len(coordinator.history) == 4

    def test_to_dict(self, mock_remote, reporter):
        coordinator = _coordinator(mock_remote, reporter)
        coordinator.reboot()
        data = coordinator.to_dict()
        assert data["state"] == "complete"
        assert data["reboots"] == 1
        assert data["history"][-1] == "complete"


# ── Awaiting completion ──────────────────────────────────────────────


class TestProgressPolling:
    def test_shutdown_in_progress_skips_complete(self, mock_remote, reporter):
        mock_remote.set_exit_code("reboot-probe", 1)
        _coordinator(mock_remote, reporter).reboot()
        assert mock_remote.commands == ["reboot-now", "reboot-probe", "reboot-check"]

    def test_unreachable_keeps_polling(self, mock_remote, reporter):
        mock_remote.fail_runs("reboot-probe", 2)
        coordinator = _coordinator(mock_remote, reporter)
        coordinator.reboot()
        assert mock_remote.commands_containing("reboot-probe") == ["reboot-probe"] * 3
        assert mock_remote.commands_containing("reboot-abort") == ["reboot-abort"]
        assert coordinator.polls == 3

    def test_other_exit_codes_keep_polling(self, mock_remote, reporter):
        mock_remote.set_exit_code("reboot-probe", 1115, 1190, 0)
        _coordinator(mock_remote, reporter).reboot()
        assert len(mock_remote.commands_containing("reboot-probe")) == 3

    def test_complete_failure_ignored(self, mock_remote, reporter):
        mock_remote.fail_runs("reboot-abort", -1)
        assert _coordinator(mock_remote, reporter).reboot() == 0
        assert mock_remote.commands[-1] == "reboot-check"

    def test_no_complete_command(self, mock_remote, reporter):
        commands = RebootCommands(
            initiate="reboot-now", progress="reboot-probe", validate="reboot-check", poll_interval=0
        )
        _coordinator(mock_remote, reporter, commands).reboot()
        assert mock_remote.commands == ["reboot-now", "reboot-probe", "reboot-check"]

    def test_no_progress_command(self, mock_remote, reporter):
        commands = RebootCommands(initiate="reboot-now", validate="reboot-check", poll_interval=0)
        coordinator = _coordinator(mock_remote, reporter, commands)
        coordinator.reboot()
        assert mock_remote.commands == ["reboot-now", "reboot-check"]
        assert RebootState.AWAITING_COMPLETION in coordinator.history


# ── Validation ───────────────────────────────────────────────────────


class TestValidation:
    def test_retries_until_zero(self, mock_remote, reporter):
        mock_remote.set_exit_code("reboot-check", 1, 1, 0)
        _coordinator(mock_remote, reporter).reboot()
        assert len(mock_remote.commands_containing("reboot-check")) == 3

    def test_transport_errors_ignored(self, mock_remote, reporter):
        mock_remote.fail_runs("reboot-check", 2)
        assert _coordinator(mock_remote, reporter).reboot() == 0
        assert len(mock_remote.commands_containing("reboot-check")) == 3


# ── Cancellation ─────────────────────────────────────────────────────


class TestCancellation:
    def test_cancel_stops_waiting(self, mock_remote, reporter):
        cancel = threading.Event()
        cancel.set()
        coordinator = _coordinator(mock_remote, reporter, cancel=cancel)
        with pytest.raises(ProvisioningCancelled):
            coordinator.reboot()
        assert mock_remote.commands == ["reboot-now"]
        assert coordinator.state == RebootState.AWAITING_COMPLETION

    def test_cancel_during_validation(self, reporter):
        from pwsh_provisioner.adapters.mock import MockExecutor

        cancel = threading.Event()

        class CancelOnCheck(MockExecutor):
            def run(self, command):
                result = super().run(command)
                if command == "reboot-check":
                    cancel.set()
                    result.exit_status = 1
                return result

        remote = CancelOnCheck()
        coordinator = _coordinator(remote, reporter, cancel=cancel)
        with pytest.raises(ProvisioningCancelled):
            coordinator.reboot()
        assert coordinator.state == RebootState.VALIDATING


class TestFromConfig:
    def test_windows_defaults(self, make_config):
        commands = RebootCommands.from_config(make_config(os_type="windows"))
        assert commands.initiate.startswith("shutdown /r /f /t 0")
        assert commands.complete == "shutdown /a"
        assert commands.poll_interval == 0
