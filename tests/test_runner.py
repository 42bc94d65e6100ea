"""Tests for external command execution."""

import os
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from aurorus.modules.runner import (
    CommandError,
    CommandResult,
    CommandRunner,
    interrupts_shielded,
    shield_interrupts,
)


def _completed(rc=0, stdout="", stderr=""):
    proc = MagicMock()
    proc.returncode = rc
    proc.stdout = stdout
    proc.stderr = stderr
    return proc


class TestCommandRunner:
    @patch("aurorus.modules.runner.os.geteuid", return_value=1000)
    @patch("aurorus.modules.runner.subprocess.run")
    def test_privileged_command_uses_sudo(self, mock_run, _euid):
        mock_run.return_value = _completed()
        CommandRunner(use_sudo=True).run(["pacman", "-R", "foo"], privileged=True)
        assert mock_run.call_args.args[0] == ["sudo", "pacman", "-R", "foo"]

    @patch("aurorus.modules.runner.os.geteuid", return_value=0)
    @patch("aurorus.modules.runner.subprocess.run")
    def test_root_needs_no_sudo(self, mock_run, _euid):
        mock_run.return_value = _completed()
        CommandRunner(use_sudo=True).run("pacman -R foo", privileged=True)
        assert mock_run.call_args.args[0] == ["pacman", "-R", "foo"]

    @patch("aurorus.modules.runner.subprocess.run")
    def test_dry_run_executes_nothing(self, mock_run):
        res = CommandRunner(dry_run=True).run(["pacman", "-S", "foo"])
        assert res.ok()
        mock_run.assert_not_called()

    @patch("aurorus.modules.runner.subprocess.run", side_effect=FileNotFoundError("No such file"))
    def test_missing_executable(self, _run):
        with pytest.raises(CommandError) as exc:
            CommandRunner().run(["makepkg"])
        assert exc.value.result.returncode == 127

    @patch("aurorus.modules.runner.subprocess.run")
    def test_failure_is_a_result_not_an_exception(self, mock_run):
        mock_run.return_value = _completed(rc=1, stderr="error: target not found: foo\n")

        res = CommandRunner().run(["pacman", "-S", "foo"])

        assert not res.ok()
        assert res.reason() == "error: target not found: foo"

    @patch("aurorus.modules.runner.subprocess.run")
    def test_output_is_captured(self, mock_run):
        mock_run.return_value = _completed(stdout="ok\n")
        res = CommandRunner().run(["true"])
        assert mock_run.call_args.kwargs["stdout"] == subprocess.PIPE
        assert mock_run.call_args.kwargs["preexec_fn"] is None
        assert res.stdout == "ok\n"


class TestInterruptShield:
    def test_nested_scopes(self):
        assert not interrupts_shielded()
        with shield_interrupts():
            with shield_interrupts():
                assert interrupts_shielded()
            assert interrupts_shielded()
        assert not interrupts_shielded()

    @pytest.mark.skipif(os.name != "posix", reason="POSIX signals")
    def test_child_survives_ctrl_c_while_shielded(self):
        script = "kill -INT $$; echo step-finished"
        with shield_interrupts():
            res = CommandRunner().run(["sh", "-c", script])
        assert res.returncode == 0
        assert res.stdout.strip() == "step-finished"


class TestCommandResult:
    def test_reason_is_last_error_line(self):
        res = CommandResult(["pacman"], 1, "", "warning: x\nerror: failed to commit transaction\n", 0)
        assert res.reason() == "error: failed to commit transaction"

    def test_reason_without_output(self):
        assert CommandResult(["makepkg"], 4, "", "", 0).reason() == "exit status 4"
