"""Tests for the process runner."""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from specpilot.failures import ErrorKind
from specpilot.process_runner import (
    ConfigurationError,
    LaunchFailure,
    ProcessResult,
    ProcessRunner,
)


class TestProcessResult:
    """Tests for ProcessResult dataclass."""

    def test_ok_on_zero_exit(self) -> None:
        """Test ok reflects exit code 0."""
        assert ProcessResult(exit_code=0).ok is True
        assert ProcessResult(exit_code=2).ok is False

    def test_output_combined(self) -> None:
        """Test combined output property."""
        result = ProcessResult(exit_code=1, stdout="out", stderr="err")
        assert "out" in result.output
        assert "err" in result.output


class TestProcessRunner:
    """Tests for ProcessRunner."""

    def test_captures_stdout_and_exit_code(self) -> None:
        """Test a successful command returns its stdout."""
        result = ProcessRunner().run(sys.executable, ["-c", "print('hello')"])

        assert result.exit_code == 0
        assert result.stdout.strip() == "hello"
        assert result.command[0] == sys.executable

    def test_non_zero_exit_is_not_raised(self) -> None:
        """Test a failing command is returned, not raised."""
        result = ProcessRunner().run(
            sys.executable,
            ["-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"],
        )

        assert result.exit_code == 3
        assert result.stderr == "boom"
        assert result.ok is False

    def test_undecodable_output_is_replaced(self) -> None:
        """Test bytes that are not UTF-8 are replaced instead of raising."""
        result = ProcessRunner().run(
            sys.executable,
            ["-c", "import sys; sys.stdout.buffer.write(b'ok \\xff\\xfe done'); sys.stderr.buffer.write(b'\\xff')"],
        )

        assert result.exit_code == 0
        assert result.stdout.startswith("ok ")
        assert result.stdout.endswith(" done")
        assert "\ufffd" in result.stdout
        assert result.stderr == "\ufffd"

    def test_runs_in_given_cwd(self, tmp_path: Path) -> None:
        """Test the working directory is passed to the child process."""
        result = ProcessRunner().run(sys.executable, ["-c", "import os; print(os.getcwd())"], cwd=tmp_path)

        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    def test_does_not_change_process_cwd(self, tmp_path: Path) -> None:
        """Test the runner leaves the current directory alone."""
        before = Path.cwd()
        ProcessRunner().run(sys.executable, ["-c", "pass"], cwd=tmp_path)
        assert Path.cwd() == before

    def test_missing_binary_raises_launch_failure(self) -> None:
        """Test a missing executable raises LaunchFailure."""
        with pytest.raises(LaunchFailure) as exc_info:
            ProcessRunner().run("definitely-not-a-real-binary-xyz")

        assert exc_info.value.kind == ErrorKind.MISSING_BINARY
        assert exc_info.value.command == "definitely-not-a-real-binary-xyz"

    def test_permission_error_raises_launch_failure(self) -> None:
        """Test a non-executable binary raises LaunchFailure with permission kind."""
        with patch("specpilot.process_runner.subprocess.run", side_effect=PermissionError("denied")):
            with pytest.raises(LaunchFailure) as exc_info:
                ProcessRunner().run("tool")

        assert exc_info.value.kind == ErrorKind.PERMISSION_DENIED
        assert "denied" in exc_info.value.reason


class TestRunCommandLine:
    """Tests for ProcessRunner.run_command_line."""

    def test_splits_command_line(self) -> None:
        """Test shell-style strings are split into argv."""
        runner = ProcessRunner()
        with patch.object(runner, "run", return_value=ProcessResult(exit_code=0)) as mock_run:
            runner.run_command_line("pytest -q -k 'add and not slow'")

        mock_run.assert_called_once_with("pytest", ["-q", "-k", "add and not slow"], cwd=None)

    def test_empty_command_line(self) -> None:
        """Test an empty command is a configuration error."""
        with pytest.raises(ConfigurationError):
            ProcessRunner().run_command_line("   ")

    def test_unbalanced_quotes(self) -> None:
        """Test an unparsable command is a configuration error."""
        with pytest.raises(ConfigurationError):
            ProcessRunner().run_command_line("echo 'oops")
