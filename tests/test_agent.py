"""Tests for the aider runner."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

from specpilot.agent import AiderRunner, MockAgentRunner, build_agent_args
from specpilot.process_runner import ProcessResult, ProcessRunner
from specpilot.spec import AgentConfig


class TestBuildAgentArgs:
    """Tests for build_agent_args."""

    def test_full_config(self) -> None:
        """Test all flags appear in order with the prompt last."""
        config = AgentConfig(
            model="gpt-4",
            architect_mode=True,
            editable_files=["src/a.py", "src/b.py"],
            readonly_files=["README.md"],
        )

        args = build_agent_args(config, "Do the thing")

        assert args == [
            "--model", "gpt-4",
            "--architect",
            "--files", "src/a.py", "src/b.py",
            "--readonly", "README.md",
            "Do the thing",
        ]

    def test_minimal_config(self) -> None:
        """Test optional flags are omitted when unset."""
        args = build_agent_args(AgentConfig(model="gpt-4"), "prompt")

        assert args == ["--model", "gpt-4", "prompt"]


class TestAiderRunner:
    """Tests for AiderRunner."""

    def test_runs_binary_in_worktree(self, tmp_path: Path) -> None:
        """Test the agent is launched with its arguments in the given cwd."""
        process_runner = MagicMock(spec=ProcessRunner)
        process_runner.run.return_value = ProcessResult(exit_code=0, stdout="done")
        runner = AiderRunner(process_runner, binary="/opt/bin/aider")

        result = runner.run(AgentConfig(model="gpt-4"), "prompt", cwd=tmp_path)

        assert result.stdout == "done"
        process_runner.run.assert_called_once_with(
            "/opt/bin/aider", ["--model", "gpt-4", "prompt"], cwd=tmp_path
        )

    def test_default_binary(self) -> None:
        """Test the default binary is aider."""
        assert AiderRunner().binary == "aider"


class TestMockAgentRunner:
    """Tests for MockAgentRunner."""

    def test_records_calls(self, tmp_path: Path) -> None:
        """Test the mock records prompt and cwd and repeats its last result."""
        mock = MockAgentRunner([ProcessResult(exit_code=1), ProcessResult(exit_code=0)])

        first = mock.run(AgentConfig(model="m"), "p1", cwd=tmp_path)
        second = mock.run(AgentConfig(model="m"), "p2", cwd=tmp_path)
        third = mock.run(AgentConfig(model="m"), "p3", cwd=tmp_path)

        assert [first.exit_code, second.exit_code, third.exit_code] == [1, 0, 0]
        assert mock.call_count == 3
        assert mock.last_prompt == "p3"
        assert mock.last_cwd == tmp_path
