"""Aider CLI integration for task implementation.

The coding agent is driven as an external process: one invocation per
attempt, with the task prompt as the final argument.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .process_runner import ProcessResult, ProcessRunner
from .spec import AgentConfig

logger = logging.getLogger(__name__)

DEFAULT_AGENT_BINARY = "aider"


def build_agent_args(config: AgentConfig, prompt: str) -> List[str]:
    """Build the argument list for one agent invocation.

    Layout: ``--model M [--architect] [--files ...] [--readonly ...] <prompt>``.
    """
    args = ["--model", config.model]

    if config.architect_mode:
        args.append("--architect")

    if config.editable_files:
        args.extend(["--files", *config.editable_files])

    if config.readonly_files:
        args.extend(["--readonly", *config.readonly_files])

    args.append(prompt)
    return args


class AiderRunner:
    """Runs the aider CLI inside a task's working directory."""

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        binary: str = DEFAULT_AGENT_BINARY,
    ):
        """Initialize the runner.

        Args:
            runner: Process runner used to launch the agent.
            binary: Agent executable name or path.
        """
        self.runner = runner or ProcessRunner()
        self.binary = binary

    def run(self, config: AgentConfig, prompt: str, cwd: Path) -> ProcessResult:
        """Invoke the agent once.

        Args:
            config: Agent configuration from the spec.
            prompt: Full task prompt.
            cwd: Worktree the agent edits.

        Returns:
            ProcessResult of the invocation. A non-zero exit is returned, not raised.

        Raises:
            LaunchFailure: If the agent binary cannot be started.
        """
        logger.info(f"Invoking {self.binary} with model {config.model}...")
        logger.debug(f"Prompt: {prompt[:200]}...")
        return self.runner.run(self.binary, build_agent_args(config, prompt), cwd=cwd)


class MockAgentRunner:
    """Mock agent runner for testing without launching aider."""

    def __init__(self, results: Optional[List[ProcessResult]] = None):
        """Initialize the mock.

        Args:
            results: Results returned in order; the last one repeats.
        """
        self.binary = "aider"
        self.results: List[ProcessResult] = list(results or [ProcessResult(exit_code=0, stdout="Mock agent output")])
        self.call_count = 0
        self.last_prompt: Optional[str] = None
        self.last_cwd: Optional[Path] = None
        self.launch_error: Optional[Exception] = None

    def run(self, config: AgentConfig, prompt: str, cwd: Path) -> ProcessResult:
        """Record the call and return the next canned result."""
        self.call_count += 1
        self.last_prompt = prompt
        self.last_cwd = cwd

        if self.launch_error is not None:
            raise self.launch_error

        index = min(self.call_count - 1, len(self.results) - 1)
        return self.results[index]
