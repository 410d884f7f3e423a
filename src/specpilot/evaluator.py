"""Evaluation of a task attempt after the agent exits cleanly.

Dispatches on the task's evaluation type. This is a single decision step
with no retry logic of its own; the executor owns retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .failures import ErrorKind
from .judge import JudgmentClient
from .process_runner import ConfigurationError, LaunchFailure, ProcessRunner
from .spec import AgentConfig, Evaluation

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    """Pass/fail decision for one attempt."""

    success: bool
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    needs_review: bool = False

    @classmethod
    def passed(cls) -> EvaluationResult:
        return cls(success=True)

    @classmethod
    def failed(cls, error: str, kind: ErrorKind = ErrorKind.EVALUATION_FAILURE) -> EvaluationResult:
        logger.error(f"Evaluation error: {error}")
        return cls(success=False, error=error, error_kind=kind)


class Evaluator:
    """Runs a task's declared evaluation strategy."""

    def __init__(self, runner: ProcessRunner, judge: JudgmentClient):
        self.runner = runner
        self.judge = judge

    def evaluate(
        self,
        evaluation: Evaluation,
        config: AgentConfig,
        agent_output: str,
        cwd: Path,
    ) -> EvaluationResult:
        """Evaluate the attempt that just finished.

        Args:
            evaluation: The task's evaluation block.
            config: Agent configuration (source of test_command).
            agent_output: Agent stdout from the attempt.
            cwd: Worktree to run evaluation commands in.

        Returns:
            EvaluationResult with the decision and diagnostic text.
        """
        logger.debug(f"Evaluating '{evaluation.type}' after {len(agent_output)} chars of agent output")

        if evaluation.type == "test":
            return self._evaluate_test(config, cwd)
        if evaluation.type == "command":
            return self._evaluate_command(evaluation, cwd)

        return EvaluationResult.failed(
            f"Unknown evaluation type: {evaluation.type}",
            ErrorKind.CONFIGURATION,
        )

    def _evaluate_test(self, config: AgentConfig, cwd: Path) -> EvaluationResult:
        if not config.test_command:
            return EvaluationResult.failed(
                "Test command not specified in aider_config.test_command",
                ErrorKind.CONFIGURATION,
            )

        logger.info(f"Running tests: {config.test_command}")
        try:
            result = self.runner.run_command_line(config.test_command, cwd=cwd)
        except ConfigurationError as exc:
            return EvaluationResult.failed(str(exc), ErrorKind.CONFIGURATION)
        except LaunchFailure as exc:
            return EvaluationResult.failed(f"Test command could not be started: {exc.reason}", exc.kind)

        if not result.ok:
            return EvaluationResult.failed(
                f"Test command failed with exit code {result.exit_code}: {result.stderr}"
            )
        return EvaluationResult.passed()

    def _evaluate_command(self, evaluation: Evaluation, cwd: Path) -> EvaluationResult:
        if not evaluation.command:
            return EvaluationResult.failed(
                "Command not specified in task.evaluation.command",
                ErrorKind.CONFIGURATION,
            )

        logger.info(f"Running evaluation command: {evaluation.command}")
        try:
            result = self.runner.run_command_line(evaluation.command, cwd=cwd)
        except ConfigurationError as exc:
            return EvaluationResult.failed(str(exc), ErrorKind.CONFIGURATION)
        except LaunchFailure as exc:
            return EvaluationResult.failed(f"Command could not be started: {exc.reason}", exc.kind)

        if not result.ok:
            return EvaluationResult.failed(
                f"Command failed with exit code {result.exit_code}: {result.stderr}"
            )

        if not evaluation.check_prompt:
            return EvaluationResult.passed()

        judgment = self.judge.judge(evaluation.check_prompt, result.stdout)
        if judgment.success:
            return EvaluationResult.passed()

        if judgment.unavailable:
            return EvaluationResult(
                success=False,
                error=judgment.error,
                error_kind=ErrorKind.JUDGMENT_UNAVAILABLE,
                needs_review=True,
            )
        return EvaluationResult.failed(judgment.error or "Language model evaluation failed")
