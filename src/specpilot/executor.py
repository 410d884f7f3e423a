"""Task execution engine.

Drives the coding agent through a bounded retry loop per task, evaluates
each clean exit, and runs a spec's tasks in order with fail-fast semantics.
Per-task outcomes feed the lesson pipeline once the run ends.

Each task moves ``PENDING -> ATTEMPTING -> SUCCEEDED | EXHAUSTED``. The
worktree is handed to every subprocess as an explicit working directory;
the process-wide current directory is never changed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from .agent import AiderRunner
from .evaluator import Evaluator
from .failures import ErrorKind, classify_agent_exit, describe_launch_failure
from .lessons import ExecutionTelemetry, LessonLogError, LessonPipeline
from .process_runner import LaunchFailure
from .spec import Spec, Task
from .vcs import JujutsuWorkspaceManager, WorkspaceError, WorktreeManager

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    """Lifecycle state of a task within one run."""

    PENDING = "pending"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass
class TaskResult:
    """Final outcome of executing one task."""

    success: bool = False
    attempts: int = 0
    error: Optional[str] = None
    output: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    needs_review: bool = False

    @property
    def status(self) -> TaskStatus:
        return TaskStatus.SUCCEEDED if self.success else TaskStatus.EXHAUSTED


@dataclass
class RunReport:
    """Outcome of running every pending task in a spec."""

    spec_name: str
    results: List[Tuple[str, TaskResult]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed_task: Optional[str] = None
    lessons_logged: int = 0

    @property
    def success(self) -> bool:
        return self.failed_task is None

    @property
    def tasks_completed(self) -> int:
        return sum(1 for _, result in self.results if result.success)


def build_task_prompt(spec: Spec, task: Task) -> str:
    """Combine the shared objective, implementation notes and task prompt."""
    return (
        f"Objective:\n{spec.objective}\n\n"
        f"Technical Notes:\n{spec.implementation_details}\n\n"
        f"Task Prompt:\n{task.prompt}"
    )


class TaskExecutor:
    """Runs tasks through the agent, evaluation and retry loop."""

    def __init__(
        self,
        workspace: Union[WorktreeManager, JujutsuWorkspaceManager],
        agent: AiderRunner,
        evaluator: Evaluator,
        lessons: Optional[LessonPipeline] = None,
        on_status: Optional[Callable[[Task, TaskStatus, int], None]] = None,
    ):
        """Initialize the executor.

        Args:
            workspace: Provides the branch + worktree for a spec.
            agent: Coding agent runner.
            evaluator: Evaluation strategy dispatcher.
            lessons: Lesson pipeline run after execute_all. Skipped when None.
            on_status: Optional callback receiving (task, status, attempt)
                on every state change, for progress display.
        """
        self.workspace = workspace
        self.agent = agent
        self.evaluator = evaluator
        self.lessons = lessons
        self.on_status = on_status

    def _notify(self, task: Task, status: TaskStatus, attempt: int) -> None:
        if self.on_status is not None:
            self.on_status(task, status, attempt)

    def execute(self, spec: Spec, task: Task, target_id: str) -> TaskResult:
        """Execute one task until it succeeds or its retries run out.

        Args:
            spec: The loaded spec.
            task: Task to execute.
            target_id: Name of the branch/worktree to work in.

        Returns:
            TaskResult. ``task.done`` is not modified here.
        """
        result = TaskResult()
        self._notify(task, TaskStatus.PENDING, 0)

        try:
            worktree = self.workspace.acquire(target_id)
        except WorkspaceError as exc:
            result.error = f"Failed to acquire working context for '{target_id}': {exc}"
            result.error_kind = ErrorKind.RESOURCE_ACQUISITION
            logger.error(result.error)
            self._notify(task, TaskStatus.EXHAUSTED, 0)
            return result

        prompt = build_task_prompt(spec, task)
        max_retries = spec.aider_config.retries
        last_error = ""
        last_output = ""

        while not result.success and result.attempts < max_retries:
            result.attempts += 1
            logger.info(f"Executing task '{task.name}' (attempt {result.attempts}/{max_retries})...")
            self._notify(task, TaskStatus.ATTEMPTING, result.attempts)

            try:
                run = self.agent.run(spec.aider_config, prompt, cwd=worktree)
            except LaunchFailure as exc:
                failure = describe_launch_failure(self.agent.binary, exc.kind, exc.reason)
                last_error, result.error_kind = failure.message, failure.kind
                logger.error(last_error)
                continue

            last_output = run.stdout
            if not run.ok:
                failure = classify_agent_exit(self.agent.binary, run.exit_code, run.stderr)
                last_error, result.error_kind = failure.message, failure.kind
                logger.error(last_error)
                continue

            if task.evaluation is None:
                result.success = True
                break

            evaluation = self.evaluator.evaluate(task.evaluation, spec.aider_config, run.stdout, cwd=worktree)
            if evaluation.success:
                result.success = True
                break

            last_error = evaluation.error or "Evaluation failed without specific error"
            result.error_kind = evaluation.error_kind or ErrorKind.EVALUATION_FAILURE
            logger.error(f"Evaluation failed: {last_error}")

            if evaluation.needs_review:
                # The check could not be run; another agent attempt would not help
                result.needs_review = True
                break

        result.output = last_output
        if result.success:
            result.error_kind = None
        else:
            plural = "" if result.attempts == 1 else "s"
            if result.attempts == 0:
                last_error = "retries is set to 0, so the agent was never invoked"
            result.error = f"Task failed after {result.attempts} attempt{plural}. Last error: {last_error}"

        self._notify(task, result.status, result.attempts)
        return result

    def execute_all(self, spec: Spec, target_id: str, lessons_root: Path) -> RunReport:
        """Execute pending tasks in order, stopping at the first failure.

        Successful tasks are marked done. Afterwards a lesson is recorded for
        every task that was executed.

        Args:
            spec: The loaded spec.
            target_id: Spec name used for the branch/worktree and lesson headings.
            lessons_root: Main repository root holding the lessons log.

        Returns:
            RunReport with per-task results.
        """
        report = RunReport(spec_name=target_id)
        telemetry: List[ExecutionTelemetry] = []

        for task in spec.tasks:
            if task.done:
                logger.info(f"Skipping task '{task.name}' (already done)")
                report.skipped.append(task.name)
                continue

            logger.info(f"Executing task '{task.name}'...")
            result = self.execute(spec, task, target_id)
            report.results.append((task.name, result))
            telemetry.append(ExecutionTelemetry.from_result(target_id, task.name, result))

            if result.success:
                task.done = True
                logger.info(f"Task '{task.name}' completed successfully")
            else:
                report.failed_task = task.name
                logger.error(f"Task '{task.name}' failed: {result.error}")
                break

        if self.lessons is not None and telemetry:
            try:
                report.lessons_logged = self.lessons.run(lessons_root, telemetry)
            except LessonLogError as exc:
                logger.error(f"Error logging lessons: {exc}")

        return report
