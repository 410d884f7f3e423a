"""Lesson log for task executions.

After a run, each executed task's telemetry is turned into a short lesson by
the language model and appended as a Markdown section to ``LESSONS.md`` in
the main repository. The log is append-only and assumes a single writer.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from .llm_client import LLMClient, LLMClientError

logger = logging.getLogger(__name__)

DEFAULT_LESSONS_FILE = "LESSONS.md"

LESSONS_HEADER = (
    "# Development Task Lessons\n"
    "\n"
    "This file contains automatically generated lessons from task executions, "
    "highlighting unexpected issues and corrections.\n"
    "\n"
    "---\n"
)

SECTION_SEPARATOR = "---"

_SECTION_RE = re.compile(
    r"^## (?P<spec>[^\n]+) - (?P<timestamp>\S+)\n"
    r"\n"
    r"- \*\*Task:\*\* (?P<task>[^\n]*)\n"
    r"- \*\*Outcome:\*\* (?P<outcome>Success|Failure) \((?P<attempts>\d+) attempts?\)\n"
    r"\n"
    r"(?P<lesson>.*?)\n"
    r"\n"
    r"---$",
    re.MULTILINE | re.DOTALL,
)


class LessonLogError(Exception):
    """Exception raised when the lessons log location is unusable."""

    pass


@dataclass(frozen=True)
class ExecutionTelemetry:
    """Snapshot of one task execution, consumed once by the lesson pipeline."""

    spec_name: str
    task_name: str
    attempts: int
    success: bool
    error: Optional[str] = None
    output: Optional[str] = None

    @classmethod
    def from_result(cls, spec_name: str, task_name: str, result) -> ExecutionTelemetry:
        """Build telemetry from a TaskResult."""
        return cls(
            spec_name=spec_name,
            task_name=task_name,
            attempts=result.attempts,
            success=result.success,
            error=result.error,
            output=result.output,
        )


@dataclass
class LessonEntry:
    """A lesson section read back from the log."""

    spec_name: str
    timestamp: str
    task_name: str
    success: bool
    attempts: int
    lesson: str


def format_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-05-01T12:00:00.000Z."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_lesson_prompt(telemetry: ExecutionTelemetry) -> str:
    """Build the lesson-generation request for one task."""
    lines = [
        "Please analyze the following task execution data and generate a concise lesson "
        "about any unexpected issues or corrections that were needed:",
        "",
        f"Spec: {telemetry.spec_name}",
        f"Task: {telemetry.task_name}",
        f"Attempts: {telemetry.attempts}",
        f"Outcome: {'Success' if telemetry.success else 'Failure'}",
    ]
    if telemetry.error:
        lines.append(f"Error: {telemetry.error}")
    lines.extend([
        "",
        "Task Output:",
        telemetry.output or "No output available",
        "",
        "Please provide a concise, specific lesson that would be valuable for future development. "
        "Focus on unexpected issues, corrections, or insights that would help avoid similar problems "
        "in the future. Keep your response under 200 words and make it directly applicable to this "
        "specific task.",
    ])
    return "\n".join(lines)


def format_lesson(telemetry: ExecutionTelemetry, lesson_text: str, timestamp: Optional[str] = None) -> str:
    """Format one lesson as a Markdown section ready to append."""
    plural = "" if telemetry.attempts == 1 else "s"
    outcome = "Success" if telemetry.success else "Failure"
    return (
        "\n"
        f"## {telemetry.spec_name} - {timestamp or format_timestamp()}\n"
        "\n"
        f"- **Task:** {telemetry.task_name}\n"
        f"- **Outcome:** {outcome} ({telemetry.attempts} attempt{plural})\n"
        "\n"
        f"{lesson_text.strip()}\n"
        "\n"
        f"{SECTION_SEPARATOR}\n"
    )


def parse_lessons(text: str) -> List[LessonEntry]:
    """Read lesson sections back from log text, in file order."""
    entries = []
    for match in _SECTION_RE.finditer(text):
        entries.append(
            LessonEntry(
                spec_name=match.group("spec"),
                timestamp=match.group("timestamp"),
                task_name=match.group("task"),
                success=match.group("outcome") == "Success",
                attempts=int(match.group("attempts")),
                lesson=match.group("lesson").strip(),
            )
        )
    return entries


def append_lesson(lessons_path: Path, section: str) -> bool:
    """Append one formatted section, creating the log with its header if absent.

    Each section goes out in a single write so a record is either fully
    appended or reported as failed.

    Returns:
        True if the section was appended.
    """
    if not section.strip():
        logger.error("Error appending lesson: formatted lesson is empty")
        return False

    try:
        if not lessons_path.exists():
            logger.info(f"Creating new lessons file at {lessons_path}")
            lessons_path.write_text(LESSONS_HEADER, encoding="utf-8")

        with open(lessons_path, "a", encoding="utf-8") as f:
            f.write(section)
    except OSError as exc:
        logger.error(f"Failed to append to {lessons_path}: {exc}")
        return False

    logger.info(f"Lesson successfully appended to {lessons_path}")
    return True


def read_lessons(lessons_path: Path) -> List[LessonEntry]:
    """Parse all lessons in a log file. A missing file has no lessons."""
    if not lessons_path.exists():
        return []
    return parse_lessons(lessons_path.read_text(encoding="utf-8"))


class LessonPipeline:
    """Turns execution telemetry into lessons appended to the log."""

    def __init__(self, llm: LLMClient, filename: str = DEFAULT_LESSONS_FILE):
        self.llm = llm
        self.filename = filename

    def generate_lesson(self, telemetry: ExecutionTelemetry) -> str:
        """Ask the language model for a lesson.

        Never raises: missing identifiers, empty replies and API failures
        all produce a fallback lesson text instead.
        """
        if not telemetry.spec_name or not telemetry.task_name:
            error = "Missing required execution data fields (spec_name or task_name)"
            logger.error(f"Lesson generation error: {error}")
            return f"Lesson generation skipped: {error}. Please ensure all required execution data is provided."

        logger.info(
            f"Generating lesson for task '{telemetry.task_name}' in spec '{telemetry.spec_name}'..."
        )

        try:
            response = self.llm.chat(build_lesson_prompt(telemetry))
        except LLMClientError as exc:
            logger.error(f"Language model API error during lesson generation: {exc}")
            return (
                f"Lesson generation failed due to API error: {exc}. "
                "Please check your API key configuration and network connectivity."
            )

        if not response or not response.strip():
            logger.warning("Language model returned empty response for lesson generation")
            return (
                "No lesson could be generated. The language model returned an empty response. "
                "Please review the task execution manually."
            )

        return response.strip()

    def log_lesson(self, lessons_path: Path, telemetry: ExecutionTelemetry) -> bool:
        """Generate, format and append the lesson for one task."""
        lesson_text = self.generate_lesson(telemetry)
        return append_lesson(lessons_path, format_lesson(telemetry, lesson_text))

    def run(self, target_root: Path, records: Iterable[ExecutionTelemetry]) -> int:
        """Record lessons for a batch of task executions.

        Args:
            target_root: Main repository root holding the lessons file.
            records: Telemetry in execution order.

        Returns:
            Number of lessons appended. Individual failures are counted out,
            not raised.

        Raises:
            LessonLogError: If target_root is not an existing directory.
        """
        root = Path(target_root)
        if not root.is_dir():
            raise LessonLogError(f"Lessons directory does not exist or is not a directory: {root}")

        lessons_path = root / self.filename
        logged = 0
        for telemetry in records:
            if self.log_lesson(lessons_path, telemetry):
                logged += 1

        logger.info(f"Logged lessons for {logged} task(s)")
        return logged
