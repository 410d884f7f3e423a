"""Tests for the lessons log."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from specpilot.lessons import (
    LESSONS_HEADER,
    ExecutionTelemetry,
    LessonLogError,
    LessonPipeline,
    append_lesson,
    build_lesson_prompt,
    format_lesson,
    format_timestamp,
    parse_lessons,
    read_lessons,
)
from specpilot.llm_client import LLMAuthError, MockLLMClient


@pytest.fixture
def telemetry() -> ExecutionTelemetry:
    return ExecutionTelemetry(
        spec_name="calc",
        task_name="add",
        attempts=2,
        success=True,
        output="Edited calc.py",
    )


class TestFormatting:
    """Tests for lesson formatting and parsing."""

    def test_timestamp_format(self) -> None:
        """Test timestamps are UTC with milliseconds and a Z suffix."""
        moment = datetime(2024, 5, 1, 12, 30, 45, 123000, tzinfo=timezone.utc)

        assert format_timestamp(moment) == "2024-05-01T12:30:45.123Z"

    def test_section_layout(self, telemetry: ExecutionTelemetry) -> None:
        """Test the exact Markdown layout of a section."""
        section = format_lesson(telemetry, "Run the tests first.", timestamp="2024-05-01T12:30:45.123Z")

        assert section == (
            "\n## calc - 2024-05-01T12:30:45.123Z\n"
            "\n"
            "- **Task:** add\n"
            "- **Outcome:** Success (2 attempts)\n"
            "\n"
            "Run the tests first.\n"
            "\n"
            "---\n"
        )

    def test_single_attempt_failure(self) -> None:
        """Test singular attempt wording and failure outcome."""
        record = ExecutionTelemetry(spec_name="calc", task_name="div", attempts=1, success=False)

        section = format_lesson(record, "Guard against zero.", timestamp="t")

        assert "- **Outcome:** Failure (1 attempt)\n" in section

    def test_parse_reads_back_sections(self, telemetry: ExecutionTelemetry) -> None:
        """Test formatted sections parse back into entries."""
        failed = ExecutionTelemetry(spec_name="calc", task_name="div", attempts=3, success=False)
        text = (
            LESSONS_HEADER
            + format_lesson(telemetry, "First lesson.\n\nWith two paragraphs.", timestamp="2024-05-01T00:00:00.000Z")
            + format_lesson(failed, "Second lesson.", timestamp="2024-05-02T00:00:00.000Z")
        )

        entries = parse_lessons(text)

        assert len(entries) == 2
        assert entries[0].task_name == "add"
        assert entries[0].attempts == 2
        assert entries[0].success is True
        assert entries[0].lesson == "First lesson.\n\nWith two paragraphs."
        assert entries[1].task_name == "div"
        assert entries[1].success is False
        assert entries[1].timestamp == "2024-05-02T00:00:00.000Z"

    def test_prompt_includes_error(self) -> None:
        """Test the lesson request carries the error when present."""
        record = ExecutionTelemetry(
            spec_name="calc", task_name="div", attempts=3, success=False, error="Task failed after 3 attempts."
        )

        prompt = build_lesson_prompt(record)

        assert "Spec: calc" in prompt
        assert "Outcome: Failure" in prompt
        assert "Error: Task failed after 3 attempts." in prompt
        assert "No output available" in prompt


class TestAppendLesson:
    """Tests for append_lesson and read_lessons."""

    def test_creates_file_with_header(self, tmp_path: Path, telemetry: ExecutionTelemetry) -> None:
        """Test the first append writes the header once."""
        path = tmp_path / "LESSONS.md"

        assert append_lesson(path, format_lesson(telemetry, "one")) is True
        assert append_lesson(path, format_lesson(telemetry, "two")) is True

        content = path.read_text()
        assert content.startswith(LESSONS_HEADER)
        assert content.count("# Development Task Lessons") == 1
        assert [entry.lesson for entry in read_lessons(path)] == ["one", "two"]

    def test_existing_content_is_preserved(self, tmp_path: Path, telemetry: ExecutionTelemetry) -> None:
        """Test appending never rewrites earlier content."""
        path = tmp_path / "LESSONS.md"
        path.write_text("hand-written notes\n")

        append_lesson(path, format_lesson(telemetry, "lesson"))

        assert path.read_text().startswith("hand-written notes\n")

    def test_empty_section_rejected(self, tmp_path: Path) -> None:
        """Test an empty section is not written."""
        path = tmp_path / "LESSONS.md"

        assert append_lesson(path, "   ") is False
        assert not path.exists()

    def test_write_failure_returns_false(self, tmp_path: Path, telemetry: ExecutionTelemetry) -> None:
        """Test an unwritable location reports failure instead of raising."""
        path = tmp_path / "missing-dir" / "LESSONS.md"

        assert append_lesson(path, format_lesson(telemetry, "lesson")) is False

    def test_read_missing_file(self, tmp_path: Path) -> None:
        """Test a missing log has no lessons."""
        assert read_lessons(tmp_path / "LESSONS.md") == []


class TestLessonPipeline:
    """Tests for LessonPipeline."""

    def test_generate_lesson_uses_reply(self, telemetry: ExecutionTelemetry) -> None:
        """Test the model reply becomes the lesson text."""
        llm = MockLLMClient(responses=["  Mock lesson.  "])

        assert LessonPipeline(llm).generate_lesson(telemetry) == "Mock lesson."
        assert "Task: add" in llm.prompts[0]

    def test_missing_names_skip_generation(self) -> None:
        """Test missing identifiers produce a skip notice without calling the model."""
        llm = MockLLMClient()
        record = ExecutionTelemetry(spec_name="", task_name="add", attempts=1, success=True)

        text = LessonPipeline(llm).generate_lesson(record)

        assert text.startswith("Lesson generation skipped")
        assert llm.call_count == 0

    def test_api_error_fallback(self, telemetry: ExecutionTelemetry) -> None:
        """Test an API error yields fallback text."""
        llm = MockLLMClient()
        llm.should_fail = True
        llm.fail_error = LLMAuthError("LANGUAGE_MODEL_API_KEY environment variable is not set.")

        text = LessonPipeline(llm).generate_lesson(telemetry)

        assert text.startswith("Lesson generation failed due to API error")

    def test_empty_reply_fallback(self, telemetry: ExecutionTelemetry) -> None:
        """Test an empty reply yields fallback text."""
        text = LessonPipeline(MockLLMClient(responses=["   "])).generate_lesson(telemetry)

        assert text.startswith("No lesson could be generated.")

    def test_run_appends_each_record(self, tmp_path: Path) -> None:
        """Test every record is appended and counted."""
        records = [
            ExecutionTelemetry(spec_name="calc", task_name=f"task-{i}", attempts=1, success=True)
            for i in range(3)
        ]

        count = LessonPipeline(MockLLMClient(responses=["lesson"])).run(tmp_path, records)

        assert count == 3
        assert len(read_lessons(tmp_path / "LESSONS.md")) == 3

    def test_run_counts_failed_appends_out(self, tmp_path: Path, telemetry: ExecutionTelemetry) -> None:
        """Test a failed append is not counted."""
        pipeline = LessonPipeline(MockLLMClient(responses=["lesson"]))

        with patch("specpilot.lessons.append_lesson", side_effect=[True, False]):
            count = pipeline.run(tmp_path, [telemetry, telemetry])

        assert count == 1

    def test_run_custom_filename(self, tmp_path: Path, telemetry: ExecutionTelemetry) -> None:
        """Test the configured file name is used."""
        LessonPipeline(MockLLMClient(), filename="NOTES.md").run(tmp_path, [telemetry])

        assert (tmp_path / "NOTES.md").exists()

    def test_run_missing_root_raises(self, tmp_path: Path, telemetry: ExecutionTelemetry) -> None:
        """Test a missing root directory raises LessonLogError."""
        with pytest.raises(LessonLogError):
            LessonPipeline(MockLLMClient()).run(tmp_path / "missing", [telemetry])
