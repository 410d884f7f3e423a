"""Tests for language-model judgment of command output."""

from __future__ import annotations

import pytest

from specpilot.judge import JudgmentClient, build_judgment_prompt, interpret_response
from specpilot.llm_client import LLMRateLimitError, MockLLMClient


class TestBuildJudgmentPrompt:
    """Tests for build_judgment_prompt."""

    def test_contains_question_and_evidence(self) -> None:
        """Test the request carries the check, the output and the answer format."""
        prompt = build_judgment_prompt("Do all tests pass?", "5 passed")

        assert prompt.startswith("Do all tests pass?")
        assert "Command output:\n5 passed" in prompt
        assert prompt.endswith("Please respond with only 'yes' or 'no'.")


class TestInterpretResponse:
    """Tests for interpret_response."""

    @pytest.mark.parametrize("reply", ["yes", "Yes", "  YES\n"])
    def test_exact_yes(self, reply: str) -> None:
        """Test exact yes in any case passes."""
        assert interpret_response(reply).success is True

    @pytest.mark.parametrize("reply", ["no", "No", " NO "])
    def test_exact_no(self, reply: str) -> None:
        """Test exact no fails with the fixed message."""
        result = interpret_response(reply)

        assert result.success is False
        assert result.error == 'Language model evaluation returned "no"'

    @pytest.mark.parametrize(
        "reply",
        [
            "Yes, everything looks good.",
            "All checks pass.",
            "The tests succeeded.",
            "The output is correct.",
        ],
    )
    def test_positive_keywords(self, reply: str) -> None:
        """Test non-exact replies with an accepted keyword pass."""
        assert interpret_response(reply).success is True

    def test_unconfirmed_reply_fails_with_quote(self) -> None:
        """Test an ambiguous reply without keywords fails and quotes the reply."""
        reply = "Unfortunately, I cannot confirm success."

        result = interpret_response(reply)

        assert result.success is False
        assert result.unavailable is False
        assert result.error == (
            "Language model evaluation could not confirm success. "
            f'Response: "{reply}..."'
        )

    def test_long_reply_is_truncated(self) -> None:
        """Test the quoted reply is cut to 100 characters."""
        reply = "z" * 250

        result = interpret_response(reply)

        assert f'"{"z" * 100}..."' in result.error
        assert "z" * 101 not in result.error


class TestJudgmentClient:
    """Tests for JudgmentClient."""

    def test_yes_passes(self) -> None:
        """Test a yes reply is a pass and the prompt reaches the model."""
        llm = MockLLMClient(responses=["yes"])

        result = JudgmentClient(llm).judge("Is the answer 42?", "42")

        assert result.success is True
        assert "Is the answer 42?" in llm.prompts[0]
        assert "42" in llm.prompts[0]

    def test_api_failure_is_unavailable(self) -> None:
        """Test an API error yields an inconclusive, reviewable result."""
        llm = MockLLMClient()
        llm.should_fail = True
        llm.fail_error = LLMRateLimitError("API rate limit exceeded (HTTP 429)")

        result = JudgmentClient(llm).judge("Is the answer 42?", "42")

        assert result.success is False
        assert result.unavailable is True
        assert result.error.startswith("Language model evaluation skipped due to API error")
        assert "review the task output manually" in result.error
