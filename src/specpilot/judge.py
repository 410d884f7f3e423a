"""Yes/no judgment of command output using the language model."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .llm_client import LLMClient, LLMClientError

logger = logging.getLogger(__name__)

# Accepted as success when the reply is neither exactly "yes" nor "no"
POSITIVE_KEYWORDS: tuple[str, ...] = ("yes", "pass", "succeed", "correct")

RESPONSE_QUOTE_LIMIT = 100


@dataclass
class JudgmentResult:
    """Outcome of a language-model judgment."""

    success: bool
    error: Optional[str] = None
    raw_response: Optional[str] = None
    unavailable: bool = False


def build_judgment_prompt(check_prompt: str, evidence: str) -> str:
    """Combine the check question and the evidence into a single request."""
    return (
        f"{check_prompt}\n\n"
        f"Command output:\n{evidence}\n\n"
        "Please respond with only 'yes' or 'no'."
    )


def interpret_response(response: str) -> JudgmentResult:
    """Normalize a free-form reply into a pass/fail judgment.

    Exact "yes"/"no" replies are taken at face value. Anything else is
    resolved by keyword matching, so an ambiguous reply never stays
    unresolved.
    """
    normalized = response.lower().strip()

    if normalized == "yes":
        return JudgmentResult(success=True, raw_response=response)
    if normalized == "no":
        logger.error(f'Language model evaluation failed with response: "{response}"')
        return JudgmentResult(
            success=False,
            error='Language model evaluation returned "no"',
            raw_response=response,
        )

    logger.warning(
        f'Language model returned unexpected response: "{response}". Expected \'yes\' or \'no\'.'
    )
    success = any(keyword in normalized for keyword in POSITIVE_KEYWORDS)
    if success:
        return JudgmentResult(success=True, raw_response=response)

    return JudgmentResult(
        success=False,
        error=(
            "Language model evaluation could not confirm success. "
            f'Response: "{response[:RESPONSE_QUOTE_LIMIT]}..."'
        ),
        raw_response=response,
    )


class JudgmentClient:
    """Asks the language model whether command output satisfies a check."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    def judge(self, check_prompt: str, evidence: str) -> JudgmentResult:
        """Judge evidence against a yes/no question.

        Args:
            check_prompt: The question to answer, e.g. "Do all tests pass?".
            evidence: Captured command output.

        Returns:
            JudgmentResult. When the API call itself fails, success is False
            and ``unavailable`` is set: the outcome is inconclusive and needs
            manual review rather than another agent attempt.
        """
        logger.info("Evaluating with language model...")

        try:
            response = self.llm.chat(build_judgment_prompt(check_prompt, evidence))
        except LLMClientError as exc:
            logger.error(f"Language model API error: {exc}")
            return JudgmentResult(
                success=False,
                error=(
                    f"Language model evaluation skipped due to API error: {exc}. "
                    "Please review the task output manually."
                ),
                unavailable=True,
            )

        return interpret_response(response)
