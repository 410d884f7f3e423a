"""Failure kinds and best-effort classification of coding agent failures.

The stderr patterns below are heuristics for user-facing messages only. They
are not a contract with the agent binary, and anything unrecognized falls back
to a generic "exited with code N" description.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Stable category for the reason a task attempt failed."""

    CONFIGURATION = "configuration"
    LAUNCH_FAILURE = "launch_failure"
    MISSING_BINARY = "missing_binary"
    PERMISSION_DENIED = "permission_denied"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"
    EVALUATION_FAILURE = "evaluation_failure"
    JUDGMENT_UNAVAILABLE = "judgment_unavailable"
    RESOURCE_ACQUISITION = "resource_acquisition"


_MISSING_BINARY_PATTERNS: tuple[str, ...] = (
    "command not found",
)
_AUTH_PATTERNS: tuple[str, ...] = (
    "api key",
    "api_key",
    "authentication",
    "unauthorized",
)
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "rate limit",
    "ratelimit",
    "too many requests",
)
_TIMEOUT_PATTERNS: tuple[str, ...] = (
    "timeout",
    "timed out",
)


@dataclass(frozen=True)
class AgentFailure:
    """Classified agent failure with a human-readable message."""

    kind: ErrorKind
    message: str


def _first_match(haystack: str, patterns: tuple[str, ...]) -> Optional[str]:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None


def classify_agent_exit(agent: str, exit_code: int, stderr: str) -> AgentFailure:
    """Describe a non-zero exit of the coding agent.

    Args:
        agent: Display name of the agent binary (e.g. "aider").
        exit_code: Process exit code.
        stderr: Captured standard error.

    Returns:
        AgentFailure with the matched kind and message.
    """
    haystack = stderr.lower()
    detail = stderr.strip()

    if _first_match(haystack, _MISSING_BINARY_PATTERNS):
        return AgentFailure(
            ErrorKind.MISSING_BINARY,
            f"{agent} is not installed or not in PATH. "
            f"Please ensure {agent} is installed and accessible.",
        )
    if _first_match(haystack, _AUTH_PATTERNS):
        return AgentFailure(
            ErrorKind.AUTHENTICATION,
            f"{agent} API key error: {detail}. Please check your API key configuration.",
        )
    if _first_match(haystack, _RATE_LIMIT_PATTERNS):
        return AgentFailure(
            ErrorKind.RATE_LIMIT,
            f"API rate limit exceeded: {detail}. Please try again later.",
        )
    if _first_match(haystack, _TIMEOUT_PATTERNS):
        return AgentFailure(
            ErrorKind.TIMEOUT,
            f"{agent} execution timed out: {detail}. "
            "Consider simplifying the task or increasing timeout limits.",
        )
    return AgentFailure(
        ErrorKind.NON_ZERO_EXIT,
        f"{agent} exited with code {exit_code}: {detail}",
    )


def describe_launch_failure(agent: str, kind: ErrorKind, reason: str) -> AgentFailure:
    """Describe an agent binary that could not be started at all."""
    if kind == ErrorKind.MISSING_BINARY:
        message = f"{agent} executable not found. Please ensure {agent} is installed and in your PATH."
    elif kind == ErrorKind.PERMISSION_DENIED:
        message = f"Permission denied when executing {agent}. Check file permissions."
    else:
        message = f"Error executing {agent}: {reason}"
    return AgentFailure(kind, message)
