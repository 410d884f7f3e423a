"""Configuration management for spec-pilot."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .agent import DEFAULT_AGENT_BINARY
from .lessons import DEFAULT_LESSONS_FILE
from .llm_client import (
    API_KEY_ENV,
    DEFAULT_ENDPOINT,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    DEFAULT_TIMEOUT,
    LLMClient,
)
from .spec import SETTINGS_FILENAME


def _env_number(name: str, default, cast, errors: list[str]):
    """Read a numeric environment variable, recording a message if it does not parse."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        errors.append(f"{name} must be {'an integer' if cast is int else 'a number'}, got {raw!r}")
        return default


@dataclass
class Config:
    """Runtime configuration settings for spec-pilot."""

    # API Keys
    llm_api_key: Optional[str] = None

    # Paths
    repo_path: Path = field(default_factory=Path.cwd)
    worktrees_dir: Optional[Path] = None

    # Language model settings
    llm_model: str = DEFAULT_MODEL
    llm_endpoint: str = DEFAULT_ENDPOINT
    llm_timeout: int = DEFAULT_TIMEOUT
    llm_temperature: float = DEFAULT_TEMPERATURE
    llm_max_tokens: int = DEFAULT_MAX_TOKENS

    # Coding agent
    agent_binary: str = DEFAULT_AGENT_BINARY

    # Lessons log
    lessons_file: str = DEFAULT_LESSONS_FILE

    # Runtime
    log_level: str = "INFO"

    # Environment values that could not be parsed
    env_errors: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls, repo_path: Optional[Path] = None) -> Config:
        """Load configuration from environment variables.

        Args:
            repo_path: Optional path to the main repository. Defaults to CWD.

        Returns:
            Config instance populated from environment.
        """
        load_dotenv()

        repo = Path(repo_path) if repo_path else Path.cwd()
        worktrees_dir = os.getenv("SPECPILOT_WORKTREES_DIR")
        env_errors: list[str] = []

        return cls(
            llm_api_key=os.getenv(API_KEY_ENV),
            repo_path=repo,
            worktrees_dir=Path(worktrees_dir) if worktrees_dir else None,
            llm_model=os.getenv("SPECPILOT_LLM_MODEL", DEFAULT_MODEL),
            llm_endpoint=os.getenv("SPECPILOT_LLM_ENDPOINT", DEFAULT_ENDPOINT),
            llm_timeout=_env_number("SPECPILOT_LLM_TIMEOUT", DEFAULT_TIMEOUT, int, env_errors),
            llm_temperature=_env_number("SPECPILOT_LLM_TEMPERATURE", DEFAULT_TEMPERATURE, float, env_errors),
            llm_max_tokens=_env_number("SPECPILOT_LLM_MAX_TOKENS", DEFAULT_MAX_TOKENS, int, env_errors),
            agent_binary=os.getenv("SPECPILOT_AGENT_BINARY", DEFAULT_AGENT_BINARY),
            lessons_file=os.getenv("SPECPILOT_LESSONS_FILE", DEFAULT_LESSONS_FILE),
            log_level=os.getenv("SPECPILOT_LOG_LEVEL", "INFO"),
            env_errors=env_errors,
        )

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors.

        A missing API key is not an error: evaluations that need the language
        model report it per task, and lessons fall back to a notice.

        Returns:
            List of validation error messages. Empty if valid.
        """
        errors = list(self.env_errors)

        if not self.repo_path.exists():
            errors.append(f"Repository path does not exist: {self.repo_path}")

        if not self.agent_binary.strip():
            errors.append("SPECPILOT_AGENT_BINARY cannot be empty")

        if not self.lessons_file.strip():
            errors.append("SPECPILOT_LESSONS_FILE cannot be empty")

        if self.llm_timeout <= 0:
            errors.append(f"SPECPILOT_LLM_TIMEOUT must be positive, got {self.llm_timeout}")

        if self.llm_max_tokens <= 0:
            errors.append(f"SPECPILOT_LLM_MAX_TOKENS must be positive, got {self.llm_max_tokens}")

        return errors

    @property
    def specs_dir(self) -> Path:
        """Directory where spec templates are generated."""
        return self.repo_path / "specs"

    @property
    def settings_file(self) -> Path:
        """Path to the project settings file."""
        return self.repo_path / SETTINGS_FILENAME

    @property
    def lessons_path(self) -> Path:
        """Path to the lessons log."""
        return self.repo_path / self.lessons_file

    def create_llm_client(self) -> LLMClient:
        """Build a completion client from these settings."""
        return LLMClient(
            api_key=self.llm_api_key,
            model=self.llm_model,
            temperature=self.llm_temperature,
            max_tokens=self.llm_max_tokens,
            timeout=self.llm_timeout,
            endpoint=self.llm_endpoint,
        )
