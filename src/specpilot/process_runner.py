"""Thin subprocess wrapper used by every component that runs external commands.

A non-zero exit code is a normal outcome returned to the caller. Only a
command that cannot be started at all raises, as LaunchFailure.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from .failures import ErrorKind

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Exception raised when a required setting is missing or unusable."""

    pass


class LaunchFailure(Exception):
    """Exception raised when an external command cannot be started."""

    def __init__(self, command: str, reason: str, kind: ErrorKind = ErrorKind.LAUNCH_FAILURE):
        super().__init__(f"Failed to launch '{command}': {reason}")
        self.command = command
        self.reason = reason
        self.kind = kind


@dataclass
class ProcessResult:
    """Outcome of a finished external process."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    command: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True if the process exited with code 0."""
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr output."""
        return f"{self.stdout}\n{self.stderr}".strip()


class ProcessRunner:
    """Runs external commands and captures their output."""

    def run(
        self,
        command: str,
        args: Optional[Sequence[str]] = None,
        cwd: Optional[Path] = None,
    ) -> ProcessResult:
        """Run a command to completion.

        Args:
            command: Executable name or path.
            args: Arguments passed to the executable.
            cwd: Working directory for the process. The current process
                directory is never changed.

        Returns:
            ProcessResult with exit code and captured output.

        Raises:
            LaunchFailure: If the executable is missing or cannot be executed.
        """
        argv = [command, *(args or [])]
        logger.debug(f"Running {command} with {len(argv) - 1} argument(s) in {cwd or '.'}")

        try:
            completed = subprocess.run(
                argv,
                cwd=cwd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as exc:
            raise LaunchFailure(command, str(exc), ErrorKind.MISSING_BINARY) from exc
        except PermissionError as exc:
            raise LaunchFailure(command, str(exc), ErrorKind.PERMISSION_DENIED) from exc
        except OSError as exc:
            raise LaunchFailure(command, str(exc)) from exc

        logger.debug(f"{command} exited with code {completed.returncode}")
        return ProcessResult(
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            command=argv,
        )

    def run_command_line(self, command_line: str, cwd: Optional[Path] = None) -> ProcessResult:
        """Run a shell-style command string such as "pytest -q".

        The string is split with shlex rather than handed to a shell.

        Raises:
            ConfigurationError: If the command line is empty or unparsable.
            LaunchFailure: If the executable cannot be started.
        """
        try:
            parts = shlex.split(command_line, posix=True)
        except ValueError as exc:
            raise ConfigurationError(f"Cannot parse command '{command_line}': {exc}") from exc

        if not parts:
            raise ConfigurationError("Command line is empty")

        return self.run(parts[0], parts[1:], cwd=cwd)
