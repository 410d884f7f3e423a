"""Spec and project-settings template generation."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from .spec import SETTINGS_FILENAME

logger = logging.getLogger(__name__)

PRESETS = ("function", "test", "docs")

_SPEC_TEMPLATE = """\
# spec-pilot task spec
# Generated on: {timestamp}

aider_config:
  model: '' # AI model to use (e.g., 'gpt-4')
  architect_mode: false # Set to true for high-level architectural guidance
  editable_files: [] # Files aider can modify (e.g., ['src/*.py'])
  readonly_files: [] # Files aider can read but not modify (e.g., ['docs/*.md'])
  retries: 10 # Attempts per task before the run stops
  test_command: '' # Optional command to run tests (e.g., 'pytest -q')

objective: |
  # Describe the high-level goal here.
  # Example: Implement a REST API for user management with authentication.

implementation_details: |
  # Add technical notes and requirements here.
  # Include any specific constraints or dependencies that apply to all tasks.

tasks:
  - name: 'task-1'
    done: false # Set to true once completed
    prompt: |
      # Describe what to do for this task.
      # Be specific about the requirements and expected outcome.
"""

_PRESET_TASKS = {
    "function": """
  - name: 'implement-function'
    done: false
    prompt: |
      # Implement a new function with the following requirements:
      # - Function name: [specify name]
      # - Parameters: [list parameters and types]
      # - Return value: [describe return value and type]
      # - Error handling: [describe how errors should be handled]
    evaluation:
      type: 'test'
      # Uses the test_command from aider_config
""",
    "test": """
  - name: 'write-tests'
    done: false
    prompt: |
      # Write unit tests for the following code:
      # - Target file/function: [specify target]
      # - Test cases: [list specific test cases to cover]
      # - Coverage requirements: [specify expected coverage]
    evaluation:
      type: 'command'
      command: 'pytest --cov'
      check_prompt: 'Does the test coverage meet the requirements?'
""",
    "docs": """
  - name: 'generate-documentation'
    done: false
    prompt: |
      # Generate documentation for the following code:
      # - Target file/component: [specify target]
      # - Required sections: [list sections like Overview, API, Examples]
      # - Output location: [specify where docs should be saved]
    evaluation:
      type: 'command'
      command: 'python -m mkdocs build --strict'
      check_prompt: 'Does the documentation follow the required format and cover all specified sections?'
""",
}

_SETTINGS_TEMPLATE = """\
# spec-pilot project settings
# Values here are defaults for every spec in this repository.
# Specs override scalar values; file lists are merged.

aider_config:
  model: 'gpt-4'
  architect_mode: false
  editable_files: []
  readonly_files: []
  retries: 10
  test_command: 'pytest -q'
"""


def render_spec_template(preset: Optional[str] = None) -> str:
    """Render spec template text, optionally with a preset task appended.

    Raises:
        ValueError: If the preset is unknown.
    """
    if preset is not None and preset not in PRESETS:
        raise ValueError(f"Unknown preset '{preset}'. Choose one of: {', '.join(PRESETS)}")

    content = _SPEC_TEMPLATE.format(timestamp=datetime.now().isoformat(timespec="seconds"))
    if preset:
        content += _PRESET_TASKS[preset]
    return content


def generate_spec_template(spec_name: str, specs_dir: Path, preset: Optional[str] = None) -> Path:
    """Write a spec template to ``<specs_dir>/<spec_name>.yaml``.

    Args:
        spec_name: Name of the spec; also the branch/worktree name at run time.
        specs_dir: Directory for spec files, created if missing.
        preset: Optional preset task type ('function', 'test' or 'docs').

    Returns:
        Path to the generated file.

    Raises:
        ValueError: If the preset is unknown.
        FileExistsError: If the spec file already exists.
    """
    content = render_spec_template(preset)

    specs_dir.mkdir(parents=True, exist_ok=True)
    spec_path = specs_dir / f"{spec_name}.yaml"
    if spec_path.exists():
        raise FileExistsError(f"Spec file already exists: {spec_path}")

    spec_path.write_text(content, encoding="utf-8")
    logger.info(f"Spec template written to {spec_path}")
    return spec_path


def generate_project_settings(repo_path: Path) -> Path:
    """Write the project settings template to the repository root.

    Raises:
        FileExistsError: If the settings file already exists.
    """
    settings_path = repo_path / SETTINGS_FILENAME
    if settings_path.exists():
        raise FileExistsError(f"Project settings already exist: {settings_path}")

    settings_path.write_text(_SETTINGS_TEMPLATE, encoding="utf-8")
    logger.info(f"Project settings template written to {settings_path}")
    return settings_path
