"""Shared test fixtures for spec-pilot tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional

import git
import pytest

from specpilot.spec import AgentConfig, Evaluation, Spec, Task


SAMPLE_SPEC_YAML = """\
aider_config:
  model: "gpt-4"
  architect_mode: false
  editable_files: ["src/*.py"]
  readonly_files: ["*.md"]
  retries: 5
  test_command: "pytest -q"

objective: |
  Implement a feature to parse and validate YAML specs.

implementation_details: |
  Use PyYAML for parsing and implement thorough validation.

tasks:
  - name: "implement-parsing"
    done: false
    prompt: |
      Implement the parse_spec function to read and parse YAML files.
    evaluation:
      type: "test"

  - name: "implement-validation"
    done: false
    prompt: |
      Implement validation for the parsed YAML structure.
    evaluation:
      type: "command"
      command: "python validate_test.py"
      check_prompt: "Does the validation correctly identify all required fields?"
"""


@pytest.fixture
def sample_spec_file(tmp_path: Path) -> Path:
    """Write a valid spec file and return its path."""
    specs_dir = tmp_path / "specs"
    specs_dir.mkdir()
    spec_path = specs_dir / "parser-feature.yaml"
    spec_path.write_text(SAMPLE_SPEC_YAML)
    return spec_path


@pytest.fixture
def git_repo(tmp_path: Path) -> git.Repo:
    """Create a temporary git repository with one commit."""
    repo_dir = tmp_path / "repo"
    repo_dir.mkdir()
    repo = git.Repo.init(repo_dir)

    # Configure git user for commits
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()

    readme = repo_dir / "README.md"
    readme.write_text("# Test repo\n")
    repo.index.add(["README.md"])
    repo.index.commit("Initial commit")

    return repo


@pytest.fixture
def make_spec() -> Callable[..., Spec]:
    """Factory for in-memory specs."""

    def _make(
        tasks: Optional[List[Task]] = None,
        retries: int = 3,
        test_command: Optional[str] = None,
    ) -> Spec:
        return Spec(
            aider_config=AgentConfig(
                model="gpt-4",
                architect_mode=False,
                editable_files=["src/*.py"],
                readonly_files=["README.md"],
                retries=retries,
                test_command=test_command,
            ),
            objective="Build a calculator.",
            implementation_details="Use plain Python.",
            tasks=tasks if tasks is not None else [Task(name="add", prompt="Implement add().")],
        )

    return _make


@pytest.fixture
def command_task() -> Task:
    """Task evaluated by a command plus a language-model check."""
    return Task(
        name="check-output",
        prompt="Print the answer.",
        evaluation=Evaluation(type="command", command="python check.py", check_prompt="Is the answer 42?"),
    )
