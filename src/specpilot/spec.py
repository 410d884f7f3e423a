"""Task spec model, YAML loading and validation.

A spec file describes the agent configuration, the shared objective and
implementation notes, and an ordered list of tasks. Project-wide defaults
can live in a settings file at the repository root; they are merged into
each spec before validation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

logger = logging.getLogger(__name__)

EVALUATION_TYPES = ("test", "command")

SETTINGS_FILENAME = "specpilot.yaml"


class SpecError(Exception):
    """Exception raised when a spec cannot be parsed or fails validation."""

    pass


def _unique(items: Iterable[str]) -> List[str]:
    """Drop duplicates while keeping first-seen order."""
    seen: Dict[str, None] = {}
    for item in items:
        seen.setdefault(item, None)
    return list(seen)


@dataclass
class Evaluation:
    """How a task's result is checked: a test run or a custom command."""

    type: str
    command: Optional[str] = None
    check_prompt: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        if self.command is not None:
            data["command"] = self.command
        if self.check_prompt is not None:
            data["check_prompt"] = self.check_prompt
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Evaluation:
        return cls(
            type=data.get("type", ""),
            command=data.get("command"),
            check_prompt=data.get("check_prompt"),
        )


@dataclass
class Task:
    """One unit of work for the coding agent."""

    name: str
    prompt: str
    done: bool = False
    evaluation: Optional[Evaluation] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "done": self.done, "prompt": self.prompt}
        if self.evaluation is not None:
            data["evaluation"] = self.evaluation.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Task:
        evaluation = data.get("evaluation")
        return cls(
            name=data["name"],
            prompt=data["prompt"],
            done=bool(data.get("done", False)),
            evaluation=Evaluation.from_dict(evaluation) if evaluation is not None else None,
        )


@dataclass
class AgentConfig:
    """Settings passed to the coding agent for every task."""

    model: str
    architect_mode: bool = False
    editable_files: List[str] = field(default_factory=list)
    readonly_files: List[str] = field(default_factory=list)
    retries: int = 10
    test_command: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "model": self.model,
            "architect_mode": self.architect_mode,
            "editable_files": list(self.editable_files),
            "readonly_files": list(self.readonly_files),
            "retries": self.retries,
        }
        if self.test_command:
            data["test_command"] = self.test_command
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AgentConfig:
        return cls(
            model=data["model"],
            architect_mode=data["architect_mode"],
            editable_files=_unique(data["editable_files"]),
            readonly_files=_unique(data["readonly_files"]),
            retries=data["retries"],
            test_command=data.get("test_command") or None,
        )


@dataclass
class Spec:
    """Validated task plan."""

    aider_config: AgentConfig
    objective: str
    tasks: List[Task]
    implementation_details: str = ""

    @property
    def pending_tasks(self) -> List[Task]:
        """Tasks not yet marked done, in spec order."""
        return [task for task in self.tasks if not task.done]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "aider_config": self.aider_config.to_dict(),
            "objective": self.objective,
            "implementation_details": self.implementation_details,
            "tasks": [task.to_dict() for task in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Spec:
        """Build a Spec from already-validated data."""
        return cls(
            aider_config=AgentConfig.from_dict(data["aider_config"]),
            objective=data["objective"],
            implementation_details=data.get("implementation_details") or "",
            tasks=[Task.from_dict(task) for task in data["tasks"]],
        )


# =============================================================================
# Validation
# =============================================================================


def _require(obj: Dict[str, Any], fields: Iterable[str], name: str) -> None:
    for key in fields:
        if key not in obj or obj[key] is None:
            raise SpecError(f"Missing required field: {name}.{key}")


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def validate_aider_config(config: Any) -> None:
    """Validate the aider_config block.

    Raises:
        SpecError: On the first problem found.
    """
    if not isinstance(config, dict):
        raise SpecError("aider_config must be a mapping")

    _require(
        config,
        ["model", "architect_mode", "editable_files", "readonly_files", "retries"],
        "aider_config",
    )

    if not isinstance(config["model"], str):
        raise SpecError("aider_config.model must be a string")
    if config["model"].strip() == "":
        raise SpecError("aider_config.model cannot be empty")
    if not isinstance(config["architect_mode"], bool):
        raise SpecError("aider_config.architect_mode must be a boolean")
    if not _is_string_list(config["editable_files"]):
        raise SpecError("aider_config.editable_files must be a list of strings")
    if not _is_string_list(config["readonly_files"]):
        raise SpecError("aider_config.readonly_files must be a list of strings")

    retries = config["retries"]
    if isinstance(retries, bool) or not isinstance(retries, int) or retries < 0:
        raise SpecError("aider_config.retries must be a non-negative integer")

    test_command = config.get("test_command")
    if test_command is not None and not isinstance(test_command, str):
        raise SpecError("aider_config.test_command must be a string if provided")


def validate_evaluation(evaluation: Any, index: int) -> None:
    """Validate a task's evaluation block."""
    name = f"tasks[{index}].evaluation"
    if not isinstance(evaluation, dict):
        raise SpecError(f"{name} must be a mapping")

    _require(evaluation, ["type"], name)
    if evaluation["type"] not in EVALUATION_TYPES:
        raise SpecError(f"{name}.type must be either 'test' or 'command'")

    if evaluation["type"] == "command":
        _require(evaluation, ["command", "check_prompt"], name)
        if not _is_non_empty_string(evaluation["command"]):
            raise SpecError(f"{name}.command must be a non-empty string")
        if not _is_non_empty_string(evaluation["check_prompt"]):
            raise SpecError(f"{name}.check_prompt must be a non-empty string")


def validate_tasks(tasks: Any) -> None:
    """Validate the task list, including name uniqueness."""
    if not isinstance(tasks, list):
        raise SpecError("tasks must be a list")
    if not tasks:
        raise SpecError("tasks list cannot be empty")

    seen: Dict[str, int] = {}
    for index, task in enumerate(tasks):
        if not isinstance(task, dict):
            raise SpecError(f"tasks[{index}] must be a mapping")

        _require(task, ["name", "prompt"], f"tasks[{index}]")
        if not _is_non_empty_string(task["name"]):
            raise SpecError(f"tasks[{index}].name must be a non-empty string")
        if not _is_non_empty_string(task["prompt"]):
            raise SpecError(f"tasks[{index}].prompt must be a non-empty string")
        if "done" in task and task["done"] is not None and not isinstance(task["done"], bool):
            raise SpecError(f"tasks[{index}].done must be a boolean if provided")
        if task.get("evaluation") is not None:
            validate_evaluation(task["evaluation"], index)

        name = task["name"]
        if name in seen:
            raise SpecError(
                f"tasks[{index}].name '{name}' duplicates tasks[{seen[name]}].name"
            )
        seen[name] = index


def validate_spec_data(data: Any) -> None:
    """Validate a raw spec mapping (after project settings are merged in)."""
    if not isinstance(data, dict):
        raise SpecError("Empty or invalid YAML file")

    _require(data, ["aider_config", "objective", "tasks"], "spec")
    validate_aider_config(data["aider_config"])

    if not isinstance(data["objective"], str):
        raise SpecError("spec.objective must be a string")
    details = data.get("implementation_details")
    if details is not None and not isinstance(details, str):
        raise SpecError("spec.implementation_details must be a string")

    validate_tasks(data["tasks"])


# =============================================================================
# Project settings
# =============================================================================


def load_project_settings(repo_path: Path, filename: str = SETTINGS_FILENAME) -> Optional[Dict[str, Any]]:
    """Read the project-wide aider_config defaults, if a settings file exists.

    Args:
        repo_path: Repository root holding the settings file.
        filename: Settings file name.

    Returns:
        The aider_config mapping, or None when there is no settings file.

    Raises:
        SpecError: If the file exists but is not valid YAML or not a mapping.
    """
    settings_path = Path(repo_path) / filename
    if not settings_path.exists():
        return None

    try:
        with open(settings_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise SpecError(f"Invalid project settings file {settings_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise SpecError(f"Project settings file {settings_path} must be a mapping")

    config = data.get("aider_config", {}) or {}
    if not isinstance(config, dict):
        raise SpecError(f"aider_config in {settings_path} must be a mapping")

    logger.debug(f"Loaded project settings from {settings_path}")
    return config


def merge_agent_config(
    project: Optional[Dict[str, Any]],
    spec: Optional[Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    """Merge project-wide defaults with a spec's own aider_config.

    Spec scalars override project values, file lists are concatenated
    (project first, duplicates dropped) and test_command is inherited when
    the spec does not set one.
    """
    if not project:
        return spec
    if spec is None:
        return dict(project)

    merged = dict(project)
    for key, value in spec.items():
        if key in ("editable_files", "readonly_files"):
            base = project.get(key) or []
            if isinstance(base, list) and isinstance(value, list):
                merged[key] = _unique([*base, *value])
                continue
        if key == "test_command" and not value:
            continue
        merged[key] = value
    return merged


# =============================================================================
# Loading
# =============================================================================


def parse_spec(text: str, project_settings: Optional[Dict[str, Any]] = None) -> Spec:
    """Parse and validate spec YAML text.

    Raises:
        SpecError: If the YAML is malformed or the spec is invalid.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        location = f" at line {mark.line + 1}, column {mark.column + 1}" if mark else ""
        raise SpecError(f"YAML parsing error{location}: {getattr(exc, 'problem', exc)}") from exc

    if isinstance(data, dict):
        merged = merge_agent_config(project_settings, data.get("aider_config"))
        if merged is not None:
            data = {**data, "aider_config": merged}

    validate_spec_data(data)
    return Spec.from_dict(data)


def load_spec(path: Path, repo_path: Optional[Path] = None) -> Spec:
    """Load a spec file, merging project settings from ``repo_path``.

    Args:
        path: Path to the YAML spec.
        repo_path: Repository root to read project settings from. Settings are
            skipped when not given.

    Raises:
        SpecError: If the file is missing, malformed or invalid.
    """
    spec_path = Path(path)
    if not spec_path.exists():
        raise SpecError(f"Spec file not found: {spec_path}")

    settings = load_project_settings(repo_path) if repo_path else None
    try:
        spec = parse_spec(spec_path.read_text(encoding="utf-8"), settings)
    except SpecError as exc:
        logger.error(f"Spec validation error in {spec_path}: {exc}")
        raise

    logger.info(f"Loaded spec {spec_path} with {len(spec.tasks)} task(s)")
    return spec
