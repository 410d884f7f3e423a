"""Branch and worktree management for git (GitPython) and Jujutsu (jj CLI).

Each spec runs on its own branch, checked out in a dedicated worktree next to
the main repository (``../worktrees/<name>`` by default), so the agent never
edits the user's checkout. In a Jujutsu repository the branch is a bookmark
and the worktree a jj workspace.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

import git
from git.exc import BadName, GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .process_runner import LaunchFailure, ProcessResult, ProcessRunner

logger = logging.getLogger(__name__)

JJ_BINARY = "jj"


class WorkspaceError(Exception):
    """Exception raised when a branch or worktree cannot be provided."""

    pass


@dataclass
class CleanupResult:
    """Result of releasing a spec's worktree and branch."""

    worktree_removed: bool = False
    branch_deleted: bool = False
    warnings: List[str] = field(default_factory=list)


class WorktreeManager:
    """Creates and removes per-spec branches and worktrees."""

    def __init__(self, repo_path: Path, worktrees_dir: Optional[Path] = None):
        """Initialize the manager.

        Args:
            repo_path: Path to the main repository.
            worktrees_dir: Directory holding worktrees. Defaults to
                ``<repo_path>/../worktrees``.

        Raises:
            WorkspaceError: If repo_path is not a git repository.
        """
        self.repo_path = Path(repo_path).resolve()

        try:
            self.repo = git.Repo(self.repo_path)
        except (InvalidGitRepositoryError, NoSuchPathError) as exc:
            raise WorkspaceError(
                f"Not a git repository: {self.repo_path}. "
                "Ensure you're in the root of a valid git repository."
            ) from exc

        self.worktrees_dir = Path(worktrees_dir).resolve() if worktrees_dir else self.repo_path.parent / "worktrees"
        logger.debug(f"WorktreeManager initialized at: {self.repo_path}")

    def worktree_path(self, name: str) -> Path:
        """Path of the worktree for a spec name."""
        return self.worktrees_dir / name

    def list_worktrees(self) -> List[Path]:
        """Paths of all worktrees registered with the repository."""
        output = self.repo.git.worktree("list", "--porcelain")
        paths = []
        for line in output.splitlines():
            if line.startswith("worktree "):
                paths.append(Path(line[len("worktree "):]).resolve())
        return paths

    def _is_registered(self, path: Path) -> bool:
        return path.resolve() in self.list_worktrees()

    def branch_exists(self, name: str) -> bool:
        """Check whether a local branch exists."""
        return name in [head.name for head in self.repo.heads]

    def acquire(self, name: str) -> Path:
        """Provide the branch and worktree for a spec, creating them if needed.

        Calling this again for the same name reuses the existing branch and
        worktree and returns the same path.

        Args:
            name: Spec name used for both branch and worktree directory.

        Returns:
            Absolute path of the worktree.

        Raises:
            WorkspaceError: If the branch or worktree cannot be created.
        """
        path = self.worktree_path(name)

        if self.branch_exists(name):
            logger.info(f"Branch {name} already exists, continuing with worktree creation")
        else:
            try:
                self.repo.create_head(name)
            except (GitCommandError, BadName, ValueError, OSError) as exc:
                raise WorkspaceError(f"Failed to create branch '{name}': {exc}") from exc
            logger.info(f"Created branch {name}")

        try:
            if self._is_registered(path):
                if path.exists():
                    logger.info(f"Reusing worktree for {name} at {path}")
                    return path
                # Registered but deleted from disk
                self.repo.git.worktree("prune")

            if path.exists():
                raise WorkspaceError(
                    f"Worktree path '{path}' already exists. "
                    "Remove it manually or use a different spec name."
                )

            path.parent.mkdir(parents=True, exist_ok=True)
            self.repo.git.worktree("add", str(path), name)
        except GitCommandError as exc:
            stderr = (exc.stderr or str(exc)).strip()
            raise WorkspaceError(f"Failed to create worktree for '{name}': {stderr}") from exc
        except OSError as exc:
            raise WorkspaceError(f"Failed to create worktree for '{name}': {exc}") from exc

        logger.info(f"Created worktree for {name} at {path}")
        return path

    def release(self, name: str) -> CleanupResult:
        """Remove a spec's worktree and delete its branch.

        Best effort: anything missing or refused is logged as a warning and
        reported in the result, never raised.
        """
        result = CleanupResult()
        path = self.worktree_path(name)

        try:
            if self._is_registered(path):
                self.repo.git.worktree("remove", str(path))
                result.worktree_removed = True
                logger.info(f"Removed worktree for {name}")
            else:
                result.warnings.append(
                    f"Worktree '{path}' does not exist. It may have been already removed."
                )
        except GitCommandError as exc:
            result.warnings.append(f"Failed to remove worktree: {(exc.stderr or str(exc)).strip()}")

        try:
            if self.branch_exists(name):
                self.repo.delete_head(name)
                result.branch_deleted = True
                logger.info(f"Deleted branch {name}")
            else:
                result.warnings.append(
                    f"Branch '{name}' not found. It may have been already deleted."
                )
        except GitCommandError as exc:
            result.warnings.append(
                f"Cannot delete branch '{name}'. It may be checked out or have unmerged changes: "
                f"{(exc.stderr or str(exc)).strip()}"
            )

        for warning in result.warnings:
            logger.warning(warning)
        return result


class JujutsuWorkspaceManager:
    """Creates and removes per-spec bookmarks and workspaces with the jj CLI.

    Mirrors WorktreeManager for repositories managed by Jujutsu: a bookmark
    named after the spec, and a jj workspace of the same name checked out at
    ``<worktrees_dir>/<name>``.
    """

    def __init__(
        self,
        repo_path: Path,
        worktrees_dir: Optional[Path] = None,
        runner: Optional[ProcessRunner] = None,
        binary: str = JJ_BINARY,
    ):
        self.repo_path = Path(repo_path).resolve()
        self.worktrees_dir = Path(worktrees_dir).resolve() if worktrees_dir else self.repo_path.parent / "worktrees"
        self.runner = runner or ProcessRunner()
        self.binary = binary

    def worktree_path(self, name: str) -> Path:
        """Path of the workspace for a spec name."""
        return self.worktrees_dir / name

    def _jj(self, *args: str, cwd: Optional[Path] = None) -> ProcessResult:
        try:
            return self.runner.run(self.binary, list(args), cwd=cwd or self.repo_path)
        except LaunchFailure as exc:
            raise WorkspaceError(f"Failed to run {self.binary}: {exc.reason}") from exc

    def list_workspaces(self) -> List[str]:
        """Names of the workspaces known to the repository."""
        result = self._jj("workspace", "list")
        if not result.ok:
            raise WorkspaceError(f"Failed to list workspaces: {result.stderr.strip()}")
        names = []
        for line in result.stdout.splitlines():
            name, sep, _ = line.partition(":")
            if sep and name.strip():
                names.append(name.strip())
        return names

    def acquire(self, name: str) -> Path:
        """Provide the bookmark and workspace for a spec, creating them if needed.

        Raises:
            WorkspaceError: If the bookmark or workspace cannot be created.
        """
        path = self.worktree_path(name)

        result = self._jj("bookmark", "create", name, "-r", "@")
        if result.ok:
            logger.info(f"Created bookmark {name}")
        elif "already exists" in result.stderr:
            logger.info(f"Bookmark {name} already exists, continuing with workspace creation")
        else:
            raise WorkspaceError(f"Failed to create bookmark '{name}': {result.stderr.strip()}")

        if name in self.list_workspaces():
            if path.exists():
                logger.info(f"Reusing workspace for {name} at {path}")
                return path
            raise WorkspaceError(
                f"Workspace '{name}' is registered but '{path}' is missing. "
                f"Run 'jj workspace forget {name}' and try again."
            )

        if path.exists():
            raise WorkspaceError(
                f"Worktree path '{path}' already exists. "
                "Remove it manually or use a different spec name."
            )

        path.parent.mkdir(parents=True, exist_ok=True)
        result = self._jj("workspace", "add", "--name", name, "--revision", name, str(path))
        if not result.ok:
            raise WorkspaceError(f"Failed to create workspace for '{name}': {result.stderr.strip()}")

        logger.info(f"Created workspace for {name} at {path}")
        return path

    def release(self, name: str) -> CleanupResult:
        """Forget a spec's workspace, delete its directory and its bookmark.

        Best effort, like WorktreeManager.release. The workspace is
        snapshotted before it is forgotten, so its last changes stay in the
        repository.
        """
        result = CleanupResult()
        path = self.worktree_path(name)

        try:
            if name in self.list_workspaces():
                if path.exists():
                    self._jj("status", cwd=path)
                forgotten = self._jj("workspace", "forget", name)
                if forgotten.ok:
                    if path.exists():
                        shutil.rmtree(path)
                    result.worktree_removed = True
                    logger.info(f"Removed workspace for {name}")
                else:
                    result.warnings.append(f"Failed to remove worktree: {forgotten.stderr.strip()}")
            else:
                result.warnings.append(
                    f"Worktree '{path}' does not exist. It may have been already removed."
                )
        except (WorkspaceError, OSError) as exc:
            result.warnings.append(f"Failed to remove worktree: {exc}")

        try:
            deleted = self._jj("bookmark", "delete", name)
            if deleted.ok:
                result.branch_deleted = True
                logger.info(f"Deleted bookmark {name}")
            elif "no such bookmark" in deleted.stderr.lower() or "not found" in deleted.stderr.lower():
                result.warnings.append(f"Branch '{name}' not found. It may have been already deleted.")
            else:
                result.warnings.append(f"Failed to delete branch '{name}': {deleted.stderr.strip()}")
        except WorkspaceError as exc:
            result.warnings.append(str(exc))

        for warning in result.warnings:
            logger.warning(warning)
        return result


def detect_vcs(repo_path: Path, runner: Optional[ProcessRunner] = None, binary: str = JJ_BINARY) -> str:
    """Return "jj" for a Jujutsu repository, otherwise "git".

    A ``.jj`` directory decides immediately; otherwise ``jj status`` is tried,
    and a missing jj binary or a failing status means git.
    """
    repo_path = Path(repo_path)
    if (repo_path / ".jj").is_dir():
        return "jj"

    runner = runner or ProcessRunner()
    try:
        result = runner.run(binary, ["status"], cwd=repo_path)
    except LaunchFailure as exc:
        logger.debug(f"Jujutsu not detected ({exc.reason}), defaulting to git")
        return "git"

    if result.ok:
        return "jj"
    logger.debug(f"Jujutsu status exited with code {result.exit_code}, defaulting to git")
    return "git"


def open_workspace(
    repo_path: Path,
    worktrees_dir: Optional[Path] = None,
    runner: Optional[ProcessRunner] = None,
) -> Union[WorktreeManager, JujutsuWorkspaceManager]:
    """Pick the workspace manager matching the repository's version control.

    Raises:
        WorkspaceError: If a git repository is expected but not found.
    """
    runner = runner or ProcessRunner()
    if detect_vcs(repo_path, runner) == "jj":
        logger.info("Using Jujutsu for branch and workspace management")
        return JujutsuWorkspaceManager(repo_path, worktrees_dir, runner)
    return WorktreeManager(repo_path, worktrees_dir)


class MockWorktreeManager:
    """Mock worktree manager for testing without git."""

    def __init__(self, root: Path):
        """Initialize the mock.

        Args:
            root: Directory under which fake worktrees are created.
        """
        self.root = Path(root)
        self.acquired: List[str] = []
        self.released: List[str] = []
        self.fail_acquire: Optional[str] = None

    def acquire(self, name: str) -> Path:
        """Create (or reuse) a plain directory standing in for a worktree."""
        if self.fail_acquire:
            raise WorkspaceError(self.fail_acquire)
        self.acquired.append(name)
        path = self.root / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def release(self, name: str) -> CleanupResult:
        """Record the release."""
        self.released.append(name)
        return CleanupResult(worktree_removed=True, branch_deleted=True)
