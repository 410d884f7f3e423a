"""CLI entrypoint for spec-pilot.

Two directories matter here:
1. "main repo" - the repository the user works in; specs, project settings
   and LESSONS.md live here.
2. "worktree" - the per-spec checkout (``../worktrees/<spec-name>``) where the
   coding agent makes its changes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .agent import AiderRunner
from .config import Config
from .evaluator import Evaluator
from .executor import RunReport, TaskExecutor, TaskStatus
from .judge import JudgmentClient
from .lessons import LessonPipeline, read_lessons
from .process_runner import ProcessRunner
from .spec import Spec, SpecError, Task, load_spec
from .templates import PRESETS, generate_project_settings, generate_spec_template
from .vcs import WorkspaceError, open_workspace

app = typer.Typer(
    name="specpilot",
    help="Run YAML task specs through an AI coding agent on an isolated git worktree.",
    add_completion=False,
)

console = Console()


def setup_logging(verbose: bool = False, level: str = "INFO") -> None:
    """Configure logging with Rich handler.

    Args:
        verbose: If True, set DEBUG level; otherwise use ``level``.
        level: Log level name from configuration.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"specpilot version {__version__}")
        raise typer.Exit()


def load_config(repo: Path) -> Config:
    """Resolve the repository path, load configuration and validate it."""
    repo_path = repo.resolve()
    if not repo_path.exists():
        console.print(f"[red]Error:[/red] Repository does not exist: {repo_path}")
        raise typer.Exit(1)

    config = Config.from_env(repo_path)
    errors = config.validate()
    if errors:
        console.print("[red]Configuration errors:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        raise typer.Exit(1)
    return config


def load_spec_or_exit(spec_file: Path, config: Config) -> Spec:
    """Load and validate a spec, exiting with status 1 on failure."""
    try:
        return load_spec(spec_file, repo_path=config.repo_path)
    except SpecError as e:
        console.print(f"[red]Error:[/red] Spec validation failed: {e}")
        raise typer.Exit(1)


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Run YAML task specs through an AI coding agent."""
    pass


@app.command()
def init(
    repo: Path = typer.Option(
        Path("."),
        "--repo",
        "-r",
        help="Path to the main repository.",
    ),
) -> None:
    """Generate a project settings template (specpilot.yaml)."""
    config = load_config(repo)
    try:
        settings_path = generate_project_settings(config.repo_path)
    except FileExistsError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]Project settings template created at:[/green] {settings_path}")


@app.command()
def generate(
    spec_name: str = typer.Argument(..., help="Name of the spec (also used as branch name)."),
    preset: Optional[str] = typer.Option(
        None,
        "--preset",
        "-p",
        help=f"Add a preset task: {', '.join(PRESETS)}.",
    ),
    repo: Path = typer.Option(
        Path("."),
        "--repo",
        "-r",
        help="Path to the main repository.",
    ),
) -> None:
    """Generate a YAML spec template under specs/."""
    config = load_config(repo)
    try:
        spec_path = generate_spec_template(spec_name, config.specs_dir, preset)
    except (ValueError, FileExistsError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]Spec template generated:[/green] {spec_path}")


@app.command()
def validate(
    spec_file: Path = typer.Argument(..., help="Path to the YAML spec."),
    repo: Path = typer.Option(
        Path("."),
        "--repo",
        "-r",
        help="Path to the main repository (for project settings).",
    ),
) -> None:
    """Validate a spec file and show the effective aider_config."""
    config = load_config(repo)
    spec = load_spec_or_exit(spec_file, config)

    console.print(f"[green]Spec is valid![/green] {len(spec.tasks)} task(s), {len(spec.pending_tasks)} pending")
    agent_config = spec.aider_config
    console.print("[yellow]Using aider_config:[/yellow]")
    console.print(f"[dim]Model:[/dim] {agent_config.model}")
    console.print(f"[dim]Architect mode:[/dim] {'yes' if agent_config.architect_mode else 'no'}")
    console.print(f"[dim]Editable files:[/dim] {', '.join(agent_config.editable_files) or '-'}")
    console.print(f"[dim]Read-only files:[/dim] {', '.join(agent_config.readonly_files) or '-'}")
    console.print(f"[dim]Retries:[/dim] {agent_config.retries}")
    console.print(f"[dim]Test command:[/dim] {agent_config.test_command or '-'}")


@app.command()
def run(
    spec_file: Path = typer.Argument(..., help="Path to the YAML spec."),
    repo: Path = typer.Option(
        Path("."),
        "--repo",
        "-r",
        help="Path to the main repository.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable debug logging.",
    ),
) -> None:
    """Execute a spec's pending tasks on the spec's branch and worktree."""
    config = load_config(repo)
    setup_logging(verbose, config.log_level)

    spec = load_spec_or_exit(spec_file, config)
    spec_name = spec_file.stem

    runner = ProcessRunner()
    try:
        workspace = open_workspace(config.repo_path, config.worktrees_dir, runner)
    except WorkspaceError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"\n[bold]Running spec '{spec_name}'[/bold]")
    console.print(f"[dim]Objective:[/dim] {spec.objective.strip().splitlines()[0][:60] if spec.objective.strip() else '-'}")
    console.print(f"[dim]Tasks:[/dim] {len(spec.pending_tasks)} pending of {len(spec.tasks)}")
    console.print(f"[dim]Worktree:[/dim] {workspace.worktree_path(spec_name)}")
    console.print(f"[dim]Lessons log:[/dim] {config.lessons_path}\n")

    llm = config.create_llm_client()
    executor = TaskExecutor(
        workspace=workspace,
        agent=AiderRunner(runner, binary=config.agent_binary),
        evaluator=Evaluator(runner, JudgmentClient(llm)),
        lessons=LessonPipeline(llm, filename=config.lessons_file),
        on_status=_print_status,
    )
    report = executor.execute_all(spec, spec_name, config.repo_path)

    _display_run_report(report)
    if not report.success:
        raise typer.Exit(1)


@app.command()
def cleanup(
    spec_name: str = typer.Argument(..., help="Name of the spec whose branch and worktree to remove."),
    repo: Path = typer.Option(
        Path("."),
        "--repo",
        "-r",
        help="Path to the main repository.",
    ),
) -> None:
    """Remove the branch and worktree created for a spec."""
    config = load_config(repo)
    try:
        workspace = open_workspace(config.repo_path, config.worktrees_dir)
    except WorkspaceError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    result = workspace.release(spec_name)

    if result.worktree_removed:
        console.print(f"[green]Removed worktree[/green] {workspace.worktree_path(spec_name)}")
    if result.branch_deleted:
        console.print(f"[green]Deleted branch[/green] {spec_name}")
    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")


@app.command()
def lessons(
    repo: Path = typer.Option(
        Path("."),
        "--repo",
        "-r",
        help="Path to the main repository.",
    ),
    limit: int = typer.Option(
        10,
        "--limit",
        "-n",
        help="Number of most recent lessons to show.",
    ),
) -> None:
    """Show the most recent recorded lessons."""
    config = load_config(repo)
    entries = read_lessons(config.lessons_path)

    if not entries:
        console.print(f"[dim]No lessons recorded in {config.lessons_path}[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("When", style="dim", width=24)
    table.add_column("Spec", width=20)
    table.add_column("Task", width=24)
    table.add_column("Outcome", width=14)
    table.add_column("Lesson")

    for entry in entries[-limit:]:
        outcome = "[green]Success[/green]" if entry.success else "[red]Failure[/red]"
        table.add_row(entry.timestamp, entry.spec_name, entry.task_name, f"{outcome} ({entry.attempts})", entry.lesson)

    console.print(table)


def _print_status(task: Task, status: TaskStatus, attempt: int) -> None:
    """Progress callback for the executor."""
    if status == TaskStatus.ATTEMPTING:
        console.print(f"[cyan]>[/cyan] {task.name}: attempt {attempt}")
    elif status == TaskStatus.SUCCEEDED:
        console.print(f"[green]+[/green] {task.name}: done")
    elif status == TaskStatus.EXHAUSTED:
        console.print(f"[red]x[/red] {task.name}: failed")


def _display_run_report(report: RunReport) -> None:
    """Display results of a spec run.

    Args:
        report: RunReport from the executor.
    """
    if report.success:
        console.print("\n[green]All tasks completed successfully![/green]\n")
    else:
        console.print(f"\n[red]Run stopped at task '{report.failed_task}'.[/red]\n")

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("Task", width=30)
    table.add_column("Attempts", width=9)
    table.add_column("Status", width=10)

    for name in report.skipped:
        table.add_row(name, "-", "[dim]Skipped[/dim]")
    for name, result in report.results:
        status = "[green]Done[/green]" if result.success else "[red]Failed[/red]"
        table.add_row(name, str(result.attempts), status)

    console.print(table)
    console.print(f"\n[bold]Lessons logged:[/bold] {report.lessons_logged}")

    for name, result in report.results:
        if result.success:
            continue
        console.print(f"\n[red]Error:[/red] {result.error}")
        if result.needs_review:
            console.print("[yellow]The evaluation could not be completed. Review the task output manually.[/yellow]")
