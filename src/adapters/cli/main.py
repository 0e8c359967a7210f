"""
adapters.cli.main - CLI adapter for the agent workflow engine.

Uses the same AgencyFactory as any other adapter, so agents, teams and
workflows behave identically whichever way they are started.

Commands
--------
  agent      Run one agent on an input
  team       Run a team's own workflow
  workflow   Execute a named agency workflow
  validate   Build everything from the config without calling any model

Usage
-----
  python run_cli.py agent researcher "Heat pumps vs gas boilers"
  python run_cli.py workflow article --brief topic="solar power"
  python run_cli.py validate --config agency.json
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

# ── Ensure src/ is on the path ──
_SRC = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(_SRC))

import typer
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from agent.tools.web_search import WebSearchTool
from domain.exceptions import AgencyError
from domain.models import JobStatus, WorkflowResult, WorkflowStatus
from factory import AgencyFactory
from infrastructure.config import Settings

__version__ = "1.0.0"

console = Console()
app = typer.Typer(
    help="Agent workflow engine CLI",
    add_completion=False,
    no_args_is_help=True,
)

ConfigOption = typer.Option(
    Path("agency.json"), "--config", "-c", help="Path to the JSON configuration record.",
)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _make_factory() -> AgencyFactory:
    """Build a factory from the environment with the built-in tools registered."""
    settings = Settings.from_env()
    _configure_logging(settings.log_level)
    factory = AgencyFactory(settings)
    factory.register_tool(WebSearchTool())
    return factory


def _load(factory: AgencyFactory, path: Path) -> dict[str, Any]:
    try:
        return factory.load_config(path)
    except (FileNotFoundError, AgencyError) as exc:
        console.print(f"[bold red]Cannot load config:[/bold red] {exc}")
        raise typer.Exit(code=1)


def _parse_brief(pairs: list[str]) -> dict[str, Any]:
    """key=value pairs; values that parse as JSON are decoded."""
    brief: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise typer.BadParameter(f"Expected key=value, got '{pair}'")
        key, value = pair.split("=", 1)
        try:
            brief[key.strip()] = json.loads(value)
        except json.JSONDecodeError:
            brief[key.strip()] = value
    return brief


def _format_output(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def _print_result(result: WorkflowResult) -> None:
    style = {
        WorkflowStatus.COMPLETED: "green",
        WorkflowStatus.COMPLETED_WITH_ERRORS: "yellow",
        WorkflowStatus.FAILED: "red",
    }[result.status]

    t = Table(box=box.SIMPLE, padding=(0, 2))
    t.add_column("Step", justify="right")
    t.add_column("Job", style="bold")
    t.add_column("Agent")
    t.add_column("Status")
    for job in sorted(result.results.values(), key=lambda r: r.step_index):
        colour = "red" if job.status is JobStatus.FAILED else "green"
        t.add_row(str(job.step_index), job.job_id, job.agent_id, f"[{colour}]{job.status.value}[/{colour}]")
    console.print(Panel(
        t,
        title=f"Workflow '{result.workflow_id}': [{style}]{result.status.value}[/{style}]",
        subtitle=f"execution {result.execution_id}",
        border_style=style,
    ))

    for job in result.results.values():
        if job.ok:
            console.print(Panel(_format_output(job.output), title=job.job_id, border_style="blue"))
        else:
            console.print(Panel(job.error or "", title=f"{job.job_id} (error)", border_style="red"))
    if result.error:
        console.print(f"[bold red]Aborted:[/bold red] {result.error}")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"agent-workflows v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Run agents, teams and workflows from a JSON configuration record."""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def agent(
    agent_id: str = typer.Argument(..., help="Agent id from the 'agents' section."),
    prompt: str = typer.Argument(..., help="Input passed to the agent."),
    config: Path = ConfigOption,
) -> None:
    """Run one agent on an input."""
    factory = _make_factory()
    raw = _load(factory, config)

    async def _run() -> None:
        agents = factory.create_agents(raw)
        if agent_id not in agents:
            console.print(f"[bold red]Agent '{agent_id}' not found.[/bold red]")
            raise typer.Exit(code=1)
        selected = agents[agent_id]
        console.print(f"Running [bold]{selected.name}[/bold]: {selected.description}")
        with console.status("[bold cyan]Thinking…", spinner="dots"):
            response = await selected.run(prompt)
        console.print(Panel(_format_output(response), title=selected.name, border_style="green"))

    try:
        asyncio.run(_run())
    except AgencyError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)


@app.command()
def team(
    team_id: str = typer.Argument(..., help="Team id from the 'team' section."),
    config: Path = ConfigOption,
    brief: list[str] = typer.Option([], "--brief", "-b", help="Brief value as key=value."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-job timeout in seconds."),
) -> None:
    """Run a team's own workflow."""
    factory = _make_factory()
    raw = _load(factory, config)

    async def _run() -> WorkflowResult:
        selected = factory.create_team(raw, team_id)
        inputs = {**(raw.get("brief") or {}), **_parse_brief(brief)}
        return await selected.run(inputs, job_timeout=timeout)

    try:
        result = asyncio.run(_run())
    except AgencyError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)
    _print_result(result)
    if result.status is WorkflowStatus.FAILED:
        raise typer.Exit(code=1)


@app.command()
def workflow(
    workflow_id: str = typer.Argument(..., help="Workflow id from the 'workflows' section."),
    config: Path = ConfigOption,
    brief: list[str] = typer.Option([], "--brief", "-b", help="Brief value as key=value."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-job timeout in seconds."),
) -> None:
    """Execute a named agency workflow."""
    factory = _make_factory()
    raw = _load(factory, config)

    async def _run() -> WorkflowResult:
        agency = factory.create_agency(raw)
        return await agency.execute_workflow(
            workflow_id, {"source": "cli"}, brief=_parse_brief(brief), job_timeout=timeout,
        )

    try:
        result = asyncio.run(_run())
    except AgencyError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)
    _print_result(result)
    if result.status is WorkflowStatus.FAILED:
        raise typer.Exit(code=1)


@app.command()
def validate(config: Path = ConfigOption) -> None:
    """Build agents, teams and workflows without calling any model."""
    factory = _make_factory()
    raw = _load(factory, config)
    try:
        agency = factory.create_agency(raw)
    except AgencyError as exc:
        console.print(f"[bold red]Invalid configuration:[/bold red] {exc}")
        raise typer.Exit(code=1)

    t = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    t.add_column("Field", style="bold")
    t.add_column("Value")
    t.add_row("Agency", agency.name)
    t.add_row("Teams", ", ".join(agency.teams) or "[dim]none[/dim]")
    t.add_row("Workflows", ", ".join(agency.workflows) or "[dim]none[/dim]")
    t.add_row("Brief keys", ", ".join(agency.brief) or "[dim]none[/dim]")
    console.print(Panel(t, title="Configuration OK", border_style="green"))


if __name__ == "__main__":
    app()
