"""
trello-autopilot CLI

  trello-autopilot run --board <name> [options]   (fix cards, update board)
  trello-autopilot scan --board <name>            (read-only preview table)

Plus utilities:
  - trello-autopilot status        (check credentials + tools)
  - trello-autopilot init <path>   (bootstrap .autopilot in a repo)
  - trello-autopilot serve         (MCP tool server over stdio)
"""

from __future__ import annotations

import json
import shutil
import sys
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.table import Table

from trello_autopilot.audit_logger import RunLog
from trello_autopilot.board import BoardError
from trello_autopilot.board.trello import TrelloClient
from trello_autopilot.config_loader import (
    REPO_CONFIG_DIR,
    ConfigurationError,
    PipelineConfig,
    load_config,
    validate_api_keys,
)
from trello_autopilot.controller import Controller, scan_bugs
from trello_autopilot.event_bus import EventBus
from trello_autopilot.identity import BANNER, __codename__, __tagline__, __version__
from trello_autopilot.report import render_report
from trello_autopilot.selection import priority_name, select_bugs

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".trello-autopilot" / ".env")

app = typer.Typer(
    name="trello-autopilot",
    help=f"{__codename__} — {__tagline__}\nTrello bug auto-fix pipeline.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Banner
# ---------------------------------------------------------------------------


def _print_banner():
    console.print(f"[bright_cyan]{BANNER}[/]", highlight=False)
    console.print(f"  [dim]v{__version__} — {__tagline__}[/]\n")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def run(
    board: str = typer.Option(..., "--board", "-b", help="Trello board name"),
    list_name: str = typer.Option("Bugs", "--list", "-l", help="Bug list name"),
    done: str = typer.Option("Done", "--done", "-d", help="Done list name"),
    repo: Optional[Path] = typer.Option(None, "--repo", "-r", help="Repository path (default: cwd)"),
    agent: Optional[str] = typer.Option(None, "--agent", "-a", help="Coding agent command (default: claude)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview only, don't fix or move cards"),
    json_output: bool = typer.Option(False, "--json", help="Output the run report as JSON"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Max number of cards to process"),
    label: Optional[str] = typer.Option(None, "--label", help="Only process cards with this label"),
    retry: bool = typer.Option(False, "--retry", help="Only retry cards labeled fix-failed or needs-human"),
    pr: bool = typer.Option(False, "--pr", help="Open a pull request for each fix"),
    test_cmd: Optional[str] = typer.Option(None, "--test", "-t", help="Test command (default: auto-detect)"),
    notify_url: Optional[str] = typer.Option(None, "--notify", help="Webhook URL to POST the report to"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Fix bug cards with a coding agent and update the board."""
    if not json_output:
        _print_banner()
    _configure_logging(verbose, json_output)

    try:
        config = PipelineConfig(
            board=board,
            list_name=list_name,
            done_list=done,
            repo=repo or Path.cwd(),
            agent=agent,
            dry_run=dry_run,
            json_output=json_output,
            limit=limit,
            label=label,
            pr=pr,
            retry=retry,
            test_command=test_cmd,
            notify_url=notify_url,
        )
        settings = load_config(config.repo)
        bus = EventBus()
        if settings.workspace.run_log and not dry_run:
            RunLog(config.repo / settings.workspace.log_dir / "runs.jsonl", bus)

        with TrelloClient.from_settings(settings) as client:
            controller = Controller(client, config, settings=settings, bus=bus, output=console)
            report = controller.run()
    except (ConfigurationError, BoardError, ValueError) as e:
        _fail(str(e), json_output)

    if json_output:
        typer.echo(report.to_json())
    else:
        console.print()
        render_report(report, console)


@app.command()
def scan(
    board: str = typer.Option(..., "--board", "-b", help="Trello board name"),
    list_name: str = typer.Option("Bugs", "--list", "-l", help="Bug list name"),
    label: Optional[str] = typer.Option(None, "--label", help="Filter by label"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Max number of cards"),
    retry: bool = typer.Option(False, "--retry", help="Only cards labeled fix-failed or needs-human"),
    json_output: bool = typer.Option(False, "--json", help="Output cards as JSON"),
):
    """List the cards a run would process, in processing order."""
    _configure_logging(False, json_output)

    try:
        settings = load_config()
        with TrelloClient.from_settings(settings) as client:
            bugs = scan_bugs(client, board, list_name)
    except (ConfigurationError, BoardError) as e:
        _fail(str(e), json_output)

    bugs = select_bugs(bugs, retry=retry, label=label, limit=limit, skip_labels=settings.selection.skip_labels)

    if json_output:
        typer.echo(json.dumps([
            {**b.model_dump(by_alias=True), "priority": priority_name(b)} for b in bugs
        ], indent=2))
        return

    if not bugs:
        console.print("[dim]No matching cards.[/]")
        return

    table = Table(title=f"{board} / {list_name}", border_style="cyan")
    table.add_column("Card", style="dim")
    table.add_column("Priority")
    table.add_column("Title")
    table.add_column("Labels", style="dim")
    table.add_column("Comments", style="dim")

    for b in bugs:
        prio = priority_name(b)
        color = {"critical": "red", "high": "red", "medium": "yellow"}.get(prio, "dim")
        table.add_row(b.id, f"[{color}]{prio}[/]", b.title, ", ".join(b.labels), str(len(b.comments)))

    console.print(table)


@app.command()
def status(
    repo: Optional[Path] = typer.Option(None, "--repo", "-r"),
):
    """Check credentials, tools and effective settings."""
    _print_banner()

    keys = validate_api_keys()
    key_table = Table(title="Credentials", border_style="cyan")
    key_table.add_column("Key")
    key_table.add_column("Status")

    for key, available in keys.items():
        status_str = "[green]✓ Available[/]" if available else "[red]✗ Missing[/]"
        key_table.add_row(key, status_str)

    console.print(key_table)

    settings = load_config(repo.resolve() if repo else None)
    console.print(f"\n[bold]Agent:[/]")
    console.print(f"  Command: {settings.agent.command}")
    console.print(f"  Timeout: {settings.agent.timeout:g}s")
    console.print(f"\n[bold]Git:[/]")
    console.print(f"  Branch prefix: {settings.git.branch_prefix}")
    console.print(f"  Remote:        {settings.git.remote}")
    if settings.selection.skip_labels:
        console.print(f"\n[bold]Skip labels:[/] {', '.join(settings.selection.skip_labels)}")

    tools_table = Table(title="System Tools", border_style="cyan")
    tools_table.add_column("Tool")
    tools_table.add_column("Status")

    for tool in ["git", "gh", settings.agent.command]:
        found = shutil.which(tool)
        s = f"[green]✓ {found}[/]" if found else "[dim]✗ Not found[/]"
        tools_table.add_row(tool, s)

    console.print(tools_table)


@app.command()
def init(
    repo: Optional[Path] = typer.Argument(None, help="Path to repository"),
):
    """Initialize the .autopilot directory in a repository."""
    _print_banner()

    repo = (repo or Path.cwd()).resolve()
    ap_dir = repo / REPO_CONFIG_DIR
    ap_dir.mkdir(exist_ok=True)
    (ap_dir / "logs").mkdir(exist_ok=True)

    config_path = ap_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text("""# trello-autopilot repo-level config overrides
# These merge with the built-in defaults.

# agent:
#   command: "claude"
#   timeout: 600

# tests:
#   timeout: 900

# git:
#   branch_prefix: "fix/card-"

# selection:
#   skip_labels:
#     - "blocked"
#     - "wontfix"
""")

    gitignore = repo / ".gitignore"
    entry = f"{REPO_CONFIG_DIR}/logs/"
    if gitignore.exists():
        content = gitignore.read_text()
        if entry not in content:
            with open(gitignore, "a") as f:
                f.write(f"\n# trello-autopilot\n{entry}\n")
    else:
        gitignore.write_text(f"# trello-autopilot\n{entry}\n")

    console.print(f"[green]✅ Initialized trello-autopilot in {ap_dir}[/]")
    console.print(f"  Config: {config_path}")


@app.command()
def serve():
    """Run the MCP tool server on stdio."""
    from trello_autopilot.mcp_server import main as serve_main

    serve_main()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fail(message: str, json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps({"error": message}))
    else:
        err_console.print(f"[red]Error: {message}[/]", highlight=False)
    raise typer.Exit(1)


def _configure_logging(verbose: bool, json_output: bool = False) -> None:
    logger.remove()
    target = err_console if json_output else console
    if verbose:
        logger.add(
            lambda msg: target.print(msg.rstrip("\n"), style="dim", highlight=False, markup=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: target.print(msg.rstrip("\n"), style="dim", highlight=False, markup=False),
            level="WARNING",
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(app())
