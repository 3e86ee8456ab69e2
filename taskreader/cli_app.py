from __future__ import annotations

import typer

from . import __version__
from .commands.conversation_cmds import (
    analyze_cmd,
    code_cmd,
    messages_cmd,
    recover_cmd,
    search_cmd,
)
from .commands.maintenance_cmds import config_cmd, mcp_cmd, task_cmd, tasks_cmd
from .commands.report_cmds import (
    reports_dismiss_cmd,
    reports_list_cmd,
    reports_read_cmd,
    reports_show_cmd,
)
from .config import get_config_path, load_config
from .service import TaskReaderService

app = typer.Typer(help="taskreader: read, search and recover assistant task conversations")
reports_app = typer.Typer(help="Manage crash recovery reports")
app.add_typer(reports_app, name="reports")


def _service() -> TaskReaderService:
    return TaskReaderService(load_config())


@app.command()
def version() -> None:
    """Print the installed version."""
    typer.echo(__version__)


@app.command()
def messages(
    task_id: str = typer.Argument(..., help="Task id or path to a conversation .json file"),
    limit: int = typer.Option(None, help="Number of most recent messages"),
    since: str = typer.Option(None, help="Only messages at or after this time (ms or ISO-8601)"),
    as_json: bool = typer.Option(False, "--json", help="Print raw messages as JSON"),
) -> None:
    """Show the most recent messages of a conversation."""
    messages_cmd(
        build_service=_service, task_id=task_id, limit=limit, since=since, as_json=as_json
    )


@app.command()
def search(
    term: str,
    task_id: str = typer.Option(None, "--task", help="Search only this task"),
    limit: int = typer.Option(20, help="Max matches per task"),
    max_tasks: int = typer.Option(10, help="Recent tasks to search when --task is omitted"),
) -> None:
    """Search conversation content (case-insensitive)."""
    search_cmd(
        build_service=_service, term=term, task_id=task_id, limit=limit, max_tasks=max_tasks
    )


@app.command()
def code(
    task_id: str = typer.Argument(..., help="Task id or path to a conversation .json file"),
    filename: str = typer.Option(None, "--file", help="Only messages that mention this file"),
    limit: int = typer.Option(None, help="Number of most recent matches"),
    as_json: bool = typer.Option(False, "--json", help="Print raw messages as JSON"),
) -> None:
    """Show messages with code blocks or file references."""
    code_cmd(
        build_service=_service,
        task_id=task_id,
        filename=filename,
        limit=limit,
        as_json=as_json,
    )


@app.command()
def analyze(
    task_id: str = typer.Argument(..., help="Task id or path to a conversation .json file"),
    since: str = typer.Option(None, help="Only analyse messages at or after this time"),
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON"),
) -> None:
    """Summarise topics, files, code blocks and key actions."""
    analyze_cmd(build_service=_service, task_id=task_id, since=since, as_json=as_json)


@app.command()
def recover(
    task_id: str = typer.Argument(..., help="Task id or path to a conversation .json file"),
    max_messages: int = typer.Option(None, help="Keep only the most recent N recovered messages"),
    save: bool = typer.Option(True, help="Save a crash report"),
    as_json: bool = typer.Option(False, "--json", help="Print the outcome as JSON"),
) -> None:
    """Recover messages from a damaged conversation file."""
    recover_cmd(
        build_service=_service,
        task_id=task_id,
        max_messages=max_messages,
        save=save,
        as_json=as_json,
    )


@app.command()
def tasks(
    limit: int = typer.Option(10, help="Max tasks to list"),
    as_json: bool = typer.Option(False, "--json", help="Print tasks as JSON"),
) -> None:
    """List recent tasks, newest first."""
    tasks_cmd(build_service=_service, limit=limit, as_json=as_json)


@app.command()
def task(
    task_id: str = typer.Argument(..., help="Task id"),
    as_json: bool = typer.Option(False, "--json", help="Print task details as JSON"),
) -> None:
    """Show one task's metadata and latest messages."""
    task_cmd(build_service=_service, task_id=task_id, as_json=as_json)


@app.command()
def config() -> None:
    """Show the effective configuration."""
    config_cmd(load_config=load_config, get_config_path=get_config_path)


@app.command()
def mcp() -> None:
    """Run the MCP server."""
    mcp_cmd()


@reports_app.command("list")
def reports_list(
    dismissed: bool = typer.Option(False, help="List dismissed reports instead"),
    as_json: bool = typer.Option(False, "--json", help="Print reports as JSON"),
) -> None:
    """List crash reports, newest first."""
    reports_list_cmd(build_service=_service, dismissed=dismissed, as_json=as_json)


@reports_app.command("show")
def reports_show(
    report_id: str,
    as_json: bool = typer.Option(False, "--json", help="Print the full report as JSON"),
) -> None:
    """Print a crash report."""
    reports_show_cmd(build_service=_service, report_id=report_id, as_json=as_json)


@reports_app.command("dismiss")
def reports_dismiss(report_id: str) -> None:
    """Move a crash report to the dismissed partition."""
    reports_dismiss_cmd(build_service=_service, report_id=report_id)


@reports_app.command("read")
def reports_read(report_id: str) -> None:
    """Mark a crash report as read."""
    reports_read_cmd(build_service=_service, report_id=report_id)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
