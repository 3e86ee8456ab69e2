from __future__ import annotations

import datetime as dt
import json

import typer
from rich import print
from rich.markup import escape

from ..errors import NotFoundError


def _format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / 1024 / 1024:.1f} MB"
    return f"{size / 1024 / 1024 / 1024:.1f} GB"


def tasks_cmd(*, build_service, limit: int, as_json: bool) -> None:
    """List recent tasks, newest first."""

    service = build_service()
    tasks = service.recent_tasks(limit)
    if as_json:
        typer.echo(json.dumps(tasks, indent=2))
        return
    if not tasks:
        print("[yellow]No tasks found[/yellow]")
        return
    for task in tasks:
        modified = dt.datetime.fromtimestamp(task["modified_at"], tz=dt.UTC)
        if task["conversation_path"] is None:
            size = "no conversation file"
        else:
            size = _format_bytes(task["size_bytes"])
        print(f"[bold]{escape(task['task_id'])}[/bold] {modified:%Y-%m-%d %H:%M} {size}")


def task_cmd(*, build_service, task_id: str, as_json: bool) -> None:
    """Show metadata and a short preview for one task."""

    service = build_service()
    try:
        summary = service.task_summary(task_id)
    except NotFoundError as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    if as_json:
        typer.echo(json.dumps(summary.to_dict(), indent=2))
        return
    task = summary.task
    modified = dt.datetime.fromtimestamp(task.modified_at, tz=dt.UTC)
    print(f"[bold]{escape(task.task_id)}[/bold] modified {modified:%Y-%m-%d %H:%M}")
    if task.conversation_path is None:
        print("[yellow]No conversation file[/yellow]")
        return
    size = _format_bytes(task.size_bytes)
    print(f"- conversation: {escape(str(task.conversation_path))} ({size})")
    if summary.error:
        print(f"[red]Could not parse conversation: {escape(summary.error)}[/red]")
        return
    print(
        f"- messages: {summary.message_count} "
        f"({summary.human_count} from you, {summary.assistant_count} from the assistant)"
    )
    for message in summary.preview:
        flat = " ".join(message.text.split())
        print(f"  [dim]{escape(message.role)}[/dim]: {escape(flat[:120])}")


def config_cmd(*, load_config, get_config_path) -> None:
    """Show the effective configuration."""

    cfg = load_config()
    print(f"[dim]config file: {get_config_path()}[/dim]")
    typer.echo(json.dumps(vars(cfg), indent=2))


def mcp_cmd() -> None:
    """Run the MCP server."""

    from taskreader.mcp_server import run as mcp_run

    mcp_run()
