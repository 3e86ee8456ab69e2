from __future__ import annotations

import json
from typing import NoReturn

import typer
from rich import print
from rich.markup import escape

from ..errors import NotFoundError, ParseError


def _exit_with(exc: Exception) -> NoReturn:
    if isinstance(exc, NotFoundError):
        print(f"[red]{escape(str(exc))}[/red]")
    elif isinstance(exc, ParseError):
        print(f"[red]Could not parse conversation: {escape(exc.reason)}[/red]")
        print("[yellow]Try `taskreader recover` to salvage what is readable[/yellow]")
    else:
        print(f"[red]{escape(str(exc))}[/red]")
    raise typer.Exit(code=1)


def _preview(text: str, limit: int = 200) -> str:
    flat = " ".join(text.split())
    return escape(flat if len(flat) <= limit else flat[:limit] + "...")


def messages_cmd(
    *,
    build_service,
    task_id: str,
    limit: int | None,
    since: str | None,
    as_json: bool,
) -> None:
    """Print the most recent messages of a conversation."""

    service = build_service()
    try:
        if since:
            messages = service.messages_since(task_id, since, limit)
        else:
            messages = service.last_messages(task_id, limit)
    except (NotFoundError, ParseError, ValueError) as exc:
        _exit_with(exc)
    if as_json:
        typer.echo(json.dumps([message.to_dict() for message in messages], indent=2))
        return
    if not messages:
        print("[yellow]No messages matched[/yellow]")
        return
    for message in messages:
        stamp = f" [dim]{message.timestamp}[/dim]" if message.timestamp is not None else ""
        print(f"[bold]{escape(message.role)}[/bold]{stamp}: {_preview(message.text)}")


def search_cmd(
    *,
    build_service,
    term: str,
    task_id: str | None,
    limit: int | None,
    max_tasks: int,
) -> None:
    """Search one conversation, or the most recent ones when no task is given."""

    service = build_service()
    try:
        if task_id:
            grouped = [(task_id, service.search(task_id, term, limit))]
        else:
            grouped = [
                (result.task_id, result.hits)
                for result in service.search_all(term, limit, max_tasks)
            ]
    except (NotFoundError, ParseError, ValueError) as exc:
        _exit_with(exc)
    total = sum(len(hits) for _, hits in grouped)
    if not total:
        print(f"[yellow]No matches for {escape(repr(term))}[/yellow]")
        return
    for found_in, hits in grouped:
        print(f"[bold]{escape(found_in)}[/bold] ({len(hits)} matches)")
        for hit in hits:
            print(f"  [cyan]{escape(hit.message.role)}[/cyan]: {_preview(hit.snippet, 300)}")


def analyze_cmd(*, build_service, task_id: str, since: str | None, as_json: bool) -> None:
    """Summarise topics, files and actions in a conversation."""

    service = build_service()
    try:
        summary = service.analyze(task_id, since)
    except (NotFoundError, ValueError) as exc:
        _exit_with(exc)
    if as_json:
        typer.echo(json.dumps(summary.to_dict(), indent=2))
        return
    print(f"[bold]Messages[/bold]: {summary.message_count}")
    print(f"- from you: {summary.human_count}")
    print(f"- from the assistant: {summary.assistant_count}")
    if summary.completeness_note:
        print(f"[yellow]{summary.completeness_note}[/yellow]")
    if summary.time_range:
        print(f"[bold]Time range[/bold]: {summary.time_range.start} to {summary.time_range.end}")
    print(
        f"[bold]Code blocks[/bold]: {summary.code_block_count}  "
        f"[bold]File operations[/bold]: {summary.file_operation_count}  "
        f"[bold]Commands[/bold]: {summary.command_count}"
    )
    if summary.topics:
        print("[bold]Topics[/bold]")
        for topic, count in summary.topics:
            print(f"- {escape(topic)} ({count})")
    if summary.files_referenced:
        print("[bold]Files[/bold]")
        for path in summary.files_referenced:
            print(f"- {escape(path)}")
    if summary.key_actions:
        print("[bold]Key actions[/bold]")
        for action in summary.key_actions:
            print(f"- {escape(action)}")


def recover_cmd(
    *,
    build_service,
    task_id: str,
    max_messages: int | None,
    save: bool,
    as_json: bool,
) -> None:
    """Salvage messages from a damaged conversation file."""

    service = build_service()
    try:
        outcome = service.recover(task_id, max_messages, save_report=save)
    except (NotFoundError, ValueError) as exc:
        _exit_with(exc)
    if as_json:
        typer.echo(json.dumps(outcome.to_dict(), indent=2))
        return
    recovery = outcome.recovery
    if recovery.is_exhausted:
        print("[red]No messages could be recovered[/red]")
        for line in recovery.diagnostics:
            print(f"  [dim]{escape(line)}[/dim]")
        raise typer.Exit(code=1)
    expected = recovery.expected_count if recovery.expected_count is not None else "?"
    colour = "green" if recovery.is_complete else "yellow"
    print(
        f"[{colour}]Recovered {recovery.recovered_count} of {expected} messages "
        f"(strategy: {recovery.strategy_used})[/{colour}]"
    )
    if outcome.report is not None:
        if save:
            print(f"Saved crash report [bold]{outcome.report.id}[/bold]")
        print()
        typer.echo(outcome.report.formatted_message)


def code_cmd(
    *,
    build_service,
    task_id: str,
    filename: str | None,
    limit: int | None,
    as_json: bool,
) -> None:
    """Show messages that contain code blocks or mention files."""

    service = build_service()
    try:
        messages = service.code_discussions(task_id, filename, limit)
    except (NotFoundError, ParseError, ValueError) as exc:
        _exit_with(exc)
    if as_json:
        typer.echo(json.dumps([message.to_dict() for message in messages], indent=2))
        return
    if not messages:
        target = f" about {escape(filename)}" if filename else ""
        print(f"[yellow]No code discussions{target}[/yellow]")
        return
    for message in messages:
        print(f"[bold]{escape(message.role)}[/bold]: {_preview(message.text, 300)}")
