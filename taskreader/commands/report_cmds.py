from __future__ import annotations

import datetime as dt
import json

import typer
from rich import print
from rich.markup import escape

from ..errors import NotFoundError


def _format_created(created_at: int) -> str:
    moment = dt.datetime.fromtimestamp(created_at / 1000, tz=dt.UTC)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def reports_list_cmd(*, build_service, dismissed: bool, as_json: bool) -> None:
    """List crash reports, newest first."""

    service = build_service()
    partition = "dismissed" if dismissed else "active"
    reports = service.reports.list_reports(partition)
    if as_json:
        typer.echo(json.dumps([report.to_dict() for report in reports], indent=2))
        return
    if not reports:
        print(f"[yellow]No {partition} crash reports[/yellow]")
        return
    for report in reports:
        marker = "" if report.read else " [green](new)[/green]"
        summary = report.recovery_summary
        expected = summary.expected_count if summary.expected_count is not None else "?"
        print(
            f"[bold]{report.id}[/bold]{marker} {_format_created(report.created_at)} "
            f"{summary.recovered_count}/{expected} messages"
        )


def reports_show_cmd(*, build_service, report_id: str, as_json: bool) -> None:
    """Print a crash report's recovered context."""

    service = build_service()
    try:
        report = service.reports.get(report_id)
    except NotFoundError as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2))
        return
    typer.echo(report.formatted_message)


def reports_dismiss_cmd(*, build_service, report_id: str) -> None:
    service = build_service()
    try:
        service.reports.dismiss(report_id)
    except NotFoundError as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    print(f"[green]Dismissed {report_id}[/green]")


def reports_read_cmd(*, build_service, report_id: str) -> None:
    service = build_service()
    try:
        service.reports.mark_read(report_id)
    except NotFoundError as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    print(f"[green]Marked {report_id} as read[/green]")
