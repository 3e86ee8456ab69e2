from __future__ import annotations

from collections.abc import Callable
from typing import Any

try:
    from mcp.server.fastmcp import FastMCP
except Exception as exc:  # pragma: no cover
    raise SystemExit(
        "mcp package is required for the MCP server. Install with `pip install -e .`"
    ) from exc

from .active_task import ActiveTaskCache
from .config import TaskReaderConfig, load_config
from .crash_reports import CrashReport
from .errors import NotFoundError, ParseError
from .service import TaskReaderService


def _call(handler: Callable[[], dict[str, Any]]) -> dict[str, Any]:
    try:
        return handler()
    except NotFoundError as exc:
        return {"error": "not_found", "detail": str(exc)}
    except ParseError as exc:
        return {"error": "parse_error", "detail": str(exc), "hint": "recover_crashed_conversation"}
    except ValueError as exc:
        return {"error": "invalid_argument", "detail": str(exc)}
    except OSError as exc:
        return {"error": "io_error", "detail": str(exc)}


def build_server(
    config: TaskReaderConfig | None = None,
    *,
    cache: ActiveTaskCache | None = None,
    service: TaskReaderService | None = None,
) -> FastMCP:
    mcp = FastMCP("taskreader")
    cfg = config or load_config()
    svc = service or TaskReaderService(cfg)
    active = cache or ActiveTaskCache(cfg.active_task_ttl_s)

    def resolve_task(task_id: str | None) -> str:
        if task_id:
            return task_id
        entry = active.get()
        if entry is None:
            raise ValueError("task_id is required (no active task set)")
        return entry.task_id

    @mcp.tool()
    def get_last_n_messages(task_id: str | None = None, limit: int = 50) -> dict[str, Any]:
        def handler() -> dict[str, Any]:
            resolved = resolve_task(task_id)
            messages = svc.last_messages(resolved, limit)
            return {"task_id": resolved, "items": [m.to_dict() for m in messages]}

        return _call(handler)

    @mcp.tool()
    def get_messages_since(
        since: int | str, task_id: str | None = None, limit: int = 50
    ) -> dict[str, Any]:
        def handler() -> dict[str, Any]:
            resolved = resolve_task(task_id)
            messages = svc.messages_since(resolved, since, limit)
            return {"task_id": resolved, "items": [m.to_dict() for m in messages]}

        return _call(handler)

    @mcp.tool()
    def search_conversation(
        term: str, task_id: str | None = None, limit: int = 20
    ) -> dict[str, Any]:
        def handler() -> dict[str, Any]:
            resolved = resolve_task(task_id)
            hits = svc.search(resolved, term, limit)
            return {"task_id": resolved, "items": [hit.to_dict() for hit in hits]}

        return _call(handler)

    @mcp.tool()
    def find_code_discussions(
        task_id: str | None = None, filename: str | None = None, limit: int = 50
    ) -> dict[str, Any]:
        def handler() -> dict[str, Any]:
            resolved = resolve_task(task_id)
            messages = svc.code_discussions(resolved, filename, limit)
            return {
                "task_id": resolved,
                "filename": filename or "all",
                "discussion_count": len(messages),
                "items": [m.to_dict() for m in messages],
            }

        return _call(handler)

    @mcp.tool()
    def search_conversations(term: str, limit: int = 20, max_tasks: int = 10) -> dict[str, Any]:
        def handler() -> dict[str, Any]:
            results = svc.search_all(term, limit, max_tasks)
            return {"items": [result.to_dict() for result in results]}

        return _call(handler)

    @mcp.tool()
    def analyze_conversation(
        task_id: str | None = None, since: int | str | None = None
    ) -> dict[str, Any]:
        def handler() -> dict[str, Any]:
            resolved = resolve_task(task_id)
            summary = svc.analyze(resolved, since)
            return {"task_id": resolved, "analysis": summary.to_dict()}

        return _call(handler)

    @mcp.tool()
    def list_recent_tasks(limit: int = 10) -> dict[str, Any]:
        return _call(lambda: {"items": svc.recent_tasks(limit)})

    @mcp.tool()
    def get_task_by_id(task_id: str | None = None, preview_count: int = 5) -> dict[str, Any]:
        return _call(lambda: svc.task_summary(resolve_task(task_id), preview_count).to_dict())

    @mcp.tool()
    def recover_crashed_conversation(
        task_id: str | None = None,
        max_messages: int | None = None,
        save_report: bool = True,
    ) -> dict[str, Any]:
        def handler() -> dict[str, Any]:
            resolved = resolve_task(task_id)
            outcome = svc.recover(resolved, max_messages, save_report=save_report)
            return {"task_id": resolved, **outcome.to_dict()}

        return _call(handler)

    @mcp.tool()
    def list_crash_reports(include_dismissed: bool = False) -> dict[str, Any]:
        def handler() -> dict[str, Any]:
            payload: dict[str, Any] = {
                "active": [_report_index(r) for r in svc.reports.list_reports("active")]
            }
            if include_dismissed:
                payload["dismissed"] = [
                    _report_index(r) for r in svc.reports.list_reports("dismissed")
                ]
            return payload

        return _call(handler)

    @mcp.tool()
    def get_crash_report(report_id: str) -> dict[str, Any]:
        return _call(lambda: svc.reports.get(report_id).to_dict())

    @mcp.tool()
    def dismiss_crash_report(report_id: str) -> dict[str, Any]:
        def handler() -> dict[str, Any]:
            svc.reports.dismiss(report_id)
            return {"status": "ok", "id": report_id}

        return _call(handler)

    @mcp.tool()
    def mark_crash_report_read(report_id: str) -> dict[str, Any]:
        def handler() -> dict[str, Any]:
            report = svc.reports.mark_read(report_id)
            return {"status": "ok", "id": report.id, "read": report.read}

        return _call(handler)

    @mcp.tool()
    def set_active_task(task_id: str, label: str | None = None) -> dict[str, Any]:
        def handler() -> dict[str, Any]:
            svc.resolve(task_id)
            return active.set(task_id, label).to_dict()

        return _call(handler)

    @mcp.tool()
    def get_active_tasks() -> dict[str, Any]:
        return {"items": [entry.to_dict() for entry in active.active()]}

    return mcp


def _report_index(report: CrashReport) -> dict[str, Any]:
    return {
        "id": report.id,
        "source_id": report.source_id,
        "created_at": report.created_at,
        "read": report.read,
        "recovered_count": report.recovery_summary.recovered_count,
        "expected_count": report.recovery_summary.expected_count,
    }


def run() -> None:
    server = build_server()
    server.run()


if __name__ == "__main__":
    run()
