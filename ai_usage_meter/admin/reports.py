"""
Admin reporting payloads.

Every report is wrapped in the admin API envelope:
``{"success": bool, "data": ..., "error": {"code": ..., "message": ...}}``.
"""

from typing import Any, Dict, Optional

from ..jobs.monitor import JOB_STATUSES, QueueMonitor
from ..jobs.queues import get_queue_by_name
from ..storage.db import DEFAULT_DB_PATH
from ..storage.models import UsageLogEntry
from ..storage.repository import UsageRepository, fetch_recent_usage_logs

RECENT_LOGS_LIMIT = 50
JOBS_LIST_LIMIT = 100


def ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


def error(code: str, message: str) -> Dict[str, Any]:
    return {"success": False, "error": {"code": code, "message": message}}


def usage_log_dto(entry: UsageLogEntry) -> Dict[str, Any]:
    """Project a usage log entry for JSON output; costs become decimal strings."""
    return {
        "id": entry.id,
        "model": entry.model,
        "inputText": entry.input_text,
        "outputText": entry.output_text,
        "inputTokens": entry.input_tokens,
        "outputTokens": entry.output_tokens,
        "totalTokens": entry.total_tokens,
        "inputCost": format(entry.input_cost, "f"),
        "outputCost": format(entry.output_cost, "f"),
        "totalCost": format(entry.total_cost, "f"),
        "createdAt": entry.created_at.isoformat() if entry.created_at else None,
    }


def recent_logs_report(
    db_path: str = DEFAULT_DB_PATH,
    limit: int = RECENT_LOGS_LIMIT
) -> Dict[str, Any]:
    """The most recent completion calls, newest first."""
    entries = fetch_recent_usage_logs(limit=limit, db_path=db_path)
    return ok([usage_log_dto(entry) for entry in entries])


def usage_summary_report(db_path: str = DEFAULT_DB_PATH, days: int = 7) -> Dict[str, Any]:
    """Aggregated calls, tokens and cost for the last ``days`` days."""
    if days < 0:
        return error("BAD_REQUEST", "days must be >= 0")

    summary = UsageRepository(db_path).get_usage_summary(days=days)
    return ok({
        "totalCalls": summary["total_calls"],
        "totalTokens": summary["total_tokens"],
        "totalCost": summary["total_cost"],
        "dailyUsage": [
            {
                "date": day["date"],
                "calls": day["calls"],
                "totalTokens": day["total_tokens"],
                "totalCost": day["total_cost"],
            }
            for day in summary["daily_usage"]
        ],
        "modelUsage": [
            {
                "model": model["model"],
                "calls": model["calls"],
                "totalTokens": model["total_tokens"],
                "totalCost": model["total_cost"],
            }
            for model in summary["model_usage"]
        ],
    })


def queue_summaries_report(monitor: QueueMonitor) -> Dict[str, Any]:
    return ok(monitor.summaries())


def job_dto(record: Dict[str, Any]) -> Dict[str, Any]:
    """Project a job record for JSON output."""
    return {
        "id": record.get("id"),
        "name": record.get("name"),
        "data": record.get("data") or {},
        "status": record.get("status"),
        "timestamp": record.get("timestamp"),
        "processedOn": record.get("processed_on"),
        "finishedOn": record.get("finished_on"),
        "failedReason": record.get("failed_reason"),
        "attemptsMade": record.get("attempts_made", 0),
    }


def queue_jobs_report(
    monitor: QueueMonitor,
    queue_name: str,
    status: Optional[str] = None,
    limit: int = JOBS_LIST_LIMIT
) -> Dict[str, Any]:
    """Recent jobs of a queue, newest first.

    A status outside ``JOB_STATUSES`` is ignored and every status is listed.
    """
    if get_queue_by_name(queue_name) is None:
        return error("NOT_FOUND", f'Queue "{queue_name}" not found')

    if status not in JOB_STATUSES:
        status = None
    jobs = monitor.list_jobs(queue_name, status=status, limit=limit)
    return ok([job_dto(job) for job in jobs])


def queue_job_report(monitor: QueueMonitor, queue_name: str, job_id: str) -> Dict[str, Any]:
    """Details of one job, or a NOT_FOUND envelope for an unknown queue or job."""
    if get_queue_by_name(queue_name) is None:
        return error("NOT_FOUND", f'Queue "{queue_name}" not found')

    record = monitor.job_detail(queue_name, job_id)
    if record is None:
        return error("NOT_FOUND", f'Job "{job_id}" not found in queue "{queue_name}"')
    return ok({"queue": queue_name, **job_dto(record)})
