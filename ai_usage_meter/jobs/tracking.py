"""
Recent-job records for admin listing.

Each queue keeps the ids of its newest jobs in a capped Redis list, and
each job a JSON record that the worker signals update as it moves from
waiting to active to completed or failed.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from ..cache.store import Cache

logger = structlog.get_logger(__name__)

RECENT_JOBS_LIMIT = 100
JOB_RECORD_TTL_SECONDS = 7 * 24 * 60 * 60

RECENT_JOBS_KEY = "queue:{queue}:recent"
JOB_RECORD_KEY = "queue:{queue}:job:{job_id}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobTracker:
    """Stores and updates the records behind the per-queue job listing."""

    def __init__(
        self,
        cache: Cache,
        limit: int = RECENT_JOBS_LIMIT,
        ttl: int = JOB_RECORD_TTL_SECONDS
    ):
        self.cache = cache
        self.limit = limit
        self.ttl = ttl

    def _record_key(self, queue: str, job_id: str) -> str:
        return JOB_RECORD_KEY.format(queue=queue, job_id=job_id)

    def added(self, queue: str, job_id: str, name: str, data: Dict[str, Any]) -> None:
        """Record a newly enqueued job as waiting."""
        record = {
            "id": job_id,
            "name": name,
            "data": data,
            "status": "waiting",
            "timestamp": _now(),
            "processed_on": None,
            "finished_on": None,
            "failed_reason": None,
            "attempts_made": 0,
        }
        self.cache.set(self._record_key(queue, job_id), record, ttl=self.ttl)
        self.cache.push_capped(RECENT_JOBS_KEY.format(queue=queue), job_id, self.limit)

    def get(self, queue: str, job_id: str) -> Optional[Dict[str, Any]]:
        """The job's record, or None if this queue never recorded it."""
        record = self.cache.get(self._record_key(queue, job_id))
        return record if isinstance(record, dict) else None

    def _update(self, queue: str, job_id: str, **changes: Any) -> None:
        record = self.get(queue, job_id)
        if record is None:
            logger.warning("job_tracker.unknown_job", queue=queue, job_id=job_id)
            return
        record.update(changes)
        self.cache.set(self._record_key(queue, job_id), record, ttl=self.ttl)

    def started(self, queue: str, job_id: str) -> None:
        self._update(queue, job_id, status="active", processed_on=_now())

    def completed(self, queue: str, job_id: str, attempts: int) -> None:
        self._update(
            queue, job_id,
            status="completed",
            finished_on=_now(),
            attempts_made=attempts
        )

    def failed(self, queue: str, job_id: str, reason: str, attempts: int) -> None:
        self._update(
            queue, job_id,
            status="failed",
            finished_on=_now(),
            failed_reason=reason,
            attempts_made=attempts
        )

    def retrying(self, queue: str, job_id: str, reason: str, attempts: int) -> None:
        """A failed attempt that Celery will run again after a delay."""
        self._update(
            queue, job_id,
            status="delayed",
            failed_reason=reason,
            attempts_made=attempts
        )

    def recent(self, queue: str) -> List[Dict[str, Any]]:
        """Records of the queue's newest jobs, newest first.

        Ids whose record has expired are skipped.
        """
        records = []
        for job_id in self.cache.list_range(RECENT_JOBS_KEY.format(queue=queue), 0, self.limit - 1):
            record = self.get(queue, job_id)
            if record is not None:
                records.append(record)
        return records
