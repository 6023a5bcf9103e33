"""
Read-only view of queue and job state for admin reporting.
"""

from typing import Any, Dict, List, Optional

import structlog
from celery import Celery

from ..cache.store import Cache
from .queues import ALL_QUEUES
from .tracking import RECENT_JOBS_LIMIT, JobTracker
from .worker import counter_key

logger = structlog.get_logger(__name__)

JOB_STATUSES = ("waiting", "active", "completed", "failed", "delayed", "paused")


class QueueMonitor:
    """Collects job counts and job details from Redis and live workers."""

    def __init__(self, app: Celery, cache: Cache, inspect_timeout: float = 1.0):
        self.app = app
        self.cache = cache
        self.tracker = JobTracker(cache)
        self.inspect_timeout = inspect_timeout

    def _worker_tasks(self) -> Dict[str, List[Dict[str, Any]]]:
        """Tasks currently held by workers, grouped as active/reserved/scheduled."""
        inspect = self.app.control.inspect(timeout=self.inspect_timeout)
        tasks: Dict[str, List[Dict[str, Any]]] = {"active": [], "reserved": [], "scheduled": []}
        try:
            for worker_tasks in (inspect.active() or {}).values():
                tasks["active"].extend(worker_tasks)
            for worker_tasks in (inspect.reserved() or {}).values():
                tasks["reserved"].extend(worker_tasks)
            for worker_tasks in (inspect.scheduled() or {}).values():
                tasks["scheduled"].extend(entry.get("request", {}) for entry in worker_tasks)
        except Exception as e:
            logger.warning("queue_monitor.inspect_failed", error=str(e))
        return tasks

    @staticmethod
    def _count_for_queue(tasks: List[Dict[str, Any]], queue: str) -> int:
        return sum(
            1 for task in tasks
            if (task.get("delivery_info") or {}).get("routing_key") == queue
        )

    def _counter(self, queue: str, status: str) -> int:
        value = self.cache.get(counter_key(queue, status))
        return int(value) if value else 0

    def summaries(self) -> List[Dict[str, Any]]:
        """Job counts by status for every registered queue."""
        tasks = self._worker_tasks()
        summaries = []
        for definition in ALL_QUEUES:
            name = definition.name
            summaries.append({
                "name": name,
                "counts": {
                    "waiting": int(self.cache.client.llen(name))
                    + self._count_for_queue(tasks["reserved"], name),
                    "active": self._count_for_queue(tasks["active"], name),
                    "completed": self._counter(name, "completed"),
                    "failed": self._counter(name, "failed"),
                    "delayed": self._count_for_queue(tasks["scheduled"], name),
                    "paused": 0,
                },
            })
        return summaries

    def list_jobs(
        self,
        queue_name: str,
        status: Optional[str] = None,
        limit: int = RECENT_JOBS_LIMIT
    ) -> List[Dict[str, Any]]:
        """Recent jobs of a queue, newest first.

        Only the last ``RECENT_JOBS_LIMIT`` jobs added to the queue are
        recorded, so older jobs never appear even when they match.

        Args:
            queue_name: Queue to list
            status: Only return jobs in this status (all statuses when None)
            limit: Maximum number of jobs returned
        """
        jobs = [
            record for record in self.tracker.recent(queue_name)
            if status is None or record.get("status") == status
        ]
        return jobs[:limit]

    def job_detail(self, queue_name: str, job_id: str) -> Optional[Dict[str, Any]]:
        """Record of one job, or None if the queue never recorded it.

        Celery reports ``PENDING`` for any id it has not seen, so existence is
        decided by the job records written at enqueue time instead.
        """
        return self.tracker.get(queue_name, job_id)
