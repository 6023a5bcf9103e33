"""
Celery app and worker wiring for the job queues.

Retry and backoff are left to Celery; this module registers one task per
queue, logs job completion and failure, and keeps the per-queue counters and
job records used by the admin reports up to date.
"""

import uuid
from typing import Any, Callable, Optional

import structlog
from celery import Celery, signals

from ..cache.store import Cache
from .queues import ALL_QUEUES, QueueDefinition, get_queue_by_name, get_queue_by_task_name
from .tracking import JobTracker

logger = structlog.get_logger(__name__)

COUNTER_KEY = "queue:{queue}:{status}"
PRERUN_HANDLER_UID = "ai_usage_meter.task_prerun"
SUCCESS_HANDLER_UID = "ai_usage_meter.task_success"
FAILURE_HANDLER_UID = "ai_usage_meter.task_failure"
RETRY_HANDLER_UID = "ai_usage_meter.task_retry"


def counter_key(queue: str, status: str) -> str:
    return COUNTER_KEY.format(queue=queue, status=status)


def create_celery_app(redis_url: str) -> Celery:
    """Create the Celery app using Redis as broker and result backend."""
    app = Celery("ai_usage_meter", broker=redis_url, backend=redis_url)
    app.conf.update(
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_track_started=True,
        timezone="UTC",
        enable_utc=True,
    )
    return app


def _register_task(app: Celery, definition: QueueDefinition) -> None:
    def run(task, data: dict) -> None:
        payload = definition.payload_type.from_dict(data)
        definition.processor(task.request.id, payload)

    run.__name__ = definition.task_name.replace("-", "_").replace(".", "_")
    app.task(name=definition.task_name, bind=True, queue=definition.name)(run)


def register_queue_tasks(app: Celery, cache: Optional[Cache] = None) -> None:
    """Register a task for every queue and hook up job event logging.

    Args:
        app: Celery app to register tasks on
        cache: Cache holding the per-queue completed/failed counters and
            job records (both are skipped when omitted)
    """
    app.conf.task_routes = {
        definition.task_name: {"queue": definition.name} for definition in ALL_QUEUES
    }
    for definition in ALL_QUEUES:
        _register_task(app, definition)

    tracker = JobTracker(cache) if cache is not None else None

    def _queue_for(task) -> Optional[str]:
        definition = get_queue_by_task_name(getattr(task, "name", None))
        return definition.name if definition is not None else None

    def _attempts(request) -> int:
        return (getattr(request, "retries", 0) or 0) + 1

    def _safely(queue: str, action: Callable[[], Any]) -> None:
        """Run a counter or job record update; Redis errors never fail the job."""
        if cache is None:
            return
        try:
            action()
        except Exception as e:
            logger.warning("worker.tracking_failed", queue=queue, error=str(e))

    def on_prerun(sender=None, task_id: Optional[str] = None, **_: Any) -> None:
        queue = _queue_for(sender)
        if queue is not None:
            _safely(queue, lambda: tracker.started(queue, task_id))

    def on_success(sender=None, result: Any = None, **_: Any) -> None:
        queue = _queue_for(sender)
        if queue is None:
            return
        job_id = sender.request.id
        attempts = _attempts(sender.request)
        _safely(queue, lambda: cache.incr(counter_key(queue, "completed")))
        _safely(queue, lambda: tracker.completed(queue, job_id, attempts))
        logger.info("worker.job_completed", queue=queue, job_id=job_id)

    def on_failure(sender=None, task_id: Optional[str] = None, exception=None, **_: Any) -> None:
        queue = _queue_for(sender)
        if queue is None:
            return
        attempts = _attempts(sender.request)
        _safely(queue, lambda: cache.incr(counter_key(queue, "failed")))
        _safely(queue, lambda: tracker.failed(queue, task_id, str(exception), attempts))
        logger.error("worker.job_failed", queue=queue, job_id=task_id, error=str(exception))

    def on_retry(sender=None, request=None, reason=None, **_: Any) -> None:
        queue = _queue_for(sender)
        if queue is None or request is None:
            return
        attempts = _attempts(request)
        _safely(queue, lambda: tracker.retrying(queue, request.id, str(reason), attempts))
        logger.warning("worker.job_retrying", queue=queue, job_id=request.id, reason=str(reason))

    # Replace handlers from an earlier registration so they use this cache
    for signal, handler, uid in (
        (signals.task_prerun, on_prerun, PRERUN_HANDLER_UID),
        (signals.task_success, on_success, SUCCESS_HANDLER_UID),
        (signals.task_failure, on_failure, FAILURE_HANDLER_UID),
        (signals.task_retry, on_retry, RETRY_HANDLER_UID),
    ):
        signal.disconnect(dispatch_uid=uid)
        signal.connect(handler, weak=False, dispatch_uid=uid)


def enqueue(
    app: Celery,
    queue_name: str,
    payload: Any,
    tracker: Optional[JobTracker] = None
) -> str:
    """Add a job to a queue and return its id.

    Args:
        app: Celery app to send the job through
        queue_name: Registered queue name
        payload: Payload of the queue's payload type
        tracker: Records the job for admin listing (skipped when omitted)

    Raises:
        ValueError: If the queue is unknown or the payload has the wrong type
    """
    definition = get_queue_by_name(queue_name)
    if definition is None:
        raise ValueError(f"Unknown queue: {queue_name}")
    if not isinstance(payload, definition.payload_type):
        raise ValueError(
            f"Queue {queue_name} expects {definition.payload_type.__name__} payloads"
        )

    job_id = str(uuid.uuid4())
    data = payload.to_dict()
    # The record must exist before a worker can pick the job up
    if tracker is not None:
        tracker.added(definition.name, job_id, definition.job_name, data)

    try:
        result = app.send_task(
            definition.task_name,
            args=[data],
            queue=definition.name,
            task_id=job_id
        )
    except Exception as e:
        if tracker is not None:
            tracker.failed(definition.name, job_id, str(e), attempts=0)
        raise

    logger.info("queue.job_added", queue=definition.name, job_id=result.id)
    return result.id


def start_worker(app: Celery, queue_name: str, loglevel: str = "INFO") -> None:
    """Run a blocking worker for one queue at that queue's concurrency.

    Celery handles SIGTERM/SIGINT with a warm shutdown.
    """
    definition = get_queue_by_name(queue_name)
    if definition is None:
        raise ValueError(f"Unknown queue: {queue_name}")

    logger.info(
        "worker.starting",
        queue=definition.name,
        concurrency=definition.concurrency
    )
    app.worker_main(argv=[
        "worker",
        "--queues", definition.name,
        "--concurrency", str(definition.concurrency),
        "--loglevel", loglevel,
    ])
