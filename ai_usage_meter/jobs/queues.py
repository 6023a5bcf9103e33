"""
Registry of background job queues.

Add new queues to ALL_QUEUES to make them visible to workers and the
admin reports.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Type

from .processors.test_processor import TestJobData, process_test_job


@dataclass(frozen=True)
class QueueDefinition:
    """A named queue, its payload type and the function that processes its jobs."""
    name: str
    task_name: str
    payload_type: Type[Any]
    processor: Callable[[str, Any], None]
    concurrency: int = 1

    def __post_init__(self):
        """Validate queue settings."""
        if not self.name:
            raise ValueError("queue name is required and cannot be empty")
        if self.concurrency <= 0:
            raise ValueError("concurrency must be > 0")

    @property
    def job_name(self) -> str:
        """Short job name shown in listings, e.g. ``test-job``."""
        return self.task_name.rsplit(".", 1)[-1]


TEST_QUEUE = QueueDefinition(
    name="test-queue",
    task_name="test-queue.test-job",
    payload_type=TestJobData,
    processor=process_test_job,
    concurrency=5
)

ALL_QUEUES: Tuple[QueueDefinition, ...] = (TEST_QUEUE,)


def get_queue_by_name(name: str) -> Optional[QueueDefinition]:
    """Look up a queue definition by name, or None if there is none."""
    for queue in ALL_QUEUES:
        if queue.name == name:
            return queue
    return None


def get_queue_by_task_name(task_name: str) -> Optional[QueueDefinition]:
    for queue in ALL_QUEUES:
        if queue.task_name == task_name:
            return queue
    return None
