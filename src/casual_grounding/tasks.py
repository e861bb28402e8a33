"""
Observable background tasks.

Side work that must not block a chat turn (memory candidate extraction,
re-embedding) is submitted here instead of being fired and forgotten. Every
task has a record with its status and last error; tasks that exhaust their
attempts are kept as dead letters and can be resubmitted.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Deque, Dict, List, Literal, Optional, Set

from casual_grounding.models import new_id

logger = logging.getLogger(__name__)

TaskStatus = Literal["pending", "running", "succeeded", "failed"]
TaskFactory = Callable[[], Awaitable[object]]


@dataclass
class TaskRecord:
    """
    State of one submitted task.

    Attributes:
        name: Human-readable task name (e.g. "extract-memories:<message id>")
        status: pending | running | succeeded | failed
        attempts: Attempts made so far
        last_error: Error of the most recent failed attempt
    """

    name: str
    id: str = field(default_factory=new_id)
    status: TaskStatus = "pending"
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None


class BackgroundTaskQueue:
    def __init__(self, max_attempts: int = 3, retry_delay: float = 1.0, history_size: int = 100):
        """
        Args:
            max_attempts: Attempts per task before it becomes a dead letter
            retry_delay: Seconds between attempts
            history_size: Finished records kept for ``get()``; older ones are dropped
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._active: Dict[str, TaskRecord] = {}
        self._finished: Deque[TaskRecord] = deque(maxlen=history_size)
        # Factories are held only while a task may still run again.
        self._factories: Dict[str, TaskFactory] = {}
        self._dead_letters: List[TaskRecord] = []
        self._running: Set[asyncio.Task] = set()

    @property
    def dead_letters(self) -> List[TaskRecord]:
        return list(self._dead_letters)

    @property
    def pending_count(self) -> int:
        return len(self._running)

    def get(self, task_id: str) -> Optional[TaskRecord]:
        record = self._active.get(task_id)
        if record is not None:
            return record
        return next((r for r in self._finished if r.id == task_id), None)

    def submit(self, name: str, factory: TaskFactory) -> TaskRecord:
        """
        Schedule ``factory()`` on the running event loop.

        Args:
            name: Task name for logs and records
            factory: Zero-argument callable returning a fresh awaitable per attempt

        Returns:
            The task's record (updated in place as the task runs)
        """
        record = TaskRecord(name=name)
        self._active[record.id] = record
        self._factories[record.id] = factory

        task = asyncio.get_running_loop().create_task(self._run(record, factory))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

        logger.debug(f"Submitted task {name} ({record.id})")
        return record

    async def _run(self, record: TaskRecord, factory: TaskFactory) -> None:
        for attempt in range(1, self.max_attempts + 1):
            record.status = "running"
            record.attempts = attempt
            try:
                await factory()
            except asyncio.CancelledError:
                record.status = "failed"
                record.last_error = "cancelled"
                record.finished_at = datetime.now()
                self._finish(record, keep_factory=False)
                raise
            except Exception as e:
                record.last_error = str(e) or type(e).__name__
                logger.warning(
                    f"Task {record.name} failed (attempt {attempt}/{self.max_attempts}): {e}"
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay)
                continue

            record.status = "succeeded"
            record.finished_at = datetime.now()
            self._finish(record, keep_factory=False)
            logger.debug(f"Task {record.name} succeeded after {attempt} attempt(s)")
            return

        record.status = "failed"
        record.finished_at = datetime.now()
        self._finish(record, keep_factory=True)
        self._dead_letters.append(record)
        logger.error(f"Task {record.name} moved to dead letters: {record.last_error}")

    def _finish(self, record: TaskRecord, keep_factory: bool) -> None:
        self._active.pop(record.id, None)
        self._finished.append(record)
        if not keep_factory:
            self._factories.pop(record.id, None)

    async def join(self) -> None:
        """Wait until every submitted task (including ones submitted meanwhile) has finished."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    def retry_dead_letters(self) -> List[TaskRecord]:
        """Resubmit every dead letter; returns the new records."""
        dead, self._dead_letters = self._dead_letters, []
        resubmitted = [self.submit(record.name, self._factories.pop(record.id)) for record in dead]
        if resubmitted:
            logger.info(f"Resubmitted {len(resubmitted)} dead-letter tasks")
        return resubmitted
