"""
In-process background task queue.

Replaces fire-and-forget HTTP triggering: callers submit a payload and get
a TaskReceipt back as soon as it is enqueued, without waiting for the work.
An item leaves the queue only once its handler returns; a raising handler
puts it back until ``max_attempts`` is reached (at-least-once delivery).
On shutdown the queue drains for up to ``drain_timeout`` seconds and logs
whatever it could not deliver; the startup recovery sweep picks those up.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from flatlist.core.config import settings

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[Any]]


@dataclass(frozen=True)
class TaskReceipt:
    task_id: str
    queue: str
    submitted_at: datetime


@dataclass
class _Task:
    receipt: TaskReceipt
    payload: Any
    attempts: int = 0


@dataclass
class QueueStats:
    submitted: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    in_flight: set = field(default_factory=set)


class TaskQueue:
    def __init__(
        self,
        name: str,
        handler: Handler,
        workers: Optional[int] = None,
        max_attempts: Optional[int] = None,
        drain_timeout: Optional[float] = None,
    ):
        self.name = name
        self.handler = handler
        self.workers = workers or settings.TASK_QUEUE_WORKERS
        self.max_attempts = max_attempts or settings.TASK_QUEUE_MAX_ATTEMPTS
        self.drain_timeout = drain_timeout if drain_timeout is not None else settings.TASK_QUEUE_DRAIN_TIMEOUT_SECONDS

        self._queue: asyncio.Queue = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._workers: list[asyncio.Task] = []
        self._accepting = True
        self._stats = QueueStats()

    def submit(self, payload: Any) -> TaskReceipt:
        """Enqueue a payload and acknowledge it with a receipt."""
        if not self._accepting:
            raise RuntimeError(f"Task queue '{self.name}' is stopped")

        receipt = TaskReceipt(
            task_id=str(uuid.uuid4()),
            queue=self.name,
            submitted_at=datetime.now(timezone.utc),
        )
        self._enqueue(_Task(receipt=receipt, payload=payload))
        self._stats.submitted += 1
        logger.info(f"[{self.name}] Submitted task {receipt.task_id}")
        return receipt

    def _enqueue(self, task: _Task) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if self._loop is not None and running is not self._loop:
            # Sync routes run in a threadpool; asyncio.Queue is not thread-safe
            self._loop.call_soon_threadsafe(self._queue.put_nowait, task)
        else:
            self._queue.put_nowait(task)

    async def start(self) -> None:
        if self._workers:
            return
        self._loop = asyncio.get_running_loop()
        self._accepting = True
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"{self.name}-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info(f"[{self.name}] Started {self.workers} workers")

    async def join(self) -> None:
        """Wait until every submitted item has been handled or given up on."""
        await self._queue.join()

    async def stop(self) -> None:
        self._accepting = False
        try:
            await asyncio.wait_for(self._queue.join(), timeout=self.drain_timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"[{self.name}] Drain timed out; {self._queue.qsize()} queued and "
                f"{len(self._stats.in_flight)} in-flight tasks undelivered"
            )

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info(f"[{self.name}] Stopped")

    async def _worker(self, index: int) -> None:
        while True:
            task = await self._queue.get()
            task_id = task.receipt.task_id
            self._stats.in_flight.add(task_id)
            try:
                task.attempts += 1
                await self.handler(task.payload)
                self._stats.completed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if task.attempts < self.max_attempts:
                    self._stats.retried += 1
                    logger.warning(
                        f"[{self.name}] Task {task_id} failed (attempt {task.attempts}/{self.max_attempts}), "
                        f"re-queueing: {e}"
                    )
                    self._queue.put_nowait(task)
                else:
                    self._stats.failed += 1
                    logger.error(f"[{self.name}] Task {task_id} failed after {task.attempts} attempts: {e}")
            finally:
                self._stats.in_flight.discard(task_id)
                self._queue.task_done()

    def stats(self) -> dict:
        return {
            "name": self.name,
            "queued": self._queue.qsize(),
            "in_flight": len(self._stats.in_flight),
            "submitted": self._stats.submitted,
            "completed": self._stats.completed,
            "retried": self._stats.retried,
            "failed": self._stats.failed,
        }
