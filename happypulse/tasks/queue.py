# happypulse/tasks/queue.py
"""
Named post-commit work queue.

Side effects that must not roll back an event (word indexing, notifications,
achievements, LLM insights) are submitted here after the commit. Each job is
retried with exponential backoff and dead-lettered after the last attempt.
Nothing is dropped silently: a full queue raises QueueFull at submit time.
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from happypulse.core.config import settings
from happypulse.core.errors import DependencyUnavailable

logger = logging.getLogger("post_commit")

TaskFn = Callable[..., Awaitable[Any]]

# name -> coroutine function(ctx, **payload)
TASKS: Dict[str, TaskFn] = {}


def post_commit_task(name: str):
    def decorator(fn: TaskFn) -> TaskFn:
        TASKS[name] = fn
        return fn
    return decorator


class QueueFull(DependencyUnavailable):
    default_message = "Post-commit queue is full"


@dataclass
class TaskContext:
    """What a job needs to open its own sessions and reach adapters."""
    session_factory: Callable
    index_session_factory: Callable
    notifier: Any


@dataclass
class Job:
    name: str
    payload: Dict[str, Any]
    attempts: int = 0
    last_error: Optional[str] = None
    submitted_at: datetime = field(default_factory=datetime.utcnow)


class PostCommitQueue:
    def __init__(
        self,
        ctx: TaskContext,
        max_attempts: int = settings.POST_COMMIT_MAX_ATTEMPTS,
        backoff_seconds: float = settings.POST_COMMIT_BACKOFF_SECONDS,
        max_depth: int = settings.POST_COMMIT_QUEUE_DEPTH,
        workers: int = 2,
    ):
        self.ctx = ctx
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.max_depth = max_depth
        self.workers = workers
        self.dead_letters: List[Job] = []
        self.completed = 0
        self._pending: Deque[Job] = deque()
        self._wakeup = asyncio.Event()
        self._in_flight = 0
        self._worker_tasks: List[asyncio.Task] = []

    def __len__(self) -> int:
        return len(self._pending)

    def submit(self, name: str, **payload) -> Job:
        if name not in TASKS:
            raise KeyError(f"Unknown post-commit task '{name}'")
        if len(self._pending) >= self.max_depth:
            logger.warning(f"[queue] full ({self.max_depth}), rejecting {name}")
            raise QueueFull()
        job = Job(name=name, payload=payload)
        self._pending.append(job)
        self._wakeup.set()
        return job

    async def _run(self, job: Job) -> None:
        fn = TASKS[job.name]
        while job.attempts < self.max_attempts:
            job.attempts += 1
            try:
                await fn(self.ctx, **job.payload)
                self.completed += 1
                return
            except Exception as e:
                job.last_error = f"{e.__class__.__name__}: {e}"
                logger.warning(
                    f"[queue] {job.name} attempt {job.attempts}/{self.max_attempts} failed: {job.last_error}"
                )
                if job.attempts < self.max_attempts:
                    await asyncio.sleep(self.backoff_seconds * (2 ** (job.attempts - 1)))
        self.dead_letters.append(job)
        logger.error(f"[queue] {job.name} dead-lettered after {job.attempts} attempts: {job.last_error}")

    async def _worker(self) -> None:
        while True:
            if not self._pending:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            job = self._pending.popleft()
            self._in_flight += 1
            try:
                await self._run(job)
            finally:
                self._in_flight -= 1

    def start(self) -> None:
        if self._worker_tasks:
            return
        for _ in range(self.workers):
            self._worker_tasks.append(asyncio.create_task(self._worker()))
        logger.info(f"[queue] started {self.workers} workers")

    async def stop(self) -> None:
        await self.drain()
        for task in self._worker_tasks:
            task.cancel()
        await asyncio.gather(*self._worker_tasks, return_exceptions=True)
        self._worker_tasks = []

    async def drain(self) -> None:
        """Run every pending job to completion (or dead letter) in the caller's task."""
        while self._pending or self._in_flight:
            if self._pending:
                job = self._pending.popleft()
                self._in_flight += 1
                try:
                    await self._run(job)
                finally:
                    self._in_flight -= 1
            else:
                await asyncio.sleep(0.01)
