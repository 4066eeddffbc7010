"""Book-keeping a factory holds for each of its workers."""

from __future__ import annotations

import abc
import dataclasses
import logging
import time as _time
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional, Protocol

from .job import Job, JobOptions
from .stats import MessageProcessingStats

__all__ = [
    "FactoryPing",
    "WorkerDispatch",
    "WorkerStartContext",
    "DiscardHandler",
    "WorkerProperties",
]

_log = logging.getLogger(__name__)


class _WorkerActor(Protocol):
    id: Any

    def cast(self, msg: Any) -> None: ...


@dataclass
class FactoryPing:
    """A ping from the factory, sent at monotonic time ``time`` (ns).

    The worker should answer at once with a WorkerPong carrying this time.
    """

    time: int


@dataclass
class WorkerDispatch:
    """A job handed to a worker.

    When done, the worker reports Finished with its id and the job key.
    """

    job: Job


@dataclass
class WorkerStartContext:
    """Start-up arguments handed to a worker."""

    wid: int
    factory: Any


class DiscardHandler(abc.ABC):
    """Callback invoked for every job shed from an overfull queue."""

    @abc.abstractmethod
    def discard(self, job: Job) -> None:
        """Handle a discarded job."""


class WorkerProperties:
    """A worker's queue, in-flight jobs, ping state and statistics."""

    def __init__(
        self,
        wid: int,
        actor: _WorkerActor,
        capacity: int = 1,
        discard_threshold: Optional[int] = None,
        discard_handler: Optional[DiscardHandler] = None,
        collect_stats: bool = False,
    ) -> None:
        self.wid = wid
        self.actor = actor
        self.capacity = capacity
        self.discard_threshold = discard_threshold
        self.discard_handler = discard_handler
        self.message_queue: Deque[Job] = deque()
        self.curr_jobs: Dict[Any, JobOptions] = {}
        self.is_ping_pending = False
        self.stats = MessageProcessingStats()
        if collect_stats:
            self.stats.enable()

    def _next_live_job(self) -> Optional[Job]:
        while self.message_queue:
            job = self.message_queue.popleft()
            if not job.is_expired():
                return job
            self.stats.job_ttl_expired()
        return None

    def _dispatch(self, job: Job) -> None:
        job.set_worker_time()
        self.actor.cast(WorkerDispatch(job))

    def is_pid(self, pid: Any) -> bool:
        """True if the worker actor has the id ``pid``."""
        return self.actor.id == pid

    def is_processing_key(self, key: Any) -> bool:
        """True if a job with ``key`` is in flight on this worker."""
        return key in self.curr_jobs

    def replace_worker(self, actor: _WorkerActor) -> None:
        """Swap in a fresh worker actor; in-flight jobs are considered lost."""
        self.is_ping_pending = False
        self.stats.last_ping = _time.monotonic_ns()
        self.curr_jobs.clear()
        self.actor = actor
        job = self._next_live_job()
        if job is not None:
            self.curr_jobs[job.key] = dataclasses.replace(job.options)
            self._dispatch(job)

    def is_available(self) -> bool:
        """True if the worker has room for another job."""
        return len(self.curr_jobs) < self.capacity

    def is_stuck(self, duration: float) -> bool:
        """True if no ping answer arrived in the last ``duration`` seconds."""
        silent_ns = _time.monotonic_ns() - self.stats.last_ping
        if silent_ns > duration * 1_000_000_000:
            keys = "".join(f"\nJob key: {key!r}" for key in self.curr_jobs)
            _log.warning("Stuck worker: %s. Last jobs:\n%s", self.wid, keys)
            return True
        return False

    def enqueue_job(self, job: Job) -> None:
        """Dispatch ``job`` now if there is room, otherwise queue it.

        When the queue grows past the discard threshold the oldest jobs are
        shed and handed to the discard handler.
        """
        self.stats.job_submitted()

        if len(self.curr_jobs) < self.capacity:
            self.curr_jobs[job.key] = dataclasses.replace(job.options)
            older = self._next_live_job()
            if older is not None:
                self.message_queue.append(job)
                self._dispatch(older)
            else:
                self._dispatch(job)
            return

        self.message_queue.append(job)
        threshold = self.discard_threshold
        if threshold:
            while len(self.message_queue) > threshold:
                discarded = self._next_live_job()
                if discarded is not None:
                    self.stats.job_discarded()
                    if self.discard_handler is not None:
                        self.discard_handler.discard(discarded)

    def send_factory_ping(self) -> None:
        """Ping the worker unless an earlier ping is still unanswered."""
        if not self.is_ping_pending:
            self.is_ping_pending = True
            self.actor.cast(FactoryPing(_time.monotonic_ns()))

    def ping_received(self, time: int) -> None:
        """Record the answer to the ping sent at monotonic time ``time``."""
        self.stats.ping_received(time)
        self.is_ping_pending = False

    def worker_complete(self, key: Any) -> Optional[JobOptions]:
        """Mark the job ``key`` finished and dispatch the next queued job.

        Returns the finished job's options, or None if it was not tracked.
        """
        options = self.curr_jobs.pop(key, None)
        job = self._next_live_job()
        if job is not None:
            self._dispatch(job)
        return options