"""Factories: managers of a pool of workers that jobs are dispatched to.

A factory owns ``worker_count`` workers and routes each incoming Job to one
of them according to its RoutingMode. Workers that die are replaced and keep
their queued jobs. The factory can ping its workers and, with a dead man's
switch, find and kill workers that stop answering.

The factory does not run its own event loop. ``handle`` processes one message.
An optional ``scheduler(delay_seconds, make_message)`` is used for work that
must happen later: periodic pings and stuck-worker scans.
"""

from __future__ import annotations

import dataclasses
import logging
import random
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Optional, Union

from .job import Job
from .routing import CustomHashFunction, RoutingMode
from .stats import MessageProcessingStats
from .worker import DiscardHandler, WorkerProperties, WorkerStartContext
from .hashing import hash_with_max

__all__ = [
    "DeadMansSwitchConfiguration",
    "Dispatch",
    "Finished",
    "DoPings",
    "WorkerPong",
    "IdentifyStuckWorkers",
    "GetStats",
    "Factory",
    "PING_FREQUENCY",
]

_log = logging.getLogger(__name__)

PING_FREQUENCY = 1.0

Scheduler = Callable[[float, Callable[[], Any]], Any]
SpawnWorker = Callable[[int, WorkerStartContext], Any]


@dataclass
class DeadMansSwitchConfiguration:
    """Stuck-worker detection: a timeout in seconds and whether to kill."""

    detection_timeout: float
    kill_worker: bool


@dataclass
class Dispatch:
    """Dispatch a new job."""

    job: Job


@dataclass
class Finished:
    """Worker ``wid`` finished the job with ``key``."""

    wid: int
    key: Any


@dataclass
class DoPings:
    """Ping every worker; ``when`` is the monotonic time (ns) it was issued."""

    when: int = field(default_factory=time.monotonic_ns)


@dataclass
class WorkerPong:
    """Worker ``wid`` answered the ping sent at monotonic time ``time`` (ns)."""

    wid: int
    time: int


@dataclass
class IdentifyStuckWorkers:
    """Scan the pool for stuck workers."""


@dataclass
class GetStats:
    """Request a copy of the factory's statistics through ``reply.send``."""

    reply: Any


@dataclass(eq=False)
class Factory:
    """A pool of workers with job routing, backlog, load shedding and pings."""

    worker_count: int = 1
    routing_mode: Union[RoutingMode, CustomHashFunction] = RoutingMode.KEY_PERSISTENT
    custom_hash_function: Optional[CustomHashFunction] = None
    collect_worker_stats: bool = False
    discard_threshold: Optional[int] = None
    discard_handler: Optional[DiscardHandler] = None
    worker_parallel_capacity: int = 1
    dead_mans_switch: Optional[DeadMansSwitchConfiguration] = None
    name: Optional[str] = None
    scheduler: Optional[Scheduler] = None
    ping_frequency: float = PING_FREQUENCY

    pool: Dict[int, WorkerProperties] = field(default_factory=dict, init=False)
    messages: Deque[Job] = field(default_factory=deque, init=False)
    stats: MessageProcessingStats = field(default_factory=MessageProcessingStats, init=False)
    _spawn_worker: Optional[SpawnWorker] = field(default=None, init=False, repr=False)
    _last_worker: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        if isinstance(self.routing_mode, CustomHashFunction):
            self.custom_hash_function = self.routing_mode
            self.routing_mode = RoutingMode.CUSTOM_HASH_FUNCTION
        if self.worker_count < 1:
            raise ValueError("a factory needs at least one worker")
        if (
            self.routing_mode is RoutingMode.CUSTOM_HASH_FUNCTION
            and self.custom_hash_function is None
        ):
            raise ValueError("custom hash routing needs a custom_hash_function")

    @property
    def started(self) -> bool:
        return self._spawn_worker is not None

    def _schedule(self, delay: float, make_message: Callable[[], Any]) -> None:
        if self.scheduler is not None:
            self.scheduler(delay, make_message)

    def start(self, spawn_worker: SpawnWorker) -> None:
        """Build the worker pool with ``spawn_worker(wid, context)``."""
        if self.started:
            raise RuntimeError("factory already started")
        for wid in range(self.worker_count):
            actor = spawn_worker(wid, WorkerStartContext(wid=wid, factory=self))
            self.pool[wid] = WorkerProperties(
                wid,
                actor,
                capacity=self.worker_parallel_capacity,
                discard_threshold=self.discard_threshold,
                discard_handler=self.discard_handler,
                collect_stats=self.collect_worker_stats,
            )
        self._spawn_worker = spawn_worker

        self._schedule(self.ping_frequency, DoPings)
        if self.dead_mans_switch is not None:
            self._schedule(self.dead_mans_switch.detection_timeout, IdentifyStuckWorkers)
        self.stats.enable()

    def _maybe_enqueue(self, job: Job) -> None:
        self.messages.append(job)
        limit = self.discard_threshold
        if limit is None:
            return
        while len(self.messages) > limit:
            shed = self.messages.popleft()
            if self.discard_handler is not None:
                self.discard_handler.discard(shed)
            self.stats.job_discarded()

    def _first_available(self) -> Optional[WorkerProperties]:
        return next((w for w in self.pool.values() if w.is_available()), None)

    def _route(self, job: Job) -> None:
        mode = self.routing_mode
        if mode is RoutingMode.KEY_PERSISTENT:
            target = self.pool.get(hash_with_max(job.key, self.worker_count))
        elif mode is RoutingMode.CUSTOM_HASH_FUNCTION:
            target = self.pool.get(self.custom_hash_function.hash(job.key, self.worker_count))
        elif mode is RoutingMode.RANDOM:
            target = self.pool.get(random.randrange(self.worker_count))
        elif mode is RoutingMode.ROUND_ROBIN:
            wid = self._last_worker + 1
            if wid >= self.worker_count:
                wid = 0
            target = self.pool.get(wid)
            self._last_worker = wid
        else:
            target = None
            if mode is RoutingMode.STICKY_QUEUER:
                target = next(
                    (w for w in self.pool.values() if w.is_processing_key(job.key)), None
                )
            if target is None:
                target = self._first_available()
            if target is None:
                self._maybe_enqueue(job)
                return
        if target is not None:
            target.enqueue_job(job)

    def _next_live_backlog_job(self) -> Optional[Job]:
        while self.messages:
            job = self.messages.popleft()
            if not job.is_expired():
                return job
            self.stats.job_ttl_expired()
        return None

    def _finished(self, wid: int, key: Any) -> None:
        worker = self.pool.get(wid)
        if worker is not None:
            options = worker.worker_complete(key)
            if options is not None:
                self.stats.factory_job_done(options)

        if self.routing_mode not in (RoutingMode.QUEUER, RoutingMode.STICKY_QUEUER):
            return
        job = self._next_live_backlog_job()
        if job is None:
            return
        if worker is not None and worker.is_available():
            worker.enqueue_job(job)
            return
        other = self._first_available()
        if other is not None:
            other.enqueue_job(job)
        else:
            self.messages.appendleft(job)

    def _log_stats(self) -> None:
        if _log.isEnabledFor(logging.DEBUG):
            who = self.name if self.name is not None else f"({id(self)})"
            try:
                details = str(self.stats)
            except ZeroDivisionError:
                details = "(not enough data)"
            _log.debug("======== Factory %s stats ========\n\n%s", who, details)
        self.stats.reset_global_counters()

    def handle(self, message: Any) -> None:
        """Process one factory message."""
        if not self.started:
            raise RuntimeError("factory not started")
        match message:
            case Dispatch(job=job):
                job.set_factory_time()
                self.stats.job_submitted()
                self._route(job)
            case Finished(wid=wid, key=key):
                self._finished(wid, key)
            case WorkerPong(wid=wid, time=sent):
                worker = self.pool.get(wid)
                if worker is not None:
                    worker.ping_received(sent)
            case DoPings(when=when):
                if self.stats.ping_received(when):
                    self._log_stats()
                for worker in self.pool.values():
                    worker.send_factory_ping()
                self._schedule(self.ping_frequency, DoPings)
            case IdentifyStuckWorkers():
                dms = self.dead_mans_switch
                if dms is None:
                    return
                for worker in self.pool.values():
                    if worker.is_stuck(dms.detection_timeout) and dms.kill_worker:
                        _log.info(
                            "Factory %r killing stuck worker %s", self.name, worker.wid
                        )
                        worker.actor.kill()
                self._schedule(dms.detection_timeout, IdentifyStuckWorkers)
            case GetStats(reply=reply):
                reply.send(dataclasses.replace(self.stats))
            case _:
                raise TypeError(f"unsupported factory message: {message!r}")

    def worker_terminated(self, actor_id: Any, reason: Any = None) -> bool:
        """Replace the worker whose actor had ``actor_id``.

        Returns True if a worker of this pool was replaced.
        """
        if not self.started:
            raise RuntimeError("factory not started")
        worker = next((w for w in self.pool.values() if w.is_pid(actor_id)), None)
        if worker is None:
            return False
        _log.warning(
            "Factory %r's worker %s terminated with %r", self.name, worker.wid, reason
        )
        replacement = self._spawn_worker(
            worker.wid, WorkerStartContext(wid=worker.wid, factory=self)
        )
        worker.replace_worker(replacement)
        return True

    def stop(self) -> None:
        """Tell every worker to stop."""
        for worker in self.pool.values():
            worker.actor.stop()