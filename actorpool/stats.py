"""Message-processing statistics collected by factories and their workers."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .job import JobOptions

__all__ = ["MessageProcessingStats", "MICROS_IN_SEC", "RESET_PINGS_AFTER", "RESET_JOBS_AFTER"]

MICROS_IN_SEC = 1_000_000
RESET_PINGS_AFTER = 600
RESET_JOBS_AFTER = 10_000


def _elapsed_us(now_ns: int, then_ns: int) -> int:
    delta = now_ns - then_ns
    if delta < 0:
        raise ValueError("time went backwards")
    return delta // 1000


@dataclass
class MessageProcessingStats:
    """Running counters for pings, incoming jobs, finished jobs and dropped jobs.

    ``last_ping`` and ``last_job_time`` are monotonic timestamps in
    nanoseconds (``time.monotonic_ns()``). Counters only move once the
    statistics are enabled, except for ``last_ping`` which is always refreshed.
    """

    ping_count: int = 0
    ping_timing_us: int = 0
    last_ping: int = field(default_factory=time.monotonic_ns)
    last_job_time: int = field(default_factory=time.monotonic_ns)
    job_count: int = 0
    job_incoming_time_us: int = 0
    processed_job_count: int = 0
    total_processed_job_count: int = 0
    factory_processing_latency_usec: int = 0
    worker_processing_latency_usec: int = 0
    job_processing_latency_usec: int = 0
    total_num_expired_jobs: int = 0
    total_num_discarded_jobs: int = 0
    enabled: bool = False

    def __str__(self) -> str:
        return (
            f"Avg ping time: {self.ping_timing_us // self.ping_count}us\n"
            f"Num processed jobs: {self.total_processed_job_count}\n"
            f"Job qps: {self.avg_job_qps()}\n"
            f"Avg job processing time: "
            f"{self.job_processing_latency_usec // self.processed_job_count}us\n"
            f"Avg time in factory queue: "
            f"{self.factory_processing_latency_usec // self.processed_job_count}us\n"
            f"Num expired jobs: {self.total_num_expired_jobs}\n"
            f"Num discarded jobs: {self.total_num_discarded_jobs}\n"
        )

    def enable(self) -> None:
        """Start collecting statistics."""
        self.enabled = True

    def reset_global_counters(self) -> None:
        """Zero the totals of discarded, expired and processed jobs."""
        self.total_num_discarded_jobs = 0
        self.total_num_expired_jobs = 0
        self.total_processed_job_count = 0

    def ping_received(self, sent_when: int) -> bool:
        """Record a ping sent at monotonic time ``sent_when`` (ns).

        Returns True when the ping counter was folded into an average and
        reset, which happens once more than ``RESET_PINGS_AFTER`` pings arrived.
        """
        self.last_ping = time.monotonic_ns()
        if self.enabled:
            self.ping_count += 1
            self.ping_timing_us += _elapsed_us(self.last_ping, sent_when)
            if self.ping_count > RESET_PINGS_AFTER:
                self.ping_timing_us //= self.ping_count
                self.ping_count = 1
                return True
        return False

    def job_submitted(self) -> None:
        """Record the arrival of a job."""
        if not self.enabled:
            return
        now = time.monotonic_ns()
        since_last = _elapsed_us(now, self.last_job_time)
        self.last_job_time = now
        self.job_incoming_time_us += since_last
        self.job_count += 1
        if self.job_count > RESET_JOBS_AFTER:
            self.job_incoming_time_us //= self.job_count
            self.job_count = 1

    def job_ttl_expired(self) -> None:
        """Record a job dropped because its time-to-live ran out."""
        if self.enabled:
            self.total_num_expired_jobs += 1

    def job_discarded(self) -> None:
        """Record a job shed because a queue was over its threshold."""
        if self.enabled:
            self.total_num_discarded_jobs += 1

    def avg_job_qps(self) -> int:
        """Average number of incoming jobs per second."""
        us_between_jobs = self.job_incoming_time_us // self.job_count
        return MICROS_IN_SEC // us_between_jobs

    def factory_job_done(self, options: "JobOptions") -> None:
        """Record a finished job's factory, worker and total latencies."""
        if not self.enabled:
            return
        self.processed_job_count += 1
        self.total_processed_job_count += 1

        now = time.time_ns()
        self.factory_processing_latency_usec += _elapsed_us(now, options.factory_time)
        self.worker_processing_latency_usec += _elapsed_us(now, options.worker_time)
        self.job_processing_latency_usec += _elapsed_us(now, options.submit_time)

        if self.processed_job_count > RESET_JOBS_AFTER:
            self.job_processing_latency_usec //= self.processed_job_count
            self.factory_processing_latency_usec //= self.processed_job_count
            self.processed_job_count = 1