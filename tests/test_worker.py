import time

import pytest

from actorpool.errors import ChannelClosedError
from actorpool.job import Job, JobOptions
from actorpool.worker import (
    DiscardHandler,
    FactoryPing,
    WorkerDispatch,
    WorkerProperties,
)


class FakeActor:
    def __init__(self, actor_id, fail=False):
        self.id = actor_id
        self.fail = fail
        self.sent = []

    def cast(self, msg):
        if self.fail:
            raise ChannelClosedError()
        self.sent.append(msg)


class Recorder(DiscardHandler):
    def __init__(self):
        self.jobs = []

    def discard(self, job):
        self.jobs.append(job)


def make_job(key, msg="m", ttl=None, age_s=0.0):
    options = JobOptions(submit_time=time.time_ns() - int(age_s * 1e9), ttl=ttl)
    return Job(key=key, msg=msg, options=options)


def dispatched(actor):
    return [m.job.msg for m in actor.sent if isinstance(m, WorkerDispatch)]


def test_enqueue_dispatches_when_available():
    actor = FakeActor(1)
    worker = WorkerProperties(0, actor)
    worker.enqueue_job(make_job("a", "first"))
    assert dispatched(actor) == ["first"]
    assert worker.is_processing_key("a")
    assert not worker.is_available()


def test_enqueue_queues_when_busy_and_complete_dispatches_next():
    actor = FakeActor(1)
    worker = WorkerProperties(0, actor)
    worker.enqueue_job(make_job("a", "first"))
    worker.enqueue_job(make_job("b", "second"))
    assert dispatched(actor) == ["first"]

    options = worker.worker_complete("a")
    assert isinstance(options, JobOptions)
    assert dispatched(actor) == ["first", "second"]


def test_complete_unknown_key_returns_none():
    worker = WorkerProperties(0, FakeActor(1))
    assert worker.worker_complete("missing") is None


def test_discard_threshold_sheds_oldest():
    actor = FakeActor(1)
    handler = Recorder()
    worker = WorkerProperties(
        0, actor, discard_threshold=2, discard_handler=handler, collect_stats=True
    )
    for i in range(5):
        worker.enqueue_job(make_job(i, f"job{i}"))

    assert dispatched(actor) == ["job0"]
    assert [j.msg for j in handler.jobs] == ["job1", "job2"]
    assert [j.msg for j in worker.message_queue] == ["job3", "job4"]
    assert worker.stats.total_num_discarded_jobs == 2


def test_expired_jobs_are_skipped():
    actor = FakeActor(1)
    worker = WorkerProperties(0, actor, collect_stats=True)
    worker.enqueue_job(make_job("a", "first"))
    worker.enqueue_job(make_job("b", "stale", ttl=1.0, age_s=10.0))
    worker.enqueue_job(make_job("c", "fresh"))
    worker.worker_complete("a")
    assert dispatched(actor) == ["first", "fresh"]
    assert worker.stats.total_num_expired_jobs == 1


def test_capacity_allows_parallel_jobs():
    actor = FakeActor(1)
    worker = WorkerProperties(0, actor, capacity=2)
    worker.enqueue_job(make_job("a", "x"))
    assert worker.is_available()
    worker.enqueue_job(make_job("b", "y"))
    assert not worker.is_available()
    assert dispatched(actor) == ["x", "y"]


def test_ping_is_not_repeated_while_pending():
    actor = FakeActor(1)
    worker = WorkerProperties(0, actor)
    worker.send_factory_ping()
    worker.send_factory_ping()
    pings = [m for m in actor.sent if isinstance(m, FactoryPing)]
    assert len(pings) == 1

    worker.ping_received(pings[0].time)
    assert worker.is_ping_pending is False
    worker.send_factory_ping()
    assert len([m for m in actor.sent if isinstance(m, FactoryPing)]) == 2


def test_is_stuck_follows_last_ping():
    worker = WorkerProperties(0, FakeActor(1))
    assert worker.is_stuck(60.0) is False
    worker.stats.last_ping = time.monotonic_ns() - 5_000_000_000
    assert worker.is_stuck(0.5) is True


def test_replace_worker_dispatches_queued_job_to_new_actor():
    old = FakeActor(1)
    worker = WorkerProperties(0, old)
    worker.enqueue_job(make_job("a", "first"))
    worker.enqueue_job(make_job("b", "second"))
    worker.send_factory_ping()

    new = FakeActor(2)
    worker.replace_worker(new)
    assert worker.is_pid(2)
    assert not worker.is_pid(1)
    assert dispatched(new) == ["second"]
    assert worker.is_processing_key("b")
    assert not worker.is_processing_key("a")
    assert worker.is_ping_pending is False


def test_cast_failure_propagates():
    worker = WorkerProperties(0, FakeActor(1, fail=True))
    with pytest.raises(ChannelClosedError):
        worker.enqueue_job(make_job("a"))