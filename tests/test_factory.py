import time
from collections import deque
from dataclasses import dataclass

import pytest

from actorpool.errors import ChannelClosedError
from actorpool.factory import (
    DeadMansSwitchConfiguration,
    Dispatch,
    DoPings,
    Factory,
    Finished,
    GetStats,
    IdentifyStuckWorkers,
    WorkerPong,
)
from actorpool.job import Job, JobOptions
from actorpool.routing import CustomHashFunction, RoutingMode
from actorpool.worker import DiscardHandler, FactoryPing, WorkerDispatch

NUM_TEST_WORKERS = 3


@dataclass(frozen=True)
class TestKey:
    id: int


class FakeWorker:
    def __init__(self, actor_id, wid, cluster):
        self.id = actor_id
        self.wid = wid
        self.cluster = cluster
        self.killed = False
        self.stopped = False
        self.closed = False
        self.held = []

    def cast(self, msg):
        if self.closed:
            raise ChannelClosedError()
        self.cluster.pending.append((self, msg))

    def kill(self):
        self.killed = True

    def stop(self):
        self.stopped = True


class Cluster:
    def __init__(self, factory, slow=False):
        self.factory = factory
        self.slow = slow
        self.counters = [0] * factory.worker_count
        self.pending = deque()
        self.spawned = []

    def spawn(self, wid, context):
        assert context.wid == wid
        assert context.factory is self.factory
        actor = FakeWorker(len(self.spawned), wid, self)
        self.spawned.append(actor)
        return actor

    def pump(self):
        while self.pending:
            actor, msg = self.pending.popleft()
            if actor.killed or actor.stopped:
                continue
            if isinstance(msg, FactoryPing):
                self.factory.handle(WorkerPong(actor.wid, msg.time))
            elif isinstance(msg, WorkerDispatch):
                self.counters[actor.wid] += 1
                if self.slow:
                    actor.held.append(msg.job.key)
                else:
                    self.factory.handle(Finished(actor.wid, msg.job.key))

    def release_all(self):
        while any(a.held for a in self.spawned if not a.killed):
            for actor in self.spawned:
                if actor.killed:
                    continue
                keys, actor.held = actor.held, []
                for key in keys:
                    self.factory.handle(Finished(actor.wid, key))
            self.pump()


class Reply:
    def __init__(self):
        self.values = []

    def send(self, value):
        self.values.append(value)


def make(slow=False, **kwargs):
    factory = Factory(worker_count=NUM_TEST_WORKERS, **kwargs)
    cluster = Cluster(factory, slow=slow)
    factory.start(cluster.spawn)
    return factory, cluster


def dispatch_many(factory, count, key=TestKey(0)):
    for _ in range(count):
        factory.handle(Dispatch(Job(key=key, msg="ok", options=JobOptions())))


def test_dispatch_key_persistent():
    factory, cluster = make(routing_mode=RoutingMode.KEY_PERSISTENT)
    dispatch_many(factory, 999)
    cluster.pump()
    assert cluster.counters[0] == 999
    assert sum(cluster.counters) == 999


def test_dispatch_queuer():
    factory, cluster = make(routing_mode=RoutingMode.QUEUER)
    dispatch_many(factory, 999, TestKey(1))
    cluster.pump()
    assert sum(cluster.counters) == 999


def test_dispatch_round_robin():
    factory, cluster = make(routing_mode=RoutingMode.ROUND_ROBIN)
    dispatch_many(factory, 999, TestKey(1))
    cluster.pump()
    assert cluster.counters == [333, 333, 333]


def test_dispatch_random():
    factory, cluster = make(routing_mode=RoutingMode.RANDOM)
    dispatch_many(factory, 999, TestKey(1))
    cluster.pump()
    assert sum(cluster.counters) == 999


class AlwaysTwo(CustomHashFunction):
    def hash(self, key, worker_count):
        return 2


def test_dispatch_custom_hashing():
    factory, cluster = make(routing_mode=AlwaysTwo())
    assert factory.routing_mode is RoutingMode.CUSTOM_HASH_FUNCTION
    dispatch_many(factory, 999, TestKey(1))
    cluster.pump()
    assert cluster.counters[2] == 999


def test_custom_mode_without_hasher_is_rejected():
    with pytest.raises(ValueError):
        Factory(routing_mode=RoutingMode.CUSTOM_HASH_FUNCTION)


def test_zero_workers_is_rejected():
    with pytest.raises(ValueError):
        Factory(worker_count=0)


def test_dispatch_sticky_queueing():
    factory, cluster = make(slow=True, routing_mode=RoutingMode.STICKY_QUEUER)
    dispatch_many(factory, 5, TestKey(1))
    cluster.pump()
    cluster.release_all()
    assert 5 in cluster.counters
    assert sum(cluster.counters) == 5


class CountingDiscarder(DiscardHandler):
    def __init__(self):
        self.count = 0

    def discard(self, job):
        self.count += 1


def test_discards_on_queuer():
    discarder = CountingDiscarder()
    factory, cluster = make(
        slow=True,
        routing_mode=RoutingMode.QUEUER,
        discard_handler=discarder,
        discard_threshold=5,
    )
    dispatch_many(factory, 108, TestKey(1))
    cluster.pump()
    assert cluster.counters == [1, 1, 1]
    assert discarder.count == 100
    assert len(factory.messages) == 5
    assert factory.stats.total_num_discarded_jobs == 100


def test_stuck_workers_are_killed_and_replaced():
    factory, cluster = make(
        slow=True,
        routing_mode=RoutingMode.ROUND_ROBIN,
        dead_mans_switch=DeadMansSwitchConfiguration(detection_timeout=0.001, kill_worker=True),
    )
    dispatch_many(factory, 9, TestKey(1))
    cluster.pump()
    time.sleep(0.01)
    factory.handle(IdentifyStuckWorkers())
    killed = [a for a in cluster.spawned if a.killed]
    assert len(killed) == 3
    for actor in killed:
        assert factory.worker_terminated(actor.id, "killed") is True
    cluster.pump()
    assert len(cluster.spawned) == 6
    assert all(count > 1 for count in cluster.counters)


def test_stuck_workers_not_killed_without_flag():
    factory, cluster = make(
        slow=True,
        dead_mans_switch=DeadMansSwitchConfiguration(detection_timeout=0.001, kill_worker=False),
    )
    time.sleep(0.01)
    factory.handle(IdentifyStuckWorkers())
    assert not any(a.killed for a in cluster.spawned)


def test_worker_terminated_unknown_id():
    factory, cluster = make()
    assert factory.worker_terminated(12345, "gone") is False
    assert len(cluster.spawned) == 3


def test_worker_pings():
    factory, cluster = make(routing_mode=RoutingMode.KEY_PERSISTENT)
    dispatch_many(factory, 999)
    factory.handle(DoPings(time.monotonic_ns()))
    cluster.pump()
    reply = Reply()
    factory.handle(GetStats(reply))
    assert len(reply.values) == 1
    assert reply.values[0].ping_count > 0
    assert cluster.counters[0] == 999
    assert all(not w.is_ping_pending for w in factory.pool.values())


def test_pending_ping_is_not_resent():
    factory, cluster = make()
    factory.handle(DoPings())
    factory.handle(DoPings())
    pings = [m for _, m in cluster.pending if isinstance(m, FactoryPing)]
    assert len(pings) == NUM_TEST_WORKERS


def test_scheduler_receives_pings_and_scans():
    scheduled = []
    factory, _ = make(
        scheduler=lambda delay, make_msg: scheduled.append((delay, make_msg())),
        ping_frequency=0.1,
        dead_mans_switch=DeadMansSwitchConfiguration(detection_timeout=0.05, kill_worker=False),
    )
    assert [d for d, _ in scheduled] == [0.1, 0.05]
    assert isinstance(scheduled[0][1], DoPings)
    assert isinstance(scheduled[1][1], IdentifyStuckWorkers)
    factory.handle(DoPings())
    assert scheduled[-1][0] == 0.1
    assert isinstance(scheduled[-1][1], DoPings)


def test_expired_backlog_jobs_are_dropped():
    factory = Factory(worker_count=1, routing_mode=RoutingMode.QUEUER)
    cluster = Cluster(factory, slow=True)
    factory.start(cluster.spawn)
    factory.handle(Dispatch(Job(key=TestKey(1), msg="a")))
    stale = JobOptions(submit_time=time.time_ns() - 10_000_000_000, ttl=1.0)
    factory.handle(Dispatch(Job(key=TestKey(2), msg="b", options=stale)))
    factory.handle(Dispatch(Job(key=TestKey(3), msg="c")))
    cluster.pump()
    assert cluster.counters == [1]
    factory.handle(Finished(0, TestKey(1)))
    assert factory.stats.total_num_expired_jobs == 1
    cluster.pump()
    assert cluster.counters == [2]
    assert cluster.spawned[0].held == [TestKey(1), TestKey(3)]
    assert len(factory.messages) == 0


def test_closed_worker_raises():
    factory, cluster = make(routing_mode=RoutingMode.ROUND_ROBIN)
    for actor in cluster.spawned:
        actor.closed = True
    with pytest.raises(ChannelClosedError):
        factory.handle(Dispatch(Job(key=TestKey(0), msg="ok", options=JobOptions())))
    assert len(cluster.pending) == 0


def test_handle_before_start_raises():
    factory = Factory()
    with pytest.raises(RuntimeError):
        factory.handle(DoPings())


def test_double_start_raises():
    factory, cluster = make()
    with pytest.raises(RuntimeError):
        factory.start(cluster.spawn)


def test_unknown_message_raises():
    factory, _ = make()
    with pytest.raises(TypeError):
        factory.handle("nonsense")


def test_stop_stops_all_workers():
    factory, cluster = make()
    factory.stop()
    assert all(a.stopped for a in cluster.spawned)
    assert len(cluster.spawned) == NUM_TEST_WORKERS