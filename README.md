# actorpool

Building blocks for actor-style programs: a worker factory that routes jobs
to a pool of workers, job and timing records, processing statistics, process
groups and process-wide actor registries.

The package does not depend on any particular actor runtime. Actors are
duck-typed objects. Depending on where they are used they need:

- an `id` attribute, which may have an `is_local` flag or method (an id
  without one counts as local);
- `cast(msg)` to deliver a message;
- `kill()` and `stop()` for factory workers;
- `send_supervisor_evt(event)` for listeners of process groups and the id
  registry.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Factories (`actorpool.factory`)

A `Factory` owns `worker_count` workers and hands each incoming `Job` to one
of them. It has no event loop of its own. `handle(message)` processes one
message, and you feed it the messages your runtime receives.

```python
from actorpool.factory import Dispatch, Factory, Finished
from actorpool.job import Job
from actorpool.routing import RoutingMode


class Worker:
    def __init__(self, wid):
        self.id = wid
        self.inbox = []

    def cast(self, msg):
        self.inbox.append(msg)

    def kill(self):
        pass

    def stop(self):
        pass


factory = Factory(worker_count=3, routing_mode=RoutingMode.ROUND_ROBIN)
factory.start(lambda wid, context: Worker(wid))

factory.handle(Dispatch(Job(key="user-1", msg="hello")))
# The first round-robin job goes to worker 1, as a WorkerDispatch in its inbox.
factory.handle(Finished(1, "user-1"))
```

- `start(spawn_worker)` builds the pool. `spawn_worker(wid, context)` receives
  a `WorkerStartContext` (`wid` and `factory`) and returns the worker actor.
  Calling `start` twice raises `RuntimeError`, and so does calling `handle`
  before `start`.
- Messages: `Dispatch(job)`, `Finished(wid, key)`, `DoPings(when)`,
  `WorkerPong(wid, time)`, `IdentifyStuckWorkers()` and `GetStats(reply)`.
  `GetStats` passes a copy of the factory's `MessageProcessingStats` to
  `reply.send`. Any other message raises `TypeError`.
- Routing modes (`actorpool.routing.RoutingMode`): `KEY_PERSISTENT` (the
  default, by `hash_with_max` of the key), `QUEUER`, `STICKY_QUEUER`,
  `ROUND_ROBIN`, `RANDOM` and `CUSTOM_HASH_FUNCTION`. For the last mode,
  subclass `CustomHashFunction` and implement `hash(key, worker_count)`. You
  can pass the instance as `custom_hash_function` or directly as
  `routing_mode`.
- The queueing modes keep a shared backlog in the factory. Other modes queue
  jobs on the chosen worker. With `discard_threshold` set, the oldest jobs
  over the limit are shed and passed to a `DiscardHandler.discard(job)`.
  Backlogged jobs whose `ttl` has run out are dropped and counted as expired.
- `worker_parallel_capacity` sets how many jobs a worker may have in flight.
- `scheduler(delay_seconds, make_message)`, if given, is called to schedule
  periodic `DoPings` every `ping_frequency` seconds (1.0 by default). With a
  `DeadMansSwitchConfiguration(detection_timeout, kill_worker)`, it also
  schedules `IdentifyStuckWorkers` scans. A scan kills workers that have not
  answered a ping within the timeout, if `kill_worker` is true.
- `worker_terminated(actor_id, reason)` spawns a replacement for a dead
  worker. The replacement keeps the worker's queue. The method returns
  whether a worker of the pool matched.
- `stop()` calls `stop()` on every worker.

`actorpool.worker.WorkerProperties` holds the factory's bookkeeping for one
worker: its queue, in-flight jobs, ping state and statistics. It also
defines the worker-side messages `FactoryPing` and `WorkerDispatch`.

## Jobs (`actorpool.job`)

A `Job` has a `key`, a `msg` and `JobOptions`. The options hold `submit_time`,
`factory_time` and `worker_time` in wall-clock nanoseconds, and an optional
`ttl` in seconds.

- `JobOptions.to_bytes()` encodes the submit time and ttl as two big-endian
  64-bit nanosecond counts. `JobOptions.from_bytes()` returns default options
  for data that is not exactly 16 bytes long.
- `Job.serialize(key_to_bytes, msg_serializer)` and
  `Job.deserialize(serialized, key_from_bytes, msg_deserializer)` carry the
  options and key in the metadata of a `SerializedCast` or `SerializedCall`.

## Statistics (`actorpool.stats`)

`MessageProcessingStats` counts pings, incoming jobs, finished jobs with
their factory, worker and total latencies, expired jobs and discarded jobs.
Counters only change after `enable()`. `str()` of a stats object gives a
summary. It divides by the ping and job counts, so it needs at least one of
each.

## Hashing (`actorpool.hashing`)

`hash_key(key)` is a stable 64-bit SipHash-1-3 hash with a zero key. It
accepts integers (within 128 bits), booleans, strings, bytes, tuples, lists
and dataclass instances. `hash_with_max(key, n)` maps a key into `0 .. n-1`.

## Registries (`actorpool.registry`)

- By name: `register(name, actor)` raises `ActorRegistryError` if the name is
  taken. The other functions are `unregister(name)`, `where_is(name)` and
  `registered()`.
- By id, for local actors only: `register_pid`, `unregister_pid`,
  `where_is_pid` and `get_all_pids`. Registering a remote id is ignored, and
  `where_is_pid` returns `None` for remote ids. `monitor(actor)` subscribes
  the actor to `PidLifecycleEvent` spawn and terminate events, and
  `demonitor(actor_id)` removes the subscription.

## Process groups (`actorpool.pg`)

`join(group, actors)`, `leave(group, actors)`, `leave_all(actor_id)`,
`get_members(group)`, `get_local_members(group)` and `which_groups()` manage
named groups. A group disappears once it is empty. `monitor(group, actor)`
delivers a `ProcessGroupChanged` event, wrapping a `GroupChangeMessage`, on
every change to the group. Monitoring `ALL_GROUPS_NOTIFICATION` covers every
group. `demonitor` and `demonitor_all` unsubscribe.

## Messages and errors

`actorpool.message.box_message(msg, actor_id)` keeps messages for local
actors as objects. For remote actors it uses the message's `serialize()`.
`from_boxed(boxed, expected_type)` unpacks a boxed message and raises
`BoxedDowncastError` on a type mismatch.

`actorpool.errors` defines `ActorError` and its subclasses `MessagingError`,
`ChannelClosedError`, `CallTimeoutError` and `BoxedDowncastError`.
`error_from_call_result("sender_error" | "timeout")` returns the matching
error.

## What this package does not do

There is no actor runtime here. The package does not spawn actors, run
mailboxes or an event loop, or schedule timers by itself. It also provides no
reply channel or publish/subscribe port. Your code supplies those and drives
the factory, registries and groups through the functions above.