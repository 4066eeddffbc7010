"""Routing modes deciding how a factory hands jobs to its workers."""

from __future__ import annotations

import abc
import enum
from typing import Any

__all__ = ["RoutingMode", "CustomHashFunction", "DEFAULT_ROUTING_MODE"]


class RoutingMode(enum.Enum):
    """How a factory picks the worker for an incoming job.

    KEY_PERSISTENT
        Hash the job key to pick a worker; jobs wait in that worker's queue.
    QUEUER
        Give the job to the first available worker; the factory keeps a
        shared backlog.
    STICKY_QUEUER
        Prefer a worker already processing the same key, otherwise the first
        available worker; the factory keeps a shared backlog.
    ROUND_ROBIN
        Give jobs to the workers in turn.
    RANDOM
        Give each job to a worker picked at random.
    CUSTOM_HASH_FUNCTION
        Like KEY_PERSISTENT, but a CustomHashFunction picks the worker.
    """

    KEY_PERSISTENT = "key_persistent"
    QUEUER = "queuer"
    STICKY_QUEUER = "sticky_queuer"
    ROUND_ROBIN = "round_robin"
    RANDOM = "random"
    CUSTOM_HASH_FUNCTION = "custom_hash_function"


DEFAULT_ROUTING_MODE = RoutingMode.KEY_PERSISTENT


class CustomHashFunction(abc.ABC):
    """User-defined mapping of a job key onto a worker index."""

    @abc.abstractmethod
    def hash(self, key: Any, worker_count: int) -> int:
        """Return the index, in ``0 .. worker_count - 1``, of the worker for ``key``."""