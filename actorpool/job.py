"""Jobs dispatched through a factory, with their timing options."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from .errors import BoxedDowncastError
from .message import SerializedCall, SerializedCallReply, SerializedCast

__all__ = ["JobOptions", "Job"]

_U64 = (1 << 64) - 1
_OPTIONS_LEN = 16

K = TypeVar("K")
M = TypeVar("M")

Serialized = Union[SerializedCast, SerializedCall, SerializedCallReply]


@dataclass
class JobOptions:
    """Timing options of a job.

    The three timestamps are wall-clock nanoseconds since the epoch
    (``time.time_ns()``); ``ttl`` is a time-to-live in seconds, or None.
    """

    submit_time: int = field(default_factory=time.time_ns)
    factory_time: int = field(default_factory=time.time_ns)
    worker_time: int = field(default_factory=time.time_ns)
    ttl: Optional[float] = None

    def to_bytes(self) -> bytes:
        """Encode submit time and ttl as two big-endian 64-bit nanosecond counts."""
        if self.submit_time < 0:
            raise ValueError("time went backwards")
        ttl_ns = round(self.ttl * 1_000_000_000) if self.ttl is not None else 0
        return (self.submit_time & _U64).to_bytes(8, "big") + (ttl_ns & _U64).to_bytes(8, "big")

    @classmethod
    def from_bytes(cls, data: bytes) -> "JobOptions":
        """Decode options; data of any length other than 16 yields defaults."""
        if len(data) != _OPTIONS_LEN:
            return cls()
        submit_time = int.from_bytes(data[:8], "big")
        ttl_ns = int.from_bytes(data[8:], "big")
        return cls(
            submit_time=submit_time,
            ttl=ttl_ns / 1_000_000_000 if ttl_ns > 0 else None,
        )


@dataclass
class Job(Generic[K, M]):
    """A keyed message sent to a factory."""

    key: K
    msg: M
    options: JobOptions = field(default_factory=JobOptions)

    def is_expired(self) -> bool:
        """True if the job has a ttl and has been waiting longer than it."""
        if self.options.ttl is None:
            return False
        elapsed = (time.time_ns() - self.options.submit_time) / 1_000_000_000
        return elapsed > self.options.ttl

    def set_factory_time(self) -> None:
        """Stamp the time the factory received the job."""
        self.options.factory_time = time.time_ns()

    def set_worker_time(self) -> None:
        """Stamp the time a worker began processing the job."""
        self.options.worker_time = time.time_ns()

    def serialize(
        self,
        key_to_bytes: Callable[[K], bytes],
        msg_serializer: Callable[[M], Serialized],
    ) -> Union[SerializedCast, SerializedCall]:
        """Serialize the job; options and key travel in the metadata."""
        meta = self.options.to_bytes() + bytes(key_to_bytes(self.key))
        inner = msg_serializer(self.msg)
        if isinstance(inner, SerializedCall):
            return SerializedCall(inner.variant, inner.args, inner.reply, metadata=meta)
        if isinstance(inner, SerializedCast):
            return SerializedCast(inner.variant, inner.args, metadata=meta)
        raise BoxedDowncastError()

    @classmethod
    def deserialize(
        cls,
        serialized: Serialized,
        key_from_bytes: Callable[[bytes], K],
        msg_deserializer: Callable[[Serialized], M],
    ) -> "Job[K, M]":
        """Rebuild a job from the output of ``serialize``."""
        if isinstance(serialized, SerializedCast):
            inner: Any = SerializedCast(serialized.variant, serialized.args, metadata=None)
        elif isinstance(serialized, SerializedCall):
            inner = SerializedCall(
                serialized.variant, serialized.args, serialized.reply, metadata=None
            )
        else:
            raise BoxedDowncastError()
        key, options = cls._deserialize_meta(serialized.metadata, key_from_bytes)
        return cls(key=key, msg=msg_deserializer(inner), options=options)

    @staticmethod
    def _deserialize_meta(
        metadata: Optional[bytes], key_from_bytes: Callable[[bytes], K]
    ) -> tuple:
        if metadata is None or len(metadata) < _OPTIONS_LEN:
            raise BoxedDowncastError()
        options = JobOptions.from_bytes(metadata[:_OPTIONS_LEN])
        return key_from_bytes(bytes(metadata[_OPTIONS_LEN:])), options