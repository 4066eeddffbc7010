"""Boxing of messages for delivery to local or remote actors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import BoxedDowncastError

__all__ = [
    "SerializedCast",
    "SerializedCall",
    "SerializedCallReply",
    "BoxedMessage",
    "box_message",
    "from_boxed",
]


@dataclass
class SerializedCast:
    """A one-way message in serialized form."""

    variant: str
    args: bytes
    metadata: Optional[bytes] = None


@dataclass
class SerializedCall:
    """A remote procedure call in serialized form, with its reply channel."""

    variant: str
    args: bytes
    reply: Any
    metadata: Optional[bytes] = None


@dataclass
class SerializedCallReply:
    """A serialized reply to a call, tagged with the call's message tag."""

    tag: int
    data: bytes


class _Nothing:
    def __repr__(self) -> str:
        return "<nothing>"


_NOTHING: Any = _Nothing()


@dataclass
class BoxedMessage:
    """A message of any type, held either as an object or in serialized form."""

    msg: Any = field(default=_NOTHING)
    serialized: Any = None

    @property
    def has_message(self) -> bool:
        return self.msg is not _NOTHING

    def take(self) -> Any:
        """Remove and return the held object; raises if there is none."""
        if self.msg is _NOTHING:
            raise BoxedDowncastError()
        msg, self.msg = self.msg, _NOTHING
        return msg


def _is_local(actor_id: Any) -> bool:
    flag = getattr(actor_id, "is_local", True)
    return bool(flag() if callable(flag) else flag)


def _is_serializable(msg: Any) -> bool:
    return callable(getattr(msg, "serialize", None))


def box_message(msg: Any, actor_id: Any) -> BoxedMessage:
    """Box ``msg`` for the actor identified by ``actor_id``.

    Messages to local actors are held as objects. Messages to remote actors
    are serialized, which requires a ``serialize()`` method on the message.
    """
    if _is_local(actor_id):
        return BoxedMessage(msg=msg)
    if _is_serializable(msg):
        return BoxedMessage(serialized=msg.serialize())
    raise BoxedDowncastError()


def from_boxed(boxed: BoxedMessage, expected_type: type) -> Any:
    """Consume ``boxed`` and return its message as an ``expected_type``."""
    if boxed.has_message:
        msg = boxed.take()
        if isinstance(msg, expected_type):
            return msg
        raise BoxedDowncastError()
    if boxed.serialized is not None:
        serialized, boxed.serialized = boxed.serialized, None
        deserialize = getattr(expected_type, "deserialize", None)
        if not callable(deserialize):
            raise BoxedDowncastError()
        return deserialize(serialized)
    raise BoxedDowncastError()