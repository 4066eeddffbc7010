"""Error types raised by actors, messaging and remote procedure calls."""

from __future__ import annotations

__all__ = [
    "ActorError",
    "MessagingError",
    "ChannelClosedError",
    "CallTimeoutError",
    "BoxedDowncastError",
    "error_from_call_result",
]


class ActorError(Exception):
    """Base class for every error raised by the actor framework."""


class MessagingError(ActorError):
    """Sending or receiving a message failed."""


class ChannelClosedError(MessagingError):
    """The channel to the receiving side has been closed."""

    def __init__(self, message: str = "channel closed") -> None:
        super().__init__(message)


class CallTimeoutError(ActorError, TimeoutError):
    """A remote procedure call did not complete in time."""

    def __init__(self, message: str = "timeout") -> None:
        super().__init__(message)


class BoxedDowncastError(ActorError):
    """A boxed message could not be turned back into its concrete type."""

    def __init__(self, message: str = "An error occurred handling a boxed message") -> None:
        super().__init__(message)


def error_from_call_result(result: str) -> ActorError:
    """Map a failed call outcome ("sender_error" or "timeout") to its error.

    A successful outcome has no error counterpart and raises ValueError.
    """
    if result == "sender_error":
        return ChannelClosedError()
    if result == "timeout":
        return CallTimeoutError()
    if result == "success":
        raise ValueError("a successful call result cannot be mapped to an error")
    raise ValueError(f"unknown call result: {result!r}")