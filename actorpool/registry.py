"""Process-wide registries of actors by name and by id.

The name registry gives actors unique names. The id registry tracks every
local actor and notifies listeners when actors appear or disappear.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import ActorError

__all__ = [
    "ActorRegistryError",
    "PidLifecycleEvent",
    "register",
    "unregister",
    "where_is",
    "registered",
    "register_pid",
    "unregister_pid",
    "get_all_pids",
    "where_is_pid",
    "monitor",
    "demonitor",
]

_lock = threading.RLock()
_names: Dict[str, Any] = {}
_pids: Dict[Any, Any] = {}
_pid_listeners: Dict[Any, Any] = {}


class ActorRegistryError(ActorError):
    """A name or id is already registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"actor already registered: {name}")
        self.name = name


@dataclass(frozen=True)
class PidLifecycleEvent:
    """A local actor was spawned or terminated."""

    SPAWN = "spawn"
    TERMINATE = "terminate"

    kind: str
    actor: Any

    def __str__(self) -> str:
        label = "Spawn" if self.kind == self.SPAWN else "Terminate"
        return f"{label} {self.actor.id}"


def _is_local(actor_id: Any) -> bool:
    flag = getattr(actor_id, "is_local", True)
    return bool(flag() if callable(flag) else flag)


def _notify(event: PidLifecycleEvent) -> None:
    with _lock:
        listeners = list(_pid_listeners.values())
    for listener in listeners:
        try:
            listener.send_supervisor_evt(event)
        except ActorError:
            pass


def register(name: str, actor: Any) -> None:
    """Register ``actor`` under ``name``; raises if the name is taken."""
    with _lock:
        if name in _names:
            raise ActorRegistryError(name)
        _names[name] = actor


def unregister(name: str) -> None:
    """Free ``name``; does nothing if it was not registered."""
    with _lock:
        _names.pop(name, None)


def where_is(name: str) -> Optional[Any]:
    """Return the actor registered under ``name``, or None."""
    with _lock:
        return _names.get(name)


def registered() -> List[str]:
    """Return the names currently registered."""
    with _lock:
        return list(_names)


def register_pid(actor_id: Any, actor: Any) -> None:
    """Track a local actor by id and tell listeners it was spawned.

    Remote ids are accepted and ignored; a local id already present raises.
    """
    if not _is_local(actor_id):
        return
    with _lock:
        if actor_id in _pids:
            raise ActorRegistryError(f"PID {actor_id} already alive")
        _pids[actor_id] = actor
    _notify(PidLifecycleEvent(PidLifecycleEvent.SPAWN, actor))


def unregister_pid(actor_id: Any) -> None:
    """Stop tracking a local actor and tell listeners it terminated."""
    if not _is_local(actor_id):
        return
    with _lock:
        actor = _pids.pop(actor_id, None)
    if actor is not None:
        _notify(PidLifecycleEvent(PidLifecycleEvent.TERMINATE, actor))


def get_all_pids() -> List[Any]:
    """Return every tracked local actor."""
    with _lock:
        return list(_pids.values())


def where_is_pid(actor_id: Any) -> Optional[Any]:
    """Return the local actor with ``actor_id``, or None (always None for remote ids)."""
    if not _is_local(actor_id):
        return None
    with _lock:
        return _pids.get(actor_id)


def monitor(actor: Any) -> None:
    """Subscribe ``actor`` to spawn and terminate events."""
    with _lock:
        _pid_listeners[actor.id] = actor


def demonitor(actor_id: Any) -> None:
    """Unsubscribe the actor with ``actor_id`` from lifecycle events."""
    with _lock:
        _pid_listeners.pop(actor_id, None)