"""Process groups: named groups of actors that can be looked up and monitored.

Actors join and leave groups by name. Other actors can monitor a group, or
every group at once through ``ALL_GROUPS_NOTIFICATION``, and then receive a
``ProcessGroupChanged`` supervision event whenever membership changes.

Actors are duck-typed. A member needs an ``id`` attribute, and that id may
carry an ``is_local`` flag or method. A listener needs a
``send_supervisor_evt(event)`` method.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple

from .errors import ActorError

__all__ = [
    "ALL_GROUPS_NOTIFICATION",
    "GroupChangeMessage",
    "ProcessGroupChanged",
    "join",
    "leave",
    "leave_all",
    "get_local_members",
    "get_members",
    "which_groups",
    "monitor",
    "demonitor",
    "demonitor_all",
]

ALL_GROUPS_NOTIFICATION = "__world__"

_lock = threading.RLock()
_groups: Dict[str, Dict[Any, Any]] = {}
_listeners: Dict[str, List[Any]] = {}


@dataclass(frozen=True)
class GroupChangeMessage:
    """Some actors joined or left a group."""

    JOIN = "join"
    LEAVE = "leave"

    kind: str
    group: str
    actors: Tuple[Any, ...]


@dataclass(frozen=True)
class ProcessGroupChanged:
    """Supervision event delivered to the monitors of a changed group."""

    change: GroupChangeMessage


def _is_local(actor_id: Any) -> bool:
    flag = getattr(actor_id, "is_local", True)
    return bool(flag() if callable(flag) else flag)


def _notify(change: GroupChangeMessage) -> None:
    with _lock:
        targets = list(_listeners.get(change.group, ()))
        targets += _listeners.get(ALL_GROUPS_NOTIFICATION, ())
    event = ProcessGroupChanged(change)
    for listener in targets:
        try:
            listener.send_supervisor_evt(event)
        except ActorError:
            pass


def join(group: str, actors: Iterable[Any]) -> None:
    """Add ``actors`` to ``group``, creating the group if needed."""
    members = tuple(actors)
    with _lock:
        entry = _groups.setdefault(group, {})
        for actor in members:
            entry[actor.id] = actor
    _notify(GroupChangeMessage(GroupChangeMessage.JOIN, group, members))


def leave(group: str, actors: Iterable[Any]) -> None:
    """Remove ``actors`` from ``group``; an emptied group disappears."""
    members = tuple(actors)
    with _lock:
        entry = _groups.get(group)
        if entry is None:
            return
        for actor in members:
            entry.pop(actor.id, None)
        if not entry:
            del _groups[group]
    _notify(GroupChangeMessage(GroupChangeMessage.LEAVE, group, members))


def leave_all(actor_id: Any) -> None:
    """Remove the actor with ``actor_id`` from every group it is in."""
    removals: List[Tuple[str, Any]] = []
    with _lock:
        for group, entry in list(_groups.items()):
            actor = entry.pop(actor_id, None)
            if actor is not None:
                removals.append((group, actor))
            if not entry:
                del _groups[group]
    for group, actor in removals:
        _notify(GroupChangeMessage(GroupChangeMessage.LEAVE, group, (actor,)))


def get_local_members(group: str) -> List[Any]:
    """Return the members of ``group`` that run on the local node."""
    with _lock:
        entry = _groups.get(group, {})
        return [actor for actor in entry.values() if _is_local(actor.id)]


def get_members(group: str) -> List[Any]:
    """Return every member of ``group``, local or remote."""
    with _lock:
        return list(_groups.get(group, {}).values())


def which_groups() -> List[str]:
    """Return the names of all known groups."""
    with _lock:
        return list(_groups)


def monitor(group: str, actor: Any) -> None:
    """Subscribe ``actor`` to membership changes of ``group``."""
    with _lock:
        _listeners.setdefault(group, []).append(actor)


def demonitor(group: str, actor_id: Any) -> None:
    """Unsubscribe the actor with ``actor_id`` from changes of ``group``."""
    with _lock:
        listeners = _listeners.get(group)
        if listeners is None:
            return
        listeners[:] = [a for a in listeners if a.id != actor_id]
        if not listeners:
            del _listeners[group]


def demonitor_all(actor_id: Any) -> None:
    """Unsubscribe the actor with ``actor_id`` from every group."""
    with _lock:
        for group, listeners in list(_listeners.items()):
            listeners[:] = [a for a in listeners if a.id != actor_id]
            if not listeners:
                del _listeners[group]