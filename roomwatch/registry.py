"""Room registry - the ordered list of monitored rooms.

The registry can be locked to prevent configuration drift on a shared
dashboard; while locked, adding or removing rooms raises
:class:`~roomwatch.errors.RegistryLockedError`.  Listeners are notified on
every change so the monitor can drop state belonging to removed rooms.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator

from roomwatch.errors import RegistryLockedError
from roomwatch.models import RoomConfig

__all__ = ["RegistryListener", "RoomRegistry"]

logger = logging.getLogger("roomwatch.registry")

RegistryListener = Callable[[str, RoomConfig], None]


class RoomRegistry:
    def __init__(self, rooms: Iterable[RoomConfig] | None = None, *, locked: bool = False) -> None:
        self._rooms: dict[str, RoomConfig] = {}
        self._listeners: list[RegistryListener] = []
        for room in rooms or []:
            self._insert(room)
        self.locked = locked

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[RoomConfig]:
        return iter(list(self._rooms.values()))

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def get(self, room_id: str) -> RoomConfig | None:
        return self._rooms.get(room_id)

    @property
    def ids(self) -> list[str]:
        return list(self._rooms)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def lock(self) -> None:
        self.locked = True

    def unlock(self) -> None:
        self.locked = False

    def subscribe(self, listener: RegistryListener) -> None:
        """Call ``listener(event, room)`` with event ``"added"`` or ``"removed"``."""
        self._listeners.append(listener)

    def add(self, room: RoomConfig) -> None:
        self._check_unlocked()
        self._insert(room)
        logger.info("Registered room '%s' (%s)", room.id, room.name)
        self._notify("added", room)

    def remove(self, room_id: str) -> RoomConfig:
        self._check_unlocked()
        try:
            room = self._rooms.pop(room_id)
        except KeyError:
            raise KeyError(f"Unknown room '{room_id}'") from None
        logger.info("Removed room '%s' (%s)", room.id, room.name)
        self._notify("removed", room)
        return room

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _insert(self, room: RoomConfig) -> None:
        if room.id in self._rooms:
            raise ValueError(f"Duplicate room id '{room.id}'")
        self._rooms[room.id] = room

    def _check_unlocked(self) -> None:
        if self.locked:
            raise RegistryLockedError("Room registry is locked; unlock it to add or remove rooms")

    def _notify(self, event: str, room: RoomConfig) -> None:
        for listener in self._listeners:
            listener(event, room)
