"""
Room registry - durable per-room storage for the roster and the timeline

Two slots per room, each read and written whole. There are no transactions;
callers serialize their own read-modify-write cycles (see coordinator.py).
"""
import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import aiosqlite

from .state import BeatEvent, Participant

logger = logging.getLogger("beatroom")

ROSTER = "players"
TIMELINE = "soundsAtBeat"


class RegistryError(Exception):
    """Storage read or write failed"""


class RoomRegistry:
    """Base registry: subclasses implement _load and _store"""

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def _load(self, room_id: str, slot: str) -> Optional[Any]:
        raise NotImplementedError

    async def _store(self, room_id: str, slot: str, value: Any) -> None:
        raise NotImplementedError

    async def get_roster(self, room_id: str) -> List[Participant]:
        return await self._load(room_id, ROSTER) or []

    async def put_roster(self, room_id: str, roster: List[Participant]) -> None:
        await self._store(room_id, ROSTER, roster)

    async def get_timeline(self, room_id: str) -> List[BeatEvent]:
        return await self._load(room_id, TIMELINE) or []

    async def put_timeline(self, room_id: str, timeline: List[BeatEvent]) -> None:
        await self._store(room_id, TIMELINE, timeline)


class MemoryRegistry(RoomRegistry):
    """In-process registry, lost on restart"""

    def __init__(self):
        self._slots: Dict[Tuple[str, str], Any] = {}

    async def _load(self, room_id, slot):
        return copy.deepcopy(self._slots.get((room_id, slot)))

    async def _store(self, room_id, slot, value):
        self._slots[(room_id, slot)] = copy.deepcopy(value)


class SqliteRegistry(RoomRegistry):
    """
    SQLite-backed registry

    Each (room_id, slot) pair is one row holding the slot value as JSON.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = path
        self._db: Optional[aiosqlite.Connection] = None

    async def open(self) -> None:
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._db = await aiosqlite.connect(str(self.path))
            await self._db.execute(
                "CREATE TABLE IF NOT EXISTS room_slots ("
                " room_id TEXT NOT NULL,"
                " slot TEXT NOT NULL,"
                " value TEXT NOT NULL,"
                " PRIMARY KEY (room_id, slot))"
            )
            await self._db.commit()
        except aiosqlite.Error as e:
            raise RegistryError(f"cannot open {self.path}: {e}") from e
        logger.info("💾 Room registry at %s", self.path)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RegistryError("registry is not open")
        return self._db

    async def _load(self, room_id, slot):
        db = self._conn()
        try:
            async with db.execute(
                "SELECT value FROM room_slots WHERE room_id = ? AND slot = ?",
                (room_id, slot),
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise RegistryError(f"read {room_id}/{slot} failed: {e}") from e
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except ValueError as e:
            raise RegistryError(f"corrupt value at {room_id}/{slot}: {e}") from e

    async def _store(self, room_id, slot, value):
        db = self._conn()
        try:
            await db.execute(
                "INSERT INTO room_slots (room_id, slot, value) VALUES (?, ?, ?) "
                "ON CONFLICT(room_id, slot) DO UPDATE SET value = excluded.value",
                (room_id, slot, json.dumps(value)),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise RegistryError(f"write {room_id}/{slot} failed: {e}") from e
