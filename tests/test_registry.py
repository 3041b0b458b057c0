"""Tests for the in-memory and SQLite room registries."""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import pytest

from beatroom.registry import MemoryRegistry, RegistryError, SqliteRegistry


@pytest.mark.asyncio
async def test_memory_registry_defaults_empty() -> None:
    registry = MemoryRegistry()
    assert await registry.get_roster("room") == []
    assert await registry.get_timeline("room") == []


@pytest.mark.asyncio
async def test_memory_registry_replaces_and_isolates_rooms() -> None:
    registry = MemoryRegistry()
    await registry.put_roster("a", [{"name": "alice", "assignedSound": "kick"}])
    await registry.put_roster("a", [{"name": "bob", "assignedSound": "kick"}])

    assert await registry.get_roster("a") == [{"name": "bob", "assignedSound": "kick"}]
    assert await registry.get_roster("b") == []


@pytest.mark.asyncio
async def test_memory_registry_does_not_share_values() -> None:
    registry = MemoryRegistry()
    timeline = [{"beat": 0, "sound": "kick"}]
    await registry.put_timeline("room", timeline)
    timeline.append({"beat": 1, "sound": "kick"})

    loaded = await registry.get_timeline("room")
    loaded.clear()

    assert await registry.get_timeline("room") == [{"beat": 0, "sound": "kick"}]


@pytest.mark.asyncio
async def test_sqlite_registry_survives_restart(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "rooms.db"

    registry = SqliteRegistry(path)
    await registry.open()
    await registry.put_roster("room", [{"name": "alice", "assignedSound": "kick"}])
    await registry.put_timeline("room", [{"beat": 0, "sound": "kick"}])
    await registry.put_timeline("room", [{"beat": 4, "sound": "kick"}])
    await registry.close()

    reopened = SqliteRegistry(path)
    await reopened.open()
    try:
        assert await reopened.get_roster("room") == [{"name": "alice", "assignedSound": "kick"}]
        assert await reopened.get_timeline("room") == [{"beat": 4, "sound": "kick"}]
        assert await reopened.get_timeline("other") == []
    finally:
        await reopened.close()


@pytest.mark.asyncio
async def test_sqlite_registry_requires_open() -> None:
    registry = SqliteRegistry(":memory:")
    with pytest.raises(RegistryError):
        await registry.get_roster("room")


@pytest.mark.asyncio
async def test_sqlite_registry_corrupt_row_is_storage_error(tmp_path: Path) -> None:
    path = tmp_path / "rooms.db"
    registry = SqliteRegistry(path)
    await registry.open()
    try:
        async with aiosqlite.connect(str(path)) as db:
            await db.execute(
                "INSERT INTO room_slots (room_id, slot, value) VALUES (?, ?, ?)",
                ("room", "players", "{not json"),
            )
            await db.commit()

        with pytest.raises(RegistryError, match="corrupt"):
            await registry.get_roster("room")
    finally:
        await registry.close()
