"""Test doubles shared across the suite."""

from __future__ import annotations

import asyncio
from typing import List

from beatroom.registry import MemoryRegistry, RegistryError


class FakeChannel:
    """Records every message sent to it, like a connected websocket."""

    def __init__(self) -> None:
        self.sent: List[str] = []

    async def send_str(self, data: str) -> None:
        self.sent.append(data)


class BrokenChannel:
    async def send_str(self, data: str) -> None:
        raise ConnectionResetError("gone")


class SlowRegistry(MemoryRegistry):
    """Yields to the event loop on every read to expose interleavings."""

    async def _load(self, room_id, slot):
        value = await super()._load(room_id, slot)
        await asyncio.sleep(0.01)
        return value


class FailingRegistry(MemoryRegistry):
    """Reads succeed, writes fail."""

    async def _store(self, room_id, slot, value):
        raise RegistryError("disk on fire")


class StuckChannel:
    """Accepts the first message, then never finishes sending."""

    def __init__(self) -> None:
        self.sent: List[str] = []

    async def send_str(self, data: str) -> None:
        if self.sent:
            await asyncio.Event().wait()
        self.sent.append(data)


class UnreadableRegistry(MemoryRegistry):
    """Every read fails."""

    async def _load(self, room_id, slot):
        raise RegistryError("disk on fire")
