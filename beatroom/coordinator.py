"""
Room coordination: voice assignment, timeline merging and channel fan-out
"""
import asyncio
import json
import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from .registry import RoomRegistry
from .state import VOICES, BeatEvent, group_by_voice

logger = logging.getLogger("beatroom")

SEND_TIMEOUT = 10.0


class CapacityExceeded(Exception):
    """Every voice in the room is taken"""


class ChannelSender:
    """
    Delivers one channel's messages, in order, from its own task

    Queueing never waits on the peer. A send that fails or takes longer than
    timeout seconds ends the sender and reports the channel as dead.
    """

    def __init__(
        self,
        connection_id: str,
        channel,
        on_dead: Callable[[str], None],
        timeout: float = SEND_TIMEOUT,
    ):
        self.connection_id = connection_id
        self.channel = channel
        self.timeout = timeout
        self._on_dead = on_dead
        self.queue: asyncio.Queue = asyncio.Queue()
        self.task = asyncio.create_task(self._run())

    def send(self, message: str) -> None:
        self.queue.put_nowait(message)

    async def _run(self) -> None:
        while True:
            message = await self.queue.get()
            try:
                await asyncio.wait_for(self.channel.send_str(message), self.timeout)
            except Exception as e:
                logger.debug(f"Failed to send to {self.connection_id}: {e!r}")
                self.queue.task_done()
                self._discard()
                self._on_dead(self.connection_id)
                return
            self.queue.task_done()

    def _discard(self) -> None:
        while not self.queue.empty():
            self.queue.get_nowait()
            self.queue.task_done()

    def close(self) -> None:
        self.task.cancel()


class RoomCoordinator:
    """
    One room's coordinator

    Registry access is serialized through a per-room lock, so two joins can
    never hand out the same voice and two segment submissions can never lose
    each other's write. Outgoing messages are only queued under the lock;
    delivery happens in each channel's ChannelSender. Channels are any
    object with an async send_str().
    """

    def __init__(
        self,
        room_id: str,
        registry: RoomRegistry,
        voices: Sequence[str] = VOICES,
        send_timeout: float = SEND_TIMEOUT,
    ):
        self.room_id = room_id
        self.registry = registry
        self.voices = tuple(voices)
        self.send_timeout = send_timeout
        self.channels: Dict[str, ChannelSender] = {}
        self._lock = asyncio.Lock()

    async def join(self, name: str) -> str:
        """Return the voice held by name, assigning the first free one if new"""
        async with self._lock:
            players = await self.registry.get_roster(self.room_id)

            for player in players:
                if player["name"] == name:
                    logger.info("♻️ %s rejoined %s as %s", name, self.room_id, player["assignedSound"])
                    return player["assignedSound"]

            taken = {player["assignedSound"] for player in players}
            free = [voice for voice in self.voices if voice not in taken]
            if not free:
                logger.info("🚫 Room %s full, rejected %s", self.room_id, name)
                raise CapacityExceeded(f"room {self.room_id} has no free voice")

            voice = free[0]
            players.append({"name": name, "assignedSound": voice})
            await self.registry.put_roster(self.room_id, players)

        logger.info("✅ %s joined %s as %s", name, self.room_id, voice)
        return voice

    async def snapshot(self) -> Dict[str, List[BeatEvent]]:
        timeline = await self.registry.get_timeline(self.room_id)
        return group_by_voice(timeline)

    async def connect(self, connection_id: str, channel) -> None:
        """Queue the current snapshot for a new channel and register it for broadcasts"""
        async with self._lock:
            snapshot = await self.snapshot()
            sender = ChannelSender(connection_id, channel, self._drop, self.send_timeout)
            # Snapshot goes first in the queue, ahead of any later broadcast
            sender.send(json.dumps(snapshot))
            self.channels[connection_id] = sender
        logger.info(
            "📡 %s connected to %s (total: %d)",
            connection_id, self.room_id, len(self.channels)
        )

    def disconnect(self, connection_id: str) -> None:
        sender = self.channels.pop(connection_id, None)
        if sender is not None:
            sender.close()
            logger.info(
                "📡 %s left %s (remaining: %d)",
                connection_id, self.room_id, len(self.channels)
            )

    def _drop(self, connection_id: str) -> None:
        if self.channels.pop(connection_id, None) is not None:
            logger.info("💀 Dropped unresponsive %s from %s", connection_id, self.room_id)

    async def submit_segment(
        self, sender_id: str, events: List[BeatEvent]
    ) -> Optional[Dict[str, List[BeatEvent]]]:
        """
        Replace the sender's voice in the timeline with events and tell everyone else

        The voice is taken from the first event. An empty segment is ignored
        and returns None; otherwise the broadcast payload is returned.
        """
        if not events:
            return None

        voice = events[0]["sound"]
        payload = {voice: list(events)}

        async with self._lock:
            timeline = await self.registry.get_timeline(self.room_id)
            timeline = [event for event in timeline if event["sound"] != voice]
            timeline.extend(events)
            await self.registry.put_timeline(self.room_id, timeline)

            logger.info(
                "🥁 %s replaced %s in %s with %d beats",
                sender_id, voice, self.room_id, len(events)
            )
            self.broadcast(json.dumps(payload), exclude=sender_id)

        return payload

    def send(self, connection_id: str, message: str) -> None:
        """Queue message for one channel, behind anything already queued for it"""
        sender = self.channels.get(connection_id)
        if sender is not None:
            sender.send(message)

    def broadcast(self, message: str, exclude: Optional[str] = None) -> None:
        """Queue message for every registered channel except exclude"""
        for connection_id, sender in self.channels.items():
            if connection_id != exclude:
                sender.send(message)

    async def flush(self) -> None:
        """Wait until every queued message has been delivered or dropped"""
        await asyncio.gather(*(sender.queue.join() for sender in list(self.channels.values())))

    def close(self) -> None:
        for connection_id in list(self.channels):
            self.disconnect(connection_id)


class RoomHub:
    """
    Coordinators keyed by room id

    A coordinator lives while at least one request or channel is using it
    and is forgotten afterwards; the registry keeps the room itself.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        voices: Sequence[str] = VOICES,
        send_timeout: float = SEND_TIMEOUT,
    ):
        self.registry = registry
        self.voices = tuple(voices)
        self.send_timeout = send_timeout
        self.rooms: Dict[str, RoomCoordinator] = {}
        self._users: Dict[str, int] = {}

    @contextmanager
    def use(self, room_id: str) -> Iterator[RoomCoordinator]:
        room = self.rooms.get(room_id)
        if room is None:
            room = RoomCoordinator(room_id, self.registry, self.voices, self.send_timeout)
            self.rooms[room_id] = room
        self._users[room_id] = self._users.get(room_id, 0) + 1
        try:
            yield room
        finally:
            self._users[room_id] -= 1
            if self._users[room_id] == 0:
                del self._users[room_id]
                del self.rooms[room_id]
                room.close()

    def close(self) -> None:
        for room in self.rooms.values():
            room.close()
