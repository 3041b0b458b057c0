"""
HTTP and WebSocket handlers for Beat Room
One route per room: POST joins, OPTIONS is the CORS preflight,
a GET websocket upgrade opens the real-time channel
"""
import logging
from aiohttp import web

from . import config
from .coordinator import CapacityExceeded, RoomCoordinator, RoomHub
from .registry import RegistryError
from .utils import MalformedRequest, generate_connection_id, parse_join_request, parse_segment

logger = logging.getLogger("beatroom")

HUB = web.AppKey("hub", RoomHub)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": (
        "Access-Control-Allow-Headers, Origin,Accept, X-Requested-With, Content-Type, "
        "Access-Control-Request-Method, Access-Control-Request-Headers"
    ),
}

# ============================================================
# ROOM ROUTE
# ============================================================

async def api_room(request: web.Request) -> web.StreamResponse:
    """Dispatch /room/{room_id} by method"""
    hub = request.app[HUB]
    room_id = request.match_info["room_id"]

    if request.method == "POST":
        with hub.use(room_id) as room:
            return await api_room_join(request, room)
    if request.method == "OPTIONS":
        return web.Response(text="", headers=CORS_HEADERS)
    if request.method == "GET":
        ws = web.WebSocketResponse(
            heartbeat=config.HEARTBEAT, max_msg_size=config.MAX_MESSAGE_SIZE
        )
        if ws.can_prepare(request).ok:
            with hub.use(room_id) as room:
                return await ws_room_channel(request, room, ws)

    return web.Response(text="Not found", status=404)

# ============================================================
# JOIN
# ============================================================

async def api_room_join(request: web.Request, room: RoomCoordinator) -> web.Response:
    """Assign the caller a voice, or hand back the one they already hold"""
    try:
        data = await request.json()
    except ValueError:
        logger.warning("Unparsable join body for room %s", room.room_id)
        return web.Response(text="Invalid JSON body", status=400)

    try:
        name = parse_join_request(data)
        sound = await room.join(name)
    except MalformedRequest as e:
        logger.warning("Bad join request for room %s: %s", room.room_id, e)
        return web.Response(text=str(e), status=400)
    except CapacityExceeded:
        return web.Response(text="No available sounds", status=400)
    except RegistryError as e:
        logger.error(f"Join failed in room {room.room_id}: {e}")
        return web.Response(text="Storage error", status=500)

    return web.json_response({"sound": sound}, headers=CORS_HEADERS)

# ============================================================
# WEBSOCKET CHANNEL
# ============================================================

async def ws_room_channel(
    request: web.Request, room: RoomCoordinator, ws: web.WebSocketResponse
) -> web.WebSocketResponse:
    """Real-time channel: snapshot on open, segments in, other voices' segments out"""
    await ws.prepare(request)
    connection_id = generate_connection_id()

    try:
        await room.connect(connection_id, ws)
    except RegistryError as e:
        logger.error(f"Snapshot failed for {connection_id} in {room.room_id}: {e}")
        await ws.close()
        return ws

    try:
        async for msg in ws:
            if msg.type != web.WSMsgType.TEXT:
                continue
            # Keepalive
            if msg.data == "ping":
                room.send(connection_id, "pong")
                continue
            await handle_segment(room, connection_id, msg.data)
    finally:
        room.disconnect(connection_id)

    return ws


async def handle_segment(room: RoomCoordinator, connection_id: str, text: str) -> None:
    """Apply one channel message; failures only affect this message"""
    try:
        events = parse_segment(text, room.voices)
        await room.submit_segment(connection_id, events)
    except MalformedRequest as e:
        logger.warning("Dropped message from %s in %s: %s", connection_id, room.room_id, e)
    except RegistryError as e:
        logger.error(f"Segment from {connection_id} in {room.room_id} not saved: {e}")

# ============================================================
# HEALTH
# ============================================================

async def api_health(request: web.Request) -> web.Response:
    return web.json_response({
        "ok": True,
        "rooms": len(request.app[HUB].rooms),
    })
