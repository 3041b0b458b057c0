#!/usr/bin/env python3
"""
Beat Room - Entry Point
Join endpoint + per-room WebSocket channels + rate limiting
"""
import logging
import socket
import time
from collections import defaultdict
from typing import Optional
from aiohttp import web

from beatroom import config
from beatroom.api import HUB, api_health, api_room
from beatroom.coordinator import RoomHub
from beatroom.registry import MemoryRegistry, RoomRegistry, SqliteRegistry

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("beatroom")

RATE_LIMIT_STORE = web.AppKey("rate_limit_store", defaultdict)
RATE_LIMIT = web.AppKey("rate_limit", int)


@web.middleware
async def rate_limit_middleware(request, handler):
    """Simple rate limiting: N requests per minute per IP"""
    ip = request.remote
    now = time.time()
    store = request.app[RATE_LIMIT_STORE]

    # Clean old entries
    store[ip] = [t for t in store[ip] if now - t < 60]

    # Check limit
    if len(store[ip]) >= request.app[RATE_LIMIT]:
        logger.warning(f"Rate limit exceeded for {ip}")
        return web.json_response(
            {"ok": False, "error": "Rate limit exceeded"},
            status=429
        )

    store[ip].append(now)
    return await handler(request)


def build_registry() -> RoomRegistry:
    """Pick the registry backend from the environment"""
    if config.STORAGE_BACKEND == "memory":
        return MemoryRegistry()
    if config.STORAGE_BACKEND != "sqlite":
        raise ValueError(f"Unknown BEATROOM_STORAGE: {config.STORAGE_BACKEND}")
    return SqliteRegistry(config.DB_PATH)


def create_app(registry: Optional[RoomRegistry] = None, rate_limit: int = config.RATE_LIMIT) -> web.Application:
    """Create and configure the aiohttp application"""
    if registry is None:
        registry = build_registry()

    app = web.Application(middlewares=[rate_limit_middleware])
    app[HUB] = RoomHub(registry, send_timeout=config.SEND_TIMEOUT)
    app[RATE_LIMIT_STORE] = defaultdict(list)
    app[RATE_LIMIT] = rate_limit

    # Room join / preflight / channel
    app.router.add_route("*", "/room/{room_id}", api_room)
    app.router.add_get("/health", api_health)

    async def open_registry(app):
        await registry.open()

    async def close_registry(app):
        app[HUB].close()
        await registry.close()

    app.on_startup.append(open_registry)
    app.on_cleanup.append(close_registry)

    logger.info("🥁 Beat Room server ready • WebSocket enabled")
    return app


def get_local_ip():
    """Get local WiFi IP address"""
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except Exception:
        return "localhost"


def main():
    app = create_app()
    local_ip = get_local_ip()

    logger.info(f"🚀 Starting server on {config.HOST}:{config.PORT}")
    logger.info(f"💡 Access at: http://{local_ip}:{config.PORT}")

    web.run_app(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
