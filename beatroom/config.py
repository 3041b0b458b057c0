"""
Environment configuration
"""
import os
from pathlib import Path

HOST = os.environ.get("SERVER_HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", 3000))

DATA_DIR = Path(os.getenv('BEATROOM_DATA_DIR', './data'))
DB_PATH = DATA_DIR / 'rooms.db'

# "sqlite" persists rooms across restarts, "memory" forgets them
STORAGE_BACKEND = os.getenv('BEATROOM_STORAGE', 'sqlite').lower()

# Requests per minute per IP
RATE_LIMIT = int(os.getenv('BEATROOM_RATE_LIMIT', '100'))

# Websocket ping interval and largest accepted message, in seconds / bytes
HEARTBEAT = float(os.getenv('BEATROOM_HEARTBEAT', '30'))
MAX_MESSAGE_SIZE = int(os.getenv('BEATROOM_MAX_MESSAGE_SIZE', str(64 * 1024)))

# Seconds a single send may take before the channel is dropped
SEND_TIMEOUT = float(os.getenv('BEATROOM_SEND_TIMEOUT', '10'))
