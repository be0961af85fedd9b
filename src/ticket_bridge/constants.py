"""Shared constants for Ticket Bridge."""

from pathlib import Path


HOME_DIR = Path.home() / ".ticket-bridge"
LOG_DIR = HOME_DIR / "logs"
DB_DIR = HOME_DIR / "db"
DB_FILE = DB_DIR / "bridge.db"
SERVER_HOST = "127.0.0.1"
SERVER_PORT = 3001

INCOMING_QUEUE = "queue:incoming"
OUTGOING_QUEUE = "queue:outgoing"
PAUSE_KEY = "bot:paused"
DEDUPE_PREFIX = "dedupe:"
COOLDOWN_PREFIX = "cooldown:"

GROUP_SUFFIX = "@g.us"
INDIVIDUAL_SUFFIX = "@s.whatsapp.net"
SUBJECT_MAX_LENGTH = 50
