"""
Centralized configuration for shardline, read from the environment
(and a local .env file when present).
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _id_list(raw: str) -> list[int]:
    return [int(part) for part in raw.replace(" ", "").split(",") if part]


# --- Bot identity / shared state ---
BOT_ID = os.getenv("BOT_ID", "")
JOIN_LOG = os.getenv("JOIN_LOG", "")
LOGO_EMOJI_ID = os.getenv("LOGO_EMOJI_ID", "")
LOGO_EMOJI_NAME = os.getenv("LOGO_EMOJI_NAME", "")

# --- Shards ---
SHARD_TOTAL = _int("SHARD_TOTAL", 0)  # 0 = take it from the first ready event

# --- Stats ---
STATS_API_LINK = os.getenv("STATS_API_LINK", "")
STATS_API_KEY = os.getenv("STATS_API_KEY", "")
DBL_TOKEN = os.getenv("DBL_TOKEN", "")
DBL_API_URL = os.getenv("DBL_API_URL", "https://top.gg/api")

# --- Execution ---
WANDBOX_API_URL = os.getenv("WANDBOX_API_URL", "https://wandbox.org/api")
COLLECT_TIMEOUT_SECONDS = _float("COLLECT_TIMEOUT_SECONDS", 30.0)
MAX_ATTACHMENT_BYTES = _int("MAX_ATTACHMENT_BYTES", 1024 * 1024)

# --- Caches / limits ---
MESSAGE_CACHE_SIZE = _int("MESSAGE_CACHE_SIZE", 1000)
RATE_LIMIT_WINDOW_SECONDS = _float("RATE_LIMIT_WINDOW_SECONDS", 10.0)
RATE_LIMIT_MAX_COMMANDS = _int("RATE_LIMIT_MAX_COMMANDS", 5)
BLOCKLIST = _id_list(os.getenv("BLOCKLIST", ""))

# --- Server ---
PORT = _int("PORT", 8080)


def shared_state_defaults() -> dict[str, str]:
    """String settings that seed the SharedStateStore (empty ones skipped)."""
    values = {
        "BOT_ID": BOT_ID,
        "JOIN_LOG": JOIN_LOG,
        "LOGO_EMOJI_ID": LOGO_EMOJI_ID,
        "LOGO_EMOJI_NAME": LOGO_EMOJI_NAME,
    }
    return {k: v for k, v in values.items() if v}
