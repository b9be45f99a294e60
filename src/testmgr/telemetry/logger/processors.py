# src/testmgr/telemetry/logger/processors.py

"""
Custom structlog processors used by the testmgr logging pipeline.
"""

import logging
from typing import Any

from structlog.typing import EventDict, WrappedLogger

LEVEL_EMOJIS: dict[str, str] = {
    "debug": "🐛",
    "info": "ℹ️",
    "warning": "⚠️",
    "error": "❌",
    "critical": "💥",
}

# Keys that callers may pass to pick an emoji explicitly instead of the level one.
EMOJI_KEYS: dict[str, str] = {
    "discover": "🔎",
    "run": "🚀",
    "watch": "👁️",
    "history": "📜",
    "config": "📄",
    "success": "🎉",
    "fail": "🚫",
}

INTERNAL_KEYS = ("emoji_key",)


def add_emoji_processor(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Prefix the event message with an emoji derived from ``emoji_key`` or the level."""
    emoji_key = event_dict.get("emoji_key")
    emoji = EMOJI_KEYS.get(emoji_key) if emoji_key else None
    if emoji is None:
        level = event_dict.get("level", method_name)
        emoji = LEVEL_EMOJIS.get(str(level).lower(), "➡️")
    event = event_dict.get("event")
    if isinstance(event, str):
        event_dict["event"] = f"{emoji} {event}"
    return event_dict


def remove_extra_keys_processor(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Drop bookkeeping keys that should never reach a renderer."""
    for key in INTERNAL_KEYS:
        event_dict.pop(key, None)
    return event_dict


def level_number(name: Any) -> int:
    """Map a level name (case-insensitive) to its numeric value, defaulting to INFO."""
    value = logging.getLevelName(str(name).upper())
    return value if isinstance(value, int) else logging.INFO

# 🔼⚙️
