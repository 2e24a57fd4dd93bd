import logging
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Return a timezone-aware UTC datetime for a stored timestamp.

    Mongo hands back naive datetimes (stored as UTC); older records carry
    ISO-8601 strings such as "2024-11-20" or "2024-11-20T10:00:00.000Z".
    Anything unparseable gives None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("Unparseable timestamp: %r", value)
            return None
        return parse_timestamp(parsed)
    return None


def sort_key(value: Any) -> datetime:
    return parse_timestamp(value) or EPOCH
