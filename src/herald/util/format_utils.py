from datetime import datetime, timezone
from typing import Iterable, List

UNKNOWN = "Unknown"

# Discord rejects embed field values longer than this
EMBED_FIELD_LIMIT = 1024

SECONDS_PER_HOUR = 60 * 60
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR


def truncate(text: str, limit: int = EMBED_FIELD_LIMIT) -> str:
    """Cut ``text`` down to at most ``limit`` characters."""
    return text[:limit]


def join_lines(lines: Iterable[str], limit: int = EMBED_FIELD_LIMIT) -> str:
    """Join ``lines`` with newlines, dropping whole lines once ``limit`` would be exceeded."""
    kept: List[str] = []
    size = 0
    for line in lines:
        added = len(line) + (1 if kept else 0)
        if size + added > limit:
            break
        kept.append(line)
        size += added
    return "\n".join(kept)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are assumed to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def humanize_timestamp(value: datetime | None) -> str:
    """Return a human-readable UTC timestamp (YYYY-MM-DD HH:MM:SS UTC), or "Unknown".

    Args:
        value: datetime to format, naive values are treated as UTC.
    """
    if value is None:
        return UNKNOWN
    return ensure_utc(value).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_time_in_server(joined_at: datetime | None, now: datetime) -> str:
    """Describe how long a member stayed in a guild.

    Renders ``"{days} days, {hours} hours"`` when at least one full day passed,
    ``"{hours} hours"`` otherwise, and ``"Unknown"`` without a join timestamp.
    """
    if joined_at is None:
        return UNKNOWN

    elapsed = max(0, int((ensure_utc(now) - ensure_utc(joined_at)).total_seconds()))
    days, remainder = divmod(elapsed, SECONDS_PER_DAY)
    hours = remainder // SECONDS_PER_HOUR

    if days > 0:
        return f"{days} days, {hours} hours"
    return f"{hours} hours"


def channel_mention(channel_id: str) -> str:
    return f"<#{channel_id}>"


def role_mention(role_id: str) -> str:
    return f"<@&{role_id}>"
