"""
Turn log events into notifications.

:func:`format_event` is a pure function of the event, the guild's logging
configuration and (for leaves) the guild's ban list. It returns ``None`` when
the event is suppressed. Rules are applied in order:

1. no configuration, or logging disabled
2. the per-event toggle is off
3. no log channel configured
4. category filters: bot or system authors for message events, unchanged
   text for edits, no newly added roles, departing members that are banned

The only error it raises is :class:`~herald.errors.MalformedEventError` for an
event without a guild.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Collection, Dict, Optional

from herald.configuration.guild_configs import LoggingConfig
from herald.datatypes.discord_datatypes import UserID
from herald.dispatch.events import (
    EventKind,
    LogEvent,
    MemberBannedEvent,
    MemberLeftEvent,
    MemberRolesUpdatedEvent,
    MessageDeletedEvent,
    MessageEditedEvent,
    UserInfo,
)
from herald.errors import MalformedEventError
from herald.notifications.notification_types import Notification, NotificationColor, NotificationField
from herald.util.format_utils import (
    UNKNOWN,
    channel_mention,
    format_time_in_server,
    humanize_timestamp,
    join_lines,
    role_mention,
    truncate,
)

NO_CONTENT = "No content"

# EventKind -> attribute of EventToggles that gates it
EVENT_TOGGLES: Dict[EventKind, str] = {
    EventKind.MESSAGE_DELETED: "message_deletions",
    EventKind.MESSAGE_EDITED: "message_edits",
    EventKind.ROLES_ADDED: "roles_added",
    EventKind.MEMBER_BANNED: "user_bans",
    EventKind.MEMBER_LEFT: "user_leaves",
}


def is_event_enabled(config: Optional[LoggingConfig], kind: EventKind) -> bool:
    """True when ``config`` wants events of ``kind`` logged and has somewhere to log them."""
    if config is None or not config.enabled:
        return False
    toggle = EVENT_TOGGLES.get(kind)
    if toggle is None or not getattr(config.toggles, toggle):
        return False
    return config.log_channel_id is not None


def _author_tag(author: Optional[UserInfo]) -> str:
    return author.tag if author is not None and author.tag else UNKNOWN


def _from_bot_or_system(author: Optional[UserInfo], is_system: bool) -> bool:
    return is_system or (author is not None and author.is_bot)


def _format_deleted(event: MessageDeletedEvent, config: LoggingConfig, now: datetime, banned: Collection[UserID]) -> Optional[Notification]:
    if _from_bot_or_system(event.author, event.is_system):
        return None

    fields = [
        NotificationField("Author", _author_tag(event.author), inline=True),
        NotificationField("Channel", channel_mention(str(event.channel_id)), inline=True),
    ]
    if event.content:
        fields.append(NotificationField("Content", truncate(event.content)))

    return Notification(
        channel_id=config.log_channel_id,
        title="Message Deleted",
        color=NotificationColor.RED,
        timestamp=now,
        fields=tuple(fields),
    )


def _format_edited(event: MessageEditedEvent, config: LoggingConfig, now: datetime, banned: Collection[UserID]) -> Optional[Notification]:
    if _from_bot_or_system(event.author, event.is_system):
        return None
    # Embed or attachment-only updates keep the same text
    if event.before_content == event.after_content:
        return None

    return Notification(
        channel_id=config.log_channel_id,
        title="Message Edited",
        color=NotificationColor.GOLD,
        timestamp=now,
        url=event.jump_url,
        fields=(
            NotificationField("Author", _author_tag(event.author), inline=True),
            NotificationField("Channel", channel_mention(str(event.channel_id)), inline=True),
            NotificationField("Before", truncate(event.before_content or NO_CONTENT)),
            NotificationField("After", truncate(event.after_content or NO_CONTENT)),
        ),
    )


def _format_roles_added(event: MemberRolesUpdatedEvent, config: LoggingConfig, now: datetime, banned: Collection[UserID]) -> Optional[Notification]:
    added = event.added_role_ids
    if not added:
        return None

    return Notification(
        channel_id=config.log_channel_id,
        title="Roles Added",
        color=NotificationColor.GREEN,
        timestamp=now,
        thumbnail_url=event.member.avatar_url,
        fields=(
            NotificationField("User", event.member.tag, inline=True),
            NotificationField("Added Roles", join_lines(role_mention(str(r)) for r in added)),
        ),
    )


def _format_banned(event: MemberBannedEvent, config: LoggingConfig, now: datetime, banned: Collection[UserID]) -> Optional[Notification]:
    fields = [
        NotificationField("User", event.user.tag, inline=True),
        NotificationField("ID", str(event.user.user_id), inline=True),
    ]
    if event.reason:
        fields.append(NotificationField("Reason", truncate(event.reason)))

    return Notification(
        channel_id=config.log_channel_id,
        title="User Banned",
        color=NotificationColor.DARK_RED,
        timestamp=now,
        thumbnail_url=event.user.avatar_url,
        fields=tuple(fields),
    )


def _format_left(
    event: MemberLeftEvent,
    config: LoggingConfig,
    now: datetime,
    banned: Collection[UserID],
) -> Optional[Notification]:
    # Reported by the ban event instead
    if event.member.user_id in banned:
        return None

    return Notification(
        channel_id=config.log_channel_id,
        title="User Left",
        color=NotificationColor.GREY,
        timestamp=now,
        thumbnail_url=event.member.avatar_url,
        fields=(
            NotificationField("User", event.member.tag, inline=True),
            NotificationField("ID", str(event.member.user_id), inline=True),
            NotificationField("Joined Server", humanize_timestamp(event.joined_at), inline=True),
            NotificationField("Time in Server", format_time_in_server(event.joined_at, now), inline=True),
        ),
    )


_FORMATTERS: Dict[EventKind, Callable[[Any, LoggingConfig, datetime, Collection[UserID]], Optional[Notification]]] = {
    EventKind.MESSAGE_DELETED: _format_deleted,
    EventKind.MESSAGE_EDITED: _format_edited,
    EventKind.ROLES_ADDED: _format_roles_added,
    EventKind.MEMBER_BANNED: _format_banned,
    EventKind.MEMBER_LEFT: _format_left,
}


def format_event(
    event: LogEvent,
    config: Optional[LoggingConfig],
    *,
    banned_user_ids: Collection[UserID] = (),
    now: Optional[datetime] = None,
) -> Optional[Notification]:
    """
    Build the notification for ``event`` or return None when it is suppressed.

    Args:
        event: The log event.
        config: The guild's logging configuration; None means logging is off.
        banned_user_ids: Current ban list of the guild, consulted for leaves only.
        now: Notification timestamp, defaults to the current UTC time.

    Raises:
        MalformedEventError: If the event carries no guild id or is not a log event.
    """
    if event.guild_id is None:
        raise MalformedEventError(f"{type(event).__name__} has no guild association")
    formatter = _FORMATTERS.get(event.kind)
    if formatter is None:
        raise MalformedEventError(f"{type(event).__name__} is not a log event")

    if not is_event_enabled(config, event.kind):
        return None

    timestamp = now or datetime.now(timezone.utc)
    return formatter(event, config, timestamp, banned_user_ids)
