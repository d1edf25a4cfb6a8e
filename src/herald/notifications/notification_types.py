"""Library-independent notification values produced by the formatter."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from herald.datatypes.discord_datatypes import ChannelID


class NotificationColor(Enum):
    """Colour tag of a log notification, one per event category."""

    RED = "red"
    GOLD = "gold"
    GREEN = "green"
    DARK_RED = "dark_red"
    GREY = "grey"


@dataclass(frozen=True, slots=True)
class NotificationField:
    name: str
    value: str
    inline: bool = False


@dataclass(frozen=True, slots=True)
class Notification:
    """
    A formatted log entry ready to be turned into an embed.

    Attributes:
        channel_id: Log channel the notification is delivered to.
        title: Embed title, e.g. "User Banned".
        color: Category colour tag.
        timestamp: When the notification was produced (UTC).
        fields: Ordered embed fields.
        thumbnail_url: Avatar of the subject user, where applicable.
        url: Link target of the title (jump URL of an edited message).
    """

    channel_id: ChannelID
    title: str
    color: NotificationColor
    timestamp: datetime
    fields: Tuple[NotificationField, ...] = ()
    thumbnail_url: Optional[str] = None
    url: Optional[str] = None

    def field(self, name: str) -> Optional[NotificationField]:
        """First field called ``name``, or None."""
        for entry in self.fields:
            if entry.name == name:
                return entry
        return None
