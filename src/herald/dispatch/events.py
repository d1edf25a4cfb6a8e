"""
Gateway events as plain values.

The Discord adapter converts py-cord objects into these dataclasses so the
formatter and the dispatcher can be exercised without a gateway connection.
``guild_id`` is Optional on every event: an event that lost its guild
association is structurally malformed and gets dropped by the pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional, Tuple

from herald.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID


class EventKind(Enum):
    MEMBER_JOINED = "member_joined"
    MESSAGE_DELETED = "message_deleted"
    MESSAGE_EDITED = "message_edited"
    ROLES_ADDED = "roles_added"
    MEMBER_BANNED = "member_banned"
    MEMBER_LEFT = "member_left"


@dataclass(frozen=True, slots=True)
class UserInfo:
    """Snapshot of the user an event is about."""

    user_id: UserID
    tag: str
    display_name: str = ""
    avatar_url: Optional[str] = None
    is_bot: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "user_id", UserID(self.user_id))
        if not self.display_name:
            object.__setattr__(self, "display_name", self.tag)


@dataclass(frozen=True, slots=True)
class MemberJoinedEvent:
    kind: ClassVar[EventKind] = EventKind.MEMBER_JOINED

    guild_id: Optional[GuildID]
    guild_name: str
    member: UserInfo


@dataclass(frozen=True, slots=True)
class MessageDeletedEvent:
    kind: ClassVar[EventKind] = EventKind.MESSAGE_DELETED

    guild_id: Optional[GuildID]
    channel_id: ChannelID
    author: Optional[UserInfo] = None
    content: Optional[str] = None
    is_system: bool = False


@dataclass(frozen=True, slots=True)
class MessageEditedEvent:
    kind: ClassVar[EventKind] = EventKind.MESSAGE_EDITED

    guild_id: Optional[GuildID]
    channel_id: ChannelID
    author: Optional[UserInfo] = None
    before_content: Optional[str] = None
    after_content: Optional[str] = None
    is_system: bool = False
    jump_url: Optional[str] = None


@dataclass(frozen=True, slots=True)
class MemberRolesUpdatedEvent:
    """A member's role set changed; ``after_role_ids`` keeps display order."""

    kind: ClassVar[EventKind] = EventKind.ROLES_ADDED

    guild_id: Optional[GuildID]
    member: UserInfo
    before_role_ids: Tuple[RoleID, ...] = ()
    after_role_ids: Tuple[RoleID, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "before_role_ids", tuple(RoleID(r) for r in self.before_role_ids))
        object.__setattr__(self, "after_role_ids", tuple(RoleID(r) for r in self.after_role_ids))

    @property
    def added_role_ids(self) -> Tuple[RoleID, ...]:
        before = set(self.before_role_ids)
        return tuple(role_id for role_id in self.after_role_ids if role_id not in before)


@dataclass(frozen=True, slots=True)
class MemberBannedEvent:
    kind: ClassVar[EventKind] = EventKind.MEMBER_BANNED

    guild_id: Optional[GuildID]
    user: UserInfo
    reason: Optional[str] = None


@dataclass(frozen=True, slots=True)
class MemberLeftEvent:
    kind: ClassVar[EventKind] = EventKind.MEMBER_LEFT

    guild_id: Optional[GuildID]
    member: UserInfo
    joined_at: Optional[datetime] = None


LogEvent = (
    MessageDeletedEvent
    | MessageEditedEvent
    | MemberRolesUpdatedEvent
    | MemberBannedEvent
    | MemberLeftEvent
)
GatewayEvent = MemberJoinedEvent | LogEvent
