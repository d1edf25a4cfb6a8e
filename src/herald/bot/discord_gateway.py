"""
Discord side of the event pipeline.

:class:`DiscordGateway` resolves channels and performs outbound calls for the
dispatcher. Discord exceptions are translated into Herald's error types so
the dispatcher never depends on py-cord. The ``*_event`` functions convert
py-cord objects into the plain event values of :mod:`herald.dispatch.events`.
"""

from __future__ import annotations

from io import BytesIO
from typing import Any, Optional, Set

import discord

from herald.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from herald.dispatch.events import (
    MemberBannedEvent,
    MemberJoinedEvent,
    MemberLeftEvent,
    MemberRolesUpdatedEvent,
    MessageDeletedEvent,
    MessageEditedEvent,
    UserInfo,
)
from herald.errors import DeliveryError, RoleAssignmentError
from herald.notifications.notification_types import Notification
from herald.ui.notification_embed import build_notification_embed
from herald.util.logger import get_logger

logger = get_logger("discord_gateway")

WELCOME_IMAGE_FILENAME = "welcome.png"
AUTO_ROLE_REASON = "Auto-role on join"


class DiscordGateway:
    """Channel resolution, message sending, ban lookups and role grants through py-cord."""

    def __init__(self, discord_bot_instance: discord.Bot) -> None:
        self.bot = discord_bot_instance

    def _guild(self, guild_id: GuildID) -> Optional[discord.Guild]:
        try:
            return self.bot.get_guild(GuildID(guild_id).to_int())
        except ValueError:
            logger.warning("[GATEWAY] Guild id %s is not a Discord snowflake", guild_id)
            return None

    async def resolve_text_channel(self, guild_id: GuildID, channel_id: ChannelID) -> Optional[discord.abc.Messageable]:
        """Return the postable channel, or None when it is gone or not text based."""
        guild = self._guild(guild_id)
        if guild is None:
            return None
        try:
            channel_int = ChannelID(channel_id).to_int()
        except ValueError:
            return None

        channel = guild.get_channel_or_thread(channel_int)
        if channel is None:
            try:
                channel = await guild.fetch_channel(channel_int)
            except discord.NotFound:
                return None
            except discord.HTTPException as exc:
                raise DeliveryError(f"could not fetch channel {channel_id}: {exc}") from exc

        if not isinstance(channel, discord.abc.Messageable):
            return None
        return channel

    async def send_message(
        self,
        channel: discord.abc.Messageable,
        *,
        text: Optional[str] = None,
        notification: Optional[Notification] = None,
        image: Optional[bytes] = None,
    ) -> None:
        kwargs: dict[str, Any] = {}
        if text:
            kwargs["content"] = text
        if notification is not None:
            kwargs["embed"] = build_notification_embed(notification)
        if image:
            kwargs["file"] = discord.File(BytesIO(image), filename=WELCOME_IMAGE_FILENAME)

        try:
            await channel.send(**kwargs)
        except discord.HTTPException as exc:
            raise DeliveryError(f"send to channel {getattr(channel, 'id', '?')} failed: {exc}") from exc

    async def fetch_banned_user_ids(self, guild_id: GuildID) -> Set[UserID]:
        guild = self._guild(guild_id)
        if guild is None:
            raise DeliveryError(f"guild {guild_id} is not available")
        try:
            return {UserID(entry.user.id) async for entry in guild.bans(limit=None)}
        except discord.HTTPException as exc:
            raise DeliveryError(f"could not fetch bans of guild {guild_id}: {exc}") from exc

    async def fetch_ban_reason(self, guild_id: GuildID, user_id: UserID) -> Optional[str]:
        guild = self._guild(guild_id)
        if guild is None:
            return None
        try:
            ban = await guild.fetch_ban(discord.Object(id=UserID(user_id).to_int()))
        except discord.NotFound:
            return None
        except discord.HTTPException as exc:
            raise DeliveryError(f"could not fetch ban of {user_id}: {exc}") from exc
        return ban.reason

    async def assign_role(self, guild_id: GuildID, user_id: UserID, role_id: RoleID) -> None:
        """
        Grant ``role_id`` to the member.

        Raises:
            RoleAssignmentError: If the guild, member or role is gone, or Discord refuses.
        """
        guild = self._guild(guild_id)
        if guild is None:
            raise RoleAssignmentError(str(role_id), f"guild {guild_id} is not available")

        try:
            role = guild.get_role(RoleID(role_id).to_int())
            member_int = UserID(user_id).to_int()
        except ValueError as exc:
            raise RoleAssignmentError(str(role_id), str(exc)) from exc
        if role is None:
            raise RoleAssignmentError(str(role_id), "role not found")

        member = guild.get_member(member_int)
        try:
            if member is None:
                member = await guild.fetch_member(member_int)
            await member.add_roles(role, reason=AUTO_ROLE_REASON)
        except discord.NotFound as exc:
            raise RoleAssignmentError(str(role_id), f"member {user_id} left the guild") from exc
        except discord.Forbidden as exc:
            raise RoleAssignmentError(str(role_id), "missing permission") from exc
        except discord.HTTPException as exc:
            raise RoleAssignmentError(str(role_id), str(exc)) from exc


# ----------------------------------------------------------------------
# py-cord objects -> events
# ----------------------------------------------------------------------

def user_info(user: discord.abc.User) -> UserInfo:
    avatar = getattr(user, "display_avatar", None)
    return UserInfo(
        user_id=UserID(user.id),
        tag=str(user),
        display_name=getattr(user, "display_name", None) or str(user),
        avatar_url=str(avatar.url) if avatar is not None else None,
        is_bot=bool(getattr(user, "bot", False)),
    )


def _guild_id(guild: Optional[discord.Guild]) -> Optional[GuildID]:
    return GuildID(guild.id) if guild is not None else None


def member_joined_event(member: discord.Member) -> MemberJoinedEvent:
    return MemberJoinedEvent(
        guild_id=_guild_id(member.guild),
        guild_name=member.guild.name if member.guild is not None else "",
        member=user_info(member),
    )


def message_deleted_event(message: discord.Message) -> MessageDeletedEvent:
    return MessageDeletedEvent(
        guild_id=_guild_id(message.guild),
        channel_id=ChannelID(message.channel.id),
        author=user_info(message.author) if message.author is not None else None,
        content=message.content or None,
        is_system=message.is_system(),
    )


def message_edited_event(before: discord.Message, after: discord.Message) -> MessageEditedEvent:
    return MessageEditedEvent(
        guild_id=_guild_id(after.guild or before.guild),
        channel_id=ChannelID(after.channel.id),
        author=user_info(before.author) if before.author is not None else None,
        before_content=before.content,
        after_content=after.content,
        is_system=before.is_system(),
        jump_url=after.jump_url,
    )


def roles_updated_event(before: discord.Member, after: discord.Member) -> MemberRolesUpdatedEvent:
    return MemberRolesUpdatedEvent(
        guild_id=_guild_id(after.guild),
        member=user_info(after),
        before_role_ids=tuple(RoleID(role.id) for role in before.roles),
        after_role_ids=tuple(RoleID(role.id) for role in after.roles),
    )


def member_banned_event(guild: discord.Guild, user: discord.abc.User) -> MemberBannedEvent:
    return MemberBannedEvent(guild_id=_guild_id(guild), user=user_info(user))


def member_left_event(member: discord.Member) -> MemberLeftEvent:
    return MemberLeftEvent(
        guild_id=_guild_id(member.guild),
        member=user_info(member),
        joined_at=member.joined_at,
    )
