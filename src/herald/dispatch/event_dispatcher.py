"""
Event dispatch: decide whether a gateway event produces a message, and send it.

Each event moves through ``received -> suppressed | formatted -> unresolved |
resolved -> delivered | delivery failed``. Every terminal state other than
``delivered`` is logged and the event is dropped; nothing is retried.

The dispatcher only reads configuration from the :class:`ConfigCache` and
talks to Discord through a :class:`DeliveryGateway`, so the decision logic
runs without a live connection.
"""

from __future__ import annotations

import asyncio
import dataclasses
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Collection, Dict, List, Optional, Protocol, Tuple

from herald.configuration.config_cache import ConfigCache
from herald.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from herald.dispatch.events import (
    EventKind,
    GatewayEvent,
    LogEvent,
    MemberBannedEvent,
    MemberJoinedEvent,
)
from herald.errors import (
    BackgroundUnavailableError,
    DeliveryError,
    MalformedEventError,
    RoleAssignmentError,
)
from herald.notifications.formatter import format_event, is_event_enabled
from herald.notifications.notification_types import Notification
from herald.util.logger import get_logger
from herald.welcome.image_renderer import WelcomeImageRenderer

logger = get_logger("event_dispatcher")

SERVER_TOKEN = "@server"
USERNAME_TOKEN = "@username"


class DispatchOutcome(Enum):
    SUPPRESSED = "suppressed"
    MALFORMED = "malformed"
    UNRESOLVED = "unresolved"
    DELIVERED = "delivered"
    DELIVERY_FAILED = "delivery_failed"


class DeliveryGateway(Protocol):
    """Outbound side of the Discord connection used by the dispatcher."""

    async def resolve_text_channel(self, guild_id: GuildID, channel_id: ChannelID) -> Optional[Any]: ...

    async def send_message(
        self,
        channel: Any,
        *,
        text: Optional[str] = None,
        notification: Optional[Notification] = None,
        image: Optional[bytes] = None,
    ) -> None: ...

    async def fetch_banned_user_ids(self, guild_id: GuildID) -> Collection[UserID]: ...

    async def fetch_ban_reason(self, guild_id: GuildID, user_id: UserID) -> Optional[str]: ...

    async def assign_role(self, guild_id: GuildID, user_id: UserID, role_id: RoleID) -> None: ...


def render_welcome_text(template: str, server_name: str, username: str) -> str:
    """Replace every ``@server`` and ``@username`` token in ``template``."""
    return template.replace(SERVER_TOKEN, server_name).replace(USERNAME_TOKEN, username)


class EventDispatcher:
    """
    Routes gateway events to the welcome, auto-role and logging flows.

    Args:
        cache: Configuration cache, the only configuration source consulted.
        gateway: Channel resolution and outbound calls.
        renderer: Welcome image renderer.
        timeout: Seconds allowed for each outbound call.
    """

    def __init__(
        self,
        cache: ConfigCache,
        gateway: DeliveryGateway,
        renderer: WelcomeImageRenderer,
        *,
        timeout: float = 10.0,
    ) -> None:
        self.cache = cache
        self.gateway = gateway
        self.renderer = renderer
        self.timeout = timeout
        self._handlers: Dict[EventKind, Callable[[Any], Awaitable[DispatchOutcome]]] = {
            EventKind.MEMBER_JOINED: self.handle_member_joined,
            EventKind.MESSAGE_DELETED: self.handle_log_event,
            EventKind.MESSAGE_EDITED: self.handle_log_event,
            EventKind.ROLES_ADDED: self.handle_log_event,
            EventKind.MEMBER_BANNED: self.handle_log_event,
            EventKind.MEMBER_LEFT: self.handle_log_event,
        }

    async def dispatch(self, event: GatewayEvent) -> DispatchOutcome:
        """Handle one event end to end. Never raises for operational failures."""
        handler = self._handlers.get(getattr(event, "kind", None))
        try:
            if handler is None:
                raise MalformedEventError(f"no handler for {type(event).__name__}")
            if event.guild_id is None:
                raise MalformedEventError(f"{type(event).__name__} has no guild association")
            return await handler(event)
        except MalformedEventError as exc:
            logger.warning("[DISPATCHER] Dropping malformed event: %s", exc)
            return DispatchOutcome.MALFORMED

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    async def _resolve(self, guild_id: GuildID, channel_id: ChannelID, purpose: str) -> Optional[Any]:
        try:
            channel = await asyncio.wait_for(self.gateway.resolve_text_channel(guild_id, channel_id), self.timeout)
        except (asyncio.TimeoutError, DeliveryError) as exc:
            logger.warning("[DISPATCHER] Could not look up %s channel %s in guild %s: %s", purpose, channel_id, guild_id, exc)
            return None
        if channel is None:
            logger.warning(
                "[DISPATCHER] %s channel %s not found or not a text channel in guild %s; dropping",
                purpose.capitalize(), channel_id, guild_id,
            )
        return channel

    async def _deliver(self, channel: Any, what: str, guild_id: GuildID, **content: Any) -> DispatchOutcome:
        try:
            await asyncio.wait_for(self.gateway.send_message(channel, **content), self.timeout)
        except asyncio.TimeoutError:
            logger.error("[DISPATCHER] Timed out sending %s in guild %s", what, guild_id)
            return DispatchOutcome.DELIVERY_FAILED
        except DeliveryError as exc:
            logger.error("[DISPATCHER] Failed to send %s in guild %s: %s", what, guild_id, exc)
            return DispatchOutcome.DELIVERY_FAILED

        logger.debug("[DISPATCHER] Delivered %s in guild %s", what, guild_id)
        return DispatchOutcome.DELIVERED

    # ------------------------------------------------------------------
    # Member join: welcome message and auto-roles
    # ------------------------------------------------------------------

    async def handle_member_joined(self, event: MemberJoinedEvent) -> DispatchOutcome:
        """Run the welcome and auto-role flows concurrently; neither can abort the other."""
        welcome, roles = await asyncio.gather(
            self.send_welcome(event),
            self.assign_auto_roles(event),
            return_exceptions=True,
        )
        if isinstance(roles, BaseException):
            logger.error("[DISPATCHER] Auto-role flow crashed in guild %s", event.guild_id, exc_info=roles)
        if isinstance(welcome, BaseException):
            logger.error("[DISPATCHER] Welcome flow crashed in guild %s", event.guild_id, exc_info=welcome)
            return DispatchOutcome.DELIVERY_FAILED
        return welcome

    async def send_welcome(self, event: MemberJoinedEvent) -> DispatchOutcome:
        config = self.cache.get_welcome_config(event.guild_id)
        if config is None or not config.enabled or config.welcome_channel_id is None:
            return DispatchOutcome.SUPPRESSED

        channel = await self._resolve(event.guild_id, config.welcome_channel_id, "welcome")
        if channel is None:
            return DispatchOutcome.UNRESOLVED

        text = render_welcome_text(config.message_template, event.guild_name, event.member.display_name)

        image: Optional[bytes] = None
        if config.include_image:
            try:
                # Custom background fetch plus the default fallback fetch
                image = await asyncio.wait_for(
                    self.renderer.render_async(event.member.display_name, event.guild_name, config.image_options),
                    self.timeout * 2,
                )
            except BackgroundUnavailableError as exc:
                logger.error("[DISPATCHER] Welcome image unavailable in guild %s, sending text only: %s", event.guild_id, exc)
            except asyncio.TimeoutError:
                logger.error("[DISPATCHER] Welcome image timed out in guild %s, sending text only", event.guild_id)
            except Exception:
                logger.exception("[DISPATCHER] Welcome image failed in guild %s, sending text only", event.guild_id)

        return await self._deliver(channel, "welcome message", event.guild_id, text=text, image=image)

    async def assign_auto_roles(self, event: MemberJoinedEvent) -> Tuple[RoleID, ...]:
        """
        Grant every configured auto-role to the new member.

        A failing role is logged and skipped; the remaining roles are still assigned.

        Returns:
            Tuple[RoleID, ...]: Roles that were assigned.
        """
        config = self.cache.get_auto_role_config(event.guild_id)
        if config is None or not config.enabled or not config.role_ids:
            return ()

        assigned: List[RoleID] = []
        for role_id in config.role_ids:
            try:
                await asyncio.wait_for(
                    self.gateway.assign_role(event.guild_id, event.member.user_id, role_id),
                    self.timeout,
                )
            except RoleAssignmentError as exc:
                logger.warning("[DISPATCHER] Auto-role failed for %s in guild %s: %s", event.member.tag, event.guild_id, exc)
                continue
            except asyncio.TimeoutError:
                logger.warning("[DISPATCHER] Auto-role %s timed out for %s in guild %s", role_id, event.member.tag, event.guild_id)
                continue
            assigned.append(role_id)
            logger.info("[DISPATCHER] Added role %s to new member %s in guild %s", role_id, event.member.tag, event.guild_id)

        return tuple(assigned)

    # ------------------------------------------------------------------
    # Log events
    # ------------------------------------------------------------------

    async def _banned_user_ids(self, guild_id: GuildID) -> Collection[UserID]:
        return await asyncio.wait_for(self.gateway.fetch_banned_user_ids(guild_id), self.timeout)

    async def _with_ban_reason(self, event: MemberBannedEvent) -> MemberBannedEvent:
        if event.reason:
            return event
        try:
            reason = await asyncio.wait_for(self.gateway.fetch_ban_reason(event.guild_id, event.user.user_id), self.timeout)
        except (asyncio.TimeoutError, DeliveryError) as exc:
            logger.debug("[DISPATCHER] Ban reason unavailable for %s in guild %s: %s", event.user.user_id, event.guild_id, exc)
            return event
        return dataclasses.replace(event, reason=reason) if reason else event

    async def handle_log_event(self, event: LogEvent) -> DispatchOutcome:
        config = self.cache.get_logging_config(event.guild_id)
        if not is_event_enabled(config, event.kind):
            return DispatchOutcome.SUPPRESSED

        banned: Collection[UserID] = ()
        if event.kind is EventKind.MEMBER_LEFT:
            try:
                banned = await self._banned_user_ids(event.guild_id)
            except (asyncio.TimeoutError, DeliveryError) as exc:
                # Without the ban list a ban could be reported twice
                logger.warning("[DISPATCHER] Could not fetch bans of guild %s, dropping leave event: %s", event.guild_id, exc)
                return DispatchOutcome.DELIVERY_FAILED
        elif event.kind is EventKind.MEMBER_BANNED:
            event = await self._with_ban_reason(event)

        notification = format_event(event, config, banned_user_ids=banned, now=datetime.now(timezone.utc))
        if notification is None:
            logger.debug("[DISPATCHER] %s in guild %s filtered out", event.kind.value, event.guild_id)
            return DispatchOutcome.SUPPRESSED

        channel = await self._resolve(event.guild_id, notification.channel_id, "log")
        if channel is None:
            return DispatchOutcome.UNRESOLVED

        return await self._deliver(channel, f"{notification.title!r} log", event.guild_id, notification=notification)
