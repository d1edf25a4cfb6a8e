"""Event listener Cog for Herald.

This cog handles bot lifecycle events (on_ready, on_guild_join), converts the
guild events Herald reacts to into plain event values for the dispatcher, and
handles application command errors.
"""

from typing import Callable

import discord
from discord.ext import commands

from herald.bot import discord_gateway
from herald.configuration.guild_configs import ChannelRecord
from herald.configuration.config_service import GuildConfigService
from herald.dispatch.event_dispatcher import EventDispatcher
from herald.errors import ConfigStoreError
from herald.util.logger import get_logger

logger = get_logger("events_listener_cog")


class EventsListenerCog(commands.Cog):
    """Cog containing lifecycle listeners, guild event listeners and the command error handler."""

    def __init__(
        self,
        discord_bot_instance,
        dispatcher: EventDispatcher,
        config_service: GuildConfigService,
        presence_activity: str = "Logging & Welcoming",
    ):
        self.bot = discord_bot_instance
        self.dispatcher = dispatcher
        self.config_service = config_service
        self.presence_activity = presence_activity
        logger.info("Events listener cog loaded")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self):
        """Set the presence and refresh the dashboard's guild directory."""
        if self.bot.user:
            await self._update_presence()
            logger.info(f"Bot connected as {self.bot.user} (ID: {self.bot.user.id})")
        else:
            logger.warning("Bot partially connected, but user information not yet available.")

        logger.info("--==--==--==--==--==--==--==--==--==--==--==--==--==--==--==--==--")

        for guild in list(getattr(self.bot, "guilds", [])):
            await self._register_guild(guild)

    async def _update_presence(self) -> None:
        if not self.bot.user:
            return

        await self.bot.change_presence(
            status=discord.Status.online,
            activity=discord.Activity(
                type=discord.ActivityType.watching,
                name=self.presence_activity,
            ),
        )

    async def _register_guild(self, guild: discord.Guild) -> None:
        channels = [
            ChannelRecord(channel_id=str(channel.id), guild_id=str(guild.id), name=channel.name, type="text")
            for channel in getattr(guild, "text_channels", [])
        ]
        try:
            await self.config_service.register_guild(str(guild.id), guild.name, channels)
        except ConfigStoreError as exc:
            logger.error("Could not register guild %s (%s): %s", guild.name, guild.id, exc)

    @commands.Cog.listener(name="on_guild_join")
    async def on_guild_join(self, guild: discord.Guild):
        logger.info("Joined guild %s (%s)", guild.name, guild.id)
        await self._register_guild(guild)

    # ------------------------------------------------------------------
    # Guild events
    # ------------------------------------------------------------------

    async def _dispatch(self, name: str, build: Callable, *args) -> None:
        try:
            event = build(*args)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("[%s] Dropping malformed payload: %s", name, exc)
            return
        outcome = await self.dispatcher.dispatch(event)
        logger.debug("[%s] guild=%s outcome=%s", name, event.guild_id, outcome.value)

    @commands.Cog.listener(name="on_member_join")
    async def on_member_join(self, member: discord.Member):
        await self._dispatch("MEMBER JOIN", discord_gateway.member_joined_event, member)

    @commands.Cog.listener(name="on_message_delete")
    async def on_message_delete(self, message: discord.Message):
        # Direct messages carry no guild configuration
        if message.guild is None:
            return
        await self._dispatch("MESSAGE DELETE", discord_gateway.message_deleted_event, message)

    @commands.Cog.listener(name="on_message_edit")
    async def on_message_edit(self, before: discord.Message, after: discord.Message):
        if before.guild is None and after.guild is None:
            return
        await self._dispatch("MESSAGE EDIT", discord_gateway.message_edited_event, before, after)

    @commands.Cog.listener(name="on_member_update")
    async def on_member_update(self, before: discord.Member, after: discord.Member):
        await self._dispatch("MEMBER UPDATE", discord_gateway.roles_updated_event, before, after)

    @commands.Cog.listener(name="on_member_ban")
    async def on_member_ban(self, guild: discord.Guild, user: discord.User):
        await self._dispatch("MEMBER BAN", discord_gateway.member_banned_event, guild, user)

    @commands.Cog.listener(name="on_member_remove")
    async def on_member_remove(self, member: discord.Member):
        await self._dispatch("MEMBER REMOVE", discord_gateway.member_left_event, member)

    # ------------------------------------------------------------------
    # Command errors
    # ------------------------------------------------------------------

    @commands.Cog.listener(name="on_application_command_error")
    async def on_application_command_error(self, application_context: discord.ApplicationContext, error: Exception):
        """Log command errors and tell the invoker something went wrong."""
        if isinstance(error, commands.CommandNotFound):
            return

        command_name = getattr(application_context.command, "name", "<unknown>")
        logger.error(f"Error in command '{command_name}': {error}", exc_info=True)

        error_message = "There was an error while processing this command."
        try:
            await application_context.respond(error_message, ephemeral=True)
        except discord.InteractionResponded:
            await application_context.followup.send(error_message, ephemeral=True)


def setup(discord_bot_instance, dispatcher: EventDispatcher, config_service: GuildConfigService, presence_activity: str = "Logging & Welcoming"):
    """Register the EventsListenerCog with the bot."""
    discord_bot_instance.add_cog(EventsListenerCog(discord_bot_instance, dispatcher, config_service, presence_activity))
