"""
Configuration cog: administrator slash commands for logging, welcome and auto-role.

Commands:
- /set-logs: enable logging of every event type into the invoking channel
- /welcomer: enable welcome messages in the invoking channel (replies with a preview)
- /welcomer-image: upload a custom welcome background (replies with a preview)
- /auto-role add|remove|list|toggle: manage roles granted to new members
- /config-dump: export the guild's configuration as JSON

Every change goes through :class:`GuildConfigService`, the same path the
dashboard uses, so the event pipeline's cache always matches the store.
All commands require the Administrator permission.
"""

import io
import json
from typing import Any, Dict, Optional

import discord
from discord import Option
from discord.ext import commands

from herald.configuration.config_service import GuildConfigService
from herald.configuration.guild_configs import AutoRoleConfig, LoggingConfig, WelcomeConfig
from herald.datatypes.discord_datatypes import GuildID, RoleID
from herald.errors import BackgroundUnavailableError, ConfigStoreError, ConfigValidationError
from herald.util import image_utils
from herald.util.format_utils import channel_mention, role_mention
from herald.util.logger import get_logger

logger = get_logger("guild_config_cog")

ADMIN_ONLY = discord.Permissions(administrator=True)
PREVIEW_USERNAME = "New User"
PREVIEW_FILENAME = "welcome_preview.png"

GENERIC_ERROR = "There was an error while processing this command."
NO_PERMISSION = "You need Administrator permissions to use this command."
GUILD_ONLY = "This command can only be used in a server."


class GuildConfigCog(commands.Cog):
    """Administrator commands that configure Herald for a guild."""

    auto_role = discord.SlashCommandGroup(
        "auto-role",
        "Automatically assign roles to new members",
        default_member_permissions=ADMIN_ONLY,
    )

    def __init__(self, discord_bot_instance, config_service: GuildConfigService):
        self.discord_bot_instance = discord_bot_instance
        self.config_service = config_service
        logger.info("Guild config cog loaded")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _respond(self, ctx: discord.ApplicationContext, content: Optional[str] = None, **kwargs: Any) -> None:
        try:
            await ctx.respond(content, **kwargs)
        except discord.InteractionResponded:
            await ctx.followup.send(content, **kwargs)

    async def _check_admin(self, ctx: discord.ApplicationContext) -> Optional[GuildID]:
        """Guild id of the invocation, or None after telling the invoker why not."""
        if not ctx.guild_id:
            await ctx.respond(GUILD_ONLY, ephemeral=True)
            return None
        permissions = getattr(ctx.user, "guild_permissions", None)
        if not getattr(permissions, "administrator", False):
            await ctx.respond(NO_PERMISSION, ephemeral=True)
            return None
        return GuildID(ctx.guild_id)

    async def _preview_file(self, guild_name: str, config: WelcomeConfig) -> Optional[discord.File]:
        try:
            image = await self.config_service.render_welcome_preview(PREVIEW_USERNAME, guild_name, config)
        except BackgroundUnavailableError as exc:
            logger.warning("Welcome preview unavailable for guild %s: %s", config.guild_id, exc)
            return None
        except Exception:
            logger.exception("Welcome preview failed for guild %s", config.guild_id)
            return None
        return discord.File(io.BytesIO(image), filename=PREVIEW_FILENAME)

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    @commands.slash_command(
        name="set-logs",
        description="Enable logging for various Discord events",
        default_member_permissions=ADMIN_ONLY,
    )
    async def set_logs(self, ctx: discord.ApplicationContext):
        """Turn logging on in the invoking channel; a first setup enables every event type."""
        guild_id = await self._check_admin(ctx)
        if guild_id is None:
            return

        current = self.config_service.cache.get_logging_config(guild_id)
        update: LoggingConfig | Dict[str, Any]
        if current is None:
            update = LoggingConfig.for_command(guild_id, ctx.channel_id)
        else:
            update = {"guildId": str(guild_id), "enabled": True, "logChannelId": str(ctx.channel_id)}

        try:
            config = await self.config_service.update_logging_config(update)
        except (ConfigStoreError, ConfigValidationError):
            logger.exception("Failed to enable logging for guild %s", guild_id)
            await self._respond(ctx, GENERIC_ERROR, ephemeral=True)
            return

        await ctx.respond(
            f"Logging has been enabled. Logs will be sent to {channel_mention(str(config.log_channel_id))}.",
            ephemeral=True,
        )

    # ------------------------------------------------------------------
    # Welcome
    # ------------------------------------------------------------------

    @commands.slash_command(
        name="welcomer",
        description="Send welcome messages to new members",
        default_member_permissions=ADMIN_ONLY,
    )
    async def welcomer(self, ctx: discord.ApplicationContext):
        """Turn welcome messages on in the invoking channel and show a preview image."""
        guild_id = await self._check_admin(ctx)
        if guild_id is None:
            return

        current = self.config_service.cache.get_welcome_config(guild_id)
        update: WelcomeConfig | Dict[str, Any]
        if current is None:
            update = WelcomeConfig.for_command(guild_id, ctx.channel_id)
        else:
            update = {"guildId": str(guild_id), "enabled": True, "welcomeChannelId": str(ctx.channel_id)}

        try:
            config = await self.config_service.update_welcome_config(update)
        except (ConfigStoreError, ConfigValidationError):
            logger.exception("Failed to enable welcome messages for guild %s", guild_id)
            await self._respond(ctx, GENERIC_ERROR, ephemeral=True)
            return

        message = (
            "Welcome messages have been enabled. They will be sent to "
            f"{channel_mention(str(config.welcome_channel_id))}."
        )
        if not config.include_image:
            await ctx.respond(message, ephemeral=True)
            return

        await ctx.defer()
        preview = await self._preview_file(ctx.guild.name if ctx.guild else "", config)
        if preview is None:
            await self._respond(ctx, message)
        else:
            await self._respond(ctx, message, file=preview)

    @commands.slash_command(
        name="welcomer-image",
        description="Upload a custom background image for welcome messages",
        default_member_permissions=ADMIN_ONLY,
    )
    async def welcomer_image(
        self,
        ctx: discord.ApplicationContext,
        image: Option(discord.Attachment, "The image to use as welcome background", required=True),  # type: ignore
    ):
        """Store an uploaded background, switch the welcome image to it and show a preview."""
        guild_id = await self._check_admin(ctx)
        if guild_id is None:
            return

        if image is None:
            await ctx.respond("Please provide an image for the welcome background.", ephemeral=True)
            return
        if not image_utils.is_image_attachment(image):
            await ctx.respond(
                "The uploaded file is not an image. Please upload a valid image file.",
                ephemeral=True,
            )
            return

        await ctx.defer()

        try:
            data = await image.read()
            reference = await self.config_service.save_custom_background(guild_id, data)
        except (discord.HTTPException, ValueError) as exc:
            logger.warning("Rejected welcome background upload for guild %s: %s", guild_id, exc)
            await self._respond(ctx, "The uploaded image could not be read. Please upload a valid image file.", ephemeral=True)
            return

        current = self.config_service.cache.get_welcome_config(guild_id)
        base = current or WelcomeConfig.for_command(guild_id, ctx.channel_id)
        try:
            config = await self.config_service.update_welcome_config(
                WelcomeConfig.from_payload(
                    {"backgroundImage": "custom", "includeImage": True, "customBackgroundUrl": reference},
                    base=base,
                )
            )
        except (ConfigStoreError, ConfigValidationError):
            logger.exception("Failed to store custom background for guild %s", guild_id)
            await self._respond(ctx, GENERIC_ERROR, ephemeral=True)
            return

        preview = await self._preview_file(ctx.guild.name if ctx.guild else "", config)
        message = "Welcome background image has been updated successfully!"
        if preview is None:
            await self._respond(ctx, message)
        else:
            await self._respond(ctx, message, file=preview)

    # ------------------------------------------------------------------
    # Auto-role
    # ------------------------------------------------------------------

    def _auto_role_config(self, guild_id: GuildID) -> AutoRoleConfig:
        return self.config_service.cache.get_auto_role_config(guild_id) or AutoRoleConfig.for_command(guild_id)

    async def _save_auto_role(self, ctx: discord.ApplicationContext, config: AutoRoleConfig) -> Optional[AutoRoleConfig]:
        try:
            return await self.config_service.update_auto_role_config(config)
        except (ConfigStoreError, ConfigValidationError):
            logger.exception("Failed to update auto-role config for guild %s", config.guild_id)
            await self._respond(ctx, GENERIC_ERROR, ephemeral=True)
            return None

    @auto_role.command(name="add", description="Add a role that new members receive automatically")
    async def auto_role_add(
        self,
        ctx: discord.ApplicationContext,
        role: Option(discord.Role, "The role to assign", required=True),  # type: ignore
    ):
        guild_id = await self._check_admin(ctx)
        if guild_id is None:
            return

        config = self._auto_role_config(guild_id)
        if await self._save_auto_role(ctx, config.with_role(str(role.id))) is None:
            return
        await ctx.respond(f"Role {role.name} will now be automatically assigned to new members.", ephemeral=True)

    @auto_role.command(name="remove", description="Stop assigning a role to new members")
    async def auto_role_remove(
        self,
        ctx: discord.ApplicationContext,
        role: Option(discord.Role, "The role to remove", required=True),  # type: ignore
    ):
        guild_id = await self._check_admin(ctx)
        if guild_id is None:
            return

        current = self.config_service.cache.get_auto_role_config(guild_id)
        role_id = RoleID(role.id)
        if current is None or role_id not in current.role_ids:
            await ctx.respond(f"Role {role.name} is not in the auto-role list.", ephemeral=True)
            return

        if await self._save_auto_role(ctx, current.without_role(role_id)) is None:
            return
        await ctx.respond(f"Role {role.name} has been removed from the auto-role list.", ephemeral=True)

    @auto_role.command(name="list", description="List the roles new members receive")
    async def auto_role_list(self, ctx: discord.ApplicationContext):
        guild_id = await self._check_admin(ctx)
        if guild_id is None:
            return

        config = self.config_service.cache.get_auto_role_config(guild_id)
        if config is None or not config.role_ids:
            await ctx.respond("No auto-roles have been configured for this server.", ephemeral=True)
            return

        lines = []
        for role_id in config.role_ids:
            known = ctx.guild.get_role(role_id.to_int()) if ctx.guild and str(role_id).isdigit() else None
            lines.append(role_mention(str(role_id)) if known else f"Unknown role ({role_id})")

        status = "Enabled" if config.enabled else "Disabled"
        await ctx.respond(
            f"**Auto-Role Status: {status}**\n\n"
            "The following roles will be automatically assigned to new members:\n" + "\n".join(lines),
            ephemeral=True,
        )

    @auto_role.command(name="toggle", description="Turn automatic role assignment on or off")
    async def auto_role_toggle(self, ctx: discord.ApplicationContext):
        guild_id = await self._check_admin(ctx)
        if guild_id is None:
            return

        current = self.config_service.cache.get_auto_role_config(guild_id)
        # A first toggle creates the feature switched on
        config = AutoRoleConfig.for_command(guild_id) if current is None else current.toggled()
        saved = await self._save_auto_role(ctx, config)
        if saved is None:
            return
        await ctx.respond(f"Auto-role has been {'enabled' if saved.enabled else 'disabled'}.", ephemeral=True)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    @commands.slash_command(
        name="config-dump",
        description="Show this server's Herald configuration as raw JSON.",
        default_member_permissions=ADMIN_ONLY,
    )
    async def config_dump(self, ctx: discord.ApplicationContext):
        """Return every configuration kind of the guild as a JSON file (ephemeral)."""
        guild_id = await self._check_admin(ctx)
        if guild_id is None:
            return

        dump = {"guild_id": str(guild_id), **self.config_service.export_guild(guild_id)}
        file_obj = io.BytesIO(json.dumps(dump, ensure_ascii=False, indent=2).encode("utf-8"))
        await self._respond(ctx, file=discord.File(fp=file_obj, filename=f"guild_{guild_id}_config.json"), ephemeral=True)


def setup(discord_bot_instance, config_service: GuildConfigService):
    """Register the GuildConfigCog with the bot."""
    discord_bot_instance.add_cog(GuildConfigCog(discord_bot_instance, config_service))
