"""
GuildConfigService: the one update path for guild configuration.

Slash commands and the dashboard both change settings through this service.
Every update validates the input, writes it to the store, and only then puts
the *persisted* record into the cache. A store failure propagates and leaves
the cache untouched, so the cache never holds a record the store rejected.

Per-guild locks serialise read-modify-write updates of the same guild while
different guilds proceed concurrently.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Type, TypeVar

from herald.configuration.config_cache import ConfigCache
from herald.configuration.guild_configs import (
    AutoRoleConfig,
    BackgroundChoice,
    ChannelRecord,
    ConfigKind,
    LoggingConfig,
    WelcomeConfig,
    WelcomeImageOptions,
    payload_guild_id,
)
from herald.database.config_store import ConfigStore
from herald.datatypes.discord_datatypes import GuildID
from herald.errors import ConfigValidationError
from herald.util import image_utils
from herald.welcome.image_renderer import WelcomeImageRenderer
from herald.util.logger import get_logger

logger = get_logger("config_service")

ConfigT = TypeVar("ConfigT", LoggingConfig, WelcomeConfig, AutoRoleConfig)


class GuildConfigService:
    """
    Coordinates the config store, the config cache and the welcome renderer.

    Args:
        store: Durable configuration store.
        cache: Cache read by the event pipeline.
        renderer: Renderer shared with the live welcome flow.
        uploads_dir: Where uploaded custom backgrounds are written.
    """

    def __init__(
        self,
        store: ConfigStore,
        cache: ConfigCache,
        renderer: WelcomeImageRenderer,
        uploads_dir: Optional[Path] = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.renderer = renderer
        self.uploads_dir = uploads_dir or renderer.uploads_dir
        self._per_guild_locks: Dict[GuildID, asyncio.Lock] = {}

    def _lock_for(self, guild_id: GuildID) -> asyncio.Lock:
        if guild_id not in self._per_guild_locks:
            self._per_guild_locks[guild_id] = asyncio.Lock()
        return self._per_guild_locks[guild_id]

    async def load_cache(self) -> int:
        """Hydrate the cache from the store (startup)."""
        return await self.cache.hydrate(self.store)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    async def _update(
        self,
        config_type: Type[ConfigT],
        update: ConfigT | Mapping[str, Any],
        upsert: Callable[[ConfigT], Awaitable[ConfigT]],
    ) -> ConfigT:
        if isinstance(update, config_type):
            guild_id = update.guild_id
        elif isinstance(update, Mapping):
            guild_id = payload_guild_id(update)
            if guild_id is None:
                raise ConfigValidationError([("guild_id", "missing or invalid guild id")])
        else:
            raise ConfigValidationError([("config", f"expected {config_type.__name__} or a mapping, got {type(update).__name__}")])

        async with self._lock_for(guild_id):
            if isinstance(update, config_type):
                config = update
            else:
                base = self.cache.get(guild_id, config_type.kind)
                config = config_type.from_payload(update, base=base)

            persisted = await upsert(config)
            self.cache.put(persisted)

        logger.info(
            "[CONFIG SERVICE] Updated %s config for guild %s (enabled=%s)",
            config_type.kind.value, guild_id, persisted.enabled,
        )
        return persisted

    async def update_logging_config(self, update: LoggingConfig | Mapping[str, Any]) -> LoggingConfig:
        """Validate, persist and cache a logging configuration.

        Mapping payloads are merged field by field onto the cached record.

        Raises:
            ConfigValidationError: If the payload is rejected.
            ConfigStoreError: If the store write fails; the cache is left unchanged.
        """
        return await self._update(LoggingConfig, update, self.store.upsert_logging_config)

    async def update_welcome_config(self, update: WelcomeConfig | Mapping[str, Any]) -> WelcomeConfig:
        """Same contract as :meth:`update_logging_config` for welcome settings."""
        config = await self._update(WelcomeConfig, update, self.store.upsert_welcome_config)
        if config.background_choice is BackgroundChoice.CUSTOM and not config.custom_background_url:
            logger.warning(
                "[CONFIG SERVICE] Guild %s selected a custom background without a URL; "
                "welcome images will use the default background",
                config.guild_id,
            )
        return config

    async def update_auto_role_config(self, update: AutoRoleConfig | Mapping[str, Any]) -> AutoRoleConfig:
        return await self._update(AutoRoleConfig, update, self.store.upsert_auto_role_config)

    # ------------------------------------------------------------------
    # Dashboard reads
    # ------------------------------------------------------------------

    def get_logging_config_view(self, guild_id: GuildID | str) -> LoggingConfig:
        return self.cache.get_logging_config(guild_id) or LoggingConfig.disabled(guild_id)

    def get_welcome_config_view(self, guild_id: GuildID | str) -> WelcomeConfig:
        return self.cache.get_welcome_config(guild_id) or WelcomeConfig.disabled(guild_id)

    def get_auto_role_config_view(self, guild_id: GuildID | str) -> AutoRoleConfig:
        return self.cache.get_auto_role_config(guild_id) or AutoRoleConfig.disabled(guild_id)

    def export_guild(self, guild_id: GuildID | str) -> Dict[str, Any]:
        """Dashboard-shaped dump of every configuration kind of a guild."""
        return {
            ConfigKind.LOGGING.value: self.get_logging_config_view(guild_id).to_payload(),
            ConfigKind.WELCOME.value: self.get_welcome_config_view(guild_id).to_payload(),
            ConfigKind.AUTO_ROLE.value: self.get_auto_role_config_view(guild_id).to_payload(),
        }

    # ------------------------------------------------------------------
    # Welcome image
    # ------------------------------------------------------------------

    async def render_welcome_preview(
        self,
        username: str,
        server_name: str,
        welcome_config: WelcomeConfig | WelcomeImageOptions | Mapping[str, Any],
    ) -> bytes:
        """
        Render a welcome image exactly as the live welcome flow would.

        Raises:
            ConfigValidationError: If a mapping payload is rejected.
            BackgroundUnavailableError: If no background can be loaded at all.
        """
        if isinstance(welcome_config, WelcomeConfig):
            options = welcome_config.image_options
        elif isinstance(welcome_config, WelcomeImageOptions):
            options = welcome_config
        else:
            options = WelcomeImageOptions.from_payload(welcome_config)
        return await self.renderer.render_async(username, server_name, options)

    async def save_custom_background(self, guild_id: GuildID | str, image_bytes: bytes) -> str:
        """
        Store an uploaded background and return its ``/uploads/<file>`` reference.

        The upload is re-encoded as PNG; the reference is what
        ``custom_background_url`` should be set to.

        Raises:
            ValueError: If the upload is empty, too large or not an image.
        """
        guild_id = GuildID(guild_id)
        png = await asyncio.to_thread(image_utils.normalize_upload, image_bytes)

        filename = f"custom_{guild_id}_{int(time.time() * 1000)}.png"
        target = self.uploads_dir / filename

        def _write() -> None:
            self.uploads_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(png)

        await asyncio.to_thread(_write)
        logger.info("[CONFIG SERVICE] Saved custom background for guild %s as %s", guild_id, target)
        return f"{image_utils.UPLOADS_PREFIX}{filename}"

    # ------------------------------------------------------------------
    # Guild directory
    # ------------------------------------------------------------------

    async def register_guild(self, guild_id: GuildID | str, name: str, channels: Iterable[ChannelRecord] = ()) -> None:
        """Record a guild and its text channels for the dashboard pickers."""
        guild_id = GuildID(guild_id)
        await self.store.upsert_guild(guild_id, name)
        stored = await self.store.upsert_channels(channels)
        logger.debug("[CONFIG SERVICE] Registered guild %s (%s) with %d channels", guild_id, name, len(stored))

    async def list_channels(self, guild_id: GuildID | str) -> List[ChannelRecord]:
        return await self.store.get_channels(guild_id)

    async def forget_guild(self, guild_id: GuildID | str) -> bool:
        """
        Delete all configuration of a guild from the store, then from the cache.

        Returns:
            bool: True if the store knew the guild.
        """
        guild_id = GuildID(guild_id)
        async with self._lock_for(guild_id):
            deleted = await self.store.delete_guild(guild_id)
            self.cache.remove_guild(guild_id)
        logger.info("[CONFIG SERVICE] Forgot guild %s", guild_id)
        return deleted
