"""
In-process cache of per-guild configuration.

The cache is the only configuration the event pipeline reads. It is hydrated
from the store once at startup and afterwards changes only through
:class:`~herald.configuration.config_service.GuildConfigService`, which writes
the store first and then puts the persisted record here.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol

from herald.configuration.guild_configs import (
    AutoRoleConfig,
    ConfigKind,
    GuildConfig,
    LoggingConfig,
    WelcomeConfig,
)
from herald.datatypes.discord_datatypes import GuildID
from herald.util.logger import get_logger

logger = get_logger("config_cache")


class HydrationSource(Protocol):
    """The slice of the config store used to warm the cache."""

    async def list_guild_ids(self) -> List[GuildID]: ...
    async def get_logging_config(self, guild_id: GuildID) -> Optional[LoggingConfig]: ...
    async def get_welcome_config(self, guild_id: GuildID) -> Optional[WelcomeConfig]: ...
    async def get_auto_role_config(self, guild_id: GuildID) -> Optional[AutoRoleConfig]: ...


class ConfigCache:
    """
    Mapping of guild id to each configuration kind.

    Absence of an entry means "feature disabled" for the dispatcher, never an
    error. Entries never expire; they are replaced only by :meth:`put` and
    dropped only by :meth:`remove_guild` or :meth:`clear`.

    A lock guards the maps so a dashboard thread and the event loop can share
    one instance. Records are immutable, so readers never see a partial write.
    """

    def __init__(self) -> None:
        self._entries: Dict[ConfigKind, Dict[GuildID, GuildConfig]] = {kind: {} for kind in ConfigKind}
        self._lock = threading.Lock()

    def get(self, guild_id: GuildID | str, kind: ConfigKind) -> Optional[GuildConfig]:
        """Return the cached record of ``kind`` for the guild, or None."""
        with self._lock:
            return self._entries[kind].get(GuildID(guild_id))

    def get_logging_config(self, guild_id: GuildID | str) -> Optional[LoggingConfig]:
        return self.get(guild_id, ConfigKind.LOGGING)

    def get_welcome_config(self, guild_id: GuildID | str) -> Optional[WelcomeConfig]:
        return self.get(guild_id, ConfigKind.WELCOME)

    def get_auto_role_config(self, guild_id: GuildID | str) -> Optional[AutoRoleConfig]:
        return self.get(guild_id, ConfigKind.AUTO_ROLE)

    def put(self, config: GuildConfig) -> None:
        """Store ``config`` under its guild and kind, replacing any previous record."""
        with self._lock:
            self._entries[config.kind][config.guild_id] = config
        logger.debug("[CONFIG CACHE] Cached %s config for guild %s", config.kind.value, config.guild_id)

    def remove_guild(self, guild_id: GuildID | str) -> None:
        """Drop every record of a guild."""
        key = GuildID(guild_id)
        with self._lock:
            for entries in self._entries.values():
                entries.pop(key, None)
        logger.debug("[CONFIG CACHE] Evicted guild %s", key)

    def guild_ids(self) -> List[GuildID]:
        """Snapshot of every guild with at least one cached record."""
        with self._lock:
            seen: Dict[GuildID, None] = {}
            for entries in self._entries.values():
                for guild_id in entries:
                    seen.setdefault(guild_id, None)
            return list(seen)

    def clear(self) -> None:
        with self._lock:
            for entries in self._entries.values():
                entries.clear()

    async def hydrate(self, store: HydrationSource) -> int:
        """
        Load every stored configuration of every known guild.

        Guilds without a record of some kind simply get no entry for it.

        Returns:
            int: Number of records loaded.
        """
        loaded = 0
        for guild_id in await store.list_guild_ids():
            for config in (
                await store.get_logging_config(guild_id),
                await store.get_welcome_config(guild_id),
                await store.get_auto_role_config(guild_id),
            ):
                if config is not None:
                    self.put(config)
                    loaded += 1

        logger.info("[CONFIG CACHE] Hydrated %d config records from the store", loaded)
        return loaded
