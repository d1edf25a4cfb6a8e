"""
Durable per-guild configuration store backed by SQLite.

Each configuration kind has exactly one row per guild (last write wins).
Upserts return the persisted record, including the store-assigned
``record_id``; repeating an identical upsert keeps that id.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Iterable, List, Optional

import aiosqlite

from herald.configuration.guild_configs import (
    AutoRoleConfig,
    BackgroundChoice,
    ChannelRecord,
    EventToggles,
    LoggingConfig,
    WelcomeConfig,
)
from herald.database.db_connection import ConnectionManager, db_connection
from herald.database.db_schema import SchemaManager
from herald.datatypes.discord_datatypes import GuildID
from herald.errors import ConfigStoreError
from herald.util.logger import get_logger

logger = get_logger("config_store")


def _flag(value: bool) -> int:
    return 1 if value else 0


def _text(value: object) -> Optional[str]:
    return str(value) if value is not None else None


class ConfigStore:
    """
    Get/upsert access to guild configuration records.

    The store only owns durability. Callers that change configuration go
    through :class:`~herald.configuration.config_service.GuildConfigService`
    so the in-memory cache is updated with the persisted record.
    """

    def __init__(self, connection: ConnectionManager = db_connection) -> None:
        self._db = connection

    async def initialize(self, path: Path) -> None:
        """Open the database file (if needed) and create the schema."""
        if not self._db.is_open:
            await self._db.open(path)
        async with self._db.transaction() as conn:
            await SchemaManager.initialize_schema(conn)

    async def close(self) -> None:
        await self._db.close()

    @asynccontextmanager
    async def _write(self, action: str) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with self._db.transaction() as conn:
                yield conn
        except aiosqlite.Error as exc:
            logger.exception("[CONFIG STORE] Failed to %s", action)
            raise ConfigStoreError(f"Failed to {action}: {exc}") from exc

    @staticmethod
    async def _ensure_guild(conn: aiosqlite.Connection, guild_id: GuildID) -> None:
        await conn.execute("INSERT OR IGNORE INTO guilds (guild_id) VALUES (?)", (str(guild_id),))

    # -------- guild directory --------

    async def list_guild_ids(self) -> List[GuildID]:
        async with self._db.read() as conn:
            async with conn.execute("SELECT guild_id FROM guilds ORDER BY guild_id") as cursor:
                rows = await cursor.fetchall()
        return [GuildID(row["guild_id"]) for row in rows]

    async def upsert_guild(self, guild_id: GuildID | str, name: str) -> None:
        async with self._write(f"register guild {guild_id}") as conn:
            await conn.execute(
                """
                INSERT INTO guilds (guild_id, name) VALUES (?, ?)
                ON CONFLICT(guild_id) DO UPDATE SET name = excluded.name
                """,
                (str(GuildID(guild_id)), name),
            )

    async def delete_guild(self, guild_id: GuildID | str) -> bool:
        """Remove a guild and, through the cascades, all of its configuration.

        Returns:
            bool: True if a guild row was deleted.
        """
        async with self._write(f"delete guild {guild_id}") as conn:
            cursor = await conn.execute("DELETE FROM guilds WHERE guild_id = ?", (str(GuildID(guild_id)),))
            deleted = cursor.rowcount > 0
        logger.info("[CONFIG STORE] Deleted guild %s (existed=%s)", guild_id, deleted)
        return deleted

    # -------- logging --------

    async def get_logging_config(self, guild_id: GuildID | str) -> Optional[LoggingConfig]:
        async with self._db.read() as conn:
            return await self._fetch_logging(conn, GuildID(guild_id))

    @staticmethod
    async def _fetch_logging(conn: aiosqlite.Connection, guild_id: GuildID) -> Optional[LoggingConfig]:
        async with conn.execute(
            """
            SELECT id, guild_id, enabled, log_channel_id,
                   log_message_deletions, log_message_edits, log_roles_added,
                   log_user_bans, log_user_leaves
            FROM logging_configs WHERE guild_id = ?
            """,
            (str(guild_id),),
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None

        return LoggingConfig(
            guild_id=row["guild_id"],
            enabled=bool(row["enabled"]),
            log_channel_id=row["log_channel_id"] or None,
            toggles=EventToggles(
                message_deletions=bool(row["log_message_deletions"]),
                message_edits=bool(row["log_message_edits"]),
                roles_added=bool(row["log_roles_added"]),
                user_bans=bool(row["log_user_bans"]),
                user_leaves=bool(row["log_user_leaves"]),
            ),
            record_id=row["id"],
        )

    async def upsert_logging_config(self, config: LoggingConfig) -> LoggingConfig:
        async with self._write(f"upsert logging config for guild {config.guild_id}") as conn:
            await self._ensure_guild(conn, config.guild_id)
            await conn.execute(
                """
                INSERT INTO logging_configs (
                    guild_id, enabled, log_channel_id,
                    log_message_deletions, log_message_edits, log_roles_added,
                    log_user_bans, log_user_leaves
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(guild_id) DO UPDATE SET
                    enabled               = excluded.enabled,
                    log_channel_id        = excluded.log_channel_id,
                    log_message_deletions = excluded.log_message_deletions,
                    log_message_edits     = excluded.log_message_edits,
                    log_roles_added       = excluded.log_roles_added,
                    log_user_bans         = excluded.log_user_bans,
                    log_user_leaves       = excluded.log_user_leaves
                """,
                (
                    str(config.guild_id),
                    _flag(config.enabled),
                    _text(config.log_channel_id),
                    _flag(config.toggles.message_deletions),
                    _flag(config.toggles.message_edits),
                    _flag(config.toggles.roles_added),
                    _flag(config.toggles.user_bans),
                    _flag(config.toggles.user_leaves),
                ),
            )
            persisted = await self._fetch_logging(conn, config.guild_id)

        logger.debug("[CONFIG STORE] Persisted logging config for guild %s", config.guild_id)
        return persisted

    # -------- welcome --------

    async def get_welcome_config(self, guild_id: GuildID | str) -> Optional[WelcomeConfig]:
        async with self._db.read() as conn:
            return await self._fetch_welcome(conn, GuildID(guild_id))

    @staticmethod
    async def _fetch_welcome(conn: aiosqlite.Connection, guild_id: GuildID) -> Optional[WelcomeConfig]:
        async with conn.execute(
            """
            SELECT id, guild_id, enabled, welcome_channel_id, welcome_message,
                   include_image, background_image, custom_background_url, text_color
            FROM welcome_configs WHERE guild_id = ?
            """,
            (str(guild_id),),
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None

        try:
            background = BackgroundChoice(row["background_image"])
        except ValueError:
            logger.warning(
                "[CONFIG STORE] Guild %s has unknown background %r stored; reading it as default",
                guild_id, row["background_image"],
            )
            background = BackgroundChoice.DEFAULT

        return WelcomeConfig(
            guild_id=row["guild_id"],
            enabled=bool(row["enabled"]),
            welcome_channel_id=row["welcome_channel_id"] or None,
            message_template=row["welcome_message"],
            include_image=bool(row["include_image"]),
            background_choice=background,
            custom_background_url=row["custom_background_url"],
            text_color=row["text_color"],
            record_id=row["id"],
        )

    async def upsert_welcome_config(self, config: WelcomeConfig) -> WelcomeConfig:
        async with self._write(f"upsert welcome config for guild {config.guild_id}") as conn:
            await self._ensure_guild(conn, config.guild_id)
            await conn.execute(
                """
                INSERT INTO welcome_configs (
                    guild_id, enabled, welcome_channel_id, welcome_message,
                    include_image, background_image, custom_background_url, text_color
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(guild_id) DO UPDATE SET
                    enabled               = excluded.enabled,
                    welcome_channel_id    = excluded.welcome_channel_id,
                    welcome_message       = excluded.welcome_message,
                    include_image         = excluded.include_image,
                    background_image      = excluded.background_image,
                    custom_background_url = excluded.custom_background_url,
                    text_color            = excluded.text_color
                """,
                (
                    str(config.guild_id),
                    _flag(config.enabled),
                    _text(config.welcome_channel_id),
                    config.message_template,
                    _flag(config.include_image),
                    config.background_choice.value,
                    config.custom_background_url,
                    config.text_color,
                ),
            )
            persisted = await self._fetch_welcome(conn, config.guild_id)

        logger.debug("[CONFIG STORE] Persisted welcome config for guild %s", config.guild_id)
        return persisted

    # -------- auto-role --------

    async def get_auto_role_config(self, guild_id: GuildID | str) -> Optional[AutoRoleConfig]:
        async with self._db.read() as conn:
            return await self._fetch_auto_role(conn, GuildID(guild_id))

    @staticmethod
    async def _fetch_auto_role(conn: aiosqlite.Connection, guild_id: GuildID) -> Optional[AutoRoleConfig]:
        async with conn.execute(
            "SELECT id, guild_id, enabled FROM auto_role_configs WHERE guild_id = ?",
            (str(guild_id),),
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None

        async with conn.execute(
            "SELECT role_id FROM auto_role_ids WHERE guild_id = ? ORDER BY position",
            (str(guild_id),),
        ) as cursor:
            role_rows = await cursor.fetchall()

        return AutoRoleConfig(
            guild_id=row["guild_id"],
            enabled=bool(row["enabled"]),
            role_ids=tuple(role_row["role_id"] for role_row in role_rows),
            record_id=row["id"],
        )

    async def upsert_auto_role_config(self, config: AutoRoleConfig) -> AutoRoleConfig:
        async with self._write(f"upsert auto-role config for guild {config.guild_id}") as conn:
            await self._ensure_guild(conn, config.guild_id)
            await conn.execute(
                """
                INSERT INTO auto_role_configs (guild_id, enabled) VALUES (?, ?)
                ON CONFLICT(guild_id) DO UPDATE SET enabled = excluded.enabled
                """,
                (str(config.guild_id), _flag(config.enabled)),
            )

            # Role list is replaced wholesale
            await conn.execute("DELETE FROM auto_role_ids WHERE guild_id = ?", (str(config.guild_id),))
            await conn.executemany(
                "INSERT INTO auto_role_ids (guild_id, role_id, position) VALUES (?, ?, ?)",
                [(str(config.guild_id), str(role_id), position) for position, role_id in enumerate(config.role_ids)],
            )
            persisted = await self._fetch_auto_role(conn, config.guild_id)

        logger.debug("[CONFIG STORE] Persisted auto-role config for guild %s", config.guild_id)
        return persisted

    # -------- channel directory --------

    async def get_channels(self, guild_id: GuildID | str) -> List[ChannelRecord]:
        async with self._db.read() as conn:
            async with conn.execute(
                "SELECT channel_id, guild_id, name, type FROM channels WHERE guild_id = ? ORDER BY name",
                (str(GuildID(guild_id)),),
            ) as cursor:
                rows = await cursor.fetchall()

        return [
            ChannelRecord(channel_id=row["channel_id"], guild_id=row["guild_id"], name=row["name"], type=row["type"])
            for row in rows
        ]

    async def upsert_channels(self, records: Iterable[ChannelRecord]) -> List[ChannelRecord]:
        records = list(records)
        if not records:
            return []

        async with self._write(f"update {len(records)} channel records") as conn:
            for guild_id in {record.guild_id for record in records}:
                await self._ensure_guild(conn, guild_id)
            await conn.executemany(
                """
                INSERT INTO channels (channel_id, guild_id, name, type) VALUES (?, ?, ?, ?)
                ON CONFLICT(channel_id) DO UPDATE SET
                    guild_id = excluded.guild_id,
                    name     = excluded.name,
                    type     = excluded.type
                """,
                [(str(r.channel_id), str(r.guild_id), r.name, r.type) for r in records],
            )
        return records
