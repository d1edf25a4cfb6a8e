"""
Database schema initialization.

Creates the guild directory, the three configuration tables and the
auto-role membership table. Every per-guild table cascades on guild deletion
so removing a guild row garbage-collects all of its configuration.
"""

import aiosqlite
from herald.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates tables, indexes and triggers, and records the schema version."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all tables, indexes and triggers if they do not exist yet.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._create_triggers(db)
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized (version %d)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS guilds (
                guild_id TEXT PRIMARY KEY,
                name TEXT NOT NULL DEFAULT '',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS logging_configs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id TEXT NOT NULL UNIQUE,
                enabled INTEGER NOT NULL DEFAULT 0,
                log_channel_id TEXT,
                log_message_deletions INTEGER NOT NULL DEFAULT 0,
                log_message_edits INTEGER NOT NULL DEFAULT 0,
                log_roles_added INTEGER NOT NULL DEFAULT 0,
                log_user_bans INTEGER NOT NULL DEFAULT 0,
                log_user_leaves INTEGER NOT NULL DEFAULT 0,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (guild_id) REFERENCES guilds(guild_id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS welcome_configs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id TEXT NOT NULL UNIQUE,
                enabled INTEGER NOT NULL DEFAULT 0,
                welcome_channel_id TEXT,
                welcome_message TEXT NOT NULL DEFAULT 'Welcome to @server, @username!',
                include_image INTEGER NOT NULL DEFAULT 1,
                background_image TEXT NOT NULL DEFAULT 'default',
                custom_background_url TEXT,
                text_color TEXT NOT NULL DEFAULT '#FFFFFF',
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (guild_id) REFERENCES guilds(guild_id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS auto_role_configs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id TEXT NOT NULL UNIQUE,
                enabled INTEGER NOT NULL DEFAULT 0,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (guild_id) REFERENCES guilds(guild_id) ON DELETE CASCADE
            )
        """)

        # position keeps the display order of the configured roles
        await db.execute("""
            CREATE TABLE IF NOT EXISTS auto_role_ids (
                guild_id TEXT NOT NULL,
                role_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                PRIMARY KEY (guild_id, role_id),
                FOREIGN KEY (guild_id) REFERENCES guilds(guild_id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS channels (
                channel_id TEXT PRIMARY KEY,
                guild_id TEXT NOT NULL,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                FOREIGN KEY (guild_id) REFERENCES guilds(guild_id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        await db.execute("CREATE INDEX IF NOT EXISTS idx_channels_guild ON channels(guild_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_auto_role_ids_guild ON auto_role_ids(guild_id, position)")

    @staticmethod
    async def _create_triggers(db: aiosqlite.Connection) -> None:
        for table in ("logging_configs", "welcome_configs", "auto_role_configs"):
            await db.execute(f"""
                CREATE TRIGGER IF NOT EXISTS update_{table}_timestamp
                AFTER UPDATE ON {table}
                FOR EACH ROW
                WHEN NEW.updated_at = OLD.updated_at
                BEGIN
                    UPDATE {table} SET updated_at = CURRENT_TIMESTAMP
                    WHERE id = NEW.id;
                END
            """)
