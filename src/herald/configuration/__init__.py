"""
Configuration management for Herald.

This package handles all application and guild-level configuration:

- **app_configuration.py**: YAML loader for process-wide settings (database path,
  uploads directory, network timeout, welcome image backgrounds and fonts).

- **guild_configs.py**: Validated, immutable per-guild records (logging, welcome,
  auto-role, channel directory) and the payload parsing used at the dashboard
  and command boundary.

- **config_cache.py**: In-memory cache read by the event pipeline, hydrated from
  the store at startup.

- **config_service.py**: The single update path. Writes go to the store first and
  the persisted record is then put into the cache.
"""
