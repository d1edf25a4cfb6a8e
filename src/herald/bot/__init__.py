"""
Discord integration for Herald.

- **discord_gateway.py**: Outbound adapter used by the dispatcher (channel
  resolution, sends, ban lookups, role grants) and the converters from py-cord
  objects to Herald's event values.

- **cogs/events_listener.py**: Lifecycle listeners, guild event listeners that
  feed the dispatcher, and the application command error handler.

- **cogs/guild_config_cmds.py**: Administrator slash commands for logging,
  welcome messages, welcome backgrounds and auto-roles.
"""
