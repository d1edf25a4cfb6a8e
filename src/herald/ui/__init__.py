"""Discord presentation helpers (embeds)."""
