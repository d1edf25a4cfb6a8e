"""Log notification values and the formatter that produces them from events."""
