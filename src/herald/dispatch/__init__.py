"""Gateway event values and the dispatcher that turns them into messages."""
