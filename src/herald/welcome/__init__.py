"""Welcome image rendering."""
