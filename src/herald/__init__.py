"""Herald: Discord guild logging, welcome images and auto-roles."""

__version__ = "0.1.0"
