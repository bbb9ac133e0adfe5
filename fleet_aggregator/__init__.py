"""Node health tracking and capacity accounting for a game server fleet."""

__version__ = "0.1.0"
