"""guildkeeper - a chat guild bot with hot-reloadable command and event handlers."""

__version__ = "1.0.0"
