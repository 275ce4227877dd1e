"""Handler framework for guildkeeper.

Provides the CommandDefinition / EventDefinition variants, the
HandlerRegistry that indexes them, and the BotContext dependency
container handed to every handler.
"""

from .context import BotContext
from .definitions import (
    DEFAULT_COOLDOWN_SECONDS,
    CommandDefinition,
    CommandSchema,
    EventDefinition,
    HandlerDefinition,
    definition_from_mapping,
)
from .registry import FailedSource, HandlerRegistry, RegistryLoadReport

__all__ = [
    "BotContext",
    "CommandDefinition",
    "CommandSchema",
    "DEFAULT_COOLDOWN_SECONDS",
    "EventDefinition",
    "FailedSource",
    "HandlerDefinition",
    "HandlerRegistry",
    "RegistryLoadReport",
    "definition_from_mapping",
]
