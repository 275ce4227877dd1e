"""Narrow interface between the dispatch core and the chat platform.

The dispatcher never talks to the platform SDK directly. It consumes
inbound event envelopes wrapping objects that satisfy the protocols
below; the gateway module builds REST-backed implementations and the
tests build in-memory fakes.

Key classes:
    Interaction: A slash command invocation that can be acknowledged.
    AutocompleteInteraction: An option-completion request.
    Message: A message posted in a channel.
    CommandInvocation, AutocompleteRequest, MessageCreated,
        PlatformEvent: Inbound event envelopes routed by the Dispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

# Message flag hiding a response from everyone but the invoking user
EPHEMERAL_FLAG = 1 << 6

# Platform limit on autocomplete choices per response
MAX_AUTOCOMPLETE_CHOICES = 25

# Where a command may be used
CONTEXT_GUILD = 0
CONTEXT_BOT_DM = 1
CONTEXT_PRIVATE_CHANNEL = 2

# How the app is installed
INTEGRATION_GUILD_INSTALL = 0
INTEGRATION_USER_INSTALL = 1

# Command option types
OPTION_SUB_COMMAND = 1
OPTION_SUB_COMMAND_GROUP = 2
OPTION_STRING = 3
OPTION_BOOLEAN = 5
OPTION_CHANNEL = 7

CHANNEL_TYPE_GUILD_TEXT = 0
CHANNEL_TYPE_GUILD_ANNOUNCEMENT = 5

PERMISSION_MANAGE_CHANNELS = 1 << 4


@runtime_checkable
class Interaction(Protocol):
    """A command invocation delivered by the platform."""

    id: str
    command_name: str
    user_id: str
    guild_id: Optional[str]
    channel_id: Optional[str]
    subcommand: Optional[str]
    options: Mapping[str, Any]
    replied: bool
    deferred: bool

    async def reply(self, content: str, *, ephemeral: bool = False) -> None: ...

    async def defer_reply(self, *, ephemeral: bool = False) -> None: ...

    async def edit_reply(self, content: str) -> None: ...

    async def follow_up(self, content: str, *, ephemeral: bool = False) -> None: ...


@runtime_checkable
class AutocompleteInteraction(Protocol):
    """A request for option suggestions while the user is typing."""

    command_name: str
    user_id: str
    guild_id: Optional[str]
    subcommand: Optional[str]
    options: Mapping[str, Any]
    focused: Tuple[str, str]

    async def respond(self, choices: List[Dict[str, Any]]) -> None: ...


@runtime_checkable
class Message(Protocol):
    """A message created in a channel the bot can see."""

    id: str
    content: str
    author_id: str
    author_is_bot: bool
    guild_id: Optional[str]
    channel_id: str

    async def reply(self, content: str) -> "Message": ...

    async def delete(self) -> None: ...


# ---------------------------------------------------------------------------
# Inbound event envelopes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CommandInvocation:
    """A user invoked a registered command."""
    interaction: Interaction


@dataclass(frozen=True)
class AutocompleteRequest:
    """The platform asks for suggestions for a command option."""
    interaction: AutocompleteInteraction


@dataclass(frozen=True)
class MessageCreated:
    """A message was posted. Routed to ``message_create`` event handlers."""
    message: Message


@dataclass(frozen=True)
class PlatformEvent:
    """Any other named platform occurrence (``ready``, ``guild_create``...).

    Attributes:
        name: Lower-case event type handlers register for.
        payload: Positional arguments handed to each handler after the
            dispatch context.
    """
    name: str
    payload: Tuple[Any, ...] = field(default_factory=tuple)


MESSAGE_CREATE = "message_create"


def format_relative_time(epoch_millis: int) -> str:
    """Render an epoch millisecond instant as a client-side relative timestamp.

    The platform renders ``<t:SECONDS:R>`` as e.g. "in 5 seconds" in the
    reader's locale.
    """
    return f"<t:{round(epoch_millis / 1000)}:R>"
