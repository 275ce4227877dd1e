"""Handler definitions for commands and events.

A handler definition is one of two variants:

    CommandDefinition: a named, user-invocable command with a schema,
        an execute callback, an optional autocomplete callback and a
        per-user cooldown.
    EventDefinition: a callback bound to a platform event type,
        optionally one-shot.

Both validate their shape on construction and raise
DefinitionInvalidError, so anything that made it into the registry is
known to be well formed. definition_from_mapping() accepts duck-typed
candidates (plain dicts) and routes them through the same checks.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from ..exceptions import DefinitionInvalidError

DEFAULT_COOLDOWN_SECONDS = 3

# execute(ctx, interaction) / autocomplete(ctx, interaction) / execute(ctx, *payload)
HandlerCallback = Callable[..., Union[Awaitable[Any], Any]]


class CommandSchema(BaseModel):
    """Declarative command schema published to the platform.

    Options are kept as raw platform dicts; the dispatch core never
    looks inside them.
    """

    name: str = Field(..., min_length=1, max_length=32, pattern=r"^[a-z0-9_-]+$")
    description: str = Field(..., min_length=1, max_length=100)
    options: List[Dict[str, Any]] = Field(default_factory=list)
    contexts: Optional[List[int]] = None
    integration_types: Optional[List[int]] = None
    default_member_permissions: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Render the registration body for this command."""
        return self.model_dump(exclude_none=True)


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


class CommandDefinition:
    """A slash command handler.

    Args:
        schema: CommandSchema or a mapping accepted by it.
        execute: Callback ``(ctx, interaction)``. Required.
        cooldown: Seconds between invocations per user. None means the
            default of 3 seconds; 0 disables the cooldown.
        autocomplete: Optional callback ``(ctx, interaction)`` for
            option suggestions.

    Raises:
        DefinitionInvalidError: If any part of the shape is wrong.
    """

    __slots__ = ("schema", "execute", "cooldown", "autocomplete")

    def __init__(
        self,
        schema: Union[CommandSchema, Mapping[str, Any]],
        execute: HandlerCallback,
        cooldown: Optional[float] = None,
        autocomplete: Optional[HandlerCallback] = None,
    ):
        if not isinstance(schema, CommandSchema):
            if not isinstance(schema, Mapping):
                raise DefinitionInvalidError(
                    f"command schema must be a mapping, got {type(schema).__name__}"
                )
            try:
                schema = CommandSchema.model_validate(dict(schema))
            except ValidationError as e:
                raise DefinitionInvalidError(
                    f"invalid command schema: {_describe_validation_error(e)}"
                ) from e

        if not callable(execute):
            raise DefinitionInvalidError(
                f"command '{schema.name}' has no callable execute"
            )
        if autocomplete is not None and not callable(autocomplete):
            raise DefinitionInvalidError(
                f"command '{schema.name}' autocomplete is not callable"
            )

        if cooldown is None:
            cooldown = DEFAULT_COOLDOWN_SECONDS
        if isinstance(cooldown, bool) or not isinstance(cooldown, (int, float)):
            raise DefinitionInvalidError(
                f"command '{schema.name}' cooldown must be a number of seconds"
            )
        if cooldown < 0:
            raise DefinitionInvalidError(
                f"command '{schema.name}' cooldown must be >= 0, got {cooldown}"
            )

        self.schema = schema
        self.execute = execute
        self.cooldown = cooldown
        self.autocomplete = autocomplete

    @property
    def name(self) -> str:
        return self.schema.name

    def __repr__(self) -> str:
        return (
            f"CommandDefinition(name={self.name!r}, cooldown={self.cooldown!r}, "
            f"autocomplete={self.autocomplete is not None})"
        )


class EventDefinition:
    """A platform event handler.

    Args:
        name: Event type, e.g. ``ready`` or ``message_create``.
        execute: Callback ``(ctx, *payload)``. Required.
        once: Fire on the first occurrence only.

    Instances compare by identity: two handlers for the same event type
    are distinct registrations.
    """

    __slots__ = ("name", "execute", "once")

    def __init__(self, name: str, execute: HandlerCallback, once: bool = False):
        if not isinstance(name, str) or not name.strip():
            raise DefinitionInvalidError("event definition has no event type name")
        if not callable(execute):
            raise DefinitionInvalidError(f"event '{name}' has no callable execute")
        self.name = name.strip().lower()
        self.execute = execute
        self.once = bool(once)

    def __repr__(self) -> str:
        return f"EventDefinition(name={self.name!r}, once={self.once!r})"


HandlerDefinition = Union[CommandDefinition, EventDefinition]


def definition_from_mapping(candidate: Mapping[str, Any]) -> HandlerDefinition:
    """Build a definition from a duck-typed mapping.

    ``{"data": {...}, "execute": fn, "cooldown": 5}`` becomes a command
    (``schema`` is accepted as an alias of ``data``);
    ``{"name": "ready", "execute": fn, "once": True}`` becomes an event.

    Raises:
        DefinitionInvalidError: If the mapping matches neither shape.
    """
    if "execute" not in candidate:
        raise DefinitionInvalidError("definition has no execute callback")

    schema = candidate.get("data", candidate.get("schema"))
    if schema is not None:
        return CommandDefinition(
            schema=schema,
            execute=candidate["execute"],
            cooldown=candidate.get("cooldown"),
            autocomplete=candidate.get("autocomplete"),
        )
    if "name" in candidate:
        return EventDefinition(
            name=candidate["name"],
            execute=candidate["execute"],
            once=candidate.get("once", False),
        )
    raise DefinitionInvalidError("definition has neither command data nor an event name")


def coerce_definition(candidate: Any) -> HandlerDefinition:
    """Return candidate as a validated definition or raise DefinitionInvalidError."""
    if isinstance(candidate, (CommandDefinition, EventDefinition)):
        return candidate
    if isinstance(candidate, DefinitionInvalidError):
        raise candidate
    if isinstance(candidate, BaseException):
        raise DefinitionInvalidError(f"{type(candidate).__name__}: {candidate}")
    if isinstance(candidate, Mapping):
        return definition_from_mapping(candidate)
    if candidate is None:
        raise DefinitionInvalidError("no handler definition found")
    raise DefinitionInvalidError(
        f"not a handler definition: {type(candidate).__name__}"
    )
