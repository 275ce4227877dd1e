"""Registry of command and event handler definitions.

The registry holds one immutable snapshot: a read-only mapping of
command name -> CommandDefinition and a tuple of EventDefinitions in
registration order. Every change builds a new snapshot and swaps the
reference in a single assignment, so a dispatch in progress never sees
a half-built registry during a reload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import structlog

from ..exceptions import DefinitionInvalidError
from .definitions import (
    CommandDefinition,
    CommandSchema,
    EventDefinition,
    HandlerDefinition,
    coerce_definition,
)

logger = structlog.get_logger("guildkeeper.dispatch")


@dataclass(frozen=True)
class FailedSource:
    """A definition source that could not be registered."""
    source: str
    reason: str


@dataclass(frozen=True)
class RegistryLoadReport:
    """Outcome of a bulk load."""
    loaded_count: int = 0
    failed_sources: List[FailedSource] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_sources


@dataclass(frozen=True)
class _Snapshot:
    commands: Mapping[str, CommandDefinition]
    events: Tuple[EventDefinition, ...]


_EMPTY = _Snapshot(commands=MappingProxyType({}), events=())


class HandlerRegistry:
    """Maps command names and event types to handler definitions.

    Owned by the Dispatcher; populated at startup (and on reload) and
    read-only during normal dispatch.
    """

    def __init__(self):
        self._snapshot: _Snapshot = _EMPTY

    # --- Registration ---

    def register(self, candidate: Any, source: Optional[str] = None) -> HandlerDefinition:
        """Validate and register a single definition.

        Duplicate command names overwrite the previous entry
        (last registered wins).

        Args:
            candidate: A CommandDefinition, EventDefinition, or a mapping
                accepted by definition_from_mapping().
            source: Where the candidate came from, for log context.

        Returns:
            The stored definition.

        Raises:
            DefinitionInvalidError: If the candidate has the wrong shape.
                It is logged as ``definition_invalid`` and nothing is
                registered.
        """
        try:
            definition = coerce_definition(candidate)
        except DefinitionInvalidError as e:
            logger.warning("definition_invalid", source=source, reason=e.reason or str(e))
            raise
        commands = dict(self._snapshot.commands)
        events = list(self._snapshot.events)
        self._add(definition, commands, events, source)
        self._snapshot = _Snapshot(MappingProxyType(commands), tuple(events))
        return definition

    def load_definitions(
        self,
        sources: Iterable[Tuple[str, Any]],
        replace: bool = True,
    ) -> RegistryLoadReport:
        """Validate and index a batch of candidate definitions.

        Invalid candidates are reported and skipped; they never abort the
        batch. The new snapshot becomes visible in one swap after the
        whole batch has been processed.

        Args:
            sources: Ordered ``(source_name, candidate)`` pairs.
            replace: Start from an empty registry (reload) instead of
                extending the current one.

        Returns:
            RegistryLoadReport with the number of definitions indexed and
            the sources that were rejected.
        """
        base = _EMPTY if replace else self._snapshot
        commands: Dict[str, CommandDefinition] = dict(base.commands)
        events: List[EventDefinition] = list(base.events)
        loaded = 0
        failed: List[FailedSource] = []

        for source, candidate in sources:
            try:
                definition = coerce_definition(candidate)
            except DefinitionInvalidError as e:
                reason = e.reason or str(e)
                logger.warning("definition_invalid", source=source, reason=reason)
                failed.append(FailedSource(source=source, reason=reason))
                continue
            self._add(definition, commands, events, source)
            loaded += 1

        self._snapshot = _Snapshot(MappingProxyType(commands), tuple(events))
        logger.info(
            "registry_loaded",
            loaded=loaded,
            failed=len(failed),
            commands=len(commands),
            events=len(events),
        )
        return RegistryLoadReport(loaded_count=loaded, failed_sources=failed)

    @staticmethod
    def _add(
        definition: HandlerDefinition,
        commands: Dict[str, CommandDefinition],
        events: List[EventDefinition],
        source: Optional[str],
    ) -> None:
        if isinstance(definition, CommandDefinition):
            if definition.name in commands:
                logger.warning(
                    "command_definition_replaced",
                    command=definition.name,
                    source=source,
                )
            commands[definition.name] = definition
        else:
            events.append(definition)

    def clear(self) -> None:
        """Drop every registration."""
        self._snapshot = _EMPTY

    # --- Lookup ---

    def get_command(self, name: str) -> Optional[CommandDefinition]:
        """Look up a command definition by name."""
        return self._snapshot.commands.get(name)

    def get_event_handlers(self, event_type: str) -> Tuple[EventDefinition, ...]:
        """All handlers for an event type, in registration order."""
        event_type = event_type.lower()
        return tuple(e for e in self._snapshot.events if e.name == event_type)

    @property
    def command_names(self) -> frozenset:
        """All registered command names."""
        return frozenset(self._snapshot.commands.keys())

    @property
    def events(self) -> Tuple[EventDefinition, ...]:
        """Every registered event handler, in registration order."""
        return self._snapshot.events

    @property
    def event_count(self) -> int:
        return len(self._snapshot.events)

    def command_schemas(self) -> List[CommandSchema]:
        """Schemas of all registered commands, ordered by name."""
        commands = self._snapshot.commands
        return [commands[name].schema for name in sorted(commands)]
