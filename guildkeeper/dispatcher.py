"""Routing and execution of inbound platform events.

The Dispatcher is the single authority for inbound events. For every
event it spawns an independent asyncio task and walks it through:

    classify -> resolve -> guild bootstrap -> cooldown gate -> invoke -> contain

Commands get the full pipeline. Autocomplete requests skip the
bootstrap and the cooldown gate and fail silently. Messages and other
named events are fanned out to every registered event handler in
registration order, with ``once`` handlers fired a single time.

No failure raised by a handler escapes the dispatcher.
"""

import asyncio
import inspect
from typing import Any, Optional, Set, Tuple

import structlog

from .cooldown import CooldownTracker
from .exceptions import HandlerExecutionError, HandlerNotFoundError
from .handlers.definitions import CommandDefinition, EventDefinition
from .handlers.registry import HandlerRegistry
from .platform import (
    MESSAGE_CREATE,
    AutocompleteInteraction,
    AutocompleteRequest,
    CommandInvocation,
    Interaction,
    MessageCreated,
    PlatformEvent,
    format_relative_time,
)

logger = structlog.get_logger("guildkeeper.dispatch")

ERROR_MESSAGE = "There was an error while executing this command."
COOLDOWN_MESSAGE = "Please wait, you are on cooldown for this command. Try again {when}."


def log_task_exception(task: asyncio.Task):
    """Log exceptions from fire-and-forget tasks instead of silently swallowing them."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error("background_task_failed", error=str(exc), exc_type=type(exc).__name__)


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class Dispatcher:
    """Routes inbound events to registered handlers.

    Args:
        registry: Handler definitions to resolve against.
        cooldowns: Ledger consulted on the command path.
        context: Object handed to every handler as its first argument.
        guilds: Store with an idempotent ``get_or_create(guild_id)``;
            when None the guild bootstrap step is skipped.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        cooldowns: CooldownTracker,
        context: Any,
        guilds: Optional[Any] = None,
    ):
        self.registry = registry
        self.cooldowns = cooldowns
        self.context = context
        self._guilds = guilds
        self._fired_once: Set[EventDefinition] = set()
        self._seen_events: Tuple[EventDefinition, ...] = ()
        self._tasks: Set[asyncio.Task] = set()

    # --- Task boundary ---

    def dispatch(self, event: Any) -> None:
        """Handle an inbound event on its own task. Never raises."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("dispatch_no_loop", event_type=type(event).__name__)
            return
        task = loop.create_task(self.handle(event))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        log_task_exception(task)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight dispatch task to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def handle(self, event: Any) -> None:
        """Classify and process one inbound event.

        Only cancellation propagates; everything else is logged.
        """
        try:
            if isinstance(event, CommandInvocation):
                await self._handle_command(event.interaction)
            elif isinstance(event, AutocompleteRequest):
                await self._handle_autocomplete(event.interaction)
            elif isinstance(event, MessageCreated):
                await self._handle_event(MESSAGE_CREATE, (event.message,))
            elif isinstance(event, PlatformEvent):
                await self._handle_event(event.name, tuple(event.payload))
            else:
                logger.debug("dispatch_dropped", event_type=type(event).__name__)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "dispatch_unhandled_error",
                event_type=type(event).__name__,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    # --- Command path ---

    async def _handle_command(self, interaction: Interaction) -> None:
        name = interaction.command_name
        command = self.registry.get_command(name)
        if command is None:
            err = HandlerNotFoundError(f"No command named {name!r}", name=name)
            logger.warning("command_not_found", command=err.name, user=interaction.user_id)
            return

        logger.debug("command_routing", command=name, user=interaction.user_id)
        try:
            if interaction.guild_id and self._guilds is not None:
                await self._guilds.get_or_create(interaction.guild_id)

            if command.cooldown > 0 and not await self._pass_cooldown(command, interaction):
                return

            await _maybe_await(command.execute(self.context, interaction))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            err = HandlerExecutionError(
                str(e),
                handler=name,
                originator=interaction.user_id,
            )
            logger.error(
                "command_execution_failed",
                command=err.handler,
                user=err.originator,
                guild=interaction.guild_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=e,
            )
            await self._report_failure(interaction)

    async def _pass_cooldown(self, command: CommandDefinition, interaction: Interaction) -> bool:
        decision = self.cooldowns.check_and_record(
            command.name, interaction.user_id, command.cooldown
        )
        if decision.allowed:
            return True
        logger.info(
            "command_on_cooldown",
            command=command.name,
            user=interaction.user_id,
            retry_at=decision.retry_at,
        )
        await interaction.reply(
            COOLDOWN_MESSAGE.format(when=format_relative_time(decision.retry_at)),
            ephemeral=True,
        )
        return False

    async def _report_failure(self, interaction: Interaction) -> None:
        """Send the generic failure acknowledgment exactly once."""
        try:
            if interaction.replied or interaction.deferred:
                await interaction.follow_up(ERROR_MESSAGE, ephemeral=True)
            else:
                await interaction.reply(ERROR_MESSAGE, ephemeral=True)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "command_error_reply_failed",
                command=interaction.command_name,
                error=str(e),
                error_type=type(e).__name__,
            )

    # --- Autocomplete path ---

    async def _handle_autocomplete(self, interaction: AutocompleteInteraction) -> None:
        command = self.registry.get_command(interaction.command_name)
        if command is None or command.autocomplete is None:
            return
        try:
            await _maybe_await(command.autocomplete(self.context, interaction))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "autocomplete_failed",
                command=interaction.command_name,
                user=interaction.user_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=e,
            )

    # --- Event path ---

    async def _handle_event(self, event_type: str, payload: Tuple[Any, ...]) -> None:
        handlers = self.registry.get_event_handlers(event_type)
        if not handlers:
            logger.debug("event_unhandled", event=event_type)
            return

        registered = self.registry.events
        if registered is not self._seen_events:
            # Forget one-shot handlers a reload has replaced
            self._fired_once.intersection_update(registered)
            self._seen_events = registered

        for handler in handlers:
            if handler.once:
                if handler in self._fired_once:
                    continue
                self._fired_once.add(handler)
            try:
                await _maybe_await(handler.execute(self.context, *payload))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "event_handler_failed",
                    event=event_type,
                    handler=getattr(handler.execute, "__qualname__", repr(handler)),
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=e,
                )
