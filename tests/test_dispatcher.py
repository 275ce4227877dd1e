"""Tests for inbound event routing, cooldown gating and failure containment."""

import asyncio
import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from fakes import FakeAutocomplete, FakeClock, FakeInteraction, FakeMessage
from guildkeeper.cooldown import CooldownTracker
from guildkeeper.dispatcher import COOLDOWN_MESSAGE, ERROR_MESSAGE, Dispatcher
from guildkeeper.handlers import CommandDefinition, EventDefinition, HandlerRegistry
from guildkeeper.platform import (
    AutocompleteRequest,
    CommandInvocation,
    MessageCreated,
    PlatformEvent,
)


def _make_dispatcher(*definitions, clock=None, guilds=None):
    registry = HandlerRegistry()
    for definition in definitions:
        registry.register(definition)
    context = MagicMock(name="context")
    dispatcher = Dispatcher(
        registry=registry,
        cooldowns=CooldownTracker(clock=clock or FakeClock()),
        context=context,
        guilds=guilds,
    )
    return dispatcher, context


def _command(name, execute, **kwargs):
    return CommandDefinition({"name": name, "description": f"{name} command"}, execute, **kwargs)


async def _pong(ctx, interaction):
    await interaction.reply("Pong!")


class TestCommandPath:

    @pytest.mark.asyncio
    async def test_command_invoked_with_context_and_interaction(self):
        execute = AsyncMock()
        dispatcher, context = _make_dispatcher(_command("ping", execute))
        interaction = FakeInteraction("ping")
        await dispatcher.handle(CommandInvocation(interaction))
        execute.assert_awaited_once_with(context, interaction)

    @pytest.mark.asyncio
    async def test_ping_replies(self):
        dispatcher, _ = _make_dispatcher(_command("ping", _pong))
        interaction = FakeInteraction("ping")
        await dispatcher.handle(CommandInvocation(interaction))
        assert interaction.sent == [("reply", "Pong!", False)]

    @pytest.mark.asyncio
    async def test_sync_handler_supported(self):
        calls = []
        dispatcher, _ = _make_dispatcher(_command("sync", lambda ctx, i: calls.append(i)))
        interaction = FakeInteraction("sync")
        await dispatcher.handle(CommandInvocation(interaction))
        assert calls == [interaction]

    @pytest.mark.asyncio
    async def test_unknown_command_is_not_acknowledged(self):
        dispatcher, _ = _make_dispatcher(_command("ping", _pong))
        interaction = FakeInteraction("nope")
        await dispatcher.handle(CommandInvocation(interaction))
        assert interaction.sent == []

    @pytest.mark.asyncio
    async def test_guild_bootstrapped_before_execute(self):
        order = []
        guilds = MagicMock()
        guilds.get_or_create = AsyncMock(side_effect=lambda gid: order.append(("guild", gid)))

        async def execute(ctx, interaction):
            order.append(("execute", interaction.command_name))

        dispatcher, _ = _make_dispatcher(_command("ping", execute), guilds=guilds)
        await dispatcher.handle(CommandInvocation(FakeInteraction("ping", guild_id="g42")))
        assert order == [("guild", "g42"), ("execute", "ping")]

    @pytest.mark.asyncio
    async def test_no_guild_bootstrap_outside_guilds(self):
        guilds = MagicMock()
        guilds.get_or_create = AsyncMock()
        dispatcher, _ = _make_dispatcher(_command("ping", _pong), guilds=guilds)
        await dispatcher.handle(CommandInvocation(FakeInteraction("ping", guild_id=None)))
        guilds.get_or_create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_guild_bootstrap_failure_reported_as_error(self):
        execute = AsyncMock()
        guilds = MagicMock()
        guilds.get_or_create = AsyncMock(side_effect=RuntimeError("db down"))
        dispatcher, _ = _make_dispatcher(_command("ping", execute), guilds=guilds)
        interaction = FakeInteraction("ping")
        await dispatcher.handle(CommandInvocation(interaction))
        execute.assert_not_awaited()
        assert interaction.sent == [("reply", ERROR_MESSAGE, True)]


class TestCooldownGate:

    @pytest.mark.asyncio
    async def test_second_invocation_blocked_with_relative_time(self):
        clock = FakeClock(start=1_000_000)
        execute = AsyncMock()
        dispatcher, _ = _make_dispatcher(_command("ping", execute), clock=clock)

        await dispatcher.handle(CommandInvocation(FakeInteraction("ping")))
        clock.advance(1_000)
        blocked = FakeInteraction("ping")
        await dispatcher.handle(CommandInvocation(blocked))

        assert execute.await_count == 1
        assert len(blocked.sent) == 1
        kind, content, ephemeral = blocked.sent[0]
        assert kind == "reply"
        assert ephemeral is True
        assert content == COOLDOWN_MESSAGE.format(when="<t:1003:R>")
        assert re.search(r"<t:\d+:R>", content)

    @pytest.mark.asyncio
    async def test_allowed_after_window(self):
        clock = FakeClock(start=0)
        execute = AsyncMock()
        dispatcher, _ = _make_dispatcher(_command("ping", execute, cooldown=3), clock=clock)
        await dispatcher.handle(CommandInvocation(FakeInteraction("ping")))
        clock.advance(3_000)
        await dispatcher.handle(CommandInvocation(FakeInteraction("ping")))
        assert execute.await_count == 2

    @pytest.mark.asyncio
    async def test_other_user_not_blocked(self):
        execute = AsyncMock()
        dispatcher, _ = _make_dispatcher(_command("ping", execute))
        await dispatcher.handle(CommandInvocation(FakeInteraction("ping", user_id="a")))
        await dispatcher.handle(CommandInvocation(FakeInteraction("ping", user_id="b")))
        assert execute.await_count == 2

    @pytest.mark.asyncio
    async def test_zero_cooldown_never_blocks(self):
        execute = AsyncMock()
        dispatcher, _ = _make_dispatcher(_command("spam", execute, cooldown=0))
        for _ in range(5):
            await dispatcher.handle(CommandInvocation(FakeInteraction("spam")))
        assert execute.await_count == 5
        assert len(dispatcher.cooldowns) == 0

    @pytest.mark.asyncio
    async def test_failed_invocation_still_consumes_cooldown(self):
        execute = AsyncMock(side_effect=ValueError("boom"))
        dispatcher, _ = _make_dispatcher(_command("ping", execute))
        await dispatcher.handle(CommandInvocation(FakeInteraction("ping")))
        second = FakeInteraction("ping")
        await dispatcher.handle(CommandInvocation(second))
        assert execute.await_count == 1
        assert "cooldown" in second.last_content

    @pytest.mark.asyncio
    async def test_concurrent_invocations_only_one_passes(self):
        started = []

        async def execute(ctx, interaction):
            started.append(interaction)
            await asyncio.sleep(0)

        dispatcher, _ = _make_dispatcher(_command("ping", execute))
        interactions = [FakeInteraction("ping") for _ in range(5)]
        for interaction in interactions:
            dispatcher.dispatch(CommandInvocation(interaction))
        await dispatcher.drain()
        assert len(started) == 1
        blocked = [i for i in interactions if i not in started]
        assert all("cooldown" in i.last_content for i in blocked)


class TestFailureContainment:

    @pytest.mark.asyncio
    async def test_failure_before_ack_replies_once(self):
        dispatcher, _ = _make_dispatcher(
            _command("boom", AsyncMock(side_effect=RuntimeError("kaboom")))
        )
        interaction = FakeInteraction("boom")
        await dispatcher.handle(CommandInvocation(interaction))
        assert interaction.sent == [("reply", ERROR_MESSAGE, True)]

    @pytest.mark.asyncio
    async def test_failure_after_defer_follows_up(self):
        async def execute(ctx, interaction):
            await interaction.defer_reply(ephemeral=True)
            raise RuntimeError("kaboom")

        dispatcher, _ = _make_dispatcher(_command("slow", execute))
        interaction = FakeInteraction("slow")
        await dispatcher.handle(CommandInvocation(interaction))
        assert interaction.sent == [
            ("defer", None, True),
            ("follow_up", ERROR_MESSAGE, True),
        ]

    @pytest.mark.asyncio
    async def test_failure_after_reply_follows_up(self):
        async def execute(ctx, interaction):
            await interaction.reply("partial")
            raise RuntimeError("kaboom")

        dispatcher, _ = _make_dispatcher(_command("half", execute))
        interaction = FakeInteraction("half")
        await dispatcher.handle(CommandInvocation(interaction))
        assert interaction.sent[-1] == ("follow_up", ERROR_MESSAGE, True)
        assert [kind for kind, _, _ in interaction.sent].count("follow_up") == 1

    @pytest.mark.asyncio
    async def test_error_reply_failure_is_contained(self):
        dispatcher, _ = _make_dispatcher(
            _command("boom", AsyncMock(side_effect=RuntimeError("kaboom")))
        )
        interaction = FakeInteraction("boom", fail_on_reply=True)
        await dispatcher.handle(CommandInvocation(interaction))
        assert interaction.sent == []

    @pytest.mark.asyncio
    async def test_dispatcher_keeps_serving_after_failure(self):
        dispatcher, _ = _make_dispatcher(
            _command("boom", AsyncMock(side_effect=RuntimeError("kaboom"))),
            _command("ping", _pong),
        )
        await dispatcher.handle(CommandInvocation(FakeInteraction("boom")))
        interaction = FakeInteraction("ping")
        await dispatcher.handle(CommandInvocation(interaction))
        assert interaction.sent == [("reply", "Pong!", False)]

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        dispatcher, _ = _make_dispatcher(
            _command("stuck", AsyncMock(side_effect=asyncio.CancelledError()))
        )
        with pytest.raises(asyncio.CancelledError):
            await dispatcher.handle(CommandInvocation(FakeInteraction("stuck")))

    @pytest.mark.asyncio
    async def test_unknown_event_type_dropped(self):
        dispatcher, _ = _make_dispatcher()
        await dispatcher.handle(object())


class TestAutocompletePath:

    @pytest.mark.asyncio
    async def test_autocomplete_invoked_without_cooldown(self):
        async def autocomplete(ctx, interaction):
            await interaction.respond([{"name": "a", "value": "a"}])

        dispatcher, _ = _make_dispatcher(
            _command("birthday", AsyncMock(), autocomplete=autocomplete)
        )
        for _ in range(3):
            request = FakeAutocomplete("birthday", ("timezone", "eu"))
            await dispatcher.handle(AutocompleteRequest(request))
            assert request.responses == [[{"name": "a", "value": "a"}]]
        assert len(dispatcher.cooldowns) == 0

    @pytest.mark.asyncio
    async def test_command_without_autocomplete_ignored(self):
        dispatcher, _ = _make_dispatcher(_command("ping", _pong))
        request = FakeAutocomplete("ping", ("x", ""))
        await dispatcher.handle(AutocompleteRequest(request))
        assert request.responses == []

    @pytest.mark.asyncio
    async def test_autocomplete_failure_is_silent(self):
        dispatcher, _ = _make_dispatcher(
            _command("birthday", AsyncMock(), autocomplete=AsyncMock(side_effect=KeyError("x")))
        )
        request = FakeAutocomplete("birthday", ("timezone", "eu"))
        await dispatcher.handle(AutocompleteRequest(request))
        assert request.responses == []


class TestEventPath:

    @pytest.mark.asyncio
    async def test_once_handler_fires_single_time(self):
        execute = AsyncMock()
        dispatcher, context = _make_dispatcher(EventDefinition("ready", execute, once=True))
        user = {"username": "keeper"}
        await dispatcher.handle(PlatformEvent("ready", (user,)))
        await dispatcher.handle(PlatformEvent("ready", (user,)))
        execute.assert_awaited_once_with(context, user)

    @pytest.mark.asyncio
    async def test_once_handler_marked_even_when_it_fails(self):
        execute = AsyncMock(side_effect=RuntimeError("x"))
        dispatcher, _ = _make_dispatcher(EventDefinition("ready", execute, once=True))
        await dispatcher.handle(PlatformEvent("ready"))
        await dispatcher.handle(PlatformEvent("ready"))
        assert execute.await_count == 1

    @pytest.mark.asyncio
    async def test_once_and_persistent_handlers_on_repeated_ready(self):
        once = AsyncMock()
        persist = AsyncMock()
        dispatcher, _ = _make_dispatcher(
            EventDefinition("ready", once, once=True),
            EventDefinition("ready", persist),
        )
        await dispatcher.handle(PlatformEvent("ready"))
        await dispatcher.handle(PlatformEvent("ready"))
        assert once.await_count == 1
        assert persist.await_count == 2

    @pytest.mark.asyncio
    async def test_reload_forgets_replaced_once_handlers(self):
        first = EventDefinition("ready", AsyncMock(), once=True)
        dispatcher, _ = _make_dispatcher(first)
        await dispatcher.handle(PlatformEvent("ready"))
        assert first in dispatcher._fired_once

        reloaded = EventDefinition("ready", AsyncMock(), once=True)
        dispatcher.registry.load_definitions([("events.ready", reloaded)])
        await dispatcher.handle(PlatformEvent("ready"))
        await dispatcher.handle(PlatformEvent("ready"))

        assert dispatcher._fired_once == {reloaded}
        reloaded.execute.assert_awaited_once()
        first.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_message_created_fans_out_in_order(self):
        order = []

        async def first(ctx, message):
            order.append(("first", message.content))

        async def second(ctx, message):
            order.append(("second", message.content))

        dispatcher, _ = _make_dispatcher(
            EventDefinition("message_create", first),
            EventDefinition("message_create", second),
        )
        await dispatcher.handle(MessageCreated(FakeMessage("1")))
        await dispatcher.handle(MessageCreated(FakeMessage("2")))
        assert order == [("first", "1"), ("second", "1"), ("first", "2"), ("second", "2")]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_the_next(self):
        second = AsyncMock()
        dispatcher, _ = _make_dispatcher(
            EventDefinition("message_create", AsyncMock(side_effect=RuntimeError("x"))),
            EventDefinition("message_create", second),
        )
        await dispatcher.handle(MessageCreated(FakeMessage("hi")))
        second.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_event_with_no_handlers_is_noop(self):
        dispatcher, _ = _make_dispatcher()
        await dispatcher.handle(PlatformEvent("guild_create", ({"id": "1"},)))


class TestTaskBoundary:

    @pytest.mark.asyncio
    async def test_dispatch_runs_on_task_and_drains(self):
        dispatcher, _ = _make_dispatcher(_command("ping", _pong))
        interaction = FakeInteraction("ping")
        dispatcher.dispatch(CommandInvocation(interaction))
        assert dispatcher.in_flight == 1
        await dispatcher.drain()
        assert interaction.sent == [("reply", "Pong!", False)]
        assert dispatcher.in_flight == 0

    @pytest.mark.asyncio
    async def test_slow_handler_does_not_block_others(self):
        gate = asyncio.Event()

        async def slow(ctx, interaction):
            await gate.wait()

        dispatcher, _ = _make_dispatcher(_command("slow", slow), _command("ping", _pong))
        dispatcher.dispatch(CommandInvocation(FakeInteraction("slow")))
        fast = FakeInteraction("ping")
        dispatcher.dispatch(CommandInvocation(fast))
        for _ in range(10):
            await asyncio.sleep(0)
        assert fast.sent == [("reply", "Pong!", False)]
        gate.set()
        await dispatcher.drain()

    def test_dispatch_without_loop_is_dropped(self):
        dispatcher, _ = _make_dispatcher(_command("ping", _pong))
        interaction = FakeInteraction("ping")
        dispatcher.dispatch(CommandInvocation(interaction))
        assert interaction.sent == []
        assert dispatcher.in_flight == 0

    @pytest.mark.asyncio
    async def test_in_flight_dispatch_keeps_resolved_definition_across_reload(self):
        gate = asyncio.Event()
        calls = []

        async def old(ctx, interaction):
            await gate.wait()
            calls.append("old")

        async def new(ctx, interaction):
            calls.append("new")

        dispatcher, _ = _make_dispatcher(_command("cmd", old, cooldown=0))
        dispatcher.dispatch(CommandInvocation(FakeInteraction("cmd")))
        await asyncio.sleep(0)
        dispatcher.registry.load_definitions([("cmd.py", _command("cmd", new, cooldown=0))])
        await dispatcher.handle(CommandInvocation(FakeInteraction("cmd")))
        gate.set()
        await dispatcher.drain()
        assert calls == ["new", "old"]
