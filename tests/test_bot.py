"""Tests for bot bootstrap, reload and command registration."""

import textwrap
from unittest.mock import AsyncMock, MagicMock

import pytest

from fakes import FakeInteraction
from guildkeeper.bot import GuildBot
from guildkeeper.config import Config
from guildkeeper.exceptions import ConfigurationError
from guildkeeper.platform import CommandInvocation
from guildkeeper.register import register_commands

SHIPPED_COMMANDS = ["birthday", "birthday-configuration", "counting", "ping", "test"]


@pytest.fixture
def config(tmp_path, monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "token")
    monkeypatch.setenv("DISCORD_ID", "app-1")
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (tmp_path / "extra").mkdir()
    (config_dir / "settings.yaml").write_text(textwrap.dedent(f"""
        database:
          path: {tmp_path / "bot.db"}
        definitions:
          extra_dirs: ["{tmp_path / "extra"}"]
    """))
    return Config(config_dir)


def test_reload_loads_shipped_definitions(config):
    bot = GuildBot(config)
    report = bot.reload()
    assert report.ok
    assert sorted(bot.registry.command_names) == SHIPPED_COMMANDS


def test_reload_picks_up_extra_directory(config, tmp_path):
    bot = GuildBot(config)
    bot.reload()
    (tmp_path / "extra" / "hello.py").write_text(textwrap.dedent("""
        from guildkeeper.handlers import CommandDefinition

        async def execute(ctx, interaction):
            await interaction.reply("hello")

        definition = CommandDefinition({"name": "hello", "description": "Hello"}, execute)
    """))
    report = bot.reload()
    assert report.ok
    assert "hello" in bot.registry.command_names


@pytest.mark.asyncio
async def test_start_and_stop_wire_dependencies(config):
    bot = GuildBot(config)
    with pytest.raises(RuntimeError):
        bot.context.rest
    await bot.start()
    try:
        assert bot.context.rest is bot.rest
        assert bot.context.gateway is bot.gateway
        assert bot.context.latency_ms is None
        assert bot.cooldowns._sweep_task is not None

        interaction = FakeInteraction("ping", guild_id="g1")
        await bot.dispatcher.handle(CommandInvocation(interaction))
        assert interaction.last_content == "Pong!"
        assert await bot.database.guilds.get("g1") is not None
    finally:
        await bot.stop()
    assert bot.running is False
    assert bot.cooldowns._sweep_task is None


@pytest.mark.asyncio
async def test_register_commands_publishes_sorted_schemas(config):
    bot = GuildBot(config)
    bot.reload()
    bot.rest = MagicMock()
    bot.rest.bulk_overwrite_commands = AsyncMock(return_value=[])
    assert await bot.register_commands() == len(SHIPPED_COMMANDS)
    payload = bot.rest.bulk_overwrite_commands.await_args.args[0]
    assert [c["name"] for c in payload] == SHIPPED_COMMANDS
    counting = payload[1]
    assert counting["default_member_permissions"] == "16"
    assert [o["name"] for o in counting["options"]] == ["setup", "edit", "info", "reset"]


@pytest.mark.asyncio
async def test_register_tool(config):
    rest = MagicMock()
    rest.bulk_overwrite_commands = AsyncMock(return_value=[])
    assert await register_commands(config, rest=rest) == len(SHIPPED_COMMANDS)
    names = [c["name"] for c in rest.bulk_overwrite_commands.await_args.args[0]]
    assert names == SHIPPED_COMMANDS


@pytest.mark.asyncio
async def test_register_tool_requires_credentials(config, monkeypatch):
    monkeypatch.delenv("DISCORD_TOKEN")
    rest = MagicMock()
    rest.bulk_overwrite_commands = AsyncMock()
    with pytest.raises(ConfigurationError):
        await register_commands(config, rest=rest)
    rest.bulk_overwrite_commands.assert_not_awaited()
