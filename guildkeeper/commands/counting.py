"""/counting -- set up and manage the counting game.

Subcommands: setup, edit, info, reset. Guild only; the reply is
deferred ephemerally and every branch edits it.
"""

from datetime import datetime
from typing import Optional

import structlog

from ..handlers.definitions import CommandDefinition
from ..platform import (
    CHANNEL_TYPE_GUILD_TEXT,
    CONTEXT_GUILD,
    INTEGRATION_GUILD_INSTALL,
    OPTION_BOOLEAN,
    OPTION_CHANNEL,
    OPTION_SUB_COMMAND,
    PERMISSION_MANAGE_CHANNELS,
)

logger = structlog.get_logger("guildkeeper.commands")

NOT_SET_UP = "No counting game is set up in this server. Please use the setup command to create one."


def _channel_option(required: bool) -> dict:
    return {
        "type": OPTION_CHANNEL,
        "name": "channel",
        "description": "The channel that should be used for counting",
        "channel_types": [CHANNEL_TYPE_GUILD_TEXT],
        "required": required,
    }


_RESET_OPTION = {
    "type": OPTION_BOOLEAN,
    "name": "reset",
    "description": "Reset the current number if a wrong number was sent",
    "required": False,
}


def _mention_channel(channel_id: str) -> str:
    return f"<#{channel_id}>"


def _mention_user(user_id: Optional[str]) -> str:
    return f"<@{user_id}>" if user_id else "N/A"


def _short_datetime(value: Optional[datetime]) -> str:
    return f"<t:{int(value.timestamp())}:f>" if value else "N/A"


async def execute(ctx, interaction):
    if not interaction.guild_id:
        await interaction.reply("This command can only be used in a server.", ephemeral=True)
        return

    await interaction.defer_reply(ephemeral=True)

    handler = _SUBCOMMANDS.get(interaction.subcommand)
    if handler is None:
        await interaction.edit_reply(
            "### Unknown subcommand\nPlease use one of the following: `setup`, `edit`, `info`, `reset`."
        )
        return
    await handler(ctx, interaction)


async def handle_setup(ctx, interaction):
    store = ctx.database.counting
    if await store.get(interaction.guild_id):
        await interaction.edit_reply(
            "A counting game is already set up in this server. Please use the edit command "
            "to change the settings. Or reset the counting game if you want to start over."
        )
        return

    channel_id = str(interaction.options["channel"])
    reset_on_fail = bool(interaction.options.get("reset") or False)
    await store.create(interaction.guild_id, channel_id, reset_on_fail)
    logger.info(
        "counting_setup",
        guild=interaction.guild_id,
        channel=channel_id,
        reset_on_fail=reset_on_fail,
    )
    await interaction.edit_reply(
        f"Counting game has been set up in {_mention_channel(channel_id)}!\n"
        "To start counting, simply send the number `1` in the channel."
    )


async def handle_edit(ctx, interaction):
    store = ctx.database.counting
    current = await store.get(interaction.guild_id)
    if current is None:
        await interaction.edit_reply(NOT_SET_UP)
        return

    channel_id = interaction.options.get("channel")
    reset_on_fail = interaction.options.get("reset")
    if channel_id is None and reset_on_fail is None:
        await interaction.edit_reply(
            "You must provide at least one option to edit the counting game. "
            "Either a new channel or reset on fail option."
        )
        return

    await store.update(
        interaction.guild_id,
        channel_id=str(channel_id) if channel_id is not None else current.channel_id,
        reset_on_fail=reset_on_fail if reset_on_fail is not None else current.reset_on_fail,
    )
    await interaction.edit_reply(
        "Counting game has been updated. Use the info command to see the current settings."
    )


async def handle_info(ctx, interaction):
    current = await ctx.database.counting.get(interaction.guild_id)
    if current is None:
        await interaction.edit_reply(NOT_SET_UP)
        return

    lines = [
        f"Counting game is set up in {_mention_channel(current.channel_id)}",
        f"Reset on fail: {'enabled' if current.reset_on_fail else 'disabled'}",
        "",
        f"Current number: {current.current_number}",
        f"Current number by: {_mention_user(current.current_number_by_user_id)}",
        f"Current number at: {_short_datetime(current.current_number_at)}",
        "",
        f"Highest number: {current.highest_number}",
        f"Highest number by: {_mention_user(current.highest_number_by_user_id)}",
        f"Highest number at: {_short_datetime(current.highest_number_at)}",
    ]
    await interaction.edit_reply("### Counting Game Information\n" + "\n".join(lines))


async def handle_reset(ctx, interaction):
    store = ctx.database.counting
    if await store.get(interaction.guild_id) is None:
        await interaction.edit_reply(NOT_SET_UP)
        return

    await store.delete(interaction.guild_id)
    logger.info("counting_reset", guild=interaction.guild_id)
    await interaction.edit_reply(
        "The counting game has been reset. You can set it up again using the setup command."
    )


_SUBCOMMANDS = {
    "setup": handle_setup,
    "edit": handle_edit,
    "info": handle_info,
    "reset": handle_reset,
}


definition = CommandDefinition(
    schema={
        "name": "counting",
        "description": "A fun counting game for your community!",
        "contexts": [CONTEXT_GUILD],
        "integration_types": [INTEGRATION_GUILD_INSTALL],
        "default_member_permissions": str(PERMISSION_MANAGE_CHANNELS),
        "options": [
            {
                "type": OPTION_SUB_COMMAND,
                "name": "setup",
                "description": "Set up the counting game",
                "options": [_channel_option(True), _RESET_OPTION],
            },
            {
                "type": OPTION_SUB_COMMAND,
                "name": "edit",
                "description": "Edit the counting game configuration",
                "options": [_channel_option(False), _RESET_OPTION],
            },
            {
                "type": OPTION_SUB_COMMAND,
                "name": "info",
                "description": "Get information about the counting game",
            },
            {
                "type": OPTION_SUB_COMMAND,
                "name": "reset",
                "description": "Reset the counting game",
            },
        ],
    },
    execute=execute,
)
