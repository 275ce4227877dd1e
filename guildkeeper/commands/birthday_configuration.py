"""/birthday-configuration -- choose where a guild's birthdays are announced.

Subcommands: setup, edit, info, reset. Guild only; every subcommand
defers ephemerally and edits the reply.
"""

import structlog

from ..handlers.definitions import CommandDefinition
from ..platform import (
    CHANNEL_TYPE_GUILD_ANNOUNCEMENT,
    CHANNEL_TYPE_GUILD_TEXT,
    CONTEXT_GUILD,
    INTEGRATION_GUILD_INSTALL,
    OPTION_CHANNEL,
    OPTION_SUB_COMMAND,
)

logger = structlog.get_logger("guildkeeper.commands")

NOT_CONFIGURED = (
    "No birthday configuration is set up in this server yet.\n"
    "Please use the setup command to create a configuration first."
)
ALREADY_CONFIGURED = (
    "A birthday configuration is already set up in this server.\n"
    "Please use the edit command to change the settings. Or reset the settings if you want to start over."
)
SAME_CHANNEL = (
    "The provided channel is already set as the birthday announcement channel. "
    "Please provide a different channel."
)
NOTHING_TO_RESET = (
    "No birthday configuration is set up in this server yet.\n"
    "There is nothing to reset.\n"
    "Please use the setup command to create a configuration first."
)


async def execute(ctx, interaction):
    if not interaction.guild_id:
        await interaction.reply("This command can only be used in a server.", ephemeral=True)
        return

    handler = _SUBCOMMANDS.get(interaction.subcommand)
    if handler is None:
        await interaction.reply(
            "### Unknown subcommand\nPlease use one of the following: `setup`, `edit`, `info`, `reset`.",
            ephemeral=True,
        )
        return
    await interaction.defer_reply(ephemeral=True)
    await handler(ctx, interaction)


async def handle_setup(ctx, interaction):
    store = ctx.database.guild_birthdays
    if await store.get(interaction.guild_id):
        await interaction.edit_reply(ALREADY_CONFIGURED)
        return

    channel_id = str(interaction.options["channel"])
    await store.create(interaction.guild_id, channel_id)
    logger.info("birthday_configuration_created", guild=interaction.guild_id, channel=channel_id)
    await interaction.edit_reply(
        "Successfully set up the birthday configuration!\n"
        f"Birthday announcements will be made in <#{channel_id}>.\n\n"
        "You can change this later using the edit command."
    )


async def handle_edit(ctx, interaction):
    store = ctx.database.guild_birthdays
    current = await store.get(interaction.guild_id)
    if current is None:
        await interaction.edit_reply(NOT_CONFIGURED)
        return

    channel_id = str(interaction.options["channel"])
    if channel_id == current.channel_id:
        await interaction.edit_reply(SAME_CHANNEL)
        return

    await store.update(interaction.guild_id, channel_id)
    logger.info("birthday_configuration_updated", guild=interaction.guild_id, channel=channel_id)
    await interaction.edit_reply(
        "Successfully updated the birthday configuration!\n"
        f"Birthday announcements will now be made in <#{channel_id}>."
    )


async def handle_info(ctx, interaction):
    current = await ctx.database.guild_birthdays.get(interaction.guild_id)
    if current is None:
        await interaction.edit_reply(NOT_CONFIGURED)
        return

    await interaction.edit_reply(
        "### Birthday Configuration Info\n\n"
        f"**Announcement Channel:** <#{current.channel_id}>\n\n"
        "You can change this using the edit command, or reset the configuration using the reset command."
    )


async def handle_reset(ctx, interaction):
    store = ctx.database.guild_birthdays
    if await store.get(interaction.guild_id) is None:
        await interaction.edit_reply(NOTHING_TO_RESET)
        return

    await store.delete(interaction.guild_id)
    logger.info("birthday_configuration_deleted", guild=interaction.guild_id)
    await interaction.edit_reply(
        "Successfully reset the birthday configuration!\nYou can set it up again using the setup command."
    )


_SUBCOMMANDS = {
    "setup": handle_setup,
    "edit": handle_edit,
    "info": handle_info,
    "reset": handle_reset,
}

_CHANNEL_OPTION = {
    "type": OPTION_CHANNEL,
    "name": "channel",
    "description": "The channel to set for birthday announcements.",
    "channel_types": [CHANNEL_TYPE_GUILD_TEXT, CHANNEL_TYPE_GUILD_ANNOUNCEMENT],
    "required": True,
}


definition = CommandDefinition(
    schema={
        "name": "birthday-configuration",
        "description": "Manage the birthday configuration for this server.",
        "contexts": [CONTEXT_GUILD],
        "integration_types": [INTEGRATION_GUILD_INSTALL],
        "options": [
            {
                "type": OPTION_SUB_COMMAND,
                "name": "setup",
                "description": "Set up the birthday configuration for this server.",
                "options": [_CHANNEL_OPTION],
            },
            {
                "type": OPTION_SUB_COMMAND,
                "name": "edit",
                "description": "Edit the birthday configuration for this server.",
                "options": [_CHANNEL_OPTION],
            },
            {
                "type": OPTION_SUB_COMMAND,
                "name": "info",
                "description": "Get information about the birthday configuration.",
            },
            {
                "type": OPTION_SUB_COMMAND,
                "name": "reset",
                "description": "Disable the birthday configuration for this server.",
            },
        ],
    },
    execute=execute,
)
