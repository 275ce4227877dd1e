"""/test -- check the bot is alive."""

from ..handlers.definitions import CommandDefinition
from ..platform import (
    CONTEXT_BOT_DM,
    CONTEXT_GUILD,
    CONTEXT_PRIVATE_CHANNEL,
    INTEGRATION_GUILD_INSTALL,
    INTEGRATION_USER_INSTALL,
)


async def execute(ctx, interaction):
    await interaction.reply(
        "This is a test command. If you see this, the bot is working!",
        ephemeral=True,
    )


definition = CommandDefinition(
    schema={
        "name": "test",
        "description": "A test command to check if the bot is working",
        "contexts": [CONTEXT_GUILD, CONTEXT_BOT_DM, CONTEXT_PRIVATE_CHANNEL],
        "integration_types": [INTEGRATION_GUILD_INSTALL, INTEGRATION_USER_INSTALL],
    },
    execute=execute,
)
