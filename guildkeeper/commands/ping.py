"""/ping -- reply with the gateway heartbeat latency."""

from ..handlers.definitions import CommandDefinition
from ..platform import (
    CONTEXT_BOT_DM,
    CONTEXT_GUILD,
    CONTEXT_PRIVATE_CHANNEL,
    INTEGRATION_GUILD_INSTALL,
    INTEGRATION_USER_INSTALL,
)


async def execute(ctx, interaction):
    latency = ctx.latency_ms
    if latency is None:
        await interaction.reply("Pong!")
    else:
        await interaction.reply(f"Pong! Latency: {round(latency)}ms")


definition = CommandDefinition(
    schema={
        "name": "ping",
        "description": "Check the bot's latency",
        "contexts": [CONTEXT_GUILD, CONTEXT_BOT_DM, CONTEXT_PRIVATE_CHANNEL],
        "integration_types": [INTEGRATION_GUILD_INSTALL, INTEGRATION_USER_INSTALL],
    },
    execute=execute,
    cooldown=3,
)
