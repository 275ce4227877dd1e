"""Log once the gateway session is ready."""

import structlog

from ..handlers.definitions import EventDefinition

logger = structlog.get_logger("guildkeeper.bot")


async def execute(ctx, user):
    username = user.get("username", "unknown")
    discriminator = user.get("discriminator")
    tag = f"{username}#{discriminator}" if discriminator and discriminator != "0" else username
    logger.info(
        "bot_ready",
        user=tag,
        commands=len(ctx.registry.command_names),
        event_handlers=ctx.registry.event_count,
    )


definition = EventDefinition(name="ready", execute=execute, once=True)
