"""Publish command schemas to the platform.

Loads every command definition the bot would load and replaces the
application's global commands with their schemas in one request.
Run as the ``guildkeeper-register`` console script.
"""

import asyncio
import sys
from typing import Optional

import structlog

from .config import Config, get_config
from .exceptions import GuildkeeperError
from .handlers import HandlerRegistry
from .loader import DEFAULT_PACKAGES, DefinitionLoader
from .logging_config import setup_logging
from .rest import RestClient


async def register_commands(config: Config, rest: Optional[RestClient] = None) -> int:
    """Load command definitions and publish them. Returns the number sent.

    Raises:
        ConfigurationError: If the token or application id is missing.
        PlatformRequestError: If the platform rejects the request.
    """
    logger = structlog.get_logger("guildkeeper.bot")
    config.require_credentials()

    registry = HandlerRegistry()
    loader = DefinitionLoader(DEFAULT_PACKAGES, config.extra_definition_dirs)
    report = registry.load_definitions(loader.iter_sources())
    for failure in report.failed_sources:
        logger.warning("definition_skipped", source=failure.source, reason=failure.reason)

    payload = [schema.to_payload() for schema in registry.command_schemas()]
    logger.info("command_registration_started", count=len(payload))

    client = rest or RestClient(config.api_base_url, config.discord_token, config.application_id)
    try:
        await client.bulk_overwrite_commands(payload)
    finally:
        if rest is None:
            await client.close()

    logger.info("command_registration_finished", count=len(payload))
    return len(payload)


async def main() -> int:
    setup_logging()
    config = get_config()
    setup_logging(config)
    logger = structlog.get_logger("guildkeeper.bot")
    try:
        await register_commands(config)
    except GuildkeeperError as e:
        logger.error("command_registration_failed", error=str(e), category=e.category.value)
        return 1
    return 0


def run():
    """Synchronous entry point for the ``guildkeeper-register`` console script."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
