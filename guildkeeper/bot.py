"""Bot bootstrap for guildkeeper.

Wires configuration, persistence, the handler registry and its loader,
the cooldown tracker, the dispatcher, the REST client and the gateway
connection, and owns their lifecycle.

Key classes:
    GuildBot: Owns every subsystem instance; start/stop/run/reload.
"""

import asyncio
from typing import Optional

import structlog

from .config import Config, get_config
from .cooldown import CooldownTracker
from .database import Database
from .dispatcher import Dispatcher
from .gateway import Gateway
from .handlers import BotContext, HandlerRegistry, RegistryLoadReport
from .loader import DEFAULT_PACKAGES, DefinitionLoader
from .rest import RestClient

logger = structlog.get_logger("guildkeeper.bot")

# Upper bound on waiting for in-flight handlers at shutdown
DRAIN_TIMEOUT = 10.0


class GuildBot:
    """Guild bot with a hot-reloadable handler registry.

    Subsystems are created in two phases: __init__ for everything that
    needs no event loop (config, stores, registry, dispatcher) and
    start() for the database, network clients and background tasks.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self.running = False

        self.database = Database(self.config.database_path)
        self.registry = HandlerRegistry()
        self.cooldowns = CooldownTracker()
        self.loader = DefinitionLoader(
            packages=DEFAULT_PACKAGES,
            directories=self.config.extra_definition_dirs,
        )

        # BotContext: dependency container for handlers
        self.context = BotContext(
            config=self.config,
            database=self.database,
            registry=self.registry,
            cooldowns=self.cooldowns,
        )
        self.dispatcher = Dispatcher(
            registry=self.registry,
            cooldowns=self.cooldowns,
            context=self.context,
            guilds=self.database.guilds,
        )

        self.rest: Optional[RestClient] = None
        self.gateway: Optional[Gateway] = None

    def reload(self) -> RegistryLoadReport:
        """Re-import every definition source and swap the registry.

        Dispatches already running keep the definitions they resolved;
        new ones see the fresh snapshot. Re-imported ``once`` event
        handlers are new definitions and fire again on their next event.
        """
        report = self.registry.load_definitions(self.loader.iter_sources())
        for failure in report.failed_sources:
            logger.warning("definition_skipped", source=failure.source, reason=failure.reason)
        logger.info(
            "definitions_reloaded",
            loaded=report.loaded_count,
            failed=len(report.failed_sources),
            commands=sorted(self.registry.command_names),
        )
        return report

    async def register_commands(self) -> int:
        """Publish the current command schemas. Returns the number sent."""
        if self.rest is None:
            raise RuntimeError("Bot not started: rest client not available")
        payload = [schema.to_payload() for schema in self.registry.command_schemas()]
        await self.rest.bulk_overwrite_commands(payload)
        logger.info("commands_registered", count=len(payload))
        return len(payload)

    async def start(self):
        """Start the bot and all subsystems.

        Opens the database, loads definitions, starts the cooldown
        sweeper and creates the REST client and gateway. Command
        registration runs here only when enabled in settings.yaml.
        """
        self.running = True
        await self.database.initialize()
        self.reload()
        self.cooldowns.start_sweeper(self.config.cooldown_sweep_interval)

        self.rest = RestClient(
            api_base_url=self.config.api_base_url,
            token=self.config.discord_token,
            application_id=self.config.application_id,
        )
        await self.rest.start()
        self.gateway = Gateway(
            url=self.config.gateway_url,
            token=self.config.discord_token,
            intents=self.config.intents,
            rest=self.rest,
            dispatcher=self.dispatcher,
        )

        # Update BotContext with deferred dependencies
        self.context._rest = self.rest
        self.context._gateway = self.gateway

        if self.config.register_commands_on_start:
            try:
                await self.register_commands()
            except Exception as e:
                logger.error("command_registration_failed", error=str(e), error_type=type(e).__name__)

        logger.info("bot_started", commands=len(self.registry.command_names))

    async def stop(self):
        """Stop the bot and release every resource.

        Closes the gateway first so no new events arrive, waits (bounded)
        for in-flight handlers, then tears down the sweeper, REST client
        and database.
        """
        if not self.running:
            return
        self.running = False
        if self.gateway:
            await self.gateway.stop()
        try:
            await asyncio.wait_for(self.dispatcher.drain(), timeout=DRAIN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("dispatch_drain_timeout", in_flight=self.dispatcher.in_flight)
        self.cooldowns.stop_sweeper()
        if self.rest:
            await self.rest.close()
        await self.database.close()
        logger.info("bot_stopped")

    async def run(self):
        """Main run loop: start, stay connected, stop on exit."""
        await self.start()

        try:
            await self.gateway.run()
        finally:
            await self.stop()
