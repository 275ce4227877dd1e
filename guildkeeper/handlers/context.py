"""Dependency container shared by every command and event handler."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..config import Config
    from ..cooldown import CooldownTracker
    from ..database import Database
    from ..gateway import Gateway
    from ..rest import RestClient
    from .registry import HandlerRegistry


@dataclass
class BotContext:
    """Dependency container for handlers.

    Provides typed access to shared services without coupling handlers
    to GuildBot. The REST client and gateway only exist once the bot has
    started; their property getters raise RuntimeError before that.
    """

    config: "Config"
    database: "Database"
    registry: "HandlerRegistry"
    cooldowns: "CooldownTracker"
    _rest: Optional["RestClient"] = field(default=None, repr=False)
    _gateway: Optional["Gateway"] = field(default=None, repr=False)

    @property
    def rest(self) -> "RestClient":
        if self._rest is None:
            raise RuntimeError("Bot not started: rest client not available")
        return self._rest

    @property
    def gateway(self) -> "Gateway":
        if self._gateway is None:
            raise RuntimeError("Bot not started: gateway not available")
        return self._gateway

    @property
    def latency_ms(self) -> Optional[float]:
        """Last heartbeat round trip. Safe to call before start(), returns None."""
        if self._gateway is None:
            return None
        return self._gateway.latency_ms
