"""Websocket gateway connection.

Keeps a gateway session open (HELLO, IDENTIFY, heartbeats), reconnects
with exponential backoff when the socket drops, and translates
dispatch payloads into the inbound envelopes the Dispatcher routes.

Key classes:
    Gateway: Connection loop and payload translation.
    GatewayInteraction / GatewayAutocomplete / GatewayMessage:
        REST-backed implementations of the platform protocols.
"""

import asyncio
import json
import sys
import time
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import structlog

from .exceptions import GatewayError
from .platform import (
    MAX_AUTOCOMPLETE_CHOICES,
    OPTION_SUB_COMMAND,
    OPTION_SUB_COMMAND_GROUP,
    AutocompleteRequest,
    CommandInvocation,
    MessageCreated,
    PlatformEvent,
)
from .rest import (
    APPLICATION_COMMAND_AUTOCOMPLETE_RESULT,
    CHANNEL_MESSAGE_WITH_SOURCE,
    DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE,
    RestClient,
    message_body,
)

logger = structlog.get_logger("guildkeeper.gateway")

# Gateway opcodes
OP_DISPATCH = 0
OP_HEARTBEAT = 1
OP_IDENTIFY = 2
OP_RECONNECT = 7
OP_INVALID_SESSION = 9
OP_HELLO = 10
OP_HEARTBEAT_ACK = 11

# Interaction types
INTERACTION_APPLICATION_COMMAND = 2
INTERACTION_AUTOCOMPLETE = 4

INITIAL_RECONNECT_DELAY = 5
MAX_RECONNECT_DELAY = 300


def _user_id(payload: Dict[str, Any]) -> str:
    member = payload.get("member") or {}
    user = member.get("user") or payload.get("user") or payload.get("author") or {}
    return str(user.get("id", ""))


def flatten_options(
    options: Optional[List[Dict[str, Any]]],
) -> Tuple[Optional[str], Dict[str, Any], Optional[Tuple[str, str]]]:
    """Collapse nested command options.

    Returns:
        (subcommand, {option_name: value}, focused) where subcommand is
        "group sub" for grouped subcommands and focused is the
        (name, partial value) pair of the option being typed, if any.
    """
    subcommand: Optional[str] = None
    values: Dict[str, Any] = {}
    focused: Optional[Tuple[str, str]] = None
    current = options or []

    while current:
        head = current[0]
        if head.get("type") in (OPTION_SUB_COMMAND, OPTION_SUB_COMMAND_GROUP):
            name = head.get("name", "")
            subcommand = f"{subcommand} {name}" if subcommand else name
            current = head.get("options") or []
            continue
        for option in current:
            values[option["name"]] = option.get("value")
            if option.get("focused"):
                focused = (option["name"], str(option.get("value", "")))
        break

    return subcommand, values, focused


class GatewayInteraction:
    """A command invocation answered through interaction callbacks."""

    def __init__(self, rest: RestClient, payload: Dict[str, Any]):
        data = payload.get("data") or {}
        self._rest = rest
        self.id = str(payload["id"])
        self.token = payload["token"]
        self.command_name = data.get("name", "")
        self.user_id = _user_id(payload)
        self.guild_id = payload.get("guild_id")
        self.channel_id = payload.get("channel_id")
        self.subcommand, self.options, _ = flatten_options(data.get("options"))
        self.replied = False
        self.deferred = False

    async def reply(self, content: str, *, ephemeral: bool = False) -> None:
        await self._rest.create_interaction_response(
            self.id,
            self.token,
            CHANNEL_MESSAGE_WITH_SOURCE,
            message_body(content, ephemeral=ephemeral),
        )
        self.replied = True

    async def defer_reply(self, *, ephemeral: bool = False) -> None:
        data = message_body("", ephemeral=ephemeral)
        data.pop("content")
        await self._rest.create_interaction_response(
            self.id, self.token, DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE, data or None
        )
        self.deferred = True

    async def edit_reply(self, content: str) -> None:
        await self._rest.edit_original_response(self.token, content)
        self.replied = True

    async def follow_up(self, content: str, *, ephemeral: bool = False) -> None:
        await self._rest.create_followup(self.token, content, ephemeral=ephemeral)


class GatewayAutocomplete:
    """An autocomplete request answered with a list of choices."""

    def __init__(self, rest: RestClient, payload: Dict[str, Any]):
        data = payload.get("data") or {}
        self._rest = rest
        self.id = str(payload["id"])
        self.token = payload["token"]
        self.command_name = data.get("name", "")
        self.user_id = _user_id(payload)
        self.guild_id = payload.get("guild_id")
        self.subcommand, self.options, focused = flatten_options(data.get("options"))
        self.focused = focused or ("", "")

    async def respond(self, choices: List[Dict[str, Any]]) -> None:
        await self._rest.create_interaction_response(
            self.id,
            self.token,
            APPLICATION_COMMAND_AUTOCOMPLETE_RESULT,
            {"choices": list(choices)[:MAX_AUTOCOMPLETE_CHOICES]},
        )


class GatewayMessage:
    """A channel message. Replies and deletes go through REST."""

    def __init__(self, rest: RestClient, payload: Dict[str, Any]):
        author = payload.get("author") or {}
        self._rest = rest
        self.id = str(payload["id"])
        self.content = payload.get("content", "")
        self.author_id = str(author.get("id", ""))
        self.author_is_bot = bool(author.get("bot", False))
        self.guild_id = payload.get("guild_id")
        self.channel_id = str(payload.get("channel_id", ""))

    async def reply(self, content: str) -> "GatewayMessage":
        created = await self._rest.create_message(self.channel_id, content, reply_to=self.id)
        if self.guild_id and "guild_id" not in created:
            created["guild_id"] = self.guild_id
        return GatewayMessage(self._rest, created)

    async def delete(self) -> None:
        await self._rest.delete_message(self.channel_id, self.id)


class Gateway:
    """Maintains the gateway session and feeds a Dispatcher.

    Args:
        url: Gateway websocket URL.
        token: Bot token used to IDENTIFY.
        intents: Intents bitfield.
        rest: REST client handed to the interaction/message wrappers.
        dispatcher: Anything with a synchronous ``dispatch(event)``.
        session: Optional ClientSession (tests); otherwise created on run().
    """

    def __init__(
        self,
        url: str,
        token: str,
        intents: int,
        rest: RestClient,
        dispatcher: Any,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url
        self._token = token
        self.intents = intents
        self.rest = rest
        self.dispatcher = dispatcher
        self.running = False
        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._sequence: Optional[int] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._heartbeat_sent_at: Optional[float] = None
        self._latency_ms: Optional[float] = None
        self.user: Optional[Dict[str, Any]] = None

    @property
    def latency_ms(self) -> Optional[float]:
        """Round trip of the last acknowledged heartbeat, None until one lands."""
        return self._latency_ms

    async def run(self) -> None:
        """Connect and process events until stop() is called."""
        if self._session is None:
            self._session = aiohttp.ClientSession()

        self.running = True
        reconnect_delay = INITIAL_RECONNECT_DELAY

        while self.running:
            try:
                logger.info("gateway_connecting", url=self.url)
                async with self._session.ws_connect(self.url, max_msg_size=0) as ws:
                    self._ws = ws
                    logger.info("gateway_connected")
                    reconnect_delay = INITIAL_RECONNECT_DELAY
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            try:
                                payload = json.loads(msg.data)
                            except json.JSONDecodeError:
                                logger.warning("gateway_invalid_json", data=msg.data[:100])
                                continue
                            if not await self.process(payload):
                                break
                        elif msg.type == aiohttp.WSMsgType.ERROR:
                            logger.error("gateway_ws_error", error=str(ws.exception()))
                            break
                        elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED):
                            logger.info("gateway_closed", code=ws.close_code)
                            break
                self._stop_heartbeat()
                self._ws = None
                if self.running:
                    await asyncio.sleep(1)

            except asyncio.CancelledError:
                break
            except Exception as e:
                self._stop_heartbeat()
                self._ws = None
                logger.error("gateway_exception", error=str(e), error_type=type(e).__name__)
                await asyncio.sleep(reconnect_delay)
                reconnect_delay = min(reconnect_delay * 2, MAX_RECONNECT_DELAY)

        self._stop_heartbeat()

    async def stop(self) -> None:
        self.running = False
        self._stop_heartbeat()
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    # --- Protocol ---

    async def process(self, payload: Dict[str, Any]) -> bool:
        """Handle one gateway payload.

        Returns:
            False when the session must be dropped and re-established.
        """
        op = payload.get("op")
        if payload.get("s") is not None:
            self._sequence = payload["s"]

        if op == OP_HELLO:
            interval = (payload.get("d") or {}).get("heartbeat_interval", 41250)
            self._start_heartbeat(interval / 1000)
            await self._identify()
        elif op == OP_HEARTBEAT:
            await self._send_heartbeat()
        elif op == OP_HEARTBEAT_ACK:
            if self._heartbeat_sent_at is not None:
                self._latency_ms = (time.monotonic() - self._heartbeat_sent_at) * 1000
        elif op in (OP_RECONNECT, OP_INVALID_SESSION):
            logger.info("gateway_reconnect_requested", op=op)
            return False
        elif op == OP_DISPATCH:
            event_type = payload.get("t") or ""
            envelope = self.translate(event_type, payload.get("d") or {})
            if envelope is not None:
                self.dispatcher.dispatch(envelope)
        return True

    def translate(self, event_type: str, data: Dict[str, Any]) -> Optional[Any]:
        """Convert a dispatch payload into an inbound envelope."""
        if event_type == "INTERACTION_CREATE":
            kind = data.get("type")
            if kind == INTERACTION_APPLICATION_COMMAND:
                return CommandInvocation(GatewayInteraction(self.rest, data))
            if kind == INTERACTION_AUTOCOMPLETE:
                return AutocompleteRequest(GatewayAutocomplete(self.rest, data))
            logger.debug("interaction_type_ignored", type=kind)
            return None
        if event_type == "MESSAGE_CREATE":
            return MessageCreated(GatewayMessage(self.rest, data))
        if event_type == "READY":
            self.user = data.get("user")
            logger.info("gateway_ready", user=(self.user or {}).get("username"))
            return PlatformEvent("ready", (self.user or {},))
        if not event_type:
            return None
        return PlatformEvent(event_type.lower(), (data,))

    async def _identify(self) -> None:
        if not self._token:
            raise GatewayError("Cannot identify without a bot token")
        await self._send({
            "op": OP_IDENTIFY,
            "d": {
                "token": self._token,
                "intents": self.intents,
                "properties": {
                    "os": sys.platform,
                    "browser": "guildkeeper",
                    "device": "guildkeeper",
                },
            },
        })

    async def _send(self, payload: Dict[str, Any]) -> None:
        if self._ws is None:
            raise GatewayError("Gateway socket is not connected")
        await self._ws.send_json(payload)

    async def _send_heartbeat(self) -> None:
        self._heartbeat_sent_at = time.monotonic()
        await self._send({"op": OP_HEARTBEAT, "d": self._sequence})

    def _start_heartbeat(self, interval: float) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_forever(interval))

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

    async def _heartbeat_forever(self, interval: float) -> None:
        try:
            while True:
                await asyncio.sleep(interval)
                await self._send_heartbeat()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("gateway_heartbeat_failed", error=str(e))
