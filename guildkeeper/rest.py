"""REST client for the chat platform.

Thin aiohttp wrapper over the handful of endpoints the bot needs:
interaction callbacks, interaction webhooks (edit / follow-up),
channel messages, and bulk registration of application commands.
Non-2xx responses raise PlatformRequestError.
"""

from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from .exceptions import PlatformRequestError
from .platform import EPHEMERAL_FLAG

logger = structlog.get_logger("guildkeeper.gateway")

# Interaction callback types
CHANNEL_MESSAGE_WITH_SOURCE = 4
DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE = 5
APPLICATION_COMMAND_AUTOCOMPLETE_RESULT = 8

USER_AGENT = "DiscordBot (https://github.com/guildkeeper/guildkeeper, 1.0.0)"


def message_body(content: str, *, ephemeral: bool = False) -> Dict[str, Any]:
    body: Dict[str, Any] = {"content": content}
    if ephemeral:
        body["flags"] = EPHEMERAL_FLAG
    return body


class RestClient:
    """Authenticated REST access to the platform.

    Args:
        api_base_url: Base URL including the API version.
        token: Bot token.
        application_id: Application id used for webhooks and command
            registration.
        session: Optional pre-built ClientSession (tests); otherwise one
            is created by start().
    """

    def __init__(
        self,
        api_base_url: str,
        token: str,
        application_id: str,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_base_url = api_base_url.rstrip("/")
        self.application_id = application_id
        self._token = token
        self._session = session
        self._owns_session = session is None

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers={
                    "Authorization": f"Bot {self._token}",
                    "User-Agent": USER_AGENT,
                },
                timeout=aiohttp.ClientTimeout(total=30),
            )

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def request(
        self, method: str, path: str, json: Optional[Any] = None
    ) -> Optional[Any]:
        """Perform one request and return the decoded JSON body (if any)."""
        if self._session is None:
            await self.start()
        url = f"{self.api_base_url}{path}"
        async with self._session.request(method, url, json=json) as resp:
            if resp.status >= 300:
                body = await resp.text()
                logger.warning(
                    "rest_request_failed",
                    method=method,
                    path=path,
                    status=resp.status,
                    body=body[:200],
                )
                raise PlatformRequestError(
                    f"{method} {path} failed",
                    status=resp.status,
                    body=body[:500],
                )
            if resp.status == 204:
                return None
            if resp.content_type == "application/json":
                return await resp.json()
            return None

    # --- Interactions ---

    async def create_interaction_response(
        self, interaction_id: str, token: str, response_type: int, data: Optional[dict] = None
    ) -> None:
        payload: Dict[str, Any] = {"type": response_type}
        if data is not None:
            payload["data"] = data
        await self.request(
            "POST", f"/interactions/{interaction_id}/{token}/callback", json=payload
        )

    async def edit_original_response(self, token: str, content: str) -> None:
        await self.request(
            "PATCH",
            f"/webhooks/{self.application_id}/{token}/messages/@original",
            json={"content": content},
        )

    async def create_followup(self, token: str, content: str, *, ephemeral: bool = False) -> None:
        await self.request(
            "POST",
            f"/webhooks/{self.application_id}/{token}",
            json=message_body(content, ephemeral=ephemeral),
        )

    # --- Channel messages ---

    async def create_message(
        self, channel_id: str, content: str, reply_to: Optional[str] = None
    ) -> Dict[str, Any]:
        payload = message_body(content)
        if reply_to:
            payload["message_reference"] = {"message_id": reply_to, "fail_if_not_exists": False}
        return await self.request("POST", f"/channels/{channel_id}/messages", json=payload)

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        await self.request("DELETE", f"/channels/{channel_id}/messages/{message_id}")

    # --- Application commands ---

    async def bulk_overwrite_commands(self, commands: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Replace every global command with the given schemas."""
        result = await self.request(
            "PUT", f"/applications/{self.application_id}/commands", json=commands
        )
        return result or []
