"""In-memory stand-ins for platform objects used across the test suite."""

from typing import Any, Dict, List, Optional, Tuple


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeInteraction:
    """Records every acknowledgment sent for one command invocation."""

    def __init__(
        self,
        command_name: str,
        user_id: str = "user-1",
        guild_id: Optional[str] = "guild-1",
        channel_id: Optional[str] = "channel-1",
        subcommand: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
        fail_on_reply: bool = False,
    ):
        self.id = f"interaction-{command_name}"
        self.command_name = command_name
        self.user_id = user_id
        self.guild_id = guild_id
        self.channel_id = channel_id
        self.subcommand = subcommand
        self.options = options or {}
        self.replied = False
        self.deferred = False
        self.fail_on_reply = fail_on_reply
        # (kind, content, ephemeral)
        self.sent: List[Tuple[str, Optional[str], bool]] = []

    async def reply(self, content: str, *, ephemeral: bool = False) -> None:
        if self.fail_on_reply:
            raise RuntimeError("interaction expired")
        if self.replied or self.deferred:
            raise RuntimeError("interaction already acknowledged")
        self.sent.append(("reply", content, ephemeral))
        self.replied = True

    async def defer_reply(self, *, ephemeral: bool = False) -> None:
        if self.replied or self.deferred:
            raise RuntimeError("interaction already acknowledged")
        self.sent.append(("defer", None, ephemeral))
        self.deferred = True

    async def edit_reply(self, content: str) -> None:
        self.sent.append(("edit", content, False))
        self.replied = True

    async def follow_up(self, content: str, *, ephemeral: bool = False) -> None:
        self.sent.append(("follow_up", content, ephemeral))

    @property
    def last_content(self) -> Optional[str]:
        return self.sent[-1][1] if self.sent else None


class FakeAutocomplete:
    def __init__(
        self,
        command_name: str,
        focused: Tuple[str, str],
        user_id: str = "user-1",
        guild_id: Optional[str] = "guild-1",
        subcommand: Optional[str] = None,
    ):
        self.command_name = command_name
        self.user_id = user_id
        self.guild_id = guild_id
        self.subcommand = subcommand
        self.options = {focused[0]: focused[1]}
        self.focused = focused
        self.responses: List[List[Dict[str, Any]]] = []

    async def respond(self, choices):
        self.responses.append(list(choices))


class FakeMessage:
    """A channel message that remembers replies and deletion."""

    _next_id = 0

    def __init__(
        self,
        content: str,
        author_id: str = "user-1",
        guild_id: Optional[str] = "guild-1",
        channel_id: str = "count-channel",
        author_is_bot: bool = False,
    ):
        FakeMessage._next_id += 1
        self.id = f"message-{FakeMessage._next_id}"
        self.content = content
        self.author_id = author_id
        self.author_is_bot = author_is_bot
        self.guild_id = guild_id
        self.channel_id = channel_id
        self.replies: List["FakeMessage"] = []
        self.deleted = False

    async def reply(self, content: str) -> "FakeMessage":
        message = FakeMessage(
            content,
            author_id="bot",
            guild_id=self.guild_id,
            channel_id=self.channel_id,
            author_is_bot=True,
        )
        self.replies.append(message)
        return message

    async def delete(self) -> None:
        self.deleted = True
