"""Counting game: validate every message posted in the counting channel."""

import asyncio
import re
from typing import Iterable, Optional, Set

import structlog

from ..dispatcher import log_task_exception
from ..handlers.definitions import EventDefinition
from ..platform import MESSAGE_CREATE

logger = structlog.get_logger("guildkeeper.commands")

# Seconds before a "counted twice" warning and the offending message vanish
WARNING_LIFETIME = 3.0

TWICE_IN_A_ROW = "You cannot count twice in a row! Please wait for someone else to count."
WRONG_NUMBER = "### Wrong number!\nThe counting has been reset. Please start over by sending the number `1`."

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

_pending: Set[asyncio.Task] = set()


def parse_count(content: str) -> Optional[int]:
    """Leading integer of content ("12 apples" -> 12), or None."""
    match = _LEADING_INT.match(content)
    return int(match.group(1)) if match else None


async def _delete_after(delay: float, messages: Iterable) -> None:
    await asyncio.sleep(delay)
    for message in messages:
        try:
            await message.delete()
        except Exception as e:
            logger.warning("counting_delete_failed", message=message.id, error=str(e))


def _schedule_delete(*messages) -> asyncio.Task:
    task = asyncio.create_task(_delete_after(WARNING_LIFETIME, [m for m in messages if m]))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    task.add_done_callback(log_task_exception)
    return task


async def execute(ctx, message):
    if message.author_is_bot or not message.guild_id:
        return

    store = ctx.database.counting
    counting = await store.get(message.guild_id)
    if counting is None or message.channel_id != counting.channel_id:
        return

    if counting.current_number_by_user_id == message.author_id:
        warning = None
        try:
            warning = await message.reply(TWICE_IN_A_ROW)
        except Exception as e:
            logger.warning("counting_warning_failed", guild=message.guild_id, error=str(e))
        _schedule_delete(message, warning)
        return

    count = parse_count(message.content)
    if count is None or count != counting.current_number + 1:
        if counting.reset_on_fail:
            await store.reset_count(message.guild_id)
            logger.info(
                "counting_failed",
                guild=message.guild_id,
                user=message.author_id,
                reached=counting.current_number,
            )
            await message.reply(WRONG_NUMBER)
        else:
            try:
                await message.delete()
            except Exception as e:
                logger.warning("counting_delete_failed", message=message.id, error=str(e))
        return

    await store.increment(message.guild_id, message.author_id)


definition = EventDefinition(name=MESSAGE_CREATE, execute=execute)
