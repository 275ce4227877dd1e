"""Per-command, per-user cooldown tracking.

Enforces "at most one invocation of command C by user U per cooldown
window". The ledger maps command name -> user id -> entry holding the
last accepted invocation time (epoch milliseconds) and its window.

Expiry is lazy: an entry whose window has elapsed is treated as absent
on the next check and overwritten. A background sweeper (optional)
deletes expired entries so one-time users do not accumulate; because
it compares timestamps instead of firing a delete per invocation, it
can never clear a cooldown that is still running.

check_and_record() reads and writes the ledger without awaiting, which
is what makes it safe against concurrent invocations on one event loop.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

import structlog

logger = structlog.get_logger("guildkeeper.dispatch")


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Allowed:
    """The invocation may proceed."""

    @property
    def allowed(self) -> bool:
        return True


@dataclass(frozen=True)
class Blocked:
    """The user is still on cooldown.

    Attributes:
        retry_at: Epoch milliseconds at which the user may retry.
    """
    retry_at: int

    @property
    def allowed(self) -> bool:
        return False


CooldownDecision = Union[Allowed, Blocked]

_ALLOWED = Allowed()


@dataclass
class _Entry:
    timestamp: int
    window_ms: int

    @property
    def expires_at(self) -> int:
        return self.timestamp + self.window_ms


class CooldownTracker:
    """In-memory cooldown ledger.

    Args:
        clock: Returns the current time in epoch milliseconds. Injected
            by tests; defaults to the wall clock.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self._clock = clock or _wall_clock_ms
        self._ledger: Dict[str, Dict[str, _Entry]] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    def now(self) -> int:
        return self._clock()

    def check_and_record(
        self,
        command_name: str,
        user_id: str,
        cooldown_seconds: float,
        now: Optional[int] = None,
    ) -> CooldownDecision:
        """Gate one invocation and record it if allowed.

        Args:
            command_name: Command being invoked.
            user_id: Invoking user.
            cooldown_seconds: Window length; ``<= 0`` disables the gate.
            now: Current epoch milliseconds (defaults to the clock).

        Returns:
            Allowed, or Blocked carrying the exact retry instant.
        """
        if cooldown_seconds <= 0:
            return _ALLOWED
        if now is None:
            now = self._clock()
        window_ms = int(cooldown_seconds * 1000)

        timestamps = self._ledger.setdefault(command_name, {})
        entry = timestamps.get(user_id)
        if entry is not None and now < entry.timestamp + window_ms:
            return Blocked(retry_at=entry.timestamp + window_ms)

        timestamps[user_id] = _Entry(timestamp=now, window_ms=window_ms)
        return _ALLOWED

    def remaining(self, command_name: str, user_id: str, now: Optional[int] = None) -> int:
        """Milliseconds left on a user's cooldown (0 when not on cooldown)."""
        entry = self._ledger.get(command_name, {}).get(user_id)
        if entry is None:
            return 0
        if now is None:
            now = self._clock()
        return max(0, entry.expires_at - now)

    def reset(self, command_name: Optional[str] = None) -> None:
        """Forget cooldowns for one command, or for all of them."""
        if command_name is None:
            self._ledger.clear()
        else:
            self._ledger.pop(command_name, None)

    def purge_expired(self, now: Optional[int] = None) -> int:
        """Delete entries whose window has elapsed.

        Returns:
            Number of entries removed.
        """
        if now is None:
            now = self._clock()
        removed = 0
        for command_name in list(self._ledger):
            timestamps = self._ledger[command_name]
            expired = [uid for uid, e in timestamps.items() if e.expires_at <= now]
            for uid in expired:
                del timestamps[uid]
            removed += len(expired)
            if not timestamps:
                del self._ledger[command_name]
        return removed

    def __len__(self) -> int:
        return sum(len(t) for t in self._ledger.values())

    # --- Background sweeper ---

    def start_sweeper(self, interval_seconds: float) -> None:
        """Purge expired entries every ``interval_seconds`` on the running loop."""
        self.stop_sweeper()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("cooldown_sweeper_no_loop")
            return
        self._sweep_task = loop.create_task(self._sweep_forever(interval_seconds))

    def stop_sweeper(self) -> None:
        """Cancel the sweeper (for shutdown)."""
        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
        self._sweep_task = None

    async def _sweep_forever(self, interval_seconds: float) -> None:
        try:
            while True:
                await asyncio.sleep(interval_seconds)
                removed = self.purge_expired()
                if removed:
                    logger.debug("cooldown_entries_purged", removed=removed, live=len(self))
        except asyncio.CancelledError:
            pass
