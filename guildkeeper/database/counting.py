"""Counting game records."""

from datetime import datetime
from typing import Any, Optional

from ..exceptions import RecordNotFoundError
from .connection import DatabaseConnection
from .models import Counting

_COLUMNS = (
    "guild_id", "channel_id", "reset_on_fail", "current_number",
    "current_number_by_user_id", "current_number_at", "highest_number",
    "highest_number_by_user_id", "highest_number_at",
)
_UPDATABLE = frozenset(_COLUMNS) - {"guild_id"}
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM counting WHERE guild_id = ?"


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    return value


class CountingStore:
    """CRUD for per-guild counting game state."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    async def get(self, guild_id: str) -> Optional[Counting]:
        """Return the counting configuration, or None if the guild has none."""
        row = await self._db.fetchone(_SELECT, (guild_id,), table="counting")
        return Counting.model_validate(row) if row else None

    async def create(self, guild_id: str, channel_id: str, reset_on_fail: bool = False) -> Counting:
        """Create a counting configuration.

        Raises:
            RecordExistsError: If the guild already has one.
        """
        counting = Counting(guild_id=guild_id, channel_id=channel_id, reset_on_fail=reset_on_fail)
        await self._db.execute(
            "INSERT INTO counting (guild_id, channel_id, reset_on_fail) VALUES (?, ?, ?)",
            (guild_id, channel_id, int(reset_on_fail)),
            operation="insert",
            table="counting",
        )
        return counting

    async def update(self, guild_id: str, **fields: Any) -> Counting:
        """Update the given columns.

        Raises:
            ValueError: For unknown column names.
            RecordNotFoundError: If the guild has no configuration.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown counting fields: {sorted(unknown)}")

        def _update(conn) -> Optional[dict]:
            if fields:
                assignments = ", ".join(f"{name} = ?" for name in fields)
                params = [_to_db(v) for v in fields.values()] + [guild_id]
                conn.execute(f"UPDATE counting SET {assignments} WHERE guild_id = ?", params)
            row = conn.execute(_SELECT, (guild_id,)).fetchone()
            return dict(row) if row is not None else None

        row = await self._db.run(_update, operation="update", table="counting")
        if row is None:
            raise RecordNotFoundError(
                f"Counting configuration not found for guild ID: {guild_id}",
                operation="update",
                table="counting",
            )
        return Counting.model_validate(row)

    async def delete(self, guild_id: str) -> None:
        """Remove the configuration.

        Raises:
            RecordNotFoundError: If the guild has none.
        """
        count = await self._db.execute(
            "DELETE FROM counting WHERE guild_id = ?",
            (guild_id,),
            operation="delete",
            table="counting",
        )
        if count == 0:
            raise RecordNotFoundError(
                f"Counting configuration not found for guild ID: {guild_id}",
                operation="delete",
                table="counting",
            )

    async def reset_count(self, guild_id: str) -> Counting:
        """Start over from zero, keeping the configuration and the record."""
        return await self.update(
            guild_id,
            current_number=0,
            current_number_by_user_id=None,
            current_number_at=None,
        )

    async def increment(self, guild_id: str, user_id: str) -> Counting:
        """Advance the count by one on behalf of user_id.

        Read and write happen in one transaction. The highest number (and
        who reached it, and when) moves along when the new count beats it.

        Raises:
            RecordNotFoundError: If the guild has no configuration.
        """
        now = datetime.now().isoformat()

        def _increment(conn) -> Optional[dict]:
            row = conn.execute(_SELECT, (guild_id,)).fetchone()
            if row is None:
                return None
            new_count = row["current_number"] + 1
            highest = row["highest_number"] or 0
            is_higher = new_count > highest
            conn.execute(
                """
                UPDATE counting SET
                    current_number = ?,
                    current_number_at = ?,
                    current_number_by_user_id = ?,
                    highest_number = ?,
                    highest_number_at = ?,
                    highest_number_by_user_id = ?
                WHERE guild_id = ?
                """,
                (
                    new_count,
                    now,
                    user_id,
                    max(highest, new_count),
                    now if is_higher else row["highest_number_at"],
                    user_id if is_higher else row["highest_number_by_user_id"],
                    guild_id,
                ),
            )
            return dict(conn.execute(_SELECT, (guild_id,)).fetchone())

        row = await self._db.run(_increment, operation="update", table="counting")
        if row is None:
            raise RecordNotFoundError(
                f"Counting configuration not found for guild ID: {guild_id}",
                operation="increment",
                table="counting",
            )
        return Counting.model_validate(row)
