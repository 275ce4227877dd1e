"""User birthday records."""

from datetime import date
from typing import Any, Optional

from ..exceptions import RecordNotFoundError
from .connection import DatabaseConnection
from .models import GuildBirthday, UserBirthday

_COLUMNS = ("user_id", "birth_date", "timezone", "show_age", "announce_in_guilds_by_default")
_UPDATABLE = frozenset(_COLUMNS) - {"user_id"}
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM user_birthdays WHERE user_id = ?"


def _to_db(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    return value


class BirthdayStore:
    """CRUD for user birthdays."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    async def get(self, user_id: str) -> Optional[UserBirthday]:
        row = await self._db.fetchone(_SELECT, (user_id,), table="user_birthdays")
        return UserBirthday.model_validate(row) if row else None

    async def create(
        self,
        user_id: str,
        birthday: date,
        timezone: str,
        show_age: bool = False,
        announce_in_guilds_by_default: bool = True,
    ) -> UserBirthday:
        """Store a birthday. The user record must exist.

        Raises:
            RecordExistsError: If the user already has a birthday.
        """
        record = UserBirthday(
            user_id=user_id,
            birth_date=birthday,
            timezone=timezone,
            show_age=show_age,
            announce_in_guilds_by_default=announce_in_guilds_by_default,
        )
        await self._db.execute(
            f"INSERT INTO user_birthdays ({', '.join(_COLUMNS)}) VALUES (?, ?, ?, ?, ?)",
            tuple(_to_db(getattr(record, c)) for c in _COLUMNS),
            operation="insert",
            table="user_birthdays",
        )
        return record

    async def update(self, user_id: str, **fields: Any) -> UserBirthday:
        """Update the given columns.

        Raises:
            ValueError: For unknown column names.
            RecordNotFoundError: If the user has no birthday.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown birthday fields: {sorted(unknown)}")

        def _update(conn) -> Optional[dict]:
            if fields:
                assignments = ", ".join(f"{name} = ?" for name in fields)
                params = [_to_db(v) for v in fields.values()] + [user_id]
                conn.execute(f"UPDATE user_birthdays SET {assignments} WHERE user_id = ?", params)
            row = conn.execute(_SELECT, (user_id,)).fetchone()
            return dict(row) if row is not None else None

        row = await self._db.run(_update, operation="update", table="user_birthdays")
        if row is None:
            raise RecordNotFoundError(
                f"Birthday not found for user ID: {user_id}",
                operation="update",
                table="user_birthdays",
            )
        return UserBirthday.model_validate(row)

    async def delete(self, user_id: str) -> None:
        """Remove a birthday.

        Raises:
            RecordNotFoundError: If the user has none.
        """
        count = await self._db.execute(
            "DELETE FROM user_birthdays WHERE user_id = ?",
            (user_id,),
            operation="delete",
            table="user_birthdays",
        )
        if count == 0:
            raise RecordNotFoundError(
                f"Birthday not found for user ID: {user_id}",
                operation="delete",
                table="user_birthdays",
            )


class GuildBirthdayStore:
    """CRUD for per-guild birthday announcement settings."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    async def get(self, guild_id: str) -> Optional[GuildBirthday]:
        row = await self._db.fetchone(
            "SELECT guild_id, channel_id FROM guild_birthdays WHERE guild_id = ?",
            (guild_id,),
            table="guild_birthdays",
        )
        return GuildBirthday.model_validate(row) if row else None

    async def create(self, guild_id: str, channel_id: str) -> GuildBirthday:
        """Store the announcement channel. The guild record must exist.

        Raises:
            RecordExistsError: If the guild is already configured.
        """
        await self._db.execute(
            "INSERT INTO guild_birthdays (guild_id, channel_id) VALUES (?, ?)",
            (guild_id, channel_id),
            operation="insert",
            table="guild_birthdays",
        )
        return GuildBirthday(guild_id=guild_id, channel_id=channel_id)

    async def update(self, guild_id: str, channel_id: str) -> GuildBirthday:
        """Move announcements to another channel.

        Raises:
            RecordNotFoundError: If the guild is not configured.
        """
        count = await self._db.execute(
            "UPDATE guild_birthdays SET channel_id = ? WHERE guild_id = ?",
            (channel_id, guild_id),
            operation="update",
            table="guild_birthdays",
        )
        if count == 0:
            raise RecordNotFoundError(
                f"Birthday configuration not found for guild ID: {guild_id}",
                operation="update",
                table="guild_birthdays",
            )
        return GuildBirthday(guild_id=guild_id, channel_id=channel_id)

    async def delete(self, guild_id: str) -> None:
        count = await self._db.execute(
            "DELETE FROM guild_birthdays WHERE guild_id = ?",
            (guild_id,),
            operation="delete",
            table="guild_birthdays",
        )
        if count == 0:
            raise RecordNotFoundError(
                f"Birthday configuration not found for guild ID: {guild_id}",
                operation="delete",
                table="guild_birthdays",
            )
