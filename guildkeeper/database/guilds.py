"""Guild and user records."""

from datetime import datetime
from typing import Optional

from ..exceptions import RecordExistsError
from .connection import DatabaseConnection
from .models import Guild, User


class GuildStore:
    """CRUD for guild records."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    async def get(self, guild_id: str) -> Optional[Guild]:
        row = await self._db.fetchone(
            "SELECT guild_id, created_at FROM guilds WHERE guild_id = ?",
            (guild_id,),
            table="guilds",
        )
        return Guild.model_validate(row) if row else None

    async def create(self, guild_id: str) -> Guild:
        """Insert a new guild.

        Raises:
            RecordExistsError: If the guild is already stored.
        """
        guild = Guild(guild_id=guild_id)
        await self._db.execute(
            "INSERT INTO guilds (guild_id, created_at) VALUES (?, ?)",
            (guild.guild_id, guild.created_at.isoformat()),
            operation="insert",
            table="guilds",
        )
        return guild

    async def get_or_create(self, guild_id: str) -> Guild:
        """Return the guild, creating it first if missing. Idempotent."""
        now = datetime.now().isoformat()

        def _upsert(conn) -> dict:
            conn.execute(
                "INSERT OR IGNORE INTO guilds (guild_id, created_at) VALUES (?, ?)",
                (guild_id, now),
            )
            return dict(conn.execute(
                "SELECT guild_id, created_at FROM guilds WHERE guild_id = ?",
                (guild_id,),
            ).fetchone())

        row = await self._db.run(_upsert, operation="upsert", table="guilds")
        return Guild.model_validate(row)

    async def delete(self, guild_id: str) -> bool:
        """Delete a guild and everything that cascades from it."""
        count = await self._db.execute(
            "DELETE FROM guilds WHERE guild_id = ?",
            (guild_id,),
            operation="delete",
            table="guilds",
        )
        return count > 0


class UserStore:
    """CRUD for user records."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    async def get(self, user_id: str) -> Optional[User]:
        row = await self._db.fetchone(
            "SELECT user_id, created_at FROM users WHERE user_id = ?",
            (user_id,),
            table="users",
        )
        return User.model_validate(row) if row else None

    async def get_or_create(self, user_id: str) -> User:
        """Return the user, creating it first if missing. Idempotent."""
        user = User(user_id=user_id)
        try:
            await self._db.execute(
                "INSERT INTO users (user_id, created_at) VALUES (?, ?)",
                (user.user_id, user.created_at.isoformat()),
                operation="insert",
                table="users",
            )
        except RecordExistsError:
            existing = await self.get(user_id)
            if existing is not None:
                return existing
            raise
        return user
