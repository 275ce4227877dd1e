"""SQLite persistence for guildkeeper.

Database bundles one DatabaseConnection with the record stores that
share it. All statements run in worker threads, so the stores are
safe to await from handlers.
"""

from pathlib import Path

from .birthdays import BirthdayStore, GuildBirthdayStore
from .connection import DatabaseConnection
from .counting import CountingStore
from .guilds import GuildStore, UserStore
from .models import Counting, Guild, GuildBirthday, User, UserBirthday


class Database:
    """Connection plus record stores.

    Args:
        db_path: SQLite file path (``":memory:"`` for tests).
    """

    def __init__(self, db_path: Path):
        self.connection = DatabaseConnection(db_path)
        self.guilds = GuildStore(self.connection)
        self.users = UserStore(self.connection)
        self.counting = CountingStore(self.connection)
        self.birthdays = BirthdayStore(self.connection)
        self.guild_birthdays = GuildBirthdayStore(self.connection)

    async def initialize(self) -> None:
        await self.connection.initialize()

    async def close(self) -> None:
        await self.connection.close()


__all__ = [
    "BirthdayStore",
    "Counting",
    "CountingStore",
    "Database",
    "DatabaseConnection",
    "Guild",
    "GuildBirthday",
    "GuildBirthdayStore",
    "GuildStore",
    "User",
    "UserBirthday",
    "UserStore",
]
