"""Pydantic models for persisted records."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


class Guild(BaseModel):
    """A server the bot has seen at least one command in."""

    guild_id: str
    created_at: datetime = Field(default_factory=datetime.now)


class User(BaseModel):
    """A user the bot stores data for."""

    user_id: str
    created_at: datetime = Field(default_factory=datetime.now)


class Counting(BaseModel):
    """Counting game state for one guild."""

    guild_id: str
    channel_id: str
    reset_on_fail: bool = False
    current_number: int = 0
    current_number_by_user_id: Optional[str] = None
    current_number_at: Optional[datetime] = None
    highest_number: int = 0
    highest_number_by_user_id: Optional[str] = None
    highest_number_at: Optional[datetime] = None


class UserBirthday(BaseModel):
    """A user's birthday and announcement preferences."""

    user_id: str
    birth_date: date
    timezone: str = Field(..., description="IANA timezone name")
    show_age: bool = False
    announce_in_guilds_by_default: bool = True


class GuildBirthday(BaseModel):
    """Where a guild wants birthday announcements posted."""

    guild_id: str
    channel_id: str
