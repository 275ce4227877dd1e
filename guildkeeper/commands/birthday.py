"""/birthday -- store a birthday and announcement preferences.

Subcommands: setup, edit, info, reset. The timezone option offers
autocomplete over the IANA names known to zoneinfo.
"""

from datetime import date, datetime
from functools import lru_cache
from typing import Dict, Optional, Tuple
from zoneinfo import available_timezones

import structlog

from ..exceptions import RecordExistsError
from ..handlers.definitions import CommandDefinition
from ..platform import (
    CONTEXT_BOT_DM,
    CONTEXT_GUILD,
    CONTEXT_PRIVATE_CHANNEL,
    INTEGRATION_GUILD_INSTALL,
    INTEGRATION_USER_INSTALL,
    MAX_AUTOCOMPLETE_CHOICES,
    OPTION_BOOLEAN,
    OPTION_STRING,
    OPTION_SUB_COMMAND,
)

logger = structlog.get_logger("guildkeeper.commands")

NOT_SET = "No birthday is set\nUse setup to create one."
ALREADY_SET = "A birthday is already set\nUse edit to change it or reset to delete it."
INVALID_TIMEZONE = "Invalid timezone\nPlease use a valid timezone (e.g. Europe/Berlin)."
INVALID_DATE = "Invalid date format\nPlease use YYYY-MM-DD."
FUTURE_DATE = "Invalid date\nYour birthday cannot be in the future."


@lru_cache(maxsize=1)
def _timezones() -> Tuple[str, ...]:
    return tuple(sorted(available_timezones()))


@lru_cache(maxsize=1)
def _timezone_lookup() -> Dict[str, str]:
    return {tz.lower(): tz for tz in _timezones()}


def resolve_timezone(value: str) -> Optional[str]:
    """Return the canonical IANA name for value (case-insensitive), or None."""
    return _timezone_lookup().get(value.strip().lower())


def parse_birth_date(value: str, today: Optional[date] = None) -> date:
    """Parse YYYY-MM-DD.

    Raises:
        ValueError: If the text is not a valid calendar date or lies in
            the future.
    """
    parsed = datetime.strptime(value.strip(), "%Y-%m-%d").date()
    if parsed > (today or date.today()):
        raise ValueError("date is in the future")
    return parsed


def _date_error(value: str) -> Optional[str]:
    try:
        parse_birth_date(value)
    except ValueError as e:
        return FUTURE_DATE if "future" in str(e) else INVALID_DATE
    return None


def format_birth_date(value: date, today: Optional[date] = None) -> str:
    """"March 5" for the current year, "March 5, 1990" otherwise."""
    text = f"{value.strftime('%B')} {value.day}"
    if value.year != (today or date.today()).year:
        text += f", {value.year}"
    return text


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


async def autocomplete(ctx, interaction):
    name, typed = interaction.focused
    if name != "timezone":
        return
    needle = typed.lower()
    matches = [tz for tz in _timezones() if needle in tz.lower()][:MAX_AUTOCOMPLETE_CHOICES]
    await interaction.respond([{"name": tz, "value": tz} for tz in matches])


async def execute(ctx, interaction):
    handler = _SUBCOMMANDS.get(interaction.subcommand)
    if handler is None:
        await interaction.reply(
            "### Unknown subcommand\nPlease use one of the following: `setup`, `edit`, `info`, `reset`.",
            ephemeral=True,
        )
        return
    await interaction.defer_reply(ephemeral=True)
    await handler(ctx, interaction)


async def handle_setup(ctx, interaction):
    db = ctx.database
    user_id = interaction.user_id
    if await db.birthdays.get(user_id):
        await interaction.edit_reply(ALREADY_SET)
        return

    timezone = resolve_timezone(str(interaction.options["timezone"]))
    if timezone is None:
        await interaction.edit_reply(INVALID_TIMEZONE)
        return

    raw_date = str(interaction.options["date"])
    error = _date_error(raw_date)
    if error:
        await interaction.edit_reply(error)
        return

    show_age = bool(interaction.options.get("show-age", False))
    announce = interaction.options.get("announce-in-guilds-by-default")

    await db.users.get_or_create(user_id)
    try:
        await db.birthdays.create(
            user_id,
            parse_birth_date(raw_date),
            timezone,
            show_age=show_age,
            announce_in_guilds_by_default=True if announce is None else bool(announce),
        )
    except RecordExistsError:
        # Lost a race with a concurrent setup from the same user
        await interaction.edit_reply(ALREADY_SET)
        return

    logger.info("birthday_created", user=user_id, timezone=timezone)
    await interaction.edit_reply("Your birthday has been set successfully! \N{PARTY POPPER}")


async def handle_edit(ctx, interaction):
    store = ctx.database.birthdays
    user_id = interaction.user_id
    current = await store.get(user_id)
    if current is None:
        await interaction.edit_reply(NOT_SET)
        return

    options = interaction.options
    raw_date = options.get("date")
    raw_timezone = options.get("timezone")
    show_age = options.get("show-age")
    announce = options.get("announce-in-guilds-by-default")
    if not raw_date and not raw_timezone and show_age is None and announce is None:
        await interaction.edit_reply("No changes provided\nPlease provide at least one option to change.")
        return

    changes = {}
    if raw_timezone:
        timezone = resolve_timezone(str(raw_timezone))
        if timezone is None:
            await interaction.edit_reply(INVALID_TIMEZONE)
            return
        changes["timezone"] = timezone
    if raw_date:
        error = _date_error(str(raw_date))
        if error:
            await interaction.edit_reply(error)
            return
        changes["birth_date"] = parse_birth_date(str(raw_date))
    if show_age is not None:
        changes["show_age"] = bool(show_age)
    if announce is not None:
        changes["announce_in_guilds_by_default"] = bool(announce)

    await store.update(user_id, **changes)
    logger.info("birthday_updated", user=user_id, fields=sorted(changes))
    await interaction.edit_reply("Your birthday has been updated successfully! \N{PARTY POPPER}")


async def handle_info(ctx, interaction):
    current = await ctx.database.birthdays.get(interaction.user_id)
    if current is None:
        await interaction.edit_reply(NOT_SET)
        return

    await interaction.edit_reply(
        "### Your Birthday Information\n"
        f"- **Date:** {format_birth_date(current.birth_date)}\n"
        f"- **Timezone:** {current.timezone}\n"
        f"- **Show Age:** {_yes_no(current.show_age)}\n"
        f"- **Announce in Guilds by Default:** {_yes_no(current.announce_in_guilds_by_default)}"
    )


async def handle_reset(ctx, interaction):
    store = ctx.database.birthdays
    if await store.get(interaction.user_id) is None:
        await interaction.edit_reply(NOT_SET)
        return

    await store.delete(interaction.user_id)
    logger.info("birthday_deleted", user=interaction.user_id)
    await interaction.edit_reply("Your birthday has been deleted successfully.")


_SUBCOMMANDS = {
    "setup": handle_setup,
    "edit": handle_edit,
    "info": handle_info,
    "reset": handle_reset,
}


def _date_option(required: bool) -> dict:
    return {
        "type": OPTION_STRING,
        "name": "date",
        "description": "Your birthday (YYYY-MM-DD)",
        "required": required,
    }


def _timezone_option(required: bool) -> dict:
    return {
        "type": OPTION_STRING,
        "name": "timezone",
        "description": "Your timezone (e.g. Europe/Berlin)",
        "autocomplete": True,
        "required": required,
    }


def _show_age_option(required: bool) -> dict:
    return {
        "type": OPTION_BOOLEAN,
        "name": "show-age",
        "description": "Whether to show your age when announcing your birthday.",
        "required": required,
    }


_ANNOUNCE_OPTION = {
    "type": OPTION_BOOLEAN,
    "name": "announce-in-guilds-by-default",
    "description": "Whether to announce your birthday in guilds by default.",
    "required": False,
}


definition = CommandDefinition(
    schema={
        "name": "birthday",
        "description": "Manage your birthday and get birthday announcements.",
        "contexts": [CONTEXT_GUILD, CONTEXT_BOT_DM, CONTEXT_PRIVATE_CHANNEL],
        "integration_types": [INTEGRATION_GUILD_INSTALL, INTEGRATION_USER_INSTALL],
        "options": [
            {
                "type": OPTION_SUB_COMMAND,
                "name": "setup",
                "description": "Set your birthday.",
                "options": [
                    _date_option(True),
                    _timezone_option(True),
                    _show_age_option(True),
                    _ANNOUNCE_OPTION,
                ],
            },
            {
                "type": OPTION_SUB_COMMAND,
                "name": "edit",
                "description": "Edit your birthday configuration.",
                "options": [
                    _date_option(False),
                    _timezone_option(False),
                    _show_age_option(False),
                    _ANNOUNCE_OPTION,
                ],
            },
            {
                "type": OPTION_SUB_COMMAND,
                "name": "info",
                "description": "Show your birthday configuration.",
            },
            {
                "type": OPTION_SUB_COMMAND,
                "name": "reset",
                "description": "Delete your birthday from the configuration.",
            },
        ],
    },
    execute=execute,
    autocomplete=autocomplete,
)
