"""Logging configuration for guildkeeper.

Every module logs through ``structlog.get_logger("guildkeeper.<name>")``.
Those loggers sit on top of stdlib logging, which routes each record to
the console, to the combined ``guildkeeper.log`` and to one rotating
file per subsystem:

    guildkeeper.bot       bot.log       lifecycle, reloads, registration
    guildkeeper.dispatch  dispatch.log  routing, cooldowns, handler failures
    guildkeeper.gateway   gateway.log   websocket session and REST calls
    guildkeeper.database  database.log  SQLite
    guildkeeper.commands  commands.log  shipped commands and events

Bot tokens and interaction tokens are scrubbed from every event before
it is rendered.
"""

import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Any, Dict, NamedTuple

import structlog

SUBSYSTEMS = ("bot", "dispatch", "gateway", "database", "commands")

LOGGER_PREFIX = "guildkeeper"

_REDACTED = "***REDACTED***"

_TOKEN_PATTERNS = (
    re.compile(r"Bot\s+[A-Za-z0-9_.-]{20,}"),
    re.compile(r"Bearer\s+[A-Za-z0-9_./-]{20,}"),
    # user id . timestamp . hmac
    re.compile(r"[A-Za-z0-9_-]{23,28}\.[A-Za-z0-9_-]{6,7}\.[A-Za-z0-9_-]{27,}"),
)

# /interactions/<id>/<token>/callback and /webhooks/<app>/<token>/...
_PATH_TOKEN = re.compile(r"(/(?:interactions/\d+|webhooks/\d+)/)[A-Za-z0-9_.-]{20,}")


def _scrub(text: str) -> str:
    for pattern in _TOKEN_PATTERNS:
        text = pattern.sub(_REDACTED, text)
    return _PATH_TOKEN.sub(lambda m: m.group(1) + _REDACTED, text)


def _scrub_any(value: Any) -> Any:
    if isinstance(value, str):
        return _scrub(value)
    if isinstance(value, (list, tuple)):
        return type(value)(_scrub(v) if isinstance(v, str) else v for v in value)
    if isinstance(value, dict):
        return {k: _scrub(v) if isinstance(v, str) else v for k, v in value.items()}
    return value


def sanitize_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """structlog processor that redacts bot and interaction tokens.

    String values are scrubbed directly; lists, tuples and dicts are
    scrubbed one level deep.
    """
    for key in list(event_dict):
        event_dict[key] = _scrub_any(event_dict[key])
    return event_dict


class _Settings(NamedTuple):
    log_dir: Path
    level: int
    subsystem_levels: Dict[str, str]
    max_bytes: int
    backup_count: int
    cache_loggers: bool


def _level(name: str, default: int) -> int:
    return getattr(logging, name.upper(), default) if name else default


def _settings(config) -> _Settings:
    if config is None:
        # Before the config is loaded: repo-local logs/, nothing cached
        return _Settings(
            log_dir=Path(__file__).parent.parent / "logs",
            level=logging.INFO,
            subsystem_levels={},
            max_bytes=10 * 1024 * 1024,
            backup_count=5,
            cache_loggers=False,
        )
    return _Settings(
        log_dir=config.log_dir,
        level=_level(config.logging_level, logging.INFO),
        subsystem_levels=config.logging_subsystem_levels,
        max_bytes=config.logging_max_file_size_mb * 1024 * 1024,
        backup_count=config.logging_backup_count,
        cache_loggers=True,
    )


def _fresh_logger(name: str, level: int) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = True
    return logger


def _file_handler(path: Path, level: int, settings: _Settings, formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=settings.max_bytes,
        backupCount=settings.backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(config=None) -> None:
    """Configure stdlib handlers and structlog.

    Called twice by the entry points: once with no config so that import
    time logging works, and again with the loaded Config, which also
    turns on logger caching.

    A log directory that cannot be created leaves console logging only.
    """
    settings = _settings(config)

    try:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        write_files = True
    except OSError as exc:
        print(
            f"WARNING: Cannot create log directory {settings.log_dir}: {exc}. "
            "Logging to the console only.",
            file=sys.stderr,
        )
        write_files = False

    file_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
    )

    # Handlers do the level filtering; the root passes everything
    root = _fresh_logger("", logging.DEBUG)
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(settings.level)
    console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    root.addHandler(console)

    combined = _fresh_logger(LOGGER_PREFIX, logging.DEBUG)
    if write_files:
        combined.addHandler(
            _file_handler(settings.log_dir / f"{LOGGER_PREFIX}.log", settings.level, settings, file_formatter)
        )

    for subsystem in SUBSYSTEMS:
        level = _level(settings.subsystem_levels.get(subsystem, ""), settings.level)
        logger = _fresh_logger(f"{LOGGER_PREFIX}.{subsystem}", level)
        if write_files:
            logger.addHandler(
                _file_handler(settings.log_dir / f"{subsystem}.log", level, settings, file_formatter)
            )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            sanitize_secrets,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=settings.cache_loggers,
    )
