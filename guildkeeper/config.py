"""Configuration management for guildkeeper.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a typed Config object. Property getters provide safe access with
sensible defaults for every subsystem: platform connection, database,
cooldowns, definition discovery, and logging.

Key classes:
    Config: Central configuration manager.

Key functions:
    get_config: Singleton accessor for the global Config instance.
"""

import os
from pathlib import Path
from typing import List, Optional

import structlog
import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = structlog.get_logger("guildkeeper.bot")

# Guilds (1 << 0) + guild messages (1 << 9) + message content (1 << 15)
DEFAULT_INTENTS = (1 << 0) | (1 << 9) | (1 << 15)


class Config:
    """Central configuration manager for guildkeeper.

    Loads settings.yaml and .env from the config directory. Provides
    typed property accessors for every configurable subsystem. No
    mutation after __init__.

    Args:
        config_dir: Path to the config directory. Defaults to
            ``<repo_root>/config/``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            config_dir = Path(__file__).parent.parent / "config"
        self.config_dir = Path(config_dir)

        # Load environment variables
        env_file = self.config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings = self._load_yaml("settings.yaml")

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if filepath.exists():
            with open(filepath, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        return {}

    def _section(self, name: str) -> dict:
        section = self.settings.get(name, {})
        if not isinstance(section, dict):
            logger.error("config_section_invalid_type", section=name, type=type(section).__name__)
            return {}
        return section

    def validate(self):
        """Validate critical settings at startup.

        Logs warnings/errors but does not raise -- the bot starts in
        degraded mode and the gateway refuses to connect without a token.
        """
        if not self.discord_token:
            logger.warning("no_discord_token", msg="Set DISCORD_TOKEN in config/.env")
        if not self.application_id:
            logger.warning("no_application_id", msg="Set DISCORD_ID or discord.application_id")

        for directory in self.extra_definition_dirs:
            if not directory.is_dir():
                logger.warning("definition_dir_missing", path=str(directory))

    def require_credentials(self) -> None:
        """Raise ConfigurationError unless token and application id are set."""
        if not self.discord_token:
            raise ConfigurationError(
                "DISCORD_TOKEN is not set in the environment variables.",
                setting_name="DISCORD_TOKEN",
            )
        if not self.application_id:
            raise ConfigurationError(
                "DISCORD_ID is not set in the environment variables.",
                setting_name="DISCORD_ID",
            )

    # Platform connection
    @property
    def discord_token(self) -> str:
        """Bot token. Only ever read from the environment."""
        return os.environ.get("DISCORD_TOKEN", "")

    @property
    def application_id(self) -> str:
        """Application id. Env var DISCORD_ID takes precedence."""
        return os.environ.get("DISCORD_ID") or str(
            self._section("discord").get("application_id", "")
        )

    @property
    def api_base_url(self) -> str:
        """REST API base URL including the version segment."""
        return self._section("discord").get("api_base_url", "https://discord.com/api/v10").rstrip("/")

    @property
    def gateway_url(self) -> str:
        """Gateway websocket URL."""
        return self._section("discord").get(
            "gateway_url", "wss://gateway.discord.gg/?v=10&encoding=json"
        )

    @property
    def intents(self) -> int:
        """Gateway intents bitfield (default guilds + messages + content)."""
        val = self._section("discord").get("intents", DEFAULT_INTENTS)
        try:
            return int(val)
        except (ValueError, TypeError):
            logger.warning("config_invalid_intents", value=val)
            return DEFAULT_INTENTS

    @property
    def register_commands_on_start(self) -> bool:
        """Whether to publish command schemas every time the bot starts."""
        return bool(self._section("discord").get("register_commands_on_start", False))

    # Database
    @property
    def database_path(self) -> Path:
        """SQLite database file path."""
        configured = self._section("database").get("path")
        if configured:
            return Path(configured).expanduser()
        return self.config_dir.parent / "data" / "guildkeeper.db"

    # Cooldowns
    @property
    def cooldown_sweep_interval(self) -> float:
        """Seconds between sweeps of expired cooldown entries (default 60)."""
        val = self._section("cooldowns").get("sweep_interval_seconds", 60)
        try:
            return max(1.0, float(val))
        except (ValueError, TypeError):
            logger.warning("config_invalid_sweep_interval", value=val)
            return 60.0

    # Definition discovery
    @property
    def extra_definition_dirs(self) -> List[Path]:
        """Additional directories scanned for command/event definition files."""
        dirs = self._section("definitions").get("extra_dirs", [])
        if not isinstance(dirs, list):
            logger.error("extra_dirs_invalid_type", type=type(dirs).__name__)
            return []
        return [Path(d).expanduser() for d in dirs]

    # Logging
    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return self.config_dir.parent / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        return self._section("logging").get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"dispatch": "DEBUG"}."""
        return self._section("logging").get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        return self._section("logging").get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        return self._section("logging").get("backup_count", 5)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
