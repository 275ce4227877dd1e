"""Tests for settings.yaml / .env configuration loading."""

import textwrap
from pathlib import Path

import pytest

from guildkeeper.config import DEFAULT_INTENTS, Config
from guildkeeper.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so teardown also removes values loaded from .env files
    monkeypatch.setenv("DISCORD_TOKEN", "")
    monkeypatch.setenv("DISCORD_ID", "")
    monkeypatch.delenv("DISCORD_TOKEN", raising=False)
    monkeypatch.delenv("DISCORD_ID", raising=False)


def _config(tmp_path, yaml_text="", env_text=None):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "settings.yaml").write_text(textwrap.dedent(yaml_text))
    if env_text is not None:
        (config_dir / ".env").write_text(env_text)
    return Config(config_dir)


def test_defaults(tmp_path):
    config = _config(tmp_path)
    assert config.discord_token == ""
    assert config.application_id == ""
    assert config.api_base_url == "https://discord.com/api/v10"
    assert config.gateway_url.startswith("wss://")
    assert config.intents == DEFAULT_INTENTS == 33281
    assert config.register_commands_on_start is False
    assert config.database_path == tmp_path / "data" / "guildkeeper.db"
    assert config.cooldown_sweep_interval == 60.0
    assert config.extra_definition_dirs == []
    assert config.log_dir == tmp_path / "logs"
    assert config.logging_level == "INFO"


def test_yaml_values(tmp_path):
    config = _config(tmp_path, """
        discord:
          application_id: 1234
          api_base_url: "https://proxy.local/api/v10/"
          intents: 513
          register_commands_on_start: true
        database:
          path: /tmp/gk.db
        cooldowns:
          sweep_interval_seconds: 0.2
        definitions:
          extra_dirs: ["/opt/gk/commands"]
        logging:
          level: DEBUG
    """)
    assert config.application_id == "1234"
    assert config.api_base_url == "https://proxy.local/api/v10"
    assert config.intents == 513
    assert config.register_commands_on_start is True
    assert config.database_path == Path("/tmp/gk.db")
    assert config.cooldown_sweep_interval == 1.0
    assert config.extra_definition_dirs == [Path("/opt/gk/commands")]
    assert config.logging_level == "DEBUG"


def test_env_file_provides_credentials(tmp_path):
    config = _config(
        tmp_path,
        "discord:\n  application_id: from-yaml\n",
        env_text="DISCORD_TOKEN=secret\nDISCORD_ID=from-env\n",
    )
    assert config.discord_token == "secret"
    assert config.application_id == "from-env"
    config.require_credentials()


def test_invalid_values_fall_back(tmp_path):
    config = _config(tmp_path, """
        discord:
          intents: lots
        cooldowns:
          sweep_interval_seconds: soon
        definitions:
          extra_dirs: /not/a/list
        logging: nonsense
    """)
    assert config.intents == DEFAULT_INTENTS
    assert config.cooldown_sweep_interval == 60.0
    assert config.extra_definition_dirs == []
    assert config.logging_level == "INFO"


def test_require_credentials_raises(tmp_path):
    config = _config(tmp_path)
    with pytest.raises(ConfigurationError) as exc_info:
        config.require_credentials()
    assert exc_info.value.setting_name == "DISCORD_TOKEN"


def test_validate_does_not_raise(tmp_path):
    _config(tmp_path).validate()
