import logging
import os
from datetime import timedelta

import pytest

from services.config import (
    DEFAULT_CURRENT_MEETING_FORMAT,
    SETTING_KEYS,
    EngineConfig,
    load_config,
    parse_bool,
    parse_positive_int,
    save_settings,
    to_settings,
)
from services.errors import ConfigInvalid


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for key in SETTING_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def env_file(tmp_path):
    return tmp_path / ".env"


def test_defaults():
    config = EngineConfig()
    assert config.calendar_backend == "google"
    assert config.refresh_period == timedelta(minutes=5)
    assert config.lead_time == timedelta(minutes=5)
    assert config.max_meetings == 5
    assert config.max_title_length == 25
    assert config.current_meeting_format == "{title} {time_left} left"
    assert config.upcoming_meeting_format == "{title} in {time_until}"
    assert config.lookahead == timedelta(hours=24)
    assert config.enable_notifications


def test_invalid_values_fall_back_to_defaults(caplog):
    with caplog.at_level(logging.WARNING, logger="services.config"):
        config = EngineConfig(
            refresh_interval="soon",
            notification_time=-5,
            max_meetings="0",
            enable_notifications="maybe",
            calendar_backend="outlook",
            current_meeting_format="  ",
        )

    assert config.refresh_interval == 5
    assert config.notification_time == 5
    assert config.max_meetings == 5
    assert config.enable_notifications is True
    assert config.calendar_backend == "google"
    assert config.current_meeting_format == DEFAULT_CURRENT_MEETING_FORMAT
    assert "refresh_interval='soon'" in caplog.text


def test_valid_strings_are_parsed():
    config = EngineConfig(
        refresh_interval="10",
        enable_notifications="off",
        calendar_backend=" Evolution ",
        google_accounts="me@example.com, work@example.com,",
    )
    assert config.refresh_interval == 10
    assert config.enable_notifications is False
    assert config.calendar_backend == "evolution"
    assert config.google_accounts == ("me@example.com", "work@example.com")


def test_parsers_raise_config_invalid():
    with pytest.raises(ConfigInvalid) as excinfo:
        parse_positive_int("MAX_MEETINGS", "many")
    assert excinfo.value.key == "MAX_MEETINGS"

    with pytest.raises(ConfigInvalid):
        parse_bool("ENABLE_NOTIFICATIONS", "perhaps")


def test_load_config_from_env_file(env_file):
    env_file.write_text(
        "GOOGLE_ACCOUNTS=me@example.com\n"
        "GOOGLE_CREDENTIALS_PATH=./credentials.json\n"
        "NOTIFICATION_TIME=10\n"
        "UNRELATED_KEY=ignored\n"
    )
    config = load_config(str(env_file))

    assert config.google_accounts == ("me@example.com",)
    assert config.notification_time == 10
    assert config.google_credentials_path == os.path.join(str(env_file.parent), "./credentials.json")
    assert config.google_token_dir == os.path.join(str(env_file.parent), "./tokens")


def test_load_config_can_keep_paths_as_written(env_file):
    env_file.write_text("GOOGLE_CREDENTIALS_PATH=./secrets/credentials.json\n")
    config = load_config(str(env_file), resolve_paths=False)
    assert config.google_credentials_path == "./secrets/credentials.json"
    assert config.google_token_dir == "./tokens"


def test_environment_overrides_env_file(env_file, monkeypatch):
    env_file.write_text("MAX_MEETINGS=3\n")
    monkeypatch.setenv("MAX_MEETINGS", "7")
    assert load_config(str(env_file)).max_meetings == 7


def test_missing_env_file_gives_defaults(tmp_path):
    config = load_config(str(tmp_path / "missing.env"))
    assert config.max_meetings == 5


def test_save_settings_preserves_other_keys(env_file):
    env_file.write_text("GOOGLE_ACCOUNTS=me@example.com\nMAX_MEETINGS=3\n")
    save_settings({"MAX_MEETINGS": "8", "LOG_LEVEL": "DEBUG"}, str(env_file))

    lines = env_file.read_text().splitlines()
    assert lines == ["GOOGLE_ACCOUNTS=me@example.com", "MAX_MEETINGS=8", "LOG_LEVEL=DEBUG"]


def test_to_settings_round_trips_through_env_file(env_file):
    config = EngineConfig(google_accounts="a@example.com,b@example.com", enable_notifications=False)
    save_settings(to_settings(config), str(env_file))

    loaded = load_config(str(env_file))
    assert loaded.google_accounts == config.google_accounts
    assert loaded.enable_notifications is False
    assert loaded.upcoming_meeting_format == config.upcoming_meeting_format
