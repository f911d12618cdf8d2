import logging
import os
from datetime import timedelta
from pathlib import Path

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator

from services.errors import ConfigInvalid

logger = logging.getLogger(__name__)

ENV_PATH = os.getenv(
    "MEETING_TRAY_ENV",
    os.path.join(os.path.dirname(os.path.dirname(__file__)), ".env"),
)

DEFAULT_CURRENT_MEETING_FORMAT = "{title} {time_left} left"
DEFAULT_UPCOMING_MEETING_FORMAT = "{title} in {time_until}"
BACKENDS = ("google", "evolution")

# .env key -> EngineConfig field
SETTING_KEYS = {
    "CALENDAR_BACKEND": "calendar_backend",
    "GOOGLE_ACCOUNTS": "google_accounts",
    "GOOGLE_CREDENTIALS_PATH": "google_credentials_path",
    "GOOGLE_TOKEN_DIR": "google_token_dir",
    "ENABLED_CALENDARS": "enabled_calendars",
    "REFRESH_INTERVAL": "refresh_interval",
    "NOTIFICATION_TIME": "notification_time",
    "ENABLE_NOTIFICATIONS": "enable_notifications",
    "MAX_MEETINGS": "max_meetings",
    "MAX_TITLE_LENGTH": "max_title_length",
    "CURRENT_MEETING_FORMAT": "current_meeting_format",
    "UPCOMING_MEETING_FORMAT": "upcoming_meeting_format",
    "LOOKAHEAD_HOURS": "lookahead_hours",
    "LOG_LEVEL": "log_level",
}

LIST_FIELDS = {"google_accounts", "enabled_calendars"}
PATH_FIELDS = ("google_credentials_path", "google_token_dir")


def parse_positive_int(key: str, value) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigInvalid(key, value, "not an integer") from e
    if number <= 0:
        raise ConfigInvalid(key, value, "must be positive")
    return number


def parse_bool(key: str, value) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ConfigInvalid(key, value, "not a boolean")


def parse_list(value) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value or "").split(",") if part.strip()]


class EngineConfig(BaseModel):
    """Settings read once at the start of every refresh cycle.

    Invalid values never fail construction: each falls back to its default
    with a warning.
    """

    model_config = ConfigDict(frozen=True)

    calendar_backend: str = "google"
    google_accounts: tuple[str, ...] = ()
    google_credentials_path: str = "./credentials.json"
    google_token_dir: str = "./tokens"
    enabled_calendars: tuple[str, ...] = ()
    refresh_interval: int = 5  # minutes
    notification_time: int = 5  # minutes before a meeting
    enable_notifications: bool = True
    max_meetings: int = 5
    max_title_length: int = 25
    current_meeting_format: str = DEFAULT_CURRENT_MEETING_FORMAT
    upcoming_meeting_format: str = DEFAULT_UPCOMING_MEETING_FORMAT
    lookahead_hours: int = 24
    log_level: str = "INFO"

    @field_validator(
        "refresh_interval", "notification_time", "max_meetings", "max_title_length", "lookahead_hours",
        mode="before",
    )
    @classmethod
    def _positive(cls, value, info: ValidationInfo):
        try:
            return parse_positive_int(info.field_name, value)
        except ConfigInvalid as e:
            return cls._default_for(info.field_name, e)

    @field_validator("enable_notifications", mode="before")
    @classmethod
    def _boolean(cls, value, info: ValidationInfo):
        try:
            return parse_bool(info.field_name, value)
        except ConfigInvalid as e:
            return cls._default_for(info.field_name, e)

    @field_validator("google_accounts", "enabled_calendars", mode="before")
    @classmethod
    def _comma_list(cls, value):
        return tuple(parse_list(value))

    @field_validator("calendar_backend", mode="before")
    @classmethod
    def _backend(cls, value, info: ValidationInfo):
        backend = str(value or "").strip().lower()
        if backend not in BACKENDS:
            return cls._default_for(
                info.field_name, ConfigInvalid(info.field_name, value, f"expected one of {BACKENDS}")
            )
        return backend

    @field_validator("current_meeting_format", "upcoming_meeting_format", mode="before")
    @classmethod
    def _template(cls, value, info: ValidationInfo):
        if not str(value or "").strip():
            return cls._default_for(info.field_name, ConfigInvalid(info.field_name, value, "empty template"))
        return str(value)

    @classmethod
    def _default_for(cls, field_name: str, error: ConfigInvalid):
        default = cls.model_fields[field_name].default
        logger.warning("Invalid setting %s, using default %r", error, default)
        return default

    @property
    def refresh_period(self) -> timedelta:
        return timedelta(minutes=self.refresh_interval)

    @property
    def lead_time(self) -> timedelta:
        return timedelta(minutes=self.notification_time)

    @property
    def lookahead(self) -> timedelta:
        return timedelta(hours=self.lookahead_hours)


def _read_env(env_path: str = ENV_PATH) -> dict[str, str]:
    if not os.path.exists(env_path):
        return {}
    return {k: v for k, v in dotenv_values(env_path).items() if v is not None}


def load_config(env_path: str = ENV_PATH, resolve_paths: bool = True) -> EngineConfig:
    """Build the engine config from the .env file, overridden by the environment.

    With ``resolve_paths=False`` the Google paths are kept as written, which
    is what the settings UI shows and writes back.
    """
    values = _read_env(env_path)
    for key in SETTING_KEYS:
        if key in os.environ:
            values[key] = os.environ[key]
    config = EngineConfig(**{SETTING_KEYS[k]: v for k, v in values.items() if k in SETTING_KEYS})
    if not resolve_paths:
        return config

    # Relative Google paths are relative to the .env file, not the working directory
    base = os.path.dirname(os.path.abspath(env_path))
    return config.model_copy(
        update={field: os.path.join(base, getattr(config, field)) for field in PATH_FIELDS}
    )


def save_settings(changes: dict[str, str], env_path: str = ENV_PATH):
    """Write values to .env, preserving keys not in ``changes``."""
    existing = _read_env(env_path)
    existing.update(changes)

    lines = [f"{key}={val}" for key, val in existing.items()]
    Path(env_path).write_text("\n".join(lines) + "\n")


def to_settings(config: EngineConfig) -> dict[str, str]:
    """Render a config back into .env values."""
    settings = {}
    for key, field in SETTING_KEYS.items():
        value = getattr(config, field)
        if field in LIST_FIELDS:
            value = ",".join(value)
        elif isinstance(value, bool):
            value = "true" if value else "false"
        settings[key] = str(value)
    return settings
