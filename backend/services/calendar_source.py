import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime

from models.schemas import CalendarDescriptor, RawEvent
from services.config import EngineConfig

logger = logging.getLogger(__name__)


class CalendarSource(ABC):
    """One backend/account that can list calendars and their events."""

    backend: str = ""

    @property
    @abstractmethod
    def account_id(self) -> str:
        ...

    @abstractmethod
    def list_calendars(self, scope: str | None = None) -> list[CalendarDescriptor]:
        """Raises SourceUnavailable if the backend cannot be reached."""

    @abstractmethod
    def list_events(
        self, calendar_id: str, window_start: datetime, window_end: datetime
    ) -> list[RawEvent]:
        """Raises SourceUnavailable or PermissionDenied."""

    def close(self):
        pass


def token_path_for(config: EngineConfig, account_id: str) -> str:
    safe_id = account_id.replace("/", "_").replace("@", "_at_")
    return os.path.join(config.google_token_dir, f"token_{safe_id}.json")


def build_sources(config: EngineConfig) -> list[CalendarSource]:
    """Instantiate the sources for the configured backend, once."""
    if config.calendar_backend == "evolution":
        from services.evolution_source import EvolutionCalendarSource

        return [EvolutionCalendarSource()]

    from services.calendar_service import GoogleCalendarSource

    if not config.google_accounts:
        logger.warning("No Google accounts configured")
    return [
        GoogleCalendarSource(
            account_id=account,
            credentials_path=config.google_credentials_path,
            token_path=token_path_for(config, account),
        )
        for account in config.google_accounts
    ]
