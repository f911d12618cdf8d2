"""Shared pytest setup for the meeting tray backend."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Put backend/ on the path so tests import modules the way main.py does
backend_path = Path(__file__).parent.parent / "backend"
if str(backend_path) not in sys.path:
    sys.path.insert(0, str(backend_path))

from models.schemas import EventTime, Meeting, MeetingLink, ProviderKind, RawEvent  # noqa: E402

NOW = datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_meeting():
    def _make(
        meeting_id: str = "m1",
        title: str = "Standup",
        start: timedelta = timedelta(minutes=10),
        duration: timedelta = timedelta(minutes=30),
        link: str | None = None,
        provider: ProviderKind = ProviderKind.GOOGLE_MEET,
        is_all_day: bool = False,
    ) -> Meeting:
        """Build a meeting starting ``start`` after NOW."""
        return Meeting(
            id=meeting_id,
            title=title,
            start_time=NOW + start,
            end_time=NOW + start + duration,
            calendar_id="primary",
            account_id="me@example.com",
            meeting_link=MeetingLink(url=link, provider=provider) if link else None,
            is_all_day=is_all_day,
        )

    return _make


@pytest.fixture
def make_event():
    def _make(
        event_id: str = "e1",
        title: str = "Standup",
        start: timedelta | None = timedelta(minutes=10),
        duration: timedelta = timedelta(minutes=30),
        **fields,
    ) -> RawEvent:
        """Build a timed raw event starting ``start`` after NOW."""
        if start is not None:
            fields.setdefault("start", EventTime(date_time=NOW + start))
            fields.setdefault("end", EventTime(date_time=NOW + start + duration))
        return RawEvent(id=event_id, title=title, **fields)

    return _make
