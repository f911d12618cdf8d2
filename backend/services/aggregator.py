import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime

from models.schemas import CalendarDescriptor, Meeting
from services.calendar_source import CalendarSource
from services.errors import ParseError, SourceError
from services.normalizer import normalize

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    meetings: list[Meeting] = field(default_factory=list)
    succeeded: int = 0
    failed: int = 0
    cancelled: bool = False

    @property
    def attempted(self) -> int:
        return self.succeeded + self.failed

    @property
    def all_failed(self) -> bool:
        return self.failed > 0 and self.succeeded == 0


def sort_key(meeting: Meeting):
    return (meeting.start_time, meeting.title)


def is_enabled(calendar: CalendarDescriptor, enabled_ids: set[str]) -> bool:
    """Configured IDs win; with none configured, trust the source's own flag."""
    if enabled_ids:
        return calendar.id in enabled_ids
    return calendar.enabled


def _fetch_calendar(
    source: CalendarSource,
    calendar: CalendarDescriptor,
    window_start: datetime,
    window_end: datetime,
) -> list[Meeting]:
    meetings = []
    for event in source.list_events(calendar.id, window_start, window_end):
        try:
            meeting = normalize(event, calendar_id=calendar.id, account_id=source.account_id)
        except ParseError as e:
            logger.warning("Dropping event from %s: %s", calendar.display_name, e)
            continue
        if meeting is None or meeting.is_all_day:
            continue
        if meeting.end_time <= window_start or meeting.start_time >= window_end:
            continue
        meetings.append(meeting)
    return meetings


def aggregate(
    sources: list[CalendarSource],
    enabled_ids: set[str],
    window_start: datetime,
    window_end: datetime,
    cancel: threading.Event | None = None,
) -> AggregationResult:
    """Collect timed meetings from every enabled calendar, sorted by start then title.

    A failing account or calendar is logged and skipped; the rest still
    contribute.
    """
    result = AggregationResult()
    for source in sources:
        if cancel is not None and cancel.is_set():
            result.cancelled = True
            return result

        try:
            calendars = source.list_calendars()
        except SourceError as e:
            result.failed += 1
            logger.warning("Could not list calendars for %s: %s", source.account_id, e)
            continue

        for calendar in calendars:
            if not is_enabled(calendar, enabled_ids):
                continue
            if cancel is not None and cancel.is_set():
                result.cancelled = True
                return result

            try:
                result.meetings.extend(_fetch_calendar(source, calendar, window_start, window_end))
            except SourceError as e:
                result.failed += 1
                logger.warning("Skipping calendar %s: %s", calendar.display_name, e)
            else:
                result.succeeded += 1

    result.meetings.sort(key=sort_key)
    logger.info(
        "Aggregated %d meetings from %d calendars (%d fetches failed)",
        len(result.meetings), result.succeeded, result.failed,
    )
    return result
