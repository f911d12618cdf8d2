import logging
from datetime import date, datetime, time, timedelta

from models.schemas import EventTime, Meeting, MeetingLink, ProviderKind, RawEvent
from services.errors import ParseError
from services.link_extractor import classify_url, find_links, primary_link

logger = logging.getLogger(__name__)

DEFAULT_DURATION = timedelta(hours=1)
ALL_DAY_DURATION = timedelta(days=1)
UNTITLED = "(No title)"


def _local_midnight(day: date) -> datetime:
    return datetime.combine(day, time.min).astimezone()


def _aware(value: datetime) -> datetime:
    # Naive values are wall-clock times in the local zone.
    return value if value.tzinfo else value.astimezone()


def _parse_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value.strip())


def resolve_time(value: EventTime | None) -> tuple[datetime, bool] | None:
    """Resolve an EventTime to ``(instant, is_date_only)``.

    Returns None when the value carries no time at all and raises
    ValueError when it does but cannot be parsed.
    """
    if value is None:
        return None
    if value.date_time:
        if isinstance(value.date_time, datetime):
            return _aware(value.date_time), False
        text = value.date_time.strip()
        # fromisoformat only accepts a trailing Z from Python 3.11
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        return _aware(datetime.fromisoformat(text)), False
    if value.date:
        return _local_midnight(_parse_date(value.date)), True
    return None


def native_video_link(event: RawEvent) -> MeetingLink | None:
    """First native conference entry of video kind that points at Google Meet."""
    for entry in event.conference_entries:
        if entry.entry_point_type != "video" or not entry.uri:
            continue
        if classify_url(entry.uri) == ProviderKind.GOOGLE_MEET:
            return find_links(entry.uri)[0]
    return None


def resolve_link(event: RawEvent) -> MeetingLink | None:
    return (
        native_video_link(event)
        or primary_link(event.location)
        or primary_link(event.description)
    )


def normalize(event: RawEvent, calendar_id: str = "", account_id: str = "") -> Meeting | None:
    """Turn one raw event into a Meeting, or None if it should be skipped.

    Raises ParseError when the event has a start value that cannot be
    interpreted; the caller drops that event and keeps the rest of the batch.
    """
    if event.status.lower() == "cancelled":
        logger.debug("Skipping cancelled event %s", event.id)
        return None

    try:
        start = resolve_time(event.start)
    except ValueError as e:
        raise ParseError(event.id, f"unreadable start: {e}") from e
    if start is None:
        logger.debug("Skipping event %s without a start time", event.id)
        return None
    start_time, is_all_day = start

    try:
        end = resolve_time(event.end)
    except ValueError as e:
        logger.warning("Event %s has an unreadable end (%s), assuming 1h", event.id, e)
        end = None

    if is_all_day:
        end_time = end[0] if end else start_time + ALL_DAY_DURATION
        if end_time <= start_time:
            end_time = start_time + ALL_DAY_DURATION
    elif end is None:
        end_time = start_time + DEFAULT_DURATION
    else:
        end_time = end[0]
        if end_time <= start_time:
            logger.warning("Event %s ends before it starts, assuming 1h", event.id)
            end_time = start_time + DEFAULT_DURATION

    return Meeting(
        id=event.id,
        title=event.title.strip() or UNTITLED,
        start_time=start_time,
        end_time=end_time,
        calendar_id=calendar_id,
        account_id=account_id,
        meeting_link=resolve_link(event),
        is_all_day=is_all_day,
    )
