import datetime as dt
from enum import Enum

from pydantic import BaseModel, ConfigDict, model_validator


class ProviderKind(str, Enum):
    GOOGLE_MEET = "meet"
    TEAMS = "teams"
    ZOOM = "zoom"
    UNKNOWN = "unknown"


class MeetingLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    provider: ProviderKind


class Meeting(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    start_time: dt.datetime
    end_time: dt.datetime
    calendar_id: str = ""
    account_id: str = ""
    meeting_link: MeetingLink | None = None
    is_all_day: bool = False

    @model_validator(mode="after")
    def _check_times(self):
        if self.start_time.tzinfo is None or self.end_time.tzinfo is None:
            raise ValueError("meeting times must be timezone-aware")
        if self.end_time <= self.start_time:
            raise ValueError("meeting must end after it starts")
        return self


class CalendarDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    account_id: str
    enabled: bool = True
    color: str = ""


# ---- Raw events as handed over by calendar sources ----


class EventTime(BaseModel):
    date_time: dt.datetime | str | None = None
    date: dt.date | str | None = None


class ConferenceEntry(BaseModel):
    entry_point_type: str = ""
    uri: str = ""


class RawEvent(BaseModel):
    id: str = ""
    title: str = ""
    start: EventTime | None = None
    end: EventTime | None = None
    description: str = ""
    location: str = ""
    conference_entries: list[ConferenceEntry] = []
    status: str = ""


# ---- Display state ----


class DisplayKind(str, Enum):
    NO_MEETINGS = "no_meetings"
    IN_MEETING = "in_meeting"
    UPCOMING = "upcoming"


class DisplayState(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: DisplayKind
    meeting: Meeting | None = None

    @classmethod
    def no_meetings(cls) -> "DisplayState":
        return cls(kind=DisplayKind.NO_MEETINGS)

    @classmethod
    def in_meeting(cls, meeting: Meeting) -> "DisplayState":
        return cls(kind=DisplayKind.IN_MEETING, meeting=meeting)

    @classmethod
    def upcoming(cls, meeting: Meeting) -> "DisplayState":
        return cls(kind=DisplayKind.UPCOMING, meeting=meeting)


class Snapshot(BaseModel):
    """Everything a UI needs for one render, published once per cycle."""

    model_config = ConfigDict(frozen=True)

    meetings: tuple[Meeting, ...] = ()
    display_state: DisplayState = DisplayState.no_meetings()
    text: str = "No meetings"
    tooltip: str = ""
    upcoming: tuple[Meeting, ...] = ()
    hidden_count: int = 0
    generated_at: dt.datetime | None = None
    error: str | None = None
