import threading
from datetime import timedelta

from models.schemas import CalendarDescriptor, EventTime, ProviderKind, RawEvent
from services.aggregator import aggregate, is_enabled
from services.errors import PermissionDenied, SourceUnavailable

from tests.conftest import NOW
from tests.fakes.fake_calendar_source import FakeCalendarSource

WINDOW_END = NOW + timedelta(hours=24)


def test_scenario_single_meet_event(make_event):
    event = make_event(
        title="Team Standup",
        start=timedelta(minutes=15),
        location="https://meet.google.com/abc-defg-hij",
    )
    source = FakeCalendarSource(events={"primary": [event]})

    result = aggregate([source], set(), NOW, WINDOW_END)

    assert len(result.meetings) == 1
    assert result.meetings[0].meeting_link.provider == ProviderKind.GOOGLE_MEET
    assert result.succeeded == 1
    assert not result.all_failed


def test_meetings_sorted_by_start_then_title(make_event):
    work = FakeCalendarSource(
        events={
            "work": [
                make_event("late", "Retro", start=timedelta(hours=3)),
                make_event("b", "Budget", start=timedelta(hours=1)),
            ]
        }
    )
    personal = FakeCalendarSource(
        account_id="me@gmail.com",
        events={"personal": [make_event("a", "Abs class", start=timedelta(hours=1))]},
    )

    result = aggregate([work, personal], set(), NOW, WINDOW_END)

    assert [m.id for m in result.meetings] == ["a", "b", "late"]
    assert result.meetings[0].account_id == "me@gmail.com"


def test_cancelled_and_all_day_events_never_appear(make_event):
    events = [
        make_event("ok"),
        make_event("gone", status="cancelled"),
        RawEvent(id="holiday", title="Holiday", start=EventTime(date=NOW.date())),
    ]
    result = aggregate([FakeCalendarSource(events={"primary": events})], set(), NOW, WINDOW_END)
    assert [m.id for m in result.meetings] == ["ok"]


def test_events_outside_window_are_dropped(make_event):
    events = [
        make_event("past", start=timedelta(hours=-3)),
        make_event("ongoing", start=timedelta(minutes=-10)),
        make_event("tomorrow", start=timedelta(hours=30)),
    ]
    result = aggregate([FakeCalendarSource(events={"primary": events})], set(), NOW, WINDOW_END)
    assert [m.id for m in result.meetings] == ["ongoing"]


def test_unparseable_event_dropped_rest_kept(make_event):
    bad = RawEvent(id="bad", title="Broken", start=EventTime(date_time="not a time"))
    source = FakeCalendarSource(events={"primary": [bad, make_event("good")]})
    result = aggregate([source], set(), NOW, WINDOW_END)
    assert [m.id for m in result.meetings] == ["good"]


def test_failed_calendar_is_skipped(make_event):
    source = FakeCalendarSource(
        events={
            "shared": PermissionDenied("me@example.com", "HTTP 403"),
            "primary": [make_event("good")],
        }
    )
    result = aggregate([source], set(), NOW, WINDOW_END)
    assert [m.id for m in result.meetings] == ["good"]
    assert result.failed == 1
    assert not result.all_failed
    assert result.attempted == 2


def test_unreachable_account_is_skipped(make_event):
    down = FakeCalendarSource(account_id="down", list_error=SourceUnavailable("down", "offline"))
    up = FakeCalendarSource(events={"primary": [make_event("good")]})
    result = aggregate([down, up], set(), NOW, WINDOW_END)
    assert [m.id for m in result.meetings] == ["good"]
    assert result.failed == 1


def test_all_sources_failing_is_reported():
    down = FakeCalendarSource(list_error=SourceUnavailable("me@example.com", "offline"))
    result = aggregate([down], set(), NOW, WINDOW_END)
    assert result.meetings == []
    assert result.all_failed


def test_configured_calendars_restrict_fetches(make_event):
    source = FakeCalendarSource(
        events={"primary": [make_event("a")], "holidays": [make_event("b")]}
    )
    result = aggregate([source], {"primary"}, NOW, WINDOW_END)
    assert [m.id for m in result.meetings] == ["a"]
    assert source.fetched == ["primary"]


def test_source_selection_used_without_configured_calendars(make_event):
    calendars = [
        CalendarDescriptor(id="primary", display_name="Me", account_id="me@example.com"),
        CalendarDescriptor(
            id="birthdays", display_name="Birthdays", account_id="me@example.com", enabled=False
        ),
    ]
    source = FakeCalendarSource(
        events={"primary": [make_event("a")], "birthdays": [make_event("b")]},
        calendars=calendars,
    )
    result = aggregate([source], set(), NOW, WINDOW_END)
    assert [m.id for m in result.meetings] == ["a"]


def test_is_enabled_prefers_configuration():
    hidden = CalendarDescriptor(id="team", display_name="Team", account_id="a", enabled=False)
    assert is_enabled(hidden, {"team"})
    assert not is_enabled(hidden, set())


def test_cancelled_aggregation_stops_early(make_event):
    cancel = threading.Event()
    cancel.set()
    source = FakeCalendarSource(events={"primary": [make_event()]})
    result = aggregate([source], set(), NOW, WINDOW_END, cancel=cancel)
    assert result.cancelled
    assert source.fetched == []
