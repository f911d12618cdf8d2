import time
from datetime import timedelta

from services.actions import Action, ActionDispatcher, ActionKind
from services.config import EngineConfig
from services.engine import MeetingEngine
from services.refresh_loop import RefreshResult

from tests.conftest import NOW
from tests.fakes.fake_calendar_source import FakeCalendarSource


class RecordingEngine:
    def __init__(self):
        self.refreshes = 0

    def refresh_now(self):
        self.refreshes += 1
        return RefreshResult.OK


def test_join_opens_meeting_link(make_meeting):
    opened = []
    dispatcher = ActionDispatcher(RecordingEngine(), open_url=lambda url: opened.append(url) or True)
    meeting = make_meeting(link="https://meet.google.com/abc-defg-hij")

    assert dispatcher.handle(Action(ActionKind.JOIN, meeting))
    assert opened == ["https://meet.google.com/abc-defg-hij"]


def test_join_without_link_does_nothing(make_meeting):
    opened = []
    dispatcher = ActionDispatcher(RecordingEngine(), open_url=opened.append)
    assert not dispatcher.handle(Action(ActionKind.JOIN, make_meeting()))
    assert opened == []


def test_join_reports_browser_failure(make_meeting):
    dispatcher = ActionDispatcher(RecordingEngine(), open_url=lambda url: False)
    assert not dispatcher.handle(Action(ActionKind.JOIN, make_meeting(link="https://zoom.us/j/42")))


def test_refresh_action_triggers_engine():
    engine = RecordingEngine()
    dispatcher = ActionDispatcher(engine)
    assert dispatcher.handle(Action(ActionKind.REFRESH))
    assert engine.refreshes == 1


def test_queued_actions_processed_in_order_before_stop(make_meeting):
    opened = []
    engine = RecordingEngine()
    dispatcher = ActionDispatcher(engine, open_url=lambda url: opened.append(url) or True)
    dispatcher.start()

    dispatcher.join(make_meeting("a", link="https://zoom.us/j/1"))
    dispatcher.refresh()
    dispatcher.join(make_meeting("b", link="https://zoom.us/j/2"))
    dispatcher.stop()

    assert opened == ["https://zoom.us/j/1", "https://zoom.us/j/2"]
    assert engine.refreshes == 1


def test_failing_action_does_not_stop_dispatcher(make_meeting):
    opened = []

    def flaky(url):
        if url.endswith("/1"):
            raise RuntimeError("no display")
        opened.append(url)
        return True

    dispatcher = ActionDispatcher(RecordingEngine(), open_url=flaky)
    dispatcher.start()
    dispatcher.join(make_meeting("a", link="https://zoom.us/j/1"))
    dispatcher.join(make_meeting("b", link="https://zoom.us/j/2"))
    dispatcher.stop()

    assert opened == ["https://zoom.us/j/2"]


def test_refresh_through_real_engine(make_event):
    source = FakeCalendarSource(events={"primary": [make_event("m", start=timedelta(minutes=30))]})
    engine = MeetingEngine(EngineConfig(), sources=[source], clock=lambda: NOW)
    dispatcher = ActionDispatcher(engine)

    dispatcher.handle(Action(ActionKind.REFRESH))
    deadline = time.monotonic() + 5
    while engine.loop.in_flight and time.monotonic() < deadline:
        time.sleep(0.01)

    assert source.fetched == ["primary"]
    assert engine.current_state().display_state.meeting.id == "m"
