import logging
import queue
import threading
import webbrowser
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from models.schemas import Meeting
from services.engine import MeetingEngine

logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    REFRESH = "refresh"
    JOIN = "join"


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    meeting: Meeting | None = None


class ActionDispatcher:
    """Drains user actions from one queue on one thread.

    Menu clicks and HTTP requests only enqueue; opening a browser or kicking
    off a refresh happens here, off the caller's thread.
    """

    def __init__(self, engine: MeetingEngine, open_url: Callable[[str], bool] = webbrowser.open):
        self.engine = engine
        self.open_url = open_url
        self._queue: queue.Queue[Action | None] = queue.Queue()
        self._thread: threading.Thread | None = None

    def submit(self, action: Action):
        self._queue.put(action)

    def refresh(self):
        self.submit(Action(ActionKind.REFRESH))

    def join(self, meeting: Meeting):
        self.submit(Action(ActionKind.JOIN, meeting))

    def handle(self, action: Action) -> bool:
        if action.kind == ActionKind.REFRESH:
            result = self.engine.refresh_now()
            logger.info("Manual refresh: %s", result.value)
            return True

        meeting = action.meeting
        if meeting is None or meeting.meeting_link is None:
            logger.warning("No meeting link to open for %s", meeting.title if meeting else "unknown meeting")
            return False
        url = meeting.meeting_link.url
        if not self.open_url(url):
            logger.warning("Could not open a browser for %s", url)
            return False
        logger.info("Opened %s link for %s", meeting.meeting_link.provider.value, meeting.title)
        return True

    def _run(self):
        while True:
            action = self._queue.get()
            try:
                if action is None:
                    return
                self.handle(action)
            except Exception:
                logger.exception("Action %s failed", action.kind.value)
            finally:
                self._queue.task_done()

    def start(self):
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="action-dispatcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0):
        """Process what is already queued, then stop the thread."""
        if self._thread is None:
            return
        self._queue.put(None)
        self._thread.join(timeout=timeout)
        self._thread = None
