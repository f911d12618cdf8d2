import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable

from models.schemas import CalendarDescriptor, Meeting, Snapshot
from services import display
from services.aggregator import aggregate, is_enabled
from services.calendar_source import CalendarSource, build_sources
from services.config import EngineConfig
from services.errors import NotificationDeliveryError, SourceError
from services.refresh_loop import RefreshLoop, RefreshResult
from services.reminders import NotificationScheduler

logger = logging.getLogger(__name__)

ReminderCallback = Callable[[Meeting, timedelta], None]

NO_SOURCES_ERROR = "No calendar accounts configured"
ALL_FAILED_ERROR = "All calendar sources are unavailable"

# Changing any of these means the sources have to be rebuilt.
SOURCE_FIELDS = ("calendar_backend", "google_accounts", "google_credentials_path", "google_token_dir")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_snapshot(
    meetings: list[Meeting], now: datetime, config: EngineConfig, error: str | None = None
) -> Snapshot:
    state = display.resolve(meetings, now)
    upcoming, hidden = display.visible_meetings(meetings, now, config.max_meetings)
    return Snapshot(
        meetings=tuple(meetings),
        display_state=state,
        text=display.render_text(
            state,
            now,
            config.current_meeting_format,
            config.upcoming_meeting_format,
            config.max_title_length,
        ),
        tooltip=display.render_tooltip(state, now),
        upcoming=tuple(upcoming),
        hidden_count=hidden,
        generated_at=now,
        error=error,
    )


class MeetingEngine:
    """Owns the published snapshot, the reminder side table and the refresh loop.

    Built once at startup and handed to the HTTP layer. Snapshot and
    NotifiedSet share one lock; a snapshot is immutable and swapped whole.
    """

    def __init__(
        self,
        config: EngineConfig,
        sources: list[CalendarSource] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._config = config
        self._sources = list(sources) if sources is not None else build_sources(config)
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot = Snapshot()
        self._scheduler = NotificationScheduler()
        self._callbacks: list[ReminderCallback] = []
        self.loop = RefreshLoop(
            self._refresh_cycle,
            interval=lambda: self.config.refresh_period.total_seconds(),
            tick=self.tick,
        )

    # ---- Configuration ----

    @property
    def config(self) -> EngineConfig:
        with self._lock:
            return self._config

    def update_config(self, config: EngineConfig):
        """Swap in new settings; they take effect at the next cycle."""
        with self._lock:
            old = self._config
            self._config = config
        if any(getattr(old, f) != getattr(config, f) for f in SOURCE_FIELDS):
            sources = build_sources(config)
            with self._lock:
                old_sources, self._sources = self._sources, sources
            for source in old_sources:
                source.close()
            logger.info("Calendar sources rebuilt for backend %s", config.calendar_backend)

    # ---- Read side ----

    def current_state(self) -> Snapshot:
        with self._lock:
            return self._snapshot

    def find_meeting(self, meeting_id: str) -> Meeting | None:
        for meeting in self.current_state().meetings:
            if meeting.id == meeting_id:
                return meeting
        return None

    def was_notified(self, meeting_id: str) -> bool:
        with self._lock:
            return self._scheduler.was_notified(meeting_id)

    def list_calendars(self) -> tuple[list[CalendarDescriptor], list[str]]:
        """All calendars of all sources with effective enabled flags, plus errors."""
        config = self.config
        with self._lock:
            sources = list(self._sources)
        enabled_ids = set(config.enabled_calendars)
        calendars, errors = [], []
        for source in sources:
            try:
                found = source.list_calendars()
            except SourceError as e:
                logger.warning("Could not list calendars: %s", e)
                errors.append(str(e))
                continue
            calendars.extend(
                c.model_copy(update={"enabled": is_enabled(c, enabled_ids)}) for c in found
            )
        return calendars, errors

    # ---- Reminders ----

    def on_reminder_due(self, callback: ReminderCallback):
        with self._lock:
            self._callbacks.append(callback)

    def _deliver(self, due: list[Meeting], lead_time: timedelta):
        if not due:
            return
        with self._lock:
            callbacks = list(self._callbacks)
        for meeting in due:
            for callback in callbacks:
                try:
                    callback(meeting, lead_time)
                except NotificationDeliveryError as e:
                    logger.warning("Reminder for %s not delivered: %s", meeting.title, e)
                except Exception:
                    logger.exception("Reminder callback failed for %s", meeting.title)

    # ---- Cycles ----

    def _publish(
        self, config: EngineConfig, meetings: list[Meeting] | None = None, error: str | None = None
    ) -> Snapshot:
        """Swap in a new snapshot and fire due reminders.

        With no meetings given, the currently published ones are re-evaluated.
        """
        now = self._clock()
        with self._lock:
            if meetings is None:
                meetings = list(self._snapshot.meetings)
                error = self._snapshot.error
            snapshot = build_snapshot(meetings, now, config, error)
            self._snapshot = snapshot
            due = self._scheduler.collect_due(
                meetings, now, config.lead_time, enabled=config.enable_notifications
            )
        self._deliver(due, config.lead_time)
        return snapshot

    def _refresh_cycle(self, cancel: threading.Event):
        config = self.config
        with self._lock:
            sources = list(self._sources)
        now = self._clock()
        result = aggregate(
            sources, set(config.enabled_calendars), now, now + config.lookahead, cancel=cancel
        )
        if result.cancelled:
            logger.info("Refresh cancelled, keeping the previous snapshot")
            return

        error = None
        if not sources:
            error = NO_SOURCES_ERROR
        elif result.all_failed:
            error = ALL_FAILED_ERROR
            logger.error("Every calendar fetch failed this cycle")
        self._publish(config, result.meetings, error)

    def tick(self):
        """Re-evaluate display text and reminders against the published meetings."""
        self._publish(self.config)

    def run_cycle(self) -> RefreshResult:
        """Run a refresh on the calling thread."""
        return self.loop.run_once()

    def refresh_now(self) -> RefreshResult:
        return self.loop.trigger()

    # ---- Lifecycle ----

    def start(self):
        self.loop.start()

    def stop(self):
        self.loop.stop()
        with self._lock:
            sources = list(self._sources)
        for source in sources:
            source.close()
