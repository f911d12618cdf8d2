import logging
from datetime import datetime, timedelta

from models.schemas import Meeting

logger = logging.getLogger(__name__)


class NotificationScheduler:
    """Decides which meetings get a reminder, at most once per meeting ID.

    The fired markers live in ``notified`` keyed by meeting ID, never on the
    Meeting values, and are pruned every cycle. Not thread-safe: the engine
    calls it under its state lock.
    """

    def __init__(self):
        self.notified: dict[str, bool] = {}

    def collect_due(
        self,
        meetings: list[Meeting],
        now: datetime,
        lead_time: timedelta,
        enabled: bool = True,
    ) -> list[Meeting]:
        due = []
        if enabled:
            for meeting in meetings:
                if self.notified.get(meeting.id):
                    continue
                time_until = meeting.start_time - now
                if timedelta(0) < time_until <= lead_time:
                    # Marked before delivery: a failed delivery is not retried.
                    self.notified[meeting.id] = True
                    due.append(meeting)
        self.prune(meetings, now)
        return due

    def prune(self, meetings: list[Meeting], now: datetime):
        live = {m.id for m in meetings if m.end_time > now}
        for meeting_id in list(self.notified):
            if meeting_id not in live:
                del self.notified[meeting_id]

    def was_notified(self, meeting_id: str) -> bool:
        return self.notified.get(meeting_id, False)
