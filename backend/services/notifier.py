import logging
import subprocess
from datetime import datetime, timedelta, timezone
from shutil import which

from models.schemas import Meeting
from services.display import clock
from services.errors import NotificationDeliveryError

logger = logging.getLogger(__name__)

APP_NAME = "Meeting Tray"
SUMMARY = "Upcoming Meeting"
NOTIFY_TIMEOUT = 10  # seconds

NOTIFICATIONS_DEST = "org.freedesktop.Notifications"
NOTIFICATIONS_PATH = "/org/freedesktop/Notifications"


def reminder_message(meeting: Meeting, now: datetime) -> str:
    time_until = meeting.start_time - now
    if time_until < timedelta(minutes=1):
        when = "starting now"
    elif time_until < timedelta(hours=1):
        when = f"in {int(time_until.total_seconds() // 60)} minutes"
    else:
        when = f"at {clock(meeting.start_time)}"
    return f"{meeting.title} {when}"


def _gvariant_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'").replace("\n", "\\n")
    return f"'{escaped}'"


class DesktopNotifier:
    """Deliver reminders through ``notify-send``.

    When notify-send is missing or fails, the notification is sent straight
    to the freedesktop notification service with ``gdbus``.
    """

    def __init__(self, binary: str | None = None, gdbus: str | None = None):
        self.binary = binary or which("notify-send")
        self.gdbus = gdbus or which("gdbus")
        if not self.binary:
            if self.gdbus:
                logger.warning("notify-send not found, reminders will be sent with gdbus")
            else:
                logger.warning("Neither notify-send nor gdbus found, reminders cannot be shown")

    def __call__(self, meeting: Meeting, lead_time: timedelta):
        self.send(meeting, datetime.now(timezone.utc))

    def send(self, meeting: Meeting, now: datetime):
        body = reminder_message(meeting, now)
        if meeting.meeting_link is not None:
            body += f"\n{meeting.meeting_link.url}"

        try:
            self._notify_send(body)
        except NotificationDeliveryError as e:
            if not self.gdbus:
                raise
            logger.warning("%s, falling back to gdbus", e)
            self._gdbus_notify(body)
        logger.info("Sent reminder for meeting: %s", meeting.title)

    def _notify_send(self, body: str):
        if not self.binary:
            raise NotificationDeliveryError("notify-send is not available")
        self._run(
            "notify-send",
            [
                self.binary,
                f"--app-name={APP_NAME}",
                "--category=calendar",
                "--urgency=normal",
                SUMMARY,
                body,
            ],
        )

    def _gdbus_notify(self, body: str):
        # Notify(app_name, replaces_id, app_icon, summary, body, actions, hints, expire_timeout)
        self._run(
            "gdbus",
            [
                self.gdbus, "call", "--session",
                "--dest", NOTIFICATIONS_DEST,
                "--object-path", NOTIFICATIONS_PATH,
                "--method", f"{NOTIFICATIONS_DEST}.Notify",
                _gvariant_string(APP_NAME),
                "0",
                "''",
                _gvariant_string(SUMMARY),
                _gvariant_string(body),
                "[]",
                "{}",
                "-1",
            ],
        )

    def _run(self, name: str, cmd: list[str]):
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=NOTIFY_TIMEOUT)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise NotificationDeliveryError(f"{name} failed: {e}") from e
        if result.returncode != 0:
            raise NotificationDeliveryError(f"{name} failed: {result.stderr.strip()}")
