import configparser
import logging
import re
import subprocess
from datetime import date, datetime, timezone

from icalendar import Component

from models.schemas import CalendarDescriptor, ConferenceEntry, EventTime, RawEvent
from services.calendar_source import CalendarSource
from services.errors import PermissionDenied, SourceUnavailable

logger = logging.getLogger(__name__)

BACKEND_ID = "evolution"
SOURCES_SERVICE = "org.gnome.evolution.dataserver.Sources5"
SOURCE_MANAGER_PATH = "/org/gnome/evolution/dataserver/SourceManager"
CALENDAR_SERVICE = "org.gnome.evolution.dataserver.Calendar8"
CALENDAR_FACTORY_PATH = "/org/gnome/evolution/dataserver/CalendarFactory"
CALENDAR_IFACE = "org.gnome.evolution.dataserver.Calendar"
GDBUS_TIMEOUT = 15  # seconds

# GVariant text strings are single-quoted unless they contain a single quote.
_STRING = r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\""
_STRING_RE = re.compile(_STRING)
_OBJECT_RE = re.compile(r"(?:objectpath )?'(/[^']*)': \{")
_UID_RE = re.compile(rf"'UID': <({_STRING})>")
_DATA_RE = re.compile(rf"'Data': <({_STRING})>")
_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "\\": "\\", "'": "'", '"': '"'}
_ESCAPE_RE = re.compile(r"\\(u[0-9a-fA-F]{4}|.)")


def _unquote(token: str) -> str:
    def replace(match):
        code = match.group(1)
        if len(code) == 5 and code.startswith("u"):
            return chr(int(code[1:], 16))
        return _ESCAPES.get(code, code)

    return _ESCAPE_RE.sub(replace, token[1:-1])


def _quote(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _ical_utc(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def parse_sources(output: str) -> list[CalendarDescriptor]:
    """Extract calendar sources from a GetManagedObjects reply."""
    calendars = []
    # Only the first dict key carries the "objectpath" annotation.
    chunks = _OBJECT_RE.split(output)[2::2]
    for chunk in chunks:
        uid_match = _UID_RE.search(chunk)
        data_match = _DATA_RE.search(chunk)
        if not uid_match or not data_match:
            continue

        keyfile = configparser.ConfigParser(interpolation=None, strict=False)
        keyfile.optionxform = str
        try:
            keyfile.read_string(_unquote(data_match.group(1)))
        except configparser.Error as e:
            logger.warning("Skipping unreadable Evolution source: %s", e)
            continue
        if not keyfile.has_section("Calendar"):
            continue

        uid = _unquote(uid_match.group(1))
        data_source = keyfile["Data Source"] if keyfile.has_section("Data Source") else {}
        enabled = data_source.get("Enabled", "true") == "true"
        selected = keyfile["Calendar"].get("Selected", "true") == "true"
        calendars.append(
            CalendarDescriptor(
                id=uid,
                display_name=data_source.get("DisplayName", uid),
                account_id=BACKEND_ID,
                enabled=enabled and selected,
                color=keyfile["Calendar"].get("Color", ""),
            )
        )
    return calendars


def _event_time(prop) -> EventTime | None:
    if prop is None:
        return None
    value = prop.dt
    if isinstance(value, datetime):
        return EventTime(date_time=value)
    if isinstance(value, date):
        return EventTime(date=value)
    return None


def parse_vevent(ical: str) -> list[RawEvent]:
    """Convert one iCalendar object from the calendar backend into raw events."""
    events = []
    for component in Component.from_ical(ical).walk("VEVENT"):
        uid = str(component.get("UID", ""))
        recurrence_id = component.get("RECURRENCE-ID")
        event_id = f"{uid}:{recurrence_id.dt.isoformat()}" if recurrence_id else uid

        entries = []
        conference = component.get("X-GOOGLE-CONFERENCE")
        if conference:
            entries.append(ConferenceEntry(entry_point_type="video", uri=str(conference)))

        events.append(
            RawEvent(
                id=event_id,
                title=str(component.get("SUMMARY", "")),
                start=_event_time(component.get("DTSTART")),
                end=_event_time(component.get("DTEND")),
                description=str(component.get("DESCRIPTION", "")),
                location=str(component.get("LOCATION", "")),
                conference_entries=entries,
                status=str(component.get("STATUS", "")).lower(),
            )
        )
    return events


class EvolutionCalendarSource(CalendarSource):
    """Calendars from Evolution Data Server (GNOME Calendar) on the session bus."""

    backend = BACKEND_ID

    def __init__(self, calendar_service: str = CALENDAR_SERVICE):
        self.calendar_service = calendar_service

    @property
    def account_id(self) -> str:
        return BACKEND_ID

    def _gdbus(self, dest: str, object_path: str, method: str, *args: str) -> str:
        cmd = [
            "gdbus", "call", "--session",
            "--dest", dest,
            "--object-path", object_path,
            "--method", method,
            *args,
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=GDBUS_TIMEOUT)
        except FileNotFoundError as e:
            raise SourceUnavailable(BACKEND_ID, "gdbus is not installed") from e
        except subprocess.TimeoutExpired as e:
            raise SourceUnavailable(BACKEND_ID, f"{method} timed out") from e
        except OSError as e:
            raise SourceUnavailable(BACKEND_ID, f"could not run gdbus: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            if "AccessDenied" in stderr or "PermissionDenied" in stderr:
                raise PermissionDenied(BACKEND_ID, f"{method}: {stderr}")
            raise SourceUnavailable(BACKEND_ID, f"{method}: {stderr}")
        return result.stdout

    def list_calendars(self, scope: str | None = None) -> list[CalendarDescriptor]:
        output = self._gdbus(
            SOURCES_SERVICE,
            SOURCE_MANAGER_PATH,
            "org.freedesktop.DBus.ObjectManager.GetManagedObjects",
        )
        return parse_sources(output)

    def _open_calendar(self, calendar_id: str) -> tuple[str, str]:
        output = self._gdbus(
            self.calendar_service,
            CALENDAR_FACTORY_PATH,
            "org.gnome.evolution.dataserver.CalendarFactory.OpenCalendar",
            _quote(calendar_id),
        )
        strings = _STRING_RE.findall(output)
        if len(strings) < 2:
            raise SourceUnavailable(BACKEND_ID, f"unexpected OpenCalendar reply: {output!r}")
        return _unquote(strings[0]), _unquote(strings[1])

    def list_events(
        self, calendar_id: str, window_start: datetime, window_end: datetime
    ) -> list[RawEvent]:
        object_path, bus_name = self._open_calendar(calendar_id)
        self._gdbus(bus_name, object_path, f"{CALENDAR_IFACE}.Open")

        query = (
            f'(occur-in-time-range? (make-time "{_ical_utc(window_start)}") '
            f'(make-time "{_ical_utc(window_end)}"))'
        )
        output = self._gdbus(bus_name, object_path, f"{CALENDAR_IFACE}.GetObjectList", _quote(query))

        events = []
        for token in _STRING_RE.findall(output):
            try:
                events.extend(parse_vevent(_unquote(token)))
            except ValueError as e:
                logger.warning("Dropping unreadable object from %s: %s", calendar_id, e)
        return events
