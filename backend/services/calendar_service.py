import logging
from datetime import datetime

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from models.schemas import CalendarDescriptor, ConferenceEntry, EventTime, RawEvent
from services.calendar_source import CalendarSource
from services.errors import PermissionDenied, SourceUnavailable
from services.google_auth import load_credentials

logger = logging.getLogger(__name__)

DENIED_STATUSES = {401, 403, 404}


class GoogleCalendarSource(CalendarSource):
    backend = "google"

    def __init__(self, account_id: str, credentials_path: str, token_path: str, service=None):
        self._account_id = account_id
        self.credentials_path = credentials_path
        self.token_path = token_path
        self.service = service

    @property
    def account_id(self) -> str:
        return self._account_id

    def _get_service(self):
        if self.service is None:
            creds = load_credentials(self._account_id, self.token_path)
            self.service = build("calendar", "v3", credentials=creds, cache_discovery=False)
        return self.service

    def _execute(self, request, what: str) -> dict:
        try:
            return request.execute()
        except HttpError as e:
            if e.resp.status in DENIED_STATUSES:
                raise PermissionDenied(self._account_id, f"{what}: HTTP {e.resp.status}") from e
            raise SourceUnavailable(self._account_id, f"{what}: HTTP {e.resp.status}") from e
        except RefreshError as e:
            # Cached credentials refresh inside execute(); a revoked token lands here
            raise PermissionDenied(self._account_id, f"{what}: token refresh rejected: {e}") from e
        except (httplib2.HttpLib2Error, TransportError, OSError) as e:
            raise SourceUnavailable(self._account_id, f"{what}: {e}") from e

    def _parse_event(self, event: dict) -> RawEvent:
        """Parse a Google Calendar event into a raw event."""
        entries = [
            ConferenceEntry(
                entry_point_type=entry.get("entryPointType", ""),
                uri=entry.get("uri", ""),
            )
            for entry in event.get("conferenceData", {}).get("entryPoints", [])
        ]
        hangout_link = event.get("hangoutLink", "")
        if hangout_link and all(e.uri != hangout_link for e in entries):
            entries.append(ConferenceEntry(entry_point_type="video", uri=hangout_link))

        start = event.get("start")
        end = event.get("end")
        return RawEvent(
            id=event.get("id", ""),
            title=event.get("summary", ""),
            start=EventTime(date_time=start.get("dateTime"), date=start.get("date")) if start else None,
            end=EventTime(date_time=end.get("dateTime"), date=end.get("date")) if end else None,
            description=event.get("description", ""),
            location=event.get("location", ""),
            conference_entries=entries,
            status=event.get("status", ""),
        )

    def list_calendars(self, scope: str | None = None) -> list[CalendarDescriptor]:
        """List calendars on the account; ``scope`` is an optional minAccessRole."""
        service = self._get_service()
        calendars = []
        page_token = None
        while True:
            params = {"pageToken": page_token}
            if scope:
                params["minAccessRole"] = scope
            result = self._execute(service.calendarList().list(**params), "calendar list")
            for item in result.get("items", []):
                calendars.append(
                    CalendarDescriptor(
                        id=item["id"],
                        display_name=item.get("summaryOverride") or item.get("summary", item["id"]),
                        account_id=self._account_id,
                        enabled=item.get("selected", True),
                        color=item.get("backgroundColor", ""),
                    )
                )
            page_token = result.get("nextPageToken")
            if not page_token:
                return calendars

    def list_events(
        self, calendar_id: str, window_start: datetime, window_end: datetime
    ) -> list[RawEvent]:
        service = self._get_service()
        events = []
        page_token = None
        while True:
            request = service.events().list(
                calendarId=calendar_id,
                timeMin=window_start.isoformat(),
                timeMax=window_end.isoformat(),
                singleEvents=True,
                showDeleted=False,
                orderBy="startTime",
                pageToken=page_token,
            )
            result = self._execute(request, f"events of {calendar_id}")
            events.extend(self._parse_event(e) for e in result.get("items", []))
            page_token = result.get("nextPageToken")
            if not page_token:
                return events
