class MeetingTrayError(Exception):
    """Base class for errors raised inside the meeting engine."""


class SourceError(MeetingTrayError):
    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class SourceUnavailable(SourceError):
    """The calendar backend could not be reached (network or bus failure)."""


class PermissionDenied(SourceError):
    """The backend was reached but refused access to the calendar."""


class ParseError(MeetingTrayError):
    """A single raw event could not be interpreted."""

    def __init__(self, event_id: str, message: str):
        super().__init__(f"event {event_id or '<no id>'}: {message}")
        self.event_id = event_id


class ConfigInvalid(MeetingTrayError):
    def __init__(self, key: str, value, message: str):
        super().__init__(f"{key}={value!r}: {message}")
        self.key = key
        self.value = value


class NotificationDeliveryError(MeetingTrayError):
    """A reminder could not be handed to the desktop notification service."""
