from datetime import datetime, timedelta

from models.schemas import DisplayKind, DisplayState, Meeting

NO_MEETINGS_TEXT = "No meetings"
ELLIPSIS = "..."


def resolve(meetings: list[Meeting], now: datetime) -> DisplayState:
    """Classify ``now`` against an ordered meeting sequence."""
    current = None
    upcoming = None
    for meeting in meetings:
        if meeting.is_all_day:
            continue
        if meeting.start_time <= now < meeting.end_time:
            if current is None or meeting.start_time < current.start_time:
                current = meeting
        elif meeting.start_time > now:
            if upcoming is None or meeting.start_time < upcoming.start_time:
                upcoming = meeting

    if current is not None:
        return DisplayState.in_meeting(current)
    if upcoming is not None:
        return DisplayState.upcoming(upcoming)
    return DisplayState.no_meetings()


def format_duration(d: timedelta) -> str:
    """Format a duration as "1h 20m", "2h", "5m", "<1m" or "0m"."""
    if d <= timedelta(0):
        return "0m"
    total_minutes = int(d.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        if minutes > 0:
            return f"{hours}h {minutes}m"
        return f"{hours}h"
    if minutes == 0:
        return "<1m"
    return f"{minutes}m"


def truncate_title(title: str, max_length: int) -> str:
    if max_length <= 0 or len(title) <= max_length:
        return title
    if max_length <= len(ELLIPSIS):
        return title[:max_length]
    return title[: max_length - len(ELLIPSIS)] + ELLIPSIS


def clock(moment: datetime) -> str:
    return moment.astimezone().strftime("%H:%M")


def render(template: str, meeting: Meeting, remaining: timedelta, max_title_length: int) -> str:
    """Substitute the display placeholders in ``template``.

    ``remaining`` feeds both {time_left} and {time_until}; the caller passes
    the time to the end of a current meeting or to the start of the next one.
    """
    duration = format_duration(remaining)
    replacements = {
        "{title}": truncate_title(meeting.title, max_title_length),
        "{time_left}": duration,
        "{time_until}": duration,
        "{start_time}": clock(meeting.start_time),
        "{end_time}": clock(meeting.end_time),
    }
    result = template
    for placeholder, value in replacements.items():
        result = result.replace(placeholder, value)
    return result


def render_text(
    state: DisplayState,
    now: datetime,
    current_format: str,
    upcoming_format: str,
    max_title_length: int,
) -> str:
    meeting = state.meeting
    if state.kind == DisplayKind.IN_MEETING:
        return render(current_format, meeting, meeting.end_time - now, max_title_length)
    if state.kind == DisplayKind.UPCOMING:
        time_until = meeting.start_time - now
        if time_until < timedelta(minutes=1):
            return f"{truncate_title(meeting.title, max_title_length)} starting now"
        return render(upcoming_format, meeting, time_until, max_title_length)
    return NO_MEETINGS_TEXT


def render_tooltip(state: DisplayState, now: datetime) -> str:
    meeting = state.meeting
    if state.kind == DisplayKind.IN_MEETING:
        tooltip = (
            f"Currently in meeting: {meeting.title}\n"
            f"Ends at {clock(meeting.end_time)} ({format_duration(meeting.end_time - now)} remaining)"
        )
    elif state.kind == DisplayKind.UPCOMING:
        tooltip = (
            f"Next meeting: {meeting.title}\n"
            f"Starts at {clock(meeting.start_time)} (in {format_duration(meeting.start_time - now)})"
        )
    else:
        return "No meetings today"
    if meeting.meeting_link is not None:
        tooltip += f"\n{meeting.meeting_link.provider.value} meeting"
    return tooltip


def visible_meetings(
    meetings: list[Meeting], now: datetime, max_meetings: int
) -> tuple[list[Meeting], int]:
    """Upcoming meetings to list in a menu, and how many were left out."""
    upcoming = [m for m in meetings if not m.is_all_day and m.start_time > now]
    if max_meetings <= 0 or len(upcoming) <= max_meetings:
        return upcoming, 0
    return upcoming[:max_meetings], len(upcoming) - max_meetings
