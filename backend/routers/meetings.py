from fastapi import APIRouter, HTTPException, Request

from models.schemas import Meeting, Snapshot

router = APIRouter()


def _meeting_dict(meeting: Meeting | None) -> dict | None:
    if meeting is None:
        return None
    return meeting.model_dump(mode="json")


def snapshot_to_dict(snapshot: Snapshot) -> dict:
    return {
        "state": snapshot.display_state.kind.value,
        "meeting": _meeting_dict(snapshot.display_state.meeting),
        "text": snapshot.text,
        "tooltip": snapshot.tooltip,
        "meetings": [_meeting_dict(m) for m in snapshot.meetings],
        "upcoming": [_meeting_dict(m) for m in snapshot.upcoming],
        "hidden_count": snapshot.hidden_count,
        "generated_at": snapshot.generated_at.isoformat() if snapshot.generated_at else None,
        "error": snapshot.error,
    }


@router.get("/state")
async def meeting_state(request: Request):
    """Return the latest published snapshot without touching any calendar."""
    return snapshot_to_dict(request.app.state.engine.current_state())


@router.post("/refresh")
async def refresh(request: Request):
    result = request.app.state.engine.refresh_now()
    return {"status": result.value}


@router.post("/{meeting_id}/join")
async def join_meeting(meeting_id: str, request: Request):
    meeting = request.app.state.engine.find_meeting(meeting_id)
    if meeting is None:
        raise HTTPException(status_code=404, detail=f"Unknown meeting: {meeting_id}")
    if meeting.meeting_link is None:
        return {"status": "error", "message": "Meeting has no video link."}

    request.app.state.dispatcher.join(meeting)
    return {"status": "ok", "url": meeting.meeting_link.url}
