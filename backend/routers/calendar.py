import logging

from fastapi import APIRouter, Request

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/list")
def list_calendars(request: Request):
    """Calendars of every configured source, with their effective enabled flag.

    Plain ``def``: the sources block on network or D-Bus calls, so this runs
    in FastAPI's threadpool.
    """
    try:
        calendars, errors = request.app.state.engine.list_calendars()
        return {
            "calendars": [c.model_dump() for c in calendars],
            "errors": errors,
        }
    except Exception as e:
        logger.exception("Listing calendars failed")
        return {"calendars": [], "errors": [str(e)]}
