import logging
import os

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from services.calendar_source import token_path_for
from services.config import SETTING_KEYS, load_config, save_settings, to_settings
from services.google_auth import authorize_account

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
async def get_settings(request: Request):
    """Return the settings as written in .env, paths unresolved."""
    config = request.app.state.engine.config
    settings = to_settings(load_config(request.app.state.env_path, resolve_paths=False))

    settings["google_credentials_configured"] = os.path.exists(config.google_credentials_path)

    # Accounts that have completed OAuth
    settings["authorized_accounts"] = [
        account
        for account in config.google_accounts
        if os.path.exists(token_path_for(config, account))
    ]
    return settings


class SettingsUpdate(BaseModel):
    CALENDAR_BACKEND: str | None = None
    GOOGLE_ACCOUNTS: str | None = None
    GOOGLE_CREDENTIALS_PATH: str | None = None
    GOOGLE_TOKEN_DIR: str | None = None
    ENABLED_CALENDARS: str | None = None
    REFRESH_INTERVAL: str | None = None
    NOTIFICATION_TIME: str | None = None
    ENABLE_NOTIFICATIONS: str | None = None
    MAX_MEETINGS: str | None = None
    MAX_TITLE_LENGTH: str | None = None
    CURRENT_MEETING_FORMAT: str | None = None
    UPCOMING_MEETING_FORMAT: str | None = None
    LOOKAHEAD_HOURS: str | None = None
    LOG_LEVEL: str | None = None


@router.post("")
async def update_settings(update: SettingsUpdate, request: Request):
    """Update settings in .env. Only non-None fields are written.

    The engine picks the new values up at its next refresh cycle.
    """
    env_path = request.app.state.env_path
    changes = {}
    for key in SETTING_KEYS:
        val = getattr(update, key, None)
        if val is not None:
            changes[key] = val
    if changes:
        save_settings(changes, env_path)
        # Keep the process environment from overriding what was just saved
        for key, val in changes.items():
            os.environ[key] = val
        request.app.state.engine.update_config(load_config(env_path))
    return {"status": "ok"}


@router.post("/accounts/{account_id}/authorize")
def authorize(account_id: str, request: Request):
    """Run the Google OAuth flow for one account and remember the account."""
    env_path = request.app.state.env_path
    config = request.app.state.engine.config
    if config.calendar_backend != "google":
        raise HTTPException(status_code=400, detail="Only Google accounts need authorization.")

    creds_path = config.google_credentials_path
    if not os.path.exists(creds_path):
        return {
            "status": "error",
            "message": "Google credentials file not found. Set GOOGLE_CREDENTIALS_PATH first.",
        }

    try:
        authorize_account(creds_path, token_path_for(config, account_id))
    except Exception as e:
        logger.exception("Authorization of %s failed", account_id)
        return {"status": "error", "message": str(e)}

    if account_id not in config.google_accounts:
        accounts = ",".join(config.google_accounts + (account_id,))
        save_settings({"GOOGLE_ACCOUNTS": accounts}, env_path)
        os.environ["GOOGLE_ACCOUNTS"] = accounts
        request.app.state.engine.update_config(load_config(env_path))
    return {"status": "ok", "account": account_id}


@router.get("/setup-status")
async def setup_status(request: Request):
    """Check if the app has the minimum configuration to show meetings."""
    config = request.app.state.engine.config
    if config.calendar_backend == "evolution":
        return {"ready": True, "backend": "evolution", "accounts_configured": True}

    google_ok = os.path.exists(config.google_credentials_path)
    accounts_ok = bool(config.google_accounts)
    return {
        "ready": google_ok and accounts_ok,
        "backend": "google",
        "google_configured": google_ok,
        "accounts_configured": accounts_ok,
    }
