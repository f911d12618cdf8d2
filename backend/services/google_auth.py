import logging
import os

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from services.errors import PermissionDenied, SourceUnavailable

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
]


def _save_token(creds: Credentials, token_path: str):
    directory = os.path.dirname(token_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(token_path, "w") as token_file:
        token_file.write(creds.to_json())


def load_credentials(account_id: str, token_path: str) -> Credentials:
    """Load stored OAuth credentials for one account, refreshing if expired.

    Never opens a browser: an account without a usable token raises
    PermissionDenied until it is authorized again.
    """
    if not os.path.exists(token_path):
        raise PermissionDenied(account_id, "account has not been authorized")

    try:
        creds = Credentials.from_authorized_user_file(token_path, SCOPES)
    except ValueError as e:
        raise PermissionDenied(account_id, f"stored token is invalid: {e}") from e

    if creds.valid:
        return creds
    if not (creds.expired and creds.refresh_token):
        raise PermissionDenied(account_id, "stored token cannot be refreshed")

    try:
        creds.refresh(Request())
    except RefreshError as e:
        raise PermissionDenied(account_id, f"token refresh rejected: {e}") from e
    except TransportError as e:
        raise SourceUnavailable(account_id, f"token refresh failed: {e}") from e
    _save_token(creds, token_path)
    return creds


def authorize_account(credentials_path: str, token_path: str) -> Credentials:
    """Run the installed-app OAuth flow and store the resulting token."""
    flow = InstalledAppFlow.from_client_secrets_file(credentials_path, SCOPES)
    creds = flow.run_local_server(port=0)
    _save_token(creds, token_path)
    logger.info("Stored Google token at %s", token_path)
    return creds
