import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build

from talent_calendar.utils.config import settings
from talent_calendar.utils.errors import (
    AuthenticationError,
    CalendarNotConfiguredError,
    TokenRefreshError,
)

logger = logging.getLogger(__name__)

# OAuth scope for Google Calendar API
SCOPES = [
    'https://www.googleapis.com/auth/calendar'
]

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"

class GoogleCalendarAuth:
    def __init__(self, client_id: Optional[str] = None, client_secret: Optional[str] = None,
                 redirect_uri: Optional[str] = None):
        """Initialize Google Calendar authentication"""
        self.client_id = client_id if client_id is not None else settings.GOOGLE_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.GOOGLE_CLIENT_SECRET
        self.redirect_uri = redirect_uri or settings.GOOGLE_REDIRECT_URI
        self.token_uri = settings.GOOGLE_TOKEN_URI

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _client_config(self) -> Dict[str, Any]:
        if not self.configured:
            raise CalendarNotConfiguredError("Google Calendar API credentials not configured")
        return {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": self.token_uri,
                "redirect_uris": [self.redirect_uri]
            }
        }

    def _create_flow(self) -> Flow:
        # No PKCE: the URL and the code exchange happen in different requests
        flow = Flow.from_client_config(
            self._client_config(),
            scopes=SCOPES,
            autogenerate_code_verifier=False
        )
        flow.redirect_uri = self.redirect_uri
        return flow

    def create_auth_url(self, state: str) -> str:
        """
        Create authentication URL for Google OAuth flow.
        ``state`` is echoed back to the callback and identifies the talent.
        """
        flow = self._create_flow()
        auth_url, _ = flow.authorization_url(
            access_type='offline',
            include_granted_scopes='true',
            prompt='consent',
            state=state
        )
        return auth_url

    def exchange_code(self, code: str) -> Dict[str, Any]:
        """Exchange authorization code for tokens"""
        flow = self._create_flow()
        try:
            flow.fetch_token(code=code)
        except Exception as e:
            logger.error(f"Google code exchange failed: {e}")
            raise AuthenticationError(f"Failed to exchange code: {str(e)}")

        credentials = flow.credentials
        if not credentials.token:
            raise AuthenticationError("Failed to obtain access token")

        return {
            "access_token": credentials.token,
            "refresh_token": credentials.refresh_token,
            "expires_at": _aware(credentials.expiry) if credentials.expiry else None
        }

    def refresh_access_token(self, refresh_token: Optional[str]) -> Dict[str, Any]:
        """
        Exchange a refresh token for a new access token. One attempt only;
        a rejected refresh token means the talent has to reconnect.
        """
        self._client_config()
        if not refresh_token:
            raise TokenRefreshError("No refresh token stored; reconnect Google Calendar")

        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=self.token_uri,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=SCOPES
        )
        try:
            credentials.refresh(Request())
        except (RefreshError, TransportError) as e:
            logger.error(f"Google token refresh failed: {e}")
            raise TokenRefreshError(f"Failed to refresh access token: {str(e)}")

        expires_at = _aware(credentials.expiry) if credentials.expiry else None
        if expires_at is None:
            expires_at = datetime.now(timezone.utc) + timedelta(hours=1)

        return {
            "access_token": credentials.token,
            "expires_at": expires_at
        }

    def get_calendar_service(self, access_token: str):
        """Get Google Calendar API service for an access token"""
        credentials = Credentials(token=access_token)
        return build('calendar', 'v3', credentials=credentials, cache_discovery=False)


def _aware(value: datetime) -> datetime:
    # google-auth reports expiry as naive UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
