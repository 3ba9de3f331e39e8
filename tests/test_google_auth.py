import pytest
from datetime import datetime, timezone
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

from google.auth.exceptions import RefreshError

from talent_calendar.auth.google_auth import GoogleCalendarAuth
from talent_calendar.utils.errors import CalendarNotConfiguredError, TokenRefreshError


@pytest.fixture
def auth():
    return GoogleCalendarAuth(
        client_id="client-id.apps.googleusercontent.com",
        client_secret="client-secret",
        redirect_uri="http://localhost:8008/api/calendar/oauth/callback"
    )


def test_auth_url_requests_offline_consent(auth):
    url = auth.create_auth_url("signed-state")

    query = parse_qs(urlparse(url).query)
    assert query["state"] == ["signed-state"]
    assert query["access_type"] == ["offline"]
    assert query["prompt"] == ["consent"]
    assert query["client_id"] == ["client-id.apps.googleusercontent.com"]
    assert "https://www.googleapis.com/auth/calendar" in query["scope"][0]
    assert "code_challenge" not in query


def test_unconfigured_client_is_reported():
    auth = GoogleCalendarAuth(client_id="", client_secret="")

    assert auth.configured is False
    with pytest.raises(CalendarNotConfiguredError):
        auth.create_auth_url("state")


def test_refresh_without_refresh_token(auth):
    with pytest.raises(TokenRefreshError):
        auth.refresh_access_token(None)


def test_rejected_refresh_token(auth):
    with patch("talent_calendar.auth.google_auth.Credentials.refresh", side_effect=RefreshError("invalid_grant")):
        with pytest.raises(TokenRefreshError):
            auth.refresh_access_token("revoked-token")


def test_refresh_returns_aware_expiry(auth):
    def fake_refresh(credentials, request):
        credentials.token = "fresh-token"
        credentials.expiry = datetime(2026, 3, 1, 13, 0)

    with patch("talent_calendar.auth.google_auth.Credentials.refresh", autospec=True, side_effect=fake_refresh):
        tokens = auth.refresh_access_token("refresh-token")

    assert tokens["access_token"] == "fresh-token"
    assert tokens["expires_at"] == datetime(2026, 3, 1, 13, 0, tzinfo=timezone.utc)
