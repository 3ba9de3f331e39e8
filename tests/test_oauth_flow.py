import pytest
from datetime import timedelta
from unittest.mock import MagicMock

from jose import jwt

from conftest import NOW, TALENT_ID
from talent_calendar.auth.oauth_flow import CalendarConnectionManager
from talent_calendar.utils.config import settings
from talent_calendar.utils.errors import AuthenticationError

CALENDARS = [
    {"id": "talent@example.com", "summary": "talent@example.com", "primary": True},
    {"id": "cal-talent", "summary": "Talent Calendar - Bookings", "primary": False},
]


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET_KEY", "test-secret")


@pytest.fixture
def auth():
    auth = MagicMock()
    auth.create_auth_url.side_effect = lambda state: f"https://accounts.google.com/o/oauth2/auth?state={state}"
    auth.exchange_code.return_value = {
        "access_token": "access-token",
        "refresh_token": "refresh-token",
        "expires_at": NOW + timedelta(hours=1),
    }
    return auth


@pytest.fixture
def manager(storage, auth, calendar_service):
    calendar_service.list_calendars.return_value = CALENDARS
    # State tokens carry a real expiry, so use the wall clock here
    return CalendarConnectionManager(storage, auth, calendar_service)


async def start_connection(manager, auth):
    await manager.connect(TALENT_ID)
    return auth.create_auth_url.call_args.args[0]


@pytest.mark.asyncio
async def test_connect_returns_auth_url_and_awaits_callback(manager, auth):
    response = await manager.connect(TALENT_ID)

    assert response["authUrl"].startswith("https://accounts.google.com/")
    state = auth.create_auth_url.call_args.args[0]
    assert jwt.decode(state, "test-secret", algorithms=["HS256"])["sub"] == TALENT_ID
    status = await manager.status(TALENT_ID)
    assert status["state"] == "awaiting_callback"
    assert status["connected"] is False


@pytest.mark.asyncio
async def test_callback_binds_existing_dedicated_calendar(manager, auth, storage, calendar_service):
    state = await start_connection(manager, auth)

    status = await manager.handle_callback("auth-code", state)

    auth.exchange_code.assert_called_once_with("auth-code")
    calendar_service.create_calendar.assert_not_awaited()
    assert status["state"] == "connected"
    assert status["googleEmail"] == "talent@example.com"
    assert status["calendarId"] == "cal-talent"

    connection = await storage.get_connection(TALENT_ID)
    assert connection.refresh_token == "refresh-token"
    assert await storage.get_oauth_state(TALENT_ID) is None


@pytest.mark.asyncio
async def test_callback_creates_calendar_when_missing(manager, auth, storage, calendar_service):
    calendar_service.list_calendars.return_value = CALENDARS[:1]
    calendar_service.create_calendar.return_value = {"id": "cal-created"}
    state = await start_connection(manager, auth)

    await manager.handle_callback("auth-code", state)

    args = calendar_service.create_calendar.await_args.args
    assert args[1] == "Talent Calendar"
    assert args[3] == "America/Chicago"
    assert (await storage.get_connection(TALENT_ID)).calendar_id == "cal-created"


@pytest.mark.asyncio
async def test_reconnect_keeps_refresh_token_when_google_omits_it(manager, auth, storage):
    await manager.handle_callback("auth-code", await start_connection(manager, auth))
    auth.exchange_code.return_value = {"access_token": "second-token", "refresh_token": None, "expires_at": None}

    await manager.handle_callback("auth-code", await start_connection(manager, auth))

    connection = await storage.get_connection(TALENT_ID)
    assert connection.access_token == "second-token"
    assert connection.refresh_token == "refresh-token"


@pytest.mark.asyncio
async def test_callback_rejects_tampered_state(manager, auth):
    await manager.connect(TALENT_ID)
    forged = jwt.encode({"sub": TALENT_ID, "nonce": "x", "purpose": "calendar_oauth"}, "other", algorithm="HS256")

    with pytest.raises(AuthenticationError):
        await manager.handle_callback("auth-code", forged)
    auth.exchange_code.assert_not_called()


@pytest.mark.asyncio
async def test_callback_rejects_stale_nonce(manager, auth):
    first_state = await start_connection(manager, auth)
    await manager.connect(TALENT_ID)

    with pytest.raises(AuthenticationError):
        await manager.handle_callback("auth-code", first_state)


@pytest.mark.asyncio
async def test_disconnect_clears_connection_and_conflicts(manager, auth, storage):
    await manager.handle_callback("auth-code", await start_connection(manager, auth))
    await storage.save_pending_conflicts(TALENT_ID, [{"id": "e1"}])

    response = await manager.disconnect(TALENT_ID)

    assert response["state"] == "disconnected"
    assert await storage.get_connection(TALENT_ID) is None
    assert await storage.get_pending_conflicts(TALENT_ID) == []
    assert (await manager.status(TALENT_ID))["state"] == "disconnected"
