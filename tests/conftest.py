import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from talent_calendar.services.calendar_event import CalendarConnection
from talent_calendar.sync.storage import SyncStorageManager

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
TALENT_ID = "talent-1"


class FakeClock:
    """Callable clock that tests can move forward"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(tmp_path):
    """File-backed storage isolated per test"""
    return SyncStorageManager(use_redis=False, storage_path=str(tmp_path / "storage"))


@pytest.fixture
def connection():
    return CalendarConnection(
        talent_id=TALENT_ID,
        google_email="talent@example.com",
        calendar_id="cal-1",
        access_token="access-token",
        refresh_token="refresh-token",
        token_expiry=NOW + timedelta(hours=1)
    )


@pytest.fixture
def calendar_service():
    """GoogleCalendarService stand-in with awaitable methods"""
    service = MagicMock()
    service.list_events = AsyncMock(return_value=[])
    service.insert_event = AsyncMock()
    service.update_event = AsyncMock()
    service.list_calendars = AsyncMock(return_value=[])
    service.create_calendar = AsyncMock()
    return service


@pytest.fixture
def token_manager(connection):
    manager = MagicMock()
    manager.get_valid_connection = AsyncMock(return_value=connection)
    manager.get_valid_token = AsyncMock(return_value=connection.access_token)
    return manager
