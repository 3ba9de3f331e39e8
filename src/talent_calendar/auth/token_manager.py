import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from talent_calendar.auth.google_auth import GoogleCalendarAuth
from talent_calendar.services.calendar_event import CalendarConnection, utcnow
from talent_calendar.sync.storage import SyncStorageManager
from talent_calendar.utils.errors import CalendarNotConnectedError

logger = logging.getLogger(__name__)


class CalendarTokenManager:
    """
    Hands out valid Google access tokens per talent, refreshing expired
    ones in place. Refreshes are not serialised across requests; two
    concurrent refreshes both succeed and the later write wins.
    """

    def __init__(self, storage: SyncStorageManager, auth: Optional[GoogleCalendarAuth] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.auth = auth or GoogleCalendarAuth()
        self.clock = clock

    async def get_valid_connection(self, talent_id: str) -> CalendarConnection:
        """Load the talent's connection, refreshing the access token if it expired"""
        connection = await self.storage.get_connection(talent_id)
        if not connection:
            raise CalendarNotConnectedError("Google Calendar not connected")

        if connection.is_expired(self.clock()):
            logger.info(f"Access token expired for talent {talent_id}, refreshing")
            loop = asyncio.get_running_loop()
            tokens = await loop.run_in_executor(None, self.auth.refresh_access_token, connection.refresh_token)

            connection.access_token = tokens["access_token"]
            connection.token_expiry = tokens["expires_at"]
            await self.storage.save_connection(connection)
            logger.info(f"Access token refreshed for talent {talent_id}, valid until {connection.token_expiry.isoformat()}")

        return connection

    async def get_valid_token(self, talent_id: str) -> str:
        connection = await self.get_valid_connection(talent_id)
        return connection.access_token
