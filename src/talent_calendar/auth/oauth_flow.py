"""
Google Calendar connection flow for a talent.

``connect`` hands out an authorization URL whose ``state`` is a short-lived
signed token naming the talent; ``handle_callback`` verifies it, exchanges
the code and binds the talent to a dedicated calendar on their account.
"""

import asyncio
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from jose import JWTError, jwt

from talent_calendar.auth.google_auth import GoogleCalendarAuth
from talent_calendar.services.calendar_event import CalendarConnection, utcnow
from talent_calendar.services.google_calendar import GoogleCalendarService
from talent_calendar.sync.architecture import ConnectionState
from talent_calendar.sync.storage import SyncStorageManager
from talent_calendar.utils.config import settings
from talent_calendar.utils.errors import AuthenticationError

logger = logging.getLogger(__name__)

STATE_PURPOSE = "calendar_oauth"


class CalendarConnectionManager:
    def __init__(
        self,
        storage: SyncStorageManager,
        auth: Optional[GoogleCalendarAuth] = None,
        calendar_service: Optional[GoogleCalendarService] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.storage = storage
        self.auth = auth or GoogleCalendarAuth()
        self.calendar_service = calendar_service or GoogleCalendarService(self.auth)
        self.clock = clock

    def _encode_state(self, talent_id: str, nonce: str) -> str:
        now = self.clock()
        claims = {
            "sub": talent_id,
            "nonce": nonce,
            "purpose": STATE_PURPOSE,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=settings.OAUTH_STATE_TTL_MINUTES)).timestamp()),
        }
        return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    def _decode_state(self, state: str) -> Dict[str, Any]:
        try:
            claims = jwt.decode(state, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        except JWTError as e:
            logger.warning(f"Rejected OAuth state: {e}")
            raise AuthenticationError("Invalid or expired OAuth state")

        if claims.get("purpose") != STATE_PURPOSE or not claims.get("sub"):
            raise AuthenticationError("Invalid OAuth state")
        return claims

    async def connect(self, talent_id: str) -> Dict[str, str]:
        """Start the OAuth handshake and return the Google consent URL"""
        nonce = secrets.token_urlsafe(16)
        auth_url = self.auth.create_auth_url(self._encode_state(talent_id, nonce))

        await self.storage.save_oauth_state(talent_id, {
            "nonce": nonce,
            "created_at": self.clock().isoformat(),
        })
        logger.info(f"Calendar connection started for talent {talent_id}")
        return {"authUrl": auth_url}

    async def handle_callback(self, code: str, state: str) -> Dict[str, Any]:
        """Complete the handshake and persist the talent's connection"""
        claims = self._decode_state(state)
        talent_id = claims["sub"]

        pending = await self.storage.get_oauth_state(talent_id)
        if not pending or pending.get("nonce") != claims.get("nonce"):
            raise AuthenticationError("OAuth state does not match a pending connection")

        loop = asyncio.get_running_loop()
        tokens = await loop.run_in_executor(None, self.auth.exchange_code, code)
        access_token = tokens["access_token"]

        calendars = await self.calendar_service.list_calendars(access_token)
        google_email = _primary_email(calendars)
        calendar_id = await self._find_or_create_calendar(access_token, calendars)

        existing = await self.storage.get_connection(talent_id)
        connection = CalendarConnection(
            talent_id=talent_id,
            google_email=google_email,
            calendar_id=calendar_id,
            access_token=access_token,
            # Google omits the refresh token on re-consent for some accounts
            refresh_token=tokens.get("refresh_token") or (existing.refresh_token if existing else None),
            token_expiry=tokens.get("expires_at") or self.clock() + timedelta(hours=1),
            created_at=existing.created_at if existing else self.clock()
        )
        await self.storage.save_connection(connection)
        await self.storage.delete_oauth_state(talent_id)

        logger.info(f"Talent {talent_id} connected Google calendar {calendar_id} ({google_email})")
        return await self.status(talent_id)

    async def _find_or_create_calendar(self, access_token: str, calendars: List[Dict[str, Any]]) -> str:
        name = settings.CALENDAR_NAME.lower()
        for calendar in calendars:
            if name in calendar.get("summary", "").lower():
                logger.info(f"Using existing calendar {calendar['id']}")
                return calendar["id"]

        created = await self.calendar_service.create_calendar(
            access_token,
            settings.CALENDAR_NAME,
            "Bookings and availability synced from the talent calendar",
            settings.DEFAULT_TIMEZONE
        )
        logger.info(f"Created calendar {created['id']}")
        return created["id"]

    async def disconnect(self, talent_id: str) -> Dict[str, Any]:
        await self.storage.delete_connection(talent_id)
        await self.storage.delete_oauth_state(talent_id)
        await self.storage.save_pending_conflicts(talent_id, [])
        logger.info(f"Talent {talent_id} disconnected Google Calendar")
        return {"success": True, "state": ConnectionState.DISCONNECTED.value}

    async def status(self, talent_id: str) -> Dict[str, Any]:
        """Connection state plus the most recent sync outcome"""
        connection = await self.storage.get_connection(talent_id)
        if connection:
            state = ConnectionState.CONNECTED
        elif await self.storage.get_oauth_state(talent_id):
            state = ConnectionState.AWAITING_CALLBACK
        else:
            state = ConnectionState.DISCONNECTED

        return {
            "talentId": talent_id,
            "state": state.value,
            "connected": state == ConnectionState.CONNECTED,
            "googleEmail": connection.google_email if connection else None,
            "calendarId": connection.calendar_id if connection else None,
            "lastSync": await self.storage.get_latest_sync_result(talent_id),
        }


def _primary_email(calendars: List[Dict[str, Any]]) -> Optional[str]:
    # The primary calendar's id is the account address
    for calendar in calendars:
        if calendar.get("primary"):
            return calendar["id"]
    return None
