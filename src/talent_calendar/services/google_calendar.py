import asyncio
import functools
import logging
from typing import Any, Callable, Dict, List, Optional
from datetime import datetime
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception
import httplib2
from googleapiclient.errors import HttpError

from talent_calendar.auth.google_auth import GoogleCalendarAuth
from talent_calendar.utils.errors import ProviderAPIError

# Set up logging
logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = {429, 500, 502, 503, 504}


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, HttpError) and error.resp.status in TRANSIENT_STATUSES


def _provider_error(action: str, error: HttpError) -> ProviderAPIError:
    status = error.resp.status
    reason = error.reason if hasattr(error, "reason") else str(error)
    return ProviderAPIError(f"Google Calendar {action} failed ({status}): {reason}", provider_status=status)


def _transport_error(action: str, error: Exception) -> ProviderAPIError:
    return ProviderAPIError(f"Google Calendar {action} failed: {error.__class__.__name__}: {error}")


def _format_time(value: datetime) -> str:
    return value.isoformat() if value.tzinfo else value.isoformat() + 'Z'


class GoogleCalendarService:
    def __init__(self, auth: Optional[GoogleCalendarAuth] = None):
        """Initialize the Google Calendar service"""
        self.auth = auth or GoogleCalendarAuth()

    async def _run(self, func: Callable, *args: Any) -> Any:
        # googleapiclient is blocking; keep it off the event loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    # Reads retry transient failures; writes are never retried

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        retry=retry_if_exception(_is_transient),
        reraise=True
    )
    def _list_events_sync(self, access_token: str, calendar_id: str, time_min: str, time_max: str) -> List[Dict[str, Any]]:
        service = self.auth.get_calendar_service(access_token)
        items: List[Dict[str, Any]] = []
        page_token = None

        while True:
            params = {
                'calendarId': calendar_id,
                'timeMin': time_min,
                'timeMax': time_max,
                'singleEvents': True,  # Expand recurring events
                'orderBy': 'startTime',
                'maxResults': 250
            }
            if page_token:
                params['pageToken'] = page_token

            events_result = service.events().list(**params).execute()
            items.extend(events_result.get('items', []))
            page_token = events_result.get('nextPageToken')
            if not page_token:
                return items

    async def list_events(
        self,
        access_token: str,
        calendar_id: str,
        start_date: datetime,
        end_date: datetime
    ) -> List[Dict[str, Any]]:
        """
        Get raw events from a Google calendar between two instants

        Args:
            access_token: Valid OAuth access token
            calendar_id: ID of the calendar to fetch events from
            start_date: Lower bound (timeMin)
            end_date: Upper bound (timeMax)

        Returns:
            All event payloads across result pages
        """
        try:
            return await self._run(
                self._list_events_sync, access_token, calendar_id,
                _format_time(start_date), _format_time(end_date)
            )
        except HttpError as error:
            logger.error(f"Error getting Google calendar events: {error}")
            raise _provider_error("event listing", error)

    async def insert_event(self, access_token: str, calendar_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """Create an event and return the created resource"""
        def _insert():
            service = self.auth.get_calendar_service(access_token)
            return service.events().insert(calendarId=calendar_id, body=body).execute()

        try:
            return await self._run(_insert)
        except HttpError as error:
            raise _provider_error("event insert", error)
        except (OSError, httplib2.HttpLib2Error) as error:
            raise _transport_error("event insert", error)

    async def update_event(self, access_token: str, calendar_id: str, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """Replace an existing event and return the updated resource"""
        def _update():
            service = self.auth.get_calendar_service(access_token)
            return service.events().update(calendarId=calendar_id, eventId=event_id, body=body).execute()

        try:
            return await self._run(_update)
        except HttpError as error:
            raise _provider_error("event update", error)
        except (OSError, httplib2.HttpLib2Error) as error:
            raise _transport_error("event update", error)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        retry=retry_if_exception(_is_transient),
        reraise=True
    )
    def _list_calendars_sync(self, access_token: str) -> List[Dict[str, Any]]:
        service = self.auth.get_calendar_service(access_token)
        calendar_list = service.calendarList().list().execute()
        return calendar_list.get('items', [])

    async def list_calendars(self, access_token: str) -> List[Dict[str, Any]]:
        """List available calendars for the authenticated user"""
        try:
            calendars = await self._run(self._list_calendars_sync, access_token)
        except HttpError as error:
            logger.error(f"Error listing Google calendars: {error}")
            raise _provider_error("calendar listing", error)

        return [
            {
                'id': calendar['id'],
                'summary': calendar.get('summary', 'Unnamed Calendar'),
                'timeZone': calendar.get('timeZone', 'UTC'),
                'accessRole': calendar.get('accessRole', ''),
                'primary': calendar.get('primary', False)
            }
            for calendar in calendars
        ]

    async def create_calendar(self, access_token: str, summary: str, description: str, time_zone: str) -> Dict[str, Any]:
        """Create a secondary calendar owned by the authenticated user"""
        def _create():
            service = self.auth.get_calendar_service(access_token)
            body = {'summary': summary, 'description': description, 'timeZone': time_zone}
            return service.calendars().insert(body=body).execute()

        try:
            return await self._run(_create)
        except HttpError as error:
            raise _provider_error("calendar creation", error)
