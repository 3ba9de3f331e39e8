"""
Calendar Synchronization Controller

This module defines the controller that pushes a talent's internal calendar
to their dedicated Google calendar and pulls Google changes back, detecting
events edited on both sides since their last sync.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from talent_calendar.auth.token_manager import CalendarTokenManager
from talent_calendar.services.calendar_event import (
    EPOCH,
    CalendarConnection,
    CalendarEvent,
    ExternalEvent,
    parse_provider_timestamp,
    utcnow,
)
from talent_calendar.services.event_translator import (
    DEFAULT_END_TIME,
    DEFAULT_START_TIME,
    to_external,
    to_internal,
)
from talent_calendar.services.google_calendar import GoogleCalendarService
from talent_calendar.sync.architecture import (
    Conflict,
    ConflictResolution,
    ResolutionResult,
    SyncAction,
    SyncResult,
)
from talent_calendar.sync.conflicts import ConflictResolver, apply_external_version
from talent_calendar.sync.storage import SyncStorageManager
from talent_calendar.utils.config import settings
from talent_calendar.utils.errors import ProviderAPIError, TalentCalendarError, TranslationError

# Set up logging
logger = logging.getLogger(__name__)


class CalendarSyncController:
    """
    Controller for synchronizing a talent's calendar with Google Calendar
    """

    def __init__(
        self,
        storage_manager: SyncStorageManager,
        token_manager: CalendarTokenManager,
        calendar_service: GoogleCalendarService,
        clock: Callable[[], datetime] = utcnow,
        pull_window_days: Optional[int] = None
    ):
        """Initialize the calendar sync controller"""
        self.storage = storage_manager
        self.token_manager = token_manager
        self.calendar_service = calendar_service
        self.clock = clock
        self.pull_window_days = pull_window_days or settings.PULL_WINDOW_DAYS
        self.resolver = ConflictResolver(storage_manager, token_manager, calendar_service, clock)
        self.active_syncs: Dict[str, asyncio.Lock] = {}  # One lock per talent

    def _lock(self, talent_id: str) -> asyncio.Lock:
        lock = self.active_syncs.get(talent_id)
        if lock is None:
            lock = self.active_syncs[talent_id] = asyncio.Lock()
        return lock

    def _stamp(self, provider_updated: Optional[datetime]) -> datetime:
        now = self.clock()
        return max(now, provider_updated) if provider_updated else now

    async def sync(self, talent_id: str, action: SyncAction) -> SyncResult:
        """
        Run a push or pull for one talent. Concurrent calls for the same
        talent queue behind each other.
        """
        async with self._lock(talent_id):
            connection = await self.token_manager.get_valid_connection(talent_id)

            if SyncAction(action) == SyncAction.PUSH:
                result = await self.push(talent_id, connection)
            else:
                result = await self.pull(talent_id, connection)

            result.completed_at = self.clock()
            await self.storage.save_sync_result(talent_id, result.model_dump(mode="json"))
            logger.info(
                f"{result.action.value} for talent {talent_id} finished: "
                f"{result.processed} processed, {len(result.conflicts)} conflicts, {len(result.errors)} errors"
            )
            return result

    async def push(self, talent_id: str, connection: CalendarConnection) -> SyncResult:
        """
        Create or update upcoming events on the talent's Google calendar.
        Failing events are reported and the rest of the batch continues.
        """
        result = SyncResult(talent_id=talent_id, action=SyncAction.PUSH)
        today = self.clock().date()

        events = [
            event for event in await self.storage.list_events(talent_id)
            if event.start_date >= today and not event.do_not_sync
        ]

        for event in events:
            try:
                if not event.all_day:
                    # Keep the local record identical to what Google will echo back
                    event.start_time = event.start_time or DEFAULT_START_TIME
                    event.end_time = event.end_time or DEFAULT_END_TIME
                body = to_external(event)
                if event.gcal_event_id:
                    response = await self.calendar_service.update_event(
                        connection.access_token, connection.calendar_id, event.gcal_event_id, body
                    )
                else:
                    response = await self.calendar_service.insert_event(
                        connection.access_token, connection.calendar_id, body
                    )
                    if not response.get("id"):
                        raise ProviderAPIError("Google Calendar event insert returned no event id")
                    event.gcal_event_id = response["id"]

                event.last_synced_at = self._stamp(parse_provider_timestamp(response.get("updated")))
                await self.storage.save_event(event)
                result.processed += 1
            except TalentCalendarError as e:
                error_msg = f"Failed to sync event {event.id}: {e.message}"
                logger.error(error_msg)
                result.errors.append(error_msg)
            except Exception as e:
                error_msg = f"Failed to sync event {event.id}: {e}"
                logger.exception(error_msg)
                result.errors.append(error_msg)

        return result

    async def pull(self, talent_id: str, connection: CalendarConnection) -> SyncResult:
        """
        Import Google events for the pull window. Events changed on both sides
        since their watermark are returned as conflicts and left untouched.
        """
        result = SyncResult(talent_id=talent_id, action=SyncAction.PULL)
        now = self.clock()

        # A listing failure aborts the whole pull
        items = await self.calendar_service.list_events(
            connection.access_token,
            connection.calendar_id,
            now,
            now + timedelta(days=self.pull_window_days)
        )
        logger.info(f"Pulled {len(items)} Google events for talent {talent_id}")

        for item in items:
            try:
                external = ExternalEvent.from_google(item)
                incoming = to_internal(external, talent_id)
            except TranslationError as e:
                logger.warning(f"Skipping Google event for talent {talent_id}: {e.message}")
                result.errors.append(e.message)
                continue

            stamp = self._stamp(external.updated)
            existing = await self.storage.find_event_by_external_id(talent_id, external.id)

            if existing is None:
                incoming.last_synced_at = stamp
                incoming.created_at = now
                incoming.updated_at = stamp
                await self.storage.upsert_event(incoming)
                result.processed += 1
                continue

            watermark = existing.last_synced_at or EPOCH
            external_updated = external.updated or EPOCH
            if external_updated > watermark and existing.updated_at > watermark:
                result.conflicts.append(self._conflict(existing, incoming, external))
                continue

            await self.storage.save_event(apply_external_version(existing, incoming, stamp))
            result.processed += 1

        await self.storage.save_pending_conflicts(
            talent_id, [c.model_dump(mode="json") for c in result.conflicts]
        )
        return result

    def _conflict(self, local: CalendarEvent, incoming: CalendarEvent, external: ExternalEvent) -> Conflict:
        logger.warning(f"Conflict on event {local.id} ({local.title}): changed locally and in Google")
        return Conflict(
            id=local.id,
            title=local.title,
            date=local.start_date.isoformat(),
            local_version=local,
            external_version=incoming.model_copy(update={"id": local.id}),
            external_event_id=external.id,
            local_updated_at=local.updated_at,
            external_updated_at=external.updated
        )

    async def get_pending_conflicts(self, talent_id: str) -> List[Conflict]:
        return await self.resolver.get_pending(talent_id)

    async def resolve_conflicts(
        self,
        talent_id: str,
        resolutions: Dict[str, ConflictResolution],
        default_resolution: Optional[ConflictResolution] = None
    ) -> ResolutionResult:
        """Apply operator resolutions; shares the talent's sync lock"""
        if default_resolution is None:
            default_resolution = ConflictResolution(settings.DEFAULT_CONFLICT_RESOLUTION)

        async with self._lock(talent_id):
            return await self.resolver.resolve(talent_id, resolutions, default_resolution)

    async def list_events(self, talent_id: str) -> List[CalendarEvent]:
        return await self.storage.list_events(talent_id)

    async def save_event(self, event: CalendarEvent) -> CalendarEvent:
        """Staff edit: upsert on the idempotency key and bump ``updated_at``"""
        return await self.storage.upsert_event(event, touch=True)
