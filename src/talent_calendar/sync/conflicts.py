"""
Conflict Resolution

Applies operator decisions to the conflicts recorded by the last pull.
Every resolution except ``skip`` advances the event's ``last_synced_at``
watermark past both versions so the same pair is not reported again.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from talent_calendar.auth.token_manager import CalendarTokenManager
from talent_calendar.services.calendar_event import (
    SYNCED_FIELDS,
    CalendarEvent,
    parse_provider_timestamp,
    utcnow,
)
from talent_calendar.services.event_translator import to_external
from talent_calendar.services.google_calendar import GoogleCalendarService
from talent_calendar.sync.architecture import Conflict, ConflictResolution, ResolutionResult
from talent_calendar.sync.storage import SyncStorageManager
from talent_calendar.utils.errors import EventNotFoundError, TalentCalendarError

logger = logging.getLogger(__name__)


def apply_external_version(local: CalendarEvent, external: CalendarEvent, synced_at: datetime) -> CalendarEvent:
    """Overwrite the synced fields of a local event with the Google version"""
    values = {field: getattr(external, field) for field in SYNCED_FIELDS}
    values["last_synced_at"] = synced_at
    return local.model_copy(update=values)


def merge_versions(
    local: CalendarEvent,
    external: CalendarEvent,
    local_updated_at: datetime,
    external_updated_at: datetime
) -> CalendarEvent:
    """
    Field-wise merge: the more recently updated side wins each field, but an
    empty value never replaces a filled one. Ties go to the local version.
    """
    if external_updated_at > local_updated_at:
        newer, older = external, local
    else:
        newer, older = local, external

    values = {}
    for field in SYNCED_FIELDS:
        value = getattr(newer, field)
        if value is None or value == "":
            value = getattr(older, field)
        values[field] = value

    # Date bounds always travel together from the winning side
    values["start_date"] = newer.start_date
    values["end_date"] = newer.end_date
    values["all_day"] = newer.all_day
    if newer.all_day:
        values["start_time"] = None
        values["end_time"] = None

    return local.model_copy(update=values)


class ConflictResolver:
    """Resolves stored conflicts one event at a time"""

    def __init__(
        self,
        storage: SyncStorageManager,
        token_manager: CalendarTokenManager,
        calendar_service: GoogleCalendarService,
        clock: Callable[[], datetime] = utcnow
    ):
        self.storage = storage
        self.token_manager = token_manager
        self.calendar_service = calendar_service
        self.clock = clock

    async def get_pending(self, talent_id: str) -> List[Conflict]:
        return [Conflict.model_validate(c) for c in await self.storage.get_pending_conflicts(talent_id)]

    async def resolve(
        self,
        talent_id: str,
        resolutions: Dict[str, ConflictResolution],
        default_resolution: Optional[ConflictResolution] = None
    ) -> ResolutionResult:
        """
        Apply resolutions keyed by conflict id. An empty mapping applies
        ``default_resolution`` to every pending conflict.
        """
        pending = await self.get_pending(talent_id)
        result = ResolutionResult(talent_id=talent_id)

        if resolutions:
            plan = dict(resolutions)
            known = {conflict.id for conflict in pending}
            for conflict_id in plan:
                if conflict_id not in known:
                    result.errors.append(f"No pending conflict for event {conflict_id}")
        else:
            default = default_resolution or ConflictResolution.KEEP_CMS
            plan = {conflict.id: default for conflict in pending}

        remaining: List[Conflict] = []
        for conflict in pending:
            resolution = plan.get(conflict.id)
            if resolution is None:
                remaining.append(conflict)
                continue

            try:
                await self._apply(talent_id, conflict, ConflictResolution(resolution))
                result.resolved[conflict.id] = ConflictResolution(resolution)
                logger.info(f"Resolved conflict on event {conflict.id} for talent {talent_id} with {resolution}")
            except TalentCalendarError as e:
                logger.error(f"Failed to resolve conflict on event {conflict.id}: {e}")
                result.errors.append(f"Event {conflict.id}: {e.message}")
                remaining.append(conflict)

        await self.storage.save_pending_conflicts(
            talent_id, [c.model_dump(mode="json") for c in remaining]
        )
        result.pending = remaining
        return result

    async def _apply(self, talent_id: str, conflict: Conflict, resolution: ConflictResolution) -> None:
        if resolution == ConflictResolution.SKIP:
            # Left for the next pull to re-detect
            return

        local = await self.storage.get_event(talent_id, conflict.id)
        if local is None:
            raise EventNotFoundError("Event no longer exists")

        now = self.clock()

        if resolution == ConflictResolution.KEEP_CMS:
            # Google is brought in line by the next push
            local.last_synced_at = max(now, local.updated_at, conflict.external_updated_at)
            await self.storage.save_event(local)

        elif resolution == ConflictResolution.KEEP_GOOGLE:
            updated = apply_external_version(
                local, conflict.external_version, max(now, local.updated_at, conflict.external_updated_at)
            )
            await self.storage.save_event(updated)

        elif resolution == ConflictResolution.MERGE:
            merged = merge_versions(
                local, conflict.external_version, local.updated_at, conflict.external_updated_at
            )
            connection = await self.token_manager.get_valid_connection(talent_id)
            response = await self.calendar_service.update_event(
                connection.access_token,
                connection.calendar_id,
                conflict.external_event_id,
                to_external(merged)
            )
            candidates = [now, local.updated_at, conflict.external_updated_at]
            provider_updated = parse_provider_timestamp(response.get("updated"))
            if provider_updated:
                candidates.append(provider_updated)
            merged.last_synced_at = max(candidates)
            await self.storage.save_event(merged)
