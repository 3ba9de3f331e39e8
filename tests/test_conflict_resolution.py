import pytest
import pytest_asyncio
from datetime import date, datetime, timedelta, timezone

from conftest import NOW, TALENT_ID
from talent_calendar.services.calendar_event import CalendarEvent, EventStatus
from talent_calendar.sync.architecture import ConflictResolution, SyncAction
from talent_calendar.sync.conflicts import merge_versions
from talent_calendar.sync.controller import CalendarSyncController

WATERMARK = NOW - timedelta(days=2)
LOCAL_EDIT = NOW - timedelta(days=1)
GOOGLE_EDIT = NOW - timedelta(hours=12)


def local_event(**overrides):
    fields = {
        "talent_id": TALENT_ID,
        "title": "Signing",
        "start_date": date(2026, 4, 10),
        "end_date": date(2026, 4, 10),
        "all_day": True,
        "status": EventStatus.BOOKED,
        "venue_name": "Local Venue",
        "notes_internal": "Fee agreed",
        "gcal_event_id": "g1",
        "last_synced_at": WATERMARK,
        "updated_at": LOCAL_EDIT,
    }
    fields.update(overrides)
    return CalendarEvent(**fields)


def google_payload(summary="Signing (google)"):
    return {
        "id": "g1",
        "summary": summary,
        "colorId": "6",
        "start": {"date": "2026-04-10"},
        "end": {"date": "2026-04-11"},
        "updated": GOOGLE_EDIT.isoformat().replace("+00:00", "Z"),
    }


@pytest.fixture
def controller(storage, token_manager, calendar_service, clock):
    return CalendarSyncController(storage, token_manager, calendar_service, clock=clock)


@pytest_asyncio.fixture
async def conflicted(controller, storage, calendar_service):
    """Seed one event and pull a conflicting Google version"""
    event = await storage.save_event(local_event(title="Signing (local)"))
    calendar_service.list_events.return_value = [google_payload()]
    result = await controller.sync(TALENT_ID, SyncAction.PULL)
    assert len(result.conflicts) == 1
    return event


@pytest.mark.asyncio
async def test_pending_conflicts_are_listed(controller, conflicted):
    pending = await controller.get_pending_conflicts(TALENT_ID)

    assert [c.id for c in pending] == [conflicted.id]
    assert pending[0].external_version.title == "Signing (google)"


@pytest.mark.asyncio
async def test_keep_cms_leaves_local_and_advances_watermark(controller, storage, conflicted):
    result = await controller.resolve_conflicts(TALENT_ID, {conflicted.id: ConflictResolution.KEEP_CMS})

    assert result.resolved == {conflicted.id: ConflictResolution.KEEP_CMS}
    assert result.pending == []
    stored = await storage.get_event(TALENT_ID, conflicted.id)
    assert stored.title == "Signing (local)"
    assert stored.last_synced_at == NOW
    assert await storage.get_pending_conflicts(TALENT_ID) == []


@pytest.mark.asyncio
async def test_keep_google_applies_external_version(controller, storage, conflicted):
    await controller.resolve_conflicts(TALENT_ID, {conflicted.id: ConflictResolution.KEEP_GOOGLE})

    stored = await storage.get_event(TALENT_ID, conflicted.id)
    assert stored.title == "Signing (google)"
    assert stored.status == EventStatus.HOLD
    assert stored.gcal_event_id == "g1"
    assert stored.last_synced_at == NOW
    assert stored.updated_at == LOCAL_EDIT


@pytest.mark.asyncio
async def test_merge_writes_both_sides(controller, storage, calendar_service, conflicted):
    calendar_service.update_event.return_value = {"id": "g1", "updated": "2026-03-01T12:30:00Z"}

    result = await controller.resolve_conflicts(TALENT_ID, {conflicted.id: ConflictResolution.MERGE})

    assert result.errors == []
    stored = await storage.get_event(TALENT_ID, conflicted.id)
    # Google edited last, so its title wins; its empty venue does not erase ours
    assert stored.title == "Signing (google)"
    assert stored.venue_name == "Local Venue"
    assert stored.notes_internal == "Fee agreed"
    assert stored.last_synced_at == datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)

    args = calendar_service.update_event.await_args.args
    assert args[1] == "cal-1"
    assert args[2] == "g1"
    assert args[3]["summary"] == "Signing (google)"
    assert args[3]["extendedProperties"]["private"]["venueName"] == "Local Venue"


@pytest.mark.asyncio
async def test_skip_keeps_watermark_so_next_pull_reports_again(controller, storage, conflicted):
    result = await controller.resolve_conflicts(TALENT_ID, {conflicted.id: ConflictResolution.SKIP})

    assert result.resolved == {conflicted.id: ConflictResolution.SKIP}
    stored = await storage.get_event(TALENT_ID, conflicted.id)
    assert stored.last_synced_at == WATERMARK
    assert stored.title == "Signing (local)"

    again = await controller.sync(TALENT_ID, SyncAction.PULL)
    assert [c.id for c in again.conflicts] == [conflicted.id]


@pytest.mark.asyncio
async def test_resolved_conflict_is_not_reported_again(controller, conflicted):
    await controller.resolve_conflicts(TALENT_ID, {conflicted.id: ConflictResolution.KEEP_CMS})

    again = await controller.sync(TALENT_ID, SyncAction.PULL)

    assert again.conflicts == []


@pytest.mark.asyncio
async def test_empty_mapping_applies_default_resolution(controller, storage, conflicted):
    result = await controller.resolve_conflicts(TALENT_ID, {})

    assert result.resolved == {conflicted.id: ConflictResolution.KEEP_CMS}
    stored = await storage.get_event(TALENT_ID, conflicted.id)
    assert stored.title == "Signing (local)"


@pytest.mark.asyncio
async def test_explicit_default_resolution(controller, storage, conflicted):
    result = await controller.resolve_conflicts(TALENT_ID, {}, ConflictResolution.KEEP_GOOGLE)

    assert result.resolved == {conflicted.id: ConflictResolution.KEEP_GOOGLE}
    stored = await storage.get_event(TALENT_ID, conflicted.id)
    assert stored.title == "Signing (google)"


@pytest.mark.asyncio
async def test_unknown_conflict_ids_are_reported(controller, conflicted):
    result = await controller.resolve_conflicts(TALENT_ID, {"missing": ConflictResolution.KEEP_CMS})

    assert result.resolved == {}
    assert len(result.errors) == 1
    assert "missing" in result.errors[0]
    # Conflicts not named stay pending
    assert [c.id for c in result.pending] == [conflicted.id]


def test_merge_prefers_newer_side_and_ignores_empty_values():
    local = local_event(title="Local", notes_public="Local notes", travel_in=None)
    external = local_event(title="Google", notes_public="", travel_in="AA 100", venue_name=None)

    merged = merge_versions(local, external, LOCAL_EDIT, GOOGLE_EDIT)

    assert merged.id == local.id
    assert merged.title == "Google"
    assert merged.notes_public == "Local notes"
    assert merged.travel_in == "AA 100"
    assert merged.venue_name == "Local Venue"


def test_merge_tie_goes_to_local():
    local = local_event(title="Local")
    external = local_event(title="Google")

    merged = merge_versions(local, external, GOOGLE_EDIT, GOOGLE_EDIT)

    assert merged.title == "Local"
