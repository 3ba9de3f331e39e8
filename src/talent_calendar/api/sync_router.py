"""
Synchronization API Router

This module defines the API endpoints for calendar synchronization and
conflict resolution.
"""

from fastapi import APIRouter, Depends
from typing import Dict, Optional

from pydantic import Field

from talent_calendar.api.dependencies import get_sync_controller
from talent_calendar.auth.bearer import require_bearer
from talent_calendar.sync.architecture import CamelModel, ConflictResolution, SyncAction
from talent_calendar.sync.controller import CalendarSyncController

# Create router
router = APIRouter(prefix="/calendar", tags=["sync"], dependencies=[Depends(require_bearer)])


class SyncRequest(CamelModel):
    talent_id: str
    action: SyncAction


class ResolveConflictsRequest(CamelModel):
    talent_id: str
    resolutions: Dict[str, ConflictResolution] = Field(default_factory=dict)
    default_resolution: Optional[ConflictResolution] = None


@router.post("/sync")
async def sync_calendar(
    request: SyncRequest,
    controller: CalendarSyncController = Depends(get_sync_controller)
):
    """Push internal events to Google or pull Google changes back"""
    result = await controller.sync(request.talent_id, request.action)
    return result.to_response()


@router.get("/conflicts/{talent_id}")
async def list_conflicts(
    talent_id: str,
    controller: CalendarSyncController = Depends(get_sync_controller)
):
    """Conflicts recorded by the latest pull"""
    conflicts = await controller.get_pending_conflicts(talent_id)
    return {"conflicts": [c.model_dump(mode="json", by_alias=True) for c in conflicts]}


@router.post("/conflicts")
async def resolve_conflicts(
    request: ResolveConflictsRequest,
    controller: CalendarSyncController = Depends(get_sync_controller)
):
    """Apply keep_cms, keep_google, merge or skip per conflict"""
    result = await controller.resolve_conflicts(
        request.talent_id, request.resolutions, request.default_resolution
    )
    return result.model_dump(mode="json", by_alias=True)
