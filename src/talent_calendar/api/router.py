from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from typing import Optional
from urllib.parse import urlencode
import logging

from pydantic import Field

from talent_calendar.api.dependencies import get_connection_manager, get_sync_controller
from talent_calendar.api.documents_router import router as documents_router
from talent_calendar.api.sync_router import router as sync_router
from talent_calendar.auth.bearer import require_bearer
from talent_calendar.auth.oauth_flow import CalendarConnectionManager
from talent_calendar.services.calendar_event import CalendarEvent
from talent_calendar.sync.architecture import CamelModel
from talent_calendar.sync.controller import CalendarSyncController
from talent_calendar.utils.config import settings
from talent_calendar.utils.errors import TalentCalendarError

logger = logging.getLogger(__name__)

# Initialize API router
router = APIRouter()

# Sync, conflict and document routes
router.include_router(sync_router)
router.include_router(documents_router)


class OAuthRequest(CamelModel):
    action: str = Field(pattern="^(connect|callback)$")
    talent_id: Optional[str] = None
    code: Optional[str] = None
    state: Optional[str] = None


# Connection routes
@router.post("/calendar/oauth", dependencies=[Depends(require_bearer)])
async def calendar_oauth(
    request: OAuthRequest,
    manager: CalendarConnectionManager = Depends(get_connection_manager)
):
    """Start the Google OAuth flow or complete it with a code and state"""
    if request.action == "connect":
        if not request.talent_id:
            raise TalentCalendarError("talentId is required", 400)
        return await manager.connect(request.talent_id)

    if not request.code or not request.state:
        raise TalentCalendarError("code and state are required", 400)
    return await manager.handle_callback(request.code, request.state)


@router.get("/calendar/oauth/callback")
async def calendar_oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    manager: CalendarConnectionManager = Depends(get_connection_manager)
):
    """Google redirect target; sends the browser back to the frontend"""
    frontend = f"{settings.FRONTEND_URL.rstrip('/')}/calendar"

    if error or not code or not state:
        reason = error or "missing_code"
        logger.warning(f"Google OAuth callback without code: {reason}")
        return RedirectResponse(f"{frontend}?{urlencode({'error': reason})}")

    try:
        await manager.handle_callback(code, state)
    except TalentCalendarError as e:
        logger.error(f"Google OAuth callback failed: {e.message}")
        return RedirectResponse(f"{frontend}?{urlencode({'error': e.message})}")

    return RedirectResponse(f"{frontend}?connected=true")


@router.get("/calendar/connection/{talent_id}", dependencies=[Depends(require_bearer)])
async def connection_status(
    talent_id: str,
    manager: CalendarConnectionManager = Depends(get_connection_manager)
):
    """Get the Google Calendar connection state for a talent"""
    return await manager.status(talent_id)


@router.delete("/calendar/connection/{talent_id}", dependencies=[Depends(require_bearer)])
async def disconnect(
    talent_id: str,
    manager: CalendarConnectionManager = Depends(get_connection_manager)
):
    """Remove a talent's Google Calendar connection"""
    return await manager.disconnect(talent_id)


# Event routes
@router.get("/calendar/events/{talent_id}", dependencies=[Depends(require_bearer)])
async def list_events(
    talent_id: str,
    controller: CalendarSyncController = Depends(get_sync_controller)
):
    """List a talent's internal calendar events"""
    events = await controller.list_events(talent_id)
    return [event.model_dump(mode="json") for event in events]


@router.put("/calendar/events", dependencies=[Depends(require_bearer)])
async def save_event(
    event: CalendarEvent,
    controller: CalendarSyncController = Depends(get_sync_controller)
):
    """Create or update an event on (talent, title, start date, end date)"""
    saved = await controller.save_event(event)
    return saved.model_dump(mode="json")
