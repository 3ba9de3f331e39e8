"""
Calendar Synchronization Architecture

This module defines the types shared by the talent calendar sync components.

Architecture Overview:
---------------------

1. Connection:
   - One Google connection per talent, created by the OAuth callback
   - Tokens are refreshed transparently by the token manager before each sync
   - States: disconnected -> awaiting_callback -> connected

2. Push (internal -> Google):
   - Upcoming, syncable events are created or updated on the talent's dedicated calendar
   - Best effort: a failing event is reported and the batch continues

3. Pull (Google -> internal):
   - Google events for the next year are translated and matched by Google event id
   - Each local event keeps a ``last_synced_at`` watermark
   - When both sides changed after the watermark the event becomes a conflict
     and neither side is touched

4. Conflict Resolution:
   - Pending conflicts from the latest pull are stored per talent
   - An operator resolves each one with keep_cms, keep_google, merge or skip
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from talent_calendar.services.calendar_event import CalendarEvent


class SyncAction(str, Enum):
    """Direction of a sync invocation"""
    PUSH = "push"  # internal -> Google
    PULL = "pull"  # Google -> internal


class ConnectionState(str, Enum):
    """Lifecycle of a talent's calendar connection"""
    DISCONNECTED = "disconnected"
    AWAITING_CALLBACK = "awaiting_callback"
    CONNECTED = "connected"


class ConflictResolution(str, Enum):
    """Strategy picked by an operator for one conflicting event"""
    KEEP_CMS = "keep_cms"  # Internal calendar takes precedence
    KEEP_GOOGLE = "keep_google"  # Google version overwrites the internal one
    MERGE = "merge"  # Field-wise combination, written to both sides
    SKIP = "skip"  # Leave both sides alone until the next pull


class CamelModel(BaseModel):
    """Serialises to camelCase for API callers, accepts either spelling"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Conflict(CamelModel):
    """An event changed on both sides since its last sync"""
    id: str  # Local event id
    title: str
    date: str
    local_version: CalendarEvent
    external_version: CalendarEvent
    external_event_id: str
    local_updated_at: datetime
    external_updated_at: datetime


class SyncResult(CamelModel):
    """Outcome of one push or pull"""
    talent_id: str
    action: SyncAction
    processed: int = 0
    conflicts: List[Conflict] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    completed_at: Optional[datetime] = None

    def to_response(self) -> Dict:
        """Response shape: ``{pushed|pulled, conflicts, errors}``"""
        count_key = "pushed" if self.action == SyncAction.PUSH else "pulled"
        return {
            count_key: self.processed,
            "conflicts": [c.model_dump(mode="json", by_alias=True) for c in self.conflicts],
            "errors": list(self.errors),
        }


class ResolutionResult(CamelModel):
    """Outcome of applying operator resolutions"""
    talent_id: str
    resolved: Dict[str, ConflictResolution] = Field(default_factory=dict)
    pending: List[Conflict] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
