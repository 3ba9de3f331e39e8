from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Dict, Optional, Tuple
import uuid

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from talent_calendar.utils.config import settings
from talent_calendar.utils.errors import TranslationError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_provider_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as returned by Google (``...Z`` or offset)"""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class EventStatus(str, Enum):
    """Booking status of an internal calendar event"""
    AVAILABLE = "available"
    HOLD = "hold"
    TENTATIVE = "tentative"
    BOOKED = "booked"
    CANCELLED = "cancelled"
    NOT_AVAILABLE = "not_available"


class CalendarEvent(BaseModel):
    """
    Internal booking/availability record for a talent.

    ``updated_at`` moves only on staff edits; sync writes stamp
    ``last_synced_at`` instead so the two can be compared as a watermark.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    talent_id: Optional[str] = None
    title: str
    start_date: date
    end_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    all_day: bool = False
    status: EventStatus = EventStatus.AVAILABLE
    venue_name: Optional[str] = None
    address_line: Optional[str] = None
    location_city: Optional[str] = None
    location_state: Optional[str] = None
    location_country: Optional[str] = None
    notes_public: Optional[str] = None
    notes_internal: Optional[str] = None
    travel_in: Optional[str] = None
    travel_out: Optional[str] = None
    external_url: Optional[str] = None
    timezone: str = Field(default_factory=lambda: settings.DEFAULT_TIMEZONE)
    gcal_event_id: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    do_not_sync: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def check_date_order(self) -> "CalendarEvent":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    @property
    def idempotency_key(self) -> Tuple[Optional[str], str, date, date]:
        return (self.talent_id, self.title, self.start_date, self.end_date)


# Fields owned by the calendar content; everything else is bookkeeping
SYNCED_FIELDS = (
    "title",
    "start_date",
    "end_date",
    "start_time",
    "end_time",
    "all_day",
    "status",
    "venue_name",
    "address_line",
    "location_city",
    "location_state",
    "location_country",
    "notes_public",
    "notes_internal",
    "travel_in",
    "travel_out",
    "external_url",
    "timezone",
)


class EventDateTime(BaseModel):
    """Google start/end: either ``date`` (all-day) or ``dateTime`` + ``timeZone``"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date: Optional[str] = None
    date_time: Optional[str] = Field(default=None, alias="dateTime")
    time_zone: Optional[str] = Field(default=None, alias="timeZone")

    @model_validator(mode="after")
    def check_has_value(self) -> "EventDateTime":
        if not self.date and not self.date_time:
            raise ValueError("either date or dateTime is required")
        return self


class ExtendedProperties(BaseModel):
    model_config = ConfigDict(extra="ignore")

    private: Dict[str, str] = Field(default_factory=dict)


class ExternalEvent(BaseModel):
    """
    The subset of a Google Calendar event the service consumes.
    Anything else in the provider payload is dropped at this boundary.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    summary: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    start: EventDateTime
    end: EventDateTime
    color_id: Optional[str] = Field(default=None, alias="colorId")
    extended_properties: ExtendedProperties = Field(
        default_factory=ExtendedProperties, alias="extendedProperties"
    )
    updated: Optional[datetime] = None

    @classmethod
    def from_google(cls, event: Dict) -> "ExternalEvent":
        """Validate a raw Google event payload"""
        try:
            return cls.model_validate(event)
        except ValidationError as e:
            event_id = event.get("id") if isinstance(event, dict) else None
            raise TranslationError(f"Malformed Google event {event_id}: {e.error_count()} invalid field(s)")

    @property
    def private(self) -> Dict[str, str]:
        return self.extended_properties.private


class CalendarConnection(BaseModel):
    """OAuth connection between a talent and their dedicated Google calendar"""
    talent_id: str
    google_email: Optional[str] = None
    calendar_id: str
    access_token: str
    refresh_token: Optional[str] = None
    token_expiry: datetime
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.token_expiry
