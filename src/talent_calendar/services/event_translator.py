"""
Translation between internal calendar events and Google Calendar events.

Status travels as a Google colour id; internal-only fields ride along in
``extendedProperties.private`` so they round trip without being visible to
anyone the calendar is shared with.
"""

import re
from datetime import date, time, timedelta
from typing import Any, Dict, Optional, Tuple

from talent_calendar.services.calendar_event import (
    CalendarEvent,
    EventStatus,
    ExternalEvent,
)
from talent_calendar.utils.config import settings
from talent_calendar.utils.errors import TranslationError

STATUS_TO_COLOR = {
    EventStatus.BOOKED: "9",
    EventStatus.HOLD: "6",
    EventStatus.TENTATIVE: "5",
    EventStatus.AVAILABLE: "10",
    EventStatus.CANCELLED: "11",
    EventStatus.NOT_AVAILABLE: "8",
}
COLOR_TO_STATUS = {color: status for status, color in STATUS_TO_COLOR.items()}
DEFAULT_COLOR = "1"

DEFAULT_START_TIME = time(0, 0, 0)
DEFAULT_END_TIME = time(23, 59, 59)
CLOCK_PATTERN = re.compile(r"\d{2}:\d{2}(:\d{2})?")

# private extended property -> internal field
PRIVATE_FIELDS = {
    "notesInternal": "notes_internal",
    "travelIn": "travel_in",
    "travelOut": "travel_out",
    "venueName": "venue_name",
    "addressLine": "address_line",
    "locationCity": "location_city",
    "locationState": "location_state",
    "locationCountry": "location_country",
    "externalUrl": "external_url",
}

LOCATION_FIELDS = ("venue_name", "address_line", "location_city", "location_state", "location_country")


def status_to_color(status: Any) -> str:
    try:
        return STATUS_TO_COLOR[EventStatus(status)]
    except ValueError:
        return DEFAULT_COLOR


def color_to_status(color_id: Optional[str]) -> EventStatus:
    return COLOR_TO_STATUS.get(color_id, EventStatus.AVAILABLE)


def build_location(event: CalendarEvent) -> str:
    parts = [getattr(event, name) for name in LOCATION_FIELDS]
    return ", ".join(part for part in parts if part)


def to_external(event: CalendarEvent) -> Dict[str, Any]:
    """Build a Google event body from an internal event"""
    tz = event.timezone or settings.DEFAULT_TIMEZONE

    if event.all_day:
        # Google all-day end dates are exclusive
        start = {"date": event.start_date.isoformat()}
        end = {"date": (event.end_date + timedelta(days=1)).isoformat()}
    else:
        start_time = event.start_time or DEFAULT_START_TIME
        end_time = event.end_time or DEFAULT_END_TIME
        start = {
            "dateTime": f"{event.start_date.isoformat()}T{start_time.strftime('%H:%M:%S')}",
            "timeZone": tz,
        }
        end = {
            "dateTime": f"{event.end_date.isoformat()}T{end_time.strftime('%H:%M:%S')}",
            "timeZone": tz,
        }

    private = {"cmsStatus": EventStatus(event.status).value}
    for prop, field in PRIVATE_FIELDS.items():
        private[prop] = getattr(event, field) or ""

    body: Dict[str, Any] = {
        "summary": event.title,
        "description": event.notes_public or "",
        "start": start,
        "end": end,
        "colorId": status_to_color(event.status),
        "extendedProperties": {"private": private},
    }

    location = build_location(event)
    if location:
        body["location"] = location

    return body


def _split_date_time(value: str) -> Tuple[date, time]:
    """Split a provider dateTime on the T/space boundary, keeping wall-clock parts"""
    if "T" in value:
        date_part, time_part = value.split("T", 1)
    elif " " in value:
        date_part, time_part = value.split(" ", 1)
    else:
        raise TranslationError(f"dateTime without a time component: {value!r}")

    # Drop the UTC offset / Z suffix and fractional seconds
    clock = CLOCK_PATTERN.match(time_part)
    if not clock:
        raise TranslationError(f"Unparseable dateTime: {value!r}")
    try:
        return date.fromisoformat(date_part), time.fromisoformat(clock.group(0))
    except ValueError:
        raise TranslationError(f"Unparseable dateTime: {value!r}")


def to_internal(external: ExternalEvent, talent_id: Optional[str]) -> CalendarEvent:
    """Build an internal event from a validated Google event"""
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    all_day = not external.start.date_time

    try:
        if all_day:
            start_date = date.fromisoformat(external.start.date)
            end_raw = external.end.date or external.start.date
            end_date = date.fromisoformat(end_raw) - timedelta(days=1)
            if end_date < start_date:
                end_date = start_date
        else:
            if not external.end.date_time:
                raise TranslationError(f"Event {external.id} mixes a timed start with an all-day end")
            start_date, start_time = _split_date_time(external.start.date_time)
            end_date, end_time = _split_date_time(external.end.date_time)
    except (TypeError, ValueError) as e:
        raise TranslationError(f"Event {external.id} has invalid dates: {e}")

    private = external.private
    fields: Dict[str, Any] = {
        field: private.get(prop) or None for prop, field in PRIVATE_FIELDS.items()
    }
    if not any(fields[name] for name in LOCATION_FIELDS) and external.location:
        fields["venue_name"] = external.location

    try:
        return CalendarEvent(
            talent_id=talent_id,
            title=external.summary or "Untitled Event",
            start_date=start_date,
            end_date=end_date,
            start_time=start_time,
            end_time=end_time,
            all_day=all_day,
            status=color_to_status(external.color_id),
            notes_public=external.description or None,
            timezone=external.start.time_zone or settings.DEFAULT_TIMEZONE,
            gcal_event_id=external.id,
            **fields,
        )
    except ValueError as e:
        raise TranslationError(f"Event {external.id} could not be translated: {e}")
