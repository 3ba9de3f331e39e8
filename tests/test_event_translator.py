import pytest
from datetime import date, time

from talent_calendar.services.calendar_event import CalendarEvent, EventStatus, ExternalEvent
from talent_calendar.services.event_translator import (
    build_location,
    color_to_status,
    status_to_color,
    to_external,
    to_internal,
)
from talent_calendar.utils.config import settings
from talent_calendar.utils.errors import TranslationError


def make_event(**overrides):
    fields = {
        "talent_id": "talent-1",
        "title": "Signing",
        "start_date": date(2026, 4, 10),
        "end_date": date(2026, 4, 10),
        "all_day": True,
        "status": EventStatus.BOOKED,
    }
    fields.update(overrides)
    return CalendarEvent(**fields)


def test_all_day_booked_event_uses_dates_and_booked_color():
    body = to_external(make_event())

    assert body["summary"] == "Signing"
    assert body["colorId"] == "9"
    assert body["start"] == {"date": "2026-04-10"}
    # Google all-day end dates are exclusive
    assert body["end"] == {"date": "2026-04-11"}
    assert "dateTime" not in body["start"]
    assert body["extendedProperties"]["private"]["cmsStatus"] == "booked"


def test_timed_event_fills_missing_end_time():
    event = make_event(all_day=False, start_time=time(19, 0), timezone="America/New_York")

    body = to_external(event)

    assert body["start"] == {"dateTime": "2026-04-10T19:00:00", "timeZone": "America/New_York"}
    assert body["end"] == {"dateTime": "2026-04-10T23:59:59", "timeZone": "America/New_York"}


def test_timed_event_without_times_spans_whole_day():
    body = to_external(make_event(all_day=False))

    assert body["start"]["dateTime"] == "2026-04-10T00:00:00"
    assert body["end"]["dateTime"] == "2026-04-10T23:59:59"
    assert body["start"]["timeZone"] == "America/Chicago"


def test_default_timezone_follows_settings(monkeypatch):
    monkeypatch.setattr(settings, "DEFAULT_TIMEZONE", "Europe/London")
    external = ExternalEvent.from_google({
        "id": "g9",
        "summary": "Interview",
        "start": {"dateTime": "2026-05-01T10:00:00Z"},
        "end": {"dateTime": "2026-05-01T11:00:00Z"},
    })

    assert make_event().timezone == "Europe/London"
    assert to_internal(external, "talent-1").timezone == "Europe/London"


def test_location_joins_non_empty_parts():
    event = make_event(venue_name="Arena", location_city="Austin", location_state="TX", address_line="")

    assert build_location(event) == "Arena, Austin, TX"
    assert to_external(event)["location"] == "Arena, Austin, TX"


def test_location_omitted_when_empty():
    assert "location" not in to_external(make_event())


def test_private_properties_carry_internal_fields():
    event = make_event(notes_internal="Fee agreed", travel_in="AA 100", travel_out="")

    private = to_external(event)["extendedProperties"]["private"]

    assert private["notesInternal"] == "Fee agreed"
    assert private["travelIn"] == "AA 100"
    assert private["travelOut"] == ""


@pytest.mark.parametrize("status,color", [
    ("booked", "9"),
    ("hold", "6"),
    ("tentative", "5"),
    ("available", "10"),
    ("cancelled", "11"),
    ("not_available", "8"),
    ("unknown", "1"),
])
def test_status_to_color(status, color):
    assert status_to_color(status) == color


def test_unmapped_color_is_available():
    assert color_to_status("3") == EventStatus.AVAILABLE
    assert color_to_status(None) == EventStatus.AVAILABLE


def test_cancelled_date_only_event_translates_to_all_day():
    external = ExternalEvent.from_google({
        "id": "g1",
        "summary": "Festival",
        "colorId": "11",
        "start": {"date": "2026-05-01"},
        "end": {"date": "2026-05-02"},
    })

    event = to_internal(external, "talent-1")

    assert event.status == EventStatus.CANCELLED
    assert event.all_day is True
    assert event.start_date == date(2026, 5, 1)
    assert event.end_date == date(2026, 5, 1)
    assert event.start_time is None
    assert event.gcal_event_id == "g1"
    assert event.talent_id == "talent-1"


def test_timed_event_drops_offset_and_keeps_wall_clock():
    external = ExternalEvent.from_google({
        "id": "g2",
        "summary": "Panel",
        "start": {"dateTime": "2026-05-01T19:00:00-05:00", "timeZone": "America/Chicago"},
        "end": {"dateTime": "2026-05-01T20:30:00.000Z"},
    })

    event = to_internal(external, "talent-1")

    assert event.all_day is False
    assert event.start_time == time(19, 0)
    assert event.end_time == time(20, 30)
    assert event.timezone == "America/Chicago"


def test_raw_location_falls_back_to_venue_name():
    external = ExternalEvent.from_google({
        "id": "g3",
        "summary": "Meet and greet",
        "location": "Convention Center, Dallas",
        "start": {"date": "2026-05-01"},
        "end": {"date": "2026-05-02"},
    })

    event = to_internal(external, None)

    assert event.venue_name == "Convention Center, Dallas"
    assert event.title == "Meet and greet"


def test_missing_summary_gets_placeholder_title():
    external = ExternalEvent.from_google({
        "id": "g4",
        "start": {"date": "2026-05-01"},
        "end": {"date": "2026-05-02"},
    })

    assert to_internal(external, "talent-1").title == "Untitled Event"


def test_internal_fields_survive_a_round_trip():
    event = make_event(
        end_date=date(2026, 4, 12),
        venue_name="Arena",
        location_city="Austin",
        notes_public="Public note",
        notes_internal="Private note",
        travel_in="AA 100",
        external_url="https://tickets.example.com",
        status=EventStatus.HOLD,
    )
    body = to_external(event)
    body["id"] = "g5"

    restored = to_internal(ExternalEvent.from_google(body), "talent-1")

    assert restored.start_date == event.start_date
    assert restored.end_date == event.end_date
    assert restored.status == EventStatus.HOLD
    assert restored.venue_name == "Arena"
    assert restored.location_city == "Austin"
    assert restored.notes_public == "Public note"
    assert restored.notes_internal == "Private note"
    assert restored.travel_in == "AA 100"
    assert restored.external_url == "https://tickets.example.com"


def test_malformed_event_raises_translation_error():
    with pytest.raises(TranslationError):
        ExternalEvent.from_google({"id": "bad", "summary": "No dates"})


def test_timed_start_with_all_day_end_is_rejected():
    external = ExternalEvent.from_google({
        "id": "g6",
        "start": {"dateTime": "2026-05-01T10:00:00"},
        "end": {"date": "2026-05-02"},
    })

    with pytest.raises(TranslationError):
        to_internal(external, "talent-1")


def test_event_rejects_end_before_start():
    with pytest.raises(ValueError):
        make_event(end_date=date(2026, 4, 9))
