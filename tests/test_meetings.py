"""Tests for meeting booking."""

import json
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from conftest import CALENDAR_LIST_PATH, EVENTS_PATH, connected_record

from meeting_scheduler.calendar import CalendarGateway, InsufficientPermissionsError
from meeting_scheduler.scheduling import (
    BusinessAvailability,
    Lead,
    MeetingOrchestrator,
    MeetingTemplate,
    NoAvailabilityError,
    SchedulingDisabledError,
    Slot,
    SlotConflictError,
)
from meeting_scheduler.scheduling.meetings import MAX_SLOT_ATTEMPTS

PRIMARY = (200, {"items": [{"id": "primary", "summary": "Me", "primary": True}]})
EMPTY = (200, {"items": []})

CREATED = (
    200,
    {
        "id": "evt-new",
        "summary": "Meeting with Ana",
        "start": {"dateTime": "2026-10-20T09:00:00Z"},
        "end": {"dateTime": "2026-10-20T09:30:00Z"},
        "htmlLink": "https://calendar.google.com/event?eid=evt-new",
    },
)

ANA = Lead(name="Ana", email="ana@example.com", phone="+34 600 000 000")


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, day, hour, minute, tzinfo=timezone.utc)


def timed(event_id: str, start: datetime, end: datetime) -> dict:
    return {
        "id": event_id,
        "start": {"dateTime": start.isoformat()},
        "end": {"dateTime": end.isoformat()},
    }


def busy_days(first_day: int, last_day: int) -> tuple[int, dict]:
    """Events blocking 08:00-19:00 on each day in [first_day, last_day]."""
    items = [
        timed(f"busy-{d}", at(d, 8), at(d, 19)) for d in range(first_day, last_day + 1)
    ]
    return 200, {"items": items}


@pytest_asyncio.fixture
async def connected(store):
    await store.save(connected_record())


@pytest.fixture
def gateway(session, google):
    return CalendarGateway(session, transport=google.transport, time_zone="UTC")


@pytest.fixture
def orchestrator(gateway, clock):
    return MeetingOrchestrator(gateway, time_zone="UTC", now=clock)


class TestCreateMeetingForLead:
    """Test booking a meeting in the first free slot."""

    @pytest.mark.asyncio
    async def test_books_first_free_slot(self, orchestrator, google, connected):
        google.add("GET", CALENDAR_LIST_PATH, PRIMARY)
        google.add("GET", EVENTS_PATH, EMPTY)
        google.add("POST", EVENTS_PATH, CREATED)

        booking = await orchestrator.create_meeting_for_lead(ANA, BusinessAvailability())

        assert booking.slot == Slot(at(20, 9), at(20, 9, 30))
        assert booking.external_event_id == "evt-new"
        assert booking.link == "https://calendar.google.com/event?eid=evt-new"
        assert booking.attendee == "ana@example.com"

        body = json.loads(google.calls("POST", EVENTS_PATH)[0].content)
        assert body["start"]["dateTime"] == booking.slot.start.isoformat()
        assert body["end"]["dateTime"] == booking.slot.end.isoformat()

    @pytest.mark.asyncio
    async def test_event_content(self, orchestrator, google, connected):
        google.add("GET", CALENDAR_LIST_PATH, PRIMARY)
        google.add("GET", EVENTS_PATH, EMPTY)
        google.add("POST", EVENTS_PATH, CREATED)

        await orchestrator.create_meeting_for_lead(ANA, BusinessAvailability())

        body = json.loads(google.calls("POST", EVENTS_PATH)[0].content)
        assert body["summary"] == "Meeting with Ana"
        assert body["description"] == (
            "Email: ana@example.com\n"
            "Phone: +34 600 000 000\n\n"
            "Meeting scheduled automatically by meeting-scheduler"
        )
        assert body["attendees"] == [{"email": "ana@example.com"}]

    @pytest.mark.asyncio
    async def test_lead_without_email(self, gateway, clock, google, connected):
        google.add("GET", CALENDAR_LIST_PATH, PRIMARY)
        google.add("GET", EVENTS_PATH, EMPTY)
        google.add("POST", EVENTS_PATH, CREATED)
        template = MeetingTemplate(title="Intro: {name}", description="Hi {name}", footer="")
        orchestrator = MeetingOrchestrator(gateway, template=template, time_zone="UTC", now=clock)

        booking = await orchestrator.create_meeting_for_lead(
            Lead(name="Bo"), BusinessAvailability()
        )

        body = json.loads(google.calls("POST", EVENTS_PATH)[0].content)
        assert body["summary"] == "Intro: Bo"
        assert body["description"] == "Hi Bo"
        assert body["attendees"] == []
        assert booking.attendee is None

    @pytest.mark.asyncio
    async def test_searches_seven_days_from_tomorrow(self, orchestrator, google, connected):
        google.add("GET", CALENDAR_LIST_PATH, PRIMARY)
        google.add("GET", EVENTS_PATH, EMPTY)
        google.add("POST", EVENTS_PATH, CREATED)

        await orchestrator.create_meeting_for_lead(ANA, BusinessAvailability())

        params = google.calls("GET", EVENTS_PATH)[0].url.params
        assert params["timeMin"] == "2026-10-20T00:00:00+00:00"
        assert params["timeMax"] == "2026-10-27T00:00:00+00:00"

    @pytest.mark.asyncio
    async def test_preferred_date_searches_from_next_day(self, orchestrator, google, connected):
        """A preferred date is never itself searched."""
        google.add("GET", CALENDAR_LIST_PATH, PRIMARY)
        google.add("GET", EVENTS_PATH, EMPTY)
        google.add("POST", EVENTS_PATH, CREATED)

        booking = await orchestrator.create_meeting_for_lead(
            ANA, BusinessAvailability(), preferred_date=at(22, 15)
        )

        params = google.calls("GET", EVENTS_PATH)[0].url.params
        assert params["timeMin"] == "2026-10-23T00:00:00+00:00"
        assert booking.slot.start == at(23, 9)

    @pytest.mark.asyncio
    async def test_busy_week_raises_no_availability(self, orchestrator, google, connected):
        google.add("GET", CALENDAR_LIST_PATH, PRIMARY)
        google.add("GET", EVENTS_PATH, busy_days(20, 26))

        with pytest.raises(NoAvailabilityError) as exc_info:
            await orchestrator.create_meeting_for_lead(ANA, BusinessAvailability())

        assert exc_info.value.no_availability.horizon.start == at(20, 0)
        assert google.calls("POST", EVENTS_PATH) == []

    @pytest.mark.asyncio
    async def test_slot_taken_before_commit(self, orchestrator, google, connected):
        """Should re-read the calendar and refuse to double-book."""
        google.add("GET", CALENDAR_LIST_PATH, PRIMARY)
        google.add(
            "GET",
            EVENTS_PATH,
            EMPTY,
            (200, {"items": [timed("late", at(20, 9, 15), at(20, 9, 45))]}),
        )

        with pytest.raises(SlotConflictError) as exc_info:
            await orchestrator.create_meeting_for_lead(
                ANA, BusinessAvailability(buffer_minutes=10)
            )

        assert exc_info.value.slot == Slot(at(20, 9), at(20, 9, 30))
        assert google.calls("POST", EVENTS_PATH) == []

        verify = google.calls("GET", EVENTS_PATH)[1].url.params
        assert verify["timeMin"] == "2026-10-20T08:50:00+00:00"
        assert verify["timeMax"] == "2026-10-20T09:40:00+00:00"

    @pytest.mark.asyncio
    async def test_without_verification(self, gateway, clock, google, connected):
        google.add("GET", CALENDAR_LIST_PATH, PRIMARY)
        google.add("GET", EVENTS_PATH, EMPTY)
        google.add("POST", EVENTS_PATH, CREATED)
        orchestrator = MeetingOrchestrator(
            gateway, time_zone="UTC", verify_before_commit=False, now=clock
        )

        await orchestrator.create_meeting_for_lead(ANA, BusinessAvailability())

        assert len(google.calls("GET", EVENTS_PATH)) == 1
        assert len(google.calls("POST", EVENTS_PATH)) == 1

    @pytest.mark.asyncio
    async def test_disabled_scheduling_books_nothing(self, orchestrator, google, connected):
        """Should refuse to book before touching the calendar."""
        availability = BusinessAvailability(enabled=False)

        with pytest.raises(SchedulingDisabledError):
            await orchestrator.create_meeting_for_lead(ANA, availability)

        assert google.requests == []

    @pytest.mark.asyncio
    async def test_gateway_errors_propagate(self, orchestrator, google, connected):
        google.add("GET", CALENDAR_LIST_PATH, (403, {"error": {"message": "Forbidden"}}))

        with pytest.raises(InsufficientPermissionsError):
            await orchestrator.create_meeting_for_lead(ANA, BusinessAvailability())

        assert google.calls("GET", EVENTS_PATH) == []


class TestGetAvailableSlots:
    """Test multi-slot lookup."""

    @pytest.mark.asyncio
    async def test_zero_count_makes_no_requests(self, orchestrator, google, connected):
        assert await orchestrator.get_available_slots(BusinessAvailability(), count=0) == []
        assert google.requests == []

    @pytest.mark.asyncio
    async def test_one_slot_per_day(self, orchestrator, google, connected):
        google.add("GET", CALENDAR_LIST_PATH, PRIMARY)
        google.add("GET", EVENTS_PATH, EMPTY)

        slots = await orchestrator.get_available_slots(BusinessAvailability(), count=3)

        assert [s.start for s in slots] == [at(20, 9), at(21, 9), at(22, 9)]
        assert len(google.calls("GET", EVENTS_PATH)) == 3

    @pytest.mark.asyncio
    async def test_skips_weekend(self, orchestrator, google, connected):
        google.add("GET", CALENDAR_LIST_PATH, PRIMARY)
        google.add("GET", EVENTS_PATH, EMPTY)

        slots = await orchestrator.get_available_slots(BusinessAvailability(), count=5)

        assert [s.start.day for s in slots] == [20, 21, 22, 23, 26]

    @pytest.mark.asyncio
    async def test_stops_when_search_finds_nothing(self, orchestrator, google, connected):
        google.add("GET", CALENDAR_LIST_PATH, PRIMARY)
        google.add("GET", EVENTS_PATH, EMPTY, busy_days(21, 28))

        slots = await orchestrator.get_available_slots(BusinessAvailability(), count=5)

        assert slots == [Slot(at(20, 9), at(20, 9, 30))]
        assert len(google.calls("GET", EVENTS_PATH)) == 2

    @pytest.mark.asyncio
    async def test_attempts_are_capped(self, orchestrator, google, connected):
        google.add("GET", CALENDAR_LIST_PATH, PRIMARY)
        google.add("GET", EVENTS_PATH, EMPTY)

        slots = await orchestrator.get_available_slots(BusinessAvailability(), count=500)

        assert len(slots) == MAX_SLOT_ATTEMPTS
        assert len(google.calls("GET", EVENTS_PATH)) == MAX_SLOT_ATTEMPTS
        assert slots[-1].start - slots[0].start > timedelta(days=MAX_SLOT_ATTEMPTS)
