"""Meeting booking on top of the calendar gateway and slot finder."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from meeting_scheduler.calendar.client import CalendarGateway
from meeting_scheduler.scheduling.exceptions import (
    NoAvailabilityError,
    SchedulingDisabledError,
    SlotConflictError,
)
from meeting_scheduler.scheduling.models import (
    Booking,
    BusinessAvailability,
    Lead,
    MeetingTemplate,
    NoAvailability,
    Slot,
)
from meeting_scheduler.scheduling.slots import DEFAULT_HORIZON_DAYS, SlotFinder, default_horizon

logger = logging.getLogger(__name__)

MAX_SLOT_ATTEMPTS = 50


class MeetingOrchestrator:
    """Books meetings on the primary calendar in the first free slot.

    Example:
        >>> orchestrator = MeetingOrchestrator(gateway)
        >>> booking = await orchestrator.create_meeting_for_lead(
        ...     Lead(name="Ana", email="ana@example.com"),
        ...     BusinessAvailability(duration_minutes=30),
        ... )
        >>> print(booking.link)
    """

    def __init__(
        self,
        gateway: CalendarGateway,
        *,
        finder: SlotFinder | None = None,
        template: MeetingTemplate | None = None,
        time_zone: str | None = None,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        verify_before_commit: bool = True,
        now: Callable[[], datetime] | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            gateway: Calendar access.
            finder: Slot search. Defaults to 15-minute steps.
            template: Event title/description template.
            time_zone: IANA zone of the business hours. Defaults to the gateway's.
            horizon_days: Days searched after the horizon start.
            verify_before_commit: Re-read the calendar right before creating
                the event and fail if the slot was taken meanwhile.
            now: Clock returning an aware datetime.
        """
        self._gateway = gateway
        self.finder = finder or SlotFinder()
        self.template = template or MeetingTemplate()
        self.tz = ZoneInfo(time_zone or gateway.time_zone)
        self.horizon_days = horizon_days
        self.verify_before_commit = verify_before_commit
        self._now = now or (lambda: datetime.now(self.tz))

    async def find_next_available_slot(
        self,
        calendar_id: str,
        availability: BusinessAvailability,
        preferred_date: datetime | None = None,
    ) -> Slot | NoAvailability:
        """Fetch the horizon's events and return the first free slot.

        The horizon starts the day after `preferred_date` (or after now),
        never on `preferred_date` itself.
        """
        horizon = default_horizon(preferred_date or self._now(), self.tz, self.horizon_days)
        logger.info(
            f"Searching slots from {horizon.start.isoformat()} to {horizon.end.isoformat()}"
        )

        events = await self._gateway.list_events(calendar_id, horizon.start, horizon.end)
        logger.info(f"Found {len(events)} existing events")

        return self.finder.find_first_slot(availability, events, horizon)

    async def create_meeting_for_lead(
        self,
        lead: Lead,
        availability: BusinessAvailability,
        preferred_date: datetime | None = None,
    ) -> Booking:
        """Book a meeting with `lead` in the next free slot.

        Args:
            lead: Who the meeting is with; their email becomes the attendee.
            availability: Business-hours constraints.
            preferred_date: Search from the day after this date.

        Returns:
            Booking with the slot, created event id and its link.

        Raises:
            SchedulingDisabledError: If `availability.enabled` is False.
            NoAvailabilityError: If no slot is free in the horizon.
            SlotConflictError: If the slot was taken before the event was created.
            GatewayError: If a calendar request fails.
            ReauthRequiredError: If calendar access can't be refreshed.
        """
        if not availability.enabled:
            raise SchedulingDisabledError("Meeting scheduling is disabled")

        calendar = await self._gateway.get_primary_calendar()
        logger.info(f"Creating meeting for {lead.name} on calendar {calendar.summary}")

        result = await self.find_next_available_slot(calendar.id, availability, preferred_date)
        if isinstance(result, NoAvailability):
            raise NoAvailabilityError(result)
        slot = result

        logger.info(f"Found available slot: {slot.start.isoformat()} - {slot.end.isoformat()}")

        if self.verify_before_commit:
            await self._ensure_still_free(calendar.id, slot, availability)

        event = await self._gateway.create_event(
            calendar.id,
            summary=self.template.render_title(lead),
            description=self.template.render_description(lead),
            start=slot.start,
            end=slot.end,
            attendees=[lead.email] if lead.email else [],
        )

        return Booking(
            slot=slot,
            external_event_id=event.id,
            link=event.html_link,
            attendee=lead.email,
            calendar_id=calendar.id,
        )

    async def _ensure_still_free(
        self, calendar_id: str, slot: Slot, availability: BusinessAvailability
    ) -> None:
        buffer = availability.buffer
        events = await self._gateway.list_events(calendar_id, slot.start - buffer, slot.end + buffer)

        for event in events:
            if event.is_timed and slot.conflicts_with(event.start, event.end, buffer):
                logger.warning(f"Slot taken by event {event.id} before booking")
                raise SlotConflictError(slot)

    async def get_available_slots(
        self, availability: BusinessAvailability, count: int = 5
    ) -> list[Slot]:
        """Collect up to `count` slots by repeating the single-slot search.

        Each search starts the day after the previous slot, so at most one
        slot per day is returned. Stops early when a search finds nothing.
        """
        if count <= 0:
            return []

        calendar = await self._gateway.get_primary_calendar()

        slots: list[Slot] = []
        reference = self._now()
        attempts = 0

        while len(slots) < count and attempts < MAX_SLOT_ATTEMPTS:
            attempts += 1
            result = await self.find_next_available_slot(calendar.id, availability, reference)
            if isinstance(result, NoAvailability):
                break

            slots.append(result)
            reference = result.end + timedelta(minutes=1)

        return slots
