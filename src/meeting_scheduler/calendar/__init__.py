"""Google Calendar gateway with OAuth session authorization.

Usage:
    from meeting_scheduler.calendar import CalendarGateway

    async with CalendarGateway(session) as gateway:
        calendar = await gateway.get_primary_calendar()
        events = await gateway.list_events(calendar.id, time_min, time_max)
        event = await gateway.create_event(
            calendar.id,
            summary="Intro call",
            description=None,
            start=start,
            end=end,
            attendees=["lead@example.com"],
        )
"""

from __future__ import annotations

from meeting_scheduler.calendar.client import Calendar, CalendarEvent, CalendarGateway
from meeting_scheduler.calendar.exceptions import GatewayError, InsufficientPermissionsError

__all__ = [
    "CalendarGateway",
    "Calendar",
    "CalendarEvent",
    "GatewayError",
    "InsufficientPermissionsError",
]
