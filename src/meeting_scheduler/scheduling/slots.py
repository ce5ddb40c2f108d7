"""Conflict-free slot search over business hours.

Pure functions of their inputs: no calendar access happens here.

Simplifications kept on purpose:
- All-day events (no timed start/end) never count as conflicts.
- Candidates start every `step_minutes` from the window start, whatever the
  meeting duration.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from datetime import datetime, time, timedelta, tzinfo

from meeting_scheduler.calendar.client import CalendarEvent
from meeting_scheduler.scheduling.models import (
    BusinessAvailability,
    Horizon,
    NoAvailability,
    Slot,
)

DEFAULT_STEP_MINUTES = 15
DEFAULT_HORIZON_DAYS = 7


def default_horizon(
    reference: datetime, tz: tzinfo, days: int = DEFAULT_HORIZON_DAYS
) -> Horizon:
    """Horizon from 00:00 on the day after `reference` (local) through +`days`."""
    local_day = reference.astimezone(tz).date() if reference.tzinfo else reference.date()
    start = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=tz)
    return Horizon(start=start, end=start + timedelta(days=days))


class SlotFinder:
    """Enumerates meeting slots that fit business hours and avoid existing events.

    Example:
        >>> finder = SlotFinder()
        >>> horizon = default_horizon(datetime.now(tz), tz)
        >>> slot = finder.find_first_slot(availability, events, horizon)
    """

    def __init__(self, step_minutes: int = DEFAULT_STEP_MINUTES):
        if step_minutes <= 0:
            raise ValueError("step_minutes must be positive")
        self.step = timedelta(minutes=step_minutes)

    def iter_slots(
        self,
        availability: BusinessAvailability,
        events: Sequence[CalendarEvent],
        horizon: Horizon,
    ) -> Iterator[Slot]:
        """Yield free slots in chronological order."""
        tz = horizon.start.tzinfo
        busy = [(e.start, e.end) for e in events if e.is_timed]
        duration = availability.duration
        buffer = availability.buffer

        for day in horizon.days():
            if day.weekday() not in availability.allowed_weekdays:
                continue

            window_start, window_end = availability.window_for(day, tz)
            candidate_start = window_start

            while candidate_start < window_end:
                candidate = Slot(candidate_start, candidate_start + duration)
                if candidate.end > window_end:
                    break

                in_horizon = horizon.start <= candidate.start and candidate.end <= horizon.end
                if in_horizon and not any(
                    candidate.conflicts_with(start, end, buffer) for start, end in busy
                ):
                    yield candidate

                candidate_start += self.step

    def find_first_slot(
        self,
        availability: BusinessAvailability,
        events: Sequence[CalendarEvent],
        horizon: Horizon,
    ) -> Slot | NoAvailability:
        """Return the earliest free slot, or NoAvailability if there is none."""
        for slot in self.iter_slots(availability, events, horizon):
            return slot
        return NoAvailability(horizon)

    def find_slots(
        self,
        availability: BusinessAvailability,
        events: Sequence[CalendarEvent],
        horizon: Horizon,
        limit: int,
    ) -> list[Slot]:
        """Return up to `limit` free slots in chronological order."""
        if limit <= 0:
            return []

        slots = []
        for slot in self.iter_slots(availability, events, horizon):
            slots.append(slot)
            if len(slots) >= limit:
                break
        return slots
