"""Meeting scheduling exceptions."""

from __future__ import annotations

from meeting_scheduler.scheduling.models import NoAvailability, Slot


class SchedulingError(Exception):
    """Base exception for meeting scheduling errors."""


class NoAvailabilityError(SchedulingError):
    """Raised when no slot is free in the search horizon."""

    def __init__(self, no_availability: NoAvailability):
        self.no_availability = no_availability
        horizon = no_availability.horizon
        super().__init__(
            f"{no_availability.reason} "
            f"({horizon.start.isoformat()} to {horizon.end.isoformat()})"
        )


class SlotConflictError(SchedulingError):
    """Raised when a found slot was taken before the event could be created."""

    def __init__(self, slot: Slot):
        self.slot = slot
        super().__init__(
            f"Slot {slot.start.isoformat()} - {slot.end.isoformat()} is no longer free"
        )


class SchedulingDisabledError(SchedulingError):
    """Raised when booking is attempted with meeting scheduling turned off."""

    pass
