"""Slot search and meeting booking."""

from meeting_scheduler.scheduling.exceptions import (
    NoAvailabilityError,
    SchedulingDisabledError,
    SchedulingError,
    SlotConflictError,
)
from meeting_scheduler.scheduling.meetings import MeetingOrchestrator
from meeting_scheduler.scheduling.models import (
    Booking,
    BusinessAvailability,
    Horizon,
    Lead,
    MeetingTemplate,
    NoAvailability,
    Slot,
)
from meeting_scheduler.scheduling.slots import SlotFinder, default_horizon

__all__ = [
    "MeetingOrchestrator",
    "SlotFinder",
    "default_horizon",
    "BusinessAvailability",
    "Slot",
    "Horizon",
    "NoAvailability",
    "Lead",
    "MeetingTemplate",
    "Booking",
    "SchedulingError",
    "NoAvailabilityError",
    "SchedulingDisabledError",
    "SlotConflictError",
]
