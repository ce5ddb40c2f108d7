"""Scheduling data models."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo

WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

BUSINESS_DAYS = frozenset(range(5))


def parse_hhmm(value: str) -> time:
    """Parse an HH:MM string.

    Raises:
        ValueError: If the value is not a valid 24h HH:MM time.
    """
    hours, sep, minutes = value.partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit() or len(minutes) != 2:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return time(int(hours), int(minutes))


@dataclass(frozen=True)
class BusinessAvailability:
    """Business-hours constraints for a booking request.

    Weekdays use Python numbering: Monday is 0 and Sunday is 6. With
    `enabled=False` slots can still be listed but no meeting is booked.

    Example:
        >>> BusinessAvailability.from_day_names(["monday", "friday"], duration_minutes=45)
    """

    duration_minutes: int = 30
    buffer_minutes: int = 0
    window_start: str = "09:00"
    window_end: str = "18:00"
    allowed_weekdays: frozenset[int] = BUSINESS_DAYS
    enabled: bool = True

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        if self.buffer_minutes < 0:
            raise ValueError("buffer_minutes cannot be negative")
        if self.start_time >= self.end_time:
            raise ValueError(
                f"window_start {self.window_start} must be before window_end {self.window_end}"
            )

        weekdays = frozenset(self.allowed_weekdays)
        invalid = [d for d in weekdays if d not in range(7)]
        if invalid:
            raise ValueError(f"Invalid weekday numbers: {sorted(invalid)}")
        object.__setattr__(self, "allowed_weekdays", weekdays)

    @classmethod
    def from_day_names(cls, days: Iterable[str], **kwargs) -> BusinessAvailability:
        """Build availability from day names such as "monday"."""
        try:
            weekdays = frozenset(WEEKDAYS[d.strip().lower()] for d in days)
        except KeyError as e:
            raise ValueError(f"Unknown day name: {e.args[0]}") from None
        return cls(allowed_weekdays=weekdays, **kwargs)

    @property
    def start_time(self) -> time:
        return parse_hhmm(self.window_start)

    @property
    def end_time(self) -> time:
        return parse_hhmm(self.window_end)

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)

    @property
    def buffer(self) -> timedelta:
        return timedelta(minutes=self.buffer_minutes)

    def window_for(self, day: date, tz: tzinfo) -> tuple[datetime, datetime]:
        """Return the [start, end) availability window on `day`."""
        return (
            datetime.combine(day, self.start_time, tzinfo=tz),
            datetime.combine(day, self.end_time, tzinfo=tz),
        )


@dataclass(frozen=True, order=True)
class Slot:
    """A candidate meeting interval [start, end)."""

    start: datetime
    end: datetime

    def conflicts_with(self, start: datetime, end: datetime, buffer: timedelta) -> bool:
        """Check overlap with [start, end) expanded by `buffer` on both sides."""
        return self.start < end + buffer and self.end > start - buffer


@dataclass(frozen=True)
class Horizon:
    """The forward-looking date range searched for availability."""

    start: datetime
    end: datetime

    def days(self) -> list[date]:
        """Calendar days touched by [start, end)."""
        first = self.start.date()
        last = (self.end - timedelta(microseconds=1)).date()
        return [first + timedelta(days=i) for i in range((last - first).days + 1)]


@dataclass(frozen=True)
class NoAvailability:
    """Explicit "no slot found" result of a search."""

    horizon: Horizon
    reason: str = "No available slots in the search horizon"


@dataclass(frozen=True)
class Lead:
    """The person a meeting is booked with."""

    name: str
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class MeetingTemplate:
    """Title and description for booked events; `{name}` is the lead's name."""

    title: str = "Meeting with {name}"
    description: str = ""
    footer: str = "Meeting scheduled automatically by meeting-scheduler"

    def render_title(self, lead: Lead) -> str:
        return self.title.replace("{name}", lead.name)

    def render_description(self, lead: Lead) -> str:
        parts = [self.description.replace("{name}", lead.name)]
        if lead.email:
            parts.append(f"\nEmail: {lead.email}")
        if lead.phone:
            parts.append(f"\nPhone: {lead.phone}")
        if self.footer:
            parts.append(f"\n\n{self.footer}")
        return "".join(p for p in parts if p).strip()


@dataclass(frozen=True)
class Booking:
    """Result of booking a meeting."""

    slot: Slot
    external_event_id: str
    link: str | None
    attendee: str | None = None
    calendar_id: str = field(default="primary", compare=False)
