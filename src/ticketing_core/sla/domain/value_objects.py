"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared: the calendar configuration
is loaded once at start-up and handed to every component that needs it.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import FrozenSet, Iterable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ticketing_core.config import Priority, SLALevel, TicketStatus, TERMINAL_STATUSES
from ticketing_core.core import CalendarMisconfiguration
from ticketing_core.sla.domain.entities import Ticket, utcnow


# Upper bound on day-by-day scanning for the next working day.
MAX_LOOKAHEAD_DAYS = 366

# Upper bound on working-day segments consumed by one due-date walk.
MAX_WALK_SEGMENTS = 10_000


class Holiday(BaseModel):
    """A dated exception to the weekly calendar."""
    model_config = ConfigDict(frozen=True)

    date: date
    name: str = ""
    is_working_day: bool = False


class CalendarConfig(BaseModel):
    """
    Business calendar configuration loaded from YAML.

    Weekdays follow Python's convention: 0 = Monday ... 6 = Sunday.
    """
    model_config = ConfigDict(frozen=True)

    start: int = Field(default=9, ge=0, le=23, description="First working hour")
    end: int = Field(default=17, ge=0, le=23, description="Hour the working day ends")
    days: FrozenSet[int] = Field(
        default=frozenset({0, 1, 2, 3, 4}),
        description="Working weekdays"
    )
    timezone: str = Field(default="UTC", description="IANA zone of the working hours")
    holidays: List[Holiday] = Field(default_factory=list)

    @field_validator("days")
    @classmethod
    def validate_days(cls, v: FrozenSet[int]) -> FrozenSet[int]:
        invalid = [d for d in v if d < 0 or d > 6]
        if invalid:
            raise ValueError(f"weekdays must be within 0-6, got {sorted(invalid)}")
        return v


class BusinessCalendar:
    """
    Working-time arithmetic over a fixed CalendarConfig.

    All inputs may be any aware datetime (naive values are read as UTC);
    results are aware datetimes in the calendar's zone.
    """

    def __init__(self, config: CalendarConfig):
        if config.start >= config.end:
            raise CalendarMisconfiguration(
                f"Working day must start before it ends (start={config.start}, end={config.end})",
                {"start": config.start, "end": config.end}
            )
        if not config.days:
            raise CalendarMisconfiguration("At least one working weekday is required")
        try:
            self._tz = ZoneInfo(config.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise CalendarMisconfiguration(
                f"Unknown timezone {config.timezone!r}",
                {"timezone": config.timezone}
            ) from e

        self._config = config
        self._closed_dates = frozenset(
            h.date for h in config.holidays if not h.is_working_day
        )

    @property
    def config(self) -> CalendarConfig:
        return self._config

    def _local(self, t: datetime) -> datetime:
        if t.tzinfo is None:
            t = t.replace(tzinfo=timezone.utc)
        return t.astimezone(self._tz)

    def _at_hour(self, day: date, hour: int) -> datetime:
        return datetime.combine(day, time(hour), tzinfo=self._tz)

    def is_working_date(self, day: date) -> bool:
        """Weekday is worked and the date is not a closed holiday."""
        return day.weekday() in self._config.days and day not in self._closed_dates

    def is_working_instant(self, t: datetime) -> bool:
        local = self._local(t)
        if not self.is_working_date(local.date()):
            return False
        return self._config.start <= local.hour < self._config.end

    def end_of_working_day(self, t: datetime) -> datetime:
        return self._at_hour(self._local(t).date(), self._config.end)

    def start_of_next_working_day(self, t: datetime) -> datetime:
        """Opening time of the first working date strictly after t's date."""
        day = self._local(t).date()
        for _ in range(MAX_LOOKAHEAD_DAYS):
            day += timedelta(days=1)
            candidate = self._at_hour(day, self._config.start)
            if self.is_working_instant(candidate):
                return candidate
        raise CalendarMisconfiguration(
            f"No working day within {MAX_LOOKAHEAD_DAYS} days of {t.isoformat()}",
            {"from": t.isoformat()}
        )

    def next_working_instant(self, t: datetime) -> datetime:
        """
        Earliest working instant at or after t.

        Before opening on a working date this is the same day's start;
        after closing, or on a non-working date, the next working day's.
        """
        if self.is_working_instant(t):
            return self._local(t)
        local = self._local(t)
        if self.is_working_date(local.date()) and local.hour < self._config.start:
            return self._at_hour(local.date(), self._config.start)
        return self.start_of_next_working_day(t)

    def add_business_hours(self, start: datetime, hours: float) -> datetime:
        """
        Walk forward from start until `hours` of working time have elapsed.

        Every segment consumes a strictly positive slice of the budget, so
        the walk ends within ceil(hours / day length) segments on any sane
        calendar; MAX_WALK_SEGMENTS guards the rest.
        """
        budget = timedelta(hours=hours)
        consumed = timedelta(0)
        current = self.next_working_instant(start)
        if budget <= consumed:
            return current

        for _ in range(MAX_WALK_SEGMENTS):
            day_end = self.end_of_working_day(current)
            available = day_end.astimezone(timezone.utc) - current.astimezone(timezone.utc)
            step = min(available, budget - consumed)
            current = (current.astimezone(timezone.utc) + step).astimezone(self._tz)
            consumed += step
            if consumed >= budget:
                return current
            current = self.start_of_next_working_day(current)

        raise CalendarMisconfiguration(
            f"Could not place {hours} business hours after {start.isoformat()}",
            {"start": start.isoformat(), "hours": hours}
        )


class SLACalculator:
    """
    Due-date policy on top of a BusinessCalendar.

    Resolution budget = base hours for the SLA level, clamped by priority.
    """

    BASE_HOURS = {
        SLALevel.STANDARD: 40,
        SLALevel.PREMIUM: 16,
        SLALevel.CRITICAL_SUPPORT: 4,
    }

    RESPONSE_HOURS = {
        SLALevel.STANDARD: 8,
        SLALevel.PREMIUM: 4,
        SLALevel.CRITICAL_SUPPORT: 1,
    }

    def __init__(self, calendar: BusinessCalendar):
        self._calendar = calendar

    @property
    def calendar(self) -> BusinessCalendar:
        return self._calendar

    @classmethod
    def budget_hours(cls, sla_level: SLALevel, priority: Priority) -> int:
        """
        Business-hour budget after the priority clamp.

        Example:
            CRITICAL_SUPPORT (4h) with LOW priority -> max(4, 40) = 40h
            STANDARD (40h) with CRITICAL priority -> min(40, 4) = 4h
        """
        budget = cls.BASE_HOURS[SLALevel(sla_level)]
        priority = Priority(priority)
        if priority == Priority.CRITICAL:
            return min(budget, 4)
        if priority == Priority.HIGH:
            return min(budget, 8)
        if priority == Priority.LOW:
            return max(budget, 40)
        return budget

    @classmethod
    def response_time_budget(cls, sla_level: SLALevel) -> int:
        """First-response budget in business hours."""
        return cls.RESPONSE_HOURS[SLALevel(sla_level)]

    def due_date(
        self,
        sla_level: SLALevel,
        priority: Priority,
        start: Optional[datetime] = None
    ) -> datetime:
        """Resolution deadline for a ticket opened at `start` (UTC result)."""
        start = start or utcnow()
        hours = self.budget_hours(sla_level, priority)
        return self._calendar.add_business_hours(start, hours).astimezone(timezone.utc)

    @staticmethod
    def is_overdue(ticket: Ticket, now: Optional[datetime] = None) -> bool:
        if ticket.due_date is None or ticket.status in TERMINAL_STATUSES:
            return False
        return (now or utcnow()) > ticket.due_date

    @staticmethod
    def compliance_percentage(tickets: Iterable[Ticket]) -> int:
        """
        Share of finished tickets closed on or before their due date.

        Only RESOLVED/CLOSED tickets carrying both a due date and a close
        time are counted; with none, compliance is 100.
        """
        finished = [
            t for t in tickets
            if t.status in (TicketStatus.RESOLVED, TicketStatus.CLOSED)
            and t.due_date is not None and t.closed_at is not None
        ]
        if not finished:
            return 100
        compliant = sum(1 for t in finished if t.closed_at <= t.due_date)
        return round(compliant / len(finished) * 100)
