"""Allowance eligibility windows and chore recurrence rules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Optional, Union


class Weekday(IntEnum):
    """Enum representing days of the week for scheduling."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def from_datetime(cls, moment: datetime) -> "Weekday":
        return cls(moment.weekday())

    @property
    def label(self) -> str:
        return self.name.title()


DEFAULT_WINDOW = timedelta(days=7)


@dataclass(frozen=True, slots=True)
class Rolling:
    """Eligible once ``window`` has elapsed since the last payment."""

    last_paid_at: Optional[datetime]
    window: timedelta = DEFAULT_WINDOW


@dataclass(frozen=True, slots=True)
class FixedDay:
    """Eligible on ``weekday`` provided nothing was paid in the last ``window``."""

    weekday: Weekday
    last_paid_at: Optional[datetime]
    window: timedelta = DEFAULT_WINDOW


AllowanceSchedule = Union[Rolling, FixedDay]


@dataclass(frozen=True, slots=True)
class Eligibility:
    """Outcome of an allowance eligibility check."""

    eligible: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.eligible


ELIGIBLE = Eligibility(True)
ALREADY_PAID = Eligibility(False, "Allowance already paid this week")


def make_schedule(
    last_paid_at: Optional[datetime],
    weekday: Optional[Weekday | int],
    *,
    window: timedelta = DEFAULT_WINDOW,
) -> AllowanceSchedule:
    """Build the schedule variant for an account's stored allowance settings."""

    if weekday is None:
        return Rolling(last_paid_at, window)
    return FixedDay(Weekday(weekday), last_paid_at, window)


def check_eligibility(schedule: AllowanceSchedule, now: datetime) -> Eligibility:
    """Return whether an allowance may be paid at ``now`` under ``schedule``."""

    match schedule:
        case Rolling(last_paid_at=None):
            return ELIGIBLE
        case Rolling(last_paid_at=last, window=window):
            return ELIGIBLE if now - last >= window else ALREADY_PAID
        case FixedDay(weekday=weekday) if Weekday.from_datetime(now) != weekday:
            return Eligibility(
                False,
                f"Today is not the scheduled allowance day ({Weekday(weekday).label})",
            )
        case FixedDay(last_paid_at=None):
            return ELIGIBLE
        case FixedDay(last_paid_at=last, window=window):
            # Calendar days, not elapsed hours.
            if (now.date() - last.date()).days >= window.days:
                return ELIGIBLE
            return ALREADY_PAID
    raise TypeError(f"Unsupported allowance schedule: {schedule!r}")


def next_payment_due(schedule: AllowanceSchedule, now: datetime) -> datetime:
    """Return the earliest moment at or after ``now`` when the schedule is eligible."""

    if check_eligibility(schedule, now):
        return now
    if isinstance(schedule, Rolling):
        assert schedule.last_paid_at is not None
        return schedule.last_paid_at + schedule.window
    candidate = now.replace(hour=0, minute=0, second=0, microsecond=0)
    for _ in range(schedule.window.days * 2 + 1):
        candidate += timedelta(days=1)
        if check_eligibility(schedule, candidate):
            return candidate
    raise ValueError("Allowance schedule never becomes eligible.")


class RecurrenceType(str, Enum):
    """How often a recurring chore comes due."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True, slots=True)
class RecurrenceRule:
    """Recurrence for chore tasks: daily, weekly on a weekday or monthly on a day."""

    type: RecurrenceType
    weekday: Optional[Weekday] = None
    day_of_month: Optional[int] = None

    def __post_init__(self) -> None:
        if self.type is RecurrenceType.WEEKLY:
            if self.weekday is None:
                raise ValueError("Weekly recurrence requires a weekday.")
            object.__setattr__(self, "weekday", Weekday(self.weekday))
        if self.type is RecurrenceType.MONTHLY:
            if self.day_of_month is None or not 1 <= self.day_of_month <= 31:
                raise ValueError("Monthly recurrence requires a day of month between 1 and 31.")

    @classmethod
    def daily(cls) -> "RecurrenceRule":
        return cls(RecurrenceType.DAILY)

    @classmethod
    def weekly(cls, weekday: Weekday | int) -> "RecurrenceRule":
        return cls(RecurrenceType.WEEKLY, weekday=Weekday(weekday))

    @classmethod
    def monthly(cls, day_of_month: int) -> "RecurrenceRule":
        return cls(RecurrenceType.MONTHLY, day_of_month=day_of_month)

    def is_due(self, moment: datetime) -> bool:
        if self.type is RecurrenceType.DAILY:
            return True
        if self.type is RecurrenceType.WEEKLY:
            return Weekday.from_datetime(moment) == self.weekday
        return moment.day == self.day_of_month

    def describe(self) -> str:
        if self.type is RecurrenceType.DAILY:
            return "Daily"
        if self.type is RecurrenceType.WEEKLY:
            assert self.weekday is not None
            return f"Every {self.weekday.label}"
        return f"Monthly on day {self.day_of_month}"


__all__ = [
    "ALREADY_PAID",
    "AllowanceSchedule",
    "DEFAULT_WINDOW",
    "ELIGIBLE",
    "Eligibility",
    "FixedDay",
    "RecurrenceRule",
    "RecurrenceType",
    "Rolling",
    "Weekday",
    "check_eligibility",
    "make_schedule",
    "next_payment_due",
]
