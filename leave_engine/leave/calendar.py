"""Working-week calendar — day classification and leave day counting.

Two working-week definitions are in use across the organisation's
submission surfaces: Sunday–Thursday (Friday/Saturday off) and
Monday–Friday (Saturday/Sunday off). Both are modelled as named
``WorkWeek`` policies; ``sun_thu`` is the default because it is the one the
request backend enforces. Switch with the ``WORK_WEEK`` setting.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterator

HALF_DAY = Decimal("0.5")

_DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


@dataclass(frozen=True)
class WorkWeek:
    """Five contiguous working weekdays (``date.weekday()``: Mon=0 … Sun=6)."""

    name: str
    working_days: frozenset[int]

    def __post_init__(self) -> None:
        if len(self.working_days) != 5 or not self.working_days <= set(range(7)):
            raise ValueError(f"Work week '{self.name}' must have five working weekdays.")
        if len(self.boundary_days) != 2:
            raise ValueError(f"Work week '{self.name}' working days must be contiguous.")

    @property
    def boundary_days(self) -> frozenset[int]:
        """Working days adjacent to the non-working pair."""
        return frozenset(
            d for d in self.working_days
            if (d - 1) % 7 not in self.working_days
            or (d + 1) % 7 not in self.working_days
        )

    @property
    def label(self) -> str:
        first = next(d for d in self.working_days if (d - 1) % 7 not in self.working_days)
        last = (first + 4) % 7
        return f"{_DAY_NAMES[first]}–{_DAY_NAMES[last]}"


SUN_THU = WorkWeek("sun_thu", frozenset({6, 0, 1, 2, 3}))
MON_FRI = WorkWeek("mon_fri", frozenset({0, 1, 2, 3, 4}))

WORK_WEEKS: dict[str, WorkWeek] = {w.name: w for w in (SUN_THU, MON_FRI)}


def get_work_week(name: str) -> WorkWeek:
    try:
        return WORK_WEEKS[name]
    except KeyError:
        raise ValueError(
            f"Unknown work week '{name}'. Expected one of: {', '.join(WORK_WEEKS)}"
        ) from None


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every calendar day in [start, end]; nothing when end < start."""
    for offset in range((end - start).days + 1):
        yield start + timedelta(days=offset)


class LeaveCalendar:
    """Counts leave days and flags weekend-boundary days under a ``WorkWeek``."""

    def __init__(self, work_week: WorkWeek = SUN_THU) -> None:
        self.work_week = work_week

    def is_working_day(self, day: date) -> bool:
        return day.weekday() in self.work_week.working_days

    def is_weekend_boundary(self, day: date) -> bool:
        return day.weekday() in self.work_week.boundary_days

    def working_days_between(self, start: date, end: date) -> int:
        """Working days in [start, end], counted by whole weeks plus a tail."""
        if end < start:
            return 0
        weeks, rest = divmod((end - start).days + 1, 7)
        # The tail is walked back from *end* so date.max never overflows
        tail = sum(
            1 for offset in range(rest)
            if self.is_working_day(end - timedelta(days=offset))
        )
        return weeks * len(self.work_week.working_days) + tail

    def total_days(self, start: date, end: date, half_day: bool = False) -> Decimal:
        """Days a request consumes: 0.5 for a half-day, else the working-day count."""
        if half_day:
            return HALF_DAY
        return Decimal(self.working_days_between(start, end))

    def boundary_days_between(self, start: date, end: date) -> list[date]:
        return [d for d in iter_days(start, end) if self.is_weekend_boundary(d)]

    def touches_weekend_boundary(self, start: date, end: date) -> bool:
        if end < start:
            return False
        if (end - start).days >= 6:
            return True  # a full week contains every weekday
        return any(self.is_weekend_boundary(d) for d in iter_days(start, end))
