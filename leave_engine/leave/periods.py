"""Semi-annual period resolution (H1: Jan–Jun, H2: Jul–Dec)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from leave_engine.common.constants import SemiAnnualPeriod


@dataclass(frozen=True, order=True)
class PeriodKey:
    year: int
    half: int

    def __post_init__(self) -> None:
        SemiAnnualPeriod(self.half)  # raises ValueError outside {1, 2}

    @property
    def label(self) -> str:
        return f"H{self.half} {self.year}"


def resolve_period(day: date) -> PeriodKey:
    return PeriodKey(
        year=day.year,
        half=SemiAnnualPeriod.H1 if day.month <= 6 else SemiAnnualPeriod.H2,
    )


def current_period(today: date) -> PeriodKey:
    """The period containing *today*; period opening defaults to it."""
    return resolve_period(today)
