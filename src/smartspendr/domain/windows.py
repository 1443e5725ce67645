import datetime as dt
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Literal

from dateutil.relativedelta import relativedelta

from smartspendr.errors import InvalidRange

ClosedSide = Literal["left", "right"]


class WindowUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


_UNIT_DELTAS: dict[WindowUnit, relativedelta] = {
    WindowUnit.DAY: relativedelta(days=1),
    WindowUnit.WEEK: relativedelta(weeks=1),
    WindowUnit.MONTH: relativedelta(months=1),
    WindowUnit.QUARTER: relativedelta(months=3),
    WindowUnit.YEAR: relativedelta(years=1),
}

RANGE_LABELS: dict[str, WindowUnit] = {
    "week": WindowUnit.WEEK,
    "month": WindowUnit.MONTH,
    "quarter": WindowUnit.QUARTER,
    "year": WindowUnit.YEAR,
}
ALL_RANGE = "all"


def as_date(value: dt.date | dt.datetime) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    return value


@dataclass(frozen=True)
class DateWindow:
    """
    Contiguous date range.

    `closed="left"` is the half-open `[start, end)` used for explicit ranges,
    `closed="right"` is `(start, end]` used for "last N units" windows.
    """
    start: dt.date
    end: dt.date
    closed: ClosedSide = "left"

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", as_date(self.start))
        object.__setattr__(self, "end", as_date(self.end))
        if self.end < self.start:
            raise InvalidRange(self.start, self.end)

    def contains(self, value: dt.date | dt.datetime) -> bool:
        day = as_date(value)
        if self.closed == "right":
            return self.start < day <= self.end
        return self.start <= day < self.end

    @property
    def days(self) -> int:
        return max(1, (self.end - self.start).days)


def subtract_units(now: dt.date | dt.datetime, amount: int, unit: WindowUnit) -> dt.date:
    # relativedelta clamps month arithmetic to the end of shorter months.
    return as_date(now) - _UNIT_DELTAS[unit] * amount


def relative_window(
    now: dt.date | dt.datetime,
    amount: int = 1,
    unit: WindowUnit = WindowUnit.MONTH,
) -> DateWindow:
    if amount < 0:
        raise ValueError(f"Window length must not be negative, got {amount}")
    end = as_date(now)
    return DateWindow(start=subtract_units(end, amount, unit), end=end, closed="right")


def window_for_label(
    label: str,
    now: dt.date | dt.datetime,
    dates: Iterable[dt.date] | None = None,
) -> DateWindow:
    """Resolve a report range label (`week`, `month`, `quarter`, `year`, `all`)."""
    normalized = (label or "").strip().lower()
    if normalized in RANGE_LABELS:
        return relative_window(now, 1, RANGE_LABELS[normalized])
    if normalized != ALL_RANGE:
        raise ValueError(f"Unknown report range '{label}'")

    end = as_date(now)
    earliest = min((as_date(day) for day in dates or ()), default=end)
    start = min(earliest, end) - dt.timedelta(days=1)
    return DateWindow(start=start, end=end, closed="right")
