"""
Pure aggregation helpers over expense records.

Every function here is side-effect free and returns the identity value
(0, empty dict, empty list) for empty input.
"""
import datetime as dt
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from dateutil.relativedelta import relativedelta

from smartspendr.domain.categories import Category, parse_category
from smartspendr.domain.windows import DateWindow, as_date
from smartspendr.models import ExpenseRecord, TrendPoint

_CENT = Decimal("0.01")


def to_cents(amount: float | int | str | Decimal) -> int:
    value = Decimal(str(amount)).quantize(_CENT, rounding=ROUND_HALF_UP)
    return int(value * 100)


def from_cents(cents: int) -> float:
    return float(Decimal(cents) / 100)


def filter_by_window(
    records: Iterable[ExpenseRecord],
    start: DateWindow | dt.date | dt.datetime,
    end: dt.date | dt.datetime | None = None,
) -> list[ExpenseRecord]:
    """
    Records inside the window.

    Pass either a `DateWindow` or a `start`/`end` pair, which is treated as
    the half-open range `[start, end)`.
    """
    if isinstance(start, DateWindow):
        window = start
    else:
        if end is None:
            raise TypeError("filter_by_window() needs an end date when start is not a DateWindow")
        window = DateWindow(start=start, end=end)
    return [record for record in records if window.contains(record.date)]


def filter_by_category(
    records: Iterable[ExpenseRecord],
    category: Category | str | None,
) -> list[ExpenseRecord]:
    if category is None or category == "all":
        return list(records)
    wanted = parse_category(category)
    return [record for record in records if parse_category(record.category) == wanted]


def group_by_category(records: Iterable[ExpenseRecord]) -> dict[Category, list[ExpenseRecord]]:
    groups: dict[Category, list[ExpenseRecord]] = {}
    for record in records:
        groups.setdefault(parse_category(record.category), []).append(record)
    return groups


def sum_cents(records: Iterable[ExpenseRecord]) -> int:
    return sum((to_cents(record.amount) for record in records), 0)


def sum_amounts(records: Iterable[ExpenseRecord]) -> float:
    return from_cents(sum_cents(records))


def daily_average(records: Iterable[ExpenseRecord], window_days: int) -> float:
    if window_days <= 0:
        return 0.0
    return sum_amounts(records) / window_days


def recent_daily_average(
    records: Iterable[ExpenseRecord],
    now: dt.date | dt.datetime,
    days: int = 30,
) -> float:
    """Average per day over the `days` days ending at `now`."""
    if days <= 0:
        return 0.0
    today = as_date(now)
    window = DateWindow(start=today - dt.timedelta(days=days), end=today, closed="right")
    return daily_average(filter_by_window(records, window), days)


def monthly_trend(
    records: Iterable[ExpenseRecord],
    now: dt.date | dt.datetime,
    months: int = 12,
) -> list[TrendPoint]:
    today = as_date(now)
    cents_by_month: dict[tuple[int, int], int] = {}
    for record in records:
        key = (record.date.year, record.date.month)
        cents_by_month[key] = cents_by_month.get(key, 0) + to_cents(record.amount)

    points: list[TrendPoint] = []
    for offset in range(months - 1, -1, -1):
        month = today - relativedelta(months=offset)
        cents = cents_by_month.get((month.year, month.month), 0)
        points.append(TrendPoint(label=month.strftime("%b"), total=from_cents(cents)))
    return points


def daily_trend(
    records: Iterable[ExpenseRecord],
    now: dt.date | dt.datetime,
    days: int = 7,
) -> list[TrendPoint]:
    today = as_date(now)
    cents_by_day: dict[dt.date, int] = {}
    for record in records:
        cents_by_day[record.date] = cents_by_day.get(record.date, 0) + to_cents(record.amount)

    points: list[TrendPoint] = []
    for offset in range(days - 1, -1, -1):
        day = today - dt.timedelta(days=offset)
        points.append(TrendPoint(label=day.strftime("%a"), total=from_cents(cents_by_day.get(day, 0))))
    return points
