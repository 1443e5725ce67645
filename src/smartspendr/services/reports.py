import datetime as dt
from collections.abc import Iterable

from smartspendr.domain.aggregation import (
    filter_by_category,
    filter_by_window,
    from_cents,
    group_by_category,
    sum_cents,
)
from smartspendr.domain.categories import Category
from smartspendr.domain.windows import DateWindow, window_for_label
from smartspendr.logger import get_logger
from smartspendr.models import CategoryTotal, ExpenseRecord, Report

logger = get_logger(__name__)


def _percentage(part_cents: int, total_cents: int) -> float:
    if total_cents <= 0:
        return 0.0
    return round(part_cents / total_cents * 100, 1)


def _category_totals(records: list[ExpenseRecord], total_cents: int) -> list[CategoryTotal]:
    rows: list[tuple[int, Category, int]] = []
    for category, group in group_by_category(records).items():
        rows.append((sum_cents(group), category, len(group)))

    # Highest total first; equal totals ordered by category value.
    rows.sort(key=lambda row: (-row[0], row[1].value))
    return [
        CategoryTotal(
            category=category,
            total=from_cents(cents),
            count=count,
            percentage=_percentage(cents, total_cents),
        )
        for cents, category, count in rows
    ]


def build_window_report(
    records: Iterable[ExpenseRecord],
    window: DateWindow,
    category: Category | str | None = None,
) -> Report:
    selected = filter_by_category(records, category)
    selected = filter_by_window(selected, window)

    total_cents = sum_cents(selected)
    total_amount = from_cents(total_cents)
    report = Report(
        total_amount=total_amount,
        total_expenses=len(selected),
        category_totals=_category_totals(selected, total_cents),
        daily_average=total_amount / window.days,
    )
    logger.debug(
        "[REPORT] %s..%s (%s-closed): %d records, total %.2f",
        window.start,
        window.end,
        window.closed,
        report.total_expenses,
        report.total_amount,
    )
    return report


def build_report(
    records: Iterable[ExpenseRecord],
    start: dt.date | dt.datetime,
    end: dt.date | dt.datetime,
    category: Category | str | None = None,
) -> Report:
    """Report over the half-open range `[start, end)`. Raises `InvalidRange` if end < start."""
    return build_window_report(records, DateWindow(start=start, end=end), category)


def build_range_report(
    records: Iterable[ExpenseRecord],
    label: str,
    now: dt.date | dt.datetime,
    category: Category | str | None = None,
) -> Report:
    items = list(records)
    window = window_for_label(label, now, dates=[record.date for record in items])
    return build_window_report(items, window, category)
