import datetime as dt

import pytest

from smartspendr.domain.aggregation import (
    daily_average,
    daily_trend,
    filter_by_category,
    filter_by_window,
    from_cents,
    group_by_category,
    monthly_trend,
    recent_daily_average,
    sum_amounts,
    sum_cents,
    to_cents,
)
from smartspendr.domain.categories import Category
from smartspendr.domain.windows import DateWindow


def test_to_cents_rounds_half_up() -> None:
    assert to_cents(10) == 1000
    assert to_cents(0.1) == 10
    assert to_cents("2.345") == 235
    assert from_cents(1999) == 19.99


def test_sum_avoids_float_drift(make_record) -> None:
    records = [make_record("2024-01-01", 0.1) for _ in range(10)]

    assert sum_cents(records) == 100
    assert sum_amounts(records) == 1.0


def test_empty_input_returns_identity() -> None:
    assert sum_amounts([]) == 0
    assert group_by_category([]) == {}
    assert filter_by_window([], dt.date(2024, 1, 1), dt.date(2024, 2, 1)) == []
    assert daily_average([], 30) == 0


def test_filter_by_window_is_half_open(make_record) -> None:
    first = make_record("2024-01-01", 5)
    middle = make_record("2024-01-15", 5)
    last = make_record("2024-02-01", 5)

    selected = filter_by_window([first, middle, last], dt.date(2024, 1, 1), dt.date(2024, 2, 1))

    assert selected == [first, middle]


def test_filter_by_window_accepts_window(make_record) -> None:
    start = make_record("2024-01-01", 5)
    end = make_record("2024-01-31", 5)
    window = DateWindow(start=dt.date(2024, 1, 1), end=dt.date(2024, 1, 31), closed="right")

    assert filter_by_window([start, end], window) == [end]


def test_filter_by_window_needs_end_without_window(make_record) -> None:
    with pytest.raises(TypeError):
        filter_by_window([make_record("2024-01-01", 1)], dt.date(2024, 1, 1))


def test_filter_by_category(make_record) -> None:
    food = make_record("2024-01-01", 5, "food")
    bills = make_record("2024-01-02", 7, "bills")

    assert filter_by_category([food, bills], "bills") == [bills]
    assert filter_by_category([food, bills], Category.FOOD) == [food]
    assert filter_by_category([food, bills], "all") == [food, bills]
    assert filter_by_category([food, bills], None) == [food, bills]


def test_group_by_category_preserves_order_and_count(make_record) -> None:
    records = [
        make_record("2024-01-01", 1, "food"),
        make_record("2024-01-02", 2, "bills"),
        make_record("2024-01-03", 3, "food"),
        make_record("2024-01-04", 4, "travel"),
        make_record("2024-01-05", 5, "food"),
    ]

    groups = group_by_category(records)

    assert list(groups) == [Category.FOOD, Category.BILLS, Category.TRAVEL]
    assert [r.amount for r in groups[Category.FOOD]] == [1, 3, 5]
    assert sum(len(group) for group in groups.values()) == len(records)


def test_unknown_category_is_grouped_as_other(make_record) -> None:
    record = make_record("2024-01-01", 3, "crypto")

    assert record.category == Category.OTHER
    assert list(group_by_category([record])) == [Category.OTHER]


def test_daily_average_guards_zero_days(make_record) -> None:
    records = [make_record("2024-01-01", 30)]

    assert daily_average(records, 30) == 1
    assert daily_average(records, 0) == 0


def test_recent_daily_average_uses_last_days(make_record) -> None:
    now = dt.date(2024, 3, 31)
    records = [
        make_record("2024-03-31", 30),
        make_record("2024-03-02", 30),
        make_record("2024-03-01", 300),
    ]

    # 2024-03-01 is exactly 30 days back and falls outside (start, end].
    assert recent_daily_average(records, now, 30) == 2


def test_monthly_trend_labels_and_totals(make_record) -> None:
    now = dt.date(2024, 3, 15)
    records = [
        make_record("2024-03-01", 10),
        make_record("2024-03-20", 5),
        make_record("2024-01-10", 7.5),
        make_record("2023-03-10", 100),
    ]

    points = monthly_trend(records, now, months=3)

    assert [p.label for p in points] == ["Jan", "Feb", "Mar"]
    assert [p.total for p in points] == [7.5, 0, 15]


def test_daily_trend_covers_each_day(make_record) -> None:
    now = dt.date(2024, 1, 7)  # Sunday
    records = [make_record("2024-01-07", 4), make_record("2024-01-01", 6)]

    points = daily_trend(records, now, days=7)

    assert len(points) == 7
    assert points[0].label == "Mon"
    assert points[0].total == 6
    assert points[-1].label == "Sun"
    assert points[-1].total == 4
