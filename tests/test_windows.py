import datetime as dt

import pytest

from smartspendr.domain.windows import (
    DateWindow,
    WindowUnit,
    relative_window,
    subtract_units,
    window_for_label,
)
from smartspendr.errors import InvalidRange


def test_left_closed_window_contains() -> None:
    window = DateWindow(start=dt.date(2024, 1, 1), end=dt.date(2024, 1, 10))

    assert window.contains(dt.date(2024, 1, 1))
    assert window.contains(dt.datetime(2024, 1, 9, 23, 59))
    assert not window.contains(dt.date(2024, 1, 10))
    assert window.days == 9


def test_right_closed_window_contains() -> None:
    window = DateWindow(start=dt.date(2024, 1, 1), end=dt.date(2024, 1, 10), closed="right")

    assert not window.contains(dt.date(2024, 1, 1))
    assert window.contains(dt.date(2024, 1, 10))


def test_window_rejects_reversed_range() -> None:
    with pytest.raises(InvalidRange) as excinfo:
        DateWindow(start=dt.date(2024, 2, 1), end=dt.date(2024, 1, 1))

    assert excinfo.value.start == dt.date(2024, 2, 1)


def test_window_normalizes_datetimes() -> None:
    window = DateWindow(start=dt.datetime(2024, 1, 1, 12), end=dt.datetime(2024, 1, 2, 1))

    assert window.start == dt.date(2024, 1, 1)
    assert window.days == 1


@pytest.mark.parametrize(
    ("unit", "expected"),
    [
        (WindowUnit.DAY, dt.date(2024, 5, 30)),
        (WindowUnit.WEEK, dt.date(2024, 5, 24)),
        (WindowUnit.MONTH, dt.date(2024, 4, 30)),
        (WindowUnit.QUARTER, dt.date(2024, 2, 29)),
        (WindowUnit.YEAR, dt.date(2023, 5, 31)),
    ],
)
def test_subtract_units_uses_calendar_arithmetic(unit: WindowUnit, expected: dt.date) -> None:
    assert subtract_units(dt.date(2024, 5, 31), 1, unit) == expected


def test_quarter_is_three_months() -> None:
    window = relative_window(dt.date(2024, 6, 15), 1, WindowUnit.QUARTER)

    assert window.start == dt.date(2024, 3, 15)
    assert window.closed == "right"


def test_relative_window_rejects_negative_amount() -> None:
    with pytest.raises(ValueError):
        relative_window(dt.date(2024, 1, 1), -1)


def test_all_window_starts_before_earliest_record() -> None:
    window = window_for_label("all", dt.date(2024, 3, 1), dates=[dt.date(2024, 1, 5), dt.date(2023, 12, 1)])

    assert window.start == dt.date(2023, 11, 30)
    assert window.contains(dt.date(2023, 12, 1))
    assert window.contains(dt.date(2024, 3, 1))


def test_all_window_without_records() -> None:
    window = window_for_label("ALL", dt.date(2024, 3, 1))

    assert window.end == dt.date(2024, 3, 1)
    assert window.days == 1


def test_unknown_label() -> None:
    with pytest.raises(ValueError):
        window_for_label("decade", dt.date(2024, 3, 1))
