import datetime as dt
from collections.abc import Callable
from typing import Any

import pytest

from smartspendr.models import ExpenseRecord


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def make_record() -> Callable[..., ExpenseRecord]:
    counter = iter(range(1, 10_000))

    def _make(
        day: str | dt.date,
        amount: float,
        category: str = "food",
        title: str | None = None,
        **extra: Any,
    ) -> ExpenseRecord:
        index = next(counter)
        return ExpenseRecord(
            id=extra.pop("id", f"exp-{index}"),
            title=title or f"Expense {index}",
            amount=amount,
            category=category,
            date=day,
            **extra,
        )

    return _make
