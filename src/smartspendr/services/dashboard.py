import datetime as dt
from collections.abc import Iterable

from pydantic import BaseModel, Field

from smartspendr.domain.aggregation import (
    daily_trend,
    group_by_category,
    recent_daily_average,
    sum_amounts,
    sum_cents,
)
from smartspendr.domain.categories import Category
from smartspendr.domain.formatting import format_currency, relative_date_label
from smartspendr.domain.windows import DateWindow, as_date
from smartspendr.models import CategoryTotal, ExpenseRecord, TrendPoint
from smartspendr.services.reports import build_window_report

RECENT_LIMIT = 5
AVERAGE_DAYS = 30


class DashboardSummary(BaseModel):
    total_today: float = 0.0
    total_this_week: float = 0.0
    total_this_month: float = 0.0
    daily_average: float = 0.0
    category_breakdown: list[CategoryTotal] = Field(default_factory=list)
    last_7_days: list[TrendPoint] = Field(default_factory=list)
    recent_expenses: list[ExpenseRecord] = Field(default_factory=list)
    recent_labels: list[str] = Field(default_factory=list)


def week_start(day: dt.date) -> dt.date:
    # Calendar weeks start on Sunday.
    return day - dt.timedelta(days=(day.weekday() + 1) % 7)


def build_dashboard(records: Iterable[ExpenseRecord], now: dt.date | dt.datetime) -> DashboardSummary:
    items = list(records)
    today = as_date(now)
    first_of_week = week_start(today)

    this_month = [r for r in items if (r.date.year, r.date.month) == (today.year, today.month)]
    this_week = [r for r in items if first_of_week <= r.date < first_of_week + dt.timedelta(days=7)]
    today_items = [r for r in items if r.date == today]

    month_start = today.replace(day=1)
    next_month = (month_start + dt.timedelta(days=32)).replace(day=1)
    month_report = build_window_report(this_month, DateWindow(start=month_start, end=next_month))

    return DashboardSummary(
        total_today=sum_amounts(today_items),
        total_this_week=sum_amounts(this_week),
        total_this_month=month_report.total_amount,
        daily_average=recent_daily_average(items, today, AVERAGE_DAYS),
        category_breakdown=month_report.category_totals,
        last_7_days=daily_trend(items, today, 7),
        recent_expenses=items[:RECENT_LIMIT],
        recent_labels=[relative_date_label(r.date, today) for r in items[:RECENT_LIMIT]],
    )


def spending_insights(records: Iterable[ExpenseRecord], currency: str = "USD") -> str:
    """
    Short plain-text summary of spending habits.

    `records` are expected newest first, as the store returns them.
    """
    items = list(records)
    if not items:
        return "Start tracking expenses to get personalized insights!"

    insights: list[str] = []
    groups = group_by_category(items)
    total_cents = sum_cents(items)

    top_category: Category | None = None
    top_cents = -1
    for category, group in groups.items():
        cents = sum_cents(group)
        if cents > top_cents:
            top_category, top_cents = category, cents

    if top_category is not None and total_cents > 0:
        share = round(top_cents / total_cents * 100)
        insights.append(f"Your highest spending category is {top_category.value} ({share}% of total)")

    daily = sum_amounts(items) / AVERAGE_DAYS
    insights.append(f"Your average daily spending is {format_currency(daily, currency)}")

    weekly = sum_amounts(items[:7]) / 7
    if weekly > daily and daily > 0:
        increase = round((weekly - daily) / daily * 100)
        insights.append(f"You've been spending {increase}% more than usual this week")
    else:
        insights.append("Your spending has been stable this week. Great job staying on track!")

    return ". ".join(insights)
