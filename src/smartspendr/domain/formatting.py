import datetime as dt

from smartspendr.domain.categories import CURRENCY_SYMBOLS
from smartspendr.domain.windows import as_date


def format_currency(amount: float, currency: str = "USD") -> str:
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), "$")
    return f"{symbol}{amount:.2f}"


def relative_date_label(value: dt.date | dt.datetime, today: dt.date | dt.datetime | None = None) -> str:
    day = as_date(value)
    reference = as_date(today) if today is not None else dt.date.today()
    if day == reference:
        return "Today"
    if day == reference - dt.timedelta(days=1):
        return "Yesterday"
    if reference - dt.timedelta(days=7) < day < reference:
        return day.strftime("%A")
    return day.strftime("%b %d")


def format_duration(seconds: float) -> str:
    if seconds <= 0:
        return "0 ms"
    if seconds < 1:
        return f"{seconds * 1000:.1f} ms"
    if seconds < 60:
        return f"{seconds:.2f} s"
    return f"{seconds / 60:.2f} min"
