import csv
import datetime as dt
import io
from collections.abc import Iterable
from decimal import Decimal

from smartspendr.domain.categories import get_category_info
from smartspendr.models import ExpenseRecord

CSV_HEADER = ("Date", "Title", "Category", "Amount", "Notes")


def format_amount(amount: float) -> str:
    # 20.0 -> "20", 12.50 -> "12.5"
    normalized = Decimal(str(amount)).normalize()
    return format(normalized, "f")


def expense_row(record: ExpenseRecord) -> tuple[str, str, str, str, str]:
    return (
        record.date.strftime("%Y-%m-%d"),
        record.title,
        get_category_info(record.category).label,
        format_amount(record.amount),
        record.notes or "",
    )


def export_csv(records: Iterable[ExpenseRecord]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for record in records:
        writer.writerow(expense_row(record))
    return buffer.getvalue().rstrip("\n")


def export_filename(today: dt.date | None = None) -> str:
    day = today or dt.date.today()
    return f"expenses-{day.strftime('%Y-%m-%d')}.csv"
