import datetime as dt
from collections.abc import Mapping
from typing import Any

from smartspendr.domain.categories import is_known_category, parse_category
from smartspendr.errors import ValidationError
from smartspendr.models import MAX_AMOUNT, MAX_TITLE_LENGTH, ExpenseDraft, coerce_date


def _parse_amount(raw: Any) -> float | None:
    if raw is None or raw == "" or isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _parse_date(raw: Any) -> dt.date | None:
    if not raw:
        return None
    if isinstance(raw, dt.date):
        return coerce_date(raw)
    if isinstance(raw, str):
        try:
            value = coerce_date(raw.strip())
            if isinstance(value, str):
                value = dt.date.fromisoformat(value)
            return value
        except ValueError:
            return None
    return None


def validate_expense_form(data: Mapping[str, Any]) -> dict[str, str]:
    errors: dict[str, str] = {}

    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        errors["title"] = "Title is required"
    elif len(title) > MAX_TITLE_LENGTH:
        errors["title"] = f"Title must be {MAX_TITLE_LENGTH} characters or less"

    amount = _parse_amount(data.get("amount"))
    if amount is None or amount <= 0:
        errors["amount"] = "Amount must be greater than 0"
    elif amount > MAX_AMOUNT:
        errors["amount"] = "Amount is too large"

    category = data.get("category")
    if not category:
        errors["category"] = "Category is required"
    elif not is_known_category(category):
        errors["category"] = "Unknown category"

    raw_date = data.get("date")
    if not raw_date:
        errors["date"] = "Date is required"
    elif _parse_date(raw_date) is None:
        errors["date"] = "Date must be in YYYY-MM-DD format"

    return errors


def ensure_valid_expense(data: Mapping[str, Any]) -> ExpenseDraft:
    errors = validate_expense_form(data)
    if errors:
        raise ValidationError(errors)

    notes = data.get("notes")
    return ExpenseDraft(
        title=str(data["title"]).strip(),
        amount=_parse_amount(data["amount"]),
        category=data["category"],
        date=_parse_date(data["date"]),
        notes=str(notes).strip() or None if notes else None,
    )


def validate_expense_update(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Validate a partial update: only the fields present are checked.

    Returns the cleaned partial payload.
    """
    allowed = {"title", "amount", "category", "date", "notes"}
    partial = {key: value for key, value in data.items() if key in allowed}
    if not partial:
        raise ValidationError({"__all__": "Nothing to update"})

    probe: dict[str, Any] = {
        "title": "placeholder",
        "amount": 1,
        "category": "other",
        "date": "2000-01-01",
    }
    probe.update(partial)
    errors = validate_expense_form(probe)
    if errors:
        raise ValidationError(errors)

    cleaned: dict[str, Any] = {}
    if "title" in partial:
        cleaned["title"] = str(partial["title"]).strip()
    if "amount" in partial:
        cleaned["amount"] = _parse_amount(partial["amount"])
    if "category" in partial:
        cleaned["category"] = parse_category(partial["category"])
    if "date" in partial:
        cleaned["date"] = _parse_date(partial["date"])
    if "notes" in partial:
        notes = partial["notes"]
        cleaned["notes"] = str(notes).strip() or None if notes else None
    return cleaned
