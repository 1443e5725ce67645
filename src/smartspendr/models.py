import datetime as dt
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from smartspendr.domain.categories import Category, parse_category

MAX_TITLE_LENGTH = 50
MAX_AMOUNT = 999999


def coerce_date(value: Any) -> Any:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10 and value[10] in "T ":
        return dt.datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    return value


class ExpenseDraft(BaseModel):
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    amount: float = Field(gt=0, le=MAX_AMOUNT)
    category: Category
    date: dt.date
    notes: str | None = None

    @field_validator("category", mode="before")
    @classmethod
    def _fallback_category(cls, value: Any) -> Category:
        return parse_category(value)

    @field_validator("date", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        return coerce_date(value)


class ExpenseRecord(ExpenseDraft):
    id: str
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class CategoryTotal(BaseModel):
    category: Category
    total: float
    count: int
    percentage: float


class Report(BaseModel):
    total_amount: float = 0.0
    total_expenses: int = 0
    category_totals: list[CategoryTotal] = Field(default_factory=list)
    daily_average: float = 0.0


class TrendPoint(BaseModel):
    label: str
    total: float


class User(BaseModel):
    id: str
    display_name: str | None = None
    email: str | None = None


class AppDescriptor(BaseModel):
    name: str
    short_name: str
    start_url: str
    display: Literal["fullscreen", "standalone", "minimal-ui", "browser"]
    description: str | None = None
    theme_color: str | None = None
    background_color: str | None = None


class CachedResponse(BaseModel):
    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""
