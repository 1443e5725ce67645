from typing import Any

from pydantic import BaseModel

from smartspendr.models import ExpenseRecord, User
from smartspendr.state import Theme


class ExpensePayload(BaseModel):
    # Checked by the expense form validator, not pydantic.
    title: Any = None
    amount: Any = None
    category: Any = None
    date: Any = None
    notes: Any = None


class ExpenseCreated(BaseModel):
    id: str
    expense: ExpenseRecord | None = None


class AdviceRequest(BaseModel):
    query: str


class AdviceResponse(BaseModel):
    response: str
    source: str


class ConnectivityRequest(BaseModel):
    offline: bool


class ThemeResponse(BaseModel):
    theme: Theme


class SessionResponse(BaseModel):
    user: User | None
    offline: bool
    theme: Theme
    currency: str
    pending_sync: int = 0
