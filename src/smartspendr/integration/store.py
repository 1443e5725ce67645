import asyncio
import json
import os
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import ValidationError as ModelValidationError
from pydantic_core import to_jsonable_python

from smartspendr.core import settings
from smartspendr.errors import ExpenseNotFound, StoreError
from smartspendr.logger import get_logger
from smartspendr.models import ExpenseDraft, ExpenseRecord

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _sort_newest_first(records: list[ExpenseRecord]) -> list[ExpenseRecord]:
    return sorted(
        records,
        key=lambda record: (record.date, record.created_at or _EPOCH),
        reverse=True,
    )


class ExpenseStore(ABC):
    """
    Remote document store holding each user's expenses.

    Writes take an optional `client_id`. A store that has already applied a
    write with the same client id treats the retry as confirmed.
    """

    @abstractmethod
    async def list_expenses(self, user_id: str, limit: int | None = None) -> list[ExpenseRecord]:
        """Newest first (by expense date), at most `limit` records."""

    @abstractmethod
    async def add_expense(self, user_id: str, draft: ExpenseDraft, client_id: str | None = None) -> str:
        """Persist a new expense and return its id."""

    @abstractmethod
    async def update_expense(
        self,
        user_id: str,
        expense_id: str,
        partial: dict[str, Any],
        client_id: str | None = None,
    ) -> None:
        pass

    @abstractmethod
    async def delete_expense(self, user_id: str, expense_id: str, client_id: str | None = None) -> None:
        pass


class MemoryExpenseStore(ExpenseStore):
    def __init__(self) -> None:
        self._expenses: dict[str, dict[str, ExpenseRecord]] = {}
        # client_id -> expense id of every write already applied
        self._client_ids: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def list_expenses(self, user_id: str, limit: int | None = None) -> list[ExpenseRecord]:
        records = _sort_newest_first(list(self._expenses.get(user_id, {}).values()))
        limit = settings.EXPENSE_LIMIT if limit is None else limit
        return records[:limit]

    def _seen(self, client_id: str | None) -> str | None:
        if client_id and client_id in self._client_ids:
            logger.info("[STORE] Replayed write for client id %s ignored.", client_id)
            return self._client_ids[client_id]
        return None

    def _commit(
        self,
        user_id: str,
        bucket: dict[str, ExpenseRecord],
        client_id: str | None,
        expense_id: str,
    ) -> None:
        # Staged copies only replace the live state once they are persisted.
        expenses = {**self._expenses, user_id: bucket}
        client_ids = {**self._client_ids, client_id: expense_id} if client_id else self._client_ids
        self._persist(expenses, client_ids)
        self._expenses = expenses
        self._client_ids = client_ids

    async def add_expense(self, user_id: str, draft: ExpenseDraft, client_id: str | None = None) -> str:
        async with self._lock:
            seen = self._seen(client_id)
            if seen is not None:
                return seen

            expense_id = uuid.uuid4().hex
            timestamp = _now()
            record = ExpenseRecord(
                id=expense_id,
                created_at=timestamp,
                updated_at=timestamp,
                **draft.model_dump(),
            )
            bucket = {**self._expenses.get(user_id, {}), expense_id: record}
            self._commit(user_id, bucket, client_id, expense_id)
            return expense_id

    async def update_expense(
        self,
        user_id: str,
        expense_id: str,
        partial: dict[str, Any],
        client_id: str | None = None,
    ) -> None:
        async with self._lock:
            if self._seen(client_id) is not None:
                return
            bucket = dict(self._expenses.get(user_id, {}))
            current = bucket.get(expense_id)
            if current is None:
                raise ExpenseNotFound(expense_id)
            payload = current.model_dump()
            payload.update(partial)
            payload["updated_at"] = _now()
            try:
                bucket[expense_id] = ExpenseRecord.model_validate(payload)
            except ModelValidationError as exc:
                raise StoreError(f"Rejected update for expense {expense_id}", cause=exc) from exc
            self._commit(user_id, bucket, client_id, expense_id)

    async def delete_expense(self, user_id: str, expense_id: str, client_id: str | None = None) -> None:
        async with self._lock:
            if self._seen(client_id) is not None:
                return
            bucket = dict(self._expenses.get(user_id, {}))
            if bucket.pop(expense_id, None) is None:
                raise ExpenseNotFound(expense_id)
            self._commit(user_id, bucket, client_id, expense_id)

    def _persist(self, expenses: dict[str, dict[str, ExpenseRecord]], client_ids: dict[str, str]) -> None:
        pass


class JsonExpenseStore(MemoryExpenseStore):
    """Memory store mirrored to a JSON file, for running without a remote backend."""

    def __init__(self, data_path: str = "expenses.json") -> None:
        super().__init__()
        self.data_path = data_path
        self.load()

    def load(self) -> None:
        if not os.path.exists(self.data_path):
            return
        try:
            with open(self.data_path, encoding="utf-8") as handle:
                data = json.load(handle)
        except json.JSONDecodeError:
            logger.warning("[STORE] Could not parse %s, starting empty.", self.data_path)
            return

        for user_id, records in data.get("expenses", {}).items():
            self._expenses[user_id] = {
                record["id"]: ExpenseRecord.model_validate(record) for record in records
            }
        self._client_ids = dict(data.get("client_ids", {}))

    def _persist(self, expenses: dict[str, dict[str, ExpenseRecord]], client_ids: dict[str, str]) -> None:
        payload = {
            "expenses": {
                user_id: [record.model_dump(mode="json") for record in bucket.values()]
                for user_id, bucket in expenses.items()
            },
            "client_ids": client_ids,
        }
        tmp_path = f"{self.data_path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_path, self.data_path)
        except OSError as exc:
            raise StoreError(f"Could not write {self.data_path}", cause=exc) from exc


class RestExpenseStore(ExpenseStore):
    """
    Expense store backed by a JSON document API.

    Layout: `{base_url}/users/{user_id}/expenses[/{expense_id}]`.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.base_url = (base_url or os.getenv("STORE_URL") or "").rstrip("/") or None
        self.token = token or os.getenv("STORE_TOKEN")
        self.timeout = timeout
        self.headers = self._build_headers()
        self._client = client
        self._client_lock = asyncio.Lock()

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def refresh(self, base_url: str | None = None, token: str | None = None) -> None:
        base_value = base_url if base_url is not None else os.getenv("STORE_URL")
        token_value = token if token is not None else os.getenv("STORE_TOKEN")
        self.base_url = (base_value or "").rstrip("/") or None
        self.token = token_value or None
        self.headers = self._build_headers()

    async def aclose(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _get_client(self) -> httpx.AsyncClient:
        client = self._client
        if client is not None and not client.is_closed:
            return client

        async with self._client_lock:
            client = self._client
            if client is None or client.is_closed:
                client = httpx.AsyncClient(timeout=self.timeout)
                self._client = client
            return client

    def _collection_url(self, user_id: str) -> str:
        if not self.base_url:
            raise StoreError("Document store URL is not configured")
        return f"{self.base_url}/users/{user_id}/expenses"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        headers = dict(self.headers)
        headers.update(kwargs.pop("headers", {}))
        try:
            response = await client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("[STORE] %s %s failed: %s", method, url, exc)
            raise StoreError(f"{method} {url} failed", cause=exc) from exc
        return response

    async def list_expenses(self, user_id: str, limit: int | None = None) -> list[ExpenseRecord]:
        params = {
            "orderBy": "date",
            "order": "desc",
            "limit": settings.EXPENSE_LIMIT if limit is None else limit,
        }
        response = await self._request("GET", self._collection_url(user_id), params=params)
        try:
            data = response.json()
            return [ExpenseRecord.model_validate(item) for item in data.get("data", [])]
        except (ValueError, ModelValidationError) as exc:
            logger.error("[STORE] Unexpected expense payload for user %s: %s", user_id, exc)
            raise StoreError("Malformed expense list", cause=exc) from exc

    async def add_expense(self, user_id: str, draft: ExpenseDraft, client_id: str | None = None) -> str:
        headers = {"Idempotency-Key": client_id} if client_id else {}
        response = await self._request(
            "POST",
            self._collection_url(user_id),
            json=draft.model_dump(mode="json"),
            headers=headers,
        )
        try:
            return str(response.json()["id"])
        except (ValueError, KeyError, TypeError) as exc:
            raise StoreError("Store did not return an expense id", cause=exc) from exc

    async def _write_item(
        self,
        method: str,
        user_id: str,
        expense_id: str,
        client_id: str | None,
        **kwargs: Any,
    ) -> None:
        headers = {"Idempotency-Key": client_id} if client_id else {}
        try:
            await self._request(
                method,
                f"{self._collection_url(user_id)}/{expense_id}",
                headers=headers,
                **kwargs,
            )
        except StoreError as exc:
            cause = exc.cause
            if isinstance(cause, httpx.HTTPStatusError) and cause.response.status_code == 404:
                raise ExpenseNotFound(expense_id, cause=cause) from cause
            raise

    async def update_expense(
        self,
        user_id: str,
        expense_id: str,
        partial: dict[str, Any],
        client_id: str | None = None,
    ) -> None:
        await self._write_item("PATCH", user_id, expense_id, client_id, json=to_jsonable_python(partial))

    async def delete_expense(self, user_id: str, expense_id: str, client_id: str | None = None) -> None:
        await self._write_item("DELETE", user_id, expense_id, client_id)
