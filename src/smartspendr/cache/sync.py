import asyncio
import json
import os
import uuid
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic_core import to_jsonable_python

from smartspendr.domain.formatting import format_duration
from smartspendr.errors import ExpenseNotFound, StoreError
from smartspendr.integration.store import ExpenseStore
from smartspendr.logger import get_logger
from smartspendr.models import ExpenseDraft

logger = get_logger(__name__)

MutationKind = Literal["add", "update", "delete"]

PENDING_PREFIX = "pending-"


def new_client_id() -> str:
    return uuid.uuid4().hex


def pending_id(client_id: str) -> str:
    """Local id shown for an expense whose add has not reached the store yet."""
    return f"{PENDING_PREFIX}{client_id}"


class PendingMutation(BaseModel):
    client_id: str = Field(default_factory=new_client_id)
    kind: MutationKind
    user_id: str
    expense_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    queued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SyncResult(BaseModel):
    flushed: list[str] = Field(default_factory=list)
    # Updates whose expense no longer exists in the store.
    dropped: list[str] = Field(default_factory=list)
    remaining: int = 0
    error: str | None = None

    @property
    def complete(self) -> bool:
        return self.error is None and self.remaining == 0


class SyncQueue:
    """
    Durable FIFO of expense mutations made while offline.

    A mutation leaves the queue only after the store has confirmed it, so a
    crash mid-flush replays it on the next flush. Every mutation carries a
    client id the store can use to detect the replay.

    Mutations aimed at a `pending-<client id>` expense are resolved against
    the queue: an update is folded into the queued add, a delete cancels it.
    Once an add is confirmed, later mutations are pointed at the store's id.
    """

    def __init__(self, path: str | None = None) -> None:
        self.path = path
        self._items: list[PendingMutation] = []
        # pending id -> store id, for adds confirmed by an earlier flush
        self._resolved: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self.load()

    def __len__(self) -> int:
        return len(self._items)

    def pending(self) -> list[PendingMutation]:
        return list(self._items)

    def load(self) -> None:
        if not self.path or not os.path.exists(self.path):
            return
        try:
            with open(self.path, encoding="utf-8") as handle:
                data = json.load(handle)
        except json.JSONDecodeError:
            logger.error("[SYNC] Queue file %s is corrupt; keeping it aside.", self.path)
            os.replace(self.path, f"{self.path}.corrupt")
            return
        self._items = [PendingMutation.model_validate(item) for item in data]

    def save(self, items: list[PendingMutation] | None = None) -> None:
        if not self.path:
            return
        items = self._items if items is None else items
        tmp_path = f"{self.path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as handle:
                json.dump([item.model_dump(mode="json") for item in items], handle, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StoreError(f"Could not write sync queue {self.path}", cause=exc) from exc

    def _replace(self, items: list[PendingMutation]) -> None:
        self.save(items)
        self._items = items

    def _append(self, mutation: PendingMutation) -> PendingMutation:
        self._replace([*self._items, mutation])
        logger.info(
            "[SYNC] Queued %s for user %s (client id %s, %d pending).",
            mutation.kind,
            mutation.user_id,
            mutation.client_id,
            len(self._items),
        )
        return mutation

    def _queued_add(self, expense_id: str) -> PendingMutation | None:
        if not expense_id.startswith(PENDING_PREFIX):
            return None
        client_id = expense_id[len(PENDING_PREFIX):]
        return next(
            (item for item in self._items if item.kind == "add" and item.client_id == client_id),
            None,
        )

    def enqueue_add(self, user_id: str, draft: ExpenseDraft, client_id: str | None = None) -> PendingMutation:
        return self._append(PendingMutation(
            client_id=client_id or new_client_id(),
            kind="add",
            user_id=user_id,
            payload=draft.model_dump(mode="json"),
        ))

    def enqueue_update(self, user_id: str, expense_id: str, partial: dict[str, Any]) -> PendingMutation:
        queued_add = self._queued_add(expense_id)
        if queued_add is not None:
            merged = queued_add.model_copy(
                update={"payload": {**queued_add.payload, **to_jsonable_python(partial)}}
            )
            self._replace([merged if item is queued_add else item for item in self._items])
            logger.info("[SYNC] Folded update into queued add %s.", queued_add.client_id)
            return merged

        return self._append(PendingMutation(
            kind="update",
            user_id=user_id,
            expense_id=self._resolved.get(expense_id, expense_id),
            payload=to_jsonable_python(partial),
        ))

    def enqueue_delete(self, user_id: str, expense_id: str) -> PendingMutation | None:
        """Queue a delete; returns None when it only cancelled a queued add."""
        queued_add = self._queued_add(expense_id)
        if queued_add is not None:
            self._replace([
                item for item in self._items
                if item is not queued_add and item.expense_id != expense_id
            ])
            logger.info("[SYNC] Cancelled queued add %s.", queued_add.client_id)
            return None

        return self._append(PendingMutation(
            kind="delete",
            user_id=user_id,
            expense_id=self._resolved.get(expense_id, expense_id),
        ))

    async def _apply(self, store: ExpenseStore, mutation: PendingMutation) -> str | None:
        if mutation.kind == "add":
            draft = ExpenseDraft.model_validate(mutation.payload)
            return await store.add_expense(mutation.user_id, draft, client_id=mutation.client_id)
        if mutation.kind == "update":
            await store.update_expense(
                mutation.user_id,
                mutation.expense_id or "",
                mutation.payload,
                client_id=mutation.client_id,
            )
        else:
            await store.delete_expense(
                mutation.user_id,
                mutation.expense_id or "",
                client_id=mutation.client_id,
            )
        return None

    def _resolve(
        self,
        client_id: str,
        expense_id: str,
        items: list[PendingMutation],
    ) -> list[PendingMutation]:
        local_id = pending_id(client_id)
        self._resolved[local_id] = expense_id
        return [
            item.model_copy(update={"expense_id": expense_id}) if item.expense_id == local_id else item
            for item in items
        ]

    async def flush(self, store: ExpenseStore) -> SyncResult:
        async with self._lock:
            result = SyncResult()
            start = perf_counter()
            while self._items:
                mutation = self._items[0]
                dropped = False
                try:
                    expense_id = await self._apply(store, mutation)
                except ExpenseNotFound as exc:
                    expense_id = None
                    if mutation.kind == "delete":
                        # Already gone, e.g. a replay after a crash mid-flush.
                        logger.info("[SYNC] delete %s already applied: %s", mutation.client_id, exc)
                    else:
                        logger.warning("[SYNC] Dropping %s %s: %s", mutation.kind, mutation.client_id, exc)
                        dropped = True
                except StoreError as exc:
                    logger.warning(
                        "[SYNC] %s %s not confirmed, keeping %d queued: %s",
                        mutation.kind,
                        mutation.client_id,
                        len(self._items),
                        exc,
                    )
                    result.error = str(exc)
                    break

                remaining = self._items[1:]
                if expense_id is not None:
                    remaining = self._resolve(mutation.client_id, expense_id, remaining)
                try:
                    self._replace(remaining)
                except StoreError as exc:
                    logger.error("[SYNC] Could not record %s as delivered: %s", mutation.client_id, exc)
                    result.error = str(exc)
                    break

                if dropped:
                    result.dropped.append(mutation.client_id)
                else:
                    result.flushed.append(mutation.client_id)

            result.remaining = len(self._items)
            logger.info(
                "[SYNC] Flushed %d mutations in %s, %d remaining.",
                len(result.flushed),
                format_duration(perf_counter() - start),
                result.remaining,
            )
            return result
