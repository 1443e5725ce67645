from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Literal

from smartspendr.cache.sync import SyncQueue, new_client_id, pending_id
from smartspendr.domain.validation import ensure_valid_expense, validate_expense_update
from smartspendr.errors import StoreError
from smartspendr.integration.store import ExpenseStore
from smartspendr.logger import get_logger
from smartspendr.models import ExpenseRecord, User

logger = get_logger(__name__)

NotificationLevel = Literal["success", "error", "info"]
Theme = Literal["light", "dark"]


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str


@dataclass(frozen=True)
class Preferences:
    theme: Theme = "light"
    currency: str = "USD"
    # Stored only; nothing sends these.
    daily_reminder: bool = True
    budget_alerts: bool = True
    weekly_summary: bool = False


@dataclass(frozen=True)
class AppSnapshot:
    user: User | None = None
    expenses: tuple[ExpenseRecord, ...] = ()
    loading: bool = False
    offline: bool = False
    preferences: Preferences = field(default_factory=Preferences)
    notifications: tuple[Notification, ...] = ()


Listener = Callable[[AppSnapshot], None]


class AppState:
    """Holds the current immutable snapshot and tells subscribers when it changes."""

    def __init__(self, snapshot: AppSnapshot | None = None) -> None:
        self._snapshot = snapshot or AppSnapshot()
        self._listeners: list[Listener] = []

    @property
    def snapshot(self) -> AppSnapshot:
        return self._snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, **changes: Any) -> AppSnapshot:
        self._snapshot = replace(self._snapshot, **changes)
        for listener in list(self._listeners):
            listener(self._snapshot)
        return self._snapshot

    def notify(self, level: NotificationLevel, message: str) -> None:
        self.update(notifications=(*self._snapshot.notifications, Notification(level, message)))

    def clear_notifications(self) -> None:
        self.update(notifications=())

    def set_user(self, user: User | None) -> None:
        # A different account never sees the previous account's records.
        if user is None or (self._snapshot.user and self._snapshot.user.id != user.id):
            self.update(user=user, expenses=())
        else:
            self.update(user=user)

    def set_offline(self, offline: bool) -> None:
        self.update(offline=offline)

    def toggle_theme(self) -> Theme:
        prefs = self._snapshot.preferences
        theme: Theme = "dark" if prefs.theme == "light" else "light"
        self.update(preferences=replace(prefs, theme=theme))
        return theme

    def update_preferences(self, **changes: Any) -> Preferences:
        prefs = replace(self._snapshot.preferences, **changes)
        self.update(preferences=prefs)
        return prefs


class ExpenseService:
    def __init__(self, state: AppState, store: ExpenseStore, sync_queue: SyncQueue | None = None) -> None:
        self.state = state
        self.store = store
        self.sync_queue = sync_queue

    def _user_id(self) -> str | None:
        user = self.state.snapshot.user
        return user.id if user else None

    def _queue_offline(self) -> bool:
        return self.state.snapshot.offline and self.sync_queue is not None

    def _fail(self, message: str, exc: StoreError) -> None:
        logger.error("[EXPENSES] %s: %s", message, exc)
        self.state.notify("error", message)

    async def refresh(self) -> tuple[ExpenseRecord, ...]:
        user_id = self._user_id()
        if not user_id:
            return ()

        self.state.update(loading=True)
        try:
            records = await self.store.list_expenses(user_id)
        except StoreError as exc:
            self._fail("Failed to fetch expenses", exc)
            return self.state.snapshot.expenses
        finally:
            self.state.update(loading=False)

        self.state.update(expenses=tuple(records))
        return self.state.snapshot.expenses

    async def add_expense(self, data: Mapping[str, Any]) -> str | None:
        user_id = self._user_id()
        if not user_id:
            return None

        draft = ensure_valid_expense(data)

        if self._queue_offline():
            try:
                mutation = self.sync_queue.enqueue_add(user_id, draft)
            except StoreError as exc:
                self._fail("Failed to add expense", exc)
                raise
            expense_id = pending_id(mutation.client_id)
            self.state.notify("info", "Offline: expense saved and will sync when back online")
        else:
            self.state.update(loading=True)
            try:
                expense_id = await self.store.add_expense(user_id, draft, client_id=new_client_id())
            except StoreError as exc:
                self._fail("Failed to add expense", exc)
                raise
            finally:
                self.state.update(loading=False)
            self.state.notify("success", "Expense added successfully!")

        timestamp = datetime.now(timezone.utc)
        record = ExpenseRecord(
            id=expense_id,
            created_at=timestamp,
            updated_at=timestamp,
            **draft.model_dump(),
        )
        self.state.update(expenses=(record, *self.state.snapshot.expenses))
        return expense_id

    async def update_expense(self, expense_id: str, data: Mapping[str, Any]) -> None:
        user_id = self._user_id()
        if not user_id:
            return

        partial = validate_expense_update(data)

        try:
            if self._queue_offline():
                self.sync_queue.enqueue_update(user_id, expense_id, partial)
            else:
                await self.store.update_expense(user_id, expense_id, partial)
                self.state.notify("success", "Expense updated successfully!")
        except StoreError as exc:
            self._fail("Failed to update expense", exc)
            raise

        changes = {**partial, "updated_at": datetime.now(timezone.utc)}
        self.state.update(expenses=tuple(
            record.model_copy(update=changes) if record.id == expense_id else record
            for record in self.state.snapshot.expenses
        ))

    async def remove_expense(self, expense_id: str) -> None:
        user_id = self._user_id()
        if not user_id:
            return

        try:
            if self._queue_offline():
                self.sync_queue.enqueue_delete(user_id, expense_id)
            else:
                await self.store.delete_expense(user_id, expense_id)
                self.state.notify("success", "Expense deleted successfully!")
        except StoreError as exc:
            self._fail("Failed to delete expense", exc)
            raise

        self.state.update(expenses=tuple(
            record for record in self.state.snapshot.expenses if record.id != expense_id
        ))
