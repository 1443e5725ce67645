import json
from unittest.mock import AsyncMock

import pytest

from smartspendr.cache.sync import SyncQueue, pending_id
from smartspendr.errors import StoreError
from smartspendr.integration.store import MemoryExpenseStore
from smartspendr.models import ExpenseDraft


def _draft(title: str = "Coffee", amount: float = 4.5) -> ExpenseDraft:
    return ExpenseDraft(title=title, amount=amount, category="food", date="2024-02-01")


@pytest.mark.anyio
async def test_flush_applies_mutations_in_order() -> None:
    queue = SyncQueue()
    store = MemoryExpenseStore()
    expense_id = await store.add_expense("u1", _draft("Old"))
    queue.enqueue_add("u1", _draft("New"))
    queue.enqueue_update("u1", expense_id, {"amount": 10.0})
    queue.enqueue_delete("u1", expense_id)

    result = await queue.flush(store)

    assert result.complete
    assert len(result.flushed) == 3
    assert len(queue) == 0
    assert [r.title for r in await store.list_expenses("u1")] == ["New"]


@pytest.mark.anyio
async def test_failed_mutation_stays_queued() -> None:
    queue = SyncQueue()
    first = queue.enqueue_add("u1", _draft("First"))
    second = queue.enqueue_add("u1", _draft("Second"))
    store = AsyncMock()
    store.add_expense.side_effect = ["id-1", StoreError("store down")]

    result = await queue.flush(store)

    assert result.flushed == [first.client_id]
    assert result.remaining == 1
    assert result.error == "store down"
    assert not result.complete
    assert [m.client_id for m in queue.pending()] == [second.client_id]


@pytest.mark.anyio
async def test_replayed_add_is_not_duplicated() -> None:
    queue = SyncQueue()
    mutation = queue.enqueue_add("u1", _draft())
    store = MemoryExpenseStore()

    # Store confirmed the write but the process died before dequeueing.
    await store.add_expense("u1", _draft(), client_id=mutation.client_id)
    await queue.flush(store)

    assert len(await store.list_expenses("u1")) == 1


@pytest.mark.anyio
async def test_add_carries_client_id_to_store() -> None:
    queue = SyncQueue()
    mutation = queue.enqueue_add("u1", _draft())
    store = AsyncMock()

    await queue.flush(store)

    store.add_expense.assert_awaited_once()
    assert store.add_expense.await_args.kwargs["client_id"] == mutation.client_id


def test_queue_survives_restart(tmp_path) -> None:
    path = str(tmp_path / "queue.json")
    queue = SyncQueue(path)
    mutation = queue.enqueue_delete("u1", "exp-1")

    restored = SyncQueue(path)

    assert [m.client_id for m in restored.pending()] == [mutation.client_id]
    assert restored.pending()[0].kind == "delete"


def test_corrupt_queue_file_is_set_aside(tmp_path) -> None:
    path = tmp_path / "queue.json"
    path.write_text("{not json", encoding="utf-8")

    queue = SyncQueue(str(path))

    assert len(queue) == 0
    assert (tmp_path / "queue.json.corrupt").exists()


def test_update_payload_is_json_ready(tmp_path) -> None:
    path = tmp_path / "queue.json"
    queue = SyncQueue(str(path))
    queue.enqueue_update("u1", "exp-1", {"date": _draft().date, "category": _draft().category})

    stored = json.loads(path.read_text(encoding="utf-8"))

    assert stored[0]["payload"] == {"date": "2024-02-01", "category": "food"}


@pytest.mark.anyio
async def test_deleting_unsynced_add_cancels_it() -> None:
    queue = SyncQueue()
    store = MemoryExpenseStore()
    lunch = queue.enqueue_add("u1", _draft("Lunch"))

    assert queue.enqueue_delete("u1", pending_id(lunch.client_id)) is None
    queue.enqueue_add("u1", _draft("Dinner"))
    result = await queue.flush(store)

    assert result.complete
    assert [r.title for r in await store.list_expenses("u1")] == ["Dinner"]


@pytest.mark.anyio
async def test_update_of_unsynced_add_is_folded_in() -> None:
    queue = SyncQueue()
    store = MemoryExpenseStore()
    lunch = queue.enqueue_add("u1", _draft("Lunch", 10))

    queue.enqueue_update("u1", pending_id(lunch.client_id), {"amount": 12.0})
    await queue.flush(store)

    assert len(queue) == 0
    assert [(r.title, r.amount) for r in await store.list_expenses("u1")] == [("Lunch", 12.0)]


@pytest.mark.anyio
async def test_pending_id_resolves_to_store_id_after_flush() -> None:
    queue = SyncQueue()
    store = MemoryExpenseStore()
    lunch = queue.enqueue_add("u1", _draft("Lunch"))
    await queue.flush(store)

    queue.enqueue_delete("u1", pending_id(lunch.client_id))
    result = await queue.flush(store)

    assert result.complete
    assert await store.list_expenses("u1") == []


@pytest.mark.anyio
async def test_replayed_delete_counts_as_delivered() -> None:
    queue = SyncQueue()
    store = MemoryExpenseStore()
    expense_id = await store.add_expense("u1", _draft())
    mutation = queue.enqueue_delete("u1", expense_id)
    queue.enqueue_add("u1", _draft("After"))

    # Store applied the delete but the process died before dequeueing.
    await store.delete_expense("u1", expense_id)
    result = await queue.flush(store)

    assert result.complete
    assert result.flushed[0] == mutation.client_id
    assert [r.title for r in await store.list_expenses("u1")] == ["After"]


@pytest.mark.anyio
async def test_update_of_missing_expense_is_dropped() -> None:
    queue = SyncQueue()
    store = MemoryExpenseStore()
    stale = queue.enqueue_update("u1", "gone", {"amount": 3.0})
    queue.enqueue_add("u1", _draft("Next"))

    result = await queue.flush(store)

    assert result.dropped == [stale.client_id]
    assert len(result.flushed) == 1
    assert result.complete
    assert [r.title for r in await store.list_expenses("u1")] == ["Next"]


@pytest.mark.anyio
async def test_failed_head_is_retried_on_next_flush() -> None:
    queue = SyncQueue()
    queue.enqueue_add("u1", _draft("First"))
    queue.enqueue_add("u1", _draft("Second"))
    store = MemoryExpenseStore()
    outage = AsyncMock()
    outage.add_expense.side_effect = StoreError("store down")

    assert (await queue.flush(outage)).remaining == 2
    result = await queue.flush(store)

    assert result.complete
    assert sorted(r.title for r in await store.list_expenses("u1")) == ["First", "Second"]


@pytest.mark.anyio
async def test_updates_and_deletes_carry_client_id() -> None:
    queue = SyncQueue()
    update = queue.enqueue_update("u1", "e1", {"amount": 1.0})
    delete = queue.enqueue_delete("u1", "e1")
    store = AsyncMock()

    await queue.flush(store)

    assert store.update_expense.await_args.kwargs["client_id"] == update.client_id
    assert store.delete_expense.await_args.kwargs["client_id"] == delete.client_id


def test_unwritable_queue_raises_store_error(tmp_path) -> None:
    queue = SyncQueue(str(tmp_path / "missing" / "queue.json"))

    with pytest.raises(StoreError):
        queue.enqueue_add("u1", _draft())

    assert len(queue) == 0
