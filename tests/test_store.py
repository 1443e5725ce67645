import json

import httpx
import pytest

from smartspendr.domain.categories import Category
from smartspendr.errors import ExpenseNotFound, StoreError
from smartspendr.integration.store import JsonExpenseStore, MemoryExpenseStore, RestExpenseStore
from smartspendr.models import ExpenseDraft


def _draft(title: str = "Groceries", day: str = "2024-02-01", amount: float = 25.0) -> ExpenseDraft:
    return ExpenseDraft(title=title, amount=amount, category="food", date=day)


@pytest.mark.anyio
async def test_memory_store_lists_newest_first_per_user() -> None:
    store = MemoryExpenseStore()
    await store.add_expense("u1", _draft("Older", "2024-01-01"))
    await store.add_expense("u1", _draft("Newer", "2024-02-01"))
    await store.add_expense("u2", _draft("Other user"))

    records = await store.list_expenses("u1")

    assert [r.title for r in records] == ["Newer", "Older"]
    assert await store.list_expenses("u1", limit=1) == records[:1]
    assert await store.list_expenses("nobody") == []


@pytest.mark.anyio
async def test_memory_store_update_and_delete() -> None:
    store = MemoryExpenseStore()
    expense_id = await store.add_expense("u1", _draft())
    created = (await store.list_expenses("u1"))[0]

    await store.update_expense("u1", expense_id, {"amount": 30.0, "category": "bills"})
    updated = (await store.list_expenses("u1"))[0]

    assert updated.amount == 30.0
    assert updated.category == Category.BILLS
    assert updated.created_at == created.created_at
    assert updated.updated_at >= created.updated_at

    await store.delete_expense("u1", expense_id)
    assert await store.list_expenses("u1") == []


@pytest.mark.anyio
async def test_memory_store_missing_expense_raises() -> None:
    store = MemoryExpenseStore()

    with pytest.raises(StoreError):
        await store.update_expense("u1", "missing", {"amount": 1})
    with pytest.raises(StoreError):
        await store.delete_expense("u1", "missing")


@pytest.mark.anyio
async def test_memory_store_rejects_invalid_update() -> None:
    store = MemoryExpenseStore()
    expense_id = await store.add_expense("u1", _draft())

    with pytest.raises(StoreError):
        await store.update_expense("u1", expense_id, {"amount": -5})

    assert (await store.list_expenses("u1"))[0].amount == 25.0


@pytest.mark.anyio
async def test_json_store_persists(tmp_path) -> None:
    path = str(tmp_path / "expenses.json")
    store = JsonExpenseStore(path)
    expense_id = await store.add_expense("u1", _draft(), client_id="c-1")

    reloaded = JsonExpenseStore(path)

    records = await reloaded.list_expenses("u1")
    assert [r.id for r in records] == [expense_id]
    assert await reloaded.add_expense("u1", _draft(), client_id="c-1") == expense_id


@pytest.mark.anyio
async def test_json_store_ignores_unreadable_file(tmp_path) -> None:
    path = tmp_path / "expenses.json"
    path.write_text("nope", encoding="utf-8")

    store = JsonExpenseStore(str(path))

    assert await store.list_expenses("u1") == []


def _rest_store(handler) -> RestExpenseStore:
    return RestExpenseStore(
        base_url="https://store.test/v1/",
        token="secret",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.anyio
async def test_rest_store_list_and_add() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "GET":
            return httpx.Response(200, json={"data": [{
                "id": "e1",
                "title": "Taxi",
                "amount": 12,
                "category": "transport",
                "date": "2024-02-01T09:00:00Z",
            }]})
        return httpx.Response(201, json={"id": "e2"})

    store = _rest_store(handler)

    records = await store.list_expenses("u1", limit=5)
    new_id = await store.add_expense("u1", _draft(), client_id="c-9")

    assert records[0].category == Category.TRANSPORT
    assert str(records[0].date) == "2024-02-01"
    assert new_id == "e2"
    assert seen[0].url.path == "/v1/users/u1/expenses"
    assert seen[0].url.params["limit"] == "5"
    assert seen[0].headers["Authorization"] == "Bearer secret"
    assert seen[1].headers["Idempotency-Key"] == "c-9"
    assert json.loads(seen[1].content)["date"] == "2024-02-01"
    await store.aclose()


@pytest.mark.anyio
async def test_rest_store_update_sends_patch() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    store = _rest_store(handler)
    await store.update_expense("u1", "e1", {"category": Category.BILLS})
    await store.delete_expense("u1", "e1")

    assert seen[0].method == "PATCH"
    assert json.loads(seen[0].content) == {"category": "bills"}
    assert seen[1].method == "DELETE"
    assert seen[1].url.path == "/v1/users/u1/expenses/e1"
    await store.aclose()


@pytest.mark.anyio
async def test_rest_store_wraps_http_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    store = _rest_store(handler)

    with pytest.raises(StoreError) as excinfo:
        await store.delete_expense("u1", "e1")

    assert isinstance(excinfo.value.cause, httpx.HTTPStatusError)
    await store.aclose()


@pytest.mark.anyio
async def test_rest_store_wraps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    store = _rest_store(handler)

    with pytest.raises(StoreError):
        await store.list_expenses("u1")
    await store.aclose()


@pytest.mark.anyio
async def test_rest_store_without_url() -> None:
    store = RestExpenseStore(base_url="", client=httpx.AsyncClient())
    store.base_url = None

    with pytest.raises(StoreError):
        await store.list_expenses("u1")
    await store.aclose()


@pytest.mark.anyio
async def test_memory_store_missing_expense_is_not_found() -> None:
    store = MemoryExpenseStore()

    with pytest.raises(ExpenseNotFound) as excinfo:
        await store.delete_expense("u1", "missing")

    assert excinfo.value.expense_id == "missing"


@pytest.mark.anyio
async def test_memory_store_ignores_replayed_writes() -> None:
    store = MemoryExpenseStore()
    expense_id = await store.add_expense("u1", _draft())
    await store.update_expense("u1", expense_id, {"amount": 30.0}, client_id="u-1")
    await store.delete_expense("u1", expense_id, client_id="d-1")

    await store.update_expense("u1", expense_id, {"amount": 30.0}, client_id="u-1")
    await store.delete_expense("u1", expense_id, client_id="d-1")

    assert await store.list_expenses("u1") == []


@pytest.mark.anyio
async def test_json_store_failed_write_leaves_no_trace(tmp_path) -> None:
    path = tmp_path / "expenses.json"
    store = JsonExpenseStore(str(path))
    expense_id = await store.add_expense("u1", _draft())
    store.data_path = str(tmp_path / "missing" / "expenses.json")

    with pytest.raises(StoreError):
        await store.add_expense("u1", _draft("Lost"), client_id="c-1")
    with pytest.raises(StoreError):
        await store.update_expense("u1", expense_id, {"amount": 99.0})
    with pytest.raises(StoreError):
        await store.delete_expense("u1", expense_id)

    records = await store.list_expenses("u1")
    assert [(r.title, r.amount) for r in records] == [("Groceries", 25.0)]

    store.data_path = str(path)
    await store.add_expense("u1", _draft("Lost"), client_id="c-1")
    assert len(await store.list_expenses("u1")) == 2


@pytest.mark.anyio
async def test_rest_store_writes_carry_client_id() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    store = _rest_store(handler)
    await store.update_expense("u1", "e1", {"amount": 3}, client_id="u-1")
    await store.delete_expense("u1", "e1", client_id="d-1")

    assert [r.headers["Idempotency-Key"] for r in seen] == ["u-1", "d-1"]
    await store.aclose()


@pytest.mark.anyio
async def test_rest_store_maps_404_to_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "missing"})

    store = _rest_store(handler)

    with pytest.raises(ExpenseNotFound):
        await store.delete_expense("u1", "e1")
    await store.aclose()
