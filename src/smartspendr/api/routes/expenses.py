from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from smartspendr.api.dependencies import (
    get_app_state,
    get_controller_optional,
    get_current_user,
    get_expense_service,
    get_store,
    get_sync_queue_optional,
)
from smartspendr.api.schemas import ExpenseCreated, ExpensePayload
from smartspendr.cache.controller import ResourceCacheController
from smartspendr.cache.sync import SyncQueue, SyncResult
from smartspendr.core import settings
from smartspendr.integration.store import ExpenseStore
from smartspendr.logger import get_logger
from smartspendr.models import ExpenseRecord, User
from smartspendr.state import AppState, ExpenseService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/expenses")


@router.get("", response_model=list[ExpenseRecord])
async def list_expenses(
    user: Annotated[User, Depends(get_current_user)],
    app_state: Annotated[AppState, Depends(get_app_state)],
    service: Annotated[ExpenseService, Depends(get_expense_service)],
) -> list[ExpenseRecord]:
    if app_state.snapshot.offline:
        return list(app_state.snapshot.expenses)
    return list(await service.refresh())


@router.post("", response_model=ExpenseCreated, status_code=201)
async def add_expense(
    payload: ExpensePayload,
    user: Annotated[User, Depends(get_current_user)],
    app_state: Annotated[AppState, Depends(get_app_state)],
    service: Annotated[ExpenseService, Depends(get_expense_service)],
) -> ExpenseCreated:
    expense_id = await service.add_expense(payload.model_dump())
    if expense_id is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    record = next((r for r in app_state.snapshot.expenses if r.id == expense_id), None)
    return ExpenseCreated(id=expense_id, expense=record)


@router.put("/{expense_id}")
async def update_expense(
    expense_id: str,
    payload: ExpensePayload,
    user: Annotated[User, Depends(get_current_user)],
    service: Annotated[ExpenseService, Depends(get_expense_service)],
) -> dict[str, str]:
    await service.update_expense(expense_id, payload.model_dump(exclude_unset=True))
    return {"status": "updated", "id": expense_id}


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: str,
    user: Annotated[User, Depends(get_current_user)],
    service: Annotated[ExpenseService, Depends(get_expense_service)],
) -> dict[str, str]:
    await service.remove_expense(expense_id)
    return {"status": "deleted", "id": expense_id}


@router.post("/sync", response_model=SyncResult)
async def sync_expenses(
    user: Annotated[User, Depends(get_current_user)],
    store: Annotated[ExpenseStore, Depends(get_store)],
    service: Annotated[ExpenseService, Depends(get_expense_service)],
    controller: Annotated[ResourceCacheController | None, Depends(get_controller_optional)],
    sync_queue: Annotated[SyncQueue | None, Depends(get_sync_queue_optional)],
) -> SyncResult:
    if controller is not None:
        result = await controller.sync(settings.SYNC_TAG, store) or SyncResult()
    elif sync_queue is not None:
        result = await sync_queue.flush(store)
    else:
        result = SyncResult()

    if result.flushed or result.dropped:
        await service.refresh()
    return result
