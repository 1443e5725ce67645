from typing import Annotated

from fastapi import APIRouter, Depends

from smartspendr.api.dependencies import (
    get_app_state,
    get_auth,
    get_expense_service,
    get_store,
    get_sync_queue_optional,
)
from smartspendr.api.schemas import ConnectivityRequest, SessionResponse, ThemeResponse
from smartspendr.cache.sync import SyncQueue
from smartspendr.integration.identity import AuthSession
from smartspendr.integration.store import ExpenseStore
from smartspendr.logger import get_logger
from smartspendr.state import AppState, ExpenseService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/session")


def _session(app_state: AppState, sync_queue: SyncQueue | None) -> SessionResponse:
    snapshot = app_state.snapshot
    return SessionResponse(
        user=snapshot.user,
        offline=snapshot.offline,
        theme=snapshot.preferences.theme,
        currency=snapshot.preferences.currency,
        pending_sync=len(sync_queue) if sync_queue is not None else 0,
    )


@router.get("", response_model=SessionResponse)
async def get_session(
    app_state: Annotated[AppState, Depends(get_app_state)],
    sync_queue: Annotated[SyncQueue | None, Depends(get_sync_queue_optional)],
) -> SessionResponse:
    return _session(app_state, sync_queue)


@router.post("/sign-in", response_model=SessionResponse)
async def sign_in(
    auth: Annotated[AuthSession, Depends(get_auth)],
    app_state: Annotated[AppState, Depends(get_app_state)],
    service: Annotated[ExpenseService, Depends(get_expense_service)],
    sync_queue: Annotated[SyncQueue | None, Depends(get_sync_queue_optional)],
) -> SessionResponse:
    await auth.sign_in()
    if not app_state.snapshot.offline:
        await service.refresh()
    return _session(app_state, sync_queue)


@router.post("/sign-out", response_model=SessionResponse)
async def sign_out(
    auth: Annotated[AuthSession, Depends(get_auth)],
    app_state: Annotated[AppState, Depends(get_app_state)],
    sync_queue: Annotated[SyncQueue | None, Depends(get_sync_queue_optional)],
) -> SessionResponse:
    await auth.sign_out()
    return _session(app_state, sync_queue)


@router.post("/connectivity", response_model=SessionResponse)
async def set_connectivity(
    req: ConnectivityRequest,
    app_state: Annotated[AppState, Depends(get_app_state)],
    store: Annotated[ExpenseStore, Depends(get_store)],
    service: Annotated[ExpenseService, Depends(get_expense_service)],
    sync_queue: Annotated[SyncQueue | None, Depends(get_sync_queue_optional)],
) -> SessionResponse:
    was_offline = app_state.snapshot.offline
    app_state.set_offline(req.offline)

    if was_offline and not req.offline:
        logger.info("[SYNC] Back online.")
        if sync_queue is not None and len(sync_queue):
            await sync_queue.flush(store)
        if app_state.snapshot.user is not None:
            await service.refresh()
    return _session(app_state, sync_queue)


@router.post("/theme", response_model=ThemeResponse)
async def toggle_theme(
    app_state: Annotated[AppState, Depends(get_app_state)],
) -> ThemeResponse:
    return ThemeResponse(theme=app_state.toggle_theme())
