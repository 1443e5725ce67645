from fastapi import HTTPException, Request

from smartspendr.cache.controller import ResourceCacheController
from smartspendr.cache.sync import SyncQueue
from smartspendr.integration.advice import AdviceClient
from smartspendr.integration.identity import AuthSession
from smartspendr.integration.store import ExpenseStore
from smartspendr.models import User
from smartspendr.state import AppState, ExpenseService


def get_app_state(request: Request) -> AppState:
    app_state = getattr(request.app.state, "app_state", None)
    if not app_state:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return app_state


def get_expense_service(request: Request) -> ExpenseService:
    service = getattr(request.app.state, "expenses", None)
    if not service:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return service


def get_store(request: Request) -> ExpenseStore:
    store = getattr(request.app.state, "store", None)
    if not store:
        raise HTTPException(status_code=500, detail="Store not configured")
    return store


def get_sync_queue_optional(request: Request) -> SyncQueue | None:
    return getattr(request.app.state, "sync_queue", None)


def get_advice(request: Request) -> AdviceClient:
    advice = getattr(request.app.state, "advice", None)
    if not advice:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return advice


def get_controller_optional(request: Request) -> ResourceCacheController | None:
    return getattr(request.app.state, "controller", None)


def get_auth(request: Request) -> AuthSession:
    auth = getattr(request.app.state, "auth", None)
    if not auth:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return auth


def get_current_user(request: Request) -> User:
    user = get_auth(request).user
    if user is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    return user
