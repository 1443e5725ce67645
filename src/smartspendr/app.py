import asyncio
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from smartspendr.api.routes import advice, config, expenses, reports, resources, session
from smartspendr.cache.controller import ResourceCacheController
from smartspendr.cache.storage import FileCacheStorage
from smartspendr.cache.sync import SyncQueue
from smartspendr.core import settings
from smartspendr.errors import AuthError, CacheError, InvalidRange, StoreError, ValidationError
from smartspendr.integration.advice import AdviceClient
from smartspendr.integration.identity import AuthSession, LocalIdentityProvider
from smartspendr.integration.store import ExpenseStore, JsonExpenseStore, RestExpenseStore
from smartspendr.logger import get_logger, setup_logging
from smartspendr.state import AppSnapshot, AppState, ExpenseService, Preferences

logger = get_logger(__name__)


def build_store() -> ExpenseStore:
    if os.getenv("STORE_URL"):
        logger.info("[STORE] Using document store at %s.", os.getenv("STORE_URL"))
        return RestExpenseStore()
    path = os.path.join(settings.DATA_DIR, "expenses.json")
    logger.info("[STORE] STORE_URL not set. Keeping expenses in %s.", path)
    return JsonExpenseStore(path)


async def prime_cache(controller: ResourceCacheController) -> None:
    try:
        await controller.install()
        await controller.activate()
    except CacheError as exc:
        logger.warning("[CACHE] Offline cache not primed: %s", exc)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc), "errors": exc.errors})

    @app.exception_handler(InvalidRange)
    async def invalid_range(request: Request, exc: InvalidRange) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(StoreError)
    async def store_error(request: Request, exc: StoreError) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.exception_handler(AuthError)
    async def auth_error(request: Request, exc: AuthError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"detail": str(exc) or "Sign-in failed"})


def create_app() -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Initializing services...")
        settings.log_environment()

        store = build_store()
        sync_queue = SyncQueue(os.path.join(settings.DATA_DIR, "sync-queue.json"))
        if len(sync_queue):
            logger.info("[SYNC] %d mutations waiting from a previous run.", len(sync_queue))

        app_state = AppState(AppSnapshot(
            preferences=Preferences(currency=settings.get_env_str("DEFAULT_CURRENCY", settings.DEFAULT_CURRENCY)),
        ))
        identity = LocalIdentityProvider()
        auth = AuthSession(identity)
        unsubscribe = identity.on_auth_change(app_state.set_user)
        app_state.set_user(auth.user)

        expense_service = ExpenseService(app_state, store, sync_queue)
        controller = ResourceCacheController(
            FileCacheStorage(os.path.join(settings.DATA_DIR, "cache")),
            version=settings.get_env_str("CACHE_VERSION", settings.DEFAULT_CACHE_VERSION),
            origin=settings.get_env_str("APP_ORIGIN", settings.DEFAULT_APP_ORIGIN),
            sync_queue=sync_queue,
        )

        app.state.app_state = app_state
        app.state.store = store
        app.state.sync_queue = sync_queue
        app.state.expenses = expense_service
        app.state.advice = AdviceClient()
        app.state.auth = auth
        app.state.controller = controller

        await expense_service.refresh()

        prime_task = None
        if os.getenv("APP_ORIGIN"):
            # Needs the server to be listening, so it cannot block startup.
            prime_task = asyncio.create_task(prime_cache(controller))

        logger.info("Services initialized.")
        yield
        logger.info("Service shutting down.")

        if prime_task is not None:
            prime_task.cancel()
            with suppress(asyncio.CancelledError):
                await prime_task
        unsubscribe()
        await controller.aclose()
        if isinstance(store, RestExpenseStore):
            await store.aclose()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    _register_error_handlers(app)

    app.include_router(expenses.router)
    app.include_router(reports.router)
    app.include_router(advice.router)
    app.include_router(session.router)
    app.include_router(config.router)
    app.include_router(resources.router)

    return app


app = create_app()
