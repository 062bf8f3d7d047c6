# backend/qrorder/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from qrorder import __version__
from qrorder.api import menu_router, orders_router, qr_router, ws_router
from qrorder.config import Settings, configure_logging, get_settings
from qrorder.errors import OrderingError
from qrorder.realtime import EventBroadcaster
from qrorder.services import OrderService, QRSessionManager, StockDeductionDispatcher
from qrorder.storage import InMemoryStorage, SQLAlchemyStorage
from qrorder.storage.base import Storage

logger = logging.getLogger(__name__)

# error kind -> HTTP status
ERROR_STATUS = {
    "not_found": 404,
    "invalid_transition": 409,
    "already_assigned": 409,
    "not_owner": 409,
    "insufficient_stock": 409,
    "items_unavailable": 400,
    "invalid_order": 400,
    "unauthorized": 401,
    "network_not_allowed": 403,
    "storage_error": 503,
}


def build_storage(settings: Settings) -> Storage:
    """Pick the storage backend named by STORAGE_BACKEND."""
    if settings.storage_backend == "sqlalchemy":
        logger.info("[main] Using SQLAlchemy storage")
        return SQLAlchemyStorage(settings.database_url, use_alembic=settings.use_alembic)
    if settings.storage_backend != "inmemory":
        logger.warning("[main] Unknown STORAGE_BACKEND %r, using in-memory storage", settings.storage_backend)
    return InMemoryStorage()


async def ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
    status_code = ERROR_STATUS.get(exc.kind, 500)
    if status_code >= 500:
        logger.error("[main] %s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content={"success": False, **exc.to_dict()})


def create_app(settings: Optional[Settings] = None, storage: Optional[Storage] = None) -> FastAPI:
    """
    Build the application and wire the core services onto ``app.state``.

    Services are attached here rather than in the lifespan so that in-process
    test transports, which do not run lifespan events, see them too.
    """
    settings = settings or get_settings()
    storage = storage or build_storage(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("[main] Ordering backend %s starting (%s)", __version__, settings.environment)
        yield
        await app.state.stock_dispatcher.drain()
        await app.state.storage.close()
        logger.info("[main] Ordering backend stopped")

    app = FastAPI(title="QR Table Ordering Backend", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    dispatcher = StockDeductionDispatcher(storage)
    app.state.settings = settings
    app.state.storage = storage
    app.state.stock_dispatcher = dispatcher
    app.state.sessions = QRSessionManager(
        storage, ttl=settings.qr_token_ttl, policy=settings.qr_session_policy
    )
    app.state.orders = OrderService(
        storage, stock_dispatcher=dispatcher, default_timezone=settings.default_timezone
    )
    app.state.broadcaster = EventBroadcaster()

    app.add_exception_handler(OrderingError, ordering_error_handler)

    app.include_router(qr_router.router)
    app.include_router(orders_router.router)
    app.include_router(menu_router.router)
    app.include_router(ws_router.router)

    @app.get("/health", summary="Liveness probe")
    async def health():
        return {"status": "ok", "version": __version__}

    return app


_settings = get_settings()
configure_logging(_settings.log_level)
app = create_app(_settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("qrorder.main:app", host="0.0.0.0", port=8000, reload=_settings.is_dev)
