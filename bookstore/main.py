import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from bookstore.config import settings
from bookstore.db import Database
from bookstore.errors import (
    BookstoreError,
    EmptyCartError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    TransientStoreFailure,
)
from bookstore.logging_config import configure_logging
from bookstore.routers import cart, checkout, replenishment

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFoundError: 404,
    InsufficientStockError: 409,
    InvalidStateError: 409,
    EmptyCartError: 400,
}


def _status_for(exc: BookstoreError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return 400


def _busy_response() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={'detail': 'The database is busy, please retry', 'retryable': True},
    )


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(BookstoreError)
    async def business_error(request: Request, exc: BookstoreError):
        return JSONResponse(status_code=_status_for(exc), content={'detail': str(exc), **exc.context()})

    @app.exception_handler(TransientStoreFailure)
    async def transient_error(request: Request, exc: TransientStoreFailure):
        return _busy_response()

    @app.exception_handler(OperationalError)
    async def store_unavailable(request: Request, exc: OperationalError):
        logger.warning('Store error on %s %s: %s', request.method, request.url.path, exc.orig)
        return _busy_response()


def create_app(database: Database | None = None) -> FastAPI:
    store = database or Database()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        store.open()
        try:
            yield
        finally:
            store.close()

    app = FastAPI(title='Bookstore Inventory Core', lifespan=lifespan)
    app.state.database = store
    install_error_handlers(app)
    app.include_router(cart.router)
    app.include_router(checkout.router)
    app.include_router(replenishment.router)
    return app


app = create_app()
