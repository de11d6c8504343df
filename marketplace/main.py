import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from marketplace.config import settings
from marketplace.db import Base, engine
from marketplace.errors import (
    ConflictError, MarketplaceError, NotFoundError, PersistenceError, ValidationError
)
from marketplace.routes import catalog, inventory, orders, pricing

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (ConflictError, 409),
    (PersistenceError, 503),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables:
        Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="Marketplace APIs", lifespan=lifespan)


@app.exception_handler(MarketplaceError)
async def handle_marketplace_error(request: Request, exc: MarketplaceError):
    status_code = 400
    for error_cls, code in ERROR_STATUS:
        if isinstance(exc, error_cls):
            status_code = code
            break
    return JSONResponse(status_code=status_code, content=exc.payload())


app.include_router(orders.router)
app.include_router(catalog.router)
app.include_router(pricing.router)
app.include_router(inventory.router)
