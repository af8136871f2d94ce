import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from delivery_orders.config import settings
from delivery_orders.db import close_pool, get_pool, init_schema
from delivery_orders.dependencies import get_order_store, reset_order_store
from delivery_orders.metrics import get_metrics_bytes, get_metrics_content_type
from delivery_orders.queue import close_redis, queue_backend
from delivery_orders.routes import admin, orders

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.order_store_backend == "postgres":
        await init_schema(await get_pool())
    await get_order_store()
    logger.info(
        "Order store ready (backend=%s, location audit=%s)",
        settings.order_store_backend,
        queue_backend() if settings.location_audit_enabled else "off",
    )
    yield
    reset_order_store()
    await close_redis()
    await close_pool()


app = FastAPI(title="Delivery Order Status", lifespan=lifespan)
app.include_router(orders.router)
app.include_router(admin.router)


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed input never reaches the service: 400 with the field errors."""
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": "Invalid request data",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus scrape endpoint: status update outcomes, rejected transitions, location pings."""
    return Response(
        content=get_metrics_bytes(),
        media_type=get_metrics_content_type(),
    )


def run() -> None:
    import uvicorn
    uvicorn.run("delivery_orders.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
