from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from txretry import __version__
from txretry.domain.schemas import OrderIn, OrderOut, OrderStatusUpdate
from txretry.infra.db import init_db
from txretry.infra.logging import setup_logging
from txretry.infra.repositories import OrderNotFoundError
from txretry.services.orders import OrderService
from txretry.shared.errors import ConcurrencyFailureError

logger = logging.getLogger(__name__)

setup_logging()
init_db()

app = FastAPI(title="txretry", version=__version__)

orders = OrderService()


@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/version")
def version():
    return {"version": __version__}

# ---- Global error handlers ----
@app.exception_handler(RequestValidationError)
async def validation_handler(request: Request, exc: RequestValidationError):
    logger.warning("422 ValidationError %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(status_code=422, content={"detail": exc.errors()})

@app.exception_handler(OrderNotFoundError)
async def not_found_handler(request: Request, exc: OrderNotFoundError):
    logger.info("404 %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=404, content={"detail": str(exc)})

@app.exception_handler(ConcurrencyFailureError)
async def concurrency_handler(request: Request, exc: ConcurrencyFailureError):
    logger.error("503 ConcurrencyFailure %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "too many concurrent updates, try again later",
                 "attempts": exc.attempts, "max_attempts": exc.max_attempts},
        headers={"Retry-After": "1"},
    )

@app.exception_handler(SQLAlchemyError)
async def sa_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("500 SQLAlchemyError %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "database error"})

@app.exception_handler(Exception)
async def default_handler(request: Request, exc: Exception):
    logger.exception("500 Unhandled %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "internal error"})

# ---- Orders ----
@app.post("/orders", status_code=201, response_model=OrderOut)
def create_order(payload: OrderIn):
    order = orders.create_order(payload.customer, payload.amount)
    return OrderOut.model_validate(order)

@app.get("/orders", response_model=list[OrderOut])
def list_orders():
    return [OrderOut.model_validate(order) for order in orders.list_orders()]

@app.get("/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: int):
    return OrderOut.model_validate(orders.get_order(order_id))

@app.put("/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(order_id: int, payload: OrderStatusUpdate):
    orders.update_order_status(order_id, payload.status)
    return OrderOut.model_validate(orders.get_order(order_id))
