"""Repository layer abstractions to interact with persistence models."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from txretry.domain.enums import OrderStatus
from txretry.domain.models import Order
from txretry.infra.db import current_session


class OrderNotFoundError(LookupError):
    def __init__(self, order_id: int) -> None:
        self.order_id = order_id
        super().__init__(f"Order with id={order_id} not found")


class OrderRepository:
    """Persistence helpers for :class:`Order` entities.

    Without an explicit session the repository joins the transaction opened
    by the enclosing :func:`~txretry.infra.db.unit_of_work`.
    """

    def __init__(self, db: Optional[Session] = None) -> None:
        self._explicit_db = db

    @property
    def _db(self) -> Session:
        db = self._explicit_db or current_session()
        if db is None:
            raise RuntimeError("OrderRepository used outside of a transaction")
        return db

    def get(self, order_id: int) -> Optional[Order]:
        return self._db.get(Order, order_id)

    def require(self, order_id: int) -> Order:
        order = self.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def create(self, customer: str, amount: Optional[float] = None) -> Order:
        order = Order(customer=customer, amount=amount, status=OrderStatus.NEW.value)
        self._db.add(order)
        self._db.flush([order])
        self._db.refresh(order)  # load server-side defaults
        return order

    def update_status(self, order_id: int, status: OrderStatus | str) -> Order:
        order = self.require(order_id)
        order.status = status.value if isinstance(status, OrderStatus) else str(status)
        self._db.flush([order])
        return order

    def list_all(self) -> list[Order]:
        stmt = select(Order).order_by(Order.id.asc())
        return list(self._db.scalars(stmt))
