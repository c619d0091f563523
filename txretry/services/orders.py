from __future__ import annotations

from typing import Optional

from txretry.domain.enums import OrderStatus
from txretry.domain.models import Order
from txretry.infra.repositories import OrderRepository
from txretry.services.base import transaction_boundary


class OrderService:
    """Transactional entry points for order changes."""

    def __init__(self, repository: Optional[OrderRepository] = None) -> None:
        self._orders = repository or OrderRepository()

    @transaction_boundary
    def create_order(self, customer: str, amount: Optional[float] = None) -> Order:
        return self._orders.create(customer, amount)

    @transaction_boundary(retry_attempts=3)
    def update_order_status(self, order_id: int, status: OrderStatus | str) -> int:
        self._orders.update_status(order_id, status)
        return order_id

    @transaction_boundary
    def get_order(self, order_id: int) -> Order:
        return self._orders.require(order_id)

    @transaction_boundary
    def list_orders(self) -> list[Order]:
        return self._orders.list_all()
