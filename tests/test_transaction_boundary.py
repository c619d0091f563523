from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from helpers import conflict, db_error
from txretry.domain.enums import OrderStatus
from txretry.domain.models import Order
from txretry.infra.db import SessionLocal, current_session, in_transaction, init_db, unit_of_work
from txretry.infra.repositories import OrderNotFoundError, OrderRepository
from txretry.services.base import transaction_boundary
from txretry.services.orders import OrderService
from txretry.shared import retry as retry_helpers
from txretry.shared.config import DEFAULT_MAX_BACKOFF_MILLIS
from txretry.shared.errors import ConcurrencyFailureError, InvalidRetryPolicyError, TransactionActiveError
from txretry.shared.retry import RetryPolicy, TransactionRetrier


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(retry_helpers, "default_retrier", TransactionRetrier(sleep=lambda seconds: None))


@pytest.fixture(scope="module")
def _schema():
    init_db()
    with SessionLocal() as db:
        db.query(Order).delete()
        db.commit()


class FakeOrderRepository:
    """Records calls and raises the queued errors, one per call."""

    def __init__(self, errors=()) -> None:
        self._errors = list(errors)
        self.calls: list[tuple[int, str]] = []
        self.sessions: list[Session | None] = []

    def update_status(self, order_id: int, status) -> None:
        self.calls.append((order_id, status))
        self.sessions.append(current_session())
        if self._errors:
            raise self._errors.pop(0)


def test_update_order_status_retries_then_succeeds() -> None:
    repo = FakeOrderRepository([conflict("Conflict!"), conflict("Conflict!!"), conflict("Conflict!!!")])
    service = OrderService(repository=repo)

    assert service.update_order_status(1, "NEW") == 1
    assert len(repo.calls) == 4


def test_update_order_status_gives_up_after_too_many_errors() -> None:
    repo = FakeOrderRepository([conflict() for _ in range(4)])
    service = OrderService(repository=repo)

    with pytest.raises(ConcurrencyFailureError) as exc_info:
        service.update_order_status(1, "NEW")

    assert len(repo.calls) == 4
    assert exc_info.value.max_attempts == 3
    assert exc_info.value.name == "OrderService.update_order_status"


def test_update_order_status_fatal_error_is_not_retried() -> None:
    fatal = db_error("deadlock detected", "40P01")
    repo = FakeOrderRepository([fatal])
    service = OrderService(repository=repo)

    with pytest.raises(type(fatal)) as exc_info:
        service.update_order_status(1, "NEW")

    assert exc_info.value is fatal
    assert len(repo.calls) == 1


def test_each_attempt_runs_in_its_own_transaction() -> None:
    repo = FakeOrderRepository([conflict(), conflict()])
    service = OrderService(repository=repo)

    service.update_order_status(7, OrderStatus.CONFIRMED)

    assert all(session is not None for session in repo.sessions)
    assert len({id(session) for session in repo.sessions}) == 3
    assert not in_transaction()


def test_boundary_carries_its_policy() -> None:
    assert OrderService.update_order_status.retry_policy == RetryPolicy(3, DEFAULT_MAX_BACKOFF_MILLIS)
    assert OrderService.get_order.retry_policy == RetryPolicy()


def test_boundary_rejects_invalid_policy_at_decoration_time() -> None:
    with pytest.raises(InvalidRetryPolicyError):
        @transaction_boundary(retry_attempts=0)
        def never() -> None:  # pragma: no cover - never decorated
            pass


def test_nested_boundary_is_a_configuration_error() -> None:
    calls = {"inner": 0}

    @transaction_boundary
    def inner() -> int:
        calls["inner"] += 1
        return 1

    @transaction_boundary
    def outer() -> int:
        return inner()

    with pytest.raises(TransactionActiveError):
        outer()

    assert calls["inner"] == 0


def test_boundary_called_inside_unit_of_work_fails_fast() -> None:
    repo = FakeOrderRepository()
    service = OrderService(repository=repo)

    with unit_of_work():
        with pytest.raises(TransactionActiveError):
            service.update_order_status(1, "NEW")

    assert repo.calls == []


def test_unit_of_work_rolls_back_on_error(_schema) -> None:
    with pytest.raises(RuntimeError):
        with unit_of_work() as db:
            db.add(Order(customer="rolled back", status=OrderStatus.NEW.value))
            db.flush()
            raise RuntimeError("abort")

    with SessionLocal() as db:
        assert db.query(Order).filter_by(customer="rolled back").count() == 0
    assert not in_transaction()


def test_order_service_against_database(_schema) -> None:
    service = OrderService()

    order = service.create_order("ACME", 99.5)
    assert order.id is not None
    assert order.status == OrderStatus.NEW

    assert service.update_order_status(order.id, OrderStatus.SHIPPED) == order.id

    stored = service.get_order(order.id)
    assert stored.status == OrderStatus.SHIPPED.value
    assert stored.customer == "ACME"
    assert any(o.id == order.id for o in service.list_orders())


def test_missing_order_is_not_retried(_schema, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = {"count": 0}
    original = OrderRepository.require

    def counting_require(self, order_id: int):
        calls["count"] += 1
        return original(self, order_id)

    monkeypatch.setattr(OrderRepository, "require", counting_require)

    with pytest.raises(OrderNotFoundError):
        OrderService().update_order_status(999_999, OrderStatus.NEW)

    assert calls["count"] == 1


def test_repository_outside_transaction_is_rejected() -> None:
    with pytest.raises(RuntimeError, match="outside of a transaction"):
        OrderRepository().get(1)
