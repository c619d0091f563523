from __future__ import annotations

import pytest

from helpers import conflict
from txretry.app.cli import build_parser, main
from txretry.domain.models import Order
from txretry.infra.db import SessionLocal, init_db
from txretry.infra.repositories import OrderRepository
from txretry.shared import retry as retry_helpers
from txretry.shared.retry import TransactionRetrier


@pytest.fixture(autouse=True)
def _setup(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(retry_helpers, "default_retrier", TransactionRetrier(sleep=lambda seconds: None))
    init_db()


def _new_order() -> int:
    with SessionLocal() as db:
        order = Order(customer="CLI", status="NEW")
        db.add(order)
        db.commit()
        return order.id


def test_parser_requires_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_set_status_updates_order(capsys) -> None:
    order_id = _new_order()

    assert main(["set-status", str(order_id), "SHIPPED"]) == 0
    assert f"order {order_id} -> SHIPPED" in capsys.readouterr().out

    with SessionLocal() as db:
        assert db.get(Order, order_id).status == "SHIPPED"


def test_set_status_rejects_unknown_status() -> None:
    with pytest.raises(SystemExit):
        main(["set-status", "1", "LOST"])


def test_set_status_missing_order(capsys) -> None:
    assert main(["set-status", "999999", "NEW"]) == 1
    assert "999999" in capsys.readouterr().err


def test_set_status_invalid_retry_budget(capsys) -> None:
    assert main(["set-status", "1", "NEW", "--retry-attempts", "0"]) == 2
    assert "max_attempts" in capsys.readouterr().err


def test_set_status_gives_up(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    calls = {"count": 0}

    def conflicting(self, order_id, status):
        calls["count"] += 1
        raise conflict()

    monkeypatch.setattr(OrderRepository, "update_status", conflicting)

    assert main(["set-status", "1", "NEW", "--retry-attempts", "2"]) == 3
    assert calls["count"] == 3
    assert "Giving up" in capsys.readouterr().err
