from __future__ import annotations

import argparse
import sys
from typing import Sequence

from txretry.domain.enums import OrderStatus
from txretry.infra.repositories import OrderNotFoundError
from txretry.services.base import transaction_boundary
from txretry.shared.config import DEFAULT_MAX_BACKOFF_MILLIS, DEFAULT_RETRY_ATTEMPTS
from txretry.shared.errors import ConcurrencyFailureError


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""

    parser = argparse.ArgumentParser("txretry")
    sub = parser.add_subparsers(dest="cmd")
    sub.required = True

    serve = sub.add_parser("serve", help="Start the HTTP API with Uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    sub.add_parser("init-db", help="Create database tables")

    status = sub.add_parser("set-status", help="Change the status of an order, retrying conflicts")
    status.add_argument("order_id", type=int)
    status.add_argument("status", choices=[s.value for s in OrderStatus])
    status.add_argument("--retry-attempts", type=int, default=DEFAULT_RETRY_ATTEMPTS)
    status.add_argument("--max-backoff-millis", type=int, default=DEFAULT_MAX_BACKOFF_MILLIS)

    return parser


def handle_serve(host: str, port: int) -> int:
    """Run the ``serve`` command and return an exit code."""

    import uvicorn

    from txretry.app.api import app

    uvicorn.run(app, host=host, port=port)
    return 0


def handle_init_db() -> int:
    from txretry.infra.db import init_db

    init_db()
    print("schema created")
    return 0


def handle_set_status(order_id: int, status: str, retry_attempts: int, max_backoff_millis: int) -> int:
    """Run the ``set-status`` command and return an exit code."""

    from txretry.infra.repositories import OrderRepository

    try:
        @transaction_boundary(
            retry_attempts=retry_attempts,
            max_backoff_millis=max_backoff_millis,
            name="cli.set_status",
        )
        def set_status() -> None:
            OrderRepository().update_status(order_id, OrderStatus(status))
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    try:
        set_status()
    except OrderNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except ConcurrencyFailureError as exc:
        print(str(exc), file=sys.stderr)
        return 3

    print(f"order {order_id} -> {status}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "serve":
        return handle_serve(args.host, args.port)
    if args.cmd == "init-db":
        return handle_init_db()
    if args.cmd == "set-status":
        return handle_set_status(args.order_id, args.status, args.retry_attempts, args.max_backoff_millis)

    parser.error("Invalid command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
