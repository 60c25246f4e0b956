"""FastAPI example: failed requests answer with a plain-text exception report.

Run with ``uvicorn main:app --reload`` and open ``/orders/42?verbose=1``.
"""

from __future__ import annotations

from fastapi import FastAPI

from exctext import ExceptionTextOptions, setup_logging
from exctext.integrations.asgi import ExceptionTextMiddleware

setup_logging(service="orders-dev")

app = FastAPI()
# Development only: the report includes request headers and cookies.
app.add_middleware(ExceptionTextMiddleware, options=ExceptionTextOptions.from_env())


class OrderLookupError(Exception):
    pass


def load_order(order_id: int) -> dict:
    try:
        return {}[order_id]
    except KeyError as e:
        raise OrderLookupError(f"order {order_id} not found") from e


@app.get("/orders/{order_id}")
async def get_order(order_id: int) -> dict:
    return load_order(order_id)
