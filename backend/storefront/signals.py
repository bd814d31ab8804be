# Overview: In-process domain events published by the order core.

"""
Stock change notifications.

The order core does not know about caches. After a transaction that moved
stock commits, it sends `product_stock_changed` with the affected product ids;
the cache layer (or anything else) subscribes with
`product_stock_changed.connect(receiver)`.

Delivery is best-effort and at-least-once from the receiver's point of view:
a failing receiver is logged and never fails the order operation that
already committed.
"""

from __future__ import annotations

from typing import Iterable

from blinker import Namespace
from flask import current_app

_signals = Namespace()

product_stock_changed = _signals.signal("product-stock-changed")


def emit_product_stock_changed(product_ids: Iterable[int]) -> None:
    ids = sorted(set(product_ids))
    if not ids:
        return
    sender = current_app._get_current_object()
    for receiver in product_stock_changed.receivers_for(sender):
        try:
            receiver(sender, product_ids=ids)
        except Exception:
            current_app.logger.exception("product_stock_changed receiver failed for products %s", ids)
