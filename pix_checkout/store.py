"""
store.py — Correlation store for tracking parameters

Associates an order id (PED-...) with the UTM / click parameters the storefront
sent at checkout time, so the asynchronous gateway webhook can attribute the
payment to the right campaign.

The in-memory implementation lives only as long as the process. Nothing
expires: entries are removed when a terminal webhook (paid / failed) arrives,
otherwise they stay until restart. Running several workers or instances needs
a shared key-value store with a TTL behind the same interface.
"""

import logging
from typing import Dict, Optional, Protocol

from .models import TrackingParams

log = logging.getLogger(__name__)


class CorrelationStore(Protocol):
    """Order id → tracking parameters."""

    def save(self, order_id: str, params: TrackingParams) -> None: ...

    def get(self, order_id: str) -> Optional[TrackingParams]: ...

    def delete(self, order_id: str) -> None: ...


class InMemoryCorrelationStore:
    """
    Dict-backed correlation store for a single process.

    No locking and no capacity bound. Writes overwrite any previous record for
    the same order id; deleting an unknown order id is a no-op.
    """

    def __init__(self):
        self._entries: Dict[str, TrackingParams] = {}

    def save(self, order_id: str, params: TrackingParams) -> None:
        self._entries[order_id] = params
        log.info(f"[Order: {order_id}] UTMs salvos no servidor.")

    def get(self, order_id: str) -> Optional[TrackingParams]:
        return self._entries.get(order_id)

    def delete(self, order_id: str) -> None:
        if self._entries.pop(order_id, None) is not None:
            log.info(f"[Order: {order_id}] UTMs removidos do servidor.")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._entries
