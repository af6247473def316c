"""
Marketplace status vocabulary and transition detection.

Every marketplace (and every API version of one) has its own order status
strings. STATUS_MAP is the single place they are translated into the local
OrderStatus; all ingestion paths and the manual correction endpoints go
through ``map_status`` and ``detect_transition``.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from marketsync.core.enums import OrderStatus

logger = logging.getLogger(__name__)


STATUS_MAP: Dict[str, OrderStatus] = {
    # Trendyol shipment package statuses
    "awaiting": OrderStatus.PENDING,
    "created": OrderStatus.PENDING,
    "undelivered": OrderStatus.PENDING,
    "approved": OrderStatus.PROCESSING,
    "picking": OrderStatus.PROCESSING,
    "invoiced": OrderStatus.PROCESSING,
    "unpacked": OrderStatus.PROCESSING,
    "readytoship": OrderStatus.PROCESSING,
    "shipped": OrderStatus.SHIPPED,
    "atcollectionpoint": OrderStatus.SHIPPED,
    "delivered": OrderStatus.DELIVERED,
    "cancelled": OrderStatus.CANCELLED,
    "unsupplied": OrderStatus.CANCELLED,
    "returned": OrderStatus.REFUNDED,
    "undeliveredandreturned": OrderStatus.REFUNDED,
}
# Local names map to themselves
STATUS_MAP.update({status.value.lower(): status for status in OrderStatus})

# Remote statuses walked by the poller, in this order
POLLABLE_STATUSES: List[str] = [
    "Awaiting",
    "Created",
    "Picking",
    "Invoiced",
    "Shipped",
    "AtCollectionPoint",
    "Delivered",
    "UnDelivered",
    "Cancelled",
    "UnPacked",
    "Returned",
]


def map_status(raw: Optional[Union[str, OrderStatus]]) -> Optional[OrderStatus]:
    """Canonical status for a marketplace string, or None when unknown."""
    if raw is None:
        return None
    if isinstance(raw, OrderStatus):
        return raw
    key = raw.strip().lower().replace("_", "").replace(" ", "")
    status = STATUS_MAP.get(key)
    if status is None:
        logger.warning(f"Unknown marketplace status '{raw}', no transition applied")
    return status


@dataclass(frozen=True)
class StatusTransition:
    old: Optional[OrderStatus]
    new: OrderStatus

    @property
    def enters_cancelled(self) -> bool:
        return self.new == OrderStatus.CANCELLED and self.old != OrderStatus.CANCELLED

    @property
    def restores_stock(self) -> bool:
        # REFUNDED -> CANCELLED never puts units back
        return self.enters_cancelled and self.old != OrderStatus.REFUNDED


def detect_transition(
    old: Optional[OrderStatus],
    new: Optional[Union[str, OrderStatus]],
) -> Optional[StatusTransition]:
    """A transition only when the mapped new status differs from the old one."""
    new_status = map_status(new)
    if new_status is None or new_status == old:
        return None
    return StatusTransition(old=old, new=new_status)
