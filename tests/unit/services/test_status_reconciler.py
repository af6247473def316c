# tests/unit/services/test_status_reconciler.py
import pytest

from marketsync.core.enums import OrderStatus
from marketsync.services.status_reconciler import (
    POLLABLE_STATUSES,
    StatusTransition,
    detect_transition,
    map_status,
)


@pytest.mark.parametrize("raw,expected", [
    ("Created", OrderStatus.PENDING),
    ("Awaiting", OrderStatus.PENDING),
    ("Picking", OrderStatus.PROCESSING),
    ("Invoiced", OrderStatus.PROCESSING),
    ("ReadyToShip", OrderStatus.PROCESSING),
    ("Shipped", OrderStatus.SHIPPED),
    ("AtCollectionPoint", OrderStatus.SHIPPED),
    ("Delivered", OrderStatus.DELIVERED),
    ("Cancelled", OrderStatus.CANCELLED),
    ("UnSupplied", OrderStatus.CANCELLED),
    ("Returned", OrderStatus.REFUNDED),
    ("UnDeliveredAndReturned", OrderStatus.REFUNDED),
])
def test_trendyol_statuses_map_to_local(raw, expected):
    assert map_status(raw) == expected


def test_map_status_is_case_and_separator_insensitive():
    assert map_status("  cancelled ") == OrderStatus.CANCELLED
    assert map_status("READY_TO_SHIP") == OrderStatus.PROCESSING
    assert map_status("at collection point") == OrderStatus.SHIPPED


def test_local_names_map_to_themselves():
    for status in OrderStatus:
        assert map_status(status.value) == status
        assert map_status(status) == status


def test_unknown_status_maps_to_none(caplog):
    assert map_status("Teleported") is None
    assert "Teleported" in caplog.text
    assert map_status(None) is None


def test_detect_transition_only_on_change():
    assert detect_transition(OrderStatus.PENDING, "Created") is None
    assert detect_transition(OrderStatus.PENDING, "Whatever") is None

    transition = detect_transition(OrderStatus.PENDING, "Shipped")
    assert transition == StatusTransition(old=OrderStatus.PENDING, new=OrderStatus.SHIPPED)
    assert not transition.restores_stock


def test_cancel_transition_restores_stock():
    transition = detect_transition(OrderStatus.SHIPPED, "Cancelled")
    assert transition.enters_cancelled
    assert transition.restores_stock


def test_refunded_to_cancelled_never_restores():
    transition = detect_transition(OrderStatus.REFUNDED, "Cancelled")
    assert transition.enters_cancelled
    assert not transition.restores_stock


def test_pollable_statuses_all_map():
    for raw in POLLABLE_STATUSES:
        assert map_status(raw) is not None
