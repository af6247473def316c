# tests/unit/test_normalization.py
from datetime import datetime

import pytest

from marketsync.core.exceptions import PayloadNormalizationError
from marketsync.schemas.marketplace import (
    extract_order_number,
    extract_raw_status,
    normalize_line,
    normalize_order,
    parse_timestamp,
)


def test_trendyol_package_is_normalized(package_factory):
    order = normalize_order(package_factory())

    assert order.order_number == "TY-1001"
    assert order.raw_status == "Created"
    assert order.package_id == "9001"
    assert order.total_amount == pytest.approx(99.8)
    assert order.customer_first_name == "Ayse"
    assert order.display_customer_name == "Ayse Yilmaz"
    assert order.customer_info()["phone"] == "5550000000"
    assert len(order.lines) == 1

    line = order.lines[0]
    assert line.remote_identifier == "B123"
    assert line.quantity == 2
    assert line.unit_price == pytest.approx(49.9)
    assert line.order_line_id == "1"


def test_alternative_field_names():
    order = normalize_order({
        "orderId": 555,
        "status": "Shipped",
        "totalAmount": "12.50",
        "customerName": "Mehmet K.",
        "items": [
            {"merchantSku": "M-1", "quantity": "3", "lineUnitPrice": 4.0},
            {"stockCode": "S-2"},
        ],
    })

    assert order.order_number == "555"
    assert order.raw_status == "Shipped"
    assert order.total_amount == pytest.approx(12.5)
    assert order.display_customer_name == "Mehmet K."
    assert [line.remote_identifier for line in order.lines] == ["M-1", "S-2"]
    assert order.lines[0].quantity == 3
    assert order.lines[0].unit_price == pytest.approx(4.0)
    # Missing quantity defaults to one unit
    assert order.lines[1].quantity == 1


def test_barcode_preferred_over_merchant_sku():
    line = normalize_line({"barcode": "BC", "merchantSku": "MS", "quantity": 1})
    assert line.remote_identifier == "BC"
    assert line.merchant_sku == "MS"


def test_empty_values_fall_through():
    line = normalize_line({"barcode": "", "stockCode": "SC-9", "quantity": 1})
    assert line.remote_identifier == "SC-9"


def test_missing_order_number_raises():
    with pytest.raises(PayloadNormalizationError):
        normalize_order({"status": "Created", "lines": []})


def test_non_dict_payload_raises():
    with pytest.raises(PayloadNormalizationError):
        normalize_order(["not", "an", "order"])


def test_lines_must_be_a_list():
    with pytest.raises(PayloadNormalizationError):
        normalize_order({"orderNumber": "X", "lines": "B123"})


def test_negative_quantity_raises():
    with pytest.raises(PayloadNormalizationError):
        normalize_line({"barcode": "B123", "quantity": -1})


def test_garbage_quantity_raises():
    with pytest.raises(PayloadNormalizationError):
        normalize_line({"barcode": "B123", "quantity": "two"})


def test_zero_quantity_is_kept():
    assert normalize_line({"barcode": "B123", "quantity": 0}).quantity == 0


def test_parse_timestamp_epoch_millis():
    assert parse_timestamp(1760860800000) == datetime(2025, 10, 19, 8, 0, 0)
    assert parse_timestamp("1760860800000") == datetime(2025, 10, 19, 8, 0, 0)


def test_parse_timestamp_iso_is_converted_to_naive_utc():
    assert parse_timestamp("2025-10-19T11:00:00+03:00") == datetime(2025, 10, 19, 8, 0, 0)
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(None) is None


def test_extract_order_number():
    assert extract_order_number({"orderNumber": " TY-1 "}) == "TY-1"
    assert extract_order_number({"foo": "bar"}) is None
    assert extract_order_number("TY-1") is None


def test_extract_raw_status_uses_package_status_first():
    assert extract_raw_status({"status": "CANCELLED", "shipmentPackageStatus": "UnSupplied"}) == "UnSupplied"
    assert extract_raw_status({"status": "Cancelled"}) == "Cancelled"
    assert extract_raw_status({"orderNumber": "TY-1"}) is None
