"""
Normalization of marketplace order payloads.

Marketplaces (and different API versions of the same marketplace) name the
same field differently: ``price`` vs ``lineUnitPrice``, ``merchantSku`` vs
``stockCode``, ``items`` vs ``lines``. Every payload is turned into a
NormalizedOrder here, at the boundary, using the fallback tables below; the
services only ever see the canonical shape.

Each table entry maps a canonical field to the payload keys tried in order.
The first key present with a non-empty value wins.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import iso8601
from pydantic import BaseModel, Field

from marketsync.core.exceptions import PayloadNormalizationError

logger = logging.getLogger(__name__)


ORDER_FIELD_FALLBACKS: Dict[str, Tuple[str, ...]] = {
    "order_number": ("orderNumber", "orderId", "order_number"),
    "raw_status": ("shipmentPackageStatus", "status", "orderStatus"),
    "package_id": ("shipmentPackageId", "id", "packageNumber"),
    "total_amount": ("totalPrice", "totalAmount", "grossAmount"),
    "order_date": ("orderDate", "createdDate"),
    "last_modified_date": ("lastModifiedDate", "updatedDate"),
    "customer_first_name": ("customerFirstName", "firstName"),
    "customer_last_name": ("customerLastName", "lastName"),
    "customer_email": ("customerEmail", "email"),
    "customer_id": ("customerId",),
    "customer_name": ("customerName",),
    "customer_phone": ("customerPhone",),
    "shipment_address": ("shipmentAddress", "shippingAddress"),
    "invoice_address": ("invoiceAddress",),
    "cargo_provider_name": ("cargoProviderName",),
    "cargo_tracking_number": ("cargoTrackingNumber",),
    "cargo_tracking_link": ("cargoTrackingLink",),
    "lines": ("lines", "items"),
}

LINE_FIELD_FALLBACKS: Dict[str, Tuple[str, ...]] = {
    # barcode first: it is what the local catalog is keyed on
    "remote_identifier": ("barcode", "stockCode", "merchantSku", "sku"),
    "quantity": ("quantity",),
    "unit_price": ("lineUnitPrice", "price", "amount"),
    "product_name": ("productName", "name"),
    "order_line_id": ("id", "orderLineId", "lineId"),
    "remote_product_id": ("productContentId", "contentId", "productId"),
    "product_code": ("productCode",),
    "product_size": ("productSize",),
    "product_color": ("productColor",),
    "barcode": ("barcode",),
    "merchant_sku": ("merchantSku", "stockCode"),
    "sku": ("sku",),
    "amount": ("amount", "lineGrossAmount"),
    "discount": ("discount", "lineTotalDiscount"),
}


class NormalizedLine(BaseModel):
    remote_identifier: Optional[str] = None
    quantity: int = Field(default=1, ge=0)
    unit_price: Optional[float] = None
    product_name: Optional[str] = None
    order_line_id: Optional[str] = None
    remote_product_id: Optional[str] = None
    product_code: Optional[str] = None
    product_size: Optional[str] = None
    product_color: Optional[str] = None
    barcode: Optional[str] = None
    merchant_sku: Optional[str] = None
    sku: Optional[str] = None
    amount: Optional[float] = None
    discount: Optional[float] = None


class NormalizedOrder(BaseModel):
    order_number: str
    raw_status: Optional[str] = None
    package_id: Optional[str] = None
    total_amount: float = 0.0
    order_date: Optional[datetime] = None
    last_modified_date: Optional[datetime] = None
    customer_first_name: Optional[str] = None
    customer_last_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    shipment_address: Optional[Dict[str, Any]] = None
    invoice_address: Optional[Dict[str, Any]] = None
    cargo_provider_name: Optional[str] = None
    cargo_tracking_number: Optional[str] = None
    cargo_tracking_link: Optional[str] = None
    lines: List[NormalizedLine] = Field(default_factory=list)

    @property
    def display_customer_name(self) -> str:
        if self.customer_name:
            return self.customer_name
        return f"{self.customer_first_name or ''} {self.customer_last_name or ''}".strip()

    def customer_info(self) -> Dict[str, Any]:
        address = self.shipment_address or {}
        return {
            "name": self.display_customer_name,
            "email": self.customer_email,
            "phone": self.customer_phone or address.get("phone"),
            "address": self.shipment_address,
        }


def pick(payload: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    """Return the first non-empty value among ``keys``."""
    for key in keys:
        value = payload.get(key)
        if value is not None and value != "":
            return value
    return None


def _to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Could not parse number from {value!r}")
        return None


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        raise PayloadNormalizationError(f"Invalid integer value: {value!r}")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a marketplace timestamp into a naive UTC datetime.

    Trendyol sends epoch milliseconds, other sources ISO-8601 strings.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) or (isinstance(value, str) and value.strip().isdigit()):
        dt = datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
    else:
        try:
            dt = iso8601.parse_date(str(value))
        except iso8601.ParseError:
            logger.warning(f"Unparseable timestamp {value!r}")
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def normalize_line(raw: Dict[str, Any]) -> NormalizedLine:
    values = {field: pick(raw, keys) for field, keys in LINE_FIELD_FALLBACKS.items()}

    quantity = _to_int(values["quantity"])
    if quantity is None:
        quantity = 1
    if quantity < 0:
        raise PayloadNormalizationError(f"Negative quantity on line {values['order_line_id']}: {quantity}")

    return NormalizedLine(
        remote_identifier=_to_str(values["remote_identifier"]),
        quantity=quantity,
        unit_price=_to_float(values["unit_price"]),
        product_name=_to_str(values["product_name"]),
        order_line_id=_to_str(values["order_line_id"]),
        remote_product_id=_to_str(values["remote_product_id"]),
        product_code=_to_str(values["product_code"]),
        product_size=_to_str(values["product_size"]),
        product_color=_to_str(values["product_color"]),
        barcode=_to_str(values["barcode"]),
        merchant_sku=_to_str(values["merchant_sku"]),
        sku=_to_str(values["sku"]),
        amount=_to_float(values["amount"]),
        discount=_to_float(values["discount"]),
    )


def normalize_order(payload: Dict[str, Any]) -> NormalizedOrder:
    """
    Turn a raw order / shipment package payload into a NormalizedOrder.

    Raises:
        PayloadNormalizationError: payload is not a dict or carries no order number
    """
    if not isinstance(payload, dict):
        raise PayloadNormalizationError(f"Order payload must be an object, got {type(payload).__name__}")

    values = {field: pick(payload, keys) for field, keys in ORDER_FIELD_FALLBACKS.items()}

    order_number = _to_str(values["order_number"])
    if not order_number:
        raise PayloadNormalizationError("Payload has no order number")

    raw_lines = values["lines"] or []
    if not isinstance(raw_lines, list):
        raise PayloadNormalizationError(f"Order {order_number}: lines must be a list")

    return NormalizedOrder(
        order_number=order_number,
        raw_status=_to_str(values["raw_status"]),
        package_id=_to_str(values["package_id"]),
        total_amount=_to_float(values["total_amount"]) or 0.0,
        order_date=parse_timestamp(values["order_date"]),
        last_modified_date=parse_timestamp(values["last_modified_date"]),
        customer_first_name=_to_str(values["customer_first_name"]),
        customer_last_name=_to_str(values["customer_last_name"]),
        customer_email=_to_str(values["customer_email"]),
        customer_id=_to_str(values["customer_id"]),
        customer_name=_to_str(values["customer_name"]),
        customer_phone=_to_str(values["customer_phone"]),
        shipment_address=values["shipment_address"] if isinstance(values["shipment_address"], dict) else None,
        invoice_address=values["invoice_address"] if isinstance(values["invoice_address"], dict) else None,
        cargo_provider_name=_to_str(values["cargo_provider_name"]),
        cargo_tracking_number=_to_str(values["cargo_tracking_number"]),
        cargo_tracking_link=_to_str(values["cargo_tracking_link"]),
        lines=[normalize_line(line) for line in raw_lines if isinstance(line, dict)],
    )


def extract_order_number(payload: Dict[str, Any]) -> Optional[str]:
    """Order number only, without validating the rest of the payload."""
    if not isinstance(payload, dict):
        return None
    return _to_str(pick(payload, ORDER_FIELD_FALLBACKS["order_number"]))


def extract_raw_status(payload: Dict[str, Any]) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    return _to_str(pick(payload, ORDER_FIELD_FALLBACKS["raw_status"]))
