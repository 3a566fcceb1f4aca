"""
BACKEND SHAPE NORMALIZER

Purpose:
- Convert each backend entity's wire shape into the canonical model
- Tolerate every shape version the backend is known to emit
- Recompute derived numbers instead of trusting backend totals
- Serialize canonical records (round-trip) and build write requests

Known shape versions (detected per record):
- landside.appointment: appointmentId, rawMaterialName,
  arrivalWindow{startTime,endTime}, "dd/MM/yyyy HH:mm" dates
- invoicing.purchase_order: purchaseOrderId, orderLines[], PENDING/...
- warehousing.warehouse: warehouseId/number, payloads[{pdtId, payloadWeight}]
- canonical: the output of serialize_* (camelCase, ISO dates)

Requirements:
• Pure and total: never raise on backend input
• One malformed record never aborts a whole collection
• Unknown statuses preserved, unknown materials -> "unknown"
• Unknown extra fields kept in `extra`, never relied upon

Author: MineralFlow Operations
"""

import logging
import re
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from mineralflow.core import lifecycle
from mineralflow.core.constants import (
    ARRIVAL_WINDOW_HOURS,
    MATERIALS,
    MAX_WAREHOUSE_CAPACITY,
    UNKNOWN_MATERIAL,
)
from mineralflow.core.date_codec import (
    derive_arrival_window,
    format_backend_datetime,
    format_iso,
    parse_backend_date,
    resolve_scheduled_time,
)
from mineralflow.core.models import (
    Appointment,
    ArrivalCompliance,
    ArrivalWindow,
    PayloadRecord,
    PurchaseOrder,
    PurchaseOrderItem,
    ShippingOrder,
    Truck,
    Warehouse,
)
from mineralflow.core.result import FetchResult, Ok, shape_failure

logger = logging.getLogger(__name__)

CANONICAL = "canonical"
LANDSIDE_APPOINTMENT = "landside.appointment"
WAREHOUSING_WAREHOUSE = "warehousing.warehouse"
INVOICING_PURCHASE_ORDER = "invoicing.purchase_order"


# ==================================================
# FIELD HELPERS
# ==================================================

def _pick(raw: Mapping[str, Any], *names: str) -> Any:
    """First non-None value among alias field names."""
    for name in names:
        value = raw.get(name)
        if value is not None:
            return value
    return None


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric value: {value!r}")
        return None


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y")
    return bool(value)


def _extra(raw: Mapping[str, Any], consumed: Iterable[str]) -> Dict[str, Any]:
    consumed = set(consumed)
    return {key: value for key, value in raw.items() if key not in consumed}


def _record_id(raw: Any, *names: str) -> Optional[str]:
    if not isinstance(raw, Mapping):
        logger.warning(f"Skipping non-object record: {raw!r}")
        return None
    value = _pick(raw, *names)
    if value is None or not str(value).strip():
        logger.warning(f"Skipping record without id ({'/'.join(names)})")
        return None
    return str(value)


# ==================================================
# MATERIALS
# ==================================================

_MATERIAL_KEYS = {re.sub(r"[^a-z0-9]", "", material): material for material in MATERIALS}


def normalize_material(raw: Any) -> str:
    """
    Map a backend material identifier onto one canonical material.

    "Iron_Ore", "iron_ore", "IRON-ORE", "iron ore" -> "iron-ore";
    anything unrecognised -> "unknown".
    """
    if raw is None:
        return UNKNOWN_MATERIAL
    key = re.sub(r"[^a-z0-9]", "", str(raw).casefold())
    material = _MATERIAL_KEYS.get(key)
    if material is None:
        logger.warning(f"Unrecognised material {raw!r}, using '{UNKNOWN_MATERIAL}'")
        return UNKNOWN_MATERIAL
    return material


def backend_material_name(material: str) -> str:
    """Canonical material -> backend identifier ("iron-ore" -> "Iron_Ore")."""
    if material in MATERIALS:
        return MATERIALS[material]["backend_name"]
    return material


# ==================================================
# SHAPE DETECTION
# ==================================================

def detect_appointment_shape(raw: Mapping[str, Any]) -> str:
    if "appointmentId" in raw or "rawMaterialName" in raw:
        return LANDSIDE_APPOINTMENT
    window = raw.get("arrivalWindow")
    if isinstance(window, Mapping) and ("startTime" in window or "endTime" in window):
        return LANDSIDE_APPOINTMENT
    return CANONICAL


def detect_purchase_order_shape(raw: Mapping[str, Any]) -> str:
    if "purchaseOrderId" in raw or "orderLines" in raw:
        return INVOICING_PURCHASE_ORDER
    return CANONICAL


def detect_warehouse_shape(raw: Mapping[str, Any]) -> str:
    if "warehouseId" in raw or "warehouseNumber" in raw or isinstance(raw.get("seller"), Mapping):
        return WAREHOUSING_WAREHOUSE
    payloads = raw.get("payloads")
    if isinstance(payloads, list) and payloads and isinstance(payloads[0], Mapping) and "payloadWeight" in payloads[0]:
        return WAREHOUSING_WAREHOUSE
    return CANONICAL


# ==================================================
# TRUCKS
# ==================================================

_TRUCK_FIELDS = (
    "id", "truckId", "licensePlate", "material", "rawMaterialName", "plannedArrival",
    "actualArrival", "status", "sellerId", "sellerName", "warehouseNumber",
    "grossWeight", "tareWeight", "netWeight",
)


def normalize_truck(raw: Any, now: Optional[datetime] = None) -> Optional[Truck]:
    """Backend truck -> Truck, or None when the record is unusable."""
    truck_id = _record_id(raw, "id", "truckId")
    if truck_id is None:
        return None

    planned = parse_backend_date(raw.get("plannedArrival"))
    if planned is None:
        logger.warning(f"Truck {truck_id} has no valid planned arrival, using current time")
        planned = now or datetime.now()

    gross = _to_float(raw.get("grossWeight"))
    tare = _to_float(raw.get("tareWeight"))
    if gross is not None and tare is not None:
        net = gross - tare
    else:
        net = _to_float(raw.get("netWeight"))

    return Truck(
        id=truck_id,
        license_plate=_text(raw.get("licensePlate")),
        material=normalize_material(_pick(raw, "material", "rawMaterialName")),
        planned_arrival=planned,
        actual_arrival=parse_backend_date(raw.get("actualArrival")),
        status=lifecycle.normalize_status("truck", raw.get("status")),
        seller_id=_text(raw.get("sellerId")),
        seller_name=_text(raw.get("sellerName")),
        warehouse_number=_optional_text(raw.get("warehouseNumber")),
        gross_weight=gross,
        tare_weight=tare,
        net_weight=net,
        extra=_extra(raw, _TRUCK_FIELDS),
    )


def serialize_truck(truck: Truck) -> Dict[str, Any]:
    return {
        "id": truck.id,
        "licensePlate": truck.license_plate,
        "material": truck.material,
        "plannedArrival": format_iso(truck.planned_arrival),
        "actualArrival": format_iso(truck.actual_arrival),
        "status": truck.status,
        "sellerId": truck.seller_id,
        "sellerName": truck.seller_name,
        "warehouseNumber": truck.warehouse_number,
        "grossWeight": truck.gross_weight,
        "tareWeight": truck.tare_weight,
        "netWeight": truck.net_weight,
    }


def to_backend_truck(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Write payload for create/update truck from snake_case form fields.

    Only the supplied fields are sent; dates go out as ISO strings.
    """
    mapping = {
        "license_plate": "licensePlate",
        "material": "material",
        "planned_arrival": "plannedArrival",
        "actual_arrival": "actualArrival",
        "status": "status",
        "seller_id": "sellerId",
        "seller_name": "sellerName",
        "warehouse_number": "warehouseNumber",
        "gross_weight": "grossWeight",
        "tare_weight": "tareWeight",
    }
    payload = {}
    for name, wire_name in mapping.items():
        if name not in fields:
            continue
        value = fields[name]
        if name == "material":
            value = backend_material_name(value)
        elif isinstance(value, datetime):
            value = format_iso(value)
        payload[wire_name] = value
    return payload


# ==================================================
# APPOINTMENTS
# ==================================================

_APPOINTMENT_FIELDS = (
    "id", "appointmentId", "truckId", "licensePlate", "sellerId", "sellerName",
    "material", "rawMaterialName", "scheduledTime", "arrivalWindow", "status",
    "warehouseNumber", "truckType",
)


def normalize_appointment(raw: Any, now: Optional[datetime] = None) -> Optional[Appointment]:
    """
    Backend appointment -> Appointment.

    Scheduled time falls back to the arrival window start, then to now.
    The arrival window is always exactly one hour long.
    """
    appointment_id = _record_id(raw, "appointmentId", "id")
    if appointment_id is None:
        return None

    shape = detect_appointment_shape(raw)
    if shape == LANDSIDE_APPOINTMENT:
        # landside keys appointments by appointmentId and has no truck reference
        truck_id = _text(raw.get("truckId"), appointment_id)
        material = _pick(raw, "rawMaterialName", "material")
    else:
        truck_id = _text(raw.get("truckId"))
        material = raw.get("material")

    window = raw.get("arrivalWindow")
    scheduled = resolve_scheduled_time(raw.get("scheduledTime"), window, now=now)
    start, end = derive_arrival_window(scheduled, window)

    return Appointment(
        id=appointment_id,
        truck_id=truck_id,
        license_plate=_text(raw.get("licensePlate")),
        seller_id=_text(raw.get("sellerId")),
        seller_name=_text(raw.get("sellerName")),
        material=normalize_material(material),
        scheduled_time=scheduled,
        arrival_window=ArrivalWindow(start=start, end=end),
        status=lifecycle.normalize_status("appointment", raw.get("status")),
        warehouse_number=_text(raw.get("warehouseNumber"), "Unknown"),
        truck_type=_optional_text(raw.get("truckType")),
        extra=_extra(raw, _APPOINTMENT_FIELDS),
    )


def serialize_appointment(appointment: Appointment) -> Dict[str, Any]:
    return {
        "id": appointment.id,
        "truckId": appointment.truck_id,
        "licensePlate": appointment.license_plate,
        "sellerId": appointment.seller_id,
        "sellerName": appointment.seller_name,
        "material": appointment.material,
        "scheduledTime": format_iso(appointment.scheduled_time),
        "arrivalWindow": {
            "start": format_iso(appointment.arrival_window.start),
            "end": format_iso(appointment.arrival_window.end),
        },
        "status": appointment.status,
        "warehouseNumber": appointment.warehouse_number,
        "truckType": appointment.truck_type,
    }


def to_backend_appointment(
    license_plate: str,
    seller_id: str,
    seller_name: str,
    material: str,
    scheduled_time: datetime,
    truck_type: Optional[str] = None,
) -> Dict[str, Any]:
    """Write payload for create/update appointment ("dd/MM/yyyy HH:mm" dates)."""
    window_end = scheduled_time + timedelta(hours=ARRIVAL_WINDOW_HOURS)
    payload = {
        "licensePlate": license_plate,
        "sellerId": seller_id,
        "sellerName": seller_name,
        "rawMaterialName": backend_material_name(material),
        "scheduledTime": format_backend_datetime(scheduled_time),
        "arrivalWindow": {
            "startTime": format_backend_datetime(scheduled_time),
            "endTime": format_backend_datetime(window_end),
        },
    }
    if truck_type:
        payload["truckType"] = truck_type
    return payload


# ==================================================
# WAREHOUSES
# ==================================================

_WAREHOUSE_FIELDS = (
    "id", "warehouseId", "number", "warehouseNumber", "seller", "sellerId", "sellerName",
    "material", "rawMaterialName", "currentStock", "currentLoad", "maxCapacity", "capacity",
    "payloads", "payloadRecords",
)


def normalize_payload(raw: Any, index: int, warehouse_id: str) -> Optional[PayloadRecord]:
    if not isinstance(raw, Mapping):
        logger.warning(f"Skipping malformed payload record in warehouse {warehouse_id}")
        return None

    delivery_time = parse_backend_date(raw.get("deliveryTime"))
    if delivery_time is None:
        logger.warning(f"Skipping payload without delivery time in warehouse {warehouse_id}")
        return None

    return PayloadRecord(
        id=_text(_pick(raw, "id", "pdtId"), f"payload-{warehouse_id}-{index}"),
        delivery_time=delivery_time,
        weight=_to_float(_pick(raw, "weight", "payloadWeight")) or 0.0,
        material=normalize_material(_pick(raw, "material", "rawMaterialName")),
        seller_id=_text(raw.get("sellerId")),
    )


def normalize_warehouse(raw: Any) -> Optional[Warehouse]:
    """
    Backend warehouse -> Warehouse.

    Stock is clamped at zero and a missing or non-positive capacity falls
    back to the site maximum. Payloads are a display log: they are not
    reconciled against current stock.
    """
    warehouse_id = _record_id(raw, "id", "warehouseId")
    if warehouse_id is None:
        return None

    seller = {}
    if detect_warehouse_shape(raw) == WAREHOUSING_WAREHOUSE and isinstance(raw.get("seller"), Mapping):
        seller = raw["seller"]

    stock = _to_float(_pick(raw, "currentStock", "currentLoad")) or 0.0
    if stock < 0:
        logger.warning(f"Warehouse {warehouse_id} reports negative stock {stock}, clamping to 0")
        stock = 0.0

    capacity = _to_float(_pick(raw, "maxCapacity", "capacity"))
    if capacity is None or capacity <= 0:
        logger.warning(f"Warehouse {warehouse_id} has no valid capacity, using {MAX_WAREHOUSE_CAPACITY}")
        capacity = float(MAX_WAREHOUSE_CAPACITY)

    raw_material = _pick(raw, "material", "rawMaterialName")
    raw_payloads = _pick(raw, "payloads", "payloadRecords") or []
    if not isinstance(raw_payloads, list):
        logger.warning(f"Warehouse {warehouse_id} payloads are not a list, ignoring")
        raw_payloads = []

    payloads = tuple(
        payload for payload in (
            normalize_payload(item, index, warehouse_id) for index, item in enumerate(raw_payloads)
        )
        if payload is not None
    )

    return Warehouse(
        id=warehouse_id,
        number=_text(_pick(raw, "number", "warehouseNumber"), warehouse_id),
        seller_id=_text(_pick(raw, "sellerId") or seller.get("id")),
        seller_name=_text(_pick(raw, "sellerName") or seller.get("name")),
        material=normalize_material(raw_material) if raw_material is not None else None,
        current_stock=stock,
        max_capacity=capacity,
        payloads=payloads,
        extra=_extra(raw, _WAREHOUSE_FIELDS),
    )


def serialize_warehouse(warehouse: Warehouse) -> Dict[str, Any]:
    return {
        "id": warehouse.id,
        "number": warehouse.number,
        "sellerId": warehouse.seller_id,
        "sellerName": warehouse.seller_name,
        "material": warehouse.material,
        "currentStock": warehouse.current_stock,
        "maxCapacity": warehouse.max_capacity,
        "payloads": [
            {
                "id": payload.id,
                "deliveryTime": format_iso(payload.delivery_time),
                "weight": payload.weight,
                "material": payload.material,
                "sellerId": payload.seller_id,
            }
            for payload in warehouse.payloads
        ],
    }


def to_backend_warehouse(
    number: str,
    seller_id: str,
    seller_name: str,
    max_capacity: float,
    material: Optional[str] = None,
) -> Dict[str, Any]:
    payload = {
        "number": number,
        "sellerId": seller_id,
        "sellerName": seller_name,
        "maxCapacity": max_capacity,
    }
    if material:
        payload["rawMaterialName"] = backend_material_name(material)
    return payload


# ==================================================
# PURCHASE ORDERS
# ==================================================

_PURCHASE_ORDER_FIELDS = (
    "id", "purchaseOrderId", "poNumber", "purchaseOrderNumber", "customerId", "customerNumber",
    "customerName", "sellerId", "sellerName", "orderDate", "status", "items", "orderLines",
    "totalValue", "estimatedDeliveryDate",
)


def _normalize_order_line(raw: Any) -> Optional[PurchaseOrderItem]:
    if not isinstance(raw, Mapping):
        logger.warning(f"Skipping malformed order line: {raw!r}")
        return None
    return PurchaseOrderItem(
        material=normalize_material(_pick(raw, "material", "rawMaterialName")),
        quantity=_to_float(_pick(raw, "quantity", "amountInTons")) or 0.0,
        agreed_price_per_ton=_to_float(_pick(raw, "agreedPricePerTon", "pricePerTon")) or 0.0,
    )


def normalize_purchase_order(raw: Any, now: Optional[datetime] = None) -> Optional[PurchaseOrder]:
    """
    Backend purchase order -> PurchaseOrder.

    Line totals, order total and commission are derived from quantity and
    unit price; backend totals are ignored.
    """
    order_id = _record_id(raw, "purchaseOrderId", "id")
    if order_id is None:
        return None

    shape = detect_purchase_order_shape(raw)
    status = lifecycle.normalize_status(
        "purchase_order",
        raw.get("status"),
        aliases=lifecycle.PO_BACKEND_ALIASES,
    )

    order_date = parse_backend_date(raw.get("orderDate"))
    if order_date is None:
        logger.warning(f"Purchase order {order_id} has no valid order date, using current time")
        order_date = now or datetime.now()

    lines = raw.get("orderLines") if shape == INVOICING_PURCHASE_ORDER else raw.get("items")
    if not isinstance(lines, list):
        lines = []
    items = tuple(item for item in map(_normalize_order_line, lines) if item is not None)

    estimated = None
    if status == lifecycle.PO_OUTSTANDING:
        estimated = parse_backend_date(raw.get("estimatedDeliveryDate"))

    return PurchaseOrder(
        id=order_id,
        po_number=_text(_pick(raw, "poNumber", "purchaseOrderNumber")),
        customer_id=_text(_pick(raw, "customerId", "customerNumber")),
        customer_name=_text(raw.get("customerName")),
        seller_id=_text(raw.get("sellerId")),
        seller_name=_text(raw.get("sellerName")),
        order_date=order_date,
        status=status,
        items=items,
        estimated_delivery_date=estimated,
        extra=_extra(raw, _PURCHASE_ORDER_FIELDS),
    )


def serialize_purchase_order(order: PurchaseOrder) -> Dict[str, Any]:
    return {
        "id": order.id,
        "poNumber": order.po_number,
        "customerId": order.customer_id,
        "customerName": order.customer_name,
        "sellerId": order.seller_id,
        "sellerName": order.seller_name,
        "orderDate": format_iso(order.order_date),
        "status": order.status,
        "items": [
            {
                "material": item.material,
                "quantity": item.quantity,
                "agreedPricePerTon": item.agreed_price_per_ton,
                "totalPrice": item.total_price,
            }
            for item in order.items
        ],
        "totalValue": order.total_value,
        "estimatedDeliveryDate": format_iso(order.estimated_delivery_date),
    }


def to_backend_purchase_order(
    po_number: str,
    customer_id: str,
    customer_name: str,
    seller_id: str,
    seller_name: str,
    order_date: datetime,
    items: Iterable[Mapping[str, Any]],
) -> Dict[str, Any]:
    """CreatePurchaseOrderRequest for the invoicing backend."""
    return {
        "purchaseOrderNumber": po_number,
        "customerNumber": customer_id,
        "customerName": customer_name,
        "sellerId": seller_id,
        "sellerName": seller_name,
        "orderDate": order_date.date().isoformat(),
        "orderLines": [
            {
                "lineNumber": line_number,
                "rawMaterialName": backend_material_name(item["material"]),
                "amountInTons": item["quantity"],
                "pricePerTon": item["agreed_price_per_ton"],
            }
            for line_number, item in enumerate(items, start=1)
        ],
    }


# ==================================================
# SHIPPING ORDERS
# ==================================================

_SHIPPING_ORDER_FIELDS = (
    "id", "shippingOrderId", "soNumber", "vesselNumber", "poReference", "customerNumber",
    "customerName", "estimatedArrivalDate", "estimatedDepartureDate", "actualArrivalDate",
    "actualDepartureDate", "status", "inspectionCompleted", "bunkeringCompleted",
    "loadingCompleted", "foremanSignature", "validationDate",
)


def normalize_shipping_order(raw: Any, now: Optional[datetime] = None) -> Optional[ShippingOrder]:
    order_id = _record_id(raw, "id", "shippingOrderId")
    if order_id is None:
        return None

    now = now or datetime.now()
    estimated_arrival = parse_backend_date(raw.get("estimatedArrivalDate"))
    if estimated_arrival is None:
        logger.warning(f"Shipping order {order_id} has no valid estimated arrival, using current time")
        estimated_arrival = now
    estimated_departure = parse_backend_date(raw.get("estimatedDepartureDate"))
    if estimated_departure is None:
        logger.warning(f"Shipping order {order_id} has no valid estimated departure, using arrival")
        estimated_departure = estimated_arrival

    return ShippingOrder(
        id=order_id,
        so_number=_text(raw.get("soNumber")),
        vessel_number=_text(raw.get("vesselNumber")),
        po_reference=_text(raw.get("poReference")),
        customer_number=_text(raw.get("customerNumber")),
        customer_name=_optional_text(raw.get("customerName")),
        estimated_arrival_date=estimated_arrival,
        estimated_departure_date=estimated_departure,
        actual_arrival_date=parse_backend_date(raw.get("actualArrivalDate")),
        actual_departure_date=parse_backend_date(raw.get("actualDepartureDate")),
        status=lifecycle.normalize_status("shipping_order", raw.get("status")),
        inspection_completed=_to_bool(raw.get("inspectionCompleted")),
        bunkering_completed=_to_bool(raw.get("bunkeringCompleted")),
        loading_completed=_to_bool(raw.get("loadingCompleted")),
        foreman_signature=_optional_text(raw.get("foremanSignature")),
        validation_date=parse_backend_date(raw.get("validationDate")),
        extra=_extra(raw, _SHIPPING_ORDER_FIELDS),
    )


def serialize_shipping_order(order: ShippingOrder) -> Dict[str, Any]:
    return {
        "id": order.id,
        "soNumber": order.so_number,
        "vesselNumber": order.vessel_number,
        "poReference": order.po_reference,
        "customerNumber": order.customer_number,
        "customerName": order.customer_name,
        "estimatedArrivalDate": format_iso(order.estimated_arrival_date),
        "estimatedDepartureDate": format_iso(order.estimated_departure_date),
        "actualArrivalDate": format_iso(order.actual_arrival_date),
        "actualDepartureDate": format_iso(order.actual_departure_date),
        "status": order.status,
        "inspectionCompleted": order.inspection_completed,
        "bunkeringCompleted": order.bunkering_completed,
        "loadingCompleted": order.loading_completed,
        "foremanSignature": order.foreman_signature,
        "validationDate": format_iso(order.validation_date),
    }


def to_backend_shipping_order(
    so_number: str,
    vessel_number: str,
    po_reference: str,
    customer_number: str,
    estimated_arrival_date: datetime,
    estimated_departure_date: datetime,
) -> Dict[str, Any]:
    """Write payload for submit_shipping_order ("dd/MM/yyyy HH:mm" dates)."""
    return {
        "soNumber": so_number,
        "vesselNumber": vessel_number,
        "poReference": po_reference,
        "customerNumber": customer_number,
        "estimatedArrivalDate": format_backend_datetime(estimated_arrival_date),
        "estimatedDepartureDate": format_backend_datetime(estimated_departure_date),
    }


def with_completed_flags(order: ShippingOrder, **flags: bool) -> ShippingOrder:
    """
    Whole-record replacement that only ever raises completion flags.

    A flag already True stays True whatever the patch says.
    """
    merged = {
        name: getattr(order, name) or bool(value)
        for name, value in flags.items()
    }
    return replace(order, **merged)


# ==================================================
# NARROW READS
# ==================================================

def normalize_on_site_count(payload: Any) -> FetchResult:
    if isinstance(payload, bool):
        return shape_failure("on-site count is a boolean", "trucks_on_site_count")
    if isinstance(payload, (int, float)):
        return Ok(int(payload))
    if isinstance(payload, Mapping):
        value = _pick(payload, "totalTrucks", "count", "onSite")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return Ok(int(value))
    return shape_failure("unexpected on-site count payload", "trucks_on_site_count")


def normalize_arrival_compliance(payload: Any) -> FetchResult:
    if not isinstance(payload, Mapping):
        return shape_failure("arrival compliance is not an object", "arrival_compliance")

    total = _to_float(payload.get("totalAppointments"))
    on_time = _to_float(payload.get("onTimeArrivals"))
    delayed = _to_float(payload.get("delayedArrivals"))
    if total is None or on_time is None:
        return shape_failure("arrival compliance lacks counts", "arrival_compliance")
    if delayed is None:
        delayed = max(total - on_time, 0)

    arrived = on_time + delayed
    return Ok(ArrivalCompliance(
        total_appointments=int(total),
        on_time_arrivals=int(on_time),
        delayed_arrivals=int(delayed),
        compliance_rate=round(on_time / arrived * 100, 1) if arrived else 0.0,
    ))


# ==================================================
# COLLECTIONS
# ==================================================

def safe_normalize(normalize_fn: Callable[[Any], Optional[Any]], raw: Any, operation: Optional[str] = None) -> Optional[Any]:
    """Run one normalizer; a record it cannot handle counts as malformed (None)."""
    try:
        return normalize_fn(raw)
    except (TypeError, ValueError, KeyError, AttributeError, IndexError) as e:
        logger.warning(f"{operation or 'record'}: skipping record that failed to normalize: {e!r}")
        return None


def _unwrap_list(payload: Any) -> Any:
    # Paginated envelope: {"data": [...], "pagination": {...}, "success": true}
    if isinstance(payload, Mapping) and isinstance(payload.get("data"), list):
        return payload["data"]
    return payload


def normalize_collection(
    payload: Any,
    normalize_fn: Callable[[Any], Optional[Any]],
    operation: Optional[str] = None,
) -> FetchResult:
    """
    Normalize a list payload record by record.

    Returns Err(shape) when the payload is not a list, or when a non-empty
    list yields no usable record at all.
    """
    records = _unwrap_list(payload)
    if not isinstance(records, list):
        logger.warning(f"{operation or 'collection'}: expected a list, got {type(records).__name__}")
        return shape_failure(f"expected a list, got {type(records).__name__}", operation)

    normalized: List[Any] = []
    for raw in records:
        record = safe_normalize(normalize_fn, raw, operation)
        if record is not None:
            normalized.append(record)

    skipped = len(records) - len(normalized)
    if records and not normalized:
        return shape_failure(f"none of {len(records)} records could be normalized", operation)
    if skipped:
        logger.warning(f"{operation or 'collection'}: skipped {skipped} malformed records")

    return Ok(normalized)


def normalize_record(payload: Any, normalize_fn: Callable[[Any], Optional[Any]], operation: Optional[str] = None) -> FetchResult:
    record = safe_normalize(normalize_fn, payload, operation)
    if record is None:
        return shape_failure("record could not be normalized", operation)
    return Ok(record)


def replace_by_id(records: Iterable[Any], record: Any) -> List[Any]:
    """Collection with `record` replacing the entry of the same id (prepended when new)."""
    records = list(records)
    for index, existing in enumerate(records):
        if existing.id == record.id:
            records[index] = record
            return records
    return [record] + records


def remove_by_id(records: Iterable[Any], record_id: str) -> List[Any]:
    return [existing for existing in records if existing.id != record_id]


def to_backend_purchase_order_status(status: str) -> str:
    """Canonical PO status -> invoicing vocabulary ("outstanding" -> "PENDING")."""
    for backend, canonical in lifecycle.PO_BACKEND_ALIASES.items():
        if canonical == status:
            return backend.upper()
    return status.upper()
