from typing import List, Sequence

from mineralflow.core import lifecycle
from mineralflow.core.constants import CAPACITY_ALERT_THRESHOLD
from mineralflow.core.models import Alert, ShippingOrder, Truck, Warehouse


# ==================================================
# CONFIG
# ==================================================
CATEGORY_CAPACITY = "capacity"
CATEGORY_VESSEL_DEPARTED = "vessel_departed"
CATEGORY_TRUCK_AT_BRIDGE = "truck_at_bridge"
CATEGORY_TRUCK_AT_WAREHOUSE = "truck_at_warehouse"
CATEGORY_TRUCK_AT_GATE = "truck_at_gate"
CATEGORY_NORMAL = "normal"

ALL_CLEAR_MESSAGE = "All systems operating normally"


def _first(records, predicate):
    return next((record for record in records if predicate(record)), None)


# ==================================================
# PUBLIC API
# ==================================================
def build_alert_feed(
    warehouses: Sequence[Warehouse],
    trucks: Sequence[Truck],
    shipping_orders: Sequence[ShippingOrder],
) -> List[Alert]:
    """
    Operational alert feed.

    Categories are evaluated in a fixed order and each contributes at most
    one alert (about its first matching record). The all-clear alert is
    returned only when no category fires.
    """
    alerts: List[Alert] = []

    # --------------------------------------
    # Warehouse nearly full
    # --------------------------------------
    warehouse = _first(warehouses, lambda w: w.utilization >= CAPACITY_ALERT_THRESHOLD)
    if warehouse:
        alerts.append(Alert(
            category=CATEGORY_CAPACITY,
            type="warning",
            message=f"Warehouse {warehouse.number} at {warehouse.capacity_pct}% capacity",
            location=f"Warehouse {warehouse.number}",
            subject_id=warehouse.id,
        ))

    # --------------------------------------
    # Vessel departed
    # --------------------------------------
    vessel = _first(
        shipping_orders,
        lambda so: so.status == lifecycle.SO_DEPARTED and so.actual_departure_date is not None,
    )
    if vessel:
        alerts.append(Alert(
            category=CATEGORY_VESSEL_DEPARTED,
            type="success",
            message=f"Vessel {vessel.vessel_number} has departed successfully",
            location="Port",
            subject_id=vessel.id,
        ))

    # --------------------------------------
    # Truck locations
    # --------------------------------------
    truck = _first(trucks, lambda t: t.status == lifecycle.TRUCK_WEIGHING_BRIDGE)
    if truck:
        alerts.append(Alert(
            category=CATEGORY_TRUCK_AT_BRIDGE,
            type="info",
            message=f"Truck {truck.license_plate} currently at Weighing Bridge",
            location="Weighing Bridge",
            subject_id=truck.id,
        ))

    truck = _first(trucks, lambda t: t.status == lifecycle.TRUCK_WAREHOUSE)
    if truck:
        number = truck.warehouse_number or "Unknown"
        alerts.append(Alert(
            category=CATEGORY_TRUCK_AT_WAREHOUSE,
            type="success",
            message=f"Truck {truck.license_plate} unloading at Warehouse {number}",
            location=f"Warehouse {number}",
            subject_id=truck.id,
        ))

    truck = _first(trucks, lambda t: t.status == lifecycle.TRUCK_GATE)
    if truck:
        alerts.append(Alert(
            category=CATEGORY_TRUCK_AT_GATE,
            type="warning",
            message=f"Truck {truck.license_plate} waiting at Gate for processing",
            location="Gate",
            subject_id=truck.id,
        ))

    if not alerts:
        alerts.append(Alert(category=CATEGORY_NORMAL, type="info", message=ALL_CLEAR_MESSAGE))

    return alerts
