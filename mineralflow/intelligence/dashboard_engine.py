"""
DERIVED STATE AGGREGATOR

Purpose:
- Status buckets per entity type
- Truck flow metrics (gate, weighing bridge, warehouse)
- Warehouse capacity classification and site-wide utilization
- Arrival compliance against the one-hour arrival window
- Dashboard headline metrics

Requirements:
• Pure functions of the collections (plus an explicit `now`)
• Unknown statuses counted as "unknown", never coerced

Author: MineralFlow Operations
"""

from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from mineralflow.core import lifecycle
from mineralflow.core.constants import WAREHOUSE_HIGH_THRESHOLD, WAREHOUSE_OVER_THRESHOLD
from mineralflow.core.models import (
    Appointment,
    AppointmentOverview,
    ArrivalCompliance,
    DashboardMetrics,
    PurchaseOrder,
    ShippingOrder,
    Truck,
    Warehouse,
)

# ==================================================
# CONFIG
# ==================================================
CAPACITY_NORMAL = "normal"
CAPACITY_HIGH = "high"
CAPACITY_OVER = "over"

TODAY_APPOINTMENT_LIMIT = 5


# ==================================================
# STATUS BUCKETS
# ==================================================
def count_statuses(machine: str, records: Iterable) -> Dict[str, int]:
    """Count records per status bucket; unrecognised tokens land in "unknown"."""
    counts = Counter(lifecycle.bucket_for(machine, record.status) for record in records)
    return dict(counts)


def appointment_overview(appointments: Sequence[Appointment]) -> AppointmentOverview:
    statuses = [appointment.status for appointment in appointments]
    return AppointmentOverview(
        total=len(statuses),
        scheduled=statuses.count(lifecycle.APPOINTMENT_SCHEDULED),
        in_progress=sum(1 for status in statuses if lifecycle.is_appointment_in_progress(status)),
        departed=statuses.count(lifecycle.APPOINTMENT_DEPARTED),
        cancelled=statuses.count(lifecycle.APPOINTMENT_CANCELLED),
    )


def truck_metrics(trucks: Sequence[Truck]) -> Dict[str, int]:
    statuses = [truck.status for truck in trucks]
    return {
        "total": len(statuses),
        "active": sum(1 for status in statuses if status in lifecycle.TRUCK_ACTIVE),
        "completed": statuses.count(lifecycle.TRUCK_EXIT),
        "on_site": sum(1 for status in statuses if status in lifecycle.TRUCK_ON_SITE),
        "at_gate": statuses.count(lifecycle.TRUCK_GATE),
        "at_bridge": statuses.count(lifecycle.TRUCK_WEIGHING_BRIDGE),
        "at_warehouse": statuses.count(lifecycle.TRUCK_WAREHOUSE),
    }


# ==================================================
# WAREHOUSE CAPACITY
# ==================================================
def classify_capacity(warehouse: Warehouse) -> str:
    utilization = warehouse.utilization
    if utilization > WAREHOUSE_OVER_THRESHOLD:
        return CAPACITY_OVER
    if utilization >= WAREHOUSE_HIGH_THRESHOLD:
        return CAPACITY_HIGH
    return CAPACITY_NORMAL


def capacity_summary(warehouses: Sequence[Warehouse]) -> Dict[str, float]:
    """
    Site-wide capacity figures.

    "at capacity" counts every warehouse at or above the high threshold,
    over-capacity ones included.
    """
    total = sum(warehouse.max_capacity for warehouse in warehouses)
    used = sum(warehouse.current_stock for warehouse in warehouses)
    classes = [classify_capacity(warehouse) for warehouse in warehouses]

    used_pct = round(used / total * 100) if total else 0
    available_pct = round(max(total - used, 0) / total * 100) if total else 0

    return {
        "total_capacity": total,
        "used_capacity": used,
        "used_pct": used_pct,
        "available_pct": available_pct,
        "at_capacity": sum(1 for c in classes if c in (CAPACITY_HIGH, CAPACITY_OVER)),
        "over_capacity": classes.count(CAPACITY_OVER),
    }


# ==================================================
# ARRIVAL COMPLIANCE
# ==================================================
def compute_arrival_compliance(
    appointments: Sequence[Appointment],
    trucks: Sequence[Truck],
) -> ArrivalCompliance:
    """
    On-time vs delayed arrivals.

    An arrival is on time when the paired truck's actual arrival is no
    later than the end of the appointment's arrival window. Appointments
    whose truck has not arrived are not counted either way.
    """
    arrivals = {truck.id: truck.actual_arrival for truck in trucks if truck.actual_arrival is not None}

    on_time = delayed = 0
    for appointment in appointments:
        actual = arrivals.get(appointment.truck_id)
        if actual is None:
            continue
        if actual <= appointment.arrival_window.end:
            on_time += 1
        else:
            delayed += 1

    arrived = on_time + delayed
    return ArrivalCompliance(
        total_appointments=len(appointments),
        on_time_arrivals=on_time,
        delayed_arrivals=delayed,
        compliance_rate=round(on_time / arrived * 100, 1) if arrived else 0.0,
    )


def todays_appointments(appointments: Sequence[Appointment], now: Optional[datetime] = None) -> List[Appointment]:
    """First five appointments scheduled on the calendar day of `now`."""
    today = (now or datetime.now()).date()
    todays = [appointment for appointment in appointments if appointment.scheduled_time.date() == today]
    return todays[:TODAY_APPOINTMENT_LIMIT]


# ==================================================
# HEADLINE METRICS
# ==================================================
def compute_dashboard_metrics(
    trucks: Sequence[Truck],
    warehouses: Sequence[Warehouse],
    purchase_orders: Sequence[PurchaseOrder],
    shipping_orders: Sequence[ShippingOrder],
) -> DashboardMetrics:
    flow = truck_metrics(trucks)
    capacity = capacity_summary(warehouses)

    return DashboardMetrics(
        trucks_on_site=flow["on_site"],
        trucks_at_gate=flow["at_gate"],
        trucks_at_bridge=flow["at_bridge"],
        trucks_at_warehouse=flow["at_warehouse"],
        scheduled_arrivals=sum(1 for truck in trucks if truck.status == lifecycle.TRUCK_SCHEDULED),
        warehouses_at_capacity=capacity["at_capacity"],
        warehouses_over_capacity=capacity["over_capacity"],
        total_warehouse_capacity=capacity["total_capacity"],
        used_warehouse_capacity=capacity["used_capacity"],
        used_capacity_pct=capacity["used_pct"],
        available_capacity_pct=capacity["available_pct"],
        outstanding_pos=sum(1 for po in purchase_orders if po.status == lifecycle.PO_OUTSTANDING),
        fulfilled_pos=sum(1 for po in purchase_orders if po.status == lifecycle.PO_FULFILLED),
        ships_in_port=sum(1 for so in shipping_orders if so.status in lifecycle.SO_IN_PORT),
        pending_inspections=sum(
            1 for so in shipping_orders
            if so.status == lifecycle.SO_VALIDATED and not so.inspection_completed
        ),
        pending_bunkering=sum(
            1 for so in shipping_orders
            if so.status == lifecycle.SO_BUNKERING and not so.bunkering_completed
        ),
    )
