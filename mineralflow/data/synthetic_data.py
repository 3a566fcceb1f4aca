"""
SYNTHETIC OPERATIONS DATASET

Purpose:
Fallback data for every read when a backend subsystem is unreachable or
returns an unusable shape.

Key Features:
- Deterministic: a pure function of (seed, anchor time)
- Generated once per process, so repeated fallbacks show the same records
- Internally consistent: appointments pair 1:1 with trucks, stock within
  capacity, order totals derived from their lines, shipping flags
  consistent with status

Author: MineralFlow Operations
"""

import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from mineralflow import config
from mineralflow.core import lifecycle
from mineralflow.core.constants import (
    ARRIVAL_WINDOW_HOURS,
    MATERIAL_TYPES,
    MATERIALS,
    MAX_WAREHOUSE_CAPACITY,
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
from mineralflow.intelligence import dashboard_engine

logger = logging.getLogger(__name__)

TRUCK_COUNT = 25
PURCHASE_ORDER_COUNT = 15

SELLERS = (
    ("seller-1", "Nordic Minerals Ltd"),
    ("seller-2", "Baltic Materials Co"),
    ("seller-3", "European Resources"),
    ("seller-4", "Atlantic Mining Group"),
    ("seller-5", "Continental Supplies"),
)

BUYERS = (
    ("buyer-1", "Global Steel Corp"),
    ("buyer-2", "Construction Giants Ltd"),
    ("buyer-3", "Industrial Solutions"),
    ("buyer-4", "Maritime Builders"),
)

TRUCK_TYPES = ("LARGE", "MEDIUM", "SMALL")

TRUCK_STATUSES = (
    lifecycle.TRUCK_SCHEDULED,
    lifecycle.TRUCK_GATE,
    lifecycle.TRUCK_WEIGHING_BRIDGE,
    lifecycle.TRUCK_WAREHOUSE,
    lifecycle.TRUCK_EXIT,
    lifecycle.TRUCK_GARAGE,
)

# One vessel per stage of the waterside lifecycle
SHIPPING_STATUSES = (
    lifecycle.SO_ARRIVED,
    lifecycle.SO_INSPECTING,
    lifecycle.SO_VALIDATED,
    lifecycle.SO_BUNKERING,
    lifecycle.SO_READY_FOR_LOADING,
    lifecycle.SO_DEPARTED,
)

# Waterside flags implied by each status: (inspection, bunkering, loading)
_SHIPPING_FLAGS = {
    lifecycle.SO_ARRIVED: (False, False, False),
    lifecycle.SO_INSPECTING: (False, False, False),
    lifecycle.SO_VALIDATED: (False, False, False),
    lifecycle.SO_BUNKERING: (True, False, False),
    lifecycle.SO_READY_FOR_LOADING: (True, True, False),
    lifecycle.SO_DEPARTED: (True, True, True),
}


@dataclass(frozen=True)
class SyntheticDataset:
    seed: int
    anchor: datetime
    trucks: Tuple[Truck, ...]
    appointments: Tuple[Appointment, ...]
    warehouses: Tuple[Warehouse, ...]
    purchase_orders: Tuple[PurchaseOrder, ...]
    shipping_orders: Tuple[ShippingOrder, ...]


def _between(rng: random.Random, start: datetime, end: datetime) -> datetime:
    """Random instant in [start, end], truncated to the minute."""
    if end < start:
        start, end = end, start
    offset = rng.uniform(0, (end - start).total_seconds())
    return (start + timedelta(seconds=offset)).replace(second=0, microsecond=0)


# ==================================================
# LANDSIDE
# ==================================================

def _generate_trucks(rng: random.Random, anchor: datetime) -> List[Truck]:
    trucks = []
    for i in range(TRUCK_COUNT):
        seller_id, seller_name = rng.choice(SELLERS)
        material = rng.choice(MATERIAL_TYPES)
        status = rng.choice(TRUCK_STATUSES)
        planned = _between(rng, anchor - timedelta(hours=4), anchor + timedelta(hours=8))

        actual = gross = tare = net = None
        if status in lifecycle.TRUCK_ON_SITE or status == lifecycle.TRUCK_EXIT:
            actual = _between(rng, planned, anchor)
            gross = round(rng.uniform(25.0, 40.0), 2)
            tare = round(rng.uniform(5.0, 8.0), 2)
            net = gross - tare

        trucks.append(Truck(
            id=f"truck-{i + 1}",
            license_plate=f"KDG{i + 1:03d}",
            material=material,
            planned_arrival=planned,
            actual_arrival=actual,
            status=status,
            seller_id=seller_id,
            seller_name=seller_name,
            warehouse_number=f"W{(i % 25) + 1:02d}",
            gross_weight=gross,
            tare_weight=tare,
            net_weight=net,
        ))
    return trucks


def _generate_appointments(rng: random.Random, trucks: List[Truck]) -> List[Appointment]:
    appointments = []
    for i, truck in enumerate(trucks):
        start = truck.planned_arrival
        appointments.append(Appointment(
            id=f"appointment-{i + 1}",
            truck_id=truck.id,
            license_plate=truck.license_plate,
            seller_id=truck.seller_id,
            seller_name=truck.seller_name,
            material=truck.material,
            scheduled_time=start,
            arrival_window=ArrivalWindow(start=start, end=start + timedelta(hours=ARRIVAL_WINDOW_HOURS)),
            status=lifecycle.appointment_status_for_truck(truck.status),
            warehouse_number=truck.warehouse_number or "Unknown",
            truck_type=rng.choice(TRUCK_TYPES),
        ))
    return appointments


# ==================================================
# WAREHOUSING
# ==================================================

def _generate_payloads(
    rng: random.Random,
    anchor: datetime,
    warehouse_index: int,
    material: str,
    seller_id: str,
    stock: float,
) -> Tuple[PayloadRecord, ...]:
    count = rng.randint(2, 9)
    raw_weights = [rng.uniform(1000, 6000) for _ in range(count)]

    # Scale the delivery log to 5-30% of what is in stock
    target = stock * rng.uniform(0.05, 0.30)
    scale = target / sum(raw_weights)

    return tuple(
        PayloadRecord(
            id=f"payload-{warehouse_index}-{i}",
            delivery_time=_between(rng, anchor - timedelta(days=7), anchor),
            weight=weight * scale,
            material=material,
            seller_id=seller_id,
        )
        for i, weight in enumerate(raw_weights)
    )


def _generate_warehouses(rng: random.Random, anchor: datetime) -> List[Warehouse]:
    warehouses = []
    for seller_index, (seller_id, seller_name) in enumerate(SELLERS):
        for material_index, material in enumerate(MATERIAL_TYPES):
            index = seller_index * len(MATERIAL_TYPES) + material_index
            stock = float(int(rng.uniform(0, MAX_WAREHOUSE_CAPACITY)))

            warehouses.append(Warehouse(
                id=f"warehouse-{index + 1}",
                number=f"W{index + 1:02d}",
                seller_id=seller_id,
                seller_name=seller_name,
                material=material if stock > 1000 else None,
                current_stock=stock,
                max_capacity=float(MAX_WAREHOUSE_CAPACITY),
                payloads=_generate_payloads(rng, anchor, index, material, seller_id, stock),
            ))
    return warehouses


# ==================================================
# INVOICING
# ==================================================

def _generate_purchase_orders(rng: random.Random, anchor: datetime) -> List[PurchaseOrder]:
    statuses = (lifecycle.PO_OUTSTANDING, lifecycle.PO_FULFILLED, lifecycle.PO_CANCELLED)
    orders = []
    for i in range(PURCHASE_ORDER_COUNT):
        buyer_id, buyer_name = rng.choice(BUYERS)
        seller_id, seller_name = rng.choice(SELLERS)

        items = []
        for _ in range(rng.randint(1, 3)):
            material = rng.choice(MATERIAL_TYPES)
            items.append(PurchaseOrderItem(
                material=material,
                quantity=float(rng.randint(10_000, 59_999)),
                # +/-10% around list price
                agreed_price_per_ton=round(MATERIALS[material]["price_per_ton"] * rng.uniform(0.9, 1.1), 2),
            ))

        status = rng.choice(statuses)
        estimated = None
        if status == lifecycle.PO_OUTSTANDING:
            estimated = _between(rng, anchor, anchor + timedelta(days=14))

        orders.append(PurchaseOrder(
            id=f"po-{i + 1}",
            po_number=f"PO{i + 1:04d}",
            customer_id=buyer_id,
            customer_name=buyer_name,
            seller_id=seller_id,
            seller_name=seller_name,
            order_date=_between(rng, anchor - timedelta(days=30), anchor),
            status=status,
            items=tuple(items),
            estimated_delivery_date=estimated,
        ))
    return orders


# ==================================================
# WATERSIDE
# ==================================================

def _generate_shipping_orders(rng: random.Random, anchor: datetime) -> List[ShippingOrder]:
    orders = []
    for i, status in enumerate(SHIPPING_STATUSES):
        buyer_id, buyer_name = BUYERS[i % len(BUYERS)]
        eta = _between(rng, anchor - timedelta(days=3), anchor - timedelta(hours=2))
        etd = eta + timedelta(days=2, hours=rng.randint(0, 12))
        inspection, bunkering, loading = _SHIPPING_FLAGS[status]

        actual_departure = None
        if status == lifecycle.SO_DEPARTED:
            actual_departure = min(etd, anchor)

        orders.append(ShippingOrder(
            id=f"so-{i + 1:03d}",
            so_number=f"SO-{anchor.year}-{i + 1:03d}",
            vessel_number=f"VESSEL-{i + 1:03d}",
            po_reference=f"PO{i + 1:04d}",
            customer_number=buyer_id,
            customer_name=buyer_name,
            estimated_arrival_date=eta,
            estimated_departure_date=etd,
            actual_arrival_date=eta + timedelta(minutes=rng.randint(0, 90)),
            actual_departure_date=actual_departure,
            status=status,
            inspection_completed=inspection,
            bunkering_completed=bunkering,
            loading_completed=loading,
            validation_date=eta + timedelta(hours=6) if inspection else None,
        ))
    return orders


# ==================================================
# DATASET
# ==================================================

def generate_synthetic_dataset(seed: int, anchor: datetime) -> SyntheticDataset:
    """
    Build the complete fallback dataset.

    Same (seed, anchor) -> identical dataset, record for record.
    """
    rng = random.Random(seed)
    anchor = anchor.replace(second=0, microsecond=0)

    trucks = _generate_trucks(rng, anchor)
    appointments = _generate_appointments(rng, trucks)
    warehouses = _generate_warehouses(rng, anchor)
    purchase_orders = _generate_purchase_orders(rng, anchor)
    shipping_orders = _generate_shipping_orders(rng, anchor)

    return SyntheticDataset(
        seed=seed,
        anchor=anchor,
        trucks=tuple(trucks),
        appointments=tuple(appointments),
        warehouses=tuple(warehouses),
        purchase_orders=tuple(purchase_orders),
        shipping_orders=tuple(shipping_orders),
    )


_dataset: Optional[SyntheticDataset] = None
_dataset_lock = threading.Lock()


def get_synthetic_dataset() -> SyntheticDataset:
    """Process-wide dataset, generated on first use."""
    global _dataset
    with _dataset_lock:
        if _dataset is None:
            seed = config.get_synthetic_seed()
            if seed is None:
                seed = random.SystemRandom().randrange(2 ** 31)
            _dataset = generate_synthetic_dataset(seed, datetime.now())
            logger.info(f"Generated synthetic dataset (seed={seed}, anchor={_dataset.anchor})")
        return _dataset


def reset_synthetic_dataset() -> None:
    global _dataset
    with _dataset_lock:
        _dataset = None


# ==================================================
# FILTERED FALLBACKS (narrow reads)
# ==================================================

def unmatched_shipping_orders(dataset: SyntheticDataset) -> List[ShippingOrder]:
    """Vessels in port that the foreman has not yet matched to a purchase order."""
    return [order for order in dataset.shipping_orders if order.status == lifecycle.SO_ARRIVED]


def shipment_arrivals(dataset: SyntheticDataset) -> List[ShippingOrder]:
    return [
        order for order in dataset.shipping_orders
        if order.actual_arrival_date is not None and order.status in lifecycle.SO_IN_PORT
    ]


def outstanding_inspections(dataset: SyntheticDataset) -> List[ShippingOrder]:
    return [
        order for order in dataset.shipping_orders
        if order.status in lifecycle.SO_IN_PORT and not order.inspection_completed
    ]


def outstanding_bunkering(dataset: SyntheticDataset) -> List[ShippingOrder]:
    return [
        order for order in dataset.shipping_orders
        if order.status in lifecycle.SO_IN_PORT
        and order.inspection_completed
        and not order.bunkering_completed
    ]


def vessel_operations(dataset: SyntheticDataset, vessel_number: str) -> List[ShippingOrder]:
    return [order for order in dataset.shipping_orders if order.vessel_number == vessel_number]


def operations_overview(dataset: SyntheticDataset) -> Dict[str, int]:
    return dashboard_engine.count_statuses("shipping_order", dataset.shipping_orders)


def trucks_on_site_count(dataset: SyntheticDataset) -> int:
    return sum(1 for truck in dataset.trucks if truck.status in lifecycle.TRUCK_ON_SITE)


def arrival_compliance(dataset: SyntheticDataset) -> ArrivalCompliance:
    return dashboard_engine.compute_arrival_compliance(dataset.appointments, dataset.trucks)
