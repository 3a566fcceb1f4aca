"""Shared factories for the MineralFlow tests."""

from datetime import datetime, timedelta

import pytest

from mineralflow.core.models import (
    Appointment,
    ArrivalWindow,
    PurchaseOrder,
    PurchaseOrderItem,
    ShippingOrder,
    Truck,
    Warehouse,
)

NOW = datetime(2025, 1, 15, 10, 0)


class FakeClock:
    """Manually advanced clock for the cache (epoch seconds)."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


@pytest.fixture
def clock():
    return FakeClock()


def make_truck(id="truck-1", status="GATE", **overrides):
    fields = dict(
        id=id,
        license_plate="KDG001",
        material="gypsum",
        planned_arrival=NOW,
        status=status,
        seller_id="seller-1",
        seller_name="Nordic Minerals Ltd",
    )
    fields.update(overrides)
    return Truck(**fields)


def make_appointment(id="appointment-1", truck_id="truck-1", scheduled_time=NOW, status="scheduled", **overrides):
    fields = dict(
        id=id,
        truck_id=truck_id,
        license_plate="KDG001",
        seller_id="seller-1",
        seller_name="Nordic Minerals Ltd",
        material="gypsum",
        scheduled_time=scheduled_time,
        arrival_window=ArrivalWindow(scheduled_time, scheduled_time + timedelta(hours=1)),
        status=status,
    )
    fields.update(overrides)
    return Appointment(**fields)


def make_warehouse(id="warehouse-1", current_stock=100_000.0, max_capacity=500_000.0, **overrides):
    fields = dict(
        id=id,
        number="W01",
        seller_id="seller-1",
        seller_name="Nordic Minerals Ltd",
        current_stock=current_stock,
        max_capacity=max_capacity,
        material="gypsum",
    )
    fields.update(overrides)
    return Warehouse(**fields)


def make_purchase_order(id="po-1", status="outstanding", items=None, **overrides):
    fields = dict(
        id=id,
        po_number="PO0001",
        customer_id="buyer-1",
        customer_name="Global Steel Corp",
        seller_id="seller-1",
        seller_name="Nordic Minerals Ltd",
        order_date=NOW,
        status=status,
        items=tuple(items) if items is not None else (PurchaseOrderItem("gypsum", 100.0, 13.0),),
    )
    fields.update(overrides)
    return PurchaseOrder(**fields)


def make_shipping_order(id="so-001", status="arrived", **overrides):
    fields = dict(
        id=id,
        so_number="SO-2025-001",
        vessel_number="VESSEL-001",
        po_reference="PO0001",
        customer_number="buyer-1",
        estimated_arrival_date=NOW,
        estimated_departure_date=NOW + timedelta(days=2),
        status=status,
    )
    fields.update(overrides)
    return ShippingOrder(**fields)
