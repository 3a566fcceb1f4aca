"""Canonical operational domain model (post-normalization)."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from mineralflow.core.constants import COMMISSION_PERCENTAGE


@dataclass(frozen=True)
class Truck:
    id: str
    license_plate: str
    material: str
    planned_arrival: datetime
    status: str
    seller_id: str
    seller_name: str
    actual_arrival: Optional[datetime] = None
    warehouse_number: Optional[str] = None
    gross_weight: Optional[float] = None
    tare_weight: Optional[float] = None
    net_weight: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class ArrivalWindow:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class Appointment:
    id: str
    truck_id: str
    license_plate: str
    seller_id: str
    seller_name: str
    material: str
    scheduled_time: datetime
    arrival_window: ArrivalWindow
    status: str
    warehouse_number: str = "Unknown"
    truck_type: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class PayloadRecord:
    id: str
    delivery_time: datetime
    weight: float
    material: str
    seller_id: str


@dataclass(frozen=True)
class Warehouse:
    id: str
    number: str
    seller_id: str
    seller_name: str
    current_stock: float
    max_capacity: float
    material: Optional[str] = None
    payloads: Tuple[PayloadRecord, ...] = ()
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def utilization(self) -> float:
        return self.current_stock / self.max_capacity

    @property
    def capacity_pct(self) -> int:
        return round(self.utilization * 100)


@dataclass(frozen=True)
class PurchaseOrderItem:
    material: str
    quantity: float
    agreed_price_per_ton: float

    @property
    def total_price(self) -> float:
        return self.quantity * self.agreed_price_per_ton


@dataclass(frozen=True)
class PurchaseOrder:
    id: str
    po_number: str
    customer_id: str
    customer_name: str
    seller_id: str
    seller_name: str
    order_date: datetime
    status: str
    items: Tuple[PurchaseOrderItem, ...] = ()
    estimated_delivery_date: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def total_value(self) -> float:
        return sum(item.total_price for item in self.items)

    @property
    def commission(self) -> float:
        return self.total_value * COMMISSION_PERCENTAGE


@dataclass(frozen=True)
class ShippingOrder:
    id: str
    so_number: str
    vessel_number: str
    po_reference: str
    customer_number: str
    estimated_arrival_date: datetime
    estimated_departure_date: datetime
    status: str
    actual_arrival_date: Optional[datetime] = None
    actual_departure_date: Optional[datetime] = None
    inspection_completed: bool = False
    bunkering_completed: bool = False
    loading_completed: bool = False
    customer_name: Optional[str] = None
    foreman_signature: Optional[str] = None
    validation_date: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


# ==================================================
# DERIVED (never persisted)
# ==================================================

@dataclass(frozen=True)
class AppointmentOverview:
    total: int
    scheduled: int
    in_progress: int
    departed: int
    cancelled: int


@dataclass(frozen=True)
class ArrivalCompliance:
    total_appointments: int
    on_time_arrivals: int
    delayed_arrivals: int
    compliance_rate: float


@dataclass(frozen=True)
class DashboardMetrics:
    trucks_on_site: int
    trucks_at_gate: int
    trucks_at_bridge: int
    trucks_at_warehouse: int
    scheduled_arrivals: int
    warehouses_at_capacity: int
    warehouses_over_capacity: int
    total_warehouse_capacity: float
    used_warehouse_capacity: float
    used_capacity_pct: int
    available_capacity_pct: int
    outstanding_pos: int
    fulfilled_pos: int
    ships_in_port: int
    pending_inspections: int
    pending_bunkering: int


@dataclass(frozen=True)
class Alert:
    category: str
    type: str
    message: str
    location: Optional[str] = None
    subject_id: Optional[str] = None
