"""
Centralized Operational Data Loading for MineralFlow Operations
Mandate: single source of truth, one registry of every backend collection

CRITICAL PRINCIPLE:
All reads and writes of operational data go through OperationalDataLoader.
Reads are served by the ResourceCache (live, last-known-good or synthetic);
writes go straight to the backend and never fake success.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from mineralflow import config
from mineralflow.core import lifecycle
from mineralflow.core.models import Alert, AppointmentOverview, ArrivalCompliance, DashboardMetrics
from mineralflow.core.result import FetchFailure, FetchResult, Ok, shape_failure
from mineralflow.core.validation import (
    ValidationError,
    require,
    validate_appointment_time,
    validate_license_plate,
    validate_material,
    validate_order_lines,
    validate_truck_weight,
    validate_vessel_number,
)
from mineralflow.data.synthetic_data import (
    SyntheticDataset,
    arrival_compliance as synthetic_arrival_compliance,
    get_synthetic_dataset,
    operations_overview as synthetic_operations_overview,
    outstanding_bunkering as synthetic_outstanding_bunkering,
    outstanding_inspections as synthetic_outstanding_inspections,
    shipment_arrivals as synthetic_shipment_arrivals,
    trucks_on_site_count as synthetic_trucks_on_site_count,
    unmatched_shipping_orders as synthetic_unmatched_shipping_orders,
    vessel_operations as synthetic_vessel_operations,
)
from mineralflow.integrations.api_gateway import ApiGateway
from mineralflow.intelligence import alert_engine, dashboard_engine, normalizer
from mineralflow.performance.cache_manager import (
    DATA_SOURCE_LIVE,
    DATA_SOURCE_MOCK,
    CachePolicy,
    ResourceCache,
)

logger = logging.getLogger(__name__)

# Primary collections
TRUCKS = "trucks"
APPOINTMENTS = "appointments"
WAREHOUSES = "warehouses"
PURCHASE_ORDERS = "purchase_orders"
SHIPPING_ORDERS = "shipping_orders"

PRIMARY_COLLECTIONS = (TRUCKS, APPOINTMENTS, WAREHOUSES, PURCHASE_ORDERS, SHIPPING_ORDERS)

# Narrow reads
TRUCKS_ON_SITE_COUNT = "trucks_on_site_count"
ARRIVAL_COMPLIANCE = "arrival_compliance"
UNMATCHED_SHIPPING_ORDERS = "unmatched_shipping_orders"
SHIPMENT_ARRIVALS = "shipment_arrivals"
OUTSTANDING_INSPECTIONS = "outstanding_inspections"
OUTSTANDING_BUNKERING = "outstanding_bunkering"
OPERATIONS_OVERVIEW = "operations_overview"

# Derived (computed locally from cached collections)
APPOINTMENT_OVERVIEW = "appointment_overview"
WAREHOUSE_OVERVIEW = "warehouse_overview"
PURCHASE_ORDER_OVERVIEW = "purchase_order_overview"
DASHBOARD = "dashboard"

DERIVED_SOURCES = {
    APPOINTMENT_OVERVIEW: (APPOINTMENTS,),
    WAREHOUSE_OVERVIEW: (WAREHOUSES,),
    PURCHASE_ORDER_OVERVIEW: (PURCHASE_ORDERS,),
    DASHBOARD: PRIMARY_COLLECTIONS,
}

DERIVED_POLICY = CachePolicy(stale_after=0, gc_after=300, max_retries=0, retry_delay=0)


@dataclass(frozen=True)
class CollectionView:
    """What the UI renders for one collection."""

    key: str
    value: Any
    loading: bool
    error: Optional[FetchFailure]
    data_source: str
    fetched_at: Optional[datetime]
    refetch: Callable[[], "CollectionView"] = field(repr=False, compare=False)

    @property
    def is_mock(self) -> bool:
        return self.data_source == DATA_SOURCE_MOCK


@dataclass(frozen=True)
class MutationResult:
    ok: bool
    data: Any = None
    error: Optional[FetchFailure] = None


@dataclass(frozen=True)
class DashboardSnapshot:
    metrics: DashboardMetrics
    alerts: List[Alert]
    todays_appointments: list
    appointment_overview: AppointmentOverview
    arrival_compliance: ArrivalCompliance
    data_sources: Dict[str, str]
    errors: Dict[str, FetchFailure]
    loading: bool = False

    @property
    def is_mock(self) -> bool:
        return any(source == DATA_SOURCE_MOCK for source in self.data_sources.values())


class OperationalDataLoader:
    """
    Registry of every operational collection plus the mutations on them.

    DESIGN:
    1. One ResourceCache per dashboard session (injectable for tests)
    2. Each collection registered once with its own CachePolicy
    3. Mutations validate client-side, call the backend, patch optimistically
       on success and invalidate the collection and its dependents
    """

    def __init__(
        self,
        gateway: Optional[ApiGateway] = None,
        cache: Optional[ResourceCache] = None,
        clock: Optional[Callable[[], datetime]] = None,
        dataset: Optional[Callable[[], SyntheticDataset]] = None,
    ):
        self.gateway = gateway or ApiGateway()
        self.cache = cache or ResourceCache()
        self._clock = clock or datetime.now
        self._dataset = dataset or get_synthetic_dataset
        self._register_collections()

    # ==================================================
    # REGISTRATION
    # ==================================================

    def _register_collections(self) -> None:
        trucks_policy = CachePolicy(**config.TRUCK_CACHE_POLICY)
        list_policy = CachePolicy(**config.LIST_CACHE_POLICY)
        warehouse_policy = CachePolicy(**config.WAREHOUSE_CACHE_POLICY)
        narrow_policy = CachePolicy(**config.NARROW_CACHE_POLICY)
        register = self.cache.register

        register(
            TRUCKS,
            lambda: self._list(self.gateway.list_trucks(), normalizer.normalize_truck, "list_trucks"),
            trucks_policy,
            fallback=lambda: list(self._dataset().trucks),
        )
        register(
            APPOINTMENTS,
            lambda: self._list(self.gateway.list_appointments(), normalizer.normalize_appointment, "list_appointments"),
            list_policy,
            fallback=lambda: list(self._dataset().appointments),
            depends_on=(TRUCKS,),
        )
        register(
            WAREHOUSES,
            lambda: self._list(self.gateway.list_warehouses(), normalizer.normalize_warehouse, "list_warehouses"),
            warehouse_policy,
            fallback=lambda: list(self._dataset().warehouses),
        )
        register(
            PURCHASE_ORDERS,
            lambda: self._list(
                self.gateway.list_purchase_orders(), normalizer.normalize_purchase_order, "list_purchase_orders"
            ),
            list_policy,
            fallback=lambda: list(self._dataset().purchase_orders),
        )
        register(
            SHIPPING_ORDERS,
            lambda: self._list(
                self.gateway.list_shipping_orders(), normalizer.normalize_shipping_order, "list_shipping_orders"
            ),
            list_policy,
            fallback=lambda: list(self._dataset().shipping_orders),
        )

        # Narrow reads
        register(
            TRUCKS_ON_SITE_COUNT,
            lambda: self._read("trucks_on_site_count", normalizer.normalize_on_site_count),
            narrow_policy,
            fallback=lambda: synthetic_trucks_on_site_count(self._dataset()),
            depends_on=(TRUCKS,),
        )
        register(
            ARRIVAL_COMPLIANCE,
            lambda: self._read("arrival_compliance", normalizer.normalize_arrival_compliance),
            narrow_policy,
            fallback=lambda: synthetic_arrival_compliance(self._dataset()),
            depends_on=(TRUCKS,),
        )
        shipping_subsets = (
            (UNMATCHED_SHIPPING_ORDERS, synthetic_unmatched_shipping_orders),
            (SHIPMENT_ARRIVALS, synthetic_shipment_arrivals),
            (OUTSTANDING_INSPECTIONS, synthetic_outstanding_inspections),
            (OUTSTANDING_BUNKERING, synthetic_outstanding_bunkering),
        )
        for key, synthetic in shipping_subsets:
            register(
                key,
                partial(self._shipping_subset, key),
                narrow_policy,
                fallback=partial(lambda fn: fn(self._dataset()), synthetic),
                depends_on=(SHIPPING_ORDERS,),
            )
        register(
            OPERATIONS_OVERVIEW,
            lambda: self._read("operations_overview", _mapping_payload),
            narrow_policy,
            fallback=lambda: synthetic_operations_overview(self._dataset()),
            depends_on=(SHIPPING_ORDERS,),
        )

        # Derived
        register(APPOINTMENT_OVERVIEW, self._compute_appointment_overview, DERIVED_POLICY, depends_on=(APPOINTMENTS,))
        register(WAREHOUSE_OVERVIEW, self._compute_warehouse_overview, DERIVED_POLICY, depends_on=(WAREHOUSES,))
        register(
            PURCHASE_ORDER_OVERVIEW,
            self._compute_purchase_order_overview,
            DERIVED_POLICY,
            depends_on=(PURCHASE_ORDERS,),
        )
        register(DASHBOARD, self._compute_dashboard, DERIVED_POLICY, depends_on=PRIMARY_COLLECTIONS)

    def _list(self, result: FetchResult, normalize_fn, operation: str) -> FetchResult:
        if not result.ok:
            return result
        return normalizer.normalize_collection(result.value, normalize_fn, operation)

    def _read(self, operation: str, normalize_fn, **path_params) -> FetchResult:
        result = self.gateway.call(operation, **path_params)
        if not result.ok:
            return result
        return normalize_fn(result.value)

    def _shipping_subset(self, operation: str) -> FetchResult:
        return self._read(
            operation,
            lambda payload: normalizer.normalize_collection(
                payload, normalizer.normalize_shipping_order, operation
            ),
        )

    # ==================================================
    # VIEWS
    # ==================================================

    def view(self, key: str, force: bool = False) -> CollectionView:
        snapshot = self.cache.read(key, force=force)
        data_source, error, loading = snapshot.data_source, snapshot.error, snapshot.is_loading

        sources = DERIVED_SOURCES.get(key)
        if sources:
            upstream = [self.cache.snapshot(source) for source in sources]
            data_source = DATA_SOURCE_MOCK if any(s.is_mock for s in upstream) else DATA_SOURCE_LIVE
            error = next((s.error for s in upstream if s.error is not None), None)
            loading = any(s.is_loading for s in upstream)

        return CollectionView(
            key=key,
            value=snapshot.value,
            loading=loading,
            error=error,
            data_source=data_source,
            fetched_at=snapshot.fetched_at,
            refetch=lambda: self.view(key, force=True),
        )

    def trucks(self) -> CollectionView:
        return self.view(TRUCKS)

    def appointments(self) -> CollectionView:
        return self.view(APPOINTMENTS)

    def warehouses(self) -> CollectionView:
        return self.view(WAREHOUSES)

    def purchase_orders(self) -> CollectionView:
        return self.view(PURCHASE_ORDERS)

    def shipping_orders(self) -> CollectionView:
        return self.view(SHIPPING_ORDERS)

    def trucks_on_site_count(self) -> CollectionView:
        return self.view(TRUCKS_ON_SITE_COUNT)

    def arrival_compliance(self) -> CollectionView:
        return self.view(ARRIVAL_COMPLIANCE)

    def unmatched_shipping_orders(self) -> CollectionView:
        return self.view(UNMATCHED_SHIPPING_ORDERS)

    def shipment_arrivals(self) -> CollectionView:
        return self.view(SHIPMENT_ARRIVALS)

    def outstanding_inspections(self) -> CollectionView:
        return self.view(OUTSTANDING_INSPECTIONS)

    def outstanding_bunkering(self) -> CollectionView:
        return self.view(OUTSTANDING_BUNKERING)

    def operations_overview(self) -> CollectionView:
        return self.view(OPERATIONS_OVERVIEW)

    def vessel_operations(self, vessel_number: str) -> CollectionView:
        """Per-vessel operations, registered on first use."""
        vessel_number = validate_vessel_number(vessel_number)
        key = f"vessel_operations:{vessel_number}"
        if key not in self.cache.keys():
            self.cache.register(
                key,
                lambda: self._read(
                    "vessel_operations",
                    lambda payload: normalizer.normalize_collection(
                        [payload] if isinstance(payload, Mapping) and "data" not in payload else payload,
                        normalizer.normalize_shipping_order,
                        "vessel_operations",
                    ),
                    vessel_number=vessel_number,
                ),
                CachePolicy(**config.NARROW_CACHE_POLICY),
                fallback=lambda: synthetic_vessel_operations(self._dataset(), vessel_number),
                depends_on=(SHIPPING_ORDERS,),
            )
        return self.view(key)

    def appointment_overview(self) -> CollectionView:
        return self.view(APPOINTMENT_OVERVIEW)

    def warehouse_overview(self) -> CollectionView:
        return self.view(WAREHOUSE_OVERVIEW)

    def purchase_order_overview(self) -> CollectionView:
        return self.view(PURCHASE_ORDER_OVERVIEW)

    # ==================================================
    # UNCACHED DETAIL READS
    # ==================================================

    def get_truck(self, truck_id: str) -> FetchResult:
        return self._read("get_truck", partial(normalizer.normalize_record, normalize_fn=normalizer.normalize_truck), id=truck_id)

    def get_warehouse(self, warehouse_id: str) -> FetchResult:
        return self._read(
            "get_warehouse",
            partial(normalizer.normalize_record, normalize_fn=normalizer.normalize_warehouse),
            id=warehouse_id,
        )

    def get_shipping_order(self, order_id: str) -> FetchResult:
        return self._read(
            "get_shipping_order",
            partial(normalizer.normalize_record, normalize_fn=normalizer.normalize_shipping_order),
            id=order_id,
        )

    def truck_movements(self, truck_id: str) -> FetchResult:
        return self.gateway.call("get_truck_movements", id=truck_id)

    def truck_metrics(self) -> FetchResult:
        return self.gateway.call("get_truck_metrics")

    def warehouse_stats(self) -> FetchResult:
        return self.gateway.call("warehouse_stats")

    def capacity_alerts(self) -> FetchResult:
        return self.gateway.call("capacity_alerts")

    # ==================================================
    # DERIVED STATE
    # ==================================================

    def _values(self, *keys: str) -> List[Sequence]:
        return [self.cache.read(key).value or () for key in keys]

    def _compute_appointment_overview(self) -> FetchResult:
        (appointments,) = self._values(APPOINTMENTS)
        return Ok(dashboard_engine.appointment_overview(appointments))

    def _compute_warehouse_overview(self) -> FetchResult:
        (warehouses,) = self._values(WAREHOUSES)
        overview = dashboard_engine.capacity_summary(warehouses)
        overview["classification"] = {
            warehouse.id: dashboard_engine.classify_capacity(warehouse) for warehouse in warehouses
        }
        return Ok(overview)

    def _compute_purchase_order_overview(self) -> FetchResult:
        (orders,) = self._values(PURCHASE_ORDERS)
        counts = dashboard_engine.count_statuses("purchase_order", orders)
        return Ok({
            "total": len(orders),
            "statuses": counts,
            "total_value": sum(order.total_value for order in orders),
            "total_commission": sum(order.commission for order in orders),
        })

    def _compute_dashboard(self) -> FetchResult:
        trucks, appointments, warehouses, purchase_orders, shipping_orders = self._values(*PRIMARY_COLLECTIONS)
        now = self._clock()

        snapshots = {key: self.cache.snapshot(key) for key in PRIMARY_COLLECTIONS}
        dashboard = DashboardSnapshot(
            metrics=dashboard_engine.compute_dashboard_metrics(trucks, warehouses, purchase_orders, shipping_orders),
            alerts=alert_engine.build_alert_feed(warehouses, trucks, shipping_orders),
            todays_appointments=dashboard_engine.todays_appointments(appointments, now),
            appointment_overview=dashboard_engine.appointment_overview(appointments),
            arrival_compliance=dashboard_engine.compute_arrival_compliance(appointments, trucks),
            data_sources={key: snapshot.data_source for key, snapshot in snapshots.items()},
            errors={key: snapshot.error for key, snapshot in snapshots.items() if snapshot.error is not None},
            loading=any(snapshot.is_loading for snapshot in snapshots.values()),
        )
        return Ok(dashboard)

    def dashboard(self) -> DashboardSnapshot:
        """Headline metrics, alert feed and today's appointments."""
        return self.cache.read(DASHBOARD).value

    # ==================================================
    # MUTATIONS
    # ==================================================

    def _find(self, key: str, record_id: str):
        for record in self.cache.snapshot(key).value or ():
            if record.id == record_id:
                return record
        return None

    def _patch(self, key: str, fn: Callable[[Sequence], Any]) -> None:
        if self.cache.snapshot(key).value is None:
            return
        self.cache.patch(key, fn)

    def _mutate(
        self,
        operation: str,
        collection: str,
        body: Any = None,
        normalize_fn=None,
        patch: Optional[Callable[[Sequence, Any], Any]] = None,
        **path_params,
    ) -> MutationResult:
        """
        Submit one write and reconcile the cache.

        On success the collection is patched (whole-record replacement)
        and then invalidated with its dependents; on failure the cache is
        left untouched.
        """
        result = self.gateway.call(operation, body=body, **path_params)
        if not result.ok:
            logger.error(f"{operation} failed: {result.failure}")
            return MutationResult(ok=False, error=result.failure)

        data = result.value
        record = None
        if normalize_fn is not None and isinstance(data, Mapping):
            record = normalizer.safe_normalize(normalize_fn, data, operation)

        if patch is not None:
            self._patch(collection, lambda current: patch(current or [], record))

        self.cache.invalidate(collection)
        logger.info(f"{operation} succeeded")
        return MutationResult(ok=True, data=record if record is not None else data)

    @staticmethod
    def _upsert(current: Sequence, record: Any):
        if record is None:
            return list(current)
        return normalizer.replace_by_id(current, record)

    # ---------------- Trucks ----------------

    def _validate_truck_fields(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        fields = dict(fields)
        if "license_plate" in fields:
            fields["license_plate"] = validate_license_plate(fields["license_plate"])
        if "material" in fields:
            validate_material(fields["material"])
        validate_truck_weight(fields.get("gross_weight"), "gross_weight")
        validate_truck_weight(fields.get("tare_weight"), "tare_weight")
        if "status" in fields and not lifecycle.is_known_status("truck", fields["status"]):
            raise ValidationError(f"Unknown truck status: {fields['status']!r}", field="status")
        return fields

    def create_truck(self, fields: Mapping[str, Any]) -> MutationResult:
        require(dict(fields), "license_plate", "material", "seller_id")
        fields = self._validate_truck_fields(fields)
        return self._mutate(
            "create_truck",
            TRUCKS,
            body=normalizer.to_backend_truck(fields),
            normalize_fn=normalizer.normalize_truck,
            patch=self._upsert,
        )

    def update_truck(self, truck_id: str, fields: Mapping[str, Any]) -> MutationResult:
        fields = self._validate_truck_fields(fields)
        return self._mutate(
            "update_truck",
            TRUCKS,
            body=normalizer.to_backend_truck(fields),
            normalize_fn=normalizer.normalize_truck,
            patch=self._upsert,
            id=truck_id,
        )

    def delete_truck(self, truck_id: str) -> MutationResult:
        return self._mutate(
            "delete_truck",
            TRUCKS,
            patch=lambda current, _: normalizer.remove_by_id(current, truck_id),
            id=truck_id,
        )

    def update_truck_status(self, truck_id: str, status: str) -> MutationResult:
        """
        Move a truck along the gate -> weighing bridge -> warehouse -> exit flow.

        Raises LifecycleError when the cached truck cannot make the move.
        """
        if not lifecycle.is_known_status("truck", status):
            raise ValidationError(f"Unknown truck status: {status!r}", field="status")

        truck = self._find(TRUCKS, truck_id)
        if truck is not None and lifecycle.is_known_status("truck", truck.status):
            lifecycle.validate_transition("truck", truck.status, status)

        def patch(current, _):
            existing = next((t for t in current if t.id == truck_id), None)
            if existing is None:
                return list(current)
            return normalizer.replace_by_id(current, replace(existing, status=status))

        return self._mutate("update_truck_status", TRUCKS, body={"status": status}, patch=patch, id=truck_id)

    # ---------------- Appointments ----------------

    def _appointment_body(self, license_plate, seller_id, seller_name, material, scheduled_time, truck_type):
        require(
            {"seller_id": seller_id, "seller_name": seller_name, "scheduled_time": scheduled_time},
            "seller_id", "seller_name", "scheduled_time",
        )
        license_plate = validate_license_plate(license_plate)
        validate_material(material)
        validate_appointment_time(scheduled_time, now=self._clock())
        return normalizer.to_backend_appointment(
            license_plate, seller_id, seller_name, material, scheduled_time, truck_type
        )

    def create_appointment(
        self,
        license_plate: str,
        seller_id: str,
        seller_name: str,
        material: str,
        scheduled_time: datetime,
        truck_type: Optional[str] = None,
    ) -> MutationResult:
        body = self._appointment_body(license_plate, seller_id, seller_name, material, scheduled_time, truck_type)
        return self._mutate(
            "create_appointment",
            APPOINTMENTS,
            body=body,
            normalize_fn=normalizer.normalize_appointment,
            patch=self._upsert,
        )

    def update_appointment(
        self,
        appointment_id: str,
        license_plate: str,
        seller_id: str,
        seller_name: str,
        material: str,
        scheduled_time: datetime,
        truck_type: Optional[str] = None,
    ) -> MutationResult:
        body = self._appointment_body(license_plate, seller_id, seller_name, material, scheduled_time, truck_type)
        return self._mutate(
            "update_appointment",
            APPOINTMENTS,
            body=body,
            normalize_fn=normalizer.normalize_appointment,
            patch=self._upsert,
            id=appointment_id,
        )

    def delete_appointment(self, appointment_id: str) -> MutationResult:
        return self._mutate(
            "delete_appointment",
            APPOINTMENTS,
            patch=lambda current, _: normalizer.remove_by_id(current, appointment_id),
            id=appointment_id,
        )

    # ---------------- Warehouses ----------------

    def _warehouse_body(self, number, seller_id, seller_name, max_capacity, material):
        require(
            {"number": number, "seller_id": seller_id, "seller_name": seller_name},
            "number", "seller_id", "seller_name",
        )
        if max_capacity is None or max_capacity <= 0:
            raise ValidationError("max_capacity must be positive", field="max_capacity")
        if material is not None:
            validate_material(material)
        return normalizer.to_backend_warehouse(number, seller_id, seller_name, max_capacity, material)

    def create_warehouse(
        self,
        number: str,
        seller_id: str,
        seller_name: str,
        max_capacity: float,
        material: Optional[str] = None,
    ) -> MutationResult:
        return self._mutate(
            "create_warehouse",
            WAREHOUSES,
            body=self._warehouse_body(number, seller_id, seller_name, max_capacity, material),
            normalize_fn=normalizer.normalize_warehouse,
            patch=self._upsert,
        )

    def update_warehouse(
        self,
        warehouse_id: str,
        number: str,
        seller_id: str,
        seller_name: str,
        max_capacity: float,
        material: Optional[str] = None,
    ) -> MutationResult:
        return self._mutate(
            "update_warehouse",
            WAREHOUSES,
            body=self._warehouse_body(number, seller_id, seller_name, max_capacity, material),
            normalize_fn=normalizer.normalize_warehouse,
            patch=self._upsert,
            id=warehouse_id,
        )

    def delete_warehouse(self, warehouse_id: str) -> MutationResult:
        return self._mutate(
            "delete_warehouse",
            WAREHOUSES,
            patch=lambda current, _: normalizer.remove_by_id(current, warehouse_id),
            id=warehouse_id,
        )

    def add_material_to_warehouse(
        self,
        warehouse_id: str,
        material: str,
        weight: float,
        seller_id: str,
    ) -> MutationResult:
        validate_material(material)
        require({"seller_id": seller_id}, "seller_id")
        if weight is None or weight <= 0:
            raise ValidationError("weight must be positive", field="weight")
        body = {
            "material": normalizer.backend_material_name(material),
            "weight": weight,
            "sellerId": seller_id,
        }
        return self._mutate(
            "add_material",
            WAREHOUSES,
            body=body,
            normalize_fn=normalizer.normalize_warehouse,
            patch=self._upsert,
            id=warehouse_id,
        )

    def remove_material_from_warehouse(self, warehouse_id: str, material_id: str) -> MutationResult:
        require({"material_id": material_id}, "material_id")
        return self._mutate(
            "remove_material",
            WAREHOUSES,
            normalize_fn=normalizer.normalize_warehouse,
            patch=self._upsert,
            id=warehouse_id,
            material_id=material_id,
        )

    # ---------------- Purchase orders ----------------

    def create_purchase_order(
        self,
        po_number: str,
        customer_id: str,
        customer_name: str,
        seller_id: str,
        seller_name: str,
        items: Iterable[Mapping[str, Any]],
        order_date: Optional[datetime] = None,
    ) -> MutationResult:
        require(
            {
                "po_number": po_number,
                "customer_id": customer_id,
                "customer_name": customer_name,
                "seller_id": seller_id,
                "seller_name": seller_name,
            },
            "po_number", "customer_id", "customer_name", "seller_id", "seller_name",
        )
        items = list(items)
        validate_order_lines(items)
        body = normalizer.to_backend_purchase_order(
            po_number, customer_id, customer_name, seller_id, seller_name, order_date or self._clock(), items
        )
        return self._mutate(
            "create_purchase_order",
            PURCHASE_ORDERS,
            body=body,
            normalize_fn=normalizer.normalize_purchase_order,
            patch=self._upsert,
        )

    def update_purchase_order(self, order_id: str, status: str) -> MutationResult:
        """Fulfil or cancel an outstanding order."""
        if not lifecycle.is_known_status("purchase_order", status):
            raise ValidationError(f"Unknown purchase order status: {status!r}", field="status")

        order = self._find(PURCHASE_ORDERS, order_id)
        if order is not None and lifecycle.is_known_status("purchase_order", order.status):
            lifecycle.validate_transition("purchase_order", order.status, status)

        def patch(current, record):
            if record is not None:
                return normalizer.replace_by_id(current, record)
            existing = next((o for o in current if o.id == order_id), None)
            if existing is None:
                return list(current)
            estimated = existing.estimated_delivery_date if status == lifecycle.PO_OUTSTANDING else None
            return normalizer.replace_by_id(
                current, replace(existing, status=status, estimated_delivery_date=estimated)
            )

        return self._mutate(
            "update_purchase_order",
            PURCHASE_ORDERS,
            body={"status": normalizer.to_backend_purchase_order_status(status)},
            normalize_fn=normalizer.normalize_purchase_order,
            patch=patch,
            id=order_id,
        )

    def delete_purchase_order(self, order_id: str) -> MutationResult:
        return self._mutate(
            "delete_purchase_order",
            PURCHASE_ORDERS,
            patch=lambda current, _: normalizer.remove_by_id(current, order_id),
            id=order_id,
        )

    # ---------------- Shipping orders ----------------

    def submit_shipping_order(
        self,
        so_number: str,
        vessel_number: str,
        po_reference: str,
        customer_number: str,
        estimated_arrival_date: datetime,
        estimated_departure_date: datetime,
    ) -> MutationResult:
        require(
            {
                "so_number": so_number,
                "po_reference": po_reference,
                "customer_number": customer_number,
                "estimated_arrival_date": estimated_arrival_date,
                "estimated_departure_date": estimated_departure_date,
            },
            "so_number", "po_reference", "customer_number",
            "estimated_arrival_date", "estimated_departure_date",
        )
        vessel_number = validate_vessel_number(vessel_number)
        if estimated_departure_date < estimated_arrival_date:
            raise ValidationError(
                "Estimated departure must not be before estimated arrival",
                field="estimated_departure_date",
            )
        body = normalizer.to_backend_shipping_order(
            so_number, vessel_number, po_reference, customer_number,
            estimated_arrival_date, estimated_departure_date,
        )
        return self._mutate(
            "submit_shipping_order",
            SHIPPING_ORDERS,
            body=body,
            normalize_fn=normalizer.normalize_shipping_order,
            patch=self._upsert,
        )

    def _shipping_patch(self, order_id: str, update: Callable):
        def patch(current, _):
            existing = next((o for o in current if o.id == order_id), None)
            if existing is None:
                return list(current)
            return normalizer.replace_by_id(current, update(existing))
        return patch

    def match_shipping_order(self, shipping_order_id: str, foreman_signature: str) -> MutationResult:
        require({"foreman_signature": foreman_signature}, "foreman_signature")
        return self._mutate(
            "match_shipping_order",
            SHIPPING_ORDERS,
            body={"shippingOrderId": shipping_order_id, "foremanSignature": foreman_signature},
            patch=self._shipping_patch(
                shipping_order_id,
                lambda order: replace(order, foreman_signature=foreman_signature),
            ),
        )

    def complete_inspection(self, shipping_order_id: str, inspector_signature: str) -> MutationResult:
        require({"inspector_signature": inspector_signature}, "inspector_signature")
        return self._mutate(
            "complete_inspection",
            SHIPPING_ORDERS,
            body={"shippingOrderId": shipping_order_id, "inspectorSignature": inspector_signature},
            patch=self._shipping_patch(
                shipping_order_id,
                lambda order: normalizer.with_completed_flags(order, inspection_completed=True),
            ),
        )

    def complete_bunkering(self, shipping_order_id: str, bunkering_officer_signature: str) -> MutationResult:
        require({"bunkering_officer_signature": bunkering_officer_signature}, "bunkering_officer_signature")
        return self._mutate(
            "complete_bunkering",
            SHIPPING_ORDERS,
            body={
                "shippingOrderId": shipping_order_id,
                "bunkeringOfficerSignature": bunkering_officer_signature,
            },
            patch=self._shipping_patch(
                shipping_order_id,
                lambda order: normalizer.with_completed_flags(order, bunkering_completed=True),
            ),
        )


def _mapping_payload(payload: Any) -> FetchResult:
    if not isinstance(payload, Mapping):
        return shape_failure("expected an object", "operations_overview")
    return Ok(dict(payload))
