"""OperationalDataLoader tests with a scripted gateway and a fixed dataset."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from mineralflow.core.lifecycle import LifecycleError
from mineralflow.core.result import PROTOCOL, TRANSPORT, Err, FetchFailure, Ok
from mineralflow.core.validation import ValidationError
from mineralflow.data.synthetic_data import generate_synthetic_dataset
from mineralflow.performance import data_loader
from mineralflow.performance.cache_manager import ResourceCache
from mineralflow.performance.data_loader import OperationalDataLoader

from conftest import NOW

DATASET = generate_synthetic_dataset(seed=1, anchor=NOW)

TRUCKS_PAYLOAD = [
    {"id": "t1", "licensePlate": "KDG001", "material": "Gypsum", "plannedArrival": "2025-01-15T09:00:00",
     "status": "GATE", "sellerId": "seller-1"},
    {"id": "t2", "licensePlate": "KDG002", "material": "Slag", "plannedArrival": "2025-01-15T11:00:00",
     "status": "scheduled", "sellerId": "seller-2"},
]

WAREHOUSES_PAYLOAD = [
    {"id": "w1", "number": "W01", "sellerId": "seller-1", "material": "gypsum",
     "currentStock": 480_000, "maxCapacity": 500_000},
]

SHIPPING_PAYLOAD = [
    {"id": "so-1", "vesselNumber": "VESSEL-001", "status": "validated",
     "estimatedArrivalDate": "2025-01-14T06:00:00", "estimatedDepartureDate": "2025-01-16T06:00:00"},
]


def _server_error(operation):
    return Err(FetchFailure(PROTOCOL, "API call failed: 500", operation=operation, status_code=500, body="boom"))


@pytest.fixture
def gateway():
    gateway = MagicMock()
    gateway.list_trucks.return_value = Ok(TRUCKS_PAYLOAD)
    gateway.list_appointments.return_value = Ok([])
    gateway.list_warehouses.return_value = Ok(WAREHOUSES_PAYLOAD)
    gateway.list_purchase_orders.return_value = _server_error("list_purchase_orders")
    gateway.list_shipping_orders.return_value = Ok(SHIPPING_PAYLOAD)
    gateway.call.return_value = Ok(None)
    return gateway


@pytest.fixture
def loader(gateway, clock):
    return OperationalDataLoader(
        gateway=gateway,
        cache=ResourceCache(clock=clock, sleep=clock.sleep),
        clock=lambda: NOW,
        dataset=lambda: DATASET,
    )


class TestReads:

    def test_live_collection(self, loader):
        view = loader.trucks()
        assert view.data_source == "live"
        assert not view.is_mock
        assert [t.id for t in view.value] == ["t1", "t2"]
        assert view.error is None

    def test_purchase_orders_500_falls_back_to_mock(self, loader, gateway):
        view = loader.purchase_orders()

        assert view.is_mock
        assert view.value == list(DATASET.purchase_orders)
        assert view.error.status_code == 500
        # one initial attempt plus one retry
        assert gateway.list_purchase_orders.call_count == 2

    def test_other_collections_unaffected(self, loader):
        loader.purchase_orders()
        assert loader.warehouses().data_source == "live"

    def test_shape_failure_falls_back(self, loader, gateway):
        gateway.list_warehouses.return_value = Ok({"message": "not a list"})
        view = loader.warehouses()
        assert view.is_mock
        assert view.error.kind == "shape"

    def test_malformed_warehouse_keeps_collection_live(self, loader, gateway):
        gateway.list_warehouses.return_value = Ok([
            {"id": "w1", "number": "W01", "currentStock": 10, "maxCapacity": 500_000, "payloads": 5},
            {"id": "w2", "number": "W02", "currentStock": 20, "maxCapacity": 500_000, "payloads": {"a": 1}},
        ])
        view = loader.warehouses()
        assert view.data_source == "live"
        assert [w.id for w in view.value] == ["w1", "w2"]

    def test_narrow_read(self, loader, gateway):
        gateway.call.return_value = Ok({"totalTrucks": 9})
        assert loader.trucks_on_site_count().value == 9
        gateway.call.assert_called_with("trucks_on_site_count")

    def test_narrow_read_fallback(self, loader, gateway):
        gateway.call.return_value = Err(FetchFailure(TRANSPORT, "timed out"))
        view = loader.outstanding_bunkering()
        assert view.is_mock
        assert [o.status for o in view.value] == ["bunkering"]

    def test_vessel_operations_registered_lazily(self, loader, gateway):
        gateway.call.return_value = Ok(SHIPPING_PAYLOAD[0])
        view = loader.vessel_operations("vessel-001")
        assert [o.id for o in view.value] == ["so-1"]
        assert "vessel_operations:VESSEL-001" in loader.cache.keys()

    def test_derived_view_reports_upstream_source(self, loader):
        view = loader.purchase_order_overview()
        assert view.is_mock
        assert view.value["total"] == len(DATASET.purchase_orders)


class TestDashboard:

    def test_snapshot(self, loader):
        snapshot = loader.dashboard()

        assert snapshot.metrics.trucks_on_site == 1
        assert snapshot.metrics.used_capacity_pct == 96
        assert snapshot.metrics.pending_inspections == 1
        assert [a.category for a in snapshot.alerts] == ["capacity", "truck_at_gate"]
        assert snapshot.data_sources["purchase_orders"] == "mock"
        assert snapshot.data_sources["trucks"] == "live"
        assert "purchase_orders" in snapshot.errors
        assert snapshot.is_mock

    def test_recomputed_after_mutation(self, loader, gateway):
        assert loader.dashboard().metrics.trucks_on_site == 1
        gateway.list_trucks.return_value = Ok(TRUCKS_PAYLOAD[1:])
        gateway.call.return_value = Ok(None)
        loader.delete_truck("t1")
        assert loader.dashboard().metrics.trucks_on_site == 0


class TestTruckMutations:

    def test_status_update_patches_and_invalidates(self, loader, gateway):
        loader.trucks()
        loader.appointments()
        gateway.call.return_value = Ok(None)

        result = loader.update_truck_status("t1", "WEIGHING_BRIDGE")

        assert result.ok
        gateway.call.assert_called_with("update_truck_status", body={"status": "WEIGHING_BRIDGE"}, id="t1")
        assert loader.cache.snapshot("trucks").value[0].status == "WEIGHING_BRIDGE"
        assert loader.cache.is_stale("trucks")
        assert loader.cache.is_stale("appointments")

    def test_invalid_transition_never_sent(self, loader, gateway):
        loader.trucks()
        with pytest.raises(LifecycleError):
            loader.update_truck_status("t1", "EXIT")
        gateway.call.assert_not_called()

    def test_unknown_status_rejected(self, loader):
        with pytest.raises(ValidationError):
            loader.update_truck_status("t1", "FLYING")

    def test_backend_failure_leaves_cache_untouched(self, loader, gateway):
        loader.trucks()
        gateway.call.return_value = _server_error("update_truck_status")

        result = loader.update_truck_status("t1", "WEIGHING_BRIDGE")

        assert not result.ok
        assert result.error.status_code == 500
        assert loader.cache.snapshot("trucks").value[0].status == "GATE"
        assert not loader.cache.is_stale("trucks")

    def test_create_truck_upserts_returned_record(self, loader, gateway):
        loader.trucks()
        gateway.call.return_value = Ok({"id": "t3", "licensePlate": "KDG003", "status": "scheduled",
                                        "plannedArrival": "2025-01-15T12:00:00"})

        result = loader.create_truck({"license_plate": "kdg003", "material": "slag", "seller_id": "seller-1"})

        assert result.ok
        assert result.data.id == "t3"
        _, kwargs = gateway.call.call_args
        assert kwargs["body"] == {"licensePlate": "KDG003", "material": "Slag", "sellerId": "seller-1"}
        assert loader.cache.snapshot("trucks").value[0].id == "t3"

    def test_create_truck_requires_fields(self, loader, gateway):
        with pytest.raises(ValidationError):
            loader.create_truck({"license_plate": "KDG003"})
        gateway.call.assert_not_called()


class TestAppointmentMutations:

    def test_create_appointment_body(self, loader, gateway):
        scheduled = NOW + timedelta(hours=3)
        loader.create_appointment("KDG001", "seller-1", "Nordic Minerals Ltd", "iron-ore", scheduled)

        args, kwargs = gateway.call.call_args
        assert args == ("create_appointment",)
        assert kwargs["body"]["scheduledTime"] == "15/01/2025 13:00"
        assert kwargs["body"]["arrivalWindow"]["endTime"] == "15/01/2025 14:00"

    def test_appointment_too_soon(self, loader, gateway):
        with pytest.raises(ValidationError):
            loader.create_appointment("KDG001", "seller-1", "Nordic", "slag", NOW + timedelta(hours=1))
        gateway.call.assert_not_called()


class TestWarehouseMutations:

    def test_malformed_response_still_invalidates(self, loader, gateway):
        loader.warehouses()
        gateway.call.return_value = Ok({"id": "w1", "number": "W01", "currentStock": 490_000,
                                        "maxCapacity": 500_000, "payloads": {"p1": 1}})

        result = loader.add_material_to_warehouse("w1", "gypsum", 25, "seller-1")

        assert result.ok
        assert loader.cache.snapshot("warehouses").value[0].current_stock == 490_000
        assert loader.cache.is_stale("warehouses")


class TestPurchaseOrderMutations:

    def test_create_purchase_order_validates_lines(self, loader, gateway):
        with pytest.raises(ValidationError):
            loader.create_purchase_order("PO1", "buyer-1", "Global Steel Corp", "seller-1", "Nordic", [])
        gateway.call.assert_not_called()

    def test_update_status_sent_in_backend_vocabulary(self, loader, gateway):
        loader.update_purchase_order("po-1", "outstanding")
        _, kwargs = gateway.call.call_args
        assert kwargs["body"] == {"status": "PENDING"}


class TestShippingMutations:

    def test_complete_inspection_raises_flag(self, loader, gateway):
        loader.shipping_orders()
        gateway.call.return_value = Ok(None)

        result = loader.complete_inspection("so-1", "J. Inspector")

        assert result.ok
        assert loader.cache.snapshot("shipping_orders").value[0].inspection_completed is True
        assert loader.cache.is_stale("outstanding_inspections")

    def test_submit_rejects_departure_before_arrival(self, loader, gateway):
        with pytest.raises(ValidationError):
            loader.submit_shipping_order(
                "SO-1", "VESSEL-009", "PO0001", "buyer-1",
                datetime(2025, 1, 20, 8, 0), datetime(2025, 1, 19, 8, 0),
            )
        gateway.call.assert_not_called()

    def test_submit_rejects_bad_vessel(self, loader, gateway):
        with pytest.raises(ValidationError):
            loader.submit_shipping_order("SO-1", "V!", "PO0001", "buyer-1", NOW, NOW + timedelta(days=1))


class TestInvalidationGraph:

    def test_trucks_cascade(self, loader):
        invalidated = loader.cache.invalidate(data_loader.TRUCKS)
        assert {
            data_loader.APPOINTMENTS,
            data_loader.TRUCKS_ON_SITE_COUNT,
            data_loader.ARRIVAL_COMPLIANCE,
            data_loader.APPOINTMENT_OVERVIEW,
            data_loader.DASHBOARD,
        } <= invalidated
        assert data_loader.WAREHOUSES not in invalidated

    def test_shipping_cascade(self, loader):
        invalidated = loader.cache.invalidate(data_loader.SHIPPING_ORDERS)
        assert {
            data_loader.UNMATCHED_SHIPPING_ORDERS,
            data_loader.SHIPMENT_ARRIVALS,
            data_loader.OUTSTANDING_INSPECTIONS,
            data_loader.OUTSTANDING_BUNKERING,
            data_loader.OPERATIONS_OVERVIEW,
            data_loader.DASHBOARD,
        } <= invalidated
