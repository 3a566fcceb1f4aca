"""Synthetic fallback dataset tests."""

from datetime import datetime, timedelta

import pytest

from mineralflow.core import lifecycle
from mineralflow.core.constants import MATERIAL_TYPES, MAX_WAREHOUSE_CAPACITY
from mineralflow.data import synthetic_data
from mineralflow.data.synthetic_data import generate_synthetic_dataset

ANCHOR = datetime(2025, 1, 15, 10, 0)


@pytest.fixture(scope="module")
def dataset():
    return generate_synthetic_dataset(seed=42, anchor=ANCHOR)


class TestDeterminism:

    def test_same_seed_same_data(self, dataset):
        assert generate_synthetic_dataset(seed=42, anchor=ANCHOR) == dataset

    def test_different_seed_different_data(self, dataset):
        assert generate_synthetic_dataset(seed=43, anchor=ANCHOR).trucks != dataset.trucks

    def test_cached_dataset_uses_configured_seed(self, monkeypatch):
        monkeypatch.setenv("MINERALFLOW_SYNTHETIC_SEED", "7")
        synthetic_data.reset_synthetic_dataset()
        try:
            first = synthetic_data.get_synthetic_dataset()
            assert first.seed == 7
            assert synthetic_data.get_synthetic_dataset() is first
        finally:
            synthetic_data.reset_synthetic_dataset()


class TestLandside:

    def test_truck_count_and_plates(self, dataset):
        assert len(dataset.trucks) == 25
        assert dataset.trucks[0].license_plate == "KDG001"

    def test_planned_arrival_range(self, dataset):
        for truck in dataset.trucks:
            assert ANCHOR - timedelta(hours=4) <= truck.planned_arrival <= ANCHOR + timedelta(hours=8)

    def test_weights_only_for_arrived_trucks(self, dataset):
        for truck in dataset.trucks:
            arrived = truck.status in lifecycle.TRUCK_ON_SITE or truck.status == lifecycle.TRUCK_EXIT
            assert (truck.actual_arrival is not None) == arrived
            if arrived:
                assert 25 <= truck.gross_weight <= 40
                assert 5 <= truck.tare_weight <= 8
                assert truck.net_weight == pytest.approx(truck.gross_weight - truck.tare_weight)

    def test_appointments_paired_with_trucks(self, dataset):
        assert len(dataset.appointments) == len(dataset.trucks)
        for truck, appointment in zip(dataset.trucks, dataset.appointments):
            assert appointment.truck_id == truck.id
            assert appointment.scheduled_time == truck.planned_arrival
            assert appointment.status == lifecycle.appointment_status_for_truck(truck.status)
            assert appointment.arrival_window.end - appointment.arrival_window.start == timedelta(hours=1)


class TestWarehousing:

    def test_one_warehouse_per_seller_and_material(self, dataset):
        assert len(dataset.warehouses) == 25
        pairs = {(w.seller_id, w.payloads[0].material) for w in dataset.warehouses}
        assert len(pairs) == 25

    def test_stock_within_capacity(self, dataset):
        for warehouse in dataset.warehouses:
            assert 0 <= warehouse.current_stock <= MAX_WAREHOUSE_CAPACITY
            assert warehouse.max_capacity == MAX_WAREHOUSE_CAPACITY
            if warehouse.current_stock <= 1000:
                assert warehouse.material is None
            else:
                assert warehouse.material in MATERIAL_TYPES

    def test_payload_log_is_fraction_of_stock(self, dataset):
        for warehouse in dataset.warehouses:
            assert 2 <= len(warehouse.payloads) <= 9
            total = sum(p.weight for p in warehouse.payloads)
            assert total <= warehouse.current_stock * 0.30 + 1e-6


class TestInvoicingAndWaterside:

    def test_purchase_orders(self, dataset):
        assert len(dataset.purchase_orders) == 15
        for order in dataset.purchase_orders:
            assert 1 <= len(order.items) <= 3
            if order.status != lifecycle.PO_OUTSTANDING:
                assert order.estimated_delivery_date is None

    def test_one_vessel_per_status(self, dataset):
        assert [o.status for o in dataset.shipping_orders] == list(synthetic_data.SHIPPING_STATUSES)

    def test_flags_follow_status(self, dataset):
        by_status = {o.status: o for o in dataset.shipping_orders}
        assert not by_status["validated"].inspection_completed
        assert by_status["bunkering"].inspection_completed
        assert not by_status["bunkering"].bunkering_completed
        departed = by_status["departed"]
        assert departed.loading_completed
        assert departed.actual_departure_date <= ANCHOR

    def test_filtered_fallbacks(self, dataset):
        assert [o.status for o in synthetic_data.unmatched_shipping_orders(dataset)] == ["arrived"]
        assert [o.status for o in synthetic_data.outstanding_bunkering(dataset)] == ["bunkering"]
        assert synthetic_data.vessel_operations(dataset, "VESSEL-002")[0].status == "inspecting"
        assert synthetic_data.trucks_on_site_count(dataset) == sum(
            1 for t in dataset.trucks if t.status in lifecycle.TRUCK_ON_SITE
        )
        assert sum(synthetic_data.operations_overview(dataset).values()) == 6
