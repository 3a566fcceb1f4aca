"""Alert feed tests."""

from datetime import timedelta

from mineralflow.intelligence.alert_engine import ALL_CLEAR_MESSAGE, build_alert_feed

from conftest import NOW, make_shipping_order, make_truck, make_warehouse


class TestAlertFeed:

    def test_all_clear(self):
        alerts = build_alert_feed([make_warehouse(current_stock=1000)], [make_truck(status="scheduled")], [])
        assert len(alerts) == 1
        assert alerts[0].category == "normal"
        assert alerts[0].message == ALL_CLEAR_MESSAGE

    def test_capacity_alert_replaces_all_clear(self):
        alerts = build_alert_feed([make_warehouse(current_stock=480_000)], [], [])
        assert [a.category for a in alerts] == ["capacity"]
        assert alerts[0].type == "warning"
        assert alerts[0].message == "Warehouse W01 at 96% capacity"

    def test_one_alert_per_category(self):
        alerts = build_alert_feed(
            [make_warehouse("w1", current_stock=490_000), make_warehouse("w2", current_stock=495_000, number="W02")],
            [make_truck("t1", "GATE"), make_truck("t2", "GATE", license_plate="KDG002")],
            [],
        )
        assert [a.category for a in alerts] == ["capacity", "truck_at_gate"]
        assert alerts[0].subject_id == "w1"
        assert alerts[1].subject_id == "t1"

    def test_category_order(self):
        alerts = build_alert_feed(
            [make_warehouse(current_stock=500_000)],
            [
                make_truck("t1", "GATE"),
                make_truck("t2", "WAREHOUSE", warehouse_number="W07"),
                make_truck("t3", "WEIGHING_BRIDGE"),
            ],
            [make_shipping_order(status="departed", actual_departure_date=NOW + timedelta(days=2))],
        )
        assert [a.category for a in alerts] == [
            "capacity",
            "vessel_departed",
            "truck_at_bridge",
            "truck_at_warehouse",
            "truck_at_gate",
        ]
        assert alerts[3].message == "Truck KDG001 unloading at Warehouse W07"

    def test_departed_without_departure_time_ignored(self):
        alerts = build_alert_feed([], [], [make_shipping_order(status="departed")])
        assert [a.category for a in alerts] == ["normal"]
