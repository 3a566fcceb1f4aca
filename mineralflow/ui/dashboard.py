"""
OPERATIONS DASHBOARD

Purpose:
- Site overview for the landside, warehousing, invoicing and waterside teams
- Renders CollectionViews and the DashboardSnapshot, nothing more

Requirements:
- Always show where the numbers come from (live or mock)
- Show backend errors next to the data they affect
- Forms validate before submission and report backend failures
"""

from datetime import datetime, timedelta
from typing import List

import pandas as pd
import plotly.express as px
import streamlit as st

from mineralflow.core import lifecycle
from mineralflow.core.constants import MATERIAL_TYPES, MATERIALS
from mineralflow.core.validation import ValidationError
from mineralflow.intelligence import dashboard_engine
from mineralflow.performance.data_loader import CollectionView, MutationResult, OperationalDataLoader

ALERT_RENDERERS = {
    "warning": st.warning,
    "success": st.success,
    "info": st.info,
}


def _render_source_badge(view: CollectionView, label: str) -> None:
    if view.is_mock:
        st.warning(f"⚠️ {label}: data source **mock** (backend unavailable)")
    if view.error is not None:
        st.caption(f"Last error: {view.error}")
    if view.fetched_at is not None:
        st.caption(f"{label} last fetched {view.fetched_at.strftime('%H:%M:%S')}")


def _report(result: MutationResult, success_message: str) -> None:
    if result.ok:
        st.success(success_message)
    else:
        st.error(f"❌ {result.error}")


# ==================================================
# OVERVIEW
# ==================================================

def render_overview(loader: OperationalDataLoader) -> None:
    snapshot = loader.dashboard()
    metrics = snapshot.metrics

    if snapshot.is_mock:
        mock_keys = ", ".join(k for k, source in snapshot.data_sources.items() if source == "mock")
        st.warning(f"⚠️ Data source: **mock** for {mock_keys}")

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Trucks On Site", metrics.trucks_on_site)
    with col2:
        st.metric("Warehouse Capacity Used", f"{metrics.used_capacity_pct}%")
    with col3:
        st.metric("Outstanding POs", metrics.outstanding_pos)
    with col4:
        st.metric("Ships In Port", metrics.ships_in_port)

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("At Gate", metrics.trucks_at_gate)
    with col2:
        st.metric("At Weighing Bridge", metrics.trucks_at_bridge)
    with col3:
        st.metric("At Warehouse", metrics.trucks_at_warehouse)
    with col4:
        st.metric("Warehouses ≥ 80%", metrics.warehouses_at_capacity)

    st.divider()

    left, right = st.columns(2)
    with left:
        st.subheader("🔔 Alerts")
        for alert in snapshot.alerts:
            ALERT_RENDERERS.get(alert.type, st.info)(alert.message)

    with right:
        st.subheader("📅 Today's Appointments")
        if not snapshot.todays_appointments:
            st.info("No appointments scheduled today.")
        else:
            st.dataframe(pd.DataFrame([
                {
                    "Time": a.scheduled_time.strftime("%H:%M"),
                    "Plate": a.license_plate,
                    "Seller": a.seller_name,
                    "Material": a.material,
                    "Status": a.status,
                }
                for a in snapshot.todays_appointments
            ]), hide_index=True, use_container_width=True)

        compliance = snapshot.arrival_compliance
        st.metric(
            "Arrival Compliance",
            f"{compliance.compliance_rate}%",
            help=f"{compliance.on_time_arrivals} on time, {compliance.delayed_arrivals} delayed",
        )

    for key, error in snapshot.errors.items():
        st.caption(f"{key}: {error}")


# ==================================================
# TRUCKS
# ==================================================

def render_trucks(loader: OperationalDataLoader) -> None:
    view = loader.trucks()
    _render_source_badge(view, "Trucks")
    trucks = view.value or []

    counts = dashboard_engine.count_statuses("truck", trucks)
    if counts:
        df = pd.DataFrame(list(counts.items()), columns=["Status", "Trucks"])
        fig = px.bar(df, x="Status", y="Trucks", title="Trucks by Status")
        st.plotly_chart(fig, use_container_width=True)

    st.dataframe(pd.DataFrame([
        {
            "Plate": t.license_plate,
            "Seller": t.seller_name,
            "Material": t.material,
            "Planned": t.planned_arrival,
            "Arrived": t.actual_arrival,
            "Status": t.status,
            "Warehouse": t.warehouse_number,
            "Net (t)": t.net_weight,
        }
        for t in trucks
    ]), hide_index=True, use_container_width=True)

    with st.expander("🚚 Move Truck"):
        on_site = [t for t in trucks if t.status in lifecycle.TRUCK_TRANSITIONS and lifecycle.TRUCK_TRANSITIONS[t.status]]
        if not on_site:
            st.info("No truck can move right now.")
            return
        truck = st.selectbox("Truck", on_site, format_func=lambda t: f"{t.license_plate} ({t.status})")
        next_status = st.selectbox("Next status", sorted(lifecycle.TRUCK_TRANSITIONS[truck.status]))
        if st.button("Update status"):
            try:
                _report(loader.update_truck_status(truck.id, next_status), "Truck status updated")
            except ValidationError as e:
                st.error(str(e))


# ==================================================
# APPOINTMENTS
# ==================================================

def render_appointments(loader: OperationalDataLoader) -> None:
    view = loader.appointments()
    _render_source_badge(view, "Appointments")
    overview = loader.appointment_overview().value

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Scheduled", overview.scheduled)
    col2.metric("In Progress", overview.in_progress)
    col3.metric("Departed", overview.departed)
    col4.metric("Cancelled", overview.cancelled)

    st.dataframe(pd.DataFrame([
        {
            "Plate": a.license_plate,
            "Seller": a.seller_name,
            "Material": a.material,
            "Window": f"{a.arrival_window.start:%d/%m %H:%M} - {a.arrival_window.end:%H:%M}",
            "Status": a.status,
            "Warehouse": a.warehouse_number,
        }
        for a in view.value or []
    ]), hide_index=True, use_container_width=True)

    with st.form("schedule_appointment"):
        st.markdown("#### Schedule Appointment")
        plate = st.text_input("License plate")
        seller_id = st.text_input("Seller id")
        seller_name = st.text_input("Seller name")
        material = st.selectbox("Material", MATERIAL_TYPES, format_func=lambda m: MATERIALS[m]["name"])
        default_time = datetime.now() + timedelta(hours=3)
        day = st.date_input("Date", default_time.date())
        time_of_day = st.time_input("Time", default_time.time().replace(second=0, microsecond=0))
        if st.form_submit_button("Schedule"):
            try:
                result = loader.create_appointment(
                    plate, seller_id, seller_name, material, datetime.combine(day, time_of_day)
                )
                _report(result, "Appointment scheduled")
            except ValidationError as e:
                st.error(str(e))


# ==================================================
# WAREHOUSES
# ==================================================

def render_warehouses(loader: OperationalDataLoader) -> None:
    view = loader.warehouses()
    _render_source_badge(view, "Warehouses")
    warehouses = view.value or []
    if not warehouses:
        st.info("No warehouse data available.")
        return

    df = pd.DataFrame([
        {
            "Warehouse": w.number,
            "Seller": w.seller_name,
            "Material": w.material or "empty",
            "Stock (t)": w.current_stock,
            "Capacity %": w.capacity_pct,
            "Level": dashboard_engine.classify_capacity(w),
        }
        for w in warehouses
    ])

    fig = px.bar(
        df,
        x="Warehouse",
        y="Capacity %",
        color="Level",
        color_discrete_map={"normal": "green", "high": "orange", "over": "red"},
        title="Warehouse Utilization",
    )
    st.plotly_chart(fig, use_container_width=True)
    st.dataframe(df, hide_index=True, use_container_width=True)


# ==================================================
# PURCHASE ORDERS
# ==================================================

def render_purchase_orders(loader: OperationalDataLoader) -> None:
    view = loader.purchase_orders()
    _render_source_badge(view, "Purchase orders")
    overview = loader.purchase_order_overview().value

    col1, col2 = st.columns(2)
    col1.metric("Order Value", f"${overview['total_value']:,.0f}")
    col2.metric("Commission", f"${overview['total_commission']:,.0f}")

    st.dataframe(pd.DataFrame([
        {
            "PO": po.po_number,
            "Customer": po.customer_name,
            "Seller": po.seller_name,
            "Ordered": po.order_date.date(),
            "Status": po.status,
            "Value": round(po.total_value, 2),
            "Due": po.estimated_delivery_date.date() if po.estimated_delivery_date else None,
        }
        for po in view.value or []
    ]), hide_index=True, use_container_width=True)


# ==================================================
# SHIPPING ORDERS
# ==================================================

def _shipping_rows(orders) -> List[dict]:
    return [
        {
            "SO": so.so_number,
            "Vessel": so.vessel_number,
            "PO": so.po_reference,
            "ETA": so.estimated_arrival_date,
            "Status": so.status,
            "Inspected": so.inspection_completed,
            "Bunkered": so.bunkering_completed,
            "Loaded": so.loading_completed,
        }
        for so in orders
    ]


def render_shipping_orders(loader: OperationalDataLoader) -> None:
    view = loader.shipping_orders()
    _render_source_badge(view, "Shipping orders")
    st.dataframe(pd.DataFrame(_shipping_rows(view.value or [])), hide_index=True, use_container_width=True)

    inspections = loader.outstanding_inspections()
    bunkering = loader.outstanding_bunkering()

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("#### Outstanding Inspections")
        for order in inspections.value or []:
            if st.button(f"Complete inspection {order.vessel_number}", key=f"inspect-{order.id}"):
                _report(loader.complete_inspection(order.id, "inspector"), "Inspection completed")
    with col2:
        st.markdown("#### Outstanding Bunkering")
        for order in bunkering.value or []:
            if st.button(f"Complete bunkering {order.vessel_number}", key=f"bunker-{order.id}"):
                _report(loader.complete_bunkering(order.id, "bunkering officer"), "Bunkering completed")


def render_dashboard(loader: OperationalDataLoader) -> None:
    """Render the full operations dashboard."""
    tabs = st.tabs(["📊 Overview", "🚚 Trucks", "📅 Appointments", "🏭 Warehouses", "🧾 Purchase Orders", "🚢 Shipping"])

    with tabs[0]:
        render_overview(loader)
    with tabs[1]:
        render_trucks(loader)
    with tabs[2]:
        render_appointments(loader)
    with tabs[3]:
        render_warehouses(loader)
    with tabs[4]:
        render_purchase_orders(loader)
    with tabs[5]:
        render_shipping_orders(loader)
