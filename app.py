"""
MineralFlow Operations Dashboard
Streamlit entry point: one shared data loader, tabs rendered by mineralflow.ui
"""
import logging
from datetime import datetime

import streamlit as st

from mineralflow.config import API_BASE_URL, configure_logging
from mineralflow.performance.data_loader import PRIMARY_COLLECTIONS, OperationalDataLoader
from mineralflow.ui.dashboard import render_dashboard

# ═══════════════════════════════════════════════════════════════
# PAGE CONFIG (MUST BE FIRST)
# ═══════════════════════════════════════════════════════════════
st.set_page_config(
    page_title="MineralFlow Operations",
    layout="wide",
    initial_sidebar_state="collapsed"
)

configure_logging()
logger = logging.getLogger("mineralflow.app")


# ═══════════════════════════════════════════════════════════════
# DATA LOADER (ONCE PER PROCESS)
# ═══════════════════════════════════════════════════════════════
@st.cache_resource
def get_loader() -> OperationalDataLoader:
    """One loader and cache shared by every session, refreshed in the background."""
    loader = OperationalDataLoader()
    loader.cache.start_background_refresh()
    logger.info(f"Data loader started against {API_BASE_URL}")
    return loader


# ═══════════════════════════════════════════════════════════════
# HEADER
# ═══════════════════════════════════════════════════════════════
st.title("⛏️ MineralFlow Operations")
st.caption("Landside • Warehousing • Invoicing • Waterside")

loader = get_loader()

if st.button("🔄 Refresh"):
    for key in PRIMARY_COLLECTIONS:
        loader.cache.invalidate(key)

render_dashboard(loader)

# ═══════════════════════════════════════════════════════════════
# FOOTER
# ═══════════════════════════════════════════════════════════════
st.divider()
st.caption(f"Backend: {API_BASE_URL} • Last rendered: {datetime.now().strftime('%H:%M:%S')}")
