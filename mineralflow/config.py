"""
MINERALFLOW CONFIGURATION

Purpose:
- Backend endpoints for the four subsystems
- Bearer token for the dashboard session
- Network timeout and synthetic data seed
- Logging level for the Streamlit entry point

Requirements:
• Never hardcode credentials (use os.getenv)
• Every value has a safe local default

Author: MineralFlow Operations
"""

import logging
import os
from typing import Optional

# Backend endpoints
API_BASE_URL = os.getenv("MINERALFLOW_API_BASE_URL", "http://localhost:8080")
LANDSIDE_PATH = os.getenv("MINERALFLOW_LANDSIDE_PATH", "/api/landside")
WAREHOUSING_PATH = os.getenv("MINERALFLOW_WAREHOUSING_PATH", "/api/warehouses")
INVOICING_PATH = os.getenv("MINERALFLOW_INVOICING_PATH", "/api/invoicing")
WATERSIDE_PATH = os.getenv("MINERALFLOW_WATERSIDE_PATH", "/api/waterside")

ACCESS_TOKEN = os.getenv("MINERALFLOW_ACCESS_TOKEN")
API_TIMEOUT = float(os.getenv("MINERALFLOW_API_TIMEOUT", "10"))  # seconds

LOG_LEVEL = os.getenv("MINERALFLOW_LOG_LEVEL", "INFO")


def get_synthetic_seed() -> Optional[int]:
    """Seed for the fallback dataset, or None to pick one per process."""
    raw = os.getenv("MINERALFLOW_SYNTHETIC_SEED")
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning(
            f"Ignoring non-integer MINERALFLOW_SYNTHETIC_SEED={raw!r}"
        )
        return None


def subsystem_urls(base_url: Optional[str] = None) -> dict:
    """Absolute base URL per backend subsystem."""
    base = (base_url or API_BASE_URL).rstrip("/")
    return {
        "landside": f"{base}{LANDSIDE_PATH}",
        "warehousing": f"{base}{WAREHOUSING_PATH}",
        "invoicing": f"{base}{INVOICING_PATH}",
        "waterside": f"{base}{WATERSIDE_PATH}",
    }


def configure_logging(level: Optional[str] = None) -> None:
    """Apply the configured log level (called once by app.py)."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Cache policies (seconds). Keyword arguments for performance.cache_manager.CachePolicy
TRUCK_CACHE_POLICY = {
    "stale_after": 30,
    "gc_after": 300,
    "refresh_interval": 15,
    "max_retries": 3,
    "retry_delay": 1.0,
}

LIST_CACHE_POLICY = {
    "stale_after": 30,
    "gc_after": 300,
    "refresh_interval": 30,
    "max_retries": 1,
    "retry_delay": 1.0,
}

WAREHOUSE_CACHE_POLICY = dict(LIST_CACHE_POLICY, refresh_interval=60)

NARROW_CACHE_POLICY = {
    "stale_after": 15,
    "gc_after": 120,
    "refresh_interval": None,
    "max_retries": 1,
    "retry_delay": 1.0,
}
