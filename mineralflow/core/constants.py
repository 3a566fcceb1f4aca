# mineralflow/core/constants.py

import re

# ==================================================
# MATERIALS
# ==================================================

UNKNOWN_MATERIAL = "unknown"

MATERIALS = {
    "gypsum": {
        "name": "Gypsum",
        "backend_name": "Gypsum",
        "price_per_ton": 13,
        "storage_cost_per_ton_per_day": 1,
    },
    "iron-ore": {
        "name": "Iron Ore",
        "backend_name": "Iron_Ore",
        "price_per_ton": 110,
        "storage_cost_per_ton_per_day": 5,
    },
    "cement": {
        "name": "Cement",
        "backend_name": "Cement",
        "price_per_ton": 95,
        "storage_cost_per_ton_per_day": 3,
    },
    "petcoke": {
        "name": "Petcoke",
        "backend_name": "PetCoke",
        "price_per_ton": 210,
        "storage_cost_per_ton_per_day": 10,
    },
    "slag": {
        "name": "Slag",
        "backend_name": "Slag",
        "price_per_ton": 160,
        "storage_cost_per_ton_per_day": 7,
    },
}

MATERIAL_TYPES = tuple(MATERIALS.keys())

# ==================================================
# OPERATIONAL LIMITS
# ==================================================

TRUCKS_PER_HOUR = 40
MAX_WAREHOUSE_CAPACITY = 500_000     # tons
WAREHOUSE_HIGH_THRESHOLD = 0.80      # "high" at or above
WAREHOUSE_OVER_THRESHOLD = 1.00      # "over" strictly above
CAPACITY_ALERT_THRESHOLD = 0.95      # alert feed capacity warning
MAX_SHIPPING_ORDER = 150_000         # tons
COMMISSION_PERCENTAGE = 0.01
ARRIVAL_WINDOW_HOURS = 1

# ==================================================
# REFRESH INTERVALS (seconds)
# ==================================================

REFRESH_DASHBOARD_METRICS = 30
REFRESH_TRUCK_STATUS = 15
REFRESH_WAREHOUSE_DATA = 60
REFRESH_OPERATIONS = 30

# ==================================================
# WIRE FORMATS
# ==================================================

BACKEND_DATETIME_FORMAT = "%d/%m/%Y %H:%M"

# ==================================================
# VALIDATION
# ==================================================

LICENSE_PLATE_REGEX = re.compile(r"^[A-Z0-9-]{6,12}$")
VESSEL_NUMBER_REGEX = re.compile(r"^[A-Z0-9-]{6,20}$")
MIN_TRUCK_WEIGHT = 0.25   # tons
MAX_TRUCK_WEIGHT = 50     # tons
APPOINTMENT_ADVANCE_HOURS = 2
