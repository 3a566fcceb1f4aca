# mineralflow/core/lifecycle.py

"""
Status state machines for trucks, appointments, shipping orders and
purchase orders.

Transitions are driven by the backend. This module normalizes status
tokens, maps truck status onto appointment status and dashboard buckets,
and validates transitions requested from the dashboard forms.
"""

import re
from typing import Dict, Optional, Set

from mineralflow.core.validation import ValidationError


class LifecycleError(ValidationError):
    """Raised when an invalid status transition is attempted."""
    pass


UNKNOWN_STATUS = "unknown"

# ==================================================
# TRUCK
# ==================================================
TRUCK_SCHEDULED = "scheduled"
TRUCK_GATE = "GATE"
TRUCK_WEIGHING_BRIDGE = "WEIGHING_BRIDGE"
TRUCK_WAREHOUSE = "WAREHOUSE"
TRUCK_EXIT = "EXIT"
TRUCK_GARAGE = "At the Truck Garage"

TRUCK_TRANSITIONS: Dict[str, Set[str]] = {
    TRUCK_SCHEDULED: {TRUCK_GATE, TRUCK_GARAGE},
    TRUCK_GARAGE: {TRUCK_SCHEDULED},
    TRUCK_GATE: {TRUCK_WEIGHING_BRIDGE},
    TRUCK_WEIGHING_BRIDGE: {TRUCK_WAREHOUSE},
    TRUCK_WAREHOUSE: {TRUCK_EXIT},
    TRUCK_EXIT: set(),
}

TRUCK_ON_SITE = {TRUCK_GATE, TRUCK_WEIGHING_BRIDGE, TRUCK_WAREHOUSE}
TRUCK_ACTIVE = {TRUCK_SCHEDULED} | TRUCK_ON_SITE

# ==================================================
# APPOINTMENT
# ==================================================
APPOINTMENT_SCHEDULED = "scheduled"
APPOINTMENT_ARRIVED = "arrived"
APPOINTMENT_DEPARTED = "departed"
APPOINTMENT_CANCELLED = "cancelled"

APPOINTMENT_TRANSITIONS: Dict[str, Set[str]] = {
    APPOINTMENT_SCHEDULED: {APPOINTMENT_ARRIVED, APPOINTMENT_CANCELLED},
    APPOINTMENT_ARRIVED: {APPOINTMENT_DEPARTED},
    APPOINTMENT_DEPARTED: set(),
    APPOINTMENT_CANCELLED: set(),
}

TRUCK_TO_APPOINTMENT: Dict[str, str] = {
    TRUCK_SCHEDULED: APPOINTMENT_SCHEDULED,
    TRUCK_GATE: APPOINTMENT_ARRIVED,
    TRUCK_WEIGHING_BRIDGE: APPOINTMENT_ARRIVED,
    TRUCK_WAREHOUSE: APPOINTMENT_ARRIVED,
    TRUCK_EXIT: APPOINTMENT_DEPARTED,
    TRUCK_GARAGE: APPOINTMENT_CANCELLED,
}

# ==================================================
# SHIPPING ORDER
# ==================================================
SO_ARRIVED = "arrived"
SO_INSPECTING = "inspecting"
SO_VALIDATED = "validated"
SO_BUNKERING = "bunkering"
SO_READY_FOR_LOADING = "ready_for_loading"
SO_DEPARTED = "departed"

SHIPPING_ORDER_TRANSITIONS: Dict[str, Set[str]] = {
    SO_ARRIVED: {SO_INSPECTING, SO_VALIDATED},
    SO_INSPECTING: {SO_VALIDATED},
    SO_VALIDATED: {SO_BUNKERING},
    SO_BUNKERING: {SO_READY_FOR_LOADING},
    SO_READY_FOR_LOADING: {SO_DEPARTED},
    SO_DEPARTED: set(),
}

SO_IN_PORT = {SO_ARRIVED, SO_INSPECTING, SO_VALIDATED, SO_BUNKERING, SO_READY_FOR_LOADING}

# ==================================================
# PURCHASE ORDER
# ==================================================
PO_OUTSTANDING = "outstanding"
PO_FULFILLED = "fulfilled"
PO_CANCELLED = "cancelled"

PURCHASE_ORDER_TRANSITIONS: Dict[str, Set[str]] = {
    PO_OUTSTANDING: {PO_FULFILLED, PO_CANCELLED},
    PO_FULFILLED: set(),
    PO_CANCELLED: set(),
}

# Invoicing backend vocabulary
PO_BACKEND_ALIASES = {
    "pending": PO_OUTSTANDING,
}

MACHINES: Dict[str, Dict[str, Set[str]]] = {
    "truck": TRUCK_TRANSITIONS,
    "appointment": APPOINTMENT_TRANSITIONS,
    "shipping_order": SHIPPING_ORDER_TRANSITIONS,
    "purchase_order": PURCHASE_ORDER_TRANSITIONS,
}


# ==================================================
# TOKEN NORMALIZATION
# ==================================================

def _token_key(token: str) -> str:
    return re.sub(r"[\s_\-]+", "_", token.strip()).casefold()


def _vocabulary(machine: str) -> Dict[str, str]:
    return {_token_key(state): state for state in MACHINES[machine]}


_VOCABULARIES = {machine: _vocabulary(machine) for machine in MACHINES}


def normalize_status(machine: str, raw: Optional[str], aliases: Optional[Dict[str, str]] = None) -> str:
    """
    Map a backend status token onto the machine's vocabulary.

    Matching ignores case, spaces, hyphens and underscores. Unrecognised
    tokens come back verbatim so they stay visible as unknown; an empty
    token becomes "unknown".
    """
    if raw is None:
        return UNKNOWN_STATUS
    token = str(raw).strip()
    if not token:
        return UNKNOWN_STATUS

    key = _token_key(token)
    if aliases and key in aliases:
        return aliases[key]
    return _VOCABULARIES[machine].get(key, token)


def is_known_status(machine: str, status: str) -> bool:
    return status in MACHINES[machine]


def bucket_for(machine: str, status: str) -> str:
    """Dashboard bucket: the status itself when known, else "unknown"."""
    return status if is_known_status(machine, status) else UNKNOWN_STATUS


def appointment_status_for_truck(truck_status: str) -> str:
    """
    Derived appointment status for a truck status.

    EXIT -> departed, garage hold -> cancelled, on site -> arrived.
    An unknown truck status is carried through unchanged.
    """
    return TRUCK_TO_APPOINTMENT.get(truck_status, truck_status)


def is_appointment_in_progress(status: str) -> bool:
    return status not in (APPOINTMENT_SCHEDULED, APPOINTMENT_CANCELLED, APPOINTMENT_DEPARTED)


def validate_transition(machine: str, current_state: str, next_state: str) -> None:
    """
    Validate whether a status transition is allowed.

    Raises LifecycleError if invalid.
    """
    transitions = MACHINES[machine]

    if current_state not in transitions:
        raise LifecycleError(f"Unknown current {machine} status: {current_state}", field="status")

    if next_state not in transitions[current_state]:
        raise LifecycleError(
            f"Invalid {machine} transition: {current_state} → {next_state}",
            field="status",
        )
