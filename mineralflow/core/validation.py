# mineralflow/core/validation.py

"""
Client-side checks for dashboard forms.

Validation failures are raised to the caller before anything is sent to
the backend and never trigger fallback substitution.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from mineralflow.core.constants import (
    APPOINTMENT_ADVANCE_HOURS,
    LICENSE_PLATE_REGEX,
    MATERIAL_TYPES,
    MAX_SHIPPING_ORDER,
    MAX_TRUCK_WEIGHT,
    MIN_TRUCK_WEIGHT,
    VESSEL_NUMBER_REGEX,
)


class ValidationError(ValueError):
    """Raised when user input fails a client-side check."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


def require(data: Dict[str, Any], *fields: str) -> None:
    for name in fields:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{name} is required", field=name)


def validate_license_plate(plate: str) -> str:
    plate = (plate or "").strip().upper()
    if not LICENSE_PLATE_REGEX.match(plate):
        raise ValidationError(f"Invalid license plate: {plate!r}", field="license_plate")
    return plate


def validate_vessel_number(vessel_number: str) -> str:
    vessel_number = (vessel_number or "").strip().upper()
    if not VESSEL_NUMBER_REGEX.match(vessel_number):
        raise ValidationError(f"Invalid vessel number: {vessel_number!r}", field="vessel_number")
    return vessel_number


def validate_material(material: str) -> str:
    if material not in MATERIAL_TYPES:
        raise ValidationError(f"Unknown material: {material!r}", field="material")
    return material


def validate_truck_weight(weight_tons: Optional[float], field: str) -> None:
    if weight_tons is None:
        return
    if not MIN_TRUCK_WEIGHT <= weight_tons <= MAX_TRUCK_WEIGHT:
        raise ValidationError(
            f"{field} must be between {MIN_TRUCK_WEIGHT} and {MAX_TRUCK_WEIGHT} tons",
            field=field,
        )


def validate_appointment_time(scheduled_time: datetime, now: Optional[datetime] = None) -> None:
    now = now or datetime.now()
    earliest = now + timedelta(hours=APPOINTMENT_ADVANCE_HOURS)
    if scheduled_time < earliest:
        raise ValidationError(
            f"Appointments must be booked at least {APPOINTMENT_ADVANCE_HOURS} hours in advance",
            field="scheduled_time",
        )


def validate_order_lines(lines: Iterable[Dict[str, Any]]) -> None:
    lines = list(lines)
    if not lines:
        raise ValidationError("A purchase order needs at least one line", field="items")
    for line in lines:
        validate_material(line.get("material"))
        quantity = line.get("quantity") or 0
        price = line.get("agreed_price_per_ton") or 0
        if quantity <= 0:
            raise ValidationError("Line quantity must be positive", field="quantity")
        if price <= 0:
            raise ValidationError("Line price per ton must be positive", field="agreed_price_per_ton")


def validate_shipping_quantity(quantity_tons: float) -> None:
    if quantity_tons <= 0 or quantity_tons > MAX_SHIPPING_ORDER:
        raise ValidationError(
            f"Shipping order quantity must be between 0 and {MAX_SHIPPING_ORDER} tons",
            field="quantity",
        )
