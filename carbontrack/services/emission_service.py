# carbontrack/services/emission_service.py
"""Convert activity quantities to kg CO2 using a fixed emission factor table."""
from __future__ import annotations

import math
from collections import namedtuple
from numbers import Real
from typing import Tuple

from carbontrack.models.carbon import ActivityCategory
from carbontrack.utils.errors import InvalidQuantity, UnknownActivityType

EmissionFactor = namedtuple('EmissionFactor', ['factor', 'unit', 'category'])

# kg CO2 per unit of activity. The category is derived from the activity so
# callers can never file emissions under a category of their choosing.
EMISSION_FACTORS = {
    'electricity': EmissionFactor(0.82, 'kWh', ActivityCategory.ELECTRICITY),
    'petrol': EmissionFactor(2.31, 'L', ActivityCategory.TRANSPORT),
    'diesel': EmissionFactor(2.68, 'L', ActivityCategory.TRANSPORT),
    'flight_short': EmissionFactor(0.09, 'km', ActivityCategory.FLIGHT),
    'flight_long': EmissionFactor(0.15, 'km', ActivityCategory.FLIGHT),
    'lpg': EmissionFactor(2.98, 'kg', ActivityCategory.FUEL),
    'beef': EmissionFactor(27.0, 'kg', ActivityCategory.FOOD),
    'chicken': EmissionFactor(6.9, 'kg', ActivityCategory.FOOD),
    'rice': EmissionFactor(4.0, 'kg', ActivityCategory.FOOD),
    'vegetables': EmissionFactor(2.0, 'kg', ActivityCategory.FOOD),
    'waste': EmissionFactor(1.0, 'kg', ActivityCategory.WASTE),
}


def get_factor(activity_type: str) -> EmissionFactor:
    try:
        return EMISSION_FACTORS[activity_type]
    except (KeyError, TypeError):
        raise UnknownActivityType(f"Unknown activity type: {activity_type!r}") from None


def validate_quantity(quantity, label: str = "quantity") -> float:
    """Return *quantity* as a float, rejecting negatives, NaN and non-numbers."""
    # bool is a Real subclass but True/False are never meaningful quantities
    if isinstance(quantity, bool) or not isinstance(quantity, Real):
        raise InvalidQuantity(f"{label} must be a number, got {quantity!r}")
    value = float(quantity)
    if math.isnan(value) or math.isinf(value):
        raise InvalidQuantity(f"{label} must be a finite number")
    if value < 0:
        raise InvalidQuantity(f"{label} cannot be negative")
    return value


def convert(activity_type: str, quantity) -> Tuple[float, ActivityCategory]:
    """Return ``(co2_amount, category)`` for *quantity* units of *activity_type*."""
    emission = get_factor(activity_type)
    value = validate_quantity(quantity, label=activity_type)
    return value * emission.factor, emission.category
