import math
from typing import Optional

KG_PER_LB = 0.45359237
CM_PER_INCH = 2.54


def calc_bmi(weight_kg: float, height_cm: float) -> Optional[float]:
    """
    Calculate Body Mass Index (BMI).

    Returns:
        BMI as float (kg/m^2, one decimal) or None if inputs are invalid.

    Validation:
    - weight_kg: 10-500 kg (realistic human range)
    - height_cm: 50-300 cm (realistic human range)
    """
    # Null checks
    if weight_kg is None or height_cm is None:
        return None

    try:
        weight_kg = float(weight_kg)
        height_cm = float(height_cm)
    except (ValueError, TypeError):
        return None

    # Range validation
    if weight_kg < 10 or weight_kg > 500:
        return None
    if height_cm < 50 or height_cm > 300:
        return None

    height_m = height_cm / 100.0
    return round(weight_kg / (height_m ** 2), 1)


def lb_to_kg(pounds: float) -> float:
    return pounds * KG_PER_LB


def inches_to_cm(inches: float) -> float:
    return inches * CM_PER_INCH


def feet_inches_to_cm(feet: float, inches: float = 0) -> float:
    """5'10" -> 177.8"""
    return inches_to_cm(feet * 12 + inches)


def estimate_max_heart_rate(age: Optional[float]) -> Optional[float]:
    """Age-predicted maximum heart rate (220 - age)."""
    if age is None:
        return None
    return 220 - age


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positive values (2.25 -> 2.3, 2.5 -> 3)."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor
