"""Framingham points-table model (10-year coronary heart disease risk).

Valid for ages 30-74, male or female, with systolic BP, total cholesterol and
HDL present. Blood pressure is scored from systolic pressure only.
"""
from typing import List, Optional, Tuple

from models.risk import ModelResult, PatientData

MODEL_NAME = "framingham"

# (lower bound, points), highest bound first
MALE_AGE_POINTS: List[Tuple[float, int]] = [
    (70, 7), (65, 6), (60, 5), (55, 4), (50, 3), (45, 2), (40, 1), (35, 0), (30, -1),
]
FEMALE_AGE_POINTS: List[Tuple[float, int]] = [
    (65, 8), (60, 6), (55, 4), (50, 2), (45, 1), (30, 0),
]
CHOLESTEROL_POINTS: List[Tuple[float, int]] = [
    (280, 3), (240, 2), (200, 1), (160, 0), (float("-inf"), -3),
]
HDL_POINTS: List[Tuple[float, int]] = [
    (60, -2), (45, 0), (35, 1), (float("-inf"), 2),
]
SYSTOLIC_POINTS: List[Tuple[float, int]] = [
    (160, 3), (140, 2), (130, 1), (float("-inf"), 0),
]

# Points -> 10-year risk %, clamped at both ends
MALE_RISK_TABLE = {
    -1: 2, 0: 3, 1: 3, 2: 4, 3: 5, 4: 7, 5: 8, 6: 10, 7: 13,
    8: 16, 9: 20, 10: 25, 11: 31, 12: 37, 13: 45, 14: 53,
}
FEMALE_RISK_TABLE = {
    10: 1, 11: 2, 12: 2, 13: 3, 14: 4, 15: 5, 16: 6, 17: 8, 18: 10,
    19: 11, 20: 13, 21: 15, 22: 18, 23: 20, 24: 23, 25: 27, 26: 32, 27: 37, 28: 43,
}

DIABETES_POINTS = {"male": 2, "female": 4}
SMOKING_POINTS = 2


def _points_for(value: float, table: List[Tuple[float, int]]) -> int:
    for lower, points in table:
        if value >= lower:
            return points
    return 0


def points_to_risk(points: int, gender: str) -> float:
    """Look up the 10-year risk percentage for a points total."""
    table = MALE_RISK_TABLE if gender == "male" else FEMALE_RISK_TABLE
    lowest, highest = min(table), max(table)
    clamped = max(lowest, min(highest, points))
    return float(table[clamped])


def calculate_points(patient: PatientData) -> Tuple[int, List[str]]:
    """Total points and contributing factor strings."""
    factors: List[str] = []
    age_table = MALE_AGE_POINTS if patient.gender == "male" else FEMALE_AGE_POINTS

    points = _points_for(patient.age, age_table)
    points += _points_for(patient.cholesterol, CHOLESTEROL_POINTS)
    points += _points_for(patient.hdl_cholesterol, HDL_POINTS)
    points += _points_for(patient.systolic_bp, SYSTOLIC_POINTS)

    if patient.has_diabetes:
        points += DIABETES_POINTS[patient.gender]
        if patient.gender == "female":
            factors.append("Diabetes significantly increases Framingham risk in women")
        else:
            factors.append("Diabetes increases Framingham risk")

    if patient.is_current_smoker:
        points += SMOKING_POINTS
        factors.append("Current smoking increases Framingham risk")

    return points, factors


def score(patient: PatientData) -> Optional[ModelResult]:
    """Framingham result, or None when the patient is outside the model's scope."""
    required = (patient.age, patient.gender, patient.systolic_bp,
                patient.cholesterol, patient.hdl_cholesterol)
    if any(value is None for value in required):
        return None
    if patient.age < 30 or patient.age > 74:
        return None
    if patient.gender not in ("male", "female"):
        return None

    points, factors = calculate_points(patient)
    return ModelResult(
        model=MODEL_NAME,
        risk_percentage=round(points_to_risk(points, patient.gender), 1),
        factors=tuple(factors),
        points=points,
    )
