"""PREVENT-style multiplicative heuristic model.

A base risk built from age, gender and additive offsets, clamped to [1, 50],
then scaled by independent multipliers for diabetes, smoking and kidney
disease. Needs only age, gender and systolic BP; cholesterol, HDL and BMI
refine it when present.
"""
from typing import List, Optional, Tuple

from models.risk import ModelResult, PatientData
from tools.health_metrics import round_half_up

MODEL_NAME = "prevent"

BASE_RISK = 5.0
MAX_RISK = 95.0
THIRTY_YEAR_FACTOR = 1.8

# (threshold, offset, factor); first match wins
SYSTOLIC_OFFSETS: List[Tuple[float, float, str]] = [
    (180, 15, "Stage 3 hypertension significantly increases PREVENT risk"),
    (140, 10, "Stage 2 hypertension increases PREVENT risk"),
    (130, 6, "Stage 1 hypertension moderately increases PREVENT risk"),
    (120, 2, "Elevated blood pressure slightly increases PREVENT risk"),
]
CHOLESTEROL_OFFSETS: List[Tuple[float, float, str]] = [
    (240, 8, "High total cholesterol significantly increases PREVENT risk"),
    (200, 4, "Borderline high cholesterol increases PREVENT risk"),
]
BMI_OFFSETS: List[Tuple[float, float, str]] = [
    (30, 6, "Obesity increases PREVENT risk"),
    (25, 3, "Overweight moderately increases PREVENT risk"),
]

DIABETES_MULTIPLIER = 1.5
SMOKING_MULTIPLIER = 1.4
KIDNEY_MULTIPLIER = 1.3


def _offset(value: Optional[float], table, factors: List[str]) -> float:
    if value is None:
        return 0.0
    for threshold, offset, factor in table:
        if value >= threshold:
            factors.append(factor)
            return offset
    return 0.0


def calculate_base_risk(patient: PatientData, factors: List[str]) -> float:
    risk = BASE_RISK + 2 * (1.05 ** (patient.age - 40))
    risk += 3 if patient.gender == "male" else 1

    risk += _offset(patient.systolic_bp, SYSTOLIC_OFFSETS, factors)
    risk += _offset(patient.cholesterol, CHOLESTEROL_OFFSETS, factors)

    hdl = patient.hdl_cholesterol
    if hdl is not None:
        if hdl < 40:
            risk += 5
            factors.append("Low HDL cholesterol increases PREVENT risk")
        elif hdl >= 60:
            risk -= 3
            factors.append("High HDL cholesterol is protective in PREVENT model")

    risk += _offset(patient.bmi, BMI_OFFSETS, factors)
    return max(1.0, min(50.0, risk))


def score(patient: PatientData) -> Optional[ModelResult]:
    """10- and 30-year risk, or None without age, gender and systolic BP."""
    if patient.age is None or patient.gender is None or patient.systolic_bp is None:
        return None

    factors: List[str] = []
    base = calculate_base_risk(patient, factors)

    multiplier = 1.0
    if patient.has_diabetes:
        multiplier *= DIABETES_MULTIPLIER
        factors.append("Diabetes increases PREVENT risk by 50%")
    if patient.is_current_smoker:
        multiplier *= SMOKING_MULTIPLIER
        factors.append("Current smoking increases PREVENT risk by 40%")
    if patient.kidney_disease is True:
        multiplier *= KIDNEY_MULTIPLIER
        factors.append("Kidney disease increases PREVENT risk by 30%")

    risk_10 = min(MAX_RISK, base * multiplier)
    risk_30 = min(MAX_RISK, base * multiplier * THIRTY_YEAR_FACTOR)

    return ModelResult(
        model=MODEL_NAME,
        risk_percentage=round_half_up(risk_10, 1),
        factors=tuple(factors),
        risk_30_year=round_half_up(risk_30, 1),
    )
