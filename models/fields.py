"""Field Schema for the guided cardiovascular questionnaire.

Twelve base attributes are asked in a fixed order. Some answers open a short
follow-up sub-flow (current smokers are asked how much they smoke, diabetics
are asked for type and duration). Follow-up answers are stored verbatim.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple


class FieldKind(Enum):
    NUMERIC = "numeric"
    ENUM = "enum"
    BOOLEAN = "boolean"
    TEXT = "text"


@dataclass(frozen=True)
class FieldSpec:
    """Static description of one collected attribute."""
    name: str
    label: str
    prompt: str
    kind: FieldKind
    required: bool = False
    bounds: Optional[Tuple[float, float]] = None
    choices: Tuple[str, ...] = ()
    unit: str = ""
    follow_up: Optional[Callable[[Any], Optional[str]]] = None

    def follow_up_for(self, value: Any) -> Optional[str]:
        """Return the follow-up id triggered by ``value``, if any."""
        if self.follow_up is None:
            return None
        return self.follow_up(value)


@dataclass(frozen=True)
class FollowUpSpec:
    """One step of a follow-up sub-flow."""
    id: str
    prompt: str
    target_field: str
    next_id: Optional[str] = None


# Order in which the guided flow asks questions
QUESTION_FLOW: List[str] = [
    "age",
    "gender",
    "systolic_bp",
    "diastolic_bp",
    "cholesterol",
    "hdl_cholesterol",
    "bmi",
    "smoking",
    "physical_activity",
    "diet_quality",
    "diabetes",
    "family_history",
]

FIELDS: Dict[str, FieldSpec] = {
    "age": FieldSpec(
        name="age",
        label="age",
        prompt="What's your age?",
        kind=FieldKind.NUMERIC,
        required=True,
        bounds=(0, 150),
        unit="years",
    ),
    "gender": FieldSpec(
        name="gender",
        label="gender",
        prompt="What's your gender? (male/female/other)",
        kind=FieldKind.ENUM,
        required=True,
        choices=("male", "female", "other"),
    ),
    "systolic_bp": FieldSpec(
        name="systolic_bp",
        label="systolic blood pressure",
        prompt=(
            "What's your systolic blood pressure, the top number? "
            "(Normal: < 120 mmHg, Elevated: 120-129, High: ≥ 130 mmHg)"
        ),
        kind=FieldKind.NUMERIC,
        bounds=(70, 250),
        unit="mmHg",
    ),
    "diastolic_bp": FieldSpec(
        name="diastolic_bp",
        label="diastolic blood pressure",
        prompt=(
            "What's your diastolic blood pressure, the bottom number? "
            "(Normal: < 80 mmHg, Elevated: 80-89, High: ≥ 90 mmHg)"
        ),
        kind=FieldKind.NUMERIC,
        bounds=(40, 150),
        unit="mmHg",
    ),
    "cholesterol": FieldSpec(
        name="cholesterol",
        label="total cholesterol",
        prompt=(
            "What's your total cholesterol level? "
            "(Desirable: < 200 mg/dL, Borderline: 200-239, High: ≥ 240 mg/dL)"
        ),
        kind=FieldKind.NUMERIC,
        bounds=(50, 500),
        unit="mg/dL",
    ),
    "hdl_cholesterol": FieldSpec(
        name="hdl_cholesterol",
        label="HDL cholesterol",
        prompt=(
            "What's your HDL cholesterol (the 'good' cholesterol)? "
            "(Low risk: ≥ 60 mg/dL, Normal: 40-59, High risk: < 40 mg/dL)"
        ),
        kind=FieldKind.NUMERIC,
        bounds=(10, 150),
        unit="mg/dL",
    ),
    "bmi": FieldSpec(
        name="bmi",
        label="BMI",
        prompt=(
            "What's your BMI (Body Mass Index)? (Underweight: < 18.5, Normal: 18.5-24.9, "
            "Overweight: 25-29.9, Obese: ≥ 30). If you don't know your BMI, you can "
            "provide your weight and height."
        ),
        kind=FieldKind.NUMERIC,
        bounds=(10, 60),
        unit="kg/m2",
    ),
    "smoking": FieldSpec(
        name="smoking",
        label="smoking status",
        prompt="Do you smoke? (current/former/never)",
        kind=FieldKind.ENUM,
        choices=("current", "former", "never"),
        follow_up=lambda value: "smoking_amount" if value == "current" else None,
    ),
    "physical_activity": FieldSpec(
        name="physical_activity",
        label="physical activity",
        prompt=(
            "How much physical activity do you get? (sedentary: little to no exercise, "
            "moderate: some regular exercise, active: regular exercise most days)"
        ),
        kind=FieldKind.ENUM,
        choices=("sedentary", "moderate", "active"),
    ),
    "diet_quality": FieldSpec(
        name="diet_quality",
        label="diet quality",
        prompt=(
            "How would you rate your diet quality? (poor: mostly processed foods, "
            "fair: mixed diet, good: mostly whole foods, excellent: very healthy balanced diet)"
        ),
        kind=FieldKind.ENUM,
        choices=("poor", "fair", "good", "excellent"),
    ),
    "diabetes": FieldSpec(
        name="diabetes",
        label="diabetes",
        prompt="Do you have diabetes? (yes/no)",
        kind=FieldKind.BOOLEAN,
        follow_up=lambda value: "diabetes_type" if value is True else None,
    ),
    "family_history": FieldSpec(
        name="family_history",
        label="family history of heart disease",
        prompt=(
            "Do you have a family history of heart disease? (yes/no - includes parents, "
            "siblings, or grandparents with heart disease)"
        ),
        kind=FieldKind.BOOLEAN,
    ),
}

FOLLOW_UPS: Dict[str, FollowUpSpec] = {
    "diabetes_type": FollowUpSpec(
        id="diabetes_type",
        prompt="I see. What type of diabetes do you have? (Type 1 / Type 2 / Gestational / Other)",
        target_field="diabetes_type",
        next_id="diabetes_duration",
    ),
    "diabetes_duration": FollowUpSpec(
        id="diabetes_duration",
        prompt="How many years have you been managing your diabetes?",
        target_field="diabetes_duration",
    ),
    "smoking_amount": FollowUpSpec(
        id="smoking_amount",
        prompt="About how many cigarettes do you smoke per day?",
        target_field="cigarettes_per_day",
    ),
}

# Accepted on direct calculation requests but never asked by the guided flow
SUPPLEMENTARY_FIELDS: Tuple[str, ...] = ("kidney_disease", "max_heart_rate")

FOLLOW_UP_FIELDS: Tuple[str, ...] = tuple(f.target_field for f in FOLLOW_UPS.values())

ALL_FIELDS: Tuple[str, ...] = tuple(QUESTION_FLOW) + FOLLOW_UP_FIELDS + SUPPLEMENTARY_FIELDS

REQUIRED_FIELDS: Tuple[str, ...] = tuple(name for name in QUESTION_FLOW if FIELDS[name].required)


def get_field(name: str) -> FieldSpec:
    """Look up a base field, raising KeyError for unknown names."""
    return FIELDS[name]
