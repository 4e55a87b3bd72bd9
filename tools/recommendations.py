"""Deterministic recommendation rules.

Rules run in a fixed order over the raw patient values; the only input taken
from the assessment is its category. Same inputs, same ordered output.
"""
from typing import List

from models.risk import PatientData, Priority, Recommendation, RiskAssessment, RiskCategory


def _gte(value, threshold) -> bool:
    return value is not None and value >= threshold


def _lt(value, threshold) -> bool:
    return value is not None and value < threshold


def generate_recommendations(assessment: RiskAssessment, patient: PatientData) -> List[Recommendation]:
    recs: List[Recommendation] = []

    if _gte(patient.systolic_bp, 130) or _gte(patient.diastolic_bp, 80):
        recs.append(Recommendation(
            category="Blood Pressure",
            priority=Priority.HIGH,
            action="Manage blood pressure through lifestyle changes and/or medication",
            details=(
                "Aim for BP < 120/80 mmHg. Consider reducing sodium intake, increasing physical "
                "activity, and consulting with a healthcare provider about medication if needed."
            ),
        ))

    if _gte(patient.cholesterol, 200) or _lt(patient.hdl_cholesterol, 40):
        recs.append(Recommendation(
            category="Cholesterol",
            priority=Priority.HIGH,
            action="Improve cholesterol levels through diet and exercise",
            details=(
                "Reduce saturated and trans fats, increase omega-3 fatty acids, and engage in regular "
                "physical activity. Consider medication if lifestyle changes are insufficient."
            ),
        ))

    if patient.is_current_smoker:
        recs.append(Recommendation(
            category="Smoking",
            priority=Priority.CRITICAL,
            action="Quit smoking immediately",
            details=(
                "Smoking is one of the most significant modifiable risk factors. Seek support through "
                "smoking cessation programs, nicotine replacement therapy, or medications."
            ),
        ))

    if patient.physical_activity in ("sedentary", "none"):
        recs.append(Recommendation(
            category="Physical Activity",
            priority=Priority.HIGH,
            action="Start a regular exercise routine",
            details=(
                "Aim for at least 150 minutes of moderate-intensity aerobic activity or 75 minutes of "
                "vigorous activity per week, plus muscle-strengthening activities twice a week."
            ),
        ))

    if patient.diet_quality in ("poor", "fair"):
        recs.append(Recommendation(
            category="Diet",
            priority=Priority.HIGH,
            action="Adopt a heart-healthy diet",
            details=(
                "Follow a Mediterranean or DASH diet: increase fruits, vegetables, whole grains, lean "
                "proteins, and healthy fats. Reduce processed foods, sugar, and sodium."
            ),
        ))

    if _gte(patient.bmi, 25):
        recs.append(Recommendation(
            category="Weight Management",
            priority=Priority.MODERATE,
            action="Achieve and maintain a healthy weight",
            details=(
                "Aim for a BMI between 18.5-24.9 through a combination of diet and exercise. Even a "
                "5-10% weight loss can significantly improve cardiovascular health."
            ),
        ))

    if patient.has_diabetes:
        recs.append(Recommendation(
            category="Diabetes Management",
            priority=Priority.CRITICAL,
            action="Maintain optimal blood glucose control",
            details=(
                "Work with your healthcare team to keep HbA1c < 7%. Monitor blood sugar regularly, take "
                "medications as prescribed, and maintain a diabetes-friendly diet."
            ),
        ))

    if assessment.category is RiskCategory.HIGH:
        recs.append(Recommendation(
            category="Medical Care",
            priority=Priority.CRITICAL,
            action="Consult with a cardiologist or primary care physician",
            details=(
                "Given your risk level, regular monitoring and potentially preventive medications "
                "(like statins or aspirin) may be recommended. Schedule an appointment soon."
            ),
        ))

    recs.append(Recommendation(
        category="Preventive Care",
        priority=Priority.MODERATE,
        action="Schedule regular health checkups",
        details=(
            "Get annual physical exams, monitor blood pressure and cholesterol regularly, and discuss "
            "your risk factors with your healthcare provider."
        ),
    ))

    return recs
