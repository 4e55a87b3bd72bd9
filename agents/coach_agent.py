"""CoachAgent - Risk results in plain language

Renders the user-facing text of the post-calculation stages: the risk
summary, the "how to lower your risk" guidance and the population comparison.
Output is fully deterministic; it only rephrases what the risk tools produced.
"""
from typing import List, Optional
import logging

from models.risk import PatientData, PopulationComparison, Recommendation, RiskAssessment
from tools.population_comparison import INSIGHT_TEXT

logger = logging.getLogger(__name__)

LIFESTYLE_CATEGORIES = ["Diet", "Physical Activity", "Weight Management", "Cholesterol", "Blood Pressure"]

SMOKING_MESSAGE = (
    "**Most importantly, if you smoke, quitting smoking is the single most important step you can "
    "take to reduce your heart disease risk.** Smoking significantly increases your risk of heart "
    "disease, stroke, and other cardiovascular problems. Consider seeking support through smoking "
    "cessation programs, nicotine replacement therapy, or speaking with your healthcare provider "
    "about medications that can help. "
)

CALORIE_ACTION = (
    "• Reduce caloric intake by cutting back on heavily processed foods and sugary drinks, and focus "
    "on whole foods like fruits, vegetables, lean proteins, and whole grains"
)
DIET_ACTION = (
    "• Eat more fruits and vegetables (aim for 5 servings daily) and choose whole grains over "
    "refined grains"
)
START_ACTIVITY_ACTION = (
    "• Start with simple activities like walking 30 minutes a day or taking the stairs instead of elevators"
)
MORE_ACTIVITY_ACTION = (
    "• Increase your activity to at least 150 minutes of moderate exercise per week (like brisk "
    "walking, cycling, or swimming)"
)
CHOLESTEROL_ACTION = (
    "• Reduce saturated fats (found in red meat and full-fat dairy) and increase omega-3 rich foods "
    "like fish, nuts, and seeds"
)
BLOOD_PRESSURE_ACTION = (
    "• Reduce sodium intake (aim for less than 2,300mg per day) and increase potassium-rich foods "
    "like bananas, spinach, and sweet potatoes"
)

NO_ACTIONS_MESSAGE = "Based on your current health profile, maintaining your current healthy habits is important."

# BMI first, then the others in this order
COMPARISON_ORDER = ["bmi", "systolic_bp", "cholesterol", "hdl_cholesterol"]
MAX_OTHER_COMPARISONS = 2


def gender_label(gender: Optional[str]) -> str:
    if gender == "male":
        return "men"
    if gender == "female":
        return "women"
    return "people"


class CoachAgent:
    """Turns assessments into conversational text."""

    def risk_summary(self, assessment: RiskAssessment) -> str:
        return (
            f"Based on your health information, your 10-year heart disease risk is "
            f"{assessment.risk_percentage}%, which is classified as {assessment.category_description}. "
            "Would you like to know how to lower your risk?"
        )

    def comparison_question(self, patient: PatientData) -> str:
        return (
            f"Would you like to see how your values compare to the average "
            f"{gender_label(patient.gender)} in the Synthea database?"
        )

    def lowering_advice(self, patient: PatientData, recommendations: List[Recommendation]) -> str:
        """Smoking first, then up to three lifestyle actions."""
        text = SMOKING_MESSAGE if patient.is_current_smoker else ""

        bmi_high = patient.bmi is not None and patient.bmi >= 25
        actions: List[str] = []
        if bmi_high:
            actions.append(CALORIE_ACTION)

        lifestyle = [r for r in recommendations if r.category in LIFESTYLE_CATEGORIES][:3]
        for rec in lifestyle:
            if rec.category == "Diet":
                if not bmi_high:
                    actions.append(DIET_ACTION)
            elif rec.category == "Physical Activity":
                if patient.physical_activity in ("sedentary", "none"):
                    actions.append(START_ACTIVITY_ACTION)
                else:
                    actions.append(MORE_ACTIVITY_ACTION)
            elif rec.category == "Cholesterol":
                actions.append(CHOLESTEROL_ACTION)
            elif rec.category == "Blood Pressure":
                actions.append(BLOOD_PRESSURE_ACTION)
            # Weight Management is covered by the calorie advice above

        if actions:
            bullets = "\n".join(actions)
            if text:
                text += f"\n\nAdditionally, to improve your heart health:\n{bullets}."
            else:
                text = f"To improve your heart health:\n{bullets}."
        elif not text:
            text = NO_ACTIONS_MESSAGE

        return f"{text}\n\n{self.comparison_question(patient)}"

    def comparison_text(self, patient: PatientData, comparison: Optional[PopulationComparison]) -> str:
        """BMI plus up to two other metrics, phrased against the gender group."""
        label = gender_label(patient.gender)
        default = (
            f"Your values are generally within normal ranges compared to the average {label} "
            "in the Synthea database."
        )
        if comparison is None:
            return default

        insights = {i.metric: i for i in comparison.insights}
        phrases: List[str] = []
        others = 0
        for name in COMPARISON_ORDER:
            metric = comparison.comparisons.get(name)
            insight = insights.get(INSIGHT_TEXT[name].metric)
            if metric is None or insight is None:
                continue
            if name != "bmi":
                if others >= MAX_OTHER_COMPARISONS:
                    break
                others += 1

            pct = metric.percent_difference
            subject = f"your {insight.metric.lower()} ({insight.patient})"
            if abs(pct) < 5:
                phrases.append(f"{subject} is similar to the average {label} ({insight.average})")
            elif pct > 0:
                phrases.append(f"{subject} is {abs(pct):.1f}% higher than the average {label} ({insight.average})")
            else:
                phrases.append(f"{subject} is {abs(pct):.1f}% lower than the average {label} ({insight.average})")

        if not phrases:
            return default
        return f"Compared to the average {label} in the Synthea database, " + ", ".join(phrases) + "."
