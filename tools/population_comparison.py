"""Compare a patient's values against population averages."""
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from models.risk import (
    ComparisonInsight,
    ComparisonStatus,
    MetricComparison,
    MetricStats,
    PatientData,
    PopulationComparison,
)
from tools.health_metrics import round_half_up

STATUS_THRESHOLD_PCT = 10.0
SIMILAR_INSIGHT_PCT = 5.0


@dataclass(frozen=True)
class _InsightText:
    metric: str
    subject: str
    unit: str
    higher: str
    lower: str
    rec_worse: str
    rec_better: str
    rec_normal: str


# Metrics in comparison order. Insight text exists for all but diastolic.
METRICS = ["systolic_bp", "diastolic_bp", "cholesterol", "hdl_cholesterol", "bmi"]
HIGHER_IS_BETTER = {"hdl_cholesterol"}

INSIGHT_TEXT: Dict[str, _InsightText] = {
    "systolic_bp": _InsightText(
        metric="Systolic Blood Pressure",
        subject="systolic BP",
        unit=" mmHg",
        higher="Your systolic BP is {pct}% higher than the database average",
        lower="Your systolic BP is {pct}% lower than the database average",
        rec_worse="Consider lifestyle changes or medication to lower your blood pressure",
        rec_better="Your blood pressure is well-controlled compared to the average",
        rec_normal="Your blood pressure is within normal range compared to the database average",
    ),
    "cholesterol": _InsightText(
        metric="Total Cholesterol",
        subject="cholesterol",
        unit=" mg/dL",
        higher="Your cholesterol is {pct}% higher than the database average",
        lower="Your cholesterol is {pct}% lower than the database average",
        rec_worse="Consider dietary changes and exercise to improve cholesterol levels",
        rec_better="Your cholesterol levels are favorable compared to the average",
        rec_normal="Your cholesterol is within normal range compared to the database average",
    ),
    "hdl_cholesterol": _InsightText(
        metric="HDL Cholesterol",
        subject="HDL",
        unit=" mg/dL",
        higher="Your HDL is {pct}% higher than average (good!)",
        lower="Your HDL is {pct}% lower than average",
        rec_worse="Increase physical activity and consider omega-3 supplements to raise HDL",
        rec_better="Your HDL levels are excellent compared to the average",
        rec_normal="Your HDL is within normal range compared to the database average",
    ),
    "bmi": _InsightText(
        metric="Body Mass Index",
        subject="BMI",
        unit="",
        higher="Your BMI is {pct}% higher than the database average",
        lower="Your BMI is {pct}% lower than the database average",
        rec_worse="Consider weight management strategies to reduce cardiovascular risk",
        rec_better="Your BMI is in a healthy range compared to the average",
        rec_normal="Your BMI is within normal range compared to the database average",
    ),
}


def _fmt(value: float) -> str:
    return f"{value:g}"


def comparison_status(percent_diff: float, higher_is_better: bool = False) -> ComparisonStatus:
    """better / worse / similar using a 10% threshold."""
    if higher_is_better:
        percent_diff = -percent_diff
    if percent_diff < -STATUS_THRESHOLD_PCT:
        return ComparisonStatus.BETTER
    if percent_diff > STATUS_THRESHOLD_PCT:
        return ComparisonStatus.WORSE
    return ComparisonStatus.SIMILAR


def _recommendation(name: str, text: _InsightText, percent_diff: float) -> str:
    if name in HIGHER_IS_BETTER:
        if percent_diff < -15:
            return text.rec_worse
        if percent_diff > 10:
            return text.rec_better
        return text.rec_normal
    if percent_diff > 10:
        return text.rec_worse
    if percent_diff < -5:
        return text.rec_better
    return text.rec_normal


def _insight(name: str, patient_value: float, stats: MetricStats, percent_diff: float) -> ComparisonInsight:
    text = INSIGHT_TEXT[name]
    pct = f"{abs(percent_diff):.1f}"
    if abs(percent_diff) < SIMILAR_INSIGHT_PCT:
        sentence = f"Your {text.subject} is similar to the database average ({pct}% difference)"
    elif percent_diff > 0:
        sentence = text.higher.format(pct=pct)
    else:
        sentence = text.lower.format(pct=pct)
    return ComparisonInsight(
        metric=text.metric,
        patient=f"{_fmt(patient_value)}{text.unit}",
        average=f"{_fmt(stats.average)}{text.unit}",
        insight=sentence,
        recommendation=_recommendation(name, text, percent_diff),
    )


def compare(patient: PatientData, stats: Mapping[str, MetricStats]) -> PopulationComparison:
    """Per-metric differences plus insight text.

    Every metric present in both the patient data and the statistics is
    compared; systolic BP, cholesterol, HDL and BMI always get an insight.
    """
    comparisons: Dict[str, MetricComparison] = {}
    insights: List[ComparisonInsight] = []

    for name in METRICS:
        value: Optional[float] = getattr(patient, name)
        metric_stats = stats.get(name)
        if value is None or metric_stats is None or not metric_stats.average:
            continue

        diff = value - metric_stats.average
        percent_diff = diff / metric_stats.average * 100
        comparisons[name] = MetricComparison(
            patient=value,
            average=metric_stats.average,
            difference=round_half_up(diff, 1) if diff >= 0 else -round_half_up(-diff, 1),
            percent_difference=(
                round_half_up(percent_diff, 1) if percent_diff >= 0 else -round_half_up(-percent_diff, 1)
            ),
            status=comparison_status(percent_diff, name in HIGHER_IS_BETTER),
        )
        if name in INSIGHT_TEXT:
            insights.append(_insight(name, value, metric_stats, percent_diff))

    sample = stats.get("systolic_bp")
    return PopulationComparison(
        comparisons=comparisons,
        insights=tuple(insights),
        sample_size=sample.count if sample else 0,
    )
