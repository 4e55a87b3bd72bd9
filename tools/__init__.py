"""CardioCheck Tools Module.

This module contains deterministic, side-effect-free health calculations.

Tools:
    parse: Map a free-text answer onto one questionnaire field.
    calc_bmi: Calculate Body Mass Index.
    framingham_score: Framingham points-table 10-year risk.
    prevent_score: PREVENT-style multiplicative 10/30-year risk.
    aggregate: Combine model results into a RiskAssessment.
    categorize: Map a risk percentage to its category.
    generate_recommendations: Ordered, prioritized recommendations.
    compare: Compare patient values with population statistics.
"""
from tools.answer_parser import parse, ParseKind, ParseOutcome, is_unknown_response, is_affirmative
from tools.health_metrics import calc_bmi
from tools.framingham import score as framingham_score
from tools.prevent_model import score as prevent_score
from tools.risk_aggregator import aggregate, categorize
from tools.recommendations import generate_recommendations
from tools.population_comparison import compare

__all__ = [
    "parse",
    "ParseKind",
    "ParseOutcome",
    "is_unknown_response",
    "is_affirmative",
    "calc_bmi",
    "framingham_score",
    "prevent_score",
    "aggregate",
    "categorize",
    "generate_recommendations",
    "compare",
]
