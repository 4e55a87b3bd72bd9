"""Combine individual model outputs into one RiskAssessment."""
import logging
from typing import Dict, List, Mapping, Optional

from core.errors import InsufficientData
from models.risk import ModelResult, PopulationComparison, RiskAssessment, RiskCategory
from tools.health_metrics import round_half_up

logger = logging.getLogger(__name__)

# Factor strings are concatenated in this order
MODEL_ORDER = ["framingham", "prevent", "ml"]

# (lower bound, category), highest first
CATEGORY_BREAKPOINTS = [
    (20.0, RiskCategory.HIGH),
    (10.0, RiskCategory.MODERATE),
    (5.0, RiskCategory.LOW_MODERATE),
]


def categorize(risk_percentage: float) -> RiskCategory:
    """Map a 10-year risk percentage to its category (5/10/20 breakpoints)."""
    for lower, category in CATEGORY_BREAKPOINTS:
        if risk_percentage >= lower:
            return category
    return RiskCategory.LOW


def display_score(risk_percentage: float) -> int:
    """0-100 score shown in the UI."""
    return int(min(100, round_half_up(risk_percentage * 2)))


def _ordered(results: Mapping[str, Optional[ModelResult]]) -> List[str]:
    names = [name for name in MODEL_ORDER if name in results]
    names.extend(name for name in results if name not in MODEL_ORDER)
    return names


def aggregate(
    results: Mapping[str, Optional[ModelResult]],
    population_comparison: Optional[PopulationComparison] = None,
) -> RiskAssessment:
    """Average every available model's 10-year percentage.

    Raises:
        InsufficientData: when no model produced a result.
    """
    names = _ordered(results)
    available = [results[name] for name in names if results[name] is not None]
    if not available:
        raise InsufficientData()

    combined = sum(r.risk_percentage for r in available) / len(available)
    risk_percentage = round_half_up(combined, 1)

    factors: List[str] = []
    for result in available:
        factors.extend(result.factors)

    models: Dict[str, Optional[ModelResult]] = {name: results[name] for name in names}
    category = categorize(combined)
    logger.debug(
        f"Aggregated {len(available)}/{len(names)} models: {risk_percentage}% ({category.value})"
    )

    return RiskAssessment(
        risk_percentage=risk_percentage,
        risk_score=display_score(combined),
        category=category,
        factors=tuple(factors),
        models=models,
        population_comparison=population_comparison,
    )
