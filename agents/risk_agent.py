"""RiskAgent - Multi-model cardiovascular risk assessment

Runs the Framingham points table and the PREVENT-style heuristic locally, the
ML model remotely, and averages whatever came back. Population statistics are
fetched alongside the ML call when a comparison is requested. Recommendations
are regenerated from the snapshot on every assessment.
"""
from typing import Any, Dict, List, Optional
from dataclasses import dataclass
import asyncio
import logging

from agents.ml_risk_agent import MLRiskAgent
from core.observability import Tracer, metrics
from models.risk import PatientData, PopulationComparison, Recommendation, RiskAssessment
from services.population_stats import PopulationStatsService
from tools import framingham, prevent_model
from tools.population_comparison import compare
from tools.recommendations import generate_recommendations
from tools.risk_aggregator import aggregate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskReport:
    assessment: RiskAssessment
    recommendations: List[Recommendation]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk_assessment": self.assessment.to_dict(),
            "recommendations": [r.to_dict() for r in self.recommendations],
        }


class RiskAgent:
    """Scores a frozen patient snapshot."""

    def __init__(self, ml_agent: Optional[MLRiskAgent] = None,
                 stats_service: Optional[PopulationStatsService] = None):
        self.ml_agent = ml_agent or MLRiskAgent()
        self.stats_service = stats_service or PopulationStatsService()

    async def _comparison(self, patient: PatientData) -> Optional[PopulationComparison]:
        """Population comparison, or None when statistics could not be read."""
        try:
            stats = await self.stats_service.get_statistics()
            return compare(patient, stats)
        except Exception as e:
            logger.warning(f"Population comparison unavailable: {e}")
            metrics.record_fallback("population_stats")
            return None

    async def assess(self, patient: PatientData, include_comparison: bool = True) -> RiskReport:
        """Score ``patient`` with every applicable model.

        Raises:
            InsufficientData: when no model could produce a result.
        """
        with Tracer("RiskCalculation", patient.to_dict()) as trace:
            results = {
                framingham.MODEL_NAME: framingham.score(patient),
                prevent_model.MODEL_NAME: prevent_model.score(patient),
            }

            if include_comparison:
                ml_result, comparison = await asyncio.gather(
                    self.ml_agent.score(patient), self._comparison(patient)
                )
            else:
                ml_result, comparison = await self.ml_agent.score(patient), None
            results["ml"] = ml_result

            assessment = aggregate(results, population_comparison=comparison)
            trace.metadata["models"] = [name for name, r in results.items() if r is not None]
            trace.metadata["category"] = assessment.category.value

        logger.info(
            f"Risk {assessment.risk_percentage}% ({assessment.category.value}) "
            f"from {len(trace.metadata['models'])} model(s)"
        )
        return RiskReport(assessment, generate_recommendations(assessment, patient))
