"""CardioCheck Agent Module.

This module contains the agents behind the guided heart-risk assessment.

Agents:
    IntakeAgent: Question-by-question collection of health attributes.
    ExtractionAgent: Optional Gemini-backed answer extraction.
    RiskAgent: Multi-model risk scoring and population comparison.
    MLRiskAgent: Remote machine-learning risk estimate.
    CoachAgent: Plain-language summaries, advice and comparisons.
"""
from agents.intake_agent import IntakeAgent, IntakeReply
from agents.extraction_agent import ExtractionAgent
from agents.risk_agent import RiskAgent, RiskReport
from agents.ml_risk_agent import MLRiskAgent
from agents.coach_agent import CoachAgent

__all__ = [
    "IntakeAgent",
    "IntakeReply",
    "ExtractionAgent",
    "RiskAgent",
    "RiskReport",
    "MLRiskAgent",
    "CoachAgent",
]
