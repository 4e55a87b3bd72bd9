"""CardioCheck Data Models.

This module contains the dataclasses for questionnaire, session and risk state.

Models:
    FieldSpec: Static description of one collected health attribute.
    PatientRecord: Three-state answers (unset / unknown / present) for a session.
    PatientData: Frozen snapshot of a record, consumed by the scoring models.
    ConversationSession: Full conversation context, cursor and history.
    ConversationStage: Enum for conversation flow stages.
    RiskAssessment: Aggregated, immutable result of one risk calculation.
    Recommendation: One prioritized lifestyle or medical recommendation.
"""
from models.fields import FieldKind, FieldSpec, FollowUpSpec, FIELDS, FOLLOW_UPS, QUESTION_FLOW
from models.risk import (
    PatientData,
    ModelResult,
    RiskCategory,
    RiskAssessment,
    Priority,
    Recommendation,
    ComparisonStatus,
    MetricStats,
    MetricComparison,
    ComparisonInsight,
    PopulationComparison,
)
from models.session import (
    AnswerState,
    Answer,
    PatientRecord,
    ConversationSession,
    ConversationStage,
)

__all__ = [
    "FieldKind",
    "FieldSpec",
    "FollowUpSpec",
    "FIELDS",
    "FOLLOW_UPS",
    "QUESTION_FLOW",
    "PatientData",
    "ModelResult",
    "RiskCategory",
    "RiskAssessment",
    "Priority",
    "Recommendation",
    "ComparisonStatus",
    "MetricStats",
    "MetricComparison",
    "ComparisonInsight",
    "PopulationComparison",
    "AnswerState",
    "Answer",
    "PatientRecord",
    "ConversationSession",
    "ConversationStage",
]
