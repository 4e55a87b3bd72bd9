"""Risk data models.

PatientData is the read-only snapshot the scoring models consume. Everything
produced from it (model results, the aggregated assessment, recommendations,
population comparisons) is immutable; a new calculation builds new objects.
"""
from dataclasses import dataclass, field, asdict, fields as dataclass_fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


# Keys used by the web/form front-ends
CAMEL_CASE_KEYS = {
    "systolicBP": "systolic_bp",
    "diastolicBP": "diastolic_bp",
    "hdlCholesterol": "hdl_cholesterol",
    "physicalActivity": "physical_activity",
    "dietQuality": "diet_quality",
    "familyHistory": "family_history",
    "kidneyDisease": "kidney_disease",
    "maxHeartRate": "max_heart_rate",
    "diabetesType": "diabetes_type",
    "diabetesDuration": "diabetes_duration",
    "cigarettesPerDay": "cigarettes_per_day",
}

_TRUE_STRINGS = {"yes", "true", "y", "1"}
_FALSE_STRINGS = {"no", "false", "n", "0"}


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return int(number) if number.is_integer() else number


def _to_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return None


def _to_choice(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().lower()
    return text or None


def _to_smoking(value: Any) -> Optional[str]:
    # Older form clients sent smoking as a yes/no flag
    if isinstance(value, bool):
        return "current" if value else "never"
    text = _to_choice(value)
    if text in _TRUE_STRINGS:
        return "current"
    if text in _FALSE_STRINGS:
        return "never"
    return text


def _to_activity(value: Any) -> Optional[str]:
    text = _to_choice(value)
    if text == "none":
        return "sedentary"
    return text


@dataclass(frozen=True)
class PatientData:
    """Frozen view of a patient's answers. None means unset or declined."""
    age: Optional[float] = None
    gender: Optional[str] = None
    systolic_bp: Optional[float] = None
    diastolic_bp: Optional[float] = None
    cholesterol: Optional[float] = None
    hdl_cholesterol: Optional[float] = None
    bmi: Optional[float] = None
    smoking: Optional[str] = None
    physical_activity: Optional[str] = None
    diet_quality: Optional[str] = None
    diabetes: Optional[bool] = None
    family_history: Optional[bool] = None
    kidney_disease: Optional[bool] = None
    max_heart_rate: Optional[float] = None
    diabetes_type: Optional[str] = None
    diabetes_duration: Optional[str] = None
    cigarettes_per_day: Optional[str] = None

    @property
    def is_current_smoker(self) -> bool:
        return self.smoking == "current"

    @property
    def has_diabetes(self) -> bool:
        return self.diabetes is True

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PatientData":
        """Build a snapshot from a loosely-typed mapping (camelCase or snake_case keys)."""
        normalized: Dict[str, Any] = {}
        for key, value in data.items():
            normalized[CAMEL_CASE_KEYS.get(key, key)] = value

        return cls(
            age=_to_number(normalized.get("age")),
            gender=_to_choice(normalized.get("gender")),
            systolic_bp=_to_number(normalized.get("systolic_bp")),
            diastolic_bp=_to_number(normalized.get("diastolic_bp")),
            cholesterol=_to_number(normalized.get("cholesterol")),
            hdl_cholesterol=_to_number(normalized.get("hdl_cholesterol")),
            bmi=_to_number(normalized.get("bmi")),
            smoking=_to_smoking(normalized.get("smoking")),
            physical_activity=_to_activity(normalized.get("physical_activity")),
            diet_quality=_to_choice(normalized.get("diet_quality")),
            diabetes=_to_bool(normalized.get("diabetes")),
            family_history=_to_bool(normalized.get("family_history")),
            kidney_disease=_to_bool(normalized.get("kidney_disease")),
            max_heart_rate=_to_number(normalized.get("max_heart_rate")),
            diabetes_type=_to_choice(normalized.get("diabetes_type")),
            diabetes_duration=_to_choice(normalized.get("diabetes_duration")),
            cigarettes_per_day=_to_choice(normalized.get("cigarettes_per_day")),
        )

    def missing(self, names) -> List[str]:
        return [name for name in names if getattr(self, name) is None]

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in dataclass_fields(self)}


@dataclass(frozen=True)
class ModelResult:
    """Output of one scoring model."""
    model: str
    risk_percentage: float                  # 10-year risk, 0-100
    factors: Tuple[str, ...] = ()
    points: Optional[int] = None            # points-table total
    risk_30_year: Optional[float] = None    # heuristic model only
    probability: Optional[float] = None     # ML model only, 0-1

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["factors"] = list(self.factors)
        return data


class RiskCategory(Enum):
    LOW = "low"
    LOW_MODERATE = "low-moderate"
    MODERATE = "moderate"
    HIGH = "high"

    @property
    def description(self) -> str:
        return {
            RiskCategory.LOW: "Low Risk",
            RiskCategory.LOW_MODERATE: "Low-Moderate Risk",
            RiskCategory.MODERATE: "Moderate Risk",
            RiskCategory.HIGH: "High Risk",
        }[self]


class Priority(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MODERATE = "moderate"


@dataclass(frozen=True)
class Recommendation:
    category: str
    priority: Priority
    action: str
    details: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "priority": self.priority.value,
            "action": self.action,
            "details": self.details,
        }


class ComparisonStatus(Enum):
    BETTER = "better"
    WORSE = "worse"
    SIMILAR = "similar"


@dataclass(frozen=True)
class MetricStats:
    """Population statistics for one metric."""
    average: float
    median: float
    count: int
    source: str = "default"


@dataclass(frozen=True)
class MetricComparison:
    patient: float
    average: float
    difference: float
    percent_difference: float
    status: ComparisonStatus


@dataclass(frozen=True)
class ComparisonInsight:
    metric: str
    patient: str
    average: str
    insight: str
    recommendation: str


@dataclass(frozen=True)
class PopulationComparison:
    comparisons: Dict[str, MetricComparison] = field(default_factory=dict)
    insights: Tuple[ComparisonInsight, ...] = ()
    sample_size: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "comparisons": {
                name: {**asdict(c), "status": c.status.value}
                for name, c in self.comparisons.items()
            },
            "insights": [asdict(i) for i in self.insights],
            "database_sample_size": self.sample_size,
        }


@dataclass(frozen=True)
class RiskAssessment:
    """Aggregated result of one risk calculation."""
    risk_percentage: float
    risk_score: int
    category: RiskCategory
    factors: Tuple[str, ...]
    models: Dict[str, Optional[ModelResult]]
    population_comparison: Optional[PopulationComparison] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def category_description(self) -> str:
        return self.category.description

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk_score": self.risk_score,
            "risk_percentage": self.risk_percentage,
            "category": self.category.value,
            "category_description": self.category_description,
            "factors": list(self.factors),
            "models": {
                name: result.to_dict() if result else None
                for name, result in self.models.items()
            },
            "population_comparison": (
                self.population_comparison.to_dict() if self.population_comparison else None
            ),
            "timestamp": self.timestamp,
        }
