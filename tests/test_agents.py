"""Unit Tests for CardioCheck scoring tools and agents.

These tests verify the risk models, aggregation, recommendations, population
comparison and the external-model adapters without making API calls.

Run with: pytest tests/ -v
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from agents.coach_agent import CoachAgent, gender_label
from agents.extraction_agent import ExtractionAgent, extract_json_value
from agents.ml_risk_agent import MLRiskAgent, build_features, probability_from_payload, probability_from_text
from agents.risk_agent import RiskAgent
from core.errors import InsufficientData
from core.observability import metrics
from models.risk import (
    ComparisonStatus,
    MetricStats,
    ModelResult,
    PatientData,
    Priority,
    RiskCategory,
)
from tools import framingham, prevent_model
from tools.answer_parser import ParseKind
from tools.health_metrics import calc_bmi, estimate_max_heart_rate, round_half_up
from tools.population_comparison import compare, comparison_status
from tools.recommendations import generate_recommendations
from tools.risk_aggregator import aggregate, categorize, display_score
from services.population_stats import default_statistics


def _result(model: str, pct: float, *factors: str) -> ModelResult:
    return ModelResult(model=model, risk_percentage=pct, factors=tuple(factors))


class TestHealthMetricsTools:
    """Test the deterministic health calculations."""

    def test_bmi_calculation_normal(self):
        """BMI for average adult should be in normal range."""
        bmi = calc_bmi(weight_kg=70, height_cm=175)
        assert bmi == 22.9

    def test_bmi_calculation_edge_cases(self):
        """BMI should handle edge cases gracefully."""
        assert calc_bmi(0, 175) is None
        assert calc_bmi(70, 0) is None
        assert calc_bmi(None, 175) is None

    def test_max_heart_rate(self):
        assert estimate_max_heart_rate(45) == 175
        assert estimate_max_heart_rate(None) is None

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(57.86038, 1) == 57.9
        assert round_half_up(12.25, 1) == 12.3


class TestFramingham:
    """Points-table model, ages 30-74."""

    def test_reference_patient(self, high_risk_patient):
        result = framingham.score(high_risk_patient)
        assert result.points == 9
        assert result.risk_percentage == 20.0
        assert "Diabetes increases Framingham risk" in result.factors
        assert "Current smoking increases Framingham risk" in result.factors

    def test_female_diabetes_factor(self, healthy_patient):
        patient = PatientData(**{**healthy_patient.to_dict(), "diabetes": True})
        result = framingham.score(patient)
        assert result.factors == ("Diabetes significantly increases Framingham risk in women",)

    def test_low_points_clamped(self, healthy_patient):
        """Female totals below the table floor map to 1%."""
        result = framingham.score(healthy_patient)
        assert result.points == -2
        assert result.risk_percentage == 1.0

    @pytest.mark.parametrize("age", [29, 75])
    def test_age_out_of_range(self, high_risk_patient, age):
        patient = PatientData(**{**high_risk_patient.to_dict(), "age": age})
        assert framingham.score(patient) is None

    def test_requires_lipids(self, high_risk_patient):
        patient = PatientData(**{**high_risk_patient.to_dict(), "hdl_cholesterol": None})
        assert framingham.score(patient) is None

    def test_other_gender_not_scored(self, high_risk_patient):
        patient = PatientData(**{**high_risk_patient.to_dict(), "gender": "other"})
        assert framingham.score(patient) is None

    def test_points_to_risk_clamps(self):
        assert framingham.points_to_risk(30, "male") == 53
        assert framingham.points_to_risk(-4, "male") == 2


class TestPreventModel:
    """Multiplicative heuristic model."""

    def test_reference_patient(self, high_risk_patient):
        result = prevent_model.score(high_risk_patient)
        assert result.risk_percentage == 57.9
        assert result.risk_30_year == 95.0
        assert "Stage 2 hypertension increases PREVENT risk" in result.factors
        assert "Diabetes increases PREVENT risk by 50%" in result.factors
        assert "Current smoking increases PREVENT risk by 40%" in result.factors

    def test_needs_systolic(self, high_risk_patient):
        patient = PatientData(**{**high_risk_patient.to_dict(), "systolic_bp": None})
        assert prevent_model.score(patient) is None

    def test_works_without_lipids(self):
        result = prevent_model.score(PatientData(age=40, gender="female", systolic_bp=110))
        # 5 + 2 + 1
        assert result.risk_percentage == 8.0
        assert result.factors == ()

    def test_kidney_disease_multiplier(self):
        base = prevent_model.score(PatientData(age=40, gender="female", systolic_bp=110))
        kidney = prevent_model.score(PatientData(age=40, gender="female", systolic_bp=110, kidney_disease=True))
        assert kidney.risk_percentage == round_half_up(base.risk_percentage * 1.3, 1)

    def test_hdl_protective(self):
        result = prevent_model.score(PatientData(age=40, gender="female", systolic_bp=110, hdl_cholesterol=65))
        assert result.risk_percentage == 5.0
        assert "High HDL cholesterol is protective in PREVENT model" in result.factors


class TestRiskAggregator:
    """Combining whichever models produced a result."""

    @pytest.mark.parametrize("pct,category", [
        (4.9, RiskCategory.LOW),
        (5.0, RiskCategory.LOW_MODERATE),
        (9.9, RiskCategory.LOW_MODERATE),
        (10.0, RiskCategory.MODERATE),
        (19.9, RiskCategory.MODERATE),
        (20.0, RiskCategory.HIGH),
    ])
    def test_category_boundaries(self, pct, category):
        assert categorize(pct) is category

    def test_single_model_used_directly(self):
        assessment = aggregate({"framingham": None, "prevent": _result("prevent", 12.3), "ml": None})
        assert assessment.risk_percentage == 12.3
        assert assessment.category is RiskCategory.MODERATE
        assert assessment.models["framingham"] is None

    def test_mean_of_available(self):
        assessment = aggregate({
            "framingham": _result("framingham", 10.0, "a"),
            "prevent": _result("prevent", 20.0, "b"),
            "ml": _result("ml", 30.0, "c"),
        })
        assert assessment.risk_percentage == 20.0
        assert assessment.risk_score == 40
        assert assessment.factors == ("a", "b", "c")

    def test_category_uses_unrounded_mean(self):
        """9.95 rounds to 10.0 for display but is still below the moderate breakpoint."""
        assessment = aggregate({
            "framingham": _result("framingham", 9.0),
            "prevent": _result("prevent", 10.9),
        })
        assert assessment.risk_percentage == 10.0
        assert assessment.category is RiskCategory.LOW_MODERATE
        assert assessment.risk_score == 20

    def test_factor_order_follows_models(self):
        assessment = aggregate({
            "ml": _result("ml", 10.0, "ml factor"),
            "framingham": _result("framingham", 10.0, "points factor"),
        })
        assert assessment.factors == ("points factor", "ml factor")

    def test_no_results(self):
        with pytest.raises(InsufficientData):
            aggregate({"framingham": None, "prevent": None, "ml": None})

    def test_display_score_capped(self):
        assert display_score(60.0) == 100
        assert display_score(4.25) == 9

    def test_to_dict(self):
        data = aggregate({"prevent": _result("prevent", 8.0)}).to_dict()
        assert data["category"] == "low-moderate"
        assert data["category_description"] == "Low-Moderate Risk"
        assert data["models"]["prevent"]["risk_percentage"] == 8.0


class TestRecommendations:
    """Rules fire in a fixed order."""

    def test_high_risk_patient(self, high_risk_patient):
        assessment = aggregate({"prevent": _result("prevent", 57.9)})
        recs = generate_recommendations(assessment, high_risk_patient)
        assert [r.category for r in recs] == [
            "Blood Pressure",
            "Cholesterol",
            "Smoking",
            "Weight Management",
            "Diabetes Management",
            "Medical Care",
            "Preventive Care",
        ]
        assert recs[2].priority is Priority.CRITICAL

    def test_healthy_patient_gets_preventive_care_only(self, healthy_patient):
        assessment = aggregate({"prevent": _result("prevent", 2.0)})
        recs = generate_recommendations(assessment, healthy_patient)
        assert [r.category for r in recs] == ["Preventive Care"]

    def test_lifestyle_rules(self):
        patient = PatientData(age=50, gender="male", physical_activity="sedentary", diet_quality="fair")
        recs = generate_recommendations(aggregate({"prevent": _result("prevent", 6.0)}), patient)
        categories = [r.category for r in recs]
        assert categories[:2] == ["Physical Activity", "Diet"]

    def test_missing_values_never_trigger(self):
        patient = PatientData(age=50, gender="male")
        recs = generate_recommendations(aggregate({"prevent": _result("prevent", 6.0)}), patient)
        assert [r.category for r in recs] == ["Preventive Care"]


class TestPopulationComparison:
    """Patient values against population averages."""

    def test_status_threshold(self):
        assert comparison_status(10.0) is ComparisonStatus.SIMILAR
        assert comparison_status(10.1) is ComparisonStatus.WORSE
        assert comparison_status(-12) is ComparisonStatus.BETTER

    def test_hdl_is_inverse(self):
        assert comparison_status(20, higher_is_better=True) is ComparisonStatus.BETTER
        assert comparison_status(-20, higher_is_better=True) is ComparisonStatus.WORSE

    def test_compare_defaults(self, high_risk_patient):
        result = compare(high_risk_patient, default_statistics())
        systolic = result.comparisons["systolic_bp"]
        assert systolic.difference == 20
        assert systolic.percent_difference == 16.7
        assert systolic.status is ComparisonStatus.WORSE
        assert result.comparisons["hdl_cholesterol"].status is ComparisonStatus.SIMILAR
        assert result.sample_size == 0

    def test_insights_always_present(self, healthy_patient):
        """Even negligible differences produce insight text."""
        stats = {name: MetricStats(average=getattr(healthy_patient, name), median=0, count=10)
                 for name in ("systolic_bp", "cholesterol", "hdl_cholesterol", "bmi")}
        result = compare(healthy_patient, stats)
        assert [i.metric for i in result.insights] == [
            "Systolic Blood Pressure", "Total Cholesterol", "HDL Cholesterol", "Body Mass Index",
        ]
        assert all("similar" in i.insight for i in result.insights)
        assert result.sample_size == 10

    def test_diastolic_compared_without_insight(self, high_risk_patient):
        result = compare(high_risk_patient, default_statistics())
        assert "diastolic_bp" in result.comparisons
        assert len(result.insights) == 4

    def test_missing_patient_value_skipped(self):
        result = compare(PatientData(age=50, gender="male", bmi=30), default_statistics())
        assert list(result.comparisons) == ["bmi"]
        assert result.insights[0].patient == "30"
        assert result.insights[0].average == "26.5"


class TestCoachAgent:
    """User-facing text is deterministic."""

    def test_gender_label(self):
        assert gender_label("male") == "men"
        assert gender_label("female") == "women"
        assert gender_label("other") == "people"
        assert gender_label(None) == "people"

    def test_risk_summary(self):
        assessment = aggregate({"prevent": _result("prevent", 12.5)})
        text = CoachAgent().risk_summary(assessment)
        assert "your 10-year heart disease risk is 12.5%" in text
        assert "classified as Moderate Risk" in text

    def test_lowering_advice_smoker_first(self, high_risk_patient):
        assessment = aggregate({"prevent": _result("prevent", 57.9)})
        recs = generate_recommendations(assessment, high_risk_patient)
        text = CoachAgent().lowering_advice(high_risk_patient, recs)
        assert text.startswith("**Most importantly, if you smoke")
        assert "Reduce caloric intake" in text
        assert "Reduce sodium intake" in text
        assert text.endswith("compare to the average men in the Synthea database?")

    def test_lowering_advice_fallback(self, healthy_patient):
        assessment = aggregate({"prevent": _result("prevent", 2.0)})
        recs = generate_recommendations(assessment, healthy_patient)
        text = CoachAgent().lowering_advice(healthy_patient, recs)
        assert text.startswith("Based on your current health profile")
        assert "average women" in text

    def test_comparison_text(self, high_risk_patient):
        comparison = compare(high_risk_patient, default_statistics())
        text = CoachAgent().comparison_text(high_risk_patient, comparison)
        assert text.startswith("Compared to the average men in the Synthea database, your body mass index (28)")
        assert "your systolic blood pressure (140 mmHg) is 16.7% higher" in text
        # BMI plus at most two others
        assert "hdl" not in text.lower()

    def test_comparison_text_default(self, healthy_patient):
        text = CoachAgent().comparison_text(healthy_patient, None)
        assert text.startswith("Your values are generally within normal ranges")


class TestExtractionAgent:
    """AI extraction falls back cleanly."""

    def test_extract_json_value(self):
        assert extract_json_value('{"value": 45}') == (True, 45)
        assert extract_json_value('Sure! {"value": null} hope that helps') == (True, None)
        assert extract_json_value("no json here") == (False, None)
        assert extract_json_value('{"answer": 3}') == (False, None)
        assert extract_json_value("{not json}") == (False, None)

    def _agent(self, reply_text=None, side_effect=None, timeout=1.0):
        model = MagicMock()
        response = MagicMock()
        response.text = reply_text
        model.generate_content_async = AsyncMock(return_value=response, side_effect=side_effect)
        return ExtractionAgent(model=model, enabled=True, timeout=timeout)

    @pytest.mark.asyncio
    async def test_disabled_returns_none(self):
        agent = ExtractionAgent(enabled=False)
        assert not agent.available
        assert await agent.try_extract("45", "age") is None

    @pytest.mark.asyncio
    async def test_value(self):
        outcome = await self._agent('{"value": 52}').try_extract("fifty two", "age")
        assert outcome.kind is ParseKind.VALUE
        assert outcome.value_for("age") == 52

    @pytest.mark.asyncio
    async def test_null_is_unknown(self):
        outcome = await self._agent('{"value": null}').try_extract("no clue", "cholesterol")
        assert outcome.kind is ParseKind.UNKNOWN

    @pytest.mark.asyncio
    async def test_invalid_value_falls_back(self):
        assert await self._agent('{"value": 900}').try_extract("900", "age") is None

    @pytest.mark.asyncio
    async def test_service_error_falls_back(self):
        agent = self._agent(side_effect=RuntimeError("quota exceeded"))
        assert await agent.try_extract("45", "age") is None
        assert metrics.summary()["external_fallbacks"]["gemini"] >= 1

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self):
        async def hang(prompt):
            await asyncio.sleep(5)

        model = MagicMock()
        model.generate_content_async = hang
        agent = ExtractionAgent(model=model, enabled=True, timeout=0.01)
        assert await agent.try_extract("45", "age") is None


class TestMLRiskAgent:
    """ML model adapter handles both reply shapes and failures."""

    def test_build_features(self, high_risk_patient):
        features = build_features(high_risk_patient)
        assert features["sex"] == 0
        assert features["trestbps"] == 140
        assert features["chol"] == 220
        assert features["thalach"] == 175
        assert features["oldpeak"] == 0
        assert features["smoking"] == 1
        assert features["fbs"] == 1

    def test_explicit_max_heart_rate(self):
        features = build_features(PatientData(age=50, gender="female", max_heart_rate=160, smoking="former"))
        assert features["thalach"] == 160
        assert features["sex"] == 1
        assert features["smoking"] == 0.5

    def test_probability_from_classification(self):
        payload = [[{"label": "LABEL_0", "score": 0.7}, {"label": "LABEL_1", "score": 0.3}]]
        assert probability_from_payload(payload) == pytest.approx(0.3)

    def test_probability_first_label_fallback(self):
        assert probability_from_payload([{"label": "foo", "score": 0.4}]) == pytest.approx(0.4)

    def test_probability_from_text(self):
        assert probability_from_text("The probability is 0.25") == 0.25
        assert probability_from_text("About 35% risk") == pytest.approx(0.35)
        assert probability_from_text("unclear") is None
        assert probability_from_payload([{"generated_text": "0.6"}]) == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_disabled_without_token(self, high_risk_patient):
        assert await MLRiskAgent(api_token=None).score(high_risk_patient) is None

    @pytest.mark.asyncio
    async def test_classification_reply(self, high_risk_patient):
        mock_response = MagicMock()
        mock_response.json.return_value = [{"label": "LABEL_1", "score": 0.42}]
        mock_response.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.post = AsyncMock(return_value=mock_response)
            mock_client.return_value.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_client.return_value.__aexit__ = AsyncMock(return_value=None)

            result = await MLRiskAgent(api_token="hf_test").score(high_risk_patient)

        assert result.model == "ml"
        assert result.risk_percentage == 42.0
        assert result.probability == pytest.approx(0.42)
        assert result.factors == ("ML model prediction: 42.0% risk",)

    @pytest.mark.asyncio
    async def test_text_generation_fallback(self, high_risk_patient):
        unusable = MagicMock()
        unusable.json.return_value = {"error": "not a classifier"}
        generated = MagicMock()
        generated.json.return_value = [{"generated_text": "Estimated probability: 0.18"}]

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.post = AsyncMock(side_effect=[unusable, generated])
            mock_client.return_value.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_client.return_value.__aexit__ = AsyncMock(return_value=None)

            result = await MLRiskAgent(api_token="hf_test").score(high_risk_patient)

        assert result.risk_percentage == 18.0
        assert mock_instance.post.await_count == 2

    @pytest.mark.asyncio
    async def test_http_failure_yields_none(self, high_risk_patient):
        import httpx

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.post = AsyncMock(side_effect=httpx.ConnectError("down"))
            mock_client.return_value.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_client.return_value.__aexit__ = AsyncMock(return_value=None)

            assert await MLRiskAgent(api_token="hf_test").score(high_risk_patient) is None


class TestRiskAgent:
    """The scoring pipeline around the individual models."""

    @pytest.mark.asyncio
    async def test_comparison_attached(self, risk_agent, high_risk_patient):
        report = await risk_agent.assess(high_risk_patient)
        assert report.assessment.population_comparison is not None
        assert report.recommendations[-1].category == "Preventive Care"

    @pytest.mark.asyncio
    async def test_broken_statistics_do_not_block_assessment(self, high_risk_patient):
        stats_service = MagicMock()
        stats_service.get_statistics = AsyncMock(side_effect=AttributeError("'str' object has no attribute 'get'"))
        agent = RiskAgent(ml_agent=MLRiskAgent(api_token=None), stats_service=stats_service)
        before = metrics.summary()["external_fallbacks"].get("population_stats", 0)

        report = await agent.assess(high_risk_patient)

        assert report.assessment.category is RiskCategory.HIGH
        assert report.assessment.population_comparison is None
        assert metrics.summary()["external_fallbacks"]["population_stats"] == before + 1
