"""MLRiskAgent - ML-assisted heart disease risk

Sends a feature payload to a Hugging Face hosted model. The endpoint is tried
as a text classifier first (``[{label, score}]``), then as a text generator
whose free-text reply should contain a probability. Any failure (missing
token, timeout, HTTP error, unusable reply) yields no result; the other
models are unaffected.
"""
from typing import Any, Dict, Optional
import asyncio
import json
import logging
import re

import httpx

from config.settings import (
    EXTERNAL_CALL_TIMEOUT_SECONDS,
    HF_API_TOKEN,
    HF_INFERENCE_URL,
    ML_MODEL_NAME,
)
from core.errors import ExternalServiceUnavailable
from core.observability import metrics
from models.risk import ModelResult, PatientData
from tools.health_metrics import estimate_max_heart_rate, round_half_up

logger = logging.getLogger(__name__)

MODEL_NAME = "ml"

POSITIVE_LABELS = {"1", "label_1", "positive", "heart_disease", "disease", "yes", "high"}
NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")

SMOKING_FEATURE = {"current": 1, "former": 0.5}


def build_features(patient: PatientData) -> Dict[str, Any]:
    """Map patient data onto the feature names the model was trained with."""
    features: Dict[str, Any] = {}
    if patient.age is not None:
        features["age"] = patient.age
    if patient.gender is not None:
        features["sex"] = 0 if patient.gender == "male" else 1
    if patient.systolic_bp is not None:
        features["trestbps"] = patient.systolic_bp
    if patient.cholesterol is not None:
        features["chol"] = patient.cholesterol
    if patient.hdl_cholesterol is not None:
        features["hdl"] = patient.hdl_cholesterol

    max_hr = patient.max_heart_rate
    if max_hr is None:
        max_hr = estimate_max_heart_rate(patient.age)
    if max_hr is not None:
        features["thalach"] = max_hr
    features["oldpeak"] = 0

    if patient.smoking is not None:
        features["smoking"] = SMOKING_FEATURE.get(patient.smoking, 0)
    if patient.diabetes is not None:
        features["fbs"] = 1 if patient.diabetes else 0
    return features


def _clamp_probability(value: float) -> float:
    if value > 1:
        value = value / 100
    return max(0.0, min(1.0, value))


def probability_from_text(text: str) -> Optional[float]:
    """First number in the text; values above 1 are read as percentages."""
    match = NUMBER_RE.search(text or "")
    if not match:
        return None
    return _clamp_probability(float(match.group()))


def probability_from_payload(payload: Any) -> Optional[float]:
    """Handle both classification and text-generation reply shapes."""
    # Classification replies are sometimes nested one level: [[{...}, {...}]]
    if isinstance(payload, list) and payload and isinstance(payload[0], list):
        payload = payload[0]

    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list) or not payload:
        return None

    labelled = [item for item in payload if isinstance(item, dict) and "score" in item]
    if labelled:
        chosen = next(
            (item for item in labelled if str(item.get("label", "")).lower() in POSITIVE_LABELS),
            labelled[0],
        )
        try:
            return _clamp_probability(float(chosen["score"]))
        except (TypeError, ValueError):
            return None

    for item in payload:
        if isinstance(item, dict) and "generated_text" in item:
            return probability_from_text(str(item["generated_text"]))
    return None


class MLRiskAgent:
    """Optional third scoring model backed by Hugging Face inference."""

    def __init__(self, api_token: Optional[str] = HF_API_TOKEN,
                 model_name: str = ML_MODEL_NAME,
                 base_url: str = HF_INFERENCE_URL,
                 timeout: float = EXTERNAL_CALL_TIMEOUT_SECONDS):
        self.api_token = api_token
        self.model_name = model_name
        self.url = f"{base_url}/{model_name}"
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_token)

    async def _post(self, client: httpx.AsyncClient, body: Dict[str, Any]) -> Any:
        response = await client.post(
            self.url,
            json=body,
            headers={"Authorization": f"Bearer {self.api_token}"},
        )
        response.raise_for_status()
        return response.json()

    async def _predict(self, features: Dict[str, Any]) -> float:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                payload = await self._post(client, {"inputs": json.dumps(features)})
                probability = probability_from_payload(payload)
                if probability is not None:
                    return probability
                logger.debug("Classification reply unusable, trying text generation")
            except (httpx.HTTPError, ValueError) as e:
                logger.debug(f"Classification call failed ({e}), trying text generation")

            prompt = (
                f"Based on these patient parameters: {json.dumps(features)}, "
                "predict the probability of heart disease (0-1 scale)."
            )
            try:
                payload = await self._post(client, {
                    "inputs": prompt,
                    "parameters": {"max_new_tokens": 50, "return_full_text": False},
                })
            except (httpx.HTTPError, ValueError) as e:
                raise ExternalServiceUnavailable("huggingface", str(e)) from e

        probability = probability_from_payload(payload)
        if probability is None:
            raise ExternalServiceUnavailable("huggingface", "no probability in reply")
        return probability

    async def score(self, patient: PatientData) -> Optional[ModelResult]:
        """ML model result, or None when disabled or the call fails."""
        if not self.enabled:
            logger.debug("HF_API_TOKEN not set; ML model skipped")
            return None
        if patient.age is None:
            return None

        features = build_features(patient)
        try:
            probability = await asyncio.wait_for(self._predict(features), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"ML model timed out after {self.timeout}s")
            metrics.record_fallback("huggingface")
            return None
        except ExternalServiceUnavailable as e:
            logger.warning(f"ML model unavailable: {e}")
            metrics.record_fallback("huggingface")
            return None

        risk = round_half_up(probability * 100, 1)
        return ModelResult(
            model=MODEL_NAME,
            risk_percentage=risk,
            factors=(f"ML model prediction: {risk:.1f}% risk",),
            probability=probability,
        )
