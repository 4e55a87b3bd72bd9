"""ExtractionAgent - AI-assisted answer extraction

Asks Gemini to pull a single field value out of a free-text answer. The reply
must contain one JSON object with a ``value`` key; surrounding prose is
tolerated. A ``null`` value means the user explicitly doesn't know.

Failures of any kind (no API key, timeout, service error, malformed JSON)
yield ``None`` so the caller falls back to the rule-based parser.
"""
from typing import Any, Optional, Tuple
import asyncio
import json
import logging
import re

from config.llm import get_gemini_model
from config.settings import EXTERNAL_CALL_TIMEOUT_SECONDS, USE_AI_EXTRACTION
from core.errors import ExternalServiceUnavailable
from core.observability import metrics
from models.fields import FIELDS, FieldKind
from tools.answer_parser import ParseOutcome, coerce_value

logger = logging.getLogger(__name__)

JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

_MISSING = object()


def extract_json_value(text: Optional[str]) -> Tuple[bool, Any]:
    """Return (found, value) for the first JSON object's ``value`` key."""
    if not text:
        return False, None
    match = JSON_OBJECT_RE.search(text)
    if not match:
        return False, None
    try:
        payload = json.loads(match.group())
    except ValueError:
        return False, None
    if not isinstance(payload, dict):
        return False, None
    value = payload.get("value", _MISSING)
    if value is _MISSING:
        return False, None
    return True, value


class ExtractionAgent:
    """Optional Gemini-backed extraction, tried before the rule parser."""

    def __init__(self, model=None, enabled: bool = USE_AI_EXTRACTION,
                 timeout: float = EXTERNAL_CALL_TIMEOUT_SECONDS):
        self.enabled = enabled
        self.timeout = timeout
        if model is None and enabled:
            model = get_gemini_model()
        self.model = model

    @property
    def available(self) -> bool:
        return self.enabled and self.model is not None

    def _build_prompt(self, utterance: str, field_name: str) -> str:
        spec = FIELDS[field_name]
        if field_name == "bmi":
            return f"""You are a medical assistant calculating BMI. User input: "{utterance}".
Extract a direct BMI number OR calculate it from height and weight
(BMI = weight_kg / height_m^2, or (weight_lbs / height_inches^2) * 703).
If the user does not know, use null.
Return ONLY valid JSON: {{"value": <number_or_null>}}"""

        hints = ""
        if spec.kind is FieldKind.ENUM:
            hints = f"Allowed values: {', '.join(spec.choices)}."
        elif spec.kind is FieldKind.BOOLEAN:
            hints = "Use true or false."
        elif spec.kind is FieldKind.NUMERIC:
            hints = f"Use a number in {spec.unit}." if spec.unit else "Use a number."

        return f"""Extract the patient's {spec.label} from their answer.
Question asked: {spec.prompt}
Answer: "{utterance}"
{hints} If the patient says they don't know or want to skip, use null.
Return ONLY valid JSON: {{"value": <extracted_value>}}"""

    async def _generate(self, prompt: str) -> str:
        try:
            response = await asyncio.wait_for(
                self.model.generate_content_async(prompt), timeout=self.timeout
            )
            return response.text
        except asyncio.TimeoutError:
            raise ExternalServiceUnavailable("gemini", f"no reply within {self.timeout}s")
        except Exception as e:
            raise ExternalServiceUnavailable("gemini", str(e)) from e

    async def try_extract(self, utterance: str, field_name: str) -> Optional[ParseOutcome]:
        """Extract ``field_name`` from ``utterance``.

        Returns:
            ParseOutcome (value or unknown) or None when nothing usable came back.
        """
        if not self.available:
            return None

        try:
            text = await self._generate(self._build_prompt(utterance, field_name))
        except ExternalServiceUnavailable as e:
            logger.warning(f"AI extraction failed for {field_name}: {e}")
            metrics.record_fallback("gemini")
            return None

        found, raw = extract_json_value(text)
        if not found:
            logger.debug(f"AI extraction returned no JSON value for {field_name}")
            return None
        if raw is None:
            return ParseOutcome.unknown()

        value = coerce_value(field_name, raw)
        if value is None:
            logger.debug(f"AI value {raw!r} does not fit {field_name}; falling back")
            return None
        return ParseOutcome.found(field_name, value)
