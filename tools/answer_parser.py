"""Rule-based answer parser.

Maps a free-text answer onto one questionnaire field. The result is always a
ParseOutcome: a value (or, for a blood-pressure pair, two values), an explicit
"unknown", or "unparseable". Nothing here raises past ``parse``.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from core.errors import ParseAmbiguous
from models.fields import FIELDS, FieldKind, FieldSpec
from tools.health_metrics import calc_bmi, feet_inches_to_cm, inches_to_cm, lb_to_kg


class ParseKind(Enum):
    VALUE = "value"
    UNKNOWN = "unknown"
    UNPARSEABLE = "unparseable"


@dataclass(frozen=True)
class ParseOutcome:
    kind: ParseKind
    values: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def found(cls, field_name: str, value: Any) -> "ParseOutcome":
        return cls(ParseKind.VALUE, {field_name: value})

    @classmethod
    def found_many(cls, values: Dict[str, Any]) -> "ParseOutcome":
        return cls(ParseKind.VALUE, dict(values))

    @classmethod
    def unknown(cls) -> "ParseOutcome":
        return cls(ParseKind.UNKNOWN)

    @classmethod
    def unparseable(cls) -> "ParseOutcome":
        return cls(ParseKind.UNPARSEABLE)

    @property
    def is_value(self) -> bool:
        return self.kind is ParseKind.VALUE

    def value_for(self, field_name: str) -> Any:
        return self.values.get(field_name)


# ---------------------------------------------------------------------------
# Keyword sets
# ---------------------------------------------------------------------------

UNKNOWN_PHRASES = [
    "i don't know", "don't know", "dont know", "do not know", "no idea",
    "not sure", "unsure", "unknown", "can't remember", "cannot remember",
    "don't remember", "skip", "pass", "idk", "na", "n/a", "rather not say",
]

# Checked in order; the first value with a matching synonym wins
ENUM_SYNONYMS: Dict[str, List[Tuple[str, List[str]]]] = {
    "gender": [
        ("female", ["female", "woman", "women", "lady", "girl"]),
        ("male", ["male", "man", "men", "guy", "boy"]),
        ("other", ["other", "non-binary", "nonbinary", "non binary", "genderqueer", "agender"]),
    ],
    "smoking": [
        ("former", ["former", "quit", "used to", "ex-smoker", "ex smoker", "stopped", "gave up"]),
        ("never", ["never", "no", "nope", "don't smoke", "do not smoke", "non-smoker",
                   "nonsmoker", "not a smoker"]),
        ("current", ["current", "currently", "yes", "yeah", "yep", "i smoke", "smoker",
                     "daily", "occasionally", "sometimes", "cigarettes"]),
    ],
    "physical_activity": [
        ("sedentary", ["sedentary", "inactive", "none", "not active", "not very active",
                       "no exercise", "don't exercise", "little", "rarely", "never"]),
        ("moderate", ["moderate", "moderately", "some", "sometimes", "occasionally",
                      "a few times", "somewhat"]),
        ("active", ["active", "very active", "regularly", "daily", "every day",
                    "most days", "a lot", "athletic"]),
    ],
    "diet_quality": [
        ("poor", ["poor", "bad", "unhealthy", "junk", "fast food", "processed",
                  "terrible", "not good", "not great", "not healthy"]),
        ("excellent", ["excellent", "very healthy", "very good", "great", "amazing", "perfect"]),
        ("good", ["good", "healthy", "mostly whole"]),
        ("fair", ["fair", "okay", "ok", "average", "mixed", "so-so", "decent", "moderate"]),
    ],
}

NEGATIVE_WORDS = ["no", "nope", "nah", "not", "don't", "do not", "never", "none",
                  "negative", "false"]
AFFIRMATIVE_WORDS = ["yes", "yeah", "yep", "yup", "y", "true", "i do", "i have", "have",
                     "diagnosed", "type 1", "type 2", "correct", "affirmative"]

CONFIRM_WORDS = ["yes", "yeah", "yep", "yup", "y", "sure", "ok", "okay", "please",
                 "absolutely", "definitely", "of course", "go ahead", "let's do it"]
DECLINE_WORDS = ["no", "nope", "nah", "not", "don't", "do not", "never", "later"]

NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
BP_PAIR_RE = re.compile(r"(\d{2,3})\s*(?:/|\bover\b)\s*(\d{2,3})", re.IGNORECASE)
BMI_KEYWORD_RE = re.compile(r"\bbmi\b\D{0,12}?(\d+(?:\.\d+)?)", re.IGNORECASE)
FEET_INCHES_RE = re.compile(
    r"(\d)\s*(?:'|ft\.?|feet|foot)\s*(?:(\d{1,2}(?:\.\d+)?)\s*(?:\"|''|in\b\.?|inch(?:es)?)?)?",
    re.IGNORECASE,
)
NUMBER_WITH_UNIT_RE = re.compile(
    r"(\d+(?:\.\d+)?)\s*(kgs?|kilo(?:gram)?s?|lbs?|pounds?|cm|centimet(?:er|re)s?"
    r"|met(?:er|re)s?|m|inch(?:es)?|in|\")?(?![a-z])",
    re.IGNORECASE,
)

_UNIT_CLASSES = {
    "kg": ("kg", "kgs", "kilo", "kilos", "kilogram", "kilograms"),
    "lb": ("lb", "lbs", "pound", "pounds"),
    "cm": ("cm", "centimeter", "centimeters", "centimetre", "centimetres"),
    "m": ("m", "meter", "meters", "metre", "metres"),
    "in": ("in", "inch", "inches", '"'),
}

# (weight unit, height unit, weight range, height range)
_BMI_SYSTEMS = [
    ("kg", "m", (30, 300), (1.2, 2.3)),
    ("kg", "cm", (30, 300), (120, 230)),
    ("lb", "in", (66, 660), (48, 90)),
]


def _normalize(text: str) -> str:
    return text.replace("’", "'").lower().strip()


def _contains_word(text: str, phrase: str) -> bool:
    """Whole-word/phrase containment."""
    return re.search(r"(?<![\w])" + re.escape(phrase) + r"(?![\w])", text) is not None


def _contains_any(text: str, phrases: List[str]) -> bool:
    return any(_contains_word(text, phrase) for phrase in phrases)


def _as_number(value: float):
    return int(value) if float(value).is_integer() else value


def _in_bounds(value: float, bounds: Optional[Tuple[float, float]]) -> bool:
    if bounds is None:
        return True
    low, high = bounds
    return low <= value <= high


# ---------------------------------------------------------------------------
# Cross-cutting checks
# ---------------------------------------------------------------------------

def is_unknown_response(utterance: str) -> bool:
    """True for "I don't know" / "skip" / "n/a" style answers."""
    text = _normalize(utterance)
    if not text:
        return False
    return _contains_any(text, UNKNOWN_PHRASES)


def is_affirmative(utterance: str) -> bool:
    """Yes/no confirmation. Anything not clearly affirmative counts as no."""
    text = _normalize(utterance)
    if _contains_any(text, DECLINE_WORDS):
        return False
    return _contains_any(text, CONFIRM_WORDS)


def parse_blood_pressure_pair(utterance: str) -> Optional[Tuple[int, int]]:
    """Split "140/90" or "140 over 90" into (systolic, diastolic)."""
    match = BP_PAIR_RE.search(utterance)
    if not match:
        return None
    systolic, diastolic = int(match.group(1)), int(match.group(2))
    if not _in_bounds(systolic, FIELDS["systolic_bp"].bounds):
        return None
    if not _in_bounds(diastolic, FIELDS["diastolic_bp"].bounds):
        return None
    if diastolic >= systolic:
        return None
    return systolic, diastolic


# ---------------------------------------------------------------------------
# Field-kind parsers (return None when nothing matched)
# ---------------------------------------------------------------------------

def parse_number(text: str, bounds: Optional[Tuple[float, float]] = None) -> Optional[float]:
    """First number in the text that falls within bounds."""
    for match in NUMBER_RE.finditer(text):
        value = float(match.group())
        if _in_bounds(value, bounds):
            return _as_number(value)
    return None


def parse_choice(text: str, field_name: str) -> Optional[str]:
    text = _normalize(text)
    if field_name == "gender" and text in ("f", "m"):
        return "female" if text == "f" else "male"
    for value, synonyms in ENUM_SYNONYMS.get(field_name, []):
        if _contains_any(text, synonyms):
            return value
    # Bare choice names not covered by synonyms
    for choice in FIELDS[field_name].choices:
        if _contains_word(text, choice):
            return choice
    return None


def parse_boolean(text: str) -> Optional[bool]:
    text = _normalize(text)
    if _contains_any(text, NEGATIVE_WORDS):
        return False
    if _contains_any(text, AFFIRMATIVE_WORDS):
        return True
    return None


def _unit_class(unit: Optional[str]) -> Optional[str]:
    if not unit:
        return None
    unit = unit.lower()
    for name, spellings in _UNIT_CLASSES.items():
        if unit in spellings:
            return name
    return None


def _bmi_from(weight: float, weight_unit: str, height: float, height_unit: str) -> Optional[float]:
    weight_kg = lb_to_kg(weight) if weight_unit == "lb" else weight
    if height_unit == "m":
        height_cm = height * 100
    elif height_unit == "in":
        height_cm = inches_to_cm(height)
    else:
        height_cm = height
    return calc_bmi(weight_kg, height_cm)


def _bmi_from_feet_inches(text: str, match) -> float:
    feet = float(match.group(1))
    inches = float(match.group(2)) if match.group(2) else 0.0
    height_cm = feet_inches_to_cm(feet, inches)
    remainder = text[:match.start()] + " " + text[match.end():]
    weights = [(float(m.group(1)), _unit_class(m.group(2))) for m in NUMBER_WITH_UNIT_RE.finditer(remainder)]
    if len(weights) != 1:
        raise ParseAmbiguous("bmi", text, "expected one weight alongside feet/inches")
    weight, unit = weights[0]
    weight_kg = weight if unit == "kg" else lb_to_kg(weight)
    bmi = calc_bmi(weight_kg, height_cm)
    if bmi is None:
        raise ParseAmbiguous("bmi", text, "weight/height out of range")
    return bmi


def compute_bmi_from_text(utterance: str) -> float:
    """Interpret an answer to the BMI question.

    A bare number is the BMI itself. Two numbers are read as weight and
    height in kg+m, kg+cm or lb+in, constrained by any unit words present.
    Raises ParseAmbiguous when no single plausible reading exists.
    """
    text = _normalize(utterance)
    bounds = FIELDS["bmi"].bounds

    keyword = BMI_KEYWORD_RE.search(text)
    if keyword:
        value = float(keyword.group(1))
        if _in_bounds(value, bounds):
            return _as_number(value)
        raise ParseAmbiguous("bmi", utterance, "BMI out of range")

    feet_match = FEET_INCHES_RE.search(text)
    if feet_match:
        bmi = _bmi_from_feet_inches(text, feet_match)
        if not _in_bounds(bmi, bounds):
            raise ParseAmbiguous("bmi", utterance, "BMI out of range")
        return bmi

    numbers = [(float(m.group(1)), _unit_class(m.group(2))) for m in NUMBER_WITH_UNIT_RE.finditer(text)]
    if not numbers:
        raise ParseAmbiguous("bmi", utterance, "no numbers")

    if len(numbers) == 1:
        value, unit = numbers[0]
        if unit is None and _in_bounds(value, bounds):
            return _as_number(value)
        raise ParseAmbiguous("bmi", utterance, "need both weight and height")

    if len(numbers) > 2:
        raise ParseAmbiguous("bmi", utterance, "too many numbers")

    has_units = any(unit for _, unit in numbers)
    orders = [(numbers[0], numbers[1])]
    if has_units:
        orders.append((numbers[1], numbers[0]))

    candidates = []
    for (weight, weight_unit), (height, height_unit) in orders:
        for system_weight, system_height, weight_range, height_range in _BMI_SYSTEMS:
            if weight_unit not in (None, system_weight) or height_unit not in (None, system_height):
                continue
            if not (_in_bounds(weight, weight_range) and _in_bounds(height, height_range)):
                continue
            bmi = _bmi_from(weight, system_weight, height, system_height)
            if bmi is not None and _in_bounds(bmi, bounds):
                candidates.append(bmi)

    if not candidates:
        raise ParseAmbiguous("bmi", utterance, "no plausible weight/height reading")
    if max(candidates) - min(candidates) > 0.5:
        raise ParseAmbiguous("bmi", utterance, f"conflicting readings {sorted(set(candidates))}")
    return candidates[0]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _parse_for_spec(text: str, spec: FieldSpec) -> Optional[Any]:
    if spec.kind is FieldKind.NUMERIC:
        return parse_number(text, spec.bounds)
    if spec.kind is FieldKind.ENUM:
        return parse_choice(text, spec.name)
    if spec.kind is FieldKind.BOOLEAN:
        return parse_boolean(text)
    stripped = text.strip()
    return stripped or None


def parse(utterance: str, field_name: str) -> ParseOutcome:
    """Parse one answer for ``field_name``.

    Unknown phrases short-circuit for every field. Blood-pressure answers
    written as a pair fill both systolic and diastolic.
    """
    spec = FIELDS[field_name]
    text = (utterance or "").strip()
    if not text:
        return ParseOutcome.unparseable()

    if field_name in ("systolic_bp", "diastolic_bp"):
        pair = parse_blood_pressure_pair(text)
        if pair:
            return ParseOutcome.found_many({"systolic_bp": pair[0], "diastolic_bp": pair[1]})

    if is_unknown_response(text):
        return ParseOutcome.unknown()

    if field_name == "bmi":
        try:
            return ParseOutcome.found("bmi", compute_bmi_from_text(text))
        except ParseAmbiguous:
            return ParseOutcome.unparseable()

    value = _parse_for_spec(text, spec)
    if value is None:
        return ParseOutcome.unparseable()
    return ParseOutcome.found(field_name, value)


def coerce_value(field_name: str, raw: Any) -> Optional[Any]:
    """Validate a value that arrived already typed (AI extraction, API payloads).

    Returns the cleaned value or None when it does not fit the field.
    """
    spec = FIELDS[field_name]
    if raw is None:
        return None

    if spec.kind is FieldKind.NUMERIC:
        if isinstance(raw, bool):
            return None
        if isinstance(raw, (int, float)):
            value = float(raw)
            if field_name == "bmi":
                value = round(value, 1)
            return _as_number(value) if _in_bounds(value, spec.bounds) else None
        outcome = parse(str(raw), field_name)
        return outcome.value_for(field_name) if outcome.is_value else None

    if spec.kind is FieldKind.BOOLEAN:
        if isinstance(raw, bool):
            return raw
        return parse_boolean(str(raw))

    if spec.kind is FieldKind.ENUM:
        if isinstance(raw, bool):
            # yes/no answers to the smoking question
            return ("current" if raw else "never") if field_name == "smoking" else None
        return parse_choice(str(raw), field_name)

    text = str(raw).strip()
    return text or None
