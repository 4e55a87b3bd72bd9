"""Best-effort FHIR persistence of questionnaire answers.

Each resource is written with an idempotent PUT keyed by a deterministic id
derived from the session, so repeated saves of a growing record overwrite the
previous version. Writes are independent: a failed write is logged and the
remaining resources are still attempted. Nothing is rolled back.
"""
from typing import Any, Dict, List, Optional
from datetime import date, datetime, timezone
import logging

import httpx

from config.settings import EXTERNAL_CALL_TIMEOUT_SECONDS, FHIR_SERVER_URL
from core.observability import metrics
from models.risk import PatientData

logger = logging.getLogger(__name__)

LOINC = "http://loinc.org"
SNOMED = "http://snomed.info/sct"
UCUM = "http://unitsofmeasure.org"
FHIR_JSON = "application/fhir+json"

QUESTIONNAIRE_ITEMS = [
    ("age", "Age"),
    ("gender", "Gender"),
    ("systolic_bp", "Systolic Blood Pressure"),
    ("diastolic_bp", "Diastolic Blood Pressure"),
    ("cholesterol", "Total Cholesterol"),
    ("hdl_cholesterol", "HDL Cholesterol"),
    ("bmi", "Body Mass Index"),
    ("smoking", "Smoking Status"),
    ("cigarettes_per_day", "Cigarettes Per Day"),
    ("physical_activity", "Physical Activity Level"),
    ("diet_quality", "Diet Quality"),
    ("diabetes", "Diabetes"),
    ("diabetes_type", "Diabetes Type"),
    ("diabetes_duration", "Diabetes Duration"),
    ("family_history", "Family History of Heart Disease"),
    ("kidney_disease", "Kidney Disease"),
    ("max_heart_rate", "Maximum Heart Rate"),
]


def patient_id(session_id: str) -> str:
    return f"patient-{session_id}"


def approximate_birth_date(age: float, today: Optional[date] = None) -> str:
    """January 1st of the estimated birth year."""
    today = today or date.today()
    return f"{today.year - int(age)}-01-01"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _coding(system: str, code: str, display: str) -> Dict[str, Any]:
    return {"coding": [{"system": system, "code": code, "display": display}], "text": display}


def build_patient(session_id: str, patient: PatientData) -> Dict[str, Any]:
    resource: Dict[str, Any] = {
        "resourceType": "Patient",
        "id": patient_id(session_id),
        "gender": patient.gender if patient.gender in ("male", "female", "other") else "unknown",
    }
    if patient.age is not None:
        resource["birthDate"] = approximate_birth_date(patient.age)
    if patient.bmi is not None:
        resource["extension"] = [{
            "url": "http://hl7.org/fhir/StructureDefinition/patient-bmi",
            "valueDecimal": patient.bmi,
        }]
    return resource


def _observation(session_id: str, suffix: str, code, display: str) -> Dict[str, Any]:
    return {
        "resourceType": "Observation",
        "id": f"obs-{session_id}-{suffix}",
        "status": "final",
        "code": _coding(LOINC, code, display),
        "subject": {"reference": f"Patient/{patient_id(session_id)}"},
        "effectiveDateTime": _now(),
    }


def _quantity(value: float, unit: str) -> Dict[str, Any]:
    return {"value": value, "unit": unit, "system": UCUM, "code": unit}


def build_observations(session_id: str, patient: PatientData) -> List[Dict[str, Any]]:
    observations = []

    if patient.systolic_bp is not None or patient.diastolic_bp is not None:
        bp = _observation(session_id, "bp", "85354-9", "Blood pressure panel")
        bp["component"] = []
        if patient.systolic_bp is not None:
            bp["component"].append({
                "code": _coding(LOINC, "8480-6", "Systolic blood pressure"),
                "valueQuantity": _quantity(patient.systolic_bp, "mm[Hg]"),
            })
        if patient.diastolic_bp is not None:
            bp["component"].append({
                "code": _coding(LOINC, "8462-4", "Diastolic blood pressure"),
                "valueQuantity": _quantity(patient.diastolic_bp, "mm[Hg]"),
            })
        observations.append(bp)

    single = [
        ("cholesterol", patient.cholesterol, "2093-3", "Cholesterol total", "mg/dL"),
        ("hdl", patient.hdl_cholesterol, "2085-9", "HDL Cholesterol", "mg/dL"),
        ("bmi", patient.bmi, "39156-5", "Body mass index (BMI) [Ratio]", "kg/m2"),
    ]
    for suffix, value, code, display, unit in single:
        if value is None:
            continue
        obs = _observation(session_id, suffix, code, display)
        obs["valueQuantity"] = _quantity(value, unit)
        observations.append(obs)

    return observations


def build_conditions(session_id: str, patient: PatientData) -> List[Dict[str, Any]]:
    if not patient.has_diabetes:
        return []
    return [{
        "resourceType": "Condition",
        "id": f"condition-{session_id}-diabetes",
        "subject": {"reference": f"Patient/{patient_id(session_id)}"},
        "code": _coding(SNOMED, "73211009", "Diabetes mellitus"),
        "clinicalStatus": _coding(
            "http://terminology.hl7.org/CodeSystem/condition-clinical", "active", "Active"
        ),
        "verificationStatus": _coding(
            "http://terminology.hl7.org/CodeSystem/condition-ver-status", "confirmed", "Confirmed"
        ),
        "recordedDate": _now(),
    }]


def build_questionnaire_response(session_id: str, patient: PatientData) -> Dict[str, Any]:
    items = []
    for field_name, text in QUESTIONNAIRE_ITEMS:
        value = getattr(patient, field_name)
        if value is None or value == "":
            continue
        if isinstance(value, bool):
            value = "yes" if value else "no"
        items.append({"linkId": field_name, "text": text, "answer": [{"valueString": str(value)}]})
    return {
        "resourceType": "QuestionnaireResponse",
        "id": f"qr-{session_id}",
        "status": "in-progress",
        "subject": {"reference": f"Patient/{patient_id(session_id)}"},
        "authored": _now(),
        "item": items,
    }


def build_resources(session_id: str, patient: PatientData) -> List[Dict[str, Any]]:
    """Resources in write order: patient, observations, conditions, answers."""
    return (
        [build_patient(session_id, patient)]
        + build_observations(session_id, patient)
        + build_conditions(session_id, patient)
        + [build_questionnaire_response(session_id, patient)]
    )


class FhirService:
    """Writes patient answers to a FHIR server. Never raises."""

    def __init__(self, base_url: Optional[str] = FHIR_SERVER_URL,
                 timeout: float = EXTERNAL_CALL_TIMEOUT_SECONDS):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return self.base_url is not None

    async def _put(self, client: httpx.AsyncClient, resource: Dict[str, Any]) -> bool:
        path = f"{resource['resourceType']}/{resource['id']}"
        try:
            response = await client.put(
                f"{self.base_url}/{path}", json=resource, headers={"Content-Type": FHIR_JSON}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"FHIR write {path} failed: {e}")
            metrics.record_fallback("fhir")
            return False
        logger.debug(f"FHIR write {path} ok")
        return True

    async def save(self, session_id: str, patient: PatientData) -> Dict[str, bool]:
        """Upsert every resource for the session; returns per-resource success."""
        if not self.enabled:
            logger.debug("FHIR_SERVER_URL not set; skipping persistence")
            return {}

        results: Dict[str, bool] = {}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for resource in build_resources(session_id, patient):
                key = f"{resource['resourceType']}/{resource['id']}"
                results[key] = await self._put(client, resource)
        return results
