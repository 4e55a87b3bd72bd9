"""Tests for the session store, population statistics and FHIR persistence.

Uses tmp_path for Synthea files and mocked HTTP clients; no real network I/O.
"""
import json
from datetime import date

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from models.risk import PatientData
from models.session import ConversationSession
from services.fhir_service import (
    FhirService,
    approximate_birth_date,
    build_conditions,
    build_observations,
    build_patient,
    build_questionnaire_response,
    build_resources,
)
from services.population_stats import (
    PopulationStatsService,
    SyntheaLoader,
    age_from_birth_date,
    collect_values,
    resources_from_document,
)
from services.session_service import InMemorySessionService, new_session_id


def _observation(code: str, value: float) -> dict:
    return {
        "resourceType": "Observation",
        "code": {"coding": [{"system": "http://loinc.org", "code": code}]},
        "valueQuantity": {"value": value},
    }


def _bp(systolic: float, diastolic: float) -> dict:
    return {
        "resourceType": "Observation",
        "code": {"coding": [{"code": "85354-9"}]},
        "component": [
            {"code": {"coding": [{"code": "8480-6"}]}, "valueQuantity": {"value": systolic}},
            {"code": {"coding": [{"code": "8462-4"}]}, "valueQuantity": {"value": diastolic}},
        ],
    }


def _bundle(*resources) -> dict:
    return {"resourceType": "Bundle", "entry": [{"resource": r} for r in resources]}


class TestSessionStore:
    """Keyed in-memory store with LRU eviction."""

    def test_put_get_delete(self):
        store = InMemorySessionService()
        session = ConversationSession(session_id="abc")
        store.put(session)
        assert store.get("abc") is session
        assert store.delete("abc") is True
        assert store.get("abc") is None
        assert store.delete("abc") is False

    def test_ids_unique(self):
        assert new_session_id().startswith("session_")
        assert new_session_id() != new_session_id()

    def test_lru_eviction(self):
        store = InMemorySessionService(max_sessions=2)
        store.put(ConversationSession(session_id="a"))
        store.put(ConversationSession(session_id="b"))
        store.get("a")
        store.put(ConversationSession(session_id="c"))
        assert store.get("b") is None
        assert store.get("a") is not None
        assert len(store) == 2

    def test_sessions_are_independent(self):
        store = InMemorySessionService()
        first = ConversationSession(session_id="one")
        second = ConversationSession(session_id="two")
        store.put(first)
        store.put(second)
        first.record.set_value("age", 50)
        assert second.record.get("age") is None


class TestSyntheaStatistics:
    """File-based population statistics."""

    def test_resources_from_document(self):
        patient = {"resourceType": "Patient", "birthDate": "1970-01-01"}
        assert resources_from_document(_bundle(patient)) == [patient]
        assert resources_from_document([patient, "junk"]) == [patient]
        assert resources_from_document(patient) == [patient]
        assert resources_from_document({"foo": 1}) == []

    def test_age_from_birth_date(self):
        today = date(2024, 6, 15)
        assert age_from_birth_date("1974-06-15", today) == 50
        assert age_from_birth_date("1974-06-16", today) == 49
        assert age_from_birth_date("not a date", today) is None

    def test_collect_values_filters_implausible(self):
        values = collect_values([
            _bp(130, 85),
            _bp(400, 20),
            _observation("2093-3", 210),
            _observation("2085-9", 5),
            _observation("39156-5", 27.5),
        ])
        assert values["systolic_bp"] == [130]
        assert values["diastolic_bp"] == [85]
        assert values["cholesterol"] == [210]
        assert values["hdl_cholesterol"] == []
        assert values["bmi"] == [27.5]

    def test_malformed_documents_skipped(self):
        patient = {"resourceType": "Patient", "birthDate": "1970-01-01"}
        bundle = {"resourceType": "Bundle", "entry": ["oops", {"resource": "x"}, {"resource": patient}]}
        assert resources_from_document(bundle) == [patient]
        assert resources_from_document({"resourceType": "Bundle", "entry": "oops"}) == []

    def test_collect_values_ignores_malformed_parts(self):
        broken_bp = _bp(130, 85)
        broken_bp["component"].insert(0, "oops")
        values = collect_values([
            "not a resource",
            broken_bp,
            {"resourceType": "Observation", "code": {"coding": "8480-6"}, "valueQuantity": {"value": 120}},
            {"resourceType": "Observation", "code": {"coding": [{"code": ["2093-3"]}]}, "valueQuantity": 200},
            {"resourceType": "Observation", "code": "2093-3", "component": 5},
            {"resourceType": "Patient", "birthDate": 1970},
        ])
        assert values["systolic_bp"] == [130]
        assert values["diastolic_bp"] == [85]
        assert values["cholesterol"] == []
        assert values["age"] == []

    def test_loader_reads_nested_files(self, tmp_path):
        nested = tmp_path / "fhir" / "batch1"
        nested.mkdir(parents=True)
        (nested / "patient1.json").write_text(json.dumps(_bundle(_bp(120, 80), _observation("2093-3", 180))))
        (tmp_path / "patient2.json").write_text(json.dumps([_bp(140, 90), _observation("2093-3", 220)]))
        (tmp_path / "broken.json").write_text("{not json")

        stats = SyntheaLoader(tmp_path).calculate_statistics()
        assert stats["systolic_bp"].average == 130
        assert stats["systolic_bp"].count == 2
        assert stats["systolic_bp"].source == "synthea"
        assert stats["cholesterol"].median == 200
        # No HDL samples: default
        assert stats["hdl_cholesterol"].average == 50
        assert stats["hdl_cholesterol"].source == "default"

    def test_missing_directory(self, tmp_path):
        loader = SyntheaLoader(tmp_path / "nope")
        assert loader.find_files() == []


class TestPopulationStatsService:
    """Files first, then FHIR, then defaults."""

    @pytest.mark.asyncio
    async def test_defaults_when_nothing_available(self, tmp_path):
        service = PopulationStatsService(loader=SyntheaLoader(tmp_path), fhir_url=None)
        stats = await service.get_statistics()
        assert stats["systolic_bp"].average == 120
        assert stats["bmi"].average == 26.5
        assert all(s.count == 0 for s in stats.values())

    @pytest.mark.asyncio
    async def test_file_statistics_cached(self, tmp_path):
        (tmp_path / "p.json").write_text(json.dumps([_bp(150, 95)]))
        service = PopulationStatsService(loader=SyntheaLoader(tmp_path), fhir_url=None)
        first = await service.get_statistics()
        (tmp_path / "q.json").write_text(json.dumps([_bp(110, 70)]))
        assert await service.get_statistics() is first

        service.clear_cache()
        refreshed = await service.get_statistics()
        assert refreshed["systolic_bp"].average == 130

    @pytest.mark.asyncio
    async def test_fhir_fallback(self, tmp_path):
        mock_response = MagicMock()
        mock_response.json.return_value = _bundle(_bp(126, 82), _observation("39156-5", 29))
        mock_response.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.get = AsyncMock(return_value=mock_response)
            mock_client.return_value.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_client.return_value.__aexit__ = AsyncMock(return_value=None)

            service = PopulationStatsService(loader=SyntheaLoader(tmp_path), fhir_url="http://fhir.test")
            stats = await service.get_statistics()

        assert stats["systolic_bp"].source == "fhir"
        assert stats["systolic_bp"].average == 126
        assert stats["bmi"].average == 29
        assert mock_instance.get.await_count == 4

    @pytest.mark.asyncio
    async def test_malformed_fhir_bundle(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["code"] == "85354-9":
                bundle = {"resourceType": "Bundle", "entry": ["oops", {"resource": _bp(128, 84)}]}
                return httpx.Response(200, json=bundle)
            return httpx.Response(200, json={"resourceType": "Bundle", "entry": ["oops"]})

        service = PopulationStatsService(
            loader=SyntheaLoader(tmp_path), fhir_url="http://fhir.test",
            transport=httpx.MockTransport(handler),
        )
        stats = await service.get_statistics()

        assert stats["systolic_bp"].source == "fhir"
        assert stats["systolic_bp"].average == 128
        assert stats["cholesterol"].source == "default"

    @pytest.mark.asyncio
    async def test_malformed_fhir_reply_uses_defaults(self, tmp_path):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"resourceType": "Bundle", "entry": ["oops"]})
        )
        service = PopulationStatsService(loader=SyntheaLoader(tmp_path), fhir_url="http://fhir.test",
                                         transport=transport)
        stats = await service.get_statistics()
        assert all(s.source == "default" for s in stats.values())

    @pytest.mark.asyncio
    async def test_fhir_failure_uses_defaults(self, tmp_path):
        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.get = AsyncMock(side_effect=httpx.ConnectError("refused"))
            mock_client.return_value.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_client.return_value.__aexit__ = AsyncMock(return_value=None)

            service = PopulationStatsService(loader=SyntheaLoader(tmp_path), fhir_url="http://fhir.test")
            stats = await service.get_statistics()

        assert stats["systolic_bp"].source == "default"


class TestFhirResources:
    """Resource builders for best-effort persistence."""

    def test_patient(self, high_risk_patient):
        resource = build_patient("s1", high_risk_patient)
        assert resource["id"] == "patient-s1"
        assert resource["gender"] == "male"
        assert resource["birthDate"] == approximate_birth_date(45)
        assert resource["extension"][0]["valueDecimal"] == 28

    def test_birth_date_is_january_first(self):
        assert approximate_birth_date(45, date(2024, 8, 1)) == "1979-01-01"

    def test_unknown_gender(self):
        assert build_patient("s1", PatientData(age=40))["gender"] == "unknown"

    def test_observations(self, high_risk_patient):
        observations = build_observations("s1", high_risk_patient)
        assert [o["id"] for o in observations] == [
            "obs-s1-bp", "obs-s1-cholesterol", "obs-s1-hdl", "obs-s1-bmi",
        ]
        bp = observations[0]
        assert [c["valueQuantity"]["value"] for c in bp["component"]] == [140, 90]
        assert bp["subject"]["reference"] == "Patient/patient-s1"

    def test_partial_record(self):
        observations = build_observations("s1", PatientData(age=40, cholesterol=190))
        assert [o["id"] for o in observations] == ["obs-s1-cholesterol"]

    def test_diabetes_condition(self, high_risk_patient, healthy_patient):
        conditions = build_conditions("s1", high_risk_patient)
        assert conditions[0]["code"]["coding"][0]["code"] == "73211009"
        assert build_conditions("s1", healthy_patient) == []

    def test_questionnaire_response(self):
        patient = PatientData(age=50, gender="female", diabetes=False, cigarettes_per_day="10")
        qr = build_questionnaire_response("s1", patient)
        answers = {item["linkId"]: item["answer"][0]["valueString"] for item in qr["item"]}
        assert answers == {"age": "50", "gender": "female", "diabetes": "no", "cigarettes_per_day": "10"}

    def test_write_order(self, high_risk_patient):
        kinds = [r["resourceType"] for r in build_resources("s1", high_risk_patient)]
        assert kinds[0] == "Patient"
        assert kinds[-1] == "QuestionnaireResponse"
        assert kinds[-2] == "Condition"


class TestFhirService:
    """Writes never raise."""

    @pytest.mark.asyncio
    async def test_disabled(self, high_risk_patient):
        service = FhirService(base_url=None)
        assert not service.enabled
        assert await service.save("s1", high_risk_patient) == {}

    @pytest.mark.asyncio
    async def test_partial_failure_continues(self, healthy_patient):
        ok = MagicMock()
        ok.raise_for_status = MagicMock()

        calls = []

        async def put(url, json=None, headers=None):
            calls.append(url)
            if "Observation" in url:
                raise httpx.ConnectError("boom")
            return ok

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.put = put
            mock_client.return_value.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_client.return_value.__aexit__ = AsyncMock(return_value=None)

            results = await FhirService(base_url="http://fhir.test/").save("s1", healthy_patient)

        assert calls[0] == "http://fhir.test/Patient/patient-s1"
        assert results["Patient/patient-s1"] is True
        assert results["Observation/obs-s1-bp"] is False
        assert results["QuestionnaireResponse/qr-s1"] is True
        assert len(calls) == len(results)
