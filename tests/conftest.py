"""
Pytest configuration and shared fixtures for the test suite.

Every fixture wires collaborators that never touch the network: AI extraction
disabled, no ML token, no FHIR server, and an empty Synthea directory.
"""
import pytest

from agents.coach_agent import CoachAgent
from agents.extraction_agent import ExtractionAgent
from agents.intake_agent import IntakeAgent
from agents.ml_risk_agent import MLRiskAgent
from agents.risk_agent import RiskAgent
from cardio_main import CardioCheckSystem
from models.risk import PatientData
from services.fhir_service import FhirService
from services.population_stats import PopulationStatsService, SyntheaLoader
from services.session_service import InMemorySessionService


# ============================================================================
# Patients
# ============================================================================

@pytest.fixture
def high_risk_patient():
    """45-year-old male smoker with stage-2 hypertension and diabetes."""
    return PatientData(
        age=45,
        gender="male",
        systolic_bp=140,
        diastolic_bp=90,
        cholesterol=220,
        hdl_cholesterol=45,
        bmi=28,
        smoking="current",
        physical_activity="moderate",
        diet_quality="good",
        diabetes=True,
        family_history=True,
    )


@pytest.fixture
def healthy_patient():
    return PatientData(
        age=35,
        gender="female",
        systolic_bp=112,
        diastolic_bp=72,
        cholesterol=170,
        hdl_cholesterol=65,
        bmi=22,
        smoking="never",
        physical_activity="active",
        diet_quality="excellent",
        diabetes=False,
        family_history=False,
    )


# ============================================================================
# Offline collaborators
# ============================================================================

@pytest.fixture
def stats_service(tmp_path):
    return PopulationStatsService(loader=SyntheaLoader(tmp_path / "synthea"), fhir_url=None)


@pytest.fixture
def risk_agent(stats_service):
    return RiskAgent(ml_agent=MLRiskAgent(api_token=None), stats_service=stats_service)


@pytest.fixture
def store():
    return InMemorySessionService(max_sessions=50)


@pytest.fixture
def intake(store, risk_agent):
    return IntakeAgent(
        store,
        extractor=ExtractionAgent(enabled=False),
        risk_agent=risk_agent,
        coach=CoachAgent(),
        persistence=FhirService(base_url=None),
    )


@pytest.fixture
def system(store, intake, risk_agent):
    return CardioCheckSystem(store=store, intake=intake, risk_agent=risk_agent)
