"""Population statistics for patient comparison.

Statistics come from Synthea-generated FHIR JSON files when present, otherwise
from the configured FHIR server (bounded by the external-call timeout), and
finally from fixed population defaults. Results are cached per process.
"""
from typing import Any, Dict, Iterable, List, Optional
from datetime import date
from pathlib import Path
import asyncio
import json
import logging
import statistics

import httpx

from config.settings import EXTERNAL_CALL_TIMEOUT_SECONDS, FHIR_SERVER_URL, SYNTHEA_DATA_DIR
from core.observability import metrics
from models.risk import MetricStats
from tools.health_metrics import round_half_up

logger = logging.getLogger(__name__)

# LOINC codes
BP_PANEL = "85354-9"
SYSTOLIC = "8480-6"
DIASTOLIC = "8462-4"
TOTAL_CHOLESTEROL = "2093-3"
HDL = "2085-9"
BMI = "39156-5"

OBSERVATION_METRICS = {
    TOTAL_CHOLESTEROL: "cholesterol",
    HDL: "hdl_cholesterol",
    BMI: "bmi",
}
COMPONENT_METRICS = {
    SYSTOLIC: "systolic_bp",
    DIASTOLIC: "diastolic_bp",
}

# Plausible values, both bounds exclusive
VALUE_FILTERS = {
    "systolic_bp": (50, 300),
    "diastolic_bp": (30, 200),
    "cholesterol": (50, 500),
    "hdl_cholesterol": (10, 150),
    "bmi": (10, 60),
    "age": (0, 120),
}

DEFAULT_AVERAGES = {
    "systolic_bp": 120,
    "diastolic_bp": 80,
    "cholesterol": 200,
    "hdl_cholesterol": 50,
    "bmi": 26.5,
    "age": 50,
}

METRIC_NAMES = list(DEFAULT_AVERAGES)


def default_statistics() -> Dict[str, MetricStats]:
    return {
        name: MetricStats(average=value, median=value, count=0, source="default")
        for name, value in DEFAULT_AVERAGES.items()
    }


def _codes(concept: Optional[Dict[str, Any]]) -> List[str]:
    if not isinstance(concept, dict):
        return []
    coding = concept.get("coding")
    if not isinstance(coding, list):
        return []
    return [c["code"] for c in coding if isinstance(c, dict) and isinstance(c.get("code"), str)]


def _quantity(item: Dict[str, Any]) -> Optional[float]:
    quantity = item.get("valueQuantity")
    if not isinstance(quantity, dict):
        return None
    value = quantity.get("value")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def age_from_birth_date(birth_date: str, today: Optional[date] = None) -> Optional[int]:
    today = today or date.today()
    try:
        born = date.fromisoformat(birth_date[:10])
    except (TypeError, ValueError):
        return None
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


def _accept(values: Dict[str, List[float]], metric: str, value: Optional[float]):
    if value is None:
        return
    low, high = VALUE_FILTERS[metric]
    if low < value < high:
        values[metric].append(value)


def collect_values(resources: Iterable[Dict[str, Any]], today: Optional[date] = None) -> Dict[str, List[float]]:
    """Pull plausible metric values out of Patient and Observation resources."""
    values: Dict[str, List[float]] = {name: [] for name in METRIC_NAMES}

    for resource in resources:
        if not isinstance(resource, dict):
            continue
        kind = resource.get("resourceType")
        if kind == "Patient" and isinstance(resource.get("birthDate"), str):
            age = age_from_birth_date(resource["birthDate"], today)
            _accept(values, "age", age)
        elif kind == "Observation":
            components = resource.get("component")
            for component in components if isinstance(components, list) else []:
                if not isinstance(component, dict):
                    continue
                for code in _codes(component.get("code")):
                    if code in COMPONENT_METRICS:
                        _accept(values, COMPONENT_METRICS[code], _quantity(component))
            for code in _codes(resource.get("code")):
                if code in OBSERVATION_METRICS:
                    _accept(values, OBSERVATION_METRICS[code], _quantity(resource))

    return values


def summarize(values: Dict[str, List[float]], source: str) -> Dict[str, MetricStats]:
    """Average/median/count per metric; empty metrics fall back to defaults."""
    result = default_statistics()
    for name, samples in values.items():
        if samples:
            result[name] = MetricStats(
                average=round_half_up(statistics.mean(samples), 1),
                median=round_half_up(statistics.median(samples), 1),
                count=len(samples),
                source=source,
            )
    return result


def has_real_data(stats: Dict[str, MetricStats]) -> bool:
    return any(s.count > 0 for s in stats.values())


def resources_from_document(document: Any) -> List[Dict[str, Any]]:
    """Flatten a bundle, a resource array or a single resource."""
    if isinstance(document, list):
        return [r for r in document if isinstance(r, dict)]
    if not isinstance(document, dict):
        return []
    if document.get("resourceType") == "Bundle":
        entries = document.get("entry") or []
        if not isinstance(entries, list):
            return []
        return [
            e["resource"] for e in entries
            if isinstance(e, dict) and isinstance(e.get("resource"), dict)
        ]
    if document.get("resourceType"):
        return [document]
    return []


class SyntheaLoader:
    """Reads Synthea FHIR JSON exports from a directory tree."""

    def __init__(self, data_dir: Path = SYNTHEA_DATA_DIR):
        self.data_dir = Path(data_dir)
        self._resources: Optional[List[Dict[str, Any]]] = None
        self._stats: Optional[Dict[str, MetricStats]] = None

    def find_files(self) -> List[Path]:
        if not self.data_dir.is_dir():
            logger.debug(f"Synthea data directory not found: {self.data_dir}")
            return []
        return sorted(self.data_dir.rglob("*.json"))

    def load_resources(self) -> List[Dict[str, Any]]:
        if self._resources is not None:
            return self._resources

        files = self.find_files()
        resources: List[Dict[str, Any]] = []
        for path in files:
            try:
                document = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable Synthea file {path}: {e}")
                continue
            resources.extend(resources_from_document(document))

        logger.info(f"Loaded {len(resources)} Synthea resources from {len(files)} files")
        self._resources = resources
        return resources

    def calculate_statistics(self) -> Dict[str, MetricStats]:
        if self._stats is None:
            self._stats = summarize(collect_values(self.load_resources()), source="synthea")
        return self._stats

    def clear_cache(self):
        self._resources = None
        self._stats = None


class PopulationStatsService:
    """Files first, then the FHIR server, then defaults."""

    def __init__(self, loader: Optional[SyntheaLoader] = None,
                 fhir_url: Optional[str] = FHIR_SERVER_URL,
                 timeout: float = EXTERNAL_CALL_TIMEOUT_SECONDS,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.loader = loader or SyntheaLoader()
        self.fhir_url = fhir_url
        self.timeout = timeout
        self.transport = transport
        self._cache: Optional[Dict[str, MetricStats]] = None

    async def _fetch_code(self, client: httpx.AsyncClient, code: str) -> List[Dict[str, Any]]:
        try:
            response = await client.get(
                f"{self.fhir_url}/Observation", params={"code": code, "_count": 1000}
            )
            response.raise_for_status()
            return resources_from_document(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"FHIR observation query for {code} failed: {e}")
            return []

    async def _query_fhir(self) -> Dict[str, MetricStats]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            batches = await asyncio.gather(*(
                self._fetch_code(client, code)
                for code in (BP_PANEL, TOTAL_CHOLESTEROL, HDL, BMI)
            ))
        resources = [r for batch in batches for r in batch]
        return summarize(collect_values(resources), source="fhir")

    async def get_statistics(self) -> Dict[str, MetricStats]:
        if self._cache is not None:
            return self._cache

        stats = await asyncio.to_thread(self.loader.calculate_statistics)
        if has_real_data(stats):
            logger.debug("Using Synthea file-based statistics")
            self._cache = stats
            return stats

        if self.fhir_url:
            try:
                fhir_stats = await asyncio.wait_for(self._query_fhir(), timeout=self.timeout)
                if has_real_data(fhir_stats):
                    self._cache = fhir_stats
                    return fhir_stats
            except asyncio.TimeoutError:
                logger.warning(f"FHIR statistics query timed out after {self.timeout}s")
                metrics.record_fallback("fhir")

        logger.info("No population data found, using default statistics")
        self._cache = default_statistics()
        return self._cache

    def clear_cache(self):
        self._cache = None
        self.loader.clear_cache()
