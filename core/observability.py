"""Observability Module - Logging, Tracing, and Metrics

This module provides:
1. Root logging configuration (format and LOG_LEVEL)
2. Stage tracing (intake turns, risk calculations)
3. Per-stage counters and latencies, plus a tally of external-service
   fallbacks (Gemini, Hugging Face, FHIR) for the metrics summary
"""
import logging
import threading
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
from datetime import datetime

from config.settings import LOG_LEVEL

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s | %(name)s | %(levelname)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger("cardiocheck")


@dataclass
class StageTrace:
    """One timed execution of a named stage."""
    stage: str
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    duration_ms: Optional[float] = None
    input_summary: str = ""
    success: bool = True
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def complete(self, success: bool = True, error: str = None):
        self.end_time = datetime.now()
        self.duration_ms = (self.end_time - self.start_time).total_seconds() * 1000
        self.success = success
        self.error = error


@dataclass
class StageStats:
    count: int = 0
    failures: int = 0
    latencies_ms: List[float] = field(default_factory=list)

    @property
    def avg_latency_ms(self) -> float:
        if not self.latencies_ms:
            return 0.0
        return sum(self.latencies_ms) / len(self.latencies_ms)


@dataclass
class PipelineMetrics:
    """Process-wide counters; safe to update from several sessions at once."""
    stages: Dict[str, StageStats] = field(default_factory=dict)
    fallbacks: Dict[str, int] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def total_requests(self) -> int:
        return sum(s.count for s in self.stages.values())

    @property
    def failed_requests(self) -> int:
        return sum(s.failures for s in self.stages.values())

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return (self.total_requests - self.failed_requests) / self.total_requests

    def record(self, trace: StageTrace):
        with self._lock:
            stats = self.stages.setdefault(trace.stage, StageStats())
            stats.count += 1
            if not trace.success:
                stats.failures += 1
            if trace.duration_ms is not None:
                stats.latencies_ms.append(trace.duration_ms)

    def record_fallback(self, service: str):
        """Count an external call that failed or timed out and fell back to local logic."""
        with self._lock:
            self.fallbacks[service] = self.fallbacks.get(service, 0) + 1

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            latencies = [ms for s in self.stages.values() for ms in s.latencies_ms]
            return {
                "total_requests": self.total_requests,
                "success_rate": f"{self.success_rate:.1%}",
                "avg_latency_ms": f"{(sum(latencies) / len(latencies)) if latencies else 0:.0f}ms",
                "stage_avg_latency": {
                    stage: s.avg_latency_ms for stage, s in self.stages.items() if s.latencies_ms
                },
                "stage_failures": {stage: s.failures for stage, s in self.stages.items() if s.failures},
                "external_fallbacks": dict(self.fallbacks),
            }

    def reset(self):
        with self._lock:
            self.stages = {}
            self.fallbacks = {}


# Global metrics instance
metrics = PipelineMetrics()


class Tracer:
    """Context manager that times a named stage and records it in ``metrics``.

    The yielded StageTrace carries a ``metadata`` dict for stage-specific
    details (stage transitions, models used). Exceptions are never suppressed.
    """

    def __init__(self, stage: str, input_data: Any = None):
        self.trace = StageTrace(stage=stage)
        if input_data:
            self.trace.input_summary = str(input_data)[:200]

    def __enter__(self):
        logger.debug(f"▶ {self.trace.stage} started")
        return self.trace

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.trace.complete(success=False, error=str(exc_val))
            logger.info(f"✖ {self.trace.stage} failed: {exc_val}")
        else:
            self.trace.complete(success=True)
            logger.debug(f"✔ {self.trace.stage} completed in {self.trace.duration_ms:.0f}ms")

        metrics.record(self.trace)
        return False


def get_metrics_summary() -> Dict[str, Any]:
    """Get current metrics summary for dashboard/API."""
    return metrics.summary()
