"""
Coherence Monitor

Classifies finished synthesis runs and overall engine health against fixed
thresholds, and recommends adaptation.

Run status:
- critical: coherence < 0.5
- acceptable: coherence < 0.7
- optimal: otherwise

Adaptation is needed when the run is critical, confidence < 0.6, or more than
30% of the stages failed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Sequence


class CoherenceStatus(Enum):
    OPTIMAL = "optimal"
    ACCEPTABLE = "acceptable"
    CRITICAL = "critical"


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class CoherenceThresholds:
    critical_coherence: float = 0.5
    acceptable_coherence: float = 0.7
    min_confidence: float = 0.6
    max_failure_fraction: float = 0.3
    unhealthy_below: float = 0.5
    degraded_below: float = 0.7

    def to_dict(self) -> Dict[str, Any]:
        return {
            "critical_coherence": self.critical_coherence,
            "acceptable_coherence": self.acceptable_coherence,
            "min_confidence": self.min_confidence,
            "max_failure_fraction": self.max_failure_fraction,
            "unhealthy_below": self.unhealthy_below,
            "degraded_below": self.degraded_below,
        }


@dataclass
class CoherenceReport:
    status: CoherenceStatus
    recommendations: List[str] = field(default_factory=list)
    adaptation_needed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "recommendations": list(self.recommendations),
            "adaptation_needed": self.adaptation_needed,
        }


@dataclass
class HealthReport:
    status: HealthStatus
    operators_available: int
    last_execution_time_ms: float
    average_response_time_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "operators_available": self.operators_available,
            "last_execution_time_ms": self.last_execution_time_ms,
            "average_response_time_ms": self.average_response_time_ms,
        }


class CoherenceMonitor:
    """Evaluates synthesis responses and engine health."""

    def __init__(self, thresholds: CoherenceThresholds = None):
        self.thresholds = thresholds or CoherenceThresholds()

    def monitor(self, coherence: float, confidence: float,
                stages: int, failed_stages: int) -> CoherenceReport:
        t = self.thresholds
        status = CoherenceStatus.OPTIMAL
        recommendations: List[str] = []
        adaptation_needed = False

        if coherence < t.critical_coherence:
            status = CoherenceStatus.CRITICAL
            recommendations.append("Pipeline requires immediate restructuring")
            recommendations.append("Consider fallback to simpler operator set")
            adaptation_needed = True
        elif coherence < t.acceptable_coherence:
            status = CoherenceStatus.ACCEPTABLE
            recommendations.append("Pipeline coherence could be improved")
            recommendations.append("Consider operator reordering or replacement")

        if confidence < t.min_confidence:
            recommendations.append("Low confidence detected - increase operator stability requirements")
            adaptation_needed = True

        if failed_stages > stages * t.max_failure_fraction:
            recommendations.append("High failure rate detected - review operator dependencies")
            adaptation_needed = True

        return CoherenceReport(
            status=status,
            recommendations=recommendations,
            adaptation_needed=adaptation_needed,
        )

    def monitor_response(self, response) -> CoherenceReport:
        """Evaluate a SynthesisResponse."""
        return self.monitor(
            coherence=response.metadata.coherence_score,
            confidence=response.metadata.confidence,
            stages=len(response.pipeline),
            failed_stages=len(response.failed_stages),
        )

    def health(self, average_coherence: float, average_confidence: float,
               operators_available: int,
               recent_execution_times_ms: Sequence[float]) -> HealthReport:
        t = self.thresholds
        if average_coherence < t.unhealthy_below or average_confidence < t.unhealthy_below:
            status = HealthStatus.UNHEALTHY
        elif average_coherence < t.degraded_below or average_confidence < t.degraded_below:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY

        times = list(recent_execution_times_ms)
        return HealthReport(
            status=status,
            operators_available=operators_available,
            last_execution_time_ms=times[-1] if times else 0.0,
            average_response_time_ms=sum(times) / len(times) if times else 0.0,
        )
