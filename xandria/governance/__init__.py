"""
Xandria Governance

Coherence and health classification of synthesis runs.
"""

from xandria.governance.coherence_monitor import (
    CoherenceMonitor,
    CoherenceReport,
    CoherenceStatus,
    CoherenceThresholds,
    HealthReport,
    HealthStatus,
)

__all__ = [
    "CoherenceMonitor",
    "CoherenceReport",
    "CoherenceStatus",
    "CoherenceThresholds",
    "HealthReport",
    "HealthStatus",
]
