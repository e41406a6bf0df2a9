"""Test coherence and health monitoring."""
import pytest

from xandria.governance.coherence_monitor import (
    CoherenceMonitor,
    CoherenceStatus,
    CoherenceThresholds,
    HealthStatus,
)


class TestCoherenceMonitor:
    """Tests for CoherenceMonitor.monitor."""

    def test_optimal(self):
        report = CoherenceMonitor().monitor(coherence=0.9, confidence=0.9, stages=4, failed_stages=0)
        assert report.status is CoherenceStatus.OPTIMAL
        assert report.recommendations == []
        assert report.adaptation_needed is False

    def test_acceptable(self):
        report = CoherenceMonitor().monitor(coherence=0.6, confidence=0.9, stages=4, failed_stages=0)
        assert report.status is CoherenceStatus.ACCEPTABLE
        assert len(report.recommendations) == 2
        assert report.adaptation_needed is False

    def test_critical(self):
        report = CoherenceMonitor().monitor(coherence=0.4, confidence=0.9, stages=4, failed_stages=0)
        assert report.status is CoherenceStatus.CRITICAL
        assert "Pipeline requires immediate restructuring" in report.recommendations
        assert report.adaptation_needed is True

    def test_low_confidence_needs_adaptation(self):
        report = CoherenceMonitor().monitor(coherence=0.9, confidence=0.5, stages=4, failed_stages=0)
        assert report.status is CoherenceStatus.OPTIMAL
        assert report.adaptation_needed is True
        assert any("Low confidence" in r for r in report.recommendations)

    @pytest.mark.parametrize("failed,expected", [(1, False), (2, True)])
    def test_failure_fraction(self, failed, expected):
        """Test more than 30% failed stages triggers adaptation."""
        report = CoherenceMonitor().monitor(coherence=0.9, confidence=0.9, stages=5, failed_stages=failed)
        assert report.adaptation_needed is expected

    def test_custom_thresholds(self):
        monitor = CoherenceMonitor(CoherenceThresholds(critical_coherence=0.95, acceptable_coherence=0.99))
        report = monitor.monitor(coherence=0.9, confidence=0.9, stages=1, failed_stages=0)
        assert report.status is CoherenceStatus.CRITICAL

    def test_report_to_dict(self):
        report = CoherenceMonitor().monitor(coherence=0.6, confidence=0.9, stages=1, failed_stages=0)
        assert report.to_dict()["status"] == "acceptable"


class TestHealth:
    """Tests for CoherenceMonitor.health."""

    @pytest.mark.parametrize("coherence,confidence,expected", [
        (0.9, 0.9, HealthStatus.HEALTHY),
        (0.9, 0.65, HealthStatus.DEGRADED),
        (0.6, 0.9, HealthStatus.DEGRADED),
        (0.4, 0.9, HealthStatus.UNHEALTHY),
        (0.9, 0.3, HealthStatus.UNHEALTHY),
    ])
    def test_status(self, coherence, confidence, expected):
        report = CoherenceMonitor().health(coherence, confidence, 3, [])
        assert report.status is expected

    def test_response_times(self):
        report = CoherenceMonitor().health(0.9, 0.9, 3, [10.0, 20.0, 60.0])
        assert report.last_execution_time_ms == 60.0
        assert report.average_response_time_ms == pytest.approx(30.0)
        assert report.to_dict()["operators_available"] == 3
