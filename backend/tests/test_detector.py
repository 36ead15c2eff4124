"""Tests for failure classification, error patterns and health scoring."""
import pytest

from agent_os.exceptions import OperationTimeoutError
from agent_os.fallback.detector import FailureDetector
from agent_os.fallback.errors import (
    classify_severity,
    compute_backoff_delay,
    error_kind,
    is_recoverable,
)
from agent_os.fallback.models import FailureKind, HealthLabel, OperationOutcome, Severity
from agent_os.fallback.validators import OperationKind, is_valid_result


@pytest.fixture
def detector(clock):
    return FailureDetector(response_time=5.0, error_rate=0.1, consecutive_failures=3, memory_usage=0.9, clock=clock)


class TestErrorPatterns:
    def test_severity(self):
        assert classify_severity(ConnectionError("connect ECONNREFUSED 127.0.0.1:443")) == Severity.CRITICAL
        assert classify_severity(PermissionError("Permission denied: /x")) == Severity.HIGH
        assert classify_severity(ValueError("Malformed payload")) == Severity.MEDIUM
        assert classify_severity(RuntimeError("boom")) == Severity.LOW

    def test_kind_refinement(self):
        assert error_kind(MemoryError()) == FailureKind.RESOURCE_EXHAUSTION
        assert error_kind(ConnectionResetError("connection reset by peer")) == FailureKind.NETWORK_FAILURE
        assert error_kind(ConnectionRefusedError("ECONNREFUSED")) == FailureKind.ERROR
        assert error_kind(RuntimeError("boom")) == FailureKind.ERROR

    def test_recoverable(self):
        assert is_recoverable(RuntimeError("boom"))[0] is True
        assert is_recoverable(PermissionError("nope"))[0] is False
        assert is_recoverable(RuntimeError("403 Forbidden"))[0] is False

    def test_backoff(self):
        assert [compute_backoff_delay(n) for n in (1, 2, 3, 4, 5)] == [1.0, 2.0, 4.0, 8.0, 10.0]


class TestValidators:
    def test_table(self):
        assert is_valid_result(OperationKind.COMPONENT_SEARCH, {"components": []})
        assert not is_valid_result("component_search", {"components": "x"})
        assert is_valid_result("documentation_fetch", {"content": "text"})
        assert is_valid_result("code_generation", {"code": ""})
        assert not is_valid_result("context_compression", {})
        assert is_valid_result("something_else", 42)


class TestClassify:
    def test_clean_outcome_returns_none(self, detector):
        assert detector.classify("generic", OperationOutcome(result={"ok": True}, response_time=0.1)) is None
        assert detector.consecutive_failures == 0

    def test_timeout_takes_precedence(self, detector):
        record = detector.classify(
            "component_search",
            OperationOutcome(result={"components": "bad"}, error=RuntimeError("boom"), response_time=9.0),
        )
        assert record.kind == FailureKind.TIMEOUT
        assert "error" in record.details["also_flagged"]

    def test_timeout_error_classified_as_timeout(self, detector):
        record = detector.classify("generic", OperationOutcome(error=OperationTimeoutError(5.0), response_time=5.0))
        assert record.kind == FailureKind.TIMEOUT

    def test_error_before_invalid_result(self, detector):
        record = detector.classify("component_search", OperationOutcome(result={"error": "upstream down"}))
        assert record.kind == FailureKind.ERROR
        assert record.details["message"] == "upstream down"

    def test_invalid_result(self, detector):
        record = detector.classify("documentation_fetch", OperationOutcome(result={"content": None}))
        assert record.kind == FailureKind.INVALID_RESULT

    def test_resource_breach(self, detector):
        record = detector.classify("generic", OperationOutcome(result={}), {"memory_usage": 0.95})
        assert record.kind == FailureKind.RESOURCE_EXHAUSTION
        assert record.severity == Severity.HIGH

    def test_streak_escalates_to_critical(self, detector):
        outcome = OperationOutcome(error=RuntimeError("boom"))
        severities = [detector.classify("generic", outcome).severity for _ in range(3)]
        assert severities[:2] == [Severity.LOW, Severity.LOW]
        assert severities[2] == Severity.CRITICAL
        assert detector.consecutive_failures == 3

    def test_success_resets_streak(self, detector):
        detector.classify("generic", OperationOutcome(error=RuntimeError("boom")))
        detector.classify("generic", OperationOutcome(error=RuntimeError("boom")))
        detector.record_success("generic", 0.1)
        record = detector.classify("generic", OperationOutcome(error=RuntimeError("boom")))
        assert record.severity == Severity.LOW
        assert detector.consecutive_failures == 1

    def test_non_recoverable_flag(self, detector):
        record = detector.classify("generic", OperationOutcome(error=PermissionError("Permission denied")))
        assert record.recoverable is False


class TestHealth:
    def test_healthy_by_default(self, detector):
        snapshot = detector.health_status()
        assert snapshot.score == 1.0
        assert snapshot.status == HealthLabel.EXCELLENT

    def test_failures_lower_score(self, detector):
        detector.record_success("generic", 0.1)
        for _ in range(3):
            detector.classify("generic", OperationOutcome(error=RuntimeError("boom"), response_time=0.1))
        snapshot = detector.health_status()
        # error rate 0.75 -> -1.3, streak 3 -> -0.3
        assert snapshot.score == 0.0
        assert snapshot.status == HealthLabel.CRITICAL
        assert snapshot.recent_errors == 3

    def test_window_expires_old_events(self, detector, clock):
        detector.classify("generic", OperationOutcome(error=RuntimeError("boom")))
        detector.record_success("generic", 0.1)
        clock.advance(2 * 60 * 60)
        snapshot = detector.health_status()
        assert snapshot.recent_errors == 0
        assert snapshot.error_rate == 0.0

    def test_reset(self, detector):
        detector.classify("generic", OperationOutcome(error=RuntimeError("boom")))
        detector.reset()
        assert detector.consecutive_failures == 0
        assert len(detector.records) == 0
