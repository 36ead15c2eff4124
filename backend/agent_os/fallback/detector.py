# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  失败检测器 - 将操作结果归类为失败类型，跟踪连续失败与滚动健康分
  Failure Detector - Classifies outcomes into the failure taxonomy, tracks the failure streak and a rolling health score.

分类优先级 / Classification precedence (first match is the record's kind):
  timeout → explicit error → invalid result → resource breach
"""

import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from agent_os.config import config
from agent_os.fallback.errors import classify_severity, error_kind, is_recoverable, is_timeout_error
from agent_os.fallback.models import (
    FailureKind,
    FailureRecord,
    HealthLabel,
    HealthSnapshot,
    OperationOutcome,
    Severity,
)
from agent_os.fallback.validators import has_error_field, is_valid_result
from agent_os.utils.logger import get_logger

logger = get_logger(__name__)

METRICS_HISTORY = 1000
HEALTH_WINDOW = 60 * 60

_INTRINSIC_SEVERITY = {
    FailureKind.TIMEOUT: Severity.MEDIUM,
    FailureKind.INVALID_RESULT: Severity.MEDIUM,
    FailureKind.RESOURCE_EXHAUSTION: Severity.HIGH,
}


class FailureDetector:
    """
    失败检测器

    Attributes:
        response_time_threshold (float): 超时阈值（秒） / Seconds before a response counts as a timeout.
        error_rate_threshold (float): 健康分开始扣分的错误率 / Error rate above which health is penalized.
        consecutive_failures_threshold (int): 升级为 critical 的连续失败次数 / Streak that escalates to critical.
        memory_usage_threshold (float): 资源告警阈值 (0-1) / Memory usage fraction treated as exhaustion.
    """

    def __init__(
        self,
        response_time: Optional[float] = None,
        error_rate: Optional[float] = None,
        consecutive_failures: Optional[int] = None,
        memory_usage: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        thresholds = config.get("failure_thresholds", {})
        self.response_time_threshold = float(
            response_time if response_time is not None else thresholds.get("response_time", 5.0)
        )
        self.error_rate_threshold = float(
            error_rate if error_rate is not None else thresholds.get("error_rate", 0.1)
        )
        self.consecutive_failures_threshold = int(
            consecutive_failures if consecutive_failures is not None else thresholds.get("consecutive_failures", 3)
        )
        self.memory_usage_threshold = float(
            memory_usage if memory_usage is not None else thresholds.get("memory_usage", 0.9)
        )
        self._clock = clock
        self._lock = threading.Lock()

        self.consecutive_failures = 0
        self._errors: Deque[float] = deque(maxlen=METRICS_HISTORY)
        self._successes: Deque[float] = deque(maxlen=METRICS_HISTORY)
        self._response_times: Deque[Tuple[float, float]] = deque(maxlen=METRICS_HISTORY)
        self.records: Deque[FailureRecord] = deque(maxlen=METRICS_HISTORY)

    # ========== Classification ==========

    def _flags(self, operation_name: str, outcome: OperationOutcome, metrics: Dict[str, Any]) -> List[Tuple[FailureKind, Severity, Dict[str, Any]]]:
        flags = []
        error = outcome.error
        response_time = metrics.get("response_time", outcome.response_time) or 0.0

        if response_time > self.response_time_threshold or is_timeout_error(error):
            flags.append((FailureKind.TIMEOUT, _INTRINSIC_SEVERITY[FailureKind.TIMEOUT], {
                "response_time": response_time,
                "threshold": self.response_time_threshold,
            }))

        if error is not None:
            flags.append((error_kind(error), classify_severity(error), {
                "message": str(error),
                "error_type": type(error).__name__,
            }))
        elif outcome.result is not None and has_error_field(outcome.result):
            message = _error_field(outcome.result)
            flags.append((FailureKind.ERROR, classify_severity(Exception(message)), {
                "message": message,
                "error_type": "ResultError",
            }))

        if outcome.result is not None and not is_valid_result(operation_name, outcome.result):
            flags.append((FailureKind.INVALID_RESULT, _INTRINSIC_SEVERITY[FailureKind.INVALID_RESULT], {
                "operation_kind": operation_name,
            }))

        memory_usage = metrics.get("memory_usage")
        if memory_usage is not None and memory_usage > self.memory_usage_threshold:
            flags.append((FailureKind.RESOURCE_EXHAUSTION, _INTRINSIC_SEVERITY[FailureKind.RESOURCE_EXHAUSTION], {
                "memory_usage": memory_usage,
                "threshold": self.memory_usage_threshold,
            }))

        return flags

    def classify(
        self,
        operation_name: str,
        outcome: OperationOutcome,
        metrics: Optional[Dict[str, Any]] = None,
    ) -> Optional[FailureRecord]:
        """
        分类操作结果 / Classify one outcome.

        Returns None when nothing is wrong, which also resets the failure
        streak. Otherwise the streak grows and the record is escalated to
        ``critical`` once it reaches the threshold.
        """
        metrics = metrics or {}
        flags = self._flags(operation_name, outcome, metrics)
        response_time = metrics.get("response_time", outcome.response_time) or 0.0

        with self._lock:
            now = self._clock()
            self._response_times.append((now, response_time))

            if not flags:
                self._successes.append(now)
                self.consecutive_failures = 0
                return None

            self._errors.append(now)
            self.consecutive_failures += 1

            kind, severity, details = flags[0]
            details = dict(details)
            if len(flags) > 1:
                details["also_flagged"] = [f[0].value for f in flags[1:]]
            for _, _, extra in flags[1:]:
                for key, value in extra.items():
                    details.setdefault(key, value)

            if self.consecutive_failures >= self.consecutive_failures_threshold:
                severity = Severity.CRITICAL
                details["consecutive_failures"] = self.consecutive_failures

            recoverable, reason = is_recoverable(outcome.error)
            if not recoverable:
                details["non_recoverable_reason"] = reason

            record = FailureRecord(
                operation_name=operation_name,
                kind=kind,
                severity=severity,
                details=details,
                recoverable=recoverable,
                timestamp=now,
                error=outcome.error,
            )
            self.records.append(record)

        logger.warning(
            "Failure detected in %s: kind=%s severity=%s streak=%d",
            operation_name, kind.value, severity.value, self.consecutive_failures,
        )
        return record

    def record_success(self, operation_name: str, response_time: float = 0.0) -> None:
        """Count a clean outcome without classifying it (resets the streak)."""
        with self._lock:
            now = self._clock()
            self._successes.append(now)
            self._response_times.append((now, response_time))
            self.consecutive_failures = 0
        logger.debug("Operation %s succeeded in %.3fs", operation_name, response_time)

    # ========== Health ==========

    def health_status(self) -> HealthSnapshot:
        """
        健康状态 / Rolling one-hour health snapshot.

        Score starts at 1.0; error-rate excess costs twice its size, a slow
        average costs 0.3, each consecutive failure costs 0.1.
        """
        with self._lock:
            now = self._clock()
            cutoff = now - HEALTH_WINDOW
            recent_errors = sum(1 for t in self._errors if t > cutoff)
            recent_successes = sum(1 for t in self._successes if t > cutoff)
            recent_times = [rt for t, rt in self._response_times if t > cutoff]
            streak = self.consecutive_failures

        total = recent_errors + recent_successes
        error_rate = recent_errors / total if total else 0.0
        avg_response_time = sum(recent_times) / len(recent_times) if recent_times else 0.0

        score = 1.0
        if error_rate > self.error_rate_threshold:
            score -= (error_rate - self.error_rate_threshold) * 2
        if avg_response_time > self.response_time_threshold:
            score -= 0.3
        score -= streak * 0.1
        score = max(0.0, min(1.0, score))

        return HealthSnapshot(
            score=score,
            status=HealthLabel.for_score(score),
            error_rate=error_rate,
            avg_response_time=avg_response_time,
            consecutive_failures=streak,
            recent_errors=recent_errors,
            recent_successes=recent_successes,
            last_check=now,
        )

    def reset(self) -> None:
        with self._lock:
            self.consecutive_failures = 0
            self._errors.clear()
            self._successes.clear()
            self._response_times.clear()
            self.records.clear()


def _error_field(result: Any) -> str:
    value = result.get("error") if isinstance(result, dict) else getattr(result, "error", None)
    if isinstance(value, dict):
        return str(value.get("message") or value)
    return str(value)
