"""
Fallback Models / 回退子系统数据模型
Failure taxonomy, health snapshots, recovery attempts and call results
失败分类、健康快照、恢复尝试与调用结果
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class FailureKind(str, Enum):
    """失败类型 / Failure taxonomy"""
    TIMEOUT = "timeout"
    ERROR = "error"
    INVALID_RESULT = "invalid_result"
    RESOURCE_EXHAUSTION = "resource_exhaustion"
    NETWORK_FAILURE = "network_failure"


class Severity(str, Enum):
    """严重程度 / Failure severity"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class HealthLabel(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"

    @classmethod
    def for_score(cls, score: float) -> "HealthLabel":
        if score >= 0.9:
            return cls.EXCELLENT
        if score >= 0.7:
            return cls.GOOD
        if score >= 0.5:
            return cls.FAIR
        if score >= 0.3:
            return cls.POOR
        return cls.CRITICAL


@dataclass
class OperationOutcome:
    """
    操作结果 / What one execution produced: a result, an error, or both
    (an error-bearing result).
    """
    result: Any = None
    error: Optional[BaseException] = None
    response_time: float = 0.0


@dataclass
class FailureRecord:
    """
    失败记录 / One classified failure.
    """
    operation_name: str
    kind: FailureKind
    severity: Severity
    details: Dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    timestamp: float = field(default_factory=time.time)
    error: Optional[BaseException] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "operation_name": self.operation_name,
            "kind": self.kind.value,
            "severity": self.severity.value,
            "details": self.details,
            "recoverable": self.recoverable,
        }


@dataclass
class HealthSnapshot:
    """
    健康快照 / Rolling-window health derived from recent outcomes.
    """
    score: float
    status: HealthLabel
    error_rate: float
    avg_response_time: float
    consecutive_failures: int
    recent_errors: int
    recent_successes: int
    last_check: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": round(self.score, 4),
            "status": self.status.value,
            "error_rate": round(self.error_rate, 4),
            "avg_response_time": round(self.avg_response_time, 4),
            "consecutive_failures": self.consecutive_failures,
            "recent_errors": self.recent_errors,
            "recent_successes": self.recent_successes,
            "last_check": self.last_check,
        }


@dataclass
class RecoveryAttempt:
    """
    恢复尝试 / One strategy invocation.

    ``retries`` counts operation calls made by a successful strategy.
    """
    failure_kind: FailureKind
    strategy_used: str
    attempt_number: int
    succeeded: bool
    retries: int = 0
    new_context: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "failure_kind": self.failure_kind.value,
            "strategy_used": self.strategy_used,
            "attempt_number": self.attempt_number,
            "succeeded": self.succeeded,
            "retries": self.retries,
            "new_context": self.new_context,
            "error": self.error,
            "timestamp": self.timestamp,
        }


@dataclass
class RecoveryOutcome:
    """恢复结果 / Result of ``RecoveryStrategyRouter.recover``."""
    success: bool
    strategy_used: str
    attempts: List[RecoveryAttempt] = field(default_factory=list)
    result: Any = None
    error: Optional[BaseException] = None


@dataclass
class OperationHistoryEntry:
    """操作历史 / One row of the orchestrator's bounded history."""
    operation_id: str
    operation_name: str
    terminal_state: str
    success: bool
    response_time: float
    context: Dict[str, Any] = field(default_factory=dict)
    failure: Optional[FailureRecord] = None
    recovery_attempts: List[RecoveryAttempt] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "operation_name": self.operation_name,
            "terminal_state": self.terminal_state,
            "success": self.success,
            "response_time": self.response_time,
            "context": self.context,
            "failure": self.failure.to_dict() if self.failure else None,
            "recovery_attempts": [a.to_dict() for a in self.recovery_attempts],
            "timestamp": self.timestamp,
        }


@dataclass
class FallbackResult:
    """
    回退调用结果 / Outbound result of ``execute_with_fallback``.
    """
    success: bool
    operation_id: str
    response_time: float
    result: Any = None
    from_cache: bool = False
    recovered: bool = False
    from_stale_cache: bool = False
    cache_age: Optional[float] = None
    recovery_strategy: Optional[str] = None
    original_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "operation_id": self.operation_id,
            "response_time": self.response_time,
            "result": self.result,
            "from_cache": self.from_cache,
            "recovered": self.recovered,
            "from_stale_cache": self.from_stale_cache,
            "cache_age": self.cache_age,
            "recovery_strategy": self.recovery_strategy,
            "original_error": self.original_error,
        }
