"""
Fallback Module / 智能回退模块
Failure detection, strategy recovery and cached fallback for unreliable operations
不可靠操作的失败检测、策略恢复与缓存兜底
"""

from agent_os.fallback.cache import CacheStore, make_cache_key
from agent_os.fallback.detector import FailureDetector
from agent_os.fallback.executor import execute_operation
from agent_os.fallback.models import (
    FailureKind,
    FailureRecord,
    FallbackResult,
    HealthLabel,
    HealthSnapshot,
    OperationHistoryEntry,
    OperationOutcome,
    RecoveryAttempt,
    RecoveryOutcome,
    Severity,
)
from agent_os.fallback.orchestrator import FallbackOrchestrator
from agent_os.fallback.recovery import RecoveryStrategyRouter, StrategyResult
from agent_os.fallback.state_machine import FallbackEvent, FallbackState, transition
from agent_os.fallback.validators import OperationKind, is_valid_result

__all__ = [
    "CacheStore",
    "FailureDetector",
    "FailureKind",
    "FailureRecord",
    "FallbackEvent",
    "FallbackOrchestrator",
    "FallbackResult",
    "FallbackState",
    "HealthLabel",
    "HealthSnapshot",
    "OperationHistoryEntry",
    "OperationKind",
    "OperationOutcome",
    "RecoveryAttempt",
    "RecoveryOutcome",
    "RecoveryStrategyRouter",
    "Severity",
    "StrategyResult",
    "execute_operation",
    "is_valid_result",
    "make_cache_key",
    "transition",
]
