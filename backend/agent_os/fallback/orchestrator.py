# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  回退编排器 - 缓存检查、带超时执行、失败检测、策略恢复与过期缓存兜底
  Fallback Orchestrator - Cache check, guarded execution, failure detection, strategy recovery and stale-cache fallback.

核心流程 / Core flow:
  每次调用由 state_machine.transition 驱动，实际的 I/O（缓存、执行、恢复）注入到编排器中。
  Each call is driven by ``state_machine.transition``; cache, executor and
  recovery router are injected collaborators.

  终态副作用 / Terminal side effects:
  - 追加操作历史 / append an OperationHistoryEntry
  - 更新聚合计数器 / update the aggregate counters
"""

import secrets
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from agent_os.config import config
from agent_os.exceptions import FallbackExhaustedError, InvalidResultError
from agent_os.fallback.cache import CacheStore, make_cache_key
from agent_os.fallback.detector import FailureDetector
from agent_os.fallback.executor import (
    DEFAULT_TIMEOUT,
    Operation,
    ensure_valid,
    execute_operation,
    operation_name_of,
)
from agent_os.fallback.models import (
    FailureRecord,
    FallbackResult,
    OperationHistoryEntry,
    OperationOutcome,
    RecoveryAttempt,
)
from agent_os.fallback.recovery import RecoveryStrategyRouter, with_options
from agent_os.fallback.state_machine import FallbackEvent, FallbackState, is_success, transition
from agent_os.utils.logger import get_logger

logger = get_logger(__name__)

HISTORY_SIZE = 1000
RECENT_WINDOW = 60 * 60

# Recommendation thresholds for the system report
# 系统报告建议阈值
LOW_SUCCESS_RATE = 0.9
LOW_CACHE_HIT_RATE = 0.3
LOW_HEALTH_SCORE = 0.7
MANY_RECENT_FAILURES = 10


class FallbackOrchestrator:
    """
    回退编排器

    Owns the CacheStore, FailureDetector and RecoveryStrategyRouter it is
    given (or builds defaults from config).

    Attributes:
        cache_enabled (bool): 是否启用缓存 / Whether cache lookups and stores happen.
        default_timeout (float): 默认超时（秒） / Timeout used when ``options`` sets none.
        stats (Dict[str, int]): 聚合计数器 / Aggregate counters.
    """

    def __init__(
        self,
        cache: Optional[CacheStore] = None,
        detector: Optional[FailureDetector] = None,
        router: Optional[RecoveryStrategyRouter] = None,
        cache_enabled: Optional[bool] = None,
        default_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        metrics_provider: Optional[Callable[[], Dict[str, Any]]] = None,
    ):
        cache_cfg = config.get("cache", {})
        fallback_cfg = config.get("fallback", {})
        self.cache_enabled = bool(cache_cfg.get("enabled", True) if cache_enabled is None else cache_enabled)
        self.default_timeout = float(
            default_timeout if default_timeout is not None else fallback_cfg.get("default_timeout", DEFAULT_TIMEOUT)
        )
        self._clock = clock
        self.cache = cache if cache is not None else CacheStore(clock=clock)
        self.detector = detector if detector is not None else FailureDetector(clock=clock)
        self.router = router if router is not None else RecoveryStrategyRouter(default_timeout=self.default_timeout)
        self._metrics_provider = metrics_provider

        self._lock = threading.Lock()
        self.history: Deque[OperationHistoryEntry] = deque(maxlen=HISTORY_SIZE)
        self.stats: Dict[str, int] = {
            "total_operations": 0,
            "total_failures": 0,
            "successful_recoveries": 0,
            "failed_recoveries": 0,
            "cache_hits": 0,
            "stale_hits": 0,
        }

    def _new_operation_id(self) -> str:
        return f"op_{int(self._clock() * 1000)}_{secrets.token_hex(5)[:9]}"

    async def execute_operation(
        self,
        operation: Operation,
        context: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> Any:
        """带超时执行 / Run ``operation`` under the timeout guard."""
        return await execute_operation(operation, context, self.default_timeout if timeout is None else timeout)

    # ========== Main flow ==========

    async def execute_with_fallback(
        self,
        operation: Operation,
        context: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
        *,
        operation_name: Optional[str] = None,
    ) -> FallbackResult:
        """
        带回退执行 / Execute ``operation(context)`` through the fallback chain.

        Args:
            operation: 同步或异步可调用对象 / Sync or async callable taking the context.
            context: 操作上下文，query/params/options 参与缓存键 / Operation context.
            options: 调用选项，``timeout`` 秒 / Call options such as ``timeout`` (seconds).
            operation_name: 操作名，同时用作结果校验类型 / Name, also the validator kind.

        Returns:
            FallbackResult for every success path (fresh, cached, recovered, stale).

        Raises:
            FallbackExhaustedError: 执行、恢复、过期缓存均失败 / Every layer failed.
            Exception: 检测器未归类的原始错误 / The original error when nothing was classified.
        """
        context = dict(context or {})
        options = dict(options or {})
        name = operation_name or operation_name_of(operation)
        timeout = options.get("timeout") or self.default_timeout
        operation_id = self._new_operation_id()
        started = time.monotonic()
        key = make_cache_key(name, context)

        state = transition(FallbackState.START, FallbackEvent.BEGIN)

        # CACHE_CHECK: the stale candidate is captured first since get() drops expired entries
        stale_value = stale_age = None
        cached = None
        if self.cache_enabled:
            stale_value = self.cache.peek(key)
            stale_age = self.cache.age(key)
            cached = self.cache.get(key)
        state = transition(state, FallbackEvent.HIT if cached is not None else FallbackEvent.MISS)

        if state == FallbackState.RETURN_CACHED:
            self._increment("cache_hits")
            logger.debug("Cache hit for %s (%s)", name, operation_id)
            elapsed = time.monotonic() - started
            self._finish(operation_id, name, state, elapsed, context)
            return FallbackResult(
                success=True,
                operation_id=operation_id,
                response_time=elapsed,
                result=cached,
                from_cache=True,
            )

        # EXECUTE
        result = None
        error: Optional[BaseException] = None
        try:
            result = await self.execute_operation(operation, context, timeout)
        except Exception as exc:
            error = exc

        failure = error
        if error is None:
            try:
                ensure_valid(name, result)
            except InvalidResultError as exc:
                failure = exc

        elapsed = time.monotonic() - started
        state = transition(state, FallbackEvent.FAIL if failure is not None else FallbackEvent.OK)

        if state == FallbackState.RETURN_RESULT:
            self.detector.record_success(name, elapsed)
            if self.cache_enabled and result is not None:
                self.cache.set(key, result)
            self._finish(operation_id, name, state, elapsed, context)
            return FallbackResult(
                success=True,
                operation_id=operation_id,
                response_time=elapsed,
                result=result,
            )

        # DETECT_FAILURE
        self._increment("total_failures")
        metrics = dict(self._metrics_provider() if self._metrics_provider else {})
        metrics.setdefault("response_time", elapsed)
        record = self.detector.classify(
            name,
            OperationOutcome(result=result, error=error, response_time=elapsed),
            metrics,
        )
        state = transition(state, FallbackEvent.RECORD if record is not None else FallbackEvent.NULL)

        if state == FallbackState.THROW_ORIGINAL:
            self._finish(operation_id, name, state, time.monotonic() - started, context)
            raise failure

        # RECOVER
        # Strategy calls inherit the caller's options; strategies may still widen the timeout
        recovery_context = with_options(context, **{**options, "timeout": timeout})
        recovery = await self.router.recover(record, operation, recovery_context)
        state = transition(state, FallbackEvent.OK if recovery.success else FallbackEvent.FAIL)

        if state == FallbackState.RETURN_RECOVERED:
            self._increment("successful_recoveries")
            if self.cache_enabled and recovery.result is not None:
                self.cache.set(key, recovery.result)
            elapsed = time.monotonic() - started
            self._finish(operation_id, name, state, elapsed, context, record, recovery.attempts)
            return FallbackResult(
                success=True,
                operation_id=operation_id,
                response_time=elapsed,
                result=recovery.result,
                recovered=True,
                recovery_strategy=recovery.strategy_used,
            )

        # STALE_CACHE_CHECK
        self._increment("failed_recoveries")
        state = transition(state, FallbackEvent.HIT if stale_value is not None else FallbackEvent.MISS)
        elapsed = time.monotonic() - started

        if state == FallbackState.RETURN_STALE:
            self._increment("stale_hits")
            logger.warning(
                "Serving stale cache for %s (%s), age %.1fs: %s",
                name, operation_id, stale_age or 0.0, failure,
            )
            self._finish(operation_id, name, state, elapsed, context, record, recovery.attempts)
            return FallbackResult(
                success=True,
                operation_id=operation_id,
                response_time=elapsed,
                result=stale_value,
                from_stale_cache=True,
                cache_age=stale_age,
                original_error=str(failure),
            )

        # THROW_WRAPPED
        logger.error("Operation %s (%s) failed after recovery: %s", name, operation_id, failure)
        self._finish(operation_id, name, state, elapsed, context, record, recovery.attempts)
        raise FallbackExhaustedError(failure, operation_id=operation_id) from failure

    # ========== Bookkeeping ==========

    def _increment(self, counter: str) -> None:
        with self._lock:
            self.stats[counter] += 1

    def _finish(
        self,
        operation_id: str,
        operation_name: str,
        state: FallbackState,
        response_time: float,
        context: Dict[str, Any],
        failure: Optional[FailureRecord] = None,
        attempts: Optional[List[RecoveryAttempt]] = None,
    ) -> None:
        entry = OperationHistoryEntry(
            operation_id=operation_id,
            operation_name=operation_name,
            terminal_state=state.value,
            success=is_success(state),
            response_time=response_time,
            context={"query": context.get("query"), "params": context.get("params")},
            failure=failure,
            recovery_attempts=list(attempts or []),
            timestamp=self._clock(),
        )
        with self._lock:
            self.history.append(entry)
            self.stats["total_operations"] += 1

    # ========== Status & reporting ==========

    def success_rate(self) -> float:
        with self._lock:
            entries = list(self.history)
        if not entries:
            return 1.0
        return sum(1 for e in entries if e.success) / len(entries)

    def recent_failures(self, window: float = RECENT_WINDOW) -> int:
        cutoff = self._clock() - window
        with self._lock:
            return sum(1 for e in self.history if not e.success and e.timestamp > cutoff)

    def system_status(self) -> Dict[str, Any]:
        with self._lock:
            recovery = dict(self.stats)
            total = len(self.history)
        return {
            "timestamp": self._clock(),
            "health": self.detector.health_status().to_dict(),
            "cache": self.cache.stats(),
            "recovery": recovery,
            "operations": {
                "total": total,
                "recent_failures": self.recent_failures(),
                "success_rate": round(self.success_rate(), 4),
            },
        }

    def system_report(self) -> Dict[str, Any]:
        status = self.system_status()
        return {
            "timestamp": status["timestamp"],
            "system_status": status,
            "recent_failure_records": [r.to_dict() for r in list(self.detector.records)[-10:]],
            "recommendations": self._recommendations(status),
            "configuration": {
                "cache_enabled": self.cache_enabled,
                "default_timeout": self.default_timeout,
                "max_recovery_attempts": self.router.max_recovery_attempts,
                "max_retries": self.router.max_retries,
                "cache_ttl": self.cache.ttl,
                "cache_max_size": self.cache.max_size,
            },
        }

    @staticmethod
    def _recommendations(status: Dict[str, Any]) -> List[str]:
        recommendations = []
        if status["operations"]["success_rate"] < LOW_SUCCESS_RATE:
            recommendations.append("Low success rate - investigate failure causes")
        if status["cache"]["hit_rate"] < LOW_CACHE_HIT_RATE:
            recommendations.append("Low cache hit rate - consider adjusting TTL or eviction strategy")
        if status["health"]["score"] < LOW_HEALTH_SCORE:
            recommendations.append("System health degraded - check resources and configuration")
        if status["operations"]["recent_failures"] > MANY_RECENT_FAILURES:
            recommendations.append("Many recent failures - investigate systemic problems")
        return recommendations

    async def shutdown(self) -> Dict[str, Any]:
        """关闭 / Produce the final report, then clear the cache."""
        report = self.system_report()
        self.cache.clear()
        logger.info(
            "Fallback orchestrator shut down: %d operations, success rate %.2f",
            report["system_status"]["operations"]["total"],
            report["system_status"]["operations"]["success_rate"],
        )
        return report
