# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  恢复策略路由 - 按失败类型分派恢复策略，策略可改写上下文后重试操作
  Recovery Strategy Router - Dispatches a classified failure to a strategy that rewrites the context and re-invokes the operation.

策略目录 / Strategy catalogue:
  - timeout: 放宽超时后退避重试 / widen the timeout, retry with backoff
  - error: ECONNREFUSED 换端点, ENOTFOUND 换 DNS, 认证失败刷新凭证, 其余退避重试
  - invalid_result: 简化请求后重试 / simplified request
  - resource_exhaustion: 冷却后降低并发与批量 / cool down, shrink concurrency and batch size
  - network_failure: 轮换连接配置 / rotate connection profiles
  - 未知类型: 通用退避重试 / generic bounded retry
"""

import asyncio
import inspect
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from agent_os.config import config
from agent_os.fallback.errors import (
    AUTH_FAILURE_MARKER,
    CONNECTION_REFUSED_MARKER,
    DNS_FAILURE_MARKER,
    compute_backoff_delay,
)
from agent_os.fallback.executor import DEFAULT_TIMEOUT, Operation, ensure_valid, execute_operation
from agent_os.fallback.models import FailureKind, FailureRecord, RecoveryAttempt, RecoveryOutcome
from agent_os.utils.logger import get_logger

logger = get_logger(__name__)

ALTERNATE_ENDPOINTS = (
    "https://api.nuxtjs.org",
    "https://ui.nuxt.com/api",
    "https://content.nuxtjs.org/api",
)

DNS_ALTERNATIVES = (
    {"servers": ["8.8.8.8", "8.8.4.4"]},
    {"servers": ["1.1.1.1", "1.0.0.1"]},
    {"servers": ["208.67.222.222", "208.67.220.220"]},
)

NETWORK_PROFILES = (
    {"timeout": 10.0, "retries": 1},
    {"timeout": 15.0, "retries": 0},
    {"use_proxy": True, "timeout": 20.0},
)

Executor = Callable[[Operation, Dict[str, Any], Optional[float]], Awaitable[Any]]


@dataclass
class StrategyResult:
    """策略执行结果 / What a strategy returns when it turned the failure into a success."""
    result: Any
    retries: int = 1
    context: Dict[str, Any] = field(default_factory=dict)


StrategyHandler = Callable[[FailureRecord, Operation, Dict[str, Any]], Awaitable[Any]]


def with_options(context: Dict[str, Any], **options: Any) -> Dict[str, Any]:
    """Copy of ``context`` with ``options`` merged into ``context["options"]``."""
    updated = dict(context)
    merged = dict(updated.get("options") or {})
    merged.update(options)
    updated["options"] = merged
    return updated


class RecoveryStrategyRouter:
    """
    恢复策略路由器

    Attributes:
        max_retries (int): 单个策略内的最大调用次数 / Operation calls allowed inside one strategy.
        max_recovery_attempts (int): 最多调用策略的次数 / Strategy invocations per recovery.
    """

    def __init__(
        self,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        backoff_multiplier: Optional[float] = None,
        max_recovery_attempts: Optional[int] = None,
        default_timeout: Optional[float] = None,
        executor: Optional[Executor] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        connection_cooldown: float = 3.0,
        resource_cooldown: float = 2.0,
    ):
        retry_cfg = config.get("retry", {})
        fallback_cfg = config.get("fallback", {})
        self.max_retries = int(max_retries if max_retries is not None else retry_cfg.get("max_retries", 3))
        self.base_delay = float(base_delay if base_delay is not None else retry_cfg.get("base_delay", 1.0))
        self.max_delay = float(max_delay if max_delay is not None else retry_cfg.get("max_delay", 10.0))
        self.backoff_multiplier = float(
            backoff_multiplier if backoff_multiplier is not None else retry_cfg.get("backoff_multiplier", 2.0)
        )
        self.max_recovery_attempts = int(
            max_recovery_attempts if max_recovery_attempts is not None
            else fallback_cfg.get("max_recovery_attempts", 3)
        )
        self.default_timeout = float(
            default_timeout if default_timeout is not None else fallback_cfg.get("default_timeout", DEFAULT_TIMEOUT)
        )
        self.connection_cooldown = connection_cooldown
        self.resource_cooldown = resource_cooldown
        self._executor = executor or execute_operation
        self._sleep = sleep

        self._strategies: Dict[FailureKind, StrategyHandler] = {
            FailureKind.TIMEOUT: self.handle_timeout,
            FailureKind.ERROR: self.handle_error,
            FailureKind.INVALID_RESULT: self.handle_invalid_result,
            FailureKind.RESOURCE_EXHAUSTION: self.handle_resource_exhaustion,
            FailureKind.NETWORK_FAILURE: self.handle_network_failure,
        }

    def register_strategy(self, kind: FailureKind, handler: StrategyHandler) -> None:
        """
        注册自定义策略 / Replace the strategy for ``kind``.

        ``handler(record, operation, context)`` is awaited. It may return a
        ``StrategyResult`` or the recovered value itself, and signals failure
        by raising.
        """
        self._strategies[FailureKind(kind)] = handler

    def strategy_for(self, kind: FailureKind) -> str:
        return kind.value if kind in self._strategies else "default_retry"

    # ========== Dispatch ==========

    async def recover(
        self,
        record: FailureRecord,
        operation: Operation,
        context: Dict[str, Any],
    ) -> RecoveryOutcome:
        """
        执行恢复 / Run the strategy for ``record.kind`` up to ``max_recovery_attempts`` times.

        Non-recoverable failures return immediately without touching the
        operation.
        """
        if not record.recoverable:
            logger.info("Skipping recovery for %s: failure is not recoverable", record.operation_name)
            return RecoveryOutcome(success=False, strategy_used="none", error=record.error)

        strategy_name = self.strategy_for(record.kind)
        handler = self._strategies.get(record.kind, self.default_recovery)
        attempts: List[RecoveryAttempt] = []
        last_error = record.error

        for number in range(1, self.max_recovery_attempts + 1):
            try:
                value = await handler(record, operation, dict(context))
            except Exception as exc:
                last_error = exc
                attempts.append(RecoveryAttempt(
                    failure_kind=record.kind,
                    strategy_used=strategy_name,
                    attempt_number=number,
                    succeeded=False,
                    error=str(exc),
                ))
                logger.warning(
                    "Recovery attempt %d/%d (%s) for %s failed: %s",
                    number, self.max_recovery_attempts, strategy_name, record.operation_name, exc,
                )
                continue

            outcome = value if isinstance(value, StrategyResult) else StrategyResult(result=value, context=context)
            attempts.append(RecoveryAttempt(
                failure_kind=record.kind,
                strategy_used=strategy_name,
                attempt_number=number,
                succeeded=True,
                retries=outcome.retries,
                new_context=outcome.context,
            ))
            logger.info(
                "Recovered %s with %s on attempt %d (%d calls)",
                record.operation_name, strategy_name, number, outcome.retries,
            )
            return RecoveryOutcome(
                success=True,
                strategy_used=strategy_name,
                attempts=attempts,
                result=outcome.result,
            )

        return RecoveryOutcome(success=False, strategy_used=strategy_name, attempts=attempts, error=last_error)

    # ========== Invocation helpers ==========

    async def _call(self, operation: Operation, context: Dict[str, Any], operation_name: str) -> Any:
        options = context.get("options") or {}
        timeout = options.get("timeout") or self.default_timeout
        result = self._executor(operation, context, timeout)
        if inspect.isawaitable(result):
            result = await result
        return ensure_valid(operation_name, result)

    async def retry_with_backoff(
        self,
        operation: Operation,
        context: Dict[str, Any],
        operation_name: str = "generic",
    ) -> StrategyResult:
        """
        指数退避重试 / Up to ``max_retries`` calls, sleeping before every call after the first.

        Raises:
            The last error once every call failed.
        """
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_retries + 1):
            if attempt > 1:
                delay = compute_backoff_delay(
                    attempt, self.base_delay, self.backoff_multiplier, self.max_delay,
                )
                await self._sleep(delay)
            try:
                result = await self._call(operation, context, operation_name)
                return StrategyResult(result=result, retries=attempt, context=context)
            except Exception as exc:
                last_error = exc
                logger.debug("Retry %d/%d for %s failed: %s", attempt, self.max_retries, operation_name, exc)

        if last_error is not None:
            raise last_error
        raise RuntimeError("No retries configured")

    async def _try_alternatives(
        self,
        operation: Operation,
        contexts: List[Dict[str, Any]],
        operation_name: str,
        label: str,
    ) -> StrategyResult:
        last_error: Optional[BaseException] = None
        for index, alternative in enumerate(contexts, start=1):
            try:
                result = await self._call(operation, alternative, operation_name)
                return StrategyResult(result=result, retries=index, context=alternative)
            except Exception as exc:
                last_error = exc
                logger.debug("%s alternative %d failed: %s", label, index, exc)

        if last_error is not None:
            raise last_error
        raise RuntimeError(f"No {label} alternatives available")

    # ========== Strategies ==========

    async def handle_timeout(self, record: FailureRecord, operation: Operation, context: Dict[str, Any]) -> StrategyResult:
        threshold = float(record.details.get("threshold") or self.default_timeout)
        widened = with_options(context, timeout=min(threshold * 2, self.max_delay))
        return await self.retry_with_backoff(operation, widened, record.operation_name)

    async def handle_error(self, record: FailureRecord, operation: Operation, context: Dict[str, Any]) -> StrategyResult:
        message = str(record.details.get("message") or record.error or "")
        if CONNECTION_REFUSED_MARKER in message:
            return await self.handle_connection_refused(record, operation, context)
        if DNS_FAILURE_MARKER in message:
            return await self.handle_dns_failure(record, operation, context)
        if AUTH_FAILURE_MARKER in message:
            return await self.handle_auth_failure(record, operation, context)
        return await self.retry_with_backoff(operation, context, record.operation_name)

    async def handle_invalid_result(self, record: FailureRecord, operation: Operation, context: Dict[str, Any]) -> StrategyResult:
        return await self.retry_with_backoff(operation, self.simplified_context(context), record.operation_name)

    async def handle_resource_exhaustion(self, record: FailureRecord, operation: Operation, context: Dict[str, Any]) -> StrategyResult:
        await self._sleep(self.resource_cooldown)
        return await self.retry_with_backoff(operation, self.reduced_context(context), record.operation_name)

    async def handle_network_failure(self, record: FailureRecord, operation: Operation, context: Dict[str, Any]) -> StrategyResult:
        alternatives = [with_options(context, **profile) for profile in NETWORK_PROFILES]
        return await self._try_alternatives(operation, alternatives, record.operation_name, "network")

    async def handle_connection_refused(self, record: FailureRecord, operation: Operation, context: Dict[str, Any]) -> StrategyResult:
        await self._sleep(self.connection_cooldown)
        alternatives = []
        for endpoint in ALTERNATE_ENDPOINTS:
            if endpoint == context.get("endpoint"):
                continue
            alternative = dict(context)
            alternative["endpoint"] = endpoint
            alternatives.append(alternative)
        return await self._try_alternatives(operation, alternatives, record.operation_name, "endpoint")

    async def handle_dns_failure(self, record: FailureRecord, operation: Operation, context: Dict[str, Any]) -> StrategyResult:
        alternatives = []
        for dns in DNS_ALTERNATIVES:
            alternative = dict(context)
            alternative["dns"] = {"servers": list(dns["servers"])}
            alternatives.append(alternative)
        return await self._try_alternatives(operation, alternatives, record.operation_name, "dns")

    async def handle_auth_failure(self, record: FailureRecord, operation: Operation, context: Dict[str, Any]) -> StrategyResult:
        refreshed = self.refresh_authentication(context)
        result = await self._call(operation, refreshed, record.operation_name)
        return StrategyResult(result=result, retries=1, context=refreshed)

    async def default_recovery(self, record: FailureRecord, operation: Operation, context: Dict[str, Any]) -> StrategyResult:
        return await self.retry_with_backoff(operation, context, record.operation_name)

    # ========== Context rewrites ==========

    @staticmethod
    def simplified_context(context: Dict[str, Any]) -> Dict[str, Any]:
        options = context.get("options") or {}
        return with_options(
            context,
            simplified=True,
            max_results=int(options.get("max_results", 10)) // 2,
            timeout=float(options.get("timeout", DEFAULT_TIMEOUT)) * 1.5,
        )

    @staticmethod
    def reduced_context(context: Dict[str, Any]) -> Dict[str, Any]:
        options = context.get("options") or {}
        return with_options(
            context,
            max_concurrency=1,
            batch_size=max(1, int(options.get("batch_size", 10)) // 2),
            cache_enabled=False,
        )

    @staticmethod
    def refresh_authentication(context: Dict[str, Any]) -> Dict[str, Any]:
        # Token refresh is simulated; a real provider hook replaces this.
        refreshed = dict(context)
        auth = dict(refreshed.get("auth") or {})
        auth.update(token=f"refreshed_token_{int(time.time() * 1000)}", refreshed=True)
        refreshed["auth"] = auth
        return refreshed
