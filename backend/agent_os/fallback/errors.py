# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  错误分类 - 按异常类型与消息模式推断严重程度、失败类型与可恢复性
  Error Classification - Infers severity, failure kind and recoverability from exception types and message patterns.
"""

import asyncio
from typing import Optional, Tuple

from agent_os.exceptions import OperationTimeoutError
from agent_os.fallback.models import FailureKind, Severity

# Error message patterns for severity classification
# 用于严重程度分类的错误消息模式 (checked in order, first hit wins)
SEVERITY_PATTERNS = (
    (Severity.CRITICAL, ("ECONNREFUSED", "ENOTFOUND", "TIMEOUT")),
    (Severity.HIGH, ("Permission denied", "Access denied", "Authentication failed")),
    (Severity.MEDIUM, ("Not found", "Invalid", "Malformed")),
)

# Errors with a dedicated sub-strategy stay in the ``error`` kind
# 有专门恢复策略的错误保留为 error 类型
CONNECTION_REFUSED_MARKER = "ECONNREFUSED"
DNS_FAILURE_MARKER = "ENOTFOUND"
AUTH_FAILURE_MARKER = "Authentication"

# Generic network failures without a dedicated sub-strategy
# 没有专门子策略的一般网络错误
NETWORK_PATTERNS = (
    "network",
    "socket",
    "unreachable",
    "connection reset",
    "econnreset",
    "broken pipe",
    "connection aborted",
)

# Resource pressure
# 资源耗尽
RESOURCE_PATTERNS = (
    "out of memory",
    "memory limit",
    "too many open files",
    "resource exhausted",
    "resource temporarily unavailable",
)

# Non-recoverable: no strategy can turn these into a success
# 不可恢复：没有策略能使其成功
NON_RECOVERABLE_PATTERNS = (
    "permission denied",
    "access denied",
    "forbidden",
)


def classify_severity(error: BaseException) -> Severity:
    """
    按消息模式判断严重程度

    Classify an error's intrinsic severity from its message.

    Example:
        >>> classify_severity(ConnectionError("connect ECONNREFUSED 127.0.0.1:443"))
        <Severity.CRITICAL: 'critical'>
        >>> classify_severity(ValueError("Malformed payload"))
        <Severity.MEDIUM: 'medium'>
    """
    message = str(error)
    for severity, patterns in SEVERITY_PATTERNS:
        if any(pattern in message for pattern in patterns):
            return severity
    return Severity.LOW


def is_timeout_error(error: Optional[BaseException]) -> bool:
    return isinstance(error, (OperationTimeoutError, asyncio.TimeoutError, TimeoutError))


def is_resource_error(error: BaseException) -> bool:
    if isinstance(error, MemoryError):
        return True
    message = str(error).lower()
    return any(pattern in message for pattern in RESOURCE_PATTERNS)


def is_network_error(error: BaseException) -> bool:
    """
    一般网络错误 / Network failures that have no dedicated ``error`` sub-strategy.
    """
    message = str(error)
    if CONNECTION_REFUSED_MARKER in message or DNS_FAILURE_MARKER in message:
        return False
    if isinstance(error, ConnectionError) and not isinstance(error, ConnectionRefusedError):
        return True
    lowered = message.lower()
    error_type = type(error).__name__.lower()
    if any(t in error_type for t in ("network", "socket")):
        return True
    return any(pattern in lowered for pattern in NETWORK_PATTERNS)


def error_kind(error: BaseException) -> FailureKind:
    """
    细分显式错误 / Refine an explicit error into its failure kind.

    Resource pressure and generic network failures get their own kinds so
    they reach the matching recovery strategy; everything else is ``error``.
    """
    if is_resource_error(error):
        return FailureKind.RESOURCE_EXHAUSTION
    if is_network_error(error):
        return FailureKind.NETWORK_FAILURE
    return FailureKind.ERROR


def is_recoverable(error: Optional[BaseException]) -> Tuple[bool, str]:
    """
    判断是否可恢复 / Whether any recovery strategy could help.

    Returns:
        元组 (recoverable, reason)
    """
    if error is None:
        return True, "no_error"
    lowered = str(error).lower()
    if isinstance(error, PermissionError):
        return False, "permission_error"
    for pattern in NON_RECOVERABLE_PATTERNS:
        if pattern in lowered:
            return False, f"non_recoverable:{pattern}"
    return True, "recoverable"


def compute_backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    multiplier: float = 2.0,
    max_delay: float = 10.0,
) -> float:
    """
    计算指数退避延迟

    Delay before retry ``attempt`` (1-indexed): ``min(base * multiplier^(attempt-1), max_delay)``.
    No jitter, so schedules stay reproducible.

    Example:
        >>> compute_backoff_delay(1), compute_backoff_delay(2), compute_backoff_delay(5)
        (1.0, 2.0, 10.0)
    """
    if attempt < 1:
        return 0.0
    return min(base_delay * (multiplier ** (attempt - 1)), max_delay)
