# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  应用级异常层次 - 定义上下文加载与回退执行的异常继承树
  Application-level Exception Hierarchy - Context loading and fallback execution errors.
"""

from typing import Optional


class AgentOSError(Exception):
    """
    Agent OS 业务错误的基类

    Base exception for all Agent OS errors.

    所有应用级异常都应继承此类，以便于统一错误处理。
    All application-level exceptions inherit from this class so callers can
    catch the whole family in one place.
    """


class ContextLoadError(AgentOSError):
    """
    上下文源加载失败异常

    Raised when a context source document cannot be read.

    抛出时机：
    - 文件不存在 / File missing
    - 路径逃逸源目录 / Path escapes the sources root
    - 文件读取失败 / File read failed
    """

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to load {path}: {reason}")
        self.path = path
        self.reason = reason


class OperationTimeoutError(AgentOSError):
    """
    操作超时异常

    Raised by the timeout guard when an operation does not settle in time.
    """

    def __init__(self, timeout: float):
        super().__init__("Operation timeout")
        self.timeout = timeout


class InvalidResultError(AgentOSError):
    """
    操作结果无效异常

    Raised when an operation returns a result carrying an ``error`` field or
    a result whose shape does not match its declared operation kind.

    抛出时机：
    - 结果包含 error 字段 / Result exposes an error field
    - 结果结构不符合操作类型 / Result shape mismatch for the operation kind
    """

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result


class FallbackExhaustedError(AgentOSError):
    """
    回退链耗尽异常

    Raised when execution, recovery and stale-cache fallback all failed.
    The message keeps the original error text so the root cause stays visible.
    """

    def __init__(self, original_error: BaseException, operation_id: Optional[str] = None):
        super().__init__(f"Operation failed after recovery attempts: {original_error}")
        self.original_error = original_error
        self.operation_id = operation_id


class ValidationError(AgentOSError):
    """
    数据验证失败异常

    Raised when request validation fails beyond Pydantic checks.

    抛出时机：
    - 预算参数非法 / Invalid budget parameters
    - 未知的配置取值 / Unknown configuration value
    """
