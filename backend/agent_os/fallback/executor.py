"""
Operation Executor / 带超时保护的操作执行
Runs one operation (sync or awaitable) under a wall-clock timeout guard
以超时保护执行单次操作（同步或可等待）
"""

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from agent_os.exceptions import InvalidResultError, OperationTimeoutError
from agent_os.fallback.validators import has_error_field, is_valid_result

Operation = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]

DEFAULT_TIMEOUT = 5.0


def operation_name_of(operation: Operation, fallback: str = "operation") -> str:
    return getattr(operation, "__name__", None) or fallback


async def execute_operation(
    operation: Operation,
    context: Dict[str, Any],
    timeout: Optional[float] = None,
) -> Any:
    """
    执行操作 / Call ``operation(context)`` and settle within ``timeout`` seconds.

    Awaitables race the timer through ``asyncio.wait_for`` and are cancelled
    when it fires. Synchronous calls cannot be interrupted, so they are timed
    and rejected afterwards when they overran.

    Raises:
        OperationTimeoutError: 超时 / The guard fired.
    """
    timeout = DEFAULT_TIMEOUT if timeout is None else float(timeout)
    started = time.monotonic()
    value = operation(context)

    if inspect.isawaitable(value):
        try:
            return await asyncio.wait_for(value, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise OperationTimeoutError(timeout) from exc

    if time.monotonic() - started > timeout:
        raise OperationTimeoutError(timeout)
    return value


def ensure_valid(operation_name: str, result: Any) -> Any:
    """
    Reject error-bearing or misshapen results so retries treat them as failures.

    Raises:
        InvalidResultError: 结果无效 / The result reports an error or has the wrong shape.
    """
    if result is not None and has_error_field(result):
        error = result.get("error") if isinstance(result, dict) else getattr(result, "error", None)
        raise InvalidResultError(str(error), result=result)
    if result is not None and not is_valid_result(operation_name, result):
        raise InvalidResultError(f"Invalid result for {operation_name}", result=result)
    return result
