"""
Token Estimator / Token 估算器
Deterministic size-to-token estimate shared by every budget decision
所有预算判断共用的确定性 token 估算
"""

import json
import math
from typing import Any

CHARS_PER_TOKEN = 4


def estimate_length(length: int) -> int:
    """Tokens for ``length`` serialized characters: ``ceil(length / 4)``."""
    if length <= 0:
        return 0
    return math.ceil(length / CHARS_PER_TOKEN)


def serialized_length(payload: Any) -> int:
    """
    序列化长度 / Serialized length of a payload.

    Strings are measured as-is. Anything else goes through ``json.dumps`` with
    its default separators; values JSON cannot encode fall back to ``str()``.
    """
    if payload is None:
        return 0
    if isinstance(payload, str):
        return len(payload)
    return len(json.dumps(payload, ensure_ascii=False, default=str))


def estimate_tokens(payload: Any) -> int:
    """
    估算 token 数 / Estimate tokens for any payload.

    Example:
        >>> estimate_tokens({"a": "x" * 400})
        103
    """
    return estimate_length(serialized_length(payload))
