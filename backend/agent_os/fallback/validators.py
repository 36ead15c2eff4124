"""
Result Validators / 操作结果校验
Per-operation-kind result shape checks, resolved through a lookup table
按操作类型的结果结构校验（查表分派）
"""

from enum import Enum
from typing import Any, Callable, Dict, Optional


class OperationKind(str, Enum):
    """已知操作类型 / Operation kinds with a declared result shape"""
    COMPONENT_SEARCH = "component_search"
    DOCUMENTATION_FETCH = "documentation_fetch"
    CODE_GENERATION = "code_generation"
    CONTEXT_COMPRESSION = "context_compression"
    CONTEXT_LOAD = "context_load"
    GENERIC = "generic"

    @classmethod
    def parse(cls, value: Any) -> "OperationKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return cls.GENERIC


def _field(result: Any, name: str) -> Any:
    if isinstance(result, dict):
        return result.get(name)
    return getattr(result, name, None)


def has_error_field(result: Any) -> bool:
    """A result that reports its own failure through a truthy ``error`` field."""
    return bool(_field(result, "error"))


def _is_list_field(name: str) -> Callable[[Any], bool]:
    return lambda result: isinstance(_field(result, name), list)


def _is_str_field(name: str) -> Callable[[Any], bool]:
    return lambda result: isinstance(_field(result, name), str)


def _is_bundle(result: Any) -> bool:
    return isinstance(_field(result, "fragments"), list)


VALIDATORS: Dict[OperationKind, Callable[[Any], bool]] = {
    OperationKind.COMPONENT_SEARCH: _is_list_field("components"),
    OperationKind.DOCUMENTATION_FETCH: _is_str_field("content"),
    OperationKind.CODE_GENERATION: _is_str_field("code"),
    OperationKind.CONTEXT_COMPRESSION: _is_list_field("contexts"),
    OperationKind.CONTEXT_LOAD: _is_bundle,
    OperationKind.GENERIC: lambda result: True,
}


def is_valid_result(kind: Optional[Any], result: Any) -> bool:
    """
    校验结果结构 / Check ``result`` against the validator for ``kind``.

    Unknown kinds are treated as generic and always pass.
    """
    validator = VALIDATORS[OperationKind.parse(kind)]
    return validator(result)
