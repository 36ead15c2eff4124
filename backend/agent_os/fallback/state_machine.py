# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  回退状态机 - 单次回退调用的纯状态转移函数，不含任何 I/O
  Fallback State Machine - Pure transition function for one orchestrated call, free of I/O.

状态流 / State flow:
  START -> CACHE_CHECK -> {HIT: RETURN_CACHED | MISS: EXECUTE}
  EXECUTE -> {OK: RETURN_RESULT | FAIL: DETECT_FAILURE}
  DETECT_FAILURE -> {NULL: THROW_ORIGINAL | RECORD: RECOVER}
  RECOVER -> {OK: RETURN_RECOVERED | FAIL: STALE_CACHE_CHECK}
  STALE_CACHE_CHECK -> {HIT: RETURN_STALE | MISS: THROW_WRAPPED}
"""

from enum import Enum
from typing import Dict, Tuple


class FallbackState(str, Enum):
    """
    回退调用状态 / States of one orchestrated call

    终态 / Terminal states: RETURN_CACHED, RETURN_RESULT, THROW_ORIGINAL,
    RETURN_RECOVERED, RETURN_STALE, THROW_WRAPPED
    """

    START = "start"
    CACHE_CHECK = "cache_check"
    EXECUTE = "execute"
    DETECT_FAILURE = "detect_failure"
    RECOVER = "recover"
    STALE_CACHE_CHECK = "stale_cache_check"
    RETURN_CACHED = "return_cached"
    RETURN_RESULT = "return_result"
    THROW_ORIGINAL = "throw_original"
    RETURN_RECOVERED = "return_recovered"
    RETURN_STALE = "return_stale"
    THROW_WRAPPED = "throw_wrapped"


class FallbackEvent(str, Enum):
    """状态转移事件 / Events that drive the state machine"""

    BEGIN = "begin"
    HIT = "hit"
    MISS = "miss"
    OK = "ok"
    FAIL = "fail"
    NULL = "null"
    RECORD = "record"


TERMINAL_STATES = frozenset({
    FallbackState.RETURN_CACHED,
    FallbackState.RETURN_RESULT,
    FallbackState.THROW_ORIGINAL,
    FallbackState.RETURN_RECOVERED,
    FallbackState.RETURN_STALE,
    FallbackState.THROW_WRAPPED,
})

SUCCESS_STATES = frozenset({
    FallbackState.RETURN_CACHED,
    FallbackState.RETURN_RESULT,
    FallbackState.RETURN_RECOVERED,
    FallbackState.RETURN_STALE,
})

TRANSITIONS: Dict[Tuple[FallbackState, FallbackEvent], FallbackState] = {
    (FallbackState.START, FallbackEvent.BEGIN): FallbackState.CACHE_CHECK,
    (FallbackState.CACHE_CHECK, FallbackEvent.HIT): FallbackState.RETURN_CACHED,
    (FallbackState.CACHE_CHECK, FallbackEvent.MISS): FallbackState.EXECUTE,
    (FallbackState.EXECUTE, FallbackEvent.OK): FallbackState.RETURN_RESULT,
    (FallbackState.EXECUTE, FallbackEvent.FAIL): FallbackState.DETECT_FAILURE,
    (FallbackState.DETECT_FAILURE, FallbackEvent.NULL): FallbackState.THROW_ORIGINAL,
    (FallbackState.DETECT_FAILURE, FallbackEvent.RECORD): FallbackState.RECOVER,
    (FallbackState.RECOVER, FallbackEvent.OK): FallbackState.RETURN_RECOVERED,
    (FallbackState.RECOVER, FallbackEvent.FAIL): FallbackState.STALE_CACHE_CHECK,
    (FallbackState.STALE_CACHE_CHECK, FallbackEvent.HIT): FallbackState.RETURN_STALE,
    (FallbackState.STALE_CACHE_CHECK, FallbackEvent.MISS): FallbackState.THROW_WRAPPED,
}


def transition(state: FallbackState, event: FallbackEvent) -> FallbackState:
    """
    状态转移 / Next state for ``event`` in ``state``.

    Raises:
        ValueError: 非法转移 / The event is not accepted in this state.
    """
    try:
        return TRANSITIONS[(FallbackState(state), FallbackEvent(event))]
    except KeyError:
        raise ValueError(f"Invalid transition: {state} --{event}-->") from None


def is_terminal(state: FallbackState) -> bool:
    return state in TERMINAL_STATES


def is_success(state: FallbackState) -> bool:
    return state in SUCCESS_STATES
