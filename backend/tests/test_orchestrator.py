"""Tests for the fallback state machine and orchestrator."""
import asyncio

import pytest

from agent_os.exceptions import FallbackExhaustedError
from agent_os.fallback.cache import CacheStore, make_cache_key
from agent_os.fallback.detector import FailureDetector
from agent_os.fallback.models import FailureKind
from agent_os.fallback.orchestrator import FallbackOrchestrator
from agent_os.fallback.recovery import RecoveryStrategyRouter, StrategyResult
from agent_os.fallback.state_machine import (
    FallbackEvent,
    FallbackState,
    is_terminal,
    transition,
)


# --- state machine ---

class TestStateMachine:
    def test_happy_path(self):
        state = transition(FallbackState.START, FallbackEvent.BEGIN)
        state = transition(state, FallbackEvent.MISS)
        state = transition(state, FallbackEvent.OK)
        assert state == FallbackState.RETURN_RESULT
        assert is_terminal(state)

    def test_full_failure_path(self):
        state = FallbackState.START
        for event in (FallbackEvent.BEGIN, FallbackEvent.MISS, FallbackEvent.FAIL,
                      FallbackEvent.RECORD, FallbackEvent.FAIL, FallbackEvent.MISS):
            assert not is_terminal(state)
            state = transition(state, event)
        assert state == FallbackState.THROW_WRAPPED

    def test_branches(self):
        assert transition(FallbackState.CACHE_CHECK, FallbackEvent.HIT) == FallbackState.RETURN_CACHED
        assert transition(FallbackState.DETECT_FAILURE, FallbackEvent.NULL) == FallbackState.THROW_ORIGINAL
        assert transition(FallbackState.RECOVER, FallbackEvent.OK) == FallbackState.RETURN_RECOVERED
        assert transition(FallbackState.STALE_CACHE_CHECK, FallbackEvent.HIT) == FallbackState.RETURN_STALE

    def test_invalid_transition(self):
        with pytest.raises(ValueError):
            transition(FallbackState.RETURN_RESULT, FallbackEvent.BEGIN)


# --- orchestrator ---

@pytest.fixture
def orchestrator(clock, sleeper):
    router = RecoveryStrategyRouter(
        max_retries=3,
        base_delay=1.0,
        max_delay=10.0,
        backoff_multiplier=2.0,
        max_recovery_attempts=3,
        default_timeout=5.0,
        sleep=sleeper,
    )
    return FallbackOrchestrator(
        cache=CacheStore(max_size=100, ttl=60, clock=clock),
        detector=FailureDetector(response_time=5.0, consecutive_failures=3, clock=clock),
        router=router,
        cache_enabled=True,
        default_timeout=5.0,
        clock=clock,
    )


async def always_fails(context):
    raise RuntimeError("upstream exploded")


class TestExecuteWithFallback:
    async def test_fresh_success_is_cached(self, orchestrator):
        calls = []

        async def fetch_docs(context):
            calls.append(context)
            return {"content": "docs"}

        first = await orchestrator.execute_with_fallback(fetch_docs, {"query": "q"}, operation_name="documentation_fetch")
        second = await orchestrator.execute_with_fallback(fetch_docs, {"query": "q"}, operation_name="documentation_fetch")
        assert first.success and not first.from_cache
        assert second.from_cache
        assert len(calls) == 1
        assert orchestrator.stats["cache_hits"] == 1
        assert first.operation_id.startswith("op_")

    async def test_sync_operation_supported(self, orchestrator):
        result = await orchestrator.execute_with_fallback(lambda ctx: {"value": ctx["query"]}, {"query": "x"})
        assert result.result == {"value": "x"}

    async def test_recovered_on_second_strategy_attempt(self, orchestrator):
        attempts = []

        async def flaky_strategy(record, operation, context):
            attempts.append(record)
            if len(attempts) < 2:
                raise RuntimeError("not yet")
            return StrategyResult(result={"recovered": True}, retries=1, context=context)

        orchestrator.router.register_strategy(FailureKind.ERROR, flaky_strategy)
        result = await orchestrator.execute_with_fallback(always_fails, {"query": "q"})

        assert result.success and result.recovered
        assert result.result == {"recovered": True}
        assert result.recovery_strategy == "error"
        assert len(orchestrator.detector.records) == 1
        entry = orchestrator.history[-1]
        assert entry.terminal_state == FallbackState.RETURN_RECOVERED.value
        assert [a.succeeded for a in entry.recovery_attempts].count(True) == 1
        assert orchestrator.stats["successful_recoveries"] == 1
        assert orchestrator.stats["total_failures"] == 1

    async def test_recovered_result_is_cached(self, orchestrator):
        async def strategy(record, operation, context):
            return {"fixed": True}

        orchestrator.router.register_strategy(FailureKind.ERROR, strategy)
        await orchestrator.execute_with_fallback(always_fails, {"query": "q"})
        cached = await orchestrator.execute_with_fallback(always_fails, {"query": "q"})
        assert cached.from_cache
        assert cached.result == {"fixed": True}

    async def test_stale_cache_fallback(self, orchestrator, clock):
        key = make_cache_key("always_fails", {"query": "q"})
        orchestrator.cache.set(key, {"content": "old"})
        clock.advance(120)

        result = await orchestrator.execute_with_fallback(always_fails, {"query": "q"})

        assert result.success
        assert result.from_stale_cache
        assert result.result == {"content": "old"}
        assert result.cache_age == pytest.approx(120)
        assert result.original_error == "upstream exploded"
        assert orchestrator.stats["failed_recoveries"] == 1
        assert orchestrator.stats["stale_hits"] == 1

    async def test_wrapped_error_keeps_original_message(self, orchestrator, sleeper):
        with pytest.raises(FallbackExhaustedError) as info:
            await orchestrator.execute_with_fallback(always_fails, {"query": "nothing cached"})
        assert "upstream exploded" in str(info.value)
        assert str(info.value).startswith("Operation failed after recovery attempts")
        assert isinstance(info.value.original_error, RuntimeError)
        assert orchestrator.history[-1].terminal_state == FallbackState.THROW_WRAPPED.value
        assert orchestrator.stats["failed_recoveries"] == 1
        # 3 strategy invocations x 2 backoff sleeps each
        assert sleeper.delays == [2.0, 4.0] * 3

    async def test_error_field_result_goes_through_recovery(self, orchestrator):
        calls = []

        async def search(context):
            calls.append(context)
            return {"error": "rate limited"} if len(calls) == 1 else {"components": ["UButton"]}

        result = await orchestrator.execute_with_fallback(search, {"query": "button"}, operation_name="component_search")
        assert result.recovered
        assert result.result == {"components": ["UButton"]}

    async def test_timeout_guard(self, orchestrator):
        async def slow(context):
            await asyncio.sleep(1.0)
            return {"ok": True}

        orchestrator.router = RecoveryStrategyRouter(
            max_retries=1, max_recovery_attempts=1, max_delay=0.02, default_timeout=0.01,
        )
        with pytest.raises(FallbackExhaustedError, match="Operation timeout"):
            await orchestrator.execute_with_fallback(slow, {"query": "slow"}, {"timeout": 0.01})
        assert orchestrator.detector.records[-1].kind == FailureKind.TIMEOUT

    async def test_strategies_receive_call_options(self, orchestrator):
        seen = []

        async def capture(record, operation, context):
            seen.append(context)
            return {"ok": True}

        orchestrator.router.register_strategy(FailureKind.ERROR, capture)
        await orchestrator.execute_with_fallback(
            always_fails, {"query": "q"}, {"timeout": 0.25, "max_results": 4},
        )
        assert seen[0]["options"] == {"timeout": 0.25, "max_results": 4}
        assert seen[0]["query"] == "q"

    async def test_retry_is_cut_off_at_call_timeout(self, orchestrator):
        calls = []

        async def fails_then_hangs(context):
            calls.append(context)
            if len(calls) == 1:
                raise RuntimeError("upstream exploded")
            await asyncio.sleep(0.5)
            return {"ok": True}

        orchestrator.router = RecoveryStrategyRouter(
            max_retries=1, max_recovery_attempts=1, default_timeout=5.0,
        )
        with pytest.raises(FallbackExhaustedError):
            await orchestrator.execute_with_fallback(fails_then_hangs, {"query": "q"}, {"timeout": 0.05})

        entry = orchestrator.history[-1]
        assert entry.terminal_state == FallbackState.THROW_WRAPPED.value
        assert entry.recovery_attempts[0].error == "Operation timeout"
        assert len(calls) == 2


class TestInjectedCollaborators:
    def test_empty_injected_cache_is_kept(self, clock):
        cache = CacheStore(max_size=5, ttl=60, strategy="fifo", clock=clock)
        orchestrator = FallbackOrchestrator(cache=cache, clock=clock)
        assert orchestrator.cache is cache
        assert (orchestrator.cache.ttl, orchestrator.cache.max_size, orchestrator.cache.strategy) == (60, 5, "fifo")

    async def test_expired_entry_is_not_a_fresh_hit(self, clock):
        orchestrator = FallbackOrchestrator(cache=CacheStore(ttl=60, clock=clock), clock=clock)
        key = make_cache_key("fetch", {"query": "q"})
        orchestrator.cache.set(key, {"content": "old"})
        clock.advance(120)

        async def fetch(context):
            return {"content": "new"}

        result = await orchestrator.execute_with_fallback(fetch, {"query": "q"})
        assert not result.from_cache
        assert result.result == {"content": "new"}

    async def test_unclassified_failure_rethrows_original(self, orchestrator):
        class SilentDetector(FailureDetector):
            def classify(self, operation_name, outcome, metrics=None):
                return None

        orchestrator.detector = SilentDetector()
        with pytest.raises(RuntimeError, match="upstream exploded"):
            await orchestrator.execute_with_fallback(always_fails, {"query": "q"})
        assert orchestrator.history[-1].terminal_state == FallbackState.THROW_ORIGINAL.value

    async def test_cache_disabled_skips_cache(self, orchestrator):
        orchestrator.cache_enabled = False
        calls = []

        def op(context):
            calls.append(1)
            return {"ok": True}

        await orchestrator.execute_with_fallback(op, {"query": "q"})
        await orchestrator.execute_with_fallback(op, {"query": "q"})
        assert len(calls) == 2
        assert len(orchestrator.cache) == 0


class TestReporting:
    async def test_status_and_report(self, orchestrator):
        await orchestrator.execute_with_fallback(lambda ctx: {"ok": True}, {"query": "a"})
        with pytest.raises(FallbackExhaustedError):
            await orchestrator.execute_with_fallback(always_fails, {"query": "b"})

        status = orchestrator.system_status()
        assert status["operations"]["total"] == 2
        assert status["operations"]["success_rate"] == 0.5
        assert status["operations"]["recent_failures"] == 1
        assert status["recovery"]["total_failures"] == 1

        report = orchestrator.system_report()
        assert any("success rate" in r for r in report["recommendations"])
        assert report["configuration"]["max_recovery_attempts"] == 3

    async def test_success_rate_empty(self, orchestrator):
        assert orchestrator.success_rate() == 1.0

    async def test_shutdown_clears_cache(self, orchestrator):
        await orchestrator.execute_with_fallback(lambda ctx: {"ok": True}, {"query": "a"})
        report = await orchestrator.shutdown()
        assert report["system_status"]["cache"]["size"] == 1
        assert len(orchestrator.cache) == 0
