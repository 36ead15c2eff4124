"""Tests for the recovery strategy router."""
import pytest

from agent_os.exceptions import OperationTimeoutError
from agent_os.fallback.models import FailureKind, FailureRecord, Severity
from agent_os.fallback.recovery import ALTERNATE_ENDPOINTS, RecoveryStrategyRouter, StrategyResult


def _record(kind, message="boom", operation_name="generic", recoverable=True, **details):
    details.setdefault("message", message)
    return FailureRecord(
        operation_name=operation_name,
        kind=kind,
        severity=Severity.LOW,
        details=details,
        recoverable=recoverable,
        error=RuntimeError(message),
    )


class FlakyOperation:
    """Fails ``failures`` times, then returns ``result``; keeps every context it saw."""

    def __init__(self, failures, result=None, error=None):
        self.failures = failures
        self.result = result if result is not None else {"ok": True}
        self.error = error or RuntimeError("still failing")
        self.contexts = []

    async def __call__(self, context):
        self.contexts.append(context)
        if len(self.contexts) <= self.failures:
            raise self.error
        return self.result


@pytest.fixture
def router(sleeper):
    return RecoveryStrategyRouter(
        max_retries=3,
        base_delay=1.0,
        max_delay=10.0,
        backoff_multiplier=2.0,
        max_recovery_attempts=3,
        default_timeout=5.0,
        sleep=sleeper,
    )


class TestRetryWithBackoff:
    async def test_succeeds_on_third_call(self, router, sleeper):
        operation = FlakyOperation(failures=2)
        outcome = await router.retry_with_backoff(operation, {"query": "q"})
        assert outcome.retries == 3
        assert sleeper.delays == [2.0, 4.0]

    async def test_exhaustion_raises_last_error(self, router):
        operation = FlakyOperation(failures=10, error=ValueError("last"))
        with pytest.raises(ValueError, match="last"):
            await router.retry_with_backoff(operation, {})
        assert len(operation.contexts) == 3

    async def test_error_bearing_result_counts_as_failure(self, router):
        calls = []

        async def operation(context):
            calls.append(context)
            return {"error": "bad"} if len(calls) == 1 else {"ok": True}

        outcome = await router.retry_with_backoff(operation, {})
        assert outcome.result == {"ok": True}
        assert outcome.retries == 2


class TestStrategies:
    async def test_timeout_widens_timeout(self, router):
        operation = FlakyOperation(failures=0)
        outcome = await router.recover(_record(FailureKind.TIMEOUT, threshold=3.0), operation, {"query": "q"})
        assert outcome.success
        assert outcome.strategy_used == "timeout"
        assert operation.contexts[0]["options"]["timeout"] == 6.0

    async def test_timeout_capped_by_max_delay(self, router):
        operation = FlakyOperation(failures=0)
        await router.recover(_record(FailureKind.TIMEOUT, threshold=30.0), operation, {})
        assert operation.contexts[0]["options"]["timeout"] == 10.0

    async def test_connection_refused_tries_alternate_endpoints(self, router, sleeper):
        operation = FlakyOperation(failures=1)
        record = _record(FailureKind.ERROR, "connect ECONNREFUSED")
        outcome = await router.recover(record, operation, {"endpoint": ALTERNATE_ENDPOINTS[0]})
        assert outcome.success
        endpoints = [c["endpoint"] for c in operation.contexts]
        assert endpoints == list(ALTERNATE_ENDPOINTS[1:])
        assert sleeper.delays == [3.0]

    async def test_dns_failure_rotates_servers(self, router):
        operation = FlakyOperation(failures=2)
        outcome = await router.recover(_record(FailureKind.ERROR, "getaddrinfo ENOTFOUND host"), operation, {})
        assert outcome.success
        assert operation.contexts[-1]["dns"]["servers"] == ["208.67.222.222", "208.67.220.220"]
        assert outcome.attempts[0].retries == 3

    async def test_auth_failure_refreshes_token(self, router):
        operation = FlakyOperation(failures=0)
        outcome = await router.recover(_record(FailureKind.ERROR, "Authentication failed"), operation, {"auth": {"user": "u"}})
        assert outcome.success
        auth = operation.contexts[0]["auth"]
        assert auth["refreshed"] is True
        assert auth["token"].startswith("refreshed_token_")
        assert auth["user"] == "u"

    async def test_invalid_result_simplifies_request(self, router):
        operation = FlakyOperation(failures=0)
        await router.recover(_record(FailureKind.INVALID_RESULT), operation, {"options": {"max_results": 10, "timeout": 4.0}})
        options = operation.contexts[0]["options"]
        assert options["simplified"] is True
        assert options["max_results"] == 5
        assert options["timeout"] == 6.0

    async def test_resource_exhaustion_reduces_usage(self, router, sleeper):
        operation = FlakyOperation(failures=0)
        await router.recover(_record(FailureKind.RESOURCE_EXHAUSTION), operation, {"options": {"batch_size": 1}})
        options = operation.contexts[0]["options"]
        assert options["max_concurrency"] == 1
        assert options["batch_size"] == 1
        assert options["cache_enabled"] is False
        assert sleeper.delays[0] == 2.0

    async def test_network_failure_rotates_profiles(self, router):
        operation = FlakyOperation(failures=2)
        outcome = await router.recover(_record(FailureKind.NETWORK_FAILURE), operation, {})
        assert outcome.success
        assert operation.contexts[-1]["options"]["use_proxy"] is True

    async def test_original_context_not_mutated(self, router):
        context = {"options": {"max_results": 10}}
        await router.recover(_record(FailureKind.INVALID_RESULT), FlakyOperation(failures=0), context)
        assert context == {"options": {"max_results": 10}}


class TestDispatch:
    async def test_non_recoverable_skips_operation(self, router):
        operation = FlakyOperation(failures=0)
        outcome = await router.recover(_record(FailureKind.ERROR, recoverable=False), operation, {})
        assert not outcome.success
        assert outcome.strategy_used == "none"
        assert operation.contexts == []

    async def test_attempts_capped(self, router):
        operation = FlakyOperation(failures=100)
        outcome = await router.recover(_record(FailureKind.ERROR), operation, {})
        assert not outcome.success
        assert len(outcome.attempts) == 3
        assert all(not a.succeeded for a in outcome.attempts)
        # three strategy invocations of three calls each
        assert len(operation.contexts) == 9
        assert isinstance(outcome.error, RuntimeError)

    async def test_registered_strategy(self, router):
        calls = []

        async def custom(record, operation, context):
            calls.append(record.kind)
            if len(calls) == 1:
                raise RuntimeError("first try fails")
            return StrategyResult(result={"custom": True}, retries=2, context=context)

        router.register_strategy(FailureKind.ERROR, custom)
        outcome = await router.recover(_record(FailureKind.ERROR), FlakyOperation(failures=0), {})
        assert outcome.success
        assert outcome.result == {"custom": True}
        assert [a.succeeded for a in outcome.attempts] == [False, True]

    async def test_timeout_guard_applies_to_retries(self, router):
        import asyncio

        async def slow(context):
            await asyncio.sleep(1.0)
            return {"ok": True}

        fast_router = RecoveryStrategyRouter(max_retries=1, max_recovery_attempts=1, default_timeout=0.01, sleep=router._sleep)
        outcome = await fast_router.recover(_record(FailureKind.ERROR), slow, {})
        assert not outcome.success
        assert isinstance(outcome.error, OperationTimeoutError)
