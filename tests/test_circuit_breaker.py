"""
Circuit Breaker Tests - Validation Hub
tests/test_circuit_breaker.py
"""
import asyncio

import pytest

from validation_hub.services.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    get_all_circuit_states,
    get_circuit_breaker,
    reset_circuit_breakers,
)


class FakeTime:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def _ok():
    return "ok"


async def _boom():
    raise RuntimeError("boom")


def _breaker(clock, **kwargs):
    options = {"failure_threshold": 3, "recovery_timeout": 30, "success_threshold": 1}
    options.update(kwargs)
    return CircuitBreaker("provider:test", clock=clock, **options)


def _fail(cb, times):
    for _ in range(times):
        with pytest.raises(RuntimeError):
            asyncio.run(cb.call(_boom))


class TestStateMachine:

    def test_starts_closed(self):
        cb = _breaker(FakeTime())
        assert cb.state == CircuitState.CLOSED
        assert asyncio.run(cb.call(_ok)) == "ok"

    def test_opens_after_threshold(self):
        cb = _breaker(FakeTime())
        _fail(cb, 2)
        assert cb.state == CircuitState.CLOSED
        _fail(cb, 1)
        assert cb.state == CircuitState.OPEN

    def test_success_resets_failure_count(self):
        cb = _breaker(FakeTime())
        _fail(cb, 2)
        asyncio.run(cb.call(_ok))
        _fail(cb, 2)
        assert cb.state == CircuitState.CLOSED

    def test_open_rejects_without_calling(self):
        clock = FakeTime()
        cb = _breaker(clock)
        _fail(cb, 3)
        calls = []

        async def tracked():
            calls.append(1)

        clock.now += 10
        with pytest.raises(CircuitOpenError) as exc:
            asyncio.run(cb.call(tracked))

        assert calls == []
        assert exc.value.retry_after == pytest.approx(20)

    def test_half_open_after_timeout_then_closes(self):
        clock = FakeTime()
        cb = _breaker(clock)
        _fail(cb, 3)

        clock.now += 31
        assert asyncio.run(cb.call(_ok)) == "ok"
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    def test_half_open_failure_reopens(self):
        clock = FakeTime()
        cb = _breaker(clock)
        _fail(cb, 3)

        clock.now += 31
        _fail(cb, 1)
        assert cb.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            cb.before_call()

    def test_success_threshold(self):
        clock = FakeTime()
        cb = _breaker(clock, success_threshold=2)
        _fail(cb, 3)
        clock.now += 31

        asyncio.run(cb.call(_ok))
        assert cb.state == CircuitState.HALF_OPEN
        asyncio.run(cb.call(_ok))
        assert cb.state == CircuitState.CLOSED

    def test_is_failure_predicate(self):
        cb = _breaker(FakeTime(), is_failure=lambda e: not isinstance(e, RuntimeError))
        _fail(cb, 5)
        assert cb.state == CircuitState.CLOSED

    def test_get_state_and_reset(self):
        cb = _breaker(FakeTime())
        _fail(cb, 3)
        state = cb.get_state()
        assert state["state"] == "open"
        assert state["is_available"] is False

        cb.reset()
        assert cb.get_state() == {
            "state": "closed",
            "failure_count": 0,
            "success_count": 0,
            "is_available": True,
        }


class TestRegistry:

    def test_named_breakers_are_shared(self):
        first = get_circuit_breaker("provider:a", failure_threshold=2)
        second = get_circuit_breaker("provider:a")
        assert first is second
        assert first.failure_threshold == 2

    def test_all_states(self):
        get_circuit_breaker("provider:a")
        get_circuit_breaker("provider:b")
        states = get_all_circuit_states()
        assert set(states) == {"provider:a", "provider:b"}

    def test_reset_registry(self):
        get_circuit_breaker("provider:a")
        reset_circuit_breakers()
        assert get_all_circuit_states() == {}
