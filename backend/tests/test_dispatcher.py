"""
Tests for dispatching requests across a backend pool with retry and failover.
"""
import asyncio
import json
import random

import httpx
import pytest
from pydantic import ValidationError

from conftest import FakeSleep
from relaybot.core.dispatcher import Dispatcher, HttpMethod, RequestEnvelope, RoundOutcome
from relaybot.core.errors import BackendError
from relaybot.core.pool import BackendPool, SelectionPolicy

ENVELOPE = RequestEnvelope(path="/api/generate", body={"prompt": "hi"})


def scripted_transport(script, calls):
    """Respond per host from ``script``; record every requested URL in ``calls``."""
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        outcome = script[request.url.host]
        if isinstance(outcome, Exception):
            raise outcome
        status, text = outcome
        return httpx.Response(status, text=text)
    return httpx.MockTransport(handler)


def make_dispatcher(urls, script, calls, sleep, **kwargs):
    pool = BackendPool(urls, policy=kwargs.pop("policy", SelectionPolicy.PRIORITY),
                       rng=kwargs.pop("rng", None))
    dispatcher = Dispatcher(
        pool,
        round_delay=kwargs.pop("round_delay", 1.0),
        poll_interval=kwargs.pop("poll_interval", 1.0),
        unavailable_delay=kwargs.pop("unavailable_delay", 5.0),
        transport=scripted_transport(script, calls),
        sleep=sleep,
        **kwargs,
    )
    return pool, dispatcher


@pytest.mark.asyncio
async def test_first_available_endpoint_wins(fake_sleep):
    calls = []
    pool, dispatcher = make_dispatcher(
        ["http://a", "http://b"], {"a": (200, "from a"), "b": (200, "from b")}, calls, fake_sleep
    )

    assert await dispatcher.dispatch(ENVELOPE) == "from a"
    assert calls == ["http://a/api/generate"]
    assert pool.all_available()
    assert fake_sleep.calls == []


@pytest.mark.asyncio
async def test_fails_over_to_next_endpoint(fake_sleep):
    calls = []
    pool, dispatcher = make_dispatcher(
        ["http://a", "http://b"], {"a": (500, "boom"), "b": (200, "from b")}, calls, fake_sleep
    )

    assert await dispatcher.dispatch(ENVELOPE) == "from b"
    assert calls == ["http://a/api/generate", "http://b/api/generate"]
    assert pool.all_available()
    assert fake_sleep.calls == []


@pytest.mark.asyncio
async def test_network_error_fails_over(fake_sleep):
    calls = []
    pool, dispatcher = make_dispatcher(
        ["http://a", "http://b"],
        {"a": httpx.ConnectError("connection refused"), "b": (200, "ok")},
        calls, fake_sleep,
    )

    assert await dispatcher.dispatch(ENVELOPE) == "ok"
    assert pool.all_available()


@pytest.mark.asyncio
async def test_rounds_exhausted_raises_backend_error(fake_sleep):
    calls = []
    pool, dispatcher = make_dispatcher(
        ["http://a", "http://b"], {"a": (500, "x"), "b": (503, "y")}, calls, fake_sleep,
        max_rounds=3,
    )

    with pytest.raises(BackendError) as exc_info:
        await dispatcher.dispatch(ENVELOPE)

    error = exc_info.value
    assert not error.exhausted_without_error
    assert isinstance(error.last_error, httpx.HTTPStatusError)
    assert error.last_error.response.status_code == 503
    assert len(calls) == 6
    # Delay between rounds, none after the last one
    assert fake_sleep.calls == [1.0, 1.0]
    assert pool.all_available()


@pytest.mark.asyncio
async def test_unexpected_exception_still_releases_endpoint(fake_sleep):
    calls = []
    pool, dispatcher = make_dispatcher(
        ["http://a"], {"a": RuntimeError("bug")}, calls, fake_sleep, max_rounds=2,
    )

    with pytest.raises(BackendError) as exc_info:
        await dispatcher.dispatch(ENVELOPE)

    assert isinstance(exc_info.value.last_error, RuntimeError)
    assert pool.all_available()


@pytest.mark.asyncio
async def test_recovers_in_later_round(fake_sleep):
    attempts = {"n": 0}

    def handler(request):
        attempts["n"] += 1
        if attempts["n"] < 3:
            return httpx.Response(500, text="not yet")
        return httpx.Response(200, text="finally")

    pool = BackendPool(["http://a"])
    dispatcher = Dispatcher(pool, max_rounds=3, round_delay=0.5,
                            transport=httpx.MockTransport(handler), sleep=fake_sleep)

    assert await dispatcher.dispatch(ENVELOPE) == "finally"
    assert fake_sleep.calls == [0.5, 0.5]


@pytest.mark.asyncio
async def test_busy_rounds_do_not_use_round_budget(fake_sleep, monkeypatch):
    """With every endpoint busy and no errors, failure is flagged as exhausted without error."""
    calls = []
    pool, dispatcher = make_dispatcher(
        ["http://a", "http://b"], {"a": (200, "a"), "b": (200, "b")}, calls, fake_sleep,
        max_rounds=1, max_busy_rounds=4,
    )
    pool.try_acquire(0)
    pool.try_acquire(1)

    async def no_wait():
        return None

    monkeypatch.setattr(dispatcher, "_wait_for_available", no_wait)

    with pytest.raises(BackendError) as exc_info:
        await dispatcher.dispatch(ENVELOPE)

    assert exc_info.value.exhausted_without_error
    assert exc_info.value.last_error is None
    assert calls == []
    assert fake_sleep.calls == [5.0, 5.0, 5.0]


@pytest.mark.asyncio
async def test_busy_budget_after_errored_round_keeps_last_error(monkeypatch):
    """Running out of busy rounds after an errored one reports that error."""
    calls = []
    pool = BackendPool(["http://a"])
    # The endpoint is taken by someone else from the first delay on
    sleep = FakeSleep(on_sleep=lambda delay: pool.try_acquire(0))
    dispatcher = Dispatcher(
        pool, max_rounds=5, max_busy_rounds=2, round_delay=1.0, unavailable_delay=5.0,
        transport=scripted_transport({"a": (500, "x")}, calls), sleep=sleep,
    )

    async def no_wait():
        return None

    monkeypatch.setattr(dispatcher, "_wait_for_available", no_wait)

    with pytest.raises(BackendError) as exc_info:
        await dispatcher.dispatch(ENVELOPE)

    error = exc_info.value
    assert not error.exhausted_without_error
    assert isinstance(error.last_error, httpx.HTTPStatusError)
    assert len(calls) == 1
    assert sleep.calls == [1.0, 5.0]


@pytest.mark.asyncio
async def test_round_outcomes_distinguish_busy_from_errored(fake_sleep):
    calls = []
    pool, dispatcher = make_dispatcher(
        ["http://a", "http://b"], {"a": (500, "x"), "b": (200, "b")}, calls, fake_sleep,
    )

    pool.try_acquire(1)
    errored = await dispatcher._run_round(0, ENVELOPE)
    assert errored.outcome is RoundOutcome.ERRORED
    assert len(errored.errors) == 1

    pool.try_acquire(0)
    busy = await dispatcher._run_round(1, ENVELOPE)
    assert busy.outcome is RoundOutcome.BUSY
    assert busy.errors == []

    pool.release(1)
    success = await dispatcher._run_round(2, ENVELOPE)
    assert success.outcome is RoundOutcome.SUCCESS
    assert success.body == "b"


@pytest.mark.asyncio
async def test_waits_while_all_endpoints_busy():
    calls = []
    pool = BackendPool(["http://a"])
    pool.try_acquire(0)
    sleep = FakeSleep(on_sleep=lambda delay: pool.release(0))
    dispatcher = Dispatcher(pool, poll_interval=1.0,
                            transport=scripted_transport({"a": (200, "ok")}, calls), sleep=sleep)

    assert await dispatcher.dispatch(ENVELOPE) == "ok"
    assert sleep.calls == [1.0]
    assert pool.all_available()


@pytest.mark.asyncio
async def test_single_endpoint_is_never_used_twice_at_once():
    """Two concurrent dispatches against one endpoint never overlap."""
    in_flight = {"now": 0, "max": 0}

    async def handler(request):
        in_flight["now"] += 1
        in_flight["max"] = max(in_flight["max"], in_flight["now"])
        await asyncio.sleep(0.02)
        in_flight["now"] -= 1
        return httpx.Response(200, text=json.loads(request.content)["prompt"])

    pool = BackendPool(["http://a"])
    dispatcher = Dispatcher(pool, poll_interval=0.001, transport=httpx.MockTransport(handler))

    results = await asyncio.gather(
        dispatcher.dispatch(RequestEnvelope(path="/api/generate", body={"prompt": "one"})),
        dispatcher.dispatch(RequestEnvelope(path="/api/generate", body={"prompt": "two"})),
    )

    assert sorted(results) == ["one", "two"]
    assert in_flight["max"] == 1
    assert pool.all_available()


@pytest.mark.asyncio
async def test_cancelled_dispatch_releases_endpoint():
    started = asyncio.Event()

    async def handler(request):
        started.set()
        await asyncio.sleep(3600)
        return httpx.Response(200, text="never")

    pool = BackendPool(["http://a"])
    dispatcher = Dispatcher(pool, transport=httpx.MockTransport(handler))

    task = asyncio.create_task(dispatcher.dispatch(ENVELOPE))
    await started.wait()
    assert not pool.has_available()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert pool.all_available()


@pytest.mark.asyncio
async def test_random_policy_spreads_first_attempts(fake_sleep):
    calls = []
    pool, dispatcher = make_dispatcher(
        ["http://a", "http://b", "http://c"],
        {"a": (200, "a"), "b": (200, "b"), "c": (200, "c")}, calls, fake_sleep,
        policy=SelectionPolicy.RANDOM, rng=random.Random(3),
    )

    results = [await dispatcher.dispatch(ENVELOPE) for _ in range(60)]
    assert set(results) == {"a", "b", "c"}


@pytest.mark.asyncio
async def test_envelope_method_and_attachments_are_sent(fake_sleep):
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path, request.content))
        return httpx.Response(200, text="{}")

    pool = BackendPool(["http://a/base"])
    dispatcher = Dispatcher(pool, transport=httpx.MockTransport(handler), sleep=fake_sleep)

    await dispatcher.dispatch(RequestEnvelope(
        path="api/generate", body={"prompt": "look"}, attachments=("aGk=",)
    ))
    await dispatcher.dispatch(RequestEnvelope(path="/api/tags", method=HttpMethod.GET))

    method, path, content = seen[0]
    assert (method, path) == ("POST", "/base/api/generate")
    assert json.loads(content) == {"prompt": "look", "images": ["aGk="]}
    assert seen[1][:2] == ("GET", "/base/api/tags")
    assert seen[1][2] == b""


def test_envelope_is_immutable():
    with pytest.raises(Exception):
        ENVELOPE.path = "/other"


def test_attachments_require_object_body():
    with pytest.raises(ValidationError):
        RequestEnvelope(path="/api/generate", body=["not", "an", "object"], attachments=("aGk=",))
    with pytest.raises(ValidationError):
        RequestEnvelope(path="/api/generate", body="text", attachments=("aGk=",))

    envelope = RequestEnvelope(path="/api/generate", attachments=("aGk=",))
    assert envelope.json_body() == {"images": ["aGk="]}
    assert RequestEnvelope(path="/x", body=[1, 2]).json_body() == [1, 2]


def test_invalid_round_budget_rejected():
    with pytest.raises(ValueError):
        Dispatcher(BackendPool(["http://a"]), max_rounds=0)
