import asyncio
import json

import httpx
import pytest

from hookrelay.errors import DeliveryError
from hookrelay.sender import HttpSender, build_payload

URL = "https://hooks.example.com/in"


def _sender(statuses, sleeps, **kw):
    seen: list[httpx.Request] = []
    script = list(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        step = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(step, Exception):
            raise step
        return httpx.Response(step)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpSender(client=client, sleep=sleeps, **kw), seen


@pytest.mark.asyncio
async def test_recovers_after_two_server_errors(sleeps):
    sender, seen = _sender([500, 500, 200], sleeps, base_delay=0.5)
    outcome = await sender.send(URL, build_payload({"ipAddress": "10.0.0.1"}))
    assert outcome.success is True
    assert outcome.attempts_made == 3
    assert outcome.status_code == 200
    assert sleeps.delays == [0.5, 1.0]
    assert len(seen) == 3


@pytest.mark.asyncio
async def test_exhausted_budget_is_reported_not_raised(sleeps):
    sender, seen = _sender([503], sleeps, max_retries=5, base_delay=0.5)
    outcome = await sender.send(URL, build_payload({"ipAddress": "10.0.0.1"}))
    assert outcome.success is False
    assert outcome.attempts_made == 5
    assert outcome.status_code == 503
    assert sleeps.delays == [0.5, 1.0, 2.0, 4.0]
    assert len(seen) == 5
    with pytest.raises(DeliveryError):
        outcome.raise_for_failure()


@pytest.mark.asyncio
async def test_transport_errors_are_captured(sleeps):
    boom = httpx.ConnectError("connection refused")
    sender, _ = _sender([boom], sleeps, max_retries=2)
    outcome = await sender.send(URL, {"eventData": {}, "createdAt": 0})
    assert outcome.success is False
    assert outcome.status_code is None
    assert "ConnectError" in outcome.error
    assert outcome.attempts_made == 2


@pytest.mark.asyncio
async def test_backoff_is_capped(sleeps):
    sender, _ = _sender([500], sleeps, max_retries=5, base_delay=1.0, max_delay=3.0)
    await sender.send(URL, {"eventData": {}, "createdAt": 0})
    assert sleeps.delays == [1.0, 2.0, 3.0, 3.0]


@pytest.mark.asyncio
async def test_posts_json_body(sleeps):
    sender, seen = _sender([200], sleeps)
    payload = build_payload({"ipAddress": "10.0.0.1"})
    await sender.send(URL, payload)
    request = seen[0]
    assert request.method == "POST"
    assert request.headers["content-type"] == "application/json"
    body = json.loads(request.content)
    assert body["eventData"] == {"ipAddress": "10.0.0.1"}
    assert isinstance(body["createdAt"], int)


@pytest.mark.asyncio
async def test_cancellation_stops_further_retries(sleeps):
    cancel = asyncio.Event()

    async def sleep_then_cancel(seconds):
        sleeps.delays.append(seconds)
        cancel.set()

    sender, seen = _sender([500], sleep_then_cancel, max_retries=5)
    outcome = await sender.send(URL, {"eventData": {}, "createdAt": 0}, cancel)
    assert outcome.success is False
    assert outcome.attempts_made == 1
    assert len(seen) == 1


def test_backoff_schedule():
    sender = HttpSender(client=httpx.AsyncClient(), base_delay=0.5)
    assert [sender.backoff(k) for k in range(4)] == [0.5, 1.0, 2.0, 4.0]


def test_rejects_empty_retry_budget():
    with pytest.raises(ValueError):
        HttpSender(client=httpx.AsyncClient(), max_retries=0)


@pytest.mark.asyncio
async def test_cancel_during_attempt_skips_backoff(sleeps):
    cancel = asyncio.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        cancel.set()
        return httpx.Response(500)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    sender = HttpSender(client=client, sleep=sleeps, max_retries=5)
    outcome = await sender.send(URL, {"eventData": {}, "createdAt": 0}, cancel)
    assert outcome.attempts_made == 1
    assert outcome.success is False
    assert sleeps.delays == []


@pytest.mark.asyncio
async def test_cancel_interrupts_a_running_backoff():
    cancel = asyncio.Event()
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    sender = HttpSender(client=client, max_retries=5, base_delay=30.0)

    async def cancel_soon():
        await asyncio.sleep(0.01)
        cancel.set()

    setter = asyncio.ensure_future(cancel_soon())
    outcome = await asyncio.wait_for(sender.send(URL, {"eventData": {}, "createdAt": 0}, cancel), timeout=5)
    await setter
    assert outcome.attempts_made == 1
    assert outcome.status_code == 500


@pytest.mark.asyncio
async def test_invalid_url_is_captured(sleeps):
    bad = httpx.InvalidURL("Invalid non-printable ASCII character in URL")
    sender, _ = _sender([bad], sleeps, max_retries=2)
    outcome = await sender.send(URL, {"eventData": {}, "createdAt": 0})
    assert outcome.success is False
    assert outcome.attempts_made == 2
    assert "InvalidURL" in outcome.error
