"""Integration tests for the income event webhook client"""

import httpx
import pytest
from matching_income.domain.exceptions import IncomeWebhookError
from matching_income.infrastructure.clients.income_events import IncomeEventClient

PAYLOAD = {"event": "income.approved", "record_id": "r-1", "income_amount_paise": 750_000}


async def test_send_event_posts_payload():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(202)

    client = IncomeEventClient(
        webhook_url="http://payouts.test/events",
        transport=httpx.MockTransport(handler),
    )
    await client.send_event(PAYLOAD)

    assert len(received) == 1
    assert received[0].url == "http://payouts.test/events"
    assert b'"income.approved"' in received[0].content


async def test_send_event_retries_then_succeeds():
    responses = iter([httpx.Response(503), httpx.Response(500), httpx.Response(200)])
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return next(responses)

    client = IncomeEventClient(
        webhook_url="http://payouts.test/events",
        max_retries=5,
        backoff_base=0,
        transport=httpx.MockTransport(handler),
    )
    await client.send_event(PAYLOAD)

    assert len(calls) == 3


async def test_send_event_gives_up_after_max_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = IncomeEventClient(
        webhook_url="http://payouts.test/events",
        max_retries=3,
        backoff_base=0,
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(IncomeWebhookError):
        await client.send_event(PAYLOAD)

    assert len(calls) == 4


async def test_zero_retries_sends_exactly_once():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503)

    client = IncomeEventClient(
        webhook_url="http://payouts.test/events",
        max_retries=0,
        backoff_base=0,
        transport=httpx.MockTransport(handler),
    )

    assert client.max_retries == 0
    with pytest.raises(IncomeWebhookError):
        await client.send_event(PAYLOAD)
    assert len(calls) == 1


async def test_disabled_client_sends_nothing():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = IncomeEventClient(webhook_url="", transport=httpx.MockTransport(handler))

    assert client.enabled is False
    await client.send_event(PAYLOAD)
