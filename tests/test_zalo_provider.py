import json

import httpx
import pytest

from conftest import FakeClock
from ticket_auth.exceptions import DeliveryFailed
from ticket_auth.infrastructure.cache.memory_cache import InMemoryCacheStore
from ticket_auth.infrastructure.messaging.zalo_provider import ZaloMessagingProvider


def _provider(test_settings, handler, cache=None, clock=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ZaloMessagingProvider(
        test_settings,
        client,
        cache or InMemoryCacheStore(),
        clock=clock or FakeClock(),
    )


def _token_response():
    return httpx.Response(200, json={"access_token": "oa-access", "refresh_token": "rotated-refresh", "expires_in": "3600"})


@pytest.mark.asyncio
async def test_send_otp_refreshes_token_then_sends(test_settings):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.host == "oauth.zaloapp.com":
            return _token_response()
        return httpx.Response(200, json={"error": 0, "message": "Success"})

    cache = InMemoryCacheStore()
    provider = _provider(test_settings, handler, cache=cache)
    await provider.send_otp("0901234567", "482913")

    refresh, send = calls
    assert refresh.headers["secret_key"] == "app-secret"
    form = dict(pair.split("=") for pair in refresh.content.decode().split("&"))
    assert form == {"app_id": "app-id", "refresh_token": "seed-refresh", "grant_type": "refresh_token"}

    assert send.headers["access_token"] == "oa-access"
    body = json.loads(send.content)
    assert body["phone"] == "84901234567"
    assert body["template_id"] == "487517"
    assert body["template_data"] == {"otp": "482913"}

    stored = json.loads(await cache.get(ZaloMessagingProvider.TOKEN_CACHE_KEY))
    assert stored["refresh_token"] == "rotated-refresh"


@pytest.mark.asyncio
async def test_cached_token_reused_until_stale(test_settings):
    refreshes = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth.zaloapp.com":
            refreshes.append(request)
            return _token_response()
        return httpx.Response(200, json={"error": 0})

    clock = FakeClock()
    provider = _provider(test_settings, handler, clock=clock)
    await provider.send_otp("0901234567", "111111")
    await provider.send_otp("0901234567", "222222")
    assert len(refreshes) == 1

    clock.advance(3600)
    await provider.send_otp("0901234567", "333333")
    assert len(refreshes) == 2
    assert b"rotated-refresh" in refreshes[1].content


@pytest.mark.asyncio
async def test_negative_error_code_is_delivery_failure(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth.zaloapp.com":
            return _token_response()
        return httpx.Response(200, json={"error": -124, "message": "Access token is invalid"})

    with pytest.raises(DeliveryFailed):
        await _provider(test_settings, handler).send_otp("0901234567", "482913")


@pytest.mark.asyncio
async def test_network_failure_is_delivery_failure(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth.zaloapp.com":
            return _token_response()
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(DeliveryFailed):
        await _provider(test_settings, handler).send_otp("0901234567", "482913")


@pytest.mark.asyncio
async def test_rejected_token_refresh(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": -14014, "error_name": "Invalid refresh token"})

    with pytest.raises(DeliveryFailed):
        await _provider(test_settings, handler).send_otp("0901234567", "482913")
