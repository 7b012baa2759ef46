import asyncio

import httpx
import pytest

from infrastructure.external.payments.client_ip import ClientIPResolver


def _resolver(handler, timeout=3.0):
    return ClientIPResolver(
        lookup_url="https://ip.example/json", timeout=timeout, transport=httpx.MockTransport(handler)
    )


@pytest.mark.asyncio
async def test_caller_ip_wins_without_lookup():
    def handler(request):
        raise AssertionError("lookup should not run")

    assert await _resolver(handler).resolve("203.0.113.7") == "203.0.113.7"


@pytest.mark.asyncio
async def test_lookup_result_is_used():
    resolver = _resolver(lambda request: httpx.Response(200, json={"ip": "198.51.100.4"}))
    assert await resolver.resolve() == "198.51.100.4"
    assert await resolver.resolve("unknown") == "198.51.100.4"


@pytest.mark.asyncio
async def test_transport_error_falls_back():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    assert await _resolver(handler).resolve() == "127.0.0.1"


@pytest.mark.asyncio
async def test_slow_lookup_is_cut_off():
    async def handler(request):
        await asyncio.sleep(5)
        return httpx.Response(200, json={"ip": "198.51.100.4"})

    loop = asyncio.get_running_loop()
    started = loop.time()
    assert await _resolver(handler, timeout=0.05).resolve() == "127.0.0.1"
    assert loop.time() - started < 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"address": "198.51.100.4"}),
        httpx.Response(200, json=["198.51.100.4"]),
        httpx.Response(200, text="not json"),
        httpx.Response(503),
    ],
)
async def test_unusable_answer_falls_back(response):
    assert await _resolver(lambda request: response).resolve() == "127.0.0.1"
