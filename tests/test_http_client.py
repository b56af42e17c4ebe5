import httpx
import pytest
from violation_watch.core.errors import CircuitOpenError
from violation_watch.services.http_client import CircuitState, ServiceClient

def failing_transport(calls):
    def handler(request):
        calls.append(request)
        return httpx.Response(502)
    return httpx.MockTransport(handler)

@pytest.mark.asyncio
async def test_breaker_opens_after_repeated_server_errors():
    calls = []
    client = ServiceClient("https://svc.example", "svc-test", transport=failing_transport(calls))

    for _ in range(5):
        await client.request("GET", "/")

    assert client.breaker.state is CircuitState.OPEN
    with pytest.raises(CircuitOpenError):
        await client.request("GET", "/")
    assert len(calls) == 5

@pytest.mark.asyncio
async def test_client_without_breaker_keeps_sending():
    calls = []
    client = ServiceClient(
        "https://svc.example", "svc-nobreaker", transport=failing_transport(calls), use_breaker=False,
    )

    for _ in range(8):
        response = await client.request("GET", "/")

    assert response.status_code == 502
    assert client.breaker is None
    assert len(calls) == 8

@pytest.mark.asyncio
async def test_keep_alive_client_reuses_and_reopens():
    client = ServiceClient(
        "https://svc.example", "svc-keepalive",
        transport=httpx.MockTransport(lambda request: httpx.Response(200)),
        keep_alive=True,
    )

    await client.request("GET", "/a")
    first = client._client
    await client.request("GET", "/b")
    assert client._client is first

    await client.aclose()
    assert first.is_closed

    await client.request("GET", "/c")
    assert client._client is not None
    assert client._client is not first
    await client.aclose()

@pytest.mark.asyncio
async def test_per_request_client_holds_no_connection():
    client = ServiceClient(
        "https://svc.example", "svc-oneshot",
        transport=httpx.MockTransport(lambda request: httpx.Response(200)),
    )

    await client.request("GET", "/")

    assert client._client is None
