"""
Unit tests for the shared HTTP client: retries and per-host circuit breakers.
"""

import httpx
import pytest

from auditwatch.services.http_client import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerState,
    CircuitOpenError,
    HttpClient,
    RetryPolicy,
    encode_json,
)


def _client(handler, max_retries: int = 2, failure_threshold: int = 5) -> HttpClient:
    return HttpClient(
        retry_policy=RetryPolicy(max_retries=max_retries, base_delay=0.0, max_delay=0.0, jitter=False),
        circuit_breaker_config=CircuitBreakerConfig(failure_threshold=failure_threshold, recovery_timeout=60.0),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.unit
class TestRetries:
    @pytest.mark.asyncio
    async def test_server_errors_retried(self) -> None:
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(502 if len(attempts) < 3 else 200, json={})

        client = _client(handler)
        response = await client.get("http://agent-001:9000/health")

        assert response.status_code == 200
        assert len(attempts) == 3
        assert client.get_stats()["total_retries"] == 2

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self) -> None:
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(404)

        with pytest.raises(httpx.HTTPStatusError):
            await _client(handler).get("http://agent-001:9000/missing")
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_post_json_sends_compact_body(self) -> None:
        seen = {}

        def handler(request):
            seen["body"] = request.content
            seen["type"] = request.headers["content-type"]
            return httpx.Response(200)

        await _client(handler).post_json("http://agent-001:9000/checks", {"b": 1, "a": [1, 2]})
        assert seen["body"] == b'{"a":[1,2],"b":1}'
        assert seen["type"] == "application/json"

    def test_encode_json_is_stable(self) -> None:
        assert encode_json({"z": 1, "a": {"y": 2, "b": 3}}) == '{"a":{"b":3,"y":2},"z":1}'


@pytest.mark.unit
class TestCircuitBreaker:
    def test_opens_after_threshold(self) -> None:
        breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=2), host="agent")
        breaker.record_failure()
        assert breaker.can_execute()
        breaker.record_failure()
        assert breaker.state == CircuitBreakerState.OPEN
        assert not breaker.can_execute()

    def test_half_open_after_recovery_timeout(self) -> None:
        breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=1, recovery_timeout=0.0, success_threshold=1))
        breaker.record_failure()
        assert breaker.can_execute()
        assert breaker.state == CircuitBreakerState.HALF_OPEN
        breaker.record_success()
        assert breaker.state == CircuitBreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_open_circuit_short_circuits_requests(self) -> None:
        attempts = []

        def handler(request):
            attempts.append(request)
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler, max_retries=0, failure_threshold=1)
        with pytest.raises(httpx.ConnectError):
            await client.get("http://agent-001:9000/checks")
        with pytest.raises(CircuitOpenError):
            await client.get("http://agent-001:9000/checks")

        assert len(attempts) == 1
        assert client.get_stats()["open_circuits"] == 1

    @pytest.mark.asyncio
    async def test_breakers_are_per_host(self) -> None:
        def handler(request):
            if request.url.host == "agent-001":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200)

        client = _client(handler, max_retries=0, failure_threshold=1)
        with pytest.raises(httpx.ConnectError):
            await client.get("http://agent-001:9000/checks")

        response = await client.get("http://agent-002:9000/checks")
        assert response.status_code == 200
