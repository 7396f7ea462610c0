"""
HTTP Client Infrastructure with Retry Logic
Shared httpx client for agent dispatch and alert webhooks, with exponential
backoff and a per-host circuit breaker
"""

import asyncio
import json
import logging
import secrets
import time
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)


def encode_json(payload: Dict[str, Any]) -> str:
    """Compact, key-sorted JSON; webhook signatures cover exactly this text"""
    return json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str)


class CircuitBreakerState(str, Enum):
    """Circuit breaker states"""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing if host recovered


class RetryPolicy(BaseModel):
    """Retry policy configuration"""

    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 60.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker configuration"""

    failure_threshold: int = 5  # Failures before opening
    recovery_timeout: float = 60.0  # Seconds before trying half-open
    success_threshold: int = 2  # Successes needed to close


class HTTPClientStats(BaseModel):
    """HTTP client statistics"""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_retries: int = 0
    open_circuits: int = 0


class CircuitBreaker:
    """Circuit breaker for requests to a single host"""

    def __init__(self, config: CircuitBreakerConfig, host: str = ""):
        self.config = config
        self.host = host
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """Check if request can be executed"""
        if self.state == CircuitBreakerState.CLOSED:
            return True
        elif self.state == CircuitBreakerState.OPEN:
            if (
                self.last_failure_time is not None
                and time.monotonic() - self.last_failure_time >= self.config.recovery_timeout
            ):
                self.state = CircuitBreakerState.HALF_OPEN
                self.success_count = 0
                logger.info(f"Circuit breaker for {self.host} transitioning to half-open")
                return True
            return False
        else:  # HALF_OPEN
            return True

    def record_success(self):
        """Record successful request"""
        if self.state == CircuitBreakerState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.config.success_threshold:
                self.state = CircuitBreakerState.CLOSED
                self.failure_count = 0
                logger.info(f"Circuit breaker for {self.host} closed after successful recovery")
        elif self.state == CircuitBreakerState.CLOSED:
            self.failure_count = 0

    def record_failure(self):
        """Record failed request"""
        self.failure_count += 1
        self.last_failure_time = time.monotonic()

        if (
            self.state == CircuitBreakerState.CLOSED
            and self.failure_count >= self.config.failure_threshold
        ):
            self.state = CircuitBreakerState.OPEN
            logger.warning(f"Circuit breaker for {self.host} opened after {self.failure_count} failures")
        elif self.state == CircuitBreakerState.HALF_OPEN:
            self.state = CircuitBreakerState.OPEN
            logger.warning(f"Circuit breaker for {self.host} reopened during half-open test")


class CircuitOpenError(httpx.TransportError):
    """Raised instead of sending a request while a host's circuit is open"""


class HttpClient:
    """HTTP client with retry logic and per-host circuit breakers"""

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        circuit_breaker_config: Optional[CircuitBreakerConfig] = None,
        timeout: float = 30.0,
        user_agent: str = "AuditWatch-HttpClient/1.0",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.retry_policy = retry_policy or RetryPolicy()
        self.circuit_breaker_config = circuit_breaker_config or CircuitBreakerConfig()
        self.timeout = httpx.Timeout(timeout)
        self.user_agent = user_agent
        self.stats = HTTPClientStats()
        self._breakers: Dict[str, CircuitBreaker] = {}

        self.client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
            transport=transport,
        )

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()

    def breaker_for(self, url: str) -> CircuitBreaker:
        host = urlsplit(url).netloc
        if host not in self._breakers:
            self._breakers[host] = CircuitBreaker(self.circuit_breaker_config, host)
        return self._breakers[host]

    def _calculate_delay(self, attempt: int) -> float:
        """Calculate delay for exponential backoff"""
        delay = min(
            self.retry_policy.base_delay * (self.retry_policy.exponential_base**attempt),
            self.retry_policy.max_delay,
        )

        if self.retry_policy.jitter:
            delay *= 0.5 + secrets.SystemRandom().random() * 0.5

        return delay

    def _is_retryable_error(self, exception: Exception) -> bool:
        """Determine if an error is retryable"""
        if isinstance(exception, CircuitOpenError):
            return False
        elif isinstance(exception, httpx.TimeoutException):
            return True
        elif isinstance(exception, httpx.ConnectError):
            return True
        elif isinstance(exception, httpx.HTTPStatusError):
            # Retry on server errors (5xx) but not client errors (4xx)
            return 500 <= exception.response.status_code < 600
        return False

    async def _execute_request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute HTTP request with retry logic and circuit breaker"""
        breaker = self.breaker_for(url)
        if not breaker.can_execute():
            self.stats.failed_requests += 1
            raise CircuitOpenError(
                f"Circuit breaker is open for {breaker.host}",
                request=httpx.Request(method, url),
            )

        self.stats.total_requests += 1
        last_exception: Optional[Exception] = None

        for attempt in range(self.retry_policy.max_retries + 1):
            try:
                logger.debug(f"HTTP {method} {url} (attempt {attempt + 1})")
                response = await self.client.request(method, url, **kwargs)
                response.raise_for_status()

                self.stats.successful_requests += 1
                breaker.record_success()
                return response

            except httpx.HTTPError as e:
                last_exception = e
                logger.warning(f"HTTP {method} {url} failed on attempt {attempt + 1}: {type(e).__name__}: {e}")

                if attempt < self.retry_policy.max_retries and self._is_retryable_error(e):
                    self.stats.total_retries += 1
                    delay = self._calculate_delay(attempt)
                    logger.debug(f"Retrying request in {delay:.2f} seconds")
                    await asyncio.sleep(delay)
                    continue
                break

        self.stats.failed_requests += 1
        breaker.record_failure()
        logger.error(f"HTTP {method} {url} failed after {attempt + 1} attempts: {last_exception}")
        raise last_exception

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """Execute GET request"""
        return await self._execute_request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        """Execute POST request"""
        return await self._execute_request("POST", url, **kwargs)

    async def post_json(self, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None):
        """POST a compact JSON body"""
        body = encode_json(payload)
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        return await self.post(url, headers=request_headers, content=body)

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics"""
        self.stats.open_circuits = sum(
            1 for b in self._breakers.values() if b.state == CircuitBreakerState.OPEN
        )
        return self.stats.model_dump()
