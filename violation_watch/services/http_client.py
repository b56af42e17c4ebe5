import httpx
import time
import asyncio
import structlog
from typing import Dict, Any, Optional, Tuple
from enum import Enum
from violation_watch.core.errors import CircuitOpenError

logger = structlog.get_logger()

class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

class CircuitBreaker:
    def __init__(self, name: str, threshold: int = 5, recovery_timeout: int = 30):
        self.name = name
        self.threshold = threshold
        self.recovery_timeout = recovery_timeout
        self.state = CircuitState.CLOSED
        self.failures = 0
        self.last_failure_time = 0.0

    def record_success(self):
        self.failures = 0
        self.state = CircuitState.CLOSED

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.time()
        if self.failures >= self.threshold:
            self.state = CircuitState.OPEN
            logger.error("circuit_breaker_opened", service=self.name, failures=self.failures)

    def can_execute(self) -> bool:
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if time.time() - self.last_failure_time > self.recovery_timeout:
                self.state = CircuitState.HALF_OPEN
                logger.info("circuit_breaker_half_open", service=self.name)
                return True
            return False

        return True # HALF_OPEN

class ServiceClient:
    """Outbound client for one external service (datastore, Resend, Twilio, APNs).

    Breakers are shared per service name so that every run in the process
    sees the same failure history. ``use_breaker=False`` opts out for callers
    whose failures are per-target rather than per-service. ``keep_alive=True``
    holds one connection pool until ``aclose()``; otherwise every request gets
    a fresh client.
    """

    _breakers: Dict[str, CircuitBreaker] = {}

    def __init__(
        self,
        base_url: str,
        service_name: str,
        timeout: float = 30.0,
        http2: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        use_breaker: bool = True,
        keep_alive: bool = False,
    ):
        self.base_url = base_url
        self.service_name = service_name
        self.timeout = timeout
        self.http2 = http2
        self.transport = transport
        self.keep_alive = keep_alive
        self._client: Optional[httpx.AsyncClient] = None
        self.breaker: Optional[CircuitBreaker] = None
        if use_breaker:
            if service_name not in self._breakers:
                self._breakers[service_name] = CircuitBreaker(service_name)
            self.breaker = self._breakers[service_name]

    @classmethod
    def reset_breakers(cls):
        cls._breakers.clear()

    def _new_client(self) -> httpx.AsyncClient:
        client_kwargs: Dict[str, Any] = {"base_url": self.base_url}
        if self.transport is not None:
            client_kwargs["transport"] = self.transport
        elif self.http2:
            client_kwargs["http2"] = True
        return httpx.AsyncClient(**client_kwargs)

    def _shared_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = self._new_client()
            logger.info("http_client_opened", service=self.service_name)
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("http_client_closed", service=self.service_name)

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict] = None,
        json: Optional[Any] = None,
        data: Optional[Dict] = None,
        headers: Optional[Dict] = None,
        auth: Optional[Tuple[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        if self.breaker and not self.breaker.can_execute():
            logger.warning("circuit_breaker_blocked_request", service=self.service_name)
            raise CircuitOpenError(self.service_name)

        request_kwargs = dict(
            method=method,
            url=path,
            params=params,
            json=json,
            data=data,
            headers=headers,
            auth=auth,
            timeout=timeout or self.timeout,
        )
        if self.keep_alive:
            return await self._send(self._shared_client(), request_kwargs)
        async with self._new_client() as client:
            return await self._send(client, request_kwargs)

    async def _send(self, client: httpx.AsyncClient, request_kwargs: Dict[str, Any]) -> httpx.Response:
        try:
            response = await client.request(**request_kwargs)
        except (httpx.RequestError, asyncio.TimeoutError):
            if self.breaker:
                self.breaker.record_failure()
            raise

        if self.breaker:
            if response.status_code >= 500:
                self.breaker.record_failure()
            else:
                self.breaker.record_success()
        return response
