"""
Timeout-bound HTTP client for one downstream service.

Every call either returns a :class:`ServiceResponse` (status < 400) or raises
exactly one of two errors:

- ``TransportError``: the service was not reachable or did not answer in time;
- ``UpstreamError``: the service answered with a 4xx/5xx status.
"""

import asyncio
import json
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import httpx

from newsfeed_shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from newsfeed_shared.errors import TransportError, UpstreamError
from newsfeed_shared.logging import get_logger
from newsfeed_shared.metrics import MetricsCollector
from newsfeed_shared.retry import RetryConfig, retry_async

USER_ID_HEADER = "x-user-id"
INTERNAL_SECRET_HEADER = "x-internal-secret"
TRUSTED_HEADERS = frozenset({USER_ID_HEADER, INTERNAL_SECRET_HEADER})


@dataclass(frozen=True)
class ServiceResponse:
    """Successful downstream response."""

    status_code: int
    content: bytes
    headers: Mapping[str, str]

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    def json(self) -> Any:
        if not self.content:
            return None
        return json.loads(self.content)


def counts_against_breaker(exc: Exception) -> bool:
    """Only outages trip the breaker; client errors do not."""
    if isinstance(exc, TransportError):
        return True
    return isinstance(exc, UpstreamError) and exc.is_server_error


def is_retryable(exc: Exception) -> bool:
    return isinstance(exc, TransportError) and exc.retryable


class ServiceClient:
    """Client for one internal service, sharing a pooled connection set."""

    def __init__(
        self,
        service_name: str,
        base_url: str,
        internal_secret: str,
        *,
        timeout: float = 5.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_config: Optional[RetryConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not internal_secret:
            raise ValueError("Downstream calls require an internal secret")
        self.service_name = service_name
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logger = get_logger(f"gateway.{service_name}_client")
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=30.0,
            is_failure=counts_against_breaker,
            name=service_name,
        )
        self.retry_config = retry_config or RetryConfig(max_attempts=1)
        self.metrics = metrics

        self._internal_secret = internal_secret
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get the pooled HTTP client, creating it on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def internal_headers(self, user_id: Optional[int] = None) -> Dict[str, str]:
        """Trusted headers for a downstream call.

        The shared secret goes on every call; ``x-user-id`` is only ever sent
        alongside it.
        """
        headers = {INTERNAL_SECRET_HEADER: self._internal_secret}
        if user_id is not None:
            headers[USER_ID_HEADER] = str(user_id)
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        user_id: Optional[int] = None,
        headers: Optional[Mapping[str, str]] = None,
        params: Any = None,
        json: Any = None,
        content: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> ServiceResponse:
        """Send one request to the service."""
        timeout = timeout or self.timeout
        merged: Dict[str, str] = {
            key: value for key, value in (headers or {}).items()
            if key.lower() not in TRUSTED_HEADERS
        }
        merged.update(self.internal_headers(user_id))

        async def _send() -> ServiceResponse:
            client = self._get_client()
            try:
                response = await asyncio.wait_for(
                    client.request(
                        method,
                        path,
                        params=params,
                        json=json,
                        content=content,
                        headers=merged,
                        timeout=timeout,
                    ),
                    timeout=timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                raise TransportError(
                    self.service_name, TransportError.TIMEOUT, f"no response within {timeout}s"
                ) from exc
            except httpx.ConnectError as exc:
                raise TransportError(self.service_name, TransportError.CONNECT, str(exc)) from exc
            except httpx.TransportError as exc:
                raise TransportError(self.service_name, TransportError.NETWORK, str(exc)) from exc

            if response.status_code >= 400:
                raise UpstreamError(
                    self.service_name,
                    response.status_code,
                    response.content,
                    response.headers.get("content-type"),
                )

            return ServiceResponse(response.status_code, response.content, response.headers)

        try:
            with self._timed():
                result = await self.circuit_breaker.call(_send)
        except CircuitBreakerOpenException as exc:
            self._record("circuit_open")
            self.logger.warning("Circuit open, call rejected", method=method, path=path)
            raise TransportError(self.service_name, TransportError.CIRCUIT_OPEN, str(exc)) from exc
        except TransportError as exc:
            self._record(exc.kind)
            self.logger.warning(
                "Service unreachable", method=method, path=path, kind=exc.kind, error=exc.message
            )
            raise
        except UpstreamError as exc:
            self._record("upstream_5xx" if exc.is_server_error else "upstream_4xx")
            log = self.logger.warning if exc.is_server_error else self.logger.info
            log("Service returned error status", method=method, path=path, status_code=exc.status)
            raise

        self._record("success")
        return result

    async def get_json(
        self,
        path: str,
        *,
        user_id: Optional[int] = None,
        params: Any = None,
        timeout: Optional[float] = None,
        retry: bool = False,
    ) -> Any:
        """GET ``path`` and decode the JSON body.

        With ``retry`` the read is repeated on retryable transport errors
        according to ``retry_config``.
        """
        async def _get() -> Any:
            response = await self.request("GET", path, user_id=user_id, params=params, timeout=timeout)
            try:
                return response.json()
            except ValueError as exc:
                raise self.invalid_payload(path, response.content) from exc

        if not retry:
            return await _get()
        return await retry_async(
            _get, config=self.retry_config, exceptions=(TransportError,), should_retry=is_retryable
        )

    def invalid_payload(self, path: str, payload: Any) -> UpstreamError:
        """Error for a 2xx response whose body does not have the expected shape."""
        self.logger.error("Unexpected response payload", path=path, payload_type=type(payload).__name__)
        return UpstreamError(self.service_name, 502, b'{"message": "Invalid upstream payload"}', "application/json")

    def _timed(self):
        if self.metrics is None:
            return nullcontext()
        return self.metrics.time_operation("upstream_request_duration_seconds", service=self.service_name)

    def _record(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("upstream_requests_total", service=self.service_name, outcome=outcome)

    def get_state(self) -> Dict[str, Any]:
        """Circuit breaker state for health reporting."""
        return self.circuit_breaker.get_state()

