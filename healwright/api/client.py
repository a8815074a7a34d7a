"""
HTTP Request Client for API tests

Every verb goes through a single ``request`` path that:
- resolves the URL against the configured base URL (absolute URLs bypass it)
- merges default headers (JSON content type, bearer token) with per-call ones
- retries transport failures with linear backoff
- measures response time and reports it to the metrics collector
- normalizes the response into ApiResponseData

An HTTP error status (4xx/5xx) is a valid answer and is returned, never
retried. Only transport failures (DNS, refused connection, client timeout)
are retried, and the last one is raised once the budget is spent.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol

import httpx
import structlog
from playwright.async_api import APIRequestContext, Error as PlaywrightError
from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from healwright.config import settings

if TYPE_CHECKING:
    from healwright.core.metrics import MetricsCollector

logger = structlog.get_logger()

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
ABSOLUTE_URL_PREFIXES = ("http://", "https://")


class TransportError(Exception):
    """Network-level failure: the request never produced an HTTP response."""

    def __init__(self, message: str, method: str = "", url: str = ""):
        super().__init__(message)
        self.method = method
        self.url = url


class ApiRequestOptions(BaseModel):
    """Per-request overrides."""

    model_config = ConfigDict(extra="forbid")

    headers: dict[str, str] | None = None
    params: dict[str, str] | None = None
    body: Any = None
    timeout_ms: int | None = Field(default=None, gt=0)
    retries: int | None = Field(default=None, ge=1)


@dataclass
class TransportResponse:
    """What a transport hands back for any HTTP answer."""

    status: int
    status_text: str
    headers: dict[str, str]
    body_text: str


@dataclass
class ApiResponseData:
    """Normalized outcome of a request, for success and error statuses alike."""

    status: int
    status_text: str
    body: Any
    raw_body: str
    headers: dict[str, str] = field(default_factory=dict)
    response_time_ms: float = 0
    url: str = ""
    method: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_error(self) -> bool:
        return self.status >= 400

    def json(self) -> Any:
        """Parsed JSON body; raises ValueError if the body was not JSON."""
        if isinstance(self.body, str) and self.body == self.raw_body:
            try:
                return json.loads(self.raw_body)
            except json.JSONDecodeError as e:
                raise ValueError(f"Response body is not JSON: {self.raw_body[:100]!r}") from e
        return self.body


class Transport(Protocol):
    """Capability that actually puts a request on the wire."""

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        params: dict[str, str] | None,
        body: Any,
        timeout_ms: int,
    ) -> TransportResponse: ...


class HttpxTransport:
    """
    Transport backed by ``httpx.AsyncClient``.

    Usage:
        async with HttpxTransport() as transport:
            client = ApiClient(transport, base_url="https://api.example")
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        params: dict[str, str] | None,
        body: Any,
        timeout_ms: int,
    ) -> TransportResponse:
        try:
            response = await self._client.request(
                method,
                url,
                headers=headers,
                params=params,
                json=body,
                timeout=timeout_ms / 1000,
            )
        except httpx.TransportError as e:
            raise TransportError(str(e) or type(e).__name__, method, url) from e

        return TransportResponse(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=dict(response.headers.items()),
            body_text=response.text,
        )


class PlaywrightTransport:
    """Transport backed by Playwright's ``APIRequestContext``."""

    def __init__(self, request_context: APIRequestContext):
        self._request = request_context

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        params: dict[str, str] | None,
        body: Any,
        timeout_ms: int,
    ) -> TransportResponse:
        try:
            response = await self._request.fetch(
                url,
                method=method,
                headers=headers,
                params=params,
                data=body,
                timeout=timeout_ms,
            )
            body_text = await response.text()
        except PlaywrightError as e:
            raise TransportError(e.message, method, url) from e

        return TransportResponse(
            status=response.status,
            status_text=response.status_text,
            headers=response.headers,
            body_text=body_text,
        )


class ApiClient:
    """
    API client used by test steps.

    One instance per test execution: default headers (including any auth
    token) live on the instance and must not leak across tests.

    Usage:
        client = ApiClient(transport, base_url="https://api.example", metrics=metrics)
        response = await client.post("/posts", body={"title": "t", "userId": 1})
        assert response.status == 201
    """

    def __init__(
        self,
        transport: Transport,
        base_url: str | None = None,
        default_headers: dict[str, str] | None = None,
        *,
        metrics: "MetricsCollector | None" = None,
        default_timeout_ms: int | None = None,
        retry_backoff_ms: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.transport = transport
        self.base_url = (base_url if base_url is not None else settings.api_base_url).rstrip("/")
        self.metrics = metrics
        self.default_timeout_ms = default_timeout_ms or settings.api_timeout
        self.retry_backoff_ms = (
            retry_backoff_ms if retry_backoff_ms is not None else settings.api_retry_backoff
        )
        self._sleep = sleep
        self._default_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **(default_headers or {}),
        }

        logger.info("api_client_initialized", base_url=self.base_url)

    @property
    def default_headers(self) -> dict[str, str]:
        return self._default_headers.copy()

    async def get(
        self, path: str, options: ApiRequestOptions | None = None, **overrides: Any
    ) -> ApiResponseData:
        return await self.request("GET", path, _merge_options(options, overrides))

    async def post(
        self, path: str, options: ApiRequestOptions | None = None, **overrides: Any
    ) -> ApiResponseData:
        return await self.request("POST", path, _merge_options(options, overrides))

    async def put(
        self, path: str, options: ApiRequestOptions | None = None, **overrides: Any
    ) -> ApiResponseData:
        return await self.request("PUT", path, _merge_options(options, overrides))

    async def patch(
        self, path: str, options: ApiRequestOptions | None = None, **overrides: Any
    ) -> ApiResponseData:
        return await self.request("PATCH", path, _merge_options(options, overrides))

    async def delete(
        self, path: str, options: ApiRequestOptions | None = None, **overrides: Any
    ) -> ApiResponseData:
        return await self.request("DELETE", path, _merge_options(options, overrides))

    def set_auth_token(self, token: str) -> None:
        """Send a bearer token with every subsequent request of this client."""
        self._default_headers["Authorization"] = f"Bearer {token}"
        logger.info("auth_token_set")

    def clear_auth_token(self) -> None:
        self._default_headers.pop("Authorization", None)
        logger.info("auth_token_cleared")

    def resolve_url(self, path: str) -> str:
        if path.startswith(ABSOLUTE_URL_PREFIXES):
            return path
        return f"{self.base_url}{path}"

    async def request(
        self,
        method: str,
        path: str,
        options: ApiRequestOptions | None = None,
    ) -> ApiResponseData:
        """
        Issue a request, retrying only on transport failures.

        Raises:
            TransportError: every attempt failed at the transport level
        """
        options = options or ApiRequestOptions()
        method = method.upper()
        url = self.resolve_url(path)
        headers = {**self._default_headers, **(options.headers or {})}
        timeout_ms = options.timeout_ms or self.default_timeout_ms
        max_attempts = options.retries or 1
        body = options.body if method in BODY_METHODS else None

        log = logger.bind(method=method, url=url)
        log.info("request_sent", attempts=max_attempts, timeout_ms=timeout_ms)
        if body is not None:
            log.debug("request_body", body=body)

        backoff_s = self.retry_backoff_ms / 1000
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_incrementing(start=backoff_s, increment=backoff_s),
            retry=retry_if_exception_type(TransportError),
            before_sleep=self._log_retry(log, max_attempts),
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    start = time.perf_counter()
                    raw = await self.transport.send(
                        method,
                        url,
                        headers=headers,
                        params=options.params,
                        body=body,
                        timeout_ms=timeout_ms,
                    )
                    elapsed_ms = (time.perf_counter() - start) * 1000
        except TransportError as e:
            log.error("request_failed", attempts=max_attempts, error=str(e))
            raise

        result = self._normalize(raw, method, url, elapsed_ms)
        if self.metrics is not None:
            self.metrics.record_api_response_time(elapsed_ms)

        log.info(
            "response_received",
            status=result.status,
            status_text=result.status_text,
            duration_ms=round(elapsed_ms, 2),
        )
        return result

    @staticmethod
    def _log_retry(log, max_attempts: int) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            log.warning(
                "request_retry",
                attempt=retry_state.attempt_number,
                max_attempts=max_attempts,
                backoff_s=retry_state.next_action.sleep if retry_state.next_action else None,
                error=str(error),
            )

        return before_sleep

    @staticmethod
    def _normalize(
        raw: TransportResponse, method: str, url: str, elapsed_ms: float
    ) -> ApiResponseData:
        try:
            body = json.loads(raw.body_text)
        except (json.JSONDecodeError, TypeError):
            body = raw.body_text

        return ApiResponseData(
            status=raw.status,
            status_text=raw.status_text,
            body=body,
            raw_body=raw.body_text,
            headers={key.lower(): value for key, value in raw.headers.items()},
            response_time_ms=elapsed_ms,
            url=url,
            method=method,
        )


def _merge_options(
    options: ApiRequestOptions | None, overrides: dict[str, Any]
) -> ApiRequestOptions:
    if options is None:
        return ApiRequestOptions(**overrides)
    if overrides:
        return ApiRequestOptions.model_validate(
            {**options.model_dump(exclude_unset=True), **overrides}
        )
    return options
