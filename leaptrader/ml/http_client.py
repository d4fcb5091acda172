"""HTTP client for a remote ML scoring service."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from leaptrader.errors import CircuitBreakerTimeoutError, MLServiceClientError, MLServiceError
from leaptrader.models.ml import (
    BacktestRequest,
    BacktestResponse,
    EntryExitRequest,
    EntryExitResponse,
    StrikeScoringRequest,
    StrikeScoringResponse,
    WireModel,
)
from leaptrader.resilience import CircuitBreaker, CircuitBreakerRegistry

from .retry import RetryableMLError, RetryPolicy, parse_retry_after

logger = logging.getLogger(__name__)

USER_AGENT = "LEAPS-APP/1.0"
DEFAULT_TIMEOUT = 10.0
ML_BREAKER_NAME = "ml-engine"
ML_BREAKER_SETTINGS: Dict[str, Any] = {
    "failure_threshold": 5,
    "reset_timeout_ms": 30000,
    "success_threshold": 3,
    "timeout_ms": 10000,
    "ignored_errors": (MLServiceClientError,),
}

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class MLEngineHttpClient:
    """:class:`~leaptrader.ml.engine.MLEngine` backed by the ML service's JSON API.

    Every attempt goes through the ``ml-engine`` circuit breaker. 5xx
    responses, timeouts and 429s are retried by ``retry_policy``; other 4xx
    responses raise :class:`MLServiceClientError` immediately and do not
    count against the breaker. An open breaker fails fast without retrying.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        retry_policy: Optional[RetryPolicy] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"User-Agent": USER_AGENT}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout, transport=transport)
        self._retry = retry_policy or RetryPolicy()
        registry = breakers or CircuitBreakerRegistry()
        self._breaker: CircuitBreaker = registry.get_breaker(ML_BREAKER_NAME, **ML_BREAKER_SETTINGS)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def __aenter__(self) -> "MLEngineHttpClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def score_strike(self, request: StrikeScoringRequest) -> StrikeScoringResponse:
        return await self._post("/v1/score/strike", request, StrikeScoringResponse)

    async def score_entry_exit(self, request: EntryExitRequest) -> EntryExitResponse:
        return await self._post("/v1/score/entry_exit", request, EntryExitResponse)

    async def run_backtest(self, request: BacktestRequest) -> BacktestResponse:
        return await self._post("/v1/backtest/run", request, BacktestResponse)

    async def _post(self, path: str, request: WireModel, response_type: Type[ResponseT]) -> ResponseT:
        payload = request.to_payload()

        async def attempt() -> Any:
            try:
                return await self._breaker.execute(lambda: self._send(path, payload))
            except CircuitBreakerTimeoutError as exc:
                raise RetryableMLError(f"POST {path} timed out after {exc.timeout_ms}ms") from exc

        data = await self._retry.execute(attempt, description=f"POST {path}")
        try:
            return response_type.model_validate(data)
        except ValidationError as exc:
            raise MLServiceError(f"Malformed response from {path}: {exc}") from exc

    async def _send(self, path: str, payload: Dict[str, Any]) -> Any:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.TimeoutException as exc:
            raise RetryableMLError(f"POST {path} timed out") from exc
        except httpx.TransportError as exc:
            raise RetryableMLError(f"POST {path} failed: {exc}") from exc

        status = response.status_code
        if status == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(f"ML service rate limited {path}; retry after {retry_after or 'default'}s")
            raise RetryableMLError(f"POST {path} rate limited", status_code=status, retry_after=retry_after)
        if status >= 500:
            raise RetryableMLError(f"POST {path} returned {status}", status_code=status)
        if status >= 400:
            raise MLServiceClientError(f"POST {path} rejected with {status}: {response.text}", status_code=status)
        return response.json()


__all__ = ["ML_BREAKER_NAME", "MLEngineHttpClient", "USER_AGENT"]
