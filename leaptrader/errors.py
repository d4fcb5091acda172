"""Exception hierarchy shared across the leaptrader packages."""

from __future__ import annotations

from typing import List, Optional, Sequence


class LeapTraderError(Exception):
    """Base class for all library errors."""


class AdapterError(LeapTraderError):
    """Base exception raised for data provider related failures."""


class RateLimitError(AdapterError):
    """Raised when a provider reports rate limiting errors."""


class DataNotAvailable(AdapterError):
    """Raised when requested data is not available from a provider."""


class AllProvidersFailedError(AdapterError):
    """Raised by the router once every configured provider has been exhausted."""

    def __init__(
        self,
        symbol: str,
        operation: str,
        failed_sources: Sequence[str],
        last_error: Optional[BaseException] = None,
    ) -> None:
        self.symbol = symbol
        self.operation = operation
        self.failed_sources: List[str] = list(failed_sources)
        self.last_error = last_error
        sources = ", ".join(self.failed_sources) or "none configured"
        detail = f"{type(last_error).__name__}: {last_error}" if last_error is not None else "no data returned"
        super().__init__(f"All providers failed for {operation}({symbol}) [{sources}]; last error: {detail}")


class CircuitBreakerError(LeapTraderError):
    """Base class for errors raised by a circuit breaker rather than the protected call."""

    def __init__(self, message: str, *, breaker: str) -> None:
        self.breaker = breaker
        super().__init__(message)


class CircuitBreakerOpenError(CircuitBreakerError):
    """Raised without calling the operation while the breaker is OPEN."""

    def __init__(self, breaker: str, next_attempt_time: Optional[float]) -> None:
        self.next_attempt_time = next_attempt_time
        super().__init__(
            f"Circuit breaker '{breaker}' is OPEN; next attempt allowed at {next_attempt_time}",
            breaker=breaker,
        )


class CircuitBreakerTimeoutError(CircuitBreakerError):
    """Raised when the protected call exceeds the breaker timeout."""

    def __init__(self, breaker: str, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"Circuit breaker '{breaker}' timed out after {timeout_ms}ms", breaker=breaker)


class MLServiceError(LeapTraderError):
    """Raised when the remote ML service cannot produce a response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class MLServiceClientError(MLServiceError):
    """4xx responses: the request itself is at fault, not the service health."""


__all__ = [
    "AdapterError",
    "AllProvidersFailedError",
    "CircuitBreakerError",
    "CircuitBreakerOpenError",
    "CircuitBreakerTimeoutError",
    "DataNotAvailable",
    "LeapTraderError",
    "MLServiceClientError",
    "MLServiceError",
    "RateLimitError",
]
