"""Circuit breaker guarding calls to remote collaborators.

State machine::

    CLOSED --(failure_threshold consecutive failures)--> OPEN
    OPEN --(first call once reset_timeout_ms elapsed)--> HALF_OPEN
    HALF_OPEN --(success_threshold consecutive successes)--> CLOSED
    HALF_OPEN --(any failure)--> OPEN

While OPEN, :meth:`CircuitBreaker.execute` raises
:class:`~leaptrader.errors.CircuitBreakerOpenError` without invoking the
operation. A call exceeding ``timeout_ms`` raises
:class:`~leaptrader.errors.CircuitBreakerTimeoutError` and counts as a failure.

Usage::

    registry = CircuitBreakerRegistry()
    breaker = registry.get_breaker("provider:yfinance", failure_threshold=3)
    chain = await breaker.execute(lambda: provider.get_option_chain("SPY"))
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from leaptrader.errors import CircuitBreakerOpenError, CircuitBreakerTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

IgnoredError = Union[str, Type[BaseException]]
Clock = Callable[[], float]


class CircuitState(Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class CircuitBreakerStats:
    """Point-in-time view of a breaker; timestamps are clock seconds."""

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    last_failure_time: Optional[float]
    next_attempt_time: Optional[float]
    failure_rate: float
    config: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_time": self.last_failure_time,
            "next_attempt_time": self.next_attempt_time,
            "failure_rate": self.failure_rate,
            "config": dict(self.config),
        }


StateChangeCallback = Callable[[CircuitState, CircuitState, CircuitBreakerStats], None]


@dataclass
class CircuitBreakerConfig:
    """
    Attributes:
        name: Breaker identity, also the registry key.
        failure_threshold: Consecutive failures that open the circuit.
        reset_timeout_ms: Time spent OPEN before a probe is admitted.
        success_threshold: Consecutive HALF_OPEN successes that close the circuit.
        timeout_ms: Per-call timeout, ``None`` disables it.
        ignored_errors: Exception types, or substrings of the error message,
            that neither count as failures nor reset the failure counter.
        on_state_change: Called with ``(old, new, stats)`` after each transition.
    """

    name: str
    failure_threshold: int = 5
    reset_timeout_ms: int = 60_000
    success_threshold: int = 3
    timeout_ms: Optional[int] = 30_000
    ignored_errors: Sequence[IgnoredError] = field(default_factory=tuple)
    on_state_change: Optional[StateChangeCallback] = None

    def __post_init__(self) -> None:
        if self.failure_threshold < 1 or self.success_threshold < 1:
            raise ValueError("Breaker thresholds must be at least 1")
        if self.reset_timeout_ms < 0:
            raise ValueError("reset_timeout_ms must be non-negative")

    def summary(self) -> Dict[str, Any]:
        return {
            "failure_threshold": self.failure_threshold,
            "reset_timeout_ms": self.reset_timeout_ms,
            "success_threshold": self.success_threshold,
            "timeout_ms": self.timeout_ms,
        }


class CircuitBreaker:
    """Fault-tolerant wrapper around awaitable operations."""

    def __init__(self, config: CircuitBreakerConfig, clock: Optional[Clock] = None) -> None:
        self.config = config
        self._clock = clock or time.time
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._in_flight_probes = 0
        self._last_failure_time: Optional[float] = None
        self._next_attempt_time: Optional[float] = None
        logger.info(
            f"Circuit breaker '{config.name}' initialized "
            f"(failure_threshold={config.failure_threshold}, reset_timeout_ms={config.reset_timeout_ms})"
        )

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def state(self) -> CircuitState:
        return self._state

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` under breaker protection and record its outcome."""

        probe = self._admit()
        try:
            result = await self._call_with_timeout(operation)
        except Exception as exc:
            self._record_failure(exc, probe)
            raise
        except BaseException:
            # Cancellation says nothing about the dependency's health.
            self._release_probe(probe)
            raise
        self._record_success(probe)
        return result

    def is_request_allowed(self) -> bool:
        with self._lock:
            if self._state is CircuitState.CLOSED:
                return True
            if self._state is CircuitState.HALF_OPEN:
                return self._probe_slots_available()
            return self._reset_timeout_elapsed()

    def get_stats(self) -> CircuitBreakerStats:
        with self._lock:
            return self._snapshot()

    def reset(self) -> None:
        logger.info(f"Circuit breaker '{self.name}' manually reset")
        with self._lock:
            pending = self._transition(CircuitState.CLOSED)
        self._notify(pending)

    def force_open(self) -> None:
        logger.warning(f"Circuit breaker '{self.name}' manually forced OPEN")
        with self._lock:
            pending = self._transition(CircuitState.OPEN)
        self._notify(pending)

    def _admit(self) -> bool:
        """Reserve a slot for the call; returns whether it is a HALF_OPEN probe."""

        pending = None
        with self._lock:
            if self._state is CircuitState.OPEN:
                if not self._reset_timeout_elapsed():
                    remaining = (self._next_attempt_time or 0.0) - self._clock()
                    logger.warning(
                        f"Request blocked by circuit breaker '{self.name}' (OPEN, next attempt in {remaining:.1f}s)"
                    )
                    raise CircuitBreakerOpenError(self.name, self._next_attempt_time)
                pending = self._transition(CircuitState.HALF_OPEN)

            probe = self._state is CircuitState.HALF_OPEN
            if probe:
                if not self._probe_slots_available():
                    raise CircuitBreakerOpenError(self.name, self._next_attempt_time)
                self._in_flight_probes += 1
        self._notify(pending)
        return probe

    async def _call_with_timeout(self, operation: Callable[[], Awaitable[T]]) -> T:
        timeout_ms = self.config.timeout_ms
        if not timeout_ms:
            return await operation()
        try:
            return await asyncio.wait_for(operation(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as exc:
            raise CircuitBreakerTimeoutError(self.name, timeout_ms) from exc

    def _record_success(self, probe: bool) -> None:
        pending = None
        with self._lock:
            if probe:
                self._in_flight_probes = max(0, self._in_flight_probes - 1)
            self._success_count += 1
            if self._state is CircuitState.HALF_OPEN:
                if self._success_count >= self.config.success_threshold:
                    pending = self._transition(CircuitState.CLOSED)
            elif self._state is CircuitState.CLOSED:
                self._failure_count = 0
            state = self._state
        logger.debug(f"Circuit breaker '{self.name}' call succeeded (state={state.value})")
        self._notify(pending)

    def _record_failure(self, error: Exception, probe: bool) -> None:
        if self._is_ignored(error):
            self._release_probe(probe)
            logger.debug(f"Circuit breaker '{self.name}' ignoring error: {error}")
            return

        pending = None
        with self._lock:
            if probe:
                self._in_flight_probes = max(0, self._in_flight_probes - 1)
            self._failure_count += 1
            self._last_failure_time = self._clock()
            logger.warning(
                f"Circuit breaker '{self.name}' recorded failure "
                f"{self._failure_count}/{self.config.failure_threshold} ({type(error).__name__}: {error})"
            )
            if self._state is CircuitState.HALF_OPEN:
                pending = self._transition(CircuitState.OPEN)
            elif self._state is CircuitState.CLOSED and self._failure_count >= self.config.failure_threshold:
                pending = self._transition(CircuitState.OPEN)
        self._notify(pending)

    def _release_probe(self, probe: bool) -> None:
        if probe:
            with self._lock:
                self._in_flight_probes = max(0, self._in_flight_probes - 1)

    def _is_ignored(self, error: BaseException) -> bool:
        message = str(error)
        for ignored in self.config.ignored_errors:
            if isinstance(ignored, str):
                if ignored in message:
                    return True
            elif isinstance(error, ignored):
                return True
        return False

    def _probe_slots_available(self) -> bool:
        return self._success_count + self._in_flight_probes < self.config.success_threshold

    def _reset_timeout_elapsed(self) -> bool:
        return self._next_attempt_time is None or self._clock() >= self._next_attempt_time

    def _transition(self, new_state: CircuitState) -> Optional[Tuple[CircuitState, CircuitState, CircuitBreakerStats]]:
        """Apply a transition; caller holds the lock and must pass the result to :meth:`_notify`."""

        old_state = self._state
        self._state = new_state
        if new_state is CircuitState.OPEN:
            self._next_attempt_time = self._clock() + self.config.reset_timeout_ms / 1000
            self._success_count = 0
            self._in_flight_probes = 0
        elif new_state is CircuitState.HALF_OPEN:
            self._success_count = 0
            self._in_flight_probes = 0
        else:
            self._failure_count = 0
            self._success_count = 0
            self._in_flight_probes = 0
            self._next_attempt_time = None

        logger.info(f"Circuit breaker '{self.name}' state changed {old_state.value} -> {new_state.value}")
        return old_state, new_state, self._snapshot()

    def _notify(self, pending: Optional[Tuple[CircuitState, CircuitState, CircuitBreakerStats]]) -> None:
        callback = self.config.on_state_change
        if pending is None or callback is None:
            return
        try:
            callback(*pending)
        except Exception:
            logger.exception(f"State change callback failed for circuit breaker '{self.name}'")

    def _snapshot(self) -> CircuitBreakerStats:
        total = self._failure_count + self._success_count
        return CircuitBreakerStats(
            name=self.name,
            state=self._state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            last_failure_time=self._last_failure_time,
            next_attempt_time=self._next_attempt_time,
            failure_rate=self._failure_count / total if total else 0.0,
            config=self.config.summary(),
        )


class CircuitBreakerRegistry:
    """Explicitly constructed store handing out one breaker per name."""

    def __init__(self, defaults: Optional[Dict[str, Any]] = None, clock: Optional[Clock] = None) -> None:
        self._defaults = dict(defaults or {})
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get_breaker(self, name: str, **overrides: Any) -> CircuitBreaker:
        """Return the breaker called ``name``, creating it on first use.

        ``overrides`` only apply when the breaker is created.
        """

        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                config = replace(CircuitBreakerConfig(name=name, **self._defaults), **overrides)
                breaker = CircuitBreaker(config, clock=self._clock)
                self._breakers[name] = breaker
                logger.info(f"New circuit breaker created: {name}")
            return breaker

    def all_stats(self) -> List[CircuitBreakerStats]:
        with self._lock:
            breakers = list(self._breakers.values())
        return [breaker.get_stats() for breaker in breakers]

    def reset_all(self) -> None:
        with self._lock:
            breakers = list(self._breakers.values())
        logger.info(f"Resetting all circuit breakers (count={len(breakers)})")
        for breaker in breakers:
            breaker.reset()

    def remove(self, name: str) -> bool:
        with self._lock:
            removed = self._breakers.pop(name, None) is not None
        if removed:
            logger.info(f"Circuit breaker removed: {name}")
        return removed

    def __contains__(self, name: object) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)


__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitBreakerStats",
    "CircuitState",
]
