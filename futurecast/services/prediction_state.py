"""Shared state behind expert prediction: TTL cache, circuit breaker, in-flight map.

All three are keyed by expert name and live in plain KeyedStore objects so
tests can swap in their own maps and clock. Expiry is lazy: entries are checked
when read, there is no background sweep.

None of the methods here await. Callers rely on that: a check followed by an
update on the same key cannot interleave with another coroutine.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, Protocol, TypeVar

from futurecast.core.errors import BREAKER_QUALIFYING_KINDS, UpstreamErrorKind
from futurecast.core.logging import get_logger
from futurecast.core.schemas import ExpertPrediction

logger = get_logger(__name__)

V = TypeVar("V")

Clock = Callable[[], float]


class KeyedStore(Protocol[V]):
    def get(self, key: str) -> V | None: ...

    def set(self, key: str, value: V) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyedStore(Generic[V]):
    """Dict-backed KeyedStore."""

    def __init__(self) -> None:
        self._data: dict[str, V] = {}

    def get(self, key: str) -> V | None:
        return self._data.get(key)

    def set(self, key: str, value: V) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data


@dataclass
class PredictionCacheEntry:
    data: ExpertPrediction
    timestamp: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


@dataclass
class CircuitBreakerState:
    failure_count: int = 0
    last_failure_time: float = 0.0
    is_open: bool = False


@dataclass
class PredictionState:
    """Everything the predictor shares across requests."""

    cache: KeyedStore[PredictionCacheEntry] = field(default_factory=MemoryKeyedStore)
    inflight: KeyedStore[asyncio.Future] = field(default_factory=MemoryKeyedStore)
    breakers: KeyedStore[CircuitBreakerState] = field(default_factory=MemoryKeyedStore)
    clock: Clock = time.monotonic


class PredictionCache:
    """TTL cache over a KeyedStore, evicting expired entries on read."""

    def __init__(self, store: KeyedStore[PredictionCacheEntry], clock: Clock, ttl: float):
        self._store = store
        self._clock = clock
        self.ttl = ttl

    def get(self, key: str) -> ExpertPrediction | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            self._store.delete(key)
            logger.debug(f"Prediction cache entry expired for {key!r}")
            return None
        return entry.data

    def put(self, key: str, prediction: ExpertPrediction) -> None:
        self._store.set(
            key, PredictionCacheEntry(data=prediction, timestamp=self._clock(), ttl=self.ttl)
        )


class CircuitBreaker:
    """
    Per-key breaker.

    Opens after `failure_threshold` qualifying failures and closes again on the
    first check made more than `reset_after` seconds after the last failure.
    Successes do not reset the count.
    """

    def __init__(
        self,
        store: KeyedStore[CircuitBreakerState],
        clock: Clock,
        failure_threshold: int = 2,
        reset_after: float = 10.0,
    ):
        self._store = store
        self._clock = clock
        self.failure_threshold = failure_threshold
        self.reset_after = reset_after

    def is_open(self, key: str) -> bool:
        state = self._store.get(key)
        if state is None:
            return False

        if state.is_open and self._clock() - state.last_failure_time > self.reset_after:
            self._store.delete(key)
            logger.info(f"Circuit breaker reset for {key!r}")
            return False

        return state.is_open

    def record_failure(self, key: str, kind: UpstreamErrorKind) -> bool:
        """
        Count a failure against key if its kind qualifies.

        Returns:
            True if the breaker is open after this call
        """
        if kind not in BREAKER_QUALIFYING_KINDS:
            state = self._store.get(key)
            return bool(state and state.is_open)

        state = self._store.get(key) or CircuitBreakerState()
        state.failure_count += 1
        state.last_failure_time = self._clock()
        state.is_open = state.failure_count >= self.failure_threshold
        self._store.set(key, state)

        logger.info(
            f"Circuit breaker failure recorded for {key!r}: "
            f"kind={kind.value} count={state.failure_count} open={state.is_open}"
        )
        return state.is_open
