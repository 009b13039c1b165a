"""Resilient expert profile prediction.

predict() wraps one slow, unreliable generator call so the caller always gets a
usable ExpertPrediction within the hard deadline:

1. cache hit -> return (no breaker or deadline logic)
2. join an outstanding call for the same name; if it fails, fall through
3. open circuit breaker -> offline fallback
4. deadline-bounded generator call, registered as the in-flight call
5. offline fallback synthesis (cached like a real result)
"""

from __future__ import annotations

import asyncio

from futurecast.chains.predict_expert_profile import request_expert_prediction
from futurecast.core.config import Settings
from futurecast.core.errors import (
    ResponseValidationError,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnknown,
)
from futurecast.core.expert_fallback import synthesize_expert_prediction
from futurecast.core.logging import get_logger
from futurecast.core.schemas import ExpertPrediction
from futurecast.services.generator import PROFILES, TextGenerator, create_generator
from futurecast.services.prediction_state import (
    CircuitBreaker,
    PredictionCache,
    PredictionState,
)

logger = get_logger(__name__)

# Below this much remaining budget the call is not worth starting
MIN_REMAINING_S = 0.100
# Guard band between the call's own deadline and the hard deadline
DEADLINE_GUARD_S = 0.050


def _consume_exception(future: asyncio.Future) -> None:
    # Nobody may be waiting on a failed in-flight call; mark the error as seen
    if not future.cancelled():
        future.exception()


class ResilientPredictor:
    """Cache + in-flight dedup + circuit breaker + hard deadline around one generator."""

    def __init__(
        self,
        generator: TextGenerator,
        model: str,
        state: PredictionState | None = None,
        hard_deadline_s: float = 10.0,
        cache_ttl_s: float = 15 * 60,
        breaker_threshold: int = 2,
        breaker_reset_s: float = 10.0,
    ):
        self.generator = generator
        self.model = model
        self.state = state or PredictionState()
        self.hard_deadline_s = hard_deadline_s
        self._clock = self.state.clock
        self.cache = PredictionCache(self.state.cache, self._clock, cache_ttl_s)
        self.breaker = CircuitBreaker(
            self.state.breakers, self._clock, breaker_threshold, breaker_reset_s
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        generator: TextGenerator | None = None,
        state: PredictionState | None = None,
    ) -> ResilientPredictor:
        profile = PROFILES[settings.PREDICTION_PROFILE]
        return cls(
            generator=generator or create_generator(settings.PREDICTION_MODEL, profile, settings),
            model=settings.PREDICTION_MODEL,
            state=state,
            hard_deadline_s=settings.PREDICTION_HARD_DEADLINE_MS / 1000,
            cache_ttl_s=settings.PREDICTION_CACHE_TTL_SECONDS,
            breaker_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            breaker_reset_s=settings.CIRCUIT_BREAKER_RESET_SECONDS,
        )

    def _elapsed_ms(self, start: float) -> int:
        return int((self._clock() - start) * 1000)

    async def predict(self, expert_name: str) -> ExpertPrediction:
        """
        Predict an expert profile. Never raises (except on task cancellation).

        Args:
            expert_name: Expert name; also the cache, breaker and in-flight key

        Returns:
            ExpertPrediction, from the generator or synthesized offline
        """
        start = self._clock()
        try:
            return await self._predict(expert_name, start)
        except Exception:
            logger.exception(f"Unexpected prediction failure for {expert_name!r}, using fallback")
            return synthesize_expert_prediction(expert_name)

    async def _predict(self, key: str, start: float) -> ExpertPrediction:
        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"Prediction cache hit for {key!r} in {self._elapsed_ms(start)}ms")
            return cached

        shared = self.state.inflight.get(key)
        if shared is not None:
            logger.info(f"Joining in-flight prediction for {key!r}")
            try:
                result = await asyncio.shield(shared)
                logger.info(f"In-flight prediction for {key!r} resolved in {self._elapsed_ms(start)}ms")
                return result
            except UpstreamError as e:
                logger.info(f"In-flight prediction for {key!r} failed ({e.kind.value}), trying a new request")

        if self.breaker.is_open(key):
            return self._fallback(key, start, reason="circuit_open")

        return await self._call_with_deadline(key, start)

    async def _call_with_deadline(self, key: str, start: float) -> ExpertPrediction:
        # Another waiter may have started the retry while we were resuming
        existing = self.state.inflight.get(key)
        if existing is not None:
            try:
                return await asyncio.shield(existing)
            except UpstreamError:
                return self._fallback(key, start, reason="shared_retry_failed")

        remaining = self.hard_deadline_s - (self._clock() - start)
        if remaining <= MIN_REMAINING_S:
            return self._fallback(key, start, reason="deadline_exhausted")

        future: asyncio.Future[ExpertPrediction] = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_exception)
        self.state.inflight.set(key, future)

        timeout = min(remaining - DEADLINE_GUARD_S, self.generator.profile.timeout_s)
        logger.info(f"Requesting prediction for {key!r} with {timeout * 1000:.0f}ms budget")

        try:
            prediction = await asyncio.wait_for(
                request_expert_prediction(self.generator, key, self.model), timeout=timeout
            )
        except TimeoutError:
            error: UpstreamError = UpstreamTimeout(
                f"Prediction aborted at {timeout * 1000:.0f}ms hard deadline"
            )
        except UpstreamError as e:
            error = e
        except ResponseValidationError as e:
            error = UpstreamUnknown(f"Unusable prediction response: {e}")
        except asyncio.CancelledError:
            self._clear_inflight(key, future)
            if not future.done():
                future.set_exception(UpstreamUnknown("Prediction request cancelled"))
            raise
        else:
            prediction = self._complete(key, prediction)
            self.cache.put(key, prediction)
            self._clear_inflight(key, future)
            future.set_result(prediction)
            logger.info(f"Prediction for {key!r} succeeded in {self._elapsed_ms(start)}ms")
            return prediction

        if error.qualifies_for_breaker:
            self.breaker.record_failure(key, error.kind)
        self._clear_inflight(key, future)
        future.set_exception(error)
        logger.warning(f"Prediction for {key!r} failed: {error.kind.value}: {error}")
        return self._fallback(key, start, reason=error.kind.value)

    def _clear_inflight(self, key: str, future: asyncio.Future) -> None:
        if self.state.inflight.get(key) is future:
            self.state.inflight.delete(key)

    def _complete(self, key: str, prediction: ExpertPrediction) -> ExpertPrediction:
        """Fill fields the generator left blank from the offline profile."""
        if prediction.is_complete():
            return prediction
        offline = synthesize_expert_prediction(key)
        return prediction.model_copy(
            update={
                "role": prediction.role or offline.role,
                "specialization": prediction.specialization or offline.specialization,
                "sub_specializations": prediction.sub_specializations or offline.sub_specializations,
                "information_sources": prediction.information_sources or offline.information_sources,
                "research_focus": prediction.research_focus or offline.research_focus,
            }
        )

    def _fallback(self, key: str, start: float, reason: str) -> ExpertPrediction:
        prediction = synthesize_expert_prediction(key)
        self.cache.put(key, prediction)
        logger.info(
            f"Fallback prediction for {key!r} ({reason}) in {self._elapsed_ms(start)}ms"
        )
        return prediction
