"""Shared service instances for the API routes.

One instance of each per process. Tests swap them through
app.dependency_overrides.
"""

from functools import lru_cache

from futurecast.core.config import get_settings
from futurecast.db.store import MemoryResultStore, ResultStore
from futurecast.services.expert_prediction import ResilientPredictor
from futurecast.services.generator import STANDARD_PROFILE, generator_factory
from futurecast.services.pipeline import PipelineOrchestrator
from futurecast.services.prediction_state import PredictionState
from futurecast.services.progress import ProgressChannel


@lru_cache(maxsize=1)
def get_result_store() -> ResultStore:
    settings = get_settings()
    if settings.STORE_BACKEND == "supabase":
        from futurecast.db.supabase_store import SupabaseResultStore

        return SupabaseResultStore()
    return MemoryResultStore()


@lru_cache(maxsize=1)
def get_progress_channel() -> ProgressChannel:
    return ProgressChannel(queue_size=get_settings().SSE_QUEUE_SIZE)


@lru_cache(maxsize=1)
def get_prediction_state() -> PredictionState:
    return PredictionState()


@lru_cache(maxsize=1)
def get_predictor() -> ResilientPredictor:
    return ResilientPredictor.from_settings(get_settings(), state=get_prediction_state())


@lru_cache(maxsize=1)
def get_orchestrator() -> PipelineOrchestrator:
    settings = get_settings()
    return PipelineOrchestrator(
        store=get_result_store(),
        channel=get_progress_channel(),
        generator_factory=generator_factory(STANDARD_PROFILE, settings),
        concurrency=settings.PIPELINE_CONCURRENCY,
    )
