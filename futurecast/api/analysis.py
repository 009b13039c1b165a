"""API endpoints for running, stopping, streaming and downloading analyses."""

import asyncio
import json

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import Response, StreamingResponse

from futurecast.api.deps import get_orchestrator, get_progress_channel, get_result_store
from futurecast.core.config import get_settings
from futurecast.core.logging import get_logger
from futurecast.core.schemas import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Analysis,
    AnalysisStatus,
    StartAnalysisRequest,
    StartAnalysisResponse,
    StopAnalysisResponse,
)
from futurecast.db.store import ResultStore
from futurecast.services.pipeline import PipelineOrchestrator
from futurecast.services.progress import ProgressChannel

logger = get_logger(__name__)

router = APIRouter()

_TERMINAL_VALUES = {status.value for status in TERMINAL_STATUSES}


@router.post("/start", response_model=StartAnalysisResponse)
async def start_analysis(
    request: StartAnalysisRequest,
    background_tasks: BackgroundTasks,
    store: ResultStore = Depends(get_result_store),
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> StartAnalysisResponse:
    """
    Create an analysis for a scenario and run the pipeline in the background.

    Raises:
        HTTPException 400: If scenarioId is missing
        HTTPException 404: If the scenario does not exist
    """
    if not request.scenario_id:
        raise HTTPException(status_code=400, detail="Scenario ID is required")

    try:
        scenario = await store.get_scenario(request.scenario_id)
        if scenario is None:
            raise HTTPException(status_code=404, detail="Scenario not found")

        analysis = await store.create_analysis(scenario.id)
        background_tasks.add_task(orchestrator.run, analysis.id)

        logger.info(f"Started analysis {analysis.id} for scenario {scenario.id}")
        return StartAnalysisResponse(analysis_id=analysis.id)

    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Failed to start analysis for scenario {request.scenario_id}")
        raise HTTPException(status_code=500, detail="Failed to start analysis")


async def _load_analysis(store: ResultStore, analysis_id: str) -> Analysis:
    try:
        analysis = await store.get_analysis(analysis_id)
    except Exception:
        logger.exception(f"Failed to fetch analysis {analysis_id}")
        raise HTTPException(status_code=500, detail="Failed to fetch analysis")
    if analysis is None:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return analysis


@router.get("/{analysis_id}", response_model=Analysis)
async def get_analysis(analysis_id: str, store: ResultStore = Depends(get_result_store)) -> Analysis:
    return await _load_analysis(store, analysis_id)


@router.post("/{analysis_id}/stop", response_model=StopAnalysisResponse)
async def stop_analysis(
    analysis_id: str, store: ResultStore = Depends(get_result_store)
) -> StopAnalysisResponse:
    """
    Request a cooperative stop. The running pipeline notices at its next phase
    boundary and makes no further writes.

    Raises:
        HTTPException 404: If the analysis does not exist
        HTTPException 409: If the analysis already finished
    """
    analysis = await _load_analysis(store, analysis_id)
    if analysis.is_terminal:
        raise HTTPException(
            status_code=409, detail=f"Analysis already {analysis.status.value}"
        )

    updated = await store.update_analysis(
        analysis_id, {"status": AnalysisStatus.STOPPED}, only_if_status=ACTIVE_STATUSES
    )
    if updated is None:
        # Finished between the read and the guarded write
        raise HTTPException(status_code=409, detail="Analysis already finished")

    logger.info(f"Stop requested for analysis {analysis_id}")
    return StopAnalysisResponse(analysis_id=analysis_id, status=updated.status)


@router.get("/{analysis_id}/download")
async def download_report(analysis_id: str, store: ResultStore = Depends(get_result_store)) -> Response:
    analysis = await _load_analysis(store, analysis_id)
    if not analysis.markdown_report:
        raise HTTPException(status_code=404, detail="Report not found")

    return Response(
        content=analysis.markdown_report,
        media_type="text/markdown; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="future-scenario-analysis-{analysis_id}.md"'
        },
    )


def _sse(event: dict) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False, default=str)}\n\n"


async def _event_stream(
    channel: ProgressChannel,
    analysis_id: str,
    queue: asyncio.Queue,
    ping_interval: float,
    initial_status: dict | None = None,
):
    """
    SSE format:
    : comment (connect notice, keep-alive)

    data: {"type": ..., "data": {...}}

    The stream ends after a terminal status event.
    """
    try:
        yield ": SSE connection established\n\n"
        if initial_status is not None:
            yield _sse({"type": "status", "data": initial_status})
            return

        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=ping_interval)
            except TimeoutError:
                yield ": ping\n\n"
                continue

            yield _sse(event)
            if event["type"] == "status" and event["data"].get("status") in _TERMINAL_VALUES:
                return
    finally:
        channel.unsubscribe(analysis_id, queue)


@router.get("/{analysis_id}/events")
async def stream_analysis_events(
    analysis_id: str,
    store: ResultStore = Depends(get_result_store),
    channel: ProgressChannel = Depends(get_progress_channel),
) -> StreamingResponse:
    """
    Stream progress events for an analysis as server-sent events.

    Live only: events published before the client connected are not replayed.
    A finished analysis gets its final status and the stream closes.
    """
    analysis = await _load_analysis(store, analysis_id)
    queue = channel.subscribe(analysis_id)

    initial_status = None
    if analysis.is_terminal:
        initial_status = {"status": analysis.status.value, "progress": analysis.progress}

    return StreamingResponse(
        _event_stream(
            channel,
            analysis_id,
            queue,
            get_settings().SSE_PING_INTERVAL_SECONDS,
            initial_status,
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
