"""Tests for the HTTP API."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from futurecast.api.deps import (
    get_orchestrator,
    get_predictor,
    get_progress_channel,
    get_result_store,
)
from futurecast.core.errors import UpstreamAuthFailed, UpstreamRateLimited
from futurecast.core.expert_fallback import synthesize_expert_prediction
from futurecast.core.schemas import AnalysisStatus, ExpertPrediction
from futurecast.db.store import MemoryResultStore
from futurecast.main import app
from futurecast.services.expert_prediction import ResilientPredictor
from futurecast.services.pipeline import PipelineOrchestrator
from futurecast.services.prediction_state import PredictionState
from futurecast.services.progress import ProgressChannel
from tests.fakes.fake_generator import PREDICTION_JSON, FakeGenerator, ManualClock, phase_response


@pytest.fixture
def store():
    return MemoryResultStore()


@pytest.fixture
def client(store):
    channel = ProgressChannel()
    generator = FakeGenerator(handler=phase_response)
    orchestrator = PipelineOrchestrator(
        store=store, channel=channel, generator_factory=lambda model: generator
    )
    predictor = ResilientPredictor(
        FakeGenerator(default=PREDICTION_JSON),
        model="gpt-4o-mini",
        state=PredictionState(clock=ManualClock()),
    )

    app.dependency_overrides[get_result_store] = lambda: store
    app.dependency_overrides[get_progress_channel] = lambda: channel
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_predictor] = lambda: predictor
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_scenario(client, years=(2030,)) -> str:
    response = client.post(
        "/v1/scenarios",
        json={"theme": "Aging society", "currentStrategy": "Expand abroad", "targetYears": list(years)},
    )
    assert response.status_code == 201
    return response.json()["id"]


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_list_create_delete_experts(client):
    assert len(client.get("/v1/experts").json()) == 3

    created = client.post("/v1/experts", json={"name": "Futurist", "role": "Trend scout"})
    assert created.status_code == 201
    expert_id = created.json()["id"]
    assert created.json()["expertiseLevel"] == "expert"

    assert client.delete(f"/v1/experts/{expert_id}").status_code == 200
    assert client.delete(f"/v1/experts/{expert_id}").status_code == 404


def test_create_expert_rejects_blank_name(client):
    response = client.post("/v1/experts", json={"name": "   ", "role": "Trend scout"})
    assert response.status_code == 400


def test_predict_returns_camel_case_profile(client):
    response = client.post("/v1/experts/predict", json={"name": "Quantum Computing Lead"})

    assert response.status_code == 200
    data = response.json()
    assert data["expertiseLevel"] == "senior"
    assert data["subSpecializations"] == ["Error correction", "Quantum networking"]


def test_predict_rejects_blank_name(client):
    response = client.post("/v1/experts/predict", json={"name": "  "})
    assert response.status_code == 400


@pytest.mark.parametrize(
    "error, status_code, code",
    [
        (UpstreamRateLimited("quota"), 429, "QUOTA_EXCEEDED"),
        (UpstreamAuthFailed("key"), 401, "AUTH_FAILED"),
    ],
)
def test_predict_maps_errors_from_injected_predictor(client, error, status_code, code):
    predictor = MagicMock()
    predictor.predict = AsyncMock(side_effect=error)
    app.dependency_overrides[get_predictor] = lambda: predictor

    response = client.post("/v1/experts/predict", json={"name": "X"})

    assert response.status_code == status_code
    assert response.json()["code"] == code
    assert response.json()["message"]


def test_predict_upstream_failure_answers_with_offline_profile(client):
    predictor = ResilientPredictor(
        FakeGenerator(default=UpstreamRateLimited("quota")),
        model="gpt-4o-mini",
        state=PredictionState(clock=ManualClock()),
    )
    app.dependency_overrides[get_predictor] = lambda: predictor

    response = client.post("/v1/experts/predict", json={"name": "Economist"})

    assert response.status_code == 200
    expected = synthesize_expert_prediction("Economist").model_dump(mode="json", by_alias=True)
    assert response.json() == expected


def test_predict_empty_profile_is_no_content(client):
    predictor = MagicMock()
    predictor.predict = AsyncMock(return_value=ExpertPrediction())
    app.dependency_overrides[get_predictor] = lambda: predictor

    response = client.post("/v1/experts/predict", json={"name": "X"})

    assert response.status_code == 422
    assert response.json()["code"] == "NO_CONTENT"


def test_create_and_get_scenario(client):
    scenario_id = _create_scenario(client, years=(2040, 2030, 2040))

    response = client.get(f"/v1/scenarios/{scenario_id}")

    assert response.status_code == 200
    assert response.json()["targetYears"] == [2030, 2040]
    assert response.json()["characterCount"] == 1000
    assert client.get("/v1/scenarios/missing").status_code == 404


def test_start_requires_scenario_id(client):
    assert client.post("/v1/analysis/start", json={}).status_code == 400
    assert client.post("/v1/analysis/start", json={"scenarioId": "missing"}).status_code == 404


def test_start_runs_pipeline_and_report_downloads(client):
    scenario_id = _create_scenario(client)

    started = client.post("/v1/analysis/start", json={"scenarioId": scenario_id})
    assert started.status_code == 200
    assert started.json()["status"] == "started"
    analysis_id = started.json()["analysisId"]

    # TestClient runs background tasks before returning
    analysis = client.get(f"/v1/analysis/{analysis_id}").json()
    assert analysis["status"] == "completed"
    assert analysis["progress"] == 100
    assert len(analysis["partialResults"]["expertAnalyses"]) == 3

    download = client.get(f"/v1/analysis/{analysis_id}/download")
    assert download.status_code == 200
    assert download.headers["content-type"].startswith("text/markdown")
    assert (
        download.headers["content-disposition"]
        == f'attachment; filename="future-scenario-analysis-{analysis_id}.md"'
    )
    assert "## 2030 future scenario" in download.text

    assert len(client.get(f"/v1/scenarios/{scenario_id}/analyses").json()) == 1
    assert client.post(f"/v1/analysis/{analysis_id}/stop").status_code == 409


def test_stop_pending_analysis(client, store):
    scenario_id = _create_scenario(client)
    analysis = client.portal.call(store.create_analysis, scenario_id)

    response = client.post(f"/v1/analysis/{analysis.id}/stop")

    assert response.status_code == 200
    assert response.json() == {"analysisId": analysis.id, "status": "stopped"}


def test_download_without_report_is_404(client, store):
    analysis = client.portal.call(store.create_analysis, "s1")
    assert client.get(f"/v1/analysis/{analysis.id}/download").status_code == 404
    assert client.get("/v1/analysis/missing").status_code == 404


def test_events_for_finished_analysis_send_final_status(client, store):
    analysis = client.portal.call(store.create_analysis, "s1")
    client.portal.call(
        store.update_analysis, analysis.id, {"status": AnalysisStatus.COMPLETED, "progress": 100}
    )

    response = client.get(f"/v1/analysis/{analysis.id}/events")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.text.startswith(": SSE connection established\n\n")
    assert 'data: {"type": "status", "data": {"status": "completed", "progress": 100}}' in response.text
