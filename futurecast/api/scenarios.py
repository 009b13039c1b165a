"""API endpoints for scenarios."""

from fastapi import APIRouter, Depends, HTTPException

from futurecast.api.deps import get_result_store
from futurecast.core.config import get_settings
from futurecast.core.logging import get_logger
from futurecast.core.schemas import Analysis, Scenario, ScenarioCreate
from futurecast.db.store import ResultStore

logger = get_logger(__name__)

router = APIRouter()


@router.post("", response_model=Scenario, status_code=201)
async def create_scenario(
    request: ScenarioCreate, store: ResultStore = Depends(get_result_store)
) -> Scenario:
    """
    Create a scenario.

    Target years arrive sorted and deduplicated; a request without a model
    uses DEFAULT_MODEL.
    """
    if "model" not in request.model_fields_set:
        request = request.model_copy(update={"model": get_settings().DEFAULT_MODEL})
    try:
        return await store.create_scenario(request)
    except Exception:
        logger.exception("Failed to create scenario")
        raise HTTPException(status_code=500, detail="Failed to create scenario")


@router.get("", response_model=list[Scenario])
async def list_scenarios(store: ResultStore = Depends(get_result_store)) -> list[Scenario]:
    try:
        return await store.get_scenarios()
    except Exception:
        logger.exception("Failed to fetch scenarios")
        raise HTTPException(status_code=500, detail="Failed to fetch scenarios")


@router.get("/{scenario_id}", response_model=Scenario)
async def get_scenario(scenario_id: str, store: ResultStore = Depends(get_result_store)) -> Scenario:
    try:
        scenario = await store.get_scenario(scenario_id)
    except Exception:
        logger.exception(f"Failed to fetch scenario {scenario_id}")
        raise HTTPException(status_code=500, detail="Failed to fetch scenario")

    if scenario is None:
        raise HTTPException(status_code=404, detail="Scenario not found")
    return scenario


@router.get("/{scenario_id}/analyses", response_model=list[Analysis])
async def list_scenario_analyses(
    scenario_id: str, store: ResultStore = Depends(get_result_store)
) -> list[Analysis]:
    try:
        return await store.get_analyses_by_scenario(scenario_id)
    except Exception:
        logger.exception(f"Failed to fetch analyses for scenario {scenario_id}")
        raise HTTPException(status_code=500, detail="Failed to fetch analyses")
