"""API endpoints for experts and expert profile prediction."""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from futurecast.api.deps import get_predictor, get_result_store
from futurecast.core.errors import UpstreamError, UpstreamErrorKind
from futurecast.core.logging import get_logger
from futurecast.core.schemas import (
    Expert,
    ExpertCreate,
    ExpertPrediction,
    PredictExpertRequest,
    PredictionErrorBody,
    PredictionErrorCode,
)
from futurecast.db.store import ResultStore
from futurecast.services.expert_prediction import ResilientPredictor

logger = get_logger(__name__)

router = APIRouter()

_ERROR_RESPONSES: dict[UpstreamErrorKind, tuple[int, PredictionErrorCode, str]] = {
    UpstreamErrorKind.RATE_LIMITED: (
        429,
        PredictionErrorCode.QUOTA_EXCEEDED,
        "The AI service quota has been exceeded. Please try again later.",
    ),
    UpstreamErrorKind.AUTH_FAILED: (
        401,
        PredictionErrorCode.AUTH_FAILED,
        "The AI service rejected the API key.",
    ),
    UpstreamErrorKind.NETWORK_ERROR: (
        503,
        PredictionErrorCode.NETWORK_ERROR,
        "Could not reach the AI service. Check the network connection.",
    ),
    UpstreamErrorKind.TIMED_OUT: (
        503,
        PredictionErrorCode.NETWORK_ERROR,
        "The AI service did not respond in time.",
    ),
}


def _prediction_error(status_code: int, code: PredictionErrorCode, message: str) -> JSONResponse:
    body = PredictionErrorBody(message=message, code=code)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@router.get("", response_model=list[Expert])
async def list_experts(store: ResultStore = Depends(get_result_store)) -> list[Expert]:
    try:
        return await store.get_experts()
    except Exception:
        logger.exception("Failed to fetch experts")
        raise HTTPException(status_code=500, detail="Failed to fetch experts")


@router.post("", response_model=Expert, status_code=201)
async def create_expert(
    request: ExpertCreate, store: ResultStore = Depends(get_result_store)
) -> Expert:
    """Create an expert from a (possibly predicted) profile."""
    if not request.name.strip():
        raise HTTPException(status_code=400, detail="Expert name is required")
    try:
        return await store.create_expert(request)
    except Exception:
        logger.exception("Failed to create expert")
        raise HTTPException(status_code=500, detail="Failed to create expert")


@router.delete("/{expert_id}")
async def delete_expert(expert_id: str, store: ResultStore = Depends(get_result_store)) -> dict:
    try:
        deleted = await store.delete_expert(expert_id)
    except Exception:
        logger.exception(f"Failed to delete expert {expert_id}")
        raise HTTPException(status_code=500, detail="Failed to delete expert")

    if not deleted:
        raise HTTPException(status_code=404, detail="Expert not found")
    return {"success": True}


@router.post("/predict", response_model=ExpertPrediction)
async def predict_expert(
    request: PredictExpertRequest,
    predictor: ResilientPredictor = Depends(get_predictor),
):
    """
    Predict a profile for an expert name.

    Always answers within the predictor's hard deadline; when the AI service is
    slow or failing the profile is synthesized offline from the name.

    Returns:
        ExpertPrediction

    Raises:
        HTTPException 400: If the name is blank
    """
    name = request.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Expert name is required")

    try:
        prediction = await predictor.predict(name)
    # ResilientPredictor falls back instead of raising; a predictor injected
    # through get_predictor without that layer surfaces upstream errors here
    except UpstreamError as e:
        status_code, code, message = _ERROR_RESPONSES.get(
            e.kind,
            (500, PredictionErrorCode.SERVICE_ERROR, "The AI service returned an error."),
        )
        logger.warning(f"Prediction for {name!r} failed: {e.kind.value}: {e}")
        return _prediction_error(status_code, code, message)
    except Exception:
        logger.exception(f"Prediction for {name!r} failed")
        return _prediction_error(
            500, PredictionErrorCode.SERVICE_ERROR, "Failed to predict the expert profile."
        )

    if not prediction.has_content():
        return _prediction_error(
            422, PredictionErrorCode.NO_CONTENT, "No usable profile could be produced for this name."
        )
    return prediction
