"""API router for v1 endpoints."""

from fastapi import APIRouter

from futurecast.api import analysis, experts, scenarios

router = APIRouter()

router.include_router(experts.router, prefix="/experts", tags=["experts"])

router.include_router(scenarios.router, prefix="/scenarios", tags=["scenarios"])

router.include_router(analysis.router, prefix="/analysis", tags=["analysis"])
