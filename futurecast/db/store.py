"""Result store interface and the in-memory backend."""

import asyncio
import uuid
from collections.abc import Iterable
from typing import Any, Protocol

from futurecast.core.logging import get_logger
from futurecast.core.schemas import (
    Analysis,
    AnalysisStatus,
    Expert,
    ExpertCreate,
    Scenario,
    ScenarioCreate,
    utc_now,
)

logger = get_logger(__name__)


class ResultStore(Protocol):
    """Durable store of experts, scenarios and analyses."""

    async def create_expert(self, data: ExpertCreate) -> Expert: ...

    async def get_experts(self) -> list[Expert]: ...

    async def delete_expert(self, expert_id: str) -> bool: ...

    async def create_scenario(self, data: ScenarioCreate) -> Scenario: ...

    async def get_scenario(self, scenario_id: str) -> Scenario | None: ...

    async def get_scenarios(self) -> list[Scenario]: ...

    async def create_analysis(self, scenario_id: str) -> Analysis: ...

    async def get_analysis(self, analysis_id: str) -> Analysis | None: ...

    async def update_analysis(
        self,
        analysis_id: str,
        fields: dict[str, Any],
        only_if_status: Iterable[AnalysisStatus] | None = None,
    ) -> Analysis | None:
        """
        Merge fields into an analysis and bump updated_at.

        Returns None if the analysis does not exist or its current status is not
        in only_if_status.
        """
        ...

    async def get_analyses_by_scenario(self, scenario_id: str) -> list[Analysis]: ...


DEFAULT_EXPERTS = (
    ExpertCreate(
        name="Environmental and natural scientist",
        role="Specialist in environmental science, climate change and sustainability",
        specialization="Environmental science, climate change, sustainability",
    ),
    ExpertCreate(
        name="AI specialist",
        role="Specialist in machine learning, data science and automation technology",
        specialization="Machine learning, data science, automation technology",
    ),
    ExpertCreate(
        name="Economist",
        role="Specialist in macroeconomics, financial markets and economic forecasting",
        specialization="Macroeconomics, financial markets, economic forecasting",
    ),
)


def new_id() -> str:
    return str(uuid.uuid4())


class MemoryResultStore:
    """
    Process-local ResultStore.

    Records are kept as model instances and handed out as copies, so callers
    can only change stored state through the store methods.
    """

    def __init__(self, seed_default_experts: bool = True):
        self._experts: dict[str, Expert] = {}
        self._scenarios: dict[str, Scenario] = {}
        self._analyses: dict[str, Analysis] = {}
        self._lock = asyncio.Lock()

        if seed_default_experts:
            for data in DEFAULT_EXPERTS:
                expert = Expert(id=new_id(), **data.model_dump())
                self._experts[expert.id] = expert

    # Experts

    async def create_expert(self, data: ExpertCreate) -> Expert:
        expert = Expert(id=new_id(), **data.model_dump())
        self._experts[expert.id] = expert
        logger.info(f"Created expert {expert.id} ({expert.name})")
        return expert.model_copy(deep=True)

    async def get_experts(self) -> list[Expert]:
        return [e.model_copy(deep=True) for e in self._experts.values()]

    async def delete_expert(self, expert_id: str) -> bool:
        return self._experts.pop(expert_id, None) is not None

    # Scenarios

    async def create_scenario(self, data: ScenarioCreate) -> Scenario:
        scenario = Scenario(id=new_id(), **data.model_dump())
        self._scenarios[scenario.id] = scenario
        logger.info(f"Created scenario {scenario.id} for years {scenario.target_years}")
        return scenario.model_copy(deep=True)

    async def get_scenario(self, scenario_id: str) -> Scenario | None:
        scenario = self._scenarios.get(scenario_id)
        return scenario.model_copy(deep=True) if scenario else None

    async def get_scenarios(self) -> list[Scenario]:
        return [s.model_copy(deep=True) for s in self._scenarios.values()]

    # Analyses

    async def create_analysis(self, scenario_id: str) -> Analysis:
        analysis = Analysis(id=new_id(), scenario_id=scenario_id)
        self._analyses[analysis.id] = analysis
        return analysis.model_copy(deep=True)

    async def get_analysis(self, analysis_id: str) -> Analysis | None:
        analysis = self._analyses.get(analysis_id)
        return analysis.model_copy(deep=True) if analysis else None

    async def update_analysis(
        self,
        analysis_id: str,
        fields: dict[str, Any],
        only_if_status: Iterable[AnalysisStatus] | None = None,
    ) -> Analysis | None:
        async with self._lock:
            existing = self._analyses.get(analysis_id)
            if existing is None:
                return None
            if only_if_status is not None and existing.status not in set(only_if_status):
                logger.debug(
                    f"Skipped update of analysis {analysis_id}: status is {existing.status.value}"
                )
                return None

            merged = {**existing.model_dump(), **fields, "updated_at": utc_now()}
            updated = Analysis.model_validate(merged)
            self._analyses[analysis_id] = updated
            return updated.model_copy(deep=True)

    async def get_analyses_by_scenario(self, scenario_id: str) -> list[Analysis]:
        return [
            a.model_copy(deep=True)
            for a in self._analyses.values()
            if a.scenario_id == scenario_id
        ]
