"""Supabase-backed ResultStore.

Tables: experts, scenarios, analyses, with snake_case columns matching the
model fields. results and partial_results are jsonb columns. The supabase
client is synchronous, so every query runs in a worker thread.
"""

import asyncio
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel
from supabase import Client

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
from futurecast.db.store import new_id
from futurecast.db.supabase_client import get_supabase

logger = get_logger(__name__)


def _to_row(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, AnalysisStatus):
        return value.value
    if isinstance(value, list):
        return [_to_row(v) for v in value]
    return value


class SupabaseResultStore:
    def __init__(self, client: Client | None = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    async def _execute(self, query) -> list[dict[str, Any]]:
        response = await asyncio.to_thread(query.execute)
        return response.data or []

    # Experts

    async def create_expert(self, data: ExpertCreate) -> Expert:
        expert = Expert(id=new_id(), **data.model_dump())
        try:
            rows = await self._execute(
                self.client.table("experts").insert(expert.model_dump(mode="json"))
            )
        except Exception as e:
            logger.error(f"Failed to create expert {expert.name}: {e}")
            raise
        return Expert.model_validate(rows[0]) if rows else expert

    async def get_experts(self) -> list[Expert]:
        rows = await self._execute(self.client.table("experts").select("*").order("created_at"))
        return [Expert.model_validate(row) for row in rows]

    async def delete_expert(self, expert_id: str) -> bool:
        rows = await self._execute(self.client.table("experts").delete().eq("id", expert_id))
        return bool(rows)

    # Scenarios

    async def create_scenario(self, data: ScenarioCreate) -> Scenario:
        scenario = Scenario(id=new_id(), **data.model_dump())
        try:
            rows = await self._execute(
                self.client.table("scenarios").insert(scenario.model_dump(mode="json"))
            )
        except Exception as e:
            logger.error(f"Failed to create scenario: {e}")
            raise
        return Scenario.model_validate(rows[0]) if rows else scenario

    async def get_scenario(self, scenario_id: str) -> Scenario | None:
        rows = await self._execute(
            self.client.table("scenarios").select("*").eq("id", scenario_id).limit(1)
        )
        return Scenario.model_validate(rows[0]) if rows else None

    async def get_scenarios(self) -> list[Scenario]:
        rows = await self._execute(self.client.table("scenarios").select("*").order("created_at"))
        return [Scenario.model_validate(row) for row in rows]

    # Analyses

    async def create_analysis(self, scenario_id: str) -> Analysis:
        analysis = Analysis(id=new_id(), scenario_id=scenario_id)
        rows = await self._execute(
            self.client.table("analyses").insert(analysis.model_dump(mode="json"))
        )
        return Analysis.model_validate(rows[0]) if rows else analysis

    async def get_analysis(self, analysis_id: str) -> Analysis | None:
        rows = await self._execute(
            self.client.table("analyses").select("*").eq("id", analysis_id).limit(1)
        )
        return Analysis.model_validate(rows[0]) if rows else None

    async def update_analysis(
        self,
        analysis_id: str,
        fields: dict[str, Any],
        only_if_status: Iterable[AnalysisStatus] | None = None,
    ) -> Analysis | None:
        row = {key: _to_row(value) for key, value in fields.items()}
        row["updated_at"] = utc_now().isoformat()

        query = self.client.table("analyses").update(row).eq("id", analysis_id)
        if only_if_status is not None:
            query = query.in_("status", [status.value for status in only_if_status])

        try:
            rows = await self._execute(query)
        except Exception as e:
            logger.error(f"Failed to update analysis {analysis_id}: {e}")
            raise
        return Analysis.model_validate(rows[0]) if rows else None

    async def get_analyses_by_scenario(self, scenario_id: str) -> list[Analysis]:
        rows = await self._execute(
            self.client.table("analyses")
            .select("*")
            .eq("scenario_id", scenario_id)
            .order("created_at")
        )
        return [Analysis.model_validate(row) for row in rows]
