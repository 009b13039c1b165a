"""Tests for the five-phase analysis pipeline."""

import asyncio

import pytest

from futurecast.core.errors import UpstreamNetworkError, UpstreamRateLimited
from futurecast.core.schemas import (
    ACTIVE_STATUSES,
    AnalysisStatus,
    ExpertCreate,
    ScenarioCreate,
)
from futurecast.db.store import MemoryResultStore
from futurecast.services.pipeline import PipelineOrchestrator
from futurecast.services.progress import ProgressChannel
from tests.fakes.fake_generator import FakeGenerator, phase_response


class RecordingStore(MemoryResultStore):
    """Remembers the progress value of every accepted analysis write."""

    def __init__(self):
        super().__init__(seed_default_experts=False)
        self.progress_history: list[int] = []

    async def update_analysis(self, analysis_id, fields, only_if_status=None):
        updated = await super().update_analysis(analysis_id, fields, only_if_status)
        if updated is not None:
            self.progress_history.append(updated.progress)
        return updated


class StoppingStore(RecordingStore):
    """Flips the analysis to stopped around the first write whose fields match `when`."""

    def __init__(self, when, before=False):
        super().__init__()
        self.when = when
        self.before = before
        self.fired = False

    async def update_analysis(self, analysis_id, fields, only_if_status=None):
        trigger = not self.fired and self.when(fields)
        if trigger and self.before:
            await self._stop(analysis_id)
        updated = await super().update_analysis(analysis_id, fields, only_if_status)
        if trigger and not self.before:
            await self._stop(analysis_id)
        return updated

    async def _stop(self, analysis_id):
        self.fired = True
        await MemoryResultStore.update_analysis(
            self, analysis_id, {"status": AnalysisStatus.STOPPED}, only_if_status=ACTIVE_STATUSES
        )


PHASE_PROMPTS = {
    2: "Using the expert analyses below",
    3: "Evaluate the strategy for",
    4: "Evaluate how well",
    5: "Integrate all of the analyses",
}


def prompts_for(generator, phase):
    return [p for p in generator.prompts() if p.startswith(PHASE_PROMPTS[phase])]


async def setup_run(handler=phase_response, years=(2030, 2040), store=None):
    store = store or RecordingStore()
    await store.create_expert(ExpertCreate(name="A", role="Economist"))
    await store.create_expert(ExpertCreate(name="B", role="Climate scientist"))
    scenario = await store.create_scenario(
        ScenarioCreate(theme="Aging society", current_strategy="Expand abroad", target_years=list(years))
    )
    analysis = await store.create_analysis(scenario.id)

    channel = ProgressChannel(queue_size=1000)
    queue = channel.subscribe(analysis.id)
    generator = FakeGenerator(handler=handler)
    orchestrator = PipelineOrchestrator(
        store=store,
        channel=channel,
        generator_factory=lambda model: generator,
        concurrency=4,
    )
    return store, orchestrator, generator, analysis, queue


def drain(queue: asyncio.Queue) -> list[dict]:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


@pytest.mark.asyncio
async def test_two_years_two_experts_yields_four_phase_one_outcomes():
    store, orchestrator, generator, analysis, queue = await setup_run()

    final = await orchestrator.run(analysis.id)

    assert final.status == AnalysisStatus.COMPLETED
    assert final.progress == 100
    assert final.current_phase == 5
    assert len(final.partial_results.expert_analyses) == 4

    years = {yr.year: yr for yr in final.results.years}
    assert sorted(years) == [2030, 2040]
    for year_result in years.values():
        phase_one = year_result.phases[0]
        assert phase_one.phase == 1
        assert sorted(a.expert for a in phase_one.analyses) == ["A", "B"]
        assert [p.phase for p in year_result.phases] == [1, 2, 3, 4, 5]

    assert years[2030].phases[1].content == "Scenario for 2030"
    assert years[2040].phases[1].content == "Scenario for 2040"
    # Phases 3-5 are shared across years
    assert years[2030].phases[2].content == years[2040].phases[2].content

    # 4 expert analyses + 2 year scenarios + 3 single-call phases
    assert generator.call_count == 9
    assert final.markdown_report.startswith("# Futurecast AI Scenario Analysis Report")

    events = drain(queue)
    partial_types = [e["type"] for e in events if e["type"].startswith("partial_")]
    assert partial_types.count("partial_expert_analysis") == 4
    assert partial_types.count("partial_year_scenario") == 2
    assert partial_types.count("partial_phase_result") == 3
    assert events[-1] == {"type": "status", "data": {"status": "completed", "progress": 100}}


@pytest.mark.asyncio
async def test_phase_one_failure_leaves_year_short_one_expert():
    def handler(prompt, options):
        if prompt.startswith('You are "B"') and "Target year: 2040" in prompt:
            return UpstreamNetworkError("connection reset")
        return phase_response(prompt)

    store, orchestrator, generator, analysis, queue = await setup_run(handler)

    final = await orchestrator.run(analysis.id)

    assert final.status == AnalysisStatus.COMPLETED
    years = {yr.year: yr for yr in final.results.years}
    assert [a.expert for a in years[2040].phases[0].analyses] == ["A"]
    assert len(years[2030].phases[0].analyses) == 2

    assert len(final.results.failures) == 1
    failure = final.results.failures[0]
    assert failure["phase"] == 1
    assert failure["expert"] == "B"
    assert failure["year"] == 2040
    assert failure["kind"] == "network_error"

    logs = [e["data"] for e in drain(queue) if e["type"] == "log"]
    assert any(log["action"] == "error" and log["phase"] == 1 for log in logs)


@pytest.mark.asyncio
async def test_stop_during_phase_one_refuses_later_writes():
    holder = {}
    phase_one_calls = 0

    async def handler(prompt, options):
        nonlocal phase_one_calls
        if prompt.startswith('You are "'):
            phase_one_calls += 1
            if phase_one_calls == 4:
                await holder["store"].update_analysis(
                    holder["analysis_id"],
                    {"status": AnalysisStatus.STOPPED},
                    only_if_status=ACTIVE_STATUSES,
                )
        return phase_response(prompt)

    store, orchestrator, generator, analysis, queue = await setup_run(handler)
    holder.update(store=store, analysis_id=analysis.id)

    final = await orchestrator.run(analysis.id)

    assert final.status == AnalysisStatus.STOPPED
    assert final.current_phase == 1
    assert final.progress == 0
    assert final.results is None
    assert not any(p.startswith("Using the expert analyses below") for p in generator.prompts())

    events = drain(queue)
    assert not any(e["type"] == "partial_year_scenario" for e in events)
    assert events[-1]["data"]["status"] == "stopped"


@pytest.mark.asyncio
async def test_stop_after_phase_one_settles_skips_phase_two():
    # 2 years -> 6 steps; phase 1 completing is the first step
    store = StoppingStore(when=lambda fields: fields == {"progress": 16})
    store, orchestrator, generator, analysis, queue = await setup_run(store=store)

    final = await orchestrator.run(analysis.id)

    assert final.status == AnalysisStatus.STOPPED
    assert final.current_phase == 1
    assert final.progress == 16
    assert len(final.partial_results.expert_analyses) == 4
    assert generator.call_count == 4
    assert prompts_for(generator, 2) == []
    assert store.progress_history[-1] == 16

    events = drain(queue)
    assert not any(e["type"] == "partial_year_scenario" for e in events)
    assert events[-1]["data"]["status"] == "stopped"


@pytest.mark.asyncio
async def test_stop_after_phase_three_skips_phases_four_and_five():
    store = StoppingStore(when=lambda fields: fields == {"progress": 66})
    store, orchestrator, generator, analysis, queue = await setup_run(store=store)

    final = await orchestrator.run(analysis.id)

    assert final.status == AnalysisStatus.STOPPED
    assert final.current_phase == 3
    assert final.progress == 66
    assert [p.phase for p in final.partial_results.phase_results] == [3]
    assert len(prompts_for(generator, 3)) == 1
    assert prompts_for(generator, 4) == []
    assert prompts_for(generator, 5) == []
    assert final.results is None


@pytest.mark.asyncio
@pytest.mark.parametrize("phase", [3, 4, 5])
async def test_stop_at_single_call_phase_entry_issues_no_call(phase):
    store = StoppingStore(when=lambda fields: fields == {"current_phase": phase}, before=True)
    store, orchestrator, generator, analysis, queue = await setup_run(store=store)

    final = await orchestrator.run(analysis.id)

    assert final.status == AnalysisStatus.STOPPED
    assert final.current_phase == phase - 1
    assert final.results is None
    assert final.markdown_report is None
    for later in range(phase, 6):
        assert prompts_for(generator, later) == []


@pytest.mark.asyncio
async def test_already_stopped_analysis_is_not_run():
    store, orchestrator, generator, analysis, queue = await setup_run()
    await store.update_analysis(analysis.id, {"status": AnalysisStatus.STOPPED})

    final = await orchestrator.run(analysis.id)

    assert final.status == AnalysisStatus.STOPPED
    assert generator.call_count == 0


@pytest.mark.asyncio
async def test_progress_is_monotonic_and_bounded():
    store, orchestrator, generator, analysis, queue = await setup_run(years=(2030, 2035, 2040))

    await orchestrator.run(analysis.id)

    history = store.progress_history
    assert history == sorted(history)
    assert max(history) == 100
    assert all(0 <= p <= 100 for p in history)


@pytest.mark.asyncio
async def test_single_call_phase_failure_is_degraded_not_fatal():
    def handler(prompt, options):
        if prompt.startswith("Evaluate the strategy for"):
            return UpstreamRateLimited("quota")
        return phase_response(prompt)

    store, orchestrator, generator, analysis, queue = await setup_run(handler)

    final = await orchestrator.run(analysis.id)

    assert final.status == AnalysisStatus.COMPLETED
    phase_three = final.results.years[0].phases[2]
    assert phase_three.content.startswith("[Degraded]")
    assert [f["phase"] for f in final.results.failures] == [3]


@pytest.mark.asyncio
async def test_missing_scenario_marks_analysis_failed():
    store = MemoryResultStore(seed_default_experts=False)
    analysis = await store.create_analysis("no-such-scenario")
    orchestrator = PipelineOrchestrator(
        store=store,
        channel=ProgressChannel(),
        generator_factory=lambda model: FakeGenerator(handler=phase_response),
    )

    final = await orchestrator.run(analysis.id)

    assert final.status == AnalysisStatus.FAILED
    assert "not found" in final.error
    assert final.results.error == final.error


@pytest.mark.asyncio
async def test_unknown_analysis_returns_none():
    store = MemoryResultStore()
    orchestrator = PipelineOrchestrator(
        store=store, channel=ProgressChannel(), generator_factory=lambda model: FakeGenerator()
    )
    assert await orchestrator.run("missing") is None
