"""Five-phase, multi-year scenario analysis pipeline.

Phase 1 fans out over (expert, year), phase 2 over years, both through one
ConcurrencyLimiter. Phases 3-5 are single calls over everything before them.

Stop is cooperative: the stop request flips the stored status to `stopped`;
the run notices at phase boundaries and every store write it makes is
conditioned on the analysis still being pending or running, so a stopped,
failed or completed record is never touched again.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from futurecast.chains._phase_common import LONG_TERM_OFFSET_YEARS, PHASE_TITLES, PhaseOutput
from futurecast.chains.analyze_as_expert import analyze_as_expert
from futurecast.chains.evaluate_strategic_alignment import evaluate_strategic_alignment
from futurecast.chains.review_long_term import review_long_term
from futurecast.chains.simulate_final_scenario import simulate_final_scenario
from futurecast.chains.synthesize_year_scenario import synthesize_year_scenario
from futurecast.core.concurrency import ConcurrencyLimiter
from futurecast.core.errors import (
    FatalPipelineError,
    PartialPipelineFailure,
    ResponseValidationError,
    UpstreamError,
)
from futurecast.core.logging import analysis_context, get_logger, log_with_context
from futurecast.core.report import render_markdown_report
from futurecast.core.schemas import (
    ACTIVE_STATUSES,
    Analysis,
    AnalysisResults,
    AnalysisStatus,
    Expert,
    ExpertAnalysis,
    PartialExpertAnalysis,
    PartialPhaseResult,
    PartialResults,
    PartialYearScenario,
    PhaseResult,
    Scenario,
    YearResult,
    utc_now,
)
from futurecast.db.store import ResultStore
from futurecast.services.generator import GenerationOptions, GeneratorFactory, TextGenerator
from futurecast.services.progress import AnalysisLogPublisher, ProgressChannel

logger = get_logger(__name__)

ReportRenderer = Callable[[Scenario, list[YearResult]], str]


class _TrackedGenerator:
    """Publishes api_request/api_response log events around each call."""

    def __init__(self, inner: TextGenerator, log: AnalysisLogPublisher, phase: int, endpoint: str):
        self.inner = inner
        self.profile = inner.profile
        self.log = log
        self.phase = phase
        self.endpoint = endpoint

    async def generate(self, prompt: str, options: GenerationOptions) -> str:
        self.log.api_request(self.phase, self.endpoint, len(prompt), options.model)
        try:
            text = await self.inner.generate(prompt, options)
        except UpstreamError as e:
            self.log.api_response(self.phase, self.endpoint, False, error=str(e))
            raise
        self.log.api_response(self.phase, self.endpoint, True, len(text))
        return text


class PipelineOrchestrator:
    """Runs analyses; holds the collaborators shared by every run."""

    def __init__(
        self,
        store: ResultStore,
        channel: ProgressChannel,
        generator_factory: GeneratorFactory,
        concurrency: int = 4,
        renderer: ReportRenderer = render_markdown_report,
    ):
        self.store = store
        self.channel = channel
        self.generator_factory = generator_factory
        self.concurrency = concurrency
        self.renderer = renderer

    async def run(self, analysis_id: str) -> Analysis | None:
        """
        Run the full pipeline for an analysis.

        Never raises for pipeline errors: they end up in the stored record as
        status `failed`.

        Returns:
            The analysis record as it stands when the run ends, or None if it
            does not exist
        """
        with analysis_context(analysis_id):
            return await self._run(analysis_id)

    async def _run(self, analysis_id: str) -> Analysis | None:
        analysis = await self.store.get_analysis(analysis_id)
        if analysis is None:
            logger.warning(f"Analysis {analysis_id} not found, nothing to run")
            return None
        if analysis.is_terminal:
            logger.info(f"Analysis {analysis_id} already {analysis.status.value}, not starting")
            return analysis

        run = _PipelineRun(self, analysis)
        try:
            scenario = await self.store.get_scenario(analysis.scenario_id)
            if scenario is None:
                raise FatalPipelineError(f"Scenario {analysis.scenario_id} not found")
            experts = await self.store.get_experts()
            await run.execute(scenario, experts)
        except Exception as e:
            logger.exception(f"Analysis {analysis_id} failed")
            await run.fail(str(e))

        final = await self.store.get_analysis(analysis_id)
        if final is not None:
            self.channel.publish(
                analysis_id,
                "status",
                {"status": final.status.value, "progress": final.progress},
            )
        return final


class _PipelineRun:
    """State of one analysis run."""

    def __init__(self, orchestrator: PipelineOrchestrator, analysis: Analysis):
        self.store = orchestrator.store
        self.channel = orchestrator.channel
        self.generator_factory = orchestrator.generator_factory
        self.renderer = orchestrator.renderer
        self.limiter = ConcurrencyLimiter(orchestrator.concurrency)

        self.analysis_id = analysis.id
        self.log = AnalysisLogPublisher(self.channel, analysis.id)
        self.partial: PartialResults = analysis.partial_results.model_copy(deep=True)
        self.failures: list[PartialPipelineFailure] = []

        self.progress = analysis.progress
        self.done_steps = 0
        self.total_steps = 1

        # Set once a guarded write is refused: the record went terminal under us
        self.halted = False
        self._lock = asyncio.Lock()

    # -- store writes ------------------------------------------------------

    async def _write_locked(self, fields: dict[str, Any]) -> bool:
        updated = await self.store.update_analysis(
            self.analysis_id, fields, only_if_status=ACTIVE_STATUSES
        )
        if updated is None:
            self.halted = True
            return False
        return True

    async def _write(self, fields: dict[str, Any]) -> bool:
        async with self._lock:
            if self.halted:
                return False
            return await self._write_locked(fields)

    async def _advance(self, steps: int = 1) -> None:
        async with self._lock:
            if self.halted:
                return
            self.done_steps = min(self.done_steps + steps, self.total_steps)
            progress = min(100, (100 * self.done_steps) // self.total_steps)
            # Never move backwards, even against a progress value restored from the record
            self.progress = max(self.progress, progress)
            await self._write_locked({"progress": self.progress})

    async def _append_partial(self, bucket: str, entry: Any) -> None:
        async with self._lock:
            if self.halted:
                return
            getattr(self.partial, bucket).append(entry)
            await self._write_locked({"partial_results": self.partial.model_copy(deep=True)})

    async def _should_stop(self) -> bool:
        if self.halted:
            return True
        current = await self.store.get_analysis(self.analysis_id)
        if current is None or current.is_terminal:
            self.halted = True
            logger.info(f"Stop detected, status={current.status.value if current else 'missing'}")
            return True
        return False

    # -- phase helpers -----------------------------------------------------

    def _tracked(self, generator: TextGenerator, phase: int, endpoint: str) -> TextGenerator:
        return _TrackedGenerator(generator, self.log, phase, endpoint)

    async def _enter_phase(self, phase: int) -> bool:
        title = PHASE_TITLES[phase]
        self.log.phase_start(phase, title)
        logger.info(f"Phase {phase} started: {title}")
        return await self._write({"current_phase": phase})

    def _leave_phase(self, phase: int) -> None:
        title = PHASE_TITLES[phase]
        self.log.phase_complete(phase, title)
        logger.info(f"Phase {phase} complete: {title}")

    def _record_failure(
        self, phase: int, error: Exception, year: int | None = None, expert: str | None = None
    ) -> None:
        failure = PartialPipelineFailure(
            phase=phase,
            message=str(error),
            year=year,
            expert=expert,
            kind=error.kind if isinstance(error, UpstreamError) else None,
        )
        self.failures.append(failure)
        self.log.error(phase, f"Phase {phase} task failed: {error}", failure.to_dict())
        log_with_context(
            logger,
            logging.WARNING,
            f"Phase {phase} task failed: {error}",
            year=year,
            expert=expert,
        )

    # -- phases ------------------------------------------------------------

    async def _expert_task(
        self, generator: TextGenerator, scenario: Scenario, expert: Expert, year: int
    ) -> tuple[int, ExpertAnalysis | None]:
        tracked = self._tracked(generator, 1, f"Expert analysis: {expert.name} ({year})")

        async def call() -> ExpertAnalysis | None:
            if self.halted:
                return None
            return await analyze_as_expert(tracked, expert, scenario, year)

        try:
            result = await self.limiter.schedule(call)
        except Exception as e:
            self._record_failure(1, e, year=year, expert=expert.name)
            return year, None
        if result is None:
            return year, None

        partial = PartialExpertAnalysis(
            expert=result.expert,
            year=year,
            content=result.content,
            recommendations=result.recommendations,
            completed_at=utc_now().isoformat(),
        )
        self.channel.publish(self.analysis_id, "partial_expert_analysis", partial.model_dump(mode="json"))
        await self._append_partial("expert_analyses", partial)
        return year, result

    async def _year_task(
        self,
        generator: TextGenerator,
        scenario: Scenario,
        year: int,
        analyses: list[ExpertAnalysis],
    ) -> tuple[int, str | None]:
        tracked = self._tracked(generator, 2, f"Scenario generation ({year})")

        async def call() -> str | None:
            if self.halted:
                return None
            return await synthesize_year_scenario(tracked, scenario, year, analyses)

        try:
            content = await self.limiter.schedule(call)
        except Exception as e:
            self._record_failure(2, e, year=year)
            content = None

        if content is not None:
            partial = PartialYearScenario(
                year=year, content=content, completed_at=utc_now().isoformat()
            )
            self.channel.publish(self.analysis_id, "partial_year_scenario", partial.model_dump(mode="json"))
            await self._append_partial("year_scenarios", partial)

        await self._advance()
        return year, content

    async def _single_phase(
        self, phase: int, call: Callable[[], Awaitable[PhaseOutput]]
    ) -> PhaseOutput:
        title = PHASE_TITLES[phase]
        try:
            output = await call()
        except (UpstreamError, ResponseValidationError) as e:
            self._record_failure(phase, e)
            output = PhaseOutput(
                content=f"[Degraded] {title} could not be generated: {e}",
            )

        partial = PartialPhaseResult(
            phase=phase, title=title, content=output.content, completed_at=utc_now().isoformat()
        )
        self.channel.publish(self.analysis_id, "partial_phase_result", partial.model_dump(mode="json"))
        await self._append_partial("phase_results", partial)
        await self._advance()
        return output

    # -- run ---------------------------------------------------------------

    async def execute(self, scenario: Scenario, experts: list[Expert]) -> None:
        years = list(scenario.target_years)
        if not years:
            raise FatalPipelineError("Scenario has no target years")
        self.total_steps = 1 + len(years) + 3

        if await self._should_stop():
            return
        if not await self._write({"status": AnalysisStatus.RUNNING, "current_phase": 1}):
            return

        generator = self.generator_factory(scenario.model)
        log_with_context(
            logger,
            logging.INFO,
            f"Running analysis over {len(years)} years with {len(experts)} experts",
            model=scenario.model,
        )

        # Phase 1
        if not await self._enter_phase(1):
            return
        outcomes = await asyncio.gather(
            *(
                self._expert_task(generator, scenario, expert, year)
                for year in years
                for expert in experts
            )
        )
        buckets: dict[int, list[ExpertAnalysis]] = {year: [] for year in years}
        for year, result in outcomes:
            if result is not None:
                buckets[year].append(result)
        await self._advance()
        self._leave_phase(1)

        if await self._should_stop():
            return

        # Phase 2
        if not await self._enter_phase(2):
            return
        year_outcomes = await asyncio.gather(
            *(self._year_task(generator, scenario, year, buckets[year]) for year in years)
        )
        year_scenarios = {year: content for year, content in year_outcomes if content}
        self._leave_phase(2)

        if self.halted:
            return

        # Phase 3
        if not await self._enter_phase(3):
            return
        vantage_year = max(years) + LONG_TERM_OFFSET_YEARS
        long_term = await self._single_phase(
            3,
            lambda: review_long_term(
                self._tracked(generator, 3, f"Long-term review ({vantage_year})"), scenario, vantage_year
            ),
        )
        self._leave_phase(3)

        if await self._should_stop():
            return

        # Phase 4
        if not await self._enter_phase(4):
            return
        scenario_texts = [f"{year}: {year_scenarios[year]}" for year in years if year in year_scenarios]
        alignment = await self._single_phase(
            4,
            lambda: evaluate_strategic_alignment(
                self._tracked(generator, 4, "Strategic alignment evaluation"),
                scenario,
                scenario_texts + [long_term.content],
            ),
        )
        self._leave_phase(4)

        if self.halted:
            return

        # Phase 5
        if not await self._enter_phase(5):
            return
        final = await self._single_phase(
            5,
            lambda: simulate_final_scenario(
                self._tracked(generator, 5, "Final simulation"),
                scenario,
                scenario_texts + [long_term.content, alignment.content],
            ),
        )
        self._leave_phase(5)

        year_results = compile_year_results(
            years, len(experts), buckets, year_scenarios, long_term, alignment, final
        )
        markdown = self.renderer(scenario, year_results)
        results = AnalysisResults(
            years=year_results, failures=[f.to_dict() for f in self.failures]
        )

        completed = await self._write(
            {
                "status": AnalysisStatus.COMPLETED,
                "progress": 100,
                "current_phase": 5,
                "results": results,
                "markdown_report": markdown,
            }
        )
        if completed:
            logger.info(f"Analysis completed with {len(self.failures)} failed tasks")

    async def fail(self, message: str) -> None:
        self.log.error(0, f"Analysis failed: {message}")
        async with self._lock:
            await self._write_locked(
                {
                    "status": AnalysisStatus.FAILED,
                    "error": message,
                    "results": AnalysisResults(
                        error=message, failures=[f.to_dict() for f in self.failures]
                    ),
                }
            )


def compile_year_results(
    years: list[int],
    expert_count: int,
    buckets: dict[int, list[ExpertAnalysis]],
    year_scenarios: dict[int, str],
    long_term: PhaseOutput,
    alignment: PhaseOutput,
    final: PhaseOutput,
) -> list[YearResult]:
    """Give each year its own phase 1-2 content plus the shared phase 3-5 content."""
    shared = [
        PhaseResult(
            phase=phase,
            title=PHASE_TITLES[phase],
            content=output.content,
            recommendations=output.recommendations or None,
        )
        for phase, output in ((3, long_term), (4, alignment), (5, final))
    ]

    compiled = []
    for year in years:
        analyses = buckets.get(year, [])
        compiled.append(
            YearResult(
                year=year,
                phases=[
                    PhaseResult(
                        phase=1,
                        title=PHASE_TITLES[1],
                        content=f"{len(analyses)} of {expert_count} expert analyses completed.",
                        analyses=analyses,
                    ),
                    PhaseResult(
                        phase=2,
                        title=PHASE_TITLES[2],
                        content=year_scenarios.get(year)
                        or "No scenario could be generated for this year.",
                    ),
                    *(p.model_copy(deep=True) for p in shared),
                ],
            )
        )
    return compiled
