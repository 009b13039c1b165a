"""Phase 2: merge one year's expert analyses into a concrete scenario."""

from futurecast.chains._phase_common import phase_options, scenario_context
from futurecast.core.errors import ResponseValidationError
from futurecast.core.llm import coerce_str, parse_llm_json_dict
from futurecast.core.schemas import ExpertAnalysis, Scenario
from futurecast.services.generator import TextGenerator

YEAR_SCENARIO_PROMPT = """Using the expert analyses below, write a concrete scenario for the year {year}.

{context}
Target year: {year}

Expert analyses:
{expert_summary}

Integrate the analyses and describe in detail what could plausibly happen by {year}.
The scenario must cover:
1. Changes in the social, technological and economic environment
2. The impact on the current strategy
3. Challenges and opportunities the company will face
4. Recommended responses

Return a JSON object:
{{
  "scenario": "detailed scenario, about {length} characters"
}}"""

NO_EXPERT_INPUT = "(No expert analysis is available for this year; reason from the theme and strategy alone.)"


def summarize_expert_analyses(analyses: list[ExpertAnalysis]) -> str:
    if not analyses:
        return NO_EXPERT_INPUT
    return "\n\n".join(f"{a.expert}: {a.content}" for a in analyses)


async def synthesize_year_scenario(
    generator: TextGenerator,
    scenario: Scenario,
    year: int,
    analyses: list[ExpertAnalysis],
) -> str:
    """
    Generate the scenario text for one year.

    Args:
        generator: Text generator
        scenario: Scenario being analyzed
        year: Target year
        analyses: Phase 1 analyses for this year (may be empty)

    Returns:
        Scenario text

    Raises:
        UpstreamError: If the generator call fails
        ResponseValidationError: If the response carries no scenario
    """
    prompt = YEAR_SCENARIO_PROMPT.format(
        year=year,
        context=scenario_context(scenario),
        expert_summary=summarize_expert_analyses(analyses),
        length=scenario.character_count,
    )
    raw = await generator.generate(prompt, phase_options(scenario))

    content = coerce_str(parse_llm_json_dict(raw).get("scenario"))
    if not content:
        raise ResponseValidationError(f"No scenario text returned for {year}")
    return content
