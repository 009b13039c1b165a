"""Phase 5: fold every earlier phase into the final integrated simulation."""

from futurecast.chains._phase_common import (
    PhaseOutput,
    bullet_section,
    join_sections,
    list_field,
    phase_options,
    scenario_context,
)
from futurecast.core.errors import ResponseValidationError
from futurecast.core.llm import coerce_str, parse_llm_json_dict
from futurecast.core.schemas import Scenario
from futurecast.services.generator import TextGenerator

FINAL_SIMULATION_PROMPT = """Integrate all of the analyses so far into a final scenario simulation.

{context}
Target years: {years}

Integrated analysis:
{analyses}

Present the most plausible future scenario and the concrete strategy the company should pursue.

Return a JSON object:
{{
  "final_scenario": "final integrated scenario, about {length} characters",
  "strategic_priorities": ["priority 1", "priority 2", "priority 3"],
  "success_factors": ["success factor 1", "success factor 2", "success factor 3"],
  "implementation_steps": ["step 1", "step 2", "step 3"]
}}"""


async def simulate_final_scenario(
    generator: TextGenerator, scenario: Scenario, analyses: list[str]
) -> PhaseOutput:
    """
    Raises:
        UpstreamError: If the generator call fails
        ResponseValidationError: If no final scenario is returned
    """
    prompt = FINAL_SIMULATION_PROMPT.format(
        context=scenario_context(scenario),
        years=", ".join(str(y) for y in scenario.target_years),
        analyses="\n\n".join(analyses),
        length=scenario.character_count,
    )
    raw = await generator.generate(prompt, phase_options(scenario))

    data = parse_llm_json_dict(raw)
    final_scenario = coerce_str(data.get("final_scenario"))
    if not final_scenario:
        raise ResponseValidationError("No final scenario returned")

    return PhaseOutput(
        content=join_sections(
            final_scenario,
            bullet_section("Success factors", list_field(data, "success_factors")),
            bullet_section("Implementation steps", list_field(data, "implementation_steps")),
        ),
        recommendations=list_field(data, "strategic_priorities"),
    )
