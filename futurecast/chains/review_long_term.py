"""Phase 3: look back at the target years from a vantage point further out."""

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

LONG_TERM_PROMPT = """Evaluate the strategy for {years} from the vantage point of {vantage_year} and give
recommendations from a very long-term perspective.

{context}
Vantage year: {vantage_year}
Years under review: {years}

Looking back from {vantage_year}, analyze which factors will matter most in {years}
and which strategic actions the company should take now.

Return a JSON object:
{{
  "perspective": "analysis from the long-term vantage point, about {length} characters",
  "key_factors": ["key factor 1", "key factor 2", "key factor 3"],
  "strategic_actions": ["strategic action 1", "strategic action 2", "strategic action 3"]
}}"""


async def review_long_term(
    generator: TextGenerator, scenario: Scenario, vantage_year: int
) -> PhaseOutput:
    """
    Raises:
        UpstreamError: If the generator call fails
        ResponseValidationError: If the response carries no perspective
    """
    prompt = LONG_TERM_PROMPT.format(
        years=", ".join(str(y) for y in scenario.target_years),
        vantage_year=vantage_year,
        context=scenario_context(scenario),
        length=max(scenario.character_count * 3 // 4, 300),
    )
    raw = await generator.generate(prompt, phase_options(scenario))

    data = parse_llm_json_dict(raw)
    perspective = coerce_str(data.get("perspective"))
    if not perspective:
        raise ResponseValidationError("No long-term perspective returned")

    actions = list_field(data, "strategic_actions")
    return PhaseOutput(
        content=join_sections(
            perspective, bullet_section("Key factors", list_field(data, "key_factors"))
        ),
        recommendations=actions,
    )
