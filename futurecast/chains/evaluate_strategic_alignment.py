"""Phase 4: score how well the current strategy fits the generated scenarios."""

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

ALIGNMENT_PROMPT = """Evaluate how well the current business strategy holds up against the scenario analysis below.

{context}
Target years: {years}

Generated scenarios:
{scenarios}

Assess how closely the current strategy fits these scenarios and whether it needs to change.

Return a JSON object:
{{
  "alignment_score": "score from 1 to 10",
  "strengths": ["strength or opportunity 1", "strength or opportunity 2", "strength or opportunity 3"],
  "weaknesses": ["challenge or risk 1", "challenge or risk 2", "challenge or risk 3"],
  "recommendations": ["recommendation 1", "recommendation 2", "recommendation 3"]
}}"""


def format_alignment(data: dict) -> PhaseOutput:
    score = coerce_str(str(data.get("alignment_score") or ""))
    strengths = list_field(data, "strengths")
    weaknesses = list_field(data, "weaknesses")
    recommendations = list_field(data, "recommendations")

    if not (score or strengths or weaknesses or recommendations):
        raise ResponseValidationError("Alignment evaluation was empty")

    return PhaseOutput(
        content=join_sections(
            f"**Alignment score:** {score}" if score else "",
            bullet_section("Strengths and opportunities", strengths),
            bullet_section("Challenges and risks", weaknesses),
        ),
        recommendations=recommendations,
    )


async def evaluate_strategic_alignment(
    generator: TextGenerator, scenario: Scenario, scenario_texts: list[str]
) -> PhaseOutput:
    """
    Args:
        scenario_texts: Non-empty per-year scenarios followed by the long-term review

    Raises:
        UpstreamError: If the generator call fails
        ResponseValidationError: If the response is empty
    """
    prompt = ALIGNMENT_PROMPT.format(
        context=scenario_context(scenario),
        years=", ".join(str(y) for y in scenario.target_years),
        scenarios="\n\n".join(scenario_texts),
    )
    raw = await generator.generate(prompt, phase_options(scenario))
    return format_alignment(parse_llm_json_dict(raw))
