"""Phase 1: analyze a scenario from one expert's point of view for one year."""

from futurecast.chains._phase_common import phase_options, scenario_context
from futurecast.core.errors import ResponseValidationError
from futurecast.core.llm import coerce_str, coerce_str_list, parse_llm_json_dict
from futurecast.core.schemas import Expert, ExpertAnalysis, Scenario
from futurecast.services.generator import TextGenerator

EXPERT_ANALYSIS_PROMPT = """You are "{name}". Carry out the following analysis in that role.

Field of expertise: {role}
{specialization_line}
{context}
Target year: {year}

From the perspective of {name}, describe how the theme above will play out by {year}
and give professional advice on the current business strategy. Cover concrete
challenges, opportunities and recommendations.

Return a JSON object:
{{
  "analysis": "detailed analysis, about {length} characters",
  "recommendations": ["recommendation 1", "recommendation 2", "recommendation 3"]
}}"""


def build_expert_analysis_prompt(expert: Expert, scenario: Scenario, year: int) -> str:
    specialization_line = (
        f"Specialization: {expert.specialization}\n" if expert.specialization else ""
    )
    return EXPERT_ANALYSIS_PROMPT.format(
        name=expert.name,
        role=expert.role,
        specialization_line=specialization_line,
        context=scenario_context(scenario),
        year=year,
        length=max(scenario.character_count // 2, 250),
    )


def parse_expert_analysis(expert_name: str, raw_output: str) -> ExpertAnalysis:
    data = parse_llm_json_dict(raw_output)
    content = coerce_str(data.get("analysis"))
    if not content:
        raise ResponseValidationError(f"No analysis text returned for {expert_name}")
    return ExpertAnalysis(
        expert=expert_name,
        content=content,
        recommendations=coerce_str_list(data.get("recommendations")),
    )


async def analyze_as_expert(
    generator: TextGenerator, expert: Expert, scenario: Scenario, year: int
) -> ExpertAnalysis:
    """
    Run one (expert, year) analysis.

    Raises:
        UpstreamError: If the generator call fails
        ResponseValidationError: If the response carries no analysis
    """
    raw = await generator.generate(
        build_expert_analysis_prompt(expert, scenario, year), phase_options(scenario)
    )
    return parse_expert_analysis(expert.name, raw)
