"""Pieces shared by the five analysis phase chains."""

from dataclasses import dataclass, field

from futurecast.core.llm import coerce_str_list
from futurecast.core.schemas import Scenario
from futurecast.services.generator import GenerationOptions

PHASE_TITLES = {
    1: "Expert research by field",
    2: "Scenario generation",
    3: "Strategy review from the very long term",
    4: "Strategic alignment evaluation",
    5: "Final scenario simulation",
}

# How far past the last target year the long-term review looks back from
LONG_TERM_OFFSET_YEARS = 10


@dataclass
class PhaseOutput:
    """Text content of a phase plus the recommendations pulled out of it."""

    content: str
    recommendations: list[str] = field(default_factory=list)


def scenario_context(scenario: Scenario) -> str:
    return (
        f"Future theme: {scenario.theme}\n"
        f"Current business strategy: {scenario.current_strategy}"
    )


def phase_options(scenario: Scenario) -> GenerationOptions:
    return GenerationOptions(model=scenario.model, response_format="json_object")


def bullet_section(heading: str, items: list[str]) -> str:
    if not items:
        return ""
    lines = "\n".join(f"- {item}" for item in items)
    return f"**{heading}**\n{lines}"


def join_sections(*sections: str) -> str:
    return "\n\n".join(section for section in sections if section)


def list_field(data: dict, key: str) -> list[str]:
    return coerce_str_list(data.get(key))
