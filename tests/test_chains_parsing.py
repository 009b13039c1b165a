"""Tests for parsing and coercing generator output in the chains."""

import json

import pytest

from futurecast.chains.analyze_as_expert import build_expert_analysis_prompt, parse_expert_analysis
from futurecast.chains.evaluate_strategic_alignment import format_alignment
from futurecast.chains.predict_expert_profile import parse_expert_prediction
from futurecast.chains.review_long_term import review_long_term
from futurecast.chains.synthesize_year_scenario import NO_EXPERT_INPUT, synthesize_year_scenario
from futurecast.core.errors import ResponseValidationError
from futurecast.core.schemas import Expert, ExpertiseLevel, Scenario
from tests.fakes.fake_generator import FakeGenerator


def _scenario(**overrides) -> Scenario:
    data = {"id": "s1", "theme": "Space tourism", "current_strategy": "Luxury travel", "target_years": [2030, 2045]}
    data.update(overrides)
    return Scenario(**data)


def test_prediction_accepts_fenced_json_and_coerces_fields():
    raw = "```json\n" + json.dumps(
        {
            "role": "  Tracks orbital hotels ",
            "expertiseLevel": "Grandmaster",
            "subSpecializations": "not a list",
            "informationSources": ["NASA", None, "  "],
        }
    ) + "\n```"

    prediction = parse_expert_prediction(raw)

    assert prediction.role == "Tracks orbital hotels"
    assert prediction.expertise_level == ExpertiseLevel.EXPERT
    assert prediction.sub_specializations == []
    assert prediction.information_sources == ["NASA"]
    assert prediction.research_focus == ""


def test_prediction_accepts_snake_case_keys():
    prediction = parse_expert_prediction(
        json.dumps({"specialization": "Orbital mechanics", "expertise_level": "senior"})
    )
    assert prediction.expertise_level == ExpertiseLevel.SENIOR


@pytest.mark.parametrize("raw", ["", "not json", "[1, 2]", "{}", '{"role": "   "}'])
def test_prediction_without_usable_content_is_rejected(raw):
    with pytest.raises(ResponseValidationError):
        parse_expert_prediction(raw)


def test_expert_analysis_requires_analysis_text():
    with pytest.raises(ResponseValidationError):
        parse_expert_analysis("A", json.dumps({"recommendations": ["x"]}))

    analysis = parse_expert_analysis("A", json.dumps({"analysis": "Demand grows"}))
    assert analysis.expert == "A"
    assert analysis.recommendations == []


def test_expert_prompt_carries_persona_and_year():
    expert = Expert(id="e1", name="Economist", role="Macro forecasting")
    prompt = build_expert_analysis_prompt(expert, _scenario(character_count=600), 2045)

    assert prompt.startswith('You are "Economist"')
    assert "Target year: 2045" in prompt
    assert "about 300 characters" in prompt


def test_alignment_is_rendered_with_score_and_sections():
    output = format_alignment(
        {"alignment_score": 6, "strengths": ["Brand"], "weaknesses": [], "recommendations": ["Partner"]}
    )
    assert output.content.startswith("**Alignment score:** 6")
    assert "- Brand" in output.content
    assert "Challenges" not in output.content
    assert output.recommendations == ["Partner"]


def test_empty_alignment_is_rejected():
    with pytest.raises(ResponseValidationError):
        format_alignment({})


@pytest.mark.asyncio
async def test_year_scenario_without_expert_input_says_so():
    generator = FakeGenerator(default=json.dumps({"scenario": "Quiet year"}))

    content = await synthesize_year_scenario(generator, _scenario(), 2030, [])

    assert content == "Quiet year"
    assert NO_EXPERT_INPUT in generator.prompts()[0]
    assert generator.calls[0][1].model == "gpt-4o-mini"


@pytest.mark.asyncio
async def test_long_term_review_uses_vantage_year():
    generator = FakeGenerator(
        default=json.dumps({"perspective": "From afar", "key_factors": ["Cost"], "strategic_actions": ["Build"]})
    )

    output = await review_long_term(generator, _scenario(), 2055)

    assert "vantage point of 2055" in generator.prompts()[0]
    assert "**Key factors**\n- Cost" in output.content
    assert output.recommendations == ["Build"]
