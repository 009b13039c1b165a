"""Expert profile prediction chain.

Asks the generator to fill in a profile for an expert name. Output is coerced
rather than rejected: an invalid expertise level becomes "expert", missing or
non-list arrays become empty. Only a response with no usable content at all is
treated as a failure.
"""

from futurecast.core.errors import ResponseValidationError
from futurecast.core.llm import coerce_str, coerce_str_list, parse_llm_json_dict
from futurecast.core.schemas import ExpertiseLevel, ExpertPrediction
from futurecast.services.generator import GenerationOptions, TextGenerator

PREDICTION_MAX_TOKENS = 600
PREDICTION_TEMPERATURE = 0.3

PREDICTION_PROMPT = """You are setting up the profile of "{expert_name}", an expert who will take part in
long-range (2030-2050) foresight analysis supporting corporate strategy.

The expert will forecast technological, social and economic change and turn it into
concrete strategic recommendations.

Return a JSON object describing {expert_name}:
{{
  "role": "the concrete role and responsibility of {expert_name} in foresight analysis",
  "specialization": "main fields relevant to 2030-2050 forecasting, including current technology and trends",
  "expertiseLevel": "one of specialist / expert / senior",
  "subSpecializations": ["domain essential to the forecast", "emerging technique", "strategic analysis method"],
  "informationSources": ["trusted specialist source", "source for tracking current developments"],
  "researchFocus": "a specific research theme companies should watch on the 2030-2050 horizon"
}}

Make every field specific to {expert_name} rather than generic, and practical for corporate strategy."""


def build_prediction_prompt(expert_name: str) -> str:
    return PREDICTION_PROMPT.format(expert_name=expert_name)


def _pick(data: dict, *keys: str):
    for key in keys:
        if key in data:
            return data[key]
    return None


def parse_expert_prediction(raw_output: str) -> ExpertPrediction:
    """
    Parse and coerce a generator response into an ExpertPrediction.

    Raises:
        ResponseValidationError: If the output is not JSON or carries no usable content
    """
    data = parse_llm_json_dict(raw_output)

    level = _pick(data, "expertiseLevel", "expertise_level")
    try:
        expertise_level = ExpertiseLevel(str(level).strip().lower()) if level else ExpertiseLevel.EXPERT
    except ValueError:
        expertise_level = ExpertiseLevel.EXPERT

    prediction = ExpertPrediction(
        role=coerce_str(data.get("role")),
        specialization=coerce_str(data.get("specialization")),
        expertise_level=expertise_level,
        sub_specializations=coerce_str_list(_pick(data, "subSpecializations", "sub_specializations")),
        information_sources=coerce_str_list(_pick(data, "informationSources", "information_sources")),
        research_focus=coerce_str(_pick(data, "researchFocus", "research_focus")),
    )

    if not prediction.has_content():
        raise ResponseValidationError("Prediction response contained no usable content")
    return prediction


async def request_expert_prediction(
    generator: TextGenerator, expert_name: str, model: str
) -> ExpertPrediction:
    """
    Run one prediction call.

    Raises:
        UpstreamError: If the generator call fails
        ResponseValidationError: If the response cannot be used
    """
    raw = await generator.generate(
        build_prediction_prompt(expert_name),
        GenerationOptions(
            model=model,
            response_format="json_object",
            max_output_tokens=PREDICTION_MAX_TOKENS,
            temperature=PREDICTION_TEMPERATURE,
        ),
    )
    return parse_expert_prediction(raw)
