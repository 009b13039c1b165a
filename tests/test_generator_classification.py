"""Tests for provider error classification and the generator adapters."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from futurecast.core.config import Settings
from futurecast.core.errors import (
    UpstreamAuthFailed,
    UpstreamErrorKind,
    UpstreamRateLimited,
)
from futurecast.services.generator import (
    FAST_PROFILE,
    AnthropicGenerator,
    GenerationOptions,
    OpenAIGenerator,
    classify_upstream_error,
    create_generator,
)

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _status_error(cls, status: int):
    response = httpx.Response(status, request=REQUEST)
    return cls("error", response=response, body=None)


def test_sdk_timeout_is_timed_out():
    assert classify_upstream_error(openai.APITimeoutError(request=REQUEST)) == UpstreamErrorKind.TIMED_OUT


def test_asyncio_timeout_is_timed_out():
    assert classify_upstream_error(asyncio.TimeoutError()) == UpstreamErrorKind.TIMED_OUT


def test_sdk_rate_limit_is_rate_limited():
    error = _status_error(openai.RateLimitError, 429)
    assert classify_upstream_error(error) == UpstreamErrorKind.RATE_LIMITED


def test_sdk_auth_error_is_auth_failed():
    error = _status_error(openai.AuthenticationError, 401)
    assert classify_upstream_error(error) == UpstreamErrorKind.AUTH_FAILED


def test_sdk_connection_error_is_network_error():
    error = openai.APIConnectionError(request=REQUEST)
    assert classify_upstream_error(error) == UpstreamErrorKind.NETWORK_ERROR


def test_status_code_attribute_is_used():
    error = RuntimeError("proxy said no")
    error.status_code = 429
    assert classify_upstream_error(error) == UpstreamErrorKind.RATE_LIMITED


def test_message_hints_are_used_last():
    assert classify_upstream_error(RuntimeError("insufficient_quota")) == UpstreamErrorKind.RATE_LIMITED
    assert classify_upstream_error(RuntimeError("read ECONNRESET")) == UpstreamErrorKind.NETWORK_ERROR
    assert classify_upstream_error(RuntimeError("something odd")) == UpstreamErrorKind.UNKNOWN


@pytest.mark.asyncio
async def test_openai_generator_returns_message_content():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='{"a": 1}'))],
            usage=None,
        )
    )
    generator = OpenAIGenerator(FAST_PROFILE, client=client)

    text = await generator.generate("hi", GenerationOptions(model="gpt-4o-mini", max_output_tokens=50))

    assert text == '{"a": 1}'
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["max_completion_tokens"] == 50


@pytest.mark.asyncio
async def test_openai_generator_wraps_sdk_errors():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=_status_error(openai.RateLimitError, 429))
    generator = OpenAIGenerator(FAST_PROFILE, client=client)

    with pytest.raises(UpstreamRateLimited) as exc_info:
        await generator.generate("hi", GenerationOptions(model="gpt-4o-mini"))

    assert exc_info.value.qualifies_for_breaker


@pytest.mark.asyncio
async def test_anthropic_generator_joins_text_blocks():
    client = MagicMock()
    client.messages.create = AsyncMock(
        return_value=SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text='{"a"'),
                SimpleNamespace(type="text", text=": 1}"),
            ],
            usage=None,
        )
    )
    generator = AnthropicGenerator(FAST_PROFILE, client=client)

    text = await generator.generate("hi", GenerationOptions(model="claude-sonnet-4-5"))

    assert text == '{"a": 1}'
    assert "JSON" in client.messages.create.call_args.kwargs["system"]


@pytest.mark.asyncio
async def test_anthropic_generator_wraps_unknown_errors():
    client = MagicMock()
    client.messages.create = AsyncMock(side_effect=RuntimeError("invalid api key"))
    generator = AnthropicGenerator(FAST_PROFILE, client=client)

    with pytest.raises(UpstreamAuthFailed):
        await generator.generate("hi", GenerationOptions(model="claude-sonnet-4-5"))


def test_create_generator_routes_by_model_name():
    settings = Settings(OPENAI_API_KEY="o", ANTHROPIC_API_KEY="a")
    assert isinstance(create_generator("claude-sonnet-4-5", FAST_PROFILE, settings), AnthropicGenerator)
    assert isinstance(create_generator("gpt-5-mini", FAST_PROFILE, settings), OpenAIGenerator)
