"""Text-generation adapters.

Every provider call goes through a TextGenerator. Adapters translate raw SDK
exceptions into UpstreamError subclasses tagged with an UpstreamErrorKind, so
nothing above this module inspects provider exceptions, status codes or
message strings.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import anthropic
import openai

from futurecast.core.config import Settings, get_settings
from futurecast.core.errors import UpstreamError, UpstreamErrorKind, upstream_error
from futurecast.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GeneratorProfile:
    """Client-level timeout and retry policy."""

    name: str
    timeout_s: float
    max_retries: int


# Expert prediction: no retries, the predictor owns the deadline
FAST_PROFILE = GeneratorProfile(name="fast", timeout_s=1.8, max_retries=0)
DETAILED_PROFILE = GeneratorProfile(name="detailed", timeout_s=10.0, max_retries=0)
# Pipeline phases: long generations, let the SDK retry transient errors
STANDARD_PROFILE = GeneratorProfile(name="standard", timeout_s=120.0, max_retries=2)

PROFILES = {p.name: p for p in (FAST_PROFILE, DETAILED_PROFILE, STANDARD_PROFILE)}


@dataclass(frozen=True)
class GenerationOptions:
    model: str
    response_format: Literal["json_object", "text"] = "json_object"
    max_output_tokens: int | None = None
    temperature: float | None = None
    system: str | None = None


class TextGenerator(Protocol):
    profile: GeneratorProfile

    async def generate(self, prompt: str, options: GenerationOptions) -> str:
        """Return the generated text or raise UpstreamError."""
        ...


GeneratorFactory = Callable[[str], TextGenerator]


# =============================================================================
# Error classification
# =============================================================================

_TIMEOUT_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    openai.APITimeoutError,
    anthropic.APITimeoutError,
)
_RATE_LIMIT_TYPES = (openai.RateLimitError, anthropic.RateLimitError)
_AUTH_TYPES = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    anthropic.AuthenticationError,
    anthropic.PermissionDeniedError,
)
# APITimeoutError subclasses APIConnectionError, so timeouts are checked first
_NETWORK_TYPES = (openai.APIConnectionError, anthropic.APIConnectionError, ConnectionError)

_MESSAGE_HINTS: tuple[tuple[UpstreamErrorKind, tuple[str, ...]], ...] = (
    (UpstreamErrorKind.RATE_LIMITED, ("insufficient_quota", "rate limit", "rate_limit", "quota", "overloaded")),
    (UpstreamErrorKind.TIMED_OUT, ("timed out", "timeout", "etimedout", "deadline")),
    (UpstreamErrorKind.AUTH_FAILED, ("api_key", "api key", "authentication", "unauthorized", "permission")),
    (UpstreamErrorKind.NETWORK_ERROR, ("econnreset", "econnrefused", "connection", "network", "dns")),
)


def classify_upstream_error(error: BaseException) -> UpstreamErrorKind:
    """
    Map a raw provider exception to the closed error taxonomy.

    Checks exception type first, then HTTP status, then provider error codes
    and message text.
    """
    if isinstance(error, UpstreamError):
        return error.kind
    if isinstance(error, _TIMEOUT_TYPES):
        return UpstreamErrorKind.TIMED_OUT
    if isinstance(error, _RATE_LIMIT_TYPES):
        return UpstreamErrorKind.RATE_LIMITED
    if isinstance(error, _AUTH_TYPES):
        return UpstreamErrorKind.AUTH_FAILED
    if isinstance(error, _NETWORK_TYPES):
        return UpstreamErrorKind.NETWORK_ERROR

    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status == 429:
        return UpstreamErrorKind.RATE_LIMITED
    if status in (401, 403):
        return UpstreamErrorKind.AUTH_FAILED
    if status in (408, 504):
        return UpstreamErrorKind.TIMED_OUT

    code = str(getattr(error, "code", "") or "").lower()
    text = f"{code} {error}".lower()
    for kind, hints in _MESSAGE_HINTS:
        if any(hint in text for hint in hints):
            return kind
    return UpstreamErrorKind.UNKNOWN


def _wrap(error: Exception) -> UpstreamError:
    kind = classify_upstream_error(error)
    status = getattr(error, "status_code", None)
    return upstream_error(kind, f"{type(error).__name__}: {error}", status_code=status)


# =============================================================================
# Providers
# =============================================================================


class OpenAIGenerator:
    """Chat-completions backend."""

    provider = "openai"

    def __init__(
        self,
        profile: GeneratorProfile,
        api_key: str | None = None,
        client: Any | None = None,
    ):
        self.profile = profile
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = openai.AsyncOpenAI(
                api_key=self._api_key,
                max_retries=self.profile.max_retries,
                timeout=self.profile.timeout_s,
            )
        return self._client

    async def generate(self, prompt: str, options: GenerationOptions) -> str:
        messages = []
        if options.system:
            messages.append({"role": "system", "content": options.system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict[str, Any] = {"model": options.model, "messages": messages}
        if options.response_format == "json_object":
            kwargs["response_format"] = {"type": "json_object"}
        if options.max_output_tokens:
            kwargs["max_completion_tokens"] = options.max_output_tokens
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature

        start = time.monotonic()
        try:
            response = await self._get_client().chat.completions.create(**kwargs)
        except Exception as e:
            raise _wrap(e) from e

        duration_ms = int((time.monotonic() - start) * 1000)
        usage = getattr(response, "usage", None)
        logger.debug(
            f"openai {options.model} ({self.profile.name}) completed in {duration_ms}ms, "
            f"tokens in={getattr(usage, 'prompt_tokens', '?')} out={getattr(usage, 'completion_tokens', '?')}"
        )

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class AnthropicGenerator:
    """Messages API backend for claude-* models."""

    provider = "anthropic"

    DEFAULT_MAX_TOKENS = 4096
    JSON_INSTRUCTION = "Respond with a single JSON object and nothing else."

    def __init__(
        self,
        profile: GeneratorProfile,
        api_key: str | None = None,
        client: Any | None = None,
    ):
        self.profile = profile
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(
                api_key=self._api_key,
                max_retries=self.profile.max_retries,
                timeout=self.profile.timeout_s,
            )
        return self._client

    async def generate(self, prompt: str, options: GenerationOptions) -> str:
        system_parts = [options.system] if options.system else []
        if options.response_format == "json_object":
            system_parts.append(self.JSON_INSTRUCTION)

        kwargs: dict[str, Any] = {
            "model": options.model,
            "max_tokens": options.max_output_tokens or self.DEFAULT_MAX_TOKENS,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature

        start = time.monotonic()
        try:
            response = await self._get_client().messages.create(**kwargs)
        except Exception as e:
            raise _wrap(e) from e

        duration_ms = int((time.monotonic() - start) * 1000)
        usage = getattr(response, "usage", None)
        logger.debug(
            f"anthropic {options.model} ({self.profile.name}) completed in {duration_ms}ms, "
            f"tokens in={getattr(usage, 'input_tokens', '?')} out={getattr(usage, 'output_tokens', '?')}"
        )

        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )


def create_generator(
    model: str,
    profile: GeneratorProfile = STANDARD_PROFILE,
    settings: Settings | None = None,
) -> TextGenerator:
    """
    Build the generator backend for a model name.

    Args:
        model: Model name; claude-* routes to Anthropic, everything else to OpenAI
        profile: Timeout/retry profile
        settings: Settings override (defaults to get_settings())

    Returns:
        TextGenerator instance
    """
    settings = settings or get_settings()
    if model.startswith("claude"):
        return AnthropicGenerator(profile, api_key=settings.ANTHROPIC_API_KEY)
    return OpenAIGenerator(profile, api_key=settings.OPENAI_API_KEY)


def generator_factory(
    profile: GeneratorProfile = STANDARD_PROFILE,
    settings: Settings | None = None,
) -> GeneratorFactory:
    """Return a model-name -> generator callable that reuses one client per provider."""
    built: dict[str, TextGenerator] = {}

    def _factory(model: str) -> TextGenerator:
        provider = "anthropic" if model.startswith("claude") else "openai"
        if provider not in built:
            built[provider] = create_generator(model, profile, settings)
        return built[provider]

    return _factory
