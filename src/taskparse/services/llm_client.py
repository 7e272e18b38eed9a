"""Function-calling LLM client with usage tracking and error classification."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from taskparse.exceptions import UpstreamAuthError, UpstreamError, UpstreamRateLimitError

if TYPE_CHECKING:
    from taskparse.config import Settings

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers (both speak the OpenAI chat completions API)."""

    OPENAI = "openai"
    OPENROUTER = "openrouter"


@dataclass
class FunctionCallResponse:
    """Result of a forced function call.

    ``arguments`` is the raw JSON string the model produced, or None if the
    model returned no function call. Validation is left to the caller.
    """

    arguments: str | None
    function_name: str
    provider: LLMProvider
    model: str
    tokens_input: int = 0
    tokens_output: int = 0
    latency_ms: int = 0
    cost_usd: float = 0.0
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return self.tokens_input + self.tokens_output


# Cost per 1M tokens (input/output)
PROVIDER_COSTS: dict[str, tuple[float, float]] = {
    "gpt-4o": (2.50, 10.00),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4-turbo": (10.00, 30.00),
    "gpt-4-turbo-preview": (10.00, 30.00),
    "openai/gpt-4o": (2.50, 10.00),
    "openai/gpt-4o-mini": (0.15, 0.60),
    "anthropic/claude-3.5-haiku": (0.80, 4.00),
    "google/gemini-flash-1.5": (0.075, 0.30),
}


def estimate_cost(model: str, tokens_input: int, tokens_output: int) -> float:
    """Estimate cost in USD for a request."""
    if model not in PROVIDER_COSTS:
        # Conservative default for unknown models
        return (tokens_input * 1.0 + tokens_output * 3.0) / 1_000_000
    input_cost, output_cost = PROVIDER_COSTS[model]
    return (tokens_input * input_cost + tokens_output * output_cost) / 1_000_000


def _token_count(value: Any) -> int:
    # Some compatible providers send null or omit usage fields
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return 0


def classify_http_error(
    provider: LLMProvider,
    exc: httpx.HTTPError,
    operation: str,
) -> UpstreamError:
    """Translate an httpx failure into the matching upstream error."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        logger.error(
            "%s API error in %s: status=%s body=%s",
            provider.value,
            operation,
            status,
            exc.response.text[:500],
        )
        if status == 429:
            return UpstreamRateLimitError(
                "Rate limit exceeded. Please try again later.",
                operation=operation,
                status_code=status,
            )
        if status in (401, 403):
            return UpstreamAuthError(
                "Invalid API key. Please check your configuration.",
                operation=operation,
                status_code=status,
            )
        return UpstreamError(
            f"{provider.value} API error in {operation}: HTTP {status}",
            operation=operation,
            status_code=status,
        )

    logger.error("%s request failed in %s: %s", provider.value, operation, exc)
    return UpstreamError(
        f"{provider.value} API error in {operation}: {exc}",
        operation=operation,
    )


class OpenAIProvider:
    """OpenAI chat completions with forced function calling."""

    provider = LLMProvider.OPENAI
    default_model = "gpt-4o-mini"
    endpoint = "https://api.openai.com/v1/chat/completions"

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.api_key = api_key
        self.model = model or self.default_model
        self.timeout = timeout
        if client is None:
            self._client = httpx.Client(timeout=timeout)
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            self._client.close()

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def call_function(
        self,
        prompt: str,
        *,
        function: dict[str, Any],
        system_prompt: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 500,
        operation: str = "call_function",
    ) -> FunctionCallResponse:
        """Force the model to answer by calling ``function``.

        Args:
            prompt: The user message
            function: Function definition (name, description, JSON schema parameters)
            system_prompt: Optional system instructions
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum response tokens
            operation: Name of the calling operation, used in error messages

        Returns:
            FunctionCallResponse with the raw arguments string and usage

        Raises:
            UpstreamAuthError: Missing or rejected API key
            UpstreamRateLimitError: Provider rate limit hit
            UpstreamError: Any other provider or transport failure
        """
        if not self.api_key:
            raise UpstreamAuthError(
                f"{self.provider.value} API key not configured",
                operation=operation,
            )

        start_time = time.time()
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        request_body: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "tools": [{"type": "function", "function": function}],
            "tool_choice": {"type": "function", "function": {"name": function["name"]}},
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        try:
            response = self._client.post(
                self.endpoint,
                headers=self._headers(),
                json=request_body,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise classify_http_error(self.provider, exc, operation) from exc

        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise UpstreamError(
                f"{self.provider.value} API error in {operation}: response is not JSON",
                operation=operation,
            ) from exc
        if not isinstance(data, dict):
            raise UpstreamError(
                f"{self.provider.value} API error in {operation}: unexpected response shape",
                operation=operation,
            )

        latency_ms = int((time.time() - start_time) * 1000)
        arguments = self._extract_arguments(data)

        usage = data.get("usage")
        if not isinstance(usage, dict):
            usage = {}
        tokens_input = _token_count(usage.get("prompt_tokens"))
        tokens_output = _token_count(usage.get("completion_tokens"))
        cost = estimate_cost(self.model, tokens_input, tokens_output)
        logger.info(
            "%s %s: model=%s tokens=%d latency=%dms cost=$%.5f",
            self.provider.value,
            operation,
            self.model,
            tokens_input + tokens_output,
            latency_ms,
            cost,
        )

        return FunctionCallResponse(
            arguments=arguments,
            function_name=function["name"],
            provider=self.provider,
            model=self.model,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            latency_ms=latency_ms,
            cost_usd=cost,
            raw_response=data,
        )

    def _extract_arguments(self, data: dict[str, Any]) -> str | None:
        """Pull the arguments string out of the first choice.

        Anything that is not a non-empty string (missing keys, wrong nesting,
        arguments sent as an object) counts as "no function call".
        """
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        choice = choices[0]
        message = choice.get("message") if isinstance(choice, dict) else None
        if not isinstance(message, dict):
            return None

        tool_calls = message.get("tool_calls")
        for tool_call in tool_calls if isinstance(tool_calls, list) else []:
            function = tool_call.get("function") if isinstance(tool_call, dict) else None
            arguments = function.get("arguments") if isinstance(function, dict) else None
            if isinstance(arguments, str) and arguments:
                return arguments

        # Legacy function_call shape, still returned by some compatible providers
        function_call = message.get("function_call")
        if not isinstance(function_call, dict):
            return None
        arguments = function_call.get("arguments")
        return arguments if isinstance(arguments, str) and arguments else None


class OpenRouterProvider(OpenAIProvider):
    """OpenRouter - OpenAI-compatible interface to many models."""

    provider = LLMProvider.OPENROUTER
    default_model = "openai/gpt-4o-mini"
    endpoint = "https://openrouter.ai/api/v1/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "X-Title": "taskparse",
        }


def create_function_caller(
    config: Settings | None = None,
    client: httpx.Client | None = None,
) -> OpenAIProvider:
    """Build the provider selected in settings."""
    if config is None:
        from taskparse.config import settings as config

    model = config.llm_model or None
    if config.llm_provider == LLMProvider.OPENROUTER.value:
        return OpenRouterProvider(
            api_key=config.openrouter_api_key,
            model=model,
            client=client,
            timeout=config.llm_timeout_seconds,
        )
    return OpenAIProvider(
        api_key=config.openai_api_key,
        model=model,
        client=client,
        timeout=config.llm_timeout_seconds,
    )
