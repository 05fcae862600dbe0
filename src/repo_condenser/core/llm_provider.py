"""
Inference provider abstraction for repo_condenser.

The condensation core needs exactly one capability from a language model:
``infer(system_prompt, user_prompt, options) -> InferenceResult``. This
module defines that contract, the error hierarchy providers raise, and
two implementations:

- OpenAIInferenceProvider: Chat Completions via the ``openai`` SDK
  (also works against OpenAI-compatible endpoints through ``base_url``)
- CallableInferenceProvider: adapts a plain function, used by tests and
  by callers that already own a client

Example:
    from repo_condenser.core.llm_provider import (
        InferenceOptions, OpenAIInferenceProvider,
    )

    provider = OpenAIInferenceProvider(default_model="gpt-4o-mini")
    result = await provider.infer(
        "You are a concise technical writer.",
        "Summarize: ...",
        InferenceOptions(temperature=0.3, max_output_tokens=500),
    )
    print(result.text, result.input_tokens, result.output_tokens)
"""

import inspect
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class InferenceOptions:
    """Per-call generation options.

    Attributes:
        temperature: Sampling temperature (lower is more deterministic)
        max_output_tokens: Cap on generated tokens (None = provider default)
        json_mode: Ask the model for a JSON object response
    """

    temperature: float = 0.3
    max_output_tokens: Optional[int] = None
    json_mode: bool = False

    def __post_init__(self) -> None:
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError(f"temperature must be in [0, 2], got {self.temperature}")
        if self.max_output_tokens is not None and self.max_output_tokens <= 0:
            raise ValueError(
                f"max_output_tokens must be positive, got {self.max_output_tokens}"
            )


@dataclass(frozen=True)
class InferenceResult:
    """Text produced by one inference call and its token usage."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


# =============================================================================
# Exceptions
# =============================================================================


class LLMError(Exception):
    """Base exception for inference failures.

    Attributes:
        message: Human-readable error description
        provider: Name of the provider that raised the error
        retryable: Whether the call may succeed if repeated
        status_code: HTTP status code if applicable
    """

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        retryable: bool = False,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.retryable = retryable
        self.status_code = status_code


class RateLimitError(LLMError):
    """Rate limit exceeded.

    Attributes:
        retry_after: Seconds the service asked us to wait, if reported
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        provider: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, provider=provider, retryable=True, status_code=429)
        self.retry_after = retry_after


class ProviderTimeoutError(LLMError):
    """The provider did not answer in time."""

    def __init__(self, message: str = "Request timed out", *, provider: Optional[str] = None):
        super().__init__(message, provider=provider, retryable=True, status_code=None)


class AuthenticationError(LLMError):
    """Authentication failed."""

    def __init__(
        self,
        message: str = "Authentication failed",
        *,
        provider: Optional[str] = None,
    ):
        super().__init__(message, provider=provider, retryable=False, status_code=401)


class InvalidRequestError(LLMError):
    """Invalid request (bad parameters, prompt too long, etc.)."""

    def __init__(self, message: str, *, provider: Optional[str] = None):
        super().__init__(message, provider=provider, retryable=False, status_code=400)


class ModelNotFoundError(LLMError):
    """Requested model not found or not accessible."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ):
        super().__init__(message, provider=provider, retryable=False, status_code=404)
        self.model = model


# =============================================================================
# Abstract Base Class
# =============================================================================


class InferenceProvider(ABC):
    """Abstract base class for inference providers.

    Implementations must raise ``LLMError`` subclasses on failure and set
    ``retryable`` for transient conditions (rate limits, timeouts, 5xx,
    malformed responses) so the retry policy can tell them apart.

    Attributes:
        name: Provider identifier
        default_model: Model used when the caller does not pick one
    """

    name: str = "base"
    default_model: str = ""

    @abstractmethod
    async def infer(
        self,
        system_prompt: str,
        user_prompt: str,
        options: Optional[InferenceOptions] = None,
    ) -> InferenceResult:
        """Run one inference call.

        Args:
            system_prompt: Instruction for the model
            user_prompt: Content to act on
            options: Generation options (defaults to InferenceOptions())

        Returns:
            InferenceResult with the generated text and token usage

        Raises:
            LLMError: On provider failure
        """
        pass


# =============================================================================
# OpenAI Provider
# =============================================================================


class OpenAIInferenceProvider(InferenceProvider):
    """Chat Completions provider backed by the ``openai`` SDK.

    Example:
        provider = OpenAIInferenceProvider(api_key="sk-...", default_model="gpt-4o")
        result = await provider.infer(system, user)
    """

    name: str = "openai"
    default_model: str = "gpt-4o-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        organization: Optional[str] = None,
        default_model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[Any] = None,
    ):
        """Initialize the provider.

        Args:
            api_key: API key (defaults to OPENAI_API_KEY env var)
            base_url: Base URL for OpenAI-compatible services (defaults to
                OPENAI_BASE_URL env var, then the SDK default)
            organization: Optional organization ID
            default_model: Override the default chat model
            timeout: Client-level request timeout in seconds
            client: Pre-built AsyncOpenAI client (skips lazy construction)
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.base_url = base_url or os.environ.get("OPENAI_BASE_URL")
        self.organization = organization or os.environ.get("OPENAI_ORGANIZATION")
        self.timeout = timeout
        if default_model:
            self.default_model = default_model
        self._client: Optional[Any] = client

    def _get_client(self) -> Any:
        """Get or create the AsyncOpenAI client (lazy initialization)."""
        if self._client is None:
            from openai import AsyncOpenAI

            if not self.api_key:
                raise AuthenticationError(
                    "OpenAI API key not provided. Set OPENAI_API_KEY or pass api_key.",
                    provider=self.name,
                )
            kwargs: Dict[str, Any] = {"api_key": self.api_key}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            if self.organization:
                kwargs["organization"] = self.organization
            if self.timeout is not None:
                kwargs["timeout"] = self.timeout
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    def _map_api_error(self, error: Exception) -> LLMError:
        """Translate an SDK exception into the LLMError hierarchy."""
        error_str = str(error)
        error_type = type(error).__name__
        status_code = getattr(error, "status_code", None)

        if error_type == "RateLimitError" or status_code == 429:
            retry_after = None
            response = getattr(error, "response", None)
            headers = getattr(response, "headers", None)
            if headers is not None:
                raw = headers.get("retry-after")
                if raw:
                    try:
                        retry_after = float(raw)
                    except ValueError:
                        retry_after = None
            return RateLimitError(error_str, provider=self.name, retry_after=retry_after)

        if error_type == "APITimeoutError":
            return ProviderTimeoutError(error_str, provider=self.name)

        if error_type in ("AuthenticationError", "PermissionDeniedError") or status_code in (401, 403):
            return AuthenticationError(error_str, provider=self.name)

        if error_type == "NotFoundError" or status_code == 404:
            return ModelNotFoundError(error_str, provider=self.name)

        if error_type in ("BadRequestError", "UnprocessableEntityError") or status_code in (400, 422):
            return InvalidRequestError(error_str, provider=self.name)

        # Connection errors, 5xx and anything unrecognized are treated as transient
        return LLMError(error_str, provider=self.name, retryable=True, status_code=status_code)

    async def infer(
        self,
        system_prompt: str,
        user_prompt: str,
        options: Optional[InferenceOptions] = None,
        *,
        model: Optional[str] = None,
    ) -> InferenceResult:
        options = options or InferenceOptions()
        client = self._get_client()

        kwargs: Dict[str, Any] = {
            "model": model or self.default_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": options.temperature,
        }
        if options.max_output_tokens is not None:
            kwargs["max_tokens"] = options.max_output_tokens
        if options.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await client.chat.completions.create(**kwargs)
        except LLMError:
            raise
        except Exception as e:
            raise self._map_api_error(e) from e

        if not getattr(response, "choices", None):
            raise LLMError(
                "Malformed response: no choices returned",
                provider=self.name,
                retryable=True,
            )

        usage = getattr(response, "usage", None)
        text = response.choices[0].message.content or ""
        result = InferenceResult(
            text=text,
            input_tokens=(usage.prompt_tokens or 0) if usage else 0,
            output_tokens=(usage.completion_tokens or 0) if usage else 0,
        )
        logger.debug(
            f"{self.name} inference: model={kwargs['model']} "
            f"in={result.input_tokens} out={result.output_tokens}"
        )
        return result


# =============================================================================
# Callable Adapter
# =============================================================================


InferenceCallable = Callable[
    [str, str, InferenceOptions],
    Union[InferenceResult, Awaitable[InferenceResult]],
]


class CallableInferenceProvider(InferenceProvider):
    """Wrap a sync or async function as an InferenceProvider.

    The function receives ``(system_prompt, user_prompt, options)`` and
    returns an ``InferenceResult`` (or a coroutine resolving to one).
    """

    name: str = "callable"

    def __init__(self, func: InferenceCallable, *, name: Optional[str] = None):
        self._func = func
        if name:
            self.name = name

    async def infer(
        self,
        system_prompt: str,
        user_prompt: str,
        options: Optional[InferenceOptions] = None,
    ) -> InferenceResult:
        result = self._func(system_prompt, user_prompt, options or InferenceOptions())
        if inspect.isawaitable(result):
            result = await result
        if not isinstance(result, InferenceResult):
            raise LLMError(
                f"Inference callable returned {type(result).__name__}, expected InferenceResult",
                provider=self.name,
                retryable=False,
            )
        return result
