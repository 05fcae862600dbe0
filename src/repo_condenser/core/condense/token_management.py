"""Token counting, model context limits and cost accounting.

Every other condensation component measures text through a token counter
and derives its budgets from the model's context window, so this module
is the single place where those numbers come from.

Key Components:
    - TokenCounter: tiktoken-backed counter with a character heuristic
      fallback that never raises
    - MODEL_TOKEN_LIMITS / get_context_limit(): context windows by model
    - ReservedTokens: system-prompt, response and safety reservations
    - get_available_budget(): tokens left for content after reservations
    - needs_hierarchical_summarization(): the whole-bundle trigger check
    - PRICING / calculate_cost() / TokenUsage: cost accounting
    - estimate_repo_tokens(): byte-size based estimate before fetching

Usage:
    from repo_condenser.core.condense.token_management import (
        TokenCounter,
        get_available_budget,
        needs_hierarchical_summarization,
    )

    counter = TokenCounter("gpt-4o-mini")
    tokens = counter.count(readme_text)

    available = get_available_budget("gpt-4o-mini")  # 124500
    if needs_hierarchical_summarization(tokens, "gpt-4o-mini"):
        ...
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Sequence
import logging
import math
import warnings

logger = logging.getLogger(__name__)

#: Any callable mapping text to a token count can stand in for TokenCounter.
CounterLike = Callable[[str], int]


# =============================================================================
# Model Limits
# =============================================================================

DEFAULT_MODEL = "gpt-4o-mini"

MODEL_TOKEN_LIMITS: Dict[str, int] = {
    "gpt-4o": 128_000,
    "gpt-4o-mini": 128_000,
    "gpt-4-turbo": 128_000,
    "gpt-4": 8_192,
    "gpt-3.5-turbo": 16_385,
}

# Conservative fallback for unknown models: the smallest window we know of
FALLBACK_CONTEXT_LIMIT = 8_192

DEFAULT_HIERARCHICAL_TRIGGER_RATIO = 0.8


@dataclass(frozen=True)
class ReservedTokens:
    """Tokens held back from the context window.

    Attributes:
        system_prompt: Room for the system prompt
        response: Room for the model's answer
        safety: Buffer for tokenizer drift and prompt glue
    """

    system_prompt: int = 1000
    response: int = 2000
    safety: int = 500

    def __post_init__(self) -> None:
        for name in ("system_prompt", "response", "safety"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} reservation must be non-negative, got {value}")

    @property
    def total(self) -> int:
        return self.system_prompt + self.response + self.safety


def get_context_limit(
    model: str = DEFAULT_MODEL,
    *,
    overrides: Optional[Dict[str, int]] = None,
) -> int:
    """Resolve the context window for ``model``.

    Resolution order: ``overrides`` exact match, built-in table exact
    match, the longest built-in name that prefixes ``model`` (so dated
    snapshots such as ``gpt-4o-2024-08-06`` resolve to ``gpt-4o``), then
    ``FALLBACK_CONTEXT_LIMIT``.
    """
    if overrides and model in overrides:
        return int(overrides[model])
    if model in MODEL_TOKEN_LIMITS:
        return MODEL_TOKEN_LIMITS[model]

    candidates = [name for name in MODEL_TOKEN_LIMITS if model.startswith(name + "-")]
    if candidates:
        return MODEL_TOKEN_LIMITS[max(candidates, key=len)]

    logger.debug(f"Unknown model '{model}', using fallback context limit {FALLBACK_CONTEXT_LIMIT}")
    return FALLBACK_CONTEXT_LIMIT


def get_available_budget(
    model: str = DEFAULT_MODEL,
    reserved: Optional[ReservedTokens] = None,
    *,
    context_limit_overrides: Optional[Dict[str, int]] = None,
) -> int:
    """Tokens available for content: context limit minus all reservations.

    Never negative.

    Example:
        get_available_budget("gpt-4o-mini")  # 128000 - 3500 = 124500
        get_available_budget("gpt-4")        # 8192 - 3500 = 4692
    """
    reserved = reserved or ReservedTokens()
    limit = get_context_limit(model, overrides=context_limit_overrides)
    return max(0, limit - reserved.total)


def needs_hierarchical_summarization(
    estimated_tokens: int,
    model: str = DEFAULT_MODEL,
    *,
    ratio: float = DEFAULT_HIERARCHICAL_TRIGGER_RATIO,
    reserved: Optional[ReservedTokens] = None,
    context_limit_overrides: Optional[Dict[str, int]] = None,
) -> bool:
    """Whether content of ``estimated_tokens`` must be condensed.

    The comparison is strict: content exactly at ``available * ratio``
    still fits.
    """
    available = get_available_budget(
        model, reserved, context_limit_overrides=context_limit_overrides
    )
    return estimated_tokens > available * ratio


# =============================================================================
# Token Counting
# =============================================================================


class TokenCountEstimateWarning(UserWarning):
    """Emitted when a token count comes from the character heuristic."""

    pass


def heuristic_token_count(text: str) -> int:
    """Approximate tokens as one per four characters, rounded up."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def _load_tiktoken_encoder(model: str) -> Callable[[str], Sequence[int]]:
    import tiktoken

    try:
        encoding = tiktoken.encoding_for_model(model)
    except KeyError:
        encoding = tiktoken.get_encoding("o200k_base" if model.startswith("gpt-4o") else "cl100k_base")
    return encoding.encode


class TokenCounter:
    """Counts tokens for one model.

    The encoder is resolved lazily on first use. Anything that goes wrong
    while loading it or while encoding (missing BPE files offline, odd
    input) falls back to ``ceil(len(text) / 4)``. A fallback count is
    never silent: it emits ``TokenCountEstimateWarning``, logs at debug
    level, and increments ``fallback_count``.

    Instances are callable, so a TokenCounter can be passed anywhere a
    plain ``Callable[[str], int]`` is accepted.

    Args:
        model: Model whose tokenizer to use
        encode: Injected encoder returning a token sequence (skips tiktoken)
        warn_on_fallback: Emit TokenCountEstimateWarning on fallback

    Example:
        counter = TokenCounter(encode=lambda s: s.split())
        counter.count("three little words")  # 3
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        *,
        encode: Optional[Callable[[str], Sequence[Any]]] = None,
        warn_on_fallback: bool = True,
    ):
        self.model = model
        self.warn_on_fallback = warn_on_fallback
        self._encode = encode
        self._encoder_failed = False
        self._fallback_count = 0

    @property
    def fallback_count(self) -> int:
        """Number of counts produced by the heuristic fallback."""
        return self._fallback_count

    def _get_encode(self) -> Optional[Callable[[str], Sequence[Any]]]:
        if self._encode is None and not self._encoder_failed:
            try:
                self._encode = _load_tiktoken_encoder(self.model)
            except Exception as e:
                self._encoder_failed = True
                logger.debug(f"tiktoken encoder unavailable for '{self.model}': {e}")
        return self._encode

    def count(self, text: Optional[str]) -> int:
        """Return the token count of ``text`` (0 for empty or None)."""
        if not text:
            return 0

        encode = self._get_encode()
        if encode is not None:
            try:
                return len(encode(text))
            except Exception as e:
                logger.debug(f"Tokenizer failed on {len(text)} chars: {e}")

        return self._fallback(text)

    def _fallback(self, text: str) -> int:
        self._fallback_count += 1
        estimate = heuristic_token_count(text)
        logger.debug(f"Used character heuristic for token count ({estimate} tokens)")
        if self.warn_on_fallback:
            warnings.warn(
                "TOKEN_COUNT_ESTIMATE_USED: tokenizer unavailable or failed for "
                f"model={self.model}; using ceil(chars/4) heuristic.",
                TokenCountEstimateWarning,
                stacklevel=3,
            )
        return estimate

    def __call__(self, text: Optional[str]) -> int:
        return self.count(text)


def resolve_counter(counter: Optional[CounterLike], model: str = DEFAULT_MODEL) -> CounterLike:
    """Return ``counter`` or a fresh TokenCounter for ``model``."""
    return counter if counter is not None else TokenCounter(model)


def estimate_repo_tokens(
    readme_size: int,
    source_file_sizes: Iterable[int],
    config_file_sizes: Iterable[int],
) -> int:
    """Estimate tokens for a repository from byte sizes, before fetching.

    Prose and config files run at ~0.3 tokens/byte and code at ~0.25.
    """
    readme_tokens = math.ceil(readme_size * 0.3)
    source_tokens = sum(math.ceil(size * 0.25) for size in source_file_sizes)
    config_tokens = sum(math.ceil(size * 0.3) for size in config_file_sizes)
    return readme_tokens + source_tokens + config_tokens


# =============================================================================
# Cost Accounting
# =============================================================================

# USD per 1M tokens
PRICING: Dict[str, Dict[str, float]] = {
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4-turbo": {"input": 10.00, "output": 30.00},
    "gpt-4": {"input": 30.00, "output": 60.00},
    "gpt-3.5-turbo": {"input": 0.50, "output": 1.50},
}


def calculate_cost(input_tokens: int, output_tokens: int, model: str = DEFAULT_MODEL) -> float:
    """Estimated USD cost of a call. Unknown models cost 0.0."""
    prices = PRICING.get(model)
    if prices is None:
        logger.debug(f"No pricing for model '{model}', reporting zero cost")
        return 0.0
    return (input_tokens / 1_000_000) * prices["input"] + (
        output_tokens / 1_000_000
    ) * prices["output"]


@dataclass(frozen=True)
class TokenUsage:
    """Cumulative token usage of a condensation run.

    Attributes:
        input_tokens: Prompt tokens across all successful calls
        output_tokens: Completion tokens across all successful calls
        total_tokens: input_tokens + output_tokens
        estimated_cost: USD estimate from PRICING
    """

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0

    @classmethod
    def from_counts(
        cls, input_tokens: int, output_tokens: int, model: str = DEFAULT_MODEL
    ) -> "TokenUsage":
        return cls(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            estimated_cost=calculate_cost(input_tokens, output_tokens, model),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "estimated_cost": round(self.estimated_cost, 6),
        }
