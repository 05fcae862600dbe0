"""Token-exact truncation.

The truncator is the last-resort safety net of the pipeline: whatever a
summary or a unit turns out to be, it can always be cut to a hard token
limit.
"""

from dataclasses import dataclass
from typing import Any, Optional
import logging

from repo_condenser.core.condense.token_management import CounterLike, resolve_counter

logger = logging.getLogger(__name__)

ELLIPSIS = "..."
# Tokens held back for the ellipsis marker
ELLIPSIS_TOKENS = 3


@dataclass(frozen=True)
class TruncationResult:
    """Outcome of a truncation with before/after token counts."""

    text: str
    truncated: bool
    original_tokens: int
    result_tokens: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "truncated": self.truncated,
            "original_tokens": self.original_tokens,
            "result_tokens": self.result_tokens,
        }


def longest_fitting_prefix(text: str, limit: int, count: CounterLike) -> str:
    """Binary search for the longest character prefix with ``count <= limit``."""
    low, high = 0, len(text)
    while low < high:
        mid = (low + high + 1) // 2
        if count(text[:mid]) <= limit:
            low = mid
        else:
            high = mid - 1
    return text[:low]


def truncate_to_token_limit(
    text: str,
    max_tokens: int,
    add_ellipsis: bool = True,
    *,
    counter: Optional[CounterLike] = None,
) -> str:
    """Cut ``text`` to at most ``max_tokens`` tokens.

    Text that already fits is returned unchanged. Otherwise the longest
    character prefix counting at most ``max_tokens`` tokens (minus three
    when an ellipsis is added) is kept; with ``add_ellipsis`` trailing
    whitespace is stripped and ``"..."`` appended.

    Args:
        text: Text to truncate
        max_tokens: Hard token limit
        add_ellipsis: Mark the cut with "..."
        counter: Token counter (default: TokenCounter for the default model)

    Returns:
        The (possibly truncated) text; "" for empty input or max_tokens <= 0
    """
    return truncate_with_result(text, max_tokens, add_ellipsis, counter=counter).text


def truncate_with_result(
    text: str,
    max_tokens: int,
    add_ellipsis: bool = True,
    *,
    counter: Optional[CounterLike] = None,
) -> TruncationResult:
    """Like ``truncate_to_token_limit`` but reports token counts."""
    if not text:
        return TruncationResult(text="", truncated=False, original_tokens=0, result_tokens=0)

    count = resolve_counter(counter)
    original_tokens = count(text)
    if original_tokens <= max_tokens:
        return TruncationResult(
            text=text,
            truncated=False,
            original_tokens=original_tokens,
            result_tokens=original_tokens,
        )
    if max_tokens <= 0:
        return TruncationResult(
            text="", truncated=True, original_tokens=original_tokens, result_tokens=0
        )

    limit = max_tokens - (ELLIPSIS_TOKENS if add_ellipsis else 0)
    prefix = longest_fitting_prefix(text, limit, count) if limit > 0 else ""
    result = prefix.rstrip() + ELLIPSIS if add_ellipsis else prefix

    result_tokens = count(result)
    logger.debug(f"Truncated {original_tokens} -> {result_tokens} tokens (limit {max_tokens})")
    return TruncationResult(
        text=result,
        truncated=True,
        original_tokens=original_tokens,
        result_tokens=result_tokens,
    )
