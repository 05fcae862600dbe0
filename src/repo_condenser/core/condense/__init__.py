"""Token-budgeted condensation of repository content.

This package measures, splits, truncates and summarizes extracted project
text so it fits a model's context window. The budget-driven entry point
lives in ``repo_condenser.core.condense.pipeline``.
"""

from repo_condenser.core.condense.chunking import (
    Chunk,
    ChunkingOptions,
    TextChunker,
    chunk_text,
)
from repo_condenser.core.condense.context_budget import (
    ContentBudget,
    PrioritizedText,
    allocate_content_budget,
    per_unit_share,
    select_within_budget,
)
from repo_condenser.core.condense.models import (
    ContentBundle,
    ContentKind,
    ContentUnit,
    SummaryResult,
    UnitAction,
    UnitFailure,
    UnitOutcome,
)
from repo_condenser.core.condense.summarization import (
    HierarchicalSummarizer,
    SummarizationError,
    SummarizationTrace,
    SummaryState,
)
from repo_condenser.core.condense.token_management import (
    DEFAULT_MODEL,
    MODEL_TOKEN_LIMITS,
    PRICING,
    ReservedTokens,
    TokenCounter,
    TokenCountEstimateWarning,
    TokenUsage,
    calculate_cost,
    estimate_repo_tokens,
    get_available_budget,
    get_context_limit,
    needs_hierarchical_summarization,
)
from repo_condenser.core.condense.truncation import (
    TruncationResult,
    truncate_to_token_limit,
    truncate_with_result,
)

__all__ = [
    # Chunking
    "Chunk",
    "ChunkingOptions",
    "TextChunker",
    "chunk_text",
    # Budgets
    "ContentBudget",
    "PrioritizedText",
    "allocate_content_budget",
    "per_unit_share",
    "select_within_budget",
    # Models
    "ContentBundle",
    "ContentKind",
    "ContentUnit",
    "SummaryResult",
    "UnitAction",
    "UnitFailure",
    "UnitOutcome",
    # Summarization
    "HierarchicalSummarizer",
    "SummarizationError",
    "SummarizationTrace",
    "SummaryState",
    # Tokens
    "DEFAULT_MODEL",
    "MODEL_TOKEN_LIMITS",
    "PRICING",
    "ReservedTokens",
    "TokenCounter",
    "TokenCountEstimateWarning",
    "TokenUsage",
    "calculate_cost",
    "estimate_repo_tokens",
    "get_available_budget",
    "get_context_limit",
    "needs_hierarchical_summarization",
    # Truncation
    "TruncationResult",
    "truncate_to_token_limit",
    "truncate_with_result",
]
