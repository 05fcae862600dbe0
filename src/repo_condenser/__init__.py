"""repo-condenser: fit repository content into an LLM context window.

Example:
    from repo_condenser import (
        BudgetParams, ContentBundle, ContentKind, ContentUnit,
        OpenAIInferenceProvider, summarize_to_budget,
    )

    bundle = ContentBundle(
        name="acme/widgets",
        primary_doc=ContentUnit(kind=ContentKind.PRIMARY_DOC, source_id="README.md", text=readme),
    )
    result = await summarize_to_budget(
        bundle, BudgetParams(model="gpt-4o-mini"), print,
        provider=OpenAIInferenceProvider(),
    )
"""

from importlib.metadata import PackageNotFoundError, version as _get_package_version

from repo_condenser.config import CondenserConfig
from repo_condenser.core.condense import (
    ContentBundle,
    ContentKind,
    ContentUnit,
    HierarchicalSummarizer,
    SummarizationError,
    TokenCounter,
    TokenUsage,
    allocate_content_budget,
    chunk_text,
    get_available_budget,
    truncate_to_token_limit,
)
from repo_condenser.core.condense.pipeline import (
    BudgetParams,
    CondensePipeline,
    CondensePipelineError,
    CondenseResult,
    summarize_to_budget,
)
from repo_condenser.core.llm_provider import (
    CallableInferenceProvider,
    InferenceOptions,
    InferenceProvider,
    InferenceResult,
    LLMError,
    OpenAIInferenceProvider,
)
from repo_condenser.core.logging_config import configure_logging

try:
    __version__ = _get_package_version("repo-condenser")
except PackageNotFoundError:
    __version__ = "0.3.0"

__all__ = [
    "BudgetParams",
    "CallableInferenceProvider",
    "CondensePipeline",
    "CondensePipelineError",
    "CondenseResult",
    "CondenserConfig",
    "ContentBundle",
    "ContentKind",
    "ContentUnit",
    "HierarchicalSummarizer",
    "InferenceOptions",
    "InferenceProvider",
    "InferenceResult",
    "LLMError",
    "OpenAIInferenceProvider",
    "SummarizationError",
    "TokenCounter",
    "TokenUsage",
    "allocate_content_budget",
    "chunk_text",
    "configure_logging",
    "get_available_budget",
    "summarize_to_budget",
    "truncate_to_token_limit",
]
