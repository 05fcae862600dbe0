"""Budget-driven condensation of a content bundle.

``summarize_to_budget`` is the single entry point: given a bundle of
extracted project text and the target model, it returns a bundle that
fits the model's usable context together with the token usage (and cost)
of every inference call made along the way.

Decision flow:
    1. Estimate the bundle (all units plus framing overhead). At or below
       ``available * hierarchical_trigger_ratio`` everything passes
       through with no inference calls.
    2. Otherwise split the available budget across categories and evenly
       across the units of each category. Per unit:
         - tokens <= share: keep as-is
         - tokens > share + min_hierarchical_tokens: hierarchical
           summarization, then truncation if the summary is still over
         - in between: truncate to the share
    3. A unit whose summarization fails is recorded and the remaining
       units still run; the run then raises ``CondensePipelineError``
       carrying the partial result (or returns it with
       ``raise_on_failure=False``).

Usage:
    from repo_condenser import BudgetParams, summarize_to_budget

    result = await summarize_to_budget(
        bundle,
        BudgetParams(model="gpt-4o-mini"),
        progress_callback=print,
        provider=OpenAIInferenceProvider(),
    )
    result.bundle, result.usage.estimated_cost
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from repo_condenser.config import CondenserConfig
from repo_condenser.core.condense.chunking import ChunkingOptions
from repo_condenser.core.condense.context_budget import (
    ContentBudget,
    allocate_content_budget,
    per_unit_share,
)
from repo_condenser.core.condense.models import (
    ContentBundle,
    ContentKind,
    ContentUnit,
    UnitAction,
    UnitFailure,
    UnitOutcome,
)
from repo_condenser.core.condense.summarization import (
    HierarchicalSummarizer,
    ProgressCallback,
    SummarizationError,
)
from repo_condenser.core.condense.token_management import (
    DEFAULT_MODEL,
    CounterLike,
    ReservedTokens,
    TokenCounter,
    TokenUsage,
    get_available_budget,
)
from repo_condenser.core.condense.truncation import truncate_to_token_limit
from repo_condenser.core.context import run_context
from repo_condenser.core.llm_provider import InferenceProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BudgetParams:
    """Model identity and reservations for one run.

    Attributes:
        model: Target model; selects the context window and pricing
        reserved: System-prompt, response and safety reservations
        context_limit_overrides: Per-model context window overrides
    """

    model: str = DEFAULT_MODEL
    reserved: ReservedTokens = field(default_factory=ReservedTokens)
    context_limit_overrides: Optional[dict[str, int]] = None

    @property
    def available(self) -> int:
        return get_available_budget(
            self.model, self.reserved, context_limit_overrides=self.context_limit_overrides
        )


@dataclass
class CondenseResult:
    """Outcome of a condensation run.

    Attributes:
        bundle: The bounded bundle
        usage: Cumulative usage and estimated cost of all successful calls
        outcomes: Per-unit record of what was done, in document order
        failures: Units whose summarization failed
        estimated_tokens: Whole-bundle estimate before condensation
        available_tokens: Usable budget for the model
        content_budget: Category split (None when everything fit)
    """

    bundle: ContentBundle
    usage: TokenUsage
    outcomes: list[UnitOutcome] = field(default_factory=list)
    failures: list[UnitFailure] = field(default_factory=list)
    estimated_tokens: int = 0
    available_tokens: int = 0
    content_budget: Optional[ContentBudget] = None

    @property
    def condensed(self) -> bool:
        return self.content_budget is not None

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "usage": self.usage.to_dict(),
            "estimated_tokens": self.estimated_tokens,
            "available_tokens": self.available_tokens,
            "condensed": self.condensed,
            "content_budget": self.content_budget.to_dict() if self.content_budget else None,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "failures": [f.to_dict() for f in self.failures],
        }


class CondensePipelineError(Exception):
    """One or more units could not be condensed.

    Attributes:
        result: Partial result; failed units are truncated to their share
        failures: The failed units with their errors
    """

    def __init__(self, message: str, *, result: CondenseResult):
        super().__init__(message)
        self.result = result
        self.failures = result.failures


def estimate_bundle_tokens(
    bundle: ContentBundle,
    counter: CounterLike,
    overhead: int = 500,
) -> int:
    """Tokens of every unit plus ``overhead`` for prompt framing."""
    return sum(counter(unit.text) for unit in bundle.units()) + overhead


class CondensePipeline:
    """Condenses content bundles to a model's token budget.

    Stateless between runs: one instance can serve concurrent runs for
    different bundles.

    Args:
        provider: Inference capability used for hierarchical summarization
        config: Thresholds, chunking, summarization and retry settings
        counter: Token counter (default: TokenCounter for the run's model)
        sleep: Awaitable sleep used between retries
    """

    def __init__(
        self,
        provider: InferenceProvider,
        config: Optional[CondenserConfig] = None,
        *,
        counter: Optional[CounterLike] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.provider = provider
        self.config = config or CondenserConfig()
        self.config.validate()
        self._counter = counter
        self._sleep = sleep

    def default_params(self) -> BudgetParams:
        return BudgetParams(
            model=self.config.model,
            reserved=self.config.budget.reserved(),
            context_limit_overrides=self.config.budget.context_limit_overrides or None,
        )

    def _counter_for(self, model: str) -> CounterLike:
        return self._counter if self._counter is not None else TokenCounter(model)

    def _summarizer(self, counter: CounterLike) -> HierarchicalSummarizer:
        chunking = self.config.chunking
        summarization = self.config.summarization
        return HierarchicalSummarizer(
            self.provider,
            counter=counter,
            chunking=ChunkingOptions(
                max_chunk_tokens=chunking.max_chunk_tokens,
                overlap_tokens=chunking.overlap_tokens,
                preserve_code_blocks=chunking.preserve_code_blocks,
                preserve_paragraphs=chunking.preserve_paragraphs,
            ),
            temperature=summarization.temperature,
            chunk_max_tokens=summarization.chunk_summary_max_tokens,
            combine_max_tokens=summarization.combine_max_tokens,
            max_summaries_to_combine=summarization.max_summaries_to_combine,
            retry_policy=self.config.retry.to_policy(),
            call_timeout=summarization.call_timeout or None,
            sleep=self._sleep,
        )

    async def run(
        self,
        bundle: ContentBundle,
        params: Optional[BudgetParams] = None,
        progress_callback: Optional[ProgressCallback] = None,
        *,
        raise_on_failure: Optional[bool] = None,
    ) -> CondenseResult:
        """Condense ``bundle`` to the budget described by ``params``.

        Raises:
            CondensePipelineError: If a unit failed and raise_on_failure is set
        """
        params = params or self.default_params()
        if raise_on_failure is None:
            raise_on_failure = self.config.raise_on_failure

        def notify(message: str) -> None:
            logger.info(message)
            if progress_callback:
                progress_callback(message)

        with run_context(label=bundle.name):
            count = self._counter_for(params.model)
            budget_cfg = self.config.budget
            available = params.available
            measured = [(unit, count(unit.text)) for unit in bundle.units()]
            estimated = sum(tokens for _, tokens in measured) + budget_cfg.metadata_overhead_tokens
            notify(f"Estimated content tokens for {bundle.name}: {estimated} (available {available})")

            if estimated <= available * budget_cfg.hierarchical_trigger_ratio:
                notify("Content fits the budget; no condensation needed")
                return CondenseResult(
                    bundle=bundle,
                    usage=TokenUsage.from_counts(0, 0, params.model),
                    outcomes=[
                        UnitOutcome(
                            source_id=unit.source_id,
                            kind=unit.kind,
                            action=UnitAction.PASSED_THROUGH,
                            original_tokens=tokens,
                            final_tokens=tokens,
                            budget=tokens,
                        )
                        for unit, tokens in measured
                    ],
                    estimated_tokens=estimated,
                    available_tokens=available,
                )

            notify(f"Content too large ({estimated} tokens); condensing to budget")
            content_budget = allocate_content_budget(
                available,
                has_primary_doc=bundle.primary_doc is not None,
                source_unit_count=len(bundle.source_units),
                config_unit_count=len(bundle.config_units),
            )
            summarizer = self._summarizer(count)

            input_tokens = 0
            output_tokens = 0
            outcomes: list[UnitOutcome] = []
            failures: list[UnitFailure] = []
            replacements: dict[str, ContentUnit] = {}

            for unit, tokens in measured:
                share = per_unit_share(content_budget.for_kind(unit.kind), bundle.count_of(unit.kind))
                try:
                    text, action, used_in, used_out = await self._condense_unit(
                        unit, tokens, share, bundle.name, summarizer, count, notify
                    )
                except SummarizationError as e:
                    logger.error(f"Failed to condense {unit.kind.value} unit {unit.source_id}: {e}")
                    notify(f"Failed to summarize {unit.source_id}; truncated to {share} tokens")
                    input_tokens += e.input_tokens
                    output_tokens += e.output_tokens
                    failures.append(UnitFailure(source_id=unit.source_id, kind=unit.kind, error=e))
                    text = truncate_to_token_limit(unit.text, share, counter=count)
                    action = UnitAction.FAILED
                else:
                    input_tokens += used_in
                    output_tokens += used_out

                if text != unit.text:
                    replacements[unit.source_id] = unit.with_text(text)
                outcomes.append(
                    UnitOutcome(
                        source_id=unit.source_id,
                        kind=unit.kind,
                        action=action,
                        original_tokens=tokens,
                        final_tokens=count(text) if text != unit.text else tokens,
                        budget=share,
                    )
                )

            result = CondenseResult(
                bundle=bundle.replace_units(replacements),
                usage=TokenUsage.from_counts(input_tokens, output_tokens, params.model),
                outcomes=outcomes,
                failures=failures,
                estimated_tokens=estimated,
                available_tokens=available,
                content_budget=content_budget,
            )
            logger.info(
                f"Condensed {bundle.name}: {len(replacements)} units changed, "
                f"{len(failures)} failed, {result.usage.total_tokens} tokens "
                f"(${result.usage.estimated_cost:.4f})"
            )

            if failures and raise_on_failure:
                failed = ", ".join(f.source_id for f in failures)
                raise CondensePipelineError(
                    f"{len(failures)} unit(s) could not be condensed: {failed}",
                    result=result,
                )
            return result

    async def _condense_unit(
        self,
        unit: ContentUnit,
        tokens: int,
        share: int,
        bundle_name: str,
        summarizer: HierarchicalSummarizer,
        count: CounterLike,
        notify: Callable[[str], None],
    ) -> tuple[str, UnitAction, int, int]:
        """Apply the routing rule to one unit.

        Returns:
            (new text, action, input tokens used, output tokens used)
        """
        if tokens <= share:
            return unit.text, UnitAction.PASSED_THROUGH, 0, 0

        label = f"{unit.kind.value} unit {unit.source_id}"
        if tokens <= share + self.config.budget.min_hierarchical_tokens:
            notify(f"Truncating {label} ({tokens} -> {share} tokens)")
            return truncate_to_token_limit(unit.text, share, counter=count), UnitAction.TRUNCATED, 0, 0

        notify(f"Summarizing {label} ({tokens} tokens, budget {share})")
        context_name = (
            bundle_name
            if unit.kind in (ContentKind.PRIMARY_DOC, ContentKind.METADATA)
            else f"{bundle_name}/{unit.source_id}"
        )
        summary = await summarizer.summarize(unit.text, context_name, progress=notify)
        if count(summary.text) <= share:
            return summary.text, UnitAction.SUMMARIZED, summary.input_tokens, summary.output_tokens

        notify(f"Summary of {unit.source_id} still over budget; truncating to {share} tokens")
        return (
            truncate_to_token_limit(summary.text, share, counter=count),
            UnitAction.SUMMARIZED_AND_TRUNCATED,
            summary.input_tokens,
            summary.output_tokens,
        )

    def fit_prompt(
        self,
        prompt: str,
        system_prompt: str,
        params: Optional[BudgetParams] = None,
    ) -> str:
        """Truncate a fully assembled user prompt to what the model can take.

        The limit is the available budget minus the system prompt and
        ``prompt_headroom_tokens``.
        """
        params = params or self.default_params()
        count = self._counter_for(params.model)
        limit = params.available - count(system_prompt) - self.config.budget.prompt_headroom_tokens
        prompt_tokens = count(prompt)
        if prompt_tokens <= limit:
            return prompt
        logger.warning(f"Final prompt has {prompt_tokens} tokens; truncating to {limit}")
        return truncate_to_token_limit(prompt, max(limit, 0), counter=count)


async def summarize_to_budget(
    bundle: ContentBundle,
    params: Optional[BudgetParams] = None,
    progress_callback: Optional[ProgressCallback] = None,
    *,
    provider: InferenceProvider,
    config: Optional[CondenserConfig] = None,
    counter: Optional[CounterLike] = None,
    raise_on_failure: Optional[bool] = None,
) -> CondenseResult:
    """Condense ``bundle`` to fit the model described by ``params``.

    Args:
        bundle: Content extracted from one project
        params: Model and reservations (default: from config)
        progress_callback: Receives human-readable status messages
        provider: Inference capability for summarization
        config: Pipeline settings (default: CondenserConfig())
        counter: Token counter (default: TokenCounter for params.model)
        raise_on_failure: Override config.raise_on_failure

    Returns:
        CondenseResult with the bounded bundle and cumulative usage

    Raises:
        CondensePipelineError: If a unit failed and raise_on_failure is set
    """
    pipeline = CondensePipeline(provider, config, counter=counter)
    return await pipeline.run(bundle, params, progress_callback, raise_on_failure=raise_on_failure)
