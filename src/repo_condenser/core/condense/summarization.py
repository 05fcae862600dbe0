"""Hierarchical (chunk-and-combine) summarization.

Text that fits the chunk ceiling is returned as-is. Longer text is split
by the boundary-preserving chunker, each chunk is summarized with one
inference call, and the chunk summaries are merged in batches until a
single summary remains:

    chunks -> [chunk summaries] -> [batch summaries] -> ... -> summary

Merging is an explicit work-queue loop over rounds: while more than
``max_summaries_to_combine`` summaries remain they are partitioned into
batches and each batch is merged with one call, so the number of merge
calls grows logarithmically with the number of chunks.

Transient inference failures are retried with exponential backoff. A
call that still fails raises ``SummarizationError``; content is never
silently dropped. An empty model answer is replaced by the chunk's own
text (chunk phase) or by the joined inputs (merge phase).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence

from repo_condenser.core.condense.chunking import ChunkingOptions, TextChunker
from repo_condenser.core.condense.models import SummaryResult
from repo_condenser.core.condense.prompts import (
    CHUNK_SUMMARY_V1,
    COMBINE_SUMMARIES_V1,
    build_chunk_prompt,
    build_combine_prompt,
)
from repo_condenser.core.condense.token_management import CounterLike, resolve_counter
from repo_condenser.core.llm_provider import InferenceOptions, InferenceProvider, InferenceResult
from repo_condenser.core.resilience import RetryPolicy, call_with_timeout, retry_async

logger = logging.getLogger(__name__)

# Defaults
DEFAULT_TEMPERATURE = 0.3
CHUNK_SUMMARY_MAX_TOKENS = 500
COMBINE_MAX_TOKENS = 800
MAX_SUMMARIES_TO_COMBINE = 10

ProgressCallback = Callable[[str], None]


class SummaryState(str, Enum):
    """States a summarization passes through."""

    SINGLE_PASS = "single_pass"
    NEEDS_SUMMARIZATION = "needs_summarization"
    CHUNK_SUMMARIZE = "chunk_summarize"
    COMBINE = "combine"
    DONE = "done"
    FAILED = "failed"


class SummarizationError(Exception):
    """An inference call failed after exhausting its retries.

    Attributes:
        stage: "chunk" or "combine"
        chunk_index: 0-based chunk index for chunk-stage failures
        cause: The last underlying error
        trace: States and call counts up to the failure
    """

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        chunk_index: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.chunk_index = chunk_index
        self.cause = cause
        # Usage of the calls that succeeded before the failure
        self.input_tokens = 0
        self.output_tokens = 0
        self.trace: Optional["SummarizationTrace"] = None


@dataclass
class SummarizationTrace:
    """What one summarization did: visited states and call counts."""

    states: list[SummaryState] = field(default_factory=list)
    chunk_count: int = 0
    chunk_calls: int = 0
    combine_calls: int = 0
    combine_rounds: int = 0

    def record(self, state: SummaryState) -> None:
        if not self.states or self.states[-1] != state:
            self.states.append(state)

    @property
    def final_state(self) -> Optional[SummaryState]:
        return self.states[-1] if self.states else None

    @property
    def inference_calls(self) -> int:
        return self.chunk_calls + self.combine_calls

    def to_dict(self) -> dict[str, Any]:
        return {
            "states": [s.value for s in self.states],
            "chunk_count": self.chunk_count,
            "chunk_calls": self.chunk_calls,
            "combine_calls": self.combine_calls,
            "combine_rounds": self.combine_rounds,
        }


class HierarchicalSummarizer:
    """Summarizes arbitrarily long text through chunking and batched merging.

    Example:
        summarizer = HierarchicalSummarizer(provider, counter=TokenCounter("gpt-4o-mini"))
        result = await summarizer.summarize(long_readme, "acme/widgets")
        print(result.text, result.input_tokens, result.output_tokens)

    Args:
        provider: Inference capability
        counter: Token counter (default: TokenCounter for the default model)
        chunking: Chunker settings; ``max_chunk_tokens`` is also the
            single-pass threshold
        temperature: Sampling temperature for every call
        chunk_max_tokens: Output cap of a chunk summary
        combine_max_tokens: Output cap of a merge
        max_summaries_to_combine: Summaries merged by one call
        retry_policy: Backoff for failed calls
        should_retry: Predicate separating transient from permanent errors
        call_timeout: Per-call timeout in seconds (None disables)
        sleep: Awaitable sleep used between retries
    """

    def __init__(
        self,
        provider: InferenceProvider,
        *,
        counter: Optional[CounterLike] = None,
        chunking: Optional[ChunkingOptions] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        chunk_max_tokens: int = CHUNK_SUMMARY_MAX_TOKENS,
        combine_max_tokens: int = COMBINE_MAX_TOKENS,
        max_summaries_to_combine: int = MAX_SUMMARIES_TO_COMBINE,
        retry_policy: Optional[RetryPolicy] = None,
        should_retry: Optional[Callable[[BaseException], bool]] = None,
        call_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_summaries_to_combine < 2:
            raise ValueError(
                f"max_summaries_to_combine must be at least 2, got {max_summaries_to_combine}"
            )
        self.provider = provider
        self._count = resolve_counter(counter)
        self.chunking = chunking or ChunkingOptions()
        self.chunker = TextChunker(self.chunking, self._count)
        self.chunk_options = InferenceOptions(
            temperature=temperature, max_output_tokens=chunk_max_tokens
        )
        self.combine_options = InferenceOptions(
            temperature=temperature, max_output_tokens=combine_max_tokens
        )
        self.max_summaries_to_combine = max_summaries_to_combine
        self.retry_policy = retry_policy or RetryPolicy()
        self.should_retry = should_retry
        self.call_timeout = call_timeout
        self._sleep = sleep

    @property
    def threshold(self) -> int:
        """Texts at or below this many tokens are returned unchanged."""
        return self.chunking.max_chunk_tokens

    async def summarize(
        self,
        text: str,
        context_name: str = "repository",
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> SummaryResult:
        """Summarize ``text``; see ``summarize_with_trace``."""
        result, _ = await self.summarize_with_trace(text, context_name, progress=progress)
        return result

    async def summarize_with_trace(
        self,
        text: str,
        context_name: str = "repository",
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> tuple[SummaryResult, SummarizationTrace]:
        """Summarize ``text`` and report how it was done.

        Returns:
            (SummaryResult with summed usage of every call, SummarizationTrace)

        Raises:
            SummarizationError: If a call fails after its retries
        """
        trace = SummarizationTrace()

        if self._count(text) <= self.threshold:
            trace.record(SummaryState.SINGLE_PASS)
            trace.record(SummaryState.DONE)
            return SummaryResult(text=text), trace

        trace.record(SummaryState.NEEDS_SUMMARIZATION)
        chunks = self.chunker.chunk(text)
        trace.chunk_count = len(chunks)
        logger.debug(f"Summarizing '{context_name}' in {len(chunks)} chunks")

        result = SummaryResult(text="")
        try:
            summaries = await self._summarize_chunks(chunks, context_name, result, trace, progress)
            result.text = await self._combine_all(summaries, context_name, result, trace, progress)
        except SummarizationError as e:
            trace.record(SummaryState.FAILED)
            e.input_tokens = result.input_tokens
            e.output_tokens = result.output_tokens
            e.trace = trace
            raise

        trace.record(SummaryState.DONE)
        logger.debug(
            f"Summarized '{context_name}': {trace.chunk_calls} chunk calls, "
            f"{trace.combine_calls} merge calls, {result.total_tokens} tokens used"
        )
        return result, trace

    async def _summarize_chunks(
        self,
        chunks: Sequence[str],
        context_name: str,
        usage: SummaryResult,
        trace: SummarizationTrace,
        progress: Optional[ProgressCallback],
    ) -> list[str]:
        trace.record(SummaryState.CHUNK_SUMMARIZE)
        summaries = []
        total = len(chunks)
        for index, chunk in enumerate(chunks):
            if progress:
                progress(f"Summarizing chunk {index + 1}/{total} of {context_name}")
            response = await self._infer(
                CHUNK_SUMMARY_V1.system_prompt,
                build_chunk_prompt(chunk, index, total, context_name),
                self.chunk_options,
                stage="chunk",
                chunk_index=index,
            )
            trace.chunk_calls += 1
            self._add_usage(usage, response)
            if response.text.strip():
                summaries.append(response.text)
            else:
                logger.warning(f"Empty summary for chunk {index + 1}/{total}; keeping raw chunk")
                summaries.append(chunk)
        return summaries

    async def _combine_all(
        self,
        summaries: list[str],
        context_name: str,
        usage: SummaryResult,
        trace: SummarizationTrace,
        progress: Optional[ProgressCallback],
    ) -> str:
        batch_size = self.max_summaries_to_combine
        queue = summaries

        while len(queue) > batch_size:
            trace.record(SummaryState.COMBINE)
            trace.combine_rounds += 1
            if progress:
                progress(f"Merging {len(queue)} summaries of {context_name}")
            next_round = []
            for start in range(0, len(queue), batch_size):
                batch = queue[start:start + batch_size]
                if len(batch) == 1:
                    next_round.append(batch[0])
                    continue
                next_round.append(await self._combine(batch, context_name, usage, trace))
            queue = next_round

        if len(queue) > 1:
            trace.record(SummaryState.COMBINE)
            trace.combine_rounds += 1
            if progress:
                progress(f"Merging {len(queue)} summaries of {context_name}")
            return await self._combine(queue, context_name, usage, trace)

        return queue[0] if queue else ""

    async def _combine(
        self,
        batch: Sequence[str],
        context_name: str,
        usage: SummaryResult,
        trace: SummarizationTrace,
    ) -> str:
        response = await self._infer(
            COMBINE_SUMMARIES_V1.system_prompt,
            build_combine_prompt(batch, context_name),
            self.combine_options,
            stage="combine",
        )
        trace.combine_calls += 1
        self._add_usage(usage, response)
        if response.text.strip():
            return response.text
        logger.warning(f"Empty merge of {len(batch)} summaries; joining them instead")
        return "\n".join(batch)

    async def _infer(
        self,
        system_prompt: str,
        user_prompt: str,
        options: InferenceOptions,
        *,
        stage: str,
        chunk_index: Optional[int] = None,
    ) -> InferenceResult:
        async def attempt() -> InferenceResult:
            return await call_with_timeout(
                self.provider.infer(system_prompt, user_prompt, options),
                self.call_timeout,
                operation=f"{stage} inference",
            )

        try:
            return await retry_async(
                attempt,
                self.retry_policy,
                should_retry=self.should_retry,
                sleep=self._sleep,
            )
        except Exception as e:
            where = f"chunk {chunk_index + 1}" if chunk_index is not None else "merge"
            raise SummarizationError(
                f"Inference failed for {where}: {type(e).__name__}: {e}",
                stage=stage,
                chunk_index=chunk_index,
                cause=e,
            ) from e

    @staticmethod
    def _add_usage(usage: SummaryResult, response: InferenceResult) -> None:
        usage.input_tokens += response.input_tokens
        usage.output_tokens += response.output_tokens
