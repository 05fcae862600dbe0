"""
Prompt templates for hierarchical summarization.

Two templates drive the summarizer:

- CHUNK_SUMMARY_V1: summarize one chunk, told its position in the sequence
- COMBINE_SUMMARIES_V1: merge a batch of summaries into one overview

Both expect a ``context_name`` (the repository, or ``repo/path`` for a
single file) so the model knows what the fragments belong to.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence


@dataclass(frozen=True)
class PromptTemplate:
    """
    System prompt plus a user template with ``{placeholder}`` variables.

    Attributes:
        id: Template identifier
        version: Template version for tracking wording changes
        system_prompt: Sent as the system message
        user_template: User message with {variable} placeholders
        required_context: Keys that must be supplied to ``render``
    """

    id: str
    version: str
    system_prompt: str
    user_template: str
    required_context: List[str]

    def render(self, context: Dict[str, Any]) -> str:
        """Fill the user template.

        Raises:
            ValueError: If a required context key is missing
        """
        missing = [key for key in self.required_context if key not in context]
        if missing:
            raise ValueError(f"Prompt '{self.id}' missing required context: {', '.join(missing)}")
        return self.user_template.format(**context)


CHUNK_SUMMARY_V1 = PromptTemplate(
    id="chunk_summary",
    version="1.0",
    system_prompt="""You are a technical analyst condensing part of a software repository.
Keep what a reader needs to understand the project and drop the rest, staying technically exact.

Pay attention to:
- What the code or document is for
- Languages, frameworks and libraries in use
- Noteworthy implementation details
- Structure and architectural patterns

Be brief without leaving out essentials. Answer in plain prose, not JSON or Markdown.""",
    user_template="""Summarize the following excerpt of the "{context_name}" repository.
It is part {chunk_number} of {chunk_total}.

---
{chunk}
---

Write 2-4 sentences covering its key technical content.""",
    required_context=["context_name", "chunk_number", "chunk_total", "chunk"],
)


COMBINE_SUMMARIES_V1 = PromptTemplate(
    id="combine_summaries",
    version="1.0",
    system_prompt="""You are a technical writer merging several partial summaries of one code repository into a single overview.

The merged summary should:
- State each fact once
- Keep every distinct technical detail
- Read as one coherent description

Answer in plain prose.""",
    user_template="""Merge these {summary_count} partial summaries of the "{context_name}" repository into one overview:

{numbered_summaries}

---

Write a single summary of 4-6 sentences that keeps all key technical details and repeats nothing.""",
    required_context=["summary_count", "context_name", "numbered_summaries"],
)


def build_chunk_prompt(chunk: str, index: int, total: int, context_name: str) -> str:
    """User prompt for chunk ``index`` (0-based) of ``total``."""
    return CHUNK_SUMMARY_V1.render(
        {
            "context_name": context_name,
            "chunk_number": index + 1,
            "chunk_total": total,
            "chunk": chunk,
        }
    )


def build_combine_prompt(summaries: Sequence[str], context_name: str) -> str:
    """User prompt merging ``summaries`` in order."""
    numbered = "\n\n".join(f"Summary {i + 1}:\n{s}" for i, s in enumerate(summaries))
    return COMBINE_SUMMARIES_V1.render(
        {
            "summary_count": len(summaries),
            "context_name": context_name,
            "numbered_summaries": numbered,
        }
    )
