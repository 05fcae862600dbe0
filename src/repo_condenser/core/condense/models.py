"""Data models for content condensation.

Input content is modelled with pydantic (validated at the boundary where
the fetch layer hands it over); the records produced while condensing are
plain dataclasses.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Enums
# =============================================================================


class ContentKind(str, Enum):
    """Category a content unit belongs to; each category gets its own share."""

    PRIMARY_DOC = "primary_doc"
    SOURCE = "source"
    CONFIG = "config"
    METADATA = "metadata"


class UnitAction(str, Enum):
    """What the pipeline did to a unit."""

    PASSED_THROUGH = "passed_through"
    TRUNCATED = "truncated"
    SUMMARIZED = "summarized"
    SUMMARIZED_AND_TRUNCATED = "summarized_and_truncated"
    FAILED = "failed"


# =============================================================================
# Input Models
# =============================================================================


class ContentUnit(BaseModel):
    """One piece of extracted project text (a README, a source file, ...).

    Immutable: condensation produces a new unit for the same ``source_id``.
    """

    model_config = ConfigDict(frozen=True)

    kind: ContentKind = Field(..., description="Content category")
    source_id: str = Field(..., min_length=1, description="File path or label")
    text: str = Field(default="", description="Raw text of the unit")

    def with_text(self, text: str) -> "ContentUnit":
        return self.model_copy(update={"text": text})


class ContentBundle(BaseModel):
    """Typed bag of content units extracted from one project."""

    name: str = Field(default="repository", description="Project name used in prompts")
    primary_doc: Optional[ContentUnit] = Field(default=None)
    source_units: list[ContentUnit] = Field(default_factory=list)
    config_units: list[ContentUnit] = Field(default_factory=list)
    metadata: Optional[ContentUnit] = Field(default=None)

    @model_validator(mode="after")
    def _check_slot_kinds(self) -> "ContentBundle":
        expected = (
            ("primary_doc", [self.primary_doc] if self.primary_doc else [], ContentKind.PRIMARY_DOC),
            ("source_units", self.source_units, ContentKind.SOURCE),
            ("config_units", self.config_units, ContentKind.CONFIG),
            ("metadata", [self.metadata] if self.metadata else [], ContentKind.METADATA),
        )
        for slot, units, kind in expected:
            for unit in units:
                if unit.kind != kind:
                    raise ValueError(
                        f"{slot} holds a '{unit.kind.value}' unit ({unit.source_id}); "
                        f"expected '{kind.value}'"
                    )
        seen: set[str] = set()
        for unit in self.units():
            if unit.source_id in seen:
                raise ValueError(f"Duplicate source_id in bundle: {unit.source_id}")
            seen.add(unit.source_id)
        return self

    def units(self) -> Iterator[ContentUnit]:
        """All units in document order: primary doc, sources, configs, metadata."""
        if self.primary_doc is not None:
            yield self.primary_doc
        yield from self.source_units
        yield from self.config_units
        if self.metadata is not None:
            yield self.metadata

    def count_of(self, kind: ContentKind) -> int:
        return sum(1 for unit in self.units() if unit.kind == kind)

    def replace_units(self, replacements: dict[str, ContentUnit]) -> "ContentBundle":
        """Return a copy with units swapped by ``source_id``."""

        def swap(unit: Optional[ContentUnit]) -> Optional[ContentUnit]:
            if unit is None:
                return None
            return replacements.get(unit.source_id, unit)

        return ContentBundle(
            name=self.name,
            primary_doc=swap(self.primary_doc),
            source_units=[swap(u) for u in self.source_units],
            config_units=[swap(u) for u in self.config_units],
            metadata=swap(self.metadata),
        )


# =============================================================================
# Results
# =============================================================================


@dataclass
class SummaryResult:
    """Text produced by (possibly several) inference calls and their usage."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class UnitOutcome:
    """How one content unit was handled."""

    source_id: str
    kind: ContentKind
    action: UnitAction
    original_tokens: int
    final_tokens: int
    budget: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "kind": self.kind.value,
            "action": self.action.value,
            "original_tokens": self.original_tokens,
            "final_tokens": self.final_tokens,
            "budget": self.budget,
        }


@dataclass
class UnitFailure:
    """A unit whose condensation failed; the original error is kept."""

    source_id: str
    kind: ContentKind
    error: BaseException

    @property
    def error_type(self) -> str:
        return type(self.error).__name__

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "kind": self.kind.value,
            "error_type": self.error_type,
            "error": str(self.error),
        }
