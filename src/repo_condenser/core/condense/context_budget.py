"""Content budget allocation across content categories.

Splits a bundle's usable token budget between the primary document,
source snippets, config snippets and metadata, redistributing the share of
any category that is absent so no budget is wasted on empty categories.

Key Components:
    - ContentBudget: Per-category token budgets
    - allocate_content_budget(): Weighted split with redistribution rules
    - per_unit_share(): Even split of a category budget among its units
    - PrioritizedText / select_within_budget(): Greedy priority selection

Usage:
    from repo_condenser.core.condense.context_budget import allocate_content_budget

    budget = allocate_content_budget(
        10_000, has_primary_doc=False, source_unit_count=5, config_unit_count=2
    )
    budget.source_snippets  # 6500
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Optional, Sequence

from repo_condenser.core.condense.models import ContentKind
from repo_condenser.core.condense.token_management import CounterLike

logger = logging.getLogger(__name__)


# =============================================================================
# Allocation Weights
# =============================================================================

# Exact fractions keep every sub-budget an exact floor of total * weight
PRIMARY_DOC_WEIGHT = Fraction(35, 100)
SOURCE_WEIGHT = Fraction(40, 100)
CONFIG_WEIGHT = Fraction(15, 100)
METADATA_WEIGHT = Fraction(10, 100)

# Moved when the primary document is missing
NO_PRIMARY_TO_SOURCE = Fraction(25, 100)
NO_PRIMARY_TO_CONFIG = Fraction(10, 100)

# Split of the source weight when there are no source units
NO_SOURCE_TO_PRIMARY = Fraction(6, 10)
NO_SOURCE_TO_CONFIG = Fraction(4, 10)


@dataclass(frozen=True)
class ContentBudget:
    """Token budget per content category.

    Attributes:
        primary_doc: Budget for the primary document (README)
        source_snippets: Budget shared by all source units
        config_snippets: Budget shared by all config units
        metadata: Budget for the metadata unit
    """

    primary_doc: int
    source_snippets: int
    config_snippets: int
    metadata: int

    def __post_init__(self) -> None:
        for name in ("primary_doc", "source_snippets", "config_snippets", "metadata"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} budget must be non-negative, got {value}")

    @property
    def total(self) -> int:
        return self.primary_doc + self.source_snippets + self.config_snippets + self.metadata

    def for_kind(self, kind: ContentKind) -> int:
        """Budget of the category ``kind`` belongs to."""
        return {
            ContentKind.PRIMARY_DOC: self.primary_doc,
            ContentKind.SOURCE: self.source_snippets,
            ContentKind.CONFIG: self.config_snippets,
            ContentKind.METADATA: self.metadata,
        }[kind]

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary_doc": self.primary_doc,
            "source_snippets": self.source_snippets,
            "config_snippets": self.config_snippets,
            "metadata": self.metadata,
            "total": self.total,
        }


def allocate_content_budget(
    total_budget: int,
    has_primary_doc: bool = True,
    source_unit_count: int = 0,
    config_unit_count: int = 0,
) -> ContentBudget:
    """Split ``total_budget`` across content categories.

    Base weights are 35% primary doc, 40% sources, 15% configs and 10%
    metadata. Rules applied in order:

    1. No primary doc: its weight is 0, sources gain 25 points and configs
       gain 10 points.
    2. No source units: 60% of the (possibly already increased) source
       weight moves to the primary doc, 40% to configs, sources get 0.

    Each sub-budget is ``floor(total_budget * weight)``, so the sum never
    exceeds ``total_budget``. ``config_unit_count`` does not change the
    weights; it is accepted so callers can pass the full bundle shape.

    Raises:
        ValueError: If total_budget or a unit count is negative
    """
    if total_budget < 0:
        raise ValueError(f"total_budget must be non-negative, got {total_budget}")
    if source_unit_count < 0 or config_unit_count < 0:
        raise ValueError("unit counts must be non-negative")

    primary = PRIMARY_DOC_WEIGHT if has_primary_doc else Fraction(0)
    source = SOURCE_WEIGHT
    config = CONFIG_WEIGHT
    metadata = METADATA_WEIGHT

    if not has_primary_doc:
        source += NO_PRIMARY_TO_SOURCE
        config += NO_PRIMARY_TO_CONFIG

    if source_unit_count == 0:
        primary += source * NO_SOURCE_TO_PRIMARY
        config += source * NO_SOURCE_TO_CONFIG
        source = Fraction(0)

    budget = ContentBudget(
        primary_doc=math.floor(total_budget * primary),
        source_snippets=math.floor(total_budget * source),
        config_snippets=math.floor(total_budget * config),
        metadata=math.floor(total_budget * metadata),
    )
    logger.debug(
        f"Allocated {budget.total}/{total_budget} tokens "
        f"(primary={budget.primary_doc}, source={budget.source_snippets}, "
        f"config={budget.config_snippets}, metadata={budget.metadata})"
    )
    return budget


def per_unit_share(category_budget: int, unit_count: int) -> int:
    """Even split of a category budget among ``unit_count`` units."""
    if unit_count <= 0:
        return 0
    return category_budget // unit_count


# =============================================================================
# Priority Selection
# =============================================================================


@dataclass
class PrioritizedText:
    """A candidate piece of content for priority-based selection.

    Attributes:
        id: Unique identifier
        text: Content text
        priority: 1-10, higher is more important
        source: File path or description
        token_count: Cached token count (computed on demand when None)
    """

    id: str
    text: str
    priority: int = 5
    source: str = ""
    token_count: Optional[int] = None

    def __post_init__(self) -> None:
        if not 1 <= self.priority <= 10:
            raise ValueError(f"priority must be between 1 and 10, got {self.priority}")


def select_within_budget(
    items: Sequence[PrioritizedText],
    budget: int,
    counter: Optional[CounterLike] = None,
) -> list[PrioritizedText]:
    """Greedily pick the highest-priority items that fit in ``budget``.

    Items are visited by descending priority (stable for equal priority);
    an item that does not fit is skipped and smaller, lower-priority items
    may still be taken.

    Raises:
        ValueError: If an item has no token_count and no counter is given
    """
    selected: list[PrioritizedText] = []
    used = 0
    for item in sorted(items, key=lambda i: i.priority, reverse=True):
        if item.token_count is None:
            if counter is None:
                raise ValueError(f"Item {item.id} has no token_count and no counter was given")
            item.token_count = counter(item.text)
        if used + item.token_count <= budget:
            selected.append(item)
            used += item.token_count
    return selected
