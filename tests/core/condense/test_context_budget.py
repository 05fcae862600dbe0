"""Tests for per-category budget allocation and priority selection.

Tests cover:
1. allocate_content_budget - base weights and redistribution rules
2. Conservation - sub-budgets never exceed the total
3. ContentBudget helpers - for_kind, to_dict
4. per_unit_share - even split among units
5. select_within_budget - greedy priority selection
"""

import pytest

from repo_condenser.core.condense.context_budget import (
    ContentBudget,
    PrioritizedText,
    allocate_content_budget,
    per_unit_share,
    select_within_budget,
)
from repo_condenser.core.condense.models import ContentKind


# =============================================================================
# Test: Allocation Rules
# =============================================================================


class TestAllocateContentBudget:
    """Tests for the weighted split."""

    def test_all_categories_present(self):
        """Test base weights 35/40/15/10."""
        budget = allocate_content_budget(
            10_000, has_primary_doc=True, source_unit_count=3, config_unit_count=2
        )
        assert (
            budget.primary_doc,
            budget.source_snippets,
            budget.config_snippets,
            budget.metadata,
        ) == (3500, 4000, 1500, 1000)

    def test_missing_primary_doc_moves_weight(self):
        """Test a missing primary doc gives sources +25 and configs +10."""
        budget = allocate_content_budget(
            10_000, has_primary_doc=False, source_unit_count=5, config_unit_count=2
        )
        assert budget.primary_doc == 0
        assert budget.source_snippets == 6500
        assert budget.config_snippets == 2500
        assert budget.metadata == 1000

    def test_no_source_units_redistributes_source_weight(self):
        """Test 60% of the source weight goes to the primary doc, 40% to configs."""
        budget = allocate_content_budget(
            10_000, has_primary_doc=True, source_unit_count=0, config_unit_count=2
        )
        assert budget.to_dict() == {
            "primary_doc": 5900,
            "source_snippets": 0,
            "config_snippets": 3100,
            "metadata": 1000,
            "total": 10_000,
        }

    def test_rules_apply_in_order(self):
        """Test the no-source rule uses the already increased source weight."""
        budget = allocate_content_budget(
            10_000, has_primary_doc=False, source_unit_count=0, config_unit_count=1
        )
        assert (budget.primary_doc, budget.source_snippets) == (3900, 0)
        assert (budget.config_snippets, budget.metadata) == (5100, 1000)

    def test_config_count_does_not_change_weights(self):
        """Test config_unit_count is informational only."""
        with_configs = allocate_content_budget(10_000, True, 3, 4)
        without_configs = allocate_content_budget(10_000, True, 3, 0)
        assert with_configs == without_configs

    def test_zero_budget(self):
        """Test a zero budget allocates zero everywhere."""
        assert allocate_content_budget(0, True, 1, 1).total == 0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"total_budget": -1},
            {"total_budget": 100, "source_unit_count": -1},
            {"total_budget": 100, "config_unit_count": -2},
        ],
    )
    def test_negative_inputs_rejected(self, kwargs):
        """Test negative totals and counts raise ValueError."""
        with pytest.raises(ValueError):
            allocate_content_budget(**kwargs)


class TestConservation:
    """Tests that allocation never over-commits."""

    @pytest.mark.parametrize("total", [0, 1, 7, 99, 1001, 4692, 124_500, 999_999])
    @pytest.mark.parametrize("has_primary", [True, False])
    @pytest.mark.parametrize("sources", [0, 1, 12])
    def test_sum_never_exceeds_total(self, total, has_primary, sources):
        """Test floor rounding keeps the sum at or below the total."""
        budget = allocate_content_budget(total, has_primary, sources, 1)
        assert budget.total <= total
        # One token lost per category at most
        assert total - budget.total < 4

    def test_exact_for_round_totals(self):
        """Test totals divisible by 100 are fully allocated."""
        for has_primary in (True, False):
            for sources in (0, 3):
                assert allocate_content_budget(10_000, has_primary, sources, 2).total == 10_000


# =============================================================================
# Test: ContentBudget Helpers
# =============================================================================


class TestContentBudget:
    """Tests for ContentBudget accessors."""

    def test_for_kind(self):
        """Test lookup by content kind."""
        budget = ContentBudget(primary_doc=1, source_snippets=2, config_snippets=3, metadata=4)
        assert budget.for_kind(ContentKind.PRIMARY_DOC) == 1
        assert budget.for_kind(ContentKind.SOURCE) == 2
        assert budget.for_kind(ContentKind.CONFIG) == 3
        assert budget.for_kind(ContentKind.METADATA) == 4
        assert budget.total == 10

    def test_negative_budget_rejected(self):
        """Test sub-budgets cannot be negative."""
        with pytest.raises(ValueError, match="source_snippets"):
            ContentBudget(primary_doc=0, source_snippets=-1, config_snippets=0, metadata=0)


class TestPerUnitShare:
    """Tests for per_unit_share."""

    def test_even_split_rounds_down(self):
        """Test the share is floor(budget / count)."""
        assert per_unit_share(6500, 5) == 1300
        assert per_unit_share(2500, 3) == 833

    def test_no_units(self):
        """Test zero units get a zero share."""
        assert per_unit_share(1000, 0) == 0


# =============================================================================
# Test: Priority Selection
# =============================================================================


class TestSelectWithinBudget:
    """Tests for greedy priority selection."""

    def test_highest_priority_first(self, word_counter, words):
        """Test items are taken by descending priority while they fit."""
        items = [
            PrioritizedText(id="low", text=words(30), priority=1),
            PrioritizedText(id="high", text=words(50), priority=9),
            PrioritizedText(id="mid", text=words(40), priority=5),
        ]
        selected = select_within_budget(items, 90, word_counter)
        assert [item.id for item in selected] == ["high", "mid"]

    def test_skips_items_that_do_not_fit(self):
        """Test a large item is skipped and a smaller one still taken."""
        items = [
            PrioritizedText(id="big", text="", priority=8, token_count=80),
            PrioritizedText(id="a", text="", priority=7, token_count=30),
            PrioritizedText(id="b", text="", priority=2, token_count=20),
        ]
        selected = select_within_budget(items, 60)
        assert [item.id for item in selected] == ["a", "b"]

    def test_missing_count_without_counter(self):
        """Test an uncounted item needs a counter."""
        with pytest.raises(ValueError, match="no token_count"):
            select_within_budget([PrioritizedText(id="x", text="abc")], 10)

    def test_priority_range(self):
        """Test priority must be within 1-10."""
        with pytest.raises(ValueError):
            PrioritizedText(id="x", text="", priority=11)
