"""Tests for token counting, model limits and cost accounting.

Tests cover:
1. TokenCounter - injected encoders, heuristic fallback and its flagging
2. Budget calculator - model limits, reservations, overrides
3. needs_hierarchical_summarization - the strict 80% boundary
4. Cost accounting - PRICING, calculate_cost, TokenUsage
5. estimate_repo_tokens - byte-size estimates
"""

import warnings

import pytest

from repo_condenser.core.condense import token_management
from repo_condenser.core.condense.token_management import (
    DEFAULT_MODEL,
    FALLBACK_CONTEXT_LIMIT,
    MODEL_TOKEN_LIMITS,
    ReservedTokens,
    TokenCounter,
    TokenCountEstimateWarning,
    TokenUsage,
    calculate_cost,
    estimate_repo_tokens,
    get_available_budget,
    get_context_limit,
    heuristic_token_count,
    needs_hierarchical_summarization,
)


# =============================================================================
# Test: TokenCounter
# =============================================================================


class TestTokenCounter:
    """Tests for TokenCounter counting and fallback behaviour."""

    def test_injected_encoder_is_used(self):
        """Test the injected encoder determines the count."""
        counter = TokenCounter(encode=lambda s: s.split())
        assert counter.count("three little words") == 3
        assert counter.fallback_count == 0

    def test_empty_and_none_are_zero(self):
        """Test empty input counts as zero without touching the encoder."""
        def explode(_):
            raise AssertionError("encoder should not be called")

        counter = TokenCounter(encode=explode)
        assert counter.count("") == 0
        assert counter.count(None) == 0

    def test_counter_is_callable(self):
        """Test instances can stand in for Callable[[str], int]."""
        counter = TokenCounter(encode=list)
        assert counter("abcd") == 4

    def test_encoder_failure_falls_back_to_heuristic(self):
        """Test an encoder exception yields ceil(len/4) and never raises."""
        def broken(_):
            raise ValueError("bad input")

        counter = TokenCounter(encode=broken)
        with pytest.warns(TokenCountEstimateWarning):
            assert counter.count("x" * 10) == 3
        assert counter.fallback_count == 1

    def test_fallback_can_be_silenced(self):
        """Test warn_on_fallback=False suppresses the warning but still counts."""
        def broken(_):
            raise RuntimeError("boom")

        counter = TokenCounter(encode=broken, warn_on_fallback=False)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            assert counter.count("abcdefgh") == 2
        assert counter.fallback_count == 1

    def test_encoder_load_failure_falls_back(self, monkeypatch):
        """Test a tokenizer that cannot be loaded is treated as a fallback."""
        def fail_loading(model):
            raise OSError("no network for BPE download")

        monkeypatch.setattr(token_management, "_load_tiktoken_encoder", fail_loading)
        counter = TokenCounter("gpt-4o-mini", warn_on_fallback=False)
        assert counter.count("a" * 9) == 3
        assert counter.count("b" * 4) == 1
        assert counter.fallback_count == 2

    def test_encoder_load_is_attempted_once(self, monkeypatch):
        """Test a failed load is not retried on every count."""
        attempts = []

        def fail_loading(model):
            attempts.append(model)
            raise OSError("offline")

        monkeypatch.setattr(token_management, "_load_tiktoken_encoder", fail_loading)
        counter = TokenCounter("gpt-4o", warn_on_fallback=False)
        counter.count("one")
        counter.count("two")
        assert attempts == ["gpt-4o"]

    def test_heuristic_rounds_up(self):
        """Test the heuristic is ceil(len/4)."""
        assert heuristic_token_count("") == 0
        assert heuristic_token_count("a") == 1
        assert heuristic_token_count("abcd") == 1
        assert heuristic_token_count("abcde") == 2


# =============================================================================
# Test: Budget Calculator
# =============================================================================


class TestAvailableBudget:
    """Tests for context limits and available budget."""

    def test_default_model(self):
        """Test the default model is gpt-4o-mini."""
        assert DEFAULT_MODEL == "gpt-4o-mini"

    def test_known_model_limits(self):
        """Test the built-in context windows."""
        assert MODEL_TOKEN_LIMITS["gpt-4o"] == 128_000
        assert MODEL_TOKEN_LIMITS["gpt-4"] == 8_192
        assert MODEL_TOKEN_LIMITS["gpt-3.5-turbo"] == 16_385

    def test_available_subtracts_reservations(self):
        """Test available = limit - 1000 - 2000 - 500."""
        assert get_available_budget("gpt-4o-mini") == 124_500
        assert get_available_budget("gpt-4") == 4_692
        assert get_available_budget("gpt-3.5-turbo") == 12_885

    def test_custom_reservations(self):
        """Test explicit reservations are honoured."""
        reserved = ReservedTokens(system_prompt=100, response=200, safety=0)
        assert get_available_budget("gpt-4", reserved) == 8_192 - 300

    def test_never_negative(self):
        """Test reservations larger than the window give zero."""
        reserved = ReservedTokens(system_prompt=10_000, response=0, safety=0)
        assert get_available_budget("gpt-4", reserved) == 0

    def test_unknown_model_uses_conservative_fallback(self):
        """Test unknown models get the smallest known window."""
        assert get_context_limit("mystery-model") == FALLBACK_CONTEXT_LIMIT

    def test_dated_snapshot_resolves_to_family(self):
        """Test dated model names resolve to the longest matching family."""
        assert get_context_limit("gpt-4o-mini-2024-07-18") == 128_000
        assert get_context_limit("gpt-4-0613") == 8_192

    def test_overrides_win(self):
        """Test per-model overrides replace the table."""
        assert get_context_limit("gpt-4", overrides={"gpt-4": 32_768}) == 32_768
        assert get_available_budget(
            "local", ReservedTokens(0, 0, 0), context_limit_overrides={"local": 1000}
        ) == 1000

    def test_negative_reservation_rejected(self):
        """Test negative reservations raise ValueError."""
        with pytest.raises(ValueError, match="non-negative"):
            ReservedTokens(system_prompt=-1)


class TestNeedsHierarchicalSummarization:
    """Tests for the whole-bundle trigger."""

    def test_exact_boundary_fits(self):
        """Test content at exactly 80% of the available budget fits."""
        boundary = int(get_available_budget("gpt-4o-mini") * 0.8)
        assert boundary == 99_600
        assert needs_hierarchical_summarization(boundary, "gpt-4o-mini") is False

    def test_one_more_token_triggers(self):
        """Test one token past the boundary triggers condensation."""
        assert needs_hierarchical_summarization(99_601, "gpt-4o-mini") is True

    def test_ratio_is_configurable(self):
        """Test a custom trigger ratio."""
        assert needs_hierarchical_summarization(4_692, "gpt-4", ratio=1.0) is False
        assert needs_hierarchical_summarization(2_347, "gpt-4", ratio=0.5) is True


# =============================================================================
# Test: Cost Accounting
# =============================================================================


class TestCost:
    """Tests for pricing and TokenUsage."""

    def test_calculate_cost_per_million(self):
        """Test prices are per one million tokens."""
        assert calculate_cost(1_000_000, 0, "gpt-4o") == pytest.approx(2.50)
        assert calculate_cost(0, 1_000_000, "gpt-4o") == pytest.approx(10.00)
        assert calculate_cost(2_000_000, 1_000_000, "gpt-4o-mini") == pytest.approx(0.90)

    def test_unknown_model_costs_nothing(self):
        """Test models without pricing report zero cost."""
        assert calculate_cost(1_000, 1_000, "mystery-model") == 0.0

    def test_token_usage_from_counts(self):
        """Test TokenUsage totals and cost."""
        usage = TokenUsage.from_counts(1_000_000, 1_000_000, "gpt-4")
        assert usage.total_tokens == 2_000_000
        assert usage.estimated_cost == pytest.approx(90.0)
        assert usage.to_dict()["total_tokens"] == 2_000_000

    def test_empty_usage(self):
        """Test default TokenUsage is all zeros."""
        usage = TokenUsage()
        assert (usage.input_tokens, usage.output_tokens, usage.total_tokens) == (0, 0, 0)
        assert usage.estimated_cost == 0.0


class TestEstimateRepoTokens:
    """Tests for byte-based repository estimates."""

    def test_weights_per_category(self):
        """Test 0.3 tokens/byte for docs and configs, 0.25 for code."""
        assert estimate_repo_tokens(1000, [400, 400], [100]) == 300 + 200 + 30

    def test_rounds_up_per_file(self):
        """Test each file is rounded up separately."""
        assert estimate_repo_tokens(0, [1, 1], []) == 2
