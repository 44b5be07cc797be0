"""Tests for token and cost accounting."""

from __future__ import annotations

import logging

import pytest

from archdoc_refine.domain.values import TokenUsage
from archdoc_refine.infrastructure.llm import CompletionResponse
from archdoc_refine.services.accounting import (
    DEFAULT_RATES,
    ModelRate,
    RateTable,
    TokenAccountant,
    calculate_cost,
)


class TestCalculateCost:

    def test_linear_in_tokens(self) -> None:
        rate = ModelRate(3.0, 15.0)
        cost = calculate_cost(TokenUsage(1_000_000, 1_000_000), rate)
        assert cost == pytest.approx(18.0)

    def test_example_sonnet_run(self) -> None:
        cost = calculate_cost(
            TokenUsage(12_000, 3_000), DEFAULT_RATES["anthropic/claude-sonnet-4-20250514"]
        )
        assert cost == pytest.approx(0.036 + 0.045)


class TestRateTable:

    def test_lookup_by_provider_and_model(self) -> None:
        table = RateTable()
        assert table.lookup("openai", "gpt-4") == ModelRate(30.0, 60.0)

    def test_xai_rates(self) -> None:
        table = RateTable()
        assert table.lookup("xai", "grok-3-beta") == ModelRate(5.0, 15.0)
        assert table.lookup("xai", "grok-2") == ModelRate(2.0, 10.0)

    def test_bare_model_key_matches_any_provider(self) -> None:
        table = RateTable({"local-llama": ModelRate(0.1, 0.2)})
        assert table.lookup("ollama", "local-llama") == ModelRate(0.1, 0.2)

    def test_unknown_model_uses_default(self) -> None:
        assert RateTable().lookup("acme", "mystery") is None
        fallback = ModelRate(1.0, 1.0)
        assert RateTable(default=fallback).lookup("acme", "mystery") == fallback

    def test_register(self) -> None:
        table = RateTable(rates={})
        table.register("acme", "m1", ModelRate(2.0, 4.0))
        assert table.lookup("acme", "m1") == ModelRate(2.0, 4.0)


class TestTokenAccountant:

    def test_sums_every_call(self) -> None:
        accountant = TokenAccountant("anthropic", "claude-sonnet-4-20250514")
        accountant.record(CompletionResponse("a", input_tokens=100, output_tokens=20), "AnalyzeInitial")
        accountant.record(CompletionResponse("b", input_tokens=50, output_tokens=5), "EvaluateClarity")
        accountant.record(TokenUsage(10, 1), "EvaluateClarity:retry")

        assert accountant.usage == TokenUsage(160, 26)
        assert accountant.total_tokens == 186
        assert accountant.call_count == 3
        assert [r.trace_name for r in accountant.records] == [
            "AnalyzeInitial",
            "EvaluateClarity",
            "EvaluateClarity:retry",
        ]

    def test_negative_usage_counts_as_zero(self) -> None:
        accountant = TokenAccountant()
        accountant.record(TokenUsage(-5, 10))
        assert accountant.usage == TokenUsage(0, 10)

    def test_missing_usage_still_recorded(self) -> None:
        accountant = TokenAccountant()
        accountant.record(CompletionResponse("no usage reported"))
        assert accountant.call_count == 1
        assert accountant.total_tokens == 0

    def test_estimated_cost(self) -> None:
        accountant = TokenAccountant("openai", "gpt-3.5-turbo")
        accountant.record(TokenUsage(2_000_000, 1_000_000))
        assert accountant.estimated_cost() == pytest.approx(2.5)

    def test_estimated_cost_for_other_model(self) -> None:
        accountant = TokenAccountant("openai", "gpt-3.5-turbo")
        accountant.record(TokenUsage(1_000_000, 0))
        assert accountant.estimated_cost("openai", "gpt-4") == pytest.approx(30.0)

    def test_unknown_model_costs_zero(self) -> None:
        accountant = TokenAccountant("acme", "mystery")
        accountant.record(TokenUsage(1_000, 1_000))
        assert accountant.estimated_cost() == 0.0

    def test_budget_is_advisory(self, caplog: pytest.LogCaptureFixture) -> None:
        accountant = TokenAccountant(token_budget=100)
        assert accountant.remaining_budget == 100
        with caplog.at_level(logging.WARNING, logger="archdoc_refine.services.accounting"):
            accountant.record(TokenUsage(90, 20))
            accountant.record(TokenUsage(10, 0))
        assert accountant.remaining_budget == -20
        assert accountant.total_tokens == 120
        assert sum("budget" in r.getMessage() for r in caplog.records) == 1

    def test_unbounded_budget(self) -> None:
        assert TokenAccountant().remaining_budget is None

    def test_summary(self) -> None:
        accountant = TokenAccountant("anthropic", "claude-sonnet-4-20250514")
        accountant.record(TokenUsage(1_000, 100))
        summary = accountant.summary()
        assert summary["calls"] == 1
        assert summary["total_tokens"] == 1_100
        assert summary["estimated_cost"] == pytest.approx(0.003 + 0.0015)
