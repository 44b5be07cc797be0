"""Tests for the scripted LLM doubles."""

from __future__ import annotations

import pytest

from archdoc_refine.infrastructure.llm import CompletionOptions, LLMMessage
from archdoc_refine.services.llm_evaluation import parse_evaluation
from archdoc_refine.testing import ScriptedCompletionClient, evaluation_text

MESSAGES = [LLMMessage(role="user", content="hello")]


class TestScriptedCompletionClient:

    def test_per_trace_scripts(self) -> None:
        client = ScriptedCompletionClient(
            ["default"], by_trace={"EvaluateClarity": ["first", "second"]}
        )
        evaluate = CompletionOptions(trace_name="EvaluateClarity")
        other = CompletionOptions(trace_name="RefineAnalysis")
        texts = [
            client.invoke(MESSAGES, evaluate).text,
            client.invoke(MESSAGES, other).text,
            client.invoke(MESSAGES, evaluate).text,
            client.invoke(MESSAGES, evaluate).text,
        ]
        assert texts == ["first", "default", "second", "second"]
        assert client.trace_names == [
            "EvaluateClarity", "RefineAnalysis", "EvaluateClarity", "EvaluateClarity",
        ]

    def test_usage_entries(self) -> None:
        client = ScriptedCompletionClient([("text", 11, 4)], default_usage=(1, 1))
        response = client.invoke(MESSAGES, CompletionOptions())
        assert (response.input_tokens, response.output_tokens) == (11, 4)
        assert response.model == "claude-sonnet-4-20250514"

    def test_default_usage(self) -> None:
        client = ScriptedCompletionClient(["text"], default_usage=(7, 2))
        assert client.invoke(MESSAGES, CompletionOptions()).usage.total_tokens == 9

    def test_exception_entries_raised(self) -> None:
        client = ScriptedCompletionClient([RuntimeError("boom")])
        with pytest.raises(RuntimeError):
            client.invoke(MESSAGES, CompletionOptions())

    def test_empty_script(self) -> None:
        assert ScriptedCompletionClient().invoke(MESSAGES, CompletionOptions()).text == ""


class TestEvaluationText:

    def test_round_trips_through_parser(self) -> None:
        result = parse_evaluation(evaluation_text(70, ["Queue retry policy"], depth=50))
        assert result.depth == 50
        assert result.completeness == 70
        assert result.missing_information == ["Queue retry policy"]
