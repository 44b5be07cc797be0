"""Tests for the LangChain chat-model completion client."""

from __future__ import annotations

import time
from typing import Any

import pytest
from langchain_core.callbacks import CallbackManagerForLLMRun
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.outputs import ChatGeneration, ChatResult

from archdoc_refine.infrastructure.llm import (
    CompletionError,
    CompletionOptions,
    CompletionTimeoutError,
    LLMMessage,
)
from archdoc_refine.infrastructure.llm.chat_model import (
    ChatModelCompletionClient,
    extract_token_usage,
    to_langchain_messages,
)
from archdoc_refine.testing import ScriptedChatModel


class _SlowChatModel(BaseChatModel):
    delay: float = 0.5

    @property
    def _llm_type(self) -> str:
        return "slow"

    def _generate(
        self,
        messages: list[BaseMessage],
        stop: list[str] | None = None,
        run_manager: CallbackManagerForLLMRun | None = None,
        **kwargs: Any,
    ) -> ChatResult:
        time.sleep(self.delay)
        return ChatResult(generations=[ChatGeneration(message=AIMessage(content="late"))])


class _FailingChatModel(BaseChatModel):

    @property
    def _llm_type(self) -> str:
        return "failing"

    def _generate(
        self,
        messages: list[BaseMessage],
        stop: list[str] | None = None,
        run_manager: CallbackManagerForLLMRun | None = None,
        **kwargs: Any,
    ) -> ChatResult:
        raise RuntimeError("rate limited")


MESSAGES = [
    LLMMessage(role="system", content="You are an architect."),
    LLMMessage(role="user", content="Describe the project."),
]


class TestToLangchainMessages:

    def test_roles(self) -> None:
        converted = to_langchain_messages(
            MESSAGES + [LLMMessage(role="assistant", content="Draft")]
        )
        assert isinstance(converted[0], SystemMessage)
        assert isinstance(converted[1], HumanMessage)
        assert isinstance(converted[2], AIMessage)
        assert converted[2].content == "Draft"


class TestExtractTokenUsage:

    def test_usage_metadata(self) -> None:
        message = AIMessage(
            content="x",
            usage_metadata={"input_tokens": 12, "output_tokens": 3, "total_tokens": 15},
        )
        assert extract_token_usage(message) == (12, 3)

    def test_openai_style_response_metadata(self) -> None:
        message = AIMessage(
            content="x",
            response_metadata={"token_usage": {"prompt_tokens": 5, "completion_tokens": 7}},
        )
        assert extract_token_usage(message) == (5, 7)

    def test_anthropic_style_response_metadata(self) -> None:
        message = AIMessage(
            content="x",
            response_metadata={"usage": {"input_tokens": 9, "output_tokens": 4}},
        )
        assert extract_token_usage(message) == (9, 4)

    def test_unreported(self) -> None:
        assert extract_token_usage(AIMessage(content="x")) == (0, 0)


class TestChatModelCompletionClient:

    def test_invoke_returns_text_and_usage(self) -> None:
        model = ScriptedChatModel(responses=[("# Draft", 120, 40)])
        client = ChatModelCompletionClient(
            model, provider="anthropic", model_name="claude-sonnet-4-20250514"
        )
        response = client.invoke(MESSAGES, CompletionOptions(trace_name="AnalyzeInitial"))

        assert response.text == "# Draft"
        assert response.input_tokens == 120
        assert response.output_tokens == 40
        assert response.model == "claude-sonnet-4-20250514"
        assert client.provider_name == "anthropic"
        assert model.call_count == 1
        assert isinstance(model.received[0][0], SystemMessage)

    def test_repeats_last_response(self) -> None:
        model = ScriptedChatModel(responses=["one", "two"])
        client = ChatModelCompletionClient(model)
        texts = [client.invoke(MESSAGES, CompletionOptions()).text for _ in range(3)]
        assert texts == ["one", "two", "two"]

    def test_backend_errors_wrapped(self) -> None:
        client = ChatModelCompletionClient(_FailingChatModel(), model_name="m")
        with pytest.raises(CompletionError) as exc_info:
            client.invoke(MESSAGES, CompletionOptions(trace_name="EvaluateClarity"))
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.details["trace_name"] == "EvaluateClarity"

    def test_deadline_exceeded(self) -> None:
        client = ChatModelCompletionClient(_SlowChatModel(delay=0.5))
        start = time.monotonic()
        with pytest.raises(CompletionTimeoutError):
            client.invoke(MESSAGES, CompletionOptions(timeout=0.05))
        assert time.monotonic() - start < 0.4

    def test_deadline_met(self) -> None:
        client = ChatModelCompletionClient(_SlowChatModel(delay=0.0))
        response = client.invoke(MESSAGES, CompletionOptions(timeout=5.0))
        assert response.text == "late"

    def test_timeout_is_a_completion_error(self) -> None:
        assert issubclass(CompletionTimeoutError, CompletionError)
