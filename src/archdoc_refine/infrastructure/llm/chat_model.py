"""LangChain chat-model adapter for the completion layer.

Wraps any ``BaseChatModel`` (``ChatAnthropic``, ``ChatOpenAI``,
``ChatGoogleGenerativeAI`` or a test double) behind
:class:`~archdoc_refine.infrastructure.llm.CompletionClient`, reading token
usage from whichever metadata field the provider populates and enforcing
an optional per-call deadline.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from collections.abc import Sequence
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from archdoc_refine.infrastructure.llm import (
    CompletionClient,
    CompletionError,
    CompletionOptions,
    CompletionResponse,
    CompletionTimeoutError,
    LLMMessage,
    content_to_text,
)

logger = logging.getLogger(__name__)


def to_langchain_messages(messages: Sequence[LLMMessage]) -> list[BaseMessage]:
    """Convert :class:`LLMMessage` objects into LangChain messages."""
    converted: list[BaseMessage] = []
    for msg in messages:
        if msg.role == "system":
            converted.append(SystemMessage(content=msg.content))
        elif msg.role == "assistant":
            converted.append(AIMessage(content=msg.content))
        else:
            converted.append(HumanMessage(content=msg.content))
    return converted


def extract_token_usage(message: Any) -> tuple[int, int]:
    """Return ``(input_tokens, output_tokens)`` reported on *message*.

    LangChain's standard ``usage_metadata`` is preferred; otherwise the
    provider-specific ``response_metadata`` usage block is read, accepting
    both Anthropic (``input_tokens``) and OpenAI (``prompt_tokens``) keys.
    Unreported usage counts as zero.
    """
    usage = getattr(message, "usage_metadata", None) or {}
    if usage:
        return int(usage.get("input_tokens", 0) or 0), int(usage.get("output_tokens", 0) or 0)

    metadata = getattr(message, "response_metadata", None) or {}
    raw = metadata.get("usage") or metadata.get("token_usage") or {}
    if not isinstance(raw, dict):
        return 0, 0
    input_tokens = raw.get("input_tokens") or raw.get("prompt_tokens") or 0
    output_tokens = raw.get("output_tokens") or raw.get("completion_tokens") or 0
    return int(input_tokens), int(output_tokens)


class ChatModelCompletionClient(CompletionClient):
    """Completion client backed by a LangChain ``BaseChatModel``.

    Parameters
    ----------
    model:
        The chat model to invoke.
    provider:
        Provider identifier used for cost lookup.
    model_name:
        Model identifier used for cost lookup.  Defaults to the model's
        ``model`` / ``model_name`` attribute when present.
    bind_call_options:
        When ``True`` (default) the per-call temperature and output limit
        are bound onto the model for each request.
    """

    def __init__(
        self,
        model: BaseChatModel,
        provider: str = "",
        model_name: str = "",
        bind_call_options: bool = True,
    ) -> None:
        self._model = model
        self._provider = provider
        self._model_name = model_name or str(
            getattr(model, "model", "") or getattr(model, "model_name", "") or ""
        )
        self._bind_call_options = bind_call_options

    @property
    def provider_name(self) -> str:
        return self._provider

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def chat_model(self) -> BaseChatModel:
        return self._model

    def invoke(
        self,
        messages: Sequence[LLMMessage],
        options: CompletionOptions,
    ) -> CompletionResponse:
        lc_messages = to_langchain_messages(messages)
        runnable: Any = self._model
        if self._bind_call_options:
            runnable = self._model.bind(
                temperature=options.temperature,
                max_tokens=options.max_output_tokens,
            )
        config = {"run_name": options.trace_name} if options.trace_name else None

        start = time.monotonic()
        if options.timeout is None:
            message = self._call(runnable, lc_messages, config, options)
        else:
            message = self._call_with_deadline(runnable, lc_messages, config, options)

        input_tokens, output_tokens = extract_token_usage(message)
        logger.debug(
            "ChatModelCompletionClient: %s finished in %.2fs (in=%d, out=%d)",
            options.trace_name or "call",
            time.monotonic() - start,
            input_tokens,
            output_tokens,
        )
        return CompletionResponse(
            text=content_to_text(message.content),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=self._model_name,
            raw=dict(getattr(message, "response_metadata", None) or {}),
        )

    def _call(
        self,
        runnable: Any,
        lc_messages: list[BaseMessage],
        config: dict[str, Any] | None,
        options: CompletionOptions,
    ) -> BaseMessage:
        try:
            return runnable.invoke(lc_messages, config=config)
        except Exception as exc:
            raise CompletionError(
                f"Chat model call failed: {exc}",
                {"trace_name": options.trace_name, "model": self._model_name},
            ) from exc

    def _call_with_deadline(
        self,
        runnable: Any,
        lc_messages: list[BaseMessage],
        config: dict[str, Any] | None,
        options: CompletionOptions,
    ) -> BaseMessage:
        # The worker thread is abandoned on timeout; shutdown must not wait for it.
        pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        try:
            future = pool.submit(self._call, runnable, lc_messages, config, options)
            return future.result(timeout=options.timeout)
        except concurrent.futures.TimeoutError as exc:
            logger.warning(
                "ChatModelCompletionClient: %s exceeded %.1fs deadline",
                options.trace_name or "call",
                options.timeout,
            )
            raise CompletionTimeoutError(
                f"Call exceeded {options.timeout}s deadline",
                {"trace_name": options.trace_name, "model": self._model_name},
            ) from exc
        finally:
            pool.shutdown(wait=False)
