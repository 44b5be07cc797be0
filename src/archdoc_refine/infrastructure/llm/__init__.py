"""LLM integration layer for archdoc-refine.

This sub-package provides a **provider-agnostic** completion interface on
top of LangChain chat models (Anthropic, OpenAI, Google).

Public API
----------
CompletionClient
    Abstract base class every completion backend implements.
CompletionResponse
    Text plus token usage returned by every call.
CompletionOptions
    Per-call configuration (temperature, max output tokens, trace name,
    optional deadline).
CompletionError
    Base exception for all completion failures.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, field, fields
from typing import TYPE_CHECKING, Any

from archdoc_refine.domain.exceptions import ArchDocError, ConfigurationError
from archdoc_refine.domain.values import TokenUsage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage
    from langchain_core.prompts import ChatPromptTemplate

logger = logging.getLogger(__name__)


# =========================================================================== #
#  Exceptions                                                                  #
# =========================================================================== #

class CompletionError(ArchDocError):
    """Raised when the underlying model call fails."""


class CompletionTimeoutError(CompletionError):
    """Raised when a call exceeds its configured deadline."""


# =========================================================================== #
#  Data structures                                                             #
# =========================================================================== #

@dataclass(frozen=True)
class CompletionOptions:
    """Per-call configuration for a completion request.

    Attributes
    ----------
    temperature:
        Sampling temperature.
    max_output_tokens:
        Maximum number of tokens in the response.
    trace_name:
        Label attached to the call for logging and tracing.
    timeout:
        Deadline in seconds; ``None`` waits indefinitely.
    """

    temperature: float = 0.3
    max_output_tokens: int = 16000
    trace_name: str = ""
    timeout: float | None = None

    def validate(self) -> None:
        if not (0.0 <= self.temperature <= 2.0):
            raise ConfigurationError(
                f"temperature must be in [0, 2], got {self.temperature}"
            )
        if self.max_output_tokens < 1:
            raise ConfigurationError(
                f"max_output_tokens must be >= 1, got {self.max_output_tokens}"
            )
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(f"timeout must be > 0, got {self.timeout}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CompletionOptions:
        valid_keys = {f.name for f in fields(cls)}
        cfg = cls(**{k: v for k, v in data.items() if k in valid_keys})
        cfg.validate()
        return cfg


_ROLE_BY_LANGCHAIN_TYPE = {"system": "system", "human": "user", "ai": "assistant"}


@dataclass(frozen=True)
class LLMMessage:
    """A single message in a conversation.

    Attributes
    ----------
    role:
        One of ``"system"``, ``"user"``, ``"assistant"``.
    content:
        The text content of the message.
    """

    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_langchain(cls, message: BaseMessage) -> LLMMessage:
        role = _ROLE_BY_LANGCHAIN_TYPE.get(message.type, "user")
        return cls(role=role, content=content_to_text(message.content))


@dataclass(frozen=True)
class CompletionResponse:
    """Structured response from a completion backend.

    Attributes
    ----------
    text:
        The generated text content.
    input_tokens:
        Prompt tokens reported by the provider (``0`` when unreported).
    output_tokens:
        Completion tokens reported by the provider (``0`` when unreported).
    model:
        Model that produced the response, when known.
    raw:
        Provider metadata kept for debugging.
    """

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def usage(self) -> TokenUsage:
        return TokenUsage(
            input_tokens=max(self.input_tokens, 0),
            output_tokens=max(self.output_tokens, 0),
        )


def content_to_text(content: Any) -> str:
    """Flatten LangChain message content (string or content blocks) to text."""
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)


def render_messages(template: ChatPromptTemplate, **values: Any) -> list[LLMMessage]:
    """Format a ``ChatPromptTemplate`` into a list of :class:`LLMMessage`."""
    return [LLMMessage.from_langchain(m) for m in template.format_messages(**values)]


# =========================================================================== #
#  Abstract client                                                             #
# =========================================================================== #

class CompletionClient(ABC):
    """Abstract base class for completion backends.

    Usage::

        client = ChatModelCompletionClient(ChatAnthropic(model=...))
        options = CompletionOptions(temperature=0.2, trace_name="EvaluateClarity")
        response = client.invoke(messages, options)
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier used for rate lookup (e.g. ``"anthropic"``)."""
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier used for rate lookup."""
        ...

    @abstractmethod
    def invoke(
        self,
        messages: Sequence[LLMMessage],
        options: CompletionOptions,
    ) -> CompletionResponse:
        """Synchronously generate a response.

        Parameters
        ----------
        messages:
            Conversation history as a sequence of :class:`LLMMessage`.
        options:
            Per-call configuration.

        Returns
        -------
        CompletionResponse

        Raises
        ------
        CompletionError
            On any backend failure, including an exceeded deadline.
        """
        ...


__all__ = [
    "CompletionClient",
    "CompletionError",
    "CompletionOptions",
    "CompletionResponse",
    "CompletionTimeoutError",
    "LLMMessage",
    "content_to_text",
    "render_messages",
]
