"""Structured-output extraction with bounded re-prompt retries.

LLMs wrap JSON in prose or code fences.  :func:`extract_json` tries, in
order: a fenced ````json`` block, a bare fenced block, the first balanced
``{...}`` object and finally the whole text.

:class:`StructuredOutputParser` applies any parse function to a response
and, on failure, re-invokes the model with a stricter formatting
instruction up to ``max_retries`` times.  Every response obtained along
the way is returned so the caller can account for its tokens.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from archdoc_refine.domain.exceptions import StructuredOutputError
from archdoc_refine.infrastructure.llm import (
    CompletionClient,
    CompletionOptions,
    CompletionResponse,
    LLMMessage,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_JSON_FENCE = re.compile(r"```json\s*\n?(.*?)```", re.DOTALL | re.IGNORECASE)
_BARE_FENCE = re.compile(r"```\s*\n(.*?)```", re.DOTALL)

_RETRY_INSTRUCTION = (
    "Your previous response could not be parsed: {error}\n\n"
    "Respond again with ONLY the requested output. {format_hint}\n"
    "Do not add explanations, markdown headings or text outside the output."
)

_MISSING: Any = object()


def _first_balanced_object(text: str) -> str | None:
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        start = text.find("{", start + 1)
    return None


def extract_json(text: str) -> Any:
    """Extract and decode the JSON payload embedded in *text*.

    Raises
    ------
    ValueError
        If no strategy yields valid JSON.
    """
    candidates: list[str] = []
    fenced = _JSON_FENCE.search(text)
    if fenced and not fenced.group(1).lstrip().startswith("#"):
        candidates.append(fenced.group(1))
    bare = _BARE_FENCE.search(text)
    if bare:
        candidates.append(bare.group(1))
    balanced = _first_balanced_object(text)
    if balanced:
        candidates.append(balanced)
    candidates.append(text)

    last_error: Exception | None = None
    for candidate in candidates:
        try:
            return json.loads(candidate.strip())
        except json.JSONDecodeError as exc:
            last_error = exc
    raise ValueError(f"No valid JSON found in response: {last_error}")


@dataclass(frozen=True)
class LLMOutcome(Generic[T]):
    """A value produced by one or more completion calls.

    Attributes
    ----------
    value:
        The parsed (or fallback) value.
    text:
        The response text the value came from.
    responses:
        Every response received, retries included, in call order.
    used_fallback:
        ``True`` when every attempt failed and the fallback was used.
    """

    value: T
    text: str
    responses: tuple[CompletionResponse, ...] = ()
    used_fallback: bool = False

    @property
    def attempts(self) -> int:
        return len(self.responses)


class StructuredOutputParser:
    """Parses model output, re-prompting with stricter instructions on failure.

    Parameters
    ----------
    client:
        Completion client used for retries.
    max_retries:
        Number of re-prompts after the first failed parse.
    options:
        Options for retry calls (trace names get a ``:retry`` suffix).
    """

    def __init__(
        self,
        client: CompletionClient,
        max_retries: int = 2,
        options: CompletionOptions | None = None,
    ) -> None:
        self._client = client
        self._max_retries = max(max_retries, 0)
        self._options = options or CompletionOptions(temperature=0.0)

    def parse(
        self,
        response: CompletionResponse,
        parse: Callable[[str], T],
        messages: Sequence[LLMMessage],
        context_name: str = "",
        format_hint: str = "",
        fallback: T = _MISSING,
    ) -> LLMOutcome[T]:
        """Parse *response* with *parse*, retrying through the model.

        Parameters
        ----------
        response:
            The response already obtained for *messages*.
        parse:
            Callable turning response text into a value; raises on
            malformed input.
        messages:
            The conversation that produced *response*.
        context_name:
            Label used in logs, trace names and errors.
        format_hint:
            Extra formatting instruction added to retry prompts.
        fallback:
            Value returned when every attempt fails.  Without it a
            :class:`StructuredOutputError` is raised.

        Returns
        -------
        LLMOutcome
        """
        responses = [response]
        current = response
        conversation = list(messages)
        options = CompletionOptions(
            temperature=self._options.temperature,
            max_output_tokens=self._options.max_output_tokens,
            trace_name=f"{context_name}:retry" if context_name else "retry",
            timeout=self._options.timeout,
        )

        for attempt in range(self._max_retries + 1):
            try:
                value = parse(current.text)
            except Exception as exc:
                logger.warning(
                    "StructuredOutputParser: %s attempt %d/%d failed: %s",
                    context_name or "output",
                    attempt + 1,
                    self._max_retries + 1,
                    exc,
                )
                if attempt == self._max_retries:
                    break
                conversation = conversation + [
                    LLMMessage(role="assistant", content=current.text),
                    LLMMessage(
                        role="user",
                        content=_RETRY_INSTRUCTION.format(
                            error=str(exc)[:200], format_hint=format_hint
                        ),
                    ),
                ]
                current = self._client.invoke(conversation, options)
                responses.append(current)
                continue
            return LLMOutcome(value=value, text=current.text, responses=tuple(responses))

        if fallback is _MISSING:
            raise StructuredOutputError(
                "Could not parse model output",
                context_name=context_name,
                attempts=len(responses),
                preview=current.text,
            )
        logger.warning(
            "StructuredOutputParser: %s using fallback after %d attempt(s)",
            context_name or "output",
            len(responses),
        )
        # The first response is kept as the text; retries only reformat it.
        return LLMOutcome(
            value=fallback,
            text=response.text,
            responses=tuple(responses),
            used_fallback=True,
        )
