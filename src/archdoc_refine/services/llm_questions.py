"""Self-question generation from prioritized gaps."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from langchain_core.prompts import ChatPromptTemplate

from archdoc_refine.domain.values import Gap
from archdoc_refine.infrastructure.llm import (
    CompletionClient,
    CompletionOptions,
    render_messages,
)
from archdoc_refine.services.structured_output import LLMOutcome

logger = logging.getLogger(__name__)

QUESTION_OPTIONS = CompletionOptions(
    temperature=0.4, max_output_tokens=1500, trace_name="GenerateQuestions"
)
ANALYSIS_EXCERPT_CHARS = 800

_NUMBERED = re.compile(r"^\s*\d+[.)]\s*(.+?)\s*$")

_QUESTION_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "human",
            "You are improving a draft analysis of a codebase.\n\n"
            "## Draft (excerpt)\n{excerpt}\n\n"
            "## Missing information, most important first\n{gaps}\n\n"
            "Write at most {max_questions} specific questions that can be "
            "answered by reading the source code. Each question should name the "
            "kind of file or component that would answer it. Do not ask about "
            "runtime behaviour, production metrics or deployment, which static "
            "analysis cannot determine.\n\n"
            "Format: a numbered list, one question per line.",
        ),
    ]
)


def parse_questions(text: str, max_questions: int) -> list[str]:
    """Return numbered-list items from *text*, de-duplicated, at most *max_questions*."""
    questions: list[str] = []
    for line in text.splitlines():
        match = _NUMBERED.match(line)
        if match and match.group(1) not in questions:
            questions.append(match.group(1))
    return questions[:max(max_questions, 0)]


class QuestionGenerator:
    """Turns ranked gaps into code-answerable questions.

    Parameters
    ----------
    client:
        Completion client.
    prompt:
        Optional custom ``ChatPromptTemplate`` with the variables
        ``excerpt``, ``gaps`` and ``max_questions``.
    """

    def __init__(
        self,
        client: CompletionClient,
        prompt: ChatPromptTemplate | None = None,
    ) -> None:
        self._client = client
        self._prompt = prompt or _QUESTION_PROMPT

    def generate(
        self,
        analysis: str,
        ranked_gaps: Sequence[Gap],
        max_questions: int,
    ) -> LLMOutcome[list[str]]:
        messages = render_messages(
            self._prompt,
            excerpt=analysis[:ANALYSIS_EXCERPT_CHARS],
            gaps="\n".join(
                f"{i}. [{g.category.value.upper()}] {g.text}"
                for i, g in enumerate(ranked_gaps, start=1)
            ),
            max_questions=max_questions,
        )
        response = self._client.invoke(messages, QUESTION_OPTIONS)
        questions = parse_questions(response.text, max_questions)
        logger.info("QuestionGenerator: %d question(s) generated", len(questions))
        return LLMOutcome(value=questions, text=response.text, responses=(response,))
