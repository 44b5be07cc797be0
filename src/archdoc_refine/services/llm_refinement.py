"""Re-analysis of a draft using self-questions and retrieved source files."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from langchain_core.prompts import ChatPromptTemplate

from archdoc_refine.domain.values import Gap, RetrievedFile
from archdoc_refine.infrastructure.llm import (
    CompletionClient,
    CompletionOptions,
    LLMMessage,
)
from archdoc_refine.services.structured_output import LLMOutcome

logger = logging.getLogger(__name__)

REFINEMENT_OPTIONS = CompletionOptions(
    temperature=0.3, max_output_tokens=16000, trace_name="RefineAnalysis"
)
MAX_GAPS_IN_PROMPT = 5
TRUNCATION_MARKER = "\n... [truncated]"

_REFINEMENT_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "human",
            "## Previous analysis (iteration {iteration})\n{analysis}\n\n"
            "## Questions to answer\n{questions}\n\n"
            "## Missing information\n{gaps}\n\n"
            "## Source files\n{files}\n\n"
            "Produce an improved version of the analysis.\n"
            "- Keep every correct part of the previous analysis; extend it, do "
            "not shorten it.\n"
            "- Answer the questions using the source files above.\n"
            "- For a gap that the code cannot answer, keep it and mark it "
            "\"Not determinable from static analysis\" instead of omitting it.\n"
            "- Keep the same output format as the previous analysis.",
        ),
    ]
)


def format_file_excerpt(file: RetrievedFile, max_chars: int) -> str:
    """Render one file as a fenced excerpt capped at *max_chars*."""
    content = file.content
    marker = ""
    if len(content) > max_chars:
        content = content[:max_chars]
        marker = TRUNCATION_MARKER
    elif file.truncated:
        marker = TRUNCATION_MARKER
    return f"### {file.path}\n```\n{content}{marker}\n```"


class AnalysisRefiner:
    """Asks the model for an improved analysis.

    The domain system and human prompts are sent first so the refined text
    keeps the domain output format; the refinement request, which carries
    the previous analysis, follows.

    Parameters
    ----------
    client:
        Completion client.
    max_excerpt_chars:
        Characters of each file included in the prompt.
    prompt:
        Optional custom ``ChatPromptTemplate`` with the variables
        ``analysis``, ``questions``, ``gaps``, ``files`` and ``iteration``.
    """

    def __init__(
        self,
        client: CompletionClient,
        max_excerpt_chars: int = 3000,
        prompt: ChatPromptTemplate | None = None,
    ) -> None:
        self._client = client
        self._max_excerpt_chars = max_excerpt_chars
        self._prompt = prompt or _REFINEMENT_PROMPT

    def refine(
        self,
        system_prompt: str,
        human_prompt: str,
        analysis: str,
        questions: Sequence[str],
        gaps: Sequence[Gap],
        files: Sequence[RetrievedFile],
        iteration: int,
    ) -> LLMOutcome[str]:
        request = self._prompt.format_messages(
            analysis=analysis,
            questions="\n".join(f"{i}. {q}" for i, q in enumerate(questions, start=1))
            or "(none)",
            gaps="\n".join(f"- {g.text}" for g in gaps[:MAX_GAPS_IN_PROMPT]) or "(none)",
            files="\n\n".join(
                format_file_excerpt(f, self._max_excerpt_chars) for f in files
            )
            or "(no files retrieved)",
            iteration=iteration,
        )
        messages = [
            LLMMessage(role="system", content=system_prompt),
            LLMMessage(role="user", content=human_prompt),
            *(LLMMessage.from_langchain(m) for m in request),
        ]
        response = self._client.invoke(messages, REFINEMENT_OPTIONS)
        logger.info(
            "AnalysisRefiner: iteration %d produced %d chars (was %d)",
            iteration,
            len(response.text),
            len(analysis),
        )
        return LLMOutcome(value=response.text, text=response.text, responses=(response,))
