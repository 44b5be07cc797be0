"""LLM clarity evaluation of an analysis draft.

The model scores the draft on four 0-100 criteria (completeness, clarity,
depth, accuracy) and lists the information still missing.  The response is
line-oriented rather than JSON::

    COMPLETENESS_SCORE: 70
    CLARITY_SCORE: 65
    DEPTH_SCORE: 60
    ACCURACY_SCORE: 80
    MISSING_INFORMATION:
    - How are refresh tokens rotated?

A response without any score line is treated as malformed and re-prompted;
when every attempt fails all scores default to zero.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from archdoc_refine.domain.values import Gap
from archdoc_refine.infrastructure.llm import (
    CompletionClient,
    CompletionOptions,
    render_messages,
)
from archdoc_refine.services.structured_output import LLMOutcome, StructuredOutputParser

logger = logging.getLogger(__name__)

EVALUATION_OPTIONS = CompletionOptions(
    temperature=0.2, max_output_tokens=2000, trace_name="EvaluateClarity"
)

_SCORE_KEYS = {
    "completeness": "COMPLETENESS_SCORE",
    "clarity": "CLARITY_SCORE",
    "depth": "DEPTH_SCORE",
    "accuracy": "ACCURACY_SCORE",
}
_MISSING_HEADER = re.compile(r"^\s*MISSING_INFORMATION\s*:", re.IGNORECASE | re.MULTILINE)
_BULLET = re.compile(r"^\s*[-*•]\s+(.*\S)\s*$")
_SENTINEL_GAP = re.compile(r"^(none|n/?a)\s*([-.:,(]|$)", re.IGNORECASE)


# -- Structured output schema -------------------------------------------------


class EvaluationOutput(BaseModel):
    """Parsed clarity evaluation."""

    completeness: float = Field(default=0.0, ge=0.0, le=100.0)
    clarity: float = Field(default=0.0, ge=0.0, le=100.0)
    depth: float = Field(default=0.0, ge=0.0, le=100.0)
    accuracy: float = Field(default=0.0, ge=0.0, le=100.0)
    missing_information: list[str] = Field(default_factory=list)

    @property
    def overall(self) -> float:
        """Mean of the four sub-scores."""
        return (self.completeness + self.clarity + self.depth + self.accuracy) / 4.0


def parse_evaluation(text: str) -> EvaluationOutput:
    """Parse a line-oriented evaluation response.

    Scores are clamped to ``[0, 100]``; a missing score counts as zero.

    Raises
    ------
    ValueError
        If the text contains none of the four score lines.
    """
    scores: dict[str, float] = {}
    for field_name, label in _SCORE_KEYS.items():
        match = re.search(rf"{label}\s*:\s*(\d+(?:\.\d+)?)", text, re.IGNORECASE)
        if match:
            scores[field_name] = min(max(float(match.group(1)), 0.0), 100.0)
    if not scores:
        raise ValueError("response contains no score lines")

    gaps: list[str] = []
    header = _MISSING_HEADER.search(text)
    if header:
        for line in text[header.end():].splitlines():
            bullet = _BULLET.match(line)
            if not bullet:
                continue
            item = bullet.group(1).strip()
            if _SENTINEL_GAP.match(item):
                continue
            gaps.append(item)
    return EvaluationOutput(missing_information=gaps, **scores)


# -- Prompt -------------------------------------------------------------------

_EVALUATION_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You are a critical reviewer of software architecture documentation. "
            "You judge drafts produced by static analysis of a codebase.",
        ),
        (
            "human",
            "Evaluate the following analysis draft (iteration {iteration}).\n\n"
            "## Analysis\n{analysis}\n\n"
            "{previous_gaps}"
            "Score each criterion from 0 to 100:\n"
            "1. Completeness: are all important aspects covered?\n"
            "2. Clarity: is the explanation easy to follow?\n"
            "3. Depth: does it go beyond surface-level description?\n"
            "4. Accuracy: are the claims backed by the code?\n\n"
            "Then list the specific information that is still missing. Only list "
            "gaps that can be answered by reading source code, not runtime or "
            "deployment facts.\n\n"
            "Respond in exactly this format:\n"
            "COMPLETENESS_SCORE: [0-100]\n"
            "CLARITY_SCORE: [0-100]\n"
            "DEPTH_SCORE: [0-100]\n"
            "ACCURACY_SCORE: [0-100]\n"
            "MISSING_INFORMATION:\n"
            "- [specific gap]\n"
            "- [another gap, or \"None\" if nothing is missing]",
        ),
    ]
)

_FORMAT_HINT = (
    "Start with the four lines COMPLETENESS_SCORE, CLARITY_SCORE, DEPTH_SCORE "
    "and ACCURACY_SCORE, each followed by a number, then MISSING_INFORMATION "
    "and a bullet list."
)


# -- ClarityEvaluator ---------------------------------------------------------


class ClarityEvaluator:
    """Asks the model to critique an analysis draft.

    Parameters
    ----------
    client:
        Completion client.
    max_parse_retries:
        Re-prompts allowed for a response without score lines.
    timeout:
        Deadline in seconds for each evaluation call; ``None`` disables it.
    prompt:
        Optional custom ``ChatPromptTemplate`` with the variables
        ``analysis``, ``previous_gaps`` and ``iteration``.
    """

    def __init__(
        self,
        client: CompletionClient,
        max_parse_retries: int = 2,
        timeout: float | None = None,
        prompt: ChatPromptTemplate | None = None,
    ) -> None:
        self._client = client
        self._prompt = prompt or _EVALUATION_PROMPT
        self._options = CompletionOptions(
            temperature=EVALUATION_OPTIONS.temperature,
            max_output_tokens=EVALUATION_OPTIONS.max_output_tokens,
            trace_name=EVALUATION_OPTIONS.trace_name,
            timeout=timeout,
        )
        self._parser = StructuredOutputParser(client, max_parse_retries, self._options)

    def evaluate(
        self,
        analysis: str,
        previous_gaps: Sequence[Gap] = (),
        iteration: int = 1,
    ) -> LLMOutcome[EvaluationOutput]:
        """Score *analysis*; earlier gaps are shown from the second iteration on."""
        previous = ""
        if iteration > 1 and previous_gaps:
            listed = "\n".join(f"- {g.text}" for g in previous_gaps)
            previous = (
                "## Gaps reported in the previous iteration\n"
                f"{listed}\n\nCheck whether these are now addressed.\n\n"
            )
        messages = render_messages(
            self._prompt,
            analysis=analysis,
            previous_gaps=previous,
            iteration=iteration,
        )
        response = self._client.invoke(messages, self._options)
        outcome = self._parser.parse(
            response,
            parse_evaluation,
            messages,
            context_name="EvaluateClarity",
            format_hint=_FORMAT_HINT,
            fallback=EvaluationOutput(),
        )
        logger.info(
            "ClarityEvaluator: iteration %d clarity=%.1f gaps=%d",
            iteration,
            outcome.value.overall,
            len(outcome.value.missing_information),
        )
        return outcome
