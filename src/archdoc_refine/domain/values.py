"""Value objects for the refinement workflow.

All types here are frozen dataclasses, immutable and compared by value.
They describe gaps, scored and retrieved files, token usage, the analysis
task handed to an agent and the result it returns.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

from .enums import GapCategory, StopReason

# ---------------------------------------------------------------------------
# Gap
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Gap:
    """A missing-information item reported by the clarity evaluator."""

    text: str
    category: GapCategory = GapCategory.LOW

    @property
    def priority_score(self) -> int:
        return self.category.weight

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "category": self.category.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Gap:
        return cls(
            text=str(data["text"]),
            category=GapCategory(data.get("category", GapCategory.LOW.value)),
        )


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoredFile:
    """A candidate file ranked against a question."""

    path: str
    score: float
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class RetrievedFile:
    """A file whose (possibly truncated) content was read for refinement."""

    path: str
    content: str
    truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RetrievedFile:
        return cls(
            path=str(data["path"]),
            content=str(data.get("content", "")),
            truncated=bool(data.get("truncated", False)),
        )


@dataclass(frozen=True)
class ImportEdge:
    """``source`` imports ``target`` (both project-relative paths)."""

    source: str
    target: str


@dataclass(frozen=True)
class ModuleGroup:
    """A named group of files that belong to the same module."""

    name: str
    files: tuple[str, ...] = ()


@dataclass(frozen=True)
class DependencyGraph:
    """Import edges and module membership produced by an upstream analyzer."""

    imports: tuple[ImportEdge, ...] = ()
    modules: tuple[ModuleGroup, ...] = ()

    def imports_of(self, path: str) -> list[str]:
        return [e.target for e in self.imports if e.source == path]

    def importers_of(self, path: str) -> list[str]:
        return [e.source for e in self.imports if e.target == path]

    def module_peers(self, path: str) -> list[str]:
        for module in self.modules:
            if path in module.files:
                return [f for f in module.files if f != path]
        return []


# ---------------------------------------------------------------------------
# Token usage
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TokenUsage:
    """Input/output token counts for one call or a whole run."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "input": self.input_tokens,
            "output": self.output_tokens,
            "total": self.total_tokens,
        }


# ---------------------------------------------------------------------------
# TaskContext
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaskContext:
    """Everything an agent needs to analyse one project.

    Attributes
    ----------
    project_path:
        Root directory the candidate file paths are relative to.
    files:
        Candidate source files (project-relative).
    execution_id:
        Identifier shared by all agents of one run.
    token_budget:
        Advisory token budget for the run; ``0`` means unbounded.
    dependency_graph:
        Optional import graph used to enrich file retrieval.
    metadata:
        Free-form data made available to prompt builders.
    """

    project_path: str
    files: tuple[str, ...] = ()
    execution_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    token_budget: int = 0
    dependency_graph: DependencyGraph | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# RefinementResult
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RefinementResult:
    """Outcome of one agent's refinement run.

    ``confidence`` is the final clarity score divided by 100; ``warnings``
    carries the refinement notes accumulated along the way.
    """

    agent_name: str
    final_analysis: str
    structured_data: Mapping[str, Any]
    iterations: int
    clarity_score: float
    residual_gaps: tuple[str, ...]
    self_questions: tuple[str, ...]
    token_usage: TokenUsage
    estimated_cost: float
    stop_reason: StopReason | None
    execution_time: float
    warnings: tuple[str, ...] = ()

    @property
    def confidence(self) -> float:
        return max(0.0, min(self.clarity_score, 100.0)) / 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_name": self.agent_name,
            "summary": self.final_analysis,
            "data": dict(self.structured_data),
            "confidence": self.confidence,
            "token_usage": self.token_usage.to_dict(),
            "estimated_cost": self.estimated_cost,
            "execution_time": self.execution_time,
            "warnings": list(self.warnings),
            "metadata": {
                "iterations": self.iterations,
                "clarity_score": self.clarity_score,
                "self_questions": list(self.self_questions),
                "missing_information": list(self.residual_gaps),
                "stop_reason": (
                    self.stop_reason.value if self.stop_reason else None
                ),
            },
        }
