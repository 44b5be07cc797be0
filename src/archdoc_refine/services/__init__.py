"""Service layer for archdoc-refine.

Re-exports public service types for convenient top-level access::

    from archdoc_refine.services import (
        GapTracker, prioritize_gaps, FileRelevanceRetriever,
        TokenAccountant, RateTable, ClarityEvaluator, QuestionGenerator,
        AnalysisRefiner, StructuredOutputParser, DomainPromptBuilder,
    )
"""

from archdoc_refine.services.accounting import (
    DEFAULT_RATES,
    ModelRate,
    RateTable,
    TokenAccountant,
    UsageRecord,
    calculate_cost,
)
from archdoc_refine.services.domain_prompts import DomainPromptBuilder
from archdoc_refine.services.gap_tracker import (
    GapTracker,
    classify_gap,
    deduplicate_gaps,
    gaps_similar,
    is_vague,
    normalize_gap,
    prioritize_gaps,
)
from archdoc_refine.services.llm_evaluation import (
    ClarityEvaluator,
    EvaluationOutput,
    parse_evaluation,
)
from archdoc_refine.services.llm_questions import QuestionGenerator, parse_questions
from archdoc_refine.services.llm_refinement import AnalysisRefiner
from archdoc_refine.services.retrieval import FileRelevanceRetriever, extract_keywords
from archdoc_refine.services.structured_output import (
    LLMOutcome,
    StructuredOutputParser,
    extract_json,
)

__all__ = [
    # Accounting
    "DEFAULT_RATES",
    "ModelRate",
    "RateTable",
    "TokenAccountant",
    "UsageRecord",
    "calculate_cost",
    # Gaps
    "GapTracker",
    "classify_gap",
    "deduplicate_gaps",
    "gaps_similar",
    "is_vague",
    "normalize_gap",
    "prioritize_gaps",
    # Retrieval
    "FileRelevanceRetriever",
    "extract_keywords",
    # LLM services
    "AnalysisRefiner",
    "ClarityEvaluator",
    "DomainPromptBuilder",
    "EvaluationOutput",
    "LLMOutcome",
    "QuestionGenerator",
    "StructuredOutputParser",
    "extract_json",
    "parse_evaluation",
    "parse_questions",
]
