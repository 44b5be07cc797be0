"""Domain enumerations for the refinement workflow.

These enums capture the fixed vocabularies used across the package:
gap priority categories, workflow node names and termination reasons.
"""

from enum import Enum


class GapCategory(Enum):
    """Priority bucket assigned to a missing-information gap."""

    HIGH = "high"  # security, auth, data layer, error handling, validation
    MEDIUM = "medium"  # caching, logging, testing, patterns, config, api
    LOW = "low"

    @property
    def weight(self) -> int:
        return _CATEGORY_WEIGHTS[self]


_CATEGORY_WEIGHTS = {
    GapCategory.HIGH: 3,
    GapCategory.MEDIUM: 2,
    GapCategory.LOW: 1,
}


class WorkflowNode(Enum):
    """States of the refinement state machine."""

    ANALYZE_INITIAL = "analyze_initial"
    EVALUATE_CLARITY = "evaluate_clarity"
    GENERATE_QUESTIONS = "generate_questions"
    RETRIEVE_FILES = "retrieve_files"
    REFINE_ANALYSIS = "refine_analysis"
    FINALIZE = "finalize"


class StopReason(Enum):
    """Why the refinement loop handed control to ``Finalize``."""

    INSUFFICIENT_CONTENT = "insufficient_content"
    FORCE_STOP = "force_stop"
    MAX_ITERATIONS = "max_iterations"
    LOW_PROGRESS = "low_progress"
    CLARITY_REACHED = "clarity_reached"
    NO_REFINEMENT_DATA = "no_refinement_data"
    EMPTY_REFINEMENT = "empty_refinement"
