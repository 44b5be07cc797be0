"""Domain layer for archdoc-refine.

Re-exports all public domain types so that consumers can write::

    from archdoc_refine.domain import Gap, GapCategory, TaskContext
"""

# -- Enumerations -------------------------------------------------------------
from .enums import GapCategory, StopReason, WorkflowNode

# -- Value Objects ------------------------------------------------------------
from .values import (
    DependencyGraph,
    Gap,
    ImportEdge,
    ModuleGroup,
    RefinementResult,
    RetrievedFile,
    ScoredFile,
    TaskContext,
    TokenUsage,
)

# -- Exceptions ---------------------------------------------------------------
from .exceptions import (
    ArchDocError,
    ConfigurationError,
    RetrievalError,
    StructuredOutputError,
)

__all__ = [
    # Enums
    "GapCategory",
    "StopReason",
    "WorkflowNode",
    # Values
    "DependencyGraph",
    "Gap",
    "ImportEdge",
    "ModuleGroup",
    "RefinementResult",
    "RetrievedFile",
    "ScoredFile",
    "TaskContext",
    "TokenUsage",
    # Exceptions
    "ArchDocError",
    "ConfigurationError",
    "RetrievalError",
    "StructuredOutputError",
]
