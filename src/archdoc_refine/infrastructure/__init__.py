"""Infrastructure layer for archdoc-refine.

Re-exports the public API surface for convenience::

    from archdoc_refine.infrastructure import (
        RefinementPolicy, LLMSettings, load_config_from_json,
        LocalFileReader, CompletionClient, CompletionOptions,
    )
"""

from archdoc_refine.infrastructure.config import (
    LLMSettings,
    RefinementPolicy,
    load_config_from_json,
)
from archdoc_refine.infrastructure.file_reader import FileReader, LocalFileReader
from archdoc_refine.infrastructure.llm import (
    CompletionClient,
    CompletionError,
    CompletionOptions,
    CompletionResponse,
    CompletionTimeoutError,
    LLMMessage,
)

__all__ = [
    "CompletionClient",
    "CompletionError",
    "CompletionOptions",
    "CompletionResponse",
    "CompletionTimeoutError",
    "FileReader",
    "LLMMessage",
    "LLMSettings",
    "LocalFileReader",
    "RefinementPolicy",
    "load_config_from_json",
]
