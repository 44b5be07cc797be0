"""Testing utilities for archdoc-refine."""

from archdoc_refine.testing.mock_llm import (
    ScriptedChatModel,
    ScriptedCompletionClient,
    evaluation_text,
)

__all__ = ["ScriptedChatModel", "ScriptedCompletionClient", "evaluation_text"]
