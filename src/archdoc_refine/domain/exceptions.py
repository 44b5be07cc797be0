"""Exception hierarchy for archdoc-refine.

Every error raised by the package derives from :class:`ArchDocError`, which
carries a human-readable message plus an optional ``details`` mapping for
structured context (agent name, attempt counts, previews).
"""

from __future__ import annotations

from typing import Any


class ArchDocError(Exception):
    """Base class for all package errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        extra = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
        return f"{self.message} ({extra})"


class ConfigurationError(ArchDocError, ValueError):
    """Raised for invalid configuration values or missing provider setup."""


class StructuredOutputError(ArchDocError):
    """Raised when a model response cannot be parsed after every retry."""

    def __init__(
        self,
        message: str,
        context_name: str = "",
        attempts: int = 0,
        preview: str = "",
    ) -> None:
        super().__init__(
            message,
            {"context": context_name, "attempts": attempts, "preview": preview[:200]},
        )
        self.context_name = context_name
        self.attempts = attempts
        self.preview = preview


class RetrievalError(ArchDocError):
    """Raised when the file retriever is misconfigured."""
