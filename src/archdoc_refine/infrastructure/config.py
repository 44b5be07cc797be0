"""Configuration dataclasses for archdoc-refine.

Each config is a plain ``dataclass`` with a ``validate()`` method that raises
:class:`~archdoc_refine.domain.exceptions.ConfigurationError` (a
``ValueError``) on invalid values.  Configs are **frozen** so a policy can be
shared by concurrently running agents without risking silent mutation.

The refinement core never validates a policy itself; callers that load
configuration from files go through :meth:`RefinementPolicy.from_dict` or
:func:`load_config_from_json`, both of which validate.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from archdoc_refine.domain.exceptions import ConfigurationError


# ===================================================================== #
#  Refinement policy                                                     #
# ===================================================================== #

@dataclass(frozen=True)
class RefinementPolicy:
    """Parameters governing the self-refinement loop.

    Attributes
    ----------
    max_iterations:
        Upper bound on the iteration counter; reaching it finalizes.
    clarity_threshold:
        Clarity score at or above which the analysis is considered clear.
    min_improvement:
        Clarity gain between evaluations below which progress is logged
        as marginal.
    max_questions_per_iteration:
        Upper bound on self-questions generated per cycle.
    evaluation_timeout:
        Deadline in seconds for each clarity evaluation call; ``None``
        disables the deadline.
    max_parse_retries:
        Re-prompts allowed when a response cannot be parsed.
    min_analysis_length:
        Analyses shorter than this (in characters) are treated as
        insufficient content.
    min_growth_ratio:
        Relative growth below which a refinement after the first
        iteration counts as stalled.
    files_per_question:
        Files retrieved for each self-question.
    max_file_size:
        Maximum bytes read from a single file.
    max_excerpt_chars:
        Characters of each file included in the refinement prompt.
    max_seen_gaps:
        Cap on the number of gap keys remembered across iterations.
    """

    max_iterations: int = 5
    clarity_threshold: float = 80.0
    min_improvement: float = 3.0
    max_questions_per_iteration: int = 3
    evaluation_timeout: float | None = None
    max_parse_retries: int = 2
    min_analysis_length: int = 100
    min_growth_ratio: float = 0.01
    files_per_question: int = 3
    max_file_size: int = 100_000
    max_excerpt_chars: int = 3000
    max_seen_gaps: int = 1000

    def validate(self) -> None:
        """Raise ``ConfigurationError`` if any field is out of valid range."""
        if self.max_iterations < 1:
            raise ConfigurationError(
                f"max_iterations must be >= 1, got {self.max_iterations}"
            )
        if not (0.0 <= self.clarity_threshold <= 100.0):
            raise ConfigurationError(
                f"clarity_threshold must be in [0, 100], got {self.clarity_threshold}"
            )
        if self.min_improvement < 0:
            raise ConfigurationError(
                f"min_improvement must be >= 0, got {self.min_improvement}"
            )
        if self.max_questions_per_iteration < 1:
            raise ConfigurationError(
                "max_questions_per_iteration must be >= 1, "
                f"got {self.max_questions_per_iteration}"
            )
        if self.evaluation_timeout is not None and self.evaluation_timeout <= 0:
            raise ConfigurationError(
                f"evaluation_timeout must be > 0, got {self.evaluation_timeout}"
            )
        if self.max_parse_retries < 0:
            raise ConfigurationError(
                f"max_parse_retries must be >= 0, got {self.max_parse_retries}"
            )
        if self.min_analysis_length < 0:
            raise ConfigurationError(
                f"min_analysis_length must be >= 0, got {self.min_analysis_length}"
            )
        if self.files_per_question < 1:
            raise ConfigurationError(
                f"files_per_question must be >= 1, got {self.files_per_question}"
            )
        if self.max_file_size < 1:
            raise ConfigurationError(
                f"max_file_size must be >= 1, got {self.max_file_size}"
            )
        if self.max_excerpt_chars < 1:
            raise ConfigurationError(
                f"max_excerpt_chars must be >= 1, got {self.max_excerpt_chars}"
            )
        if self.max_seen_gaps < 1:
            raise ConfigurationError(
                f"max_seen_gaps must be >= 1, got {self.max_seen_gaps}"
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RefinementPolicy:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  LLM settings                                                          #
# ===================================================================== #

_VALID_PROVIDERS = frozenset({"anthropic", "openai", "google", "xai"})

DEFAULT_PROVIDER = "anthropic"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
_PROVIDER_DEFAULT_MODELS = {
    "anthropic": DEFAULT_MODEL,
    "openai": "gpt-4-turbo",
    "google": "gemini-2.5-pro",
    "xai": "grok-3-beta",
}

ENV_PROVIDER = "ARCHDOC_LLM_PROVIDER"
ENV_MODEL = "ARCHDOC_LLM_MODEL"
_API_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "google": "GOOGLE_API_KEY",
    "xai": "XAI_API_KEY",
}


@dataclass(frozen=True)
class LLMSettings:
    """Which chat model to build and how.

    Attributes
    ----------
    provider:
        One of ``"anthropic"``, ``"openai"``, ``"google"``, ``"xai"``.
    model:
        Model identifier passed to the provider.
    temperature:
        Default sampling temperature (calls override it per step).
    max_tokens:
        Default output limit (calls override it per step).
    api_key:
        Explicit API key; ``None`` lets the provider read its own
        environment variable.
    base_url:
        Optional endpoint override for OpenAI-compatible servers.
    """

    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    temperature: float = 0.3
    max_tokens: int = 16000
    api_key: str | None = field(default=None, repr=False)
    base_url: str | None = None

    def validate(self) -> None:
        if self.provider not in _VALID_PROVIDERS:
            raise ConfigurationError(
                f"provider must be one of {sorted(_VALID_PROVIDERS)}, "
                f"got {self.provider!r}"
            )
        if not self.model:
            raise ConfigurationError("model must not be empty")
        if not (0.0 <= self.temperature <= 2.0):
            raise ConfigurationError(
                f"temperature must be in [0, 2], got {self.temperature}"
            )
        if self.max_tokens < 1:
            raise ConfigurationError(
                f"max_tokens must be >= 1, got {self.max_tokens}"
            )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("api_key")
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LLMSettings:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> LLMSettings:
        """Read provider and model from ``ARCHDOC_LLM_PROVIDER`` / ``ARCHDOC_LLM_MODEL``."""
        env = os.environ if environ is None else environ
        provider = env.get(ENV_PROVIDER, DEFAULT_PROVIDER).strip().lower()
        model = env.get(ENV_MODEL, "").strip() or _PROVIDER_DEFAULT_MODELS.get(
            provider, DEFAULT_MODEL
        )
        api_key = env.get(_API_KEY_ENV.get(provider, ""), "") or None
        cfg = cls(provider=provider, model=model, api_key=api_key)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Helpers                                                               #
# ===================================================================== #

_CONFIG_MAP: dict[str, type] = {
    "refinement": RefinementPolicy,
    "llm": LLMSettings,
}


def load_config_from_json(json_str: str) -> dict[str, Any]:
    """Parse a JSON string into a dict of typed config objects.

    The JSON is expected to be an object whose top-level keys correspond to
    config section names (``refinement``, ``llm``).  Unknown sections are
    preserved as raw dicts.
    """
    try:
        raw = json.loads(json_str)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid configuration JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError("Top-level JSON must be an object")
    result: dict[str, Any] = {}
    for section, data in raw.items():
        cls = _CONFIG_MAP.get(section)
        if cls is not None and isinstance(data, dict):
            result[section] = cls.from_dict(data)
        else:
            result[section] = data
    return result
