"""Token and cost accounting for a refinement run.

:class:`TokenAccountant` sums the usage reported by every completion call
of one run (retries included) and converts the totals into an estimated
cost through a :class:`RateTable` keyed by ``provider/model``.  Counters
only grow: negative or missing usage is treated as zero.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass

from archdoc_refine.domain.values import TokenUsage
from archdoc_refine.infrastructure.llm import CompletionResponse

logger = logging.getLogger(__name__)

TOKENS_PER_UNIT = 1_000_000


@dataclass(frozen=True)
class ModelRate:
    """USD price per million input and output tokens."""

    input_per_million: float
    output_per_million: float


DEFAULT_RATES: dict[str, ModelRate] = {
    "anthropic/claude-sonnet-4-5-20250929": ModelRate(3.0, 15.0),
    "anthropic/claude-sonnet-4-20250514": ModelRate(3.0, 15.0),
    "anthropic/claude-opus-4-1-20250805": ModelRate(15.0, 75.0),
    "anthropic/claude-opus-4-20250514": ModelRate(15.0, 75.0),
    "anthropic/claude-haiku-4-5-20251001": ModelRate(0.25, 1.25),
    "anthropic/claude-3-5-haiku-20241022": ModelRate(0.8, 4.0),
    "openai/gpt-4-turbo": ModelRate(10.0, 30.0),
    "openai/gpt-4": ModelRate(30.0, 60.0),
    "openai/gpt-3.5-turbo": ModelRate(0.5, 1.5),
    "google/gemini-2.5-pro": ModelRate(1.0, 4.0),
    "xai/grok-3-beta": ModelRate(5.0, 15.0),
    "xai/grok-2": ModelRate(2.0, 10.0),
}


def calculate_cost(usage: TokenUsage, rate: ModelRate) -> float:
    """``input / 1e6 * rate_in + output / 1e6 * rate_out``."""
    return (
        usage.input_tokens / TOKENS_PER_UNIT * rate.input_per_million
        + usage.output_tokens / TOKENS_PER_UNIT * rate.output_per_million
    )


class RateTable:
    """Lookup of :class:`ModelRate` by provider and model.

    Keys are ``"provider/model"``; a bare ``"model"`` key also matches any
    provider.  Unknown models fall back to *default* (``None`` means the
    cost is reported as zero).
    """

    def __init__(
        self,
        rates: Mapping[str, ModelRate] | None = None,
        default: ModelRate | None = None,
    ) -> None:
        self._rates: dict[str, ModelRate] = dict(DEFAULT_RATES if rates is None else rates)
        self._default = default

    def register(self, provider: str, model: str, rate: ModelRate) -> None:
        self._rates[f"{provider}/{model}"] = rate

    def lookup(self, provider: str, model: str) -> ModelRate | None:
        rate = self._rates.get(f"{provider}/{model}") or self._rates.get(model)
        return rate if rate is not None else self._default


@dataclass(frozen=True)
class UsageRecord:
    """One completion call as seen by the accountant."""

    trace_name: str
    usage: TokenUsage
    timestamp: float


class TokenAccountant:
    """Additive token ledger for one run.

    Parameters
    ----------
    provider, model:
        Identify the rate applied by :meth:`estimated_cost`.
    rate_table:
        Rates to use; defaults to :data:`DEFAULT_RATES`.
    token_budget:
        Advisory budget; ``0`` means unbounded.  Exceeding it is logged,
        never enforced.
    """

    def __init__(
        self,
        provider: str = "",
        model: str = "",
        rate_table: RateTable | None = None,
        token_budget: int = 0,
    ) -> None:
        self._provider = provider
        self._model = model
        self._rates = rate_table or RateTable()
        self._token_budget = token_budget
        self._totals = TokenUsage()
        self._records: list[UsageRecord] = []
        self._budget_warned = False

    # -- recording ------------------------------------------------------------

    def record(self, response: CompletionResponse | TokenUsage, trace_name: str = "") -> TokenUsage:
        """Add one call's usage to the totals and return the new totals."""
        usage = response.usage if isinstance(response, CompletionResponse) else response
        usage = TokenUsage(
            input_tokens=max(usage.input_tokens, 0),
            output_tokens=max(usage.output_tokens, 0),
        )
        if usage.total_tokens == 0:
            logger.debug("TokenAccountant: %s reported no usage", trace_name or "call")
        self._totals = self._totals + usage
        self._records.append(UsageRecord(trace_name, usage, time.time()))

        remaining = self.remaining_budget
        if remaining is not None and remaining < 0 and not self._budget_warned:
            logger.warning(
                "TokenAccountant: token budget of %d exceeded (%d used)",
                self._token_budget,
                self._totals.total_tokens,
            )
            self._budget_warned = True
        return self._totals

    # -- queries --------------------------------------------------------------

    @property
    def usage(self) -> TokenUsage:
        return self._totals

    @property
    def input_tokens(self) -> int:
        return self._totals.input_tokens

    @property
    def output_tokens(self) -> int:
        return self._totals.output_tokens

    @property
    def total_tokens(self) -> int:
        return self._totals.total_tokens

    @property
    def records(self) -> tuple[UsageRecord, ...]:
        return tuple(self._records)

    @property
    def call_count(self) -> int:
        return len(self._records)

    @property
    def remaining_budget(self) -> int | None:
        if self._token_budget <= 0:
            return None
        return self._token_budget - self._totals.total_tokens

    def estimated_cost(self, provider: str | None = None, model: str | None = None) -> float:
        """Estimated USD cost of the totals; ``0.0`` for unknown models."""
        rate = self._rates.lookup(
            self._provider if provider is None else provider,
            self._model if model is None else model,
        )
        if rate is None:
            return 0.0
        return calculate_cost(self._totals, rate)

    def summary(self) -> dict[str, float | int]:
        return {
            "calls": self.call_count,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "estimated_cost": self.estimated_cost(),
        }
