"""Domain prompt builders.

Each analysis domain (architecture, security, data flow...) supplies a
:class:`DomainPromptBuilder`: the prompts for the initial analysis, a
parser from response text to a structured record, a predicate telling the
loop that refining is pointless, and the record used when parsing fails.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from archdoc_refine.domain.values import TaskContext
from archdoc_refine.services.structured_output import extract_json

JSON_FORMAT_HINT = "Respond with a single JSON object."


class DomainPromptBuilder(ABC):
    """Abstract prompt builder for one analysis domain.

    The defaults parse the response as a JSON object and force a stop when
    the record sets ``"force_stop": true`` or when every list-valued field
    is empty (nothing was found, so nothing can be refined).
    """

    #: Identifier used for logging and as the default agent name.
    name: str = "analysis"

    #: Formatting instruction appended to parse-retry prompts.
    format_hint: str = JSON_FORMAT_HINT

    @abstractmethod
    def build_system_prompt(self, context: TaskContext) -> str:
        """Return the system prompt for the initial analysis."""
        ...

    @abstractmethod
    def build_human_prompt(self, context: TaskContext) -> str:
        """Return the human prompt for the initial analysis."""
        ...

    def parse_output(self, text: str) -> Mapping[str, Any]:
        """Parse *text* into a structured record.

        Raises
        ------
        ValueError
            If the text does not contain a JSON object.
        """
        record = extract_json(text)
        if not isinstance(record, dict):
            raise ValueError(f"expected a JSON object, got {type(record).__name__}")
        return record

    def should_force_stop(self, record: Mapping[str, Any]) -> bool:
        if record.get("force_stop") is True:
            return True
        collections = [v for v in record.values() if isinstance(v, list)]
        return bool(collections) and all(not c for c in collections)

    def fallback_record(self) -> Mapping[str, Any]:
        """Record used when the output cannot be parsed after every retry."""
        return {}
