"""Gap tracking: normalization, fuzzy de-duplication and prioritization.

A *gap* is a free-text missing-information item reported by the clarity
evaluator.  Gaps are compared through a normalized key (lowercase, no
punctuation, trimmed) and a word-overlap heuristic so that paraphrases of
an already-seen gap are not reported again.

Similarity rule
---------------
Two keys are similar when they are equal, or when at least
``SIMILARITY_THRESHOLD`` percent of the significant words of the shorter
one match a word of the other.  A word is significant when it is longer
than three characters; two words match when one contains the other.
A small alias table folds common synonyms (``login`` / ``auth``,
``route`` / ``endpoint``) onto one stem before comparison.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from archdoc_refine.domain.enums import GapCategory
from archdoc_refine.domain.values import Gap

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 70.0
MIN_WORD_LENGTH = 4
MIN_GAP_LENGTH = 12

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

_WORD_ALIASES = {
    "login": "auth",
    "logins": "auth",
    "signin": "auth",
    "authentication": "auth",
    "authorization": "auth",
    "authenticated": "auth",
    "route": "endpoint",
    "routes": "endpoint",
    "routing": "endpoint",
    "endpoints": "endpoint",
    "db": "database",
    "databases": "database",
    "configuration": "config",
    "settings": "config",
}

_HIGH_PRIORITY_KEYWORDS = (
    "security",
    "authentication",
    "authorization",
    "database",
    "schema",
    "error handling",
    "validation",
)
_MEDIUM_PRIORITY_KEYWORDS = (
    "caching",
    "logging",
    "testing",
    "patterns",
    "configuration",
    "dependency",
    "api",
)

_VAGUE_PATTERNS = (
    re.compile(r"^\s*(none|n/?a)\s*([-.:,(]|$)"),
    re.compile(r"^\s*nothing (else|further|missing)\b"),
    re.compile(r"\bnot applicable\b"),
    re.compile(r"\ball aspects (are )?covered\b"),
    re.compile(r"\bno (further|additional|remaining|other) (gaps|information|details)\b"),
)


# -- normalization ------------------------------------------------------------

def normalize_gap(text: str) -> str:
    """Return the comparison key for *text*.

    Lowercases, strips punctuation and collapses whitespace.
    """
    lowered = _PUNCTUATION.sub("", text.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def _significant_words(key: str) -> list[str]:
    words = (_WORD_ALIASES.get(w, w) for w in key.split())
    return [w for w in words if len(w) >= MIN_WORD_LENGTH]


def gaps_similar(first: str, second: str) -> bool:
    """Return ``True`` if two normalized keys describe the same gap.

    The check is symmetric: overlap is measured against the shorter of the
    two significant-word lists.
    """
    if first == second:
        return True
    words_a = _significant_words(first)
    words_b = _significant_words(second)
    if not words_a or not words_b:
        return False
    shorter, longer = sorted((words_a, words_b), key=len)
    matches = sum(
        1 for word in shorter
        if any(word == other or word in other or other in word for other in longer)
    )
    return matches / len(shorter) * 100.0 >= SIMILARITY_THRESHOLD


def is_vague(text: str) -> bool:
    """Return ``True`` for placeholder or too-short gaps (``"None"``, ``"N/A"``)."""
    stripped = text.strip()
    if len(stripped) < MIN_GAP_LENGTH:
        return True
    lowered = stripped.lower()
    return any(pattern.search(lowered) for pattern in _VAGUE_PATTERNS)


# -- de-duplication -----------------------------------------------------------

def deduplicate_gaps(new_gaps: Iterable[str], seen_keys: Iterable[str]) -> list[str]:
    """Drop gaps similar to a seen key or to an earlier gap in the same batch.

    Parameters
    ----------
    new_gaps:
        Raw gap texts from the latest evaluation, in reported order.
    seen_keys:
        Normalized keys of every gap reported in earlier iterations.

    Returns
    -------
    list[str]
        The surviving raw texts, in their original order.
    """
    known = list(seen_keys)
    unique: list[str] = []
    for text in new_gaps:
        key = normalize_gap(text)
        if not key:
            continue
        if any(gaps_similar(key, other) for other in known):
            logger.debug("Dropping duplicate gap: %s", text)
            continue
        unique.append(text)
        known.append(key)
    return unique


# -- prioritization -----------------------------------------------------------

def classify_gap(text: str) -> GapCategory:
    """Assign a priority category by keyword match."""
    lowered = text.lower().replace("-", " ")
    if any(keyword in lowered for keyword in _HIGH_PRIORITY_KEYWORDS):
        return GapCategory.HIGH
    if any(keyword in lowered for keyword in _MEDIUM_PRIORITY_KEYWORDS):
        return GapCategory.MEDIUM
    return GapCategory.LOW


def prioritize_gaps(gaps: Iterable[str | Gap]) -> list[Gap]:
    """Return gaps ranked by priority score, then alphabetically."""
    ranked = [
        g if isinstance(g, Gap) else Gap(text=g, category=classify_gap(g))
        for g in gaps
    ]
    ranked.sort(key=lambda g: (-g.priority_score, g.text.lower(), g.text))
    return ranked


# -- tracker ------------------------------------------------------------------

class GapTracker:
    """Remembers every gap key reported during one run.

    The remembered set only grows.  Once ``max_seen`` keys are stored new
    keys are no longer recorded, so later duplicates of them may slip
    through; a warning is logged the first time this happens.

    Parameters
    ----------
    seen_keys:
        Keys already reported (e.g. restored from a checkpoint).
    max_seen:
        Upper bound on the number of remembered keys.
    """

    def __init__(self, seen_keys: Iterable[str] = (), max_seen: int = 1000) -> None:
        self._seen: set[str] = set(seen_keys)
        self._max_seen = max_seen
        self._cap_warned = False

    @property
    def seen_keys(self) -> frozenset[str]:
        return frozenset(self._seen)

    def observe(self, raw_gaps: Iterable[str]) -> list[Gap]:
        """De-duplicate *raw_gaps*, remember the new keys and classify them.

        Calling ``observe`` twice with the same texts yields an empty list
        the second time and leaves the seen set unchanged.
        """
        fresh = deduplicate_gaps(raw_gaps, self._seen)
        for text in fresh:
            self._remember(normalize_gap(text))
        return [Gap(text=t, category=classify_gap(t)) for t in fresh]

    def _remember(self, key: str) -> None:
        if key in self._seen:
            return
        if len(self._seen) >= self._max_seen:
            if not self._cap_warned:
                logger.warning(
                    "GapTracker: seen-gap cap of %d reached; new keys are not recorded",
                    self._max_seen,
                )
                self._cap_warned = True
            return
        self._seen.add(key)
