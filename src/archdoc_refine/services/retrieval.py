"""Keyword-based file relevance retrieval.

Ranks candidate source files against a natural-language question using
path heuristics only (no embeddings): question keywords matched against
the file name and directory, contextual boosts for well-known file roles
(controllers, models, auth, config, error handlers, tests) and a small
bonus for entry points.  When a dependency graph is available the top hits
are enriched with the files they import, the files importing them and
their module peers.

Scoring
-------
===========================================  ======
Signal                                        Points
===========================================  ======
keyword in file name                          +15
keyword in directory only                     +8
auth/security question on auth/guard file     +15
other contextual role match                   +12
test question on test file                    +10
entry point (index/main/app)                  +5
non-test question on test file                -5
imported by a top hit                         +10
imports a top hit                             +8
same module as a top hit                      +5
===========================================  ======
"""

from __future__ import annotations

import logging
import posixpath
import re
from collections.abc import Iterable, Sequence

from archdoc_refine.domain.exceptions import RetrievalError
from archdoc_refine.domain.values import DependencyGraph, RetrievedFile, ScoredFile
from archdoc_refine.infrastructure.file_reader import FileReader

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
DEFAULT_MAX_FILE_SIZE = 100_000

DEFAULT_INCLUDE_EXTENSIONS = (".ts", ".js", ".tsx", ".jsx", ".py", ".java", ".go", ".cs")
DEFAULT_EXCLUDE_PATTERNS = ("node_modules", "dist", "build", ".test.", ".spec.", "__tests__")

FILENAME_MATCH_SCORE = 15.0
DIRECTORY_MATCH_SCORE = 8.0
ROLE_BOOST = 12.0
SECURITY_BOOST = 15.0
TEST_BOOST = 10.0
TEST_PENALTY = 5.0
ENTRY_POINT_BOOST = 5.0
IMPORTED_BY_HIT_SCORE = 10.0
IMPORTS_HIT_SCORE = 8.0
SAME_MODULE_SCORE = 5.0

_ENTRY_POINT_STEMS = frozenset({"index", "main", "app", "__main__"})

_STOP_WORDS = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "her",
    "was", "one", "our", "out", "day", "get", "has", "him", "his", "how",
    "its", "may", "new", "now", "old", "see", "two", "way", "who", "did",
    "does", "what", "which", "where", "when", "why", "this", "that", "with",
    "from", "they", "have", "been", "there", "their", "would", "could",
    "should", "into", "about", "used", "using", "other", "some", "any",
    "each", "handled", "implemented", "defined",
})

_TECHNICAL_TERMS = frozenset({
    "service", "controller", "model", "entity", "schema", "repository",
    "middleware", "guard", "filter", "interceptor", "pipe", "module",
    "config", "auth", "database", "api", "route", "endpoint", "handler",
    "util", "helper", "dto", "interface", "type", "error", "exception",
    "validation", "cache", "queue", "event", "test", "spec",
})

_NON_WORD = re.compile(r"\W+")

# (question keywords, file-path markers, boost, reason)
_ROLE_BOOSTS = (
    (("api", "endpoint", "route", "controller"),
     ("controller", "route", "api"), ROLE_BOOST, "api-role"),
    (("model", "entity", "schema", "data"),
     ("model", "entity", "schema", "dto"), ROLE_BOOST, "data-role"),
    (("auth", "security", "login"),
     ("auth", "security", "guard"), SECURITY_BOOST, "security-role"),
    (("config",),
     ("config", "settings", ".env"), ROLE_BOOST, "config-role"),
    (("error", "exception"),
     ("error", "exception", "filter", "handler"), ROLE_BOOST, "error-role"),
)


def extract_keywords(question: str) -> list[str]:
    """Split *question* into lowercase keywords.

    Drops stop words and words of two characters or fewer; keeps
    technical terms regardless.  Order is preserved, duplicates removed.
    """
    keywords: list[str] = []
    for word in _NON_WORD.split(question.lower()):
        if not word or word in keywords:
            continue
        if word in _TECHNICAL_TERMS or (len(word) > 2 and word not in _STOP_WORDS):
            keywords.append(word)
    return keywords


def _is_test_file(lowered_path: str) -> bool:
    name = posixpath.basename(lowered_path)
    parts = lowered_path.split("/")
    return (
        ".test." in name
        or ".spec." in name
        or name.startswith("test_")
        or any(p in ("test", "tests", "__tests__") for p in parts[:-1])
    )


class FileRelevanceRetriever:
    """Ranks and reads the files most relevant to a question.

    Parameters
    ----------
    reader:
        Filesystem access used by :meth:`retrieve` and size checks.
    dependency_graph:
        Optional import graph used to enrich the ranking.
    include_extensions:
        Only files with one of these extensions are candidates.
    exclude_patterns:
        Paths containing any of these patterns are never candidates.
    """

    def __init__(
        self,
        reader: FileReader,
        dependency_graph: DependencyGraph | None = None,
        include_extensions: Sequence[str] = DEFAULT_INCLUDE_EXTENSIONS,
        exclude_patterns: Sequence[str] = DEFAULT_EXCLUDE_PATTERNS,
    ) -> None:
        if not include_extensions:
            raise RetrievalError("include_extensions must not be empty")
        self._reader = reader
        self._graph = dependency_graph
        self._extensions = tuple(e.lower() for e in include_extensions)
        self._exclude = tuple(exclude_patterns)

    # -- candidates -----------------------------------------------------------

    def _is_candidate(self, path: str) -> bool:
        normalized = path.replace("\\", "/")
        if not normalized.lower().endswith(self._extensions):
            return False
        parts = normalized.split("/")
        for pattern in self._exclude:
            if pattern.isalnum():
                if pattern in parts:
                    return False
            elif pattern in normalized:
                return False
        return True

    # -- scoring --------------------------------------------------------------

    def score_file(self, question: str, path: str) -> ScoredFile:
        """Score a single *path* against *question* (no filtering applied)."""
        lowered_question = question.lower()
        lowered_path = path.replace("\\", "/").lower()
        file_name = posixpath.basename(lowered_path)
        directory = posixpath.dirname(lowered_path)

        score = 0.0
        reasons: list[str] = []
        for keyword in extract_keywords(question):
            if keyword in file_name:
                score += FILENAME_MATCH_SCORE
                reasons.append(f"name:{keyword}")
            elif keyword in directory:
                score += DIRECTORY_MATCH_SCORE
                reasons.append(f"dir:{keyword}")

        if "service" in lowered_question and "service" in file_name:
            score += ROLE_BOOST
            reasons.append("service-role")
        for question_markers, path_markers, boost, reason in _ROLE_BOOSTS:
            if any(m in lowered_question for m in question_markers) and any(
                m in lowered_path for m in path_markers
            ):
                score += boost
                reasons.append(reason)

        is_test = _is_test_file(lowered_path)
        if "test" in lowered_question:
            if is_test:
                score += TEST_BOOST
                reasons.append("test-role")
        elif is_test:
            score = max(0.0, score - TEST_PENALTY)

        stem = file_name.split(".", 1)[0]
        if stem in _ENTRY_POINT_STEMS:
            score += ENTRY_POINT_BOOST
            reasons.append("entry-point")

        return ScoredFile(path=path, score=score, reasons=tuple(reasons))

    def search(
        self,
        question: str,
        candidates: Iterable[str],
        top_k: int = DEFAULT_TOP_K,
        max_file_size: int | None = None,
    ) -> list[ScoredFile]:
        """Return up to ``top_k`` files with a positive score, best first.

        With a dependency graph the list may grow to ``2 * top_k`` entries
        through import and module enrichment.  When *max_file_size* is
        given, files larger than twice that size are skipped.
        """
        if top_k < 1:
            return []
        scored = [
            self.score_file(question, path)
            for path in dict.fromkeys(candidates)
            if self._is_candidate(path)
        ]
        ranked = sorted(
            (s for s in scored if s.score > 0),
            key=lambda s: (-s.score, s.path),
        )

        hits: list[ScoredFile] = []
        for item in ranked:
            if max_file_size is not None and self._too_large(item.path, max_file_size):
                continue
            hits.append(item)
            if len(hits) == top_k:
                break

        if self._graph is not None and hits:
            hits = self._enrich(hits, top_k)
        logger.debug(
            "FileRelevanceRetriever: %d hit(s) for %r", len(hits), question[:80]
        )
        return hits

    def _too_large(self, path: str, max_file_size: int) -> bool:
        size = self._reader.size(path)
        if size is not None and size > 2 * max_file_size:
            logger.debug(
                "FileRelevanceRetriever: skipping %s (%d bytes)", path, size
            )
            return True
        return False

    def _enrich(self, hits: list[ScoredFile], top_k: int) -> list[ScoredFile]:
        assert self._graph is not None
        totals: dict[str, float] = {h.path: h.score for h in hits}
        reasons: dict[str, list[str]] = {h.path: list(h.reasons) for h in hits}

        def bump(path: str, points: float, reason: str) -> None:
            if not self._is_candidate(path):
                return
            totals[path] = totals.get(path, 0.0) + points
            reasons.setdefault(path, []).append(reason)

        for hit in hits:
            for target in self._graph.imports_of(hit.path):
                bump(target, IMPORTED_BY_HIT_SCORE, f"imported-by:{hit.path}")
            for source in self._graph.importers_of(hit.path):
                bump(source, IMPORTS_HIT_SCORE, f"imports:{hit.path}")
            for peer in self._graph.module_peers(hit.path):
                bump(peer, SAME_MODULE_SCORE, f"module-peer:{hit.path}")

        enriched = [
            ScoredFile(path=p, score=s, reasons=tuple(reasons[p]))
            for p, s in totals.items()
        ]
        enriched.sort(key=lambda s: (-s.score, s.path))
        return enriched[: top_k * 2]

    # -- reading --------------------------------------------------------------

    def retrieve(
        self,
        ranked: Iterable[ScoredFile | str],
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ) -> list[RetrievedFile]:
        """Read each ranked file, truncating to *max_file_size* bytes.

        Unreadable, binary or oversized files are skipped and never abort
        the batch.
        """
        retrieved: list[RetrievedFile] = []
        for item in ranked:
            path = item.path if isinstance(item, ScoredFile) else item
            size = self._reader.size(path)
            if size is not None and size > 2 * max_file_size:
                logger.debug("FileRelevanceRetriever: %s too large, skipped", path)
                continue
            content = self._reader.read(path, max_file_size)
            if content is None:
                continue
            truncated = size is not None and size > max_file_size
            retrieved.append(RetrievedFile(path=path, content=content, truncated=truncated))
        return retrieved

    def gather(
        self,
        questions: Sequence[str],
        candidates: Sequence[str],
        files_per_question: int = 3,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ) -> list[RetrievedFile]:
        """Retrieve the top files for every question, de-duplicated by path."""
        seen: set[str] = set()
        collected: list[RetrievedFile] = []
        for question in questions:
            ranked = self.search(
                question, candidates, top_k=files_per_question, max_file_size=max_file_size
            )
            fresh = [r for r in ranked if r.path not in seen]
            for item in self.retrieve(fresh, max_file_size=max_file_size):
                seen.add(item.path)
                collected.append(item)
        logger.info(
            "FileRelevanceRetriever: retrieved %d file(s) for %d question(s)",
            len(collected),
            len(questions),
        )
        return collected
