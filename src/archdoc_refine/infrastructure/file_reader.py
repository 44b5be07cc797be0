"""File access for the relevance retriever.

:class:`FileReader` is the seam the retriever reads through; the local
implementation resolves project-relative paths, skips binary or unreadable
files and keeps a small LRU cache of recently read contents.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from collections import OrderedDict

logger = logging.getLogger(__name__)

_BINARY_SNIFF_BYTES = 8192


class FileReader(ABC):
    """Abstract read-only view of a project's files."""

    @abstractmethod
    def read(self, path: str, max_bytes: int) -> str | None:
        """Return at most *max_bytes* of *path* decoded as text.

        Returns ``None`` when the file is missing, binary or unreadable.
        """
        ...

    @abstractmethod
    def size(self, path: str) -> int | None:
        """Return the file size in bytes, or ``None`` if it cannot be stat'ed."""
        ...


class LocalFileReader(FileReader):
    """Reads files from the local filesystem.

    Parameters
    ----------
    root:
        Directory that relative paths are resolved against.
    cache_size:
        Number of ``(path, max_bytes)`` reads kept in the LRU cache.
    """

    def __init__(self, root: str = ".", cache_size: int = 50) -> None:
        self._root = root
        self._cache_size = cache_size
        self._cache: OrderedDict[tuple[str, int], str] = OrderedDict()

    def _resolve(self, path: str) -> str:
        return path if os.path.isabs(path) else os.path.join(self._root, path)

    def size(self, path: str) -> int | None:
        try:
            return os.path.getsize(self._resolve(path))
        except OSError:
            return None

    def read(self, path: str, max_bytes: int) -> str | None:
        key = (path, max_bytes)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        try:
            with open(self._resolve(path), "rb") as fh:
                raw = fh.read(max_bytes)
        except OSError as exc:
            logger.warning("LocalFileReader: could not read %s: %s", path, exc)
            return None

        if b"\x00" in raw[:_BINARY_SNIFF_BYTES]:
            logger.warning("LocalFileReader: skipping binary file %s", path)
            return None
        # Truncation may split a multi-byte character at the tail.
        text = raw.decode("utf-8", errors="replace")

        self._cache[key] = text
        if len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)
        return text

    def clear_cache(self) -> None:
        self._cache.clear()
