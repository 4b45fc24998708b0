# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Companion file lookups used by cross-reference rules."""

import logging
import threading
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class CompanionLookup(Protocol):
    """Read-only access to conventionally related sibling files."""

    def try_read(self, path: str) -> str | None:
        """Return file content or ``None``; must never raise."""


def companion_path_for(template_path: str) -> str | None:
    """Map a template path to its conventional component source path.

    Args:
        template_path: Path ending in ``.html``.

    Returns:
        Path with the ``.ts`` extension, or ``None`` for non-template paths.
    """
    if not template_path.lower().endswith(".html"):
        return None
    return f"{template_path[:-5]}.ts"


class MappingCompanionLookup:
    """Companion lookup over an in-memory mapping of path to content."""

    def __init__(self, contents: Mapping[str, str]) -> None:
        self._contents = {_normalize(path): text for path, text in contents.items()}

    def try_read(self, path: str) -> str | None:
        return self._contents.get(_normalize(path))


class FileCompanionLookup:
    """Read-through, thread-safe cached companion lookup on the file system."""

    def __init__(self, root_path: Path) -> None:
        """Initialize lookup.

        Args:
            root_path: Directory that relative companion paths resolve against.
                Paths resolving outside this directory are treated as absent.
        """
        self._root = root_path.resolve()
        self._cache: dict[str, str | None] = {}
        self._lock = threading.Lock()

    def try_read(self, path: str) -> str | None:
        key = _normalize(path)
        with self._lock:
            if key in self._cache:
                return self._cache[key]
        content = self._read(key)
        with self._lock:
            return self._cache.setdefault(key, content)

    def _read(self, key: str) -> str | None:
        try:
            candidate = (self._root / key).resolve()
            if not candidate.is_relative_to(self._root):
                logger.debug(f"Companion path outside root ignored (path={key})")
                return None
            if not candidate.is_file():
                return None
            return candidate.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            logger.debug(f"Companion file unreadable (path={key} error={exc})")
            return None


class ChainedCompanionLookup:
    """Try several lookups in order and return the first content found."""

    def __init__(self, lookups: Iterable[CompanionLookup]) -> None:
        self._lookups = tuple(lookups)

    def try_read(self, path: str) -> str | None:
        for lookup in self._lookups:
            content = lookup.try_read(path)
            if content is not None:
                return content
        return None


class NullCompanionLookup:
    """Lookup that never has evidence."""

    def try_read(self, path: str) -> str | None:
        return None


def _normalize(path: str) -> str:
    return path.replace("\\", "/")
