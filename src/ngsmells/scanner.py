# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""File system scanner producing source artifacts for the engine."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import pathspec

from ngsmells.config import (
    DEFAULT_EXCLUDE_PATTERNS,
    DEFAULT_INCLUDE_PATTERNS,
    DEFAULT_MAX_FILE_SIZE,
)
from ngsmells.model import SourceArtifact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanError:
    """File skipped during scanning.

    Attributes:
        path: Project-relative POSIX path.
        reason: Why the file was skipped.
    """

    path: str
    reason: str


class PathMatcher:
    """Match project paths against gitignore-style patterns."""

    def __init__(self, patterns: Iterable[str]) -> None:
        self._spec = pathspec.GitIgnoreSpec.from_lines(list(patterns))

    def matches(self, relative_path: str, is_dir: bool = False) -> bool:
        """Check whether a project-relative POSIX path matches.

        Args:
            relative_path: Project-relative POSIX path.
            is_dir: Whether the path is a directory.

        Returns:
            True when any pattern matches.
        """
        normalized = relative_path.strip("/")
        if not normalized:
            return False
        if self._spec.match_file(normalized):
            return True
        return is_dir and self._spec.match_file(f"{normalized}/")


class FileScanner:
    """Collect Angular source files under a project root."""

    def __init__(
        self,
        include_patterns: Iterable[str] = DEFAULT_INCLUDE_PATTERNS,
        exclude_patterns: Iterable[str] = DEFAULT_EXCLUDE_PATTERNS,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ) -> None:
        """Initialize scanner.

        Args:
            include_patterns: Patterns a file must match to be scanned.
            exclude_patterns: Patterns removing files and whole directories.
            max_file_size: Files larger than this many bytes are skipped.

        Raises:
            ValueError: If ``max_file_size`` is not greater than zero.
        """
        if max_file_size <= 0:
            raise ValueError("max_file_size must be > 0")
        self._include = PathMatcher(include_patterns)
        self._exclude = PathMatcher(exclude_patterns)
        self._max_file_size = max_file_size

    def scan(self, root: Path) -> tuple[list[SourceArtifact], list[ScanError]]:
        """Walk ``root`` and read every included file.

        Args:
            root: Project root directory.

        Returns:
            Artifacts sorted by path, and files that were skipped.

        Raises:
            FileNotFoundError: If ``root`` is not an existing directory.
        """
        if not root.is_dir():
            raise FileNotFoundError(f"Project path not found: {root}")
        artifacts: list[SourceArtifact] = []
        errors: list[ScanError] = []
        queue: list[Path] = [root]
        while queue:
            current = queue.pop(0)
            for child in sorted(current.iterdir(), key=lambda item: item.name):
                relative = child.relative_to(root).as_posix()
                if child.is_dir():
                    if child.is_symlink() or self._exclude.matches(relative, is_dir=True):
                        continue
                    queue.append(child)
                    continue
                if self._exclude.matches(relative) or not self._include.matches(relative):
                    continue
                artifact = self._read(child, relative, errors)
                if artifact is not None:
                    artifacts.append(artifact)
        artifacts.sort(key=lambda artifact: artifact.path)
        logger.info(
            f"Scan finished (root={root} artifacts={len(artifacts)} skipped={len(errors)})"
        )
        return artifacts, errors

    def _read(
        self, path: Path, relative: str, errors: list[ScanError]
    ) -> SourceArtifact | None:
        try:
            size = path.stat().st_size
            if size > self._max_file_size:
                reason = f"file too large ({size} > {self._max_file_size} bytes)"
                logger.warning(f"Skipping file (file_path={relative} reason={reason})")
                errors.append(ScanError(path=relative, reason=reason))
                return None
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning(f"Skipping unreadable file (file_path={relative} error={exc})")
            errors.append(ScanError(path=relative, reason=str(exc)))
            return None
        return SourceArtifact(path=relative, content=content, size=size)
