"""
File discovery shared by the usage and import collectors.

Walks the project root, prunes directories that never hold project sources,
and applies the include/exclude glob filter. Exclusion wins when a path
matches both sides.
"""

import fnmatch
import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional

from storage.path_manager import PathManager

logger = logging.getLogger(__name__)

# Directories to skip entirely
SKIP_DIRECTORIES = {
    ".git", ".svn", ".hg",
    "node_modules", "__pycache__", ".pytest_cache",
    ".venv", "venv",
    ".next", ".nuxt", ".turbo", ".cache",
}


@lru_cache(maxsize=1024)
def _pattern_variants(pattern: str) -> FrozenSet[str]:
    variants = {pattern}
    if pattern.startswith("**/"):
        variants |= _pattern_variants(pattern[3:])
    if "/**/" in pattern:
        variants |= _pattern_variants(pattern.replace("/**/", "/", 1))
    return frozenset(variants)


def path_matches_glob(path: str, pattern: str) -> bool:
    """
    Test a canonical path against one glob pattern.

    `*` matches across "/" (fnmatch semantics). A `**/` segment may also match
    zero directories, so `**/*.css` matches `theme.css` and
    `**/components/**/*.tsx` matches `components/Button.tsx`.
    """
    return any(fnmatch.fnmatchcase(path, variant) for variant in _pattern_variants(pattern))


@dataclass
class PathFilter:
    """Ordered include/exclude globs; an empty include set admits every path."""
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    predicate: Optional[Callable[[str], bool]] = None

    @property
    def is_restrictive(self) -> bool:
        return bool(self.include or self.exclude) or self.predicate is not None

    def matches(self, path: str) -> bool:
        if self.include and not any(path_matches_glob(path, p) for p in self.include):
            return False
        if any(path_matches_glob(path, p) for p in self.exclude):
            return False
        if self.predicate is not None and not self.predicate(path):
            return False
        return True

    def filter(self, paths: Iterable[str]) -> List[str]:
        return [p for p in paths if self.matches(p)]


@dataclass
class FileDiscoveryStats:
    """Statistics from file discovery process"""
    total_files_scanned: int = 0
    files_matched: int = 0
    skipped_reasons: Dict[str, int] = field(default_factory=dict)

    def skip(self, reason: str) -> None:
        self.skipped_reasons[reason] = self.skipped_reasons.get(reason, 0) + 1


class FileDiscoveryEngine:
    """Resolves the include/exclude filter against a project tree."""

    def __init__(self, project_root: Path, path_filter: PathFilter):
        self.project_root = Path(project_root)
        self.path_filter = path_filter
        self.path_manager = PathManager(self.project_root)
        self.stats = FileDiscoveryStats()

    def discover_files(self) -> List[str]:
        """Canonical paths of every matching file, sorted."""
        logger.debug(f"Starting file discovery in: {self.project_root}")

        if not self.project_root.is_dir():
            logger.error(f"Project root does not exist: {self.project_root}")
            return []

        discovered = []
        for dirpath, dirnames, filenames in os.walk(self.project_root):
            kept = []
            for name in dirnames:
                if name in SKIP_DIRECTORIES:
                    self.stats.skip("skip_directory")
                else:
                    kept.append(name)
            dirnames[:] = sorted(kept)

            for name in filenames:
                self.stats.total_files_scanned += 1
                canonical = self.path_manager.normalize_for_storage(os.path.join(dirpath, name))
                if not self.path_filter.matches(canonical):
                    self.stats.skip("filtered")
                    continue
                discovered.append(canonical)

        discovered.sort()
        self.stats.files_matched = len(discovered)
        logger.debug(
            f"File discovery complete: {self.stats.files_matched} of "
            f"{self.stats.total_files_scanned} files matched"
        )
        return discovered


def discover_files(project_root: Path, include: List[str], exclude: List[str]) -> List[str]:
    return FileDiscoveryEngine(project_root, PathFilter(include, exclude)).discover_files()
