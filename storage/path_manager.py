"""
Centralized Path Management Service

Every collector reports file paths through this service so that a file seen
by git history, the usage scan, and the import graph ends up under one
canonical key.

Standard format: project-relative, forward slashes, no leading "./", with
"." and ".." segments collapsed. Example: "src/components/Button.tsx"
"""

import os
import posixpath
from pathlib import Path, PurePosixPath
from typing import Optional, Union
import logging

logger = logging.getLogger(__name__)


class PathManager:
    """
    Canonical path normalization for one project root.

    Relative inputs are taken as already relative to the project root.
    Absolute inputs under the root are made relative; absolute inputs outside
    the root keep their absolute form and are logged.
    """

    def __init__(self, project_root: Union[str, Path] = "."):
        """
        Initialize path manager.

        Args:
            project_root: Root directory of the project being collected
        """
        self.project_root = Path(os.path.abspath(project_root))
        logger.debug(f"PathManager initialized with project root: {self.project_root}")

    def normalize_for_storage(self, file_path: Union[str, Path]) -> str:
        """
        Normalize a file path to its canonical key.

        Args:
            file_path: Input file path (absolute or relative)

        Returns:
            Canonical project-relative path

        Examples:
            /repo/src/App.tsx (root=/repo) -> src/App.tsx
            ./src/../src/App.tsx -> src/App.tsx
            src\\App.tsx -> src/App.tsx
        """
        path_str = str(file_path).strip().replace("\\", "/")
        if not path_str:
            return ""

        is_absolute = path_str.startswith("/") or (len(path_str) > 1 and path_str[1] == ":")

        if is_absolute:
            absolute = Path(os.path.normpath(path_str))
            try:
                relative = absolute.relative_to(self.project_root)
            except ValueError:
                logger.warning(f"Path outside project root kept absolute: {file_path}")
                return absolute.as_posix()
            return self._clean(relative.as_posix())

        return self._clean(path_str)

    @staticmethod
    def _clean(path_str: str) -> str:
        normalized = posixpath.normpath(path_str)
        if normalized == ".":
            return ""
        while normalized.startswith("./"):
            normalized = normalized[2:]
        return normalized

    def to_absolute(self, canonical_path: str) -> Path:
        """Absolute filesystem location of a canonical path."""
        return self.project_root / PurePosixPath(canonical_path)

    def is_inside_project(self, file_path: Union[str, Path]) -> bool:
        """True when the path normalizes to a location under the project root."""
        normalized = self.normalize_for_storage(file_path)
        return bool(normalized) and not normalized.startswith("/") and not normalized.startswith("../") \
            and normalized != ".."


def normalize_path(file_path: Union[str, Path], project_root: Optional[Union[str, Path]] = None) -> str:
    """Convenience function for path normalization."""
    return PathManager(project_root or ".").normalize_for_storage(file_path)
