"""
Repository Inspector - read-only access to git metadata.

Thin typed layer over GitPython: commit enumeration (lazy, most recent
first), per-commit file changes, per-file history and blame, current branch
and remote URL. Every git failure surfaces as InspectionError; a path with no
git metadata raises NotARepository, which callers treat as a normal state
(e.g. a freshly scaffolded project).
"""

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

import git
import git.exc

from .errors import InspectionError, NotARepository
from .models import BlameLine

logger = logging.getLogger(__name__)

_GIT_FAILURES = (git.exc.GitError, git.exc.ODBError, ValueError, OSError)


@dataclass(frozen=True)
class RawCommit:
    """Commit metadata as read from the log, before any path filtering."""
    sha: str
    author_name: str
    author_email: str
    authored_at: datetime
    message: str
    parent_shas: Tuple[str, ...]


@dataclass(frozen=True)
class RawFileChange:
    """One entry of `git diff-tree`; paths are relative to the working tree."""
    path: str
    status: str
    additions: Optional[int] = None
    deletions: Optional[int] = None
    old_path: Optional[str] = None


class RepositoryInspector:
    """
    Read-only view of one git repository.

    The repository is discovered from `path` upwards, so a project living in
    a subdirectory of a checkout is inspected through the enclosing
    repository.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(os.path.abspath(path))
        try:
            self.repo = git.Repo(self.path, search_parent_directories=True)
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as e:
            raise NotARepository("No git metadata found", str(self.path)) from e
        except _GIT_FAILURES as e:
            raise InspectionError(f"Could not open repository: {e}", str(self.path)) from e

        self.working_dir = Path(self.repo.working_tree_dir or self.repo.git_dir)
        logger.debug(f"Opened repository at {self.working_dir} (git dir {self.repo.git_dir})")

    @staticmethod
    def is_repository(path: Union[str, Path]) -> bool:
        """Point check that never raises."""
        try:
            RepositoryInspector(path)
            return True
        except (NotARepository, InspectionError):
            return False

    @contextmanager
    def _inspecting(self, action: str):
        try:
            yield
        except _GIT_FAILURES as e:
            raise InspectionError(f"Failed to {action}: {e}", str(self.path)) from e

    def has_commits(self) -> bool:
        with self._inspecting("read HEAD"):
            return self.repo.head.is_valid()

    # ==================== COMMITS ====================

    def iter_commits(self, paths: Optional[List[str]] = None,
                     since: Optional[datetime] = None,
                     until: Optional[datetime] = None,
                     max_count: Optional[int] = None) -> Iterator[RawCommit]:
        """
        Lazily enumerate commits reachable from HEAD, most recent first.

        Args:
            paths: Optional working-tree-relative paths restricting the log
            since: Only commits after this date
            until: Only commits before this date
            max_count: Stop after this many commits
        """
        if not self.has_commits():
            logger.info(f"Repository at {self.working_dir} has no commits yet")
            return

        options = {}
        if since is not None:
            options["since"] = since.isoformat()
        if until is not None:
            options["until"] = until.isoformat()
        if max_count is not None:
            options["max_count"] = max_count

        with self._inspecting("read commit log"):
            for commit in self.repo.iter_commits("HEAD", paths=paths or "", **options):
                yield self._raw_commit(commit)

    @staticmethod
    def _raw_commit(commit: git.Commit) -> RawCommit:
        message = commit.message
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        return RawCommit(
            sha=commit.hexsha,
            author_name=commit.author.name or "",
            author_email=commit.author.email or "",
            authored_at=commit.authored_datetime,
            message=message.strip(),
            parent_shas=tuple(parent.hexsha for parent in commit.parents),
        )

    def file_changes(self, raw: RawCommit, include_stats: bool = True) -> List[RawFileChange]:
        """
        Files changed by one commit, diffed against its first parent.

        The initial commit is diffed against the empty tree. Renames are
        detected; line stats are None for binary files.
        """
        revisions = [raw.parent_shas[0], raw.sha] if raw.parent_shas else ["--root", raw.sha]
        base = ["-r", "-M", "-z", "--no-commit-id"]

        with self._inspecting(f"diff commit {raw.sha[:8]}"):
            name_status = self.repo.git.diff_tree(*base, "--name-status", *revisions)
            numstat = self.repo.git.diff_tree(*base, "--numstat", *revisions) if include_stats else ""

        stats = _parse_numstat(numstat)
        changes = []
        for status, path, old_path in _parse_name_status(name_status):
            additions, deletions = stats.get(path, (None, None))
            changes.append(RawFileChange(
                path=path,
                status=status,
                additions=additions,
                deletions=deletions,
                old_path=old_path,
            ))
        return changes

    # ==================== POINT LOOKUPS ====================

    def working_tree_path(self, path: Union[str, Path]) -> str:
        """Path relative to the repository working tree, forward slashes."""
        absolute = Path(path) if Path(path).is_absolute() else self.path / path
        relative = os.path.relpath(os.path.realpath(absolute), os.path.realpath(self.working_dir))
        return Path(relative).as_posix()

    def file_history(self, path: Union[str, Path], max_count: int = 50) -> List[RawCommit]:
        """Commits that touched one file, most recent first."""
        return list(self.iter_commits(paths=[self.working_tree_path(path)], max_count=max_count))

    def blame(self, path: Union[str, Path]) -> Dict[int, BlameLine]:
        """
        Line-by-line authorship of a file at HEAD.

        Returns:
            Mapping of 1-based line number to BlameLine; empty when the file
            is not tracked or the repository has no commits
        """
        relative = self.working_tree_path(path)
        if not self.has_commits():
            return {}

        with self._inspecting(f"blame {relative}"):
            if not self.repo.git.ls_files("--", relative).strip():
                logger.debug(f"Not tracked, no blame: {relative}")
                return {}
            entries = self.repo.blame("HEAD", relative)

        lines: Dict[int, BlameLine] = {}
        line_number = 1
        for commit, chunk in entries or []:
            for _ in chunk:
                lines[line_number] = BlameLine(
                    line_number=line_number,
                    sha=commit.hexsha,
                    author_name=commit.author.name or "",
                    author_email=commit.author.email or "",
                    timestamp=commit.authored_datetime,
                )
                line_number += 1
        return lines

    def current_branch(self) -> Optional[str]:
        """Active branch name, or None on a detached HEAD."""
        with self._inspecting("read current branch"):
            try:
                return self.repo.active_branch.name
            except TypeError:
                return None

    def remote_url(self, name: str = "origin") -> Optional[str]:
        """Configured URL of a remote, or None when it does not exist."""
        with self._inspecting(f"read remote {name}"):
            try:
                return self.repo.remote(name).url
            except ValueError:
                return None


def _parse_name_status(output: str) -> List[Tuple[str, str, Optional[str]]]:
    """Parse `diff-tree -z --name-status` into (status, path, old_path)."""
    tokens = output.split("\0")
    entries = []
    i = 0
    while i < len(tokens):
        status = tokens[i].strip()
        if not status:
            i += 1
            continue
        if status[0] in ("R", "C"):
            if i + 2 >= len(tokens):
                break
            entries.append((status[0], tokens[i + 2], tokens[i + 1]))
            i += 3
        else:
            if i + 1 >= len(tokens):
                break
            entries.append((status[0], tokens[i + 1], None))
            i += 2
    return entries


def _parse_numstat(output: str) -> Dict[str, Tuple[Optional[int], Optional[int]]]:
    """Parse `diff-tree -z --numstat` into path -> (additions, deletions)."""
    tokens = output.split("\0")
    stats = {}
    i = 0
    while i < len(tokens):
        token = tokens[i]
        parts = token.split("\t")
        if len(parts) != 3:
            i += 1
            continue
        additions = int(parts[0]) if parts[0].isdigit() else None
        deletions = int(parts[1]) if parts[1].isdigit() else None
        if parts[2]:
            stats[parts[2]] = (additions, deletions)
            i += 1
        else:
            # rename: the old and new paths follow as separate tokens
            if i + 2 < len(tokens):
                stats[tokens[i + 2]] = (additions, deletions)
            i += 3
    return stats
