"""
Git History Collector

Turns the repository inspector's commit log into Commit / Developer /
FileChange records restricted to the configured paths. The design-system
variant runs the same algorithm with an extra path predicate.

Repository-level failures never raise out of collect(): they come back as a
failed GitHistoryResult so the rest of the graph build can go on without
history data.
"""

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from storage.path_manager import PathManager

from .config import GitCollectorConfig
from .errors import InspectionError, NotARepository
from .file_discovery import PathFilter, path_matches_glob
from .models import BlameLine, ChangeKind, Commit, Developer, FileChange, developer_identity_key
from .repository_inspector import RawCommit, RepositoryInspector
from .results import DiagnosticSeverity, GitHistoryResult

logger = logging.getLogger(__name__)

STATUS_KINDS = {
    "A": ChangeKind.ADDED,
    "C": ChangeKind.ADDED,
    "M": ChangeKind.MODIFIED,
    "T": ChangeKind.MODIFIED,
    "D": ChangeKind.DELETED,
    "R": ChangeKind.RENAMED,
}


@dataclass
class _DeveloperTally:
    name: str
    email: str
    commit_count: int
    first_seen_at: datetime
    last_seen_at: datetime

    def observe(self, timestamp: datetime) -> None:
        self.commit_count += 1
        self.first_seen_at = min(self.first_seen_at, timestamp)
        self.last_seen_at = max(self.last_seen_at, timestamp)


class GitHistoryCollector:
    """Collects normalized commit history for one repository."""

    name = "git_history"

    def __init__(self, config: GitCollectorConfig,
                 inspector_factory: Callable[..., RepositoryInspector] = RepositoryInspector):
        self.config = config
        self.inspector_factory = inspector_factory
        self.path_manager = PathManager(config.repository_path)
        self._prefixes: Dict[Path, str] = {}

    # ==================== COLLECTION ====================

    def collect(self, cancel_event: Optional[threading.Event] = None) -> GitHistoryResult:
        """Collect history for every path admitted by include/exclude."""
        path_filter = PathFilter(self.config.include, self.config.exclude)
        return self._collect(path_filter, cancel_event)

    def collect_design_system(self, cancel_event: Optional[threading.Event] = None) -> GitHistoryResult:
        """Collect history restricted to design-system sources."""
        patterns = list(self.config.design_system_patterns)

        def is_design_system_path(path: str) -> bool:
            return any(path_matches_glob(path, pattern) for pattern in patterns)

        path_filter = PathFilter(self.config.include, self.config.exclude, is_design_system_path)
        return self._collect(path_filter, cancel_event)

    def _collect(self, path_filter: PathFilter,
                 cancel_event: Optional[threading.Event]) -> GitHistoryResult:
        result = GitHistoryResult(repository_path=str(self.config.repository_path))
        logger.info(f"Collecting git history from {self.config.repository_path}")

        try:
            inspector = self.inspector_factory(self.config.repository_path)
            result.branch = inspector.current_branch()
            result.remote_url = inspector.remote_url()
        except (NotARepository, InspectionError) as e:
            logger.warning(f"Git history unavailable: {e}")
            result.mark_failed(e)
            return result

        limit = self.config.commit_limit
        prefix = self._project_prefix(inspector)
        # A project below the working tree only sees commits touching its subtree
        log_paths = [prefix.rstrip("/")] if prefix else None
        # Without a path filter every commit is kept, so git can apply the limit itself
        git_limit = None if path_filter.is_restrictive else limit

        commits: List[Commit] = []
        developers: Dict[str, _DeveloperTally] = {}
        cancelled = False

        try:
            for raw in inspector.iter_commits(paths=log_paths, since=self.config.since, until=self.config.until,
                                              max_count=git_limit):
                if limit is not None and len(commits) >= limit:
                    break
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    break

                commit = self._build_commit(inspector, raw, path_filter, result)
                if commit is None:
                    continue

                commits.append(commit)
                tally = developers.get(commit.author_key)
                if tally is None:
                    developers[commit.author_key] = _DeveloperTally(
                        name=commit.author_name,
                        email=commit.author_email,
                        commit_count=1,
                        first_seen_at=commit.timestamp,
                        last_seen_at=commit.timestamp,
                    )
                else:
                    tally.observe(commit.timestamp)
        except InspectionError as e:
            logger.error(f"Commit log read failed after {len(commits)} commits: {e}")
            if commits:
                result.add_diagnostic(e, DiagnosticSeverity.ERROR)
            else:
                result.mark_failed(e)
                return result

        result.commits = commits
        result.developers = [
            Developer(
                identity_key=key,
                name=tally.name,
                email=tally.email,
                commit_count=tally.commit_count,
                first_seen_at=tally.first_seen_at,
                last_seen_at=tally.last_seen_at,
            )
            for key, tally in sorted(developers.items())
        ]
        if commits:
            timestamps = [c.timestamp for c in commits]
            result.date_range = (min(timestamps), max(timestamps))

        result.settle_status(cancelled)
        logger.info(
            f"Git history collected: {len(result.commits)} commits, "
            f"{len(result.developers)} developers ({result.status.value})"
        )
        return result

    def _build_commit(self, inspector: RepositoryInspector, raw: RawCommit,
                      path_filter: PathFilter, result: GitHistoryResult) -> Optional[Commit]:
        try:
            raw_changes = inspector.file_changes(raw, include_stats=self.config.include_stats)
        except InspectionError as e:
            logger.warning(f"Skipping commit {raw.sha[:8]}: {e}")
            result.add_diagnostic(e)
            return None

        changes = []
        for raw_change in raw_changes:
            path = self._canonical(inspector, raw_change.path)
            if path is None or not path_filter.matches(path):
                continue
            changes.append(FileChange(
                path=path,
                change_kind=STATUS_KINDS.get(raw_change.status, ChangeKind.MODIFIED),
                commit_sha=raw.sha,
                additions=raw_change.additions,
                deletions=raw_change.deletions,
                old_path=self._canonical(inspector, raw_change.old_path) if raw_change.old_path else None,
            ))

        if path_filter.is_restrictive and not changes:
            return None

        return Commit(
            sha=raw.sha,
            author_key=developer_identity_key(raw.author_name, raw.author_email),
            author_name=raw.author_name,
            author_email=raw.author_email,
            timestamp=raw.authored_at,
            message=raw.message,
            parent_shas=list(raw.parent_shas),
            changes=changes,
        )

    def _canonical(self, inspector: RepositoryInspector, working_tree_path: str) -> Optional[str]:
        """Project-relative key for a working-tree path; None when outside the project."""
        canonical = self.path_manager.normalize_for_storage(working_tree_path)
        prefix = self._project_prefix(inspector)
        if prefix:
            if not canonical.startswith(prefix):
                return None
            canonical = canonical[len(prefix):]
        return canonical or None

    def _project_prefix(self, inspector: RepositoryInspector) -> str:
        """Working-tree-relative directory of the project root ("" at the top level)."""
        cached = self._prefixes.get(inspector.working_dir)
        if cached is not None:
            return cached
        relative = os.path.relpath(
            os.path.realpath(self.config.repository_path),
            os.path.realpath(inspector.working_dir),
        )
        relative = relative.replace("\\", "/")
        prefix = "" if relative == "." else relative + "/"
        self._prefixes[inspector.working_dir] = prefix
        return prefix

    # ==================== POINT LOOKUPS ====================

    def file_history(self, path: str, max_count: int = 50) -> List[Commit]:
        """
        Commits that touched one file, most recent first.

        Raises:
            NotARepository, InspectionError: when the repository cannot be read
        """
        inspector = self.inspector_factory(self.config.repository_path)
        canonical = self.path_manager.normalize_for_storage(path)
        only_this_file = PathFilter(predicate=lambda p: p == canonical)

        scratch = GitHistoryResult(repository_path=str(self.config.repository_path))
        commits = []
        for raw in inspector.file_history(self.path_manager.to_absolute(canonical), max_count=max_count):
            commit = self._build_commit(inspector, raw, only_this_file, scratch)
            if commit is not None:
                commits.append(commit)
        return commits

    def file_blame(self, path: str) -> Dict[int, BlameLine]:
        """
        Line-by-line authorship of a file at HEAD.

        Raises:
            NotARepository, InspectionError: when the repository cannot be read
        """
        inspector = self.inspector_factory(self.config.repository_path)
        canonical = self.path_manager.normalize_for_storage(path)
        return inspector.blame(self.path_manager.to_absolute(canonical))
