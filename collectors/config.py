"""
Configuration for the collectors and the graph build.

Collector options are explicit pydantic structs. Both snake_case and the
camelCase names used by project config files (repositoryPath, commitLimit,
tokenPatterns, ...) are accepted; any other key is rejected with a
ConfigurationError rather than silently ignored.

Process-wide defaults (worker count, history window, database path, log
level) come from the environment, optionally loaded from a .env file.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE = [
    "**/node_modules/**",
    "**/dist/**",
    "**/build/**",
    "**/.next/**",
    "**/coverage/**",
]

USAGE_INCLUDE = [
    "**/*.ts", "**/*.tsx", "**/*.js", "**/*.jsx",
    "**/*.vue", "**/*.svelte",
    "**/*.css", "**/*.scss", "**/*.sass", "**/*.less",
]

IMPORT_INCLUDE = [
    "**/*.ts", "**/*.tsx", "**/*.js", "**/*.jsx", "**/*.mjs", "**/*.cjs",
]

DESIGN_SYSTEM_PATTERNS = [
    "**/*.tokens.json",
    "**/tokens.json",
    "**/tokens/**",
    "**/theme/**",
    "**/design-system/**",
    "**/*.css",
    "**/*.scss",
    "**/*.sass",
    "**/*.less",
    "**/tailwind.config.*",
    "**/components/**/*.tsx",
    "**/components/**/*.vue",
    "**/components/**/*.svelte",
]


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class OptionsModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    @classmethod
    def from_options(cls, options: Mapping[str, Any]):
        """Build from a loosely-typed options mapping; unknown keys are rejected."""
        try:
            return cls.model_validate(dict(options))
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigurationError(f"Invalid {cls.__name__} options: {problems}") from e


class PathFilterOptions(OptionsModel):
    include: List[str] = Field(default_factory=list, description="Candidate globs; empty matches everything")
    exclude: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE))

    @field_validator("include", "exclude")
    @classmethod
    def patterns_must_be_clean(cls, v):
        cleaned = []
        for pattern in v:
            pattern = pattern.strip().replace("\\", "/")
            if pattern and pattern not in cleaned:
                cleaned.append(pattern)
        return cleaned


class GitCollectorConfig(PathFilterOptions):
    repository_path: Path = Field(default_factory=Path.cwd)
    commit_limit: Optional[int] = Field(None, ge=1)
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    include_stats: bool = True
    design_system_patterns: List[str] = Field(default_factory=lambda: list(DESIGN_SYSTEM_PATTERNS))

    @field_validator("until")
    @classmethod
    def until_must_follow_since(cls, v, info):
        since = info.data.get("since")
        if v is not None and since is not None and v < since:
            raise ValueError("until must not be earlier than since")
        return v


class UsageCollectorConfig(PathFilterOptions):
    project_root: Path = Field(default_factory=Path.cwd)
    include: List[str] = Field(default_factory=lambda: list(USAGE_INCLUDE))
    token_patterns: List[str] = Field(default_factory=list)
    component_patterns: List[str] = Field(default_factory=list)
    max_workers: Optional[int] = Field(None, ge=1)


class ImportCollectorConfig(PathFilterOptions):
    project_root: Path = Field(default_factory=Path.cwd)
    include: List[str] = Field(default_factory=lambda: list(IMPORT_INCLUDE))
    path_aliases: Dict[str, str] = Field(default_factory=dict)
    max_workers: Optional[int] = Field(None, ge=1)


class GraphBuildConfig(OptionsModel):
    """
    The shared option set for one graph build.

    include/exclude apply to every collector; each collector falls back to
    its own default include set when none is given.
    """
    project_root: Path = Field(default_factory=Path.cwd)
    include: List[str] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=list)
    repository_path: Optional[Path] = None
    commit_limit: Optional[int] = Field(None, ge=1)
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    include_stats: bool = True
    design_system_only: bool = False
    design_system_patterns: Optional[List[str]] = None
    token_patterns: List[str] = Field(default_factory=list)
    component_patterns: List[str] = Field(default_factory=list)
    path_aliases: Dict[str, str] = Field(default_factory=dict)
    collect_history: bool = True
    collect_usages: bool = True
    collect_imports: bool = True
    max_workers: Optional[int] = Field(None, ge=1)

    def _filters(self, default_include: List[str]) -> Dict[str, List[str]]:
        return {
            "include": list(self.include) or list(default_include),
            "exclude": list(self.exclude) or list(DEFAULT_EXCLUDE),
        }

    def git_config(self) -> GitCollectorConfig:
        extra = {}
        if self.design_system_patterns is not None:
            extra["design_system_patterns"] = self.design_system_patterns
        return GitCollectorConfig(
            repository_path=self.repository_path or self.project_root,
            commit_limit=self.commit_limit if self.commit_limit is not None else get_settings().commit_limit,
            since=self.since,
            until=self.until,
            include_stats=self.include_stats,
            **self._filters([]),
            **extra,
        )

    def usage_config(self) -> UsageCollectorConfig:
        return UsageCollectorConfig(
            project_root=self.project_root,
            token_patterns=self.token_patterns,
            component_patterns=self.component_patterns,
            max_workers=self.max_workers,
            **self._filters(USAGE_INCLUDE),
        )

    def import_config(self) -> ImportCollectorConfig:
        return ImportCollectorConfig(
            project_root=self.project_root,
            path_aliases=self.path_aliases,
            max_workers=self.max_workers,
            **self._filters(IMPORT_INCLUDE),
        )


class RuntimeSettings:
    """Process-wide defaults read from the environment (and .env when present)"""

    def __init__(self):
        load_dotenv()
        self.max_workers = self._int_env("DESIGN_GRAPH_MAX_WORKERS", 8)
        self.commit_limit = self._int_env("DESIGN_GRAPH_COMMIT_LIMIT", 0) or None
        self.db_path = os.getenv("DESIGN_GRAPH_DB_PATH", "design_graph.db")
        self.log_level = os.getenv("DESIGN_GRAPH_LOG_LEVEL", "INFO").upper()

        self._validate_config()

    @staticmethod
    def _int_env(name: str, default: int) -> int:
        raw = os.getenv(name)
        if raw is None or raw.strip() == "":
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Invalid integer for {name}: '{raw}', using {default}")
            return default

    def _validate_config(self) -> None:
        if self.max_workers < 1 or self.max_workers > 64:
            logger.warning(f"Invalid max_workers '{self.max_workers}', using 8")
            self.max_workers = 8

        if self.commit_limit is not None and self.commit_limit < 0:
            logger.warning(f"Invalid commit_limit '{self.commit_limit}', ignoring")
            self.commit_limit = None

        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.warning(f"Invalid log level '{self.log_level}', using INFO")
            self.log_level = "INFO"


_settings = None


def get_settings() -> RuntimeSettings:
    """Get singleton RuntimeSettings instance."""
    global _settings
    if _settings is None:
        _settings = RuntimeSettings()
    return _settings


def configure_logging(level: Optional[str] = None) -> None:
    """Apply a basic log format; level defaults to DESIGN_GRAPH_LOG_LEVEL."""
    logging.basicConfig(
        level=level or get_settings().log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
