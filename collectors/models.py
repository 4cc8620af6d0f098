"""
Pydantic records produced by the collectors.

Every record is frozen once built: collectors assemble their values first and
construct the record last, so downstream consumers (the assembler, reports)
only ever see immutable facts.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChangeKind(str, Enum):
    """How a commit touched a file."""
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class UsageKind(str, Enum):
    """
    HARDCODED: a literal design value used directly (technical debt)
    TOKEN_REFERENCE: a recognized design token referenced symbolically
    """
    HARDCODED = "hardcoded"
    TOKEN_REFERENCE = "token-reference"


class ImportKind(str, Enum):
    DEFAULT = "default"
    NAMED = "named"
    NAMESPACE = "namespace"
    SIDE_EFFECT = "side-effect"
    DYNAMIC = "dynamic"


class ResolutionStatus(str, Enum):
    """Where an import specifier points. UNRESOLVED is a recorded fact, not an error."""
    RESOLVED_INTERNAL = "resolved-internal"
    RESOLVED_EXTERNAL = "resolved-external"
    UNRESOLVED = "unresolved"


class Record(BaseModel):
    """Base for collected facts."""
    model_config = ConfigDict(frozen=True, extra="forbid")


# ==================== HISTORY ====================

class FileChange(Record):
    path: str = Field(..., description="Canonical project-relative path")
    change_kind: ChangeKind
    commit_sha: str = Field(..., description="Owning commit (back-reference by hash)")
    additions: Optional[int] = Field(None, ge=0)
    deletions: Optional[int] = Field(None, ge=0)
    old_path: Optional[str] = Field(None, description="Previous path for renames")


class Commit(Record):
    sha: str
    author_key: str = Field(..., description="Identity key of the authoring Developer")
    author_name: str
    author_email: str
    timestamp: datetime
    message: str
    parent_shas: List[str] = Field(default_factory=list)
    changes: List[FileChange] = Field(default_factory=list)

    @property
    def short_sha(self) -> str:
        return self.sha[:8]


class Developer(Record):
    identity_key: str
    name: str
    email: str
    commit_count: int = Field(..., ge=1)
    first_seen_at: datetime
    last_seen_at: datetime


class BlameLine(Record):
    line_number: int = Field(..., ge=1)
    sha: str
    author_name: str
    author_email: str
    timestamp: datetime


def developer_identity_key(name: str, email: str) -> str:
    """Normalized identity used to deduplicate developers across commits."""
    clean_name = " ".join((name or "").split()).lower()
    clean_email = (email or "").strip().lower()
    return f"{clean_name} <{clean_email}>"


# ==================== USAGES ====================

class TokenUsage(Record):
    path: str
    line: int = Field(..., ge=1)
    column: int = Field(..., ge=1)
    token: str = Field(..., description="Normalized token name or literal value")
    usage_kind: UsageKind
    source: str = Field(..., description="css-var|scss-var|tailwind|js-token|hex-color|rgb-color|hsl-color|tailwind-arbitrary|spacing")
    raw: str
    context: str = ""

    @field_validator("token")
    @classmethod
    def token_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError("token cannot be empty")
        return v


class ComponentUsage(Record):
    path: str
    line: int = Field(..., ge=1)
    column: int = Field(..., ge=1)
    component: str
    enclosing_scope: Optional[str] = None
    props_used: List[str] = Field(default_factory=list)
    has_children: Optional[bool] = None
    context: str = ""


# ==================== IMPORTS ====================

class FileImport(Record):
    source_path: str
    specifier: str = Field(..., description="Raw specifier as written in the source")
    target: Optional[str] = Field(None, description="Internal path or external package name")
    import_kind: ImportKind
    imported_names: List[str] = Field(default_factory=list)
    resolution: ResolutionStatus
    line: int = Field(..., ge=1)

    @property
    def is_internal(self) -> bool:
        return self.resolution == ResolutionStatus.RESOLVED_INTERNAL


class CycleGroup(Record):
    """A circular dependency: a strongly connected component or a self-import."""
    members: List[str]
    path: List[str] = Field(..., description=(
        "Closed walk through every member, start not repeated; members revisited "
        "on overlapping loops appear more than once"
    ))
    self_import: bool = False

    def describe(self) -> str:
        return " -> ".join(self.path + self.path[:1])
