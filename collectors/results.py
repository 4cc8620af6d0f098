"""
Collector result records.

Every collector hands back the same envelope: a (possibly partially
populated) payload, the non-fatal diagnostics gathered while collecting, and
an overall status. The assembler and any report consumer only ever see these
values; nothing is raised across the collector boundary.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .dependency_graph import DependencyGraph
from .errors import DesignGraphError
from .models import (
    Commit,
    ComponentUsage,
    CycleGroup,
    Developer,
    FileImport,
    TokenUsage,
)


class CollectorStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


class DiagnosticSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class Diagnostic(BaseModel):
    """A non-fatal problem observed while collecting or assembling."""
    source: str = Field(..., description="Collector or assembler that produced it")
    code: str
    message: str
    path: Optional[str] = None
    line: Optional[int] = None
    severity: DiagnosticSeverity = DiagnosticSeverity.WARNING

    @classmethod
    def from_error(cls, source: str, error: DesignGraphError,
                   severity: DiagnosticSeverity = DiagnosticSeverity.WARNING) -> "Diagnostic":
        return cls(
            source=source,
            code=error.code,
            message=error.message,
            path=error.path,
            line=getattr(error, "line", None),
            severity=severity,
        )


class CollectorResult(BaseModel):
    collector: str
    status: CollectorStatus = CollectorStatus.COMPLETE
    diagnostics: List[Diagnostic] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status != CollectorStatus.FAILED

    def add_diagnostic(self, error: DesignGraphError,
                       severity: DiagnosticSeverity = DiagnosticSeverity.WARNING) -> Diagnostic:
        diagnostic = Diagnostic.from_error(self.collector, error, severity)
        self.diagnostics.append(diagnostic)
        return diagnostic

    def mark_failed(self, error: DesignGraphError) -> None:
        self.add_diagnostic(error, DiagnosticSeverity.ERROR)
        self.status = CollectorStatus.FAILED

    def settle_status(self, cancelled: bool = False) -> CollectorStatus:
        """Derive the final status once collection stopped."""
        if self.status == CollectorStatus.FAILED:
            return self.status
        if cancelled:
            self.diagnostics.append(Diagnostic(
                source=self.collector,
                code="cancelled",
                message="Collection cancelled before all inputs were scheduled",
            ))
        if self.diagnostics:
            self.status = CollectorStatus.PARTIAL
        return self.status


class GitHistoryResult(CollectorResult):
    collector: str = "git_history"
    repository_path: str = ""
    branch: Optional[str] = None
    remote_url: Optional[str] = None
    commits: List[Commit] = Field(default_factory=list)
    developers: List[Developer] = Field(default_factory=list)
    date_range: Optional[Tuple[datetime, datetime]] = None

    def touched_paths(self) -> List[str]:
        return sorted({change.path for commit in self.commits for change in commit.changes})


class UsageCollectorResult(CollectorResult):
    collector: str = "usages"
    scanned_files: List[str] = Field(default_factory=list)
    token_usages: List[TokenUsage] = Field(default_factory=list)
    hardcoded_values: List[TokenUsage] = Field(default_factory=list)
    component_usages: List[ComponentUsage] = Field(default_factory=list)

    def all_token_usages(self) -> List[TokenUsage]:
        return sorted(
            self.token_usages + self.hardcoded_values,
            key=lambda u: (u.path, u.line, u.column),
        )

    def stats(self) -> Dict[str, int]:
        return {
            "files_scanned": len(self.scanned_files),
            "token_usages": len(self.token_usages),
            "hardcoded_values": len(self.hardcoded_values),
            "component_usages": len(self.component_usages),
        }


class ImportCollectorResult(CollectorResult):
    collector: str = "imports"
    scanned_files: List[str] = Field(default_factory=list)
    imports: List[FileImport] = Field(default_factory=list)
    external_dependencies: List[str] = Field(default_factory=list)
    cycles: List[CycleGroup] = Field(default_factory=list)

    def internal_imports(self) -> List[FileImport]:
        return [imp for imp in self.imports if imp.is_internal]

    def dependency_graph(self) -> DependencyGraph:
        """Directed file graph built from the resolved-internal imports only."""
        return DependencyGraph.from_imports(self.imports, files=self.scanned_files)
