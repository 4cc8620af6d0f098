"""
Error taxonomy for the collection and assembly pipeline.

Repository-level errors (NotARepository, InspectionError) abort only the git
history collector. File-level errors (FileReadError, ParseError) are captured
as diagnostics on the collector result and never abort a collector.
AssemblyConflict is recorded by the assembler after it resolves the conflict.
"""

from typing import Optional


class DesignGraphError(Exception):
    """Base class for every error raised by the collectors and the assembler."""

    code = "error"

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} ({self.path})"
        return self.message


class NotARepository(DesignGraphError):
    """The path has no recognizable version-control metadata."""

    code = "not_a_repository"


class InspectionError(DesignGraphError):
    """Version-control metadata exists but could not be read."""

    code = "inspection_error"


class FileReadError(DesignGraphError):
    """A single file could not be read or decoded."""

    code = "file_read_error"


class ParseError(DesignGraphError):
    """A single file contains import syntax the import collector cannot handle."""

    code = "parse_error"

    def __init__(self, message: str, path: Optional[str] = None, line: Optional[int] = None):
        super().__init__(message, path)
        self.line = line


class AssemblyConflict(DesignGraphError):
    """Two inputs claimed incompatible data for the same node identity."""

    code = "assembly_conflict"

    def __init__(self, message: str, node_id: str, resolution: str):
        super().__init__(message)
        self.node_id = node_id
        self.resolution = resolution

    def __str__(self) -> str:
        return f"{self.message} [{self.node_id}] -> {self.resolution}"


class ConfigurationError(DesignGraphError):
    """Collector options were malformed or named an unknown option."""

    code = "configuration_error"
