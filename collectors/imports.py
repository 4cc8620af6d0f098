"""
Import Collector

Extracts module-level imports from JavaScript/TypeScript sources:

    import Button from './Button'              default
    import { a, b as c } from './x'            named
    import * as icons from './icons'           namespace
    import Card, { CardProps } from './Card'   default + named
    import type { Theme } from './theme'       named
    import './styles.css'                      side-effect
    const page = await import('./page')        dynamic
    const x = require('./x')                   default (CommonJS)
    export { Button } from './Button'          named re-export
    export * from './tokens'                   namespace re-export

Specifiers are resolved against the project: relative, absolute and aliased
specifiers become resolved-internal (canonical target path) or unresolved,
bare specifiers become resolved-external with their package name.
"""

import logging
import os
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from storage.path_manager import PathManager

from .config import ImportCollectorConfig, get_settings
from .errors import FileReadError, ParseError
from .file_discovery import FileDiscoveryEngine, PathFilter
from .models import FileImport, ImportKind, ResolutionStatus
from .parallel import scan_files
from .results import ImportCollectorResult

logger = logging.getLogger(__name__)

# Probed in order when a specifier has no exact match
RESOLVE_SUFFIXES = [
    "", ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".vue", ".svelte",
    "/index.ts", "/index.tsx", "/index.js", "/index.jsx",
]

IDENTIFIER = r"[A-Za-z_$][\w$]*"

# ==================== PATTERNS ====================

IMPORT_FROM_PATTERN = re.compile(
    r"(?<![\w$.])import\s+(?:type\s+)?(?P<clause>[\w$*{}\s,]+?)\s*\bfrom\s*"
    r"(?P<quote>['\"])(?P<spec>[^'\"\n]+)(?P=quote)"
)
SIDE_EFFECT_PATTERN = re.compile(r"(?<![\w$.])import\s*(?P<quote>['\"])(?P<spec>[^'\"\n]+)(?P=quote)")
DYNAMIC_PATTERN = re.compile(r"(?<![\w$.])import\s*\(\s*(?P<quote>['\"`])(?P<spec>[^'\"`\n]+)(?P=quote)\s*\)")
REQUIRE_PATTERN = re.compile(
    r"(?:\b(?:const|let|var)\s+(?P<binding>\{[^}]*\}|" + IDENTIFIER + r")\s*=\s*)?"
    r"(?<![\w$.])require\s*\(\s*(?P<quote>['\"])(?P<spec>[^'\"\n]+)(?P=quote)\s*\)"
)
REEXPORT_NAMED_PATTERN = re.compile(
    r"(?<![\w$.])export\s+(?:type\s+)?\{(?P<names>[^}]*)\}\s*from\s*(?P<quote>['\"])(?P<spec>[^'\"\n]+)(?P=quote)"
)
REEXPORT_ALL_PATTERN = re.compile(
    r"(?<![\w$.])export\s*\*\s*(?:as\s+(?P<alias>" + IDENTIFIER + r")\s+)?from\s*"
    r"(?P<quote>['\"])(?P<spec>[^'\"\n]+)(?P=quote)"
)
# An import statement start; anything matching this outside a parsed span is reported
IMPORT_STATEMENT_START = re.compile(r"^[ \t]*import(?![\w$])(?!\s*[(.])", re.MULTILINE)

# Comments, with string literals matched first so a "/*" or "//" inside quotes
# never opens one. Template literals may span lines; quoted strings may not.
COMMENT_OR_STRING = re.compile(
    r"(?P<string>'(?:\\.|[^'\\\n])*'|\"(?:\\.|[^\"\\\n])*\"|`(?:\\.|[^`\\])*`)"
    r"|(?P<comment>/\*.*?\*/|(?:^|(?<=[\s;{}),]))//[^\n]*)",
    re.DOTALL | re.MULTILINE,
)


def strip_comments(content: str) -> str:
    """Blank out comments while keeping every offset, line break and string literal in place."""
    def blank(match):
        if match.group("comment") is None:
            return match.group(0)
        return re.sub(r"[^\n]", " ", match.group(0))

    return COMMENT_OR_STRING.sub(blank, content)


def package_name(specifier: str) -> str:
    """`@scope/pkg/sub` -> `@scope/pkg`, `pkg/sub` -> `pkg`."""
    parts = specifier.split("/")
    if specifier.startswith("@") and len(parts) > 1:
        return "/".join(parts[:2])
    return parts[0]


def _split_names(names: str) -> List[str]:
    """Names of a `{ a, b as c, type D }` list, as exported by the target."""
    result = []
    for entry in names.split(","):
        entry = entry.strip()
        if entry.startswith("type "):
            entry = entry[5:].strip()
        entry = re.split(r"\s+as\s+", entry)[0].strip()
        if entry:
            result.append(entry)
    return result


def _classify_clause(clause: str) -> Tuple[ImportKind, List[str]]:
    clause = clause.strip()
    if clause.startswith("*"):
        alias = re.match(r"\*\s*as\s+(" + IDENTIFIER + ")", clause)
        return ImportKind.NAMESPACE, [alias.group(1)] if alias else ["*"]

    default_name, _, rest = clause.partition(",") if not clause.startswith("{") else ("", "", clause)
    default_name = default_name.strip()
    rest = rest.strip()
    if rest.startswith("{"):
        names = _split_names(rest.strip("{} "))
        return ImportKind.NAMED, ([default_name] if default_name else []) + names
    if rest.startswith("*"):
        alias = re.match(r"\*\s*as\s+(" + IDENTIFIER + ")", rest)
        return ImportKind.NAMESPACE, [default_name, alias.group(1) if alias else "*"]
    return ImportKind.DEFAULT, [default_name]


@dataclass
class _ParsedImport:
    specifier: str
    import_kind: ImportKind
    imported_names: List[str]
    line: int


@dataclass
class _FileScan:
    imports: List[FileImport] = field(default_factory=list)
    errors: List[ParseError] = field(default_factory=list)
    read_error: Optional[FileReadError] = None


class ImportCollector:
    """Collects import relationships under one project root."""

    name = "imports"

    def __init__(self, config: ImportCollectorConfig):
        self.config = config
        self.project_root = Path(config.project_root)
        self.path_manager = PathManager(self.project_root)
        # Longest alias first so "@/components" wins over "@"
        self.aliases = sorted(config.path_aliases.items(), key=lambda item: -len(item[0]))

    def collect(self, cancel_event: Optional[threading.Event] = None) -> ImportCollectorResult:
        result = ImportCollectorResult()
        path_filter = PathFilter(self.config.include, self.config.exclude)
        files = FileDiscoveryEngine(self.project_root, path_filter).discover_files()
        logger.info(f"Scanning {len(files)} files for imports under {self.project_root}")

        max_workers = self.config.max_workers or get_settings().max_workers
        scanned, cancelled = scan_files(files, self._scan_file, max_workers, cancel_event)

        external = set()
        for path, scan in scanned:
            if scan.read_error is not None:
                result.add_diagnostic(scan.read_error)
                continue
            result.scanned_files.append(path)
            for error in scan.errors:
                result.add_diagnostic(error)
            for file_import in scan.imports:
                result.imports.append(file_import)
                if file_import.resolution == ResolutionStatus.RESOLVED_EXTERNAL:
                    external.add(file_import.target)

        result.external_dependencies = sorted(external)
        result.cycles = result.dependency_graph().find_cycles()
        result.settle_status(cancelled)

        internal = len(result.internal_imports())
        logger.info(
            f"Import scan complete: {len(result.scanned_files)} files, {len(result.imports)} imports "
            f"({internal} internal), {len(result.external_dependencies)} external packages, "
            f"{len(result.cycles)} cycles ({result.status.value})"
        )
        return result

    # ==================== PARSING ====================

    def _scan_file(self, path: str) -> _FileScan:
        absolute = self.path_manager.to_absolute(path)
        try:
            content = absolute.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            logger.warning(f"Skipping undecodable file {path}: {e.reason}")
            return _FileScan(read_error=FileReadError(f"Not valid UTF-8 ({e.reason})", path))
        except OSError as e:
            logger.warning(f"Skipping unreadable file {path}: {e}")
            return _FileScan(read_error=FileReadError(f"Could not read file: {e.strerror or e}", path))

        parsed, errors = self.parse_imports(content, path)
        scan = _FileScan(errors=errors)
        for entry in parsed:
            resolution, target = self.resolve(path, entry.specifier)
            scan.imports.append(FileImport(
                source_path=path,
                specifier=entry.specifier,
                target=target,
                import_kind=entry.import_kind,
                imported_names=entry.imported_names,
                resolution=resolution,
                line=entry.line,
            ))
        logger.debug(f"{path}: {len(scan.imports)} imports, {len(errors)} parse errors")
        return scan

    def parse_imports(self, content: str, path: str = "<memory>") -> Tuple[List[_ParsedImport], List[ParseError]]:
        """
        Find every import-like statement in a source text.

        Returns:
            Tuple of (imports ordered by position, parse errors for `import`
            statements none of the patterns could read)
        """
        code = strip_comments(content)
        line_starts = [0] + [i + 1 for i, ch in enumerate(code) if ch == "\n"]

        def line_of(offset: int) -> int:
            low, high = 0, len(line_starts) - 1
            while low < high:
                mid = (low + high + 1) // 2
                if line_starts[mid] <= offset:
                    low = mid
                else:
                    high = mid - 1
            return low + 1

        found: List[Tuple[int, _ParsedImport]] = []
        spans: List[Tuple[int, int]] = []

        def record(match, kind: ImportKind, names: List[str]) -> None:
            spans.append(match.span())
            found.append((match.start(), _ParsedImport(
                specifier=match.group("spec").strip(),
                import_kind=kind,
                imported_names=names,
                line=line_of(match.start()),
            )))

        for match in IMPORT_FROM_PATTERN.finditer(code):
            kind, names = _classify_clause(match.group("clause"))
            record(match, kind, names)
        for match in SIDE_EFFECT_PATTERN.finditer(code):
            record(match, ImportKind.SIDE_EFFECT, [])
        for match in DYNAMIC_PATTERN.finditer(code):
            record(match, ImportKind.DYNAMIC, ["*"])
        for match in REQUIRE_PATTERN.finditer(code):
            binding = (match.group("binding") or "").strip()
            if binding.startswith("{"):
                record(match, ImportKind.NAMED, _split_names(binding.strip("{} ").replace(":", " as ")))
            elif binding:
                record(match, ImportKind.DEFAULT, [binding])
            else:
                record(match, ImportKind.SIDE_EFFECT, [])
        for match in REEXPORT_NAMED_PATTERN.finditer(code):
            record(match, ImportKind.NAMED, _split_names(match.group("names")))
        for match in REEXPORT_ALL_PATTERN.finditer(code):
            record(match, ImportKind.NAMESPACE, [match.group("alias") or "*"])

        errors = []
        for match in IMPORT_STATEMENT_START.finditer(code):
            start = match.end() - len("import")
            if any(low <= start < high for low, high in spans):
                continue
            line = line_of(start)
            snippet = code[start:].split("\n", 1)[0].strip()
            errors.append(ParseError(f"Unrecognized import statement: {snippet[:80]}", path, line))

        found.sort(key=lambda item: item[0])
        return [entry for _, entry in found], errors

    # ==================== RESOLUTION ====================

    def resolve(self, source_path: str, specifier: str) -> Tuple[ResolutionStatus, Optional[str]]:
        """
        Resolve one specifier written in `source_path`.

        Returns:
            Tuple of (resolution, target) where target is the canonical
            internal path, the external package name, or None
        """
        base = self._internal_base(source_path, specifier)
        if base is None:
            return ResolutionStatus.RESOLVED_EXTERNAL, package_name(specifier)

        for suffix in RESOLVE_SUFFIXES:
            candidate = base + suffix
            if os.path.isfile(candidate) and self.path_manager.is_inside_project(candidate):
                return ResolutionStatus.RESOLVED_INTERNAL, self.path_manager.normalize_for_storage(candidate)

        logger.debug(f"Unresolved import '{specifier}' in {source_path}")
        return ResolutionStatus.UNRESOLVED, None

    def _internal_base(self, source_path: str, specifier: str) -> Optional[str]:
        """Absolute filesystem base for project specifiers, None for packages."""
        specifier = specifier.split("?", 1)[0]
        if specifier.startswith("."):
            source_dir = self.path_manager.to_absolute(source_path).parent
            return os.path.normpath(os.path.join(source_dir, specifier))
        if specifier.startswith("/"):
            return os.path.normpath(os.path.join(self.project_root, specifier.lstrip("/")))

        for alias, directory in self.aliases:
            alias = alias.rstrip("*").rstrip("/")
            if specifier == alias or specifier.startswith(alias + "/"):
                remainder = specifier[len(alias):].lstrip("/")
                target_dir = os.path.join(self.project_root, directory.rstrip("*").rstrip("/"))
                return os.path.normpath(os.path.join(target_dir, remainder))
        return None
