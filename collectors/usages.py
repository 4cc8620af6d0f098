"""
Usage Collector

Scans style and source files line by line for design-token usage:

- hardcoded values: hex/rgb/hsl colors, Tailwind arbitrary values and
  spacing literals on stylesheet spacing declarations
- token references: CSS custom properties, SCSS variables, `tokens.` /
  `theme.` member paths and semantic Tailwind utilities
- component invocations: PascalCase JSX tags with their props

Every record carries an exact (path, line, column). A file that cannot be
read or decoded is skipped with a FileReadError diagnostic; the rest of the
scan goes on.
"""

import fnmatch
import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from storage.path_manager import PathManager

from .config import UsageCollectorConfig, get_settings
from .errors import FileReadError
from .file_discovery import FileDiscoveryEngine, PathFilter
from .models import ComponentUsage, TokenUsage, UsageKind
from .parallel import scan_files
from .results import UsageCollectorResult

logger = logging.getLogger(__name__)

STYLESHEET_SUFFIXES = {".css", ".scss", ".sass", ".less"}
SCSS_SUFFIXES = {".scss", ".sass"}
SCRIPT_SUFFIXES = {".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".vue", ".svelte"}
MARKUP_SUFFIXES = {".tsx", ".jsx", ".vue", ".svelte"}

# ==================== PATTERNS ====================

# Hardcoded values
HEX_COLOR_PATTERN = re.compile(r"(?<![&\w.])#(?:[0-9a-fA-F]{8}|[0-9a-fA-F]{6}|[0-9a-fA-F]{3,4})\b")
RGB_PATTERN = re.compile(
    r"\brgba?\(\s*\d+%?\s*,\s*\d+%?\s*,\s*\d+%?(?:\s*,\s*[\d.]+%?)?\s*\)"
)
HSL_PATTERN = re.compile(
    r"\bhsla?\(\s*\d+(?:deg)?\s*,\s*[\d.]+%\s*,\s*[\d.]+%(?:\s*,\s*[\d.]+%?)?\s*\)"
)
TAILWIND_ARBITRARY_PATTERN = re.compile(
    r"(?<![\w-])(?:bg|text|border|ring|shadow|fill|stroke)-\[([^\]\s]+)\]"
)
SPACING_DECLARATION = re.compile(
    r"^\s*(?:margin|padding|gap|row-gap|column-gap|inset|top|right|bottom|left|"
    r"margin-[a-z-]+|padding-[a-z-]+|inset-[a-z-]+)\s*:",
    re.IGNORECASE,
)
SPACING_VALUE_PATTERN = re.compile(r"(?<![\w.#-])-?(?:\d+\.\d+|\.\d+|\d+)(?:px|rem|em)\b")

# Token references
CSS_VAR_PATTERN = re.compile(r"var\(\s*--([a-zA-Z0-9_-]+)")
SCSS_VAR_PATTERN = re.compile(r"(?<![\w$])\$([a-zA-Z][\w-]*)(?![\w-])(?!\s*:)")
JS_TOKEN_PATTERN = re.compile(
    r"(?<![\w$.])(?:tokens|theme)\.([A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)*)"
)
TAILWIND_SEMANTIC_PATTERN = re.compile(
    r"(?<![\w\-\[/.])(?:bg|text|border|ring|fill|stroke|outline|divide|placeholder|"
    r"accent|caret|decoration|shadow|from|via|to)-([a-z][a-z0-9]*(?:-[a-z0-9]+)*)(?:/\d+)?(?![\w\-\[])"
)

# Components
JSX_COMPONENT_PATTERN = re.compile(r"(?<![\w$.])<([A-Z][A-Za-z0-9]*(?:\.[A-Za-z0-9]+)*)(?=[\s/>]|$)")
SKIP_COMPONENTS = {"Fragment", "React", "Suspense", "StrictMode", "Provider", "Consumer"}
IGNORED_PROPS = {"className", "style", "key", "ref"}
PROP_NAME_PATTERN = re.compile(r"(?:^|\s)([A-Za-z_][\w-]*)(?==|\s|/|$)")

SCOPE_PATTERNS = [
    re.compile(r"^(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s*\*?\s*([A-Za-z_$][\w$]*)"),
    re.compile(r"^(?:export\s+)?(?:default\s+)?(?:abstract\s+)?class\s+([A-Za-z_$][\w$]*)"),
    re.compile(
        r"^(?:export\s+)?(?:const|let|var)\s+([A-Za-z_$][\w$]*)[^=]*=\s*(?:async\s*)?"
        r"(?:\(|[A-Za-z_$][\w$]*\s*=>|function\b|(?:React\.)?(?:forwardRef|memo)\b)"
    ),
]

# An unclosed /* runs to the end of the line; // after ":" or "(" is a URL
COMMENT_OR_STRING = re.compile(
    r"(?P<string>'(?:\\.|[^'\\])*'|\"(?:\\.|[^\"\\])*\"|`(?:\\.|[^`\\])*`)"
    r"|(?P<comment>/\*.*?(?:\*/|$)|(?<![:\\(])//.*)"
)


def normalize_token_name(name: str) -> str:
    """Token identity used for taxonomy matching: no --, $ or tw- prefix, lower-cased."""
    name = name.strip()
    if name.startswith("--"):
        name = name[2:]
    elif name.startswith("$"):
        name = name[1:]
    if name.startswith("tw-"):
        name = name[3:]
    return name.lower()


class Taxonomy:
    """fnmatch-style name patterns; an empty taxonomy recognizes nothing and admits everything."""

    def __init__(self, patterns: Iterable[str], normalize=None):
        self.normalize = normalize or (lambda name: name)
        self.patterns = [self.normalize(p) for p in patterns if p and p.strip()]

    def __bool__(self) -> bool:
        return bool(self.patterns)

    def recognizes(self, name: str) -> bool:
        name = self.normalize(name)
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self.patterns)

    def admits(self, name: str) -> bool:
        return not self.patterns or self.recognizes(name)


def _comment_spans(line: str) -> List[Tuple[int, int]]:
    """Comment ranges on one line; string literals are skipped so quoted markers never count."""
    return [match.span() for match in COMMENT_OR_STRING.finditer(line) if match.group("comment") is not None]


def _in_comment(line: str, index: int) -> bool:
    """True when position `index` of the line is after // or inside /* */."""
    return any(start <= index < end for start, end in _comment_spans(line))


@dataclass
class _FileScan:
    token_usages: List[TokenUsage] = field(default_factory=list)
    hardcoded_values: List[TokenUsage] = field(default_factory=list)
    component_usages: List[ComponentUsage] = field(default_factory=list)
    error: Optional[FileReadError] = None


class UsageCollector:
    """Collects token and component usages under one project root."""

    name = "usages"

    def __init__(self, config: UsageCollectorConfig):
        self.config = config
        self.project_root = Path(config.project_root)
        self.path_manager = PathManager(self.project_root)
        self.tokens = Taxonomy(config.token_patterns, normalize_token_name)
        self.components = Taxonomy(config.component_patterns)

    def collect(self, cancel_event: Optional[threading.Event] = None) -> UsageCollectorResult:
        """Scan every matching file; results are ordered by path, line and column."""
        result = UsageCollectorResult()
        path_filter = PathFilter(self.config.include, self.config.exclude)
        files = FileDiscoveryEngine(self.project_root, path_filter).discover_files()
        logger.info(f"Scanning {len(files)} files for design usages under {self.project_root}")

        max_workers = self.config.max_workers or get_settings().max_workers
        scanned, cancelled = scan_files(files, self._scan_file, max_workers, cancel_event)

        for path, scan in scanned:
            if scan.error is not None:
                result.add_diagnostic(scan.error)
                continue
            result.scanned_files.append(path)
            result.token_usages.extend(scan.token_usages)
            result.hardcoded_values.extend(scan.hardcoded_values)
            result.component_usages.extend(scan.component_usages)

        result.settle_status(cancelled)
        stats = result.stats()
        logger.info(
            f"Usage scan complete: {stats['files_scanned']} files, {stats['token_usages']} token "
            f"references, {stats['hardcoded_values']} hardcoded values, "
            f"{stats['component_usages']} component usages ({result.status.value})"
        )
        return result

    # ==================== SPECIALIZED LOOKUPS ====================

    def find_hardcoded_colors(self, cancel_event: Optional[threading.Event] = None) -> List[TokenUsage]:
        color_prefixes = ("#", "rgb", "hsl")
        return [
            usage for usage in self.collect(cancel_event).hardcoded_values
            if usage.source in ("hex-color", "rgb-color", "hsl-color")
            or (usage.source == "tailwind-arbitrary" and usage.token.startswith(color_prefixes))
        ]

    def find_css_variable_usages(self, cancel_event: Optional[threading.Event] = None) -> List[TokenUsage]:
        return [u for u in self.collect(cancel_event).token_usages if u.source == "css-var"]

    def find_token_usages(self, token_name: str,
                          cancel_event: Optional[threading.Event] = None) -> List[TokenUsage]:
        """References to one token; `token_name` may carry a --, $ or tw- prefix."""
        narrowed = self.config.model_copy(update={"token_patterns": [token_name]})
        return UsageCollector(narrowed).collect(cancel_event).token_usages

    def find_component_usages(self, component_name: str,
                              cancel_event: Optional[threading.Event] = None) -> List[ComponentUsage]:
        narrowed = self.config.model_copy(update={"component_patterns": [component_name]})
        return UsageCollector(narrowed).collect(cancel_event).component_usages

    # ==================== PER-FILE SCAN ====================

    def _scan_file(self, path: str) -> _FileScan:
        absolute = self.path_manager.to_absolute(path)
        try:
            content = absolute.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            logger.warning(f"Skipping undecodable file {path}: {e.reason}")
            return _FileScan(error=FileReadError(f"Not valid UTF-8 ({e.reason})", path))
        except OSError as e:
            logger.warning(f"Skipping unreadable file {path}: {e}")
            return _FileScan(error=FileReadError(f"Could not read file: {e.strerror or e}", path))

        suffix = absolute.suffix.lower()
        lines = content.splitlines()
        scan = _FileScan()
        scopes = self._enclosing_scopes(lines) if suffix in MARKUP_SUFFIXES else []

        for index, line in enumerate(lines):
            line_number = index + 1
            scan.hardcoded_values.extend(self._hardcoded_on_line(path, suffix, line_number, line))
            scan.token_usages.extend(self._references_on_line(path, suffix, line_number, line))
            if suffix in MARKUP_SUFFIXES:
                scan.component_usages.extend(
                    self._components_on_line(path, line_number, line, scopes[index])
                )

        def position(usage):
            return (usage.line, usage.column, usage.source)

        scan.hardcoded_values.sort(key=position)
        scan.token_usages.sort(key=position)
        logger.debug(
            f"{path}: {len(scan.token_usages)} references, {len(scan.hardcoded_values)} hardcoded, "
            f"{len(scan.component_usages)} components"
        )
        return scan

    def _usage(self, path: str, line_number: int, line: str, start: int, token: str,
               kind: UsageKind, source: str, raw: str) -> TokenUsage:
        return TokenUsage(
            path=path,
            line=line_number,
            column=start + 1,
            token=token,
            usage_kind=kind,
            source=source,
            raw=raw,
            context=line.strip(),
        )

    def _hardcoded_on_line(self, path: str, suffix: str, line_number: int, line: str) -> List[TokenUsage]:
        found = []
        arbitrary_spans: List[Tuple[int, int]] = []

        for match in TAILWIND_ARBITRARY_PATTERN.finditer(line):
            if _in_comment(line, match.start()):
                continue
            arbitrary_spans.append(match.span())
            found.append(self._usage(path, line_number, line, match.start(), match.group(1).lower(),
                                     UsageKind.HARDCODED, "tailwind-arbitrary", match.group(0)))

        def inside_arbitrary(start: int) -> bool:
            return any(lo <= start < hi for lo, hi in arbitrary_spans)

        for pattern, source in ((HEX_COLOR_PATTERN, "hex-color"),
                                (RGB_PATTERN, "rgb-color"),
                                (HSL_PATTERN, "hsl-color")):
            for match in pattern.finditer(line):
                if inside_arbitrary(match.start()) or _in_comment(line, match.start()):
                    continue
                literal = re.sub(r"\s+", "", match.group(0)).lower()
                found.append(self._usage(path, line_number, line, match.start(), literal,
                                         UsageKind.HARDCODED, source, match.group(0)))

        if suffix in STYLESHEET_SUFFIXES:
            declaration = SPACING_DECLARATION.match(line)
            if declaration:
                for match in SPACING_VALUE_PATTERN.finditer(line, declaration.end()):
                    if _in_comment(line, match.start()):
                        continue
                    found.append(self._usage(path, line_number, line, match.start(), match.group(0).lower(),
                                             UsageKind.HARDCODED, "spacing", match.group(0)))
        return found

    def _references_on_line(self, path: str, suffix: str, line_number: int, line: str) -> List[TokenUsage]:
        candidates = [(CSS_VAR_PATTERN, "css-var")]
        if suffix in SCSS_SUFFIXES:
            candidates.append((SCSS_VAR_PATTERN, "scss-var"))
        if suffix in SCRIPT_SUFFIXES:
            candidates.append((JS_TOKEN_PATTERN, "js-token"))

        found = []
        for pattern, source in candidates:
            for match in pattern.finditer(line):
                name = normalize_token_name(match.group(1))
                if _in_comment(line, match.start()) or not self.tokens.admits(name):
                    continue
                found.append(self._usage(path, line_number, line, match.start(), name,
                                         UsageKind.TOKEN_REFERENCE, source, match.group(0)))

        # Semantic utilities are only recognized against an explicit taxonomy,
        # otherwise every palette class (bg-slate-900) would count as a token.
        if self.tokens and (suffix not in STYLESHEET_SUFFIXES or "@apply" in line):
            for match in TAILWIND_SEMANTIC_PATTERN.finditer(line):
                name = normalize_token_name(match.group(1))
                if _in_comment(line, match.start()) or not self.tokens.recognizes(name):
                    continue
                found.append(self._usage(path, line_number, line, match.start(), name,
                                         UsageKind.TOKEN_REFERENCE, "tailwind", match.group(0)))
        return found

    # ==================== COMPONENTS ====================

    @staticmethod
    def _enclosing_scopes(lines: List[str]) -> List[Optional[str]]:
        """Nearest preceding top-level declaration for every line."""
        scopes = []
        current = None
        for line in lines:
            for pattern in SCOPE_PATTERNS:
                match = pattern.match(line)
                if match:
                    current = match.group(1)
                    break
            scopes.append(current)
        return scopes

    def _components_on_line(self, path: str, line_number: int, line: str,
                            scope: Optional[str]) -> List[ComponentUsage]:
        found = []
        for match in JSX_COMPONENT_PATTERN.finditer(line):
            component = match.group(1)
            if component.split(".")[-1] in SKIP_COMPONENTS or component.split(".")[0] in SKIP_COMPONENTS:
                continue
            if _in_comment(line, match.start()) or not self.components.admits(component):
                continue

            attributes, closed = _tag_attributes(line, match.end())
            if closed is None:
                has_children = None
            else:
                has_children = not closed.endswith("/")
            found.append(ComponentUsage(
                path=path,
                line=line_number,
                column=match.start() + 1,
                component=component,
                enclosing_scope=scope,
                props_used=_prop_names(attributes),
                has_children=has_children,
                context=line.strip(),
            ))
        return found


def _tag_attributes(line: str, start: int) -> Tuple[str, Optional[str]]:
    """
    Attribute text of a tag opened on this line, with quoted strings and
    {expressions} blanked out.

    Returns:
        Tuple of (attribute text, closing text) where closing text is the
        attribute text up to the tag's `>` (None when the tag does not close
        on this line)
    """
    cleaned = []
    depth = 0
    quote = None
    for ch in line[start:]:
        if quote:
            if ch == quote:
                quote = None
            continue
        if depth:
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
            continue
        if ch in ("'", '"', "`"):
            quote = ch
            continue
        if ch == "{":
            depth = 1
            continue
        if ch == ">":
            text = "".join(cleaned).rstrip()
            return text, text
        cleaned.append(ch)
    return "".join(cleaned), None


def _prop_names(attributes: str) -> List[str]:
    props = []
    for name in PROP_NAME_PATTERN.findall(attributes.rstrip("/")):
        if name not in IGNORED_PROPS and name not in props:
            props.append(name)
    return props
