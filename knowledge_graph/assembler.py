"""
Graph Assembler

Merges the git history, usage and import results into one KnowledgeGraph.

Assembly order:
1. File nodes for the union of every path any input mentions
2. Commit and Developer nodes with authored / modified edges
3. Token and Component nodes (one per identifier) with uses-* edges
4. imports edges from the resolved-internal dependency graph
5. the circular-dependency report as graph metadata

Any input may be missing or failed; the graph is built from whatever is
usable and the absent sections are named on the result. Conflicting facts
about one node are resolved by fixed rules and reported as diagnostics.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from collectors.errors import AssemblyConflict
from collectors.models import ChangeKind, UsageKind
from collectors.results import (
    CollectorResult,
    CollectorStatus,
    Diagnostic,
    GitHistoryResult,
    ImportCollectorResult,
    UsageCollectorResult,
)

from .graph_model import (
    EdgeRelation,
    GraphEdge,
    GraphNode,
    GraphStatus,
    KnowledgeGraph,
    NodeKind,
    make_node_id,
)

logger = logging.getLogger(__name__)

LANGUAGES = {
    ".ts": "typescript", ".tsx": "typescript",
    ".js": "javascript", ".jsx": "javascript", ".mjs": "javascript", ".cjs": "javascript",
    ".vue": "vue", ".svelte": "svelte",
    ".css": "css", ".scss": "scss", ".sass": "sass", ".less": "less",
    ".json": "json",
}

# Resolution rules, recorded on every conflict diagnostic
ON_DISK_WINS = "on-disk observation wins: exists=true"
TOKEN_REFERENCE_WINS = "token-reference classification wins; hardcoded count kept"


@dataclass
class _FileFacts:
    sources: Set[str] = field(default_factory=set)
    on_disk: bool = False
    change_count: int = 0
    last_change_kind: Optional[str] = None
    last_commit: Optional[str] = None
    renamed_to: Optional[str] = None


class _GraphUnderConstruction:
    """The dedup map; owned by one assembly call, never shared."""

    def __init__(self):
        self.nodes: Dict[str, Tuple[NodeKind, str, Dict[str, Any]]] = {}
        self.edges: Dict[Tuple[str, str, str], Dict[str, Any]] = {}

    def add_node(self, kind: NodeKind, key: str, payload: Dict[str, Any]) -> str:
        node_id = make_node_id(kind, key)
        if node_id not in self.nodes:
            self.nodes[node_id] = (kind, key, payload)
        return node_id

    def add_edge(self, source: str, target: str, relation: EdgeRelation,
                 weight: int = 1, metadata: Optional[Dict[str, Any]] = None) -> None:
        if source not in self.nodes or target not in self.nodes:
            raise ValueError(f"Edge {source} -[{relation.value}]-> {target} before its nodes")
        key = (source, relation.value, target)
        existing = self.edges.get(key)
        if existing is None:
            self.edges[key] = {"weight": weight, "metadata": dict(metadata or {})}
        else:
            existing["weight"] += weight

    def freeze(self) -> Tuple[List[GraphNode], List[GraphEdge]]:
        nodes = [
            GraphNode(id=node_id, kind=kind, key=key, payload=payload)
            for node_id, (kind, key, payload) in self.nodes.items()
        ]
        edges = [
            GraphEdge(source=source, target=target, relation=EdgeRelation(relation),
                      weight=data["weight"], metadata=data["metadata"])
            for (source, relation, target), data in self.edges.items()
        ]
        return nodes, edges


def _usable(result: Optional[CollectorResult]) -> bool:
    return result is not None and result.status != CollectorStatus.FAILED


class GraphAssembler:
    """Builds a KnowledgeGraph from collector results."""

    name = "assembler"

    def assemble(self, history: Optional[GitHistoryResult] = None,
                 usages: Optional[UsageCollectorResult] = None,
                 imports: Optional[ImportCollectorResult] = None) -> KnowledgeGraph:
        """
        Merge the collector results.

        Args:
            history: Git history result; None when not collected
            usages: Usage result; None when not collected
            imports: Import result; None when not collected

        Returns:
            The assembled read-only graph. Its diagnostics are every
            collector diagnostic followed by the assembler's own conflicts.
        """
        sections = {"history": history, "usages": usages, "imports": imports}
        missing = sorted(name for name, result in sections.items() if not _usable(result))
        usable = {name: result for name, result in sections.items() if _usable(result)}

        diagnostics: List[Diagnostic] = []
        for result in sections.values():
            if result is not None:
                diagnostics.extend(result.diagnostics)

        graph = _GraphUnderConstruction()
        conflicts: List[Diagnostic] = []

        history = usable.get("history")
        usages = usable.get("usages")
        imports = usable.get("imports")

        dependency_graph = imports.dependency_graph() if imports is not None else None

        file_ids = self._add_files(graph, history, usages, imports, dependency_graph, conflicts)
        if history is not None:
            self._add_history(graph, history, file_ids)
        if usages is not None:
            self._add_usages(graph, usages, file_ids, conflicts)
        if dependency_graph is not None:
            for source, target in dependency_graph.edges():
                data = dependency_graph.edge_data(source, target)
                graph.add_edge(file_ids[source], file_ids[target], EdgeRelation.IMPORTS,
                               weight=data["weight"],
                               metadata={"kinds": data["kinds"], "lines": data["lines"]})

        cycles = list(imports.cycles) if imports is not None else []
        status = self._status(sections, missing)
        nodes, edges = graph.freeze()

        logger.info(
            f"Assembled graph: {len(nodes)} nodes, {len(edges)} edges, {len(cycles)} cycles, "
            f"{len(conflicts)} conflicts ({status.value}"
            + (f", missing {', '.join(missing)})" if missing else ")")
        )
        return KnowledgeGraph(
            nodes=nodes,
            edges=edges,
            cycles=cycles,
            diagnostics=diagnostics + conflicts,
            status=status,
            missing_sections=missing,
        )

    @staticmethod
    def _status(sections: Dict[str, Optional[CollectorResult]], missing: List[str]) -> GraphStatus:
        if len(missing) == len(sections):
            return GraphStatus.FAILED
        if missing or any(r.status != CollectorStatus.COMPLETE for r in sections.values() if r is not None):
            return GraphStatus.PARTIAL
        return GraphStatus.COMPLETE

    def _conflict(self, conflicts: List[Diagnostic], message: str, node_id: str, resolution: str) -> None:
        conflict = AssemblyConflict(message, node_id, resolution)
        logger.debug(f"Assembly conflict: {conflict}")
        conflicts.append(Diagnostic(
            source=self.name,
            code=conflict.code,
            message=str(conflict),
            path=node_id.split(":", 1)[1] if node_id.startswith(NodeKind.FILE.value + ":") else None,
        ))

    # ==================== FILES ====================

    def _add_files(self, graph, history, usages, imports, dependency_graph, conflicts) -> Dict[str, str]:
        facts: Dict[str, _FileFacts] = {}

        def fact(path: str) -> _FileFacts:
            return facts.setdefault(path, _FileFacts())

        if history is not None:
            # Commits are most recent first: the first event seen for a path is its latest
            for commit in history.commits:
                for change in commit.changes:
                    entry = fact(change.path)
                    entry.sources.add("history")
                    entry.change_count += 1
                    if entry.last_change_kind is None:
                        entry.last_change_kind = change.change_kind.value
                        entry.last_commit = commit.sha
                    if change.old_path and change.old_path != change.path:
                        old = fact(change.old_path)
                        old.sources.add("history")
                        if old.last_change_kind is None:
                            old.last_change_kind = ChangeKind.RENAMED.value
                            old.last_commit = commit.sha
                            old.renamed_to = change.path

        if usages is not None:
            for path in usages.scanned_files:
                entry = fact(path)
                entry.sources.add("usages")
                entry.on_disk = True

        if imports is not None:
            for path in dependency_graph.files():
                entry = fact(path)
                entry.sources.add("imports")
                entry.on_disk = True

        file_ids = {}
        for path in sorted(facts):
            entry = facts[path]
            node_id = make_node_id(NodeKind.FILE, path)
            gone = entry.last_change_kind == ChangeKind.DELETED.value or entry.renamed_to is not None
            if gone and entry.on_disk:
                self._conflict(
                    conflicts,
                    f"History says {path} was {entry.last_change_kind} in "
                    f"{(entry.last_commit or '')[:8]} but it was read from disk",
                    node_id,
                    ON_DISK_WINS,
                )
            payload = {
                "path": path,
                "language": LANGUAGES.get(os.path.splitext(path)[1].lower()),
                "sources": sorted(entry.sources),
                "exists": entry.on_disk or not gone,
                "change_count": entry.change_count,
                "last_change_kind": entry.last_change_kind,
                "last_commit": entry.last_commit,
            }
            if entry.renamed_to is not None:
                payload["renamed_to"] = entry.renamed_to
            file_ids[path] = graph.add_node(NodeKind.FILE, path, payload)
        return file_ids

    # ==================== HISTORY ====================

    def _add_history(self, graph, history: GitHistoryResult, file_ids: Dict[str, str]) -> None:
        developer_ids = {}
        for developer in history.developers:
            developer_ids[developer.identity_key] = graph.add_node(NodeKind.DEVELOPER, developer.identity_key, {
                "identity_key": developer.identity_key,
                "name": developer.name,
                "email": developer.email,
                "commit_count": developer.commit_count,
                "first_seen_at": developer.first_seen_at.isoformat(),
                "last_seen_at": developer.last_seen_at.isoformat(),
            })

        for commit in history.commits:
            commit_id = graph.add_node(NodeKind.COMMIT, commit.sha, {
                "sha": commit.sha,
                "short_sha": commit.short_sha,
                "message": commit.message,
                "timestamp": commit.timestamp.isoformat(),
                "author_key": commit.author_key,
                "parent_shas": list(commit.parent_shas),
                "change_count": len(commit.changes),
            })

            developer_id = developer_ids.get(commit.author_key)
            if developer_id is None:
                developer_id = graph.add_node(NodeKind.DEVELOPER, commit.author_key, {
                    "identity_key": commit.author_key,
                    "name": commit.author_name,
                    "email": commit.author_email,
                    "commit_count": 1,
                    "first_seen_at": commit.timestamp.isoformat(),
                    "last_seen_at": commit.timestamp.isoformat(),
                })
                developer_ids[commit.author_key] = developer_id
            graph.add_edge(commit_id, developer_id, EdgeRelation.AUTHORED)

            for change in commit.changes:
                metadata = {"change_kind": change.change_kind.value}
                if change.additions is not None:
                    metadata["additions"] = change.additions
                if change.deletions is not None:
                    metadata["deletions"] = change.deletions
                if change.old_path:
                    metadata["old_path"] = change.old_path
                graph.add_edge(commit_id, file_ids[change.path], EdgeRelation.MODIFIED, metadata=metadata)

    # ==================== USAGES ====================

    def _add_usages(self, graph, usages: UsageCollectorResult, file_ids: Dict[str, str],
                    conflicts: List[Diagnostic]) -> None:
        tokens: Dict[str, Dict[str, Any]] = {}
        token_edges: Dict[Tuple[str, str], List[int]] = {}
        for usage in usages.all_token_usages():
            entry = tokens.setdefault(usage.token, {"references": 0, "hardcoded": 0, "sources": set()})
            entry["references" if usage.usage_kind == UsageKind.TOKEN_REFERENCE else "hardcoded"] += 1
            entry["sources"].add(usage.source)
            token_edges.setdefault((usage.path, usage.token), []).append(usage.line)

        for identifier in sorted(tokens):
            entry = tokens[identifier]
            node_id = make_node_id(NodeKind.TOKEN, identifier)
            if entry["references"] and entry["hardcoded"]:
                self._conflict(
                    conflicts,
                    f"'{identifier}' is both a token reference ({entry['references']}x) "
                    f"and a hardcoded value ({entry['hardcoded']}x)",
                    node_id,
                    TOKEN_REFERENCE_WINS,
                )
            classification = UsageKind.TOKEN_REFERENCE if entry["references"] else UsageKind.HARDCODED
            graph.add_node(NodeKind.TOKEN, identifier, {
                "identifier": identifier,
                "classification": classification.value,
                "reference_count": entry["references"],
                "hardcoded_count": entry["hardcoded"],
                "sources": sorted(entry["sources"]),
            })

        for (path, identifier), lines in sorted(token_edges.items()):
            graph.add_edge(file_ids[path], make_node_id(NodeKind.TOKEN, identifier), EdgeRelation.USES_TOKEN,
                           weight=len(lines), metadata={"lines": sorted(set(lines))})

        components: Dict[str, Dict[str, Any]] = {}
        component_edges: Dict[Tuple[str, str], Dict[str, Any]] = {}
        for usage in usages.component_usages:
            entry = components.setdefault(usage.component, {"count": 0, "files": set(), "props": set()})
            entry["count"] += 1
            entry["files"].add(usage.path)
            entry["props"].update(usage.props_used)
            edge = component_edges.setdefault((usage.path, usage.component), {"lines": [], "scopes": set()})
            edge["lines"].append(usage.line)
            if usage.enclosing_scope:
                edge["scopes"].add(usage.enclosing_scope)

        for name in sorted(components):
            entry = components[name]
            graph.add_node(NodeKind.COMPONENT, name, {
                "name": name,
                "usage_count": entry["count"],
                "file_count": len(entry["files"]),
                "props_used": sorted(entry["props"]),
            })

        for (path, name), edge in sorted(component_edges.items()):
            graph.add_edge(file_ids[path], make_node_id(NodeKind.COMPONENT, name), EdgeRelation.USES_COMPONENT,
                           weight=len(edge["lines"]),
                           metadata={"lines": sorted(set(edge["lines"])), "scopes": sorted(edge["scopes"])})
