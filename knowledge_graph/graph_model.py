"""
Graph model for the assembled design-system knowledge graph.

Node ids are content-derived ("<kind>:<canonical-key>") so the same logical
entity always gets the same id. A KnowledgeGraph is built once by the
assembler (or loaded back from storage) and is read-only afterwards. Records
are deep-copied on the way in and on the way out, so a payload or metadata
dict handed to a caller can be changed without touching the graph.
"""

import json
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from collectors.models import CycleGroup
from collectors.results import Diagnostic


class NodeKind(str, Enum):
    FILE = "file"
    COMMIT = "commit"
    DEVELOPER = "developer"
    TOKEN = "token"
    COMPONENT = "component"


class EdgeRelation(str, Enum):
    AUTHORED = "authored"              # Commit -> Developer
    MODIFIED = "modified"              # Commit -> File
    USES_TOKEN = "uses-token"          # File -> Token
    USES_COMPONENT = "uses-component"  # File -> Component
    IMPORTS = "imports"                # File -> File


class GraphStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


def make_node_id(kind: NodeKind, key: str) -> str:
    return f"{kind.value}:{key}"


def _detached(record):
    return record.model_copy(deep=True)


class GraphNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    kind: NodeKind
    key: str = Field(..., description="Canonical key the id is derived from")
    payload: Dict[str, Any] = Field(default_factory=dict)


class GraphEdge(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    relation: EdgeRelation
    weight: int = Field(1, ge=1, description="Occurrence count")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.source, self.relation.value, self.target)


EdgeKey = Tuple[str, str, str]


class KnowledgeGraph:
    """
    The terminal artifact of one collection run.

    Raises ValueError on construction when an edge references a node that
    does not exist or when two nodes share an id.
    """

    def __init__(self, nodes: Iterable[GraphNode], edges: Iterable[GraphEdge],
                 cycles: Optional[Iterable[CycleGroup]] = None,
                 diagnostics: Optional[Iterable[Diagnostic]] = None,
                 status: GraphStatus = GraphStatus.COMPLETE,
                 missing_sections: Optional[Iterable[str]] = None):
        node_map: Dict[str, GraphNode] = {}
        for node in sorted(nodes, key=lambda n: n.id):
            if node.id in node_map:
                raise ValueError(f"Duplicate node id: {node.id}")
            node_map[node.id] = _detached(node)

        edge_map: Dict[EdgeKey, GraphEdge] = {}
        outgoing: Dict[str, List[GraphEdge]] = {}
        incoming: Dict[str, List[GraphEdge]] = {}
        for edge in sorted(edges, key=lambda e: e.key):
            for endpoint in (edge.source, edge.target):
                if endpoint not in node_map:
                    raise ValueError(f"Edge {edge.key} references missing node {endpoint}")
            if edge.key in edge_map:
                raise ValueError(f"Duplicate edge: {edge.key}")
            edge = _detached(edge)
            edge_map[edge.key] = edge
            outgoing.setdefault(edge.source, []).append(edge)
            incoming.setdefault(edge.target, []).append(edge)

        self._nodes = MappingProxyType(node_map)
        self._edges = MappingProxyType(edge_map)
        self._outgoing = MappingProxyType({k: tuple(v) for k, v in outgoing.items()})
        self._incoming = MappingProxyType({k: tuple(v) for k, v in incoming.items()})
        self._cycles = tuple(_detached(c) for c in cycles or ())
        self._diagnostics = tuple(_detached(d) for d in diagnostics or ())
        self._status = GraphStatus(status)
        self._missing_sections = tuple(sorted(missing_sections or ()))

    # ==================== READ ACCESS ====================

    @property
    def node_map(self) -> Mapping[str, GraphNode]:
        return MappingProxyType({k: _detached(v) for k, v in self._nodes.items()})

    @property
    def edge_map(self) -> Mapping[EdgeKey, GraphEdge]:
        return MappingProxyType({k: _detached(v) for k, v in self._edges.items()})

    @property
    def cycles(self) -> Tuple[CycleGroup, ...]:
        return tuple(_detached(c) for c in self._cycles)

    @property
    def diagnostics(self) -> Tuple[Diagnostic, ...]:
        return tuple(_detached(d) for d in self._diagnostics)

    @property
    def status(self) -> GraphStatus:
        return self._status

    @property
    def missing_sections(self) -> Tuple[str, ...]:
        return self._missing_sections

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        node = self._nodes.get(node_id)
        return _detached(node) if node is not None else None

    def nodes(self, kind: Optional[NodeKind] = None) -> List[GraphNode]:
        return [_detached(n) for n in self._nodes.values() if kind is None or n.kind == kind]

    def edges(self, relation: Optional[EdgeRelation] = None) -> List[GraphEdge]:
        return [_detached(e) for e in self._edges.values() if relation is None or e.relation == relation]

    def outgoing(self, node_id: str, relation: Optional[EdgeRelation] = None) -> List[GraphEdge]:
        return [_detached(e) for e in self._outgoing.get(node_id, ()) if relation is None or e.relation == relation]

    def incoming(self, node_id: str, relation: Optional[EdgeRelation] = None) -> List[GraphEdge]:
        return [_detached(e) for e in self._incoming.get(node_id, ()) if relation is None or e.relation == relation]

    def node_ids(self) -> frozenset:
        return frozenset(self._nodes)

    def edge_keys(self) -> frozenset:
        return frozenset(self._edges)

    def stats(self) -> Dict[str, Any]:
        node_counts = {kind.value: 0 for kind in NodeKind}
        for node in self._nodes.values():
            node_counts[node.kind.value] += 1
        edge_counts = {relation.value: 0 for relation in EdgeRelation}
        for edge in self._edges.values():
            edge_counts[edge.relation.value] += 1
        return {
            "nodes": len(self._nodes),
            "edges": len(self._edges),
            "node_kinds": node_counts,
            "edge_relations": edge_counts,
            "cycles": len(self._cycles),
            "diagnostics": len(self._diagnostics),
        }

    # ==================== SERIALIZATION ====================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self._status.value,
            "missing_sections": list(self._missing_sections),
            "nodes": [node.model_dump(mode="json") for node in self._nodes.values()],
            "edges": [edge.model_dump(mode="json") for edge in self._edges.values()],
            "cycles": [cycle.model_dump(mode="json") for cycle in self._cycles],
            "diagnostics": [d.model_dump(mode="json") for d in self._diagnostics],
            "stats": self.stats(),
        }

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "KnowledgeGraph":
        return cls(
            nodes=[GraphNode.model_validate(n) for n in data.get("nodes", [])],
            edges=[GraphEdge.model_validate(e) for e in data.get("edges", [])],
            cycles=[CycleGroup.model_validate(c) for c in data.get("cycles", [])],
            diagnostics=[Diagnostic.model_validate(d) for d in data.get("diagnostics", [])],
            status=GraphStatus(data.get("status", GraphStatus.COMPLETE.value)),
            missing_sections=data.get("missing_sections", []),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KnowledgeGraph):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    __hash__ = None

    def __repr__(self) -> str:
        return (f"<KnowledgeGraph {self._status.value}: {len(self._nodes)} nodes, "
                f"{len(self._edges)} edges, {len(self._cycles)} cycles>")
