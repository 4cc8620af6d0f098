"""
Graph Store for the design-system knowledge graph

Persists assembled KnowledgeGraphs to SQLite and loads them back. A saved
run is written in one transaction: either every node, edge, cycle and
diagnostic of the graph is stored, or nothing is.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Union
from pathlib import Path
from contextlib import contextmanager

from .database_setup import DatabaseSetup

logger = logging.getLogger(__name__)


class GraphStore:
    """
    Repository-style access to stored graph runs.

    The knowledge_graph package is imported lazily so that storage stays
    importable from the collectors.
    """

    def __init__(self, db_path: Union[str, Path] = "design_graph.db"):
        self.db_path = Path(db_path)
        self._setup = DatabaseSetup(self.db_path)
        self.connection = self._setup.initialize_database()

    @contextmanager
    def transaction(self):
        """Context manager for database transactions with automatic rollback."""
        cursor = self.connection.cursor()
        try:
            yield cursor
            self.connection.commit()
        except Exception as e:
            self.connection.rollback()
            logger.error(f"Transaction failed, rolled back: {e}")
            raise

    # ==================== WRITE ====================

    def save_graph(self, graph, project_root: Optional[str] = None) -> int:
        """
        Store one assembled graph as a new run.

        Args:
            graph: KnowledgeGraph to persist
            project_root: Project the graph was built from

        Returns:
            The new run id
        """
        with self.transaction() as cursor:
            cursor.execute("""
                INSERT INTO graph_runs (project_root, status, missing_sections, stats)
                VALUES (?, ?, ?, ?)
            """, (
                project_root,
                graph.status.value,
                json.dumps(list(graph.missing_sections)),
                json.dumps(graph.stats(), sort_keys=True),
            ))
            run_id = cursor.lastrowid

            cursor.executemany("""
                INSERT INTO graph_nodes (run_id, id, kind, key, payload) VALUES (?, ?, ?, ?, ?)
            """, [
                (run_id, node.id, node.kind.value, node.key, json.dumps(node.payload, sort_keys=True))
                for node in graph.nodes()
            ])

            cursor.executemany("""
                INSERT INTO graph_edges (run_id, source_id, target_id, relation, weight, metadata)
                VALUES (?, ?, ?, ?, ?, ?)
            """, [
                (run_id, edge.source, edge.target, edge.relation.value, edge.weight,
                 json.dumps(edge.metadata, sort_keys=True))
                for edge in graph.edges()
            ])

            cursor.executemany("""
                INSERT INTO graph_cycles (run_id, position, members, path, self_import) VALUES (?, ?, ?, ?, ?)
            """, [
                (run_id, position, json.dumps(cycle.members), json.dumps(cycle.path), int(cycle.self_import))
                for position, cycle in enumerate(graph.cycles)
            ])

            cursor.executemany("""
                INSERT INTO graph_diagnostics (run_id, position, source, code, message, path, line, severity)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                (run_id, position, d.source, d.code, d.message, d.path, d.line, d.severity.value)
                for position, d in enumerate(graph.diagnostics)
            ])

        logger.info(f"Saved graph run {run_id} to {self.db_path} ({len(graph.node_ids())} nodes)")
        return run_id

    def delete_run(self, run_id: int) -> bool:
        with self.transaction() as cursor:
            # Edges first: they reference nodes of the same run
            cursor.execute("DELETE FROM graph_edges WHERE run_id = ?", (run_id,))
            cursor.execute("DELETE FROM graph_runs WHERE id = ?", (run_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.debug(f"Deleted graph run {run_id}")
        return deleted

    # ==================== READ ====================

    def latest_run_id(self) -> Optional[int]:
        row = self.connection.execute("SELECT MAX(id) FROM graph_runs").fetchone()
        return row[0] if row else None

    def list_runs(self) -> List[Dict[str, Any]]:
        rows = self.connection.execute("""
            SELECT id, project_root, status, missing_sections, stats, created_at
            FROM graph_runs ORDER BY id
        """).fetchall()
        runs = []
        for row in rows:
            run = dict(row)
            run["missing_sections"] = json.loads(run["missing_sections"] or "[]")
            run["stats"] = json.loads(run["stats"] or "{}")
            runs.append(run)
        return runs

    def load_graph(self, run_id: Optional[int] = None):
        """
        Load a stored graph; the most recent run when run_id is None.

        Returns:
            KnowledgeGraph, or None when no such run exists
        """
        from knowledge_graph.graph_model import KnowledgeGraph

        if run_id is None:
            run_id = self.latest_run_id()
            if run_id is None:
                return None

        run = self.connection.execute(
            "SELECT status, missing_sections FROM graph_runs WHERE id = ?", (run_id,)
        ).fetchone()
        if run is None:
            logger.warning(f"No graph run {run_id} in {self.db_path}")
            return None

        nodes = [
            {"id": row["id"], "kind": row["kind"], "key": row["key"], "payload": json.loads(row["payload"] or "{}")}
            for row in self.connection.execute(
                "SELECT id, kind, key, payload FROM graph_nodes WHERE run_id = ?", (run_id,)
            )
        ]
        edges = [
            {
                "source": row["source_id"],
                "target": row["target_id"],
                "relation": row["relation"],
                "weight": row["weight"],
                "metadata": json.loads(row["metadata"] or "{}"),
            }
            for row in self.connection.execute(
                "SELECT source_id, target_id, relation, weight, metadata FROM graph_edges WHERE run_id = ?",
                (run_id,),
            )
        ]
        cycles = [
            {"members": json.loads(row["members"]), "path": json.loads(row["path"]),
             "self_import": bool(row["self_import"])}
            for row in self.connection.execute(
                "SELECT members, path, self_import FROM graph_cycles WHERE run_id = ? ORDER BY position",
                (run_id,),
            )
        ]
        diagnostics = [
            dict(row)
            for row in self.connection.execute("""
                SELECT source, code, message, path, line, severity
                FROM graph_diagnostics WHERE run_id = ? ORDER BY position
            """, (run_id,))
        ]

        return KnowledgeGraph.from_dict({
            "status": run["status"],
            "missing_sections": json.loads(run["missing_sections"] or "[]"),
            "nodes": nodes,
            "edges": edges,
            "cycles": cycles,
            "diagnostics": diagnostics,
        })

    def get_database_stats(self) -> dict:
        return self._setup.get_database_stats()

    def close(self):
        """Close database connection."""
        self._setup.close()
        self.connection = None

