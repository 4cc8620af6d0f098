"""
Database Setup for the design-system knowledge graph

Creates the SQLite schema that stores assembled graphs. Every build is one
row in graph_runs; nodes, edges, cycles and diagnostics hang off that run.
"""

import sqlite3
from pathlib import Path
from typing import Union
import logging

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
-- One row per assembled graph
CREATE TABLE IF NOT EXISTS graph_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_root TEXT,
    status TEXT NOT NULL, -- complete, partial, failed
    missing_sections JSON,
    stats JSON,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Nodes: files, commits, developers, tokens, components
CREATE TABLE IF NOT EXISTS graph_nodes (
    run_id INTEGER NOT NULL,
    id TEXT NOT NULL,
    kind TEXT NOT NULL,
    key TEXT NOT NULL,
    payload JSON,
    PRIMARY KEY (run_id, id),
    FOREIGN KEY (run_id) REFERENCES graph_runs (id) ON DELETE CASCADE
);

-- Edges: authored, modified, uses-token, uses-component, imports
CREATE TABLE IF NOT EXISTS graph_edges (
    run_id INTEGER NOT NULL,
    source_id TEXT NOT NULL,
    target_id TEXT NOT NULL,
    relation TEXT NOT NULL,
    weight INTEGER NOT NULL DEFAULT 1,
    metadata JSON,
    PRIMARY KEY (run_id, source_id, relation, target_id),
    FOREIGN KEY (run_id, source_id) REFERENCES graph_nodes (run_id, id) ON DELETE CASCADE,
    FOREIGN KEY (run_id, target_id) REFERENCES graph_nodes (run_id, id) ON DELETE CASCADE
);

-- Circular dependency report (graph metadata, not edges)
CREATE TABLE IF NOT EXISTS graph_cycles (
    run_id INTEGER NOT NULL,
    position INTEGER NOT NULL,
    members JSON NOT NULL,
    path JSON NOT NULL,
    self_import INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (run_id, position),
    FOREIGN KEY (run_id) REFERENCES graph_runs (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS graph_diagnostics (
    run_id INTEGER NOT NULL,
    position INTEGER NOT NULL,
    source TEXT NOT NULL,
    code TEXT NOT NULL,
    message TEXT NOT NULL,
    path TEXT,
    line INTEGER,
    severity TEXT NOT NULL,
    PRIMARY KEY (run_id, position),
    FOREIGN KEY (run_id) REFERENCES graph_runs (id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_graph_nodes_kind ON graph_nodes(run_id, kind);
CREATE INDEX IF NOT EXISTS idx_graph_edges_source ON graph_edges(run_id, source_id);
CREATE INDEX IF NOT EXISTS idx_graph_edges_target ON graph_edges(run_id, target_id);
CREATE INDEX IF NOT EXISTS idx_graph_edges_relation ON graph_edges(run_id, relation);
"""

REQUIRED_TABLES = {"graph_runs", "graph_nodes", "graph_edges", "graph_cycles", "graph_diagnostics"}


class DatabaseSetup:
    """Initialize and configure the SQLite database holding assembled graphs."""

    def __init__(self, db_path: Union[str, Path] = "design_graph.db"):
        self.db_path = Path(db_path)
        self.connection = None

    def initialize_database(self) -> sqlite3.Connection:
        """
        Open the database and create the schema when missing.

        Returns:
            The open connection (foreign keys on, rows as sqlite3.Row)
        """
        try:
            if self.db_path.parent and not self.db_path.parent.exists():
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

            self.connection = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
            self.connection.row_factory = sqlite3.Row

            # Enable foreign keys for referential integrity
            self.connection.execute("PRAGMA foreign_keys = ON")

            self._optimize_sqlite_settings()
            self._create_schema()

            logger.info(f"Database initialized successfully at {self.db_path}")
            return self.connection

        except sqlite3.Error as e:
            logger.error(f"Database initialization failed: {e}")
            if self.connection:
                self.connection.close()
                self.connection = None
            raise

    def _optimize_sqlite_settings(self):
        optimizations = [
            "PRAGMA journal_mode = WAL",
            "PRAGMA synchronous = NORMAL",
            "PRAGMA temp_store = MEMORY",
        ]

        for pragma in optimizations:
            try:
                self.connection.execute(pragma)
                logger.debug(f"Applied optimization: {pragma}")
            except sqlite3.Error as e:
                logger.warning(f"Could not apply optimization '{pragma}': {e}")

    def _create_schema(self):
        """Create database schema for graph storage."""
        self.connection.executescript(SCHEMA_SQL)
        self.connection.commit()
        logger.debug("Database schema created successfully")

    def schema_ready(self) -> bool:
        tables = self.connection.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        return REQUIRED_TABLES.issubset({row[0] for row in tables})

    def get_database_stats(self) -> dict:
        """Get current database statistics."""
        if not self.connection:
            return {}

        cursor = self.connection.cursor()
        stats = {}
        for table in sorted(REQUIRED_TABLES):
            stats[f"{table}_count"] = cursor.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        stats["database_size_bytes"] = self.db_path.stat().st_size if self.db_path.exists() else 0
        return stats

    def close(self):
        """Close database connection."""
        if self.connection:
            self.connection.close()
            self.connection = None
            logger.debug("Database connection closed")


def setup_graph_database(db_path: Union[str, Path] = "design_graph.db") -> DatabaseSetup:
    """
    Convenience function to set up the graph database.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Initialized DatabaseSetup instance
    """
    setup = DatabaseSetup(db_path)
    setup.initialize_database()
    return setup
