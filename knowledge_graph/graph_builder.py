"""
Graph Builder - top-level orchestration of one collection run.

Runs the enabled collectors in parallel threads, waits for all of them, then
assembles on the calling thread. Collectors share nothing: each returns its
own result value, and the assembler is the only place results meet.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from collectors.config import GraphBuildConfig, get_settings
from collectors.git_history import GitHistoryCollector
from collectors.imports import ImportCollector
from collectors.results import GitHistoryResult, ImportCollectorResult, UsageCollectorResult
from collectors.usages import UsageCollector
from storage.database_manager import GraphStore

from .assembler import GraphAssembler
from .graph_model import KnowledgeGraph

logger = logging.getLogger(__name__)


class GraphBuilder:
    """
    Builds a KnowledgeGraph for one project.

    Example:
        builder = GraphBuilder.from_options({"projectRoot": ".", "commitLimit": 200})
        graph = builder.build()
        builder.save(graph)
    """

    def __init__(self, config: GraphBuildConfig):
        self.config = config
        self.assembler = GraphAssembler()
        self.last_results: Dict[str, Any] = {}

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "GraphBuilder":
        """
        Raises:
            ConfigurationError: on an unknown or malformed option
        """
        return cls(GraphBuildConfig.from_options(options))

    def build(self, cancel_event: Optional[threading.Event] = None) -> KnowledgeGraph:
        """Run the enabled collectors, then assemble their results."""
        tasks = {}
        if self.config.collect_history:
            history = GitHistoryCollector(self.config.git_config())
            tasks["history"] = history.collect_design_system if self.config.design_system_only else history.collect
        if self.config.collect_usages:
            tasks["usages"] = UsageCollector(self.config.usage_config()).collect
        if self.config.collect_imports:
            tasks["imports"] = ImportCollector(self.config.import_config()).collect

        logger.info(f"Building graph for {self.config.project_root} with collectors: {', '.join(tasks) or 'none'}")

        results: Dict[str, Any] = {}
        if tasks:
            with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="collector") as pool:
                futures = {name: pool.submit(run, cancel_event) for name, run in tasks.items()}
                # join barrier: assembly needs every candidate node first
                for name, future in futures.items():
                    results[name] = future.result()
                    logger.debug(f"Collector {name} finished with status {results[name].status.value}")

        self.last_results = results
        history_result: Optional[GitHistoryResult] = results.get("history")
        usage_result: Optional[UsageCollectorResult] = results.get("usages")
        import_result: Optional[ImportCollectorResult] = results.get("imports")
        return self.assembler.assemble(history=history_result, usages=usage_result, imports=import_result)

    def save(self, graph: KnowledgeGraph, db_path: Optional[Union[str, Path]] = None) -> int:
        """
        Persist a graph; db_path defaults to DESIGN_GRAPH_DB_PATH.

        Returns:
            The id of the stored run
        """
        store = GraphStore(db_path or get_settings().db_path)
        try:
            return store.save_graph(graph, project_root=str(self.config.project_root))
        finally:
            store.close()
