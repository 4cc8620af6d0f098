"""
End-to-end tests: real repository, real project tree, all collectors.
"""

import threading

import pytest

from collectors.config import GraphBuildConfig
from collectors.errors import ConfigurationError
from knowledge_graph.graph_builder import GraphBuilder
from knowledge_graph.graph_model import EdgeRelation, GraphStatus, NodeKind

from conftest import ADA, GRACE


@pytest.fixture
def design_project(repo_builder):
    repo_builder.commit("add theme", {
        "src/styles/theme.css": ":root {\n  --brand: #ff0000;\n}\n.card {\n  color: var(--brand);\n}\n",
    }, author=ADA)
    repo_builder.commit("add button", {
        "src/components/Button.tsx": (
            "import '../styles/theme.css';\n"
            "export const Button = ({ children }) => (\n"
            '  <button className="bg-[#00ff00]">{children}</button>\n'
            ");\n"
        ),
    }, author=GRACE)
    repo_builder.commit("add app", {
        "src/App.tsx": (
            "import React from 'react';\n"
            "import { Button } from './components/Button';\n"
            "\n"
            "export function App() {\n"
            '  return <Button variant="primary">Go</Button>;\n'
            "}\n"
        ),
        "src/utils.ts": "export const add = (a: number, b: number) => a + b;\n",
    }, author=ADA)
    return repo_builder


class TestGraphBuild:

    def test_end_to_end(self, design_project):
        builder = GraphBuilder.from_options({"projectRoot": str(design_project.root)})

        graph = builder.build()

        assert graph.status == GraphStatus.COMPLETE
        assert set(builder.last_results) == {"history", "usages", "imports"}

        files = {n.key for n in graph.nodes(NodeKind.FILE)}
        assert {"src/App.tsx", "src/components/Button.tsx", "src/styles/theme.css", "src/utils.ts"} <= files
        assert len(graph.nodes(NodeKind.COMMIT)) == 3
        assert len(graph.nodes(NodeKind.DEVELOPER)) == 2

        assert graph.get_node("token:brand") is not None
        assert graph.get_node("token:#ff0000").payload["classification"] == "hardcoded"
        assert graph.get_node("token:#00ff00") is not None
        assert graph.get_node("component:Button").payload["props_used"] == ["variant"]

        imports = {(e.source, e.target) for e in graph.edges(EdgeRelation.IMPORTS)}
        assert imports == {
            ("file:src/App.tsx", "file:src/components/Button.tsx"),
            ("file:src/components/Button.tsx", "file:src/styles/theme.css"),
        }
        assert graph.cycles == ()

    def test_build_is_deterministic(self, design_project):
        options = {"projectRoot": str(design_project.root)}

        first = GraphBuilder.from_options(options).build()
        second = GraphBuilder.from_options(options).build()

        assert first.node_ids() == second.node_ids()
        assert first.edge_keys() == second.edge_keys()
        assert first == second

    def test_project_without_repository_is_partial(self, temp_dir, write_file):
        write_file("src/a.css", "a { color: var(--brand); }\n")

        graph = GraphBuilder(GraphBuildConfig(project_root=temp_dir)).build()

        assert graph.status == GraphStatus.PARTIAL
        assert graph.missing_sections == ("history",)
        assert graph.get_node("file:src/a.css") is not None
        assert graph.get_node("token:brand") is not None

    def test_disabled_collector_is_a_missing_section(self, design_project):
        graph = GraphBuilder.from_options({
            "projectRoot": str(design_project.root),
            "collectImports": False,
        }).build()

        assert graph.status == GraphStatus.PARTIAL
        assert graph.missing_sections == ("imports",)
        assert graph.edges(EdgeRelation.IMPORTS) == []

    def test_design_system_only_history(self, design_project):
        builder = GraphBuilder.from_options({
            "projectRoot": str(design_project.root),
            "designSystemOnly": True,
            "collectUsages": False,
            "collectImports": False,
        })

        graph = builder.build()

        touched = builder.last_results["history"].touched_paths()
        assert "src/utils.ts" not in touched
        assert "src/styles/theme.css" in touched
        assert graph.get_node("file:src/utils.ts") is None

    def test_commit_limit_option(self, design_project):
        graph = GraphBuilder.from_options({
            "projectRoot": str(design_project.root),
            "commitLimit": 1,
        }).build()

        [commit] = graph.nodes(NodeKind.COMMIT)
        assert commit.payload["message"] == "add app"

    def test_cancelled_build_is_partial(self, design_project):
        cancel = threading.Event()
        cancel.set()

        graph = GraphBuilder(GraphBuildConfig(project_root=design_project.root)).build(cancel)

        assert graph.status == GraphStatus.PARTIAL
        assert "cancelled" in {d.code for d in graph.diagnostics}

    def test_save_and_load(self, design_project, temp_dir):
        builder = GraphBuilder(GraphBuildConfig(project_root=design_project.root))
        graph = builder.build()
        db_path = temp_dir / ".graphs" / "design_graph.db"

        run_id = builder.save(graph, db_path)

        from storage.database_manager import GraphStore
        store = GraphStore(db_path)
        try:
            assert store.load_graph(run_id) == graph
        finally:
            store.close()


class TestBuildOptions:

    def test_camel_and_snake_case_are_equivalent(self, temp_dir):
        camel = GraphBuildConfig.from_options({"projectRoot": str(temp_dir), "tokenPatterns": ["--brand"],
                                               "pathAliases": {"@/*": "src/*"}})
        snake = GraphBuildConfig.from_options({"project_root": str(temp_dir), "token_patterns": ["--brand"],
                                               "path_aliases": {"@/*": "src/*"}})

        assert camel == snake

    def test_unknown_option_is_rejected(self, temp_dir):
        with pytest.raises(ConfigurationError) as excinfo:
            GraphBuilder.from_options({"projectRoot": str(temp_dir), "tokenPatern": ["--brand"]})

        assert "tokenPatern" in str(excinfo.value)

    def test_malformed_option_is_rejected(self):
        with pytest.raises(ConfigurationError):
            GraphBuildConfig.from_options({"commitLimit": 0})

    def test_collector_configs_inherit_shared_filters(self, temp_dir):
        config = GraphBuildConfig(project_root=temp_dir, exclude=["**/legacy/**"], token_patterns=["--brand"])

        assert config.usage_config().exclude == ["**/legacy/**"]
        assert config.usage_config().token_patterns == ["--brand"]
        assert config.import_config().exclude == ["**/legacy/**"]
        assert config.git_config().repository_path == temp_dir
        assert "**/*.css" in config.usage_config().include
