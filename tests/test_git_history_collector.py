"""
Tests for GitHistoryCollector: filtering, developer deduplication,
determinism and graceful failure.
"""

import threading

import pytest

from collectors.config import GitCollectorConfig
from collectors.errors import NotARepository
from collectors.git_history import GitHistoryCollector
from collectors.models import ChangeKind
from collectors.results import CollectorStatus

from conftest import ADA, GRACE


@pytest.fixture
def design_repo(repo_builder):
    """Small project history: tokens, a component, a utility, a rename and a delete."""
    repo_builder.commit("add tokens", {"tokens/colors.json": '{"brand": "#ff0000"}\n'}, author=ADA)
    repo_builder.commit("add button", {"src/components/Button.tsx": "export const Button = () => null;\n"},
                        author=("Ada Lovelace", "ADA@Example.com"))
    repo_builder.commit("add util", {"src/utils.ts": "export const add = (a, b) => a + b;\n"}, author=GRACE)
    repo_builder.commit("add theme", {"src/theme.css": ":root { --brand: #ff0000; }\n",
                                      "src/legacy.css": "a { color: red; }\n"}, author=GRACE)
    repo_builder.commit("drop legacy", delete=["src/legacy.css"], author=ADA)
    repo_builder.rename("src/theme.css", "src/styles/theme.css", "move theme", author=("ada  lovelace", "ada@example.com"))
    return repo_builder


def collector_for(root, **options):
    return GitHistoryCollector(GitCollectorConfig(repository_path=root, **options))


class TestGitHistoryCollection:

    def test_collects_every_commit_most_recent_first(self, design_repo):
        result = collector_for(design_repo.root).collect()

        assert result.status == CollectorStatus.COMPLETE
        assert [c.message for c in result.commits] == [
            "move theme", "drop legacy", "add theme", "add util", "add button", "add tokens",
        ]
        assert result.branch == design_repo.repo.active_branch.name
        assert result.date_range[0] < result.date_range[1]

    def test_developers_are_deduplicated_by_identity(self, design_repo):
        result = collector_for(design_repo.root).collect()

        keys = [d.identity_key for d in result.developers]
        assert keys == sorted(keys)
        assert keys == ["ada lovelace <ada@example.com>", "grace hopper <grace@example.com>"]

        ada = result.developers[0]
        assert ada.commit_count == 4
        assert ada.first_seen_at < ada.last_seen_at

    def test_change_kinds(self, design_repo):
        result = collector_for(design_repo.root).collect()
        by_message = {c.message: c for c in result.commits}

        [deleted] = by_message["drop legacy"].changes
        assert deleted.change_kind == ChangeKind.DELETED
        assert deleted.path == "src/legacy.css"

        [renamed] = by_message["move theme"].changes
        assert renamed.change_kind == ChangeKind.RENAMED
        assert renamed.path == "src/styles/theme.css"
        assert renamed.old_path == "src/theme.css"
        assert renamed.commit_sha == by_message["move theme"].sha

    def test_collection_is_deterministic(self, design_repo):
        first = collector_for(design_repo.root).collect()
        second = collector_for(design_repo.root).collect()

        assert [c.model_dump_json() for c in first.commits] == [c.model_dump_json() for c in second.commits]
        assert [d.model_dump_json() for d in first.developers] == [d.model_dump_json() for d in second.developers]

    def test_include_filter_drops_unrelated_commits(self, design_repo):
        result = collector_for(design_repo.root, include=["**/*.css"]).collect()

        assert [c.message for c in result.commits] == ["move theme", "drop legacy", "add theme"]
        for commit in result.commits:
            assert all(change.path.endswith(".css") for change in commit.changes)

    def test_exclusion_wins_over_inclusion(self, design_repo):
        result = collector_for(design_repo.root, include=["**/*.css"], exclude=["**/legacy.css"]).collect()

        touched = result.touched_paths()
        assert "src/legacy.css" not in touched
        assert "src/styles/theme.css" in touched
        assert "drop legacy" not in [c.message for c in result.commits]

    def test_commit_limit(self, design_repo):
        unfiltered = collector_for(design_repo.root, commit_limit=2).collect()
        filtered = collector_for(design_repo.root, commit_limit=2, include=["**/*.css"]).collect()

        assert [c.message for c in unfiltered.commits] == ["move theme", "drop legacy"]
        assert [c.message for c in filtered.commits] == ["move theme", "drop legacy"]

    def test_commits_touching_only_excluded_paths_are_dropped(self, repo_builder):
        repo_builder.commit("add source", {"src/a.ts": "export const a = 1;\n"})
        repo_builder.commit("build", {"dist/bundle.js": "var a = 1;\n"})

        every = collector_for(repo_builder.root, exclude=["dist/**"]).collect()
        limited = collector_for(repo_builder.root, exclude=["dist/**"], commit_limit=1).collect()
        defaults = collector_for(repo_builder.root).collect()

        assert [c.message for c in every.commits] == ["add source"]
        assert [(c.message, [ch.path for ch in c.changes]) for c in limited.commits] == [("add source", ["src/a.ts"])]
        assert [c.message for c in defaults.commits] == ["add source"]

    def test_design_system_variant_narrows_paths(self, design_repo):
        result = collector_for(design_repo.root).collect_design_system()

        touched = result.touched_paths()
        assert "tokens/colors.json" in touched
        assert "src/components/Button.tsx" in touched
        assert "src/utils.ts" not in touched
        assert "add util" not in [c.message for c in result.commits]

    def test_design_system_patterns_are_configurable(self, design_repo):
        result = collector_for(design_repo.root, design_system_patterns=["tokens/**"]).collect_design_system()

        assert [c.message for c in result.commits] == ["add tokens"]

    def test_project_in_subdirectory(self, design_repo):
        result = collector_for(design_repo.root / "src").collect()

        assert "add tokens" not in [c.message for c in result.commits]
        assert "components/Button.tsx" in result.touched_paths()


class TestGitHistoryFailures:

    def test_not_a_repository_returns_failed_result(self, temp_dir):
        result = collector_for(temp_dir).collect()

        assert result.status == CollectorStatus.FAILED
        assert not result.succeeded
        assert result.commits == []
        assert [d.code for d in result.diagnostics] == [NotARepository.code]

    def test_empty_repository_is_complete_and_empty(self, repo_builder):
        result = collector_for(repo_builder.root).collect()

        assert result.status == CollectorStatus.COMPLETE
        assert result.commits == []
        assert result.developers == []
        assert result.date_range is None

    def test_cancellation_yields_partial_result(self, design_repo):
        cancel = threading.Event()
        cancel.set()

        result = collector_for(design_repo.root).collect(cancel_event=cancel)

        assert result.status == CollectorStatus.PARTIAL
        assert result.commits == []
        assert result.diagnostics[-1].code == "cancelled"


class TestPointLookups:

    def test_file_history(self, design_repo):
        commits = collector_for(design_repo.root).file_history("src/utils.ts")

        assert [c.message for c in commits] == ["add util"]
        assert [change.path for change in commits[0].changes] == ["src/utils.ts"]

    def test_file_blame(self, design_repo):
        blame = collector_for(design_repo.root).file_blame("src/components/Button.tsx")

        assert list(blame) == [1]
        assert blame[1].author_name == "Ada Lovelace"

    def test_point_lookups_raise_outside_a_repository(self, temp_dir):
        with pytest.raises(NotARepository):
            collector_for(temp_dir).file_history("a.css")
