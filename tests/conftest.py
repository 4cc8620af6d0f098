"""
Shared fixtures: temporary projects and real git repositories built with GitPython.
"""

import os
import shutil
import sys
import tempfile
from pathlib import Path

import git
import pytest

# Add parent directory to path to import the project packages
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

ADA = ("Ada Lovelace", "ada@example.com")
GRACE = ("Grace Hopper", "grace@example.com")

# 2024-01-01T00:00:00Z
BASE_TIMESTAMP = 1704067200


class RepoBuilder:
    """Writes files and commits them with fixed authors and increasing dates."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.repo = git.Repo.init(self.root)
        self.clock = BASE_TIMESTAMP

    def write(self, relative: str, content: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def commit(self, message, files=None, delete=(), author=ADA):
        for relative, content in (files or {}).items():
            self.write(relative, content)
            self.repo.index.add([relative])
        if delete:
            self.repo.index.remove(list(delete), working_tree=True)

        self.clock += 3600
        date = f"{self.clock} +0000"
        actor = git.Actor(*author)
        return self.repo.index.commit(message, author=actor, committer=actor,
                                      author_date=date, commit_date=date)

    def rename(self, old: str, new: str, message: str, author=ADA):
        (self.root / new).parent.mkdir(parents=True, exist_ok=True)
        self.repo.index.move([old, new])
        return self.commit(message, author=author)


@pytest.fixture
def temp_dir():
    """Create temporary directory for testing."""
    path = tempfile.mkdtemp()
    yield Path(path)
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def repo_builder(temp_dir):
    builder = RepoBuilder(temp_dir)
    yield builder
    builder.repo.close()


@pytest.fixture
def write_file(temp_dir):
    """Write a file under the temporary project root."""
    def write(relative: str, content, binary: bool = False) -> Path:
        path = temp_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if binary:
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path
    return write
