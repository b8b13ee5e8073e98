"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest

from datavcs.core import Repository

CSV_CONTENT = "col1,col2\n1,2\n3,4\n"


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Create a temporary directory for testing."""
    return tmp_path


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    """Create an empty project directory."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    """Storage directory shared outside the project tree."""
    return tmp_path / "storage"


@pytest.fixture
def repo(repo_root: Path, storage_root: Path) -> Repository:
    """Create an initialized repository with external storage."""
    return Repository.init(repo_root, storage_dir=storage_root)


@pytest.fixture
def data_csv(repo: Repository) -> Path:
    """Create a small CSV file (18 bytes) inside the repository."""
    path = repo.root / "data.csv"
    path.write_text(CSV_CONTENT, encoding="utf-8")
    return path


@pytest.fixture
def sample_files(repo: Repository) -> dict:
    """Create a few files in nested directories."""
    files = {
        "file1.txt": "content one",
        "file2.txt": "content two",
        "data/raw/a.csv": "x,y\n1,2\n",
        "data/raw/b.csv": "x,y\n3,4\n",
        "data/notes.tmp": "scratch",
    }
    paths = {}
    for relative, content in files.items():
        path = repo.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        paths[relative] = path
    return paths
