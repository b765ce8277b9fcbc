"""
Test Configuration - Shared fixtures for index sync tests.

Uses pytest fixtures to create isolated test environments. Embedding
models are replaced by a deterministic fake so no model is downloaded.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Generator, List

import numpy as np
import pytest

from indexsync.config import SyncConfig, set_config


FAKE_DIMENSION = 16


class FakeModel:
    """Deterministic stand-in for a SentenceTransformer (character histogram)."""

    def __init__(self, name: str = "fake"):
        self.name = name
        self.calls: List[List[str]] = []

    def encode(self, texts, convert_to_numpy=True, normalize_embeddings=True):
        self.calls.append(list(texts))
        vectors = np.zeros((len(texts), FAKE_DIMENSION), dtype=np.float32)
        for row, text in enumerate(texts):
            for char in text.lower():
                if char.isalnum():
                    vectors[row, ord(char) % FAKE_DIMENSION] += 1.0
        if normalize_embeddings:
            norms = np.linalg.norm(vectors, axis=1, keepdims=True)
            norms[norms == 0] = 1.0
            vectors = vectors / norms
        return vectors


class BrokenModel:
    """A model that loads but fails on every encode call."""

    def encode(self, texts, **kwargs):
        raise RuntimeError("inference backend crashed")


class FakeModelFactory:
    """Records how often each model is constructed."""

    def __init__(self):
        self.models = {}
        self.load_count = 0

    def __call__(self, spec, config):
        self.load_count += 1
        model = FakeModel(spec.name)
        self.models[spec.name] = model
        return model


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    tmp = tempfile.mkdtemp(prefix="indexsync_test_")
    # Resolve to handle macOS /var -> /private/var symlink
    resolved = Path(tmp).resolve()
    yield resolved
    shutil.rmtree(str(resolved), ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> SyncConfig:
    """Create an isolated test configuration."""
    state = temp_dir / ".state"
    config = SyncConfig(
        db_path=state / "vectors.db",
        fulltext_path=state / "fulltext.db",
        model_cache_dir=state / "models",
        chunk_size=200,
        chunk_overlap=40,
        embedder_batch_size=4,
        worker_threads=2,
        observer_join_timeout=2.0,
    )
    set_config(config)
    return config


@pytest.fixture
def model_factory() -> FakeModelFactory:
    return FakeModelFactory()


@pytest.fixture
def watched_dir(temp_dir: Path) -> Path:
    """Directory to watch, separate from the index state directory."""
    root = temp_dir / "watched"
    root.mkdir()
    return root


@pytest.fixture
def sample_files(watched_dir: Path) -> dict[str, Path]:
    """Create sample files for testing."""
    files = {}

    txt = watched_dir / "file.txt"
    txt.write_text("hello world")
    files["txt"] = txt

    md = watched_dir / "readme.md"
    md.write_text("# Test Readme\n\nThis is a markdown file for testing.\n\n## Section 1\n\nSome content here.")
    files["md"] = md

    amharic = watched_dir / "greeting.txt"
    amharic.write_text("ሰላም ለዓለም። እንዴት ናችሁ?")
    files["amharic"] = amharic

    blank = watched_dir / "blank.txt"
    blank.write_text("   \n\t  \n")
    files["blank"] = blank

    long_text = watched_dir / "long.md"
    long_text.write_text(" ".join(f"sentence number {i} about indexing." for i in range(60)))
    files["long"] = long_text

    image = watched_dir / "photo.jpg"
    image.write_bytes(b"\xff\xd8\xff\xe0fakejpeg")
    files["jpg"] = image

    hidden = watched_dir / ".hidden.txt"
    hidden.write_text("This should be skipped.")
    files["hidden"] = hidden

    nested_dir = watched_dir / "subdir" / "nested"
    nested_dir.mkdir(parents=True)
    nested = nested_dir / "deep.txt"
    nested.write_text("A deeply nested file.")
    files["nested"] = nested

    return files
