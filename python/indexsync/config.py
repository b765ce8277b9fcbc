"""
Sync Configuration - Centralized settings for the index synchronizer.

Uses environment variables with sensible defaults. All paths are resolved
to absolute paths for reliability.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Set


class RoutingMode(Enum):
    """How the embedding router picks a model for a detected language."""
    MULTILINGUAL = "multilingual"   # One multilingual model for every language
    PER_LANGUAGE = "per_language"   # Language -> model map


@dataclass
class SyncConfig:
    """
    Configuration for the index synchronizer.

    All storage paths default to the ~/.indexsync directory.
    """

    # --- Paths ---
    db_path: Path = field(default_factory=lambda: Path.home() / ".indexsync" / "vectors.db")
    fulltext_path: Path = field(default_factory=lambda: Path.home() / ".indexsync" / "fulltext.db")
    model_cache_dir: Path = field(default_factory=lambda: Path.home() / ".indexsync" / "models")

    # --- Relevance ---
    hidden_prefix: str = "."
    text_extensions: Set[str] = field(default_factory=lambda: {
        # Documents
        ".pdf", ".txt", ".md", ".markdown", ".docx",
        # Code / structured text
        ".py", ".js", ".ts", ".tsx", ".jsx", ".json",
        ".html", ".css", ".yaml", ".yml", ".csv",
        ".sh", ".sql", ".java", ".c", ".cpp", ".h", ".go", ".rs",
    })

    # --- Chunking ---
    chunk_size: int = 1000       # Characters per chunk (~250 tokens)
    chunk_overlap: int = 200     # Overlap between consecutive chunks

    # --- Embedding ---
    routing: RoutingMode = RoutingMode.MULTILINGUAL
    default_model: str = "BAAI/bge-small-en-v1.5"
    multilingual_model: str = "intfloat/multilingual-e5-large"
    embedder_batch_size: int = 32
    use_onnx: bool = False

    # --- Concurrency ---
    worker_threads: int = 4
    ordered_fulltext: bool = False   # Chain full-text writes per path
    observer_join_timeout: float = 5.0

    def __post_init__(self):
        """Ensure all paths are absolute and parent directories exist."""
        self.db_path = Path(self.db_path).expanduser().resolve()
        self.fulltext_path = Path(self.fulltext_path).expanduser().resolve()
        self.model_cache_dir = Path(self.model_cache_dir).expanduser().resolve()
        if isinstance(self.routing, str):
            self.routing = RoutingMode(self.routing)
        self.text_extensions = {ext.lower() for ext in self.text_extensions}

        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError(
                f"chunk_overlap must be in [0, chunk_size), got {self.chunk_overlap}"
            )

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.fulltext_path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """
        Create config from environment variables.

        Supported env vars:
            INDEXSYNC_DB_PATH: Path to the vector store database
            INDEXSYNC_FULLTEXT_PATH: Path to the full-text index database
            INDEXSYNC_MODEL_CACHE: Directory for downloaded models
            INDEXSYNC_ROUTING: "multilingual" or "per_language"
            INDEXSYNC_CHUNK_SIZE / INDEXSYNC_CHUNK_OVERLAP: Chunking window
            INDEXSYNC_USE_ONNX: "1" to load models with the ONNX backend
            INDEXSYNC_ORDERED_FULLTEXT: "1" to order full-text writes per path
        """
        kwargs = {}

        if db_path := os.environ.get("INDEXSYNC_DB_PATH"):
            kwargs["db_path"] = Path(db_path)

        if fulltext_path := os.environ.get("INDEXSYNC_FULLTEXT_PATH"):
            kwargs["fulltext_path"] = Path(fulltext_path)

        if cache := os.environ.get("INDEXSYNC_MODEL_CACHE"):
            kwargs["model_cache_dir"] = Path(cache)

        if routing := os.environ.get("INDEXSYNC_ROUTING"):
            kwargs["routing"] = RoutingMode(routing)

        if chunk_size := os.environ.get("INDEXSYNC_CHUNK_SIZE"):
            kwargs["chunk_size"] = int(chunk_size)

        if overlap := os.environ.get("INDEXSYNC_CHUNK_OVERLAP"):
            kwargs["chunk_overlap"] = int(overlap)

        if use_onnx := os.environ.get("INDEXSYNC_USE_ONNX"):
            kwargs["use_onnx"] = use_onnx == "1"

        if ordered := os.environ.get("INDEXSYNC_ORDERED_FULLTEXT"):
            kwargs["ordered_fulltext"] = ordered == "1"

        return cls(**kwargs)

    def is_supported_extension(self, path: Path) -> bool:
        """Check the (case-insensitive) extension against text_extensions."""
        return path.suffix.lower() in self.text_extensions


# Process default config
_default_config: SyncConfig | None = None


def get_config() -> SyncConfig:
    """Get the default configuration (built from the environment on first use)."""
    global _default_config
    if _default_config is None:
        _default_config = SyncConfig.from_env()
    return _default_config


def set_config(config: SyncConfig) -> None:
    """Override the default configuration (for testing)."""
    global _default_config
    _default_config = config
