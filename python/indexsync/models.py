"""
Data Models - Type definitions for the sync pipeline.

These dataclasses represent the data flowing from raw file-system
notifications through classification, extraction and embedding into
the indexes, and the outcomes reported back to the UI.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

import numpy as np


class ChangeKind(Enum):
    """Kind of raw file-system change notification."""
    CREATED = "created"
    MODIFIED_CONTENT = "modified_content"
    RENAMED_TO = "renamed_to"
    RENAMED_FROM = "renamed_from"
    REMOVED = "removed"
    OTHER = "other"


class OperationKind(Enum):
    """Index operation derived from a notification."""
    UPSERT = "upsert"
    DELETE = "delete"
    IGNORE = "ignore"


class Language(Enum):
    """Language detected in extracted text."""
    ENGLISH = "english"
    AMHARIC = "amharic"
    OTHER = "other"


class EmbeddingRole(Enum):
    """Embedding usage mode; affects prefixing and chunking."""
    QUERY = "query"
    PASSAGE = "passage"


class LoopState(Enum):
    """Lifecycle of the event loop."""
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass(frozen=True)
class RawChangeNotification:
    """A change reported by the file-system watcher, before classification."""
    kind: ChangeKind
    paths: tuple
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class IndexOperation:
    """One operation for one path."""
    kind: OperationKind
    path: Path


@dataclass
class ExtractedDocument:
    """Plain text of a document plus its detected language."""
    text: str
    language: Language = Language.OTHER


@dataclass
class EmbeddingChunk:
    """One embedded segment of a document."""
    ordinal: int
    vector: np.ndarray


@dataclass
class IndexedEntry:
    """
    A document in the vector store.

    The path is the unique key; an upsert replaces the entry wholesale.
    """
    path: str
    fingerprint: str
    vectors: List[EmbeddingChunk]
    last_updated: float
    language: Optional[Language] = None


@dataclass
class Observation:
    """Reported outcome of processing one path (or a lifecycle change)."""
    event_type: str            # "created", "modified", "deleted", "watcher-started", ...
    path: str
    success: bool
    message: str
    timestamp: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict:
        """Convert to dictionary for the UI layer."""
        return {
            "event_type": self.event_type,
            "file_path": self.path,
            "timestamp": self.timestamp,
            "success": self.success,
            "message": self.message,
        }


@dataclass
class WatcherStatus:
    """Snapshot of the watch supervisor."""
    running: bool
    path: Optional[str] = None
    state: LoopState = LoopState.IDLE
    events_processed: int = 0
    last_event_time: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "is_running": self.running,
            "watched_path": self.path,
            "state": self.state.value,
            "events_processed": self.events_processed,
            "last_event_time": self.last_event_time,
        }


@dataclass
class SearchHit:
    """A ranked result from the vector or full-text index."""
    path: str
    score: float
    chunk_ordinal: Optional[int] = None
