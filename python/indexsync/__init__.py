"""
IndexSync Package - Keep a full-text index and a vector index in sync with a folder.

Modules:
    - config: Centralized configuration
    - watcher: Watch lifecycle (watchdog) feeding the event loop
    - processor: Event loop state machine and per-path pipelines
    - classifier: Notification -> index operation mapping, relevance rules
    - extractor: Text extraction (pdftotext CLI, docx, plain text) + language
    - hasher: xxHash fingerprints of extracted text
    - chunker: Overlapping passage chunks
    - embedder: Language-routed embedding models
    - indexer: SQLite vector store
    - fulltext: SQLite FTS5 full-text index
    - coordinator: Applies upserts/deletes to both indexes
    - orchestrator: Main entry point

Sync Flow:
    Watch → Classify → Extract → Fingerprint → Embed → Upsert/Delete

Usage:
    from indexsync import Orchestrator

    orchestrator = Orchestrator()
    await orchestrator.start_watch("~/Documents")
"""

from .orchestrator import Orchestrator

__all__ = ["Orchestrator"]
