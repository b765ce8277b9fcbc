"""
Error Handling - Exception taxonomy and logging policies.

Every per-path failure in the sync pipeline is contained to that path:
it is logged here according to its policy and reported as a failed
Observation. Watcher lifecycle errors are raised to the caller instead.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)


class IndexSyncError(Exception):
    """Base exception for index sync errors."""
    pass


# --- Embedding ---

class EmbeddingError(IndexSyncError):
    """Error raised by the embedding router."""
    pass


class InitializationError(EmbeddingError):
    """The embedding model never became usable (permanent until restart)."""
    pass


class GenerationError(EmbeddingError):
    """A single embedding call failed; the model itself is usable."""
    pass


# --- Extraction ---

class ExtractionError(IndexSyncError):
    """Document could not be read or parsed."""
    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Text extraction failed: {reason}")


# --- Storage ---

class StoreError(IndexSyncError):
    """Vector store or full-text index backend failure."""
    pass


class RecordNotFoundError(StoreError):
    """No entry exists for the given path."""
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Record not found: {path}")


# --- Watcher lifecycle ---

class WatcherError(IndexSyncError):
    """Base exception for watch lifecycle errors."""
    pass


class WatcherAlreadyRunningError(WatcherError):
    """A watch is already active."""
    def __init__(self, message: str = "File watcher is already running. Stop it first."):
        super().__init__(message)


class WatcherNotRunningError(WatcherError):
    """No watch is active."""
    def __init__(self, message: str = "File watcher is not running"):
        super().__init__(message)


class WatcherCreationError(WatcherError):
    """The file-system observer could not be created."""
    pass


class PathWatchError(WatcherError):
    """The requested path could not be watched."""
    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Failed to watch path '{path}': {reason}")


@dataclass
class ErrorPolicy:
    """How a specific error type is logged."""
    log_level: int
    message_template: str = "{file}: {error}"


# Error type to policy mapping (first isinstance match wins)
ERROR_POLICIES: dict[type, ErrorPolicy] = {
    ExtractionError: ErrorPolicy(
        log_level=logging.ERROR,
        message_template="Error indexing {file}: {error}"
    ),
    InitializationError: ErrorPolicy(
        log_level=logging.ERROR,
        message_template="Embedding model unavailable for {file}: {error}"
    ),
    GenerationError: ErrorPolicy(
        log_level=logging.ERROR,
        message_template="Embedding generation failed for {file}: {error}"
    ),
    StoreError: ErrorPolicy(
        log_level=logging.ERROR,
        message_template="Index write failed for {file}: {error}"
    ),
    PermissionError: ErrorPolicy(
        log_level=logging.WARNING,
        message_template="Permission denied: {file}"
    ),
    FileNotFoundError: ErrorPolicy(
        log_level=logging.DEBUG,
        message_template="File not found (possibly deleted): {file}"
    ),
    UnicodeDecodeError: ErrorPolicy(
        log_level=logging.DEBUG,
        message_template="Cannot decode file (binary?): {file}"
    ),
    IsADirectoryError: ErrorPolicy(
        log_level=logging.DEBUG,
        message_template="Expected file, got directory: {file}"
    ),
    OSError: ErrorPolicy(
        log_level=logging.WARNING,
        message_template="OS error reading file: {file} - {error}"
    ),
}


def handle_error(
    error: Exception,
    file_path: Optional[Path] = None,
    context: str = ""
) -> str:
    """
    Log an error according to the defined policies.

    Args:
        error: The exception that occurred
        file_path: Path to the file being processed (if applicable)
        context: Additional context for logging

    Returns:
        Human-readable message, suitable for an Observation
    """
    policy = None
    for error_type, p in ERROR_POLICIES.items():
        if isinstance(error, error_type):
            policy = p
            break

    if policy is None:
        policy = ErrorPolicy(
            log_level=logging.ERROR,
            message_template="Unexpected error: {file} - {error}"
        )

    file_str = str(file_path) if file_path else "<unknown>"
    message = policy.message_template.format(file=file_str, error=str(error))

    logger.log(policy.log_level, f"[{context}] {message}" if context else message)

    return message
