"""
Classification - Map raw change notifications to index operations.

Also holds the relevance rules that decide whether a path belongs in
the semantic index at all. Relevance is checked before any file I/O
other than the existence check for upserts.
"""

import logging
from pathlib import Path
from typing import List

from .config import SyncConfig
from .models import ChangeKind, IndexOperation, OperationKind, RawChangeNotification


logger = logging.getLogger(__name__)


_OPERATION_FOR_KIND = {
    ChangeKind.CREATED: OperationKind.UPSERT,
    ChangeKind.MODIFIED_CONTENT: OperationKind.UPSERT,
    ChangeKind.RENAMED_TO: OperationKind.UPSERT,
    ChangeKind.REMOVED: OperationKind.DELETE,
    ChangeKind.RENAMED_FROM: OperationKind.DELETE,
}


def classify(notification: RawChangeNotification) -> List[IndexOperation]:
    """
    Derive one operation per affected path.

    Ignored kinds are logged and produce no operations.
    """
    kind = _OPERATION_FOR_KIND.get(notification.kind, OperationKind.IGNORE)

    if kind == OperationKind.IGNORE:
        logger.debug(f"Ignoring event kind: {notification.kind.value}")
        return []

    return [IndexOperation(kind, Path(p)) for p in notification.paths]


def _is_hidden(path: Path, config: SyncConfig) -> bool:
    return path.name.startswith(config.hidden_prefix)


def is_relevant_file(path: Path, config: SyncConfig) -> bool:
    """
    Relevance for deletes: hidden-file and extension rules only.

    The file is already gone, so existence cannot be checked.
    """
    if _is_hidden(path, config):
        return False
    return config.is_supported_extension(path)


def is_relevant_file_for_upsert(path: Path, config: SyncConfig) -> bool:
    """Relevance for upserts: the delete rules, and the path must be a regular file now."""
    if not is_relevant_file(path, config):
        return False
    return path.is_file()
