"""
Chunker - Split passage text into bounded, overlapping segments.

Each segment is small enough to be embedded in one model call and is
prefixed with the model's passage marker.
"""

from typing import List

from .config import get_config, SyncConfig


def chunk_text(
    text: str,
    role_prefix: str = "",
    chunk_size: int = 1000,
    overlap: int = 200,
) -> List[str]:
    """
    Split text into overlapping chunks.

    Uses a sliding window of `chunk_size` characters advancing by
    `chunk_size - overlap`. Whitespace-only windows are dropped.

    Args:
        text: Passage text
        role_prefix: Marker prepended to every chunk (e.g. "passage: ")
        chunk_size: Maximum characters per chunk, excluding the prefix
        overlap: Characters shared by consecutive chunks

    Returns:
        Prefixed chunks in document order (empty for blank text)
    """
    if overlap >= chunk_size:
        raise ValueError("overlap must be smaller than chunk_size")

    if not text.strip():
        return []

    if len(text) <= chunk_size:
        return [f"{role_prefix}{text.strip()}"]

    chunks = []
    pos = 0

    while pos < len(text):
        end = pos + chunk_size
        chunk = text[pos:end].strip()

        if chunk:
            chunks.append(f"{role_prefix}{chunk}")

        # Last window reached the end of the text
        if end >= len(text):
            break

        pos = end - overlap

    return chunks


class Chunker:
    """Chunker bound to the configured window size."""

    def __init__(self, config: SyncConfig | None = None):
        self.config = config or get_config()

    def chunk(self, text: str, role_prefix: str = "") -> List[str]:
        return chunk_text(
            text,
            role_prefix,
            chunk_size=self.config.chunk_size,
            overlap=self.config.chunk_overlap,
        )
