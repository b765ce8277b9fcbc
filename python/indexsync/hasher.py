"""
Hasher - Content fingerprints using xxHash.

Fingerprints are computed over the trimmed extracted text, not the raw
file bytes, so two documents with the same text share a fingerprint
regardless of path or trailing whitespace.
"""

import xxhash


def fingerprint(text: str) -> str:
    """
    Compute the fingerprint of a document's text.

    Uses the 128-bit XXH3 variant so collisions are negligible for
    change-detection purposes.

    Args:
        text: Extracted document text (trimmed here)

    Returns:
        32-character hex digest
    """
    return xxhash.xxh3_128_hexdigest(text.strip().encode("utf-8"))

