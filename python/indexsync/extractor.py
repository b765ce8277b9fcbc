"""
Extractor - Text extraction from various file formats.

Uses the pdftotext CLI for PDFs (5-10x faster than pypdf) with fallback
to pure Python libraries when CLI tools are unavailable. The extracted
text is tagged with a detected language so the embedding router can
pick a model.
"""

import logging
import shutil
import subprocess
from pathlib import Path

from .config import get_config, SyncConfig
from .errors import ExtractionError
from .models import ExtractedDocument, Language


logger = logging.getLogger(__name__)


# Check for pdftotext availability at module load
_PDFTOTEXT_AVAILABLE = shutil.which("pdftotext") is not None
if not _PDFTOTEXT_AVAILABLE:
    logger.info(
        "pdftotext not found, falling back to pypdf for PDF extraction. "
        "Install with: brew install poppler"
    )

# Ethiopic, Ethiopic Supplement, Ethiopic Extended (-A)
_ETHIOPIC_RANGES = (
    (0x1200, 0x139F),
    (0x2D80, 0x2DDF),
    (0xAB00, 0xAB2F),
)


def _is_ethiopic(char: str) -> bool:
    code = ord(char)
    return any(lo <= code <= hi for lo, hi in _ETHIOPIC_RANGES)


def detect_language(text: str, sample_size: int = 4000) -> Language:
    """
    Detect the dominant script of a text.

    Looks at the letters of the first `sample_size` characters: Ethiopic
    script majority means Amharic, ASCII letters majority means English,
    anything else is Other.
    """
    letters = [c for c in text[:sample_size] if c.isalpha()]
    if not letters:
        return Language.OTHER

    ethiopic = sum(1 for c in letters if _is_ethiopic(c))
    ascii_letters = sum(1 for c in letters if c.isascii())

    if ethiopic * 2 >= len(letters):
        return Language.AMHARIC
    if ascii_letters * 2 > len(letters):
        return Language.ENGLISH
    return Language.OTHER


class Extractor:
    """
    Plain-text extractor for supported document types.

    `extract()` is synchronous; the processor runs it in a worker thread.
    """

    def __init__(self, config: SyncConfig | None = None):
        self.config = config or get_config()

    def extract(self, path: Path) -> ExtractedDocument:
        """
        Extract text and language from a file.

        Raises:
            ExtractionError: If the file is unsupported, unreadable or unparsable
        """
        path = Path(path)
        ext = path.suffix.lower()

        if not self.config.is_supported_extension(path):
            raise ExtractionError(path, f"unsupported extension '{ext}'")

        try:
            if ext == ".pdf":
                text = self._extract_pdf(path)
            elif ext == ".docx":
                text = self._extract_docx(path)
            else:
                text = self._extract_text(path)
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(path, str(e)) from e

        return ExtractedDocument(text=text, language=detect_language(text))

    def _extract_pdf(self, path: Path) -> str:
        """
        Extract text from PDF using pdftotext CLI (fast) or pypdf (fallback).
        """
        if _PDFTOTEXT_AVAILABLE:
            return self._extract_pdf_cli(path)
        return self._extract_pdf_pypdf(path)

    def _extract_pdf_cli(self, path: Path) -> str:
        """Extract PDF text using pdftotext CLI."""
        try:
            result = subprocess.run(
                ["pdftotext", "-layout", "-nopgbrk", str(path), "-"],
                capture_output=True,
                text=True,
                timeout=30,
            )
        except subprocess.TimeoutExpired:
            raise ExtractionError(path, "pdftotext timed out")

        if result.returncode == 0:
            return result.stdout
        logger.debug(f"pdftotext failed for {path.name}: {result.stderr}")
        return self._extract_pdf_pypdf(path)

    def _extract_pdf_pypdf(self, path: Path) -> str:
        """Extract PDF text using pypdf (pure Python fallback)."""
        from pypdf import PdfReader

        reader = PdfReader(str(path))
        text_parts = []
        for page in reader.pages:
            if text := page.extract_text():
                text_parts.append(text)
        return "\n".join(text_parts)

    def _extract_docx(self, path: Path) -> str:
        """Extract text from Word document."""
        from docx import Document

        doc = Document(str(path))
        return "\n".join(p.text for p in doc.paragraphs if p.text)

    def _extract_text(self, path: Path) -> str:
        """Read plain text file."""
        return path.read_text(encoding="utf-8", errors="replace")
