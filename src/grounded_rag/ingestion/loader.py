"""Text extraction — the seam between uploaded bytes and the chunker.

Binary formats (PDF, DOCX, XLSX) are handled by platform-specific
extractors plugged in behind :class:`TextExtractor`; only plain-text
formats are decoded here.
"""

from __future__ import annotations

from typing import Protocol

from grounded_rag.errors import ExtractionError

PLAIN_TEXT_TYPES = frozenset({"TXT", "MD", "JSON", "CSV"})


class TextExtractor(Protocol):
    def extract(self, data: bytes, type_hint: str) -> str: ...


class PlainTextExtractor:
    """Decode UTF-8 text files; reject everything else."""

    def __init__(self, supported: frozenset[str] = PLAIN_TEXT_TYPES) -> None:
        self.supported = supported

    def extract(self, data: bytes, type_hint: str) -> str:
        """Return the text of *data*.

        Parameters
        ----------
        data:
            Raw file bytes.
        type_hint:
            Upper-cased file extension, e.g. ``"MD"``.
        """
        kind = type_hint.upper()
        if kind not in self.supported:
            raise ExtractionError(f"Unsupported file type: .{type_hint.lower()}")
        return data.decode("utf-8", errors="replace")
