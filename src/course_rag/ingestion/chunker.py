"""Fixed-window text chunking with overlap."""

from __future__ import annotations

from course_rag.config import settings
from course_rag.errors import InvalidInput


def chunk_text(
    text: str,
    max_len: int = settings.chunk_max_len,
    overlap: int = settings.chunk_overlap,
) -> list[str]:
    """Split *text* into overlapping character windows.

    Windows start at offsets ``0, step, 2*step, …`` where
    ``step = max_len - overlap`` and each one is ``text[offset:offset + max_len]``.
    Emission stops once the offset reaches the end of the text, so every
    character is covered and consecutive chunks share ``overlap`` characters
    (the last one may share fewer when it is shorter than the window).

    Parameters
    ----------
    text:
        Source text. An empty string yields a single empty chunk.
    max_len:
        Maximum number of characters per chunk.
    overlap:
        Number of characters repeated at the start of each following chunk.

    Returns
    -------
    list[str]
        Chunks in left-to-right order; index ``i`` is chunk ``i`` of the document.
    """
    if max_len <= 0:
        raise InvalidInput(f"max_len must be positive, got {max_len}")
    if overlap < 0 or overlap >= max_len:
        raise InvalidInput(f"overlap must satisfy 0 <= overlap < max_len, got {overlap}")

    if not text:
        return [""]

    step = max_len - overlap
    return [text[offset : offset + max_len] for offset in range(0, len(text), step)]
