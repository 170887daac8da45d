"""Document chunker - fixed-size overlapping character windows."""

from policyrag.errors import EmptyDocumentText
from policyrag.models.docs import TextChunk

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_OVERLAP = 100


def chunk_text(
    text: str,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> list[TextChunk]:
    """Split normalized text into overlapping windows.

    Pure function with no I/O or randomness. Window starts are
    0, step, 2*step, ... where step = chunk_size - overlap; emission stops
    once a start reaches the text length, so the last window always ends at
    the end of the text.

    Args:
        text: Normalized document text
        chunk_size: Window length in characters (default 1000)
        overlap: Characters shared by consecutive windows (default 100)

    Returns:
        Non-empty list of TextChunk with dense 0-based indices

    Raises:
        ValueError: If chunk_size <= overlap or overlap < 0
        EmptyDocumentText: If text is empty or whitespace-only
    """
    if overlap < 0 or chunk_size <= overlap:
        raise ValueError(
            f"chunk_size must exceed overlap >= 0 (got chunk_size={chunk_size}, overlap={overlap})"
        )

    if not text or not text.strip():
        raise EmptyDocumentText("Document text is empty")

    step = chunk_size - overlap
    chunks: list[TextChunk] = []

    start = 0
    while start < len(text):
        chunks.append(TextChunk(content=text[start : start + chunk_size], index=len(chunks)))
        start += step

    return chunks
