"""Splitting long text into bounded chunks at natural boundaries.

Boundaries are tried in order of preference: paragraphs, sentences, then
words. Only words longer than the limit are ever cut mid-word.
"""

import re
from typing import List, Optional

PARAGRAPH_SEPARATOR = "\n\n"
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def chunk_text(text: str, max_chunk_size: int, force_chunking: bool = False) -> List[str]:
    """Split text into chunks of at most ``max_chunk_size`` characters.

    Args:
        text: Text to split
        max_chunk_size: Maximum chunk length in characters
        force_chunking: Split even when the whole text already fits

    Returns:
        Ordered list of chunks
    """
    if max_chunk_size <= 0:
        raise ValueError(f"Chunk size must be positive, got {max_chunk_size}")

    trimmed = text.strip()
    if not force_chunking and len(trimmed) <= max_chunk_size:
        return [trimmed]

    paragraphs = [p.strip() for p in trimmed.split(PARAGRAPH_SEPARATOR) if p.strip()]
    chunks = _pack_units(paragraphs, max_chunk_size, PARAGRAPH_SEPARATOR)
    if chunks:
        return chunks

    sentences = [s.strip() for s in _SENTENCE_BOUNDARY.split(trimmed) if s.strip()]
    chunks = _pack_units(sentences, max_chunk_size, " ")
    if chunks:
        return chunks

    return _chunk_by_words(trimmed, max_chunk_size)


def _pack_units(units: List[str], max_chunk_size: int, separator: str) -> Optional[List[str]]:
    """Greedily join units into chunks.

    Returns None when there is only one unit or any unit alone is too
    large, so the caller can try a finer boundary.
    """
    if len(units) <= 1 or any(len(unit) > max_chunk_size for unit in units):
        return None

    chunks = []
    current: List[str] = []
    current_size = 0
    for unit in units:
        separator_size = len(separator) if current else 0
        if current_size + separator_size + len(unit) <= max_chunk_size:
            current.append(unit)
            current_size += separator_size + len(unit)
        else:
            chunks.append(separator.join(current))
            current = [unit]
            current_size = len(unit)

    if current:
        chunks.append(separator.join(current))
    return chunks or None


def _chunk_by_words(text: str, max_chunk_size: int) -> List[str]:
    chunks = []
    current: List[str] = []
    current_size = 0

    for word in text.split():
        if len(word) > max_chunk_size:
            if current:
                chunks.append(" ".join(current))
                current = []
                current_size = 0
            chunks.extend(word[i:i + max_chunk_size] for i in range(0, len(word), max_chunk_size))
            continue

        separator_size = 1 if current else 0
        if current_size + separator_size + len(word) <= max_chunk_size:
            current.append(word)
            current_size += separator_size + len(word)
        else:
            if current:
                chunks.append(" ".join(current))
            current = [word]
            current_size = len(word)

    if current:
        chunks.append(" ".join(current))
    return chunks
