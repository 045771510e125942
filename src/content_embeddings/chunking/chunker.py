"""
Text Chunker

Splits long-form text into ordered, overlapping chunks suitable for
embedding. Splitting happens at the coarsest boundary that keeps each piece
within the size budget: paragraphs first, then lines, sentences, clauses,
words and finally raw characters.

Key Properties
--------------
- Pure and deterministic: no I/O, no shared mutable state between calls
- Lossless raw spans: concatenating the pre-overlap spans described by
  ``start_offset`` / ``end_offset`` reproduces the trimmed input exactly
- Contiguous indices: ``chunk_index`` is always ``0..n-1``

Sizing
------
Pieces are packed against a budget of ``max_size - overlap`` and the
overlap is then prepended, so every chunk fits within ``max_size`` as long as
``max_size > overlap``. A ``max_size <= overlap`` is a caller configuration
error: it is not rejected, but it collapses the budget and degrades to
one-character chunks that each carry the full overlap.
"""

from __future__ import annotations

import logging
import math
from typing import List, Sequence

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger("embeddings.chunker")


DEFAULT_CHUNK_SIZE = 4000
DEFAULT_CHUNK_OVERLAP = 200

# Coarsest to finest. The empty string means "split into characters".
DEFAULT_SEPARATORS: Sequence[str] = (
    "\n\n",
    "\n",
    ". ",
    "! ",
    "? ",
    "; ",
    ", ",
    " ",
    "",
)


# ---------------------------------------------------------------------
# Data Model
# ---------------------------------------------------------------------

class Chunk(BaseModel):
    """
    A single chunk of a larger text.

    Offsets describe the raw (pre-overlap) span in the trimmed source text and
    are informational only; overlap is not marked, so chunks cannot be
    losslessly stitched back together from ``text`` alone.
    """

    text: str
    chunk_index: int = Field(..., ge=0)
    total_chunks: int = Field(..., ge=1)
    start_offset: int = Field(..., ge=0)
    end_offset: int = Field(..., ge=0)
    estimated_tokens: int = Field(..., ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def is_grouped(self) -> bool:
        """True when this chunk is one of several (not a singleton)."""
        return self.total_chunks > 1


# ---------------------------------------------------------------------
# Public Helpers
# ---------------------------------------------------------------------

def estimate_tokens(text: str) -> int:
    """
    Estimate token count from character count (~4 characters per token).
    """
    return math.ceil(len(text) / 4)


def needs_chunking(content: str, max_chars: int = DEFAULT_CHUNK_SIZE) -> bool:
    """
    Return True when ``content`` exceeds the chunking threshold.
    """
    return len(content) > max_chars


def format_chunk_title(base_title: str, chunk_index: int, total_chunks: int) -> str:
    """
    Suffix a title with ``[Part i/N]`` when it belongs to a multi-chunk group.
    """
    if total_chunks == 1:
        return base_title
    return f"{base_title} [Part {chunk_index + 1}/{total_chunks}]"


# ---------------------------------------------------------------------
# Internal Splitting
# ---------------------------------------------------------------------

def _split_keeping_separator(text: str, separator: str) -> List[str]:
    """
    Split ``text`` on ``separator``, keeping the separator at the end of each
    piece so that ``"".join(result) == text``.
    """
    if separator == "":
        return list(text)

    parts = text.split(separator)
    pieces: List[str] = [part + separator for part in parts[:-1]]
    if parts[-1]:
        pieces.append(parts[-1])
    return pieces


def _force_slice(text: str, budget: int) -> List[str]:
    step = max(budget, 1)
    return [text[i : i + step] for i in range(0, len(text), step)]


def _split_text(text: str, budget: int, separators: Sequence[str]) -> List[str]:
    """
    Recursively split ``text`` into pieces no longer than ``budget``.

    Returns a fresh list on every call; nothing is shared across calls.
    """
    if len(text) <= budget:
        return [text]

    separator = separators[-1]
    for candidate in separators:
        if candidate in text:
            separator = candidate
            break

    remaining = separators[separators.index(separator) + 1 :]

    chunks: List[str] = []
    buffer: List[str] = []
    buffer_len = 0

    for piece in _split_keeping_separator(text, separator):
        if buffer_len + len(piece) <= budget:
            buffer.append(piece)
            buffer_len += len(piece)
            continue

        if buffer:
            chunks.append("".join(buffer))
        buffer, buffer_len = [], 0

        if len(piece) > budget:
            if remaining:
                chunks.extend(_split_text(piece, budget, remaining))
            else:
                chunks.extend(_force_slice(piece, budget))
        else:
            buffer, buffer_len = [piece], len(piece)

    if buffer:
        chunks.append("".join(buffer))

    return chunks


def _with_overlap(raw_chunks: Sequence[str], overlap: int) -> List[str]:
    """
    Prefix every chunk after the first with the tail of its raw predecessor.
    """
    if overlap <= 0 or len(raw_chunks) <= 1:
        return list(raw_chunks)

    result = [raw_chunks[0]]
    for previous, current in zip(raw_chunks, raw_chunks[1:]):
        result.append(previous[-overlap:] + current)
    return result


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def chunk_content(
    content: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
) -> List[Chunk]:
    """
    Split content into chunks suitable for embedding.

    Parameters
    ----------
    content : str
        Text to split. Leading/trailing whitespace is ignored.

    chunk_size : int
        Maximum characters per chunk (~1000 tokens at the default).

    chunk_overlap : int
        Characters of the previous raw chunk prepended to each following chunk.

    separators : Sequence[str]
        Boundaries to try, coarsest first. Should end with ``""`` so that
        unbroken runs can always be split.

    Returns
    -------
    List[Chunk]
        Ordered chunks; empty when the content is blank.
    """
    clean = content.strip()
    if not clean:
        return []

    if len(clean) <= chunk_size:
        return [
            Chunk(
                text=clean,
                chunk_index=0,
                total_chunks=1,
                start_offset=0,
                end_offset=len(clean),
                estimated_tokens=estimate_tokens(clean),
            )
        ]

    budget = chunk_size - chunk_overlap
    if budget <= 0:
        logger.warning(
            "chunk_size (%d) <= chunk_overlap (%d); falling back to character-level chunks",
            chunk_size,
            chunk_overlap,
        )

    raw_chunks = _split_text(clean, budget, separators)
    overlapped = _with_overlap(raw_chunks, chunk_overlap)

    # (text, start, end) for chunks that survive trimming
    spans = []
    offset = 0
    for raw, text in zip(raw_chunks, overlapped):
        stripped = text.strip()
        if stripped:
            spans.append((stripped, offset, offset + len(raw)))
        offset += len(raw)

    total = len(spans)
    return [
        Chunk(
            text=text,
            chunk_index=index,
            total_chunks=total,
            start_offset=start,
            end_offset=end,
            estimated_tokens=estimate_tokens(text),
        )
        for index, (text, start, end) in enumerate(spans)
    ]
