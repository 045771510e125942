"""
Chunking Package

Pure text utilities: the recursive chunker and the content normalizer that
runs before it.
"""

from .chunker import (
    Chunk,
    DEFAULT_CHUNK_OVERLAP,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_SEPARATORS,
    chunk_content,
    estimate_tokens,
    format_chunk_title,
    needs_chunking,
)
from .preprocessing import needs_preprocessing, preprocess_content

__all__ = [
    "Chunk",
    "DEFAULT_CHUNK_OVERLAP",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_SEPARATORS",
    "chunk_content",
    "estimate_tokens",
    "format_chunk_title",
    "needs_chunking",
    "needs_preprocessing",
    "preprocess_content",
]
