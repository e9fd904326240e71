"""
Chunking — split extracted document text into bounded fragments.

Public surface
--------------
- :class:`TextChunker` — main entry point (``chunk_text``).
- :class:`ChunkingConfig` — bounds for one pass; presets in :mod:`.presets`.
- :class:`TextChunk`, :class:`ChunkMetadata` — immutable chunk models.
- :class:`TokenEstimator` — replaceable token counting strategy.
"""

from doc_vectorizer.chunking.chunker import TextChunker, chunk_text
from doc_vectorizer.chunking.models import ChunkingStats, ChunkMetadata, ChunkType, TextChunk
from doc_vectorizer.chunking.presets import ChunkingConfig, FileCategory, categorize
from doc_vectorizer.chunking.tokens import HeuristicTokenEstimator, TokenEstimator

__all__ = [
    "ChunkMetadata",
    "ChunkType",
    "ChunkingConfig",
    "ChunkingStats",
    "FileCategory",
    "HeuristicTokenEstimator",
    "TextChunk",
    "TextChunker",
    "TokenEstimator",
    "categorize",
    "chunk_text",
]
