"""Text chunker — turns extracted document text into ordered chunks."""

from __future__ import annotations

import logging

from doc_vectorizer.chunking.models import ChunkingStats, ChunkMetadata, ChunkType, TextChunk
from doc_vectorizer.chunking.presets import ChunkingConfig, FileCategory, categorize, smart_config
from doc_vectorizer.chunking.splitters import Span, split_code, split_markdown, split_region
from doc_vectorizer.chunking.tokens import HeuristicTokenEstimator, TokenEstimator
from doc_vectorizer.config import Settings

logger = logging.getLogger(__name__)

_CATEGORY_TYPES = {
    FileCategory.TEXT: ChunkType.TEXT,
    FileCategory.MARKDOWN: ChunkType.MARKDOWN,
    FileCategory.CODE: ChunkType.CODE,
    FileCategory.DATA: ChunkType.DATA,
}


class TextChunker:
    """Split text into bounded, position-tracked chunks.

    Parameters
    ----------
    config:
        Base bounds.  ``config.max_tokens`` is also the threshold under
        which a document is returned as a single chunk.
    estimator:
        Token counting strategy; defaults to :class:`HeuristicTokenEstimator`.

    Usage::

        chunker = TextChunker(ChunkingConfig(max_tokens=500))
        chunks = chunker.chunk_text(text, file_type="md", file_size=len(raw))
    """

    def __init__(
        self,
        config: ChunkingConfig | None = None,
        *,
        estimator: TokenEstimator | None = None,
    ) -> None:
        self.config = config or ChunkingConfig()
        self.estimator = estimator or HeuristicTokenEstimator()

    @classmethod
    def from_settings(cls, settings: Settings, *, estimator: TokenEstimator | None = None) -> TextChunker:
        config = ChunkingConfig(
            max_tokens=settings.max_chunk_size,
            overlap_tokens=settings.chunk_overlap,
            min_chunk_size=settings.min_chunk_size,
            preserve_structure=settings.preserve_structure,
            smart_chunking=settings.smart_chunking,
        )
        return cls(config, estimator=estimator)

    # -- public API -----------------------------------------------------------

    def chunk_text(
        self,
        text: str,
        file_type: str | None = None,
        file_size: int | None = None,
    ) -> list[TextChunk]:
        """Split *text* into chunks.

        Parameters
        ----------
        text:
            Full extracted document text.
        file_type:
            Extension, file name or MIME type; selects the preset and the
            structure-aware splitter.
        file_size:
            Size of the source file in bytes; larger files get smaller
            chunks.  Defaults to the UTF-8 length of *text*.

        Returns
        -------
        list[TextChunk]
            Chunks ordered by ``index``; empty for blank input.
        """
        if not text or not text.strip():
            return []

        total_tokens = self.estimator.estimate(text)
        if total_tokens <= self.config.max_tokens:
            return [
                TextChunk(
                    index=0,
                    content=text,
                    token_count=total_tokens,
                    start_position=0,
                    end_position=len(text),
                    metadata=ChunkMetadata(type=ChunkType.FULL),
                )
            ]

        category = categorize(file_type)
        if file_size is None:
            file_size = len(text.encode("utf-8"))
        config = (
            smart_config(self.config, category, file_size)
            if self.config.smart_chunking
            else self.config
        )

        spans = self._split(text, category, config)
        chunks = [
            TextChunk(
                index=i,
                content=text[span.start : span.end],
                token_count=self.estimator.estimate(text[span.start : span.end]),
                start_position=span.start,
                end_position=span.end,
                metadata=span.metadata,
            )
            for i, span in enumerate(spans)
        ]

        logger.info(
            "Chunked %s text (%d tokens est.) into %d chunks | max_tokens=%d overlap=%d",
            category.value, total_tokens, len(chunks), config.max_tokens, config.overlap_tokens,
        )
        return chunks

    @staticmethod
    def chunk_stats(chunks: list[TextChunk]) -> ChunkingStats:
        """Summarise a chunking pass."""
        if not chunks:
            return ChunkingStats()
        counts = [c.token_count for c in chunks]
        return ChunkingStats(
            total_chunks=len(chunks),
            total_tokens=sum(counts),
            avg_tokens=sum(counts) / len(counts),
            min_tokens=min(counts),
            max_tokens=max(counts),
            total_chars=sum(c.char_count for c in chunks),
        )

    # -- internals ------------------------------------------------------------

    def _split(self, text: str, category: FileCategory, config: ChunkingConfig) -> list[Span]:
        if config.preserve_structure:
            if category is FileCategory.MARKDOWN:
                return split_markdown(text, config, self.estimator)
            if category is FileCategory.CODE:
                return split_code(text, config, self.estimator)
        meta = ChunkMetadata(type=_CATEGORY_TYPES[category])
        return split_region(text, 0, len(text), config, meta)


def chunk_text(
    text: str,
    file_type: str | None = None,
    file_size: int | None = None,
    *,
    config: ChunkingConfig | None = None,
) -> list[TextChunk]:
    """Convenience wrapper around :meth:`TextChunker.chunk_text`."""
    return TextChunker(config).chunk_text(text, file_type, file_size)
