"""Domain models produced by the text chunker."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ChunkType(str, Enum):
    """How a chunk was produced."""

    FULL = "full"
    TEXT = "text"
    MARKDOWN = "markdown"
    CODE = "code"
    DATA = "data"


class ChunkMetadata(BaseModel):
    """Structural information attached to a chunk.

    Attributes
    ----------
    type:
        Which splitter produced the chunk.
    heading:
        Nearest enclosing markdown heading (markdown chunks only).
    level:
        Heading depth, ``1`` for ``#`` … ``6`` for ``######``.
    is_new_section:
        ``True`` for the first chunk of a markdown section.
    declaration:
        Name of the first top-level declaration in a code chunk.
    extra:
        Free-form string attributes for callers that need more.
    """

    model_config = ConfigDict(frozen=True)

    type: ChunkType = ChunkType.TEXT
    heading: str | None = None
    level: int | None = None
    is_new_section: bool = False
    declaration: str | None = None
    extra: dict[str, str] = Field(default_factory=dict)


class TextChunk(BaseModel):
    """A bounded fragment of a source document.

    ``content`` is always ``source[start_position:end_position]``.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    content: str
    token_count: int = Field(ge=0)
    start_position: int = Field(ge=0)
    end_position: int = Field(ge=0)
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)

    @property
    def char_count(self) -> int:
        return len(self.content)


class ChunkingStats(BaseModel):
    """Summary numbers for one chunking pass."""

    total_chunks: int = 0
    total_tokens: int = 0
    avg_tokens: float = 0.0
    min_tokens: int = 0
    max_tokens: int = 0
    total_chars: int = 0
