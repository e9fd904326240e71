"""Chunking presets by file category and file-size tier."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class FileCategory(str, Enum):
    TEXT = "text"
    MARKDOWN = "markdown"
    CODE = "code"
    DATA = "data"


class ChunkingConfig(BaseModel):
    """Bounds for one chunking pass.

    Attributes
    ----------
    max_tokens:
        Token budget per chunk.  Text that fits is returned whole.
    overlap_tokens:
        Tokens repeated from the end of a chunk at the start of the next.
    min_chunk_size:
        Fragments shorter than this many characters are never emitted
        on their own.
    separators:
        Cut-point candidates, most preferred first.
    preserve_structure:
        Use the markdown / code splitters where the category allows.
    smart_chunking:
        Pick per-category presets and shrink them for large files.
    """

    max_tokens: int = Field(default=1000, gt=0)
    overlap_tokens: int = Field(default=100, ge=0)
    min_chunk_size: int = Field(default=100, ge=0)
    separators: list[str] = Field(default_factory=lambda: list(DEFAULT_SEPARATORS))
    preserve_structure: bool = True
    smart_chunking: bool = True


DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " ")

CATEGORY_PRESETS: dict[FileCategory, dict] = {
    FileCategory.TEXT: {
        "max_tokens": 1000,
        "overlap_tokens": 100,
        "min_chunk_size": 100,
        "separators": list(DEFAULT_SEPARATORS),
    },
    FileCategory.MARKDOWN: {
        "max_tokens": 800,
        "overlap_tokens": 80,
        "min_chunk_size": 50,
        "separators": ["\n## ", "\n### ", "\n\n", "\n", ". ", " "],
    },
    FileCategory.CODE: {
        "max_tokens": 600,
        "overlap_tokens": 50,
        "min_chunk_size": 30,
        "separators": ["\n\n", "\n", "; ", " "],
    },
    FileCategory.DATA: {
        "max_tokens": 500,
        "overlap_tokens": 0,
        "min_chunk_size": 20,
        "separators": ["\n", ",", " "],
    },
}

# (upper bound in bytes, scale factor); the last tier has no bound.
SIZE_TIERS: tuple[tuple[int | None, float], ...] = (
    (100 * 1024, 1.0),
    (1024 * 1024, 0.85),
    (10 * 1024 * 1024, 0.7),
    (None, 0.5),
)

_MARKDOWN_TYPES = {"md", "markdown", "mdx", "text/markdown", "text/x-markdown"}
_CODE_TYPES = {
    "py", "js", "jsx", "ts", "tsx", "java", "go", "rs", "c", "h", "cpp", "hpp",
    "cs", "rb", "php", "swift", "kt", "scala", "sh",
    "text/x-python", "application/javascript", "text/javascript",
    "application/typescript", "text/x-java-source", "text/x-go", "text/x-c",
}
_DATA_TYPES = {
    "csv", "tsv", "json", "jsonl", "ndjson", "xml", "yaml", "yml",
    "text/csv", "text/tab-separated-values", "application/json",
    "application/x-ndjson", "application/xml", "text/xml", "application/x-yaml",
}


def categorize(file_type: str | None) -> FileCategory:
    """Map an extension, file name or MIME type to a :class:`FileCategory`.

    >>> categorize("README.md")
    <FileCategory.MARKDOWN: 'markdown'>
    """
    if not file_type:
        return FileCategory.TEXT
    key = file_type.strip().lower().split(";")[0]
    if "/" not in key and "." in key:
        key = key.rsplit(".", 1)[1]
    if key in _MARKDOWN_TYPES:
        return FileCategory.MARKDOWN
    if key in _CODE_TYPES:
        return FileCategory.CODE
    if key in _DATA_TYPES:
        return FileCategory.DATA
    return FileCategory.TEXT


def size_factor(file_size: int | None) -> float:
    """Scale factor for the size tier *file_size* (bytes) falls in."""
    if not file_size or file_size <= 0:
        return 1.0
    for bound, factor in SIZE_TIERS:
        if bound is None or file_size < bound:
            return factor
    return SIZE_TIERS[-1][1]


def smart_config(
    base: ChunkingConfig,
    category: FileCategory,
    file_size: int | None = None,
) -> ChunkingConfig:
    """Return *base* overlaid with the preset for *category*, scaled by size tier.

    The preset never raises the bounds of *base*, it only tightens them:
    token window, overlap and ``min_chunk_size`` each take the smaller of
    the two values.
    """
    preset = CATEGORY_PRESETS[category]
    factor = size_factor(file_size)
    max_tokens = max(1, int(min(preset["max_tokens"], base.max_tokens) * factor))
    overlap = int(min(preset["overlap_tokens"], base.overlap_tokens) * factor)
    return base.model_copy(
        update={
            "max_tokens": max_tokens,
            # overlap must stay below half a window or the scan cannot advance
            "overlap_tokens": max(0, min(overlap, max_tokens // 2 - 1)),
            "min_chunk_size": min(preset["min_chunk_size"], base.min_chunk_size),
            "separators": list(preset["separators"]),
        }
    )
