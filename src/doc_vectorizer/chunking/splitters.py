"""Splitting strategies.

Every splitter works on absolute offsets into the original text and
returns :class:`Span` objects; the chunker turns spans into
:class:`~doc_vectorizer.chunking.models.TextChunk` objects.  Spans never
copy text, so positions stay exact.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from doc_vectorizer.chunking.models import ChunkMetadata, ChunkType
from doc_vectorizer.chunking.presets import ChunkingConfig
from doc_vectorizer.chunking.tokens import TokenEstimator, tokens_to_chars


@dataclass
class Span:
    """A ``[start, end)`` region of the source text plus its metadata."""

    start: int
    end: int
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)


# ---------------------------------------------------------------------------
# Generic separator-based splitting
# ---------------------------------------------------------------------------


def find_cut(text: str, start: int, limit: int, separators: list[str]) -> int:
    """Return the best cut position in ``text[start:limit]``.

    Separators are tried in order; the first one occurring in the second
    half of the window wins, at its latest occurrence.  The cut lands
    just after the separator.  Without any candidate the window is cut
    hard at *limit*.
    """
    midpoint = start + (limit - start) // 2
    for sep in separators:
        if not sep:
            continue
        idx = text.rfind(sep, midpoint, limit)
        if idx != -1 and idx + len(sep) > start:
            return idx + len(sep)
    return limit


def split_region(
    text: str,
    start: int,
    end: int,
    config: ChunkingConfig,
    metadata: ChunkMetadata | None = None,
) -> list[Span]:
    """Split ``text[start:end]`` into overlapping windows.

    The first span keeps ``metadata`` as given; later spans get
    ``is_new_section=False``.
    """
    metadata = metadata or ChunkMetadata()
    window = max(1, tokens_to_chars(config.max_tokens))
    overlap = max(0, min(tokens_to_chars(config.overlap_tokens), window // 2 - 1))

    bounds: list[tuple[int, int]] = []
    pos = start
    while pos < end:
        limit = min(pos + window, end)
        cut = end if limit >= end else find_cut(text, pos, limit, config.separators)
        if cut <= pos:
            break
        bounds.append((pos, cut))
        if cut >= end:
            break
        next_pos = cut - overlap
        pos = next_pos if next_pos > pos else cut

    bounds = fold_small(text, bounds, config.min_chunk_size)
    spans = []
    for i, (s, e) in enumerate(bounds):
        meta = metadata if i == 0 else metadata.model_copy(update={"is_new_section": False})
        spans.append(Span(s, e, meta))
    return spans


def fold_small(text: str, bounds: list[tuple[int, int]], min_size: int) -> list[tuple[int, int]]:
    """Merge fragments shorter than *min_size* (or blank) into their predecessor.

    A blank fragment with no predecessor is dropped; a short but
    non-blank one is kept, since there is nothing to merge it into.
    """
    merged: list[tuple[int, int]] = []
    for s, e in bounds:
        piece = text[s:e]
        too_small = len(piece) < min_size or not piece.strip()
        if too_small and merged:
            prev_s, prev_e = merged[-1]
            merged[-1] = (prev_s, max(prev_e, e))
        elif piece.strip():
            merged.append((s, e))
    return merged


# ---------------------------------------------------------------------------
# Markdown
# ---------------------------------------------------------------------------

_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t#]*$")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


@dataclass
class _Section:
    start: int
    end: int
    heading: str | None = None
    level: int | None = None


def _markdown_sections(text: str) -> list[_Section]:
    sections: list[_Section] = [_Section(0, len(text))]
    in_fence = False
    offset = 0
    for line in text.splitlines(keepends=True):
        if _FENCE_RE.match(line):
            in_fence = not in_fence
        elif not in_fence:
            m = _HEADING_RE.match(line.rstrip("\r\n"))
            if m:
                current = sections[-1]
                if offset == current.start:
                    # heading at the very start of the current section
                    current.heading, current.level = m.group(2).strip(), len(m.group(1))
                else:
                    current.end = offset
                    sections.append(
                        _Section(offset, len(text), m.group(2).strip(), len(m.group(1)))
                    )
        offset += len(line)

    # a blank preamble belongs to the first real section
    if len(sections) > 1 and not text[sections[0].start : sections[0].end].strip():
        sections[1].start = sections[0].start
        sections.pop(0)
    return sections


def split_markdown(
    text: str,
    config: ChunkingConfig,
    estimator: TokenEstimator,
) -> list[Span]:
    """Split at heading boundaries, sub-splitting sections over budget."""
    spans: list[Span] = []
    for section in _markdown_sections(text):
        content = text[section.start : section.end]
        if not content.strip():
            if spans:
                spans[-1].end = section.end
            continue

        meta = ChunkMetadata(
            type=ChunkType.MARKDOWN,
            heading=section.heading,
            level=section.level,
            is_new_section=True,
        )
        if len(content) < config.min_chunk_size and spans:
            spans[-1].end = section.end
        elif estimator.estimate(content) <= config.max_tokens:
            spans.append(Span(section.start, section.end, meta))
        else:
            spans.extend(split_region(text, section.start, section.end, config, meta))
    return spans


# ---------------------------------------------------------------------------
# Source code
# ---------------------------------------------------------------------------

_DECL_RE = re.compile(
    r"^(?:export\s+)?(?:default\s+)?"
    r"(?:(?:public|private|protected|internal|static|abstract|final|async|pub|unsafe|sealed|data)\s+)*"
    r"(?:def|class|function\*?|interface|type|enum|struct|impl|trait|fn|func|const|let|var|module|namespace|object)"
    r"\s+(?:\([^)]*\)\s*)?([A-Za-z_$][\w$]*)"
)
_DECORATOR_RE = re.compile(r"^@[\w.]+")
_STRING_RE = re.compile(r"\"(?:\\.|[^\"\\])*\"|'(?:\\.|[^'\\])*'|`(?:\\.|[^`\\])*`")
_LINE_COMMENT_RE = re.compile(r"(?://|#).*$")

_OPENERS = "{(["
_CLOSERS = "})]"


@dataclass
class _Block:
    start: int
    end: int
    name: str | None = None


def _depth_delta(line: str) -> int:
    stripped = _LINE_COMMENT_RE.sub("", _STRING_RE.sub("", line))
    return sum(stripped.count(c) for c in _OPENERS) - sum(stripped.count(c) for c in _CLOSERS)


def _code_blocks(text: str) -> list[_Block]:
    """Cut the source into blocks that each start at a top-level declaration."""
    blocks: list[_Block] = [_Block(0, len(text))]
    depth = 0
    offset = 0
    prev_decorator = False
    for line in text.splitlines(keepends=True):
        top_level = depth <= 0 and line[:1] not in (" ", "\t")
        decl = _DECL_RE.match(line) if top_level else None
        decorator = bool(top_level and _DECORATOR_RE.match(line))

        if (decl or decorator) and not prev_decorator:
            current = blocks[-1]
            if offset > current.start and text[current.start : offset].strip():
                current.end = offset
                blocks.append(_Block(offset, len(text)))
        if decl and blocks[-1].name is None:
            blocks[-1].name = decl.group(1)

        prev_decorator = decorator or (prev_decorator and not line.strip())
        depth = max(0, depth + _depth_delta(line))
        offset += len(line)
    return blocks


def split_code(
    text: str,
    config: ChunkingConfig,
    estimator: TokenEstimator,
) -> list[Span]:
    """Pack consecutive top-level declarations into chunks within budget."""
    spans: list[Span] = []
    current: Span | None = None
    current_tokens = 0

    for block in _code_blocks(text):
        tokens = estimator.estimate(text[block.start : block.end])

        if tokens > config.max_tokens:
            if current is not None:
                spans.append(current)
                current, current_tokens = None, 0
            meta = ChunkMetadata(type=ChunkType.CODE, declaration=block.name, is_new_section=True)
            spans.extend(split_region(text, block.start, block.end, config, meta))
            continue

        if current is not None and current_tokens + tokens > config.max_tokens:
            spans.append(current)
            current, current_tokens = None, 0

        if current is None:
            current = Span(
                block.start,
                block.end,
                ChunkMetadata(type=ChunkType.CODE, declaration=block.name, is_new_section=True),
            )
        else:
            current.end = block.end
            if current.metadata.declaration is None and block.name:
                current.metadata = current.metadata.model_copy(update={"declaration": block.name})
        current_tokens += tokens

    if current is not None:
        spans.append(current)

    # fold short trailing pieces, as the generic splitter does
    folded: list[Span] = []
    for span in spans:
        piece = text[span.start : span.end]
        if folded and (len(piece) < config.min_chunk_size or not piece.strip()):
            folded[-1].end = max(folded[-1].end, span.end)
        elif piece.strip():
            folded.append(span)
    return folded
