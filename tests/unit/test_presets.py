"""Unit tests for chunking presets and file categorisation."""

from __future__ import annotations

import pytest

from doc_vectorizer.chunking.presets import (
    ChunkingConfig,
    FileCategory,
    categorize,
    size_factor,
    smart_config,
)


@pytest.mark.parametrize(
    ("file_type", "expected"),
    [
        ("md", FileCategory.MARKDOWN),
        ("README.md", FileCategory.MARKDOWN),
        ("text/markdown", FileCategory.MARKDOWN),
        ("py", FileCategory.CODE),
        ("app.ts", FileCategory.CODE),
        ("text/x-python", FileCategory.CODE),
        ("csv", FileCategory.DATA),
        ("application/json; charset=utf-8", FileCategory.DATA),
        ("notes.txt", FileCategory.TEXT),
        ("application/pdf", FileCategory.TEXT),
        (None, FileCategory.TEXT),
        ("", FileCategory.TEXT),
    ],
)
def test_categorize(file_type: str | None, expected: FileCategory) -> None:
    assert categorize(file_type) is expected


@pytest.mark.parametrize(
    ("size", "factor"),
    [
        (None, 1.0),
        (0, 1.0),
        (50 * 1024, 1.0),
        (500 * 1024, 0.85),
        (5 * 1024 * 1024, 0.7),
        (100 * 1024 * 1024, 0.5),
    ],
)
def test_size_factor(size: int | None, factor: float) -> None:
    assert size_factor(size) == factor


class TestSmartConfig:
    def test_preset_tightens_default_bounds(self) -> None:
        config = smart_config(ChunkingConfig(), FileCategory.CODE, 1024)
        assert config.max_tokens == 600
        assert config.overlap_tokens == 50
        assert config.min_chunk_size == 30

    def test_preset_never_raises_base_bounds(self) -> None:
        base = ChunkingConfig(max_tokens=200, overlap_tokens=20)
        config = smart_config(base, FileCategory.TEXT, 1024)
        assert config.max_tokens == 200
        assert config.overlap_tokens == 20

    def test_caller_min_chunk_size_below_preset_is_kept(self) -> None:
        base = ChunkingConfig(min_chunk_size=10)
        assert smart_config(base, FileCategory.CODE, 1024).min_chunk_size == 10
        assert smart_config(base, FileCategory.TEXT, 1024).min_chunk_size == 10

    def test_large_files_scale_down(self) -> None:
        config = smart_config(ChunkingConfig(), FileCategory.TEXT, 20 * 1024 * 1024)
        assert config.max_tokens == 500
        assert config.overlap_tokens == 50

    def test_data_has_no_overlap(self) -> None:
        assert smart_config(ChunkingConfig(), FileCategory.DATA).overlap_tokens == 0

    def test_overlap_stays_below_half_window(self) -> None:
        base = ChunkingConfig(max_tokens=10, overlap_tokens=9)
        config = smart_config(base, FileCategory.TEXT)
        assert config.overlap_tokens < config.max_tokens // 2

    def test_base_is_not_modified(self) -> None:
        base = ChunkingConfig()
        smart_config(base, FileCategory.MARKDOWN, 1024)
        assert base.max_tokens == 1000
