"""Unit tests for the command-line entry point."""

from __future__ import annotations

import logging

import pytest

from doc_vectorizer.cli import build_parser, main
from doc_vectorizer.log_config import configure_logging


@pytest.fixture(autouse=True)
def _reset_package_logger():
    logger = logging.getLogger("doc_vectorizer")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_parser_ingest_arguments() -> None:
    args = build_parser().parse_args(["ingest", "a.md", "b.txt", "--root", "docs", "--dry-run"])
    assert args.command == "ingest"
    assert args.paths == ["a.md", "b.txt"]
    assert args.root == "docs"
    assert args.dry_run is True


def test_dry_run_prints_chunk_stats(tmp_path, capsys) -> None:
    (tmp_path / "notes.txt").write_text("Some short notes to chunk.", encoding="utf-8")
    assert main(["ingest", "notes.txt", "--root", str(tmp_path), "--dry-run"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("notes.txt: 1 chunks")


def test_missing_file_returns_error_code(tmp_path) -> None:
    assert main(["ingest", "missing.txt", "--root", str(tmp_path), "--dry-run"]) == 1


def test_configure_logging_does_not_stack_handlers() -> None:
    configure_logging("DEBUG")
    logger = configure_logging("warning")
    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING
