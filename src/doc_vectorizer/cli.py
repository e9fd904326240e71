"""``doc-vectorizer`` command line.

    doc-vectorizer ingest README.md docs/guide.md --root .
    doc-vectorizer ingest notes.txt --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from doc_vectorizer.chunking.chunker import TextChunker
from doc_vectorizer.config import Settings
from doc_vectorizer.errors import VectorizerError
from doc_vectorizer.log_config import configure_logging
from doc_vectorizer.storage import LocalFileStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="doc-vectorizer", description="Chunk, embed and store documents")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (e.g. DEBUG)")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Vectorize files into the configured Chroma collection")
    ingest.add_argument("paths", nargs="+", help="File keys relative to --root")
    ingest.add_argument("--root", default=None, help="Storage root (defaults to STORAGE_ROOT)")
    ingest.add_argument(
        "--dry-run",
        action="store_true",
        help="Only chunk the files and print chunk statistics",
    )
    return parser


def _dry_run(settings: Settings, store: LocalFileStore, paths: list[str]) -> None:
    chunker = TextChunker.from_settings(settings)
    for key in paths:
        raw = store.get(key)
        chunks = chunker.chunk_text(raw.decode("utf-8", errors="replace"), key, len(raw))
        stats = TextChunker.chunk_stats(chunks)
        print(
            f"{key}: {stats.total_chunks} chunks, {stats.total_tokens} tokens "
            f"(avg {stats.avg_tokens:.0f}, min {stats.min_tokens}, max {stats.max_tokens})"
        )


async def _ingest(settings: Settings, store: LocalFileStore, paths: list[str]) -> None:
    # heavy imports (langchain, chromadb) only when actually embedding
    from doc_vectorizer.embedding.langchain_provider import build_embedding_provider
    from doc_vectorizer.persistence.chroma_sink import ChromaVectorSink
    from doc_vectorizer.pipeline import PipelineContext, VectorizationPipeline

    context = PipelineContext(
        settings=settings,
        provider=build_embedding_provider(settings),
        sink=ChromaVectorSink.from_settings(settings),
        store=store,
    )
    pipeline = VectorizationPipeline(context)
    results = [pipeline.ingest(key) for key in paths]
    await pipeline.run_until_idle()

    for key, result in zip(paths, results):
        report = pipeline.scheduler.get_task_status(result.main_task_id)
        if report is None:
            continue
        line = f"{key}: {report.status.value} ({report.progress}%)"
        if report.error:
            line += f" - {report.error}"
        print(line)
    print(pipeline.scheduler.get_queue_stats().model_dump_json())


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    configure_logging(args.log_level or settings.log_level)

    if args.command == "ingest":
        store = LocalFileStore(args.root or settings.storage_root)
        try:
            if args.dry_run:
                _dry_run(settings, store, args.paths)
            else:
                asyncio.run(_ingest(settings, store, args.paths))
        except VectorizerError as exc:
            logger.error("%s", exc)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
