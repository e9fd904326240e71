"""Unit tests for the Chroma vector sink (chromadb client mocked)."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from doc_vectorizer.persistence import VectorRecord, record_id
from doc_vectorizer.persistence.chroma_sink import ChromaVectorSink


def _records(n: int, file_key: str = "doc.txt") -> list[VectorRecord]:
    return [
        VectorRecord(
            id=record_id(file_key, i),
            embedding=[float(i), 0.5],
            content=f"chunk {i}",
            metadata={"chunk_index": i},
        )
        for i in range(n)
    ]


@pytest.fixture()
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def collection(client: MagicMock) -> MagicMock:
    return client.get_or_create_collection.return_value


class TestChromaVectorSink:
    def test_uses_named_collection(self, client) -> None:
        ChromaVectorSink("my_docs", client=client)
        client.get_or_create_collection.assert_called_once_with("my_docs")

    def test_upsert_tags_records_with_file_key(self, client, collection) -> None:
        sink = ChromaVectorSink(client=client)
        assert sink.upsert("doc.txt", _records(2)) == 2

        kwargs = collection.upsert.call_args.kwargs
        assert kwargs["ids"] == ["doc.txt:0", "doc.txt:1"]
        assert kwargs["documents"] == ["chunk 0", "chunk 1"]
        assert kwargs["embeddings"] == [[0.0, 0.5], [1.0, 0.5]]
        assert kwargs["metadatas"][1] == {"chunk_index": 1, "file_key": "doc.txt"}

    def test_upsert_in_batches(self, client, collection) -> None:
        sink = ChromaVectorSink(client=client, upsert_batch_size=2)
        assert sink.upsert("doc.txt", _records(5)) == 5
        sizes = [len(call.kwargs["ids"]) for call in collection.upsert.call_args_list]
        assert sizes == [2, 2, 1]

    def test_upsert_nothing(self, client, collection) -> None:
        assert ChromaVectorSink(client=client).upsert("doc.txt", []) == 0
        collection.upsert.assert_not_called()

    def test_delete_file(self, client, collection) -> None:
        ChromaVectorSink(client=client).delete_file("doc.txt")
        collection.delete.assert_called_once_with(where={"file_key": "doc.txt"})

    def test_health_check(self, client) -> None:
        sink = ChromaVectorSink(client=client)
        assert sink.health_check() is True
        client.heartbeat.side_effect = ConnectionError("down")
        assert sink.health_check() is False

    def test_from_settings_builds_http_client(self, settings) -> None:
        with patch("doc_vectorizer.persistence.chroma_sink.chromadb.HttpClient") as http_client:
            sink = ChromaVectorSink.from_settings(settings)
        http_client.assert_called_once_with(host=settings.chroma_host, port=settings.chroma_port)
        assert sink.collection_name == settings.chroma_collection
