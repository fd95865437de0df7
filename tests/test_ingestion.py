# tests/test_ingestion.py
import asyncio

import pytest

from app.config import EMBEDDING_DIMENSION, TEXT_MIME_TYPE
from app.errors import EmbeddingUnavailable, UnsupportedType
from app.workflow.ingestion import build_preview, ingest_document


def run_ingest(store, user_store, content, factory, mime_type=TEXT_MIME_TYPE):
    return asyncio.run(
        ingest_document(
            content=content,
            file_name="notes.txt",
            mime_type=mime_type,
            user_id="alice",
            store=store,
            user_store=user_store,
            embedder_factory=factory,
        )
    )


LONG_TEXT = ("Chunks overlap so context survives the boundary. " * 60).encode()


class TestIngestion:

    def test_full_pipeline(self, document_store, user_store, fake_embedder):
        result = run_ingest(document_store, user_store, LONG_TEXT, lambda: fake_embedder)

        doc = result.document

        assert doc.user_id == "alice"
        assert doc.id.startswith("doc_")
        assert len(doc.chunks) > 1
        assert len(doc.embeddings) == len(doc.chunks)
        assert all(len(e) == EMBEDDING_DIMENSION for e in doc.embeddings)
        assert doc.metadata.stage == "complete"
        assert doc.metadata.normalized is True
        assert doc.metadata.embedding_count == len(doc.chunks)
        assert result.embedding_error is None

        # chunks went to the embedder in document order
        assert fake_embedder.calls == [doc.chunks]

        assert [d.id for d in document_store.find_by_user("alice")] == [doc.id]

    def test_embedding_failure_degrades_to_chunks_only(self, document_store, user_store):
        def factory():
            raise EmbeddingUnavailable("Embedding service rejected the API key", kind="auth")

        result = run_ingest(document_store, user_store, LONG_TEXT, factory)

        doc = result.document

        assert result.embedding_error == "Embedding service rejected the API key"
        assert doc.embeddings == []
        assert len(doc.chunks) > 1
        assert doc.metadata.stage == "chunks_only"
        assert doc.metadata.embedding_count == 0

        # still stored, just unsearchable
        assert document_store.get(doc.id, "alice").chunks == doc.chunks

    def test_missing_key_degrades(self, document_store, user_store, monkeypatch):
        """The default factory uses the user's key or the server key."""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        user_store.ensure_user("alice")

        result = asyncio.run(
            ingest_document(
                content=b"short note",
                file_name="notes.txt",
                mime_type=TEXT_MIME_TYPE,
                user_id="alice",
                store=document_store,
                user_store=user_store,
            )
        )

        assert result.document.chunks == ["short note"]
        assert result.document.embeddings == []
        assert "API key" in result.embedding_error

    def test_extraction_failure_stores_nothing(self, document_store, user_store, fake_embedder):
        with pytest.raises(UnsupportedType):
            run_ingest(
                document_store, user_store, b"data", lambda: fake_embedder,
                mime_type="image/png",
            )

        assert document_store.find_by_user("alice") == []
        assert fake_embedder.calls == []

    def test_unexpected_embedding_error_stores_nothing(self, document_store, user_store):
        class Broken:
            def embed(self, texts):
                raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            run_ingest(document_store, user_store, LONG_TEXT, lambda: Broken())

        assert document_store.find_by_user("alice") == []

    def test_text_is_cleaned_before_chunking(self, document_store, user_store, fake_embedder):
        result = run_ingest(
            document_store, user_store, b"line one\r\n\tline two", lambda: fake_embedder,
        )

        assert result.document.original_text == "line one line two"
        assert result.document.chunks == ["line one line two"]
        assert result.extracted_text_length == len("line one line two")

    def test_each_upload_is_a_new_document(self, document_store, user_store, fake_embedder):
        first = run_ingest(document_store, user_store, b"same text", lambda: fake_embedder)
        second = run_ingest(document_store, user_store, b"same text", lambda: fake_embedder)

        assert first.document.id != second.document.id
        assert len(document_store.find_by_user("alice")) == 2


class TestPreview:

    def test_short_text_unchanged(self):
        assert build_preview("short") == "short"

    def test_long_text_truncated(self):
        preview = build_preview("x" * 600)

        assert preview == "x" * 500 + "..."
