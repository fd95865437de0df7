# tests/conftest.py
import io
import os
import sys
import tempfile

import pytest

# Keep import-time side effects (storage, logs, analytics) out of the repo
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="storage-"))
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="logs-"))
os.environ.pop("POSTHOG_API_KEY", None)

# Add app directory to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fastapi.testclient import TestClient

from app.config import EMBEDDING_DIMENSION
from app.main import app
from app.api import routes
from app.memory.embedder import normalize_embedding
from app.memory.store import DocumentStore
from app.memory.user_store import UserStore
from app.models import DocumentRecord, ProcessingMetadata


class FakeEmbedder:
    """
    Deterministic stand-in for the remote embedding service.

    Each text becomes a letter-count vector, normalized the same way
    real vectors are, so texts sharing letters score high.
    """

    def __init__(self, dimension: int = EMBEDDING_DIMENSION):
        self.calls = []
        self._dimension = dimension

    def _vector(self, text):
        vector = [0.0] * self._dimension
        for ch in text.lower():
            if ch.isalpha():
                vector[ord(ch) % self._dimension] += 1.0
        return normalize_embedding(vector, self._dimension)

    def embed(self, texts, batch_size=32):
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]

    def embed_query(self, text):
        return self.embed([text])[0]


def make_record(document_id, user_id, chunks, embeddings, file_name="notes.txt"):
    """Build a stored document directly, bypassing ingestion."""
    return DocumentRecord(
        id=document_id,
        user_id=user_id,
        file_name=file_name,
        file_type="text/plain",
        file_size=sum(len(c) for c in chunks),
        original_text=" ".join(chunks),
        chunks=chunks,
        embeddings=embeddings,
        metadata=ProcessingMetadata(
            chunk_count=len(chunks),
            embedding_count=len(embeddings),
            processing_time_ms=1.0,
            stage="complete" if embeddings else "chunks_only",
        ),
    )


@pytest.fixture
def document_store(tmp_path):
    return DocumentStore(storage_dir=str(tmp_path))


@pytest.fixture
def user_store(tmp_path):
    return UserStore(storage_dir=str(tmp_path))


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def client(document_store, user_store, fake_embedder, monkeypatch):
    """
    FastAPI test client wired to per-test stores and the fake embedder.
    """
    app.dependency_overrides[routes.get_document_store] = lambda: document_store
    app.dependency_overrides[routes.get_user_store] = lambda: user_store

    monkeypatch.setattr(
        routes,
        "make_embedder",
        lambda user_id, users: fake_embedder,
    )

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def alice_headers():
    return {"X-User-Id": "alice", "X-User-Email": "alice@example.com"}


@pytest.fixture
def bob_headers():
    return {"X-User-Id": "bob", "X-User-Email": "bob@example.com"}


def build_pdf(text: str) -> bytes:
    """
    Minimal single-page PDF with one line of text and a correct xref table.
    """
    stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode("latin-1")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length " + str(len(stream)).encode() + b" >>\nstream\n"
        + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = io.BytesIO()
    out.write(b"%PDF-1.4\n")

    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(out.tell())
        out.write(f"{number} 0 obj\n".encode() + body + b"\nendobj\n")

    xref_offset = out.tell()
    out.write(f"xref\n0 {len(objects) + 1}\n".encode())
    out.write(b"0000000000 65535 f \n")
    for offset in offsets:
        out.write(f"{offset:010d} 00000 n \n".encode())

    out.write(
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_offset}\n%%EOF\n".encode()
    )

    return out.getvalue()


def build_docx(paragraphs) -> bytes:
    from docx import Document

    doc = Document()
    for paragraph in paragraphs:
        doc.add_paragraph(paragraph)

    out = io.BytesIO()
    doc.save(out)
    return out.getvalue()


@pytest.fixture
def sample_pdf_content():
    return build_pdf("Quarterly revenue grew in the northern region")


@pytest.fixture
def sample_docx_content():
    return build_docx(["First paragraph about apples.", "Second paragraph about pears."])
