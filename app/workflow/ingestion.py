# app/workflow/ingestion.py
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from fastapi.concurrency import run_in_threadpool

from app.config import (
    EMBEDDING_DIMENSION,
    EMBEDDING_MODEL,
    PREVIEW_CHARACTERS,
)
from app.errors import EmbeddingUnavailable
from app.memory.chunker import chunk_text
from app.memory.embedder import Embedder, resolve_api_key
from app.memory.loader import extract_text
from app.memory.store import generate_document_id
from app.models import DocumentRecord, ProcessingMetadata

logger = logging.getLogger(__name__)

STAGE_COMPLETE = "complete"
STAGE_CHUNKS_ONLY = "chunks_only"


@dataclass
class IngestionResult:
    document: DocumentRecord
    extracted_text_length: int
    preview: str
    embedding_error: Optional[str] = None


def build_preview(text: str) -> str:
    if len(text) > PREVIEW_CHARACTERS:
        return text[:PREVIEW_CHARACTERS] + "..."
    return text


def _embed_chunks(chunks: List[str], embedder_factory: Callable[[], Embedder]) -> List[List[float]]:
    if not chunks:
        return []
    return embedder_factory().embed(chunks)


async def ingest_document(
    content: bytes,
    file_name: str,
    mime_type: str,
    user_id: str,
    store,
    user_store,
    embedder_factory: Optional[Callable[[], Embedder]] = None,
) -> IngestionResult:
    """
    Upload pipeline: extract → chunk → embed → persist.

    Extraction and configuration errors propagate and nothing is stored.
    An unavailable embedding service is recorded on the result and the
    document is stored with chunks only. The record is written after the
    embedding call has resolved, so a cancelled request stores nothing.
    """
    start_time = time.time()

    text = extract_text(content, mime_type)

    chunks = chunk_text(text)

    if embedder_factory is None:
        def embedder_factory():
            return Embedder(resolve_api_key(user_store, user_id))

    embedding_error = None

    try:
        # the only step that waits on the network
        embeddings = await run_in_threadpool(_embed_chunks, chunks, embedder_factory)
    except EmbeddingUnavailable as e:
        logger.warning(
            "Embedding unavailable, storing chunks only",
            extra={
                "user_id": user_id,
                "file_name": file_name,
                "kind": e.kind,
                "error": e.message,
            },
        )
        embeddings = []
        embedding_error = e.message

    processing_time_ms = round((time.time() - start_time) * 1000, 2)

    metadata = ProcessingMetadata(
        chunk_count=len(chunks),
        embedding_count=len(embeddings),
        processing_time_ms=processing_time_ms,
        stage=STAGE_COMPLETE if embeddings else STAGE_CHUNKS_ONLY,
        embedding_model=EMBEDDING_MODEL if embeddings else None,
        embedding_dimension=EMBEDDING_DIMENSION if embeddings else None,
        normalized=bool(embeddings),
    )

    record = DocumentRecord(
        id=generate_document_id(),
        user_id=user_id,
        file_name=file_name,
        file_type=mime_type,
        file_size=len(content),
        original_text=text,
        chunks=chunks,
        embeddings=embeddings,
        metadata=metadata,
    )

    store.create(record)

    logger.info(
        "Document ingestion complete",
        extra={
            "doc_id": record.id,
            "user_id": user_id,
            "chunks": len(chunks),
            "embeddings": len(embeddings),
            "stage": metadata.stage,
            "processing_time_ms": processing_time_ms,
        },
    )

    return IngestionResult(
        document=record,
        extracted_text_length=len(text),
        preview=build_preview(text),
        embedding_error=embedding_error,
    )
