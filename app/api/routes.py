from fastapi import APIRouter, Depends, File, Header, HTTPException, UploadFile
import logging
import time

from typing import Optional

from app.config import (
    ALLOWED_MIME_TYPES,
    CHUNK_OVERLAP,
    CHUNK_SIZE,
    EMBEDDING_DIMENSION,
    EMBEDDING_MODEL,
    MAX_FILE_SIZE_MB,
)
from app.errors import STAGE_EMBEDDING
from app.observability.metrics import metrics_tracker
from app.observability.posthog_client import posthog_client

from app.models import (
    ApiKeyRequest,
    ApiKeyStatusResponse,
    DeleteDocumentResponse,
    DocumentDetail,
    HealthResponse,
    ListDocumentsResponse,
    SearchMatch,
    SearchRequest,
    SearchResponse,
    UploadResponse,
)

from app.memory.embedder import Embedder, resolve_api_key
from app.memory.retriever import retrieve, search
from app.memory.store import DocumentStore, to_document_info
from app.memory.user_store import UserStore
from app.workflow.ingestion import ingest_document


# ============================================================
# LOGGER
# ============================================================

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================
# GLOBAL SINGLETONS
# ============================================================

document_store = DocumentStore()

user_store = UserStore()


def get_document_store() -> DocumentStore:
    return document_store


def get_user_store() -> UserStore:
    return user_store


# ============================================================
# CALLER IDENTITY
# ============================================================

def get_current_user_id(
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    users: UserStore = Depends(get_user_store),
) -> str:
    """
    Identity comes from the auth proxy in front of the service.
    Seeing a user refreshes last_active and creates them on first use.
    """

    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")

    user_id = x_user_id.strip()

    users.ensure_user(user_id, email=x_user_email, name=x_user_name)

    return user_id


def make_embedder(user_id: str, users: UserStore) -> Embedder:
    return Embedder(resolve_api_key(users, user_id))


# ============================================================
# HEALTH
# ============================================================

@router.get("/health", response_model=HealthResponse)
def health_check(store: DocumentStore = Depends(get_document_store)):

    stats = store.get_stats()

    return HealthResponse(
        status="healthy",
        total_documents=stats["total_documents"],
        total_chunks=stats["total_chunks"],
        total_embeddings=stats["total_embeddings"],
    )


# ============================================================
# UPLOAD DOCUMENT
# ============================================================

@router.get("/upload")
def upload_info():

    return {
        "message": "Upload endpoint is ready. Use POST to upload files.",
        "supported_formats": ["TXT", "DOCX", "PDF"],
        "mime_types": ALLOWED_MIME_TYPES,
        "max_file_size_mb": MAX_FILE_SIZE_MB,
        "chunking": {"chunk_size": CHUNK_SIZE, "chunk_overlap": CHUNK_OVERLAP},
        "embedding": {"model": EMBEDDING_MODEL, "dimension": EMBEDDING_DIMENSION},
        "pipeline": ["extraction", "chunking", "embedding", "storage"],
    }


@router.post("/upload", response_model=UploadResponse)
async def upload_document(
    file: UploadFile = File(None),
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_document_store),
    users: UserStore = Depends(get_user_store),
):

    if not file:

        raise HTTPException(
            status_code=400,
            detail="No file provided",
        )

    start_time = time.time()

    file_bytes = await file.read()

    result = await ingest_document(
        content=file_bytes,
        file_name=file.filename or "untitled",
        mime_type=file.content_type or "",
        user_id=user_id,
        store=store,
        user_store=users,
        embedder_factory=lambda: make_embedder(user_id, users),
    )

    document = result.document

    if result.embedding_error:
        metrics_tracker.record_stage_failure(STAGE_EMBEDDING)

    latency = time.time() - start_time

    posthog_client.track_document_upload(
        distinct_id=user_id,
        document_id=document.id,
        file_type=document.file_type,
        chunks=document.metadata.chunk_count,
        embeddings=document.metadata.embedding_count,
        stage=document.metadata.stage,
        latency=latency,
    )

    message = "Document uploaded and indexed successfully"

    if result.embedding_error:
        message = "Document uploaded; embeddings unavailable, stored chunks only"

    return UploadResponse(
        document_id=document.id,
        filename=document.file_name,
        file_type=document.file_type,
        file_size=document.file_size,
        extracted_text_length=result.extracted_text_length,
        chunks_created=document.metadata.chunk_count,
        embeddings_created=document.metadata.embedding_count,
        processing_time_ms=document.metadata.processing_time_ms,
        stage=document.metadata.stage,
        preview=result.preview,
        embedding_error=result.embedding_error,
        message=message,
    )


# ============================================================
# SEARCH
# ============================================================

@router.post("/search", response_model=SearchResponse)
def search_documents(
    payload: SearchRequest,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_document_store),
    users: UserStore = Depends(get_user_store),
):

    start_time = time.time()

    if payload.query_embedding is not None:

        results = search(
            payload.query_embedding,
            user_id,
            store,
            limit=payload.limit,
            threshold=payload.threshold,
        )

    else:

        results = retrieve(
            question=payload.query,
            embedder=make_embedder(user_id, users),
            store=store,
            user_id=user_id,
            top_k=payload.limit,
            threshold=payload.threshold,
        )

    latency = time.time() - start_time

    posthog_client.track_search(
        distinct_id=user_id,
        results=len(results),
        top_score=results[0]["similarity"] if results else None,
        limit=payload.limit,
        threshold=payload.threshold,
        latency=latency,
    )

    return SearchResponse(
        results=[SearchMatch(**match) for match in results],
        total_results=len(results),
        limit=payload.limit,
        threshold=payload.threshold,
    )


# ============================================================
# LIST DOCUMENTS
# ============================================================

@router.get("/documents", response_model=ListDocumentsResponse)
def list_documents(
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_document_store),
):

    documents = store.list_summaries(user_id)

    return ListDocumentsResponse(
        documents=documents,
        total_documents=len(documents),
        total_chunks=sum(d.chunks_count for d in documents),
    )


@router.get("/documents/{document_id}", response_model=DocumentDetail)
def get_document(
    document_id: str,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_document_store),
):

    document = store.get(document_id, user_id)

    return DocumentDetail(
        **to_document_info(document).model_dump(),
        chunks=document.chunks,
    )


# ============================================================
# DELETE DOCUMENT
# ============================================================

@router.delete("/documents/{document_id}",
               response_model=DeleteDocumentResponse)
def delete_document(
    document_id: str,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_document_store),
):

    if not store.delete(document_id, user_id):

        raise HTTPException(
            status_code=404,
            detail="Document not found",
        )

    return DeleteDocumentResponse(
        document_id=document_id,
        message="Deleted",
        success=True,
    )


# ============================================================
# USER API KEY
# ============================================================

@router.get("/user/api-key", response_model=ApiKeyStatusResponse)
def get_api_key_status(
    user_id: str = Depends(get_current_user_id),
    users: UserStore = Depends(get_user_store),
):

    profile = users.get_profile(user_id)

    return ApiKeyStatusResponse(has_api_key=profile.has_api_key)


@router.post("/user/api-key", response_model=ApiKeyStatusResponse)
def save_api_key(
    payload: ApiKeyRequest,
    user_id: str = Depends(get_current_user_id),
    users: UserStore = Depends(get_user_store),
):

    profile = users.set_api_key(user_id, payload.api_key)

    posthog_client.track_api_key_change(user_id, has_api_key=True)

    return ApiKeyStatusResponse(
        has_api_key=profile.has_api_key,
        message="API key saved successfully",
    )


@router.delete("/user/api-key", response_model=ApiKeyStatusResponse)
def delete_api_key(
    user_id: str = Depends(get_current_user_id),
    users: UserStore = Depends(get_user_store),
):

    profile = users.delete_api_key(user_id)

    posthog_client.track_api_key_change(user_id, has_api_key=False)

    return ApiKeyStatusResponse(
        has_api_key=profile.has_api_key,
        message="API key deleted successfully",
    )


# ============================================================
# METRICS ENDPOINT
# ============================================================

@router.get("/metrics")
def get_metrics():

    return metrics_tracker.get_metrics()
