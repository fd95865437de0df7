# app/models.py
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.config import SIMILARITY_THRESHOLD, TOP_K


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# STORED RECORDS
# ============================================================

class ProcessingMetadata(BaseModel):
    """Bookkeeping written once when a document is ingested."""
    chunk_count: int
    embedding_count: int
    processing_time_ms: float
    stage: str
    embedding_model: Optional[str] = None
    embedding_dimension: Optional[int] = None
    normalized: bool = False


class DocumentRecord(BaseModel):
    """
    One uploaded file, owned by exactly one user.

    chunks[i] and embeddings[i] describe the same span of text.
    embeddings may be empty when generation failed; the document is
    then kept but never matches a search.
    """
    id: str
    user_id: str
    file_name: str
    file_type: str
    file_size: int
    original_text: str
    chunks: List[str] = Field(default_factory=list)
    embeddings: List[List[float]] = Field(default_factory=list)
    metadata: ProcessingMetadata
    created_at: datetime = Field(default_factory=_utc_now)

    @model_validator(mode="after")
    def check_alignment(self):
        if self.embeddings and len(self.embeddings) != len(self.chunks):
            raise ValueError(
                f"{len(self.embeddings)} embeddings for {len(self.chunks)} chunks"
            )
        return self


class UserRecord(BaseModel):
    """Stored user. api_key never leaves the store through the default read."""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    api_key: Optional[str] = None
    created_at: datetime = Field(default_factory=_utc_now)
    last_active: datetime = Field(default_factory=_utc_now)


class UserProfile(BaseModel):
    """Default projection of a user: no secrets."""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    has_api_key: bool = False
    created_at: Optional[datetime] = None
    last_active: Optional[datetime] = None


# ============================================================
# UPLOAD
# ============================================================

class UploadResponse(BaseModel):
    """Response after uploading a document."""
    document_id: str
    filename: str
    file_type: str
    file_size: int
    extracted_text_length: int
    chunks_created: int
    embeddings_created: int
    processing_time_ms: float
    stage: str
    preview: str
    embedding_error: Optional[str] = None
    message: str = "Document uploaded and indexed successfully"


# ============================================================
# SEARCH
# ============================================================

class SearchRequest(BaseModel):
    """Either a question to embed, or a ready query vector."""
    query: Optional[str] = Field(None, min_length=1, max_length=1000)
    query_embedding: Optional[List[float]] = None
    limit: int = Field(TOP_K, ge=1, le=100)
    threshold: float = Field(SIMILARITY_THRESHOLD, ge=-1.0, le=1.0)

    @field_validator('query')
    @classmethod
    def validate_query(cls, v):
        """Ensure query is not just whitespace."""
        if v is not None and not v.strip():
            raise ValueError("Query cannot be empty or only whitespace")
        return v.strip() if v is not None else v

    @model_validator(mode="after")
    def check_one_query(self):
        if (self.query is None) == (self.query_embedding is None):
            raise ValueError("Provide exactly one of query or query_embedding")
        return self


class SearchMatch(BaseModel):
    document_id: str
    file_name: str
    chunk_index: int
    chunk_text: str
    similarity: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchResponse(BaseModel):
    results: List[SearchMatch]
    total_results: int
    limit: int
    threshold: float


# ============================================================
# DOCUMENTS
# ============================================================

class DocumentInfo(BaseModel):
    """Information about a stored document (no text, no vectors)."""
    document_id: str
    filename: str
    file_type: str
    file_size: int
    chunks_count: int
    embeddings_count: int
    upload_timestamp: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ListDocumentsResponse(BaseModel):
    """Response listing the caller's documents."""
    documents: List[DocumentInfo]
    total_documents: int
    total_chunks: int


class DocumentDetail(DocumentInfo):
    """A single document including its chunks."""
    chunks: List[str]


class DeleteDocumentResponse(BaseModel):
    """Response after deleting a document."""
    document_id: str
    message: str
    success: bool


# ============================================================
# USER SETTINGS
# ============================================================

class ApiKeyRequest(BaseModel):
    api_key: str = Field(..., min_length=1)

    @field_validator('api_key')
    @classmethod
    def validate_api_key(cls, v):
        if not v.strip():
            raise ValueError("API key is required")
        return v.strip()


class ApiKeyStatusResponse(BaseModel):
    success: bool = True
    has_api_key: bool
    message: Optional[str] = None


# ============================================================
# HEALTH
# ============================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    total_documents: int
    total_chunks: int
    total_embeddings: int
