"""
Pipeline error taxonomy.

Every failure carries the pipeline stage that raised it so the API can
tell the caller where processing stopped. The HTTP status lives on the
exception; main.py turns it into a JSON response.
"""

from typing import Optional


STAGE_EXTRACTION = "extraction"
STAGE_CHUNKING = "chunking"
STAGE_EMBEDDING = "embedding"
STAGE_STORAGE = "storage"
STAGE_SEARCH = "search"


class PipelineError(Exception):
    """Base class for every error the pipeline reports to callers."""

    stage = "pipeline"
    status_code = 500

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "stage": self.stage,
            "error_type": type(self).__name__,
        }


class ConfigurationError(PipelineError):
    """Invalid chunking or search parameters."""

    stage = STAGE_CHUNKING
    status_code = 400


# ============================================================
# EXTRACTION
# ============================================================

class ExtractionFailure(PipelineError):

    stage = STAGE_EXTRACTION
    status_code = 400


class UnsupportedType(ExtractionFailure):
    pass


class ParseFailure(ExtractionFailure):
    pass


class EmptyDocument(ExtractionFailure):
    pass


class FileTooLarge(ExtractionFailure):

    status_code = 413


# ============================================================
# EMBEDDING
# ============================================================

class EmbeddingUnavailable(PipelineError):
    """
    The embedding service could not be used.

    kind is one of:
    - "missing_key": no API key for the user and no server fallback
    - "auth": the service rejected the key
    - "service": anything else (network, rate limit, bad response)
    """

    stage = STAGE_EMBEDDING
    status_code = 503

    def __init__(self, message: str, kind: str = "service"):
        super().__init__(message)
        self.kind = kind

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["kind"] = self.kind
        return data


# ============================================================
# SEARCH
# ============================================================

class DimensionMismatch(PipelineError):

    stage = STAGE_SEARCH
    status_code = 400

    def __init__(
        self,
        expected: int,
        actual: int,
        document_id: Optional[str] = None,
        chunk_index: Optional[int] = None,
    ):
        message = f"Vectors must have the same length (expected {expected}, got {actual})"

        if document_id is not None:
            message += f" for document {document_id} chunk {chunk_index}"

        super().__init__(message)
        self.expected = expected
        self.actual = actual
        self.document_id = document_id
        self.chunk_index = chunk_index


# ============================================================
# STORAGE
# ============================================================

class NotFound(PipelineError):

    stage = STAGE_STORAGE
    status_code = 404
