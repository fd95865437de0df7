import json
import logging
import os
import threading
import uuid

from typing import Dict, List

from app.config import DOCUMENTS_FILE, STORAGE_DIR
from app.errors import NotFound
from app.models import DocumentInfo, DocumentRecord


logger = logging.getLogger(__name__)


def generate_document_id() -> str:
    return f"doc_{uuid.uuid4().hex[:12]}"


class DocumentStore:
    """
    Per-user document persistence.

    Documents are written once at upload and only ever deleted.
    Every read is scoped to the owning user; another user's id behaves
    exactly like a missing id.
    """

    def __init__(self, storage_dir: str = STORAGE_DIR):

        self._storage_dir = storage_dir
        self._path = os.path.join(storage_dir, DOCUMENTS_FILE)
        self._documents: List[DocumentRecord] = []
        self._lock = threading.Lock()

        self._load_from_disk()

        logger.info(
            "DocumentStore initialized",
            extra={
                "path": self._path,
                "documents": len(self._documents),
            },
        )


    # ============================================================
    # WRITE
    # ============================================================

    def create(self, record: DocumentRecord) -> DocumentRecord:

        with self._lock:

            if any(doc.id == record.id for doc in self._documents):
                raise ValueError(f"Duplicate document id: {record.id}")

            documents = self._documents + [record]

            self._save_to_disk(documents)

            self._documents = documents

        logger.info(
            "Document stored",
            extra={
                "doc_id": record.id,
                "user_id": record.user_id,
                "chunks": len(record.chunks),
                "embeddings": len(record.embeddings),
            },
        )

        return record


    def delete(self, document_id: str, user_id: str) -> bool:
        """
        Delete one of the user's documents.

        Returns False (and changes nothing) when the id is unknown or
        belongs to someone else.
        """

        with self._lock:

            remaining = [
                doc for doc in self._documents
                if not (doc.id == document_id and doc.user_id == user_id)
            ]

            if len(remaining) == len(self._documents):

                logger.warning(
                    "Delete requested for unknown document",
                    extra={"doc_id": document_id, "user_id": user_id},
                )

                return False

            self._save_to_disk(remaining)

            self._documents = remaining

        logger.info(
            "Document deleted",
            extra={"doc_id": document_id, "user_id": user_id},
        )

        return True


    # ============================================================
    # READ
    # ============================================================

    def find_by_user(self, user_id: str) -> List[DocumentRecord]:
        """Full records in upload order."""

        with self._lock:
            return [doc for doc in self._documents if doc.user_id == user_id]


    def get(self, document_id: str, user_id: str) -> DocumentRecord:

        for doc in self.find_by_user(user_id):
            if doc.id == document_id:
                return doc

        raise NotFound("Document not found")


    def list_summaries(self, user_id: str) -> List[DocumentInfo]:
        """Projection without text or vectors, newest first."""

        documents = sorted(
            self.find_by_user(user_id),
            key=lambda doc: doc.created_at,
            reverse=True,
        )

        return [to_document_info(doc) for doc in documents]


    def get_stats(self) -> Dict[str, int]:

        with self._lock:

            return {
                "total_documents": len(self._documents),
                "total_chunks": sum(len(d.chunks) for d in self._documents),
                "total_embeddings": sum(len(d.embeddings) for d in self._documents),
            }


    # ============================================================
    # PERSISTENCE
    # ============================================================

    def _load_from_disk(self):

        os.makedirs(self._storage_dir, exist_ok=True)

        if not os.path.exists(self._path):
            return

        try:

            with open(self._path, "r") as f:
                data = json.load(f)

            self._documents = [
                DocumentRecord.model_validate(item)
                for item in data.get("documents", [])
            ]

        except (OSError, ValueError) as e:

            logger.error(
                "Document store load failed",
                extra={"path": self._path, "error": str(e)},
            )

            raise


    def _save_to_disk(self, documents: List[DocumentRecord]):
        """
        Replace the file with `documents`. Callers swap their in-memory
        list only after this returns, so a failed write changes nothing.
        """

        os.makedirs(self._storage_dir, exist_ok=True)

        tmp_path = self._path + ".tmp"

        try:

            with open(tmp_path, "w") as f:

                json.dump(
                    {
                        "documents": [
                            doc.model_dump(mode="json") for doc in documents
                        ],
                    },
                    f,
                )

            os.replace(tmp_path, self._path)

        except (OSError, TypeError, ValueError) as e:

            logger.error(
                "Document store write failed",
                extra={"path": self._path, "error": str(e)},
            )

            if os.path.exists(tmp_path):
                os.remove(tmp_path)

            raise


def to_document_info(doc: DocumentRecord) -> DocumentInfo:

    return DocumentInfo(
        document_id=doc.id,
        filename=doc.file_name,
        file_type=doc.file_type,
        file_size=doc.file_size,
        chunks_count=doc.metadata.chunk_count,
        embeddings_count=doc.metadata.embedding_count,
        upload_timestamp=doc.created_at.isoformat(),
        metadata=doc.metadata.model_dump(),
    )
