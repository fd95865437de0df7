# app/memory/embedder.py

"""
Embedding wrapper with batching and post-processing.

Architecture contract:
chunker → embedder → document store

Guarantees:
• Order preserved: output[i] belongs to texts[i]
• Every vector truncated to EMBEDDING_DIMENSION
• Every non-zero vector L2-normalized (cosine-ready)
• Batched processing for performance
• Failures surface as EmbeddingUnavailable, never raw client errors
"""

import logging
import os
from typing import List, Optional, Sequence

import numpy as np
import openai
from openai import OpenAI

from app.config import (
    EMBED_BATCH_SIZE,
    EMBEDDING_DIMENSION,
    EMBEDDING_MAX_RETRIES,
    EMBEDDING_MODEL,
    EMBEDDING_TIMEOUT_SECONDS,
)
from app.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)


# ============================================================
# NORMALIZATION
# ============================================================

def normalize_embedding(
    vector: Sequence[float],
    dimension: int = EMBEDDING_DIMENSION,
) -> List[float]:
    """
    Keep the first `dimension` components and scale to unit length.

    A zero vector is returned unchanged; it can never pass a positive
    similarity threshold.
    """

    truncated = np.asarray(vector, dtype="float64")[:dimension]

    norm = np.linalg.norm(truncated)

    if norm == 0:
        return truncated.tolist()

    return (truncated / norm).tolist()


# ============================================================
# API KEY RESOLUTION
# ============================================================

def resolve_api_key(user_store, user_id: str) -> Optional[str]:
    """
    The user's own key wins; otherwise fall back to the server key.

    This is the only caller of the privileged key read.
    """

    api_key = user_store.get_api_key(user_id)

    if api_key:
        return api_key

    return os.getenv("OPENAI_API_KEY") or None


class Embedder:
    """
    Embedding generator for one API key.

    Responsibilities:
    • Call OpenAI embedding API
    • Batch requests
    • Truncate and normalize every vector
    • Map client failures onto EmbeddingUnavailable
    """

    # ============================================================
    # INITIALIZATION
    # ============================================================

    def __init__(
        self,
        api_key: Optional[str],
        model: str = EMBEDDING_MODEL,
        dimension: int = EMBEDDING_DIMENSION,
    ):

        if not api_key:
            raise EmbeddingUnavailable(
                "No embedding API key configured",
                kind="missing_key",
            )

        self._model = model
        self._dimension = dimension

        self._client = OpenAI(
            api_key=api_key,
            timeout=EMBEDDING_TIMEOUT_SECONDS,
            max_retries=EMBEDDING_MAX_RETRIES,
        )

    # ============================================================
    # PUBLIC API
    # ============================================================

    def embed(
        self,
        texts: Sequence[str],
        batch_size: int = EMBED_BATCH_SIZE,
    ) -> List[List[float]]:

        if not texts:
            logger.warning("Empty embedding request")
            return []

        total = len(texts)

        logger.info(
            "Embedding started",
            extra={
                "chunks": total,
                "batch_size": batch_size,
                "model": self._model,
            },
        )

        embeddings: List[List[float]] = []

        for start in range(0, total, batch_size):

            batch = list(texts[start:start + batch_size])

            raw = self._request(batch)

            for vector in raw:

                if len(vector) < self._dimension:
                    raise EmbeddingUnavailable(
                        f"Embedding service returned {len(vector)}-dimensional "
                        f"vectors, need at least {self._dimension}",
                        kind="service",
                    )

                embeddings.append(
                    normalize_embedding(vector, self._dimension)
                )

        logger.info(
            "Embedding completed",
            extra={
                "chunks": total,
                "dimension": self._dimension,
            },
        )

        return embeddings

    def embed_query(self, text: str) -> List[float]:

        return self.embed([text])[0]

    # ============================================================
    # INTERNALS
    # ============================================================

    def _request(self, batch: List[str]) -> List[List[float]]:

        try:

            response = self._client.embeddings.create(
                model=self._model,
                input=batch,
            )

        except openai.AuthenticationError as e:

            logger.error(
                "Embedding authentication failed",
                extra={"error_type": type(e).__name__},
            )

            raise EmbeddingUnavailable(
                "Embedding service rejected the API key",
                kind="auth",
            ) from e

        except openai.OpenAIError as e:

            logger.error(
                "Embedding generation failed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )

            raise EmbeddingUnavailable(
                f"Embedding service error: {type(e).__name__}",
                kind="service",
            ) from e

        # output order must match input order
        data = sorted(response.data, key=lambda item: item.index)

        if len(data) != len(batch):
            raise EmbeddingUnavailable(
                f"Embedding service returned {len(data)} vectors "
                f"for {len(batch)} inputs",
                kind="service",
            )

        return [item.embedding for item in data]

    # ============================================================
    # ACCESSORS
    # ============================================================

    def get_dimension(self) -> int:
        return self._dimension

    def get_model(self) -> str:
        return self._model
