# app/memory/similarity.py

"""
Exact cosine-similarity ranking over a user's stored chunks.

Architecture contract:
document store → similarity → retriever

The engine is a pure function of its inputs: a query vector and the
candidate documents. It keeps no index and no cache, so every query is
exact over whatever the store returned. Cost is O(chunks x dimension).
"""

import logging
from typing import Dict, Iterable, List, Sequence

import numpy as np

from app.config import SIMILARITY_THRESHOLD, TOP_K
from app.errors import ConfigurationError, DimensionMismatch, STAGE_SEARCH

logger = logging.getLogger(__name__)


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|), or exactly 0.0 if either norm is zero.

    Raises DimensionMismatch when the lengths differ.
    """

    if len(vec_a) != len(vec_b):
        raise DimensionMismatch(expected=len(vec_a), actual=len(vec_b))

    a = np.asarray(vec_a, dtype="float64")
    b = np.asarray(vec_b, dtype="float64")

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def _document_similarities(query: np.ndarray, query_norm: float, document) -> np.ndarray:

    expected = query.shape[0]

    for index, embedding in enumerate(document.embeddings):

        if len(embedding) != expected:
            raise DimensionMismatch(
                expected=expected,
                actual=len(embedding),
                document_id=document.id,
                chunk_index=index,
            )

    matrix = np.asarray(document.embeddings, dtype="float64").reshape(
        len(document.embeddings), expected
    )

    norms = np.linalg.norm(matrix, axis=1)

    similarities = np.zeros(matrix.shape[0], dtype="float64")

    if query_norm == 0:
        return similarities

    denominators = norms * query_norm

    np.divide(
        matrix @ query,
        denominators,
        out=similarities,
        where=denominators != 0,
    )

    return similarities


def rank_chunks(
    query_embedding: Sequence[float],
    documents: Iterable,
    limit: int = TOP_K,
    threshold: float = SIMILARITY_THRESHOLD,
) -> List[Dict]:
    """
    Rank every (document, chunk) pair against the query.

    Steps:
    1. score each chunk of each document that has embeddings
    2. keep scores >= threshold
    3. stable sort by score, highest first
       (ties keep scan order: document order, then chunk index)
    4. cut to `limit`

    Any length mismatch aborts the whole ranking; no partial results.

    Returns:
        List of dicts with keys: document_id, file_name, chunk_index,
        chunk_text, similarity, metadata
    """

    if limit < 1:
        raise ConfigurationError(
            f"Invalid search limit: {limit}",
            stage=STAGE_SEARCH,
        )

    query = np.asarray(query_embedding, dtype="float64").reshape(-1)
    query_norm = float(np.linalg.norm(query))

    matches: List[Dict] = []
    scanned = 0

    for document in documents:

        if not document.embeddings:
            continue

        similarities = _document_similarities(query, query_norm, document)

        scanned += len(similarities)

        metadata = document.metadata.model_dump()

        for index, similarity in enumerate(similarities):

            similarity = float(similarity)

            if similarity < threshold:
                continue

            matches.append({
                "document_id": document.id,
                "file_name": document.file_name,
                "chunk_index": index,
                "chunk_text": document.chunks[index],
                "similarity": similarity,
                "metadata": metadata,
            })

    ranked = sorted(matches, key=lambda m: m["similarity"], reverse=True)[:limit]

    logger.info(
        "Similarity ranking completed",
        extra={
            "chunks_scanned": scanned,
            "matches": len(matches),
            "returned": len(ranked),
            "threshold": threshold,
        },
    )

    return ranked
