# app/memory/retriever.py
from typing import Dict, List, Sequence

from app.config import SIMILARITY_THRESHOLD, TOP_K
from app.memory.similarity import rank_chunks


def search(
    query_embedding: Sequence[float],
    user_id: str,
    store,
    limit: int = TOP_K,
    threshold: float = SIMILARITY_THRESHOLD,
) -> List[Dict]:
    """
    Rank the user's stored chunks against a query vector.

    Only documents owned by user_id are ever scored.

    Args:
        query_embedding: Query vector, same length as stored embeddings
        user_id: Owner whose documents are searched
        store: DocumentStore instance
        limit: Maximum number of results
        threshold: Minimum cosine similarity to keep a chunk

    Returns:
        List of dicts with keys: document_id, file_name, chunk_index,
        chunk_text, similarity, metadata
    """
    documents = store.find_by_user(user_id)

    return rank_chunks(
        query_embedding,
        documents,
        limit=limit,
        threshold=threshold,
    )


def retrieve(
    question: str,
    embedder,
    store,
    user_id: str,
    top_k: int = TOP_K,
    threshold: float = SIMILARITY_THRESHOLD,
) -> List[Dict]:
    """
    Embed a question the same way chunks are embedded, then search.
    """
    query_embedding = embedder.embed_query(question)

    return search(
        query_embedding,
        user_id,
        store,
        limit=top_k,
        threshold=threshold,
    )
