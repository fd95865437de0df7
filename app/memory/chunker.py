# app/memory/chunker.py

import logging
from typing import List, Optional, Sequence

from langchain_text_splitters import RecursiveCharacterTextSplitter

from app.config import (
    CHUNK_SIZE,
    CHUNK_OVERLAP,
    CHUNK_SEPARATORS,
)
from app.errors import ConfigurationError

logger = logging.getLogger(__name__)


def chunk_text(
    text: str,
    size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
    separators: Optional[Sequence[str]] = None,
) -> List[str]:
    """
    Recursive character chunker.

    Architecture contract preserved:
    loader → chunker → embedder → document store

    Tries separators in priority order. A piece that is still too long
    is re-split with the remaining separators, down to "" which splits
    at character boundaries. Neighbouring chunks share up to `overlap`
    characters. Separators at split points are dropped.

    Guarantees:
    • deterministic chunk generation
    • every chunk at most `size` characters
    • no empty chunks
    • document order preserved
    """

    if size <= 0:
        raise ConfigurationError(f"Invalid chunk size: {size}")

    if overlap < 0:
        raise ConfigurationError(f"Invalid chunk overlap: {overlap}")

    if overlap >= size:
        raise ConfigurationError(
            f"Overlap must be smaller than chunk size "
            f"(overlap={overlap}, size={size})"
        )

    if separators is None:
        separators = CHUNK_SEPARATORS

    if not separators:
        raise ConfigurationError("At least one separator is required")

    if not text or not text.strip():
        logger.warning("Chunking skipped: empty text")
        return []

    splitter = RecursiveCharacterTextSplitter(
        chunk_size=size,
        chunk_overlap=overlap,
        separators=list(separators),
        keep_separator=False,
    )

    chunks = [piece for piece in splitter.split_text(text) if piece.strip()]

    logger.info(
        "Chunking completed",
        extra={
            "total_characters": len(text),
            "chunk_size": size,
            "overlap": overlap,
            "chunks_created": len(chunks),
        },
    )

    return chunks
