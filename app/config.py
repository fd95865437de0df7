"""
Configuration for the Document Retrieval Service.

This file centralizes all tunable parameters for the RAG pipeline.
Changes here affect system behavior without code modifications.
"""

import os


# ========== DOCUMENT PROCESSING ==========

# Chunk configuration (characters, not words)
CHUNK_SIZE = 1000
CHUNK_OVERLAP = 200  # overlap between chunks to preserve context

# Separator priority for the recursive splitter.
# "" is the last resort and splits at character boundaries.
CHUNK_SEPARATORS = ["\n\n", "\n", " ", ""]

# File upload limits
MAX_FILE_SIZE_MB = 10

PDF_MIME_TYPE = "application/pdf"
TEXT_MIME_TYPE = "text/plain"
DOCX_MIME_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)

ALLOWED_MIME_TYPES = [PDF_MIME_TYPE, TEXT_MIME_TYPE, DOCX_MIME_TYPE]

# Characters of cleaned text echoed back after upload
PREVIEW_CHARACTERS = 500


# ========== EMBEDDING CONFIGURATION ==========

EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")

# Every stored vector is cut to this length, then L2-normalized
EMBEDDING_DIMENSION = 768

EMBED_BATCH_SIZE = 32

# Handed to the client library; the pipeline itself never retries
EMBEDDING_TIMEOUT_SECONDS = 30.0
EMBEDDING_MAX_RETRIES = 2


# ========== RETRIEVAL CONFIGURATION ==========

TOP_K = 5  # Number of chunks to return

SIMILARITY_THRESHOLD = 0.7
# - Below this threshold → chunk is not returned
# - Trade-off: Higher = fewer but more relevant matches
#              Lower = more matches, more noise


# ========== STORAGE ==========

STORAGE_DIR = os.getenv("STORAGE_DIR", "storage")

DOCUMENTS_FILE = "documents.json"
USERS_FILE = "users.json"
METRICS_FILE = "metrics.json"

# Most recent request latencies kept for percentiles
METRICS_LATENCY_WINDOW = 1000


# ========== LOGGING ==========

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")


# ========== DESIGN TRADE-OFFS (DOCUMENTED) ==========

"""
TRADE-OFF DECISIONS:

1. CHUNK_SIZE = 1000 characters, CHUNK_OVERLAP = 200:
   - Smaller chunks → More precise retrieval but lose context
   - Larger chunks → More context but less precise
   - 20% overlap keeps sentences that straddle a boundary retrievable

2. EMBEDDING_DIMENSION = 768:
   - Remote vectors are truncated, not re-projected
   - Halves storage and scoring cost for text-embedding-3-small

3. Brute-force search (no vector index):
   - Trade-off: Always exact over current data, nothing to rebuild
   - Limitation: O(chunks x dimension) per query, fine per user

4. JSON files on disk (not a database server):
   - Trade-off: Simple deployment, easy to inspect
   - Limitation: Single instance, whole file rewritten on each change
"""
