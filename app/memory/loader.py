# app/memory/loader.py

"""
Text extraction for uploaded documents.

Architecture contract preserved:
loader → chunker → embedder → document store

Supports:
- PDF files (pypdf)
- DOCX files (python-docx)
- Plain text (UTF-8)

The loader is the only place that knows about file formats. It always
returns resolved text or raises an ExtractionFailure subclass; callers
never see parser callbacks or partial results.
"""

import io
import logging
import re

from docx import Document as DocxDocument
from pypdf import PdfReader

from app.config import (
    ALLOWED_MIME_TYPES,
    DOCX_MIME_TYPE,
    MAX_FILE_SIZE_MB,
    PDF_MIME_TYPE,
    TEXT_MIME_TYPE,
)
from app.errors import (
    EmptyDocument,
    FileTooLarge,
    ParseFailure,
    UnsupportedType,
)

logger = logging.getLogger(__name__)


# ============================================================
# VALIDATION
# ============================================================

def validate_upload(content: bytes, mime_type: str):

    if mime_type not in ALLOWED_MIME_TYPES:
        raise UnsupportedType(
            "Unsupported file type. Please upload PDF, TXT, or DOCX files."
        )

    size_mb = len(content) / (1024 * 1024)

    if size_mb > MAX_FILE_SIZE_MB:
        raise FileTooLarge(
            f"File too large: {size_mb:.2f}MB. "
            f"Maximum size is {MAX_FILE_SIZE_MB}MB."
        )


# ============================================================
# PDF LOADER
# ============================================================

def load_pdf_text(content: bytes) -> str:

    try:

        reader = PdfReader(io.BytesIO(content))

        parts = []

        for page in reader.pages:

            text = page.extract_text()

            if text:
                parts.append(text)

    except Exception as e:

        logger.warning(
            "PDF parsing failed",
            extra={"error": str(e)},
        )

        raise ParseFailure(
            "Failed to parse PDF file. Please ensure it contains readable text."
        ) from e

    return "\n".join(parts)


# ============================================================
# DOCX LOADER
# ============================================================

def load_docx_text(content: bytes) -> str:

    try:

        doc = DocxDocument(io.BytesIO(content))

        paragraphs = [p.text for p in doc.paragraphs]

    except Exception as e:

        logger.warning(
            "DOCX parsing failed",
            extra={"error": str(e)},
        )

        raise ParseFailure(
            "Failed to parse DOCX file. Please ensure it contains readable text."
        ) from e

    return "\n".join(paragraphs)


# ============================================================
# PLAIN TEXT LOADER
# ============================================================

def load_plain_text(content: bytes) -> str:

    return content.decode("utf-8", errors="replace")


# ============================================================
# CLEAN TEXT
# ============================================================

_WHITESPACE_RUN = re.compile(r"\s+")


def clean_text(text: str) -> str:
    """
    Normalize line endings and tabs, then collapse every whitespace
    run to a single space.
    """

    if not text:
        return ""

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = text.replace("\t", " ")

    return _WHITESPACE_RUN.sub(" ", text).strip()


# ============================================================
# MAIN ENTRY POINT (ARCHITECTURE CONTRACT)
# ============================================================

_EXTRACTORS = {
    PDF_MIME_TYPE: load_pdf_text,
    TEXT_MIME_TYPE: load_plain_text,
    DOCX_MIME_TYPE: load_docx_text,
}


def extract_text(content: bytes, mime_type: str) -> str:
    """
    Extract cleaned text from raw file bytes.

    Raises:
        UnsupportedType: declared MIME type is not accepted
        FileTooLarge: content exceeds MAX_FILE_SIZE_MB
        ParseFailure: the parser could not read the file
        EmptyDocument: no text survived cleaning
    """

    validate_upload(content, mime_type)

    raw = _EXTRACTORS[mime_type](content)

    text = clean_text(raw)

    if not text:
        raise EmptyDocument(
            "No text content could be extracted from the file."
        )

    logger.info(
        "Text extracted",
        extra={
            "mime_type": mime_type,
            "raw_length": len(raw),
            "clean_length": len(text),
        },
    )

    return text
