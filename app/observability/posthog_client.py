# app/observability/posthog_client.py

"""
Product analytics for the retrieval pipeline.

Events are keyed by the caller's user id when one is known and by the
request id otherwise. Properties are counts, scores, stages and types
only: document text, queries and API keys never leave the process.

Analytics is best effort. A capture that fails is logged and dropped,
and the client is a no-op when POSTHOG_API_KEY is unset.
"""

import os
import logging
from typing import Optional, Dict, Any

from posthog import Posthog


logger = logging.getLogger(__name__)


EVENT_DOCUMENT_UPLOADED = "document_uploaded"
EVENT_SEARCH_COMPLETED = "search_completed"
EVENT_API_KEY_UPDATED = "api_key_updated"
EVENT_PIPELINE_ERROR = "pipeline_error"

# Property names that would carry user content
_FORBIDDEN_PROPERTIES = frozenset({"query", "text", "chunk_text", "api_key"})


class PostHogClient:

    def __init__(self, api_key: Optional[str] = None, host: Optional[str] = None):

        api_key = api_key or os.getenv("POSTHOG_API_KEY")
        host = host or os.getenv("POSTHOG_HOST", "https://app.posthog.com")

        self._client: Optional[Posthog] = None

        if not api_key:
            logger.info("Analytics disabled: POSTHOG_API_KEY not set")
            return

        self._client = Posthog(
            project_api_key=api_key,
            host=host,
            timeout=5,
            flush_interval=1,
        )

        logger.info("Analytics enabled", extra={"host": host})

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def disable(self):
        self._client = None

    def shutdown(self):
        """Flush queued events; called when the app stops."""

        if self._client is None:
            return

        try:
            self._client.shutdown()
        except Exception as e:
            logger.warning("Analytics flush failed", extra={"error": str(e)})

    def capture(self, distinct_id: str, event: str, properties: Dict[str, Any]):

        if self._client is None:
            return

        leaked = _FORBIDDEN_PROPERTIES.intersection(properties)

        if leaked:
            logger.error(
                "Analytics event dropped: content properties",
                extra={"event": event, "properties": sorted(leaked)},
            )
            return

        try:
            self._client.capture(
                distinct_id=distinct_id,
                event=event,
                properties=properties,
            )
        except Exception as e:
            logger.warning(
                "Analytics capture failed",
                extra={"event": event, "error": str(e)},
            )

    # ==========================================================
    # PIPELINE EVENTS
    # ==========================================================

    def track_document_upload(
        self,
        distinct_id: str,
        document_id: str,
        file_type: str,
        chunks: int,
        embeddings: int,
        stage: str,
        latency: float,
    ):

        self.capture(distinct_id, EVENT_DOCUMENT_UPLOADED, {
            "document_id": document_id,
            "file_type": file_type,
            "chunks": chunks,
            "embeddings": embeddings,
            "searchable": embeddings > 0,
            "stage": stage,
            "latency_seconds": round(latency, 3),
        })

    def track_search(
        self,
        distinct_id: str,
        results: int,
        top_score: Optional[float],
        limit: int,
        threshold: float,
        latency: float,
    ):

        self.capture(distinct_id, EVENT_SEARCH_COMPLETED, {
            "results": results,
            "top_score": top_score,
            "limit": limit,
            "threshold": threshold,
            "latency_seconds": round(latency, 3),
        })

    def track_api_key_change(self, distinct_id: str, has_api_key: bool):

        self.capture(distinct_id, EVENT_API_KEY_UPDATED, {"has_api_key": has_api_key})

    def track_error(
        self,
        distinct_id: str,
        error_type: str,
        endpoint: str,
        stage: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        # messages are left out; they can quote file names
        self.capture(distinct_id, EVENT_PIPELINE_ERROR, {
            "error_type": error_type,
            "endpoint": endpoint,
            "stage": stage,
            "status_code": status_code,
        })


posthog_client = PostHogClient()
