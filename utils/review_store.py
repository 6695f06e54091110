"""Conversation and queue documents kept in an object store.

Every write replaces the whole JSON document. There is no locking or
versioning: two uploads that read the same document concurrently will each
write back their own merge, and the later write drops the other's records.
"""

import logging
from typing import Any

from utils.blob_store import LocalJsonStore, S3JsonStore, StorageError
from utils.conversation_store import ReviewOperationsMixin, merge_batch
from utils.csv_ingest import csv_to_conversations

logger = logging.getLogger(__name__)


class IngestError(Exception):
    """A CSV upload that failed as a whole."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def document_keys(folder: str) -> dict[str, str]:
    prefix = (folder or "").strip().strip("/")
    return {
        "conversations": f"{prefix}/conversations.json" if prefix else "conversations.json",
        "queues": f"{prefix}/queues.json" if prefix else "queues.json",
    }


def _upload_message(
    new_count: int,
    duplicate_count: int,
    *,
    is_chunk: bool,
    chunk_number: int,
    total_chunks: int,
) -> str:
    dupes = f" ({duplicate_count} duplicates skipped)" if duplicate_count > 0 else ""
    if is_chunk:
        return f"Chunk {chunk_number}/{total_chunks} processed: {new_count} new conversations{dupes}"
    return f"Successfully uploaded {new_count} conversations{dupes}"


class ReviewStore(ReviewOperationsMixin):
    """Reads and writes the two review documents through a JSON blob store."""

    def __init__(self, blob_store: Any, folder: str = ""):
        self.blob_store = blob_store
        self.keys = document_keys(folder)

    def _load_array(self, name: str) -> list[dict[str, Any]]:
        key = self.keys[name]
        try:
            data = self.blob_store.read_json(key)
        except StorageError as e:
            logger.warning("Error reading %s, treating as empty: %s", key, e)
            return []
        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning("Document %s is not a JSON array, treating as empty", key)
            return []
        records = [item for item in data if isinstance(item, dict)]
        if len(records) != len(data):
            logger.warning("Dropped %d non-object entries from %s", len(data) - len(records), key)
        return records

    def load_conversations(self) -> list[dict[str, Any]]:
        return self._load_array("conversations")

    def load_queues(self) -> list[dict[str, Any]]:
        return self._load_array("queues")

    def save_conversations(self, conversations: list[dict[str, Any]]) -> None:
        self.blob_store.write_json(self.keys["conversations"], list(conversations))

    def save_queues(self, queues: list[dict[str, Any]]) -> None:
        self.blob_store.write_json(self.keys["queues"], list(queues))

    def ingest_csv(
        self,
        csv_text: str,
        uploaded_by: str,
        *,
        is_chunk: bool = False,
        chunk_number: int = 1,
        total_chunks: int = 1,
    ) -> dict[str, Any]:
        """Parse a CSV (or one chunk of it) and merge the new runs into the master document.

        Raises IngestError(400) when no valid rows were found and
        IngestError(500) when the merged document cannot be written.
        """
        if not uploaded_by:
            raise IngestError("No uploadedBy provided")

        new_conversations, stats = csv_to_conversations(csv_text, uploaded_by)
        if not new_conversations:
            logger.info("CSV upload by %s produced no valid rows: %s", uploaded_by, stats)
            raise IngestError("No valid conversations found in CSV chunk")

        existing = self.load_conversations()
        merged, new_count, duplicate_count = merge_batch(existing, new_conversations)

        # An all-duplicate batch leaves the document untouched.
        if new_count > 0:
            try:
                self.save_conversations(merged)
            except StorageError as e:
                logger.exception("Error saving merged conversations")
                raise IngestError("Failed to process CSV upload", status_code=500) from e

        logger.info(
            "CSV upload by %s: %d new, %d duplicate, %d rows skipped",
            uploaded_by,
            new_count,
            duplicate_count,
            stats["field_mismatch"] + stats["rejected"],
        )
        return {
            "success": True,
            "message": _upload_message(
                new_count,
                duplicate_count,
                is_chunk=is_chunk,
                chunk_number=chunk_number,
                total_chunks=total_chunks,
            ),
            "newCount": new_count,
            "duplicateCount": duplicate_count,
            "totalProcessed": len(new_conversations),
            "chunkNumber": chunk_number if is_chunk else None,
            "totalChunks": total_chunks if is_chunk else None,
            "isChunk": is_chunk,
        }

    def upload_csv(
        self,
        csv_bytes: bytes,
        uploaded_by: str,
        *,
        is_chunk: bool = False,
        chunk_number: int = 1,
        total_chunks: int = 1,
    ) -> tuple[int, dict[str, Any]]:
        """Run ingest_csv and express the outcome as (status_code, payload)."""
        try:
            text = csv_bytes.decode("utf-8-sig", errors="replace")
            payload = self.ingest_csv(
                text,
                uploaded_by,
                is_chunk=is_chunk,
                chunk_number=chunk_number,
                total_chunks=total_chunks,
            )
        except IngestError as e:
            return e.status_code, {"error": e.message, "newCount": 0, "duplicateCount": 0}
        except Exception:
            logger.exception("Error processing CSV upload")
            return 500, {"error": "Failed to process CSV upload", "newCount": 0, "duplicateCount": 0}
        return 200, {k: v for k, v in payload.items() if v is not None}


def store_from_config(config: dict[str, Any]) -> ReviewStore:
    """Build a ReviewStore over S3 when a bucket is configured, otherwise over a local directory."""
    if config.get("bucket"):
        blob: Any = S3JsonStore(config["bucket"], region=config.get("region") or "us-east-1")
    else:
        blob = LocalJsonStore(config.get("local_dir") or ".review_data")
    return ReviewStore(blob, folder=config.get("folder") or "")
