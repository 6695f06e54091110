"""Upload large CSV exports as a sequence of smaller CSV chunks."""

import logging
import time as time_mod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from utils.csv_ingest import split_csv_lines

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 100
DEFAULT_CHUNK_DELAY_S = 0.1


class EmptyCsvError(ValueError):
    """The CSV has no header or no data rows."""


@dataclass
class UploadSummary:
    total_chunks: int = 0
    processed_count: int = 0
    new_count: int = 0
    duplicate_count: int = 0
    has_errors: bool = False
    error_message: str = ""
    chunk_errors: list[dict[str, Any]] = field(default_factory=list)
    conversations: list[dict[str, Any]] | None = None
    refresh_error: str = ""


def split_csv_into_chunks(csv_text: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Split data rows into chunks of `chunk_size`, each led by the original header line."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    lines = split_csv_lines(csv_text)
    if not lines:
        raise EmptyCsvError("CSV file appears to be empty")
    header, data_lines = lines[0], lines[1:]
    if not data_lines:
        raise EmptyCsvError("CSV file has no data rows")

    return [
        "\n".join([header, *data_lines[start:start + chunk_size]])
        for start in range(0, len(data_lines), chunk_size)
    ]


def upload_csv_in_chunks(
    csv_text: str,
    uploaded_by: str,
    backend: Any,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    delay_s: float = DEFAULT_CHUNK_DELAY_S,
    on_progress: Callable[[int, int], None] | None = None,
    sleep: Callable[[float], None] = time_mod.sleep,
) -> UploadSummary:
    """Submit chunks one at a time and aggregate the per-chunk results.

    `backend` needs upload_csv(...) -> (status_code, payload) and
    load_conversations(). A failing chunk is recorded and the next chunk is
    still sent. Afterwards the master list is reloaded from the backend,
    since other reviewers may have uploaded in the meantime.
    """
    chunks = split_csv_into_chunks(csv_text, chunk_size)
    summary = UploadSummary(total_chunks=len(chunks))

    for i, chunk in enumerate(chunks):
        chunk_number = i + 1
        if on_progress:
            on_progress(i, len(chunks))
        try:
            status_code, result = backend.upload_csv(
                chunk.encode("utf-8"),
                uploaded_by,
                is_chunk=True,
                chunk_number=chunk_number,
                total_chunks=len(chunks),
            )
            if 200 <= status_code < 300:
                summary.new_count += int(result.get("newCount") or 0)
                summary.duplicate_count += int(result.get("duplicateCount") or 0)
                summary.processed_count += 1
            else:
                summary.has_errors = True
                summary.error_message = result.get("error") or f"Error processing chunk {chunk_number}"
                summary.chunk_errors.append({"chunk": chunk_number, "status": status_code, "error": summary.error_message})
                logger.error("Error processing chunk %d: %s", chunk_number, summary.error_message)

            if i < len(chunks) - 1:
                sleep(delay_s)
        except Exception as e:
            summary.has_errors = True
            summary.error_message = f"Network error processing chunk {chunk_number}"
            summary.chunk_errors.append({"chunk": chunk_number, "status": None, "error": str(e)})
            logger.error("Error uploading chunk %d: %s", chunk_number, e)

    if on_progress:
        on_progress(len(chunks), len(chunks))

    try:
        summary.conversations = backend.load_conversations()
    except Exception as e:
        logger.error("Error refreshing conversations after upload: %s", e)
        summary.refresh_error = str(e)

    return summary


def summarize_upload(summary: UploadSummary) -> tuple[str, str]:
    """Collapse an upload into one (level, message) pair; level is success, warning or error."""
    if summary.has_errors and summary.processed_count == 0:
        return "error", f"Upload failed: {summary.error_message}"
    if summary.has_errors:
        return (
            "warning",
            f"Partial upload completed. {summary.processed_count} of {summary.total_chunks} chunks processed "
            f"successfully. Added {summary.new_count} new conversations. "
            f"{summary.duplicate_count} duplicates were skipped.",
        )
    if summary.new_count == 0 and summary.duplicate_count > 0:
        return "warning", "All conversations in the CSV already exist. No new data was added."
    if summary.duplicate_count > 0:
        return (
            "success",
            f"Upload successful! Added {summary.new_count} new conversations. "
            f"{summary.duplicate_count} duplicates were skipped.",
        )
    return "success", f"Upload successful! Added {summary.new_count} new conversations."
