"""Document-level operations on the conversations and queues collections.

Both collections are plain JSON arrays. Queues hold *copies* of runs, so any
write that changes a run has to be applied to the master list and to every
queue that contains it in the same operation.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any

from utils.data_helpers import iso_utc

logger = logging.getLogger(__name__)

JUDGEMENTS = ("correct", "wrong")


def merge_batch(
    existing: list[dict[str, Any]],
    batch: list[dict[str, Any]],
) -> tuple[list[dict[str, Any]], int, int]:
    """Append records from `batch` whose span_id is not already present.

    Records without a span_id are always kept. Returns
    (merged, new_count, duplicate_count); `merged` keeps the existing order
    with the unique records appended.
    """
    seen: set[str] = {str(c["span_id"]) for c in existing if c.get("span_id")}
    unique: list[dict[str, Any]] = []
    duplicates = 0

    for rec in batch:
        span_id = rec.get("span_id")
        if not span_id:
            unique.append(rec)
            continue
        if str(span_id) in seen:
            duplicates += 1
            continue
        seen.add(str(span_id))
        unique.append(rec)

    return [*existing, *unique], len(unique), duplicates


def make_annotation(judgement: str, notes: str, now: datetime | None = None) -> dict[str, str]:
    if judgement not in JUDGEMENTS:
        raise ValueError(f"judgement must be one of {JUDGEMENTS}, got {judgement!r}")
    return {
        "judgement": judgement,
        "notes": (notes or "").strip(),
        "timestamp": iso_utc(now or datetime.now(timezone.utc)),
    }


def _with_annotation(run: dict[str, Any], reviewer: str, annotation: dict[str, str]) -> dict[str, Any]:
    return {
        **run,
        "annotations": {**(run.get("annotations") or {}), reviewer: annotation},
    }


def apply_annotation(
    conversations: list[dict[str, Any]],
    queues: list[dict[str, Any]],
    run_id: str,
    reviewer: str,
    annotation: dict[str, str],
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Set `reviewer`'s annotation on run `run_id` in the master list and in every queue copy."""
    new_conversations = [
        _with_annotation(c, reviewer, annotation) if c.get("id") == run_id else c
        for c in conversations
    ]

    new_queues: list[dict[str, Any]] = []
    for q in queues:
        runs = q.get("runs") or []
        if any(r.get("id") == run_id for r in runs):
            q = {
                **q,
                "runs": [_with_annotation(r, reviewer, annotation) if r.get("id") == run_id else r for r in runs],
            }
        new_queues.append(q)

    return new_conversations, new_queues


def build_queue(
    name: str,
    runs: list[dict[str, Any]],
    created_by: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Snapshot `runs` into a new annotation queue."""
    clean_name = (name or "").strip()
    if not clean_name:
        raise ValueError("Queue name is required")
    created = now or datetime.now(timezone.utc)
    return {
        "id": f"queue-{int(created.timestamp() * 1000)}",
        "name": clean_name,
        "runs": copy.deepcopy(list(runs)),
        "createdAt": iso_utc(created),
        "created_by": created_by,
    }


def remove_queue(queues: list[dict[str, Any]], queue_id: str) -> list[dict[str, Any]]:
    return [q for q in queues if q.get("id") != queue_id]


def find_by_id(items: list[dict[str, Any]], item_id: str | None) -> dict[str, Any] | None:
    if not item_id:
        return None
    for it in items:
        if it.get("id") == item_id:
            return it
    return None


class ReviewOperationsMixin:
    """Run/queue write operations shared by every review backend.

    Subclasses provide load_conversations/save_conversations and
    load_queues/save_queues. Each operation re-reads both documents, applies
    the change and writes both back (last writer wins).
    """

    def load_conversations(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def save_conversations(self, conversations: list[dict[str, Any]]) -> None:
        raise NotImplementedError

    def load_queues(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def save_queues(self, queues: list[dict[str, Any]]) -> None:
        raise NotImplementedError

    def record_annotation(
        self,
        run_id: str,
        reviewer: str,
        judgement: str,
        notes: str = "",
    ) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        """Record one reviewer's judgement on a run everywhere that run is stored."""
        if not reviewer:
            raise ValueError("reviewer is required")
        annotation = make_annotation(judgement, notes)
        conversations, queues = apply_annotation(
            self.load_conversations(),
            self.load_queues(),
            run_id,
            reviewer,
            annotation,
        )
        self.save_conversations(conversations)
        self.save_queues(queues)
        logger.info("Recorded %s annotation by %s on %s", judgement, reviewer, run_id)
        return conversations, queues

    def create_queue(
        self,
        name: str,
        runs: list[dict[str, Any]],
        created_by: str,
    ) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        queue = build_queue(name, runs, created_by)
        queues = [*self.load_queues(), queue]
        self.save_queues(queues)
        logger.info("Created queue %s (%d runs) for %s", queue["id"], len(queue["runs"]), created_by)
        return queue, queues

    def delete_queue(self, queue_id: str) -> list[dict[str, Any]]:
        queues = remove_queue(self.load_queues(), queue_id)
        self.save_queues(queues)
        return queues


def queue_annotation_rows(queue: dict[str, Any]) -> list[dict[str, Any]]:
    """Flatten a queue into one row per (run, reviewer) annotation for CSV export."""
    rows: list[dict[str, Any]] = []
    for run in queue.get("runs") or []:
        meta = run.get("metadata") or {}
        for reviewer, ann in sorted((run.get("annotations") or {}).items()):
            rows.append(
                {
                    "queue": queue.get("name"),
                    "run_id": run.get("id"),
                    "span_id": run.get("span_id"),
                    "org": (meta.get("org") or {}).get("name"),
                    "course": (meta.get("course") or {}).get("name"),
                    "task_id": meta.get("task_id"),
                    "stage": meta.get("stage"),
                    "reviewer": reviewer,
                    "judgement": (ann or {}).get("judgement"),
                    "notes": (ann or {}).get("notes"),
                    "annotated_at": (ann or {}).get("timestamp"),
                }
            )
    return rows
