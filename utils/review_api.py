"""HTTP client for the review API (conversations, queues, CSV upload)."""

import time as time_mod
from typing import Any

import requests

from utils.conversation_store import ReviewOperationsMixin


class ReviewApiError(RuntimeError):
    """Raised when the review API answers a document request with an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _json_or_empty(r: requests.Response) -> Any:
    try:
        return r.json()
    except ValueError:
        return {}


class ReviewApiClient(ReviewOperationsMixin):
    """Talks to `api.server` over HTTP; same operations as the in-process ReviewStore."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30,
        retry: int = 2,
        backoff: float = 0.5,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry = retry
        self.backoff = backoff
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/{path.lstrip('/')}"

    def _get_array(self, path: str) -> list[dict[str, Any]]:
        attempts = 0
        while True:
            r = self.session.get(self._url(path), timeout=self.timeout)
            if 500 <= r.status_code < 600 and attempts < self.retry:
                attempts += 1
                time_mod.sleep(self.backoff * attempts)
                continue
            break

        if r.status_code >= 400:
            raise ReviewApiError(f"GET /api/{path} failed (status {r.status_code})", r.status_code)
        data = _json_or_empty(r)
        return data if isinstance(data, list) else []

    def _post_array(self, path: str, items: list[dict[str, Any]]) -> None:
        r = self.session.post(self._url(path), json=list(items), timeout=self.timeout)
        if r.status_code >= 400:
            err = _json_or_empty(r)
            msg = err.get("error") if isinstance(err, dict) else None
            raise ReviewApiError(msg or f"POST /api/{path} failed (status {r.status_code})", r.status_code)

    def load_conversations(self) -> list[dict[str, Any]]:
        return self._get_array("conversations")

    def save_conversations(self, conversations: list[dict[str, Any]]) -> None:
        self._post_array("conversations", conversations)

    def load_queues(self) -> list[dict[str, Any]]:
        return self._get_array("queues")

    def save_queues(self, queues: list[dict[str, Any]]) -> None:
        self._post_array("queues", queues)

    def upload_csv(
        self,
        csv_bytes: bytes,
        uploaded_by: str,
        *,
        is_chunk: bool = False,
        chunk_number: int = 1,
        total_chunks: int = 1,
    ) -> tuple[int, dict[str, Any]]:
        """POST one CSV to /api/upload-csv. Network errors propagate as requests exceptions."""
        data = {
            "uploadedBy": uploaded_by,
            "isChunk": "true" if is_chunk else "false",
            "chunkNumber": str(chunk_number),
            "totalChunks": str(total_chunks),
        }
        filename = f"chunk_{chunk_number}.csv" if is_chunk else "upload.csv"
        files = {"file": (filename, csv_bytes, "text/csv")}
        r = self.session.post(self._url("upload-csv"), data=data, files=files, timeout=self.timeout)
        payload = _json_or_empty(r)
        return int(r.status_code), payload if isinstance(payload, dict) else {}
