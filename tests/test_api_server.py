"""Tests for the FastAPI review server, backed by a local store in tmp_path."""

import json

import pytest
from fastapi.testclient import TestClient

from api.server import create_app

HEADER = "context.span_id,attributes.llm.input_messages,attributes.llm.output_messages"


def _quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _csv(*span_ids: str) -> bytes:
    inputs = _quote(json.dumps([{"message.role": "user", "message.content": "hi"}]))
    outputs = _quote(json.dumps([{"message.role": "assistant", "message.content": "hello"}]))
    lines = [HEADER, *[f"{s},{inputs},{outputs}" for s in span_ids]]
    return "\n".join(lines).encode("utf-8")


@pytest.fixture
def client(local_store):
    return TestClient(create_app(local_store))


class TestDocuments:
    def test_empty_store_returns_empty_arrays(self, client):
        assert client.get("/api/conversations").json() == []
        assert client.get("/api/queues").json() == []

    def test_post_replaces_document(self, client):
        r = client.post("/api/queues", json=[{"id": "q1", "name": "one", "runs": []}])
        assert r.status_code == 200
        assert r.json() == {"success": True}
        assert client.get("/api/queues").json() == [{"id": "q1", "name": "one", "runs": []}]

        client.post("/api/queues", json=[])
        assert client.get("/api/queues").json() == []

    def test_post_requires_array(self, client):
        r = client.post("/api/conversations", json={"id": "r1"})
        assert r.status_code == 400
        assert "error" in r.json()

    def test_health(self, client):
        assert client.get("/api/health").json() == {"ok": True}


class TestUploadCsv:
    def test_upload_then_duplicate(self, client):
        r = client.post(
            "/api/upload-csv",
            data={"uploadedBy": "Aman"},
            files={"file": ("upload.csv", _csv("s1", "s2"), "text/csv")},
        )
        assert r.status_code == 200
        assert r.json()["newCount"] == 2
        assert r.json()["isChunk"] is False

        r = client.post(
            "/api/upload-csv",
            data={"uploadedBy": "Aman", "isChunk": "true", "chunkNumber": "1", "totalChunks": "1"},
            files={"file": ("chunk_1.csv", _csv("s2", "s3"), "text/csv")},
        )
        body = r.json()
        assert r.status_code == 200
        assert (body["newCount"], body["duplicateCount"]) == (1, 1)
        assert body["chunkNumber"] == 1
        assert len(client.get("/api/conversations").json()) == 3

    def test_missing_file(self, client):
        r = client.post("/api/upload-csv", data={"uploadedBy": "Aman"})
        assert r.status_code == 400
        assert r.json() == {"error": "No file provided"}

    def test_missing_uploader(self, client):
        r = client.post("/api/upload-csv", files={"file": ("upload.csv", _csv("s1"), "text/csv")})
        assert r.status_code == 400
        assert r.json() == {"error": "No uploadedBy provided"}

    def test_no_valid_rows(self, client):
        r = client.post(
            "/api/upload-csv",
            data={"uploadedBy": "Aman"},
            files={"file": ("upload.csv", HEADER.encode("utf-8"), "text/csv")},
        )
        assert r.status_code == 400
        assert r.json()["error"] == "No valid conversations found in CSV chunk"


class TestUnreadableDocuments:
    def test_non_utf8_document_reads_as_empty(self, client, tmp_path):
        path = tmp_path / "store" / "reviews" / "conversations.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b'[{"id": "caf\xe9"}]')

        r = client.get("/api/conversations")

        assert r.status_code == 200
        assert r.json() == []

    def test_invalid_json_body_gets_error_shape(self, client):
        r = client.post(
            "/api/queues",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert r.status_code == 500
        assert r.json() == {"error": "Failed to save queues"}
        assert client.get("/api/queues").json() == []

    def test_empty_body_gets_error_shape(self, client):
        r = client.post("/api/conversations", content=b"")
        assert r.status_code == 500
        assert r.json() == {"error": "Failed to save conversations"}
