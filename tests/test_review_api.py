"""Tests for ReviewApiClient. All HTTP responses are mocked."""

from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import requests

from utils.review_api import ReviewApiClient, ReviewApiError


def _make_response(status_code: int, json_data: Any = None) -> MagicMock:
    """Build a mock requests.Response."""
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    if json_data is not None:
        resp.json.return_value = json_data
    else:
        resp.json.side_effect = ValueError("No JSON")
    return resp


def _client(session: MagicMock, **kwargs: Any) -> ReviewApiClient:
    return ReviewApiClient("http://review.local/", session=session, backoff=0.01, **kwargs)


class TestDocuments:
    def test_load_conversations(self):
        session = MagicMock()
        session.get.return_value = _make_response(200, [{"id": "r1"}])

        assert _client(session).load_conversations() == [{"id": "r1"}]
        assert session.get.call_args.args[0] == "http://review.local/api/conversations"

    def test_non_array_body_reads_as_empty(self):
        session = MagicMock()
        session.get.return_value = _make_response(200, {"oops": True})
        assert _client(session).load_queues() == []

    @patch("utils.review_api.time_mod.sleep")
    def test_retries_5xx_then_succeeds(self, mock_sleep):
        session = MagicMock()
        session.get.side_effect = [_make_response(502), _make_response(200, [])]

        assert _client(session).load_queues() == []
        assert session.get.call_count == 2
        mock_sleep.assert_called_once()

    @patch("utils.review_api.time_mod.sleep")
    def test_gives_up_after_retry_budget(self, mock_sleep):
        session = MagicMock()
        session.get.return_value = _make_response(500)

        with pytest.raises(ReviewApiError) as exc:
            _client(session, retry=2).load_conversations()
        assert exc.value.status_code == 500
        assert session.get.call_count == 3

    def test_4xx_is_not_retried(self):
        session = MagicMock()
        session.get.return_value = _make_response(404)
        with pytest.raises(ReviewApiError):
            _client(session).load_conversations()
        assert session.get.call_count == 1

    def test_save_posts_json_array(self):
        session = MagicMock()
        session.post.return_value = _make_response(200, {"success": True})

        _client(session).save_queues([{"id": "q1"}])

        args, kwargs = session.post.call_args
        assert args[0] == "http://review.local/api/queues"
        assert kwargs["json"] == [{"id": "q1"}]

    def test_save_error_uses_server_message(self):
        session = MagicMock()
        session.post.return_value = _make_response(500, {"error": "Failed to save queues"})
        with pytest.raises(ReviewApiError, match="Failed to save queues"):
            _client(session).save_queues([])


class TestUploadCsv:
    def test_chunk_form_fields(self):
        session = MagicMock()
        session.post.return_value = _make_response(200, {"success": True, "newCount": 3})

        status, payload = _client(session).upload_csv(
            b"h\nrow", "Aman", is_chunk=True, chunk_number=2, total_chunks=4
        )

        assert (status, payload["newCount"]) == (200, 3)
        kwargs = session.post.call_args.kwargs
        assert kwargs["data"] == {"uploadedBy": "Aman", "isChunk": "true", "chunkNumber": "2", "totalChunks": "4"}
        assert kwargs["files"]["file"] == ("chunk_2.csv", b"h\nrow", "text/csv")

    def test_error_status_is_returned_not_raised(self):
        session = MagicMock()
        session.post.return_value = _make_response(400, {"error": "No valid conversations found in CSV chunk"})

        status, payload = _client(session).upload_csv(b"h", "Aman")

        assert status == 400
        assert payload["error"] == "No valid conversations found in CSV chunk"

    def test_network_error_propagates(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(requests.ConnectionError):
            _client(session).upload_csv(b"h", "Aman")


class TestRecordAnnotationOverHttp:
    def test_reads_both_documents_and_writes_both_back(self):
        session = MagicMock()
        session.get.side_effect = [
            _make_response(200, [{"id": "r1", "span_id": "s1"}]),
            _make_response(200, [{"id": "q1", "runs": [{"id": "r1", "span_id": "s1"}]}]),
        ]
        session.post.return_value = _make_response(200, {"success": True})

        convs, queues = _client(session).record_annotation("r1", "Piyush", "correct")

        assert convs[0]["annotations"]["Piyush"]["judgement"] == "correct"
        posted = [c.args[0] for c in session.post.call_args_list]
        assert posted == ["http://review.local/api/conversations", "http://review.local/api/queues"]
        assert session.post.call_args_list[1].kwargs["json"][0]["runs"][0]["annotations"]["Piyush"]["notes"] == ""
