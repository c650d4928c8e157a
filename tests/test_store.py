"""Tests for the remote blob store client.

All HTTP traffic goes through a mocked requests session.
"""

from __future__ import annotations

import base64
import json
from unittest.mock import MagicMock

import pytest
import requests

from confsync.errors import EncodingError, TransportError
from confsync.store import REQUEST_TIMEOUT, RemoteBlobStore


def _response(status: int, payload=None, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    if payload is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = payload
    resp.text = text
    return resp


def _wrapped_b64(data: bytes, width: int = 20) -> str:
    encoded = base64.b64encode(data).decode()
    return "\n".join(encoded[i:i + width] for i in range(0, len(encoded), width)) + "\n"


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def store(session):
    return RemoteBlobStore("tok-123", "acme", "backups", session=session)


class TestFetch:
    def test_decodes_line_wrapped_content(self, store, session):
        body = json.dumps([{"id": 1, "name": "a" * 40}]).encode()
        session.request.return_value = _response(
            200, {"content": _wrapped_b64(body), "sha": "abc123"}
        )

        content, found = store.fetch("tokens.json")

        assert found is True
        assert content == body

    def test_request_shape(self, store, session):
        session.request.return_value = _response(404)
        store.fetch("tokens.json")

        args, kwargs = session.request.call_args
        assert args == (
            "GET",
            "https://api.github.com/repos/acme/backups/contents/tokens.json",
        )
        assert kwargs["headers"]["Authorization"] == "token tok-123"
        assert kwargs["headers"]["Accept"] == "application/vnd.github.v3+json"
        assert kwargs["timeout"] == REQUEST_TIMEOUT == 30

    def test_not_found(self, store, session):
        session.request.return_value = _response(404, {"message": "Not Found"})
        assert store.fetch("channels.json") == (None, False)

    def test_fetch_blob_returns_revision(self, store, session):
        session.request.return_value = _response(
            200, {"content": base64.b64encode(b"[]").decode(), "sha": "rev-9"}
        )
        blob = store.fetch_blob("models.json")
        assert blob.revision == "rev-9"
        assert blob.path == "models.json"
        assert blob.content == b"[]"

    def test_other_status_is_transport_error(self, store, session):
        session.request.return_value = _response(500)
        with pytest.raises(TransportError) as exc_info:
            store.fetch("tokens.json")
        assert exc_info.value.status == 500
        assert exc_info.value.path == "tokens.json"
        assert "500" in str(exc_info.value)
        assert "tokens.json" in str(exc_info.value)

    def test_network_failure_is_transport_error(self, store, session):
        session.request.side_effect = requests.ConnectionError("boom")
        with pytest.raises(TransportError) as exc_info:
            store.fetch("tokens.json")
        assert exc_info.value.status is None

    def test_non_string_revision_dropped(self, store, session):
        session.request.return_value = _response(200, {"content": "", "sha": 12345})
        blob = store.fetch_blob("tokens.json")
        assert blob.content == b""
        assert blob.revision is None

    def test_bad_base64_is_encoding_error(self, store, session):
        session.request.return_value = _response(200, {"content": "!!!not base64!!!", "sha": "x"})
        with pytest.raises(EncodingError):
            store.fetch("tokens.json")

    def test_missing_content_is_encoding_error(self, store, session):
        session.request.return_value = _response(200, {"sha": "x"})
        with pytest.raises(EncodingError):
            store.fetch("tokens.json")

    def test_non_json_body_is_encoding_error(self, store, session):
        session.request.return_value = _response(200)
        with pytest.raises(EncodingError):
            store.fetch("tokens.json")

    def test_custom_api_url(self, session):
        store = RemoteBlobStore("t", "o", "r", api_url="https://ghe.local/api/v3/", session=session)
        session.request.return_value = _response(404)
        store.fetch("x.json")
        assert session.request.call_args[0][1] == "https://ghe.local/api/v3/repos/o/r/contents/x.json"


class TestPut:
    def test_create_omits_revision(self, store, session):
        session.request.side_effect = [_response(404), _response(201, {"content": {}})]

        store.put("tokens.json", b'[{"id": 1}]')

        method, url = session.request.call_args_list[1][0]
        payload = session.request.call_args_list[1][1]["json"]
        assert method == "PUT"
        assert url.endswith("/contents/tokens.json")
        assert "sha" not in payload
        assert base64.b64decode(payload["content"]) == b'[{"id": 1}]'
        assert payload["message"].startswith("Update tokens.json - ")

    def test_update_carries_revision(self, store, session):
        existing = _response(200, {"content": base64.b64encode(b"[]").decode(), "sha": "old-sha"})
        session.request.side_effect = [existing, _response(200, {})]

        store.put("tokens.json", b"[]")

        payload = session.request.call_args_list[1][1]["json"]
        assert payload["sha"] == "old-sha"

    def test_failed_revision_lookup_means_create(self, store, session):
        session.request.side_effect = [_response(502), _response(201, {})]

        store.put("models.json", b"[]")

        payload = session.request.call_args_list[1][1]["json"]
        assert "sha" not in payload

    def test_non_string_revision_means_create(self, store, session):
        existing = _response(200, {"content": "", "sha": 12345})
        session.request.side_effect = [existing, _response(201, {})]

        store.put("tokens.json", b"[]")

        payload = session.request.call_args_list[1][1]["json"]
        assert "sha" not in payload

    def test_revision_lookup_network_error_is_swallowed(self, store, session):
        session.request.side_effect = [requests.Timeout("slow"), _response(201, {})]
        store.put("models.json", b"[]")
        assert session.request.call_count == 2

    def test_error_status_carries_body(self, store, session):
        error_body = {"message": "Invalid request.\n\n\"sha\" wasn't supplied."}
        session.request.side_effect = [_response(404), _response(422, error_body)]

        with pytest.raises(TransportError) as exc_info:
            store.put("tokens.json", b"[]")

        assert exc_info.value.status == 422
        assert exc_info.value.body == error_body
        assert exc_info.value.path == "tokens.json"

    def test_put_timeout(self, store, session):
        session.request.side_effect = [_response(404), _response(201, {})]
        store.put("tokens.json", b"[]")
        for call in session.request.call_args_list:
            assert call[1]["timeout"] == 30
