"""
Unit tests for JSON response envelopes.
"""

import json

import pytest

from httpscaffold.http import envelope
from httpscaffold.http.envelope import Envelope
from httpscaffold.http.writer import ResponseRecorder


def decode(recorder: ResponseRecorder) -> dict:
    return json.loads(recorder.body.decode("utf-8"))


class TestEnvelope:
    """Tests for the Envelope dataclass."""

    def test_to_dict_shape(self):
        """Test all four fields are present."""
        env = Envelope(code=200, message="OK", data={"id": 1})
        assert env.to_dict() == {
            "code": 200,
            "message": "OK",
            "details": {},
            "data": {"id": 1},
        }

    def test_none_details_become_empty_object(self):
        """Test details is never null on the wire."""
        env = Envelope(code=400, message="Bad Request", details=None)
        assert env.to_dict()["details"] == {}

    def test_to_json_is_newline_terminated(self):
        """Test the encoded body ends with a newline."""
        assert Envelope(code=200, message="OK").to_json().endswith(b"\n")

    def test_non_ascii_message(self):
        """Test unicode survives encoding."""
        body = Envelope(code=200, message="héllo").to_json()
        assert json.loads(body.decode("utf-8"))["message"] == "héllo"


class TestConstructors:
    """Tests for the helper functions writing envelopes."""

    @pytest.mark.parametrize("write, code, message", [
        (lambda w: envelope.ok(w, {"a": 1}), 200, "OK"),
        (lambda w: envelope.bad_request(w), 400, "Bad Request"),
        (lambda w: envelope.unauthorized(w), 401, "Unauthorized"),
        (lambda w: envelope.not_found(w), 404, "Not Found"),
        (lambda w: envelope.internal_server_error(w), 500, "Internal Server Error"),
    ])
    def test_status_matches_body_code(self, write, code, message):
        """Test the HTTP status equals the envelope code."""
        recorder = ResponseRecorder()
        write(recorder)

        body = decode(recorder)
        assert recorder.status_code == code
        assert body["code"] == code
        assert body["message"] == message
        assert body["details"] is not None
        assert recorder.result_headers.get("Content-Type") == "application/json"

    def test_ok_keeps_data(self):
        """Test ok() puts the payload in data."""
        recorder = ResponseRecorder()
        envelope.ok(recorder, {"users": [1, 2, 3]})
        assert decode(recorder)["data"] == {"users": [1, 2, 3]}

    def test_bad_request_with_field_errors(self):
        """Test per-field errors land in details."""
        recorder = ResponseRecorder()
        envelope.bad_request(recorder, "validation failed", {"email": "required"})

        body = decode(recorder)
        assert body["message"] == "validation failed"
        assert body["details"] == {"email": "required"}
        assert body["data"] == {}

    def test_unauthorized_custom_message(self):
        """Test unauthorized() accepts a message."""
        recorder = ResponseRecorder()
        envelope.unauthorized(recorder, "token expired")
        assert decode(recorder)["message"] == "token expired"

    def test_not_found_custom_message(self):
        """Test not_found() uses a given message."""
        recorder = ResponseRecorder()
        envelope.not_found(recorder, "Resource not found")
        assert decode(recorder)["message"] == "Resource not found"

    def test_no_content_has_no_body(self):
        """Test 204 writes no body bytes."""
        recorder = ResponseRecorder()
        envelope.no_content(recorder)

        assert recorder.status_code == 204
        assert recorder.body == b""

    def test_method_not_allowed_sets_allow(self):
        """Test 405 carries a sorted Allow header."""
        recorder = ResponseRecorder()
        envelope.method_not_allowed(recorder, ["POST", "GET", "GET"])

        assert recorder.status_code == 405
        assert recorder.result_headers.get("Allow") == "GET, POST"
        assert decode(recorder)["details"] == {"allowed": ["GET", "POST"]}
