"""
Tests for the wire codec.

Covers signing, envelope layout, and tolerance of malformed input.
"""

import json

from jupyter_client.session import Session

from kernel_bridge import codec
from kernel_bridge.models.message import (
    DELIMITER, PROTOCOL_VERSION, CompleteReply, RawContent, Status, Stream,
)


class TestSign:
    """Tests for HMAC signing."""

    def test_signature_is_deterministic(self):
        parts = [b'{"a": 1}', b"{}", b"{}", b'{"code": "x"}']
        assert codec.sign(parts, "secret") == codec.sign(parts, "secret")

    def test_signature_is_hex_sha256(self):
        sig = codec.sign([b"x"], "secret")
        assert len(sig) == 64
        int(sig, 16)

    def test_key_changes_signature(self):
        parts = [b"a", b"b", b"c", b"d"]
        assert codec.sign(parts, "one") != codec.sign(parts, "two")

    def test_empty_key_gives_empty_signature(self):
        assert codec.sign([b"a"], "") == b""


class TestEncode:
    """Tests for message construction."""

    def test_frame_layout(self):
        msg = codec.encode("execute_request", "sess", {"code": "1"}, "k")
        frames = msg.frames
        assert len(frames) == 6
        assert frames[0] == DELIMITER
        assert frames[1] == msg.signature

    def test_header_fields(self):
        msg = codec.encode("kernel_info_request", "sess-1", {}, "k", username="alice")
        header = json.loads(msg.header)
        assert header["msg_type"] == "kernel_info_request"
        assert header["session"] == "sess-1"
        assert header["username"] == "alice"
        assert header["version"] == PROTOCOL_VERSION
        assert header["msg_id"] == msg.msg_id
        assert header["date"]

    def test_signature_covers_sent_bytes(self):
        msg = codec.encode("execute_request", "sess", {"code": "x = 1"}, "key")
        assert msg.signature == codec.sign(msg.signed_parts, "key")

    def test_fresh_msg_id_per_message(self):
        a = codec.encode("status", "s", {}, "k")
        b = codec.encode("status", "s", {}, "k")
        assert a.msg_id != b.msg_id

    def test_defaults_to_empty_parent_and_metadata(self):
        msg = codec.encode("status", "s", {}, "k")
        assert json.loads(msg.parent_header) == {}
        assert json.loads(msg.metadata) == {}


class TestDecode:
    """Tests for parsing received frames."""

    def test_round_trip(self):
        parent = {"msg_id": "req-1"}
        msg = codec.encode("stream", "s", {"name": "stdout", "text": "hi"}, "k", parent_header=parent)
        decoded = codec.decode(msg.frames)

        assert decoded is not None
        assert decoded.msg_type == "stream"
        assert decoded.msg_id == msg.msg_id
        assert decoded.parent_msg_id == "req-1"
        assert decoded.content == {"name": "stdout", "text": "hi"}

    def test_delimiter_after_routing_frames(self):
        msg = codec.encode("status", "s", {"execution_state": "idle"}, "k")
        decoded = codec.decode([b"identity-1", b"identity-2"] + msg.frames)
        assert decoded is not None
        assert decoded.msg_type == "status"

    def test_topic_prefix(self):
        msg = codec.encode("status", "s", {"execution_state": "busy"}, "k")
        decoded = codec.decode([b"kernel.abc.status"] + msg.frames)
        assert isinstance(decoded.body, Status)
        assert decoded.body.execution_state == "busy"

    def test_missing_delimiter(self):
        assert codec.decode([b"a", b"b", b"c", b"d", b"e", b"f"]) is None

    def test_too_few_frames_after_delimiter(self):
        assert codec.decode([DELIMITER, b"sig", b"{}", b"{}", b"{}"]) is None

    def test_invalid_header_json(self):
        assert codec.decode([DELIMITER, b"", b"not json", b"{}", b"{}", b"{}"]) is None

    def test_invalid_content_json(self):
        header = json.dumps({"msg_type": "stream"}).encode()
        assert codec.decode([DELIMITER, b"", header, b"{}", b"{}", b"{oops"]) is None

    def test_header_without_msg_type(self):
        header = json.dumps({"msg_id": "x"}).encode()
        assert codec.decode([DELIMITER, b"", header, b"{}", b"{}", b"{}"]) is None

    def test_invalid_metadata_becomes_empty(self):
        header = json.dumps({"msg_id": "m1", "msg_type": "status", "version": PROTOCOL_VERSION}).encode()
        decoded = codec.decode([DELIMITER, b"", header, b"{}", b"garbage", b"{}"])
        assert decoded is not None
        assert decoded.metadata == {}

    def test_extra_trailing_frames_ignored(self):
        msg = codec.encode("status", "s", {}, "k")
        decoded = codec.decode(msg.frames + [b"buffer"])
        assert decoded is not None

    def test_empty_parent_has_no_parent_id(self):
        msg = codec.encode("status", "s", {}, "k")
        assert codec.decode(msg.frames).parent_msg_id == ""


class TestBodies:
    """Tests for typed message bodies."""

    def test_stream_defaults(self):
        msg = codec.encode("stream", "s", {}, "k")
        body = codec.decode(msg.frames).body
        assert isinstance(body, Stream)
        assert body.name == "stdout"
        assert body.text == ""

    def test_complete_reply(self):
        content = {"matches": ["os", "open"], "cursor_start": 7, "cursor_end": 8, "status": "ok"}
        body = codec.decode(codec.encode("complete_reply", "s", content, "k").frames).body
        assert isinstance(body, CompleteReply)
        assert body.matches == ["os", "open"]
        assert body.cursor_start == 7

    def test_unknown_type_stays_raw(self):
        body = codec.decode(codec.encode("comm_open", "s", {"x": 1}, "k").frames).body
        assert isinstance(body, RawContent)
        assert body.payload == {"x": 1}


class TestVerify:
    """Tests for signature verification."""

    def test_valid_signature(self):
        msg = codec.encode("status", "s", {}, "key")
        assert codec.verify(codec.decode(msg.frames), "key")

    def test_wrong_key(self):
        msg = codec.encode("status", "s", {}, "key")
        assert not codec.verify(codec.decode(msg.frames), "other")

    def test_no_key_accepts_everything(self):
        msg = codec.encode("status", "s", {}, "key")
        assert codec.verify(codec.decode(msg.frames), "")


class TestJupyterInterop:
    """Messages built by jupyter_client itself."""

    def test_decodes_and_verifies_session_output(self):
        session = Session(key=b"key", signature_scheme="hmac-sha256")
        msg = session.msg("stream", content={"name": "stderr", "text": "oops"}, parent={"msg_id": "req-9"})
        decoded = codec.decode(session.serialize(msg))

        assert decoded.msg_type == "stream"
        assert decoded.parent_msg_id == "req-9"
        assert decoded.body.text == "oops"
        assert codec.verify(decoded, "key")

    def test_session_accepts_encoded_message(self):
        msg = codec.encode("execute_request", "sess", {"code": "1"}, "key")
        session = Session(key=b"key", signature_scheme="hmac-sha256")
        parsed = session.deserialize(msg.frames[1:])

        assert parsed["msg_id"] == msg.msg_id
        assert parsed["content"] == {"code": "1"}
