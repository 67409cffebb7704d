"""
Tests for building audit records from requests and responses.
"""

import io
import re

from starlette.datastructures import Headers, UploadFile
from starlette.responses import Response

from windsurf.config import CentinelaConfig
from windsurf.schemas.audit_record import RouteInfo
from windsurf.services.centinela.body_capture import BODY_OMITTED
from windsurf.services.centinela.record_builder import (
    ResponseSnapshot,
    build_record,
    generate_request_id,
    normalize_uploaded_files,
)
from windsurf.services.centinela.redaction import REDACTED


class TestRequestId:
    """Tests for request id generation."""

    def test_ids_are_unique_hex(self):
        """Should generate 32 hex characters, different on every call."""
        ids = {generate_request_id() for _ in range(50)}

        assert len(ids) == 50
        assert all(re.fullmatch(r"[0-9a-f]{32}", i) for i in ids)


class TestBuildRecord:
    """Tests for build_record."""

    def test_request_metadata(self, make_request, centinela_config):
        """Should describe method, uri, query and client."""
        request = make_request(
            "GET",
            "/search",
            query_string=b"q=ana&tag=a&tag=b",
            headers=[("User-Agent", "pytest"), ("Accept", "application/json")],
            client=("10.0.0.7", 4242),
        )

        record = build_record(request, None, centinela_config, "abc", 5)
        req = record.request

        assert record.id == "abc"
        assert req.method == "GET"
        assert req.path == "/search"
        assert req.query == "q=ana&tag=a&tag=b"
        assert req.uri == "http://testserver/search?q=ana&tag=a&tag=b"
        assert req.query_params == {"q": "ana", "tag": ["a", "b"]}
        assert req.ip == "10.0.0.7"
        assert req.user_agent == "pytest"
        assert record.meta.duration_ms == 5

    def test_timestamp_format(self, make_record):
        """Should stamp records with microsecond local time."""
        record = make_record()

        assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{6}", record.timestamp)

    def test_redacts_request_headers(self, make_request, centinela_config):
        """Should redact default sensitive request headers."""
        request = make_request(headers=[("Authorization", "Bearer t"), ("Cookie", "s=1"), ("X-Trace", "7")])

        record = build_record(request, None, centinela_config, "id")

        assert record.request.headers["authorization"] == [REDACTED]
        assert record.request.headers["cookie"] == [REDACTED]
        assert record.request.headers["x-trace"] == ["7"]

    def test_repeated_request_headers_keep_every_value(self, make_request, centinela_config):
        """A header sent twice should list both values in order."""
        request = make_request(headers=[("X-Trace", "1"), ("X-Trace", "2")])

        record = build_record(request, None, centinela_config, "req-1", 0)

        assert record.request.headers["x-trace"] == ["1", "2"]

    def test_response_headers_use_their_own_policy(self, make_request, centinela_config):
        """Only response redaction names should apply to response headers."""
        response = Response("ok", headers={"Authorization": "kept", "X-Id": "9"})
        response.set_cookie("session", "secret")

        record = build_record(make_request(), response, centinela_config, "id")

        assert record.response.status == 200
        assert record.response.headers["set-cookie"] == [REDACTED]
        assert record.response.headers["authorization"] == ["kept"]
        assert record.response.headers["x-id"] == ["9"]

    def test_accepts_response_snapshot(self, make_request, centinela_config):
        """Should accept a status/header snapshot of an already sent response."""
        snapshot = ResponseSnapshot(201, (("content-type", "application/json"), ("set-cookie", "a=1")))

        record = build_record(make_request(), snapshot, centinela_config, "id")

        assert record.response.status == 201
        assert record.response.headers == {"content-type": ["application/json"], "set-cookie": [REDACTED]}

    def test_no_response(self, make_record):
        """A missing response should be recorded as null."""
        record = make_record()

        assert record.response is None
        assert record.to_payload()["response"] is None

    def test_json_body_is_captured_and_decoded(self, make_request, centinela_config):
        """Should capture raw JSON text and its decoded value."""
        body = b'{"email": "ana@windsurf.io"}'
        request = make_request("POST", "/api", headers=[("Content-Type", "application/json")])

        record = build_record(request, None, centinela_config, "id", body_stream=io.BytesIO(body))

        assert record.request.body == body.decode()
        assert record.request.decoded_body == {"email": "ana@windsurf.io"}

    def test_multipart_body_is_omitted(self, make_request, centinela_config):
        """Multipart bodies should be replaced by the sentinel."""
        request = make_request("POST", "/upload", headers=[("Content-Type", "multipart/form-data; boundary=x")])

        record = build_record(request, None, centinela_config, "id", body_stream=io.BytesIO(b"--x--"))

        assert record.request.body == BODY_OMITTED
        assert record.request.decoded_body is None

    def test_body_limit_from_config(self, make_request, tmp_path):
        """Should truncate using the configured byte limit."""
        config = CentinelaConfig(dir=tmp_path, max_body_bytes=4)
        request = make_request("POST", "/", headers=[("Content-Type", "text/plain")])

        record = build_record(request, None, config, "id", body_stream=io.BytesIO(b"abcdefgh"))

        assert record.request.body == "abcd...[TRUNCATED]"

    def test_no_route_outside_router(self, make_record):
        """Without a matched route the descriptor should be null."""
        assert make_record().request.route is None

    def test_route_resolver_failure_gives_null(self, make_request, centinela_config):
        """A resolver that raises should be treated as no route."""

        def broken(request):
            raise LookupError("no routing context")

        record = build_record(make_request(), None, centinela_config, "id", route_resolver=broken)

        assert record.request.route is None

    def test_custom_route_resolver(self, make_request, centinela_config):
        """Should use the descriptor the resolver returns."""
        route = RouteInfo(name="user", pattern="/users/{id}", methods=["GET"], arguments={"id": "3"})

        record = build_record(make_request(), None, centinela_config, "id", route_resolver=lambda r: route)

        assert record.request.route == route

    def test_request_is_not_mutated(self, make_request, centinela_config):
        """Building a record should leave the request scope untouched."""
        request = make_request("GET", "/x", headers=[("Authorization", "Bearer t")])
        before = dict(request.scope)

        build_record(request, None, centinela_config, "id")

        assert request.scope == before
        assert request.headers["authorization"] == "Bearer t"


class TestUploadedFiles:
    """Tests for uploaded file descriptors."""

    @staticmethod
    def _upload(name: str, data: bytes, media_type: str = "text/plain") -> UploadFile:
        return UploadFile(
            file=io.BytesIO(data),
            size=len(data),
            filename=name,
            headers=Headers({"content-type": media_type}),
        )

    def test_single_file(self):
        """Should describe name, media type, size and error code."""
        out = normalize_uploaded_files({"avatar": self._upload("me.png", b"12345", "image/png")})

        assert out == {
            "avatar": {"client_filename": "me.png", "client_media_type": "image/png", "size": 5, "error": 0}
        }

    def test_repeated_field_gives_list(self):
        """Several files under one name should become a list."""
        out = normalize_uploaded_files({"docs": [self._upload("a.txt", b"a"), self._upload("b.txt", b"bb")]})

        assert [d["client_filename"] for d in out["docs"]] == ["a.txt", "b.txt"]
        assert [d["size"] for d in out["docs"]] == [1, 2]

    def test_nested_mapping(self):
        """Nested mappings should be described recursively."""
        out = normalize_uploaded_files({"profile": {"cv": self._upload("cv.pdf", b"%PDF", "application/pdf")}})

        assert out["profile"]["cv"]["client_media_type"] == "application/pdf"
