"""
Unit tests for ContentResponder and StaticSiteHandler.
"""

import re
from pathlib import Path

import pytest

from vhostserver.exceptions import InternalError, NotFound
from vhostserver.handlers.resolver import ResolvedFile
from vhostserver.handlers.static import ContentResponder, StaticSiteHandler, error_response
from vhostserver.http.request import HTTPRequest
from vhostserver.http.status_codes import HTTPStatus


DATE_LINE = re.compile(rb"^Date: [^\r]*\r\n", re.MULTILINE)


def make_request(method: str = "GET", path: str = "/", host: str = None) -> HTTPRequest:
    headers = {"host": host} if host is not None else {}
    return HTTPRequest(method=method, path=path, headers=headers)


@pytest.fixture
def handler(site_config) -> StaticSiteHandler:
    return StaticSiteHandler(site_config)


class TestErrorResponse:

    def test_body_is_reason_phrase(self):
        response = error_response(HTTPStatus.NOT_FOUND)

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"Not Found"
        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"

    def test_head_drops_body_keeps_length(self):
        response = error_response(HTTPStatus.FORBIDDEN, "HEAD")

        assert response.body == b""
        assert response.headers["Content-Length"] == str(len(b"Forbidden"))

    def test_405_lists_allowed_methods(self):
        response = error_response(HTTPStatus.METHOD_NOT_ALLOWED)
        assert response.headers["Allow"] == "GET, HEAD"


class TestContentResponder:

    def test_serves_file_bytes(self, site):
        path = site / "public" / "styles" / "site.css"
        response = ContentResponder().respond(ResolvedFile(path, True, True), "GET")

        assert response.status == HTTPStatus.OK
        assert response.body == path.read_bytes()
        assert response.headers["Content-Type"] == "text/css"

    def test_html_content_type(self, site):
        path = site / "public" / "index.html"
        response = ContentResponder().respond(ResolvedFile(path, True, True), "GET")
        assert response.headers["Content-Type"] == "text/html; charset=utf-8"

    def test_unknown_extension_is_text_plain(self, site):
        path = site / "secret.txt"
        response = ContentResponder().respond(ResolvedFile(path, True, True), "GET")
        assert response.headers["Content-Type"] == "text/plain"

    def test_head(self, site):
        path = site / "public" / "index.html"
        response = ContentResponder().respond(ResolvedFile(path, True, True), "HEAD")

        assert response.status == HTTPStatus.OK
        assert response.body == b""
        assert response.headers["Content-Length"] == str(path.stat().st_size)
        assert response.headers["Content-Type"] == "text/html; charset=utf-8"

    def test_not_found_raises(self, site):
        path = site / "public" / "missing.html"
        with pytest.raises(NotFound):
            ContentResponder().respond(ResolvedFile(path, False, False), "GET")

    def test_unreadable_file_raises_internal_error(self, site):
        """A file that vanished between resolve and read."""
        path = site / "public" / "gone.html"
        with pytest.raises(InternalError):
            ContentResponder().respond(ResolvedFile(path, True, True), "GET")


class TestStaticSiteHandler:

    def test_index(self, handler, site):
        response = handler.handle(make_request(path="/"))

        assert response.status == HTTPStatus.OK
        assert response.body == (site / "public" / "index.html").read_bytes()
        assert response.headers["Content-Type"] == "text/html; charset=utf-8"

    def test_vhost(self, handler):
        response = handler.handle(make_request(path="/f.css", host="a.test:9090"))

        assert response.status == HTTPStatus.OK
        assert response.body == b"body{}"
        assert response.headers["Content-Type"] == "text/css"

    def test_vhost_case_insensitive(self, handler):
        response = handler.handle(make_request(path="/f.css", host="A.TEST"))
        assert response.body == b"body{}"

    def test_unknown_host_uses_default_root(self, handler):
        response = handler.handle(make_request(path="/f.css", host="other.test"))
        assert response.status == HTTPStatus.NOT_FOUND

    def test_missing_file(self, handler):
        response = handler.handle(make_request(path="/nope.html"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"Not Found"

    @pytest.mark.parametrize("path", ["/../secret.txt", "/%2e%2e%2fsecret.txt"])
    def test_traversal(self, handler, path):
        response = handler.handle(make_request(path=path))

        assert response.status == HTTPStatus.FORBIDDEN
        assert b"top secret" not in response.body

    def test_malformed_path(self, handler):
        assert handler.handle(make_request(path="/%zz")).status == HTTPStatus.BAD_REQUEST

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "OPTIONS"])
    def test_other_methods(self, handler, method):
        response = handler.handle(make_request(method=method, path="/"))

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, HEAD"

    def test_head(self, handler, site):
        response = handler.handle(make_request(method="HEAD", path="/"))

        assert response.status == HTTPStatus.OK
        assert response.body == b""
        assert response.headers["Content-Length"] == str((site / "public" / "index.html").stat().st_size)

    def test_repeated_requests_are_identical(self, handler):
        first = handler.handle(make_request(path="/styles/site.css"))
        second = handler.handle(make_request(path="/styles/site.css"))

        assert first.status == second.status
        assert first.headers == second.headers
        assert first.body == second.body
        assert DATE_LINE.sub(b"", first.to_bytes()) == DATE_LINE.sub(b"", second.to_bytes())

    def test_callable(self, handler):
        assert handler(make_request(path="/")).status == HTTPStatus.OK

    def test_file_added_after_startup_is_served(self, handler, site):
        (site / "public" / "new.json").write_text("{}", encoding="utf-8")

        response = handler.handle(make_request(path="/new.json"))

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == "application/json"
