"""
Unit tests for path decoding and traversal-safe resolution.
"""

import os
import sys

import pytest

from vhostserver.exceptions import BadRequest, Forbidden
from vhostserver.handlers.resolver import PathResolver, decode_path


@pytest.fixture
def resolver() -> PathResolver:
    return PathResolver()


class TestDecodePath:

    def test_plain_path(self):
        assert decode_path("/css/site.css") == "/css/site.css"

    def test_percent_escapes(self):
        assert decode_path("/my%20file.txt") == "/my file.txt"

    def test_utf8_escapes(self):
        assert decode_path("/caf%C3%A9.html") == "/café.html"

    def test_plus_is_not_a_space(self):
        assert decode_path("/a+b.txt") == "/a+b.txt"

    def test_encoded_dots_decode(self):
        assert decode_path("/%2e%2e%2fsecret.txt") == "/../secret.txt"

    @pytest.mark.parametrize("raw", ["/bad%", "/bad%2", "/bad%zz", "/%G0"])
    def test_malformed_escape(self, raw):
        with pytest.raises(BadRequest):
            decode_path(raw)

    def test_invalid_utf8(self):
        with pytest.raises(BadRequest):
            decode_path("/%ff%fe")

    def test_nul_byte(self):
        with pytest.raises(BadRequest):
            decode_path("/index.html%00.txt")


class TestPathResolver:

    def test_existing_file(self, resolver, site):
        resolved = resolver.resolve(site / "public", "/styles/site.css")

        assert resolved.found
        assert resolved.absolute_path == site / "public" / "styles" / "site.css"

    def test_root_maps_to_index(self, resolver, site):
        resolved = resolver.resolve(site / "public", "/")

        assert resolved.found
        assert resolved.absolute_path.name == "index.html"

    def test_missing_file(self, resolver, site):
        resolved = resolver.resolve(site / "public", "/nope.html")

        assert not resolved.exists
        assert not resolved.found

    def test_directory_is_not_found(self, resolver, site):
        resolved = resolver.resolve(site / "public", "/styles")

        assert resolved.exists
        assert not resolved.is_regular_file
        assert not resolved.found

    def test_file_used_as_directory_is_not_found(self, resolver, site):
        resolved = resolver.resolve(site / "public", "/index.html/more")
        assert not resolved.found

    @pytest.mark.parametrize("raw", [
        "/../secret.txt",
        "/%2e%2e%2fsecret.txt",
        "/%2E%2E/secret.txt",
        "/styles/../../secret.txt",
        "/..",
        "//etc/passwd",
    ])
    def test_traversal_is_forbidden(self, resolver, site, raw):
        with pytest.raises(Forbidden):
            resolver.resolve(site / "public", raw)

    def test_dotdot_that_stays_inside_is_allowed(self, resolver, site):
        resolved = resolver.resolve(site / "public", "/styles/../index.html")

        assert resolved.found
        assert resolved.absolute_path == site / "public" / "index.html"

    def test_sibling_with_common_prefix_is_forbidden(self, resolver, site):
        """public2/ shares a string prefix with public/ but is outside it."""
        (site / "public2").mkdir()
        (site / "public2" / "x.txt").write_text("x", encoding="utf-8")

        with pytest.raises(Forbidden):
            resolver.resolve(site / "public", "/../public2/x.txt")

    def test_relative_root(self, resolver, site, monkeypatch):
        monkeypatch.chdir(site)
        resolved = resolver.resolve("public", "/index.html")

        assert resolved.found
        assert resolved.absolute_path.resolve() == (site / "public" / "index.html").resolve()

    def test_malformed_path(self, resolver, site):
        with pytest.raises(BadRequest):
            resolver.resolve(site / "public", "/%zz")

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")
    def test_symlinks_are_followed(self, resolver, site):
        os.symlink(site / "secret.txt", site / "public" / "link.txt")

        resolved = resolver.resolve(site / "public", "/link.txt")

        assert resolved.found
