"""Tests for the guarded HTTP fetcher (no network: DNS and urllib are patched)."""

from __future__ import annotations

import socket
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from sourcekb.extract.fetch import FetchError, HttpFetcher, SsrfError


def _addrinfo(ip: str):
    return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", (ip, 0))]


def _response(body: bytes, content_type="text/html; charset=utf-8", url="https://example.com/"):
    response = MagicMock()
    response.headers = {"Content-Type": content_type}
    response.read.side_effect = lambda n=-1: body[:n] if n >= 0 else body
    response.geturl.return_value = url
    response.status = 200
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


def _opener(response=None, error=None):
    opener = MagicMock()
    if error is not None:
        opener.open.side_effect = error
    else:
        opener.open.return_value = response
    return opener


@pytest.mark.parametrize("url", ["ftp://example.com/x", "file:///etc/passwd", "javascript:alert(1)"])
def test_rejects_non_http_schemes(url):
    with pytest.raises(ValueError, match="scheme"):
        HttpFetcher().check_url(url)


@pytest.mark.parametrize("ip", ["127.0.0.1", "10.0.0.5", "192.168.1.1", "169.254.169.254", "::1", "0.0.0.0"])
def test_blocks_private_addresses(ip):
    with patch("sourcekb.extract.fetch.socket.getaddrinfo", return_value=_addrinfo(ip)):
        with pytest.raises(SsrfError):
            HttpFetcher().check_url("https://internal.example/")


def test_allow_private_skips_guard():
    with patch("sourcekb.extract.fetch.socket.getaddrinfo") as resolver:
        HttpFetcher(allow_private=True).check_url("http://localhost:8080/")
    resolver.assert_not_called()


def test_dns_failure_is_fetch_error():
    with patch("sourcekb.extract.fetch.socket.getaddrinfo", side_effect=socket.gaierror("nope")):
        with pytest.raises(FetchError, match="DNS resolution failed"):
            HttpFetcher().check_url("https://missing.example/")


def test_fetch_returns_body_and_type():
    opener = _opener(_response(b"<p>hi</p>"))
    with patch("sourcekb.extract.fetch.socket.getaddrinfo", return_value=_addrinfo("93.184.216.34")), \
         patch("sourcekb.extract.fetch.urllib.request.build_opener", return_value=opener):
        response = HttpFetcher().fetch("https://example.com/")
    assert response.body == b"<p>hi</p>"
    assert response.content_type == "text/html"
    assert response.text() == "<p>hi</p>"
    sent = opener.open.call_args[0][0]
    assert sent.get_header("User-agent").startswith("sourcekb/")


def test_fetch_enforces_content_type():
    opener = _opener(_response(b"%PDF", content_type="application/pdf"))
    with patch("sourcekb.extract.fetch.socket.getaddrinfo", return_value=_addrinfo("93.184.216.34")), \
         patch("sourcekb.extract.fetch.urllib.request.build_opener", return_value=opener):
        with pytest.raises(FetchError, match="Unsupported Content-Type"):
            HttpFetcher().fetch("https://example.com/", accept_types=["text/html"])


def test_fetch_enforces_size_cap():
    opener = _opener(_response(b"x" * 11))
    with patch("sourcekb.extract.fetch.socket.getaddrinfo", return_value=_addrinfo("93.184.216.34")), \
         patch("sourcekb.extract.fetch.urllib.request.build_opener", return_value=opener):
        with pytest.raises(FetchError, match="exceeds 10 bytes"):
            HttpFetcher(max_bytes=10).fetch("https://example.com/")


def test_http_error_carries_status():
    error = urllib.error.HTTPError("https://example.com/", 404, "Not Found", {}, None)
    with patch("sourcekb.extract.fetch.socket.getaddrinfo", return_value=_addrinfo("93.184.216.34")), \
         patch("sourcekb.extract.fetch.urllib.request.build_opener", return_value=_opener(error=error)):
        with pytest.raises(FetchError) as exc_info:
            HttpFetcher().fetch("https://example.com/")
    assert exc_info.value.status == 404
