"""Guarded HTTP fetcher shared by the website, repository and URL extractors.

Security requirements:
- SSRF guard: ipaddress module blocks private/loopback/link-local ranges before
  any connection is established, and again for every redirect target.
- Allowed URL schemes: https:// and http:// only.
- Optional Content-Type whitelist per call.
- Max response body: crawl.max_response_bytes (25 MB by default).
- Timeout: crawl.timeout_seconds (connect + read).
- Max redirects: 3.
"""

from __future__ import annotations

import ipaddress
import socket
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from http.client import HTTPResponse

_USER_AGENT = "sourcekb/0.1"
_MAX_REDIRECTS = 3
_ALLOWED_SCHEMES = {"https", "http"}


class SsrfError(ValueError):
    """Raised when a URL resolves to a private or reserved address."""


class FetchError(RuntimeError):
    """Raised when a URL cannot be fetched (network, HTTP status, size, type)."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class FetchResponse:
    url: str
    status: int
    content_type: str
    body: bytes

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class HttpFetcher:
    """Fetch URLs with SSRF protection, timeout, redirect limit and size cap.

    Args:
        timeout: Seconds for connect + read.
        max_bytes: Largest accepted response body.
        allow_private: Skip the SSRF guard (local development only).
    """

    def __init__(
        self,
        timeout: int = 30,
        max_bytes: int = 25 * 1024 * 1024,
        allow_private: bool = False,
    ) -> None:
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.allow_private = allow_private

    def fetch(
        self,
        url: str,
        *,
        accept_types: Iterable[str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> FetchResponse:
        """Validate and fetch *url*.

        Args:
            url: http(s) URL.
            accept_types: Content-Type whitelist (without parameters); None accepts any.
            headers: Extra request headers.

        Raises:
            ValueError: Unsupported scheme or missing hostname.
            SsrfError: The host resolves to a private/reserved address.
            FetchError: Network failure, non-2xx status, size or type violation.
        """
        self.check_url(url)

        request = urllib.request.Request(
            url, headers={"User-Agent": _USER_AGENT, **(headers or {})}
        )
        opener = urllib.request.build_opener(_LimitedRedirectHandler(_MAX_REDIRECTS, self))

        try:
            response: HTTPResponse = opener.open(request, timeout=self.timeout)
        except urllib.error.HTTPError as exc:
            raise FetchError(f"HTTP {exc.code} fetching '{url}'.", status=exc.code) from exc
        except urllib.error.URLError as exc:
            raise FetchError(f"Failed to fetch URL '{url}': {exc.reason}") from exc
        except OSError as exc:
            raise FetchError(f"Failed to fetch URL '{url}': {exc}") from exc

        with response:
            raw_ct = response.headers.get("Content-Type", "application/octet-stream")
            ct = raw_ct.split(";")[0].strip().lower()
            if accept_types is not None:
                allowed = {t.lower() for t in accept_types}
                if ct not in allowed:
                    raise FetchError(
                        f"Unsupported Content-Type '{ct}' for URL '{url}'. "
                        f"Accepted: {', '.join(sorted(allowed))}"
                    )

            body = response.read(self.max_bytes + 1)
            if len(body) > self.max_bytes:
                raise FetchError(
                    f"Response body exceeds {self.max_bytes} bytes for URL '{url}'."
                )
            return FetchResponse(
                url=response.geturl(), status=response.status, content_type=ct, body=body
            )

    def check_url(self, url: str) -> None:
        """Raise unless *url* is an http(s) URL on a public host.

        Raises:
            ValueError: Unsupported scheme or missing hostname.
            SsrfError: The host resolves to a private/reserved address.
            FetchError: The hostname does not resolve.
        """
        self._validate_scheme(url)
        self._check_ssrf(url)

    @staticmethod
    def _validate_scheme(url: str) -> None:
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in _ALLOWED_SCHEMES:
            raise ValueError(
                f"Unsupported URL scheme '{parsed.scheme}'. Only https:// and http:// are allowed."
            )

    def _check_ssrf(self, url: str) -> None:
        """Resolve the hostname and block private/reserved IP ranges."""
        if self.allow_private:
            return
        parsed = urllib.parse.urlparse(url)
        hostname = parsed.hostname
        if not hostname:
            raise ValueError(f"URL has no hostname: {url}")

        try:
            addrinfos = socket.getaddrinfo(hostname, None)
        except socket.gaierror as exc:
            raise FetchError(f"DNS resolution failed for '{hostname}': {exc}") from exc

        for addrinfo in addrinfos:
            addr_str = addrinfo[4][0]
            try:
                ip = ipaddress.ip_address(addr_str)
            except ValueError:
                continue
            if (
                ip.is_private
                or ip.is_loopback
                or ip.is_link_local
                or ip.is_reserved
                or ip.is_multicast
                or ip.is_unspecified
            ):
                raise SsrfError(
                    f"URL resolves to private address ({ip}). "
                    "Access to internal network addresses is not allowed."
                )


class _LimitedRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Raise after more than *max_redirects* redirects; SSRF-check each target."""

    def __init__(self, max_redirects: int, fetcher: HttpFetcher) -> None:
        self._max_redirects = max_redirects
        self._fetcher = fetcher
        self._count = 0

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self._count += 1
        if self._count > self._max_redirects:
            raise FetchError(
                f"Too many redirects (>{self._max_redirects}) for URL '{req.full_url}'."
            )
        self._fetcher._validate_scheme(newurl)
        self._fetcher._check_ssrf(newurl)
        return super().redirect_request(req, fp, code, msg, headers, newurl)
