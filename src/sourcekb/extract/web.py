"""Website extractor — sitemap-driven crawl with per-page HTML→text conversion.

Crawl strategy:
- Fetch ``<site>/sitemap.xml`` and collect its ``<loc>`` URLs, capped at
  *max_discovered* (50).
- No sitemap, an empty one, or a sitemap fetch error → crawl the origin URL only.
- Fetch at most *max_fetched* (20) pages. A page that fails is logged and skipped.
- Each page: strip script/style/nav/footer, convert to text, collapse
  whitespace, cap at *max_page_chars* (10 000).
- Zero pages retrieved → failure marker.
"""

from __future__ import annotations

import html
import re
import urllib.parse

import html2text
import structlog
from bs4 import BeautifulSoup

from sourcekb.extract.base import ExtractionRequest, ExtractionResult, Extractor, decode_text
from sourcekb.extract.fetch import HttpFetcher

logger = structlog.get_logger(logger_name=__name__)

_LOC_RE = re.compile(r"<loc>\s*(.*?)\s*</loc>", re.IGNORECASE | re.DOTALL)
_WS_RE = re.compile(r"\s+")
_PAGE_TYPES = ("text/html", "application/xhtml+xml", "text/plain")
_SITEMAP_TYPES = ("application/xml", "text/xml", "text/plain", "application/octet-stream")

# html2text converter
_h2t = html2text.HTML2Text()
_h2t.ignore_links = True
_h2t.ignore_images = True
_h2t.body_width = 0


def html_to_text(markup: str) -> tuple[str, str]:
    """Return ``(title, text)`` for an HTML page.

    Non-content tags are removed before conversion; the text has all
    whitespace runs collapsed to single spaces.
    """
    soup = BeautifulSoup(markup, "html.parser")
    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""
    for tag in soup.find_all(["script", "style", "nav", "footer", "head", "noscript"]):
        tag.decompose()
    text = _WS_RE.sub(" ", _h2t.handle(str(soup))).strip()
    return title or "Untitled", text


def format_page(title: str, url: str, text: str) -> str:
    return f"# {title}\nURL: {url}\n\n{text}\n\n---\n"


class WebsiteExtractor(Extractor):
    """Crawl a website from its sitemap and concatenate page text.

    Args:
        fetcher: Guarded HTTP fetcher (required).
        max_discovered: Cap on URLs taken from the sitemap.
        max_fetched: Cap on pages actually fetched.
        max_page_chars: Per-page text cap.
    """

    def __init__(
        self,
        fetcher: HttpFetcher,
        max_discovered: int = 50,
        max_fetched: int = 20,
        max_page_chars: int = 10_000,
    ) -> None:
        super().__init__(fetcher)
        self._http = fetcher
        self.max_discovered = max_discovered
        self.max_fetched = max_fetched
        self.max_page_chars = max_page_chars

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        url = request.origin
        if not url:
            return ExtractionResult.failure(
                "[Error crawling website: no URL]", "Website source has no URL."
            )

        pages = self.discover(url)
        sections: list[str] = []
        crawled: list[dict[str, str]] = []

        for page_url in pages[: self.max_fetched]:
            try:
                response = self._http.fetch(page_url, accept_types=_PAGE_TYPES)
            except Exception as exc:
                logger.warning("page_fetch_failed", url=page_url, error=str(exc))
                continue
            if response.content_type == "text/plain":
                title, text = "Untitled", _WS_RE.sub(" ", response.text()).strip()
            else:
                title, text = html_to_text(response.text())
            text = text[: self.max_page_chars]
            crawled.append({"url": page_url, "title": title})
            sections.append(format_page(title, page_url, text))

        metadata = {"pages": crawled, "discovered": len(pages)}
        if not sections:
            return ExtractionResult.failure(
                f"[Error crawling website: no pages could be retrieved from {url}]",
                f"No pages could be retrieved from {url}.",
                metadata=metadata,
            )

        logger.info("website_crawled", url=url, pages=len(crawled), discovered=len(pages))
        return ExtractionResult.success("\n".join(sections), metadata=metadata)

    def discover(self, url: str) -> list[str]:
        """Return the page URLs to crawl: sitemap entries, or just *url*."""
        sitemap_url = urllib.parse.urljoin(url, "/sitemap.xml")
        try:
            response = self._http.fetch(sitemap_url, accept_types=_SITEMAP_TYPES)
        except Exception as exc:
            logger.info("sitemap_unavailable", url=sitemap_url, error=str(exc))
            return [url]

        pages: list[str] = []
        for raw in _LOC_RE.findall(response.text()):
            loc = html.unescape(raw)
            if loc and loc not in pages:
                pages.append(loc)
            if len(pages) >= self.max_discovered:
                break
        return pages or [url]


class HtmlExtractor(Extractor):
    """A single uploaded HTML file (document kind)."""

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        try:
            data = self.load_raw(request)
        except Exception as exc:
            return ExtractionResult.failure(
                f"[Error reading content: {request.name}]", f"Could not read '{request.name}': {exc}"
            )
        title, text = html_to_text(decode_text(data))
        return ExtractionResult.success(f"# {title}\n\n{text}")
