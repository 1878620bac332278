"""Tests for the sitemap-driven website extractor."""

from __future__ import annotations

from fakes import FakeFetcher
from sourcekb.db.models import SourceKind
from sourcekb.extract.base import ExtractionRequest
from sourcekb.extract.fetch import FetchError
from sourcekb.extract.web import WebsiteExtractor, format_page, html_to_text

SITE = "https://acme.example"


def _page(title: str, body: str) -> tuple[str, str]:
    return ("text/html", f"<html><head><title>{title}</title></head><body><script>x()</script>"
                         f"<nav>Menu</nav><p>{body}</p><footer>Footer</footer></body></html>")


def _sitemap(*urls: str) -> tuple[str, str]:
    locs = "".join(f"<url><loc> {u} </loc></url>" for u in urls)
    return ("application/xml", f"<urlset>{locs}</urlset>")


def _request(origin=SITE):
    return ExtractionRequest(kind=SourceKind.WEBSITE, name=origin or "site", origin=origin)


def test_html_to_text_strips_chrome():
    title, text = html_to_text(_page("About", "We   build\n tools.")[1])
    assert title == "About"
    assert text == "We build tools."


def test_html_to_text_untitled():
    assert html_to_text("<p>Hi</p>")[0] == "Untitled"


def test_crawls_sitemap_pages():
    fetcher = FakeFetcher({
        f"{SITE}/sitemap.xml": _sitemap(f"{SITE}/", f"{SITE}/pricing", f"{SITE}/"),
        f"{SITE}/": _page("Home", "Welcome to Acme."),
        f"{SITE}/pricing": _page("Pricing", "Plans start at ten dollars."),
    })
    result = WebsiteExtractor(fetcher).extract(_request())

    assert result.ok
    assert result.text == "\n".join([
        format_page("Home", f"{SITE}/", "Welcome to Acme."),
        format_page("Pricing", f"{SITE}/pricing", "Plans start at ten dollars."),
    ])
    assert result.metadata == {
        "pages": [{"url": f"{SITE}/", "title": "Home"}, {"url": f"{SITE}/pricing", "title": "Pricing"}],
        "discovered": 2,
    }


def test_no_sitemap_crawls_origin_only():
    fetcher = FakeFetcher({f"{SITE}/about": _page("About", "Hello.")})
    result = WebsiteExtractor(fetcher).extract(_request(f"{SITE}/about"))
    assert result.ok
    assert result.metadata["pages"] == [{"url": f"{SITE}/about", "title": "About"}]
    assert fetcher.calls[0][0] == f"{SITE}/sitemap.xml"


def test_sitemap_entities_are_unescaped():
    fetcher = FakeFetcher({
        f"{SITE}/sitemap.xml": _sitemap(f"{SITE}/search?q=plans&amp;page=2"),
        f"{SITE}/search?q=plans&page=2": _page("Plans", "Two tiers."),
    })
    assert WebsiteExtractor(fetcher).discover(SITE) == [f"{SITE}/search?q=plans&page=2"]
    assert WebsiteExtractor(fetcher).extract(_request()).ok


def test_failed_pages_are_skipped():
    fetcher = FakeFetcher({
        f"{SITE}/sitemap.xml": _sitemap(f"{SITE}/a", f"{SITE}/b"),
        f"{SITE}/a": FetchError("timeout"),
        f"{SITE}/b": _page("B", "Still here."),
    })
    result = WebsiteExtractor(fetcher).extract(_request())
    assert result.ok
    assert [p["title"] for p in result.metadata["pages"]] == ["B"]


def test_caps_discovery_fetching_and_page_length():
    urls = [f"{SITE}/p{i}" for i in range(10)]
    responses = {f"{SITE}/sitemap.xml": _sitemap(*urls)}
    responses.update({u: _page(u[-2:], "x" * 500) for u in urls})
    fetcher = FakeFetcher(responses)

    result = WebsiteExtractor(fetcher, max_discovered=5, max_fetched=3, max_page_chars=100).extract(_request())

    assert result.metadata["discovered"] == 5
    assert len(result.metadata["pages"]) == 3
    assert "x" * 100 in result.text
    assert "x" * 101 not in result.text


def test_no_pages_is_failure():
    result = WebsiteExtractor(FakeFetcher()).extract(_request())
    assert not result.ok
    assert result.text == f"[Error crawling website: no pages could be retrieved from {SITE}]"
    assert result.metadata["pages"] == []


def test_missing_url_is_failure():
    result = WebsiteExtractor(FakeFetcher()).extract(_request(origin=None))
    assert result.text == "[Error crawling website: no URL]"
