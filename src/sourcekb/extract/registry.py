"""Extractor registry — dispatch by source kind, and by file type for documents."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sourcekb.db.models import SourceKind
from sourcekb.extract.base import ExtractionRequest, ExtractionResult, Extractor
from sourcekb.extract.fetch import HttpFetcher
from sourcekb.extract.image import IMAGE_TYPES, ImageExtractor
from sourcekb.extract.mail import EmailExtractor
from sourcekb.extract.office import OFFICE_TYPES, OfficeExtractor
from sourcekb.extract.pdf import PdfExtractor
from sourcekb.extract.repo import RepositoryExtractor
from sourcekb.extract.text import CsvExtractor, FallbackExtractor, JsonExtractor, TextExtractor
from sourcekb.extract.web import HtmlExtractor, WebsiteExtractor

if TYPE_CHECKING:
    from sourcekb.config import SourceKBConfig
    from sourcekb.providers.base import VisionProvider

TEXT_TYPES = frozenset(["txt", "md", "markdown", "log", "text", "rst"])


class ExtractorRegistry:
    """Map source kinds and document file types to extractors.

    Lookup order for a request: the file-type table (document kind, and any
    kind carrying a file type registered there), then the kind table, then
    the fallback extractor.
    """

    def __init__(self, fallback: Extractor | None = None) -> None:
        self._by_kind: dict[SourceKind, Extractor] = {}
        self._by_type: dict[str, Extractor] = {}
        self._fallback = fallback or FallbackExtractor()

    def register_kind(self, kind: SourceKind, extractor: Extractor) -> None:
        self._by_kind[SourceKind(kind)] = extractor

    def register_type(self, file_type: str, extractor: Extractor) -> None:
        self._by_type[file_type.lower().lstrip(".")] = extractor

    def resolve(self, request: ExtractionRequest) -> Extractor:
        kind = SourceKind(request.kind)
        file_type = (request.file_type or "").lower().lstrip(".")
        if kind in (SourceKind.DOCUMENT, SourceKind.IMAGE) and file_type in self._by_type:
            return self._by_type[file_type]
        if kind in self._by_kind:
            return self._by_kind[kind]
        return self._fallback

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        """Run the extractor registered for *request*."""
        return self.resolve(request).extract(request)


def build_registry(
    config: SourceKBConfig,
    vision: VisionProvider | None = None,
    fetcher: HttpFetcher | None = None,
) -> ExtractorRegistry:
    """Return a registry wired with every built-in extractor.

    Args:
        config: Loaded configuration (crawl limits, PDF visual pass toggle).
        vision: Vision provider for images and the PDF visual pass.
        fetcher: Override the HTTP fetcher (tests).
    """
    http = fetcher or HttpFetcher(
        timeout=config.crawl.timeout_seconds,
        max_bytes=config.crawl.max_response_bytes,
        allow_private=config.crawl.allow_private_addresses,
    )
    registry = ExtractorRegistry(fallback=FallbackExtractor(http))

    text = TextExtractor(http)
    image = ImageExtractor(vision, http)
    office = OfficeExtractor(http)

    for file_type in TEXT_TYPES:
        registry.register_type(file_type, text)
    registry.register_type("csv", CsvExtractor(http))
    registry.register_type("json", JsonExtractor(http))
    registry.register_type("pdf", PdfExtractor(http, vision, config.vision.pdf_visual_pass))
    registry.register_type("html", HtmlExtractor(http))
    registry.register_type("htm", HtmlExtractor(http))
    for file_type in IMAGE_TYPES:
        registry.register_type(file_type, image)
    for file_type in OFFICE_TYPES:
        registry.register_type(file_type, office)

    registry.register_kind(SourceKind.IMAGE, image)
    registry.register_kind(
        SourceKind.WEBSITE,
        WebsiteExtractor(
            http,
            max_discovered=config.crawl.max_discovered_pages,
            max_fetched=config.crawl.max_fetched_pages,
            max_page_chars=config.crawl.max_page_chars,
        ),
    )
    registry.register_kind(SourceKind.REPO, RepositoryExtractor(http))
    registry.register_kind(SourceKind.EMAIL, EmailExtractor(http))
    for kind in (SourceKind.TRANSCRIPT, SourceKind.RECORDING, SourceKind.NOTE):
        registry.register_kind(kind, text)
    return registry
