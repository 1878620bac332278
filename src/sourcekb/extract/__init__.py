"""Content extraction: one extractor per source kind / file type."""

from sourcekb.extract.base import (
    MARKER_PREFIXES,
    ExtractionRequest,
    ExtractionResult,
    Extractor,
    is_marker,
)
from sourcekb.extract.fetch import FetchError, FetchResponse, HttpFetcher, SsrfError
from sourcekb.extract.registry import ExtractorRegistry, build_registry

__all__ = [
    "MARKER_PREFIXES",
    "ExtractionRequest",
    "ExtractionResult",
    "Extractor",
    "ExtractorRegistry",
    "FetchError",
    "FetchResponse",
    "HttpFetcher",
    "SsrfError",
    "build_registry",
    "is_marker",
]
