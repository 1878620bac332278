"""sourcekb ingest stages — chunker, embedding writer, summarizer, insights, bulk builders."""

from sourcekb.ingest.chunker import TextWindow, chunk_text
from sourcekb.ingest.embedding_writer import EmbeddingWriter, WriteReport
from sourcekb.ingest.insights import InsightGenerator
from sourcekb.ingest.summarizer import SourceSummarizer

__all__ = [
    "EmbeddingWriter",
    "InsightGenerator",
    "SourceSummarizer",
    "TextWindow",
    "WriteReport",
    "chunk_text",
]
