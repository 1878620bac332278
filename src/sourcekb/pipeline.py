"""Ingestion pipeline — extract, persist, enrich, chunk and embed sources in the background.

Per source run:
  1. extract   (mandatory) → content persisted; a failed extraction stores the
                             marker and fails the source, skipping everything else
  2. name      (documents/images) ┐
  3. summary                      │ best-effort: each logs its own error and
  4. embeddings                   │ the source still completes
  5. insights  (client sources)   ┘
  6. completed

Runs happen on a thread pool; each run opens its own database connection.
Failed runs are not retried automatically. Runs on the same source may
overlap (a reprocess during a run); the last one to finish sets the status.
"""

from __future__ import annotations

import functools
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from sourcekb.config import SourceKBConfig
from sourcekb.db.connection import Database
from sourcekb.db.models import Source, SourceKind, SourceStatus
from sourcekb.db.repository import Repository
from sourcekb.errors import PipelineFailure
from sourcekb.extract.base import ExtractionRequest
from sourcekb.extract.registry import ExtractorRegistry
from sourcekb.ingest.bulk import IMPORT_TYPES, build_item
from sourcekb.ingest.chunker import chunk_text
from sourcekb.ingest.embedding_writer import EmbeddingWriter, WriteReport
from sourcekb.ingest.insights import InsightGenerator
from sourcekb.ingest.summarizer import SourceSummarizer
from sourcekb.providers.base import EmbeddingProvider, TextGenProvider

logger = structlog.get_logger(logger_name=__name__)

_NAMED_KINDS = frozenset({SourceKind.DOCUMENT, SourceKind.IMAGE})


@dataclass
class IngestRequest:
    """What a producer hands the pipeline for one new source.

    Either *raw* (inline payload) or *origin* (path / URL) should be set.
    """

    owner_id: str
    kind: SourceKind
    name: str
    client_id: str | None = None
    origin: str | None = None
    raw: bytes | None = None
    file_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    exclude_from_rag: bool = False
    category: str | None = None
    client_name: str | None = None


@dataclass(frozen=True)
class ProcessOutcome:
    source_id: str
    status: SourceStatus
    chunks: int = 0
    embedded: int = 0
    error: str | None = None
    failed_stages: tuple[str, ...] = ()


@dataclass
class BulkImportReport:
    created: list[tuple[str, str]] = field(default_factory=list)  # (name, source_id)
    errors: list[tuple[str, str]] = field(default_factory=list)  # (name, message)
    future: Future | None = None


def infer_file_type(name: str, origin: str | None = None) -> str | None:
    """Lower-case extension of *name* (or of the origin path) without the dot."""
    for candidate in (name, origin or ""):
        suffix = Path(candidate.split("?", 1)[0]).suffix
        if suffix:
            return suffix[1:].lower()
    return None


def _guess_type(request: IngestRequest) -> str | None:
    if SourceKind(request.kind) not in _NAMED_KINDS:
        return None
    return infer_file_type(request.name, request.origin)


class IngestionPipeline:
    """Orchestrate source processing.

    Args:
        database:  Knowledge-base database; every run opens its own connection.
        registry:  Extractor registry.
        embedder:  Embedding provider.
        config:    Loaded configuration (chunking, batch size, workers, bulk delay).
        textgen:   Text-generation provider for names, summaries and insights;
                   None skips those stages.
        naming_model: Model override for source naming.
    """

    # Finished runs kept for run_for(); older ones are dropped.
    finished_runs_kept = 256

    def __init__(
        self,
        database: Database,
        registry: ExtractorRegistry,
        embedder: EmbeddingProvider,
        config: SourceKBConfig | None = None,
        textgen: TextGenProvider | None = None,
        naming_model: str | None = None,
    ) -> None:
        self._db = database
        self._registry = registry
        self._embedder = embedder
        self._config = config or SourceKBConfig()
        self._summarizer = SourceSummarizer(textgen, naming_model) if textgen else None
        self._insights = InsightGenerator(textgen) if textgen else None
        self._executor = ThreadPoolExecutor(
            max_workers=self._config.pipeline.max_workers,
            thread_name_prefix="sourcekb-ingest",
        )
        self._futures: set[Future] = set()
        self._runs: dict[str, Future] = {}
        self._finished: OrderedDict[str, Future] = OrderedDict()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(self, request: IngestRequest) -> Source:
        """Create the source (status processing) and process it in the background.

        Returns immediately with the stored Source; use run_for() or wait()
        to follow the background run.
        """
        metadata = dict(request.metadata)
        metadata.setdefault("file_name", request.name)
        if request.client_name:
            metadata["client_name"] = request.client_name

        with self._repository() as repo:
            source = repo.add_source(
                Source(
                    owner_id=request.owner_id,
                    client_id=request.client_id,
                    kind=SourceKind(request.kind),
                    name=request.name,
                    origin=request.origin,
                    file_type=request.file_type or _guess_type(request),
                    raw_content=request.raw,
                    status=SourceStatus.PROCESSING,
                    exclude_from_rag=request.exclude_from_rag,
                    category=request.category,
                    metadata=metadata,
                )
            )
        logger.info("source_submitted", source_id=source.id, kind=source.kind.value)
        self._schedule_run(source.id, source.owner_id)
        return source

    def reprocess(self, source_id: str, owner_id: str) -> Future:
        """Reset a source to processing and run it again, keeping its id."""
        with self._repository() as repo:
            repo.mark_processing(source_id, owner_id, reprocess=True)
        logger.info("source_reprocess_requested", source_id=source_id)
        return self._schedule_run(source_id, owner_id)

    def bulk_import(
        self, owner_id: str, items: Iterable[dict[str, Any]], import_type: str
    ) -> BulkImportReport:
        """Create personal sources from exported newsletter/framework items.

        Sources are created pending, then processed one after another in the
        background with ``pipeline.bulk_delay_seconds`` between items.

        Raises:
            ValueError: If *import_type* is unknown.
        """
        if import_type not in IMPORT_TYPES:
            raise ValueError(f"Import type must be one of {', '.join(IMPORT_TYPES)}; got '{import_type}'.")

        report = BulkImportReport()
        with self._repository() as repo:
            for item in items:
                label = str(item.get("title") or "Unknown") if isinstance(item, dict) else "Unknown"
                try:
                    name, content = build_item(item, import_type)
                    source = repo.add_source(
                        Source(
                            owner_id=owner_id,
                            client_id=None,
                            kind=SourceKind.NOTE,
                            name=name,
                            file_type="md",
                            raw_content=content.encode("utf-8"),
                            category=import_type,
                            metadata={"import_type": import_type},
                        )
                    )
                except Exception as exc:
                    logger.warning("bulk_item_rejected", name=label, error=str(exc))
                    report.errors.append((label, str(exc)))
                    continue
                report.created.append((name, source.id))

        ids = [source_id for _, source_id in report.created]
        logger.info("bulk_import_created", owner_id=owner_id, created=len(ids), errors=len(report.errors))
        if ids:
            report.future = self._schedule(self._process_sequentially, ids, owner_id)
        return report

    def process(self, source_id: str, owner_id: str, *, reprocess: bool = False) -> ProcessOutcome:
        """Run one source through every stage and return what happened.

        A pending source is moved to processing first. With *reprocess* a
        completed or failed source is accepted too.

        Raises:
            PipelineFailure: Unexpected error while extracting or persisting
                content (the source is marked failed first).
        """
        with structlog.contextvars.bound_contextvars(source_id=source_id):
            with self._repository() as repo:
                return self._process(repo, source_id, owner_id, reprocess)

    def run_for(self, source_id: str) -> Future | None:
        """Return the Future of the latest run scheduled for *source_id*.

        Finished runs stay available until ``finished_runs_kept`` newer runs
        have finished; after that None is returned.
        """
        with self._lock:
            future = self._runs.get(source_id)
            if future is None:
                future = self._finished.get(source_id)
            return future

    def wait(self, timeout: float | None = None) -> None:
        """Block until every scheduled run has finished."""
        with self._lock:
            pending = list(self._futures)
        wait_futures(pending, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> IngestionPipeline:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _process(
        self, repo: Repository, source_id: str, owner_id: str, reprocess: bool
    ) -> ProcessOutcome:
        source = repo.require_source(source_id, owner_id)
        if source.status is not SourceStatus.PROCESSING:
            repo.mark_processing(source_id, owner_id, reprocess=reprocess)

        try:
            result = self._registry.extract(
                ExtractionRequest(
                    kind=source.kind,
                    name=source.metadata.get("file_name", source.name),
                    origin=source.origin,
                    file_type=source.file_type,
                    raw=source.raw_content,
                    client_name=source.metadata.get("client_name"),
                )
            )
            repo.update_content(source_id, owner_id, result.text)
            if result.metadata:
                repo.update_metadata(source_id, owner_id, result.metadata)
        except Exception as exc:
            logger.error("extraction_crashed", error=str(exc), exc_info=True)
            self._fail(repo, source_id, owner_id, str(exc) or type(exc).__name__)
            raise PipelineFailure(source_id, exc) from exc

        if not result.ok:
            reason = result.reason or "Content extraction failed."
            self._fail(repo, source_id, owner_id, reason)
            logger.warning("extraction_failed", reason=reason)
            return ProcessOutcome(source_id=source_id, status=SourceStatus.FAILED, error=reason)

        source = repo.require_source(source_id, owner_id)
        content = result.text
        failed: list[str] = []
        chunks = embedded = 0

        if self._summarizer is not None and source.kind in _NAMED_KINDS:
            self._stage("name", failed, self._name, repo, source, content)
            source = repo.require_source(source_id, owner_id)

        if self._summarizer is not None:
            self._stage("summary", failed, self._summarize, repo, source, content)

        report = self._stage("embeddings", failed, self._embed, repo, source, content)
        if report is not None:
            chunks, embedded = report.total, report.embedded

        if self._insights is not None and not source.is_personal:
            self._stage("insights", failed, self._generate_insights, repo, source, content)

        repo.complete(source_id, owner_id, supersede=True)
        logger.info(
            "source_completed",
            chunks=chunks,
            embedded=embedded,
            failed_stages=failed or None,
        )
        return ProcessOutcome(
            source_id=source_id,
            status=SourceStatus.COMPLETED,
            chunks=chunks,
            embedded=embedded,
            failed_stages=tuple(failed),
        )

    @staticmethod
    def _fail(repo: Repository, source_id: str, owner_id: str, reason: str) -> None:
        repo.set_error(source_id, owner_id, reason, supersede=True)
        # chunks from an earlier successful run must not outlive the failure
        repo.replace_chunks(source_id, owner_id, [])

    @staticmethod
    def _stage(name: str, failed: list[str], fn: Callable[..., Any], *args: Any) -> Any:
        """Run one best-effort stage; log and record its failure instead of raising."""
        try:
            return fn(*args)
        except Exception as exc:
            logger.warning("stage_failed", stage=name, error=str(exc))
            failed.append(name)
            return None

    def _name(self, repo: Repository, source: Source, content: str) -> str:
        file_name = source.metadata.get("file_name", source.name)
        new_name = self._summarizer.name(
            content,
            file_name=file_name,
            file_type=source.file_type,
            client_name=source.metadata.get("client_name"),
        )
        if new_name and new_name != source.name:
            repo.update_name(source.id, source.owner_id, new_name)
        return new_name

    def _summarize(self, repo: Repository, source: Source, content: str) -> None:
        summary = self._summarizer.summarize(
            content,
            source_kind=source.kind.value,
            file_name=source.name,
            file_type=source.file_type,
            client_name=source.metadata.get("client_name"),
        )
        repo.update_summary(source.id, source.owner_id, summary)

    def _embed(self, repo: Repository, source: Source, content: str) -> WriteReport:
        windows = chunk_text(content, self._config.chunking.size, self._config.chunking.overlap)
        writer = EmbeddingWriter(repo, self._embedder, self._config.embedding.batch_size)
        return writer.write(source, windows)

    def _generate_insights(self, repo: Repository, source: Source, content: str) -> int:
        suggestions = self._insights.suggest(content, source.name)
        repo.delete_pending_insights(source.id, source.owner_id)
        for insight in InsightGenerator.to_insights(source, suggestions):
            repo.add_insight(insight)
        return len(suggestions)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _process_sequentially(self, source_ids: list[str], owner_id: str) -> list[ProcessOutcome]:
        outcomes: list[ProcessOutcome] = []
        delay = self._config.pipeline.bulk_delay_seconds
        for i, source_id in enumerate(source_ids):
            try:
                outcomes.append(self.process(source_id, owner_id))
            except PipelineFailure as exc:
                outcomes.append(
                    ProcessOutcome(source_id=source_id, status=SourceStatus.FAILED, error=str(exc.cause))
                )
            if delay > 0 and i < len(source_ids) - 1:
                time.sleep(delay)
        logger.info("bulk_processing_finished", total=len(source_ids))
        return outcomes

    def _schedule_run(self, source_id: str, owner_id: str) -> Future:
        # the source may already be finished by an overlapping run when this one starts
        run = functools.partial(self.process, reprocess=True)
        return self._schedule(run, source_id, owner_id, key=source_id)

    def _schedule(self, fn: Callable[..., Any], *args: Any, key: str | None = None) -> Future:
        future = self._executor.submit(self._run_logged, fn, *args)
        with self._lock:
            self._futures.add(future)
            if key is not None:
                self._runs[key] = future
        future.add_done_callback(functools.partial(self._forget, key=key))
        return future

    def _forget(self, future: Future, key: str | None = None) -> None:
        with self._lock:
            self._futures.discard(future)
            if key is None or self._runs.get(key) is not future:
                return
            del self._runs[key]
            self._finished[key] = future
            self._finished.move_to_end(key)
            while len(self._finished) > self.finished_runs_kept:
                self._finished.popitem(last=False)

    @staticmethod
    def _run_logged(fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception as exc:
            logger.error("background_run_failed", error=str(exc))
            raise

    @contextmanager
    def _repository(self) -> Iterator[Repository]:
        conn = self._db.connect()
        try:
            yield Repository(conn)
        finally:
            conn.close()
