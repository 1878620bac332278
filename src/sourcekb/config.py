"""sourcekb configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (SOURCEKB_DB, SOURCEKB_EMBEDDING_MODEL, ...)
  3. Per-project sourcekb.yaml  (current working directory)
  4. Global ~/.sourcekb/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".sourcekb"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "sourcekb.yaml"

# Key names that look like credentials are forbidden in global config.
# Does NOT match legitimate keys like max_tokens or batch_size.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    [
        "database",
        "embedding",
        "generation",
        "vision",
        "chunking",
        "retrieval",
        "crawl",
        "pipeline",
        "logging",
    ]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class DatabaseCfg:
    """Knowledge-base location (sourcekb.yaml: database:)."""

    path: str = ".sourcekb.db"


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (sourcekb.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 100


@dataclass
class GenerationCfg:
    """Text-generation models for summaries, names and insights."""

    model: str = "anthropic/claude-3-5-sonnet-20241022"
    naming_model: str = "anthropic/claude-3-5-haiku-20241022"


@dataclass
class VisionCfg:
    """Vision model configuration (sourcekb.yaml: vision:)."""

    model: str = "anthropic/claude-sonnet-4-20250514"
    pdf_visual_pass: bool = True


@dataclass
class ChunkingCfg:
    """Sliding-window chunker configuration, in characters."""

    size: int = 1000
    overlap: int = 200


@dataclass
class RetrievalCfg:
    """Retrieval defaults (sourcekb.yaml: retrieval:).

    Attributes:
        limit: Maximum number of results per search.
        min_similarity: Semantic cut-off. Kept low because short consulting
            text embeds noisily; precision-sensitive callers pass a higher one.
        hybrid: Supplement short semantic results with substring matches.
        lexical_score: Fixed score assigned to substring matches.
    """

    limit: int = 10
    min_similarity: float = 0.55
    hybrid: bool = True
    lexical_score: float = 0.5


@dataclass
class CrawlCfg:
    """Website / repository fetch limits (sourcekb.yaml: crawl:)."""

    max_discovered_pages: int = 50
    max_fetched_pages: int = 20
    max_page_chars: int = 10_000
    timeout_seconds: int = 30
    max_response_bytes: int = 25 * 1024 * 1024
    allow_private_addresses: bool = False


@dataclass
class PipelineCfg:
    """Background processing configuration (sourcekb.yaml: pipeline:)."""

    max_workers: int = 4
    bulk_delay_seconds: float = 0.5


@dataclass
class LoggingCfg:
    """Log output configuration (sourcekb.yaml: logging:)."""

    level: str = "INFO"
    json: bool = False


@dataclass
class SourceKBConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    vision: VisionCfg = field(default_factory=VisionCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    crawl: CrawlCfg = field(default_factory=CrawlCfg)
    pipeline: PipelineCfg = field(default_factory=PipelineCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: SourceKBConfig) -> None:
    """Raise ConfigError for values the pipeline cannot work with."""
    if cfg.chunking.size < 1:
        raise ConfigError(f"chunking.size must be >= 1, got {cfg.chunking.size}")
    if not 0 <= cfg.chunking.overlap < cfg.chunking.size:
        raise ConfigError(
            f"chunking.overlap must be in [0, {cfg.chunking.size}), got {cfg.chunking.overlap}"
        )
    if not 0.0 <= cfg.retrieval.min_similarity <= 1.0:
        raise ConfigError(
            f"retrieval.min_similarity must be in [0, 1], got {cfg.retrieval.min_similarity}"
        )
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.pipeline.max_workers < 1:
        raise ConfigError(f"pipeline.max_workers must be >= 1, got {cfg.pipeline.max_workers}")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _cfg_from_dict(data: dict[str, Any]) -> SourceKBConfig:
    """Build a *SourceKBConfig* from a merged raw YAML dict."""
    cfg = SourceKBConfig()

    if "database" in data:
        d = data["database"] or {}
        cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
        )

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            naming_model=str(g.get("naming_model", cfg.generation.naming_model)),
        )

    if "vision" in data:
        v = data["vision"] or {}
        cfg.vision = VisionCfg(
            model=str(v.get("model", cfg.vision.model)),
            pdf_visual_pass=_as_bool(v.get("pdf_visual_pass", cfg.vision.pdf_visual_pass)),
        )

    if "chunking" in data:
        c = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            size=int(c.get("size", cfg.chunking.size)),
            overlap=int(c.get("overlap", cfg.chunking.overlap)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            limit=int(r.get("limit", cfg.retrieval.limit)),
            min_similarity=float(r.get("min_similarity", cfg.retrieval.min_similarity)),
            hybrid=_as_bool(r.get("hybrid", cfg.retrieval.hybrid)),
            lexical_score=float(r.get("lexical_score", cfg.retrieval.lexical_score)),
        )

    if "crawl" in data:
        w = data["crawl"] or {}
        cfg.crawl = CrawlCfg(
            max_discovered_pages=int(
                w.get("max_discovered_pages", cfg.crawl.max_discovered_pages)
            ),
            max_fetched_pages=int(w.get("max_fetched_pages", cfg.crawl.max_fetched_pages)),
            max_page_chars=int(w.get("max_page_chars", cfg.crawl.max_page_chars)),
            timeout_seconds=int(w.get("timeout_seconds", cfg.crawl.timeout_seconds)),
            max_response_bytes=int(w.get("max_response_bytes", cfg.crawl.max_response_bytes)),
            allow_private_addresses=_as_bool(
                w.get("allow_private_addresses", cfg.crawl.allow_private_addresses)
            ),
        )

    if "pipeline" in data:
        p = data["pipeline"] or {}
        cfg.pipeline = PipelineCfg(
            max_workers=int(p.get("max_workers", cfg.pipeline.max_workers)),
            bulk_delay_seconds=float(
                p.get("bulk_delay_seconds", cfg.pipeline.bulk_delay_seconds)
            ),
        )

    if "logging" in data:
        lg = data["logging"] or {}
        cfg.logging = LoggingCfg(
            level=str(lg.get("level", cfg.logging.level)),
            json=_as_bool(lg.get("json", cfg.logging.json)),
        )

    return cfg


def _apply_env_overrides(cfg: SourceKBConfig) -> SourceKBConfig:
    """Apply SOURCEKB_* environment variable overrides."""
    if path := os.environ.get("SOURCEKB_DB"):
        cfg.database.path = path
    if model := os.environ.get("SOURCEKB_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if model := os.environ.get("SOURCEKB_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("SOURCEKB_VISION_MODEL"):
        cfg.vision.model = model
    if level := os.environ.get("SOURCEKB_LOG_LEVEL"):
        cfg.logging.level = level
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> SourceKBConfig:
    """Load and return a merged *SourceKBConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *sourcekb.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a value
            is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg
