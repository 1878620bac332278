"""Repository extractor — README, markdown and manifest files from GitHub.

Only the top level of the repository is read, via the GitHub contents API.
Set GITHUB_TOKEN to read private repositories or to lift the anonymous rate
limit.
"""

from __future__ import annotations

import json
import os
import re

import structlog

from sourcekb.extract.base import ExtractionRequest, ExtractionResult, Extractor
from sourcekb.extract.fetch import HttpFetcher

logger = structlog.get_logger(logger_name=__name__)

_GITHUB_RE = re.compile(r"github\.com[/:]([^/\s]+)/([^/\s#?]+)")
_API_URL = "https://api.github.com/repos/{owner}/{repo}/contents"

MANIFEST_FILES = frozenset(
    [
        "package.json",
        "pyproject.toml",
        "setup.py",
        "setup.cfg",
        "requirements.txt",
        "Cargo.toml",
        "go.mod",
        "Gemfile",
        "composer.json",
        "pom.xml",
    ]
)


def parse_github_url(url: str) -> tuple[str, str] | None:
    """Return ``(owner, repo)`` for a GitHub URL, or None if it is not one."""
    match = _GITHUB_RE.search(url)
    if not match:
        return None
    owner, repo = match.group(1), match.group(2)
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return (owner, repo) if owner and repo else None


def is_wanted_file(name: str) -> bool:
    """README-like files, markdown and dependency manifests."""
    return "readme" in name.lower() or name.lower().endswith(".md") or name in MANIFEST_FILES


class RepositoryExtractor(Extractor):
    """Concatenate the documentation and manifest files of a GitHub repository."""

    def __init__(self, fetcher: HttpFetcher) -> None:
        super().__init__(fetcher)
        self._http = fetcher

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        parsed = parse_github_url(request.origin or "")
        if parsed is None:
            return ExtractionResult.failure(
                f"[Error processing repository: invalid GitHub URL '{request.origin}']",
                "Invalid GitHub URL",
            )
        owner, repo = parsed

        headers = {"Accept": "application/vnd.github.v3+json"}
        if token := os.environ.get("GITHUB_TOKEN"):
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = self._http.fetch(_API_URL.format(owner=owner, repo=repo), headers=headers)
            listing = json.loads(response.text())
        except Exception as exc:
            logger.warning("github_listing_failed", owner=owner, repo=repo, error=str(exc))
            return ExtractionResult.failure(
                f"[Error processing repository: GitHub API error: {exc}]",
                f"GitHub API error: {exc}",
            )
        if not isinstance(listing, list):
            return ExtractionResult.failure(
                "[Error processing repository: unexpected GitHub API response]",
                "GitHub API did not return a directory listing.",
            )

        sections: list[str] = []
        fetched: list[str] = []
        for entry in listing:
            if entry.get("type") != "file" or not is_wanted_file(entry.get("name", "")):
                continue
            download_url = entry.get("download_url")
            if not download_url:
                continue
            try:
                body = self._http.fetch(download_url, headers=headers).text()
            except Exception as exc:
                logger.warning("repo_file_fetch_failed", file=entry["name"], error=str(exc))
                continue
            sections.append(f"# {entry['name']}\n\n{body}\n\n---\n")
            fetched.append(entry["name"])

        metadata = {"owner": owner, "repo": repo, "files": len(listing), "fetched": fetched}
        if not sections:
            return ExtractionResult.failure(
                f"[Error processing repository: no readable files in {owner}/{repo}]",
                f"No README, markdown or manifest files found in {owner}/{repo}.",
                metadata=metadata,
            )
        return ExtractionResult.success("\n".join(sections), metadata=metadata)
