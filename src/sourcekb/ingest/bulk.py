"""Content builders for bulk-imported personal knowledge (newsletters, frameworks).

Each item is a JSON object exported from a publishing tool. The builders turn
it into one markdown document whose headings keep the item's structure
searchable.
"""

from __future__ import annotations

import re
from typing import Any

from bs4 import BeautifulSoup

IMPORT_TYPES = ("newsletter", "framework")

_WS_RE = re.compile(r"\s+")


def strip_html(markup: str) -> str:
    """Return the visible text of an HTML fragment on one line."""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    return _WS_RE.sub(" ", soup.get_text(" ")).strip()


def _faq_lines(faqs: list[dict[str, Any]] | None) -> list[str]:
    return [f"\nQ: {faq.get('question', '')}\nA: {faq.get('answer', '')}" for faq in faqs or []]


def build_newsletter_content(item: dict[str, Any]) -> str:
    parts = [f"# {item.get('title', '')}"]
    if item.get("date"):
        parts.append(f"Date: {item['date']}")
    if item.get("coreTakeaway"):
        parts.append(f"\n## Core Takeaway\n{item['coreTakeaway']}")
    if item.get("tldr"):
        parts.append("\n## Key Points")
        parts.extend(f"- {point}" for point in item["tldr"])
    if item.get("body"):
        parts.append(f"\n## Full Content\n{strip_html(item['body'])}")
    if item.get("faqs"):
        parts.append("\n## FAQs")
        parts.extend(_faq_lines(item["faqs"]))
    return "\n".join(parts)


def build_framework_content(item: dict[str, Any]) -> str:
    parts = [f"# {framework_name(item)}"]
    if item.get("introText"):
        parts.append(f"\n## Overview\n{item['introText']}")
    if item.get("whatYoulearn"):
        parts.append(f"\n## What You'll Learn\n{item['whatYoulearn']}")
    myths = item.get("mythsSection")
    if myths:
        parts.append(f"\n## {myths.get('title') or 'Myths & False Signals'}")
        if myths.get("intro"):
            parts.append(myths["intro"])
        parts.extend(f"- {point}" for point in myths.get("points") or [])
    if item.get("tldr"):
        parts.append("\n## Key Takeaways")
        parts.extend(f"- {point}" for point in item["tldr"])
    if item.get("faqs"):
        parts.append("\n## FAQs")
        parts.extend(_faq_lines(item["faqs"]))
    if item.get("paaFaqs"):
        parts.append("\n## Additional Questions")
        parts.extend(_faq_lines(item["paaFaqs"]))
    return "\n".join(parts)


def framework_name(item: dict[str, Any]) -> str:
    title = item.get("title") or "Untitled Framework"
    return f"{item['moduleCode']} - {title}" if item.get("moduleCode") else title


def build_item(item: dict[str, Any], import_type: str) -> tuple[str, str]:
    """Return ``(name, content)`` for one import item.

    Raises:
        ValueError: Unknown *import_type* or an item that is not an object.
    """
    if import_type not in IMPORT_TYPES:
        raise ValueError(f"Import type must be one of {', '.join(IMPORT_TYPES)}; got '{import_type}'.")
    if not isinstance(item, dict):
        raise ValueError("Each import item must be a JSON object.")
    if import_type == "newsletter":
        name = item.get("title") or item.get("slug") or "Untitled Newsletter"
        return name, build_newsletter_content(item)
    return framework_name(item), build_framework_content(item)
