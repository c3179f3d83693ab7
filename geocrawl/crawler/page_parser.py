"""Extract meta tags, JSON-LD schema markup and content structure from HTML."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from bs4 import BeautifulSoup

from geocrawl.crawler.models import ContentStructure, MetaTags, PageContent

logger = logging.getLogger(__name__)

# name/property attribute -> MetaTags field
META_FIELDS = {
    "description": "description",
    "keywords": "keywords",
    "author": "author",
    "robots": "robots",
    "og:title": "og_title",
    "og:description": "og_description",
    "og:image": "og_image",
}

TOC_PATTERN = re.compile(r"toc", re.I)
FAQ_PATTERN = re.compile(r"faq", re.I)


def parse_page(html: str) -> PageContent:
    """Parse an HTML document.

    Args:
        html: Raw HTML

    Returns:
        PageContent with meta tags, schema markup and content structure
    """
    soup = BeautifulSoup(html, "html.parser")
    return PageContent(
        meta_tags=extract_meta_tags(soup),
        schema_markup=extract_schema_markup(soup),
        content_structure=analyze_content_structure(soup),
    )


def extract_meta_tags(soup: BeautifulSoup) -> MetaTags:
    values: dict[str, str | None] = {}

    title = soup.find("title")
    if title is not None:
        values["title"] = title.get_text(strip=True) or None

    for meta in soup.find_all("meta"):
        name = meta.get("name") or meta.get("property")
        content = meta.get("content")
        if not name or not content:
            continue
        field = META_FIELDS.get(name.lower())
        if field is not None:
            values[field] = content

    canonical = soup.find("link", rel="canonical")
    if canonical is not None and canonical.get("href"):
        values["canonical"] = canonical["href"]

    return MetaTags(**values)


def extract_schema_markup(soup: BeautifulSoup) -> list[Any]:
    """Return every JSON-LD block that parses; invalid blocks are skipped."""
    schemas: list[Any] = []
    for script in soup.find_all("script", type="application/ld+json"):
        content = script.string or script.get_text()
        if not content or not content.strip():
            continue
        try:
            schemas.append(json.loads(content))
        except json.JSONDecodeError:
            logger.debug("Skipping invalid JSON-LD block")
    return schemas


def analyze_content_structure(soup: BeautifulSoup) -> ContentStructure:
    headings: dict[str, list[str]] = {}
    for level in ("h1", "h2", "h3"):
        texts = [tag.get_text(strip=True) for tag in soup.find_all(level)]
        headings[level] = [text for text in texts if text]

    body = soup.find("body")
    body_text = body.get_text(" ") if body is not None else ""

    has_toc = bool(
        soup.find(class_=TOC_PATTERN) or soup.find(id=TOC_PATTERN)
    )
    has_faq = bool(
        soup.find(itemtype=re.compile("FAQPage"))
        or soup.find(class_=FAQ_PATTERN)
        or soup.find(id=FAQ_PATTERN)
    )
    faq_count = None
    if has_faq:
        faq_count = len(
            soup.select('[itemtype*="Question"], .faq-item, .faq-question')
        )

    return ContentStructure(
        h1=headings["h1"],
        h2=headings["h2"],
        h3=headings["h3"],
        word_count=len(body_text.split()),
        paragraph_count=len(soup.find_all("p")),
        image_count=len(soup.find_all("img")),
        link_count=len(soup.find_all("a")),
        has_table_of_contents=has_toc,
        has_faq=has_faq,
        faq_count=faq_count,
        has_product_info=soup.find(itemtype=re.compile("Product")) is not None,
        has_reviews=soup.find(itemtype=re.compile("Review")) is not None,
    )
