"""
Follow-up URL discovery for the crawl queue.

- API endpoints referenced by a listing page (absolute ``/api/`` URLs and
  quoted relative ``/api/`` or ``/graphql`` paths)
- Next listing page, from rel=next links or "next" pagination anchors
- Next API page, from the common pagination keys of a JSON payload
- Lawyer profile URLs listed in sitemaps
- Search URLs built from practice area + state (+ city)
"""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Optional, Set
from urllib.parse import urljoin

from selectolax.parser import HTMLParser

from .normalize import normalize_text, normalize_url


DEFAULT_BASE_URL = "https://www.avvo.com"
DEFAULT_PRACTICE_AREA = "bankruptcy-debt"
DEFAULT_STATE = "al"

SITEMAP_PATHS = ("/sitemap.xml", "/sitemaps/sitemap.xml")
SITEMAP_PROFILE_MARKERS = ("/attorney/", "/attorneys/")

_ABSOLUTE_API_RE = re.compile(r"https?://[^\s\"'<>]+/api/[^\s\"'<>]+", re.IGNORECASE)
_RELATIVE_API_RE = re.compile(r"[\"'](/(?:api/|graphql)[^\"'\s]*)[\"']", re.IGNORECASE)
_LOC_RE = re.compile(r"<loc>\s*([^<\s]+)\s*</loc>", re.IGNORECASE)
_SLUG_RE = re.compile(r"[^a-z0-9]+")

NEXT_REL_SELECTOR = 'a[rel="next"], link[rel="next"]'
NEXT_ANCHOR_SELECTOR = 'a[class*="next"], .pagination a'
NEXT_LABELS = ("next", "next page")

# Pagination keys in API payloads, checked in order
API_NEXT_KEYS = ("nextPageUrl", "next")
API_NEXT_CONTAINERS = ("links", "pagination", "paging")


def _dedupe(urls: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    out: List[str] = []
    for u in urls:
        if u and u not in seen:
            seen.add(u)
            out.append(u)
    return out


def extract_api_urls(html: str, base_url: str) -> List[str]:
    """API URLs mentioned anywhere in the page source, absolute, order preserved."""
    if not html:
        return []
    found = [m.group(0) for m in _ABSOLUTE_API_RE.finditer(html)]
    found.extend(normalize_url(m.group(1), base_url) for m in _RELATIVE_API_RE.finditer(html))
    return _dedupe(found)


def next_page_from_html(html: str | HTMLParser, base_url: str) -> Optional[str]:
    parser = html if isinstance(html, HTMLParser) else HTMLParser(html or "")
    for node in parser.css(NEXT_REL_SELECTOR):
        href = (node.attributes or {}).get("href")
        if href:
            return normalize_url(href, base_url)
    for node in parser.css(NEXT_ANCHOR_SELECTOR):
        label = normalize_text(node.text(deep=True, separator=" ")).lower()
        href = (node.attributes or {}).get("href")
        if href and label in NEXT_LABELS:
            return normalize_url(href, base_url)
    return None


def next_page_from_api(payload: Any, base_url: str) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    for key in API_NEXT_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return normalize_url(value, base_url)
    for container in API_NEXT_CONTAINERS:
        inner = payload.get(container)
        if isinstance(inner, dict):
            value = inner.get("next")
            if isinstance(value, str) and value:
                return normalize_url(value, base_url)
    return None


def sitemap_urls(base_url: str = DEFAULT_BASE_URL) -> List[str]:
    return [urljoin(base_url, path) for path in SITEMAP_PATHS]


def sitemap_profile_urls(xml_text: str) -> List[str]:
    """Profile URLs among the <loc> entries of a sitemap document."""
    if not xml_text:
        return []
    locs = (m.group(1) for m in _LOC_RE.finditer(xml_text))
    return _dedupe(u for u in locs if any(marker in u for marker in SITEMAP_PROFILE_MARKERS))


def slugify(value: str) -> str:
    return _SLUG_RE.sub("-", (value or "").strip().lower()).strip("-")


def build_search_url(
    practice_area: str = "",
    state: str = "",
    city: str = "",
    base_url: str = DEFAULT_BASE_URL,
) -> str:
    """``{base}/{practice-area}-lawyer/{city-}{state}.html``."""
    area = slugify(practice_area) or DEFAULT_PRACTICE_AREA
    st = slugify(state) or DEFAULT_STATE
    place = f"{slugify(city)}-{st}" if slugify(city) else st
    return urljoin(base_url, f"/{area}-lawyer/{place}.html")


def build_start_urls(
    start_urls: Iterable[str] = (),
    *,
    practice_area: str = "",
    state: str = "",
    city: str = "",
    base_url: str = DEFAULT_BASE_URL,
) -> List[str]:
    """Explicit start URLs, or one search URL when only practice area + state are given."""
    urls = _dedupe(u.strip() for u in start_urls if u and u.strip())
    if urls:
        return urls
    if practice_area and state:
        return [build_search_url(practice_area, state, city, base_url)]
    return []
