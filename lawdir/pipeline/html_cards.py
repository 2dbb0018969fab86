"""
HTML structural extractor - lawyer cards straight from listing markup.

Used only when a page carries no usable JSON. Two cascades, both plain data:

- CARD_SELECTORS: the first selector matching at least one element defines
  the card set for the whole page
- FIELD_SELECTORS: per canonical field, the first selector inside a card
  yielding a non-empty value wins

Cards with neither a name nor a profile link are dropped.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from selectolax.parser import HTMLParser, Node

from ..schemas import LawyerRecord
from .normalize import (
    DEFAULT_SOURCE_DOMAIN,
    normalize_external_website,
    normalize_text,
    normalize_url,
    parse_rating_text,
    pick_attr_value,
    to_int,
)


CARD_SELECTORS: Tuple[str, ...] = (
    'div[data-testid="lawyer-card"]',
    '.lawyer-card',
    '[class*="lawyer"][class*="card"]',
    'article[data-lawyer-id]',
    '.search-result-lawyer',
    '.profile-card',
    '[data-lawyer-name]',
)

FIELD_SELECTORS: Dict[str, Tuple[str, ...]] = {
    "name": (
        '[data-testid="lawyer-name"]',
        'h2 a',
        'h3 a',
        '.lawyer-name',
        '.profile-name',
        'a[href*="/attorney/"]',
    ),
    "profile_link": (
        'a[href*="/attorney/"]',
        'a[href*="/attorneys/"]',
        'a[href*="/lawyer/"]',
    ),
    "rating": (
        '[data-testid="rating"]',
        '.rating-value',
        '.avvo-rating',
        '[class*="rating"]',
    ),
    "review_count": (
        '[data-testid="review-count"]',
        '.review-count',
        '[class*="review"]',
    ),
    "practice_areas": (
        '[data-testid="practice-areas"]',
        '.practice-areas',
        '.specialties',
        '[class*="practice"]',
    ),
    "location": (
        '[data-testid="location"]',
        '.location',
        '.address',
        '[class*="location"]',
    ),
    "phone": (
        '[data-testid="phone"]',
        '.phone',
        'a[href^="tel:"]',
        '[class*="phone"]',
    ),
    "email": (
        'a[href^="mailto:"]',
        '[data-email]',
    ),
    "website": (
        '[data-testid="website"]',
        'a[href*="website"]',
        '.website',
        'a[data-website]',
    ),
    "years_licensed": (
        '[data-testid="years-licensed"]',
        '.years-licensed',
        '[class*="years"]',
    ),
    "bar_admissions": (
        '[data-testid="bar-admissions"]',
        '.bar-admissions',
        '[class*="bar"]',
    ),
    "languages": (
        '[data-testid="languages"]',
        '.languages',
        '[class*="language"]',
    ),
    # Generic paragraph last: only when nothing more specific is long enough
    "bio": (
        '[data-testid="bio"]',
        '.bio',
        '.description',
        '.profile-description',
        '.profile-summary',
        '.lawyer-bio',
        '.bio-text',
        '[itemprop="description"]',
        'p',
    ),
    "image": (
        'img',
    ),
}

# Child elements enumerated as individual list items, per list field
LIST_ITEM_SELECTORS: Dict[str, str] = {
    "practice_areas": "li, span, a",
    "bar_admissions": "li, span",
    "languages": "li, span",
}

# Shortest accepted item text, per list field
LIST_ITEM_MIN_LENGTH: Dict[str, int] = {
    "practice_areas": 3,
    "bar_admissions": 2,
    "languages": 2,
}

BIO_MIN_LENGTH = 50

IMAGE_ATTRS = ("src", "data-src", "data-lazy-src")
WEBSITE_ATTRS = ("href", "data-website", "data-website-url", "data-url")


def node_text(node: Optional[Node]) -> str:
    if node is None:
        return ""
    return normalize_text(node.text(deep=True, separator=" "))


def first_value(
    card: Node,
    selectors: Sequence[str],
    read: Callable[[Node], object],
) -> Tuple[object, Optional[Node]]:
    """Walk ``selectors`` in order; return the first non-empty ``read(node)`` and its node."""
    for selector in selectors:
        node = card.css_first(selector)
        if node is None:
            continue
        value = read(node)
        if value is not None and value != "" and value != 0:
            return value, node
    return None, None


def first_text(card: Node, selectors: Sequence[str], min_length: int = 1) -> str:
    def read(node: Node) -> Optional[str]:
        text = node_text(node)
        return text if len(text) >= min_length else None

    value, _ = first_value(card, selectors, read)
    return value or ""


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


def extract_list_items(card: Node, field: str) -> List[str]:
    """Items under the first matching container; comma-separated text as fallback."""
    selectors = FIELD_SELECTORS[field]
    item_selector = LIST_ITEM_SELECTORS[field]
    min_len = LIST_ITEM_MIN_LENGTH[field]

    for selector in selectors:
        items: List[str] = []
        for container in card.css(selector):
            for child in container.css(item_selector):
                text = node_text(child)
                if text and len(text) >= min_len:
                    items.append(text)
        if items:
            return _dedupe(items)

    for selector in selectors:
        text = node_text(card.css_first(selector))
        if "," in text:
            return _dedupe([part for part in (normalize_text(p) for p in text.split(",")) if part])
    return []


def find_cards(parser: HTMLParser, selectors: Sequence[str] = CARD_SELECTORS) -> Tuple[List[Node], Optional[str]]:
    """Cards matched by the first selector that hits anything, plus that selector."""
    for selector in selectors:
        nodes = parser.css(selector)
        if nodes:
            return list(nodes), selector
    return [], None


def _read_phone(node: Node) -> str:
    text = node_text(node)
    if text:
        return text
    href = (node.attributes or {}).get("href") or ""
    if href.lower().startswith("tel:"):
        return normalize_text(href[4:])
    return ""


def _read_email(node: Node) -> str:
    attrs = node.attributes or {}
    href = attrs.get("href") or ""
    if href.lower().startswith("mailto:"):
        email = normalize_text(href[7:].split("?", 1)[0])
        if email:
            return email
    if attrs.get("data-email"):
        return normalize_text(attrs["data-email"])
    text = node_text(node)
    return text if "@" in text else ""


def extract_card(
    card: Node,
    base_url: str,
    *,
    source_domain: str = DEFAULT_SOURCE_DOMAIN,
    scraped_at: Optional[datetime] = None,
) -> Optional[LawyerRecord]:
    """One LawyerRecord from a card node; None when the card has no name and no link."""
    name = ""
    profile_url = ""
    for selector in FIELD_SELECTORS["name"]:
        node = card.css_first(selector)
        text = node_text(node)
        if text:
            name = text
            profile_url = normalize_url((node.attributes or {}).get("href") or "", base_url)
            break
    if not name:
        name = normalize_text((card.attributes or {}).get("data-lawyer-name") or "")

    if not profile_url:
        href, _ = first_value(
            card, FIELD_SELECTORS["profile_link"], lambda n: (n.attributes or {}).get("href") or None
        )
        profile_url = normalize_url(href or "", base_url)

    if not name and not profile_url:
        return None

    rating, _ = first_value(card, FIELD_SELECTORS["rating"], lambda n: parse_rating_text(node_text(n)))
    review_count, _ = first_value(card, FIELD_SELECTORS["review_count"], lambda n: to_int(node_text(n)))
    years, _ = first_value(card, FIELD_SELECTORS["years_licensed"], lambda n: to_int(node_text(n)))
    phone, _ = first_value(card, FIELD_SELECTORS["phone"], _read_phone)
    email, _ = first_value(card, FIELD_SELECTORS["email"], _read_email)
    website, _ = first_value(
        card,
        FIELD_SELECTORS["website"],
        lambda n: normalize_external_website(pick_attr_value(n, WEBSITE_ATTRS), base_url, source_domain),
    )
    image, _ = first_value(
        card, FIELD_SELECTORS["image"], lambda n: normalize_url(pick_attr_value(n, IMAGE_ATTRS), base_url)
    )

    return LawyerRecord(
        name=name,
        rating=rating,
        review_count=review_count or 0,
        practice_areas=extract_list_items(card, "practice_areas"),
        location=first_text(card, FIELD_SELECTORS["location"]),
        phone=phone or "",
        email=email or "",
        website=website or "",
        years_licensed=years or 0,
        bar_admissions=extract_list_items(card, "bar_admissions"),
        languages=extract_list_items(card, "languages"),
        profile_url=profile_url,
        bio=first_text(card, FIELD_SELECTORS["bio"], min_length=BIO_MIN_LENGTH),
        image=image or "",
        scraped_at=scraped_at or datetime.now(timezone.utc),
    )


def extract_from_html(
    html: str | HTMLParser,
    base_url: str,
    *,
    source_domain: str = DEFAULT_SOURCE_DOMAIN,
) -> List[LawyerRecord]:
    """Lawyer records from rendered listing markup (card cascade)."""
    parser = html if isinstance(html, HTMLParser) else HTMLParser(html or "")
    cards, selector = find_cards(parser)
    if not cards:
        return []
    print(f"🔎 Found {len(cards)} lawyer cards with selector: {selector}")
    records: List[LawyerRecord] = []
    for card in cards:
        record = extract_card(card, base_url, source_domain=source_domain)
        if record is not None:
            records.append(record)
    return records
