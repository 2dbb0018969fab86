"""
Profile Enrichment - merge a lawyer's own profile page into a listing record.

For one profile page, three sources are read independently and merged per
field, first defined value wins:

1. JSON-LD records (best candidate for the page URL)
2. Embedded-state records (best candidate for the page URL)
3. Direct HTML / meta-tag reads

Blocked fetches (403/429/503 or a challenge page) return BLOCKED and leave
the listing record untouched. Enrichment only ever overwrites a field with a
non-empty value.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

from selectolax.parser import HTMLParser

from ..schemas import LawyerRecord, RunStats
from .blocking import decide_block
from .candidates import pick_best_record
from .documents import extract_embedded_json, extract_json_ld_objects
from .fetchers.static import FetchError, FetchResult
from .html_cards import node_text
from .normalize import (
    DEFAULT_SOURCE_DOMAIN,
    normalize_array,
    normalize_external_website,
    normalize_text,
    normalize_url,
    parse_rating_text,
    pick_attr_value,
    pick_first,
    pick_first_list,
    to_int,
    to_number,
)
from .records import extract_from_api_json, extract_from_json_ld


DocumentFetch = Callable[[str], FetchResult]

DEFAULT_BATCH_SIZE = 5
DEFAULT_BATCH_PAUSE_S = 0.2

# Profile-page selectors (single subject per page, so no card scoping)
PROFILE_SELECTORS = {
    "meta_description": 'meta[name="description"], meta[property="og:description"]',
    "bio": '[data-testid="bio"], .lawyer-bio, .bio-text, .profile-bio, [itemprop="description"]',
    "education": '[data-testid="education"] li, .education-item, .school-item, [class*="education"] li',
    "awards": '[data-testid="awards"] li, .award-item, [class*="award"] li',
    "email_link": 'a[href^="mailto:"]',
    "email_data": '[data-email], [data-contact-email], [data-testid="email"], .email, .contact-email',
    "phone_link": 'a[href^="tel:"]',
    "phone_text": '[data-testid="phone"], .phone, .contact-phone',
    "phone_data": '[data-phone], [data-contact-phone], [data-testid="phone"]',
    "location": '[data-testid="address"], [data-testid="location"], .profile-address, .office-address, address, .address, .location',
    "rating_meta": 'meta[itemprop="ratingValue"], meta[property="ratingValue"], meta[name="rating"]',
    "rating": '[data-testid="rating"], .avvo-rating, .rating-value, [class*="rating"]',
    "review_count_meta": 'meta[itemprop="reviewCount"], meta[itemprop="ratingCount"], meta[name="reviewCount"]',
    "review_count": '[data-testid="review-count"], .review-count, [class*="review-count"], [itemprop="reviewCount"]',
    "website": '[data-testid="website"] a, a[data-website], a[data-event-label="Website"], a[aria-label*="Website"], a[href*="website"], [data-website-url], [data-url]',
    "image_meta": 'meta[property="og:image"], meta[name="twitter:image"], meta[itemprop="image"]',
    "image": '[data-testid="profile-photo"] img, .profile-photo img, .profile-header img, img[alt*="Attorney"], img[alt*="Lawyer"], img[itemprop="image"], img[class*="profile"], img[class*="avatar"]',
    "practice_area_containers": '[data-testid="practice-areas"], .practice-areas, .specialties',
}


@dataclass(frozen=True)
class ProfileDetails:
    """Field values read from one profile page. Empty means 'not found'."""
    bio: str = ""
    education: List[str] = field(default_factory=list)
    awards: List[str] = field(default_factory=list)
    reviews: List[Any] = field(default_factory=list)
    email: str = ""
    phone: str = ""
    location: str = ""
    rating: Optional[float] = None
    review_count: Optional[int] = None
    website: str = ""
    image: str = ""
    practice_areas: List[str] = field(default_factory=list)
    blocked: bool = False


BLOCKED = ProfileDetails(blocked=True)


def _attr(parser: HTMLParser, selector: str, name: str) -> str:
    node = parser.css_first(selector)
    if node is None:
        return ""
    return (node.attributes or {}).get(name) or ""


def _texts(parser: HTMLParser, selector: str) -> List[str]:
    return list(dict.fromkeys(t for t in (node_text(n) for n in parser.css(selector)) if t))


def _href_value(parser: HTMLParser, selector: str, scheme: str) -> str:
    node = parser.css_first(selector)
    if node is None:
        return ""
    href = (node.attributes or {}).get("href") or ""
    if href.lower().startswith(scheme):
        href = href[len(scheme):]
    return normalize_text(href.split("?", 1)[0]) or node_text(node)


def _count_or_none(value: int) -> Optional[int]:
    # 0 means "no count found" for integer fields
    return value or None


def collect_reviews(json_ld_objects: Sequence[Any]) -> List[Any]:
    """Review sub-objects concatenated across JSON-LD blocks (and their @graph nodes)."""
    reviews: List[Any] = []
    for data in json_ld_objects:
        nodes = data if isinstance(data, list) else [data]
        for node in nodes:
            if not isinstance(node, dict):
                continue
            for item in [node] + [g for g in normalize_array(node.get("@graph")) if isinstance(g, dict)]:
                reviews.extend(normalize_array(item.get("review") or item.get("reviews")))
    return reviews


def extract_profile_details(
    html: str,
    profile_url: str,
    *,
    include_reviews: bool = True,
    source_domain: str = DEFAULT_SOURCE_DOMAIN,
) -> ProfileDetails:
    """Merge JSON-LD > embedded JSON > HTML/meta for one profile page."""
    parser = HTMLParser(html or "")

    json_ld_profile = pick_best_record(
        extract_from_json_ld(parser, profile_url, source_domain=source_domain), profile_url
    )
    embedded_candidates: List[LawyerRecord] = []
    for payload in extract_embedded_json(parser):
        embedded_candidates.extend(
            extract_from_api_json(payload, profile_url, source_domain=source_domain, capture_object_values=True)
        )
    embedded_profile = pick_best_record(embedded_candidates, profile_url)

    sources = [p for p in (json_ld_profile, embedded_profile) if p is not None]

    def structured(name: str) -> List[Any]:
        return [getattr(p, name) for p in sources]

    sel = PROFILE_SELECTORS

    bio_from_html = node_text(parser.css_first(sel["bio"]))
    meta_description = normalize_text(_attr(parser, sel["meta_description"], "content"))

    email_from_data = normalize_text(
        pick_attr_value(parser.css_first(sel["email_data"]), ("data-email", "data-contact-email"))
        or node_text(parser.css_first(sel["email_data"]))
    )
    email_from_html = _href_value(parser, sel["email_link"], "mailto:")

    phone_from_data = normalize_text(
        pick_attr_value(parser.css_first(sel["phone_data"]), ("data-phone", "data-contact-phone"))
        or node_text(parser.css_first(sel["phone_data"]))
    )
    phone_from_html = _href_value(parser, sel["phone_link"], "tel:") or node_text(parser.css_first(sel["phone_text"]))

    location_from_html = node_text(parser.css_first(sel["location"]))

    rating_from_meta = to_number(_attr(parser, sel["rating_meta"], "content") or None)
    rating_from_html = parse_rating_text(node_text(parser.css_first(sel["rating"])))

    review_count_from_meta = _count_or_none(to_int(_attr(parser, sel["review_count_meta"], "content")))
    review_count_from_html = _count_or_none(to_int(node_text(parser.css_first(sel["review_count"]))))

    website_from_html = normalize_external_website(
        pick_attr_value(parser.css_first(sel["website"]), ("href", "data-website-url", "data-url")),
        profile_url,
        source_domain,
    )

    image_from_meta = normalize_url(_attr(parser, sel["image_meta"], "content"), profile_url)
    image_from_html = normalize_url(
        pick_attr_value(parser.css_first(sel["image"]), ("src", "data-src", "data-lazy-src")), profile_url
    )

    practice_areas_from_html: List[str] = []
    for container in parser.css(sel["practice_area_containers"]):
        for item in container.css("li, span, a"):
            text = node_text(item)
            if text:
                practice_areas_from_html.append(text)

    reviews: List[Any] = []
    if include_reviews:
        reviews = collect_reviews(extract_json_ld_objects(parser))

    return ProfileDetails(
        bio=pick_first(*structured("bio"), bio_from_html, meta_description) or "",
        education=pick_first_list(*structured("education"), _texts(parser, sel["education"])),
        awards=pick_first_list(*structured("awards"), _texts(parser, sel["awards"])),
        reviews=reviews,
        email=pick_first(*structured("email"), email_from_data, email_from_html) or "",
        phone=pick_first(*structured("phone"), phone_from_data, phone_from_html) or "",
        location=pick_first(*structured("location"), location_from_html) or "",
        rating=pick_first(*structured("rating"), rating_from_meta, rating_from_html),
        review_count=pick_first(
            *(_count_or_none(c) for c in structured("review_count")),
            review_count_from_meta,
            review_count_from_html,
        ),
        website=pick_first(*structured("website"), website_from_html) or "",
        image=pick_first(*structured("image"), image_from_meta, image_from_html) or "",
        practice_areas=pick_first_list(*structured("practice_areas"), list(dict.fromkeys(practice_areas_from_html))),
    )


def fetch_profile(
    profile_url: str,
    fetch: DocumentFetch,
    *,
    include_reviews: bool = True,
    source_domain: str = DEFAULT_SOURCE_DOMAIN,
) -> Optional[ProfileDetails]:
    """Fetch and read one profile page.

    Returns BLOCKED on an anti-bot block, None for any other non-200 page.
    FetchError from ``fetch`` propagates to the caller.
    """
    result = fetch(profile_url)
    if result.blocked or decide_block(result.status_code, result.html).blocked:
        return BLOCKED
    if result.status_code != 200 or not result.html:
        return None
    return extract_profile_details(
        result.html, profile_url, include_reviews=include_reviews, source_domain=source_domain
    )


def merge_profile(record: LawyerRecord, details: Optional[ProfileDetails]) -> LawyerRecord:
    """New record with every non-empty profile value applied; ``record`` is not modified."""
    if details is None or details.blocked:
        return record
    update: dict[str, Any] = {}
    for name in ("bio", "email", "phone", "location", "website", "image"):
        value = getattr(details, name)
        if value:
            update[name] = value
    for name in ("education", "awards", "reviews", "practice_areas"):
        value = getattr(details, name)
        if value:
            update[name] = list(value)
    if details.rating is not None:
        update["rating"] = details.rating
    if details.review_count:
        update["review_count"] = details.review_count
    if not update:
        return record
    return record.model_copy(update=update)


class ProfileEnricher:
    """Batch profile enrichment.

    ``batch_size`` profile fetches run concurrently; the whole batch is
    awaited before the next one starts, with ``pause_s`` in between.
    """

    def __init__(
        self,
        fetch: DocumentFetch,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        pause_s: float = DEFAULT_BATCH_PAUSE_S,
        include_reviews: bool = True,
        source_domain: str = DEFAULT_SOURCE_DOMAIN,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.fetch = fetch
        self.batch_size = int(batch_size)
        self.pause_s = float(pause_s)
        self.include_reviews = bool(include_reviews)
        self.source_domain = source_domain
        self._sleep = sleep

    def enrich_one(self, record: LawyerRecord) -> Tuple[LawyerRecord, str]:
        """Enrich a single record; returns (record, outcome).

        Outcomes: "enriched", "blocked", "skipped" (no profile URL or non-200),
        "failed" (FetchError after retries; listing data kept).
        """
        if not record.profile_url:
            return record, "skipped"
        try:
            details = fetch_profile(
                record.profile_url,
                self.fetch,
                include_reviews=self.include_reviews,
                source_domain=self.source_domain,
            )
        except FetchError as e:
            print(f"  ⚠️  Profile fetch failed, keeping listing data: {e}")
            return record, "failed"
        if details is None:
            return record, "skipped"
        if details.blocked:
            return record, "blocked"
        return merge_profile(record, details), "enriched"

    def enrich(self, records: Sequence[LawyerRecord], stats: Optional[RunStats] = None) -> List[LawyerRecord]:
        if not records:
            return []
        enriched: List[LawyerRecord] = []
        blocked = 0
        with ThreadPoolExecutor(max_workers=self.batch_size) as pool:
            for start in range(0, len(records), self.batch_size):
                batch = records[start:start + self.batch_size]
                results = list(pool.map(self.enrich_one, batch))
                for record, outcome in results:
                    enriched.append(record)
                    if outcome == "blocked":
                        blocked += 1
                if start + self.batch_size < len(records) and self.pause_s > 0:
                    self._sleep(self.pause_s)
        if stats is not None:
            stats.profile_enrichments += len(enriched)
            stats.blocked_requests += blocked
        if blocked:
            print(f"⚠️  {blocked} profile pages were blocked - using listing data only.")
        return enriched
