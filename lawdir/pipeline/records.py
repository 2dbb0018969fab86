"""
Record normalizer - raw candidate dicts to canonical LawyerRecord.

Each canonical field resolves through an ordered list of raw keys; the
first defined value wins (see ``FIELD_KEYS``). The same normalizer serves
JSON-LD nodes, embedded-state candidates and API payload candidates.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import urlparse

from ..schemas import LawyerRecord
from .candidates import collect_candidates
from .documents import extract_json_ld_objects
from .normalize import (
    DEFAULT_SOURCE_DOMAIN,
    host_matches_domain,
    normalize_array,
    normalize_external_website,
    normalize_image,
    normalize_text,
    normalize_text_list,
    normalize_url,
    pick_first,
    to_int,
    to_number,
)


# Raw keys per canonical field, highest priority first
FIELD_KEYS: Dict[str, tuple] = {
    "name": ("name", "fullName", "displayName", "title"),
    "profile_url": ("profileUrl", "profile_url", "url", "link"),
    "rating": ("rating", "avvoRating", "avvo_rating", "ratingValue"),
    "review_count": ("reviewCount", "review_count"),
    "practice_areas": ("practiceAreas", "practice_areas", "specialties", "practiceArea", "tags", "knowsAbout", "areaServed"),
    "phone": ("phone", "phoneNumber", "telephone"),
    "email": ("email",),
    "website": ("website", "websiteUrl"),
    "image": ("image", "photo", "logo", "profilePhoto", "avatar", "photoUrl", "imageUrl"),
    "years_licensed": ("yearsLicensed", "yearAdmitted"),
    "languages": ("languages", "language"),
    "bio": ("bio", "biography", "summary", "about", "description"),
}

ADDRESS_PARTS = ("addressLocality", "addressRegion", "postalCode")
LOCATION_FALLBACK_KEYS = ("location", "city", "state", "region", "postalCode", "zip")

JSON_LD_LAWYER_TYPES = frozenset({"Attorney", "Person", "LegalService"})


def _pick(raw: Dict[str, Any], field: str) -> Any:
    return pick_first(*(raw.get(key) for key in FIELD_KEYS[field]))


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def build_location(raw: Dict[str, Any]) -> str:
    address = raw.get("address")
    if isinstance(address, list):
        address = next((a for a in address if a), None)
    if isinstance(address, str):
        return normalize_text(address)
    if isinstance(address, dict):
        parts = [normalize_text(address.get(k)) for k in ADDRESS_PARTS]
        return normalize_text(", ".join(p for p in parts if p))
    parts = [normalize_text(raw.get(k)) for k in LOCATION_FALLBACK_KEYS]
    return normalize_text(", ".join(p for p in parts if p))


def _contact_points(raw: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [item for item in normalize_array(raw.get("contactPoint")) if isinstance(item, dict)]


def _external_same_as(raw: Dict[str, Any], source_domain: str) -> Optional[str]:
    for item in normalize_array(raw.get("sameAs")):
        if not isinstance(item, str):
            continue
        try:
            host = urlparse(item).hostname or ""
        except ValueError:
            host = ""
        if host_matches_domain(host, source_domain) or source_domain in item:
            continue
        return item
    return None


def _aggregate_rating(raw: Dict[str, Any]) -> Dict[str, Any]:
    return _as_dict(raw.get("aggregateRating"))


def _review_list_length(raw: Dict[str, Any]) -> Optional[int]:
    reviews = raw.get("reviews")
    if isinstance(reviews, list):
        return len(reviews)
    return None


def normalize_record(
    raw: Any,
    base_url: str,
    *,
    source_domain: str = DEFAULT_SOURCE_DOMAIN,
    scraped_at: Optional[datetime] = None,
) -> Optional[LawyerRecord]:
    """Map one raw candidate dict onto a LawyerRecord (None for non-dicts)."""
    if not raw or not isinstance(raw, dict):
        return None

    aggregate = _aggregate_rating(raw)
    contact_points = _contact_points(raw)
    contact_email = next((cp.get("email") for cp in contact_points if cp.get("email")), None)
    contact_phone = next(
        (cp.get("telephone") or cp.get("phone") for cp in contact_points if cp.get("telephone") or cp.get("phone")),
        None,
    )
    contact_info = _as_dict(raw.get("contactInfo") or raw.get("contact"))
    contact_website = contact_info.get("website") or contact_info.get("url") or contact_info.get("site")

    rating = to_number(pick_first(_pick(raw, "rating"), aggregate.get("ratingValue")))
    review_count = to_int(pick_first(
        _pick(raw, "review_count"),
        _review_list_length(raw),
        aggregate.get("reviewCount"),
        aggregate.get("ratingCount"),
    ))

    return LawyerRecord(
        name=normalize_text(_pick(raw, "name")),
        rating=rating,
        review_count=review_count,
        practice_areas=normalize_text_list(_pick(raw, "practice_areas")),
        location=build_location(raw),
        phone=normalize_text(pick_first(_pick(raw, "phone"), contact_phone, contact_info.get("phone"))),
        email=normalize_text(pick_first(_pick(raw, "email"), contact_email, contact_info.get("email"))),
        website=normalize_external_website(
            pick_first(_pick(raw, "website"), contact_website, _external_same_as(raw, source_domain)),
            base_url,
            source_domain,
        ),
        years_licensed=to_int(_pick(raw, "years_licensed")),
        bar_admissions=normalize_text_list(raw.get("barAdmissions")),
        languages=normalize_text_list(_pick(raw, "languages")),
        profile_url=normalize_url(_pick(raw, "profile_url"), base_url),
        bio=normalize_text(_pick(raw, "bio")),
        education=normalize_text_list(raw.get("education")),
        awards=normalize_text_list(raw.get("awards")),
        reviews=normalize_array(raw.get("reviews")),
        image=normalize_image(_pick(raw, "image"), base_url),
        scraped_at=scraped_at or datetime.now(timezone.utc),
    )


def _type_matches(node: Dict[str, Any]) -> bool:
    node_type = node.get("@type")
    if isinstance(node_type, list):
        return any(t in JSON_LD_LAWYER_TYPES for t in node_type)
    return node_type in JSON_LD_LAWYER_TYPES


def iter_json_ld_lawyer_nodes(data: Any) -> Iterator[Dict[str, Any]]:
    """Yield lawyer-typed nodes from a JSON-LD value, unwrapping @graph and ItemList."""
    if not data:
        return
    if isinstance(data, list):
        for item in data:
            yield from iter_json_ld_lawyer_nodes(item)
        return
    if not isinstance(data, dict):
        return
    if data.get("@graph"):
        yield from iter_json_ld_lawyer_nodes(data["@graph"])
        return
    if data.get("@type") == "ItemList" and data.get("itemListElement"):
        for element in normalize_array(data["itemListElement"]):
            if isinstance(element, dict):
                yield from iter_json_ld_lawyer_nodes(element.get("item") or element)
        return
    if _type_matches(data):
        yield data


def extract_from_json_ld(
    html: Any,
    base_url: str,
    *,
    source_domain: str = DEFAULT_SOURCE_DOMAIN,
) -> List[LawyerRecord]:
    """Lawyer records from every JSON-LD block of an HTML document."""
    records: List[LawyerRecord] = []
    for data in extract_json_ld_objects(html):
        for node in iter_json_ld_lawyer_nodes(data):
            record = normalize_record(node, base_url, source_domain=source_domain)
            if record is not None:
                records.append(record)
    return records


def extract_from_api_json(
    payload: Any,
    base_url: str,
    *,
    source_domain: str = DEFAULT_SOURCE_DOMAIN,
    capture_object_values: bool = False,
) -> List[LawyerRecord]:
    """Lawyer records from an arbitrary JSON payload (API response or embedded state)."""
    records: List[LawyerRecord] = []
    for candidate in collect_candidates(payload, capture_object_values=capture_object_values):
        record = normalize_record(candidate, base_url, source_domain=source_domain)
        if record is not None:
            records.append(record)
    return records
