"""
Field normalizers - raw scalar/list/object values to canonical field forms.

All helpers are total: malformed input yields the field's empty value
('' for text and URLs, [] for lists, None for decimals, 0 for integers).
"""

from __future__ import annotations

import math
import re
from typing import Any, Iterable, List, Optional
from urllib.parse import urljoin, urlparse

from selectolax.parser import Node


DEFAULT_SOURCE_DOMAIN = "avvo.com"

_WS_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[^>]+>")
_NUMBER_STRIP_RE = re.compile(r"[^\d.]")
_INT_STRIP_RE = re.compile(r"[^\d]")
_FIRST_NUMBER_RE = re.compile(r"(\d+\.?\d*)")

# Keys checked, in order, when an image is given as an object
IMAGE_OBJECT_KEYS = ("url", "contentUrl", "@id", "thumbnailUrl")


def normalize_text(value: Any) -> str:
    """Collapse whitespace runs, trim, and unwrap {value|text} objects."""
    if value is None or value is False:
        return ""
    if isinstance(value, dict):
        return normalize_object_text(value)
    if isinstance(value, (list, tuple)):
        return ""
    s = str(value)
    if "<" in s and ">" in s:
        s = _TAG_RE.sub(" ", s)
    return _WS_RE.sub(" ", s).strip()


def normalize_object_text(value: Any) -> str:
    if not value or not isinstance(value, dict):
        return ""
    return normalize_text(value.get("value") or value.get("text") or "")


def normalize_url(value: Any, base_url: str) -> str:
    """Resolve ``value`` against ``base_url``; unparseable input is returned as-is."""
    if not value:
        return ""
    if not isinstance(value, str):
        return ""
    s = value.strip()
    if not s:
        return ""
    try:
        return urljoin(base_url or "", s)
    except ValueError:
        return s


def host_matches_domain(host: str, domain: str) -> bool:
    """True when ``host`` is ``domain`` or one of its subdomains."""
    h = (host or "").lower().rstrip(".")
    d = (domain or "").lower().lstrip(".")
    if not h or not d:
        return False
    return h == d or h.endswith("." + d)


def normalize_external_website(value: Any, base_url: str, source_domain: str = DEFAULT_SOURCE_DOMAIN) -> str:
    """Like :func:`normalize_url`, but links back to the source site become ''."""
    normalized = normalize_url(value, base_url)
    if not normalized:
        return ""
    try:
        host = urlparse(normalized).hostname or ""
    except ValueError:
        return normalized
    if host_matches_domain(host, source_domain):
        return ""
    return normalized


def normalize_image(value: Any, base_url: str) -> str:
    """Image from a string, the first element of a list, or an ImageObject-like dict."""
    if not value:
        return ""
    if isinstance(value, (list, tuple)):
        return normalize_image(value[0], base_url)
    if isinstance(value, str):
        return normalize_url(value, base_url)
    if isinstance(value, dict):
        for key in IMAGE_OBJECT_KEYS:
            if value.get(key):
                return normalize_url(value[key], base_url)
    return ""


def normalize_array(value: Any) -> List[Any]:
    """Lists pass through minus falsy items; CSV strings split; scalars wrap."""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [item for item in value if item]
    if isinstance(value, str):
        return [item for item in (normalize_text(part) for part in value.split(",")) if item]
    return [value]


def normalize_text_list(value: Any) -> List[str]:
    """:func:`normalize_array` with every item text-normalized.

    Empties are dropped and repeats removed after normalization, first
    occurrence kept.
    """
    out: List[str] = []
    for item in normalize_array(value):
        text = normalize_text(item)
        if not text and isinstance(item, dict):
            text = normalize_text(item.get("name"))
        if text and text not in out:
            out.append(text)
    return out


def to_number(value: Any) -> Optional[float]:
    """Decimal from a number, or from text with every non-numeric character stripped.

    Stripping joins all digits, so prose such as '4.8 out of 5' must go
    through :func:`parse_rating_text` instead.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        return to_number(pick_first(value.get("ratingValue"), value.get("value")))
    if isinstance(value, (int, float)):
        num = float(value)
    else:
        cleaned = _NUMBER_STRIP_RE.sub("", str(value))
        try:
            num = float(cleaned)
        except ValueError:
            return None
    return num if math.isfinite(num) else None


def parse_rating_text(text: Any) -> Optional[float]:
    """First decimal number in free text ('4.8 out of 5' -> 4.8)."""
    m = _FIRST_NUMBER_RE.search(normalize_text(text))
    if not m:
        return None
    return to_number(m.group(1))


def to_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, int):
        return value
    digits = _INT_STRIP_RE.sub("", str(value))
    if not digits:
        return 0
    try:
        return int(digits)
    except ValueError:
        # digit runs past the interpreter's int-conversion limit
        return 0


def pick_first(*values: Any) -> Any:
    """First value that is not None and not ''; None when all are empty."""
    for value in values:
        if value is not None and value != "":
            return value
    return None


def pick_first_list(*values: Iterable[Any]) -> List[Any]:
    """First non-empty list among ``values``; [] when none."""
    for value in values:
        if value:
            return list(value)
    return []


def pick_attr_value(node: Optional[Node], attrs: Iterable[str]) -> str:
    if node is None:
        return ""
    node_attrs = node.attributes or {}
    for attr in attrs:
        value = node_attrs.get(attr)
        if value:
            return value
    return ""
