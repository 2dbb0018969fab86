"""
Candidate discovery in schema-less JSON, and best-candidate selection.

A candidate is any dict that carries a name-like key AND either a
profile-link key or a domain-hint key. The walk is depth-bounded; a
qualifying list element is captured whole and not descended into.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..schemas import LawyerRecord
from .normalize import normalize_url


MAX_DEPTH = 7

NAME_KEYS = ("name", "fullName", "displayName", "title")
PROFILE_LINK_KEYS = ("profileUrl", "profile_url", "url", "link")
HINT_KEYS = ("practiceAreas", "specialties", "avvoRating", "rating", "location")

# Additive selection score
SCORE_PROFILE_URL_MATCH = 5
SCORE_WEIGHTS = {
    "email": 2,
    "phone": 2,
    "location": 2,
    "rating": 2,
    "website": 1,
    "image": 1,
    "bio": 1,
    "practice_areas": 1,
}


def _has_any(obj: Dict[str, Any], keys: Iterable[str]) -> bool:
    return any(bool(obj.get(k)) for k in keys)


def is_lawyer_candidate(
    obj: Any,
    *,
    name_keys: Sequence[str] = NAME_KEYS,
    link_keys: Sequence[str] = PROFILE_LINK_KEYS,
    hint_keys: Sequence[str] = HINT_KEYS,
) -> bool:
    if not isinstance(obj, dict):
        return False
    if not _has_any(obj, name_keys):
        return False
    return _has_any(obj, link_keys) or _has_any(obj, hint_keys)


def collect_candidates(
    source: Any,
    max_depth: int = MAX_DEPTH,
    *,
    capture_object_values: bool = False,
) -> List[Dict[str, Any]]:
    """Flat list of candidate dicts found in ``source`` (up to ``max_depth``).

    By default only list elements are captured, which keeps page metadata
    objects (``{"title": ..., "url": ...}``) out of listing results. Single
    profile pages nest the subject under plain keys, so enrichment passes
    ``capture_object_values=True`` and lets :func:`pick_best_record` choose.
    """
    candidates: List[Dict[str, Any]] = []
    _collect(source, candidates, 0, max_depth, capture_object_values)
    return candidates


def _collect(source: Any, out: List[Dict[str, Any]], depth: int, max_depth: int, capture_values: bool) -> None:
    if not source or depth > max_depth:
        return
    if isinstance(source, list):
        for item in source:
            if isinstance(item, dict) and is_lawyer_candidate(item):
                out.append(item)
            else:
                _collect(item, out, depth + 1, max_depth, capture_values)
        return
    if isinstance(source, dict):
        for value in source.values():
            if capture_values and is_lawyer_candidate(value):
                out.append(value)
            else:
                _collect(value, out, depth + 1, max_depth, capture_values)


def _comparable_url(url: str, page_url: str) -> str:
    return normalize_url(url, page_url).rstrip("/")


def score_record(record: LawyerRecord, page_url: str) -> int:
    score = 0
    if record.profile_url and page_url:
        if _comparable_url(record.profile_url, page_url) == _comparable_url(page_url, page_url):
            score += SCORE_PROFILE_URL_MATCH
    for field, weight in SCORE_WEIGHTS.items():
        value = getattr(record, field)
        if value:
            score += weight
    return score


def pick_best_record(records: Sequence[LawyerRecord], page_url: str) -> Optional[LawyerRecord]:
    """Highest-scoring record; the earliest wins ties. None for an empty input."""
    best: Optional[LawyerRecord] = None
    best_score = -1
    for record in records:
        score = score_record(record, page_url)
        if score > best_score:
            best, best_score = record, score
    return best
