"""
Pull JSON payloads out of an HTML document.

- JSON-LD: every <script type="application/ld+json"> block, document order
- Embedded state: the __NEXT_DATA__ blob, generic application/json blocks,
  and inline ``window.__APOLLO_STATE__ = {...};``-style assignments

A block that fails to parse is skipped; the rest of the document is still read.
"""

from __future__ import annotations

import json
import re
from typing import Any, List, Optional

from selectolax.parser import HTMLParser


MIN_JSON_SCRIPT_LENGTH = 30

NEXT_DATA_SELECTOR = "script#__NEXT_DATA__"
JSON_LD_SELECTOR = 'script[type="application/ld+json"]'
JSON_SCRIPT_SELECTOR = 'script[type="application/json"]'

# Global variables that client apps commonly bootstrap their state into
STATE_VARIABLES = ("__APOLLO_STATE__", "__INITIAL_STATE__", "__PRELOADED_STATE__")


ASSIGNMENT_PATTERNS = {
    name: re.compile(re.escape(name) + r"\s*=\s*(?=\{)") for name in STATE_VARIABLES
}

_DECODER = json.JSONDecoder()


def _script_text(node) -> str:
    try:
        return node.text(deep=True) or ""
    except Exception:
        return ""


def _loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def _parser(html: str | HTMLParser) -> HTMLParser:
    if isinstance(html, HTMLParser):
        return html
    return HTMLParser(html or "")


def extract_json_ld_objects(html: str | HTMLParser) -> List[Any]:
    """Parsed content of every JSON-LD block, in document order."""
    parser = _parser(html)
    parsed: List[Any] = []
    for script in parser.css(JSON_LD_SELECTOR):
        text = _script_text(script).strip()
        if not text:
            continue
        data = _loads(text)
        if data is not None:
            parsed.append(data)
    return parsed


def extract_inline_state(script_text: str) -> List[Any]:
    """JSON objects assigned to known global state variables in one inline script."""
    found: List[Any] = []
    if not script_text:
        return found
    for name in STATE_VARIABLES:
        if name not in script_text:
            continue
        m = ASSIGNMENT_PATTERNS[name].search(script_text)
        if not m:
            continue
        # Decode one JSON value starting at the brace; trailing statements are ignored
        try:
            data, _ = _DECODER.raw_decode(script_text, m.end())
        except ValueError:
            continue
        found.append(data)
    return found


def extract_embedded_json(html: str | HTMLParser) -> List[Any]:
    """Embedded application-state payloads, in the order listed in the module docstring."""
    parser = _parser(html)
    extracted: List[Any] = []

    next_data = parser.css_first(NEXT_DATA_SELECTOR)
    if next_data is not None:
        data = _loads(_script_text(next_data))
        if data is not None:
            extracted.append(data)

    for script in parser.css(JSON_SCRIPT_SELECTOR):
        if (script.attributes or {}).get("id") == "__NEXT_DATA__":
            continue
        text = _script_text(script)
        if len(text) < MIN_JSON_SCRIPT_LENGTH:
            continue
        data = _loads(text)
        if data is not None:
            extracted.append(data)

    for script in parser.css("script"):
        attrs = script.attributes or {}
        if "src" in attrs:
            continue
        if attrs.get("type") in ("application/json", "application/ld+json"):
            continue
        extracted.extend(extract_inline_state(_script_text(script)))

    return extracted
