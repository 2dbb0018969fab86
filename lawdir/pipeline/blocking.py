from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional


BLOCK_STATUS_CODES = frozenset({403, 429, 503})

# Only the head of the document is inspected
BLOCK_SNIPPET_CHARS = 5000

ANTI_BOT_MARKERS = [
    r"Just a moment",
    r"cf-browser-verification",
    r"Checking your browser",
    r"Cloudflare",
    r"__cf_chl_",  # Cloudflare challenge scripts
    r"Enable JavaScript and cookies to continue",
]

_ANTI_BOT_RES = [re.compile(p) for p in ANTI_BOT_MARKERS]


@dataclass(frozen=True)
class BlockDecision:
    blocked: bool
    reasons: List[str]


def detect_anti_bot(html: str | None) -> bool:
    if not html:
        return False
    snippet = html[:BLOCK_SNIPPET_CHARS]
    return any(rx.search(snippet) for rx in _ANTI_BOT_RES)


def is_block_status(status_code: Optional[int]) -> bool:
    return status_code in BLOCK_STATUS_CODES


def decide_block(status_code: Optional[int], html: str | None) -> BlockDecision:
    reasons: List[str] = []
    if is_block_status(status_code):
        reasons.append(f"status={status_code}")
    if detect_anti_bot(html):
        reasons.append("anti-bot markers detected")
    return BlockDecision(blocked=len(reasons) > 0, reasons=reasons)
