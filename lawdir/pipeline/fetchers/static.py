from __future__ import annotations

import json
import random
import time
import typing as t
from dataclasses import dataclass
from urllib.parse import urlparse
from urllib import robotparser

import httpx

from ..blocking import decide_block, is_block_status


USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:128.0) Gecko/20100101 Firefox/128.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_6) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

PROFILE_HEADERS = {
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "same-origin",
}

BACKOFF_BASE_S = 0.5
BACKOFF_CAP_S = 5.0
BACKOFF_JITTER_S = 0.25


class FetchError(Exception):
    """Network/transport failure or unusable response after the retry cap."""

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status_code = status_code


class BlockedError(FetchError):
    """Response intercepted by anti-bot protection (403/429/503 or challenge page)."""


@dataclass(frozen=True)
class FetchResult:
    url: str
    status_code: int
    mime: str | None
    content_length: int
    html: str | None
    headers: dict[str, str]
    blocked: bool = False
    blocked_by_robots: bool = False


def backoff_delay(attempt: int, jitter: float | None = None) -> float:
    """Exponential backoff: min(0.5 * 2**attempt, 5) seconds plus up to 0.25s jitter."""
    if jitter is None:
        jitter = random.uniform(0, BACKOFF_JITTER_S)
    return min(BACKOFF_BASE_S * (2 ** attempt), BACKOFF_CAP_S) + jitter


class StaticFetcher:
    """Static HTML/JSON fetcher for listing, API and profile URLs.

    - Uses httpx for network IO; one client per fetcher
    - Picks one desktop User-Agent per fetcher (session-like)
    - Retries transport errors with exponential backoff up to ``max_retries``
    - Flags anti-bot blocks on the result instead of raising (HTML fetches)
    - Does NOT execute JavaScript
    """

    def __init__(
        self,
        *,
        timeout_s: float = 20.0,
        user_agent: str | None = None,
        max_retries: int = 3,
        respect_robots: bool = False,
        sleep: t.Callable[[float], None] = time.sleep,
    ) -> None:
        self.timeout_s = timeout_s
        self.user_agent = user_agent or random.choice(USER_AGENTS)
        self.max_retries = max(0, int(max_retries))
        self.respect_robots = respect_robots
        self._sleep = sleep
        self._robots: dict[str, robotparser.RobotFileParser | None] = {}
        self._client = httpx.Client(
            timeout=self.timeout_s,
            headers={**DEFAULT_HEADERS, "User-Agent": self.user_agent},
        )

    def close(self) -> None:
        self._client.close()

    def _robots_allows(self, url: str) -> bool:
        if not self.respect_robots:
            return True
        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        if origin not in self._robots:
            rp: robotparser.RobotFileParser | None = None
            try:
                resp = self._client.get(f"{origin}/robots.txt")
                if resp.status_code < 400:
                    rp = robotparser.RobotFileParser()
                    rp.parse(resp.text.splitlines())
            except httpx.HTTPError:
                # Unreachable robots.txt: allow
                rp = None
            self._robots[origin] = rp
        rp = self._robots[origin]
        if rp is None:
            return True
        return rp.can_fetch(self.user_agent, url) and rp.can_fetch("*", url)

    def _get(self, url: str, headers: dict[str, str] | None = None) -> httpx.Response:
        """GET with retries on transport errors; raises FetchError after the cap."""
        attempt = 0
        while True:
            try:
                return self._client.get(url, headers=headers, follow_redirects=True)
            except httpx.HTTPError as e:
                if attempt >= self.max_retries:
                    raise FetchError(url, f"transport error after {attempt + 1} attempts: {e}") from e
                self._sleep(backoff_delay(attempt))
                attempt += 1

    def fetch(self, url: str, *, profile: bool = False) -> FetchResult:
        """Fetch an HTML document. Blocks are reported via ``FetchResult.blocked``."""
        if not self._robots_allows(url):
            return FetchResult(
                url=url,
                status_code=0,
                mime=None,
                content_length=0,
                html=None,
                headers={},
                blocked_by_robots=True,
            )
        resp = self._get(url, headers=PROFILE_HEADERS if profile else None)
        mime = resp.headers.get("Content-Type")
        mime_main = None
        if mime:
            mime_main = mime.split(";")[0].strip().lower()
        html_text = resp.text if mime_main in (None, "text/html", "application/xhtml+xml") else None
        decision = decide_block(resp.status_code, html_text)
        return FetchResult(
            url=str(resp.request.url),
            status_code=resp.status_code,
            mime=mime_main,
            content_length=len(resp.content or b""),
            html=html_text,
            headers={k: v for k, v in resp.headers.items()},
            blocked=decision.blocked,
        )

    def fetch_document(self, url: str) -> FetchResult:
        """Document-fetch capability handed to profile enrichment."""
        return self.fetch(url, profile=True)

    def fetch_json(self, url: str) -> t.Any:
        """Fetch and parse a JSON payload.

        Blocks raise BlockedError at once. Transport errors, other non-2xx
        statuses and unparseable bodies are retried, then raise FetchError.
        """
        attempt = 0
        while True:
            resp = self._get(url, headers={"Accept": "application/json, text/plain, */*"})
            if is_block_status(resp.status_code):
                raise BlockedError(url, f"blocked with status {resp.status_code}", resp.status_code)
            error: str
            if 200 <= resp.status_code < 300:
                try:
                    return json.loads(resp.text)
                except ValueError as e:
                    error = f"invalid JSON: {e}"
            else:
                error = f"unexpected status {resp.status_code}"
            if attempt >= self.max_retries:
                raise FetchError(url, error, resp.status_code)
            self._sleep(backoff_delay(attempt))
            attempt += 1

    def fetch_text(self, url: str) -> str | None:
        """Plain-text fetch (sitemaps); None for non-200 responses."""
        resp = self._get(url)
        if resp.status_code != 200:
            return None
        return resp.text
