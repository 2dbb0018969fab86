from __future__ import annotations

import random
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Deque, Iterable, List, Optional, Set, Tuple

from selectolax.parser import HTMLParser

from ..ops_logger import OpsLogger
from ..schemas import ExtractionStrategy, LawyerRecord, RunStats
from .discovery import (
    extract_api_urls,
    next_page_from_api,
    next_page_from_html,
    sitemap_profile_urls,
    sitemap_urls,
)
from .documents import extract_embedded_json
from .enrichment import ProfileEnricher
from .fetchers.static import BlockedError, FetchError, StaticFetcher
from .html_cards import extract_from_html
from .normalize import DEFAULT_SOURCE_DOMAIN
from .records import extract_from_api_json, extract_from_json_ld


class RequestLabel(str, Enum):
    LISTING = "LISTING"
    API = "API"
    PROFILE = "PROFILE"


@dataclass(frozen=True)
class CrawlRequest:
    url: str
    label: RequestLabel = RequestLabel.LISTING


@dataclass
class PageResult:
    """Outcome of processing one queued request."""
    url: str
    label: RequestLabel
    success: bool
    status_code: int = 0
    strategy: Optional[ExtractionStrategy] = None
    records: int = 0
    accepted: int = 0
    blocked: bool = False
    error: Optional[str] = None
    queued: List[str] = field(default_factory=list)


def extract_listing(
    html: str | HTMLParser,
    base_url: str,
    stats: RunStats,
    *,
    use_html_fallback: bool = True,
    source_domain: str = DEFAULT_SOURCE_DOMAIN,
) -> Tuple[List[LawyerRecord], Optional[ExtractionStrategy]]:
    """Records from one listing page: embedded JSON, then JSON-LD, then HTML cards.

    The first strategy yielding at least one record wins. A page yielding
    nothing counts as a zero-extraction page.
    """
    parser = html if isinstance(html, HTMLParser) else HTMLParser(html or "")

    records: List[LawyerRecord] = []
    for payload in extract_embedded_json(parser):
        records.extend(extract_from_api_json(payload, base_url, source_domain=source_domain))
    if records:
        stats.record_strategy(ExtractionStrategy.EMBEDDED_JSON, len(records))
        return records, ExtractionStrategy.EMBEDDED_JSON

    records = extract_from_json_ld(parser, base_url, source_domain=source_domain)
    if records:
        stats.record_strategy(ExtractionStrategy.JSON_LD, len(records))
        return records, ExtractionStrategy.JSON_LD

    if use_html_fallback:
        records = extract_from_html(parser, base_url, source_domain=source_domain)
        if records:
            stats.record_strategy(ExtractionStrategy.HTML, len(records))
            return records, ExtractionStrategy.HTML

    stats.zero_extraction_pages += 1
    return [], None


class RecordHandler:
    """Dedupe, budget, enrich and hand records to the sink.

    ``seen_profile_urls`` is owned by the caller so several handlers (or
    resumed runs) can share one identity set. Records without a profile URL
    are never deduplicated.
    """

    def __init__(
        self,
        sink: Callable[[LawyerRecord], Any],
        stats: RunStats,
        *,
        max_records: int = 0,
        enricher: Optional[ProfileEnricher] = None,
        seen_profile_urls: Optional[Set[str]] = None,
    ) -> None:
        self.sink = sink
        self.stats = stats
        self.max_records = max(0, int(max_records))
        self.enricher = enricher
        self.seen_profile_urls = seen_profile_urls if seen_profile_urls is not None else set()

    @property
    def remaining(self) -> Optional[int]:
        """Records still allowed; None when unlimited."""
        if not self.max_records:
            return None
        return max(0, self.max_records - self.stats.total_records)

    @property
    def done(self) -> bool:
        return self.remaining == 0

    def handle(self, records: Iterable[LawyerRecord], *, enrich: bool = True) -> List[LawyerRecord]:
        fresh: List[LawyerRecord] = []
        for record in records:
            if record.profile_url:
                if record.profile_url in self.seen_profile_urls:
                    continue
                self.seen_profile_urls.add(record.profile_url)
            fresh.append(record)

        remaining = self.remaining
        if remaining is not None:
            fresh = fresh[:remaining]
        if not fresh:
            return []

        if enrich and self.enricher is not None:
            fresh = self.enricher.enrich(fresh, self.stats)

        for record in fresh:
            self.sink(record)
        self.stats.total_records += len(fresh)
        return fresh


class CrawlPipeline:
    """Request-queue crawl over listing pages, API payloads and profile pages.

    - LISTING: discovered API URLs go to the front of the queue, then the
      embedded JSON > JSON-LD > HTML cascade, then the next page
    - API: candidates from the JSON payload, then the next API page
    - PROFILE: a bare record for the URL, filled in by profile enrichment
    - Polite random delay between requests; stops at the record budget,
      the page cap, or an empty queue
    - Optional HTML dumps of blocked and zero-result listing pages
    """

    def __init__(
        self,
        fetcher: StaticFetcher,
        handler: RecordHandler,
        stats: RunStats,
        *,
        profile_enricher: Optional[ProfileEnricher] = None,
        source_domain: str = DEFAULT_SOURCE_DOMAIN,
        max_pages: int = 1000,
        use_api_first: bool = True,
        use_html_fallback: bool = True,
        min_delay_ms: int = 250,
        max_delay_ms: int = 1000,
        ops_logger: Optional[OpsLogger] = None,
        debug_html_dir: Optional[Path] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.fetcher = fetcher
        self.handler = handler
        self.stats = stats
        self.profile_enricher = profile_enricher
        self.source_domain = source_domain
        self.max_pages = int(max_pages)
        self.use_api_first = bool(use_api_first)
        self.use_html_fallback = bool(use_html_fallback)
        self.min_delay_ms = int(min_delay_ms)
        self.max_delay_ms = max(int(max_delay_ms), self.min_delay_ms)
        self.ops_logger = ops_logger
        self.debug_html_dir = Path(debug_html_dir) if debug_html_dir else None
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.queue: Deque[CrawlRequest] = deque()
        self._queued_urls: Set[str] = set()
        self.requests_handled = 0

    def enqueue(self, url: str, label: RequestLabel = RequestLabel.LISTING, *, front: bool = False) -> bool:
        """Queue ``url`` once per run; returns False for an already-seen URL."""
        if not url or url in self._queued_urls:
            return False
        self._queued_urls.add(url)
        request = CrawlRequest(url=url, label=RequestLabel(label))
        if front:
            self.queue.appendleft(request)
        else:
            self.queue.append(request)
        return True

    def seed_from_sitemaps(self, base_url: str, limit: int = 0) -> int:
        """Queue profile URLs listed in the site's sitemaps; returns the count queued.

        At most ``limit`` URLs (first seen first) are taken; 0 means no cap.
        """
        found: List[str] = []
        for sitemap_url in sitemap_urls(base_url):
            try:
                text = self.fetcher.fetch_text(sitemap_url)
            except FetchError as e:
                print(f"⚠️  Sitemap unavailable: {e}")
                continue
            for url in sitemap_profile_urls(text or ""):
                if url not in found:
                    found.append(url)
        if limit > 0:
            found = found[:limit]
        queued = 0
        for url in found:
            if self.enqueue(url, RequestLabel.PROFILE):
                queued += 1
        print(f"🗺️  Sitemaps: {queued} profile URLs queued")
        return queued

    def save_debug_html(self, kind: str, html: Optional[str], url: str) -> Optional[Path]:
        """Write ``html`` to DEBUG_<kind>_<pages processed>.html when debug dumps are on."""
        if self.debug_html_dir is None or not html:
            return None
        path = self.debug_html_dir / f"DEBUG_{kind}_{self.stats.pages_processed}.html"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(html, encoding="utf-8")
        except OSError as e:
            print(f"⚠️  Could not save debug HTML for {url}: {e}")
            return None
        print(f"🐞 Saved debug HTML for {url} to {path}")
        return path

    def _polite_delay(self) -> None:
        if self.max_delay_ms <= 0:
            return
        delay_ms = self._rng.uniform(self.min_delay_ms, self.max_delay_ms)
        self._sleep(delay_ms / 1000.0)

    def run(self) -> RunStats:
        while self.queue:
            if self.handler.done:
                print("🛑 Record budget reached")
                break
            if self.requests_handled >= self.max_pages:
                print("🛑 Page cap reached")
                break
            request = self.queue.popleft()
            if self.requests_handled:
                self._polite_delay()
            self.requests_handled += 1
            self.process(request)
        return self.stats

    def process(self, request: CrawlRequest) -> PageResult:
        t0 = time.perf_counter()
        try:
            if request.label == RequestLabel.API:
                result = self._process_api(request.url)
            elif request.label == RequestLabel.PROFILE:
                result = self._process_profile(request.url)
            else:
                result = self._process_listing(request.url)
        except FetchError as e:
            print(f"❌ {request.label.value} {request.url}: {e}")
            result = PageResult(
                url=request.url,
                label=request.label,
                success=False,
                status_code=e.status_code or 0,
                error=str(e),
            )
        self._emit_ops(result, time.perf_counter() - t0)
        return result

    def _emit_ops(self, result: PageResult, total_s: float) -> None:
        if self.ops_logger is None:
            return
        self.ops_logger.emit({
            "url": result.url,
            "label": result.label.value,
            "success": result.success,
            "status_code": result.status_code,
            "strategy": result.strategy.value if result.strategy else None,
            "counts": {"records": result.records, "accepted": result.accepted, "queued": len(result.queued)},
            "blocked": result.blocked,
            "error": result.error,
            "durations": {"total_s": round(max(0.0, total_s), 4)},
        })

    def _process_listing(self, url: str) -> PageResult:
        fetched = self.fetcher.fetch(url)
        if fetched.blocked:
            self.stats.blocked_requests += 1
            print(f"🚫 Blocked listing page: {url}")
            self.save_debug_html("BLOCKED", fetched.html, url)
            return PageResult(url=url, label=RequestLabel.LISTING, success=False,
                              status_code=fetched.status_code, blocked=True, error="blocked")
        if fetched.blocked_by_robots:
            return PageResult(url=url, label=RequestLabel.LISTING, success=False, error="Blocked by robots.txt")
        if fetched.status_code >= 400 or not fetched.html:
            return PageResult(url=url, label=RequestLabel.LISTING, success=False,
                              status_code=fetched.status_code, error=f"HTTP {fetched.status_code}")

        self.stats.pages_processed += 1
        page_url = fetched.url or url
        parser = HTMLParser(fetched.html)
        queued: List[str] = []

        if self.use_api_first:
            # Reversed so the page's first API URL ends up at the head of the queue
            for api_url in reversed(extract_api_urls(fetched.html, page_url)):
                if self.enqueue(api_url, RequestLabel.API, front=True):
                    queued.append(api_url)

        records, strategy = extract_listing(
            parser,
            page_url,
            self.stats,
            use_html_fallback=self.use_html_fallback,
            source_domain=self.source_domain,
        )
        if not records:
            self.save_debug_html("NO_RESULTS", fetched.html, url)
        accepted = self.handler.handle(records)
        print(f"📄 {page_url}: {len(records)} lawyers via {strategy.value if strategy else 'none'}, {len(accepted)} new")

        next_url = next_page_from_html(parser, page_url)
        if next_url and self.enqueue(next_url, RequestLabel.LISTING):
            queued.append(next_url)

        return PageResult(url=url, label=RequestLabel.LISTING, success=True, status_code=fetched.status_code,
                          strategy=strategy, records=len(records), accepted=len(accepted), queued=queued)

    def _process_api(self, url: str) -> PageResult:
        try:
            payload = self.fetcher.fetch_json(url)
        except BlockedError as e:
            self.stats.blocked_requests += 1
            print(f"🚫 Blocked API request: {url}")
            return PageResult(url=url, label=RequestLabel.API, success=False,
                              status_code=e.status_code or 0, blocked=True, error="blocked")

        self.stats.pages_processed += 1
        records = extract_from_api_json(payload, url, source_domain=self.source_domain)
        strategy: Optional[ExtractionStrategy] = None
        if records:
            strategy = ExtractionStrategy.API
            self.stats.record_strategy(strategy, len(records))
        else:
            self.stats.zero_extraction_pages += 1
        accepted = self.handler.handle(records)
        print(f"🔌 API {url}: {len(records)} lawyers, {len(accepted)} new")

        queued: List[str] = []
        next_url = next_page_from_api(payload, url)
        if next_url and self.enqueue(next_url, RequestLabel.API):
            queued.append(next_url)

        return PageResult(url=url, label=RequestLabel.API, success=True, status_code=200,
                          strategy=strategy, records=len(records), accepted=len(accepted), queued=queued)

    def _process_profile(self, url: str) -> PageResult:
        records = [LawyerRecord(name="", profile_url=url)]
        if self.profile_enricher is not None:
            records = self.profile_enricher.enrich(records, self.stats)
        accepted = self.handler.handle(records, enrich=False)
        return PageResult(url=url, label=RequestLabel.PROFILE, success=True,
                          records=len(records), accepted=len(accepted))
