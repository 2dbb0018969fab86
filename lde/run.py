"""
Legal Directory Extractor - CLI Runner

Usage:
  python -m lde.run \
    --config config/example.yaml \
    --start-url https://www.avvo.com/bankruptcy-debt-lawyer/al.html \
    --out ./out

  python -m lde.run --practice-area "family law" --state CA --city "San Diego" --out ./out

Dry run (validate only):
  python -m lde.run --config config/example.yaml --out ./out --dry-run

Exit codes:
  0 - success
  1 - config error (file missing, invalid YAML, invalid run settings)
  2 - input error (input file missing)
  3 - processing error (nothing extracted, export failure)
"""
from __future__ import annotations

import argparse
import os
import sqlite3
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import yaml

from lawdir.db.sqlite_exporter import export_records_to_sqlite
from lawdir.ops_logger import OpsLogger, python_version
from lawdir.pipeline.discovery import DEFAULT_BASE_URL, build_start_urls
from lawdir.pipeline.enrichment import ProfileEnricher
from lawdir.pipeline.export import RecordExporter
from lawdir.pipeline.fetchers.static import StaticFetcher
from lawdir.pipeline.ingest import CrawlPipeline, RecordHandler, RequestLabel
from lawdir.pipeline.normalize import DEFAULT_SOURCE_DOMAIN, normalize_url
from lawdir.schemas import LawyerRecord, RunStats


MAX_RECORDS_LIMIT = 10000


class ConfigError(ValueError):
    """Invalid run configuration (exit code 1)."""


@dataclass
class RunConfig:
    start_urls: List[str] = field(default_factory=list)
    practice_area: str = ""
    state: str = ""
    city: str = ""
    api_endpoint: str = ""
    max_records: int = 50
    max_pages: int = 1000
    use_api_first: bool = True
    use_html_fallback: bool = True
    use_sitemaps: bool = False
    debug_html: bool = False
    min_delay_ms: int = 250
    max_delay_ms: int = 1000
    include_contact_info: bool = True
    include_reviews: bool = True
    batch_size: int = 5
    batch_pause_ms: int = 200
    source_domain: str = DEFAULT_SOURCE_DOMAIN
    base_url: str = DEFAULT_BASE_URL
    fetch_timeout_s: float = 20.0
    max_retries: int = 3
    ops_json: bool = False

    @property
    def enrich(self) -> bool:
        return self.include_contact_info or self.include_reviews


def validate_input(input_path: Path) -> None:
    if not input_path.exists() or not input_path.is_file():
        print(f"Input error: file not found: {input_path}", file=sys.stderr)
        sys.exit(2)


def validate_config(config_path: Path) -> dict:
    if not config_path.exists() or not config_path.is_file():
        print(f"Config error: file not found: {config_path}", file=sys.stderr)
        sys.exit(1)
    try:
        with config_path.open("r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        print(f"Config error: invalid YAML in {config_path}: {e}", file=sys.stderr)
        sys.exit(1)
    if not isinstance(cfg, dict):
        print(f"Config error: top level of {config_path} must be a mapping", file=sys.stderr)
        sys.exit(1)
    return cfg


def ensure_out_dir(out_dir: Path) -> None:
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        test_file = out_dir / ".write_test"
        test_file.write_text("ok", encoding="utf-8")
        test_file.unlink(missing_ok=True)
    except OSError as e:
        print(f"Output error: cannot write to {out_dir}: {e}", file=sys.stderr)
        sys.exit(3)


def read_input_urls(input_path: Path) -> List[str]:
    urls: List[str] = []
    for line in input_path.read_text(encoding="utf-8").splitlines():
        s = line.strip()
        if not s or s.startswith("#"):
            continue
        if s.startswith("http://") or s.startswith("https://"):
            urls.append(s)
        elif "." in s:
            urls.append(f"https://{s}")
    return urls


def _section(cfg: dict, name: str) -> dict:
    value = cfg.get(name) if isinstance(cfg, dict) else None
    return value if isinstance(value, dict) else {}


def _int_setting(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}")


def _float_setting(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}")


def build_run_config(cfg: dict, args: argparse.Namespace, input_urls: List[str]) -> RunConfig:
    """YAML sections first, CLI flags override; raises ConfigError for invalid settings."""
    inp = _section(cfg, "input")
    crawl = _section(cfg, "crawl")
    enrichment = _section(cfg, "enrichment")
    source = _section(cfg, "source")
    ops = _section(cfg, "ops")

    rc = RunConfig()
    rc.start_urls = list(inp.get("start_urls") or [])
    rc.practice_area = str(inp.get("practice_area") or "")
    rc.state = str(inp.get("state") or "")
    rc.city = str(inp.get("city") or "")
    rc.api_endpoint = str(inp.get("api_endpoint") or "")

    rc.max_records = _int_setting(crawl.get("max_records", rc.max_records), "crawl.max_records")
    rc.max_pages = _int_setting(crawl.get("max_pages", rc.max_pages), "crawl.max_pages")
    rc.use_api_first = bool(crawl.get("use_api_first", rc.use_api_first))
    rc.use_html_fallback = bool(crawl.get("use_html_fallback", rc.use_html_fallback))
    rc.use_sitemaps = bool(crawl.get("use_sitemaps", rc.use_sitemaps))
    rc.debug_html = bool(crawl.get("debug_html", rc.debug_html))
    rc.min_delay_ms = _int_setting(crawl.get("min_delay_ms", rc.min_delay_ms), "crawl.min_delay_ms")
    rc.max_delay_ms = _int_setting(crawl.get("max_delay_ms", rc.max_delay_ms), "crawl.max_delay_ms")

    rc.include_contact_info = bool(enrichment.get("include_contact_info", rc.include_contact_info))
    rc.include_reviews = bool(enrichment.get("include_reviews", rc.include_reviews))
    rc.batch_size = _int_setting(enrichment.get("batch_size", rc.batch_size), "enrichment.batch_size")
    rc.batch_pause_ms = _int_setting(enrichment.get("batch_pause_ms", rc.batch_pause_ms), "enrichment.batch_pause_ms")

    rc.source_domain = str(source.get("domain") or rc.source_domain)
    rc.base_url = str(source.get("base_url") or rc.base_url)

    rc.fetch_timeout_s = _float_setting(_section(ops, "timeouts").get("fetch_s", rc.fetch_timeout_s), "ops.timeouts.fetch_s")
    rc.max_retries = _int_setting(_section(ops, "retries").get("max_retries", rc.max_retries), "ops.retries.max_retries")
    rc.ops_json = bool(_section(ops, "logging").get("ops_json", False))

    # CLI overrides
    if args.start_url or input_urls:
        rc.start_urls = list(args.start_url or []) + list(input_urls)
    if args.practice_area:
        rc.practice_area = args.practice_area
    if args.state:
        rc.state = args.state
    if args.city:
        rc.city = args.city
    if args.api_endpoint:
        rc.api_endpoint = args.api_endpoint
    if args.max_records is not None:
        rc.max_records = args.max_records
    if args.no_enrich:
        rc.include_contact_info = False
        rc.include_reviews = False
    if args.no_reviews:
        rc.include_reviews = False
    if args.no_html_fallback:
        rc.use_html_fallback = False
    if args.use_sitemaps:
        rc.use_sitemaps = True
    if args.debug_html:
        rc.debug_html = True

    if not (0 <= rc.max_records <= MAX_RECORDS_LIMIT):
        raise ConfigError(f"max_records must be within [0, {MAX_RECORDS_LIMIT}], got {rc.max_records}")
    if rc.batch_size < 1:
        raise ConfigError(f"enrichment.batch_size must be >= 1, got {rc.batch_size}")
    if rc.max_pages < 1:
        raise ConfigError(f"crawl.max_pages must be >= 1, got {rc.max_pages}")
    if rc.min_delay_ms < 0 or rc.max_delay_ms < rc.min_delay_ms:
        raise ConfigError("crawl delays must satisfy 0 <= min_delay_ms <= max_delay_ms")
    if not (rc.start_urls or (rc.practice_area and rc.state) or rc.api_endpoint or rc.use_sitemaps):
        raise ConfigError("no entry point: give start URLs, practice_area + state, an api_endpoint, or enable sitemaps")
    return rc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lde.run", description="Legal directory extractor runner")
    parser.add_argument("--config", "-c", default=None, help="Path to YAML config file")
    parser.add_argument("--start-url", action="append", default=[], help="Listing URL to start from (repeatable)")
    parser.add_argument("--input", "-i", default=None, help="Path to file of start URLs (one per line)")
    parser.add_argument("--practice-area", default=None, help="Practice area slug for a search URL (with --state)")
    parser.add_argument("--state", default=None, help="State code for a search URL")
    parser.add_argument("--city", default=None, help="Optional city for a search URL")
    parser.add_argument("--api-endpoint", default=None, help="JSON endpoint to query before listing pages")
    parser.add_argument("--out", "-o", default="out", help="Output directory (default: ./out)")
    parser.add_argument("--max-records", type=int, default=None, help="Stop after N records (0 = unlimited)")
    parser.add_argument("--no-enrich", action="store_true", help="Skip profile page enrichment")
    parser.add_argument("--no-reviews", action="store_true", help="Do not collect review objects from profiles")
    parser.add_argument("--no-html-fallback", action="store_true", help="Disable the HTML card extractor")
    parser.add_argument("--use-sitemaps", action="store_true", help="Queue profile URLs listed in the site's sitemaps")
    parser.add_argument("--debug-html", action="store_true", help="Save HTML of blocked and zero-result pages to <out>/debug")
    parser.add_argument("--db", choices=["sqlite", "none"], default="none", help="DB integration: sqlite or none (default: none)")
    parser.add_argument("--db-path", default=None, help="Path to SQLite DB file (default: <out>/lawyers.sqlite)")
    parser.add_argument("--ops-log", default=None, help="Path to ops JSONL log file (default: <out>/ops.log)")
    parser.add_argument("--ops-stdout", action="store_true", help="Also mirror ops JSON to stdout")
    parser.add_argument("--dry-run", action="store_true", help="Validate inputs/config and exit")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    cfg: dict = {}
    config_path: Optional[Path] = None
    if args.config:
        config_path = Path(args.config)
        cfg = validate_config(config_path)

    input_urls: List[str] = []
    if args.input:
        input_path = Path(args.input)
        validate_input(input_path)
        input_urls = read_input_urls(input_path)

    try:
        rc = build_run_config(cfg, args, input_urls)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1

    out_dir = Path(args.out)
    ensure_out_dir(out_dir)

    start_urls = build_start_urls(
        rc.start_urls,
        practice_area=rc.practice_area,
        state=rc.state,
        city=rc.city,
        base_url=rc.base_url,
    )

    if args.dry_run:
        print("✅ Dry-run validation passed")
        print(f" - Config: {config_path or '(defaults)'}")
        print(f" - Output dir: {out_dir}")
        print(f" - Start URLs: {len(start_urls)}")
        for u in start_urls:
            print(f"     {u}")
        print(f" - Max records: {rc.max_records or 'unlimited'}")
        print(f" - Enrichment: {'on' if rc.enrich else 'off'}")
        return 0

    ops_logger: Optional[OpsLogger] = None
    if rc.ops_json or args.ops_log or args.ops_stdout or os.environ.get("LDE_OPS_JSON", "0") == "1":
        ops_log_path = Path(args.ops_log) if args.ops_log else (out_dir / "ops.log")
        ops_logger = OpsLogger(ops_log_path, also_stdout=bool(args.ops_stdout))

    print(f"Python: {python_version()}")
    print(f"Source: {rc.source_domain} | max_records={rc.max_records or 'unlimited'} | enrich={'on' if rc.enrich else 'off'}")

    stats = RunStats()
    records: List[LawyerRecord] = []
    fetcher = StaticFetcher(timeout_s=rc.fetch_timeout_s, max_retries=rc.max_retries)
    enricher = ProfileEnricher(
        fetcher.fetch_document,
        batch_size=rc.batch_size,
        pause_s=rc.batch_pause_ms / 1000.0,
        include_reviews=rc.include_reviews,
        source_domain=rc.source_domain,
    )
    handler = RecordHandler(
        records.append,
        stats,
        max_records=rc.max_records,
        enricher=enricher if rc.enrich else None,
        seen_profile_urls=set(),
    )
    pipeline = CrawlPipeline(
        fetcher,
        handler,
        stats,
        profile_enricher=enricher,
        source_domain=rc.source_domain,
        max_pages=rc.max_pages,
        use_api_first=rc.use_api_first,
        use_html_fallback=rc.use_html_fallback,
        min_delay_ms=rc.min_delay_ms,
        max_delay_ms=rc.max_delay_ms,
        ops_logger=ops_logger,
        debug_html_dir=out_dir / "debug" if rc.debug_html else None,
    )

    proc_start = time.perf_counter()
    try:
        if rc.api_endpoint:
            pipeline.enqueue(normalize_url(rc.api_endpoint, rc.base_url), RequestLabel.API, front=True)
        for url in start_urls:
            pipeline.enqueue(url, RequestLabel.LISTING)
        if rc.use_sitemaps:
            pipeline.seed_from_sitemaps(rc.base_url, limit=rc.max_records)
        pipeline.run()
    finally:
        fetcher.close()
    stats.finish()

    exporter = RecordExporter(output_dir=out_dir)
    try:
        exporter.write_statistics(stats)
        if records:
            csv_path, json_path = exporter.to_both(records, "lawyers")
            print(f"💾 CSV: {csv_path}")
            print(f"💾 JSON: {json_path}")
    except OSError as e:
        print(f"Export error: {e}", file=sys.stderr)
        return 3

    if records and args.db == "sqlite":
        db_path = args.db_path or str(out_dir / "lawyers.sqlite")
        try:
            written = export_records_to_sqlite(db_path, records)
            print(f"💽 SQLite: wrote {written} rows to {db_path}")
        except sqlite3.Error as e:
            print(f"SQLite export error: {e}", file=sys.stderr)
            return 3

    if ops_logger:
        ops_logger.emit_summary(stats, requests=pipeline.requests_handled, wall_s=time.perf_counter() - proc_start)

    print("🏁 Done.")
    print(f"   Pages processed: {stats.pages_processed}")
    print(f"   Lawyers: {stats.total_records}")
    print(
        f"   Strategies: api={stats.api_extractions} embedded={stats.embedded_json_extractions} "
        f"json_ld={stats.json_ld_extractions} html={stats.html_extractions}"
    )
    print(f"   Profile enrichments: {stats.profile_enrichments} | Blocked: {stats.blocked_requests}")
    if stats.zero_extraction_pages:
        print(f"   ⚠️  Pages with zero extraction: {stats.zero_extraction_pages}")

    if not records:
        print("No lawyers extracted from any page.", file=sys.stderr)
        return 3
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
