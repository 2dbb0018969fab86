from __future__ import annotations

import json

import pytest

from lawdir.pipeline.fetchers.static import FetchResult
from lde import run


def test_dry_run_with_start_url(tmp_path, capsys):
    rc = run.main(["--start-url", "https://www.avvo.com/bankruptcy-debt-lawyer/al.html", "--out", str(tmp_path), "--dry-run"])
    assert rc == 0
    out = capsys.readouterr().out
    assert "Dry-run validation passed" in out
    assert "Start URLs: 1" in out


def test_dry_run_builds_search_url(tmp_path, capsys):
    rc = run.main(["--practice-area", "family law", "--state", "CA", "--city", "San Diego",
                   "--out", str(tmp_path), "--dry-run"])
    assert rc == 0
    assert "https://www.avvo.com/family-law-lawyer/san-diego-ca.html" in capsys.readouterr().out


def test_no_entry_point_is_config_error(tmp_path):
    assert run.main(["--out", str(tmp_path), "--dry-run"]) == 1


@pytest.mark.parametrize("value", ["-1", "10001"])
def test_max_records_out_of_range(tmp_path, value):
    rc = run.main(["--start-url", "https://www.avvo.com/x.html", "--max-records", value, "--out", str(tmp_path)])
    assert rc == 1


def test_invalid_yaml_exits_1(tmp_path):
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("crawl: [unclosed", encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        run.main(["--config", str(cfg), "--out", str(tmp_path), "--dry-run"])
    assert exc.value.code == 1


def test_missing_config_exits_1(tmp_path):
    with pytest.raises(SystemExit) as exc:
        run.main(["--config", str(tmp_path / "nope.yaml"), "--out", str(tmp_path)])
    assert exc.value.code == 1


def test_missing_input_exits_2(tmp_path):
    with pytest.raises(SystemExit) as exc:
        run.main(["--input", str(tmp_path / "urls.txt"), "--out", str(tmp_path)])
    assert exc.value.code == 2


def test_config_batch_size_validated(tmp_path):
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text(
        "input:\n  start_urls: [https://www.avvo.com/x.html]\nenrichment:\n  batch_size: 0\n",
        encoding="utf-8",
    )
    assert run.main(["--config", str(cfg), "--out", str(tmp_path), "--dry-run"]) == 1


def test_cli_overrides_yaml(tmp_path):
    cfg = {
        "input": {"start_urls": ["https://www.avvo.com/a.html"]},
        "crawl": {"max_records": 5, "use_html_fallback": True},
        "enrichment": {"batch_size": 3},
        "source": {"domain": "example-directory.com"},
    }
    args = run.build_parser().parse_args(["--start-url", "https://www.avvo.com/b.html", "--max-records", "0", "--no-enrich"])
    rc = run.build_run_config(cfg, args, ["https://www.avvo.com/c.html"])
    assert rc.start_urls == ["https://www.avvo.com/b.html", "https://www.avvo.com/c.html"]
    assert rc.max_records == 0
    assert rc.enrich is False
    assert rc.batch_size == 3
    assert rc.source_domain == "example-directory.com"


def test_read_input_urls(tmp_path):
    f = tmp_path / "urls.txt"
    f.write_text("# comment\n\nhttps://www.avvo.com/a.html\nwww.avvo.com/b.html\nnot-a-url\n", encoding="utf-8")
    assert run.read_input_urls(f) == ["https://www.avvo.com/a.html", "https://www.avvo.com/b.html"]


class _FakeFetcher:
    """Serves one listing page; stands in for StaticFetcher in end-to-end runs."""

    html = (
        '<html><body><div class="lawyer-card">'
        '<h2><a href="/attorneys/jane.html">Jane Doe</a></h2>'
        '<span class="rating-value">4.8 out of 5</span>'
        "</div></body></html>"
    )

    def __init__(self, **kw):
        self.closed = False

    def fetch(self, url, *, profile=False):
        return FetchResult(url=url, status_code=200, mime="text/html", content_length=len(self.html),
                           html=self.html, headers={})

    def fetch_document(self, url):
        return self.fetch(url, profile=True)

    def fetch_json(self, url):
        return {}

    def fetch_text(self, url):
        return None

    def close(self):
        self.closed = True


class _EmptyFetcher(_FakeFetcher):
    html = "<html><body>No lawyers here</body></html>"


def test_full_run_writes_outputs(tmp_path, monkeypatch):
    monkeypatch.setattr(run, "StaticFetcher", _FakeFetcher)
    rc = run.main([
        "--start-url", "https://www.avvo.com/bankruptcy-debt-lawyer/al.html",
        "--out", str(tmp_path),
        "--no-enrich",
        "--db", "sqlite",
        "--ops-log", str(tmp_path / "ops.log"),
    ])
    assert rc == 0
    data = json.loads((tmp_path / "lawyers.json").read_text(encoding="utf-8"))
    assert data[0]["name"] == "Jane Doe"
    assert data[0]["rating"] == 4.8
    assert (tmp_path / "lawyers.csv").exists()
    assert (tmp_path / "lawyers.sqlite").exists()
    stats = json.loads((tmp_path / "statistics.json").read_text(encoding="utf-8"))
    assert stats["totalLawyersScraped"] == 1
    assert stats["htmlExtractions"] == 1

    ops_lines = [json.loads(line) for line in (tmp_path / "ops.log").read_text(encoding="utf-8").splitlines()]
    assert ops_lines[0]["label"] == "LISTING"
    assert ops_lines[-1]["summary"] is True


def test_run_with_nothing_extracted_exits_3(tmp_path, monkeypatch):
    monkeypatch.setattr(run, "StaticFetcher", _EmptyFetcher)
    rc = run.main(["--start-url", "https://www.avvo.com/x.html", "--out", str(tmp_path), "--no-enrich"])
    assert rc == 3
    stats = json.loads((tmp_path / "statistics.json").read_text(encoding="utf-8"))
    assert stats["zeroExtractionPages"] == 1


class _ApiFetcher(_FakeFetcher):
    json_calls: list = []

    def fetch_json(self, url):
        self.json_calls.append(url)
        return {"results": [{"name": "Api Lawyer", "profileUrl": "/attorneys/api.html"}]}


def test_relative_api_endpoint_resolved_against_base(tmp_path, monkeypatch):
    _ApiFetcher.json_calls = []
    monkeypatch.setattr(run, "StaticFetcher", _ApiFetcher)
    rc = run.main(["--api-endpoint", "/api/lawyers?page=1", "--out", str(tmp_path), "--no-enrich"])
    assert rc == 0
    assert _ApiFetcher.json_calls == ["https://www.avvo.com/api/lawyers?page=1"]
    data = json.loads((tmp_path / "lawyers.json").read_text(encoding="utf-8"))
    assert data[0]["profileUrl"] == "https://www.avvo.com/attorneys/api.html"


def test_debug_html_flag_dumps_empty_pages(tmp_path, monkeypatch):
    monkeypatch.setattr(run, "StaticFetcher", _EmptyFetcher)
    rc = run.main(["--start-url", "https://www.avvo.com/x.html", "--out", str(tmp_path), "--no-enrich", "--debug-html"])
    assert rc == 3
    dump = tmp_path / "debug" / "DEBUG_NO_RESULTS_1.html"
    assert dump.read_text(encoding="utf-8") == _EmptyFetcher.html
