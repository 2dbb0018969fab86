from __future__ import annotations

import pytest

from lawdir.pipeline.discovery import (
    build_search_url,
    build_start_urls,
    extract_api_urls,
    next_page_from_api,
    next_page_from_html,
    sitemap_profile_urls,
    sitemap_urls,
)

BASE = "https://www.avvo.com/bankruptcy-debt-lawyer/al.html"


def test_extract_api_urls():
    html = """
    <script>
      fetch("/api/v1/lawyers?page=1");
      const u = "https://api.example.com/api/search?q=1";
      post('/graphql');
      fetch("/api/v1/lawyers?page=1");
    </script>
    """
    assert extract_api_urls(html, BASE) == [
        "https://api.example.com/api/search?q=1",
        "https://www.avvo.com/api/v1/lawyers?page=1",
        "https://www.avvo.com/graphql",
    ]


def test_extract_api_urls_none():
    assert extract_api_urls("<html><a href='/attorneys/x.html'>x</a></html>", BASE) == []
    assert extract_api_urls("", BASE) == []


def test_next_page_rel_next():
    html = '<html><head><link rel="next" href="/bankruptcy-debt-lawyer/al.html?page=2"></head></html>'
    assert next_page_from_html(html, BASE) == "https://www.avvo.com/bankruptcy-debt-lawyer/al.html?page=2"


def test_next_page_pagination_anchor_text():
    html = """
    <div class="pagination">
      <a href="?page=1">1</a>
      <a href="?page=3"> Next </a>
    </div>
    """
    assert next_page_from_html(html, BASE) == "https://www.avvo.com/bankruptcy-debt-lawyer/al.html?page=3"


def test_next_page_absent():
    html = '<div class="pagination"><a href="?page=1">Previous</a></div>'
    assert next_page_from_html(html, BASE) is None


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"nextPageUrl": "/api/l?page=2"}, "https://www.avvo.com/api/l?page=2"),
        ({"next": "https://www.avvo.com/api/l?page=3"}, "https://www.avvo.com/api/l?page=3"),
        ({"links": {"next": "/api/l?page=4"}}, "https://www.avvo.com/api/l?page=4"),
        ({"pagination": {"next": "/api/l?page=5"}}, "https://www.avvo.com/api/l?page=5"),
        ({"paging": {"next": "/api/l?page=6"}}, "https://www.avvo.com/api/l?page=6"),
        ({"next": None, "paging": {"next": ""}}, None),
        ([{"next": "/x"}], None),
    ],
)
def test_next_page_from_api(payload, expected):
    assert next_page_from_api(payload, "https://www.avvo.com/api/l?page=1") == expected


def test_sitemaps():
    assert sitemap_urls("https://www.avvo.com") == [
        "https://www.avvo.com/sitemap.xml",
        "https://www.avvo.com/sitemaps/sitemap.xml",
    ]
    xml = """<?xml version="1.0"?>
    <urlset>
      <url><loc>https://www.avvo.com/attorneys/35203-al-jane-doe-123.html</loc></url>
      <url><loc> https://www.avvo.com/attorney/john-roe </loc></url>
      <url><loc>https://www.avvo.com/legal-guides/x</loc></url>
      <url><loc>https://www.avvo.com/attorneys/35203-al-jane-doe-123.html</loc></url>
    </urlset>"""
    assert sitemap_profile_urls(xml) == [
        "https://www.avvo.com/attorneys/35203-al-jane-doe-123.html",
        "https://www.avvo.com/attorney/john-roe",
    ]
    assert sitemap_profile_urls("") == []


def test_build_search_url():
    assert build_search_url("Family Law", "CA", "San Diego") == "https://www.avvo.com/family-law-lawyer/san-diego-ca.html"
    assert build_search_url("bankruptcy-debt", "al") == "https://www.avvo.com/bankruptcy-debt-lawyer/al.html"
    assert build_search_url() == "https://www.avvo.com/bankruptcy-debt-lawyer/al.html"


def test_build_start_urls():
    assert build_start_urls([" https://a.example/1 ", "", "https://a.example/1"]) == ["https://a.example/1"]
    assert build_start_urls([], practice_area="dui", state="tx") == ["https://www.avvo.com/dui-lawyer/tx.html"]
    assert build_start_urls([], practice_area="dui") == []
