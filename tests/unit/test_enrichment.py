from __future__ import annotations

import json
from unittest.mock import Mock

import pytest

from lawdir.pipeline.enrichment import (
    BLOCKED,
    ProfileDetails,
    ProfileEnricher,
    collect_reviews,
    extract_profile_details,
    fetch_profile,
    merge_profile,
)
from lawdir.pipeline.fetchers.static import FetchError, FetchResult
from lawdir.schemas import LawyerRecord, RunStats

PROFILE = "https://www.avvo.com/attorneys/35203-al-jane-doe-123.html"


def _fr(**kw) -> FetchResult:
    defaults = dict(url=PROFILE, status_code=200, mime="text/html", content_length=8000,
                    html="<html><body>Hello</body></html>", headers={})
    defaults.update(kw)
    return FetchResult(**defaults)


def _ld(obj) -> str:
    return f'<script type="application/ld+json">{json.dumps(obj)}</script>'


def _next_data(obj) -> str:
    return f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(obj)}</script>'


LAYERED_PAGE = (
    "<html><head>"
    + '<meta name="description" content="Meta description bio">'
    + _ld({
        "@context": "https://schema.org",
        "@type": "Attorney",
        "name": "Jane Doe",
        "url": PROFILE,
        "description": "JSON-LD bio",
        "email": "jane@janedoelaw.com",
    })
    + _next_data({
        "props": {
            "pageProps": {
                "attorney": {
                    "name": "Jane Doe",
                    "profileUrl": PROFILE,
                    "bio": "Embedded bio",
                    "phone": "205-555-0100",
                    "education": ["University of Alabama School of Law"],
                }
            }
        }
    })
    + "</head><body>"
    + '<div class="lawyer-bio">HTML bio</div>'
    + '<a href="tel:+12055559999">Call</a>'
    + '<address>100 Main St, Birmingham, AL 35203</address>'
    + "</body></html>"
)


def test_structured_data_wins_over_embedded_and_html():
    details = extract_profile_details(LAYERED_PAGE, PROFILE)
    assert details.bio == "JSON-LD bio"
    assert details.email == "jane@janedoelaw.com"
    # JSON-LD has no phone: embedded JSON is next in line
    assert details.phone == "205-555-0100"
    assert details.education == ["University of Alabama School of Law"]
    # Neither structured source has a location: read from the page
    assert details.location == "100 Main St, Birmingham, AL 35203"


HTML_ONLY_PAGE = """
<html><head>
  <meta name="description" content="Bankruptcy attorney serving Birmingham.">
  <meta property="og:image" content="/img/jane-og.jpg">
  <meta itemprop="ratingValue" content="4.9">
  <meta itemprop="reviewCount" content="31">
</head><body>
  <a href="mailto:jane@janedoelaw.com">Email</a>
  <div data-phone="(205) 555-0100">Phone</div>
  <div data-testid="education"><ul><li>Cumberland School of Law</li><li>Samford University</li></ul></div>
  <ul><li class="award-item">Top Attorney 2023</li></ul>
  <div class="practice-areas"><ul><li>Bankruptcy</li><li>Debt Relief</li></ul></div>
  <a data-event-label="Website" href="https://janedoelaw.com">Website</a>
</body></html>
"""


def test_html_and_meta_fallbacks():
    details = extract_profile_details(HTML_ONLY_PAGE, PROFILE)
    assert details.bio == "Bankruptcy attorney serving Birmingham."
    assert details.email == "jane@janedoelaw.com"
    assert details.phone == "(205) 555-0100"
    assert details.education == ["Cumberland School of Law", "Samford University"]
    assert details.awards == ["Top Attorney 2023"]
    assert details.practice_areas == ["Bankruptcy", "Debt Relief"]
    assert details.rating == 4.9
    assert details.review_count == 31
    assert details.image == "https://www.avvo.com/img/jane-og.jpg"
    assert details.website == "https://janedoelaw.com"


def test_empty_page_yields_empty_details():
    details = extract_profile_details("<html><body></body></html>", PROFILE)
    assert details == ProfileDetails()


def test_reviews_concatenated_across_blocks():
    html = (
        _ld({"@type": "Attorney", "name": "Jane Doe", "review": [{"reviewBody": "Great"}]})
        + _ld({"@graph": [{"@type": "Organization", "reviews": [{"reviewBody": "Helpful"}, {"reviewBody": "Fast"}]}]})
    )
    details = extract_profile_details(html, PROFILE)
    assert [r["reviewBody"] for r in details.reviews] == ["Great", "Helpful", "Fast"]
    assert extract_profile_details(html, PROFILE, include_reviews=False).reviews == []


def test_collect_reviews_ignores_non_dicts():
    assert collect_reviews(["x", 1, None]) == []


@pytest.mark.parametrize("status", [403, 429, 503])
def test_fetch_profile_block_status(status):
    fetch = Mock(return_value=_fr(status_code=status))
    assert fetch_profile(PROFILE, fetch) is BLOCKED


def test_fetch_profile_challenge_page():
    fetch = Mock(return_value=_fr(html="<title>Just a moment...</title>"))
    assert fetch_profile(PROFILE, fetch) is BLOCKED


def test_fetch_profile_not_found():
    fetch = Mock(return_value=_fr(status_code=404))
    assert fetch_profile(PROFILE, fetch) is None


def test_fetch_profile_reads_page():
    fetch = Mock(return_value=_fr(html=HTML_ONLY_PAGE))
    details = fetch_profile(PROFILE, fetch)
    fetch.assert_called_once_with(PROFILE)
    assert details.email == "jane@janedoelaw.com"


def test_merge_profile_only_non_empty_values_overwrite():
    record = LawyerRecord(name="Jane Doe", profile_url=PROFILE, phone="111", practice_areas=["Bankruptcy"],
                          review_count=5)
    details = ProfileDetails(email="jane@janedoelaw.com", phone="", practice_areas=[], rating=0.0, review_count=None)
    merged = merge_profile(record, details)
    assert merged.phone == "111"
    assert merged.email == "jane@janedoelaw.com"
    assert merged.practice_areas == ["Bankruptcy"]
    assert merged.rating == 0.0
    assert merged.review_count == 5
    # The input record is untouched
    assert record.email == ""
    assert record.rating is None


def test_merge_profile_blocked_or_missing_returns_same_record():
    record = LawyerRecord(name="Jane Doe")
    assert merge_profile(record, BLOCKED) is record
    assert merge_profile(record, None) is record


def _records(n: int) -> list[LawyerRecord]:
    return [LawyerRecord(name=f"Lawyer {i}", profile_url=f"https://www.avvo.com/attorneys/{i}.html") for i in range(n)]


def test_enricher_blocked_profiles_keep_listing_data():
    fetch = Mock(return_value=_fr(status_code=403, html="<html>Forbidden</html>"))
    stats = RunStats()
    records = _records(3)
    out = ProfileEnricher(fetch, sleep=Mock()).enrich(records, stats)
    assert out == records
    assert stats.blocked_requests == 3
    assert stats.profile_enrichments == 3


def test_enricher_batches_and_pauses():
    fetch = Mock(return_value=_fr(html=HTML_ONLY_PAGE))
    sleep = Mock()
    stats = RunStats()
    out = ProfileEnricher(fetch, batch_size=2, pause_s=0.2, sleep=sleep).enrich(_records(5), stats)
    assert len(out) == 5
    assert [r.name for r in out] == [f"Lawyer {i}" for i in range(5)]
    assert all(r.email == "jane@janedoelaw.com" for r in out)
    assert fetch.call_count == 5
    # Three batches, two pauses between them
    assert sleep.call_count == 2
    sleep.assert_called_with(0.2)


def test_enricher_fetch_error_keeps_record():
    fetch = Mock(side_effect=FetchError(PROFILE, "transport error"))
    record = _records(1)[0]
    enricher = ProfileEnricher(fetch, sleep=Mock())
    assert enricher.enrich_one(record) == (record, "failed")


def test_enricher_skips_records_without_profile_url():
    fetch = Mock()
    record = LawyerRecord(name="No Link")
    assert ProfileEnricher(fetch).enrich_one(record) == (record, "skipped")
    fetch.assert_not_called()


def test_enricher_rejects_bad_batch_size():
    with pytest.raises(ValueError):
        ProfileEnricher(Mock(), batch_size=0)
