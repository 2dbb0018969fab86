from __future__ import annotations

import math

import pytest

from lawdir.pipeline.normalize import (
    host_matches_domain,
    normalize_array,
    normalize_external_website,
    normalize_image,
    normalize_text,
    normalize_text_list,
    normalize_url,
    parse_rating_text,
    pick_first,
    pick_first_list,
    to_int,
    to_number,
)

BASE = "https://www.avvo.com/bankruptcy-debt-lawyer/al.html"


@pytest.mark.parametrize(
    "value,expected",
    [
        ("  Jane \n\t Doe  ", "Jane Doe"),
        ("<b>Jane</b> Doe", "Jane Doe"),
        ({"value": "  Family   Law "}, "Family Law"),
        ({"text": "Bankruptcy"}, "Bankruptcy"),
        (None, ""),
        (False, ""),
        (["a", "b"], ""),
        (42, "42"),
    ],
)
def test_normalize_text(value, expected):
    assert normalize_text(value) == expected


def test_normalize_url_resolves_relative():
    assert normalize_url("/attorneys/jane.html", BASE) == "https://www.avvo.com/attorneys/jane.html"
    assert normalize_url("https://janedoelaw.com", BASE) == "https://janedoelaw.com"


def test_normalize_url_empty_and_non_string():
    assert normalize_url("", BASE) == ""
    assert normalize_url("   ", BASE) == ""
    assert normalize_url(None, BASE) == ""
    assert normalize_url(12, BASE) == ""


def test_normalize_url_unparseable_returned_as_is():
    assert normalize_url("http://[broken", BASE) == "http://[broken"


def test_host_matches_domain():
    assert host_matches_domain("www.avvo.com", "avvo.com") is True
    assert host_matches_domain("avvo.com", "avvo.com") is True
    assert host_matches_domain("notavvo.com", "avvo.com") is False
    assert host_matches_domain("", "avvo.com") is False


def test_external_website_drops_source_domain_links():
    assert normalize_external_website("https://www.avvo.com/attorneys/x", BASE, "avvo.com") == ""
    assert normalize_external_website("/about", BASE, "avvo.com") == ""
    assert normalize_external_website("https://janedoelaw.com", BASE, "avvo.com") == "https://janedoelaw.com"


def test_external_website_custom_domain():
    base = "https://www.example-directory.com/list"
    assert normalize_external_website("https://www.avvo.com/x", base, "example-directory.com") == "https://www.avvo.com/x"
    assert normalize_external_website("/x", base, "example-directory.com") == ""


def test_normalize_image_shapes():
    assert normalize_image("/img/a.jpg", BASE) == "https://www.avvo.com/img/a.jpg"
    assert normalize_image(["https://cdn.example.com/a.jpg", "b.jpg"], BASE) == "https://cdn.example.com/a.jpg"
    assert normalize_image({"url": "/img/b.jpg"}, BASE) == "https://www.avvo.com/img/b.jpg"
    assert normalize_image({"contentUrl": "https://cdn.example.com/c.jpg"}, BASE) == "https://cdn.example.com/c.jpg"
    assert normalize_image({"caption": "none"}, BASE) == ""
    assert normalize_image(None, BASE) == ""


def test_normalize_array():
    assert normalize_array("Bankruptcy, Family Law,, ") == ["Bankruptcy", "Family Law"]
    assert normalize_array([0, "", None, "x"]) == ["x"]
    assert normalize_array(5) == [5]
    assert normalize_array(None) == []


def test_normalize_text_list_uses_name_of_objects():
    assert normalize_text_list([{"name": "Bankruptcy"}, "  Family   Law ", {"other": 1}]) == ["Bankruptcy", "Family Law"]


def test_to_number():
    assert to_number("4.8") == 4.8
    assert to_number(5) == 5.0
    assert to_number({"ratingValue": "9.5"}) == 9.5
    assert to_number({"value": 3}) == 3.0
    assert to_number("rating: 10.0") == 10.0
    assert to_number("abc") is None
    assert to_number(None) is None
    assert to_number(True) is None
    assert to_number(float("nan")) is None


def test_to_number_joins_all_digits_of_prose():
    # Prose ratings must go through parse_rating_text
    assert to_number("4.8 out of 5") == 4.85
    assert parse_rating_text("4.8 out of 5") == 4.8


def test_parse_rating_text():
    assert parse_rating_text("Rating: 10") == 10.0
    assert parse_rating_text("no rating") is None
    assert parse_rating_text(None) is None


def test_to_int():
    assert to_int("1,234 reviews") == 1234
    assert to_int(3.9) == 3
    assert to_int(7) == 7
    assert to_int(None) == 0
    assert to_int("none") == 0
    assert to_int(math.inf) == 0


def test_pick_first_keeps_zero():
    assert pick_first(None, "", 0, "x") == 0
    assert pick_first(None, "") is None
    assert pick_first() is None


def test_pick_first_list():
    assert pick_first_list([], None, ["a"], ["b"]) == ["a"]
    assert pick_first_list([], None) == []


def test_to_int_oversized_digit_run_is_zero():
    assert to_int("1" * 5000) == 0
    assert to_int("review " * 3000 + "2021-01-01 " * 600) == 0


def test_normalize_text_list_drops_repeats_after_normalizing():
    assert normalize_text_list(["DUI", " DUI ", "Family  Law", "Family Law", {"name": "DUI"}]) == ["DUI", "Family Law"]


@pytest.mark.parametrize(
    "url",
    [
        "https://www.avvo.com/attorneys/35203-al-jane-doe-123.html",
        "https://janedoelaw.com",
        "http://example.com/path/?page=2#reviews",
    ],
)
def test_normalize_url_keeps_absolute_urls(url):
    assert normalize_url(url, BASE) == url
    assert normalize_url(normalize_url(url, BASE), BASE) == url


@pytest.mark.parametrize(
    "value",
    ["  Jane \n\t Doe  ", "<b>Jane</b>   Doe", "Family Law", {"text": " Bankruptcy  "}, 42, ""],
)
def test_normalize_text_is_idempotent(value):
    once = normalize_text(value)
    assert normalize_text(once) == once
