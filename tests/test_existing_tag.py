import datetime as dt

import pytest
import requests

from sitekit.services.date_range import parse_date_range
from sitekit.services.existing_tag import find_tag, get_existing_tag

GTAG = '<script async src="https://www.googletagmanager.com/gtag/js?id=UA-12345-6"></script>'
ANALYTICS_JS = "<script>ga('create', 'UA-999-1', 'auto');</script>"
GTM = "<script>(function(w,d,s,l,i){j.src='https://www.googletagmanager.com/gtm.js?id='+i;})(window,document,'script','dataLayer','GTM-ABC123');</script>"
ADSENSE = '<script data-ad-client="ca-pub-1234567890" async src="https://pagead2.googlesyndication.com/pagead/js/adsbygoogle.js"></script>'


@pytest.mark.unit
@pytest.mark.parametrize(
    "slug, html, expected",
    [
        ("analytics", GTAG, "UA-12345-6"),
        ("analytics", ANALYTICS_JS, "UA-999-1"),
        ("tagmanager", GTM, "GTM-ABC123"),
        ("adsense", ADSENSE, "ca-pub-1234567890"),
        ("adsense", GTAG, None),
        ("optimize", GTAG, None),
    ],
)
def test_find_tag(slug, html, expected):
    assert find_tag(slug, html) == expected


@pytest.mark.unit
def test_get_existing_tag_uses_fetcher():
    fetched = []

    def fetch(url):
        fetched.append(url)
        return GTM

    assert get_existing_tag("tagmanager", "https://example.com/", fetch=fetch) == "GTM-ABC123"
    assert fetched == ["https://example.com/"]


@pytest.mark.unit
def test_get_existing_tag_network_error_reads_as_none():
    def fetch(url):
        raise requests.ConnectionError("down")

    assert get_existing_tag("analytics", "https://example.com/", fetch=fetch) is None


@pytest.mark.unit
def test_parse_date_range():
    today = dt.date(2026, 10, 19)
    assert parse_date_range("last-28-days", today=today) == ("2026-09-21", "2026-10-18")
    assert parse_date_range("last-1-days", today=today) == ("2026-10-18", "2026-10-18")
    with pytest.raises(ValueError):
        parse_date_range("yesterday", today=today)
