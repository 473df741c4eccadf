import datetime as dt

import pytest

from sitekit.exceptions import SiteKitError
from sitekit.modules.adsense import (
    is_adsense_connected_analytics,
    is_data_zero_adsense,
    reduce_adsense_data,
)

from fakes import http_error


@pytest.mark.unit
def test_reduce_adsense_data_reorders_columns():
    result = reduce_adsense_data([["2026-10-01", "1.50", "3.10", "120"]])
    header, row = result["dataMap"]
    assert [c["label"] for c in header] == ["Day", "RPM", "Earnings", "Impressions"]
    assert row == [dt.date(2026, 10, 1), "3.10", "1.50", "120"]


@pytest.mark.unit
@pytest.mark.parametrize(
    "totals, date_range, expected",
    [
        ([0, 0, 0], "last-28-days", True),
        ([0, 0.01, 0], "last-28-days", False),
        ([], "last-28-days", True),
        ([0, 0, 0], "last-7-days", False),
    ],
)
def test_is_data_zero_adsense(totals, date_range, expected):
    assert is_data_zero_adsense({"totals": totals}, "earnings", {"dateRange": date_range}) is expected


@pytest.mark.unit
def test_is_data_zero_adsense_without_request_data():
    assert is_data_zero_adsense({"totals": [0]}, "earnings", None) is False


class _Analytics:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def get_data(self, datapoint, data):
        self.calls.append((datapoint, data))
        if self.error:
            raise self.error
        return {"reports": []}


@pytest.mark.unit
def test_adsense_connected_analytics_when_not_linked():
    analytics = _Analytics(SiteKitError("INVALID_ARGUMENT", code="INVALID_ARGUMENT", status=400))
    assert is_adsense_connected_analytics(analytics, adsense_active=True, analytics_active=True) is False
    assert analytics.calls[0][1]["metrics"] == ["ga:adsenseRevenue", "ga:adsenseECPM"]


@pytest.mark.unit
def test_adsense_connected_analytics_defaults_true():
    assert is_adsense_connected_analytics(_Analytics(), adsense_active=True, analytics_active=True) is True
    assert is_adsense_connected_analytics(_Analytics(SiteKitError("boom", status=500)), adsense_active=True, analytics_active=True) is True
    inactive = _Analytics()
    assert is_adsense_connected_analytics(inactive, adsense_active=False, analytics_active=True) is True
    assert inactive.calls == []


@pytest.mark.unit
def test_adsense_earnings_report(make_plugin):
    seen = {}

    def generate(**kwargs):
        seen.update(kwargs)
        return {
            "headers": [{"name": "DATE"}, {"name": "ESTIMATED_EARNINGS"}],
            "rows": [{"cells": [{"value": "2026-10-01"}, {"value": "1.5"}]}],
            "totals": {"cells": [{"value": ""}, {"value": "1.5"}]},
        }

    plugin = make_plugin({"adsense:v2": {"accounts.reports.generate": generate}})
    module = plugin.modules.get_module("adsense")
    module.set_data("client-id", {"clientID": "ca-pub-123"})

    report = module.get_data("earnings", {"dateRange": "last-28-days"})

    assert seen["account"] == "accounts/pub-123"
    assert seen["dateRange"] == "CUSTOM"
    assert seen["dimensions"] == ["DATE"]
    assert report["rows"] == [["2026-10-01", "1.5"]]
    assert report["totals"] == ["", 1.5]


@pytest.mark.unit
def test_adsense_normalizes_items(make_plugin):
    services = {
        "adsense:v2": {
            "accounts.list": {"accounts": [{"name": "accounts/pub-1", "displayName": "P", "state": "READY"}]},
            "accounts.adclients.urlchannels.list": http_error(404, "notFound"),
        }
    }
    module = make_plugin(services).modules.get_module("adsense")
    assert module.get_data("accounts") == [{"id": "pub-1", "name": "P", "state": "READY"}]
    with pytest.raises(SiteKitError):
        module.get_data("urlchannels", {"clientID": "ca-pub-1"})
