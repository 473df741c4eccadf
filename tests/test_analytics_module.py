import pytest

from sitekit.exceptions import InvalidDatapointError, InvalidParamError, MissingRequiredParamError, SiteKitError

from fakes import http_error

ACCOUNTS = {"items": [{"id": "100", "name": "First"}, {"id": "200", "name": "Second"}]}
PROPERTIES = [
    {"id": "UA-100-1", "accountId": "100", "websiteUrl": "https://other.org", "internalWebPropertyId": "9001"},
    {"id": "UA-200-1", "accountId": "200", "websiteUrl": "http://www.example.com/", "internalWebPropertyId": "9002"},
    {"id": "UA-200-2", "accountId": "200", "websiteUrl": "https://shop.example.com", "internalWebPropertyId": "9003"},
]


def _webproperties(accountId):
    if accountId == "~all":
        return {"items": PROPERTIES}
    return {"items": [p for p in PROPERTIES if p["accountId"] == accountId]}


def _profiles(accountId, webPropertyId):
    return {"items": [{"id": f"p-{webPropertyId}", "accountId": accountId, "webPropertyId": webPropertyId}]}


@pytest.fixture()
def services():
    return {
        "analytics:v3": {
            "management.accounts.list": ACCOUNTS,
            "management.webproperties.list": _webproperties,
            "management.profiles.list": _profiles,
            "management.webproperties.insert": lambda accountId, body: {
                "id": "UA-100-9",
                "accountId": accountId,
                "internalWebPropertyId": "7777",
                "websiteUrl": body["websiteUrl"],
            },
            "management.profiles.insert": lambda accountId, webPropertyId, body: {"id": "555", "name": body["name"]},
        },
        "analyticsreporting:v4": {
            "reports.batchGet": lambda body: {"reports": [{"request": body}]},
        },
    }


@pytest.fixture()
def analytics(make_plugin, services):
    plugin = make_plugin(services)
    plugin.modules.activate_module("analytics")
    return plugin.modules.get_module("analytics")


@pytest.mark.unit
def test_accounts_properties_profiles_matches_site_property(analytics):
    data = analytics.get_data("accounts-properties-profiles")

    assert [a["id"] for a in data["accounts"]] == ["100", "200"]
    assert data["matchedProperty"]["id"] == "UA-200-1"
    assert [p["id"] for p in data["properties"]] == ["UA-200-1", "UA-200-2"]
    assert data["profiles"][0]["id"] == "p-UA-200-1"


@pytest.mark.unit
def test_accounts_properties_profiles_with_existing_tag(analytics):
    data = analytics.get_data(
        "accounts-properties-profiles", {"existingAccountID": "100", "existingPropertyID": "UA-100-1"}
    )
    assert data["matchedProperty"]["id"] == "UA-100-1"
    assert data["profiles"][0]["webPropertyId"] == "UA-100-1"


@pytest.mark.unit
def test_accounts_properties_profiles_without_accounts(make_plugin, services):
    services["analytics:v3"]["management.accounts.list"] = {"items": []}
    module = make_plugin(services).modules.get_module("analytics")
    assert module.get_data("accounts-properties-profiles") == {"accounts": [], "properties": [], "profiles": []}


@pytest.mark.unit
def test_profiles_requires_params(analytics):
    with pytest.raises(MissingRequiredParamError):
        analytics.get_data("profiles", {"accountID": "100"})
    assert analytics.get_data("profiles", {"accountID": "100", "propertyID": "UA-100-1"})[0]["id"] == "p-UA-100-1"


@pytest.mark.unit
def test_tag_permission(analytics):
    assert analytics.get_data("tag-permission", {"tag": "UA-200-2"}) == {
        "accountID": "200",
        "propertyID": "UA-200-2",
        "accountId": "200",
        "propertyId": "UA-200-2",
        "permission": True,
    }
    with pytest.raises(SiteKitError) as exc:
        analytics.get_data("tag-permission", {"tag": "UA-999-1"})
    assert exc.value.code == "google_analytics_existing_tag_permission"
    assert exc.value.status == 403


@pytest.mark.unit
def test_save_settings_creates_property_and_profile(analytics):
    saved = analytics.set_data("settings", {"accountID": "100", "propertyID": "0", "profileID": "0"})

    assert saved["propertyID"] == "UA-100-9"
    assert saved["internalWebPropertyID"] == "7777"
    assert saved["profileID"] == "555"
    assert analytics.is_connected()


@pytest.mark.unit
@pytest.mark.parametrize("account", ["", "0", "-1"])
def test_save_settings_rejects_unselected_account(analytics, account):
    with pytest.raises((InvalidParamError, MissingRequiredParamError)):
        analytics.set_data("settings", {"accountID": account, "propertyID": "UA-1-1", "profileID": "1"})


@pytest.mark.unit
def test_report_uses_profile_and_date_range(analytics):
    analytics.set_data(
        "settings",
        {"accountID": "200", "propertyID": "UA-200-1", "profileID": "p-1", "internalWebPropertyID": "9002"},
    )
    result = analytics.get_data("report", {"dateRange": "last-7-days", "metrics": ["ga:users"], "dimensions": ["ga:date"]})

    request = result["reports"][0]["request"]["reportRequests"][0]
    assert request["viewId"] == "p-1"
    assert request["metrics"] == [{"expression": "ga:users"}]
    assert request["dimensions"] == [{"name": "ga:date"}]
    assert len(request["dateRanges"]) == 1


@pytest.mark.unit
def test_report_without_profile_fails(analytics):
    with pytest.raises(SiteKitError) as exc:
        analytics.get_data("report")
    assert exc.value.code == "module_not_connected"


@pytest.mark.unit
def test_api_errors_carry_reason(make_plugin, services):
    services["analytics:v3"]["management.accounts.list"] = http_error(403, "insufficientPermissions", "Denied")
    module = make_plugin(services).modules.get_module("analytics")
    with pytest.raises(SiteKitError) as exc:
        module.get_data("accounts-properties-profiles")
    assert exc.value.status == 403
    assert exc.value.reason == "insufficientPermissions"
    assert exc.value.message == "Denied"


@pytest.mark.unit
def test_unknown_datapoint(analytics):
    with pytest.raises(InvalidDatapointError):
        analytics.get_data("nope")


@pytest.mark.unit
def test_batch_isolates_failures(make_plugin, services):
    from sitekit.modules.base import DataRequest

    services["analytics:v3"]["management.profiles.list"] = http_error(404, "notFound", "No such property")
    plugin = make_plugin(services)
    module = plugin.modules.get_module("analytics")

    results = module.get_batch_data(
        [
            DataRequest("GET", "profiles", {"accountID": "1", "propertyID": "UA-1-1"}, key="profiles"),
            DataRequest("GET", "settings", key="settings"),
            DataRequest("GET", "bogus", key="bogus"),
        ]
    )

    assert isinstance(results["profiles"], SiteKitError)
    assert results["profiles"].status == 404
    assert results["settings"]["accountID"] == ""
    assert isinstance(results["bogus"], InvalidDatapointError)
    assert plugin.oauth_client.get_client().should_defer() is False
