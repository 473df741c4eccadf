import pytest

from sitekit.exceptions import MissingRequiredParamError
from sitekit.modules.adsense_status import AccountStatusDetector

from fakes import http_error

ACCOUNT = {"name": "accounts/pub-123", "displayName": "Example Pub", "state": "READY"}
AFC_CLIENT = {"name": "accounts/pub-123/adclients/ca-pub-123", "productCode": "AFC"}
CHANNEL = {"name": "accounts/pub-123/adclients/ca-pub-123/urlchannels/1", "uriPattern": "example.com", "reportingDimensionId": "ca-pub-123:1"}


def _services(accounts=None, alerts=None, clients=None, channels=None):
    def _or(value, default):
        return default if value is None else value

    return {
        "adsense:v2": {
            "accounts.list": _or(accounts, {"accounts": [ACCOUNT]}),
            "accounts.alerts.list": _or(alerts, {"alerts": []}),
            "accounts.adclients.list": _or(clients, {"adClients": [AFC_CLIENT]}),
            "accounts.adclients.urlchannels.list": _or(channels, {"urlChannels": [CHANNEL]}),
        }
    }


def _detect(make_plugin, existing_tag=None, **services):
    plugin = make_plugin(_services(**services))
    plugin.modules.activate_module("adsense")
    module = plugin.modules.get_module("adsense")
    return AccountStatusDetector(module).detect(existing_tag), module


@pytest.mark.unit
def test_connected_account_completes_setup(make_plugin):
    result, module = _detect(make_plugin)

    assert result["accountStatus"] == "account-connected"
    assert result["clientID"] == "ca-pub-123"
    assert result["error"] is False
    assert result["statusMessage"].endswith("automatically place ads for you in all the best places.")
    assert result["switchOffMessage"].startswith("If you’ve already got some AdSense code on your site")
    settings = module.get_settings()
    assert settings["setupComplete"] is True
    assert settings["clientID"] == "ca-pub-123"
    assert settings["accountID"] == "pub-123"
    assert settings["accountStatus"] == "account-connected"
    assert module.is_connected()


@pytest.mark.unit
def test_no_account(make_plugin):
    result, module = _detect(make_plugin, accounts={"accounts": []})
    assert result["accountStatus"] == "no-account"
    assert result["tracking"]["eventName"] == "create_adsense_account"
    assert "all the best places" in result["statusMessage"]
    assert module.get_settings()["accountStatus"] == "no-account"


@pytest.mark.unit
def test_no_account_with_existing_tag(make_plugin):
    result, _ = _detect(
        make_plugin,
        existing_tag="ca-pub-999",
        accounts=http_error(403, "noAdSenseAccount", "No account"),
    )
    assert result["accountStatus"] == "no-account-tag-found"
    assert "reAuth=true" in result["ctaLink"]


@pytest.mark.unit
def test_disapproved_account(make_plugin):
    result, _ = _detect(make_plugin, accounts=http_error(403, "disapprovedAccount"))
    assert result["accountStatus"] == "account-disapproved"


@pytest.mark.unit
def test_graylisted_publisher_alert(make_plugin):
    result, module = _detect(make_plugin, alerts={"alerts": [{"name": "a/1", "type": "GRAYLISTED_PUBLISHER"}]})
    assert result["accountStatus"] == "ads-display-pending"
    assert module.get_settings()["setupComplete"] is False


@pytest.mark.unit
def test_alerts_pending_review_error_still_saves_client(make_plugin):
    result, module = _detect(make_plugin, alerts=http_error(403, "accountPendingReview"))
    assert result["accountStatus"] == "ads-display-pending"
    assert module.get_settings()["clientID"] == "ca-pub-123"


@pytest.mark.unit
def test_alerts_other_error_clears_status(make_plugin):
    plugin = make_plugin(_services(alerts=http_error(500, "backendError")))
    plugin.modules.activate_module("adsense")
    module = plugin.modules.get_module("adsense")
    module.set_data("account-status", {"accountStatus": "account-connected"})

    result = AccountStatusDetector(module).detect()

    assert result["accountStatus"] == ""
    assert result["error"] is False
    assert module.get_settings()["accountStatus"] == ""
    assert module.get_settings()["clientID"] == "ca-pub-123"


@pytest.mark.unit
def test_account_status_requires_the_key(make_plugin):
    plugin = make_plugin(_services())
    module = plugin.modules.get_module("adsense")
    with pytest.raises(MissingRequiredParamError):
        module.set_data("account-status", {})


@pytest.mark.unit
def test_clients_error_requires_action(make_plugin):
    result, _ = _detect(make_plugin, clients=http_error(500, "backendError"))
    assert result["accountStatus"] == "account-required-action"
    assert result["issue"] == "accountRequiredAction"


@pytest.mark.unit
def test_no_afc_client_is_disapproved(make_plugin):
    result, _ = _detect(make_plugin, clients={"adClients": [{"name": "x/ca-mb-1", "productCode": "AFMC"}]})
    assert result["accountStatus"] == "account-disapproved"
    assert result["ctaLink"] == "https://google.com/admob"


@pytest.mark.unit
def test_no_url_channels_yet(make_plugin):
    result, _ = _detect(make_plugin, channels={"urlChannels": []})
    assert result["accountStatus"] == "ads-display-pending"


@pytest.mark.unit
def test_url_channels_without_site_domain(make_plugin):
    other = dict(CHANNEL, uriPattern="other.org")
    result, module = _detect(make_plugin, channels={"urlChannels": [other]})
    assert result["accountStatus"] == "account-pending-review"
    assert module.get_settings()["setupComplete"] is False


@pytest.mark.unit
def test_existing_matching_tag(make_plugin):
    result, module = _detect(make_plugin, existing_tag="ca-pub-123")
    assert result["accountStatus"] == "account-connected"
    assert result["accountTagMatch"] is True
    assert result["switchOnMessage"].endswith("You can customize this later in AdSense.")
    assert module.get_settings()["setupComplete"] is False


@pytest.mark.unit
def test_existing_non_matching_tag(make_plugin):
    result, _ = _detect(make_plugin, existing_tag="ca-pub-777")
    assert result["accountStatus"] == "account-connected-nonmatching"
    assert result["continueAction"]["accountStatus"] == "account-connected"
    assert result["continueAction"]["statusMessage"].startswith("To connect your site to your AdSense account")


@pytest.mark.unit
def test_multiple_accounts_pick_matching_domain(make_plugin):
    second = {"name": "accounts/pub-456", "displayName": "Other", "state": "READY"}

    def channels(parent):
        if parent.startswith("accounts/pub-456"):
            return {"urlChannels": [dict(CHANNEL, uriPattern="example.com")]}
        return {"urlChannels": [dict(CHANNEL, uriPattern="other.org")]}

    def clients(parent):
        account = parent.split("/")[1]
        return {"adClients": [{"name": f"{parent}/adclients/ca-{account}", "productCode": "AFC"}]}

    result, module = _detect(
        make_plugin,
        accounts={"accounts": [ACCOUNT, second]},
        clients=clients,
        channels=channels,
    )
    assert result["clientID"] == "ca-pub-456"
    assert result["accountURL"].endswith("/pub-456/home")
    assert module.get_settings()["clientID"] == "ca-pub-456"


@pytest.mark.unit
def test_unexpected_error_is_reported(make_plugin):
    def boom(parent):
        raise RuntimeError("kaboom")

    result, _ = _detect(make_plugin, clients=boom)
    assert result == {"error": "RuntimeError", "message": "kaboom"}


@pytest.mark.unit
def test_account_status_datapoint(make_plugin):
    plugin = make_plugin(_services())
    module = plugin.modules.get_module("adsense")
    result = module.get_data("account-status", {"existingTag": ""})
    assert result["accountStatus"] == "account-connected"
    assert result["existingTag"] is False
