import pytest

from sitekit.exceptions import SiteKitError

CONTAINERS = {
    "accounts/1": [
        {"accountId": "1", "containerId": "11", "publicId": "GTM-AAA111", "name": "Web", "usageContext": ["web"]},
        {"accountId": "1", "containerId": "12", "publicId": "GTM-AMP999", "name": "AMP", "usageContext": ["amp"]},
    ],
    "accounts/2": [
        {"accountId": "2", "containerId": "21", "publicId": "GTM-BBB222", "name": "Other", "usageContext": ["web"]},
    ],
}


@pytest.fixture()
def created():
    return []


@pytest.fixture()
def tagmanager(make_plugin, created):
    def _create(parent, body):
        created.append((parent, body))
        return {"accountId": parent.split("/")[1], "containerId": "99", "publicId": "GTM-NEW999", **body}

    services = {
        "tagmanager:v2": {
            "accounts.list": {"account": [{"accountId": "1", "name": "One"}, {"accountId": "2", "name": "Two"}]},
            "accounts.containers.list": lambda parent: {"container": CONTAINERS.get(parent, [])},
            "accounts.containers.create": _create,
        }
    }
    plugin = make_plugin(services)
    plugin.modules.activate_module("tagmanager")
    return plugin.modules.get_module("tagmanager")


@pytest.mark.unit
def test_accounts_containers_defaults_to_first_account(tagmanager):
    data = tagmanager.get_data("accounts-containers")
    assert [a["accountId"] for a in data["accounts"]] == ["1", "2"]
    assert [c["publicId"] for c in data["containers"]] == ["GTM-AAA111"]


@pytest.mark.unit
def test_containers_for_account(tagmanager):
    assert [c["publicId"] for c in tagmanager.get_data("containers", {"accountID": "2"})] == ["GTM-BBB222"]


@pytest.mark.unit
def test_tag_permission(tagmanager):
    result = tagmanager.get_data("tag-permission", {"tag": "GTM-BBB222"})
    assert result["accountID"] == "2"
    assert result["container"] == "publish"

    with pytest.raises(SiteKitError) as exc:
        tagmanager.get_data("tag-permission", {"tag": "GTM-ZZZ000"})
    assert exc.value.code == "tag_manager_existing_tag_permission"


@pytest.mark.unit
def test_save_settings_creates_web_container_named_after_site(tagmanager, created):
    saved = tagmanager.set_data("settings", {"accountID": "1", "containerID": "0"})

    assert saved["containerID"] == "GTM-NEW999"
    assert created == [("accounts/1", {"name": "Example Site", "usageContext": ["web"]})]
    assert tagmanager.is_connected()


@pytest.mark.unit
def test_save_existing_container(tagmanager, created):
    saved = tagmanager.set_data("settings", {"accountID": "1", "containerID": "GTM-AAA111", "useSnippet": False})
    assert saved == {"accountID": "1", "containerID": "GTM-AAA111", "ampContainerID": "", "useSnippet": False}
    assert created == []
