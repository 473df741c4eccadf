import pytest

from sitekit.storage.encrypted_options import DataEncryption, EncryptedOptions, derive_key
from sitekit.storage.options import Options


@pytest.mark.unit
def test_options_crud(db):
    options = Options(db)
    assert options.get("googlesitekit_missing", "dflt") == "dflt"

    options.set("googlesitekit_active_modules", ["analytics"])
    assert options.has("googlesitekit_active_modules")
    assert options.get("googlesitekit_active_modules") == ["analytics"]

    options.set("googlesitekit_active_modules", ["analytics", "adsense"])
    assert options.get("googlesitekit_active_modules") == ["analytics", "adsense"]

    assert options.delete("googlesitekit_active_modules") is True
    assert options.delete("googlesitekit_active_modules") is False
    assert options.has("googlesitekit_active_modules") is False


@pytest.mark.unit
def test_options_get_returns_a_copy(db):
    options = Options(db)
    options.set("googlesitekit_analytics_settings", {"accountID": "1"})
    value = options.get("googlesitekit_analytics_settings")
    value["accountID"] = "changed"
    assert options.get("googlesitekit_analytics_settings") == {"accountID": "1"}


@pytest.mark.unit
def test_delete_prefixed_only_touches_prefix(db):
    options = Options(db)
    options.set("googlesitekit_a", 1)
    options.set("googlesitekit_b", 2)
    options.set("blogname", "Example")

    assert options.delete_prefixed("googlesitekit") == 2
    assert options.names() == ["blogname"]


@pytest.mark.unit
def test_encrypted_options_round_trip_is_not_plain_text(db):
    options = Options(db)
    encrypted = EncryptedOptions(options, DataEncryption("a passphrase"))
    token = {"access_token": "ya29.secret", "refresh_token": "1//r"}

    encrypted.set("googlesitekit_access_token", token)

    raw = options.get("googlesitekit_access_token")
    assert isinstance(raw, str)
    assert "ya29.secret" not in raw
    assert encrypted.get("googlesitekit_access_token") == token


@pytest.mark.unit
def test_wrong_key_reads_as_missing(db):
    options = Options(db)
    EncryptedOptions(options, DataEncryption("key one")).set("googlesitekit_access_token", {"access_token": "x"})
    other = EncryptedOptions(options, DataEncryption("key two"))
    assert other.get("googlesitekit_access_token") is None


@pytest.mark.unit
def test_fernet_key_is_used_directly():
    key = derive_key("anything").decode()
    enc = DataEncryption(key)
    assert enc.enabled
    assert enc.decrypt(enc.encrypt("hello")) == "hello"


@pytest.mark.unit
def test_without_key_values_pass_through():
    enc = DataEncryption(None)
    assert enc.enabled is False
    assert enc.encrypt("plain") == "plain"
