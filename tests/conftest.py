import os, sys
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import pytest

from sitekit.config import Config
from sitekit.db import session as db_session
from sitekit.plugin import Plugin

from fakes import StubGoogleClient

SITE_URL = "https://example.com/"


@pytest.fixture(scope="function")
def db(tmp_path):
    """Yield a session on a throwaway SQLite database with the schema created."""
    db_session.reconfigure_database(f"sqlite:///{tmp_path / 'sitekit.db'}")
    db_session.init_db()
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def config(tmp_path):
    return Config(
        database_url=f"sqlite:///{tmp_path / 'sitekit.db'}",
        site_url=SITE_URL,
        site_name="Example Site",
        admin_url="https://example.com/wp-admin/admin.php",
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_uri="http://testserver/googlesitekit/oauth/callback",
        encryption_key="test-passphrase",
    )


@pytest.fixture()
def make_plugin(db, config):
    """Build a Plugin whose Google services are fakes: make_plugin({"analytics:v3": {...}})."""

    def _make(services=None, **client_config):
        client = StubGoogleClient(services, **client_config)
        return Plugin(db, config, google_client=client)

    return _make


@pytest.fixture()
def plugin(make_plugin):
    return make_plugin()
