"""Per-request object graph: storage, OAuth and modules bound to one DB session."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from sitekit.auth.google_client import SiteKitClient
from sitekit.auth.oauth_client import OAuthClient
from sitekit.config import Config, get_config
from sitekit.context import Context
from sitekit.modules.registry import Modules
from sitekit.reset import Reset
from sitekit.storage.encrypted_options import DataEncryption, EncryptedOptions
from sitekit.storage.options import Options


class Plugin:
    def __init__(
        self,
        session: Session,
        config: Optional[Config] = None,
        *,
        google_client: Optional[SiteKitClient] = None,
    ):
        self.config = config or get_config()
        self.options = Options(session)
        self.encrypted_options = EncryptedOptions(self.options, DataEncryption(self.config.encryption_key))
        self.context = Context.from_config(self.config)
        self.oauth_client = OAuthClient(
            self.config,
            self.options,
            self.encrypted_options,
            client=google_client,
        )
        self.modules = Modules(self.context, self.options, self.oauth_client)
        self.reset = Reset(self.options, self.modules)
