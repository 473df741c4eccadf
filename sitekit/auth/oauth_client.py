"""OAuth wiring between `SiteKitClient` and option storage.

Owns the persisted token record, granted scopes, the pending authorization
state and the last OAuth error code.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, Iterable, List, Optional

from sitekit.auth.google_client import SiteKitClient
from sitekit.config import Config
from sitekit.exceptions import GoogleOAuthError
from sitekit.storage.encrypted_options import EncryptedOptions
from sitekit.storage.options import Options

logger = logging.getLogger(__name__)

OPTION_ACCESS_TOKEN = "googlesitekit_access_token"
OPTION_AUTH_SCOPES = "googlesitekit_auth_scopes"
OPTION_ERROR_CODE = "googlesitekit_error_code"
OPTION_REDIRECT_URL = "googlesitekit_redirect_url"
OPTION_OAUTH_STATE = "googlesitekit_oauth_state"

BASE_SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/siteverification",
    "https://www.googleapis.com/auth/webmasters",
]


class OAuthClient:
    def __init__(
        self,
        config: Config,
        options: Options,
        encrypted_options: EncryptedOptions,
        *,
        client: Optional[SiteKitClient] = None,
        module_scopes: Iterable[str] = (),
    ):
        self.config = config
        self.options = options
        self.encrypted_options = encrypted_options
        self._module_scopes = list(module_scopes)
        self._client = client
        self._configured = False

    # -----------------------------
    # Client
    # -----------------------------
    def get_client(self) -> SiteKitClient:
        if self._client is None:
            self._client = SiteKitClient(
                {
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "redirect_uri": self.config.redirect_uri,
                }
            )
        client = self._client
        if self._configured:
            return client
        client.set_scopes(self.get_required_scopes())
        client.set_token_callback(self._on_token_refreshed)
        client.set_token_exception_callback(self.handle_fetch_token_exception)

        token = self.get_access_token()
        if token:
            client.set_access_token(token)
        self._configured = True
        return client

    def _on_token_refreshed(self, token: Dict[str, Any]) -> None:
        logger.debug("Persisting refreshed access token")
        self.set_access_token(token)

    def handle_fetch_token_exception(self, exc: Exception) -> None:
        """Record the failure code; an `invalid_grant` token can never recover."""
        code = exc.error if isinstance(exc, GoogleOAuthError) else type(exc).__name__
        logger.warning("Access token refresh failed: %s", code)
        self.options.set(OPTION_ERROR_CODE, code)
        if code == "invalid_grant":
            self.encrypted_options.delete(OPTION_ACCESS_TOKEN)

    # -----------------------------
    # Token record
    # -----------------------------
    def get_access_token(self) -> Optional[Dict[str, Any]]:
        token = self.encrypted_options.get(OPTION_ACCESS_TOKEN)
        if isinstance(token, dict) and token.get("access_token"):
            return token
        return None

    def set_access_token(self, token: Dict[str, Any]) -> bool:
        if not token or not token.get("access_token"):
            return False
        return self.encrypted_options.set(OPTION_ACCESS_TOKEN, token)

    def is_authenticated(self) -> bool:
        return self.get_access_token() is not None

    # -----------------------------
    # Scopes
    # -----------------------------
    def add_module_scopes(self, scopes: Iterable[str]) -> None:
        for scope in scopes:
            if scope not in self._module_scopes:
                self._module_scopes.append(scope)
        if self._configured:
            self._client.set_scopes(self.get_required_scopes())

    def get_required_scopes(self) -> List[str]:
        scopes = list(BASE_SCOPES)
        for scope in self._module_scopes:
            if scope not in scopes:
                scopes.append(scope)
        return scopes

    def get_granted_scopes(self) -> List[str]:
        return list(self.options.get(OPTION_AUTH_SCOPES, []) or [])

    def set_granted_scopes(self, scopes: Iterable[str]) -> None:
        self.options.set(OPTION_AUTH_SCOPES, list(scopes))

    def get_unsatisfied_scopes(self) -> List[str]:
        granted = set(self.get_granted_scopes())
        return [s for s in self.get_required_scopes() if s not in granted]

    def needs_reauthentication(self) -> bool:
        return self.is_authenticated() and bool(self.get_unsatisfied_scopes())

    # -----------------------------
    # Error code
    # -----------------------------
    def get_error_code(self) -> Optional[str]:
        return self.options.get(OPTION_ERROR_CODE)

    def clear_error_code(self) -> None:
        self.options.delete(OPTION_ERROR_CODE)

    # -----------------------------
    # Authorization flow
    # -----------------------------
    def get_authentication_url(self, redirect_url: Optional[str] = None, **params: Any) -> str:
        state = secrets.token_urlsafe(24)
        self.options.set(OPTION_OAUTH_STATE, state)
        if redirect_url:
            self.options.set(OPTION_REDIRECT_URL, redirect_url)
        return self.get_client().create_auth_url(state=state, **params)

    def authorize_user(self, code: str, state: Optional[str]) -> Optional[str]:
        """Complete the authorization code flow; returns the stored redirect URL."""
        expected = self.options.get(OPTION_OAUTH_STATE)
        self.options.delete(OPTION_OAUTH_STATE)
        if not expected or state != expected:
            self.options.set(OPTION_ERROR_CODE, "invalid_state")
            raise GoogleOAuthError("invalid_state")

        client = self.get_client()
        try:
            token = client.fetch_access_token_with_auth_code(code)
        except GoogleOAuthError as e:
            self.options.set(OPTION_ERROR_CODE, e.error)
            raise

        if not token.get("access_token"):
            self.options.set(OPTION_ERROR_CODE, "access_token_not_received")
            raise GoogleOAuthError("access_token_not_received")

        self.set_access_token(token)
        scope = token.get("scope")
        if isinstance(scope, str):
            self.set_granted_scopes(scope.split())
        self.clear_error_code()
        logger.info("User authorized; %s scope(s) granted", len(self.get_granted_scopes()))

        redirect_url = self.options.get(OPTION_REDIRECT_URL)
        self.options.delete(OPTION_REDIRECT_URL)
        return redirect_url

    def refresh_token(self) -> Dict[str, Any]:
        client = self.get_client()
        try:
            token = client.fetch_access_token_with_refresh_token()
        except Exception as e:
            self.handle_fetch_token_exception(e)
            raise
        self.set_access_token(token)
        return token

    def revoke_token(self) -> None:
        """Revoke the token at Google (best effort) and forget it locally."""
        client = self.get_client()
        try:
            client.revoke_token()
        except Exception:
            logger.warning("Remote token revocation failed", exc_info=True)
        self.encrypted_options.delete(OPTION_ACCESS_TOKEN)
        self.options.delete(OPTION_AUTH_SCOPES)
        self.clear_error_code()

    def get_status(self) -> Dict[str, Any]:
        return {
            "authenticated": self.is_authenticated(),
            "requiredScopes": self.get_required_scopes(),
            "grantedScopes": self.get_granted_scopes(),
            "unsatisfiedScopes": self.get_unsatisfied_scopes(),
            "needsReauthentication": self.needs_reauthentication(),
            "errorCode": self.get_error_code(),
        }
