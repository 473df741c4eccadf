"""
Extended Google OAuth2 client.

This module provides `SiteKitClient`, the OAuth2 client every module uses to
reach Google APIs. Transport, discovery and credential objects come from the
Google libraries; what is added here:

- a token exception callback, invoked with the exception whenever refreshing
  the access token fails, before the exception propagates;
- a token callback, invoked with the fresh token record after a refresh;
- a deferral toggle (`with_defer`) under which API calls are built but not
  executed, so callers can collect raw requests;
- token exchange that stamps `created` on every token and keeps the refresh
  token when a refresh response omits it.

Token records are plain dicts shaped like the token endpoint response:
    {"access_token": ..., "refresh_token": ..., "expires_in": 3599,
     "scope": "...", "token_type": "Bearer", "created": 1700000000}
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qsl, urlencode

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build

from sitekit.exceptions import GoogleOAuthError

logger = logging.getLogger(__name__)

AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
REVOKE_URI = "https://oauth2.googleapis.com/revoke"

# Tokens are treated as expired this many seconds early.
EXPIRY_LEEWAY = 30

TokenCallback = Callable[[Dict[str, Any]], None]
TokenExceptionCallback = Callable[[Exception], None]


class SiteKitClient:
    """Google API client with refresh hooks and request deferral.

    Usage:
        client = SiteKitClient({"client_id": ..., "client_secret": ...,
                                "redirect_uri": ..., "scopes": [...]})
        client.set_access_token(stored_token)
        service = client.build_service("tagmanager", "v2")
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = dict(config or {})
        self._token_exception_callback: Optional[TokenExceptionCallback] = None
        if config.get("token_exception_callback") is not None:
            self.set_token_exception_callback(config["token_exception_callback"])
        config.pop("token_exception_callback", None)

        self._config: Dict[str, Any] = {
            "client_id": None,
            "client_secret": None,
            "redirect_uri": None,
            "scopes": [],
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
            "revoke_uri": REVOKE_URI,
            "token_callback": None,
            "http_handler": None,
        }
        self._config.update(config)
        self._token: Optional[Dict[str, Any]] = None
        self._defer = False

    # -----------------------------
    # Configuration
    # -----------------------------
    def get_config(self, name: str, default: Any = None) -> Any:
        value = self._config.get(name)
        return default if value is None else value

    def set_token_exception_callback(self, callback: TokenExceptionCallback) -> None:
        if not callable(callback):
            raise TypeError("token_exception_callback must be callable")
        self._token_exception_callback = callback

    def set_token_callback(self, callback: Optional[TokenCallback]) -> None:
        self._config["token_callback"] = callback

    def get_scopes(self) -> List[str]:
        return list(self._config.get("scopes") or [])

    def set_scopes(self, scopes: List[str]) -> None:
        self._config["scopes"] = list(scopes)

    def get_http_handler(self) -> Callable[..., Any]:
        handler = self._config.get("http_handler")
        if handler is None:
            handler = Request()
            self._config["http_handler"] = handler
        return handler

    # -----------------------------
    # Deferral
    # -----------------------------
    def should_defer(self) -> bool:
        return self._defer

    def set_defer(self, defer: bool) -> None:
        self._defer = bool(defer)

    def with_defer(self, defer: bool) -> Callable[[], None]:
        """Set deferral and return a callable that restores the previous value."""
        orig_defer = self.should_defer()
        self.set_defer(defer)

        def _restore() -> None:
            self.set_defer(orig_defer)

        return _restore

    # -----------------------------
    # Token state
    # -----------------------------
    def set_access_token(self, token: Any) -> None:
        if isinstance(token, str):
            try:
                token = json.loads(token)
            except ValueError:
                token = {"access_token": token}
        if not isinstance(token, dict) or not token.get("access_token"):
            raise ValueError("Invalid token format")
        self._token = dict(token)

    def get_access_token(self) -> Optional[Dict[str, Any]]:
        return dict(self._token) if self._token else None

    def get_refresh_token(self) -> Optional[str]:
        if not self._token:
            return None
        return self._token.get("refresh_token")

    def revoke_local_token(self) -> None:
        self._token = None

    def is_access_token_expired(self) -> bool:
        if not self._token:
            return True
        created = int(self._token.get("created") or 0)
        expires_in = int(self._token.get("expires_in") or 0)
        return (created + (expires_in - EXPIRY_LEEWAY)) < time.time()

    def get_credentials(self) -> Credentials:
        token = self._token or {}
        expiry = None
        if token.get("created") and token.get("expires_in"):
            expires_at = int(token["created"]) + int(token["expires_in"])
            expiry = dt.datetime.fromtimestamp(expires_at, dt.timezone.utc).replace(tzinfo=None)
        scopes = token.get("scope")
        if isinstance(scopes, str):
            scopes = scopes.split()
        return Credentials(
            token=token.get("access_token"),
            refresh_token=token.get("refresh_token"),
            token_uri=self.get_config("token_uri"),
            client_id=self.get_config("client_id"),
            client_secret=self.get_config("client_secret"),
            scopes=scopes or self.get_scopes() or None,
            expiry=expiry,
        )

    # -----------------------------
    # Authorization
    # -----------------------------
    def authorize(self) -> Credentials:
        """Return credentials for API calls, refreshing an expired token first.

        A refresh failure is handed to the token exception callback and then
        re-raised unchanged.
        """
        token = self._token or {}
        if token.get("refresh_token") and self.is_access_token_expired():
            callback = self.get_config("token_callback")
            try:
                creds = self.fetch_access_token_with_refresh_token(token["refresh_token"])
                if callback:
                    callback(creds)
            except Exception as e:
                if self._token_exception_callback:
                    self._token_exception_callback(e)
                raise
        return self.get_credentials()

    def build_service(self, api: str, version: str):
        return build(api, version, credentials=self.authorize(), cache_discovery=False)

    def create_auth_url(self, state: Optional[str] = None, **params: Any) -> str:
        client_config = {
            "web": {
                "client_id": self.get_config("client_id"),
                "client_secret": self.get_config("client_secret"),
                "auth_uri": self.get_config("auth_uri"),
                "token_uri": self.get_config("token_uri"),
            }
        }
        flow = Flow.from_client_config(
            client_config,
            scopes=self.get_scopes(),
            redirect_uri=self.get_config("redirect_uri"),
            autogenerate_code_verifier=False,
        )
        url, _ = flow.authorization_url(
            access_type="offline",
            prompt="consent",
            include_granted_scopes="true",
            state=state,
            **params,
        )
        return url

    def fetch_access_token_with_auth_code(self, code: str) -> Dict[str, Any]:
        """Exchange a temporary authorization code for a token record."""
        if not code:
            raise ValueError("Invalid code")

        creds = self.fetch_auth_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.get_config("redirect_uri"),
                "client_id": self.get_config("client_id"),
                "client_secret": self.get_config("client_secret"),
            }
        )
        if creds and creds.get("access_token"):
            creds["created"] = int(time.time())
            self.set_access_token(creds)
        return creds

    def fetch_access_token_with_refresh_token(self, refresh_token: Optional[str] = None) -> Dict[str, Any]:
        """Fetch a fresh access token, keeping `refresh_token` if the response has none."""
        if refresh_token is None:
            refresh_token = self.get_refresh_token()
            if not refresh_token:
                raise RuntimeError("refresh token must be passed in or set as part of set_access_token")

        logger.info("OAuth2 access token refresh")
        creds = self.fetch_auth_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.get_config("client_id"),
                "client_secret": self.get_config("client_secret"),
            }
        )
        if creds and creds.get("access_token"):
            creds["created"] = int(time.time())
            if not creds.get("refresh_token"):
                creds["refresh_token"] = refresh_token
            self.set_access_token(creds)
        return creds

    def fetch_auth_token(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """POST a credentials request to the token endpoint and parse the response."""
        body = urlencode({k: v for k, v in params.items() if v is not None})
        response = self.get_http_handler()(
            url=self.get_config("token_uri"),
            method="POST",
            body=body,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        credentials = self._parse_token_response(response)
        if credentials.get("error"):
            self.handle_auth_token_error_response(credentials["error"], credentials)
        return credentials

    @staticmethod
    def _parse_token_response(response: Any) -> Dict[str, Any]:
        raw = getattr(response, "data", b"") or b""
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", "replace")
        try:
            parsed = json.loads(raw) if raw else {}
        except ValueError:
            parsed = dict(parse_qsl(raw))
        if not isinstance(parsed, dict):
            raise GoogleOAuthError("invalid_token_response")
        return parsed

    def handle_auth_token_error_response(self, error: str, data: Dict[str, Any]) -> None:
        raise GoogleOAuthError(error, data)

    def revoke_token(self, token: Optional[str] = None) -> bool:
        """Revoke `token` (default: the refresh or access token held) at Google."""
        if token is None:
            current = self._token or {}
            token = current.get("refresh_token") or current.get("access_token")
        if not token:
            return False
        response = self.get_http_handler()(
            url=self.get_config("revoke_uri"),
            method="POST",
            body=urlencode({"token": token}),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        self.revoke_local_token()
        return getattr(response, "status", 0) == 200
