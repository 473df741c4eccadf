"""
HTTP client for the Site Kit REST API.

Usage:
    api = SiteKitAPI("http://localhost:8000")
    accounts = api.get("modules", "analytics", "accounts-properties-profiles")
    api.set("modules", "analytics", "settings", {"accountID": "1", ...})

GET responses are cached (see `sitekit.client.cache`); a successful `set`
invalidates the cache group of its datapoint.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import requests

from sitekit.client.cache import DEFAULT_TTL, LocalCache, create_cache_key

logger = logging.getLogger(__name__)


class SiteKitAPIError(Exception):
    def __init__(self, code: str, message: str, status: int, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.data = dict(data or {})

    def __repr__(self):
        return f"SiteKitAPIError(code={self.code!r}, status={self.status})"


class SiteKitAPI:
    def __init__(
        self,
        base_url: str,
        session: Optional[Any] = None,
        cache: Optional[LocalCache] = None,
        *,
        ttl: int = DEFAULT_TTL,
        timeout: Optional[float] = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.cache = cache if cache is not None else LocalCache()
        self.ttl = ttl
        self.timeout = timeout
        self._caching_enabled = True

    # -----------------------------
    # Cache switches
    # -----------------------------
    def set_using_cache(self, should_use_cache: bool) -> bool:
        self._caching_enabled = bool(should_use_cache)
        return self._caching_enabled

    def using_cache(self) -> bool:
        return self._caching_enabled

    def invalidate_cache(
        self,
        type_: Optional[str] = None,
        identifier: Optional[str] = None,
        datapoint: Optional[str] = None,
    ) -> int:
        prefix = create_cache_key(type_, identifier, datapoint)
        stale = [key for key in self.cache.keys() if key.startswith(prefix)]
        for key in stale:
            self.cache.delete(key)
        return len(stale)

    # -----------------------------
    # Requests
    # -----------------------------
    def _url(self, type_: str, identifier: str, datapoint: str) -> str:
        return f"{self.base_url}/googlesitekit/v1/{type_}/{identifier}/data/{datapoint}"

    def _send(self, method: str, url: str, **kwargs) -> Any:
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        resp = self.session.request(method, url, **kwargs)
        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if resp.status_code >= 400:
            body = payload if isinstance(payload, dict) else {}
            data = dict(body.get("data") or {})
            message = body.get("message") or getattr(resp, "reason", None) or f"HTTP {resp.status_code}"
            raise SiteKitAPIError(
                str(body.get("code") or resp.status_code),
                message,
                int(data.pop("status", resp.status_code)),
                data,
            )
        return payload

    def get(
        self,
        type_: str,
        identifier: str,
        datapoint: str,
        query_params: Optional[Mapping[str, Any]] = None,
        *,
        use_cache: bool = True,
    ) -> Any:
        # A request can opt out of caching but cannot opt in when it is off.
        cached = use_cache and self._caching_enabled
        key = create_cache_key(type_, identifier, datapoint, query_params)
        if cached:
            hit, value = self.cache.get(key)
            if hit:
                logger.debug("Cache hit %s", key)
                return value

        result = self._send("GET", self._url(type_, identifier, datapoint), params=dict(query_params or {}))
        if cached:
            self.cache.set(key, result, self.ttl)
        return result

    def set(
        self,
        type_: str,
        identifier: str,
        datapoint: str,
        data: Optional[Mapping[str, Any]] = None,
        *,
        query_params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        result = self._send(
            "POST",
            self._url(type_, identifier, datapoint),
            params=dict(query_params or {}),
            json={"data": dict(data or {})},
        )
        self.invalidate_cache(type_, identifier, datapoint)
        return result

    def batch(self, requests_: List[Mapping[str, Any]]) -> Dict[str, Any]:
        return self._send("POST", f"{self.base_url}/googlesitekit/v1/data", json={"requests": list(requests_)})

    def reset(self) -> Any:
        """Reset the site and drop every cached response."""
        result = self.set("core", "site", "reset")
        self.cache.clear()
        return result
