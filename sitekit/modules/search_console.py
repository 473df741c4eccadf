"""
Google Search Console module.

Uses the 'searchconsole' (v1) discovery service and falls back to the legacy
'webmasters' (v3) one; both expose `sites().list` and `searchanalytics().query`.
This module is always active.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from google.auth.exceptions import RefreshError

from sitekit.exceptions import GoogleOAuthError, InvalidParamError, SiteKitError
from sitekit.modules.base import DataRequest, Module
from sitekit.services.date_range import parse_date_range
from sitekit.storage.setting import LegacyKeysMixin, ModuleSettings

logger = logging.getLogger(__name__)

DISCOVERY_CANDIDATES = (("searchconsole", "v1"), ("webmasters", "v3"))
UNVERIFIED = "siteUnverifiedUser"


class SearchConsoleSettings(LegacyKeysMixin, ModuleSettings):
    OPTION = "googlesitekit_search-console_settings"

    def register(self) -> None:
        super().register()
        self.register_legacy_keys_migration({"property_id": "propertyID", "propertyId": "propertyID"})

    def get_default(self) -> Dict[str, Any]:
        return {"propertyID": ""}


def normalize_site_url(site_url: str) -> str:
    s = site_url.strip()
    if s.startswith("sc-domain:"):
        return s
    if not (s.startswith("http://") or s.startswith("https://")):
        s = "https://" + s.strip("/") + "/"
    if not s.endswith("/"):
        s += "/"
    return s


class SearchConsoleModule(Module):
    slug = "search-console"
    name = "Search Console"
    description = "Google Search Console helps you understand how Google views your site and optimize its performance in search results."
    homepage = "https://search.google.com/search-console"
    order = 1
    force_active = True
    settings_class = SearchConsoleSettings
    services = {"searchconsole": DISCOVERY_CANDIDATES[0]}

    def is_connected(self) -> bool:
        return bool(self.get_settings().get("propertyID"))

    def get_service(self, identifier: str):
        if identifier != "searchconsole" or identifier in self._services:
            return super().get_service(identifier)

        # Try new discovery name first, then legacy fallback
        last_err: Optional[Exception] = None
        client = self.get_client()
        for api, ver in DISCOVERY_CANDIDATES:
            try:
                svc = client.build_service(api, ver)
                getattr(svc, "searchanalytics")
                self._services[identifier] = svc
                logger.info("Initialized Search Console service using %s %s", api, ver)
                return svc
            except (GoogleOAuthError, RefreshError):
                # Credential failures are the same for every discovery name.
                raise
            except Exception as e:
                last_err = e
                logger.debug("Failed to init %s %s: %s", api, ver, e)
        raise SiteKitError(
            f"Unable to initialize Search Console API: {last_err}",
            code="service_unavailable",
            status=503,
        )

    def get_property_id(self) -> str:
        return self.get_settings().get("propertyID") or self.context.reference_site_url

    def create_data_request(self, request: DataRequest) -> Any:
        route = request.route
        if route == "GET:sites":
            return self.get_service("searchconsole").sites().list()
        if route == "GET:matched-sites":
            return lambda: self._matched_sites(self.call_api(self.get_service("searchconsole").sites().list()))
        if route == "GET:searchanalytics":
            return self._search_analytics_request(request.data)
        if route == "POST:settings":
            request.require("propertyID")
            return lambda: self.save_settings({"propertyID": str(request.data["propertyID"])})
        return super().create_data_request(request)

    def parse_data_response(self, request: DataRequest, response: Any) -> Any:
        if request.route == "GET:sites":
            return response.get("siteEntry", []) or []
        if request.route == "GET:searchanalytics":
            return response.get("rows", []) or []
        return response

    def _matched_sites(self, response: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Verified properties covering this site; exact URL properties first."""
        site = normalize_site_url(self.context.reference_site_url)
        domain = f"sc-domain:{self.context.hostname}"
        exact, domains = [], []
        for entry in response.get("siteEntry", []) or []:
            if entry.get("permissionLevel") == UNVERIFIED:
                continue
            url = entry.get("siteUrl") or ""
            if url == domain:
                domains.append(entry)
            elif normalize_site_url(url) == site:
                exact.append(entry)
        return exact + domains

    def _search_analytics_request(self, data: Dict[str, Any]):
        try:
            start, end = parse_date_range(data.get("dateRange") or "last-28-days")
        except ValueError as e:
            raise InvalidParamError(str(e), data={"param": "dateRange"}) from e

        dimensions = data.get("dimensions") or ["date"]
        if isinstance(dimensions, str):
            dimensions = [d for d in dimensions.split(",") if d]
        body: Dict[str, Any] = {
            "startDate": start,
            "endDate": end,
            "dimensions": dimensions,
            "rowLimit": int(data.get("limit") or 1000),
        }
        if data.get("url"):
            body["dimensionFilterGroups"] = [
                {"filters": [{"dimension": "page", "operator": "equals", "expression": data["url"]}]}
            ]
        site = normalize_site_url(self.get_property_id())
        return self.get_service("searchconsole").searchanalytics().query(siteUrl=site, body=body)
