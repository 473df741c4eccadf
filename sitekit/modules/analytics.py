"""
Google Analytics module.

Datapoints
----------
GET  accounts-properties-profiles  accounts plus the properties/profiles of the
                                   account best matching the site
GET  properties-profiles           properties/profiles of one account
GET  profiles                      profiles of one property
GET  tag-permission                whether the user can access an existing tag
GET  report                        Reporting API v4 batchGet for the profile
GET  settings / existing-tag
POST settings                      saves the selection; propertyID/profileID
                                   ``'0'`` create a new property/profile first
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sitekit.exceptions import InvalidParamError, SiteKitError
from sitekit.modules.base import DataRequest, Module
from sitekit.services.date_range import parse_date_range
from sitekit.storage.setting import LegacyKeysMixin, ModuleSettings

logger = logging.getLogger(__name__)

# Value used by setup forms for "create a new property/profile".
CREATE_NEW = "0"
DEFAULT_PROFILE_NAME = "All Web Site Data"


class AnalyticsSettings(LegacyKeysMixin, ModuleSettings):
    OPTION = "googlesitekit_analytics_settings"

    def register(self) -> None:
        super().register()
        self.register_legacy_keys_migration(
            {
                "accountId": "accountID",
                "profileId": "profileID",
                "propertyId": "propertyID",
                "internalWebPropertyId": "internalWebPropertyID",
            }
        )

    def get_default(self) -> Dict[str, Any]:
        return {
            "accountID": "",
            "propertyID": "",
            "profileID": "",
            "internalWebPropertyID": "",
            "useSnippet": True,
            "ampClientIDOptIn": True,
            "anonymizeIP": True,
            "trackingDisabled": ["loggedinUsers"],
        }


def normalize_url(url: Optional[str]) -> str:
    """Compare-friendly form of a site URL: no scheme, no www., no trailing slash."""
    value = (url or "").strip().lower()
    for prefix in ("https://", "http://"):
        if value.startswith(prefix):
            value = value[len(prefix):]
    if value.startswith("www."):
        value = value[4:]
    return value.rstrip("/")


class AnalyticsModule(Module):
    slug = "analytics"
    name = "Analytics"
    description = "Get a deeper understanding of your customers."
    homepage = "https://analytics.google.com/analytics/web"
    order = 3
    scopes = (
        "https://www.googleapis.com/auth/analytics.readonly",
        "https://www.googleapis.com/auth/analytics.edit",
    )
    settings_class = AnalyticsSettings
    services = {
        "analytics": ("analytics", "v3"),
        "analyticsreporting": ("analyticsreporting", "v4"),
    }
    has_tag = True

    def is_connected(self) -> bool:
        settings = self.get_settings()
        return all(
            settings.get(key)
            for key in ("accountID", "propertyID", "profileID", "internalWebPropertyID")
        )

    # -----------------------------
    # API helpers
    # -----------------------------
    def _management(self):
        return self.get_service("analytics").management()

    def list_accounts(self) -> List[Dict[str, Any]]:
        resp = self.call_api(self._management().accounts().list())
        return resp.get("items", []) or []

    def list_properties(self, account_id: str) -> List[Dict[str, Any]]:
        resp = self.call_api(self._management().webproperties().list(accountId=account_id))
        return resp.get("items", []) or []

    def list_profiles(self, account_id: str, property_id: str) -> List[Dict[str, Any]]:
        resp = self.call_api(
            self._management().profiles().list(accountId=account_id, webPropertyId=property_id)
        )
        return resp.get("items", []) or []

    def find_matching_property(self, properties: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        site = normalize_url(self.context.reference_site_url)
        for prop in properties:
            if normalize_url(prop.get("websiteUrl")) == site:
                return prop
        return None

    # -----------------------------
    # Datapoints
    # -----------------------------
    def create_data_request(self, request: DataRequest) -> Any:
        route = request.route
        if route == "GET:accounts-properties-profiles":
            return lambda: self._accounts_properties_profiles(request.data)
        if route == "GET:properties-profiles":
            request.require("accountID")
            return lambda: self._properties_profiles(str(request.data["accountID"]))
        if route == "GET:profiles":
            request.require("accountID", "propertyID")
            return self._management().profiles().list(
                accountId=str(request.data["accountID"]),
                webPropertyId=str(request.data["propertyID"]),
            )
        if route == "GET:tag-permission":
            request.require("tag")
            return lambda: self._tag_permission(str(request.data["tag"]))
        if route == "GET:report":
            return self._report_request(request.data)
        if route == "POST:settings":
            request.require("accountID", "propertyID", "profileID")
            if str(request.data["accountID"]) in (CREATE_NEW, "-1"):
                raise InvalidParamError("Select an account first.", data={"param": "accountID"})
            return lambda: self._save_selection(request.data)
        return super().create_data_request(request)

    def parse_data_response(self, request: DataRequest, response: Any) -> Any:
        if request.route == "GET:profiles":
            return response.get("items", []) or []
        return response

    def _accounts_properties_profiles(self, data: Dict[str, Any]) -> Dict[str, Any]:
        accounts = self.list_accounts()
        if not accounts:
            return {"accounts": [], "properties": [], "profiles": []}

        existing_account = data.get("existingAccountID")
        existing_property = data.get("existingPropertyID")
        if existing_account and existing_property:
            properties = self.list_properties(str(existing_account))
            matched = next((p for p in properties if p.get("id") == existing_property), None)
            profiles = self.list_profiles(str(existing_account), str(existing_property))
            return {
                "accounts": accounts,
                "properties": properties,
                "profiles": profiles,
                "matchedProperty": matched,
            }

        all_properties = self.list_properties("~all")
        matched = self.find_matching_property(all_properties)
        account_id = matched["accountId"] if matched else accounts[0]["id"]
        properties = [p for p in all_properties if p.get("accountId") == account_id]
        property_id = matched["id"] if matched else (properties[0]["id"] if properties else None)
        profiles = self.list_profiles(account_id, property_id) if property_id else []

        response: Dict[str, Any] = {
            "accounts": accounts,
            "properties": properties,
            "profiles": profiles,
        }
        if matched:
            response["matchedProperty"] = matched
        return response

    def _properties_profiles(self, account_id: str) -> Dict[str, Any]:
        properties = self.list_properties(account_id)
        matched = self.find_matching_property(properties)
        selected = matched or (properties[0] if properties else None)
        profiles = self.list_profiles(account_id, selected["id"]) if selected else []
        response: Dict[str, Any] = {"properties": properties, "profiles": profiles}
        if matched:
            response["matchedProperty"] = matched
        return response

    def _tag_permission(self, tag: str) -> Dict[str, Any]:
        for prop in self.list_properties("~all"):
            if prop.get("id") == tag:
                account_id = prop.get("accountId")
                # `accountId`/`propertyId` mirror the API field names setup flows read.
                return {
                    "accountID": account_id,
                    "propertyID": tag,
                    "accountId": account_id,
                    "propertyId": tag,
                    "permission": True,
                }
        raise SiteKitError(
            f"We're unable to find the Analytics property {tag} in your accounts; "
            "request access to it or remove the existing tag.",
            code="google_analytics_existing_tag_permission",
            status=403,
            data={"reason": "insufficientPermissions"},
        )

    def _report_request(self, data: Dict[str, Any]):
        settings = self.get_settings()
        profile_id = data.get("profileID") or settings.get("profileID")
        if not profile_id:
            raise SiteKitError("Analytics is not set up.", code="module_not_connected", status=400)

        if data.get("startDate") and data.get("endDate"):
            start, end = data["startDate"], data["endDate"]
        else:
            try:
                start, end = parse_date_range(data.get("dateRange") or "last-28-days")
            except ValueError as e:
                raise InvalidParamError(str(e), data={"param": "dateRange"}) from e

        metrics = [
            m if isinstance(m, dict) else {"expression": m}
            for m in (data.get("metrics") or ["ga:sessions"])
        ]
        dimensions = [
            d if isinstance(d, dict) else {"name": d}
            for d in (data.get("dimensions") or [])
        ]
        report_request: Dict[str, Any] = {
            "viewId": str(profile_id),
            "dateRanges": [{"startDate": start, "endDate": end}],
            "metrics": metrics,
        }
        if dimensions:
            report_request["dimensions"] = dimensions
        if data.get("limit"):
            report_request["pageSize"] = int(data["limit"])
        body = {"reportRequests": [report_request]}
        return self.get_service("analyticsreporting").reports().batchGet(body=body)

    def _save_selection(self, data: Dict[str, Any]) -> Dict[str, Any]:
        account_id = str(data["accountID"])
        property_id = str(data["propertyID"])
        profile_id = str(data["profileID"])
        internal_id = data.get("internalWebPropertyID")

        if property_id == CREATE_NEW:
            prop = self.call_api(
                self._management().webproperties().insert(
                    accountId=account_id,
                    body={
                        "name": self.context.site_name,
                        "websiteUrl": self.context.reference_site_url,
                    },
                )
            )
            property_id = prop["id"]
            internal_id = prop.get("internalWebPropertyId")
            logger.info("Created Analytics property %s in account %s", property_id, account_id)

        if profile_id == CREATE_NEW:
            profile = self.call_api(
                self._management().profiles().insert(
                    accountId=account_id,
                    webPropertyId=property_id,
                    body={"name": DEFAULT_PROFILE_NAME},
                )
            )
            profile_id = profile["id"]
            internal_id = internal_id or profile.get("internalWebPropertyId")
            logger.info("Created Analytics profile %s for %s", profile_id, property_id)

        return self.save_settings(
            {
                "accountID": account_id,
                "propertyID": property_id,
                "profileID": profile_id,
                "internalWebPropertyID": str(internal_id) if internal_id is not None else None,
                "useSnippet": data.get("useSnippet"),
                "ampClientIDOptIn": data.get("ampClientIDOptIn"),
                "anonymizeIP": data.get("anonymizeIP"),
                "trackingDisabled": data.get("trackingDisabled"),
            }
        )
