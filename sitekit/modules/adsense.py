"""
Google AdSense module.

Talks to the AdSense Management API v2 and reshapes its resources into the
flat item shapes the rest of the service works with:

    account     {"id": "pub-123", "name": ..., "state": ...}
    client      {"id": "ca-pub-123", "productCode": "AFC"}
    alert       {"id": ..., "type": ..., "severity": ..., "message": ...}
    urlchannel  {"id": ..., "urlPattern": "example.com"}
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Optional

from sitekit.exceptions import InvalidParamError, MissingRequiredParamError, SiteKitError
from sitekit.modules.adsense_status import AccountStatusDetector
from sitekit.modules.base import DataRequest, Module
from sitekit.services.date_range import parse_date_range
from sitekit.services.existing_tag import get_existing_tag
from sitekit.storage.setting import LegacyKeysMixin, ModuleSettings

logger = logging.getLogger(__name__)

EARNINGS_METRICS = ["ESTIMATED_EARNINGS", "PAGE_VIEWS_RPM", "IMPRESSIONS"]

# Analytics report used to check whether AdSense is linked to Analytics.
ANALYTICS_ADSENSE_REPORT_DEFAULTS = {
    "dateRange": "last-28-days",
    "metrics": ["ga:adsenseRevenue", "ga:adsenseECPM"],
    "dimensions": ["ga:pageTitle", "ga:pagePath"],
    "limit": 10,
}


class AdSenseSettings(LegacyKeysMixin, ModuleSettings):
    OPTION = "googlesitekit_adsense_settings"

    def register(self) -> None:
        super().register()
        self.register_legacy_keys_migration(
            {
                "account_id": "accountID",
                "accountId": "accountID",
                "account_status": "accountStatus",
                "adsenseTagEnabled": "useSnippet",
                "client_id": "clientID",
                "clientId": "clientID",
                "setup_complete": "setupComplete",
            }
        )

    def get_default(self) -> Dict[str, Any]:
        return {
            "accountID": "",
            "clientID": "",
            "accountStatus": "",
            "setupComplete": False,
            "useSnippet": True,
        }


def _last_segment(name: Optional[str]) -> str:
    return (name or "").rsplit("/", 1)[-1]


def account_id_from_client_id(client_id: str) -> str:
    """``ca-pub-123`` -> ``pub-123``."""
    return client_id[3:] if client_id.startswith("ca-") else client_id


class AdSenseModule(Module):
    slug = "adsense"
    name = "AdSense"
    description = "Earn money by placing ads on your website. It’s free and easy."
    homepage = "https://www.google.com/adsense/start"
    order = 2
    scopes = ("https://www.googleapis.com/auth/adsense.readonly",)
    settings_class = AdSenseSettings
    services = {"adsense": ("adsense", "v2")}
    has_tag = True

    def is_connected(self) -> bool:
        settings = self.get_settings()
        return bool(settings.get("setupComplete") and settings.get("clientID"))

    def _accounts(self):
        return self.get_service("adsense").accounts()

    def _account_id(self, data: Dict[str, Any]) -> str:
        account_id = data.get("accountID") or self.get_settings().get("accountID")
        if not account_id and data.get("clientID"):
            account_id = account_id_from_client_id(str(data["clientID"]))
        if not account_id:
            raise SiteKitError(
                "AdSense account ID not set.",
                code="account_id_not_set",
                status=400,
            )
        return str(account_id)

    def create_data_request(self, request: DataRequest) -> Any:
        route = request.route
        data = request.data
        if route == "GET:accounts":
            return self._accounts().list()
        if route == "GET:clients":
            return self._accounts().adclients().list(parent=f"accounts/{self._account_id(data)}")
        if route == "GET:alerts":
            request.require("accountID")
            return self._accounts().alerts().list(parent=f"accounts/{data['accountID']}")
        if route == "GET:urlchannels":
            request.require("clientID")
            client_id = str(data["clientID"])
            parent = f"accounts/{account_id_from_client_id(client_id)}/adclients/{client_id}"
            return self._accounts().adclients().urlchannels().list(parent=parent)
        if route == "GET:earnings":
            return self._earnings_request(data)
        if route == "GET:account-status":
            return lambda: self._detect_account_status(data)
        if route == "POST:client-id":
            request.require("clientID")
            client_id = str(data["clientID"])
            return lambda: self.save_settings(
                {"clientID": client_id, "accountID": account_id_from_client_id(client_id)}
            )
        if route == "POST:setup-complete":
            request.require("clientID")
            client_id = str(data["clientID"])
            return lambda: self.save_settings(
                {
                    "clientID": client_id,
                    "accountID": account_id_from_client_id(client_id),
                    "setupComplete": True,
                }
            )
        if route == "POST:account-status":
            # An empty status is a valid detection result and clears the stored one.
            if "accountStatus" not in data or data["accountStatus"] is None:
                raise MissingRequiredParamError("accountStatus")
            return lambda: self.save_settings({"accountStatus": data["accountStatus"]})
        if route == "POST:use-snippet":
            request.require("useSnippet")
            return lambda: self.save_settings({"useSnippet": bool(data["useSnippet"])})
        return super().create_data_request(request)

    def parse_data_response(self, request: DataRequest, response: Any) -> Any:
        route = request.route
        if route == "GET:accounts":
            return [
                {"id": _last_segment(a.get("name")), "name": a.get("displayName"), "state": a.get("state")}
                for a in response.get("accounts", []) or []
            ]
        if route == "GET:clients":
            return [
                {"id": _last_segment(c.get("name")), "productCode": c.get("productCode")}
                for c in response.get("adClients", []) or []
            ]
        if route == "GET:alerts":
            return [
                {
                    "id": _last_segment(a.get("name")),
                    "type": a.get("type"),
                    "severity": a.get("severity"),
                    "message": a.get("message"),
                }
                for a in response.get("alerts", []) or []
            ]
        if route == "GET:urlchannels":
            return [
                {
                    "id": c.get("reportingDimensionId") or _last_segment(c.get("name")),
                    "urlPattern": c.get("uriPattern"),
                }
                for c in response.get("urlChannels", []) or []
            ]
        if route == "GET:earnings":
            return self._parse_report(response)
        return response

    # -----------------------------
    # Earnings
    # -----------------------------
    def _earnings_request(self, data: Dict[str, Any]):
        try:
            start, end = parse_date_range(data.get("dateRange") or "last-28-days")
        except ValueError as e:
            raise InvalidParamError(str(e), data={"param": "dateRange"}) from e
        start_date = dt.date.fromisoformat(start)
        end_date = dt.date.fromisoformat(end)
        dimensions = data.get("dimensions")
        if dimensions is None:
            dimensions = ["DATE"]
        elif isinstance(dimensions, str):
            dimensions = [dimensions]
        return self._accounts().reports().generate(
            account=f"accounts/{self._account_id(data)}",
            dateRange="CUSTOM",
            startDate_year=start_date.year,
            startDate_month=start_date.month,
            startDate_day=start_date.day,
            endDate_year=end_date.year,
            endDate_month=end_date.month,
            endDate_day=end_date.day,
            metrics=data.get("metrics") or EARNINGS_METRICS,
            dimensions=dimensions,
        )

    @staticmethod
    def _parse_report(response: Dict[str, Any]) -> Dict[str, Any]:
        def cells(row):
            return [c.get("value") for c in (row or {}).get("cells", [])]

        return {
            "headers": [h.get("name") for h in response.get("headers", []) or []],
            "rows": [cells(r) for r in response.get("rows", []) or []],
            "totals": [_to_number(v) for v in cells(response.get("totals"))],
        }

    # -----------------------------
    # Account status
    # -----------------------------
    def _detect_account_status(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if "existingTag" in data:
            existing_tag = data.get("existingTag") or None
        else:
            existing_tag = get_existing_tag(self.slug, self.context.reference_site_url)
        return AccountStatusDetector(self).detect(existing_tag)


def _to_number(value: Any) -> Any:
    if value is None or value == "":
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return value


def reduce_adsense_data(rows: List[List[Any]]) -> Dict[str, Any]:
    """Shape earnings rows ``[date, earnings, rpm, impressions]`` for a chart."""
    data_map: List[List[Any]] = [
        [
            {"type": "date", "label": "Day"},
            {"type": "number", "label": "RPM"},
            {"type": "number", "label": "Earnings"},
            {"type": "number", "label": "Impressions"},
        ]
    ]
    for row in rows or []:
        data_map.append([dt.date.fromisoformat(str(row[0])), row[2], row[1], row[3]])
    return {"dataMap": data_map}


def is_data_zero_adsense(adsense_data: Dict[str, Any], datapoint: str, request_data: Optional[Dict[str, Any]]) -> bool:
    """True when the last-28-days totals hold no value above zero.

    Only the last 28 days qualify: new accounts, or accounts not showing ads,
    are the only ones with zero earnings over that range.
    """
    if not request_data or request_data.get("dateRange") != "last-28-days":
        return False
    totals = adsense_data.get("totals") or []
    return not any(_is_positive(total) for total in totals)


def _is_positive(value: Any) -> bool:
    try:
        return float(value) > 0
    except (TypeError, ValueError):
        return False


def is_adsense_connected_analytics(analytics: Module, *, adsense_active: bool, analytics_active: bool) -> bool:
    """Whether Analytics can report AdSense metrics for this site.

    Analytics answers ``400 INVALID_ARGUMENT`` for AdSense metrics when the
    two accounts are not linked; every other outcome counts as linked.
    """
    if not (adsense_active and analytics_active):
        return True
    try:
        analytics.get_data("report", dict(ANALYTICS_ADSENSE_REPORT_DEFAULTS))
    except SiteKitError as e:
        if e.status == 400 and e.code == "INVALID_ARGUMENT":
            return False
        logger.debug("AdSense link check ignored error %s: %s", e.code, e.message)
    return True
