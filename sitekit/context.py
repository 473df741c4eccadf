"""Site context: URLs and naming shared by modules and routes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode, urlparse

from sitekit.config import Config


@dataclass
class Context:
    site_url: str
    site_name: str = "Site Kit"
    admin_url: Optional[str] = None

    @classmethod
    def from_config(cls, config: Config) -> "Context":
        return cls(site_url=config.site_url, site_name=config.site_name, admin_url=config.admin_url)

    @property
    def reference_site_url(self) -> str:
        url = self.site_url.strip()
        if not url.startswith(("http://", "https://")):
            url = "https://" + url
        return url.rstrip("/") + "/"

    @property
    def hostname(self) -> str:
        return urlparse(self.reference_site_url).hostname or ""

    def get_admin_url(self, page: str = "googlesitekit-dashboard", params: Optional[Dict[str, Any]] = None) -> str:
        base = self.admin_url or self.reference_site_url + "admin/"
        query = urlencode({"page": page, **(params or {})})
        sep = "&" if "?" in base else "?"
        return f"{base}{sep}{query}"

    def get_reauth_url(self, slug: str, status: bool = False) -> str:
        params = {"slug": slug, "reAuth": "true" if status else "false"}
        return self.get_admin_url("googlesitekit-dashboard", params)
