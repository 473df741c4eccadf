"""Google Tag Manager module (Tag Manager API v2)."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List

from sitekit.exceptions import SiteKitError
from sitekit.modules.base import DataRequest, Module
from sitekit.storage.setting import LegacyKeysMixin, ModuleSettings

logger = logging.getLogger(__name__)

CREATE_NEW = "0"
USAGE_CONTEXT_WEB = "web"


class TagManagerSettings(LegacyKeysMixin, ModuleSettings):
    OPTION = "googlesitekit_tagmanager_settings"

    def register(self) -> None:
        super().register()
        self.register_legacy_keys_migration(
            {
                "account_id": "accountID",
                "accountId": "accountID",
                "container_id": "containerID",
                "containerId": "containerID",
                "ampContainerId": "ampContainerID",
            }
        )

    def get_default(self) -> Dict[str, Any]:
        return {
            "accountID": "",
            "containerID": "",
            "ampContainerID": "",
            "useSnippet": True,
        }


def sanitize_container_name(name: str) -> str:
    # Tag Manager rejects most punctuation in container names.
    cleaned = re.sub(r"[^\w\s\-.,]", "", name or "").strip()
    return cleaned or "Site Kit"


class TagManagerModule(Module):
    slug = "tagmanager"
    name = "Tag Manager"
    description = "Tag Manager creates an easy to manage way to create tags on your site without updating code."
    homepage = "https://tagmanager.google.com/"
    order = 6
    scopes = (
        "https://www.googleapis.com/auth/tagmanager.readonly",
        "https://www.googleapis.com/auth/tagmanager.edit.containers",
    )
    settings_class = TagManagerSettings
    services = {"tagmanager": ("tagmanager", "v2")}
    has_tag = True

    def is_connected(self) -> bool:
        settings = self.get_settings()
        return bool(settings.get("accountID") and settings.get("containerID"))

    def _accounts(self):
        return self.get_service("tagmanager").accounts()

    def list_accounts(self) -> List[Dict[str, Any]]:
        return self.call_api(self._accounts().list()).get("account", []) or []

    def list_containers(self, account_id: str) -> List[Dict[str, Any]]:
        resp = self.call_api(self._accounts().containers().list(parent=f"accounts/{account_id}"))
        return [
            c for c in resp.get("container", []) or []
            if USAGE_CONTEXT_WEB in (c.get("usageContext") or [USAGE_CONTEXT_WEB])
        ]

    def create_data_request(self, request: DataRequest) -> Any:
        route = request.route
        if route == "GET:accounts-containers":
            return lambda: self._accounts_containers(request.data.get("accountID"))
        if route == "GET:containers":
            request.require("accountID")
            return lambda: self.list_containers(str(request.data["accountID"]))
        if route == "GET:tag-permission":
            request.require("tag")
            return lambda: self._tag_permission(str(request.data["tag"]))
        if route == "POST:settings":
            request.require("accountID", "containerID")
            return lambda: self._save_selection(request.data)
        return super().create_data_request(request)

    def _accounts_containers(self, account_id) -> Dict[str, Any]:
        accounts = self.list_accounts()
        if not accounts:
            return {"accounts": [], "containers": []}
        account_id = str(account_id or accounts[0]["accountId"])
        return {"accounts": accounts, "containers": self.list_containers(account_id)}

    def _tag_permission(self, tag: str) -> Dict[str, Any]:
        for account in self.list_accounts():
            for container in self.list_containers(account["accountId"]):
                if container.get("publicId") == tag:
                    return {
                        "accountID": account["accountId"],
                        "containerID": tag,
                        "container": "publish",
                        "permission": True,
                    }
        raise SiteKitError(
            f"We've detected there's already an existing Tag Manager tag on your site ({tag}), "
            "but your account doesn't seem to have the necessary access to this container.",
            code="tag_manager_existing_tag_permission",
            status=403,
            data={"reason": "insufficientPermissions"},
        )

    def _save_selection(self, data: Dict[str, Any]) -> Dict[str, Any]:
        account_id = str(data["accountID"])
        container_id = str(data["containerID"])
        if container_id == CREATE_NEW:
            container = self.call_api(
                self._accounts().containers().create(
                    parent=f"accounts/{account_id}",
                    body={
                        "name": sanitize_container_name(self.context.site_name),
                        "usageContext": [USAGE_CONTEXT_WEB],
                    },
                )
            )
            container_id = container["publicId"]
            logger.info("Created Tag Manager container %s in account %s", container_id, account_id)
        return self.save_settings(
            {
                "accountID": account_id,
                "containerID": container_id,
                "ampContainerID": data.get("ampContainerID"),
                "useSnippet": data.get("useSnippet"),
            }
        )
