"""Module registry: available modules and which of them are active."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Type

from sitekit.auth.oauth_client import OAuthClient
from sitekit.context import Context
from sitekit.exceptions import InvalidModuleError, SiteKitError
from sitekit.modules.adsense import AdSenseModule
from sitekit.modules.analytics import AnalyticsModule
from sitekit.modules.base import Module
from sitekit.modules.optimize import OptimizeModule
from sitekit.modules.search_console import SearchConsoleModule
from sitekit.modules.tagmanager import TagManagerModule
from sitekit.storage.options import Options

logger = logging.getLogger(__name__)

OPTION_ACTIVE_MODULES = "googlesitekit_active_modules"

CORE_MODULES: List[Type[Module]] = [
    SearchConsoleModule,
    AdSenseModule,
    AnalyticsModule,
    OptimizeModule,
    TagManagerModule,
]


class Modules:
    def __init__(
        self,
        context: Context,
        options: Options,
        oauth_client: Optional[OAuthClient] = None,
        module_classes: Optional[Iterable[Type[Module]]] = None,
    ):
        self.context = context
        self.options = options
        self.oauth_client = oauth_client
        classes = list(module_classes) if module_classes is not None else CORE_MODULES
        modules = [cls(context, options, oauth_client) for cls in classes]
        modules.sort(key=lambda m: (m.order, m.slug))
        self._available: Dict[str, Module] = {m.slug: m for m in modules}

        if oauth_client is not None:
            for module in self.get_active_modules().values():
                oauth_client.add_module_scopes(module.scopes)

    # -----------------------------
    # Lookup
    # -----------------------------
    def get_available_modules(self) -> Dict[str, Module]:
        return dict(self._available)

    def get_module(self, slug: str) -> Module:
        try:
            return self._available[slug]
        except KeyError:
            raise InvalidModuleError(slug) from None

    def _stored_active_slugs(self) -> List[str]:
        value = self.options.get(OPTION_ACTIVE_MODULES, []) or []
        return [slug for slug in value if isinstance(slug, str)]

    def get_active_modules(self) -> Dict[str, Module]:
        stored = set(self._stored_active_slugs())
        return {
            slug: module
            for slug, module in self._available.items()
            if module.force_active or slug in stored
        }

    def is_module_active(self, slug: str) -> bool:
        return slug in self.get_active_modules()

    def get_module_dependants(self, slug: str) -> List[Module]:
        return [m for m in self._available.values() if slug in m.depends_on]

    # -----------------------------
    # Activation
    # -----------------------------
    def activate_module(self, slug: str) -> bool:
        module = self.get_module(slug)
        inactive = [dep for dep in module.depends_on if not self.is_module_active(dep)]
        if inactive:
            raise SiteKitError(
                f"Module cannot be activated because of inactive dependencies: {', '.join(inactive)}.",
                code="inactive_dependencies",
                status=500,
                data={"inactiveModules": inactive},
            )
        if self.is_module_active(slug):
            return True

        slugs = self._stored_active_slugs()
        slugs.append(slug)
        self.options.set(OPTION_ACTIVE_MODULES, slugs)
        if self.oauth_client is not None:
            self.oauth_client.add_module_scopes(module.scopes)
        logger.info("Activated module %s", slug)
        return True

    def deactivate_module(self, slug: str) -> bool:
        module = self.get_module(slug)
        if module.force_active:
            raise SiteKitError(
                f"Module {slug} is always active and cannot be deactivated.",
                code="module_force_active",
                status=500,
            )
        if not self.is_module_active(slug):
            return True

        for dependant in self.get_module_dependants(slug):
            if self.is_module_active(dependant.slug):
                self.deactivate_module(dependant.slug)

        slugs = [s for s in self._stored_active_slugs() if s != slug]
        self.options.set(OPTION_ACTIVE_MODULES, slugs)
        module.on_reset()
        logger.info("Deactivated module %s", slug)
        return True

    def to_list(self) -> List[dict]:
        active = self.get_active_modules()
        return [m.to_dict(active=slug in active) for slug, m in self._available.items()]
