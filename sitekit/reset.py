"""Site reset: forget every stored credential, setting and module state."""

from __future__ import annotations

import logging

from sitekit.modules.registry import Modules
from sitekit.storage.options import Options

logger = logging.getLogger(__name__)

OPTION_PREFIX = "googlesitekit"


class Reset:
    def __init__(self, options: Options, modules: Modules):
        self.options = options
        self.modules = modules

    def all(self) -> int:
        """Delete every ``googlesitekit*`` option and reset each module."""
        for module in self.modules.get_available_modules().values():
            module.on_reset()
        deleted = self.options.delete_prefixed(OPTION_PREFIX)
        logger.warning("Site Kit reset: %s option(s) removed", deleted)
        return deleted
