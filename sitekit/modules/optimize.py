"""Google Optimize module: settings only, placed on top of Analytics."""

from __future__ import annotations

import json
import re
from typing import Any, Dict

from sitekit.exceptions import InvalidParamError
from sitekit.modules.base import DataRequest, Module
from sitekit.storage.setting import LegacyKeysMixin, ModuleSettings

OPTIMIZE_ID_RE = re.compile(r"^(GTM|OPT)-[A-Z0-9]+$")


class OptimizeSettings(LegacyKeysMixin, ModuleSettings):
    OPTION = "googlesitekit_optimize_settings"

    def register(self) -> None:
        super().register()
        self.register_legacy_keys_migration(
            {
                "AMPExperimentJson": "ampExperimentJSON",
                "ampExperimentJson": "ampExperimentJSON",
                "optimize_id": "optimizeID",
                "optimizeId": "optimizeID",
            }
        )

    def get_default(self) -> Dict[str, Any]:
        return {
            "ampExperimentJSON": "",
            "optimizeID": "",
        }


def validate_optimize_settings(data: Dict[str, Any]) -> None:
    optimize_id = data.get("optimizeID")
    if optimize_id is not None and not OPTIMIZE_ID_RE.match(str(optimize_id)):
        raise InvalidParamError(
            f"Invalid Optimize container ID: {optimize_id}.",
            data={"param": "optimizeID"},
        )
    experiment = data.get("ampExperimentJSON")
    if experiment:
        if not isinstance(experiment, str):
            return
        try:
            json.loads(experiment)
        except ValueError as e:
            raise InvalidParamError(
                "AMP experiment JSON is not valid JSON.",
                data={"param": "ampExperimentJSON"},
            ) from e


class OptimizeModule(Module):
    slug = "optimize"
    name = "Optimize"
    description = "Create free A/B tests that help you drive metric-based design solutions to your site."
    homepage = "https://optimize.google.com/optimize/home/"
    order = 5
    depends_on = ("analytics",)
    settings_class = OptimizeSettings

    def is_connected(self) -> bool:
        return bool(self.get_settings().get("optimizeID"))

    def create_data_request(self, request: DataRequest) -> Any:
        if request.route == "POST:settings":
            request.require("optimizeID")
            validate_optimize_settings(request.data)
        return super().create_data_request(request)
