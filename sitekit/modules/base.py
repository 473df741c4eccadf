"""
Module base class.

A module integrates one Google service. It exposes named datapoints for GET
and POST; every request goes through three steps:

    create_data_request -> execute_data_request -> parse_data_response

`create_data_request` returns either a googleapiclient request (something
with `.execute()`), a zero-argument callable, or plain data. Execution honors
the client's deferral flag: while deferring, API requests come back
unexecuted so a caller can collect them (see `get_batch_data`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from googleapiclient.errors import HttpError

from sitekit.auth.oauth_client import OAuthClient
from sitekit.context import Context
from sitekit.exceptions import (
    GoogleOAuthError,
    InvalidDatapointError,
    MissingRequiredParamError,
    SiteKitError,
    error_from_http_error,
)
from sitekit.services.existing_tag import get_existing_tag
from sitekit.storage.options import Options
from sitekit.storage.setting import ModuleSettings

logger = logging.getLogger(__name__)


@dataclass
class DataRequest:
    method: str
    datapoint: str
    data: Dict[str, Any] = field(default_factory=dict)
    key: Optional[str] = None
    type: str = "modules"
    identifier: str = ""

    @property
    def route(self) -> str:
        return f"{self.method.upper()}:{self.datapoint}"

    def require(self, *names: str) -> None:
        for name in names:
            value = self.data.get(name)
            if value is None or value == "":
                raise MissingRequiredParamError(name)


class Module:
    slug = ""
    name = ""
    description = ""
    homepage = ""
    order = 10
    force_active = False
    depends_on: Tuple[str, ...] = ()
    scopes: Tuple[str, ...] = ()
    settings_class: Optional[Type[ModuleSettings]] = None
    # service identifier -> (discovery api name, version)
    services: Dict[str, Tuple[str, str]] = {}
    has_tag = False

    def __init__(self, context: Context, options: Options, oauth_client: Optional[OAuthClient] = None):
        self.context = context
        self.options = options
        self.oauth_client = oauth_client
        self.settings: Optional[ModuleSettings] = None
        if self.settings_class is not None:
            self.settings = self.settings_class(options)
            self.settings.register()
        self._services: Dict[str, Any] = {}

    def __repr__(self):
        return f"<{type(self).__name__}(slug={self.slug})>"

    # -----------------------------
    # State
    # -----------------------------
    def is_connected(self) -> bool:
        """Whether setup for the module has been completed."""
        return True

    def on_reset(self) -> None:
        if self.settings is not None:
            self.settings.delete()
        self._services.clear()

    def get_settings(self) -> Dict[str, Any]:
        return self.settings.get() if self.settings is not None else {}

    def to_dict(self, active: bool = False) -> Dict[str, Any]:
        return {
            "slug": self.slug,
            "name": self.name,
            "description": self.description,
            "homepage": self.homepage,
            "order": self.order,
            "forceActive": self.force_active,
            "dependencies": list(self.depends_on),
            "active": active,
            "connected": active and self.is_connected(),
        }

    # -----------------------------
    # Services
    # -----------------------------
    def get_client(self):
        if self.oauth_client is None:
            raise SiteKitError("Google client is not configured.", code="no_client", status=500)
        return self.oauth_client.get_client()

    def get_service(self, identifier: str):
        if identifier not in self._services:
            if identifier not in self.services:
                raise SiteKitError(f"Invalid service identifier {identifier}.", code="invalid_service")
            api, version = self.services[identifier]
            self._services[identifier] = self.get_client().build_service(api, version)
        return self._services[identifier]

    @staticmethod
    def call_api(request: Any) -> Any:
        """Execute a googleapiclient request, translating HTTP errors."""
        try:
            return request.execute()
        except HttpError as e:
            raise error_from_http_error(e) from e

    # -----------------------------
    # Data API
    # -----------------------------
    def get_data(self, datapoint: str, data: Optional[Dict[str, Any]] = None) -> Any:
        return self.execute_request(DataRequest("GET", datapoint, dict(data or {}), identifier=self.slug))

    def set_data(self, datapoint: str, data: Optional[Dict[str, Any]] = None) -> Any:
        return self.execute_request(DataRequest("POST", datapoint, dict(data or {}), identifier=self.slug))

    def execute_request(self, request: DataRequest) -> Any:
        prepared = self.create_data_request(request)
        response = self.execute_data_request(prepared)
        if self._is_api_request(response):
            return response
        return self.parse_data_response(request, response)

    def get_batch_data(self, requests: List[DataRequest]) -> Dict[str, Union[Any, SiteKitError, GoogleOAuthError]]:
        """Run several requests; each key maps to its result or its error.

        API requests are built while the client defers, then executed one by
        one so a failing request does not affect the others. An expired or
        revoked token fails each API request on its own as well.
        """
        results: Dict[str, Any] = {}
        prepared: List[Tuple[DataRequest, Any]] = []

        restore = self.get_client().with_defer(True) if self.oauth_client is not None else None
        try:
            for request in requests:
                try:
                    prepared.append((request, self.create_data_request(request)))
                except (SiteKitError, GoogleOAuthError) as e:
                    results[request.key or request.datapoint] = e
        finally:
            if restore is not None:
                restore()

        for request, item in prepared:
            key = request.key or request.datapoint
            try:
                response = self.call_api(item) if self._is_api_request(item) else self.execute_data_request(item)
                results[key] = self.parse_data_response(request, response)
            except (SiteKitError, GoogleOAuthError) as e:
                results[key] = e
        return results

    @staticmethod
    def _is_api_request(value: Any) -> bool:
        return hasattr(value, "execute") and callable(getattr(value, "execute"))

    def execute_data_request(self, prepared: Any) -> Any:
        if self._is_api_request(prepared):
            if self.oauth_client is not None and self.get_client().should_defer():
                return prepared
            return self.call_api(prepared)
        if callable(prepared):
            return prepared()
        return prepared

    def create_data_request(self, request: DataRequest) -> Any:
        route = request.route
        if route == "GET:settings" and self.settings is not None:
            return self.settings.get
        if route == "POST:settings" and self.settings is not None:
            return lambda: self.save_settings(request.data)
        if route == "GET:existing-tag" and self.has_tag:
            return lambda: get_existing_tag(self.slug, self.context.reference_site_url)
        raise InvalidDatapointError(request.datapoint)

    def parse_data_response(self, request: DataRequest, response: Any) -> Any:
        return response

    def save_settings(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if self.settings is None:
            raise InvalidDatapointError("settings")
        self.settings.merge(data)
        return self.settings.get()
