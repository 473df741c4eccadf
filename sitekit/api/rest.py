from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from sitekit.db.session import get_db
from sitekit.exceptions import (
    GoogleOAuthError,
    InactiveModuleError,
    InvalidDatapointError,
    SiteKitError,
)
from sitekit.modules.base import DataRequest
from sitekit.plugin import Plugin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/googlesitekit/v1", tags=["googlesitekit"])
oauth_router = APIRouter(prefix="/googlesitekit/oauth", tags=["oauth"])

TYPE_CORE = "core"
TYPE_MODULES = "modules"


# ---------------------------
# Pydantic Schemas
# ---------------------------


class DataBody(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)


class BatchItem(BaseModel):
    key: str
    type: str = TYPE_MODULES
    identifier: str
    datapoint: str
    method: str = "GET"
    data: Dict[str, Any] = Field(default_factory=dict)


class BatchBody(BaseModel):
    requests: List[BatchItem]


# ---------------------------
# Dependencies / helpers
# ---------------------------


def get_plugin(db: Session = Depends(get_db)) -> Plugin:
    return Plugin(db)


def _query_data(request: Request) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        data[key] = values if len(values) > 1 else values[0]
    return data


def _success() -> Dict[str, Any]:
    return {"success": True}


def handle_core_request(plugin: Plugin, identifier: str, datapoint: str, method: str, data: Dict[str, Any]) -> Any:
    route = f"{method.upper()}:{identifier}/{datapoint}"
    modules = plugin.modules

    if route == "GET:modules/list":
        return modules.to_list()
    if route == "GET:modules/info":
        req = DataRequest(method, datapoint, data, type=TYPE_CORE, identifier=identifier)
        req.require("slug")
        slug = str(data["slug"])
        return modules.get_module(slug).to_dict(active=modules.is_module_active(slug))
    if route == "POST:modules/activation":
        req = DataRequest(method, datapoint, data, type=TYPE_CORE, identifier=identifier)
        req.require("slug", "active")
        slug = str(data["slug"])
        if data["active"] in (True, "true", "1", 1):
            modules.activate_module(slug)
        else:
            modules.deactivate_module(slug)
        return _success()
    if route == "GET:user/authentication":
        return plugin.oauth_client.get_status()
    if route == "POST:user/disconnect":
        plugin.oauth_client.revoke_token()
        return _success()
    if route == "POST:site/reset":
        plugin.reset.all()
        return {**_success(), "redirectURL": plugin.context.get_admin_url("googlesitekit-splash")}
    raise InvalidDatapointError(datapoint)


def handle_module_request(plugin: Plugin, identifier: str, datapoint: str, method: str, data: Dict[str, Any]) -> Any:
    module = plugin.modules.get_module(identifier)
    if datapoint != "settings" and not plugin.modules.is_module_active(identifier):
        raise InactiveModuleError(identifier)
    return module.execute_request(DataRequest(method.upper(), datapoint, data, identifier=identifier))


def handle_request(plugin: Plugin, type_: str, identifier: str, datapoint: str, method: str, data: Dict[str, Any]) -> Any:
    if type_ == TYPE_CORE:
        return handle_core_request(plugin, identifier, datapoint, method, data)
    if type_ == TYPE_MODULES:
        return handle_module_request(plugin, identifier, datapoint, method, data)
    raise SiteKitError(f"No route for type {type_}.", code="rest_no_route", status=404)


# ---------------------------
# Endpoints
# ---------------------------


@router.get("/{type_}/{identifier}/data/{datapoint}")
def get_datapoint(type_: str, identifier: str, datapoint: str, request: Request, plugin: Plugin = Depends(get_plugin)):
    return handle_request(plugin, type_, identifier, datapoint, "GET", _query_data(request))


@router.post("/{type_}/{identifier}/data/{datapoint}")
def set_datapoint(
    type_: str,
    identifier: str,
    datapoint: str,
    body: Optional[DataBody] = None,
    plugin: Plugin = Depends(get_plugin),
):
    return handle_request(plugin, type_, identifier, datapoint, "POST", (body.data if body else {}))


@router.post("/data")
def batch(body: BatchBody, plugin: Plugin = Depends(get_plugin)) -> Dict[str, Any]:
    """Run several datapoint requests; each key maps to a result or an error payload.

    Module requests are grouped per module and run through the module's
    batch path; one failing request never fails the others.
    """
    results: Dict[str, Any] = {}
    grouped: "OrderedDict[str, List[DataRequest]]" = OrderedDict()

    for item in body.requests:
        try:
            if item.type == TYPE_MODULES:
                module = plugin.modules.get_module(item.identifier)
                if item.datapoint != "settings" and not plugin.modules.is_module_active(item.identifier):
                    raise InactiveModuleError(item.identifier)
                grouped.setdefault(module.slug, []).append(
                    DataRequest(item.method.upper(), item.datapoint, dict(item.data), key=item.key, identifier=module.slug)
                )
            else:
                results[item.key] = handle_request(
                    plugin, item.type, item.identifier, item.datapoint, item.method, dict(item.data)
                )
        except (SiteKitError, GoogleOAuthError) as e:
            results[item.key] = e.to_dict()

    for slug, requests in grouped.items():
        module = plugin.modules.get_module(slug)
        for key, value in module.get_batch_data(requests).items():
            results[key] = value.to_dict() if isinstance(value, (SiteKitError, GoogleOAuthError)) else value

    return {item.key: results.get(item.key) for item in body.requests}


@oauth_router.get("/authorize")
def authorize(redirect: Optional[str] = Query(None), plugin: Plugin = Depends(get_plugin)):
    if not plugin.config.has_oauth_credentials:
        raise SiteKitError(
            "OAuth client credentials are not configured.",
            code="oauth_credentials_not_exist",
            status=400,
        )
    url = plugin.oauth_client.get_authentication_url(redirect)
    return RedirectResponse(url, status_code=302)


@oauth_router.get("/callback")
def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    plugin: Plugin = Depends(get_plugin),
):
    context = plugin.context
    if error:
        logger.warning("OAuth authorization denied: %s", error)
        plugin.options.set("googlesitekit_error_code", error)
        return RedirectResponse(context.get_admin_url("googlesitekit-splash", {"error": error}), status_code=302)
    try:
        redirect_url = plugin.oauth_client.authorize_user(code or "", state)
    except (GoogleOAuthError, ValueError) as e:
        reason = e.error if isinstance(e, GoogleOAuthError) else "invalid_code"
        logger.warning("OAuth callback failed: %s", reason)
        return RedirectResponse(context.get_admin_url("googlesitekit-splash", {"error": reason}), status_code=302)

    target = redirect_url or context.get_admin_url(
        "googlesitekit-dashboard", {"notification": "authentication_success"}
    )
    return RedirectResponse(target, status_code=302)


# ---------------------------
# Error handlers
# ---------------------------


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(SiteKitError)
    async def _sitekit_error(request: Request, exc: SiteKitError):
        if exc.status >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(exc.to_dict(), status_code=exc.status)

    @app.exception_handler(GoogleOAuthError)
    async def _oauth_error(request: Request, exc: GoogleOAuthError):
        return JSONResponse(exc.to_dict(), status_code=401)
