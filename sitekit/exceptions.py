"""Error types shared by modules, the REST layer and the CLI.

Every error carries a machine-readable `code`, a human message, the HTTP
status the REST layer should answer with and optional extra `data` (the
Google API `reason`, for instance).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class SiteKitError(Exception):
    code = "sitekit_error"
    status = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status
        self.data: Dict[str, Any] = dict(data or {})

    @property
    def reason(self) -> Optional[str]:
        return self.data.get("reason")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "data": {**self.data, "status": self.status},
        }


class InvalidDatapointError(SiteKitError):
    code = "invalid_datapoint"
    status = 400

    def __init__(self, datapoint: str = ""):
        super().__init__(f"Invalid datapoint: {datapoint}" if datapoint else "Invalid datapoint.")


class MissingRequiredParamError(SiteKitError):
    code = "missing_required_param"
    status = 400

    def __init__(self, param: str):
        super().__init__(f"Request parameter is empty: {param}.", data={"param": param})


class InvalidParamError(SiteKitError):
    code = "invalid_param"
    status = 400


class InvalidModuleError(SiteKitError):
    code = "invalid_module"
    status = 404

    def __init__(self, slug: str):
        super().__init__(f"Invalid module slug {slug}.", data={"slug": slug})


class InactiveModuleError(SiteKitError):
    code = "module_not_active"
    status = 403

    def __init__(self, slug: str):
        super().__init__(f"Module must be active to request data: {slug}.", data={"slug": slug})


class GoogleOAuthError(Exception):
    """Raised when the token endpoint answers with an `error` field.

    The message is the OAuth error code itself (e.g. ``invalid_grant``).
    """

    def __init__(self, error: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(error)
        self.error = error
        self.data = dict(data or {})

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.error, "message": str(self), "data": {**self.data, "status": 401}}


def error_from_http_error(exc: Exception) -> SiteKitError:
    """Translate a googleapiclient `HttpError` into a SiteKitError.

    The Google error body looks like::

        {"error": {"code": 403, "message": "...", "status": "PERMISSION_DENIED",
                   "errors": [{"reason": "insufficientPermissions", ...}]}}
    """
    status = getattr(getattr(exc, "resp", None), "status", None) or 500
    content = getattr(exc, "content", b"") or b""
    if isinstance(content, bytes):
        content = content.decode("utf-8", "replace")

    message = str(exc)
    reason = None
    code: Any = status
    try:
        body = json.loads(content) if content else {}
    except ValueError:
        body = {}
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict):
        message = err.get("message") or message
        code = err.get("status") or err.get("code") or status
        errors = err.get("errors") or []
        if errors and isinstance(errors[0], dict):
            reason = errors[0].get("reason")
        if reason is None:
            for detail in err.get("details") or []:
                if isinstance(detail, dict) and detail.get("reason"):
                    reason = detail["reason"]
                    break

    data: Dict[str, Any] = {}
    if reason:
        data["reason"] = reason
    logger.debug("Google API error %s (%s): %s", code, reason, message)
    return SiteKitError(message, code=str(code), status=int(status), data=data)
