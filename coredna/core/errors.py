"""Error taxonomy and HTTP handlers.

Every error carries a machine-readable ``code`` so callers can tell an
"upgrade your tier" situation apart from an "add an API key" one.
"""

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from coredna.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500
    hint: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        hint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        if hint:
            self.hint = hint
        self.details: Dict[str, Any] = dict(details or {})
        self.request_id = request_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "hint": self.hint,
            "details": self.details,
        }


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class NoProviderConfiguredError(AppError):
    """No provider in the category has a usable credential."""
    code = "no_provider_configured"
    status_code = 424
    hint = "Add an API key for this category in Settings → API Keys."

    def __init__(self, category: str, provider_id: Optional[str] = None, **kwargs):
        if provider_id:
            message = f"Provider '{provider_id}' has no API key configured for {category}"
        else:
            message = f"No {category} provider configured"
        details = {"category": category, "provider_id": provider_id}
        details.update(kwargs.pop("details", None) or {})
        super().__init__(message, details=details, **kwargs)
        self.category = category
        self.provider_id = provider_id


class TierInsufficientError(AppError):
    code = "tier_insufficient"
    status_code = 403
    hint = "Upgrade your plan to unlock this engine or feature."

    def __init__(self, message: str, *, tier: str, required_tier: Optional[str] = None, **kwargs):
        details = {"tier": tier, "required_tier": required_tier}
        details.update(kwargs.pop("details", None) or {})
        super().__init__(message, details=details, **kwargs)
        self.tier = tier
        self.required_tier = required_tier


class QuotaExceededError(AppError):
    code = "quota_exceeded"
    status_code = 429
    hint = "Your monthly allowance resets on the first day of next month, or upgrade for more."

    def __init__(self, message: str, *, limit: int, used: Optional[int] = None, **kwargs):
        details = {"limit": limit, "used": used}
        details.update(kwargs.pop("details", None) or {})
        super().__init__(message, details=details, **kwargs)
        self.limit = limit
        self.used = used


class ProviderCallFailedError(AppError):
    code = "provider_call_failed"
    status_code = 502
    hint = "The provider rejected or failed the request. Check the API key and account quota, then try again."

    def __init__(self, provider_id: str, reason: str, **kwargs):
        details = {"provider_id": provider_id}
        details.update(kwargs.pop("details", None) or {})
        super().__init__(f"{provider_id} call failed: {reason}", details=details, **kwargs)
        self.provider_id = provider_id
        self.reason = reason


class GenerationUnavailableError(AppError):
    """No asset could be produced and no fallback exists for the category."""
    code = "generation_unavailable"
    status_code = 503
    hint = "Configure a provider for this category or try again later."

    def __init__(self, category: str, reason: str, **kwargs):
        details = {"category": category}
        details.update(kwargs.pop("details", None) or {})
        super().__init__(f"{category} generation unavailable: {reason}", details=details, **kwargs)
        self.category = category
        self.reason = reason


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str, hint: Optional[str] = None, details: Optional[dict] = None) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "hint": hint,
            "details": details or {},
            "request_id": request_id,
        },
        "detail": message,
    }


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid, exc.hint, exc.details)
    logger = logging.getLogger("coredna")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("coredna")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("coredna")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
