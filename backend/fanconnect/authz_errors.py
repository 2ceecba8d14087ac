# fanconnect/authz_errors.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fanconnect.errors import FanConnectError

logger = logging.getLogger(__name__)


def _wants_html(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    # browsers usually send text/html
    return "text/html" in accept


def _detail_code(detail) -> str | None:
    if isinstance(detail, dict):
        code = detail.get("code")
        if isinstance(code, str):
            return code
    return None


def _upsell_redirect(request: Request, detail) -> RedirectResponse | None:
    """Browser hitting gated content -> the creator's subscribe page."""
    if not _wants_html(request) or _detail_code(detail) != "SUBSCRIPTION_REQUIRED":
        return None
    creator_id = detail.get("creator_id") if isinstance(detail, dict) else None
    if not creator_id:
        return None
    return RedirectResponse(url=f"/creators/{creator_id}/subscribe", status_code=303)


async def domain_exception_handler(request: Request, exc: FanConnectError):
    detail = exc.as_detail()
    if exc.status_code >= 500:
        logger.warning("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.code)

    redirect = _upsell_redirect(request, detail) if exc.status_code == 403 else None
    if redirect is not None:
        return redirect

    headers = {"Retry-After": "5"} if exc.code == "STORE_UNAVAILABLE" else None
    return JSONResponse(status_code=exc.status_code, content={"detail": detail}, headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 403:
        redirect = _upsell_redirect(request, exc.detail)
        if redirect is not None:
            return redirect

    # Everything else: normal JSON
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FanConnectError, domain_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
