from __future__ import annotations

import asyncio
import logging
import traceback
from html import escape

from fastapi import FastAPI, Request, status
from fastapi.responses import HTMLResponse, PlainTextResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException
from starlette.middleware.sessions import SessionMiddleware

from ..config import SESSION_MAX_AGE, SESSION_SECRET, SHOW_STACK
from ..db import Store, StoreError
from ..mailer import Mailer
from .accounts import password_router, users_router
from .admin import admin_router
from .common import STATIC_DIR, log_failure, message_page, render
from .orders import billing_router, orders_router, services_router, support_router
from .reports import reports_router

logger = logging.getLogger(__name__)

FORM_BODY_KEY = "washdesk.form_body"
FORM_CONTENT_TYPES = (b"application/x-www-form-urlencoded", b"multipart/form-data")


class FormBodyRecorder:
    """Keep a copy of form request bodies in the scope for the error handlers."""

    def __init__(self, app) -> None:
        self.app = app

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] != "http" or not _is_form(scope):
            await self.app(scope, receive, send)
            return
        chunks: list[bytes] = []

        async def recording_receive():
            message = await receive()
            if message["type"] == "http.request":
                chunks.append(message.get("body", b""))
                scope[FORM_BODY_KEY] = b"".join(chunks)
            return message

        await self.app(scope, recording_receive, send)


def _is_form(scope) -> bool:
    content_type = dict(scope.get("headers") or []).get(b"content-type", b"")
    return content_type.lower().startswith(FORM_CONTENT_TYPES)


async def request_form(request: Request) -> dict:
    """Form fields of the failed request, parsed from the recorded body."""
    body = request.scope.get(FORM_BODY_KEY)
    if not body:
        return {}

    async def replay():
        return {"type": "http.request", "body": body, "more_body": False}

    try:
        form = await Request(request.scope, replay).form()
    except (MultiPartException, StarletteHTTPException, ValueError) as exc:
        logger.warning("Could not parse form body for error log: %s", exc)
        return {}
    return {key: value for key, value in form.multi_items()}


async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.headers and "Location" in exc.headers:
        return Response(status_code=exc.status_code, headers=exc.headers)
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return render(
            request,
            "404.html",
            {"title": "Page Not Found", "message": exc.detail if exc.detail != "Not Found" else "The page you requested could not be found."},
            status_code=404,
        )
    if exc.status_code == status.HTTP_403_FORBIDDEN:
        return message_page(
            request, "Access Denied", str(exc.detail or "Access denied."), "error", status_code=403
        )
    return message_page(request, "Error", str(exc.detail), "error", status_code=exc.status_code)


async def _store_error_handler(request: Request, exc: StoreError):
    log_failure(request, "Database operation", exc, await request_form(request))
    return message_page(
        request,
        "Error",
        "Something went wrong while loading your data. Please try again later.",
        "error",
        status_code=500,
    )


async def _unhandled_error_handler(request: Request, exc: Exception):
    log_failure(request, "Request", exc, await request_form(request))
    if SHOW_STACK:
        trace = escape("".join(traceback.format_exception(exc)))
        return HTMLResponse(
            f"<!doctype html><html><head><meta charset='utf-8'><title>Server Error</title></head>"
            f"<body><h1>Server Error</h1><pre>{trace}</pre></body></html>",
            status_code=500,
        )
    try:
        return render(
            request,
            "500.html",
            {"title": "Server Error", "message": "An unexpected error occurred. Please try again later."},
            status_code=500,
        )
    except Exception:
        return PlainTextResponse("Internal Server Error", status_code=500)


def create_app(store: Store | None = None, mailer: Mailer | None = None) -> FastAPI:
    app = FastAPI(title="Washdesk", docs_url=None, redoc_url=None)
    app.state.store = store if store is not None else Store()
    app.state.mailer = mailer if mailer is not None else Mailer()

    app.add_middleware(
        SessionMiddleware,
        secret_key=SESSION_SECRET,
        max_age=SESSION_MAX_AGE,
        same_site="lax",
    )
    app.add_middleware(FormBodyRecorder)
    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(StoreError, _store_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    @app.on_event("startup")
    async def _startup() -> None:  # pragma: no cover - io side effect
        try:
            # 5-second timeout so a missing database does not block startup
            created = await asyncio.wait_for(app.state.store.ensure_schema(), timeout=5)
            logger.info("Connected to MongoDB; created collections: %s", created or "none")
        except (StoreError, asyncio.TimeoutError) as exc:
            logger.error("MongoDB schema check failed: %s", exc)

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # pragma: no cover - io side effect
        close = getattr(app.state.store, "close", None)
        if close:
            close()

    @app.get("/", name="home")
    async def home(request: Request):
        return render(request, "index.html", {"title": "Home Page"})

    @app.get("/about")
    async def about(request: Request):
        return render(request, "about.html", {"title": "About Us"})

    @app.get("/contact")
    async def contact(request: Request):
        return render(request, "contact.html", {"title": "Contact Us"})

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    app.include_router(users_router, prefix="/users")
    app.include_router(password_router, prefix="/password")
    app.include_router(services_router, prefix="/services")
    app.include_router(orders_router, prefix="/orders")
    app.include_router(billing_router, prefix="/billing")
    app.include_router(support_router, prefix="/support")
    app.include_router(reports_router, prefix="/admin/reports")
    app.include_router(admin_router, prefix="/admin")

    return app


__all__ = ["create_app"]
