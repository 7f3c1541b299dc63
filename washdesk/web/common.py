from __future__ import annotations

import logging
from pathlib import Path
from typing import Any
from urllib.parse import quote

from fastapi import HTTPException, Request, status
from fastapi.templating import Jinja2Templates

from ..config import CURRENCY_SYMBOL
from ..db import ORDER_STATUSES, Store
from ..logging_utils import redact
from ..mailer import Mailer
from ..utils import format_amount, format_datetime

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["money"] = format_amount
templates.env.filters["dt"] = format_datetime


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def session_user(request: Request) -> dict[str, Any] | None:
    return request.session.get("user")


def is_admin(user: dict[str, Any] | None) -> bool:
    return bool(user) and user.get("role") == "admin"


def flash(request: Request, text: str, category: str = "success") -> None:
    messages = request.session.get("messages") or []
    messages.append({"text": text, "category": category})
    request.session["messages"] = messages


def render(
    request: Request,
    template_name: str,
    context: dict[str, Any] | None = None,
    status_code: int = 200,
):
    ctx = {
        "messages": request.session.pop("messages", []),
        "current_user": session_user(request),
        "currency": CURRENCY_SYMBOL,
        "order_statuses": ORDER_STATUSES,
    }
    if context:
        ctx.update(context)
    return templates.TemplateResponse(request, template_name, ctx, status_code=status_code)


def message_page(
    request: Request,
    title: str,
    message: str,
    kind: str = "info",
    redirect_url: str = "/",
    button_text: str = "Home",
    status_code: int = 200,
):
    return render(
        request,
        "message.html",
        {
            "title": title,
            "message": message,
            "type": kind,
            "redirect_url": redirect_url,
            "button_text": button_text,
        },
        status_code=status_code,
    )


def log_failure(request: Request, action: str, exc: BaseException, form: dict[str, Any] | None = None) -> None:
    logger.error(
        "%s failed | %s %s | params=%s | query=%s | body=%s",
        action,
        request.method,
        request.url.path,
        dict(request.path_params),
        dict(request.query_params),
        redact(form),
        exc_info=exc,
    )


def login_required(request: Request) -> dict[str, Any]:
    user = session_user(request)
    if user:
        return user
    message = quote("Please log in to continue.")
    raise HTTPException(
        status.HTTP_303_SEE_OTHER,
        headers={"Location": f"/users/login?message={message}"},
    )


def admin_required(request: Request) -> dict[str, Any]:
    user = session_user(request)
    if not is_admin(user):
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail="Access denied.")
    return user


__all__ = [
    "admin_required",
    "flash",
    "get_mailer",
    "get_store",
    "is_admin",
    "log_failure",
    "login_required",
    "message_page",
    "render",
    "session_user",
    "templates",
]
