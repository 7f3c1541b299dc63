# washdesk/web/orders.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import RedirectResponse
from pydantic import ValidationError

from ..config import DEFAULT_SERVICES
from ..db import ADMIN_SETTABLE_STATUSES
from ..schemas import BookingForm
from ..utils import parse_price
from .common import get_store, is_admin, login_required, message_page, render

logger = logging.getLogger(__name__)

services_router = APIRouter(tags=["Services"])
orders_router = APIRouter(tags=["Orders"])
billing_router = APIRouter(tags=["Billing"])
support_router = APIRouter(tags=["Support"])


def _can_access(user: dict[str, Any], order: dict[str, Any]) -> bool:
    return order.get("user_email") == user.get("email") or is_admin(user)


def _not_authorized(request: Request):
    return message_page(request, "Access Denied", "Not authorized.", "error", status_code=status.HTTP_403_FORBIDDEN)


def _parse_pickup(value: str | None) -> datetime | None:
    if not value or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError:
        return None


# ------------------------
# Booking
# ------------------------
@services_router.get("")
async def services_index():
    return RedirectResponse("/services/book", status.HTTP_303_SEE_OTHER)


@services_router.get("/book")
async def book_page(request: Request, user: dict = Depends(login_required)):
    services = await get_store(request).list_services()
    if not services:
        services = [dict(item) for item in DEFAULT_SERVICES]
    return render(request, "services.html", {"title": "Book Service", "services": services, "user": user})


async def _bookable_service(store, service_id: str) -> dict[str, Any] | None:
    """Catalog entry for ``service_id``; the built-in catalog only counts while the store has none."""
    if not service_id:
        return None
    service = await store.find_service_by_key(service_id)
    if service is None and not await store.list_services():
        service = next((dict(item) for item in DEFAULT_SERVICES if item["id"] == service_id), None)
    return service


@services_router.post("/book")
async def book_submit(
    request: Request,
    service_id: str = Form(""),
    pickup_date: str = Form(""),
    notes: str = Form(""),
    user: dict = Depends(login_required),
):
    store = get_store(request)
    service_id = service_id.strip()
    service = await _bookable_service(store, service_id)
    form = None
    if service is not None:
        try:
            form = BookingForm(
                service_id=service_id,
                service_name=(service.get("name") or "").strip(),
                pickup_date=pickup_date or None,
                notes=notes,
                price=parse_price(service.get("price")),
            )
        except ValidationError as exc:
            logger.warning("Service %s cannot be booked: %s", service_id, exc)
    if form is None:
        return message_page(
            request,
            "Booking Failed",
            "Please choose a service to book.",
            "error",
            redirect_url="/services/book",
            button_text="Back",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    now = datetime.now()
    order_id = await store.insert_order(
        {
            "user_email": user["email"],
            "user_id": user.get("user_id"),
            "service_id": form.service_id,
            "service_name": form.service_name,
            "pickup_date": _parse_pickup(form.pickup_date),
            "notes": form.notes,
            "price": parse_price(form.price),
            "status": "pending",
            "payment_status": "unpaid",
            "created_at": now,
            "updated_at": now,
        }
    )
    logger.info("Order %s booked by %s (%s)", order_id, user["email"], form.service_name)
    return message_page(
        request,
        "Booking Confirmed",
        f"Your booking for {form.service_name} has been created. Order ID: {order_id}",
        "success",
        redirect_url="/orders/my",
        button_text="View My Orders",
    )


# ------------------------
# Orders
# ------------------------
@orders_router.get("/my")
async def my_orders(request: Request, user: dict = Depends(login_required)):
    orders = await get_store(request).list_orders(user_email=user["email"])
    return render(request, "orders.html", {"title": "My Orders", "orders": orders, "user": user})


@orders_router.get("/{order_id}")
async def order_detail(request: Request, order_id: str, user: dict = Depends(login_required)):
    order = await get_store(request).get_order(order_id)
    if not order:
        return message_page(
            request, "Not Found", "Order not found.", "error",
            redirect_url="/orders/my", button_text="Back to Orders",
        )
    if not _can_access(user, order):
        return _not_authorized(request)
    return render(
        request,
        "order_detail.html",
        {"title": f"Order {order_id}", "order": order, "user": user, "settable_statuses": ADMIN_SETTABLE_STATUSES},
    )


@orders_router.post("/cancel/{order_id}")
async def order_cancel(request: Request, order_id: str, user: dict = Depends(login_required)):
    store = get_store(request)
    order = await store.get_order(order_id)
    if not order:
        return message_page(
            request, "Not Found", "Order not found.", "error",
            redirect_url="/orders/my", button_text="Back",
        )
    if not _can_access(user, order):
        return _not_authorized(request)

    await store.update_order(order_id, {"status": "cancelled", "updated_at": datetime.now()})
    logger.info("Order %s cancelled by %s", order_id, user["email"])
    return message_page(
        request,
        "Order Cancelled",
        "Order has been cancelled.",
        "success",
        redirect_url="/orders/my",
        button_text="Back to Orders",
    )


@orders_router.post("/{order_id}/status")
async def order_set_status(
    request: Request,
    order_id: str,
    new_status: str = Form("", alias="status"),
    user: dict = Depends(login_required),
):
    if not is_admin(user):
        return message_page(
            request,
            "Access Denied",
            "Only admins can update order status.",
            "error",
            redirect_url="/orders/my",
            button_text="Back",
            status_code=status.HTTP_403_FORBIDDEN,
        )
    if new_status not in ADMIN_SETTABLE_STATUSES:
        return message_page(
            request, "Invalid Status", "Invalid status value.", "error",
            redirect_url="/orders/my", button_text="Back",
        )

    found = await get_store(request).update_order(order_id, {"status": new_status, "updated_at": datetime.now()})
    if not found:
        return message_page(
            request, "Not Found", "Order not found.", "error",
            redirect_url="/orders/my", button_text="Back",
        )
    logger.info("Order %s set to %s by %s", order_id, new_status, user["email"])
    return message_page(
        request,
        "Status Updated",
        f"Order status updated to {new_status}.",
        "success",
        redirect_url=f"/orders/{order_id}",
        button_text="View Order",
    )


# ------------------------
# Billing
# ------------------------
@billing_router.get("")
async def billing_page(request: Request, user: dict = Depends(login_required)):
    store = get_store(request)
    payments = await store.list_payments(user_email=user["email"])
    orders = await store.list_orders(user_email=user["email"])
    return render(
        request,
        "billing.html",
        {"title": "Billing & Payments", "payments": payments, "orders": orders, "user": user},
    )


@billing_router.post("/pay/{order_id}")
async def billing_pay(
    request: Request,
    order_id: str,
    method: str = Form("card"),
    user: dict = Depends(login_required),
):
    store = get_store(request)
    order = await store.get_order(order_id)
    if not order:
        return message_page(
            request, "Not Found", "Order not found.", "error",
            redirect_url="/billing", button_text="Back",
        )
    if not _can_access(user, order):
        return _not_authorized(request)
    if order.get("payment_status") == "paid":
        return message_page(
            request, "Already Paid", "This order has already been paid.", "info",
            redirect_url="/billing", button_text="Back to Billing",
        )

    now = datetime.now()
    await store.insert_payment(
        {
            "order_id": order["_id"],
            "user_email": user["email"],
            "amount": order.get("price") or 0,
            "method": method or "card",
            "status": "completed",
            "created_at": now,
        }
    )
    await store.update_order(order_id, {"payment_status": "paid", "status": "processing", "updated_at": now})
    logger.info("Payment recorded for order %s by %s", order_id, user["email"])
    return message_page(
        request,
        "Payment Success",
        "Payment processed successfully.",
        "success",
        redirect_url="/billing",
        button_text="Back to Billing",
    )


# ------------------------
# Support
# ------------------------
@support_router.get("")
async def support_page(request: Request, user: dict = Depends(login_required)):
    tickets = await get_store(request).list_tickets(user_email=user["email"])
    return render(request, "support.html", {"title": "Contact Support", "tickets": tickets, "user": user})


@support_router.post("/ticket")
async def support_submit(
    request: Request,
    subject: str = Form(""),
    message: str = Form(""),
    user: dict = Depends(login_required),
):
    await get_store(request).insert_ticket(
        {
            "user_email": user["email"],
            "subject": subject.strip() or "Support Request",
            "message": message,
            "status": "open",
            "responses": [],
            "created_at": datetime.now(),
        }
    )
    logger.info("Support ticket opened by %s", user["email"])
    return message_page(
        request,
        "Ticket Submitted",
        "Your support ticket has been created.",
        "success",
        redirect_url="/support",
        button_text="Back to Support",
    )


__all__ = ["billing_router", "orders_router", "services_router", "support_router"]
