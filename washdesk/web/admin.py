# washdesk/web/admin.py
from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Form, Query, Request, status
from fastapi.responses import RedirectResponse
from pydantic import ValidationError

from ..db import ORDER_STATUSES
from ..schemas import ServiceForm
from ..utils import parse_price
from .common import admin_required, flash, get_store, message_page, render

logger = logging.getLogger(__name__)

admin_router = APIRouter(tags=["Admin"])

SERVICES_URL = "/admin/manage-services"


def _back_to_orders() -> RedirectResponse:
    return RedirectResponse("/admin/orders", status.HTTP_303_SEE_OTHER)


def _order_not_found(request: Request):
    return message_page(
        request, "Not Found", "Order not found.", "error",
        redirect_url="/admin/orders", button_text="Back",
    )


@admin_router.get("")
async def admin_index():
    return RedirectResponse("/users/admin", status.HTTP_303_SEE_OTHER)


# ===== Orders / payments / support =====

@admin_router.get("/orders")
async def admin_orders(request: Request, admin: dict = Depends(admin_required)):
    orders = await get_store(request).list_orders()
    return render(request, "admin_orders.html", {"title": "Manage Orders", "orders": orders})


@admin_router.get("/payments")
async def admin_payments(request: Request, admin: dict = Depends(admin_required)):
    payments = await get_store(request).list_payments()
    return render(request, "admin_payments.html", {"title": "Payments", "payments": payments})


@admin_router.get("/support")
async def admin_support(request: Request, admin: dict = Depends(admin_required)):
    tickets = await get_store(request).list_tickets()
    return render(request, "admin_support.html", {"title": "Support Tickets", "tickets": tickets})


@admin_router.post("/orders/{order_id}/status")
async def admin_order_status(
    request: Request,
    order_id: str,
    new_status: str = Form("", alias="status"),
    admin: dict = Depends(admin_required),
):
    if new_status not in ORDER_STATUSES:
        flash(request, "Invalid status value.", "error")
        return _back_to_orders()
    if not await get_store(request).update_order(order_id, {"status": new_status, "updated_at": datetime.now()}):
        return _order_not_found(request)
    logger.info("Admin %s set order %s to %s", admin.get("email"), order_id, new_status)
    flash(request, f"Order status updated to {new_status}.")
    return _back_to_orders()


@admin_router.post("/orders/{order_id}/complete")
async def admin_order_complete(request: Request, order_id: str, admin: dict = Depends(admin_required)):
    if not await get_store(request).update_order(order_id, {"status": "completed", "updated_at": datetime.now()}):
        return _order_not_found(request)
    logger.info("Admin %s completed order %s", admin.get("email"), order_id)
    flash(request, "Order marked as completed.")
    return _back_to_orders()


@admin_router.post("/orders/{order_id}/refund")
async def admin_order_refund(
    request: Request,
    order_id: str,
    amount: str = Form(""),
    admin: dict = Depends(admin_required),
):
    store = get_store(request)
    order = await store.get_order(order_id)
    if not order:
        return _order_not_found(request)

    refund_amount = parse_price(amount) or parse_price(order.get("price"))
    now = datetime.now()
    await store.insert_payment(
        {
            "order_id": order["_id"],
            "user_email": order.get("user_email"),
            "amount": -abs(refund_amount),
            "method": "refund",
            "status": "refunded",
            "created_at": now,
            "refunded_by": admin.get("email"),
        }
    )
    await store.update_order(order_id, {"payment_status": "refunded", "status": "refunded", "updated_at": now})
    logger.info("Admin %s refunded %s on order %s", admin.get("email"), refund_amount, order_id)
    flash(request, "Refund recorded.")
    return _back_to_orders()


@admin_router.post("/support/respond/{ticket_id}")
async def admin_support_respond(
    request: Request,
    ticket_id: str,
    response: str = Form(""),
    admin: dict = Depends(admin_required),
):
    found = await get_store(request).add_ticket_response(
        ticket_id,
        {"responder": admin.get("email"), "message": response, "created_at": datetime.now()},
    )
    if not found:
        return message_page(
            request, "Not Found", "Ticket not found.", "error",
            redirect_url="/admin/support", button_text="Back",
        )
    flash(request, "Response sent.")
    return RedirectResponse("/admin/support", status.HTTP_303_SEE_OTHER)


# ===== Service catalog =====

@admin_router.get("/manage-services")
async def manage_services(
    request: Request,
    q: str = Query(""),
    success: str | None = Query(None),
    admin: dict = Depends(admin_required),
):
    q = q.strip()
    services = await get_store(request).list_services(q or None)
    return render(
        request,
        "admin_manage_services.html",
        {"title": "Manage Services", "services": services, "q": q, "success": success},
    )


@admin_router.get("/manage-services/new")
async def service_new(request: Request, admin: dict = Depends(admin_required)):
    return render(request, "admin_service_form.html", {"title": "Add New Service", "service": None})


@admin_router.get("/manage-services/edit/{service_id}")
async def service_edit(request: Request, service_id: str, admin: dict = Depends(admin_required)):
    service = await get_store(request).get_service(service_id)
    if not service:
        return message_page(
            request, "Not Found", "Service not found.", "error",
            redirect_url=SERVICES_URL, button_text="Back",
        )
    return render(request, "admin_service_form.html", {"title": "Edit Service", "service": service})


@admin_router.post("/manage-services/save")
async def service_save(
    request: Request,
    service_id: str = Form(""),
    name: str = Form(""),
    description: str = Form(""),
    price: str = Form("0"),
    admin: dict = Depends(admin_required),
):
    try:
        form = ServiceForm(service_id=service_id.strip(), name=name, description=description.strip(), price=parse_price(price))
    except ValidationError:
        return message_page(
            request,
            "Invalid Service",
            "A service needs a name and a non-negative price.",
            "error",
            redirect_url=SERVICES_URL,
            button_text="Back",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    store = get_store(request)
    if await store.find_service_by_name(form.name, exclude_id=form.service_id or None):
        return message_page(
            request,
            "Duplicate Service",
            "A service with that name already exists. Please choose a different name.",
            "error",
            redirect_url=SERVICES_URL,
            button_text="Back",
        )

    now = datetime.now()
    fields = {
        "name": form.name,
        "description": form.description,
        "price": parse_price(price),
        "updated_at": now,
    }
    if form.service_id:
        if not await store.update_service(form.service_id, fields):
            return message_page(
                request, "Not Found", "Service not found.", "error",
                redirect_url=SERVICES_URL, button_text="Back",
            )
        message = "Service updated successfully"
    else:
        fields["created_at"] = now
        await store.insert_service(fields)
        message = "Service created successfully"
    logger.info("Admin %s saved service %s", admin.get("email"), form.name)
    return RedirectResponse(f"{SERVICES_URL}?success={message.replace(' ', '+')}", status.HTTP_303_SEE_OTHER)


@admin_router.post("/manage-services/delete/{service_id}")
async def service_delete(request: Request, service_id: str, admin: dict = Depends(admin_required)):
    store = get_store(request)
    service = await store.get_service(service_id)
    if not service:
        return message_page(
            request, "Not Found", "Service not found.", "error",
            redirect_url=SERVICES_URL, button_text="Back",
        )
    if await store.count_orders_for_service(service) > 0:
        return message_page(
            request,
            "Cannot Delete",
            "This service cannot be deleted because customers have bookings associated with it.",
            "error",
            redirect_url=SERVICES_URL,
            button_text="Back",
        )

    await store.delete_service(service_id)
    logger.info("Admin %s deleted service %s", admin.get("email"), service.get("name"))
    return RedirectResponse(f"{SERVICES_URL}?success=Service+deleted+successfully", status.HTTP_303_SEE_OTHER)


__all__ = ["admin_router"]
