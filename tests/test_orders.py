from datetime import datetime

import pytest
from bson import ObjectId


def test_booking_page_falls_back_to_default_catalog(client, customer):
    response = client.get("/services/book")
    assert response.status_code == 200
    for name in ("Wash &amp; Fold", "Dry Clean", "Ironing"):
        assert name in response.text


def test_booking_page_uses_stored_services(client, store, customer):
    store.services.append({"_id": ObjectId(), "name": "Duvet Wash", "price": 400, "created_at": datetime.now()})
    response = client.get("/services/book")
    assert "Duvet Wash" in response.text
    assert "Dry Clean" not in response.text


def test_services_root_redirects(client):
    response = client.get("/services", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/services/book"


def test_book_service_creates_pending_order(client, store, customer):
    response = client.post(
        "/services/book",
        data={
            "service_id": "wash-fold",
            "service_name": "Wash & Fold",
            "pickup_date": "2024-06-01",
            "notes": "no softener",
            "price": "180",
        },
    )
    assert "Booking Confirmed" in response.text
    order = store.orders[0]
    assert str(order["_id"]) in response.text
    assert order["user_email"] == customer["email"]
    assert order["user_id"] == customer["user_id"]
    assert order["price"] == 180
    assert order["status"] == "pending"
    assert order["payment_status"] == "unpaid"
    assert order["pickup_date"] == datetime(2024, 6, 1)
    assert isinstance(order["created_at"], datetime)


def test_book_service_takes_price_from_catalog(client, store, customer):
    client.post(
        "/services/book",
        data={"service_id": "dry-clean", "service_name": "Dry Clean", "price": "-500", "pickup_date": "soon"},
    )
    order = store.orders[0]
    assert order["price"] == 250
    assert order["service_name"] == "Dry Clean"
    assert order["pickup_date"] is None


def test_book_stored_service_by_id(client, store, customer):
    service_id = ObjectId()
    store.services.append({"_id": service_id, "name": "Duvet Wash", "price": 400, "created_at": datetime.now()})
    client.post("/services/book", data={"service_id": str(service_id), "price": "1"})
    assert store.orders[0]["price"] == 400
    assert store.orders[0]["service_name"] == "Duvet Wash"


def test_book_seeded_service_by_slug(client, store, customer):
    store.services.append({"_id": ObjectId(), "slug": "ironing", "name": "Ironing", "price": 120, "created_at": datetime.now()})
    client.post("/services/book", data={"service_id": "ironing"})
    assert store.orders[0]["price"] == 120


@pytest.mark.parametrize("service_id", ["", "  ", "no-such-service"])
def test_book_service_requires_known_service(client, store, customer, service_id):
    response = client.post("/services/book", data={"service_id": service_id, "service_name": "Anything", "price": "100"})
    assert response.status_code == 400
    assert store.orders == []


def test_default_catalog_is_not_bookable_once_services_exist(client, store, customer):
    store.services.append({"_id": ObjectId(), "name": "Duvet Wash", "price": 400, "created_at": datetime.now()})
    response = client.post("/services/book", data={"service_id": "wash-fold"})
    assert response.status_code == 400
    assert store.orders == []


def test_stored_service_with_negative_price_is_refused(client, store, customer):
    service_id = ObjectId()
    store.services.append({"_id": service_id, "name": "Broken", "price": -10, "created_at": datetime.now()})
    response = client.post("/services/book", data={"service_id": str(service_id)})
    assert response.status_code == 400
    assert store.orders == []


def test_booking_requires_login(client):
    response = client.get("/services/book", follow_redirects=False)
    assert response.status_code == 303


def test_my_orders_only_lists_own(client, store, customer):
    store.add_order(user_email=customer["email"], service_name="Dry Clean")
    store.add_order(user_email="other@example.com", service_name="Ironing")
    response = client.get("/orders/my")
    assert "Dry Clean" in response.text
    assert "Ironing" not in response.text


def test_order_detail_access(client, store, customer):
    own = store.add_order(user_email=customer["email"])
    other = store.add_order(user_email="other@example.com")
    assert client.get(f"/orders/{own['_id']}").status_code == 200
    response = client.get(f"/orders/{other['_id']}")
    assert response.status_code == 403
    assert "Not authorized." in response.text
    assert "Order not found." in client.get(f"/orders/{ObjectId()}").text


def test_cancel_order(client, store, customer):
    own = store.add_order(user_email=customer["email"])
    other = store.add_order(user_email="other@example.com")

    assert "Order has been cancelled." in client.post(f"/orders/cancel/{own['_id']}").text
    assert own["status"] == "cancelled"

    assert client.post(f"/orders/cancel/{other['_id']}").status_code == 403
    assert other["status"] == "pending"


def test_status_update_is_admin_only(client, store, customer):
    order = store.add_order(user_email=customer["email"])
    response = client.post(f"/orders/{order['_id']}/status", data={"status": "completed"})
    assert response.status_code == 403
    assert order["status"] == "pending"


def test_admin_status_update(client, store, admin):
    order = store.add_order()
    response = client.post(f"/orders/{order['_id']}/status", data={"status": "shipped"})
    assert "Order status updated to shipped." in response.text
    assert order["status"] == "shipped"

    response = client.post(f"/orders/{order['_id']}/status", data={"status": "processing"})
    assert "Invalid status value." in response.text
    assert order["status"] == "shipped"

    response = client.post(f"/orders/{ObjectId()}/status", data={"status": "completed"})
    assert "Order not found." in response.text


def test_pay_order(client, store, customer):
    order = store.add_order(user_email=customer["email"], price=250)
    response = client.post(f"/billing/pay/{order['_id']}", data={"method": "cash"})
    assert "Payment processed successfully." in response.text

    payment = store.payments[0]
    assert payment["order_id"] == order["_id"]
    assert payment["amount"] == 250
    assert payment["method"] == "cash"
    assert payment["status"] == "completed"
    assert order["payment_status"] == "paid"
    assert order["status"] == "processing"

    response = client.post(f"/billing/pay/{order['_id']}")
    assert "already been paid" in response.text
    assert len(store.payments) == 1

    billing = client.get("/billing")
    assert billing.status_code == 200
    assert "250.00" in billing.text


def test_pay_someone_elses_order(client, store, customer):
    order = store.add_order(user_email="other@example.com")
    assert client.post(f"/billing/pay/{order['_id']}").status_code == 403
    assert store.payments == []


def test_support_ticket(client, store, customer):
    response = client.post("/support/ticket", data={"subject": "", "message": "Missing sock"})
    assert "Your support ticket has been created." in response.text
    ticket = store.tickets[0]
    assert ticket["subject"] == "Support Request"
    assert ticket["status"] == "open"
    assert ticket["user_email"] == customer["email"]
    assert "Missing sock" in client.get("/support").text
