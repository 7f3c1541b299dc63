from __future__ import annotations

import re
from datetime import datetime
from typing import Any

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from washdesk.db import StoreError, _oid, _with_id
from washdesk.mailer import MailerError
from washdesk.security import hash_password
from washdesk.web.server import create_app

PASSWORD = "secret123"


class FakeStore:
    """In-memory stand-in for :class:`washdesk.db.Store`."""

    def __init__(self) -> None:
        self.users: list[dict[str, Any]] = []
        self.services: list[dict[str, Any]] = []
        self.orders: list[dict[str, Any]] = []
        self.payments: list[dict[str, Any]] = []
        self.tickets: list[dict[str, Any]] = []
        self.fail_orders = False
        self.calls: list[str] = []

    # helpers
    @staticmethod
    def _insert(bucket: list[dict[str, Any]], doc: dict[str, Any]) -> str:
        doc = dict(doc)
        doc.setdefault("_id", ObjectId())
        bucket.append(doc)
        return str(doc["_id"])

    @staticmethod
    def _find(bucket: list[dict[str, Any]], doc_id: Any) -> dict[str, Any] | None:
        oid = _oid(doc_id)
        for doc in bucket:
            if doc["_id"] == oid:
                return doc
        return None

    @staticmethod
    def _out(doc: dict[str, Any] | None) -> dict[str, Any] | None:
        return _with_id(dict(doc)) if doc is not None else None

    @staticmethod
    def _newest_first(docs: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return sorted(docs, key=lambda d: d.get("created_at") or datetime.min, reverse=True)

    # lifecycle
    def close(self) -> None:
        pass

    async def ping(self) -> None:
        pass

    async def ensure_schema(self) -> list[str]:
        return []

    async def seed_services(self) -> int:
        return 0

    # users
    async def list_users(self):
        self.calls.append("list_users")
        return [self._out(u) for u in self.users]

    async def get_user(self, user_id):
        return self._out(self._find(self.users, user_id))

    async def find_user_by_email(self, email):
        return self._out(next((u for u in self.users if u.get("email") == email), None))

    async def find_user_by_verification_token(self, token):
        return self._out(next((u for u in self.users if u.get("verification_token") == token), None))

    async def find_user_by_reset_token(self, token, now):
        for user in self.users:
            expiry = user.get("reset_expiry")
            if user.get("reset_token") == token and expiry and expiry > now:
                return self._out(user)
        return None

    async def insert_user(self, doc):
        return self._insert(self.users, doc)

    async def update_user(self, user_id, fields, unset=()):
        user = self._find(self.users, user_id)
        if user is None:
            return False
        user.update(fields)
        for key in unset:
            user.pop(key, None)
        return True

    async def set_role_by_email(self, email, role):
        for user in self.users:
            if user.get("email") == email:
                changed = user.get("role") != role
                user["role"] = role
                return 1, int(changed)
        return 0, 0

    async def delete_user(self, user_id):
        user = self._find(self.users, user_id)
        if user is None:
            return False
        self.users.remove(user)
        return True

    # services
    async def list_services(self, search=None):
        docs = self.services
        if search:
            needle = search.lower()
            docs = [
                s for s in docs
                if needle in (s.get("name") or "").lower() or needle in (s.get("description") or "").lower()
            ]
        return [self._out(s) for s in self._newest_first(docs)]

    async def get_service(self, service_id):
        return self._out(self._find(self.services, service_id))

    async def find_service_by_key(self, key):
        for service in self.services:
            if service.get("slug") == key or str(service["_id"]) == key:
                return self._out(service)
        return None

    async def find_service_by_name(self, name, exclude_id=None):
        excluded = _oid(exclude_id) if exclude_id else None
        for service in self.services:
            if (service.get("name") or "").lower() == name.lower() and service["_id"] != excluded:
                return self._out(service)
        return None

    async def insert_service(self, doc):
        return self._insert(self.services, doc)

    async def update_service(self, service_id, fields):
        service = self._find(self.services, service_id)
        if service is None:
            return False
        service.update(fields)
        return True

    async def delete_service(self, service_id):
        service = self._find(self.services, service_id)
        if service is None:
            return False
        self.services.remove(service)
        return True

    async def count_orders_for_service(self, service):
        ids = {service["_id"], str(service["_id"])}
        if service.get("slug"):
            ids.add(service["slug"])
        return sum(
            1 for o in self.orders
            if o.get("service_id") in ids or o.get("service_name") == service.get("name")
        )

    # orders
    async def list_orders(self, report_filter=None, *, user_email=None):
        self.calls.append("list_orders")
        if self.fail_orders:
            raise StoreError("list orders failed: connection refused")
        docs = [o for o in self.orders if report_filter is None or report_filter.matches(o)]
        if user_email is not None:
            docs = [o for o in docs if o.get("user_email") == user_email]
        return [self._out(o) for o in self._newest_first(docs)]

    async def get_order(self, order_id):
        return self._out(self._find(self.orders, order_id))

    async def insert_order(self, doc):
        return self._insert(self.orders, doc)

    async def update_order(self, order_id, fields):
        order = self._find(self.orders, order_id)
        if order is None:
            return False
        order.update(fields)
        return True

    # payments
    async def list_payments(self, user_email=None):
        docs = [p for p in self.payments if user_email is None or p.get("user_email") == user_email]
        return [self._out(p) for p in self._newest_first(docs)]

    async def insert_payment(self, doc):
        return self._insert(self.payments, doc)

    # tickets
    async def list_tickets(self, user_email=None):
        docs = [t for t in self.tickets if user_email is None or t.get("user_email") == user_email]
        return [self._out(t) for t in self._newest_first(docs)]

    async def insert_ticket(self, doc):
        return self._insert(self.tickets, doc)

    async def add_ticket_response(self, ticket_id, response):
        ticket = self._find(self.tickets, ticket_id)
        if ticket is None:
            return False
        ticket.setdefault("responses", []).append(response)
        ticket["status"] = "responded"
        return True

    # seeding helpers for tests
    def add_user(self, email: str, role: str = "customer", **extra: Any) -> dict[str, Any]:
        doc = {
            "user_id": f"uid-{email}",
            "first_name": extra.pop("first_name", email.split("@")[0].title()),
            "last_name": extra.pop("last_name", "Tester"),
            "email": email,
            "password_hash": hash_password(extra.pop("password", PASSWORD)),
            "role": role,
            "account_status": "active",
            "is_email_verified": True,
            "created_at": datetime(2024, 1, 1, 9, 0),
        }
        doc.update(extra)
        self._insert(self.users, doc)
        return self.users[-1]

    def add_order(self, **fields: Any) -> dict[str, Any]:
        doc = {
            "user_email": "ana@example.com",
            "service_name": "Wash & Fold",
            "service_id": "wash-fold",
            "price": 180,
            "status": "pending",
            "payment_status": "unpaid",
            "created_at": datetime(2024, 5, 10, 12, 0),
        }
        doc.update(fields)
        self._insert(self.orders, doc)
        return self.orders[-1]


class FakeMailer:
    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []
        self.fail = False

    async def send(self, to: str, subject: str, html: str) -> None:
        if self.fail:
            raise MailerError("email delivery is not configured")
        self.sent.append({"to": to, "subject": subject, "html": html})

    async def send_verification(self, to: str, first_name: str, url: str) -> None:
        await self.send(to, "Verify your account", url)

    async def send_password_reset(self, to: str, url: str) -> None:
        await self.send(to, "Password Reset Request", url)

    def last_link(self) -> str:
        return re.search(r"https?://\S+", self.sent[-1]["html"]).group(0)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def client(store, mailer) -> TestClient:
    return TestClient(create_app(store=store, mailer=mailer))


def login(client: TestClient, email: str, password: str = PASSWORD):
    return client.post(
        "/users/login",
        data={"email": email, "password": password},
        follow_redirects=False,
    )


@pytest.fixture
def customer(store, client):
    user = store.add_user("ana@example.com", first_name="Ana", last_name="Reyes")
    login(client, user["email"])
    return user


@pytest.fixture
def admin(store, client):
    user = store.add_user("boss@example.com", role="admin", first_name="Bea", last_name="Cruz")
    login(client, user["email"])
    return user


@pytest.fixture
def login_as(client):
    def _login(email: str, password: str = PASSWORD):
        return login(client, email, password)

    return _login
