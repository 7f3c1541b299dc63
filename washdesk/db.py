"""MongoDB access for users, services, orders, payments and support tickets.

A single :class:`Store` owns the pooled motor client and is handed to the web
layer at startup; handlers reach it through ``request.app.state.store``.
"""
from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterator

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from .config import DB_NAME, DEFAULT_SERVICES, MONGO_URI

if TYPE_CHECKING:
    from .reports.filters import ReportFilter

logger = logging.getLogger(__name__)

REQUIRED_COLLECTIONS = ("users", "services", "orders", "payments", "supportTickets")

ORDER_STATUSES = ("pending", "processing", "shipped", "completed", "cancelled", "refunded")
ADMIN_SETTABLE_STATUSES = ("pending", "shipped", "completed", "cancelled")
PAYMENT_STATUSES = ("unpaid", "paid", "refunded")
ACTIVE_ORDER_STATUSES = ("pending", "processing", "shipped")


class StoreError(Exception):
    """Raised when the database cannot serve a request."""


@contextmanager
def _guard(action: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as exc:
        raise StoreError(f"{action} failed: {exc}") from exc


def _oid(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError) as exc:
        raise StoreError(f"invalid identifier: {value!r}") from exc


def _with_id(doc: dict[str, Any] | None) -> dict[str, Any] | None:
    if doc is None:
        return None
    doc["id"] = str(doc.get("_id", ""))
    return doc


def _with_ids(docs: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [_with_id(doc) for doc in docs]


class Store:
    def __init__(self, uri: str = MONGO_URI, db_name: str = DB_NAME) -> None:
        self.client = AsyncIOMotorClient(uri)
        self.db = self.client[db_name]
        self.users = self.db["users"]
        self.services = self.db["services"]
        self.orders = self.db["orders"]
        self.payments = self.db["payments"]
        self.tickets = self.db["supportTickets"]

    def close(self) -> None:
        self.client.close()

    async def ping(self) -> None:
        with _guard("ping"):
            await self.client.admin.command("ping")

    async def ensure_schema(self) -> list[str]:
        """Create missing collections and the indexes the queries rely on."""

        created: list[str] = []
        with _guard("ensure schema"):
            existing = set(await self.db.list_collection_names())
            for name in REQUIRED_COLLECTIONS:
                if name not in existing:
                    await self.db.create_collection(name)
                    created.append(name)
                    logger.info("Created collection: %s", name)
            await self.users.create_index([("email", ASCENDING)], unique=True)
            await self.orders.create_index([("user_email", ASCENDING)])
            await self.orders.create_index([("created_at", DESCENDING)])
            await self.payments.create_index([("order_id", ASCENDING)])
        return created

    async def seed_services(self) -> int:
        with _guard("seed services"):
            if await self.services.count_documents({}):
                return 0
            now = datetime.now()
            docs = [
                {
                    "slug": item["id"],
                    "name": item["name"],
                    "description": item["description"],
                    "price": item["price"],
                    "created_at": now,
                    "updated_at": now,
                }
                for item in DEFAULT_SERVICES
            ]
            await self.services.insert_many(docs)
        return len(docs)

    # ===== Users =====

    async def list_users(self) -> list[dict[str, Any]]:
        with _guard("list users"):
            docs = await self.users.find().to_list(length=None)
        return _with_ids(docs)

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        oid = _oid(user_id)
        with _guard("get user"):
            return _with_id(await self.users.find_one({"_id": oid}))

    async def find_user_by_email(self, email: str) -> dict[str, Any] | None:
        with _guard("find user"):
            return _with_id(await self.users.find_one({"email": email}))

    async def find_user_by_verification_token(self, token: str) -> dict[str, Any] | None:
        with _guard("find user by token"):
            return _with_id(await self.users.find_one({"verification_token": token}))

    async def find_user_by_reset_token(self, token: str, now: datetime) -> dict[str, Any] | None:
        with _guard("find user by reset token"):
            doc = await self.users.find_one({"reset_token": token, "reset_expiry": {"$gt": now}})
        return _with_id(doc)

    async def insert_user(self, doc: dict[str, Any]) -> str:
        with _guard("insert user"):
            result = await self.users.insert_one(doc)
        return str(result.inserted_id)

    async def update_user(self, user_id: str, fields: dict[str, Any], unset: tuple[str, ...] = ()) -> bool:
        oid = _oid(user_id)
        update: dict[str, Any] = {"$set": fields}
        if unset:
            update["$unset"] = {key: "" for key in unset}
        with _guard("update user"):
            result = await self.users.update_one({"_id": oid}, update)
        return result.matched_count > 0

    async def set_role_by_email(self, email: str, role: str) -> tuple[int, int]:
        with _guard("set role"):
            result = await self.users.update_one(
                {"email": email}, {"$set": {"role": role, "updated_at": datetime.now()}}
            )
        return result.matched_count, result.modified_count

    async def delete_user(self, user_id: str) -> bool:
        oid = _oid(user_id)
        with _guard("delete user"):
            result = await self.users.delete_one({"_id": oid})
        return result.deleted_count > 0

    # ===== Services =====

    async def list_services(self, search: str | None = None) -> list[dict[str, Any]]:
        query: dict[str, Any] = {}
        if search:
            pattern = re.escape(search)
            query = {
                "$or": [
                    {"name": {"$regex": pattern, "$options": "i"}},
                    {"description": {"$regex": pattern, "$options": "i"}},
                ]
            }
        with _guard("list services"):
            docs = await self.services.find(query).sort("created_at", DESCENDING).to_list(length=None)
        return _with_ids(docs)

    async def get_service(self, service_id: str) -> dict[str, Any] | None:
        oid = _oid(service_id)
        with _guard("get service"):
            return _with_id(await self.services.find_one({"_id": oid}))

    async def find_service_by_key(self, key: str) -> dict[str, Any] | None:
        """Look a service up by its id or, for the seeded catalog, its slug."""
        variants: list[dict[str, Any]] = [{"slug": key}]
        if ObjectId.is_valid(key):
            variants.append({"_id": ObjectId(key)})
        with _guard("find service"):
            return _with_id(await self.services.find_one({"$or": variants}))

    async def find_service_by_name(self, name: str, exclude_id: str | None = None) -> dict[str, Any] | None:
        query: dict[str, Any] = {"name": {"$regex": f"^{re.escape(name)}$", "$options": "i"}}
        if exclude_id:
            query["_id"] = {"$ne": _oid(exclude_id)}
        with _guard("find service"):
            return _with_id(await self.services.find_one(query))

    async def insert_service(self, doc: dict[str, Any]) -> str:
        with _guard("insert service"):
            result = await self.services.insert_one(doc)
        return str(result.inserted_id)

    async def update_service(self, service_id: str, fields: dict[str, Any]) -> bool:
        oid = _oid(service_id)
        with _guard("update service"):
            result = await self.services.update_one({"_id": oid}, {"$set": fields})
        return result.matched_count > 0

    async def delete_service(self, service_id: str) -> bool:
        oid = _oid(service_id)
        with _guard("delete service"):
            result = await self.services.delete_one({"_id": oid})
        return result.deleted_count > 0

    async def count_orders_for_service(self, service: dict[str, Any]) -> int:
        variants: list[dict[str, Any]] = [
            {"service_id": service["_id"]},
            {"service_id": str(service["_id"])},
            {"service_name": service.get("name")},
        ]
        if service.get("slug"):
            variants.append({"service_id": service["slug"]})
        with _guard("count service orders"):
            return await self.orders.count_documents({"$or": variants})

    # ===== Orders =====

    async def list_orders(
        self,
        report_filter: ReportFilter | None = None,
        *,
        user_email: str | None = None,
    ) -> list[dict[str, Any]]:
        query: dict[str, Any] = report_filter.to_query() if report_filter else {}
        if user_email is not None:
            query["user_email"] = user_email
        with _guard("list orders"):
            docs = await self.orders.find(query).sort("created_at", DESCENDING).to_list(length=None)
        return _with_ids(docs)

    async def get_order(self, order_id: str) -> dict[str, Any] | None:
        oid = _oid(order_id)
        with _guard("get order"):
            return _with_id(await self.orders.find_one({"_id": oid}))

    async def insert_order(self, doc: dict[str, Any]) -> str:
        with _guard("insert order"):
            result = await self.orders.insert_one(doc)
        return str(result.inserted_id)

    async def update_order(self, order_id: str, fields: dict[str, Any]) -> bool:
        oid = _oid(order_id)
        with _guard("update order"):
            result = await self.orders.update_one({"_id": oid}, {"$set": fields})
        return result.matched_count > 0

    # ===== Payments =====

    async def list_payments(self, user_email: str | None = None) -> list[dict[str, Any]]:
        query = {"user_email": user_email} if user_email is not None else {}
        with _guard("list payments"):
            docs = await self.payments.find(query).sort("created_at", DESCENDING).to_list(length=None)
        return _with_ids(docs)

    async def insert_payment(self, doc: dict[str, Any]) -> str:
        with _guard("insert payment"):
            result = await self.payments.insert_one(doc)
        return str(result.inserted_id)

    # ===== Support tickets =====

    async def list_tickets(self, user_email: str | None = None) -> list[dict[str, Any]]:
        query = {"user_email": user_email} if user_email is not None else {}
        with _guard("list tickets"):
            docs = await self.tickets.find(query).sort("created_at", DESCENDING).to_list(length=None)
        return _with_ids(docs)

    async def insert_ticket(self, doc: dict[str, Any]) -> str:
        with _guard("insert ticket"):
            result = await self.tickets.insert_one(doc)
        return str(result.inserted_id)

    async def add_ticket_response(self, ticket_id: str, response: dict[str, Any]) -> bool:
        oid = _oid(ticket_id)
        with _guard("respond to ticket"):
            result = await self.tickets.update_one(
                {"_id": oid},
                {
                    "$push": {"responses": response},
                    "$set": {"status": "responded", "updated_at": datetime.now()},
                },
            )
        return result.matched_count > 0


__all__ = [
    "ACTIVE_ORDER_STATUSES",
    "ADMIN_SETTABLE_STATUSES",
    "ORDER_STATUSES",
    "PAYMENT_STATUSES",
    "REQUIRED_COLLECTIONS",
    "Store",
    "StoreError",
]
