from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable

UNKNOWN = "Unknown"


@dataclass
class ServiceSales:
    count: int = 0
    revenue: Decimal = Decimal(0)


@dataclass
class UserSales:
    count: int = 0
    revenue: Decimal = Decimal(0)
    user_name: str = ""


@dataclass
class ReportSnapshot:
    total_revenue: Decimal = Decimal(0)
    total_orders: int = 0
    completed_orders: int = 0
    pending_orders: int = 0
    cancelled_orders: int = 0
    avg_order_value: float = 0
    sales_by_service: dict[str, ServiceSales] = field(default_factory=dict)
    sales_by_user: dict[str, UserSales] = field(default_factory=dict)


def order_amount(value: Any) -> float:
    """Coerce a stored price to a number; anything non-numeric or non-finite counts as 0."""

    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        number = value
    else:
        try:
            number = float(str(value).strip())
        except (TypeError, ValueError):
            return 0
    return number if math.isfinite(number) else 0


def _display_name(user: dict[str, Any]) -> str:
    first = user.get("first_name") or ""
    last = user.get("last_name") or ""
    return f"{first} {last}".strip()


def aggregate_orders(orders: Iterable[dict[str, Any]], users: Iterable[dict[str, Any]]) -> ReportSnapshot:
    """Summarise ``orders`` into revenue totals and per-service/per-user breakdowns.

    Revenue figures are :class:`~decimal.Decimal`, so the total always equals
    the sum of either breakdown.

    Users are only consulted for display names; the first user matching an
    email is used and the name is resolved once per email.
    """

    user_list = list(users)
    snapshot = ReportSnapshot()

    for order in orders:
        # str() keeps 0.1 as Decimal("0.1") so every running sum stays exact
        amount = Decimal(str(order_amount(order.get("price"))))
        snapshot.total_orders += 1
        snapshot.total_revenue += amount

        status = order.get("status")
        if status == "completed":
            snapshot.completed_orders += 1
        elif status == "pending":
            snapshot.pending_orders += 1
        elif status == "cancelled":
            snapshot.cancelled_orders += 1

        service = order.get("service_name") or UNKNOWN
        service_sales = snapshot.sales_by_service.setdefault(service, ServiceSales())
        service_sales.count += 1
        service_sales.revenue += amount

        email = order.get("user_email") or UNKNOWN
        user_sales = snapshot.sales_by_user.get(email)
        if user_sales is None:
            user_sales = UserSales()
            match = next((u for u in user_list if u.get("email") == email), None)
            if match is not None:
                user_sales.user_name = _display_name(match)
            snapshot.sales_by_user[email] = user_sales
        user_sales.count += 1
        user_sales.revenue += amount

    if snapshot.total_orders:
        snapshot.avg_order_value = float(round(snapshot.total_revenue / snapshot.total_orders, 2))
    else:
        snapshot.avg_order_value = 0
    return snapshot


__all__ = ["ReportSnapshot", "ServiceSales", "UNKNOWN", "UserSales", "aggregate_orders", "order_amount"]
