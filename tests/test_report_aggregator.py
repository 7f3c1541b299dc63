import random
from decimal import Decimal

import pytest

from washdesk.reports.aggregator import ServiceSales, aggregate_orders, order_amount


def test_reference_scenario():
    orders = [
        {"service_name": "Wash", "price": 100, "status": "completed"},
        {"service_name": "Wash", "price": 50, "status": "pending"},
        {"service_name": "Iron", "price": 30, "status": "completed"},
    ]
    snapshot = aggregate_orders(orders, [])

    assert snapshot.total_revenue == 180
    assert snapshot.total_orders == 3
    assert snapshot.completed_orders == 2
    assert snapshot.pending_orders == 1
    assert snapshot.cancelled_orders == 0
    assert snapshot.sales_by_service["Wash"] == ServiceSales(count=2, revenue=150)
    assert snapshot.sales_by_service["Iron"] == ServiceSales(count=1, revenue=30)
    assert snapshot.avg_order_value == 60


def test_empty_input_gives_zero_average():
    snapshot = aggregate_orders([], [])
    assert snapshot.total_orders == 0
    assert snapshot.total_revenue == 0
    assert snapshot.avg_order_value == 0
    assert snapshot.sales_by_service == {}
    assert snapshot.sales_by_user == {}


def test_average_is_rounded_to_two_decimals():
    orders = [{"price": 10}, {"price": 10}, {"price": 10.01}]
    snapshot = aggregate_orders(orders, [])
    assert snapshot.avg_order_value == round(30.01 / 3, 2)


@pytest.mark.parametrize("seed", [1, 7, 42])
def test_revenue_breakdowns_sum_to_total(seed):
    rng = random.Random(seed)
    services = ["Wash & Fold", "Dry Clean", "Ironing", None]
    emails = ["a@example.com", "b@example.com", None, "c@example.com"]
    orders = [
        {
            "service_name": rng.choice(services),
            "user_email": rng.choice(emails),
            "price": rng.choice([0, 120, 180, 250.5, "99.5", "abc", None]),
            "status": rng.choice(["pending", "completed", "cancelled", "refunded"]),
        }
        for _ in range(40)
    ]
    snapshot = aggregate_orders(orders, [])
    expected = sum(Decimal(str(order_amount(order["price"]))) for order in orders)

    by_service = sum(sales.revenue for sales in snapshot.sales_by_service.values())
    by_user = sum(sales.revenue for sales in snapshot.sales_by_user.values())
    assert snapshot.total_revenue == by_service == by_user == expected
    assert snapshot.total_orders == len(orders)


def test_decimal_prices_add_up_exactly():
    orders = [
        {"service_name": "A", "user_email": "x@example.com", "price": 0.1},
        {"service_name": "B", "user_email": "y@example.com", "price": 0.2},
        {"service_name": "A", "user_email": "y@example.com", "price": 0.3},
    ]
    snapshot = aggregate_orders(orders, [])

    by_service = sum(sales.revenue for sales in snapshot.sales_by_service.values())
    by_user = sum(sales.revenue for sales in snapshot.sales_by_user.values())
    assert snapshot.total_revenue == by_service == by_user == Decimal("0.6")
    assert snapshot.sales_by_service["A"].revenue == Decimal("0.4")
    assert snapshot.sales_by_user["y@example.com"].revenue == Decimal("0.5")
    assert snapshot.avg_order_value == 0.2


def test_missing_fields_group_under_unknown():
    snapshot = aggregate_orders([{"price": 5}, {"service_name": "", "user_email": "", "price": 5}], [])
    assert list(snapshot.sales_by_service) == ["Unknown"]
    assert list(snapshot.sales_by_user) == ["Unknown"]
    assert snapshot.sales_by_user["Unknown"].count == 2


def test_user_names_come_from_first_matching_user():
    users = [
        {"email": "ana@example.com", "first_name": "Ana", "last_name": "Reyes"},
        {"email": "ana@example.com", "first_name": "Other", "last_name": "Ana"},
        {"email": "solo@example.com", "first_name": "Solo", "last_name": None},
    ]
    orders = [
        {"user_email": "ana@example.com", "price": 10},
        {"user_email": "solo@example.com", "price": 10},
        {"user_email": "ghost@example.com", "price": 10},
    ]
    snapshot = aggregate_orders(orders, users)
    assert snapshot.sales_by_user["ana@example.com"].user_name == "Ana Reyes"
    assert snapshot.sales_by_user["solo@example.com"].user_name == "Solo"
    assert snapshot.sales_by_user["ghost@example.com"].user_name == ""


def test_groups_keep_first_seen_order():
    orders = [
        {"service_name": "Ironing", "user_email": "z@example.com", "price": 1},
        {"service_name": "Dry Clean", "user_email": "a@example.com", "price": 1},
        {"service_name": "Ironing", "user_email": "m@example.com", "price": 1},
    ]
    snapshot = aggregate_orders(orders, [])
    assert list(snapshot.sales_by_service) == ["Ironing", "Dry Clean"]
    assert list(snapshot.sales_by_user) == ["z@example.com", "a@example.com", "m@example.com"]


@pytest.mark.parametrize(
    "value, expected",
    [
        (180, 180),
        (99.5, 99.5),
        ("250", 250.0),
        (" 12.5 ", 12.5),
        ("", 0),
        ("abc", 0),
        (None, 0),
        (True, 0),
        ("nan", 0),
        (float("nan"), 0),
        ("inf", 0),
        (float("-inf"), 0),
    ],
)
def test_order_amount(value, expected):
    assert order_amount(value) == expected


def test_only_known_statuses_are_counted():
    orders = [{"status": s, "price": 1} for s in ("completed", "pending", "cancelled", "shipped", "refunded", None)]
    snapshot = aggregate_orders(orders, [])
    assert (snapshot.completed_orders, snapshot.pending_orders, snapshot.cancelled_orders) == (1, 1, 1)
    assert snapshot.total_orders == 6
