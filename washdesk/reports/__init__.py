from .aggregator import ReportSnapshot, ServiceSales, UserSales, aggregate_orders
from .filters import ReportFilter, build_report_filter, daily_filter

__all__ = [
    "ReportFilter",
    "ReportSnapshot",
    "ServiceSales",
    "UserSales",
    "aggregate_orders",
    "build_report_filter",
    "daily_filter",
]
