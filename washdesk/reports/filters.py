from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any

END_OF_DAY = time(23, 59, 59, 999000)


def parse_day(value: Any) -> date | None:
    """Parse ``YYYY-MM-DD`` (or a full ISO timestamp) into a date; anything else yields ``None``."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value)
    return value if value.strip() else None


@dataclass(frozen=True)
class ReportFilter:
    """Order predicate for the sales reports.

    ``created_from`` and ``created_to`` are inclusive; ``created_to`` is already
    pushed to the last millisecond of its day.
    """

    status: str | None = None
    service: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None

    @property
    def is_unbounded(self) -> bool:
        return not any((self.status, self.service, self.created_from, self.created_to))

    def to_query(self) -> dict[str, Any]:
        query: dict[str, Any] = {}
        if self.status:
            query["status"] = self.status
        if self.service:
            query["service_name"] = {"$regex": re.escape(self.service), "$options": "i"}
        created: dict[str, datetime] = {}
        if self.created_from:
            created["$gte"] = self.created_from
        if self.created_to:
            created["$lte"] = self.created_to
        if created:
            query["created_at"] = created
        return query

    def matches(self, order: dict[str, Any]) -> bool:
        if self.status and order.get("status") != self.status:
            return False
        if self.service:
            name = order.get("service_name") or ""
            if self.service.lower() not in str(name).lower():
                return False
        if self.created_from or self.created_to:
            created = order.get("created_at")
            if not isinstance(created, datetime):
                return False
            if self.created_from and created < self.created_from:
                return False
            if self.created_to and created > self.created_to:
                return False
        return True


def build_report_filter(
    status: str | None = None,
    service: str | None = None,
    date_from: Any = None,
    date_to: Any = None,
) -> ReportFilter:
    start = parse_day(date_from)
    end = parse_day(date_to)
    return ReportFilter(
        status=_blank_to_none(status),
        service=_blank_to_none(service),
        created_from=datetime.combine(start, time.min) if start else None,
        created_to=datetime.combine(end, END_OF_DAY) if end else None,
    )


def daily_filter(day: Any = None) -> ReportFilter:
    if day is None or not str(day).strip():
        day = date.today()
    return build_report_filter(date_from=day, date_to=day)


__all__ = ["END_OF_DAY", "ReportFilter", "build_report_filter", "daily_filter", "parse_day"]
