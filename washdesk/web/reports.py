# washdesk/web/reports.py
from __future__ import annotations

import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import PlainTextResponse, RedirectResponse, Response
from starlette.concurrency import run_in_threadpool

from ..db import ORDER_STATUSES
from ..reports.aggregator import ReportSnapshot, aggregate_orders
from ..reports.exporters import (
    SheetsConfigError,
    SheetsExporter,
    get_file_exporter,
    top_customers,
)
from ..reports.filters import ReportFilter, daily_filter, parse_day
from ..schemas import ReportQuery, report_query
from .common import admin_required, get_store, is_admin, log_failure, render, session_user

logger = logging.getLogger(__name__)

reports_router = APIRouter(tags=["Reports"])


async def load_report(request: Request, report_filter: ReportFilter | None) -> tuple[ReportSnapshot, list[dict[str, Any]]]:
    """Fetch the filtered orders and all users, then aggregate.

    The two reads are independent; a write landing between them is visible in
    one and not the other.
    """

    store = get_store(request)
    orders = await store.list_orders(report_filter)
    users = await store.list_users()
    return aggregate_orders(orders, users), orders


def _render_report(request: Request, snapshot: ReportSnapshot, orders, *, heading: str, query: ReportQuery | None, scope: str):
    return render(
        request,
        "admin_reports.html",
        {
            "title": "Sales Reports",
            "heading": heading,
            "reports_data": snapshot,
            "orders": orders,
            "top_customers": top_customers(snapshot),
            "filters": query or ReportQuery(),
            "export_params": (query.as_params() if query else {}),
            "statuses": ORDER_STATUSES,
            "scope": scope,
        },
    )


@reports_router.get("", name="admin_reports")
async def reports_page(
    request: Request,
    query: ReportQuery = Depends(report_query),
    admin: dict = Depends(admin_required),
):
    snapshot, orders = await load_report(request, query.to_filter())
    return _render_report(request, snapshot, orders, heading="Sales Reports", query=query, scope="filtered")


@reports_router.get("/daily", name="admin_reports_daily")
async def reports_daily(
    request: Request,
    day: str | None = Query(None, alias="date"),
    admin: dict = Depends(admin_required),
):
    report_filter = daily_filter(day)
    shown = parse_day(day) or (date.today() if not (day or "").strip() else None)
    heading = f"Daily Report: {shown:%Y-%m-%d}" if shown else "Daily Report (all dates)"
    snapshot, orders = await load_report(request, report_filter)
    query = ReportQuery(
        date_from=report_filter.created_from.strftime("%Y-%m-%d") if report_filter.created_from else None,
        date_to=report_filter.created_to.strftime("%Y-%m-%d") if report_filter.created_to else None,
    )
    return _render_report(request, snapshot, orders, heading=heading, query=query, scope="daily")


@reports_router.get("/overall", name="admin_reports_overall")
async def reports_overall(request: Request, admin: dict = Depends(admin_required)):
    snapshot, orders = await load_report(request, None)
    return _render_report(request, snapshot, orders, heading="Overall Report", query=None, scope="overall")


@reports_router.get("/export/{export_format}")
async def reports_export(
    request: Request,
    export_format: str,
    query: ReportQuery = Depends(report_query),
):
    if not is_admin(session_user(request)):
        return PlainTextResponse("Access denied.", status_code=status.HTTP_403_FORBIDDEN)

    export_format = export_format.lower()
    exporter = get_file_exporter(export_format)
    if exporter is None and export_format != "sheets":
        return PlainTextResponse("Unknown export format.", status_code=status.HTTP_404_NOT_FOUND)

    if export_format == "sheets":
        sheets = SheetsExporter.from_config()
        try:
            # fail before touching the database when credentials are unusable
            sheets.credentials()
        except SheetsConfigError as exc:
            logger.warning("Sheets export rejected: %s", exc)
            return PlainTextResponse(str(exc), status_code=status.HTTP_400_BAD_REQUEST)

    try:
        snapshot, orders = await load_report(request, query.to_filter())
        if export_format == "sheets":
            url = await run_in_threadpool(sheets.export, snapshot, orders)
            return RedirectResponse(url, status.HTTP_303_SEE_OTHER)
        export = await run_in_threadpool(exporter.export, snapshot, orders)
    except Exception as exc:
        log_failure(request, f"Report export ({export_format})", exc)
        return PlainTextResponse("Could not generate report export.", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )
