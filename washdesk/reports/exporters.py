"""Sales report exporters.

Every exporter works from an already computed :class:`ReportSnapshot` and the
order list it was built from, so exported figures always match the page the
admin was looking at. File exporters return an :class:`ExportFile`; the
Google Sheets exporter creates a remote spreadsheet and returns its URL.
"""
from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence

import gspread
from google.auth.exceptions import GoogleAuthError
from google.oauth2.service_account import Credentials
from openpyxl import Workbook
from openpyxl.styles import Font
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from ..config import (
    CURRENCY_SYMBOL,
    GOOGLE_PRIVATE_KEY,
    GOOGLE_SERVICE_ACCOUNT_EMAIL,
    GOOGLE_SHARE_WITH,
    PDF_CURRENCY_SYMBOL,
)
from .aggregator import ReportSnapshot, UserSales, order_amount

logger = logging.getLogger(__name__)

CSV_HEADER = ["Order ID", "Date", "User Email", "Service", "Status", "Price"]
SUMMARY_HEADER = ["Metric", "Value"]
SERVICE_HEADER = ["Service", "Orders", "Revenue"]
CUSTOMER_HEADER = ["Customer", "Email", "Orders", "Revenue"]

SUMMARY_SHEET = "Summary"
SERVICE_SHEET = "Sales by Service"
CUSTOMER_SHEET = "Sales by Customer"

TOP_CUSTOMERS_LIMIT = 10

SHEETS_SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]


class ExportError(Exception):
    """Raised when an export cannot be produced."""


class SheetsConfigError(ExportError):
    """Service-account credentials are missing or unusable."""


@dataclass(frozen=True)
class ExportFile:
    content: bytes
    media_type: str
    filename: str


def format_money(value: Any, symbol: str = CURRENCY_SYMBOL) -> str:
    return f"{symbol}{value:,.2f}"


def _plain_number(value: Any) -> str:
    amount = order_amount(value)
    if isinstance(amount, float) and amount.is_integer():
        amount = int(amount)
    return str(amount)


def _timestamp(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return "" if value is None else str(value)


def _filename(extension: str, now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f"sales-report-{now:%Y%m%d-%H%M%S}.{extension}"


def top_customers(snapshot: ReportSnapshot, limit: int = TOP_CUSTOMERS_LIMIT) -> list[tuple[str, UserSales]]:
    """Highest-revenue customers first; ties keep first-seen order."""

    ranked = sorted(snapshot.sales_by_user.items(), key=lambda item: item[1].revenue, reverse=True)
    return ranked[:limit]


def summary_rows(snapshot: ReportSnapshot, symbol: str = CURRENCY_SYMBOL) -> list[list[Any]]:
    return [
        SUMMARY_HEADER,
        ["Total Revenue", format_money(snapshot.total_revenue, symbol)],
        ["Total Orders", snapshot.total_orders],
        ["Completed Orders", snapshot.completed_orders],
        ["Pending Orders", snapshot.pending_orders],
        ["Cancelled Orders", snapshot.cancelled_orders],
        ["Average Order Value", format_money(snapshot.avg_order_value, symbol)],
    ]


def service_rows(snapshot: ReportSnapshot, symbol: str = CURRENCY_SYMBOL) -> list[list[Any]]:
    rows: list[list[Any]] = [SERVICE_HEADER]
    for name, sales in snapshot.sales_by_service.items():
        rows.append([name, sales.count, format_money(sales.revenue, symbol)])
    return rows


def customer_rows(snapshot: ReportSnapshot, symbol: str = CURRENCY_SYMBOL) -> list[list[Any]]:
    rows: list[list[Any]] = [CUSTOMER_HEADER]
    for email, sales in snapshot.sales_by_user.items():
        rows.append([sales.user_name or email, email, sales.count, format_money(sales.revenue, symbol)])
    return rows


class ReportExporter:
    """Base class: turn a snapshot and its orders into an export."""

    format_name = ""

    def export(self, snapshot: ReportSnapshot, orders: Sequence[dict[str, Any]]):
        raise NotImplementedError


class CsvExporter(ReportExporter):
    format_name = "csv"

    def export(self, snapshot: ReportSnapshot, orders: Sequence[dict[str, Any]]) -> ExportFile:
        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for order in orders:
            writer.writerow(
                [
                    order.get("id") or str(order.get("_id", "")),
                    _timestamp(order.get("created_at")),
                    order.get("user_email") or "",
                    order.get("service_name") or "",
                    order.get("status") or "",
                    _plain_number(order.get("price")),
                ]
            )
        return ExportFile(
            content=output.getvalue().encode("utf-8"),
            media_type="text/csv; charset=utf-8",
            filename=_filename("csv"),
        )


class ExcelExporter(ReportExporter):
    format_name = "excel"

    def __init__(self, currency_symbol: str = CURRENCY_SYMBOL) -> None:
        self.currency_symbol = currency_symbol

    def export(self, snapshot: ReportSnapshot, orders: Sequence[dict[str, Any]]) -> ExportFile:
        workbook = Workbook()
        summary = workbook.active
        summary.title = SUMMARY_SHEET
        self._fill(summary, summary_rows(snapshot, self.currency_symbol))
        self._fill(workbook.create_sheet(SERVICE_SHEET), service_rows(snapshot, self.currency_symbol))
        self._fill(workbook.create_sheet(CUSTOMER_SHEET), customer_rows(snapshot, self.currency_symbol))

        buffer = io.BytesIO()
        workbook.save(buffer)
        return ExportFile(
            content=buffer.getvalue(),
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            filename=_filename("xlsx"),
        )

    @staticmethod
    def _fill(sheet, rows: list[list[Any]]) -> None:
        for row in rows:
            sheet.append(row)
        for cell in sheet[1]:
            cell.font = Font(bold=True)
        for index, _ in enumerate(rows[0], start=1):
            letter = sheet.cell(row=1, column=index).column_letter
            width = max(len(str(row[index - 1])) for row in rows)
            sheet.column_dimensions[letter].width = max(width + 2, 12)


class _PdfPage:
    """Cursor over a reportlab canvas that starts a new page when space runs out."""

    top_margin = 50
    bottom_margin = 60
    left = 50

    def __init__(self, pdf: canvas.Canvas) -> None:
        self.pdf = pdf
        self.width, self.height = A4
        self.y = self.height - self.top_margin
        self.font = ("Helvetica", 11)

    def set_font(self, name: str, size: int) -> None:
        self.font = (name, size)
        self.pdf.setFont(name, size)

    def ensure(self, needed: float) -> None:
        if self.y - needed < self.bottom_margin:
            self.pdf.showPage()
            self.y = self.height - self.top_margin
            self.pdf.setFont(*self.font)

    def line(self, text: str, step: float = 16) -> None:
        self.ensure(step)
        self.pdf.drawString(self.left, self.y, text[:110])
        self.y -= step

    def gap(self, amount: float = 10) -> None:
        self.y -= amount


class PdfExporter(ReportExporter):
    format_name = "pdf"

    bar_max_width = 300
    bar_height = 12

    def __init__(self, currency_symbol: str = PDF_CURRENCY_SYMBOL) -> None:
        self.currency_symbol = currency_symbol

    def export(self, snapshot: ReportSnapshot, orders: Sequence[dict[str, Any]]) -> ExportFile:
        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=A4)
        pdf.setTitle("Sales Report")
        page = _PdfPage(pdf)
        money = self._money

        page.set_font("Helvetica-Bold", 18)
        page.line("Sales Report", step=24)
        page.set_font("Helvetica", 10)
        page.line(f"Generated: {datetime.now():%Y-%m-%d %H:%M}")
        page.gap()

        page.set_font("Helvetica-Bold", 13)
        page.line("Summary", step=18)
        page.set_font("Helvetica", 11)
        page.line(f"Total Revenue: {money(snapshot.total_revenue)}")
        page.line(f"Total Orders: {snapshot.total_orders}")
        page.line(f"Completed Orders: {snapshot.completed_orders}")
        page.line(f"Pending Orders: {snapshot.pending_orders}")
        page.line(f"Cancelled Orders: {snapshot.cancelled_orders}")
        page.line(f"Average Order Value: {money(snapshot.avg_order_value)}")
        page.gap()

        page.set_font("Helvetica-Bold", 13)
        page.line("Sales by Service", step=18)
        page.set_font("Helvetica", 11)
        if not snapshot.sales_by_service:
            page.line("No orders in this period.")
        for name, sales in snapshot.sales_by_service.items():
            page.line(f"{name}: {sales.count} orders, {money(sales.revenue)}")
        page.gap()
        self._draw_service_bars(page, snapshot)
        page.gap()

        page.set_font("Helvetica-Bold", 13)
        page.line(f"Top {TOP_CUSTOMERS_LIMIT} Customers", step=18)
        page.set_font("Helvetica", 11)
        ranked = top_customers(snapshot)
        if not ranked:
            page.line("No customers in this period.")
        for position, (email, sales) in enumerate(ranked, start=1):
            label = sales.user_name or email
            page.line(f"{position}. {label} ({email}): {sales.count} orders, {money(sales.revenue)}")

        pdf.showPage()
        pdf.save()
        return ExportFile(
            content=buffer.getvalue(),
            media_type="application/pdf",
            filename=_filename("pdf"),
        )

    def _money(self, value: float) -> str:
        return format_money(value, self.currency_symbol)

    def bar_widths(self, snapshot: ReportSnapshot) -> list[tuple[str, float]]:
        """Bar length per service, proportional to the largest revenue."""

        peak = max((sales.revenue for sales in snapshot.sales_by_service.values()), default=0)
        widths = []
        for name, sales in snapshot.sales_by_service.items():
            width = float(sales.revenue / peak) * self.bar_max_width if peak > 0 else 0
            widths.append((name, width))
        return widths

    def _draw_service_bars(self, page: _PdfPage, snapshot: ReportSnapshot) -> None:
        pdf = page.pdf
        label_width = 140
        for name, width in self.bar_widths(snapshot):
            page.ensure(self.bar_height + 6)
            pdf.setFont("Helvetica", 9)
            pdf.drawString(page.left, page.y, name[:28])
            pdf.setFillColorRGB(0.2, 0.4, 0.7)
            pdf.rect(page.left + label_width, page.y - 2, width, self.bar_height, stroke=0, fill=1)
            pdf.setFillColorRGB(0, 0, 0)
            page.y -= self.bar_height + 6
        pdf.setFont(*page.font)


class SheetsExporter(ReportExporter):
    """Create a Google spreadsheet holding the three report tables."""

    format_name = "sheets"

    def __init__(
        self,
        client_email: str,
        private_key: str,
        share_with: str = "",
        currency_symbol: str = CURRENCY_SYMBOL,
    ) -> None:
        self.client_email = (client_email or "").strip()
        # .env files usually carry the key with literal "\n" sequences
        self.private_key = (private_key or "").replace("\\n", "\n").strip()
        self.share_with = (share_with or "").strip()
        self.currency_symbol = currency_symbol

    @classmethod
    def from_config(cls) -> "SheetsExporter":
        return cls(GOOGLE_SERVICE_ACCOUNT_EMAIL, GOOGLE_PRIVATE_KEY, GOOGLE_SHARE_WITH)

    def credentials(self) -> Credentials:
        if not self.client_email or not self.private_key:
            raise SheetsConfigError("Google service account credentials are not configured")
        if "@" not in self.client_email or "PRIVATE KEY" not in self.private_key:
            raise SheetsConfigError("Google service account credentials are malformed")
        info = {
            "type": "service_account",
            "client_email": self.client_email,
            "private_key": self.private_key,
            "token_uri": "https://oauth2.googleapis.com/token",
        }
        try:
            return Credentials.from_service_account_info(info, scopes=SHEETS_SCOPES)
        except (ValueError, TypeError) as exc:
            raise SheetsConfigError("Google service account private key could not be loaded") from exc

    def export(self, snapshot: ReportSnapshot, orders: Sequence[dict[str, Any]]) -> str:
        creds = self.credentials()
        client = gspread.authorize(creds)
        title = f"Sales Report {datetime.now():%Y-%m-%d %H:%M}"
        try:
            spreadsheet = client.create(title)
            tables = [
                (SUMMARY_SHEET, summary_rows(snapshot, self.currency_symbol)),
                (SERVICE_SHEET, service_rows(snapshot, self.currency_symbol)),
                (CUSTOMER_SHEET, customer_rows(snapshot, self.currency_symbol)),
            ]
            first = spreadsheet.sheet1
            first.update_title(SUMMARY_SHEET)
            for name, rows in tables:
                if name == SUMMARY_SHEET:
                    worksheet = first
                else:
                    worksheet = spreadsheet.add_worksheet(title=name, rows=max(len(rows), 10), cols=len(rows[0]))
                worksheet.update(range_name="A1", values=rows)
            if self.share_with:
                spreadsheet.share(self.share_with, perm_type="user", role="writer")
        except (gspread.exceptions.GSpreadException, GoogleAuthError) as exc:
            raise ExportError(f"Google Sheets export failed: {exc}") from exc
        logger.info("Created report spreadsheet %s", spreadsheet.id)
        return spreadsheet.url


FILE_EXPORTERS: dict[str, type[ReportExporter]] = {
    CsvExporter.format_name: CsvExporter,
    ExcelExporter.format_name: ExcelExporter,
    PdfExporter.format_name: PdfExporter,
}


def get_file_exporter(format_name: str) -> ReportExporter | None:
    exporter_cls = FILE_EXPORTERS.get(format_name)
    return exporter_cls() if exporter_cls else None


__all__ = [
    "CUSTOMER_HEADER",
    "CSV_HEADER",
    "CsvExporter",
    "ExcelExporter",
    "ExportError",
    "ExportFile",
    "PdfExporter",
    "ReportExporter",
    "SERVICE_HEADER",
    "SUMMARY_HEADER",
    "SheetsConfigError",
    "SheetsExporter",
    "customer_rows",
    "format_money",
    "get_file_exporter",
    "service_rows",
    "summary_rows",
    "top_customers",
]
