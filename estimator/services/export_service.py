"""
Quote export helpers: CSV spreadsheet text, XLSX workbook and A4 landscape PDF.
Every builder reads the current state and never modifies it.
"""

from __future__ import annotations

import csv
import math
import re
from datetime import date
from decimal import Decimal
from io import BytesIO, StringIO
from typing import Optional

from fpdf import FPDF
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from estimator.core.config import settings
from estimator.core.logging import get_logger
from estimator.ui.viewmodels import QuoteState

logger = get_logger(__name__)

CSV_COLUMNS = [
    "No.", "Item", "Specification", "Quantity", "Unit",
    "Unit Price", "Line Total", "Brand", "Remarks",
]

QUOTE_NOTES = [
    "This quotation is for reference only; the contract governs the final scope of work.",
    "Market prices change frequently. Please request a new quote after 7 days.",
    "Contact the person above for professional installation planning.",
]


class EmptyQuoteError(ValueError):
    """Raised when exporting a quote with no line items."""


def plain_number(value: float) -> str:
    """
    Number without grouping or exponent; whole values print without
    decimals, others keep every significant digit.
    """
    value = float(value)
    if not math.isfinite(value):
        return str(value)
    if value.is_integer():
        return str(int(value))
    return format(Decimal(repr(value)), "f")


def format_amount(value: float) -> str:
    """Number with thousands separators, decimals only when present."""
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def export_filename(project_name: str, extension: str, today: Optional[date] = None) -> str:
    """
    Build ``<project>_<YYYY-MM-DD>.<ext>``. An empty project name falls back
    to the configured default name.
    """
    today = today or date.today()
    base = re.sub(r'[\\/:*?"<>|\r\n\t]+', "_", (project_name or "").strip()).strip(" ._")
    if not base:
        base = settings.EXPORT_DEFAULT_FILENAME
    return f"{base}_{today.isoformat()}.{extension}"


def _require_items(state: QuoteState) -> None:
    if not state.can_export:
        raise EmptyQuoteError("The quote has no line items to export")


# ========== CSV ==========

def build_csv(state: QuoteState, today: Optional[date] = None) -> bytes:
    """
    Serialize the quote as comma separated text: header block, item rows and
    totals. UTF-8 with a byte-order mark so spreadsheet apps pick the right
    encoding; every field is quoted and embedded quotes are doubled.
    """
    _require_items(state)
    today = today or date.today()
    header = state.header
    totals = state.totals

    buf = StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\r\n")

    writer.writerow(["Project", header.project_name])
    writer.writerow(["Vendor", header.vendor_name])
    writer.writerow(["Vendor Contact", header.vendor_contact])
    writer.writerow(["Vendor Phone", header.vendor_phone])
    writer.writerow(["Client Contact", header.client_contact])
    writer.writerow(["Client Phone", header.client_phone])
    writer.writerow(["Client Tax ID", header.client_tax_id])
    writer.writerow(["Quote Date", today.isoformat()])
    writer.writerow([])

    writer.writerow(CSV_COLUMNS)
    for index, item in enumerate(state.items, start=1):
        writer.writerow([
            index,
            item.name,
            item.spec,
            plain_number(item.quantity),
            item.unit,
            plain_number(item.market_price),
            plain_number(item.line_total),
            item.brand,
            item.remarks,
        ])
    writer.writerow([])

    writer.writerow(["Subtotal", plain_number(totals.subtotal)])
    writer.writerow([f"Management Fee ({plain_number(state.management_rate)}%)", plain_number(totals.management_fee)])
    writer.writerow([f"Tax ({plain_number(state.tax_rate)}%)", plain_number(totals.tax)])
    writer.writerow(["Grand Total", plain_number(totals.grand_total)])

    logger.info(f"Built CSV export with {len(state.items)} items")
    return buf.getvalue().encode("utf-8-sig")


# ========== XLSX ==========

def build_xlsx(state: QuoteState, today: Optional[date] = None) -> bytes:
    """
    Build a formatted workbook with the same content as the CSV export:
    header block, item table and totals, amounts as numbers so the sheet
    stays editable.
    """
    _require_items(state)
    today = today or date.today()
    header = state.header
    totals = state.totals

    wb = Workbook()
    ws = wb.active
    ws.title = "Quotation"

    font_title = Font(bold=True, size=16)
    font_label = Font(bold=True, size=10)
    font_normal = Font(size=10)
    font_col_hdr = Font(bold=True, size=10, color="FFFFFF")
    fill_col_hdr = PatternFill(start_color="0F172A", end_color="0F172A", fill_type="solid")
    font_grand = Font(bold=True, size=12)
    amount_fmt = "#,##0.##"
    box_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    for col, width in enumerate([6, 28, 32, 10, 8, 14, 16, 20, 28], start=1):
        ws.column_dimensions[get_column_letter(col)].width = width

    row = 1
    ws.cell(row=row, column=1, value=header.project_name or "MEP Works Quotation").font = font_title
    row += 2

    header_rows = [
        ("Vendor", header.vendor_name, "Client Contact", header.client_contact),
        ("Vendor Contact", header.vendor_contact, "Client Phone", header.client_phone),
        ("Vendor Phone", header.vendor_phone, "Client Tax ID", header.client_tax_id),
        ("Quote Date", today.isoformat(), "", ""),
    ]
    for ll, lv, rl, rv in header_rows:
        for col, val, fnt in [(1, ll, font_label), (3, lv, font_normal),
                               (6, rl, font_label), (8, rv, font_normal)]:
            ws.cell(row=row, column=col, value=val).font = fnt
        row += 1
    row += 1

    for col, title in enumerate(CSV_COLUMNS, start=1):
        c = ws.cell(row=row, column=col, value=title)
        c.font = font_col_hdr
        c.fill = fill_col_hdr
        c.alignment = Alignment(horizontal="center")
        c.border = box_border
    row += 1

    for index, item in enumerate(state.items, start=1):
        values = [
            index, item.name, item.spec, item.quantity, item.unit,
            item.market_price, item.line_total, item.brand, item.remarks,
        ]
        for col, val in enumerate(values, start=1):
            c = ws.cell(row=row, column=col, value=val)
            c.font = font_normal
            c.border = box_border
            if col in (6, 7):
                c.number_format = amount_fmt
        row += 1
    row += 1

    total_rows = [
        ("Subtotal", totals.subtotal, font_label),
        (f"Management Fee ({plain_number(state.management_rate)}%)", totals.management_fee, font_label),
        (f"Tax ({plain_number(state.tax_rate)}%)", totals.tax, font_label),
        ("Grand Total", totals.grand_total, font_grand),
    ]
    for label, amount, fnt in total_rows:
        label_cell = ws.cell(row=row, column=6, value=label)
        label_cell.font = fnt
        label_cell.alignment = Alignment(horizontal="right")
        amount_cell = ws.cell(row=row, column=7, value=amount)
        amount_cell.font = fnt
        amount_cell.number_format = amount_fmt
        row += 1

    buf = BytesIO()
    wb.save(buf)
    logger.info(f"Built XLSX export with {len(state.items)} items")
    return buf.getvalue()


# ========== PDF ==========

class QuotePDF(FPDF):
    """A4 landscape quote document."""

    def __init__(self, font_path: Optional[str] = None):
        super().__init__(orientation="L", unit="mm", format="A4")
        self.set_auto_page_break(auto=True, margin=15)
        self.set_margins(left=10, top=10, right=10)
        self._unicode_font = False
        self._font_name = "Helvetica"
        if font_path:
            self.add_font("QuoteFont", "", font_path)
            self.add_font("QuoteFont", "B", font_path)
            self._font_name = "QuoteFont"
            self._unicode_font = True

    def text_for(self, value: str) -> str:
        """Core fonts only cover latin-1; anything else is replaced."""
        value = value or ""
        if self._unicode_font:
            return value
        return value.encode("latin-1", "replace").decode("latin-1")

    def fit(self, value: str, width: float) -> str:
        """Truncate text so that it fits in a cell of ``width`` mm."""
        text = self.text_for(value)
        limit = width - 2
        if self.get_string_width(text) <= limit:
            return text
        while text and self.get_string_width(text + "...") > limit:
            text = text[:-1]
        return text + "..."

    def use(self, style: str = "", size: int = 10) -> None:
        self.set_font(self._font_name, style, size)


# (title, width in mm, alignment); widths add up to the 277 mm content width
PDF_COLUMNS = [
    ("No.", 12, "C"),
    ("Item", 50, "L"),
    ("Specification / Model", 60, "L"),
    ("Qty", 18, "C"),
    ("Unit", 18, "C"),
    ("Unit Price", 28, "R"),
    ("Line Total", 32, "R"),
    ("Brand / Remarks", 59, "L"),
]


def build_pdf(state: QuoteState, today: Optional[date] = None, font_path: Optional[str] = None) -> bytes:
    """Render the quote layout to an A4 landscape PDF."""
    _require_items(state)
    today = today or date.today()
    font_path = font_path if font_path is not None else settings.PDF_FONT_PATH
    currency = settings.CURRENCY_LABEL

    pdf = QuotePDF(font_path=font_path)
    pdf.add_page()
    header = state.header
    content_w = pdf.w - pdf.l_margin - pdf.r_margin

    # -- Title block --
    pdf.use("B", 20)
    pdf.cell(content_w * 0.65, 10, pdf.fit(header.project_name or "MEP Works Quotation", content_w * 0.65))
    pdf.use("", 9)
    pdf.cell(content_w * 0.35, 10, pdf.text_for(f"Quote date: {today.isoformat()}"), align="R",
             new_x="LMARGIN", new_y="NEXT")

    half = content_w / 2
    lines = [
        (f"Contractor: {header.vendor_name}", f"Client: {header.client_contact}"),
        (f"Contact: {header.vendor_contact} ({header.vendor_phone})", f"Phone: {header.client_phone}"),
        ("", f"Tax ID: {header.client_tax_id}" if header.client_tax_id else ""),
    ]
    pdf.use("", 10)
    for left, right in lines:
        pdf.cell(half, 6, pdf.fit(left, half))
        pdf.cell(half, 6, pdf.fit(right, half), align="R", new_x="LMARGIN", new_y="NEXT")

    y = pdf.get_y() + 2
    pdf.set_line_width(0.8)
    pdf.line(pdf.l_margin, y, pdf.l_margin + content_w, y)
    pdf.set_line_width(0.2)
    pdf.ln(5)

    # -- Item table --
    _table_header(pdf)
    pdf.use("", 9)
    for index, item in enumerate(state.items, start=1):
        if pdf.get_y() + 7 > pdf.h - pdf.b_margin:
            pdf.add_page()
            _table_header(pdf)
            pdf.use("", 9)
        brand_remarks = " / ".join(part for part in (item.brand, item.remarks) if part)
        values = [
            str(index),
            item.name,
            item.spec,
            plain_number(item.quantity),
            item.unit,
            format_amount(item.market_price),
            format_amount(item.line_total),
            brand_remarks,
        ]
        for (title, width, align), value in zip(PDF_COLUMNS, values):
            pdf.cell(width, 7, pdf.fit(value, width), border=1, align=align)
        pdf.ln(7)

    # -- Totals --
    totals = state.totals
    label_w = sum(width for _, width, _ in PDF_COLUMNS[:6])
    amount_w = PDF_COLUMNS[6][1]
    rows = [
        ("Subtotal (materials and labor)", totals.subtotal),
        (f"Management fee ({plain_number(state.management_rate)}%)", totals.management_fee),
        (f"Business tax ({plain_number(state.tax_rate)}%)", totals.tax),
    ]
    pdf.use("B", 10)
    for label, amount in rows:
        pdf.cell(label_w, 7, pdf.text_for(label), border=1, align="R")
        pdf.cell(amount_w, 7, pdf.text_for(f"{currency} {format_amount(amount)}"), border=1, align="R",
                 new_x="LMARGIN", new_y="NEXT")
    pdf.set_fill_color(30, 41, 59)
    pdf.set_text_color(255, 255, 255)
    pdf.cell(label_w, 9, "Grand total (tax included)", border=1, align="R", fill=True)
    pdf.cell(amount_w, 9, pdf.text_for(f"{currency} {format_amount(totals.grand_total)}"), border=1,
             align="R", fill=True, new_x="LMARGIN", new_y="NEXT")
    pdf.set_text_color(0, 0, 0)

    # -- Notes and citations --
    pdf.ln(6)
    pdf.use("B", 9)
    pdf.cell(content_w, 5, "Notes", new_x="LMARGIN", new_y="NEXT")
    pdf.use("", 8)
    for note in QUOTE_NOTES:
        pdf.cell(content_w, 5, pdf.text_for(f"- {note}"), new_x="LMARGIN", new_y="NEXT")

    if state.sources:
        pdf.ln(3)
        pdf.use("B", 9)
        pdf.cell(content_w, 5, "Price references", new_x="LMARGIN", new_y="NEXT")
        pdf.use("", 8)
        for source in state.sources:
            link = source.uri if source.uri and source.uri != "#" else ""
            pdf.cell(content_w, 5, pdf.fit(f"- {source.title}", content_w), link=link,
                     new_x="LMARGIN", new_y="NEXT")

    buf = BytesIO()
    pdf.output(buf)
    logger.info(f"Built PDF export with {len(state.items)} items")
    return buf.getvalue()


def _table_header(pdf: QuotePDF) -> None:
    pdf.use("B", 9)
    pdf.set_fill_color(15, 23, 42)
    pdf.set_text_color(255, 255, 255)
    for title, width, _ in PDF_COLUMNS:
        pdf.cell(width, 8, title, border=1, align="C", fill=True)
    pdf.ln(8)
    pdf.set_text_color(0, 0, 0)
