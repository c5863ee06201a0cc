"""
Export routes: CSV, XLSX and PDF downloads of the current quote.
"""

from datetime import date
from io import BytesIO
from urllib.parse import quote as url_quote

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from estimator.api.deps import CurrentQuote
from estimator.services.export_service import build_csv, build_pdf, build_xlsx, export_filename

router = APIRouter(prefix="/export", tags=["export"])


def _attachment(content: bytes, media_type: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        BytesIO(content),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{url_quote(filename)}"},
    )


@router.get("/csv")
def export_csv(quote: CurrentQuote) -> StreamingResponse:
    """Download the quote as CSV (UTF-8 with BOM)."""
    today = date.today()
    content = build_csv(quote, today=today)
    return _attachment(content, "text/csv; charset=utf-8", export_filename(quote.header.project_name, "csv", today))


@router.get("/pdf")
def export_pdf(quote: CurrentQuote) -> StreamingResponse:
    """Download the quote as an A4 landscape PDF."""
    today = date.today()
    content = build_pdf(quote, today=today)
    return _attachment(content, "application/pdf", export_filename(quote.header.project_name, "pdf", today))


@router.get("/xlsx")
def export_xlsx(quote: CurrentQuote) -> StreamingResponse:
    """Download the quote as a formatted Excel workbook."""
    today = date.today()
    content = build_xlsx(quote, today=today)
    return _attachment(
        content,
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        export_filename(quote.header.project_name, "xlsx", today),
    )
