"""
UI routes for the quote editor.
Handles page rendering and HTMX partial updates.
"""

from datetime import date
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from estimator.api.deps import Extractor, SessionId
from estimator.core.config import settings
from estimator.core.logging import get_logger
from estimator.services.export_service import format_amount, plain_number
from estimator.services.extraction_service import ExtractionError
from estimator.services.extraction_workflow import run_extraction
from estimator.services.item_editor import NUMERIC_FIELDS, coerce_number, resolve_field
from estimator.services.quote_reducer import (
    AddItem,
    DismissError,
    MoveItem,
    QuoteCommand,
    RemoveItem,
    ResetQuote,
    SetRates,
    UpdateHeader,
    UpdateItem,
)
from estimator.ui import state as quote_state
from estimator.ui.state import ExtractionInProgress
from estimator.ui.viewmodels import QuoteHeaderInfo, QuoteState

logger = get_logger(__name__)

router = APIRouter()

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))
templates.env.filters["amount"] = format_amount
templates.env.filters["number"] = plain_number

HEADER_FIELDS = list(QuoteHeaderInfo.model_fields)


def get_template_context(request: Request, state: QuoteState, **kwargs):
    """Get base template context with common data."""
    return {
        "request": request,
        "quote": state,
        "totals": state.totals,
        "warnings": state.warnings(),
        "currency": settings.CURRENCY_LABEL,
        "today": date.today().isoformat(),
        "api_prefix": settings.API_V1_PREFIX,
        "notice": None,
        **kwargs,
    }


def render_quote(request: Request, state: QuoteState, notice: Optional[str] = None) -> HTMLResponse:
    """
    Render the quote table partial. ``notice`` is a one-off message shown in
    the banner without being stored; HTMX only swaps 2xx responses.
    """
    context = get_template_context(request, state, notice=notice)
    html = templates.get_template("partials/quote.html").render(context)
    return HTMLResponse(html)


def _apply(request: Request, session_id: str, command: QuoteCommand) -> HTMLResponse:
    try:
        state = quote_state.dispatch(session_id, command)
    except ValueError as e:
        logger.info(f"Rejected {command.type}: {e}")
        return render_quote(request, quote_state.get_state(session_id), notice=str(e))
    return render_quote(request, state)


def _reject(request: Request, session_id: str, message: str) -> HTMLResponse:
    return render_quote(request, quote_state.get_state(session_id), notice=message)


# ========== Page Routes ==========

@router.get("/", response_class=HTMLResponse)
async def quote_page(request: Request, session_id: SessionId):
    """Render the quote editor page."""
    state = quote_state.get_state(session_id)
    context = get_template_context(request, state, header_fields=HEADER_FIELDS)
    return templates.TemplateResponse(request, "index.html", context)


@router.post("/ui/reset")
async def reset_quote(session_id: SessionId):
    """Discard the quote and start over."""
    quote_state.dispatch(session_id, ResetQuote())
    return RedirectResponse(url="/", status_code=303)


# ========== HTMX Partial Update Routes ==========

@router.get("/ui/quote", response_class=HTMLResponse)
async def get_quote_partial(request: Request, session_id: SessionId):
    """Return the quote table for HTMX refresh."""
    return render_quote(request, quote_state.get_state(session_id))


@router.post("/ui/header", response_class=HTMLResponse)
async def update_header(request: Request, session_id: SessionId):
    """Update header fields from the form and re-render the quote."""
    form = await request.form()
    fields = {name: str(form[name]) for name in HEADER_FIELDS if name in form}
    return _apply(request, session_id, UpdateHeader(fields=fields))


@router.post("/ui/rates", response_class=HTMLResponse)
async def update_rates(
    request: Request,
    session_id: SessionId,
    management_rate: str = Form(default="0"),
    tax_rate: str = Form(default="0"),
):
    """Update both percentages; invalid input counts as 0."""
    command = SetRates(
        management_rate=coerce_number(management_rate),
        tax_rate=coerce_number(tax_rate),
    )
    return _apply(request, session_id, command)


@router.post("/ui/error/dismiss", response_class=HTMLResponse)
async def dismiss_error(request: Request, session_id: SessionId):
    """Hide the error banner."""
    return _apply(request, session_id, DismissError())


@router.post("/ui/items/add", response_class=HTMLResponse)
async def add_item(request: Request, session_id: SessionId):
    """Append a blank row."""
    return _apply(request, session_id, AddItem())


@router.post("/ui/items/move", response_class=HTMLResponse)
async def move_item(
    request: Request,
    session_id: SessionId,
    index: int = Form(...),
    direction: str = Form(...),
):
    """Move a row one position up or down."""
    if direction not in ("up", "down"):
        return _reject(request, session_id, f"Unknown direction: {direction!r}")
    return _apply(request, session_id, MoveItem(index=index, direction=direction))


@router.post("/ui/items/{item_id}/field", response_class=HTMLResponse)
async def update_item_field(
    request: Request,
    item_id: str,
    session_id: SessionId,
    field: str = Form(...),
    value: str = Form(default=""),
):
    """Update one cell; numeric cells coerce invalid input to 0."""
    try:
        name = resolve_field(field)
    except ValueError as e:
        return _reject(request, session_id, str(e))
    new_value = coerce_number(value) if name in NUMERIC_FIELDS else value
    return _apply(request, session_id, UpdateItem(item_id=item_id, field=name, value=new_value))


@router.post("/ui/items/{item_id}/remove", response_class=HTMLResponse)
async def remove_item(request: Request, item_id: str, session_id: SessionId):
    """Delete a row."""
    return _apply(request, session_id, RemoveItem(item_id=item_id))


@router.post("/ui/extract/text", response_class=HTMLResponse)
async def extract_text(
    request: Request,
    session_id: SessionId,
    extractor: Extractor,
    text: str = Form(default=""),
):
    """Analyze a pasted material list. Failures show a banner and keep the rows."""
    if not text.strip():
        return _reject(request, session_id, "Enter a material list to analyze")
    return await _extract(request, session_id, lambda: extractor.extract_from_text(text))


@router.post("/ui/extract/image", response_class=HTMLResponse)
async def extract_image(
    request: Request,
    session_id: SessionId,
    extractor: Extractor,
    file: Optional[UploadFile] = File(default=None),
):
    """Analyze a photo. Failures show a banner and keep the rows."""
    if file is None or not file.filename:
        return _reject(request, session_id, "Choose a photo to analyze")
    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        return _reject(request, session_id, "Please upload an image file")
    data = await file.read()
    if not data:
        return _reject(request, session_id, "Uploaded image is empty")
    logger.info(f"Processing uploaded image: {file.filename}")
    return await _extract(request, session_id, lambda: extractor.extract_from_image(data, content_type))


async def _extract(request: Request, session_id: str, operation) -> HTMLResponse:
    try:
        state = await run_extraction(session_id, operation)
    except ExtractionInProgress as e:
        return _reject(request, session_id, str(e))
    except (ExtractionError, ValueError):
        # The failure message is already recorded on the state
        state = quote_state.get_state(session_id)
    return render_quote(request, state)
