"""
Quote editing routes.
Every change is expressed as a reducer command on the session's quote.
"""

from fastapi import APIRouter, HTTPException, status
from pydantic import ValidationError

from estimator.api.deps import CurrentQuote, SessionId
from estimator.core.logging import get_logger
from estimator.schemas.quote import (
    HeaderUpdateRequest,
    ItemUpdateRequest,
    MoveItemRequest,
    QuoteResponse,
    RatesRequest,
    quote_response,
)
from estimator.services import item_editor
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

logger = get_logger(__name__)

router = APIRouter(prefix="/quote", tags=["quote"])


def _apply(session_id: str, command: QuoteCommand) -> QuoteResponse:
    try:
        state = quote_state.dispatch(session_id, command)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.errors(include_url=False))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return quote_response(state)


@router.get("", response_model=QuoteResponse)
def get_quote(quote: CurrentQuote) -> QuoteResponse:
    """Return the current quote with totals."""
    return quote_response(quote)


@router.put("/header", response_model=QuoteResponse)
def update_header(request: HeaderUpdateRequest, session_id: SessionId) -> QuoteResponse:
    """Update project, vendor and client fields."""
    return _apply(session_id, UpdateHeader(fields=request.fields))


@router.put("/rates", response_model=QuoteResponse)
def update_rates(request: RatesRequest, session_id: SessionId) -> QuoteResponse:
    """Set the management fee and/or tax percentage."""
    return _apply(session_id, SetRates(management_rate=request.management_rate, tax_rate=request.tax_rate))


@router.post("/items", response_model=QuoteResponse, status_code=status.HTTP_201_CREATED)
def add_item(session_id: SessionId) -> QuoteResponse:
    """Append a blank line item."""
    return _apply(session_id, AddItem())


@router.patch("/items/{item_id}", response_model=QuoteResponse)
def update_item(item_id: str, request: ItemUpdateRequest, quote: CurrentQuote, session_id: SessionId) -> QuoteResponse:
    """Set one field of a line item."""
    if not item_editor.contains(quote.items, item_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    return _apply(session_id, UpdateItem(item_id=item_id, field=request.field, value=request.value))


@router.delete("/items/{item_id}", response_model=QuoteResponse)
def remove_item(item_id: str, quote: CurrentQuote, session_id: SessionId) -> QuoteResponse:
    """Remove a line item."""
    if not item_editor.contains(quote.items, item_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    return _apply(session_id, RemoveItem(item_id=item_id))


@router.post("/items/move", response_model=QuoteResponse)
def move_item(request: MoveItemRequest, session_id: SessionId) -> QuoteResponse:
    """Swap an item with its neighbour; boundary moves change nothing."""
    return _apply(session_id, MoveItem(index=request.index, direction=request.direction))


@router.post("/error/dismiss", response_model=QuoteResponse)
def dismiss_error(session_id: SessionId) -> QuoteResponse:
    """Clear the last extraction error message."""
    return _apply(session_id, DismissError())


@router.post("/reset", response_model=QuoteResponse)
def reset_quote(session_id: SessionId) -> QuoteResponse:
    """Discard the quote and start over."""
    logger.info("Quote reset")
    return _apply(session_id, ResetQuote())
