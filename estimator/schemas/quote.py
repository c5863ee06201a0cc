"""
Quote schemas for the JSON API.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from estimator.services.item_editor import Direction
from estimator.ui.viewmodels import GroundingSource, LineItem, QuoteHeaderInfo, SourceMode
from estimator.services.quote_calculator import QuoteTotals


class QuoteResponse(BaseModel):
    """Current quote with derived totals and row warnings."""
    items: List[LineItem]
    sources: List[GroundingSource]
    header: QuoteHeaderInfo
    management_rate: float
    tax_rate: float
    totals: QuoteTotals
    source_mode: Optional[SourceMode] = None
    error: Optional[str] = None
    extracting: bool = False
    can_export: bool = False
    warnings: Dict[str, List[str]] = Field(default_factory=dict)


class ItemUpdateRequest(BaseModel):
    """Set one field of one line item."""
    field: str = Field(description="Field name, snake_case or camelCase (e.g. quantity, marketPrice)")
    value: Any


class MoveItemRequest(BaseModel):
    """Swap the item at ``index`` with its neighbour."""
    index: int
    direction: Direction


class RatesRequest(BaseModel):
    """Percentages; omitted values are left unchanged."""
    management_rate: Optional[float] = None
    tax_rate: Optional[float] = None


class HeaderUpdateRequest(BaseModel):
    """Partial header update keyed by field name."""
    fields: Dict[str, str]


class TextExtractionRequest(BaseModel):
    """Free-text material list."""
    text: str = Field(min_length=1)


class ExtractionErrorResponse(BaseModel):
    detail: str
    kind: str


class ModelProbeResponse(BaseModel):
    model: str
    ok: bool
    error: Optional[str] = None


def quote_response(state: Any) -> QuoteResponse:
    """Build the API view of a QuoteState."""
    return QuoteResponse(
        items=state.items,
        sources=state.sources,
        header=state.header,
        management_rate=state.management_rate,
        tax_rate=state.tax_rate,
        totals=state.totals,
        source_mode=state.source_mode,
        error=state.error,
        extracting=state.extracting,
        can_export=state.can_export,
        warnings=state.warnings(),
    )
