"""Pydantic schemas for request/response validation."""

from estimator.schemas.quote import (
    HeaderUpdateRequest,
    ItemUpdateRequest,
    MoveItemRequest,
    QuoteResponse,
    RatesRequest,
    TextExtractionRequest,
)

__all__ = [
    "HeaderUpdateRequest",
    "ItemUpdateRequest",
    "MoveItemRequest",
    "QuoteResponse",
    "RatesRequest",
    "TextExtractionRequest",
]
