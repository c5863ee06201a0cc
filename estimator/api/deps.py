"""
API dependencies for FastAPI dependency injection.
Provides the quote session and the extraction service to routes.
"""

from typing import Annotated, Optional

from fastapi import Depends, Request

from estimator.core.logging import get_logger
from estimator.services.extraction_service import ExtractionService
from estimator.ui import state as quote_state
from estimator.ui.viewmodels import QuoteState

logger = get_logger(__name__)

_extraction_service: Optional[ExtractionService] = None


def get_session_id(request: Request) -> str:
    """
    Dependency returning the quote session id assigned by the session
    middleware.
    """
    return request.state.session_id


def get_quote(session_id: Annotated[str, Depends(get_session_id)]) -> QuoteState:
    """Dependency returning the current quote of the session."""
    return quote_state.get_state(session_id)


def get_extraction_service() -> ExtractionService:
    """
    Dependency returning the shared extraction service.
    The Gemini client is created lazily on first use.
    """
    global _extraction_service
    if _extraction_service is None:
        _extraction_service = ExtractionService()
        logger.info(f"Extraction service ready (model {_extraction_service.model})")
    return _extraction_service


SessionId = Annotated[str, Depends(get_session_id)]
CurrentQuote = Annotated[QuoteState, Depends(get_quote)]
Extractor = Annotated[ExtractionService, Depends(get_extraction_service)]
