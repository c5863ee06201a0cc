"""
Runs one extraction call against a session's quote.

The quote is marked as extracting for the duration of the call. On success
the whole item list and source list are replaced. On any failure, including
cancellation of the awaiting request, both stay exactly as they were, the
session is released and a readable message is recorded on the state.
"""

import asyncio
from typing import Callable

from fastapi.concurrency import run_in_threadpool

from estimator.core.logging import get_logger
from estimator.services.extraction_service import ExtractionError
from estimator.services.quote_reducer import ExtractionFailed, ReplaceExtraction
from estimator.ui import state as quote_state
from estimator.ui.viewmodels import AnalysisResult, QuoteState

logger = get_logger(__name__)

UNEXPECTED_FAILURE_MESSAGE = "Analysis failed unexpectedly. Please try again."
CANCELLED_MESSAGE = "Analysis was interrupted before it finished. Please try again."


async def run_extraction(session_id: str, operation: Callable[[], AnalysisResult]) -> QuoteState:
    """
    Execute ``operation`` in the threadpool and install its result.

    Raises:
        ExtractionInProgress: another call is already running for the session
        ExtractionError: the call failed; state keeps its previous items
    """
    quote_state.begin_extraction(session_id)
    try:
        result = await run_in_threadpool(operation)
    except ExtractionError as exc:
        logger.warning(f"Extraction failed ({exc.kind.value}): {exc.message}")
        quote_state.dispatch(session_id, ExtractionFailed(message=exc.user_message))
        raise
    except ValueError as exc:
        quote_state.dispatch(session_id, ExtractionFailed(message=str(exc)))
        raise
    except asyncio.CancelledError:
        logger.warning("Extraction cancelled; releasing the session")
        quote_state.dispatch(session_id, ExtractionFailed(message=CANCELLED_MESSAGE))
        raise
    except Exception:
        logger.exception("Unexpected extraction failure")
        quote_state.dispatch(session_id, ExtractionFailed(message=UNEXPECTED_FAILURE_MESSAGE))
        raise

    return quote_state.dispatch(
        session_id,
        ReplaceExtraction(items=result.items, sources=result.sources, mode=result.mode),
    )
