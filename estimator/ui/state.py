"""
Server-side state management for quote sessions.
In-memory only: a restart discards every quote.

Routes run both on the event loop and in the threadpool, so every
read-reduce-store cycle holds ``_lock``. The store keeps at most
``MAX_SESSIONS`` quotes; the least recently used idle one is evicted first.
"""

import threading
from collections import OrderedDict
from typing import Optional
import uuid

from estimator.core.config import settings
from estimator.core.logging import get_logger
from estimator.services.quote_reducer import ExtractionStarted, QuoteCommand, reduce
from estimator.ui.viewmodels import QuoteState

logger = get_logger(__name__)

# Active quote per session id, least recently used first
_quotes: "OrderedDict[str, QuoteState]" = OrderedDict()
_lock = threading.RLock()


class ExtractionInProgress(RuntimeError):
    """Raised when a session already has an extraction call outstanding."""


def new_session_id() -> str:
    return uuid.uuid4().hex


def _evict_idle() -> None:
    """Drop least recently used quotes until the store is within bounds."""
    overflow = len(_quotes) - settings.MAX_SESSIONS
    if overflow <= 0:
        return
    for session_id in list(_quotes):
        if overflow <= 0:
            break
        if _quotes[session_id].extracting:
            continue
        del _quotes[session_id]
        overflow -= 1
        logger.info(f"Evicted idle quote session {session_id}")


def get_state(session_id: str) -> QuoteState:
    """Retrieve the quote for a session, creating an empty one on first use."""
    with _lock:
        state = _quotes.get(session_id)
        if state is None:
            state = QuoteState()
            _quotes[session_id] = state
            logger.info("Created new quote state")
            _evict_idle()
        else:
            _quotes.move_to_end(session_id)
        return state


def dispatch(session_id: str, command: QuoteCommand) -> QuoteState:
    """
    Apply a command to the session's quote and store the result.
    If the reducer raises, the stored state is left as it was.
    """
    with _lock:
        state = reduce(get_state(session_id), command)
        _quotes[session_id] = state
    logger.debug(f"Applied {command.type}: {len(state.items)} items")
    return state


def begin_extraction(session_id: str) -> QuoteState:
    """Mark an extraction as in flight; only one may run per session."""
    with _lock:
        if get_state(session_id).extracting:
            raise ExtractionInProgress("An extraction is already running for this quote")
        return dispatch(session_id, ExtractionStarted())


def clear_state(session_id: Optional[str] = None) -> bool:
    """
    Clear a specific session or all if no ID provided.
    Returns True if something was cleared.
    """
    with _lock:
        if session_id:
            if session_id in _quotes:
                del _quotes[session_id]
                logger.info("Cleared quote state")
                return True
            return False

        had_data = len(_quotes) > 0
        _quotes.clear()
    if had_data:
        logger.info("Cleared all quote states")
    return had_data


def list_session_ids() -> list[str]:
    """List all stored session IDs."""
    with _lock:
        return list(_quotes.keys())
