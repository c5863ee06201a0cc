"""
Quote state transitions.

All mutation of a QuoteState goes through ``reduce``: one command in, one new
state out. A command either applies completely or, when it raises, leaves the
previous state in place.
"""

from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field

from estimator.core.logging import get_logger
from estimator.services import item_editor
from estimator.ui.viewmodels import (
    GroundingSource,
    LineItem,
    QuoteHeaderInfo,
    QuoteState,
    SourceMode,
    new_item_id,
)

logger = get_logger(__name__)


class AddItem(BaseModel):
    type: Literal["add_item"] = "add_item"


class UpdateItem(BaseModel):
    type: Literal["update_item"] = "update_item"
    item_id: str
    field: str
    value: Any


class RemoveItem(BaseModel):
    type: Literal["remove_item"] = "remove_item"
    item_id: str


class MoveItem(BaseModel):
    type: Literal["move_item"] = "move_item"
    index: int
    direction: item_editor.Direction


class SetRates(BaseModel):
    """Either rate may be omitted to keep its current value."""
    type: Literal["set_rates"] = "set_rates"
    management_rate: float | None = None
    tax_rate: float | None = None


class UpdateHeader(BaseModel):
    """Partial header update: only the given fields change."""
    type: Literal["update_header"] = "update_header"
    fields: Dict[str, str] = Field(default_factory=dict)


class ExtractionStarted(BaseModel):
    type: Literal["extraction_started"] = "extraction_started"


class ReplaceExtraction(BaseModel):
    """Install a complete extraction result, replacing items and sources."""
    type: Literal["replace_extraction"] = "replace_extraction"
    items: List[LineItem]
    sources: List[GroundingSource] = Field(default_factory=list)
    mode: SourceMode = "grounded"


class ExtractionFailed(BaseModel):
    type: Literal["extraction_failed"] = "extraction_failed"
    message: str


class DismissError(BaseModel):
    type: Literal["dismiss_error"] = "dismiss_error"


class ResetQuote(BaseModel):
    type: Literal["reset_quote"] = "reset_quote"


QuoteCommand = Union[
    AddItem,
    UpdateItem,
    RemoveItem,
    MoveItem,
    SetRates,
    UpdateHeader,
    ExtractionStarted,
    ReplaceExtraction,
    ExtractionFailed,
    DismissError,
    ResetQuote,
]


def _with_fresh_ids(items: List[LineItem]) -> List[LineItem]:
    """Extracted ids are never trusted; every installed row gets a new one."""
    return [item.model_copy(update={"id": new_item_id()}) for item in items]


def reduce(state: QuoteState, command: QuoteCommand) -> QuoteState:
    """Apply one command and return the resulting state."""
    if isinstance(command, AddItem):
        return state.model_copy(update={"items": item_editor.add_item(state.items)})

    if isinstance(command, UpdateItem):
        items = item_editor.update_item(state.items, command.item_id, command.field, command.value)
        return state.model_copy(update={"items": items})

    if isinstance(command, RemoveItem):
        return state.model_copy(update={"items": item_editor.remove_item(state.items, command.item_id)})

    if isinstance(command, MoveItem):
        items = item_editor.move_item(state.items, command.index, command.direction)
        return state.model_copy(update={"items": items})

    if isinstance(command, SetRates):
        update = {}
        if command.management_rate is not None:
            update["management_rate"] = command.management_rate
        if command.tax_rate is not None:
            update["tax_rate"] = command.tax_rate
        return state.model_copy(update=update)

    if isinstance(command, UpdateHeader):
        data = state.header.model_dump()
        for key, value in command.fields.items():
            name = _header_field(key)
            data[name] = value
        return state.model_copy(update={"header": QuoteHeaderInfo.model_validate(data)})

    if isinstance(command, ExtractionStarted):
        return state.model_copy(update={"extracting": True, "error": None})

    if isinstance(command, ReplaceExtraction):
        logger.info(f"Installing {len(command.items)} extracted items ({command.mode})")
        return state.model_copy(update={
            "items": _with_fresh_ids(command.items),
            "sources": list(command.sources),
            "source_mode": command.mode,
            "extracting": False,
            "error": None,
        })

    if isinstance(command, ExtractionFailed):
        return state.model_copy(update={"extracting": False, "error": command.message})

    if isinstance(command, DismissError):
        return state.model_copy(update={"error": None})

    if isinstance(command, ResetQuote):
        # An in-flight extraction keeps its claim on the session
        return QuoteState(extracting=state.extracting)

    raise TypeError(f"Unsupported command: {type(command).__name__}")


_HEADER_FIELDS = {}
for _name, _info in QuoteHeaderInfo.model_fields.items():
    _HEADER_FIELDS[_name] = _name
    if _info.alias:
        _HEADER_FIELDS[_info.alias] = _name


def _header_field(key: str) -> str:
    try:
        return _HEADER_FIELDS[key]
    except KeyError:
        raise ValueError(f"Unknown header field: {key!r}")
