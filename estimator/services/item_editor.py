"""
Item list editing rules.

Every operation returns a new list and leaves the caller's list untouched, so
list identity can be used as a change signal. Items are addressed by id,
never by position, except for ``move_item`` which works on the displayed
index. Stale ids and boundary indices degrade to no-ops.
"""

from __future__ import annotations

import re
from typing import Any, List, Literal, Sequence

from estimator.core.logging import get_logger
from estimator.ui.viewmodels import LineItem, new_line_item

logger = get_logger(__name__)

Direction = Literal["up", "down"]

# Python field name by accepted name (python names and camelCase aliases)
_FIELD_NAMES = {}
for _name, _info in LineItem.model_fields.items():
    _FIELD_NAMES[_name] = _name
    if _info.alias:
        _FIELD_NAMES[_info.alias] = _name

NUMERIC_FIELDS = {"quantity", "market_price"}
IMMUTABLE_FIELDS = {"id"}


def resolve_field(field: str) -> str:
    """Map a field name or alias to the model attribute name."""
    try:
        name = _FIELD_NAMES[field]
    except KeyError:
        raise ValueError(f"Unknown line item field: {field!r}")
    if name in IMMUTABLE_FIELDS:
        raise ValueError(f"Line item field {field!r} cannot be edited")
    return name


def coerce_number(raw: Any) -> float:
    """
    Parse user numeric input. Commas and currency signs are ignored; anything
    that does not parse becomes 0.
    """
    if isinstance(raw, bool):
        return float(raw)
    if isinstance(raw, (int, float)):
        return float(raw)
    cleaned = re.sub(r"[,\s$]|NT\$", "", str(raw or ""))
    try:
        value = float(cleaned)
    except ValueError:
        return 0.0
    if value != value or value in (float("inf"), float("-inf")):
        return 0.0
    return value


def add_item(items: Sequence[LineItem]) -> List[LineItem]:
    """Append one blank row."""
    return [*items, new_line_item()]


def update_item(items: Sequence[LineItem], item_id: str, field: str, value: Any) -> List[LineItem]:
    """Replace the matching item by a copy with ``field`` set to ``value``."""
    name = resolve_field(field)
    updated = []
    for item in items:
        if item.id == item_id:
            data = item.model_dump(exclude={"line_total"})
            data[name] = value
            item = LineItem.model_validate(data)
        updated.append(item)
    return updated


def remove_item(items: Sequence[LineItem], item_id: str) -> List[LineItem]:
    """Drop the matching item, if any."""
    return [item for item in items if item.id != item_id]


def move_item(items: Sequence[LineItem], index: int, direction: Direction) -> List[LineItem]:
    """Swap the item at ``index`` with its neighbour in ``direction``."""
    moved = list(items)
    if direction == "up":
        target = index - 1
    elif direction == "down":
        target = index + 1
    else:
        raise ValueError(f"Unknown direction: {direction!r}")

    if not (0 <= index < len(moved)) or not (0 <= target < len(moved)):
        return moved

    moved[index], moved[target] = moved[target], moved[index]
    return moved


def contains(items: Sequence[LineItem], item_id: str) -> bool:
    return any(item.id == item_id for item in items)
