"""Selection normalizer.

OPNsense ``get`` endpoints return option, CSV-list and network-list
fields as selection mappings::

    {"http": {"value": "HTTP", "selected": 1}, "tcp": {"value": "TCP", "selected": 0}}

while ``set`` endpoints accept the plain string ``"http"``. Collapsing the
read form to the write form lets current and desired state be compared
field by field.
"""
from typing import Any


def is_selection(value: Any) -> bool:
    """True for a non-empty mapping whose every value is a ``{value, selected}`` mapping."""
    return (
        isinstance(value, dict)
        and bool(value)
        and all(
            isinstance(option, dict) and "value" in option and "selected" in option
            for option in value.values()
        )
    )


def _selected(option: dict) -> bool:
    try:
        return int(option["selected"]) == 1
    except (TypeError, ValueError):
        return False


def collapse_selection(selection: dict) -> str:
    """Join the selected keys with ``,`` in their original order."""
    return ",".join(str(key) for key, option in selection.items() if _selected(option))


def normalize_selections(value: Any) -> Any:
    """Recursively replace selection mappings with their canonical string.

    Mappings that are not selections are rebuilt with normalized values;
    scalars and sequences pass through untouched. Normalizing an already
    normalized value returns an equal value.
    """
    if not isinstance(value, dict):
        return value
    if is_selection(value):
        return collapse_selection(value)
    return {key: normalize_selections(item) for key, item in value.items()}
