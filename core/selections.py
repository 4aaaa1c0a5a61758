"""Selections: the user's chosen value-set per column, or ``None`` for unconstrained.

Inside the core every chosen value is a frozenset so single- and multi-select
columns match the same way. Comma-joined strings only exist at the edges:
``parse_selections`` reads them and ``serialize_selections`` writes them.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Union

from core.columns import MULTI_SELECT_COLUMNS, SERVICE_CODE, service_code_sort_key

ValueSet = FrozenSet[str]
SelectionValue = Union[None, str, Iterable[str]]
Selections = Dict[str, Optional[ValueSet]]

SEPARATOR = ","


def as_value_set(value: SelectionValue) -> Optional[ValueSet]:
    """Wrap a value (or values) as a value-set; ``None`` and empty mean unconstrained."""
    if value is None:
        return None
    if isinstance(value, str):
        return frozenset({value}) if value else None
    out = frozenset(str(v) for v in value if v is not None and str(v) != "")
    return out or None


def empty_selections(columns: Iterable[str]) -> Selections:
    return {c: None for c in columns}


def parse_selection_value(column: str, raw: SelectionValue) -> Optional[ValueSet]:
    if isinstance(raw, str):
        raw = raw.strip()
        if column in MULTI_SELECT_COLUMNS and SEPARATOR in raw:
            return as_value_set(part.strip() for part in raw.split(SEPARATOR))
    return as_value_set(raw)


def parse_selections(raw: Mapping[str, SelectionValue], *, columns: Iterable[str]) -> Selections:
    """Build ordered selections for ``columns`` from wire values; unknown keys are dropped."""
    return {c: parse_selection_value(c, raw.get(c)) for c in columns}


def sorted_values(column: str, values: Iterable[str]) -> List[str]:
    if column == SERVICE_CODE:
        return sorted(values, key=service_code_sort_key)
    return sorted(values)


def join_selection_value(column: str, values: Optional[ValueSet]) -> Optional[str]:
    if not values:
        return None
    return SEPARATOR.join(sorted_values(column, values))


def serialize_selections(selections: Mapping[str, Optional[ValueSet]]) -> Dict[str, Optional[str]]:
    return {c: join_selection_value(c, v) for c, v in selections.items()}
