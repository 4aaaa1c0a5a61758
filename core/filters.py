from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, FrozenSet, List, Mapping, Optional

from core.columns import DATE_RESET_COLUMNS, SERVICE_CATEGORY, SERVICE_CODE, SERVICE_DESCRIPTION, STATE
from core.dates import parse_date
from core.index import CombinationIndex
from core.selections import (
    SelectionValue,
    Selections,
    ValueSet,
    empty_selections,
    parse_selection_value,
    parse_selections,
)

logger = logging.getLogger(__name__)

DATE_RANGE = "date_range"


@dataclass(frozen=True)
class FilterState:
    """One session's filter state. Every transition returns a new instance."""

    selections: Selections = field(default_factory=dict)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    pending: FrozenSet[str] = frozenset()

    def get(self, column: str) -> Optional[ValueSet]:
        return self.selections.get(column)


def new_filter_state(index: CombinationIndex) -> FilterState:
    return FilterState(selections=empty_selections(index.chain))


def normalize_filter_state(raw: dict, *, index: CombinationIndex) -> FilterState:
    """Read a wire-format state (comma-joined multi-selects, ISO date bounds)."""
    selections = parse_selections(raw.get("selections") or {}, columns=index.chain)

    def _date(key: str) -> Optional[date]:
        value = raw.get(key)
        return parse_date(value) if value else None

    pending = frozenset(str(x) for x in (raw.get("pending") or []) if x)
    return FilterState(selections=selections, start_date=_date("start_date"), end_date=_date("end_date"), pending=pending)


def _restrict(index: CombinationIndex, column: str, values: ValueSet, context: Mapping[str, Optional[ValueSet]]) -> Optional[ValueSet]:
    legal = index.legal_values(column, context)
    kept = frozenset(v for v in values if v in legal)
    return kept or None


def set_selection(index: CombinationIndex, state: FilterState, column: str, value: SelectionValue) -> FilterState:
    """Apply one filter change and narrow everything downstream of it.

    The new value is kept only where it is compatible with the selections
    earlier in the dependency chain. Each later selection is then checked in
    chain order against everything before it and cleared (or narrowed, for
    multi-selects) when it no longer has a matching row. Earlier selections
    are never touched.
    """
    chain = index.chain
    if column not in chain:
        raise KeyError(f"Unknown filter column '{column}'")
    pos = chain.index(column)
    selections: Selections = {c: state.selections.get(c) for c in chain}

    requested = parse_selection_value(column, value)
    upstream = {c: selections[c] for c in chain[:pos]}
    new_value = _restrict(index, column, requested, upstream) if requested is not None else None
    if requested is not None and new_value != requested:
        logger.debug("Dropped %s values incompatible with earlier filters: %s", column, sorted(requested - (new_value or frozenset())))
    selections[column] = new_value

    for i in range(pos + 1, len(chain)):
        downstream = chain[i]
        current = selections[downstream]
        if current is None:
            continue
        context = {c: selections[c] for c in chain[:i]}
        narrowed = _restrict(index, downstream, current, context)
        if narrowed != current:
            logger.debug("Narrowed %s from %s to %s after %s changed", downstream, sorted(current), sorted(narrowed or ()), column)
        selections[downstream] = narrowed

    start_date, end_date = state.start_date, state.end_date
    if column in DATE_RESET_COLUMNS:
        if index.date_column in selections:
            selections[index.date_column] = None
        start_date = end_date = None
    elif column == index.date_column and new_value is not None:
        start_date = end_date = None

    return FilterState(
        selections=selections,
        start_date=start_date,
        end_date=end_date,
        pending=state.pending | {column},
    )


def set_date_range(state: FilterState, start: Optional[date | str], end: Optional[date | str]) -> FilterState:
    start_date = parse_date(start) if start else None
    end_date = parse_date(end) if end else None
    if start_date and end_date and start_date > end_date:
        start_date, end_date = end_date, start_date
    return replace(state, start_date=start_date, end_date=end_date, pending=state.pending | {DATE_RANGE})


def apply_filters(state: FilterState) -> FilterState:
    """Mark the current selections as searched."""
    return replace(state, pending=frozenset())


def reset_filters(index: CombinationIndex) -> FilterState:
    return new_filter_state(index)


def filters_applied(state: FilterState, *, date_column: str) -> bool:
    """Category and state chosen plus a code, description, effective date or full date range."""
    s = state.selections
    if not s.get(SERVICE_CATEGORY) or not s.get(STATE):
        return False
    return bool(
        s.get(SERVICE_CODE)
        or s.get(SERVICE_DESCRIPTION)
        or s.get(date_column)
        or (state.start_date and state.end_date)
    )


def unreachable_columns(index: CombinationIndex, selections: Mapping[str, Optional[ValueSet]]) -> List[str]:
    """Columns whose selection has no legal value given all the other selections."""
    out = []
    for column, values in selections.items():
        if values is None:
            continue
        if not set(values) & index.legal_values(column, selections):
            out.append(column)
    return out


def available_options(index: CombinationIndex, state: FilterState) -> Dict[str, List[str]]:
    return {c: index.available_values(c, state.selections) for c in index.chain}
