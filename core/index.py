from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import numpy as np
import pandas as pd

from core.codec import Combination, FilterOptions
from core.columns import BLANK_TOKEN, DEPENDENCY_CHAIN, MODIFIER, MODIFIER_SLOTS
from core.dates import try_parse_date
from core.selections import SelectionValue, as_value_set, sorted_values


class CombinationIndex:
    """Read-only view over every valid filter combination.

    Rows live in a DataFrame (one column per payload column). The date column
    holds a tuple of dates per row and is matched through an exploded series.
    """

    def __init__(self, options: FilterOptions, *, chain: Sequence[str] = DEPENDENCY_CHAIN):
        self.options = options
        self.columns: Tuple[str, ...] = options.columns
        self.date_column = options.date_column
        self.chain: Tuple[str, ...] = tuple(c for c in chain if c in self.columns)
        self.combinations: List[Combination] = list(options.combinations)
        self.frame = pd.DataFrame([dict(c) for c in self.combinations], columns=list(self.columns))
        if self.date_column in self.frame.columns:
            self._dates: pd.Series = self.frame[self.date_column].explode()
        else:
            self._dates = pd.Series(dtype=object)
        self._date_positions = self._dates.index.to_numpy(dtype=np.int64) if len(self._dates) else np.array([], dtype=np.int64)

    def __len__(self) -> int:
        return len(self.combinations)

    # ----- matching -----

    def _column_mask(self, column: str, values: frozenset) -> np.ndarray:
        n = len(self.frame)
        if column not in self.frame.columns:
            return np.zeros(n, dtype=bool)
        targets = set(values)
        blank = BLANK_TOKEN in targets
        if blank:
            targets.discard(BLANK_TOKEN)
            targets.add("")
        if column == self.date_column:
            hits = self._dates.isin(targets)
            if blank:
                hits = hits | self._dates.isna()
            mask = np.zeros(n, dtype=bool)
            mask[self._date_positions[hits.to_numpy(dtype=bool)]] = True
            return mask
        return self.frame[column].isin(targets).to_numpy(dtype=bool)

    def mask(self, selections: Mapping[str, SelectionValue], *, exclude: Optional[str] = None) -> np.ndarray:
        """Boolean row mask for every non-null selection except ``exclude``."""
        out = np.ones(len(self.frame), dtype=bool)
        for column, raw in selections.items():
            if column == exclude:
                continue
            values = as_value_set(raw)
            if values is None:
                continue
            out &= self._column_mask(column, values)
        return out

    def _project(self, column: str, mask: np.ndarray) -> Set[str]:
        if column == self.date_column:
            selected = self._dates[mask[self._date_positions]]
            out = {str(v) for v in selected.dropna().unique()}
            if bool((mask[self._date_positions] & self._dates.isna().to_numpy(dtype=bool)).any()):
                out.add("")
            return out
        if column not in self.frame.columns:
            return set()
        return {str(v) for v in self.frame.loc[mask, column].unique()}

    def _sort(self, column: str, values: Iterable[str]) -> List[str]:
        if column == self.date_column:
            def _key(v: str) -> Tuple[int, date, str]:
                parsed = try_parse_date(v)
                return (0, parsed, v) if parsed else (1, date.min, v)
            return sorted(values, key=_key)
        return sorted_values(column, values)

    # ----- queries -----

    def available_values(self, column: str, selections: Mapping[str, SelectionValue]) -> List[str]:
        """Sorted non-empty values of ``column`` among rows matching every other selection."""
        values = self._project(column, self.mask(selections, exclude=column))
        values.discard("")
        return self._sort(column, values)

    def legal_values(self, column: str, selections: Mapping[str, SelectionValue]) -> Set[str]:
        """Like ``available_values`` but unsorted, with the blank token standing for empty cells."""
        values = self._project(column, self.mask(selections, exclude=column))
        if "" in values:
            values.discard("")
            values.add(BLANK_TOKEN)
        return values

    def has_blank_entries(self, column: str, selections: Mapping[str, SelectionValue]) -> bool:
        return "" in self._project(column, self.mask(selections, exclude=column))

    def matching(self, selections: Mapping[str, SelectionValue]) -> List[Combination]:
        positions = np.flatnonzero(self.mask(selections))
        return [self.combinations[i] for i in positions]

    def find_exact_match(self, selections: Mapping[str, SelectionValue]) -> Optional[Combination]:
        """The single combination matching every non-null selection, or None when zero or several match."""
        matches = self.matching(selections)
        return matches[0] if len(matches) == 1 else None

    def domain(self, column: str) -> List[str]:
        return self._sort(column, self.options.domain(column))

    def modifier_options(self, selections: Mapping[str, SelectionValue]) -> List[Dict[str, str]]:
        """Available modifiers labelled with the details text found in any modifier slot."""
        details: Dict[str, str] = {}
        for combo in self.combinations:
            for code_col, details_col in MODIFIER_SLOTS:
                code = combo.get(code_col, "")
                if code:
                    details[code] = combo.get(details_col, "") or details.get(code, "")
        out = []
        for mod in self.available_values(MODIFIER, selections):
            label = f"{mod} - {details[mod]}" if details.get(mod) else mod
            out.append({"value": mod, "label": label})
        return out
