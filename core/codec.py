"""Decoder for the dictionary-encoded filter-options payload.

The payload is gzip-compressed JSON of the form::

    {"m": {column: {code: value}}, "v": [[code, ...] per column], "c": [column, ...]}

``v`` may also be keyed by column name. The effective-date column holds either
a single code or an array of codes per row. Code ``-1`` means "no value".
"""

from __future__ import annotations

import gzip
import json
import logging
import zlib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Sequence, Tuple, Union

from core.columns import EFFECTIVE_DATE
from core.errors import DecodeError, DictionaryIntegrityError

logger = logging.getLogger(__name__)

NO_VALUE = -1

CellValue = Union[str, Tuple[str, ...]]


class Combination(Mapping):
    """One decoded row: column name -> value (a tuple of dates for the date column)."""

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, CellValue]):
        self._values: Dict[str, CellValue] = dict(values)

    def __getitem__(self, key: str) -> CellValue:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __hash__(self) -> int:
        return hash(tuple(self._values.items()))

    def __repr__(self) -> str:
        return f"Combination({self._values!r})"


@dataclass(frozen=True)
class FilterOptions:
    columns: Tuple[str, ...]
    dictionaries: Dict[str, Dict[int, str]]
    combinations: List[Combination]
    date_column: str = EFFECTIVE_DATE

    def domain(self, column: str) -> List[str]:
        """Sorted distinct non-empty values the decoded rows assign to ``column``."""
        values = set()
        for combo in self.combinations:
            cell = combo.get(column, "")
            if isinstance(cell, tuple):
                values.update(v for v in cell if v)
            elif cell:
                values.add(cell)
        return sorted(values)


def decompress(raw: bytes) -> str:
    try:
        data = gzip.decompress(raw)
    except (OSError, EOFError, zlib.error) as exc:
        raise DecodeError(f"Could not decompress filter options payload: {exc}") from exc
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"Filter options payload is not valid UTF-8: {exc}") from exc


def _parse_dictionaries(mappings: Any, columns: Sequence[str]) -> Dict[str, Dict[int, str]]:
    if not isinstance(mappings, dict):
        raise DecodeError("Filter options payload field 'm' must be an object")
    out: Dict[str, Dict[int, str]] = {}
    for col in columns:
        raw = mappings.get(col) or {}
        if not isinstance(raw, dict):
            raise DecodeError(f"Dictionary for column '{col}' must be an object")
        table: Dict[int, str] = {}
        for key, value in raw.items():
            try:
                code = int(key)
            except (TypeError, ValueError) as exc:
                raise DecodeError(f"Dictionary for column '{col}' has non-integer code {key!r}") from exc
            table[code] = "" if value is None else str(value)
        out[col] = table
    return out


def _column_codes(values: Any, columns: Sequence[str]) -> List[List[Any]]:
    if isinstance(values, dict):
        missing = [c for c in columns if c not in values]
        if missing:
            raise DecodeError(f"Filter options payload has no values for columns: {missing}")
        out = [values[c] for c in columns]
    elif isinstance(values, list):
        if len(values) != len(columns):
            raise DecodeError(f"Filter options payload has {len(values)} value arrays for {len(columns)} columns")
        out = values
    else:
        raise DecodeError("Filter options payload field 'v' must be an array or object")
    for col, codes in zip(columns, out):
        if not isinstance(codes, list):
            raise DecodeError(f"Values for column '{col}' must be an array")
    lengths = {len(codes) for codes in out}
    if len(lengths) > 1:
        raise DecodeError(f"Filter options columns have different row counts: {sorted(lengths)}")
    return out


def _lookup(dictionary: Dict[int, str], column: str, code: Any, row: int) -> str:
    if isinstance(code, bool) or not isinstance(code, int):
        raise DecodeError(f"Column '{column}' row {row} holds a non-integer code {code!r}")
    if code == NO_VALUE:
        return ""
    try:
        return dictionary[code]
    except KeyError:
        raise DictionaryIntegrityError(column, code, row) from None


def _decode_dates(dictionary: Dict[int, str], column: str, cell: Any, row: int) -> Tuple[str, ...]:
    codes = cell if isinstance(cell, list) else [cell]
    dates: List[str] = []
    for code in codes:
        value = _lookup(dictionary, column, code, row)
        if value and value not in dates:
            dates.append(value)
    return tuple(dates)


def _legacy_combinations(rows: Any, date_column: str) -> Tuple[Tuple[str, ...], List[Combination]]:
    if not isinstance(rows, list):
        raise DecodeError("Filter options field 'combinations' must be an array")
    columns: List[str] = []
    combinations: List[Combination] = []
    for row in rows:
        if not isinstance(row, dict):
            raise DecodeError("Filter options combinations must be objects")
        for col in row:
            if col not in columns:
                columns.append(col)
        combinations.append(Combination({k: _legacy_cell(k, v, date_column) for k, v in row.items()}))
    # Rows may omit empty columns; give every row the full column set.
    combinations = [
        Combination({c: combo.get(c, () if c == date_column else "") for c in columns}) for combo in combinations
    ]
    return tuple(columns), combinations


def _legacy_cell(column: str, value: Any, date_column: str) -> CellValue:
    if column == date_column:
        items = value if isinstance(value, list) else [value]
        return tuple(dict.fromkeys(str(v) for v in items if v))
    return "" if value is None else str(value)


def decode_payload(raw: bytes, *, date_column: str = EFFECTIVE_DATE) -> FilterOptions:
    """Decompress and decode a filter-options payload.

    Raises:
        DecodeError: the bytes are not gzip, not JSON, or not the expected shape.
        DictionaryIntegrityError: a row uses a code its dictionary does not define.
    """
    text = decompress(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Filter options payload is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise DecodeError("Filter options payload must be a JSON object")

    if not {"m", "v", "c"}.issubset(data):
        if "combinations" in data:
            columns, combinations = _legacy_combinations(data["combinations"], date_column)
            logger.info("Decoded %d legacy filter combinations over %d columns", len(combinations), len(columns))
            return FilterOptions(columns=columns, dictionaries={}, combinations=combinations, date_column=date_column)
        raise DecodeError("Filter options payload is missing one of the 'm', 'v', 'c' fields")

    columns = data["c"]
    if not isinstance(columns, list) or not all(isinstance(c, str) for c in columns):
        raise DecodeError("Filter options payload field 'c' must be a list of column names")
    if len(set(columns)) != len(columns):
        raise DecodeError("Filter options payload field 'c' lists a column twice")

    dictionaries = _parse_dictionaries(data["m"], columns)
    codes_by_column = _column_codes(data["v"], columns)
    num_rows = len(codes_by_column[0]) if codes_by_column else 0

    combinations: List[Combination] = []
    for i in range(num_rows):
        combo: Dict[str, CellValue] = {}
        for col, codes in zip(columns, codes_by_column):
            if col == date_column:
                combo[col] = _decode_dates(dictionaries[col], col, codes[i], i)
            else:
                combo[col] = _lookup(dictionaries[col], col, codes[i], i)
        combinations.append(Combination(combo))

    logger.info("Decoded %d filter combinations over %d columns", len(combinations), len(columns))
    return FilterOptions(
        columns=tuple(columns),
        dictionaries=dictionaries,
        combinations=combinations,
        date_column=date_column,
    )


def decode(raw: bytes, *, date_column: str = EFFECTIVE_DATE) -> List[Combination]:
    return decode_payload(raw, date_column=date_column).combinations


def decode_file(path: Path | str, *, date_column: str = EFFECTIVE_DATE) -> FilterOptions:
    p = Path(path)
    try:
        raw = p.read_bytes()
    except OSError as exc:
        raise DecodeError(f"Could not read filter options payload at {p}: {exc}") from exc
    return decode_payload(raw, date_column=date_column)
