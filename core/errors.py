from __future__ import annotations


class RateExplorerError(Exception):
    """Base class for errors surfaced to the caller with a readable message."""


class DecodeError(RateExplorerError):
    """The filter-options payload could not be decompressed or parsed."""


class DictionaryIntegrityError(RateExplorerError):
    """A row references a code that its column dictionary does not define."""

    def __init__(self, column: str, code: object, row: int):
        self.column = column
        self.code = code
        self.row = row
        super().__init__(f"Column '{column}' has no dictionary entry for code {code!r} (row {row})")


class QueryServiceError(RateExplorerError):
    """The rate query service returned a non-success or malformed response."""

    def __init__(self, message: str, *, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class DateParseError(ValueError):
    pass
