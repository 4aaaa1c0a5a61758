"""Core (UI-agnostic) Medicaid rate explorer logic.

This package contains:
- payload decoding (gzip JSON dictionaries -> filter combinations)
- the combination index and filter resolution engine
- rate series resolution (same-date de-duplication, latest rates)
- chart series building (date-aligned, JSON-serializable payloads)
- a client for the external rate query service
"""
