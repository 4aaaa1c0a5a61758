"""Synthetic filter-options payloads and rate observations."""
import gzip
import json

from core.codec import decode_payload
from core.index import CombinationIndex
from core.rates import ServiceObservation

DATE = "rate_effective_date"

COLUMNS = [
    "service_category",
    "state_name",
    "service_code",
    "service_description",
    "program",
    "location_region",
    "provider_type",
    "duration_unit",
    DATE,
    "modifier_1",
    "modifier_1_details",
]

# One dict per valid combination; the date column lists every effective date.
ROWS = [
    {
        "service_category": "APPLIED BEHAVIOR ANALYSIS",
        "state_name": "ALABAMA",
        "service_code": "97151",
        "service_description": "Behavior identification assessment",
        "program": "Autism Waiver",
        "location_region": "Statewide",
        "provider_type": "BCBA",
        "duration_unit": "15 MINUTES",
        DATE: ["2023-01-01", "2024-03-05"],
        "modifier_1": "HN",
        "modifier_1_details": "Bachelor's degree level",
    },
    {
        "service_category": "APPLIED BEHAVIOR ANALYSIS",
        "state_name": "ALABAMA",
        "service_code": "97153",
        "service_description": "Adaptive behavior treatment, by protocol",
        "program": "",
        "location_region": "Statewide",
        "provider_type": "RBT",
        "duration_unit": "15 MINUTES",
        DATE: ["2024-03-05"],
        "modifier_1": "",
        "modifier_1_details": "",
    },
    {
        "service_category": "APPLIED BEHAVIOR ANALYSIS",
        "state_name": "GEORGIA",
        "service_code": "97151",
        "service_description": "Behavior identification assessment",
        "program": "Autism Waiver",
        "location_region": "North",
        "provider_type": "BCBA",
        "duration_unit": "PER HOUR",
        DATE: ["2022-07-01"],
        "modifier_1": "HO",
        "modifier_1_details": "Masters degree level",
    },
    {
        "service_category": "BEHAVIORAL HEALTH",
        "state_name": "ALABAMA",
        "service_code": "H2019",
        "service_description": "Therapeutic behavioral services",
        "program": "State Plan",
        "location_region": "Statewide",
        "provider_type": "",
        "duration_unit": "15 MINUTES",
        DATE: ["2024-01-01"],
        "modifier_1": "",
        "modifier_1_details": "",
    },
    {
        "service_category": "BEHAVIORAL HEALTH",
        "state_name": "TEXAS",
        "service_code": "H0031",
        "service_description": "Mental health assessment",
        "program": "State Plan",
        "location_region": "Statewide",
        "provider_type": "LPC",
        "duration_unit": "PER SESSION",
        DATE: [],
        "modifier_1": "",
        "modifier_1_details": "",
    },
]


def make_payload_dict(rows=None, columns=None, *, keyed=False, single_dates=False) -> dict:
    """Dictionary-encode rows the way the data pipeline does.

    Empty values get code -1. With ``single_dates`` a one-date cell is written
    as a bare code instead of a one-element array.
    """
    rows = ROWS if rows is None else rows
    columns = COLUMNS if columns is None else columns
    mappings = {}
    values = []
    for col in columns:
        lookup = {}
        codes = []
        for row in rows:
            cell = row.get(col, [] if col == DATE else "")
            items = cell if isinstance(cell, list) else [cell]
            row_codes = []
            for item in items:
                if not item:
                    row_codes.append(-1)
                    continue
                row_codes.append(lookup.setdefault(item, len(lookup)))
            if col == DATE:
                if single_dates and len(row_codes) == 1:
                    codes.append(row_codes[0])
                else:
                    codes.append(row_codes)
            else:
                codes.append(row_codes[0])
        mappings[col] = {str(code): value for value, code in lookup.items()}
        values.append(codes)
    if keyed:
        values = dict(zip(columns, values))
    return {"m": mappings, "v": values, "c": list(columns)}


def gzip_json(data) -> bytes:
    return gzip.compress(json.dumps(data).encode("utf-8"))


def make_payload(rows=None, columns=None, **kwargs) -> bytes:
    return gzip_json(make_payload_dict(rows, columns, **kwargs))


def make_index(rows=None) -> CombinationIndex:
    return CombinationIndex(decode_payload(make_payload(rows)))


def make_observation(**overrides) -> ServiceObservation:
    """A rate record from the query service; override any field by name."""
    defaults = {
        "state_name": "ALABAMA",
        "service_category": "APPLIED BEHAVIOR ANALYSIS",
        "service_code": "97153",
        "service_description": "Adaptive behavior treatment, by protocol",
        "program": "Autism Waiver",
        "location_region": "Statewide",
        "duration_unit": "15 MINUTES",
        "provider_type": "RBT",
        "rate": "$20.00",
        "rate_effective_date": "2024-01-01",
    }
    defaults.update(overrides)
    return ServiceObservation.from_record(defaults)
