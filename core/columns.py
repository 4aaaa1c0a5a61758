from __future__ import annotations

import re
from typing import Tuple

SERVICE_CATEGORY = "service_category"
STATE = "state_name"
SERVICE_CODE = "service_code"
SERVICE_DESCRIPTION = "service_description"
PROGRAM = "program"
LOCATION_REGION = "location_region"
PROVIDER_TYPE = "provider_type"
DURATION_UNIT = "duration_unit"
EFFECTIVE_DATE = "rate_effective_date"
MODIFIER = "modifier_1"

MODIFIER_SLOTS: Tuple[Tuple[str, str], ...] = tuple(
    (f"modifier_{n}", f"modifier_{n}_details") for n in range(1, 5)
)

DEPENDENCY_CHAIN: Tuple[str, ...] = (
    SERVICE_CATEGORY,
    STATE,
    SERVICE_CODE,
    SERVICE_DESCRIPTION,
    PROGRAM,
    LOCATION_REGION,
    PROVIDER_TYPE,
    DURATION_UNIT,
    EFFECTIVE_DATE,
    MODIFIER,
)

# Columns whose selection may hold several values (comma-joined on the wire).
MULTI_SELECT_COLUMNS = frozenset(
    {STATE, SERVICE_CODE, PROGRAM, LOCATION_REGION, PROVIDER_TYPE, DURATION_UNIT, MODIFIER}
)

# Changing one of these invalidates the date selection and any date range.
DATE_RESET_COLUMNS = frozenset({SERVICE_CATEGORY, STATE})

# Secondary columns that may offer the blank token when blank rows exist.
BLANKABLE_COLUMNS = frozenset({PROGRAM, LOCATION_REGION, PROVIDER_TYPE, MODIFIER})
BLANK_TOKEN = "-"

ENTITY_FIELDS: Tuple[str, ...] = (
    STATE,
    SERVICE_CATEGORY,
    SERVICE_CODE,
    SERVICE_DESCRIPTION,
    PROGRAM,
    LOCATION_REGION,
    "modifier_1",
    "modifier_1_details",
    "modifier_2",
    "modifier_2_details",
    "modifier_3",
    "modifier_3_details",
    "modifier_4",
    "modifier_4_details",
    DURATION_UNIT,
    PROVIDER_TYPE,
)

_NUMERIC_CODE = re.compile(r"^\d+$")
_HCPCS_CODE = re.compile(r"^[A-Z]\d+$")
_NUMBER_LETTER_CODE = re.compile(r"^(\d+)[A-Z]$")


def service_code_sort_key(code: str) -> Tuple[int, int, str]:
    """Numeric codes by value, then HCPCS codes, then codes like 0362T, then the rest."""
    if _NUMERIC_CODE.match(code):
        return 0, int(code), code
    if _HCPCS_CODE.match(code):
        return 1, 0, code
    match = _NUMBER_LETTER_CODE.match(code)
    if match:
        return 2, int(match.group(1)), code
    return 3, 0, code
