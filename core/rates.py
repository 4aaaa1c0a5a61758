"""Rate series resolution.

Observations are grouped by entity (every descriptive field except rate and
date), de-duplicated per effective date, and reduced to the latest rate.

Same-date duplicates are a known artifact of re-submitted source data. The
highest rate for the date is kept and the collision is recorded so callers can
show a data-quality notice.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import asdict, dataclass, field, fields
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd

from core.columns import BLANK_TOKEN, EFFECTIVE_DATE, ENTITY_FIELDS, MODIFIER, MODIFIER_SLOTS, STATE
from core.dates import parse_date, try_parse_date
from core.selections import SelectionValue, as_value_set

logger = logging.getLogger(__name__)

_RATE_JUNK = re.compile(r"[$,\s]")

COLLISION_WARNING = (
    "Data quality issue detected: Multiple rates found for the same effective date. "
    "The highest rate for each date is shown."
)


@dataclass(frozen=True)
class ServiceObservation:
    state_name: str = ""
    service_category: str = ""
    service_code: str = ""
    service_description: str = ""
    program: str = ""
    location_region: str = ""
    modifier_1: str = ""
    modifier_1_details: str = ""
    modifier_2: str = ""
    modifier_2_details: str = ""
    modifier_3: str = ""
    modifier_3_details: str = ""
    modifier_4: str = ""
    modifier_4_details: str = ""
    duration_unit: str = ""
    provider_type: str = ""
    rate: str = ""
    rate_effective_date: str = ""
    rate_per_hour: str = ""

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ServiceObservation":
        """Build from a query-service row; missing or null fields become empty strings."""
        values = {}
        for f in fields(cls):
            raw = record.get(f.name)
            values[f.name] = "" if raw is None else str(raw)
        return cls(**values)

    def to_record(self) -> Dict[str, str]:
        return asdict(self)

    @property
    def entity_key(self) -> str:
        return json.dumps({name: getattr(self, name) for name in ENTITY_FIELDS})

    @property
    def modifiers(self) -> List[str]:
        return [getattr(self, code) for code, _ in MODIFIER_SLOTS if getattr(self, code)]


ObservationLike = Union[ServiceObservation, Mapping[str, Any]]


def as_observation(value: ObservationLike) -> ServiceObservation:
    return value if isinstance(value, ServiceObservation) else ServiceObservation.from_record(value)


def parse_rate(value: object) -> float:
    """Parse "$1,234.50"-style rates; blank is 0.0 and anything else unparseable is NaN."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    s = _RATE_JUNK.sub("", str(value))
    if not s:
        return 0.0
    try:
        return float(s)
    except ValueError:
        return math.nan


def format_rate(value: object) -> str:
    if value is None or value == "":
        return "-"
    number = parse_rate(value)
    if math.isnan(number):
        return str(value)
    return f"${number:,.2f}"


@dataclass(frozen=True)
class ResolvedRate:
    entity_key: str
    observation: ServiceObservation
    effective_date: date
    rate_value: float


@dataclass(frozen=True)
class RateCollision:
    entity_key: str
    effective_date: date
    rates: Tuple[float, ...]
    chosen_rate: float


@dataclass(frozen=True)
class DateIssue:
    entity_key: str
    value: str
    observation: ServiceObservation


@dataclass
class RateResolution:
    resolved: List[ResolvedRate] = field(default_factory=list)
    histories: Dict[str, List[ServiceObservation]] = field(default_factory=dict)
    collisions: List[RateCollision] = field(default_factory=list)
    date_issues: List[DateIssue] = field(default_factory=list)

    @property
    def has_collisions(self) -> bool:
        return bool(self.collisions)

    def warnings(self) -> List[str]:
        out = []
        if self.collisions:
            out.append(COLLISION_WARNING)
        if self.date_issues:
            bad = sorted({i.value for i in self.date_issues})
            out.append(f"{len(self.date_issues)} rate record(s) have unreadable effective dates and were left out: {', '.join(bad)}")
        return out

    def latest_for(self, entity_key: str) -> Optional[ResolvedRate]:
        for r in self.resolved:
            if r.entity_key == entity_key:
                return r
        return None


def resolve_rates(observations: Iterable[ObservationLike]) -> RateResolution:
    """Group observations by entity, keep the highest rate per date, and find each latest rate.

    Entities come back in order of first appearance; histories are sorted by date.
    """
    obs = [as_observation(o) for o in observations]
    result = RateResolution()
    if not obs:
        return result

    df = pd.DataFrame(
        {
            "_pos": range(len(obs)),
            "_key": [o.entity_key for o in obs],
            "_date": [try_parse_date(o.rate_effective_date) for o in obs],
            "_rate": [parse_rate(o.rate) for o in obs],
        }
    )
    df["_group"] = pd.factorize(df["_key"])[0]

    bad = df["_date"].isna()
    for pos in df.loc[bad, "_pos"]:
        o = obs[pos]
        logger.warning("Unparseable effective date %r for %s %s", o.rate_effective_date, o.state_name, o.service_code)
        result.date_issues.append(DateIssue(entity_key=o.entity_key, value=o.rate_effective_date, observation=o))

    valid = df.loc[~bad].copy()
    if valid.empty:
        return result

    ordered = valid.sort_values(
        ["_group", "_date", "_rate", "_pos"],
        ascending=[True, True, False, True],
        na_position="last",
        kind="mergesort",
    )
    dedup = ordered.drop_duplicates(subset=["_group", "_date"], keep="first")

    dup_mask = valid.duplicated(subset=["_group", "_date"], keep=False)
    if dup_mask.any():
        chosen = {(g, d): r for g, d, r in dedup[["_group", "_date", "_rate"]].itertuples(index=False)}
        for (g, d), grp in valid.loc[dup_mask].groupby(["_group", "_date"], sort=False):
            key = grp["_key"].iloc[0]
            rates = tuple(float(r) for r in grp["_rate"])
            collision = RateCollision(entity_key=key, effective_date=d, rates=rates, chosen_rate=float(chosen[(g, d)]))
            logger.warning("Duplicate rates %s on %s for one entity; using %s", rates, d.isoformat(), collision.chosen_rate)
            result.collisions.append(collision)

    for _, grp in dedup.groupby("_group", sort=True):
        history = [obs[p] for p in grp["_pos"]]
        key = grp["_key"].iloc[0]
        result.histories[key] = history
        last = grp.iloc[-1]
        result.resolved.append(
            ResolvedRate(
                entity_key=key,
                observation=obs[int(last["_pos"])],
                effective_date=last["_date"],
                rate_value=float(last["_rate"]),
            )
        )
    return result


def _modifier_code(value: str) -> str:
    return value.split(" - ")[0].strip()


def _matches(o: ServiceObservation, column: str, values: frozenset, date_column: str) -> bool:
    if column == MODIFIER:
        if BLANK_TOKEN in values and not o.modifiers:
            return True
        wanted = {_modifier_code(v) for v in values if v != BLANK_TOKEN}
        return any(_modifier_code(m) in wanted for m in o.modifiers)
    if column == date_column:
        observed = try_parse_date(o.rate_effective_date)
        wanted_dates = {try_parse_date(v) for v in values}
        wanted_dates.discard(None)
        return (observed is not None and observed in wanted_dates) or o.rate_effective_date in values
    raw = str(getattr(o, column, "") or "").strip()
    if BLANK_TOKEN in values and not raw:
        return True
    if column == STATE:
        return raw.upper() in {v.strip().upper() for v in values}
    return raw in {v.strip() for v in values}


def filter_observations(
    observations: Iterable[ObservationLike],
    selections: Mapping[str, SelectionValue],
    *,
    start_date: Optional[date | str] = None,
    end_date: Optional[date | str] = None,
    date_column: str = EFFECTIVE_DATE,
) -> List[ServiceObservation]:
    """Narrow fetched observations to the chosen selections and optional date range."""
    wanted = {c: as_value_set(v) for c, v in selections.items()}
    wanted = {c: v for c, v in wanted.items() if v is not None}
    start = parse_date(start_date) if start_date else None
    end = parse_date(end_date) if end_date else None

    out: List[ServiceObservation] = []
    for o in (as_observation(x) for x in observations):
        if not all(_matches(o, c, v, date_column) for c, v in wanted.items()):
            continue
        if start or end:
            d = try_parse_date(o.rate_effective_date)
            if d is None or (start and d < start) or (end and d > end):
                continue
        out.append(o)
    return out
