from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from core.dates import try_parse_date
from core.rates import ObservationLike, ServiceObservation, as_observation, parse_rate, resolve_rates

PALETTE: Tuple[str, ...] = (
    "#36A2EB",
    "#FF6384",
    "#4BC0C0",
    "#FF9F40",
    "#9966FF",
    "#FFCD56",
    "#C9CBCF",
    "#00A8E8",
    "#FF6B6B",
)

HOURLY_FACTORS: Dict[int, float] = {15: 4.0, 30: 2.0, 45: 4.0 / 3.0, 60: 1.0}

_MINUTES = re.compile(r"\b(\d+)\s*MIN")
_ONE_HOUR = re.compile(r"^(?:PER\s+)?(?:1\s+)?(?:HOURS?|HOURLY)$")


def hourly_factor(duration_unit: Optional[str]) -> Optional[float]:
    """Multiplier turning a per-unit rate into an hourly rate, or None for units we cannot convert."""
    unit = (duration_unit or "").strip().upper()
    match = _MINUTES.search(unit)
    if match:
        return HOURLY_FACTORS.get(int(match.group(1)))
    if _ONE_HOUR.match(unit):
        return 1.0
    return None


def to_hourly(rate: object, duration_unit: Optional[str]) -> Tuple[float, bool]:
    """Return (value, converted). Unknown units keep the raw rate with converted=False."""
    value = parse_rate(rate)
    factor = hourly_factor(duration_unit)
    if factor is None:
        return value, False
    return value * factor, True


@dataclass(frozen=True)
class ChartPoint:
    date: date
    value: float
    observation: ServiceObservation
    is_extension: bool = False

    def to_dict(self) -> Dict[str, Any]:
        o = self.observation
        return {
            "date": self.date.isoformat(),
            "value": self.value,
            "is_extension": self.is_extension,
            "effective_date": o.rate_effective_date,
            "rate": o.rate,
            "state_name": o.state_name,
            "service_code": o.service_code,
            "service_description": o.service_description,
            "program": o.program,
            "location_region": o.location_region,
            "provider_type": o.provider_type,
            "duration_unit": o.duration_unit,
            "modifiers": [
                {"code": getattr(o, f"modifier_{n}"), "details": getattr(o, f"modifier_{n}_details")}
                for n in range(1, 5)
                if getattr(o, f"modifier_{n}")
            ],
        }


@dataclass(frozen=True)
class UnitCaveat:
    entity_key: str
    duration_unit: str
    message: str


@dataclass
class ChartSeries:
    name: str
    color: str
    entity_key: str
    points: List[ChartPoint] = field(default_factory=list)
    unit_caveat: Optional[str] = None


@dataclass
class ChartData:
    category_axis: List[date] = field(default_factory=list)
    series: List[ChartSeries] = field(default_factory=list)
    caveats: List[UnitCaveat] = field(default_factory=list)
    hourly: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category_axis": [d.isoformat() for d in self.category_axis],
            "hourly": self.hourly,
            "series": [
                {
                    "name": s.name,
                    "color": s.color,
                    "entity_key": s.entity_key,
                    "unit_caveat": s.unit_caveat,
                    "points": [p.to_dict() for p in s.points],
                }
                for s in self.series
            ],
            "caveats": [{"entity_key": c.entity_key, "duration_unit": c.duration_unit, "message": c.message} for c in self.caveats],
        }

    def to_frame(self) -> pd.DataFrame:
        """Long format: one row per (series, date)."""
        rows = [
            {"series": s.name, "date": p.date, "value": p.value, "is_extension": p.is_extension}
            for s in self.series
            for p in s.points
        ]
        return pd.DataFrame(rows, columns=["series", "date", "value", "is_extension"])


def series_name(o: ServiceObservation) -> str:
    parts = [o.state_name, o.service_code, o.program, o.location_region, *o.modifiers]
    return " - ".join(p for p in parts if p) or "Rate"


def build_chart_series(
    histories: Mapping[str, Sequence[ObservationLike]],
    *,
    today: date,
    hourly: bool = False,
    names: Optional[Mapping[str, str]] = None,
) -> ChartData:
    """Date-aligned series for each entity history, carried forward to ``today``.

    ``histories`` maps entity key to that entity's de-duplicated observations.
    An entity whose latest date is before ``today`` gets one extension point at
    ``today`` holding its latest value.
    """
    chart = ChartData(hourly=hourly)
    axis = set()
    for i, (key, history) in enumerate(histories.items()):
        dated = []
        for raw in history:
            o = as_observation(raw)
            d = try_parse_date(o.rate_effective_date)
            if d is not None:
                dated.append((d, o))
        if not dated:
            continue
        dated.sort(key=lambda pair: pair[0])

        series = ChartSeries(
            name=(names or {}).get(key) or series_name(dated[-1][1]),
            color=PALETTE[i % len(PALETTE)],
            entity_key=key,
        )
        for d, o in dated:
            if hourly:
                value, converted = to_hourly(o.rate, o.duration_unit)
                if not converted and series.unit_caveat is None:
                    unit = o.duration_unit or "unspecified"
                    series.unit_caveat = f"Rate is per '{unit}' and could not be converted to an hourly rate."
                    chart.caveats.append(UnitCaveat(entity_key=key, duration_unit=o.duration_unit, message=series.unit_caveat))
            else:
                value = parse_rate(o.rate)
            series.points.append(ChartPoint(date=d, value=value, observation=o))
            axis.add(d)

        last = series.points[-1]
        if last.date < today:
            series.points.append(ChartPoint(date=today, value=last.value, observation=last.observation, is_extension=True))
            axis.add(today)
        chart.series.append(series)

    chart.category_axis = sorted(axis)
    return chart


def build_rate_chart(
    observations: Iterable[ObservationLike],
    *,
    today: date,
    hourly: bool = False,
    entity_keys: Optional[Sequence[str]] = None,
) -> Tuple[ChartData, List[str]]:
    """Resolve raw observations and chart the chosen entities (all when ``entity_keys`` is None).

    Returns the chart and the resolver's data-quality warnings.
    """
    resolution = resolve_rates(observations)
    if entity_keys is None:
        histories = resolution.histories
    else:
        histories = {k: resolution.histories[k] for k in entity_keys if k in resolution.histories}
    return build_chart_series(histories, today=today, hourly=hourly), resolution.warnings()
