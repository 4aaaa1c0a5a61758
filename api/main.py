from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any, Dict, List

import numpy as np
import pandas as pd
from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import (
    ChartRequest,
    DateRangeRequest,
    FilterStateModel,
    ObservationModel,
    ResolveRequest,
    SearchRequest,
    SelectRequest,
)
from core.charts import build_rate_chart
from core.columns import BLANKABLE_COLUMNS
from core.data import QUERY_PAGE_SIZE, get_query_client, load_combination_index
from core.errors import QueryServiceError
from core.filters import (
    FilterState,
    apply_filters,
    available_options,
    filters_applied,
    normalize_filter_state,
    set_date_range,
    set_selection,
)
from core.index import CombinationIndex
from core.query import build_query_params
from core.rates import ServiceObservation, filter_observations, format_rate, resolve_rates
from core.selections import serialize_selections


app = FastAPI(title="Medicaid Rate Explorer API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
                date: lambda d: d.isoformat(),
            },
        )
    )


def _error(exc: Exception, *, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _state_from_model(model: FilterStateModel, index: CombinationIndex) -> FilterState:
    return normalize_filter_state(model.model_dump(), index=index)


def _observations(models: List[ObservationModel]) -> List[ServiceObservation]:
    return [ServiceObservation.from_record(m.model_dump()) for m in models]


def _state_payload(state: FilterState, index: CombinationIndex) -> Dict[str, Any]:
    return {
        "selections": serialize_selections(state.selections),
        "start_date": state.start_date,
        "end_date": state.end_date,
        "pending": sorted(state.pending),
        "filters_applied": filters_applied(state, date_column=index.date_column),
    }


def _options_payload(state: FilterState, index: CombinationIndex) -> Dict[str, Any]:
    exact = index.find_exact_match(state.selections)
    return {
        "state": _state_payload(state, index),
        "options": available_options(index, state),
        "modifier_options": index.modifier_options(state.selections),
        "blank_options": {c: index.has_blank_entries(c, state.selections) for c in index.chain if c in BLANKABLE_COLUMNS},
        "exact_match": dict(exact) if exact is not None else None,
    }


@app.get("/meta/columns")
def meta_columns():
    try:
        index = load_combination_index()
        return _json({"columns": list(index.columns), "chain": list(index.chain), "date_column": index.date_column, "rows": len(index)})
    except Exception as exc:
        logger.exception("meta_columns failed")
        return _error(exc)


@app.post("/filters/options")
def filter_options(state: FilterStateModel):
    try:
        index = load_combination_index()
        return _json(_options_payload(_state_from_model(state, index), index))
    except Exception as exc:
        logger.exception("filter_options failed")
        return _error(exc)


@app.post("/filters/select")
def filter_select(request: SelectRequest):
    try:
        index = load_combination_index()
        state = set_selection(index, _state_from_model(request.state, index), request.column, request.value)
        return _json(_options_payload(state, index))
    except KeyError as exc:
        return _error(exc, status_code=400)
    except Exception as exc:
        logger.exception("filter_select failed")
        return _error(exc)


@app.post("/filters/date-range")
def filter_date_range(request: DateRangeRequest):
    try:
        index = load_combination_index()
        state = set_date_range(_state_from_model(request.state, index), request.start_date, request.end_date)
        return _json(_options_payload(state, index))
    except ValueError as exc:
        return _error(exc, status_code=400)
    except Exception as exc:
        logger.exception("filter_date_range failed")
        return _error(exc)


@app.post("/rates/resolve")
def rates_resolve(request: ResolveRequest):
    try:
        resolution = resolve_rates(_observations(request.observations))
        return _json(
            {
                "resolved": [
                    {
                        "entity_key": r.entity_key,
                        "effective_date": r.effective_date,
                        "rate_value": r.rate_value,
                        "rate_display": format_rate(r.rate_value),
                        "observation": r.observation.to_record(),
                    }
                    for r in resolution.resolved
                ],
                "collisions": [
                    {"entity_key": c.entity_key, "effective_date": c.effective_date, "rates": list(c.rates), "chosen_rate": c.chosen_rate}
                    for c in resolution.collisions
                ],
                "date_issues": [{"entity_key": i.entity_key, "value": i.value} for i in resolution.date_issues],
                "warnings": resolution.warnings(),
            }
        )
    except Exception as exc:
        logger.exception("rates_resolve failed")
        return _error(exc)


@app.post("/rates/chart")
def rates_chart(request: ChartRequest):
    try:
        chart, warnings = build_rate_chart(
            _observations(request.observations),
            today=request.today or date.today(),
            hourly=request.hourly,
            entity_keys=request.entity_keys,
        )
        return _json({**chart.to_dict(), "warnings": warnings})
    except Exception as exc:
        logger.exception("rates_chart failed")
        return _error(exc)


@app.post("/export/rates")
def export_rates(request: ResolveRequest):
    try:
        resolution = resolve_rates(_observations(request.observations))
        export_df = pd.DataFrame([{**r.observation.to_record(), "rate_value": r.rate_value} for r in resolution.resolved])
        csv_bytes = export_df.to_csv(index=False).encode("utf-8")
        return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": "attachment; filename=latest_rates.csv"})
    except Exception as exc:
        logger.exception("export_rates failed")
        return _error(exc)


@app.post("/rates/search")
def rates_search(request: SearchRequest):
    """Fetch every matching rate record from the query service and resolve it."""
    try:
        index = load_combination_index()
        state = _state_from_model(request.state, index)
        params = build_query_params(
            state.selections,
            start_date=state.start_date,
            end_date=state.end_date,
            items_per_page=request.items_per_page or QUERY_PAGE_SIZE,
            date_column=index.date_column,
        )
        fetched = get_query_client().fetch_all(params)
        observations = filter_observations(
            fetched,
            state.selections,
            start_date=state.start_date,
            end_date=state.end_date,
            date_column=index.date_column,
        )
        resolution = resolve_rates(observations)
        return _json(
            {
                "state": _state_payload(apply_filters(state), index),
                "fetched": len(fetched),
                "observations": [o.to_record() for o in observations],
                "latest": [{**r.observation.to_record(), "rate_value": r.rate_value} for r in resolution.resolved],
                "warnings": resolution.warnings(),
            }
        )
    except QueryServiceError as exc:
        logger.warning("rates_search upstream failure: %s", exc)
        return _error(exc, status_code=502)
    except Exception as exc:
        logger.exception("rates_search failed")
        return _error(exc)
