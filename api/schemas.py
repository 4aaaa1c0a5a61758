from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class FilterStateModel(BaseModel):
    # Multi-select values are comma-joined, e.g. {"service_code": "97151,97153"}.
    selections: Dict[str, Optional[str]] = Field(default_factory=dict)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    pending: List[str] = Field(default_factory=list)


class SelectRequest(BaseModel):
    state: FilterStateModel = Field(default_factory=FilterStateModel)
    column: str
    value: Optional[str] = None


class DateRangeRequest(BaseModel):
    state: FilterStateModel = Field(default_factory=FilterStateModel)
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class ObservationModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    state_name: Optional[str] = ""
    service_category: Optional[str] = ""
    service_code: Optional[str] = ""
    service_description: Optional[str] = ""
    program: Optional[str] = ""
    location_region: Optional[str] = ""
    modifier_1: Optional[str] = ""
    modifier_1_details: Optional[str] = ""
    modifier_2: Optional[str] = ""
    modifier_2_details: Optional[str] = ""
    modifier_3: Optional[str] = ""
    modifier_3_details: Optional[str] = ""
    modifier_4: Optional[str] = ""
    modifier_4_details: Optional[str] = ""
    duration_unit: Optional[str] = ""
    provider_type: Optional[str] = ""
    rate: Optional[Union[str, float]] = ""
    rate_effective_date: Optional[str] = ""
    rate_per_hour: Optional[Union[str, float]] = ""


class ResolveRequest(BaseModel):
    observations: List[ObservationModel] = Field(default_factory=list)


class ChartRequest(BaseModel):
    observations: List[ObservationModel] = Field(default_factory=list)
    entity_keys: Optional[List[str]] = None
    hourly: bool = False
    today: Optional[date] = None


class SearchRequest(BaseModel):
    state: FilterStateModel = Field(default_factory=FilterStateModel)
    items_per_page: Optional[int] = Field(default=None, ge=1, le=1000)
