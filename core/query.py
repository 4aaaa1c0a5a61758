"""Client for the external rate query service."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterator, List, Mapping, Optional

import requests

from core.columns import EFFECTIVE_DATE
from core.errors import QueryServiceError
from core.rates import ServiceObservation
from core.selections import ValueSet, join_selection_value

logger = logging.getLogger(__name__)

DATE_PARAM = "fee_schedule_date"


@dataclass
class QueryPage:
    data: List[ServiceObservation] = field(default_factory=list)
    total_count: int = 0
    current_page: int = 1
    items_per_page: int = 50

    @property
    def has_more(self) -> bool:
        return self.current_page * self.items_per_page < self.total_count


def build_query_params(
    selections: Mapping[str, Optional[ValueSet]],
    *,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    items_per_page: int = 50,
    date_column: str = EFFECTIVE_DATE,
) -> Dict[str, str]:
    """Serialize selections into query parameters; multi-select sets are comma-joined."""
    params: Dict[str, str] = {}
    for column, values in selections.items():
        joined = join_selection_value(column, values)
        if not joined:
            continue
        params[DATE_PARAM if column == date_column else column] = joined
    if start_date:
        params["start_date"] = start_date.isoformat()
    if end_date:
        params["end_date"] = end_date.isoformat()
    params["page"] = str(max(1, int(page)))
    params["itemsPerPage"] = str(max(1, int(items_per_page)))
    return params


def parse_query_page(body: Any) -> QueryPage:
    if not isinstance(body, dict) or not isinstance(body.get("data"), list):
        raise QueryServiceError("Invalid data format received from rate query service")
    try:
        return QueryPage(
            data=[ServiceObservation.from_record(r) for r in body["data"] if isinstance(r, dict)],
            total_count=int(body.get("totalCount", len(body["data"])) or 0),
            current_page=int(body.get("currentPage", 1) or 1),
            items_per_page=int(body.get("itemsPerPage", len(body["data"])) or 1),
        )
    except (TypeError, ValueError) as exc:
        raise QueryServiceError(f"Invalid pagination fields from rate query service: {exc}") from exc


class RateQueryClient:
    """Fetches ServiceObservation pages from the rate query service."""

    def __init__(self, base_url: str, *, timeout: float = 30, session: Optional[requests.Session] = None):
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_page(self, params: Mapping[str, str]) -> QueryPage:
        try:
            response = self.session.get(self.base_url, params=dict(params), timeout=self.timeout)
        except requests.RequestException as exc:
            raise QueryServiceError(f"Failed to reach rate query service: {exc}") from exc
        if not response.ok:
            raise QueryServiceError(
                f"API Error: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise QueryServiceError("Rate query service returned a non-JSON body") from exc
        page = parse_query_page(body)
        logger.info("Fetched %d of %d rate records (page %d)", len(page.data), page.total_count, page.current_page)
        return page

    def iter_pages(self, params: Mapping[str, str], *, max_pages: int = 100) -> Iterator[QueryPage]:
        current = dict(params)
        page_no = int(current.get("page", 1))
        for _ in range(max_pages):
            current["page"] = str(page_no)
            page = self.fetch_page(current)
            yield page
            if not page.data or not page.has_more:
                return
            page_no = page.current_page + 1
        logger.warning("Stopped paging rate query results after %d pages", max_pages)

    def fetch_all(self, params: Mapping[str, str], *, max_pages: int = 100) -> List[ServiceObservation]:
        out: List[ServiceObservation] = []
        for page in self.iter_pages(params, max_pages=max_pages):
            out.extend(page.data)
        return out
