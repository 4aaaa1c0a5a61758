"""Tests for the HTTP API."""
import pytest
from fastapi.testclient import TestClient

import api.main as main
from core.errors import QueryServiceError
from tests.fixtures import make_index, make_observation

ABA = "APPLIED BEHAVIOR ANALYSIS"


class FakeQueryClient:
    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.params = None

    def fetch_all(self, params):
        self.params = params
        if self.error:
            raise self.error
        return self.rows


@pytest.fixture
def client(monkeypatch):
    index = make_index()
    monkeypatch.setattr(main, "load_combination_index", lambda: index)
    return TestClient(main.app)


def _record(**overrides):
    return make_observation(**overrides).to_record()


class TestMetaAndOptions:
    """Tests for /meta/columns and /filters/options."""

    def test_meta_columns(self, client):
        body = client.get("/meta/columns").json()
        assert body["chain"][0] == "service_category"
        assert body["date_column"] == "rate_effective_date"
        assert body["rows"] == 5

    def test_options_without_selections(self, client):
        body = client.post("/filters/options", json={}).json()
        assert body["options"]["state_name"] == ["ALABAMA", "GEORGIA", "TEXAS"]
        assert body["blank_options"]["program"] is True
        assert body["exact_match"] is None
        assert body["state"]["filters_applied"] is False

    def test_options_with_multi_select(self, client):
        body = client.post("/filters/options", json={"selections": {"state_name": "GEORGIA,TEXAS"}}).json()
        assert body["options"]["service_code"] == ["97151", "H0031"]
        assert body["state"]["selections"]["state_name"] == "GEORGIA,TEXAS"

    def test_exact_match(self, client):
        selections = {"service_category": ABA, "state_name": "ALABAMA", "service_code": "97153"}
        body = client.post("/filters/options", json={"selections": selections}).json()
        assert body["exact_match"]["provider_type"] == "RBT"
        assert body["exact_match"]["rate_effective_date"] == ["2024-03-05"]

    def test_load_failure_is_a_json_error(self, monkeypatch):
        def _missing():
            raise FileNotFoundError("Filter options payload not found")

        monkeypatch.setattr(main, "load_combination_index", _missing)
        response = TestClient(main.app).get("/meta/columns")
        assert response.status_code == 500
        assert response.json()["type"] == "FileNotFoundError"


class TestSelect:
    """Tests for /filters/select and /filters/date-range."""

    def test_select_narrows_options(self, client):
        body = client.post("/filters/select", json={"column": "service_category", "value": ABA}).json()
        assert body["options"]["state_name"] == ["ALABAMA", "GEORGIA"]
        assert body["state"]["pending"] == ["service_category"]

    def test_select_two_service_codes(self, client):
        body = client.post("/filters/select", json={"column": "service_code", "value": "97151,97153"}).json()
        assert body["state"]["selections"]["service_code"] == "97151,97153"
        assert body["options"]["state_name"] == ["ALABAMA", "GEORGIA"]

    def test_options_with_multi_select_program(self, client):
        body = client.post("/filters/options", json={"selections": {"program": "Autism Waiver,-"}}).json()
        assert body["state"]["selections"]["program"] == "-,Autism Waiver"
        assert body["options"]["service_code"] == ["97151", "97153"]

    def test_select_clears_incompatible_downstream(self, client):
        state = {"selections": {"service_category": ABA, "state_name": "GEORGIA"}}
        body = client.post(
            "/filters/select",
            json={"state": state, "column": "service_category", "value": "BEHAVIORAL HEALTH"},
        ).json()
        assert body["state"]["selections"]["state_name"] is None

    def test_unknown_column(self, client):
        response = client.post("/filters/select", json={"column": "billing_unit", "value": "EACH"})
        assert response.status_code == 400

    def test_date_range(self, client):
        body = client.post("/filters/date-range", json={"start_date": "12/31/2024", "end_date": "2024-01-01"}).json()
        assert body["state"]["start_date"] == "2024-01-01"
        assert body["state"]["end_date"] == "2024-12-31"

    def test_bad_date_range(self, client):
        response = client.post("/filters/date-range", json={"start_date": "soon"})
        assert response.status_code == 400


class TestRates:
    """Tests for /rates/resolve, /rates/chart, /rates/search and /export/rates."""

    def test_resolve_reports_collisions(self, client):
        body = client.post(
            "/rates/resolve",
            json={"observations": [_record(rate="$42.00"), _record(rate="$58.50")]},
        ).json()
        assert body["resolved"][0]["rate_value"] == 58.5
        assert body["resolved"][0]["rate_display"] == "$58.50"
        assert body["collisions"][0]["rates"] == [42.0, 58.5]
        assert len(body["warnings"]) == 1

    def test_unparseable_rate_is_null(self, client):
        body = client.post("/rates/resolve", json={"observations": [_record(rate="call")]}).json()
        assert body["resolved"][0]["rate_value"] is None

    def test_chart_hourly(self, client):
        body = client.post(
            "/rates/chart",
            json={"observations": [_record(rate="$20.00")], "hourly": True, "today": "2024-03-31"},
        ).json()
        assert body["category_axis"] == ["2024-01-01", "2024-03-31"]
        assert [p["value"] for p in body["series"][0]["points"]] == [80.0, 80.0]

    def test_search(self, client, monkeypatch):
        fake = FakeQueryClient(
            rows=[
                make_observation(state_name="ALABAMA"),
                make_observation(state_name="GEORGIA"),
            ]
        )
        monkeypatch.setattr(main, "get_query_client", lambda: fake)
        body = client.post(
            "/rates/search",
            json={"state": {"selections": {"service_category": ABA, "state_name": "ALABAMA"}, "pending": ["state_name"]}},
        ).json()
        assert fake.params["state_name"] == "ALABAMA"
        assert body["fetched"] == 2
        assert [o["state_name"] for o in body["observations"]] == ["ALABAMA"]
        assert body["state"]["pending"] == []

    def test_search_upstream_failure(self, client, monkeypatch):
        fake = FakeQueryClient(error=QueryServiceError("API Error: 503 Service Unavailable", status_code=503))
        monkeypatch.setattr(main, "get_query_client", lambda: fake)
        response = client.post("/rates/search", json={})
        assert response.status_code == 502
        assert response.json()["error"] == "API Error: 503 Service Unavailable"

    def test_export_failure_is_a_json_error(self, client, monkeypatch):
        def _broken(observations):
            raise RuntimeError("resolver unavailable")

        monkeypatch.setattr(main, "resolve_rates", _broken)
        response = client.post("/export/rates", json={"observations": [_record()]})
        assert response.status_code == 500
        assert response.json() == {"error": "resolver unavailable", "type": "RuntimeError"}

    def test_export_csv(self, client):
        response = client.post("/export/rates", json={"observations": [_record(), _record(state_name="TEXAS")]})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("state_name,")
        assert len(lines) == 3
