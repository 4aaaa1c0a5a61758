"""Tests for payload loading and configuration."""
import os

import pytest

from core import data
from core.query import RateQueryClient
from tests.fixtures import ROWS, make_payload


class TestLoadCombinationIndex:
    """Tests for load_combination_index()."""

    def test_loads_and_caches(self, tmp_path):
        path = tmp_path / "filter_options.json.gz"
        path.write_bytes(make_payload())
        first = data.load_combination_index(path)
        assert len(first) == len(ROWS)
        assert data.load_combination_index(path) is first

    def test_reloads_when_file_changes(self, tmp_path):
        path = tmp_path / "filter_options.json.gz"
        path.write_bytes(make_payload())
        first = data.load_combination_index(path)
        path.write_bytes(make_payload(ROWS[:2]))
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 10))
        second = data.load_combination_index(path)
        assert second is not first
        assert len(second) == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            data.load_combination_index(tmp_path / "missing.json.gz")

    def test_default_path(self, monkeypatch, tmp_path):
        monkeypatch.setattr(data, "DATA_DIR", tmp_path)
        assert data.get_filter_options_path() == tmp_path / data.FILTER_OPTIONS_FILE


class TestQueryClientConfig:
    """Tests for get_query_client()."""

    def test_uses_configured_url(self, monkeypatch):
        monkeypatch.setattr(data, "QUERY_URL", "http://rates.test/api")
        monkeypatch.setattr(data, "QUERY_TIMEOUT", 7.0)
        client = data.get_query_client()
        assert isinstance(client, RateQueryClient)
        assert client.base_url == "http://rates.test/api"
        assert client.timeout == 7.0
