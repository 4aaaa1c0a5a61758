from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from core.codec import decode_file
from core.index import CombinationIndex
from core.query import RateQueryClient


DATA_DIR = Path(os.environ.get("RATE_EXPLORER_DATA_DIR", Path(__file__).resolve().parents[1]))
FILTER_OPTIONS_FILE = os.environ.get("RATE_EXPLORER_FILTER_OPTIONS", "filter_options.json.gz")

QUERY_URL = os.environ.get("RATE_QUERY_URL", "http://localhost:3000/api/state-payment-comparison")
QUERY_TIMEOUT = float(os.environ.get("RATE_QUERY_TIMEOUT", "30"))
QUERY_PAGE_SIZE = int(os.environ.get("RATE_QUERY_PAGE_SIZE", "50"))


def get_filter_options_path() -> Path:
    return DATA_DIR / FILTER_OPTIONS_FILE


def file_signature(path: Path) -> Tuple[str, float]:
    return str(path), path.stat().st_mtime


@lru_cache(maxsize=4)
def _load_index_cached(signature: Tuple[str, float]) -> CombinationIndex:
    return CombinationIndex(decode_file(signature[0]))


def load_combination_index(path: Optional[Path] = None) -> CombinationIndex:
    """Decode the filter-options payload, reusing the last result while the file is unchanged."""
    path = path or get_filter_options_path()
    if not path.exists():
        raise FileNotFoundError(f"Filter options payload not found at {path}")
    return _load_index_cached(file_signature(path))


def get_query_client() -> RateQueryClient:
    return RateQueryClient(QUERY_URL, timeout=QUERY_TIMEOUT)
