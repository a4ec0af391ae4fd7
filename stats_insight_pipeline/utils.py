"""
Small utilities: numeric coercion, rounding, URL loader and JSON-safe conversion.

Rationale:
- Every component coerces cells the same way, so the rule lives here once.
- Convert numpy types (and non-finite floats) to native JSON-safe Python values.
"""

import logging
import math
import numbers
import os
from typing import Any, Dict, List, Optional

import httpx
import numpy as np

from .config import ROW_LIMIT, URL_TIMEOUT

logger = logging.getLogger(__name__)


def to_number(value: Any) -> float:
    """
    Coerce a single cell to float; anything that does not parse becomes NaN.
    Booleans are not numbers here (a TRUE/FALSE column is categorical).
    """
    if value is None or isinstance(value, (bool, np.bool_)):
        return math.nan
    if isinstance(value, numbers.Number):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return math.nan
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def numeric_column(rows: List[Dict[str, Any]], column: str) -> np.ndarray:
    """Project one column of the rows to a float array (NaN where not numeric)."""
    return np.array([to_number(row.get(column)) for row in rows], dtype=float)


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, float):
        return math.isnan(value)
    return False


def round_value(value: float, digits: int) -> Optional[float]:
    """Presentation rounding; non-finite values have no JSON form and become None."""
    value = float(value)
    if not math.isfinite(value):
        return None
    return round(value, digits)


def file_stem(file_name: str) -> str:
    """'sales.2024.csv' -> 'sales.2024'."""
    stem, _ = os.path.splitext(os.path.basename(file_name or ""))
    return stem or "data"


def cap_rows(rows: List[Dict[str, Any]], limit: int = ROW_LIMIT) -> List[Dict[str, Any]]:
    """
    Limit rows to `limit` (0 disables the cap).
    Rationale: avoid huge memory usage, keep analysis time predictable.
    """
    if limit and len(rows) > limit:
        logger.warning(f"Dataset truncated from {len(rows)} to {limit} rows")
        return rows[:limit]
    return rows


def filename_from_url(url: str, index: int = 0) -> str:
    """Extract filename from URL or generate a default name."""
    filename = url.split("/")[-1].split("?")[0]
    if "." not in filename:
        filename = f"dataset_{index}.csv"
    return filename


async def download_bytes(url: str, timeout: float = URL_TIMEOUT) -> bytes:
    """
    Download a dataset file into memory.
    This is the only suspend point of an analysis: ingestion starts after the whole
    body has been buffered.
    """
    logger.info(f"Attempting to download dataset from: {url}")
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        response = await client.get(url)
        response.raise_for_status()
    logger.info(f"Downloaded {len(response.content)} bytes from {url}")
    return response.content


def safe_serialize(obj: Any) -> Any:
    """Convert numpy types to native Python types for JSON serialization."""
    if isinstance(obj, float):
        return obj if math.isfinite(obj) else None
    if isinstance(obj, (int, str, bool)) or obj is None:
        return obj
    if isinstance(obj, (np.integer, np.bool_)):
        return obj.item()
    if isinstance(obj, np.floating):
        return safe_serialize(float(obj))
    if isinstance(obj, dict):
        return {safe_serialize(k): safe_serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [safe_serialize(x) for x in obj]
    if isinstance(obj, np.ndarray):
        return [safe_serialize(x) for x in obj.tolist()]
    return str(obj)
